"""baseline: users, surveys, partner mappings, drafts and resources

Revision ID: 20250601090000
Revises:
Create Date: 2025-06-01T09:00:00Z
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20250601090000"
down_revision = None
branch_labels = None
depends_on = None


def _index(table: str, *columns: str, unique: bool = False) -> None:
    for col in columns:
        op.create_index(op.f(f"ix_{table}_{col}"), table, [col], unique=unique)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(120), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(120), nullable=False, server_default=""),
        sa.Column("telephone", sa.String(50), nullable=False, server_default=""),
        sa.Column("bio", sa.Text(), nullable=False),
        sa.Column("role", sa.Enum("ADMIN", "USER", name="role"), nullable=False),
        sa.Column("region", sa.String(120), nullable=True),
        sa.Column("organisation", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("first_login", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.Column("password_changed_at", sa.DateTime(), nullable=True),
    )
    _index("users", "email", unique=True)
    _index("users", "role", "region", "is_active", "created_at", "last_login_at")

    op.create_table(
        "surveys",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("user_email", sa.String(255), nullable=False, server_default=""),
        sa.Column("created_by_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="submitted"),
        sa.Column("version", sa.String(10), nullable=False, server_default="1.0"),
        sa.Column("organisation_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("region", sa.String(120), nullable=False, server_default=""),
        sa.Column("sector", sa.String(120), nullable=False, server_default=""),
        sa.Column("project_name", sa.String(500), nullable=False, server_default=""),
        sa.Column("organisation_info_json", sa.Text(), nullable=False),
        sa.Column("project_info_json", sa.Text(), nullable=False),
        sa.Column("project_activities_json", sa.Text(), nullable=False),
        sa.Column("extra_json", sa.Text(), nullable=False),
        sa.Column("submission_date", sa.DateTime(), nullable=False),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
    )
    _index("surveys", "user_id", "status", "organisation_name", "region", "sector", "submission_date")

    op.create_table(
        "survey_drafts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("user_email", sa.String(255), nullable=False, server_default=""),
        sa.Column("form_data_json", sa.Text(), nullable=False),
        sa.Column("current_step", sa.String(50), nullable=False, server_default="organisation"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
    )
    # one draft per user
    _index("survey_drafts", "user_id", unique=True)
    _index("survey_drafts", "created_at", "last_updated")

    op.create_table(
        "partner_mappings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_by_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="submitted"),
        sa.Column("data_json", sa.Text(), nullable=False),
        sa.Column("entry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    _index("partner_mappings", "user_id", "status", "created_at")

    op.create_table(
        "partner_mapping_drafts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("form_data_json", sa.Text(), nullable=False),
        sa.Column("current_step", sa.String(50), nullable=False, server_default="partner-mapping"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
    )
    _index("partner_mapping_drafts", "user_id", unique=True)
    _index("partner_mapping_drafts", "created_at", "last_updated")

    op.create_table(
        "resources",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("type", sa.String(40), nullable=False, server_default="reports"),
        sa.Column("status", sa.String(20), nullable=False, server_default="published"),
        sa.Column("access_level", sa.String(20), nullable=False, server_default="public"),
        sa.Column("author", sa.String(255), nullable=False, server_default=""),
        sa.Column("keywords_json", sa.Text(), nullable=False),
        sa.Column("tags_json", sa.Text(), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_path", sa.String(500), nullable=False),
        sa.Column("file_format", sa.String(20), nullable=False, server_default=""),
        sa.Column("file_size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("uploaded_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("upload_date", sa.DateTime(), nullable=False),
        sa.Column("last_modified", sa.DateTime(), nullable=False),
    )
    _index("resources", "title", "type", "status", "access_level", "uploaded_by_id", "upload_date")


def downgrade() -> None:
    for table in ("resources", "partner_mapping_drafts", "partner_mappings", "survey_drafts", "surveys", "users"):
        op.drop_table(table)
