import enum
from datetime import datetime

from sqlalchemy import String, Integer, Enum, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from rms.db.base import Base
from rms.utils.dates import utcnow


class Role(str, enum.Enum):
    ADMIN = "Admin"
    USER = "User"


ROLE_LABELS = {
    Role.ADMIN: "Administrator",
    Role.USER: "Survey respondent",
}


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))

    first_name: Mapped[str] = mapped_column(String(120), default="")
    last_name: Mapped[str] = mapped_column(String(120), default="")
    telephone: Mapped[str] = mapped_column(String(50), default="")
    bio: Mapped[str] = mapped_column(Text, default="")

    role: Mapped[Role] = mapped_column(Enum(Role), index=True, default=Role.USER)
    region: Mapped[str | None] = mapped_column(String(120), nullable=True, index=True)
    organisation: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    # Accounts created by an admin get a default password that must be changed
    first_login: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    password_changed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    @property
    def full_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email

    @property
    def role_label(self) -> str:
        return ROLE_LABELS.get(self.role, self.role.value)
