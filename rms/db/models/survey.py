from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, ForeignKey, String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from rms.db.base import Base
from rms.utils.dates import utcnow


class Survey(Base):
    """A submitted organisational survey. Rows are inserted once and never updated."""

    __tablename__ = "surveys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    user_email: Mapped[str] = mapped_column(String(255), default="")
    created_by_name: Mapped[str] = mapped_column(String(255), default="")

    status: Mapped[str] = mapped_column(String(20), default="submitted", index=True)
    version: Mapped[str] = mapped_column(String(10), default="1.0")

    # Denormalized from the sections below for faster grouping/filtering.
    organisation_name: Mapped[str] = mapped_column(String(255), default="", index=True)
    region: Mapped[str] = mapped_column(String(120), default="", index=True)
    sector: Mapped[str] = mapped_column(String(120), default="", index=True)
    project_name: Mapped[str] = mapped_column(String(500), default="")

    organisation_info_json: Mapped[str] = mapped_column(Text, default="{}")
    project_info_json: Mapped[str] = mapped_column(Text, default="{}")
    project_activities_json: Mapped[str] = mapped_column(Text, default="{}")
    # activities, partners, risks, sustainability, monitoringPlan, evaluation, notes
    extra_json: Mapped[str] = mapped_column(Text, default="{}")

    submission_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
