from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, ForeignKey, String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from rms.db.base import Base
from rms.utils.dates import utcnow


class SurveyDraft(Base):
    __tablename__ = "survey_drafts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # At most one draft per user: saving upserts on this key.
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, index=True)
    user_email: Mapped[str] = mapped_column(String(255), default="")

    form_data_json: Mapped[str] = mapped_column(Text, default="{}")
    current_step: Mapped[str] = mapped_column(String(50), default="organisation")
    progress: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="draft")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
