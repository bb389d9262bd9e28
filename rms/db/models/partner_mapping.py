from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, ForeignKey, String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from rms.db.base import Base
from rms.utils.dates import utcnow


class PartnerMapping(Base):
    """One organisation's submitted set of partner-mapping entries."""

    __tablename__ = "partner_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    created_by_name: Mapped[str] = mapped_column(String(255), default="")

    status: Mapped[str] = mapped_column(String(20), default="submitted", index=True)

    # {"partnerMappings": [...]}
    data_json: Mapped[str] = mapped_column(Text, default="{}")
    entry_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class PartnerMappingDraft(Base):
    __tablename__ = "partner_mapping_drafts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, index=True)

    form_data_json: Mapped[str] = mapped_column(Text, default="{}")
    current_step: Mapped[str] = mapped_column(String(50), default="partner-mapping")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
