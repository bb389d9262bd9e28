from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Integer, ForeignKey, String, Text, DateTime, BigInteger
from sqlalchemy.orm import Mapped, mapped_column

from rms.db.base import Base
from rms.utils.dates import utcnow


class ResourceType(str, enum.Enum):
    RESEARCH_FINDINGS = "research-findings"
    CONCEPT_NOTES = "concept-notes"
    PROGRAM_BRIEFS = "program-briefs"
    PUBLICATIONS = "publications"
    REPORTS = "reports"
    PRESENTATIONS = "presentations"
    VIDEOS = "videos"
    DATASETS = "datasets"


class ResourceStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    UNDER_REVIEW = "under-review"
    ARCHIVED = "archived"


class AccessLevel(str, enum.Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    RESTRICTED = "restricted"
    CONFIDENTIAL = "confidential"


class Resource(Base):
    __tablename__ = "resources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(300), index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    # Stored as the enum values (see ResourceType / ResourceStatus / AccessLevel)
    type: Mapped[str] = mapped_column(String(40), default=ResourceType.REPORTS.value, index=True)
    status: Mapped[str] = mapped_column(String(20), default=ResourceStatus.PUBLISHED.value, index=True)
    access_level: Mapped[str] = mapped_column(String(20), default=AccessLevel.PUBLIC.value, index=True)

    author: Mapped[str] = mapped_column(String(255), default="")
    keywords_json: Mapped[str] = mapped_column(Text, default="[]")
    tags_json: Mapped[str] = mapped_column(Text, default="[]")

    file_name: Mapped[str] = mapped_column(String(255))
    file_path: Mapped[str] = mapped_column(String(500))
    file_format: Mapped[str] = mapped_column(String(20), default="")
    file_size: Mapped[int] = mapped_column(BigInteger, default=0)

    download_count: Mapped[int] = mapped_column(Integer, default=0)
    view_count: Mapped[int] = mapped_column(Integer, default=0)

    uploaded_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    upload_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    last_modified: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
