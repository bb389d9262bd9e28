from __future__ import annotations

from typing import Annotated, Optional

from rms.db.models.resource import AccessLevel, Resource, ResourceStatus, ResourceType
from rms.schemas.common import CamelModel, max_length, one_of
from rms.utils.dates import to_iso
from rms.utils.jsondoc import loads

RESOURCE_TYPES = [t.value for t in ResourceType]
RESOURCE_STATUSES = [s.value for s in ResourceStatus]
ACCESS_LEVELS = [a.value for a in AccessLevel]


class ResourceUpdate(CamelModel):
    title: Annotated[Optional[str], max_length(300, "Title must be 300 characters or less")] = None
    description: Optional[str] = None
    type: Annotated[Optional[str], one_of(RESOURCE_TYPES, "Unknown resource type", optional=True)] = None
    status: Annotated[Optional[str], one_of(RESOURCE_STATUSES, "Unknown resource status", optional=True)] = None
    access_level: Annotated[Optional[str], one_of(ACCESS_LEVELS, "Unknown access level", optional=True)] = None
    author: Optional[str] = None
    keywords: Optional[list[str]] = None
    tags: Optional[list[str]] = None


def split_terms(raw: str) -> list[str]:
    return [t.strip() for t in (raw or "").split(",") if t.strip()]


def human_size(num_bytes: int) -> str:
    size = float(num_bytes or 0)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{int(size)} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024


def resource_document(r: Resource) -> dict:
    return {
        "id": str(r.id),
        "title": r.title,
        "description": r.description,
        "type": r.type,
        "status": r.status,
        "accessLevel": r.access_level,
        "author": r.author,
        "keywords": loads(r.keywords_json, []),
        "tags": loads(r.tags_json, []),
        "fileName": r.file_name,
        "fileFormat": r.file_format,
        "fileSize": r.file_size,
        "fileSizeLabel": human_size(r.file_size),
        "downloadCount": r.download_count,
        "viewCount": r.view_count,
        "uploadedBy": str(r.uploaded_by_id),
        "uploadDate": to_iso(r.upload_date),
        "lastModified": to_iso(r.last_modified),
    }
