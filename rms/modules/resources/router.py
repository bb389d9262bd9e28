from __future__ import annotations

import logging
import os
import uuid
from typing import Optional

from fastapi import APIRouter, Request, Depends, Body, File, Form, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from rms.auth.deps import get_admin_user, get_current_user
from rms.core.config import settings
from rms.core.errors import ValidationFailed
from rms.core.rbac import can_manage_resources, require
from rms.db.models.resource import AccessLevel, Resource, ResourceStatus, ResourceType
from rms.db.models.user import User
from rms.db.session import get_db
from rms.modules.forms.router import respond
from rms.schemas.common import parse
from rms.schemas.resource import (
    ACCESS_LEVELS,
    RESOURCE_STATUSES,
    RESOURCE_TYPES,
    ResourceUpdate,
    human_size,
    resource_document,
    split_terms,
)
from rms.schemas.results import ActionResult
from rms.utils.dates import utcnow
from rms.utils.jsondoc import dumps

logger = logging.getLogger("rms.resources")

router = APIRouter(prefix="/api/resources", tags=["resources"])

# Respondents only ever see published material they are cleared for
VISIBLE_ACCESS = (AccessLevel.PUBLIC.value, AccessLevel.INTERNAL.value)


def _visible(query, user: User):
    if can_manage_resources(user):
        return query
    return query.filter(Resource.status == ResourceStatus.PUBLISHED.value, Resource.access_level.in_(VISIBLE_ACCESS))


def _get_or_404(db: Session, resource_id: int, user: User) -> Resource:
    r = _visible(db.query(Resource), user).filter(Resource.id == resource_id).first()
    require(r is not None, "Resource not found", 404)
    return r


def _file_path(request: Request, r: Resource) -> str:
    return os.path.join(request.app.state.upload_dir, r.file_path)


@router.get("")
def list_resources(
    q: str = Query(""),
    type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    accessLevel: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = _visible(db.query(Resource), user)
    if q.strip():
        like = f"%{q.strip()}%"
        query = query.filter(
            or_(
                Resource.title.ilike(like),
                Resource.description.ilike(like),
                Resource.author.ilike(like),
                Resource.keywords_json.ilike(like),
                Resource.tags_json.ilike(like),
            )
        )
    if type:
        require(type in RESOURCE_TYPES, "Unknown resource type", 400)
        query = query.filter(Resource.type == type)
    if status:
        require(status in RESOURCE_STATUSES, "Unknown resource status", 400)
        query = query.filter(Resource.status == status)
    if accessLevel:
        require(accessLevel in ACCESS_LEVELS, "Unknown access level", 400)
        query = query.filter(Resource.access_level == accessLevel)

    total = query.count()
    rows = query.order_by(Resource.upload_date.desc(), Resource.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "resources": [resource_document(r) for r in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit,
    }


@router.post("")
async def upload_resource(
    request: Request,
    file: UploadFile = File(...),
    title: str = Form(...),
    description: str = Form(""),
    type: str = Form(ResourceType.REPORTS.value),
    status: str = Form(ResourceStatus.PUBLISHED.value),
    accessLevel: str = Form(AccessLevel.PUBLIC.value),
    author: str = Form(""),
    keywords: str = Form(""),
    tags: str = Form(""),
    db: Session = Depends(get_db),
    user: User = Depends(get_admin_user),
):
    require(bool(title.strip()), "Title is required", 400)
    require(type in RESOURCE_TYPES, "Unknown resource type", 400)
    require(status in RESOURCE_STATUSES, "Unknown resource status", 400)
    require(accessLevel in ACCESS_LEVELS, "Unknown access level", 400)
    require(bool(file.filename), "A file is required", 400)

    upload_dir = request.app.state.upload_dir
    os.makedirs(upload_dir, exist_ok=True)
    ext = os.path.splitext(file.filename)[1]
    fname = f"{uuid.uuid4().hex}{ext}"
    dest = os.path.join(upload_dir, fname)
    max_bytes = int(settings.MAX_UPLOAD_MB) * 1024 * 1024
    size = 0
    with open(dest, "wb") as out:
        while True:
            chunk = await file.read(1024 * 1024)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                out.close()
                os.remove(dest)
                require(False, f"File is too large (maximum {settings.MAX_UPLOAD_MB}MB)", 400)
            out.write(chunk)

    now = utcnow()
    r = Resource(
        title=title.strip(),
        description=description,
        type=type,
        status=status,
        access_level=accessLevel,
        author=author.strip() or user.full_name,
        keywords_json=dumps(split_terms(keywords)),
        tags_json=dumps(split_terms(tags)),
        file_name=file.filename,
        file_path=fname,
        file_format=ext.lstrip(".").lower(),
        file_size=size,
        uploaded_by_id=user.id,
        upload_date=now,
        last_modified=now,
    )
    db.add(r)
    db.commit()
    db.refresh(r)
    logger.info("User %s uploaded resource %s (%s bytes)", user.id, r.id, size)
    return respond(ActionResult.ok(201, message="Resource uploaded successfully", id=str(r.id), data=resource_document(r)))


@router.get("/stats")
def resource_stats(db: Session = Depends(get_db), user: User = Depends(get_admin_user)):
    by_type = dict(db.query(Resource.type, func.count(Resource.id)).group_by(Resource.type).all())
    by_status = dict(db.query(Resource.status, func.count(Resource.id)).group_by(Resource.status).all())
    total, downloads, views, storage = db.query(
        func.count(Resource.id),
        func.coalesce(func.sum(Resource.download_count), 0),
        func.coalesce(func.sum(Resource.view_count), 0),
        func.coalesce(func.sum(Resource.file_size), 0),
    ).one()
    return {
        "totalResources": int(total),
        "byType": {t: int(by_type.get(t, 0)) for t in RESOURCE_TYPES},
        "byStatus": {s: int(by_status.get(s, 0)) for s in RESOURCE_STATUSES},
        "totalDownloads": int(downloads),
        "totalViews": int(views),
        "storageUsed": int(storage),
        "storageUsedLabel": human_size(int(storage)),
    }


@router.get("/{resource_id}")
def get_resource(resource_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    r = _get_or_404(db, resource_id, user)
    r.view_count = (r.view_count or 0) + 1
    db.commit()
    return resource_document(r)


@router.put("/{resource_id}")
def update_resource(
    resource_id: int,
    body: dict = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_admin_user),
):
    r = _get_or_404(db, resource_id, user)
    try:
        data = parse(ResourceUpdate, body)
    except ValidationFailed as exc:
        return respond(ActionResult.failed(exc))

    changes = data.model_dump(exclude_unset=True)
    for field in ("keywords", "tags"):
        terms = changes.pop(field, None)
        if terms is not None:
            setattr(r, f"{field}_json", dumps([t.strip() for t in terms if t.strip()]))
    for field, value in changes.items():
        if value is not None:
            setattr(r, field, value)
    r.last_modified = utcnow()
    db.commit()
    return respond(ActionResult.ok(message="Resource updated successfully", data=resource_document(r)))


@router.delete("/{resource_id}")
def delete_resource(
    resource_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_admin_user),
):
    r = _get_or_404(db, resource_id, user)
    path = _file_path(request, r)
    db.delete(r)
    db.commit()
    try:
        os.remove(path)
    except FileNotFoundError:
        logger.warning("Resource %s had no file on disk at %s", resource_id, path)
    return respond(ActionResult.ok(message="Resource deleted successfully"))


@router.get("/{resource_id}/download")
def download_resource(
    resource_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    r = _get_or_404(db, resource_id, user)
    path = _file_path(request, r)
    require(os.path.isfile(path), "Resource file not found", 404)
    r.download_count = (r.download_count or 0) + 1
    db.commit()
    return FileResponse(path, filename=r.file_name)
