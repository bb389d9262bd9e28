from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Request, Depends, Body, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from rms.auth.deps import get_admin_user, get_current_user
from rms.core.cache import CacheTag
from rms.core.config import settings
from rms.core.errors import ValidationFailed
from rms.core.rbac import require
from rms.core.security import hash_password
from rms.db.models.user import Role, User
from rms.db.session import get_db
from rms.modules.forms.router import respond
from rms.schemas.common import parse
from rms.schemas.results import ActionResult
from rms.schemas.user import ProfileUpdate, StatusUpdate, UserCreate, user_document

logger = logging.getLogger("rms.users")

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("")
def list_users(
    q: str = Query(""),
    role: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_admin_user),
):
    query = db.query(User)
    if q.strip():
        like = f"%{q.strip()}%"
        query = query.filter(
            or_(User.email.ilike(like), User.first_name.ilike(like), User.last_name.ilike(like), User.organisation.ilike(like))
        )
    if role:
        require(role in [r.value for r in Role], "Invalid role", 400)
        query = query.filter(User.role == Role(role))

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "users": [user_document(u) for u in users],
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit,
    }


@router.post("")
def create_user(
    request: Request,
    body: dict = Body(...),
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    try:
        data = parse(UserCreate, body)
        email = data.email.strip().lower()
        if db.query(User).filter(func.lower(User.email) == email).first():
            raise ValidationFailed({"email": ["A user with this email already exists"]})
    except ValidationFailed as exc:
        return respond(ActionResult.failed(exc))

    # new accounts start on the shared default password and must change it at first login
    u = User(
        email=email,
        password_hash=hash_password(settings.DEFAULT_USER_PASSWORD),
        first_name=data.first_name.strip(),
        last_name=data.last_name.strip(),
        telephone=data.telephone,
        role=Role(data.role),
        region=data.region,
        organisation=data.organisation,
        is_active=True,
        first_login=True,
    )
    db.add(u)
    db.commit()
    db.refresh(u)
    logger.info("Admin %s created user %s", admin.id, u.id)
    request.app.state.cache.invalidate([CacheTag.USERS])
    return respond(ActionResult.ok(201, message="User created successfully", id=str(u.id), data=user_document(u)))


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return user_document(user)


@router.put("/me")
def update_me(body: dict = Body(...), db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    try:
        data = parse(ProfileUpdate, body)
    except ValidationFailed as exc:
        return respond(ActionResult.failed(exc))

    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(user, field, value.strip() if isinstance(value, str) else value)
    db.commit()
    return respond(ActionResult.ok(message="Profile updated successfully", data=user_document(user)))


@router.patch("/{user_id}/status")
def set_status(
    user_id: int,
    request: Request,
    body: dict = Body(...),
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    try:
        data = parse(StatusUpdate, body)
    except ValidationFailed as exc:
        return respond(ActionResult.failed(exc))

    target = db.get(User, user_id)
    require(target is not None, "User not found", 404)
    require(not (target.id == admin.id and not data.is_active), "You cannot deactivate your own account", 400)

    target.is_active = data.is_active
    db.commit()
    logger.info("Admin %s set user %s active=%s", admin.id, target.id, target.is_active)
    request.app.state.cache.invalidate([CacheTag.USERS])
    return respond(ActionResult.ok(message="User status updated", data=user_document(target)))
