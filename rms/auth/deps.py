from __future__ import annotations

from typing import Optional

from fastapi import Request, Depends, HTTPException
from sqlalchemy.orm import Session

from rms.core.rbac import is_admin, require
from rms.core.security import verify_session
from rms.db.models.user import User
from rms.db.session import get_db

SESSION_COOKIE = "sid"


def session_user(request: Request, db: Session) -> Optional[User]:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    payload = verify_session(token)
    if not payload or "user_id" not in payload:
        return None
    user = db.get(User, payload["user_id"])
    if not user or not user.is_active:
        return None
    return user


def get_optional_user(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    return session_user(request, db)


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    user = session_user(request, db)
    if user is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


def get_admin_user(user: User = Depends(get_current_user)) -> User:
    require(is_admin(user), "Admin access required")
    return user
