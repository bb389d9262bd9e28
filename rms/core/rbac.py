from __future__ import annotations

from fastapi import HTTPException

from rms.db.models.user import User, Role


def require(condition: bool, msg: str = "Forbidden", status_code: int = 403) -> None:
    """Small helper used across routers.

    Defaults to 403 (permission denied). For validation errors or not-found cases,
    pass `status_code=400/404`.
    """
    if not condition:
        raise HTTPException(status_code=status_code, detail=msg)


def is_admin(user: User | None) -> bool:
    return user is not None and user.role == Role.ADMIN


def can_view_user_data(user: User | None, owner_id: int) -> bool:
    # Admins read everything; everybody else only their own records
    if user is None:
        return False
    return is_admin(user) or int(user.id) == int(owner_id)


def can_manage_resources(user: User | None) -> bool:
    return is_admin(user)


def can_manage_users(user: User | None) -> bool:
    return is_admin(user)
