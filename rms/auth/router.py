from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Body
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from rms.auth.deps import SESSION_COOKIE, get_current_user
from rms.core.config import settings
from rms.core.errors import ValidationFailed
from rms.core.security import hash_password, password_problems, sign_session, verify_password
from rms.db.models.user import User
from rms.db.session import get_db
from rms.schemas.common import parse
from rms.schemas.results import ActionResult
from rms.schemas.user import ChangePasswordRequest, LoginRequest, user_document
from rms.utils.dates import utcnow

logger = logging.getLogger("rms.auth")

router = APIRouter(tags=["auth"])


def _failed(exc) -> JSONResponse:
    result = ActionResult.failed(exc)
    return JSONResponse(result.to_response(), status_code=result.status_code)


@router.post("/login")
def login(body: dict = Body(...), db: Session = Depends(get_db)):
    try:
        creds = parse(LoginRequest, body)
    except ValidationFailed as exc:
        return _failed(exc)

    user = db.query(User).filter(func.lower(User.email) == creds.email.strip().lower()).first()
    if not user or not verify_password(creds.password, user.password_hash):
        return JSONResponse({"success": False, "message": "Invalid email or password"}, status_code=400)

    if not user.is_active:
        return JSONResponse({"success": False, "message": "This account has been deactivated"}, status_code=403)

    user.last_login_at = utcnow()
    db.commit()
    logger.info("User %s signed in", user.id)

    resp = JSONResponse({"success": True, "user": user_document(user), "firstLogin": user.first_login})
    resp.set_cookie(
        SESSION_COOKIE,
        sign_session({"user_id": user.id}),
        httponly=True,
        samesite=settings.COOKIE_SAMESITE,
        secure=settings.COOKIE_SECURE,
        max_age=settings.SESSION_MAX_AGE_SECONDS,
    )
    return resp


@router.post("/logout")
def logout():
    resp = JSONResponse({"success": True})
    resp.delete_cookie(SESSION_COOKIE)
    return resp


@router.post("/api/auth/change-password")
def change_password(body: dict = Body(...), db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    try:
        req = parse(ChangePasswordRequest, body)
        if not verify_password(req.current_password, user.password_hash):
            raise ValidationFailed({"currentPassword": ["Current password is incorrect"]})
        problems = password_problems(req.new_password)
        if problems:
            raise ValidationFailed({"newPassword": ["Password must contain " + ", ".join(problems)]})
        if req.new_password != req.confirm_password:
            raise ValidationFailed({"confirmPassword": ["Passwords do not match"]})
        if req.new_password == req.current_password:
            raise ValidationFailed({"newPassword": ["New password must be different from the current password"]})
    except ValidationFailed as exc:
        return _failed(exc)

    user.password_hash = hash_password(req.new_password)
    user.first_login = False
    user.password_changed_at = utcnow()
    db.commit()
    logger.info("User %s changed their password", user.id)
    return {"success": True, "message": "Password changed successfully"}
