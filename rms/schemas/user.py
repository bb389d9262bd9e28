from __future__ import annotations

from typing import Annotated, Optional

from rms.db.models.user import Role, User
from rms.schemas.common import CamelModel, one_of, required, valid_email
from rms.utils.dates import to_iso


class LoginRequest(CamelModel):
    email: Annotated[str, required("Email is required")] = ""
    password: Annotated[str, required("Password is required")] = ""


class ChangePasswordRequest(CamelModel):
    current_password: Annotated[str, required("Current password is required")] = ""
    new_password: Annotated[str, required("New password is required")] = ""
    confirm_password: Annotated[str, required("Please confirm the new password")] = ""


class UserCreate(CamelModel):
    email: Annotated[str, valid_email("Valid email is required")] = ""
    first_name: Annotated[str, required("First name is required")] = ""
    last_name: Annotated[str, required("Last name is required")] = ""
    role: Annotated[str, one_of([r.value for r in Role], "Role must be Admin or User")] = Role.USER.value
    region: Optional[str] = None
    organisation: Optional[str] = None
    telephone: str = ""


class ProfileUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    telephone: Optional[str] = None
    bio: Optional[str] = None
    region: Optional[str] = None
    organisation: Optional[str] = None


class StatusUpdate(CamelModel):
    is_active: bool


def user_document(u: User) -> dict:
    return {
        "id": str(u.id),
        "email": u.email,
        "firstName": u.first_name,
        "lastName": u.last_name,
        "name": u.full_name,
        "telephone": u.telephone,
        "bio": u.bio,
        "role": u.role.value,
        "roleLabel": u.role_label,
        "region": u.region,
        "organisation": u.organisation,
        "isActive": u.is_active,
        "firstLogin": u.first_login,
        "createdAt": to_iso(u.created_at),
        "lastLoginAt": to_iso(u.last_login_at),
    }
