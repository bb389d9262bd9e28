from __future__ import annotations

from typing import Any, Optional

from pydantic import PrivateAttr

from rms.core.errors import AuthenticationRequired, NotFound, PersistenceFailure, RMSError, ValidationFailed
from rms.schemas.common import CamelModel

ERROR_STATUS = {
    AuthenticationRequired: 401,
    ValidationFailed: 400,
    NotFound: 404,
    PersistenceFailure: 503,
}


def status_for(exc: RMSError) -> int:
    for cls, code in ERROR_STATUS.items():
        if isinstance(exc, cls):
            return code
    return 500


class ActionResult(CamelModel):
    """Outcome of a user-facing action. Public operations return this instead of raising."""

    success: bool
    message: Optional[str] = None
    errors: Optional[dict[str, list[str]]] = None
    id: Optional[str] = None
    draft: Optional[dict[str, Any]] = None
    data: Optional[Any] = None
    is_fallback: Optional[bool] = None

    _status_code: int = PrivateAttr(default=200)

    @classmethod
    def ok(cls, status_code: int = 200, **kwargs) -> "ActionResult":
        result = cls(success=True, **kwargs)
        result._status_code = status_code
        return result

    @classmethod
    def failed(cls, exc: RMSError) -> "ActionResult":
        if isinstance(exc, ValidationFailed):
            result = cls(success=False, message=exc.message, errors=exc.errors)
        else:
            result = cls(success=False, message=exc.message)
        result._status_code = status_for(exc)
        return result

    @property
    def status_code(self) -> int:
        return self._status_code

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
