from __future__ import annotations

from fastapi import Body, Depends

from rms.auth.deps import get_optional_user
from rms.core.errors import RMSError
from rms.modules.forms.router import form_router, respond
from rms.schemas.results import ActionResult
from rms.schemas.survey import STEP_LABELS, validate_step
from rms.utils.drafts import require_user
from rms.utils.families import SURVEYS

router = form_router(SURVEYS, "/api/surveys", ["surveys"])


@router.post("/steps/{step}/validate")
def validate_wizard_step(step: str, body: dict = Body(...), user=Depends(get_optional_user)):
    try:
        require_user(user)
        validate_step(step, body.get("formData", body))
    except RMSError as exc:
        return respond(ActionResult.failed(exc))
    return respond(ActionResult.ok(message=f"{STEP_LABELS[step]} is valid"))
