from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request, Depends, Body, Query
from fastapi.responses import JSONResponse

from rms.auth.deps import get_admin_user, get_current_user, get_optional_user
from rms.core.errors import NotFound
from rms.core.rbac import require
from rms.db.models.user import User
from rms.schemas.results import ActionResult
from rms.utils.drafts import DraftStore
from rms.utils.families import FormFamily
from rms.utils.submission import SubmissionService


def respond(result: ActionResult) -> JSONResponse:
    return JSONResponse(result.to_response(), status_code=result.status_code)


def form_router(family: FormFamily, prefix: str, tags: list[str]) -> APIRouter:
    """Draft, submit and read endpoints shared by every form family."""
    router = APIRouter(prefix=prefix, tags=tags)

    def drafts(request: Request) -> DraftStore:
        return DraftStore(request.app.state.database, family)

    def submissions(request: Request) -> SubmissionService:
        return SubmissionService(request.app.state.database, family, request.app.state.cache)

    @router.get("/draft")
    def load_draft(store: DraftStore = Depends(drafts), user: Optional[User] = Depends(get_optional_user)):
        return respond(store.load(user))

    @router.put("/draft")
    def save_draft(
        body: dict = Body(...),
        store: DraftStore = Depends(drafts),
        user: Optional[User] = Depends(get_optional_user),
    ):
        return respond(store.save(user, body.get("formData"), body.get("currentStep")))

    @router.delete("/draft")
    def discard_draft(store: DraftStore = Depends(drafts), user: Optional[User] = Depends(get_optional_user)):
        return respond(store.discard(user))

    @router.post("")
    def submit(
        body: dict = Body(...),
        service: SubmissionService = Depends(submissions),
        user: Optional[User] = Depends(get_optional_user),
    ):
        return respond(service.submit(user, body))

    @router.post("/finalize")
    def finalize(
        body: dict = Body(...),
        service: SubmissionService = Depends(submissions),
        user: Optional[User] = Depends(get_optional_user),
    ):
        return respond(service.finalize(user, body))

    @router.get("/mine")
    def list_mine(
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
        service: SubmissionService = Depends(submissions),
        user: User = Depends(get_current_user),
    ):
        return service.list_for_user(user, limit=limit, offset=offset)

    @router.get("")
    def list_all(
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
        service: SubmissionService = Depends(submissions),
        user: User = Depends(get_admin_user),
    ):
        return service.list_all(limit=limit, offset=offset)

    @router.get("/{record_id}")
    def get_record(
        record_id: int,
        service: SubmissionService = Depends(submissions),
        user: User = Depends(get_current_user),
    ):
        try:
            return service.get_record(user, record_id)
        except NotFound as exc:
            require(False, exc.message, 404)

    return router
