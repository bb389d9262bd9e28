from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Request, Depends, Query

from rms.auth.deps import get_admin_user
from rms.core.errors import ValidationFailed
from rms.db.models.user import User
from rms.modules.dashboard.router import get_engine
from rms.modules.forms.router import respond
from rms.schemas.results import ActionResult
from rms.utils.analytics import SURVEY_DATA_VIEWS, AnalyticsEngine, DateRange

logger = logging.getLogger("rms.analytics")

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/stats")
async def admin_stats(
    request: Request,
    engine: AnalyticsEngine = Depends(get_engine),
    user: User = Depends(get_admin_user),
):
    # falls back to a static snapshot instead of failing
    return respond(await engine.cached_admin_stats(request.app.state.cache))


@router.get("/analytics")
async def admin_analytics(engine: AnalyticsEngine = Depends(get_engine), user: User = Depends(get_admin_user)):
    return respond(await engine.admin_analytics())


@router.get("/partner-mappings/summary")
async def partner_mapping_summary(
    request: Request,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    engine: AnalyticsEngine = Depends(get_engine),
    user: User = Depends(get_admin_user),
):
    if start is None and end is None:
        return respond(await engine.cached_partner_mapping_summary(request.app.state.cache))
    try:
        rng = DateRange(start, end)
    except ValidationFailed as exc:
        return respond(ActionResult.failed(exc))
    return respond(await engine.partner_mapping_summary(rng))


@router.get("/survey-data/{view}")
async def survey_data(
    view: str,
    request: Request,
    engine: AnalyticsEngine = Depends(get_engine),
    user: User = Depends(get_admin_user),
):
    return respond(await engine.survey_data(request.app.state.cache, view))


@router.post("/survey-data/refresh")
async def refresh_survey_data(
    request: Request,
    engine: AnalyticsEngine = Depends(get_engine),
    user: User = Depends(get_admin_user),
):
    dropped = engine.invalidate_survey_data(request.app.state.cache)
    logger.info("Survey data views refreshed by user_id=%s (%s cached)", user.id, dropped)
    return respond(ActionResult.ok(message="Survey data cache cleared", data={"views": list(SURVEY_DATA_VIEWS)}))
