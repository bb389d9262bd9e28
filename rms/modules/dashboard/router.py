from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Request, Depends, Body, Query
from fastapi.responses import JSONResponse

from rms.auth.deps import get_optional_user
from rms.core.cache import CacheTag
from rms.core.errors import ValidationFailed
from rms.core.rbac import can_view_user_data, is_admin, require
from rms.db.models.user import User
from rms.modules.forms.router import respond
from rms.schemas.results import ActionResult
from rms.utils.analytics import RECENT_ACTIVITY_LIMIT, AnalyticsEngine, DateRange
from rms.utils.dates import to_iso, utcnow

logger = logging.getLogger("rms.analytics")

router = APIRouter(prefix="/api", tags=["dashboard"])


def get_engine(request: Request) -> AnalyticsEngine:
    return request.app.state.analytics


def _require_admin_session(user: Optional[User]) -> None:
    require(user is not None, "Authentication required", 401)
    require(is_admin(user), "Admin access required")


async def _global_stats(request: Request, engine: AnalyticsEngine, rng: Optional[DateRange], include_activity: bool) -> dict:
    stats = await engine.cached_dashboard_stats(request.app.state.cache, rng)
    out = {"stats": stats.data, "timestamp": to_iso(utcnow())}
    if stats.is_fallback:
        out["message"] = stats.message
    if include_activity:
        activity = await engine.recent_activity(RECENT_ACTIVITY_LIMIT, rng)
        if activity.success:
            out["recentActivity"] = activity.data
    return out


@router.get("/dashboard")
async def dashboard(
    request: Request,
    userId: Optional[str] = Query(None),
    includeActivity: bool = Query(False),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    engine: AnalyticsEngine = Depends(get_engine),
    user: Optional[User] = Depends(get_optional_user),
):
    if userId is not None:
        require(user is not None, "Authentication required", 401)
        require(userId.isdigit(), "Invalid userId", 400)
        require(can_view_user_data(user, int(userId)), "You can only view your own dashboard")
        result = await engine.user_dashboard(int(userId))
        if not result.success:
            return JSONResponse({"error": result.message}, status_code=500)
        out = {"stats": result.data, "timestamp": to_iso(utcnow())}
        if includeActivity:
            out["recentActivity"] = result.data["recentSubmissions"]
        return out

    _require_admin_session(user)
    try:
        rng = DateRange(start, end)
    except ValidationFailed as exc:
        return respond(ActionResult.failed(exc))
    return await _global_stats(request, engine, rng, includeActivity)


@router.post("/dashboard")
async def dashboard_action(
    request: Request,
    body: dict = Body(...),
    engine: AnalyticsEngine = Depends(get_engine),
    user: Optional[User] = Depends(get_optional_user),
):
    _require_admin_session(user)
    action = body.get("action")
    require(action == "refresh", "Invalid action", 400)

    request.app.state.cache.invalidate([CacheTag.DASHBOARD_STATS])
    logger.info("Dashboard stats refreshed by user_id=%s", user.id)
    out = await _global_stats(request, engine, None, True)
    out.setdefault("recentActivity", [])
    return out


@router.get("/stats")
async def stats(engine: AnalyticsEngine = Depends(get_engine)):
    result = await engine.basic_counts()
    if not result.success:
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    data = result.data
    return {
        "totalSurveys": data["totalSurveys"],
        "totalDrafts": data["totalDrafts"],
        "totalUsers": data["totalUsers"],
        "recentActivity": data["recentActivity"],
        "completionRate": data["completionRate"],
        "timestamp": to_iso(utcnow()),
    }
