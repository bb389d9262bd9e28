from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.responses import JSONResponse

from rms.core.cache import StatsCache
from rms.core.config import settings
from rms.core.errors import RMSError
from rms.core.redis import redis_status
from rms.db.session import Database
from rms.schemas.results import ActionResult
from rms.utils.analytics import AnalyticsEngine

from rms.auth.router import router as auth_router
from rms.modules.admin.router import router as admin_router
from rms.modules.dashboard.router import router as dashboard_router
from rms.modules.partner_mappings.router import router as partner_mappings_router
from rms.modules.resources.router import router as resources_router
from rms.modules.surveys.router import router as surveys_router
from rms.modules.users.router import router as users_router


logger = logging.getLogger("rms")


def create_app(
    database: Optional[Database] = None,
    cache: Optional[StatsCache] = None,
    upload_dir: Optional[str] = None,
) -> FastAPI:
    """Build the application around an explicitly constructed database handle and stats cache."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Migrations are handled by rms.scripts.migrate; only release the pool here.
        app.state.database.dispose()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.database = database or Database.from_settings()
    app.state.cache = cache or StatsCache.from_settings()
    app.state.analytics = AnalyticsEngine(app.state.database)
    app.state.upload_dir = upload_dir or settings.UPLOAD_DIR

    # CORS (Access-Control-Allow-*) - configurable
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    )

    # Compression for JSON (helps under load)
    app.add_middleware(GZipMiddleware, minimum_size=800)

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start = time.perf_counter()
        resp = await call_next(request)
        resp.headers["X-Process-Time-ms"] = f"{(time.perf_counter() - start) * 1000:.2f}"
        return resp

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        resp = await call_next(request)
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "SAMEORIGIN"
        resp.headers["Referrer-Policy"] = "same-origin"
        resp.headers["Permissions-Policy"] = "geolocation=(), camera=(), microphone=()"
        return resp

    @app.exception_handler(HTTPException)
    async def http_exc_handler(request: Request, exc: HTTPException):
        if exc.status_code == 401:
            resp = await http_exception_handler(request, exc)
            resp.delete_cookie("sid")
            return resp
        return await http_exception_handler(request, exc)

    @app.exception_handler(RMSError)
    async def rms_error_handler(request: Request, exc: RMSError):
        result = ActionResult.failed(exc)
        return JSONResponse(result.to_response(), status_code=result.status_code)

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    # Routers
    app.include_router(auth_router)
    app.include_router(dashboard_router)
    app.include_router(admin_router)
    app.include_router(surveys_router)
    app.include_router(partner_mappings_router)
    app.include_router(users_router)
    app.include_router(resources_router)

    @app.get("/health", response_class=JSONResponse)
    def health():
        return {
            "status": "ok",
            "app": settings.APP_NAME,
            "cache": type(app.state.cache.backend).__name__,
            "redis": redis_status(),
        }

    return app


app = create_app()
