from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from rms.core.config import settings
from rms.db.base import Base

logger = logging.getLogger("rms.db")

T = TypeVar("T")


class Database:
    """Shared handle to the document store.

    The engine is created on first use, exactly once, and then reused by every
    request for the lifetime of the process. Queries take no application-level
    lock; per-row atomicity is left to the database.
    """

    def __init__(self, url: str, *, pool_size: int = 10, max_overflow: int = 20):
        self.url = url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self._engine: Engine | None = None
        self._sessionmaker: sessionmaker | None = None
        self._init_lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "Database":
        return cls(settings.DATABASE_URL, pool_size=settings.DB_POOL_SIZE, max_overflow=settings.DB_MAX_OVERFLOW)

    def _create_engine(self) -> Engine:
        if self.url.startswith("sqlite"):
            # SQLite is used for local runs and tests; sessions hop threads in the fan-out.
            return create_engine(self.url, connect_args={"check_same_thread": False})
        return create_engine(
            self.url,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_timeout=30,
        )

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            with self._init_lock:
                if self._engine is None:
                    logger.info("Opening database engine")
                    engine = self._create_engine()
                    self._sessionmaker = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
                    self._engine = engine
        return self._engine

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    def new_session(self) -> Session:
        if self._sessionmaker is None:
            _ = self.engine
        return self._sessionmaker()

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.new_session()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def run(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run one unit of work in its own session (used by the aggregation fan-out)."""
        db = self.new_session()
        try:
            return fn(db, *args, **kwargs)
        finally:
            db.close()

    def create_all(self) -> None:
        import rms.db.models  # noqa: F401

        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._sessionmaker = None


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(request: Request):
    db = request.app.state.database.new_session()
    try:
        yield db
    finally:
        db.close()
