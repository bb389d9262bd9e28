from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from rms.core.cache import StatsCache
from rms.core.errors import NotFound, PersistenceFailure, RMSError
from rms.core.rbac import can_view_user_data
from rms.db.models.user import User
from rms.db.session import Database
from rms.schemas.common import parse
from rms.schemas.results import ActionResult
from rms.utils.drafts import DraftStore, require_user
from rms.utils.families import FormFamily

logger = logging.getLogger("rms.submissions")


class SubmissionService:
    """Validate a complete payload and persist it as an immutable submitted record.

    `submit` leaves the user's draft alone; `finalize` inserts the record and
    deletes the drafts in one transaction.
    """

    def __init__(self, database: Database, family: FormFamily, cache: Optional[StatsCache] = None):
        self.database = database
        self.family = family
        self.cache = cache
        self.drafts = DraftStore(database, family)

    @property
    def model(self):
        return self.family.record_model

    def _publish(self) -> None:
        if self.cache is not None:
            self.cache.invalidate(self.family.tags)

    def _write(self, user: User, payload: Any, discard_drafts: bool) -> tuple[str, int]:
        try:
            with self.database.session() as db:
                record = self.family.build_record(user, payload)
                db.add(record)
                db.flush()
                deleted = self.drafts.delete_all(db, user.id) if discard_drafts else 0
                record_id = str(record.id)
        except SQLAlchemyError as exc:
            logger.exception("Persisting %s submission failed for user_id=%s", self.family.name, user.id)
            raise PersistenceFailure() from exc
        return record_id, deleted

    def _submit(self, user: Optional[User], data: Any, discard_drafts: bool) -> ActionResult:
        try:
            user = require_user(user)
            payload = parse(self.family.payload_schema, data)
            record_id, deleted = self._write(user, payload, discard_drafts)
        except RMSError as exc:
            return ActionResult.failed(exc)

        logger.info(
            "Stored %s record id=%s for user_id=%s (drafts removed: %s)",
            self.family.name,
            record_id,
            user.id,
            deleted,
        )
        self._publish()
        return ActionResult.ok(message="Submitted successfully", id=record_id)

    def submit(self, user: Optional[User], data: Any) -> ActionResult:
        return self._submit(user, data, discard_drafts=False)

    def finalize(self, user: Optional[User], data: Any) -> ActionResult:
        return self._submit(user, data, discard_drafts=True)

    # ---- read side

    def get_record(self, user: Optional[User], record_id: int) -> dict:
        """Raises NotFound for missing records and for records the user may not read."""
        require_user(user)
        with self.database.session() as db:
            record = db.get(self.model, int(record_id))
            if record is None or not can_view_user_data(user, record.user_id):
                raise NotFound(f"{self.family.name.replace('_', ' ').capitalize()} not found")
            return self.family.record_document(record)

    def _list(self, user_id: Optional[int], limit: int, offset: int) -> dict:
        time_col = self._time_column()
        with self.database.session() as db:
            stmt = select(self.model)
            count_stmt = select(func.count()).select_from(self.model)
            if user_id is not None:
                stmt = stmt.where(self.model.user_id == user_id)
                count_stmt = count_stmt.where(self.model.user_id == user_id)
            total = db.execute(count_stmt).scalar_one()
            rows = db.execute(stmt.order_by(time_col.desc(), self.model.id.desc()).offset(offset).limit(limit)).scalars()
            items = [self.family.record_document(r) for r in rows]
        return {"items": items, "total": int(total), "limit": limit, "offset": offset}

    def _time_column(self):
        if hasattr(self.model, "submission_date"):
            return self.model.submission_date
        return self.model.created_at

    def list_for_user(self, user: Optional[User], limit: int = 50, offset: int = 0) -> dict:
        user = require_user(user)
        return self._list(user.id, limit, offset)

    def list_all(self, limit: int = 50, offset: int = 0) -> dict:
        return self._list(None, limit, offset)
