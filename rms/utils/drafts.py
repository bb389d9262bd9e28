from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from rms.core.errors import AuthenticationRequired, PersistenceFailure, RMSError, ValidationFailed
from rms.db.models.user import User
from rms.db.session import Database
from rms.schemas.results import ActionResult
from rms.utils.dates import utcnow
from rms.utils.families import FormFamily, draft_document
from rms.utils.jsondoc import dumps

logger = logging.getLogger("rms.drafts")


def require_user(user: Optional[User]) -> User:
    """Identity is checked before anything else touches the store."""
    if user is None or getattr(user, "id", None) is None:
        raise AuthenticationRequired()
    return user


class DraftStore:
    """At most one in-progress form per (user, form family)."""

    def __init__(self, database: Database, family: FormFamily):
        self.database = database
        self.family = family

    @property
    def model(self):
        return self.family.draft_model

    def _latest(self, db: Session, user_id: int):
        stmt = (
            select(self.model)
            .where(self.model.user_id == user_id)
            .order_by(self.model.last_updated.desc(), self.model.id.desc())
            .limit(1)
        )
        return db.execute(stmt).scalars().first()

    def _check_step(self, current_step: Optional[str]) -> None:
        if current_step is not None and current_step not in self.family.steps:
            raise ValidationFailed({"currentStep": [f"Unknown step '{current_step}'"]})

    def _apply(self, draft, user: User, form_data: dict, current_step: Optional[str]) -> None:
        now = utcnow()
        draft.form_data_json = dumps(form_data)
        if current_step is not None:
            draft.current_step = current_step
        # two saves inside the same clock tick must not move lastUpdated backwards
        draft.last_updated = max(now, draft.last_updated) if draft.last_updated else now
        for column, value in self.family.draft_columns(user, form_data).items():
            setattr(draft, column, value)

    def upsert(self, db: Session, user: User, form_data: dict, current_step: Optional[str] = None):
        draft = self._latest(db, user.id)
        if draft is not None:
            self._apply(draft, user, form_data, current_step)
            db.flush()
            return draft

        now = utcnow()
        draft = self.model(
            user_id=user.id,
            current_step=current_step or self.family.default_step,
            created_at=now,
            last_updated=now,
        )
        self._apply(draft, user, form_data, None)
        db.add(draft)
        try:
            db.flush()
        except IntegrityError:
            # a concurrent first save won the unique key; fall back to updating it
            db.rollback()
            logger.info("Draft insert raced for user_id=%s (%s); retrying as update", user.id, self.family.name)
            draft = self._latest(db, user.id)
            if draft is None:
                raise
            self._apply(draft, user, form_data, current_step)
            db.flush()
        return draft

    def delete_all(self, db: Session, user_id: int) -> int:
        result = db.execute(delete(self.model).where(self.model.user_id == user_id))
        return int(result.rowcount or 0)

    # ---- public operations

    def save(self, user: Optional[User], form_data: Any, current_step: Optional[str] = None) -> ActionResult:
        try:
            user = require_user(user)
            if not isinstance(form_data, dict):
                raise ValidationFailed({"formData": ["Form data must be an object"]})
            self._check_step(current_step)
            try:
                with self.database.session() as db:
                    draft = self.upsert(db, user, form_data, current_step)
                    doc = draft_document(draft)
            except SQLAlchemyError as exc:
                logger.exception("Saving %s draft failed for user_id=%s", self.family.name, user.id)
                raise PersistenceFailure() from exc
        except RMSError as exc:
            return ActionResult.failed(exc)
        return ActionResult.ok(message="Draft saved successfully", draft=doc, id=doc["id"])

    def load(self, user: Optional[User]) -> ActionResult:
        try:
            user = require_user(user)
            try:
                with self.database.session() as db:
                    draft = self._latest(db, user.id)
                    doc = draft_document(draft) if draft is not None else None
            except SQLAlchemyError as exc:
                logger.exception("Loading %s draft failed for user_id=%s", self.family.name, user.id)
                raise PersistenceFailure() from exc
        except RMSError as exc:
            return ActionResult.failed(exc)

        if doc is None:
            return ActionResult(success=False, message="No draft found")
        return ActionResult.ok(draft=doc)

    def discard(self, user: Optional[User]) -> ActionResult:
        try:
            user = require_user(user)
            try:
                with self.database.session() as db:
                    deleted = self.delete_all(db, user.id)
            except SQLAlchemyError as exc:
                logger.exception("Deleting %s drafts failed for user_id=%s", self.family.name, user.id)
                raise PersistenceFailure() from exc
        except RMSError as exc:
            return ActionResult.failed(exc)

        logger.info("Deleted %s %s draft(s) for user_id=%s", deleted, self.family.name, user.id)
        return ActionResult.ok(message="Draft deleted successfully", data={"deleted": deleted})
