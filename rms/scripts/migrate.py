from __future__ import annotations

import logging
import os
import subprocess
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from rms.core.config import settings
from rms.core.security import hash_password
from rms.db.models.user import Role, User
from rms.db.session import Database

logger = logging.getLogger("rms.migrate")


def wait_for_db(database: Database, timeout_s: int = 60) -> None:
    """Wait until the database is accepting connections."""
    start = time.time()
    delay = 1.0

    while True:
        try:
            with database.engine.begin() as conn:
                conn.execute(text("SELECT 1"))
            return
        except OperationalError:
            if time.time() - start > timeout_s:
                raise
            logger.info("Database not ready, retrying in %.1fs", delay)
            time.sleep(delay)
            delay = min(delay * 1.5, 5.0)


def run(cmd: list[str]) -> int:
    p = subprocess.run(cmd, check=False)
    return p.returncode


def ensure_admin(database: Database) -> bool:
    """Create the default admin once. Returns True when a user was created."""
    with database.session() as db:
        email = settings.DEFAULT_ADMIN_EMAIL.strip().lower()
        if db.query(User).filter(User.email == email).first():
            return False
        first, _, last = settings.DEFAULT_ADMIN_NAME.partition(" ")
        db.add(
            User(
                email=email,
                password_hash=hash_password(settings.DEFAULT_ADMIN_PASSWORD),
                first_name=first,
                last_name=last,
                role=Role.ADMIN,
                is_active=True,
                first_login=False,
            )
        )
    return True


def main() -> int:
    logging.basicConfig(level=logging.INFO)
    database = Database.from_settings()

    # Wait for DB readiness (important in docker-compose)
    wait_for_db(database, timeout_s=int(os.getenv("DB_WAIT_TIMEOUT", "90")))

    rc = run(["alembic", "upgrade", "head"])
    if rc != 0:
        # fail fast so the schema doesn't drift from alembic_version
        return rc

    if settings.AUTO_CREATE_ADMIN and ensure_admin(database):
        logger.info("Created default admin %s", settings.DEFAULT_ADMIN_EMAIL)

    if settings.AUTO_SEED_SAMPLE:
        from rms.scripts.seed_sample import seed_sample

        with database.session() as db:
            seed_sample(db)

    database.dispose()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
