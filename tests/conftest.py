"""
Shared fixtures for the RMS test suite.

Every test gets its own SQLite file under tmp_path and an in-process stats
cache, so nothing here needs MySQL or Redis. Settings are read from the
environment at import time, which is why the variables are set before any
rms module is imported.
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///./rms-import.db"
# Nothing listens on port 1; the module-level app falls back to the memory cache.
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ.setdefault("SECRET_KEY", "test-secret")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from rms.core.cache import MemoryBackend, StatsCache
from rms.core.security import hash_password
from rms.db.models.survey import Survey
from rms.db.models.user import Role, User
from rms.db.session import Database
from rms.main import create_app
from rms.utils.jsondoc import dumps

PASSWORD = "Secret123"

# bcrypt is deliberately slow; hash once for the whole run
_PASSWORD_HASH = hash_password(PASSWORD)


# ── Payload builders ──────────────────────────────────────────────────────────

def survey_payload(organisation_name="Acme Health", region="Ashanti", sector="Health", ncds=("Diabetes",)):
    return {
        "organisationInfo": {
            "organisationName": organisation_name,
            "region": region,
            "sector": sector,
            "hqPhoneNumber": "+233 30 000 0000",
            "email": "info@acme.example",
        },
        "projectInfo": {
            "totalProjects": 1,
            "projectName": "Community screening",
            "startDate": "2024-01-01",
            "projectGoal": "Earlier diagnosis",
            "regions": [region],
            "targetedNCDs": list(ncds),
            "fundingSource": "Local NGO",
        },
        "projectActivities": {"districts": ["Kumasi"]},
        "risks": "Staff turnover",
    }


def partner_mapping_entry(**overrides):
    entry = {
        "year": 2024,
        "workNature": "PROJECT",
        "organization": "Acme Health",
        "projectName": "Breast cancer awareness",
        "projectRegion": "ASHANTI",
        "district": "Kumasi Metro",
        "disease": "BREAST CANCER",
        "partner": "Ghana Health Service",
        "role": "Screening outreach",
    }
    entry.update(overrides)
    return entry


# ── Store fixtures ────────────────────────────────────────────────────────────

@pytest.fixture()
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'rms.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture()
def cache():
    return StatsCache(MemoryBackend(), ttl_seconds=300)


def make_user(database, email, role=Role.USER, **fields):
    fields.setdefault("first_name", "Kofi")
    fields.setdefault("last_name", "Boateng")
    fields.setdefault("first_login", False)
    with database.session() as db:
        u = User(email=email, password_hash=_PASSWORD_HASH, role=role, is_active=True, **fields)
        db.add(u)
        db.flush()
    return u


@pytest.fixture()
def respondent(database):
    return make_user(database, "kofi@example.org", region="Ashanti", organisation="Acme Health")


@pytest.fixture()
def admin(database):
    return make_user(database, "admin@example.org", role=Role.ADMIN, first_name="Ama", last_name="Mensah")


def insert_survey(database, user, region="Ashanti", sector="Health", organisation_name="Acme Health",
                  submitted_at=None, project_info=None, project_activities=None):
    with database.session() as db:
        s = Survey(
            user_id=user.id,
            user_email=user.email,
            created_by_name=user.full_name,
            status="submitted",
            organisation_name=organisation_name,
            region=region,
            sector=sector,
            project_name="Community screening",
            organisation_info_json=dumps({"organisationName": organisation_name, "region": region}),
            project_info_json=dumps(project_info or {}),
            project_activities_json=dumps(project_activities or {}),
            submission_date=submitted_at or datetime(2024, 3, 15, 10, 0),
            last_updated=submitted_at or datetime(2024, 3, 15, 10, 0),
        )
        db.add(s)
        db.flush()
    return s


# ── HTTP fixtures ─────────────────────────────────────────────────────────────

@pytest.fixture()
def app(database, cache, tmp_path):
    return create_app(database=database, cache=cache, upload_dir=str(tmp_path / "uploads"))


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def login(app):
    """Return a factory producing a TestClient already signed in as `email`."""

    def _login(email, password=PASSWORD):
        c = TestClient(app)
        resp = c.post("/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return c

    return _login


@pytest.fixture()
def user_client(login, respondent):
    return login(respondent.email)


@pytest.fixture()
def admin_client(login, admin):
    return login(admin.email)
