from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from rms.core.config import settings
from rms.core.security import hash_password
from rms.db.models.partner_mapping import PartnerMapping
from rms.db.models.survey import Survey
from rms.db.models.user import Role, User
from rms.schemas.common import parse
from rms.utils.families import PARTNER_MAPPINGS, SURVEYS

logger = logging.getLogger("rms.seed")

SAMPLE_ORGS = [
    ("Acme Health", "Ashanti", "Local NGO", ["Diabetes", "Cardiovascular Disease"]),
    ("Northern Care Trust", "Northern", "International NGO", ["Mental Health"]),
    ("Volta Wellness", "Volta", "Private Sector", ["Cancer", "Diabetes"]),
    ("Coastal Clinics", "Central", "Ghana Government", ["Sickle Cell Disease"]),
]


def _get_or_create_user(db: Session, email: str, first: str, last: str, region: str, organisation: str) -> User:
    u = db.query(User).filter(User.email == email).first()
    if not u:
        u = User(
            email=email,
            password_hash=hash_password(settings.DEFAULT_USER_PASSWORD),
            first_name=first,
            last_name=last,
            role=Role.USER,
            region=region,
            organisation=organisation,
        )
        db.add(u)
        db.flush()  # populate u.id
    return u


def _survey_payload(name: str, region: str, sector: str, ncds: list[str]) -> dict:
    slug = name.lower().replace(" ", "")
    return {
        "organisationInfo": {
            "organisationName": name,
            "region": region,
            "sector": sector,
            "hqPhoneNumber": "+233 20 000 0000",
            "email": f"info@{slug}.org",
        },
        "projectInfo": {
            "totalProjects": 1,
            "projectName": f"{name} community screening",
            "startDate": "2024-01-15",
            "projectGoal": "Early detection of NCDs at community level",
            "regions": [region],
            "targetedNCDs": ncds,
            "fundingSource": sector,
        },
        "projectActivities": {
            "districts": ["Municipal"],
            "continuumOfCare": ["Prevention"],
            "ncdActivities": {ncd: {"activity": "Screening"} for ncd in ncds},
        },
    }


def seed_sample(db: Session) -> None:
    """Idempotent sample dataset: one respondent, survey and partner mapping per sample organisation."""
    created = 0
    for name, region, sector, ncds in SAMPLE_ORGS:
        slug = name.lower().replace(" ", "")
        user = _get_or_create_user(db, f"contact@{slug}.org", name.split()[0], "Contact", region, name)

        if not db.query(Survey).filter(Survey.user_id == user.id).first():
            payload = parse(SURVEYS.payload_schema, _survey_payload(name, region, sector, ncds))
            db.add(SURVEYS.build_record(user, payload))
            created += 1

        if not db.query(PartnerMapping).filter(PartnerMapping.user_id == user.id).first():
            payload = parse(
                PARTNER_MAPPINGS.payload_schema,
                {
                    "partnerMappings": [
                        {
                            "year": 2024,
                            "workNature": "PROJECT",
                            "organization": name,
                            "projectName": f"{name} community screening",
                            "projectRegion": region.upper(),
                            "disease": "HYPERTENSION",
                            "partner": "Ghana Health Service",
                            "role": "Implementing partner",
                        }
                    ]
                },
            )
            db.add(PARTNER_MAPPINGS.build_record(user, payload))
    db.flush()
    logger.info("Sample data seeded (%s new surveys)", created)
