# Import all models so SQLAlchemy metadata is fully populated on startup.
from rms.db.models.user import User
from rms.db.models.survey import Survey
from rms.db.models.survey_draft import SurveyDraft
from rms.db.models.partner_mapping import PartnerMapping, PartnerMappingDraft
from rms.db.models.resource import Resource


__all__ = [
    "User",
    "Survey",
    "SurveyDraft",
    "PartnerMapping",
    "PartnerMappingDraft",
    "Resource",
]
