from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from rms.core.cache import CacheTag
from rms.db.models.partner_mapping import PartnerMapping, PartnerMappingDraft
from rms.db.models.survey import Survey
from rms.db.models.survey_draft import SurveyDraft
from rms.db.models.user import User
from rms.schemas.partner_mapping import PARTNER_MAPPING_STEP, PartnerMappingPayload
from rms.schemas.survey import FORM_STEPS, SurveyPayload, calculate_progress
from rms.utils.dates import to_iso, utcnow
from rms.utils.jsondoc import dumps, loads


@dataclass(frozen=True)
class FormFamily:
    """Everything the draft and submission workflow needs to know about one kind of form."""

    name: str
    payload_schema: type
    draft_model: type
    record_model: type
    default_step: str
    tags: tuple[CacheTag, ...]
    build_record: Callable[[User, Any], Any]
    record_document: Callable[[Any], dict]
    draft_columns: Callable[[User, dict], dict] = field(default=lambda user, form_data: {})
    steps: tuple[str, ...] = ()


def draft_document(draft) -> dict:
    doc = {
        "id": str(draft.id),
        "userId": str(draft.user_id),
        "formData": loads(draft.form_data_json),
        "currentStep": draft.current_step,
        "createdAt": to_iso(draft.created_at),
        "lastUpdated": to_iso(draft.last_updated),
    }
    if hasattr(draft, "progress"):
        doc["progress"] = draft.progress
        doc["status"] = draft.status
    return doc


# ---- surveys


def _survey_record(user: User, payload: SurveyPayload) -> Survey:
    org = payload.organisation_info
    project = payload.project_info
    now = utcnow()
    return Survey(
        user_id=user.id,
        user_email=user.email,
        created_by_name=user.full_name,
        status="submitted",
        version="1.0",
        organisation_name=(org.organisation_name or "").strip(),
        region=(org.region or "").strip(),
        sector=(org.sector or "").strip(),
        project_name=(project.project_name or "").strip(),
        organisation_info_json=dumps(org.to_document()),
        project_info_json=dumps(project.to_document()),
        project_activities_json=dumps(
            payload.project_activities.to_document() if payload.project_activities is not None else {}
        ),
        extra_json=dumps(payload.extra_document()),
        submission_date=now,
        last_updated=now,
    )


def survey_document(s: Survey) -> dict:
    doc = {
        "id": str(s.id),
        "userId": str(s.user_id),
        "userEmail": s.user_email,
        "createdBy": s.created_by_name,
        "status": s.status,
        "version": s.version,
        "organisationInfo": loads(s.organisation_info_json),
        "projectInfo": loads(s.project_info_json),
        "projectActivities": loads(s.project_activities_json),
    }
    for key, value in loads(s.extra_json).items():
        doc.setdefault(key, value)
    doc["submissionDate"] = to_iso(s.submission_date)
    doc["lastUpdated"] = to_iso(s.last_updated)
    return doc


def _survey_draft_columns(user: User, form_data: dict) -> dict:
    return {
        "user_email": user.email,
        "progress": calculate_progress(form_data),
        "status": "draft",
    }


SURVEYS = FormFamily(
    name="survey",
    payload_schema=SurveyPayload,
    draft_model=SurveyDraft,
    record_model=Survey,
    default_step=FORM_STEPS[0],
    tags=(CacheTag.SURVEYS,),
    build_record=_survey_record,
    record_document=survey_document,
    draft_columns=_survey_draft_columns,
    steps=FORM_STEPS,
)


# ---- partner mappings


def _partner_mapping_record(user: User, payload: PartnerMappingPayload) -> PartnerMapping:
    now = utcnow()
    doc = payload.to_document()
    return PartnerMapping(
        user_id=user.id,
        created_by_name=user.full_name,
        status="submitted",
        data_json=dumps(doc),
        entry_count=len(payload.partner_mappings),
        created_at=now,
        updated_at=now,
    )


def partner_mapping_document(pm: PartnerMapping) -> dict:
    data = loads(pm.data_json)
    return {
        "id": str(pm.id),
        "userId": str(pm.user_id),
        "createdBy": pm.created_by_name,
        "status": pm.status,
        "partnerMappings": data.get("partnerMappings") or [],
        "entryCount": pm.entry_count,
        "createdAt": to_iso(pm.created_at),
        "updatedAt": to_iso(pm.updated_at),
    }


PARTNER_MAPPINGS = FormFamily(
    name="partner_mapping",
    payload_schema=PartnerMappingPayload,
    draft_model=PartnerMappingDraft,
    record_model=PartnerMapping,
    default_step=PARTNER_MAPPING_STEP,
    tags=(CacheTag.PARTNER_MAPPINGS,),
    build_record=_partner_mapping_record,
    record_document=partner_mapping_document,
    steps=(PARTNER_MAPPING_STEP,),
)

FAMILIES = {f.name: f for f in (SURVEYS, PARTNER_MAPPINGS)}

