from __future__ import annotations

from typing import Annotated, Any, Literal, Optional

from pydantic import AfterValidator, Field, field_validator

from rms.core.errors import ValidationFailed
from rms.schemas.common import (
    CamelModel,
    FUNDING_SOURCES,
    NCD_TYPES,
    each_one_of,
    fail,
    min_items,
    min_length,
    one_of,
    optional_url,
    parse,
    present,
    required,
    valid_email,
)

# Wizard steps, in order
FORM_STEPS = ("organisation", "project", "activities", "partners", "additional", "final")
STEP_LABELS = {
    "organisation": "Organisation Info",
    "project": "Project Info",
    "activities": "Project Activities",
    "partners": "Partners Info",
    "additional": "Additional Info",
    "final": "Final Submission",
}


class GpsCoordinates(CamelModel):
    latitude: str = ""
    longitude: str = ""


class OrganisationInfo(CamelModel):
    organisation_name: Annotated[str, required("Organisation name is required")] = ""
    region: Annotated[str, required("Region is required")] = ""
    has_regional_office: bool = False
    regional_office_location: Optional[str] = None
    gps_coordinates: GpsCoordinates = Field(default_factory=GpsCoordinates)
    ghana_post_gps: str = Field("", alias="ghanaPostGPS")
    sector: Annotated[str, required("Sector is required")] = ""
    hq_phone_number: Annotated[str, required("Headquarters phone number is required")] = ""
    regional_phone_number: Optional[str] = None
    email: Annotated[str, valid_email("Valid email is required")] = ""
    website: Annotated[Optional[str], optional_url("Invalid URL format")] = None
    registration_number: Optional[str] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("regional_office_location")
    @classmethod
    def _regional_office_when_flagged(cls, v, info):
        # has_regional_office is declared first, so it is already in info.data
        if info.data.get("has_regional_office") and not (v or "").strip():
            fail("Regional office location is required")
        return v


class ProjectInfo(CamelModel):
    total_projects: Annotated[Optional[int], present("Total projects is required")] = None
    project_name: Annotated[str, required("Project name is required")] = ""
    project_description: Optional[str] = None
    start_date: Annotated[str, required("Start date is required")] = ""
    end_date: Optional[str] = None
    project_goal: Annotated[str, required("Project goal is required")] = ""
    project_objectives: Optional[str] = None
    target_beneficiaries: Optional[str] = None
    project_location: Optional[str] = None
    estimated_budget: Optional[str] = None
    regions: Annotated[list[str], min_items(1, "At least one region is required")] = []
    targeted_ncds: Annotated[list[str], min_items(1, "At least one NCD must be selected")] = Field(
        default_factory=list, alias="targetedNCDs"
    )
    funding_source: Annotated[str, required("Funding source is required")] = ""
    ncd_specific_info: dict[str, Any] = Field(default_factory=dict)


def _at_least_one_project(v):
    if v is not None and v < 1:
        fail("Total projects must be at least 1")
    return v


def _not_negative(v):
    if v is not None and v < 0:
        fail("Number must be 0 or greater")
    return v


class ProjectActivities(CamelModel):
    districts: list[str] = []
    continuum_of_care: list[str] = []
    activity_description: Optional[str] = None
    primary_target_population: Optional[str] = None
    secondary_target_population: Optional[str] = None
    age_ranges: list[str] = []
    gender: Optional[Literal["male", "female", "both"]] = None
    implementation_level: list[str] = []
    implementation_area: Optional[Literal["urban", "rural", "both"]] = None
    who_gap_targets: list[str] = []
    ncd_strategy_domain: Optional[str] = None
    prevention_focus: Optional[str] = None
    ncd_activities: dict[str, Any] = Field(default_factory=dict)


class Activity(CamelModel):
    name: str = ""
    description: str = ""
    timeline: str = ""
    budget: float = 0


class PartnerContact(CamelModel):
    organisation_name: str = ""
    role: str = ""
    contribution: str = ""
    contact_person: str = ""
    email: Annotated[str, valid_email("Valid email is required")] = ""


class SubmittedProjectInfo(ProjectInfo):
    total_projects: Annotated[
        Optional[int],
        present("Total projects is required"),
        AfterValidator(_at_least_one_project),
    ] = None


class SurveyPayload(CamelModel):
    """A complete survey as assembled by the wizard."""

    organisation_info: Annotated[Optional[OrganisationInfo], present("Organisation information is required")] = None
    project_info: Annotated[Optional[SubmittedProjectInfo], present("Project information is required")] = None
    project_activities: Optional[ProjectActivities] = None
    activities: list[Activity] = []
    partners: list[PartnerContact] = []
    risks: Optional[str] = None
    sustainability: Optional[str] = None
    monitoring_plan: Optional[str] = None
    evaluation: Optional[str] = None
    notes: Optional[str] = None

    def extra_document(self) -> dict[str, Any]:
        doc = self.to_document()
        for key in ("organisationInfo", "projectInfo", "projectActivities"):
            doc.pop(key, None)
        return doc


# ---- stricter per-step schemas used while the wizard is being filled in


class ProjectStep(ProjectInfo):
    total_projects: Annotated[
        Optional[int],
        present("Total projects is required"),
        AfterValidator(_not_negative),
    ] = None
    targeted_ncds: Annotated[
        list[str],
        min_items(1, "At least one NCD must be selected"),
        each_one_of(NCD_TYPES, "Unknown NCD type"),
    ] = Field(default_factory=list, alias="targetedNCDs")
    funding_source: Annotated[str, one_of(FUNDING_SOURCES, "Select a valid funding source")] = ""


class ActivitiesStep(CamelModel):
    districts: Annotated[list[str], min_items(1, "Select at least one district")] = []
    continuum_of_care: Annotated[list[str], min_items(1, "Select at least one continuum of care")] = []
    activity_description: Annotated[str, min_length(10, "Please provide a detailed description")] = ""
    primary_target_population: Annotated[str, min_length(5, "Please describe the primary target population")] = ""
    secondary_target_population: Optional[str] = None
    age_ranges: Annotated[list[str], min_items(1, "Select at least one age range")] = []
    gender: Optional[Literal["male", "female", "both"]] = None
    implementation_level: Annotated[list[str], min_items(1, "Select at least one implementation level")] = []
    implementation_area: Optional[Literal["urban", "rural", "both"]] = None
    who_gap_targets: Annotated[list[str], min_items(1, "Select at least one WHO GAP target")] = []
    ncd_strategy_domain: Annotated[str, required("Select a strategy domain")] = ""
    prevention_focus: Optional[str] = None
    ncd_activities: dict[str, Any] = Field(default_factory=dict)


STEP_SCHEMAS = {
    "organisation": OrganisationInfo,
    "project": ProjectStep,
    "activities": ActivitiesStep,
}

STEP_SECTIONS = {
    "organisation": "organisationInfo",
    "project": "projectInfo",
    "activities": "projectActivities",
}


def form_section(form_data: Any, key: str) -> dict:
    """One section of a partially filled form; anything but an object reads as empty."""
    section = form_data.get(key) if isinstance(form_data, dict) else None
    return section if isinstance(section, dict) else {}


def calculate_progress(form_data: dict) -> int:
    """Percentage of the six wizard sections considered complete."""
    form_data = form_data if isinstance(form_data, dict) else {}
    org = form_section(form_data, "organisationInfo")
    project = form_section(form_data, "projectInfo")

    completed = 0
    if org.get("organisationName") and org.get("region") and org.get("email"):
        completed += 1
    if project.get("projectName") and project.get("startDate") and project.get("projectGoal"):
        completed += 1
    if form_data.get("projectActivities"):
        completed += 1
    # partners are optional
    completed += 1
    if form_data.get("risks") and form_data.get("sustainability") and form_data.get("evaluation"):
        completed += 1
    # final review
    completed += 1
    return round(completed / len(FORM_STEPS) * 100)


def validate_step(step: str, form_data: Any) -> None:
    """Check one wizard step; errors are keyed by their path inside the whole form."""
    if step not in FORM_STEPS:
        raise ValidationFailed({"currentStep": [f"Unknown step '{step}'"]})
    schema = STEP_SCHEMAS.get(step)
    if schema is None:
        # partners / additional / final carry no required fields
        return
    section = STEP_SECTIONS[step]
    data = form_data if isinstance(form_data, dict) else {}
    try:
        parse(schema, data.get(section) or {})
    except ValidationFailed as exc:
        raise ValidationFailed({f"{section}.{path}": msgs for path, msgs in exc.errors.items()}) from None
