from __future__ import annotations

from typing import Annotated, Optional

from pydantic import AfterValidator

from rms.schemas.common import CamelModel, fail, max_length, min_items, one_of, required

WORK_NATURE_OPTIONS = ("PROJECT", "PROGRAM", "INITIATIVE", "RESEARCH", "OTHER")

DISEASE_OPTIONS = (
    "MENTAL HEALTH CONDITIONS",
    "HYPERTENSION CVD AND STROKE",
    "CERVICAL CANCER",
    "ALL NCDS - NOT DISEASE SPECIFIC",
    "CHILDHOOD CANCERS",
    "BREAST CANCER",
    "HYPERTENSION",
    "DIABETES MELLITUS",
    "SICKLE CELL DISEASE",
    "MENTAL HEALTH CONDITIONS OTHER NCDS NOT LISTED ABOVE (PLEASE SPECIFY)",
    "HYPERTENSION DIABETES MELLITUS",
    "HYPERTENSION DIABETES MELLITUS BREAST CANCER CERVICAL CANCER",
)

# Partner mapping uses the upper-case region spelling of the source spreadsheets.
PARTNER_REGION_OPTIONS = (
    "GREATER ACCRA",
    "ASHANTI",
    "NORTHERN",
    "UPPER WEST",
    "UPPER EAST",
    "BONO",
    "BONO EAST",
    "CENTRAL",
    "EASTERN",
    "VOLTA",
    "OTI",
    "WESTERN",
    "WESTERN NORTH",
    "AHAFO",
    "SAVANNAH",
    "NORTH EAST",
)

MIN_YEAR = 2020
MAX_YEAR = 2030

PARTNER_MAPPING_STEP = "partner-mapping"


def _year_in_range(v):
    if v is None:
        fail("Year is required")
    if v < MIN_YEAR or v > MAX_YEAR:
        fail(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
    return v


class PartnerMappingEntry(CamelModel):
    year: Annotated[Optional[int], AfterValidator(_year_in_range)] = None
    work_nature: Annotated[str, one_of(WORK_NATURE_OPTIONS, "Select the nature of work")] = ""
    organization: Annotated[
        str,
        required("Organization is required"),
        max_length(255, "Organization must be 255 characters or less"),
    ] = ""
    project_name: Annotated[
        str,
        required("Project name is required"),
        max_length(500, "Project name must be 500 characters or less"),
    ] = ""
    project_region: Annotated[str, one_of(PARTNER_REGION_OPTIONS, "Select a project region")] = ""
    district: Optional[str] = None
    disease: Annotated[str, one_of(DISEASE_OPTIONS, "Select a disease")] = ""
    partner: Annotated[
        str,
        required("Partner is required"),
        max_length(255, "Partner must be 255 characters or less"),
    ] = ""
    role: Annotated[
        str,
        required("Role is required"),
        max_length(500, "Role must be 500 characters or less"),
    ] = ""


class PartnerMappingPayload(CamelModel):
    partner_mappings: Annotated[
        list[PartnerMappingEntry],
        min_items(1, "At least one partner mapping is required"),
    ] = []
