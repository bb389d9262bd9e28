from __future__ import annotations

import re
from typing import Any, Iterable, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from rms.core.errors import ValidationFailed

M = TypeVar("M", bound=BaseModel)

GHANA_REGIONS = (
    "Ahafo",
    "Ashanti",
    "Bono",
    "Bono East",
    "Central",
    "Eastern",
    "Greater Accra",
    "North East",
    "Northern",
    "Oti",
    "Savannah",
    "Upper East",
    "Upper West",
    "Volta",
    "Western",
    "Western North",
)

NCD_TYPES = (
    "Cancer",
    "Cardiovascular Disease",
    "Diabetes",
    "Chronic Respiratory Disease",
    "Mental Health",
    "Sickle Cell Disease",
)

FUNDING_SOURCES = (
    "Ghana Government",
    "Local NGO",
    "International NGO",
    "Individual Donors",
    "Foundation",
    "Others",
    "Private Sector",
    "Academic/Research Institution",
    "UN Agency",
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CamelModel(BaseModel):
    """Base for form schemas: camelCase on the wire, snake_case in Python.

    Defaults are validated so that a missing required field reports the same
    message as an empty one.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_default=True,
        extra="ignore",
    )

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def fail(message: str):
    raise PydanticCustomError("value_error", message)


def required(message: str) -> AfterValidator:
    def check(v):
        if v is None or (isinstance(v, str) and not v.strip()):
            fail(message)
        return v

    return AfterValidator(check)


def present(message: str) -> AfterValidator:
    def check(v):
        if v is None:
            fail(message)
        return v

    return AfterValidator(check)


def min_items(n: int, message: str) -> AfterValidator:
    def check(v):
        if len(v or []) < n:
            fail(message)
        return v

    return AfterValidator(check)


def max_length(n: int, message: str) -> AfterValidator:
    def check(v):
        if v is not None and len(v) > n:
            fail(message)
        return v

    return AfterValidator(check)


def min_length(n: int, message: str) -> AfterValidator:
    def check(v):
        if len((v or "").strip()) < n:
            fail(message)
        return v

    return AfterValidator(check)


def one_of(options: Iterable[str], message: str, optional: bool = False) -> AfterValidator:
    allowed = tuple(options)

    def check(v):
        if v is None and optional:
            return v
        if v not in allowed:
            fail(message)
        return v

    return AfterValidator(check)


def each_one_of(options: Iterable[str], message: str) -> AfterValidator:
    allowed = tuple(options)

    def check(v):
        if any(x not in allowed for x in v or []):
            fail(message)
        return v

    return AfterValidator(check)


def valid_email(message: str) -> AfterValidator:
    def check(v):
        if not isinstance(v, str) or not _EMAIL_RE.match(v.strip()):
            fail(message)
        return v.strip()

    return AfterValidator(check)


def optional_url(message: str) -> AfterValidator:
    def check(v):
        if v and not (v.startswith("http://") or v.startswith("https://")):
            fail(message)
        return v

    return AfterValidator(check)


def field_errors(exc: ValidationError) -> dict[str, list[str]]:
    """Flatten pydantic errors to {"dotted.camelPath": [messages]}."""
    out: dict[str, list[str]] = {}
    for err in exc.errors(include_url=False):
        loc = ".".join(str(p) for p in err.get("loc") or ()) or "form"
        out.setdefault(loc, []).append(str(err.get("msg") or "Invalid value"))
    return out


def parse(model: type[M], data: Any) -> M:
    """Validate `data` once at the boundary; raise ValidationFailed with field errors."""
    if not isinstance(data, dict):
        raise ValidationFailed({"form": ["Form data must be an object"]})
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ValidationFailed(field_errors(exc)) from None
