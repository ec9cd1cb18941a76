"""
Will Domain Models

Enums, section payload schemas and the progress rules of the interview.

The interview is split into a fixed set of section groups. A section
write replaces the fields that group owns, adds the group to the set of
completed sections and recomputes the derived progress fields. Nothing
in this module touches storage; the repository applies ``apply_section``
inside its compare-and-swap loop.
"""

import copy
import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from willcraft.domain.time import utc_now
from willcraft.infrastructure.exceptions import ValidationError


class WillStatus(str, Enum):
    """Will lifecycle status. Transitions only move forward."""
    DRAFT = "draft"
    COMPLETED = "completed"
    EXECUTED = "executed"


WILL_STATUS_ORDER = {
    WillStatus.DRAFT: 0,
    WillStatus.COMPLETED: 1,
    WillStatus.EXECUTED: 2,
}


class SectionKey(str, Enum):
    """Top-level interview section groups."""
    PERSONAL_INFO = "personal-info"
    FAMILY = "family"
    ASSETS = "assets"
    DISTRIBUTION = "distribution"
    EXECUTORS = "executors"
    REVIEW = "review"


TOTAL_SECTION_GROUPS = len(SectionKey)

# Section group -> underlying section fields it owns.
# personal-info stores the whole payload as the testator record.
SECTION_FIELDS: Dict[SectionKey, tuple] = {
    SectionKey.PERSONAL_INFO: ("testator",),
    SectionKey.FAMILY: ("spouse", "children", "pets"),
    SectionKey.ASSETS: ("realProperty", "personalProperty"),
    SectionKey.DISTRIBUTION: ("residualEstate", "specificGifts"),
    SectionKey.EXECUTORS: ("executors", "guardians", "digitalExecutors"),
    SectionKey.REVIEW: ("arrangements",),
}

LIST_SECTION_FIELDS = (
    "children",
    "executors",
    "guardians",
    "realProperty",
    "personalProperty",
    "specificGifts",
    "pets",
    "arrangements",
    "digitalExecutors",
)
OBJECT_SECTION_FIELDS = ("testator", "spouse", "residualEstate")

US_JURISDICTIONS = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
    "DC",
})


# =============================================================================
# Section Payload Schemas
# =============================================================================

class _Payload(BaseModel):
    """Base for interview payloads; unknown keys are preserved."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Address(_Payload):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipCode: Optional[str] = None
    country: str = "United States"


class PersonInfo(_Payload):
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    dateOfBirth: Optional[str] = None
    address: Optional[Address] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    relationship: Optional[str] = None


class Person(PersonInfo):
    id: str = Field(..., min_length=1)
    isPrimary: bool = False
    isAlternate: bool = False


class Child(PersonInfo):
    id: str = Field(..., min_length=1)
    isMinor: bool
    guardianId: Optional[str] = None


class Beneficiary(_Payload):
    personId: str = Field(..., min_length=1)
    percentage: float = Field(..., ge=0, le=100)


class PropertyAddress(_Payload):
    street: str
    city: str
    state: str
    zipCode: str
    country: str = "United States"


class RealProperty(_Payload):
    id: str = Field(..., min_length=1)
    type: Literal["house", "condo", "townhouse", "apartment", "land", "commercial", "vacation", "other"]
    description: str = Field(..., min_length=1)
    address: PropertyAddress
    estimatedValue: Optional[float] = None
    beneficiaries: List[Beneficiary] = Field(default_factory=list)


class PersonalAsset(_Payload):
    id: str = Field(..., min_length=1)
    type: Literal[
        "bank_account", "investment", "retirement", "vehicle", "jewelry",
        "art", "electronics", "furniture", "business", "other",
    ]
    description: str = Field(..., min_length=1)
    estimatedValue: Optional[float] = None
    beneficiaries: List[Beneficiary] = Field(default_factory=list)


class Gift(_Payload):
    id: str = Field(..., min_length=1)
    item: str = Field(..., min_length=1)
    beneficiary: str = Field(..., min_length=1)
    isMonetary: bool
    amount: Optional[float] = None


class ResidualEstate(_Payload):
    beneficiaries: List[Beneficiary] = Field(default_factory=list)
    contingentBeneficiaries: List[Beneficiary] = Field(default_factory=list)


class Pet(_Payload):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    caregiverId: str = Field(..., min_length=1)
    careInstructions: Optional[str] = None
    careFund: Optional[float] = None


class Arrangement(_Payload):
    id: str = Field(..., min_length=1)
    type: Literal["burial", "cremation", "donation"]
    instructions: str = Field(..., min_length=1)
    location: Optional[str] = None
    contactInfo: Optional[str] = None


class DigitalAccount(_Payload):
    id: str = Field(..., min_length=1)
    platform: str = Field(..., min_length=1)
    username: Optional[str] = None
    instructions: str = Field(..., min_length=1)


class DigitalExecutor(_Payload):
    id: str = Field(..., min_length=1)
    personId: str = Field(..., min_length=1)
    accounts: List[DigitalAccount] = Field(default_factory=list)


FIELD_SCHEMAS: Dict[str, TypeAdapter] = {
    "testator": TypeAdapter(PersonInfo),
    "spouse": TypeAdapter(PersonInfo),
    "children": TypeAdapter(List[Child]),
    "executors": TypeAdapter(List[Person]),
    "guardians": TypeAdapter(List[Person]),
    "realProperty": TypeAdapter(List[RealProperty]),
    "personalProperty": TypeAdapter(List[PersonalAsset]),
    "specificGifts": TypeAdapter(List[Gift]),
    "residualEstate": TypeAdapter(ResidualEstate),
    "pets": TypeAdapter(List[Pet]),
    "arrangements": TypeAdapter(List[Arrangement]),
    "digitalExecutors": TypeAdapter(List[DigitalExecutor]),
}


# =============================================================================
# Domain Entities
# =============================================================================

class Progress(BaseModel):
    """Derived interview progress. Never set directly by clients."""
    model_config = ConfigDict(populate_by_name=True)

    completed_sections: List[str] = Field(default_factory=list, alias="completedSections")
    current_section: str = Field(default=SectionKey.PERSONAL_INFO.value, alias="currentSection")
    percent_complete: int = Field(default=0, ge=0, le=100, alias="percentComplete")


class Will(BaseModel):
    """Core will domain entity."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    owner_id: str = Field(alias="ownerId")
    status: WillStatus = WillStatus.DRAFT
    state_compliance: str = Field(alias="stateCompliance")
    sections: Dict[str, Any] = Field(default_factory=lambda: empty_sections())
    progress: Progress = Field(default_factory=Progress)
    documents: Dict[str, Any] = Field(default_factory=dict)
    photos: List[Dict[str, Any]] = Field(default_factory=list)
    version: int = 1
    executed_at: Optional[datetime] = Field(default=None, alias="executedAt")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")


class WillSummary(BaseModel):
    """List entry for the dashboard."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    status: WillStatus
    state_compliance: str = Field(alias="stateCompliance")
    progress: Progress = Field(default_factory=Progress)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")


# =============================================================================
# Progress Rules (Business Logic)
# =============================================================================

def empty_sections() -> Dict[str, Any]:
    """Sections of a freshly created will."""
    sections: Dict[str, Any] = {name: None for name in OBJECT_SECTION_FIELDS}
    sections.update({name: [] for name in LIST_SECTION_FIELDS})
    return sections


def percent_for(completed_count: int) -> int:
    """Round half up, clamped to 0..100."""
    if completed_count <= 0:
        return 0
    percent = math.floor(100 * completed_count / TOTAL_SECTION_GROUPS + 0.5)
    return max(0, min(100, percent))


def normalize_jurisdiction(value: Optional[str]) -> str:
    """Validate and upper-case a state compliance code."""
    if value is None or not str(value).strip():
        raise ValidationError(
            "State compliance is required",
            fields={"stateCompliance": ["This field is required"]},
        )
    code = str(value).strip().upper()
    if code not in US_JURISDICTIONS:
        raise ValidationError(
            f"Unsupported state compliance code: {value}",
            fields={"stateCompliance": ["Must be a US state or DC code"]},
        )
    return code


def parse_section_key(value: Any) -> SectionKey:
    """Resolve a client supplied section name against the closed enum."""
    try:
        return SectionKey(value)
    except ValueError:
        allowed = ", ".join(key.value for key in SectionKey)
        raise ValidationError(
            "Invalid section",
            fields={"section": [f"Must be one of: {allowed}"]},
        )


def _error_messages(error: PydanticValidationError, prefix: str) -> Dict[str, List[str]]:
    fields: Dict[str, List[str]] = {}
    for item in error.errors():
        location = ".".join(str(part) for part in (prefix, *item["loc"]))
        fields.setdefault(location, []).append(item["msg"])
    return fields


def validate_section_fields(updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate section field payloads and return their JSON-ready form.

    Raises:
        ValidationError: enumerating every failing field path
    """
    cleaned: Dict[str, Any] = {}
    failures: Dict[str, List[str]] = {}

    for name, value in updates.items():
        adapter = FIELD_SCHEMAS[name]
        try:
            parsed = adapter.validate_python(value)
        except PydanticValidationError as e:
            failures.update(_error_messages(e, name))
            continue
        cleaned[name] = adapter.dump_python(parsed, mode="json", exclude_none=True)

    if failures:
        raise ValidationError("Section data failed validation", fields=failures)

    return cleaned


def section_updates(section: SectionKey, data: Any) -> Dict[str, Any]:
    """
    Map a section group payload to the section fields it writes.

    Sub-fields absent from ``data`` are left untouched so multi-field
    groups can be saved partially.
    """
    if not data or not isinstance(data, dict):
        raise ValidationError(
            "Section and data are required",
            fields={"data": ["Must be a non-empty object"]},
        )

    if section == SectionKey.PERSONAL_INFO:
        raw = {"testator": data}
    else:
        raw = {
            name: data[name]
            for name in SECTION_FIELDS[section]
            if data.get(name) is not None
        }

    return validate_section_fields(raw)


def recompute_progress(progress: Progress, touched: Optional[SectionKey] = None) -> Progress:
    """
    Return progress with ``touched`` merged into the completed set.

    The completed set keeps first-seen order and never holds duplicates;
    the current section is always the last one touched.
    """
    completed: List[str] = []
    for key in progress.completed_sections:
        if key not in completed:
            completed.append(key)

    current = progress.current_section
    if touched is not None:
        if touched.value not in completed:
            completed.append(touched.value)
        current = touched.value

    return Progress(
        completed_sections=completed,
        current_section=current,
        percent_complete=percent_for(len(completed)),
    )


def advance_status(status: WillStatus, progress: Progress) -> WillStatus:
    """A draft whose interview is complete becomes completed."""
    if status == WillStatus.DRAFT and progress.percent_complete >= 100:
        return WillStatus.COMPLETED
    return status


def check_status_transition(current: WillStatus, requested: WillStatus) -> WillStatus:
    """Allow only forward (or same) status transitions."""
    if WILL_STATUS_ORDER[requested] < WILL_STATUS_ORDER[current]:
        raise ValidationError(
            f"Cannot move a {current.value} will back to {requested.value}",
            fields={"status": ["Status transitions are forward only"]},
        )
    return requested


def apply_section(will: Will, section: SectionKey, updates: Dict[str, Any]) -> Will:
    """
    Apply validated section field updates to a will.

    Returns a new Will; the input is not modified.
    """
    sections = copy.deepcopy(will.sections)
    sections.update(updates)
    progress = recompute_progress(will.progress, section)

    return will.model_copy(update={
        "sections": sections,
        "progress": progress,
        "status": advance_status(will.status, progress),
    })


class WillPatch(BaseModel):
    """Whole-record update. Identity, jurisdiction and progress are not accepted."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    sections: Optional[Dict[str, Any]] = None
    documents: Optional[Dict[str, Any]] = None
    photos: Optional[List[Dict[str, Any]]] = None
    status: Optional[WillStatus] = None


def apply_patch(will: Will, patch: WillPatch, now: Optional[datetime] = None) -> Will:
    """
    Apply a whole-record update to a will.

    Section fields are replaced one by one; progress is recomputed from
    the existing completed set and never taken from the request.
    """
    sections = copy.deepcopy(will.sections)
    if patch.sections:
        unknown = sorted(set(patch.sections) - set(FIELD_SCHEMAS))
        if unknown:
            raise ValidationError(
                "Unknown section fields",
                fields={name: ["Unknown section field"] for name in unknown},
            )
        present = {k: v for k, v in patch.sections.items() if v is not None}
        sections.update(validate_section_fields(present))

        # explicit null clears a field back to its empty value
        for name, value in patch.sections.items():
            if value is None:
                sections[name] = None if name in OBJECT_SECTION_FIELDS else []

    progress = recompute_progress(will.progress)
    status = advance_status(will.status, progress)
    executed_at = will.executed_at

    if patch.status is not None:
        status = check_status_transition(status, patch.status)
        if status == WillStatus.EXECUTED and executed_at is None:
            executed_at = now or utc_now()

    return will.model_copy(update={
        "sections": sections,
        "documents": patch.documents if patch.documents is not None else will.documents,
        "photos": patch.photos if patch.photos is not None else will.photos,
        "progress": progress,
        "status": status,
        "executed_at": executed_at,
    })
