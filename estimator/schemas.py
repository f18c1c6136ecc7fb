"""Pydantic schemas.

Defines validation for incoming payloads and the typed shapes returned by the
API, including the tagged journal-entry union. JSON field names follow the
established wire format (`hoursPerResourceType`, `selected_factors`,
`manual_resources.manualHours`, ...).
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeFloat,
    BeforeValidator,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from estimator.models import JournalAction, ResourceCategory

logger = logging.getLogger(__name__)


def _strip_required(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


Stripped = Annotated[str, BeforeValidator(_strip_required)]
OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]
OptionalInt = Annotated[int | None, BeforeValidator(_blank_to_none)]
OptionalDate = Annotated[date | None, BeforeValidator(_blank_to_none)]
OptionalCost = Annotated[NonNegativeFloat | None, BeforeValidator(_blank_to_none)]


def _sparse(values: dict[str, float]) -> dict[str, float]:
    """Drop zero entries; absent and zero mean the same thing."""
    return {key: amount for key, amount in values.items() if amount}


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------


class CommentEntry(BaseModel):
    type: Literal["comment"] = "comment"
    timestamp: datetime
    text: str


class AuditEntry(BaseModel):
    type: Literal["audit"] = "audit"
    timestamp: datetime
    action: JournalAction
    old_data: dict[str, Any] = Field(default_factory=dict)
    new_data: dict[str, Any] = Field(default_factory=dict)
    original_name: str | None = None

    @field_validator("old_data", "new_data", mode="before")
    @classmethod
    def _decode_snapshot(cls, value: Any) -> Any:
        # Older rows stored snapshots as JSON text inside the journal array.
        if isinstance(value, str):
            try:
                value = json.loads(value or "{}")
            except ValueError:
                logger.warning("Discarding malformed audit snapshot in journal entry")
                return {}
        return value if isinstance(value, dict) else {}


JournalEntry = Annotated[Union[CommentEntry, AuditEntry], Field(discriminator="type")]
_journal_adapter: TypeAdapter[CommentEntry | AuditEntry] = TypeAdapter(JournalEntry)


def parse_journal(raw_entries: Any) -> list[CommentEntry | AuditEntry]:
    """Decode stored journal items, dropping the ones that cannot be read."""
    if not isinstance(raw_entries, list):
        return []
    entries: list[CommentEntry | AuditEntry] = []
    for raw in raw_entries:
        if isinstance(raw, (CommentEntry, AuditEntry)):
            entries.append(raw)
            continue
        try:
            entries.append(_journal_adapter.validate_python(raw))
        except ValidationError:
            logger.warning("Skipping unreadable journal entry: %.80r", raw)
    return entries


class _JournalOwner(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    journal_entries: list[JournalEntry] = Field(default_factory=list)

    @field_validator("journal_entries", mode="before")
    @classmethod
    def _decode_journal(cls, value: Any) -> list[CommentEntry | AuditEntry]:
        return parse_journal(value)


class AuditEntryView(AuditEntry):
    """A stored audit entry together with its rendered change lines."""

    changes: list[str] = Field(default_factory=list)


class CommentCreate(BaseModel):
    text: Stripped = Field(min_length=1)


# ---------------------------------------------------------------------------
# Resource types
# ---------------------------------------------------------------------------


class ResourceTypeCreate(BaseModel):
    name: Stripped = Field(min_length=1, max_length=120)
    description: str | None = None
    resource_category: ResourceCategory = ResourceCategory.LABOUR
    resource_cost: OptionalCost = None


class ResourceTypeOut(_JournalOwner):
    id: str
    name: str
    description: str | None = None
    resource_category: str = ResourceCategory.LABOUR.value
    resource_cost: float | None = None


# ---------------------------------------------------------------------------
# Estimation factors
# ---------------------------------------------------------------------------


class EstimationFactorCreate(BaseModel):
    name: Stripped = Field(min_length=1, max_length=160)
    description: str | None = None
    hoursPerResourceType: dict[str, NonNegativeFloat] = Field(default_factory=dict)
    valuePerResourceType: dict[str, NonNegativeFloat] = Field(default_factory=dict)

    @field_validator("hoursPerResourceType", "valuePerResourceType")
    @classmethod
    def _drop_zero_entries(cls, value: dict[str, float]) -> dict[str, float]:
        return _sparse(value)


class EstimationFactorOut(_JournalOwner):
    id: str
    name: str
    description: str | None = None
    hoursPerResourceType: dict[str, float] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("hoursPerResourceType", "hours_per_resource_type"),
    )
    valuePerResourceType: dict[str, float] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("valuePerResourceType", "value_per_resource_type"),
    )
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DuplicateRequest(BaseModel):
    name: OptionalText = None


# ---------------------------------------------------------------------------
# Initiatives
# ---------------------------------------------------------------------------


class SelectedFactor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    factorId: str
    quantity: int = Field(default=1, ge=1)
    name: str | None = None
    hoursPerResourceType: dict[str, NonNegativeFloat] = Field(default_factory=dict)

    @field_validator("quantity", mode="before")
    @classmethod
    def _default_quantity(cls, value: Any) -> Any:
        return value or 1

    @field_validator("hoursPerResourceType")
    @classmethod
    def _drop_zero_entries(cls, value: dict[str, float]) -> dict[str, float]:
        return _sparse(value)


def _unique_factor_ids(value: list[SelectedFactor]) -> list[SelectedFactor]:
    seen: set[str] = set()
    for selection in value:
        if selection.factorId in seen:
            raise ValueError(f"Estimation factor {selection.factorId} is selected more than once")
        seen.add(selection.factorId)
    return value


class ManualResources(BaseModel):
    model_config = ConfigDict(extra="ignore")

    manualHours: dict[str, NonNegativeFloat] = Field(default_factory=dict)
    manualValues: dict[str, NonNegativeFloat] = Field(default_factory=dict)

    @field_validator("manualHours", "manualValues")
    @classmethod
    def _drop_zero_entries(cls, value: dict[str, float]) -> dict[str, float]:
        return _sparse(value)


class InitiativeCreate(BaseModel):
    name: Stripped = Field(min_length=1, max_length=200)
    custom_id: OptionalText = None
    description: str | None = None
    priority: str | None = None
    priority_num: OptionalInt = None
    status: str | None = None
    estimation_type: str | None = None
    classification: str | None = None
    scope: str | None = None
    out_of_scope: str | None = None
    selected_factors: list[SelectedFactor] = Field(default_factory=list)
    manual_resources: ManualResources = Field(default_factory=ManualResources)
    start_date: OptionalDate = None
    end_date: OptionalDate = None
    estimated_duration: OptionalInt = Field(default=None, ge=0)
    categories: list[str] = Field(default_factory=list)

    @field_validator("selected_factors")
    @classmethod
    def _reject_repeated_factors(cls, value: list[SelectedFactor]) -> list[SelectedFactor]:
        return _unique_factor_ids(value)

    @field_validator("manual_resources", mode="before")
    @classmethod
    def _null_manual_resources(cls, value: Any) -> Any:
        return value or {}

    @field_validator("categories")
    @classmethod
    def _clean_categories(cls, value: list[str]) -> list[str]:
        cleaned = (name.strip() for name in value)
        return list(dict.fromkeys(name for name in cleaned if name))


class InitiativeOut(_JournalOwner):
    id: int
    name: str
    custom_id: str | None = None
    description: str | None = None
    priority: str | None = None
    priority_num: int | None = None
    status: str | None = None
    estimation_type: str | None = None
    classification: str | None = None
    scope: str | None = None
    out_of_scope: str | None = None
    selected_factors: list[dict[str, Any]] = Field(default_factory=list)
    manual_resources: dict[str, Any] = Field(default_factory=dict)
    computed_hours: float | None = 0
    shirt_size: str | None = "XS"
    start_date: date | None = None
    end_date: date | None = None
    estimated_duration: int | None = None
    categories: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class InitiativeImportRow(BaseModel):
    """One row of a bulk import; rows without a name are skipped, not rejected."""

    model_config = ConfigDict(extra="ignore")

    name: OptionalText = None
    custom_id: OptionalText = None
    description: str | None = None
    priority: str | None = None
    priority_num: int = 0
    status: str | None = None
    scope: str | None = None
    out_of_scope: str | None = None
    start_date: OptionalDate = None
    end_date: OptionalDate = None

    @field_validator("priority_num", mode="before")
    @classmethod
    def _lenient_priority(cls, value: Any) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0


class ImportResult(BaseModel):
    importedCount: int
    skippedCount: int = 0


class EstimatePreviewRequest(BaseModel):
    selected_factors: list[SelectedFactor] = Field(default_factory=list)
    manual_resources: ManualResources = Field(default_factory=ManualResources)

    @field_validator("selected_factors")
    @classmethod
    def _reject_repeated_factors(cls, value: list[SelectedFactor]) -> list[SelectedFactor]:
        return _unique_factor_ids(value)


class EstimatePreview(BaseModel):
    total_hours: float
    total_cost: float
    days: float
    months: float
    shirt_size: str


# ---------------------------------------------------------------------------
# Shirt sizes
# ---------------------------------------------------------------------------


class ShirtSizeIn(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    size: str = Field(min_length=1, max_length=10)
    threshold_hours: NonNegativeFloat


class ShirtSizeAuditOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    action: str
    old_data: list[dict[str, Any]] = Field(default_factory=list)
    new_data: list[dict[str, Any]] = Field(default_factory=list)
    timestamp: datetime
    changes: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------


class CategoryCreate(BaseModel):
    name: Stripped = Field(min_length=1, max_length=120)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_at: datetime
    last_used_at: datetime | None = None
    usage_count: int = 0


class DropdownOptionIn(BaseModel):
    category: Stripped = Field(min_length=1, max_length=30)
    value: Stripped = Field(min_length=1, max_length=120)


class DropdownOptionRename(BaseModel):
    category: Stripped = Field(min_length=1, max_length=30)
    oldValue: Stripped = Field(min_length=1)
    newValue: Stripped = Field(min_length=1, max_length=120)


class DropdownOptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category: str
    value: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------


class BackupFrequency(BaseModel):
    frequency: int = Field(ge=5, le=1440)


class BackupOut(BaseModel):
    filename: str
    size: int
    created_at: datetime
