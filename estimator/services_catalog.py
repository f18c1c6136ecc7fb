"""Catalog domain helpers.

Business logic for the reference data initiatives are estimated against:
resource types and their rates, estimation factors, the shirt-size threshold
table, plus the category, dropdown-option and system-setting lookup tables.

Every create/update of a resource type or factor appends an audit entry to the
entity's own journal; updates only do so when the audit differ reports a
change. Deletes are refused while other records still reference the entity.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from estimator import audit
from estimator.config import settings
from estimator.errors import DuplicateNameError, EntityValidationError, NotFoundError, ReferenceConflictError
from estimator.journal import append_journal, audit_entry, factor_snapshot, resource_type_snapshot
from estimator.models import (
    Category,
    DropdownOption,
    EstimationFactor,
    Initiative,
    JournalAction,
    ResourceType,
    ShirtSize,
    ShirtSizeAudit,
    SystemSetting,
    utcnow,
)
from estimator.schemas import (
    DropdownOptionIn,
    DropdownOptionRename,
    EstimationFactorCreate,
    ResourceTypeCreate,
    ShirtSizeIn,
)
from estimator.sizing import DEFAULT_THRESHOLDS, sorted_thresholds
from estimator.totals import FactorRates

logger = logging.getLogger(__name__)

BACKUP_FREQUENCY_KEY = "backup_frequency_minutes"

DEFAULT_DROPDOWN_OPTIONS: dict[str, tuple[str, ...]] = {
    "status": (
        "Accepted",
        "Draft",
        "Done",
        "Estimated",
        "Hold",
        "Not Required",
        "Partial",
        "Rejected",
        "Re-Estimation",
        "To Do",
    ),
    "type": ("E4E", "High", "Medium", "Low", "WAG"),
    "priority": ("High", "Medium", "Low"),
}


# ---------------------------------------------------------------------------
# Lookups used by the estimate engine
# ---------------------------------------------------------------------------


def load_thresholds(db: Session) -> list[tuple[str, float]]:
    return sorted_thresholds(db.scalars(select(ShirtSize)).all())


def factor_catalog(db: Session) -> dict[str, FactorRates]:
    return {factor.id: FactorRates.from_factor(factor) for factor in db.scalars(select(EstimationFactor))}


def resource_costs(db: Session) -> dict[str, float | None]:
    return {row.id: row.resource_cost for row in db.scalars(select(ResourceType))}


def resource_names(db: Session) -> dict[str, str]:
    return {row.id: row.name for row in db.scalars(select(ResourceType))}


def factor_names(db: Session) -> dict[str, str]:
    return {row.id: row.name for row in db.scalars(select(EstimationFactor))}


def _ensure_unique_name(db: Session, model: Any, name: str, exclude_id: Any = None) -> None:
    query = select(model.id).where(func.lower(model.name) == name.lower())
    if exclude_id is not None:
        query = query.where(model.id != exclude_id)
    if db.scalar(query) is not None:
        raise DuplicateNameError(f"{model.__name__} named '{name}' already exists")


def _referenced_resource_ids(entries: Iterable[Any], *keys: str) -> set[str]:
    ids: set[str] = set()
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        for key in keys:
            mapping = entry.get(key)
            if isinstance(mapping, Mapping):
                ids.update(str(resource_id) for resource_id, amount in mapping.items() if amount)
    return ids


# ---------------------------------------------------------------------------
# Resource types
# ---------------------------------------------------------------------------


def get_resource_type(db: Session, resource_type_id: str) -> ResourceType:
    resource_type = db.get(ResourceType, resource_type_id)
    if not resource_type:
        raise NotFoundError.for_entity("Resource type", resource_type_id)
    return resource_type


def create_resource_type(db: Session, payload: ResourceTypeCreate) -> ResourceType:
    _ensure_unique_name(db, ResourceType, payload.name)
    resource_type = ResourceType(
        name=payload.name,
        description=payload.description,
        resource_category=payload.resource_category.value,
        resource_cost=payload.resource_cost,
        journal_entries=[],
    )
    append_journal(resource_type, audit_entry(JournalAction.CREATED, {}, resource_type_snapshot(resource_type)))
    db.add(resource_type)
    db.commit()
    db.refresh(resource_type)
    logger.info("Created resource type %s (%s)", resource_type.id, resource_type.name)
    return resource_type


def update_resource_type(db: Session, resource_type_id: str, payload: ResourceTypeCreate) -> ResourceType:
    resource_type = get_resource_type(db, resource_type_id)
    _ensure_unique_name(db, ResourceType, payload.name, exclude_id=resource_type_id)

    old = resource_type_snapshot(resource_type)
    resource_type.name = payload.name
    resource_type.description = payload.description
    resource_type.resource_category = payload.resource_category.value
    resource_type.resource_cost = payload.resource_cost
    new = resource_type_snapshot(resource_type)

    if audit.diff(old, new, audit.RESOURCE_TYPE_TRACKED_KEYS).has_changes:
        append_journal(resource_type, audit_entry(JournalAction.UPDATED, old, new))
    db.commit()
    db.refresh(resource_type)
    return resource_type


def delete_resource_type(db: Session, resource_type_id: str) -> None:
    resource_type = get_resource_type(db, resource_type_id)

    factor_users = [
        factor.name
        for factor in db.scalars(select(EstimationFactor))
        if resource_type_id
        in _referenced_resource_ids(
            [{"h": factor.hours_per_resource_type, "v": factor.value_per_resource_type}], "h", "v"
        )
    ]
    initiative_users = [
        initiative.name
        for initiative in db.scalars(select(Initiative))
        if resource_type_id
        in _referenced_resource_ids(
            [initiative.manual_resources, *(initiative.selected_factors or [])],
            "manualHours",
            "manualValues",
            "hoursPerResourceType",
        )
    ]
    if factor_users or initiative_users:
        raise ReferenceConflictError(
            f"Resource type '{resource_type.name}' is still used by "
            f"{len(factor_users)} factor(s) and {len(initiative_users)} initiative(s)"
        )

    db.delete(resource_type)
    db.commit()
    logger.info("Deleted resource type %s", resource_type_id)


# ---------------------------------------------------------------------------
# Estimation factors
# ---------------------------------------------------------------------------


def get_factor(db: Session, factor_id: str) -> EstimationFactor:
    factor = db.get(EstimationFactor, factor_id)
    if not factor:
        raise NotFoundError.for_entity("Estimation factor", factor_id)
    return factor


def create_factor(
    db: Session,
    payload: EstimationFactorCreate,
    *,
    journal_prefix: Sequence[dict] = (),
) -> EstimationFactor:
    _ensure_unique_name(db, EstimationFactor, payload.name)
    factor = EstimationFactor(
        name=payload.name,
        description=payload.description,
        hours_per_resource_type=dict(payload.hoursPerResourceType),
        value_per_resource_type=dict(payload.valuePerResourceType),
        journal_entries=list(journal_prefix),
    )
    append_journal(factor, audit_entry(JournalAction.CREATED, {}, factor_snapshot(factor)))
    db.add(factor)
    db.commit()
    db.refresh(factor)
    logger.info("Created estimation factor %s (%s)", factor.id, factor.name)
    return factor


def update_factor(db: Session, factor_id: str, payload: EstimationFactorCreate) -> EstimationFactor:
    factor = get_factor(db, factor_id)
    _ensure_unique_name(db, EstimationFactor, payload.name, exclude_id=factor_id)

    old = factor_snapshot(factor)
    factor.name = payload.name
    factor.description = payload.description
    factor.hours_per_resource_type = dict(payload.hoursPerResourceType)
    factor.value_per_resource_type = dict(payload.valuePerResourceType)
    factor.updated_at = utcnow()
    new = factor_snapshot(factor)

    # Initiatives keep the hours they snapshotted when the factor was selected.
    if audit.diff(old, new, audit.FACTOR_TRACKED_KEYS).has_changes:
        append_journal(factor, audit_entry(JournalAction.UPDATED, old, new))
    db.commit()
    db.refresh(factor)
    return factor


def duplicate_factor(db: Session, factor_id: str, new_name: str | None = None) -> EstimationFactor:
    original = get_factor(db, factor_id)
    payload = EstimationFactorCreate(
        name=new_name or f"{original.name} Copy",
        description=original.description,
        hoursPerResourceType=original.hours_per_resource_type or {},
        valuePerResourceType=original.value_per_resource_type or {},
    )
    marker = audit_entry(JournalAction.DUPLICATED_FROM, original_name=original.name)
    return create_factor(db, payload, journal_prefix=[marker])


def delete_factor(db: Session, factor_id: str) -> None:
    factor = get_factor(db, factor_id)
    users = [
        initiative.name
        for initiative in db.scalars(select(Initiative))
        if any(
            isinstance(entry, Mapping) and str(entry.get("factorId")) == factor_id
            for entry in initiative.selected_factors or []
        )
    ]
    if users:
        raise ReferenceConflictError(
            f"Estimation factor '{factor.name}' is selected by {len(users)} initiative(s): {', '.join(users[:5])}"
        )
    db.delete(factor)
    db.commit()
    logger.info("Deleted estimation factor %s", factor_id)


# ---------------------------------------------------------------------------
# Shirt sizes
# ---------------------------------------------------------------------------


def list_shirt_sizes(db: Session) -> list[ShirtSize]:
    return list(db.scalars(select(ShirtSize).order_by(ShirtSize.threshold_hours.asc())))


def _threshold_rows(sizes: Iterable[Any]) -> list[dict[str, Any]]:
    return [{"size": size.size, "threshold_hours": size.threshold_hours} for size in sizes]


def update_shirt_sizes(db: Session, new_sizes: Sequence[ShirtSizeIn]) -> list[ShirtSize]:
    """Apply a bulk threshold update and record one audit row for it."""
    existing = {size.size: size for size in db.scalars(select(ShirtSize))}
    labels = [item.size for item in new_sizes]
    if len(set(labels)) != len(labels):
        raise EntityValidationError("Each shirt size may appear only once")
    unknown = [label for label in labels if label not in existing]
    if unknown:
        raise EntityValidationError(f"Unknown shirt size(s): {', '.join(unknown)}")

    old_rows = _threshold_rows(sorted(existing.values(), key=lambda size: size.threshold_hours))
    for item in new_sizes:
        existing[item.size].threshold_hours = item.threshold_hours
    db.add(ShirtSizeAudit(action="updated", old_data=old_rows, new_data=_threshold_rows(new_sizes)))
    db.commit()
    logger.info("Updated %d shirt-size thresholds", len(new_sizes))
    return list_shirt_sizes(db)


def list_shirt_size_audit(db: Session) -> list[dict[str, Any]]:
    rows = db.scalars(select(ShirtSizeAudit).order_by(ShirtSizeAudit.timestamp.desc())).all()
    return [
        {
            "id": row.id,
            "action": row.action,
            "old_data": row.old_data,
            "new_data": row.new_data,
            "timestamp": row.timestamp,
            "changes": audit.diff_thresholds(row.old_data, row.new_data),
        }
        for row in rows
    ]


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def list_categories(db: Session, query: str | None = None) -> list[Category]:
    statement = select(Category)
    if query:
        statement = statement.where(Category.name.ilike(f"%{query}%"))
    statement = statement.order_by(Category.usage_count.desc(), Category.name.asc())
    return list(db.scalars(statement))


def get_category(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if not category:
        raise NotFoundError.for_entity("Category", category_id)
    return category


def create_category(db: Session, name: str) -> Category:
    if db.scalar(select(Category).where(Category.name == name)):
        raise DuplicateNameError(f"Category '{name}' already exists")
    now = utcnow()
    category = Category(name=name, created_at=now, last_used_at=now, usage_count=1)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def rename_category(db: Session, category_id: int, name: str) -> Category:
    category = get_category(db, category_id)
    clash = db.scalar(select(Category).where(Category.name == name, Category.id != category_id))
    if clash:
        raise DuplicateNameError(f"Category '{name}' already exists")
    category.name = name
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, category_id: int) -> None:
    db.delete(get_category(db, category_id))
    db.commit()


def increment_category(db: Session, category_id: int) -> Category:
    category = get_category(db, category_id)
    category.usage_count = (category.usage_count or 0) + 1
    category.last_used_at = utcnow()
    db.commit()
    db.refresh(category)
    return category


def touch_categories(db: Session, names: Iterable[str]) -> None:
    """Record that each category was used on an initiative save. Does not commit."""
    now = utcnow()
    for name in dict.fromkeys(names):
        category = db.scalar(select(Category).where(Category.name == name))
        if category is None:
            db.add(Category(name=name, created_at=now, last_used_at=now, usage_count=1))
            continue
        category.usage_count = (category.usage_count or 0) + 1
        category.last_used_at = now


def recalculate_category_usage(db: Session) -> list[Category]:
    """Rebuild usage counts from the categories currently set on initiatives."""
    counts: dict[str, int] = {}
    for categories in db.scalars(select(Initiative.categories)):
        for name in dict.fromkeys(categories or []):
            counts[name] = counts.get(name, 0) + 1

    now = utcnow()
    for category in db.scalars(select(Category)):
        category.usage_count = counts.get(category.name, 0)
        category.last_used_at = now if category.usage_count else None
    db.commit()
    return list_categories(db)


# ---------------------------------------------------------------------------
# Dropdown options
# ---------------------------------------------------------------------------


def dropdown_options_by_category(db: Session) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {category: [] for category in DEFAULT_DROPDOWN_OPTIONS}
    statement = select(DropdownOption).order_by(DropdownOption.category, DropdownOption.value)
    for option in db.scalars(statement):
        grouped.setdefault(option.category, []).append(option.value)
    return grouped


def list_dropdown_options(db: Session, category: str) -> list[DropdownOption]:
    statement = select(DropdownOption).where(DropdownOption.category == category).order_by(DropdownOption.value)
    return list(db.scalars(statement))


def _find_option(db: Session, category: str, value: str) -> DropdownOption | None:
    return db.scalar(select(DropdownOption).where(DropdownOption.category == category, DropdownOption.value == value))


def add_dropdown_option(db: Session, payload: DropdownOptionIn) -> DropdownOption:
    if _find_option(db, payload.category, payload.value):
        raise DuplicateNameError(f"Option '{payload.value}' already exists in {payload.category}")
    option = DropdownOption(category=payload.category, value=payload.value)
    db.add(option)
    db.commit()
    db.refresh(option)
    return option


def rename_dropdown_option(db: Session, payload: DropdownOptionRename) -> DropdownOption:
    option = _find_option(db, payload.category, payload.oldValue)
    if option is None:
        raise NotFoundError(f"Option '{payload.oldValue}' not found in {payload.category}")
    if _find_option(db, payload.category, payload.newValue):
        raise DuplicateNameError(f"Option '{payload.newValue}' already exists in {payload.category}")
    option.value = payload.newValue
    option.updated_at = utcnow()
    db.commit()
    db.refresh(option)
    return option


def delete_dropdown_option(db: Session, category: str, value: str) -> None:
    category, value = category.strip(), value.strip()
    option = _find_option(db, category, value)
    if option is None:
        raise NotFoundError(f"Option '{value}' not found in {category}")
    db.delete(option)
    db.commit()


# ---------------------------------------------------------------------------
# System settings and first-run defaults
# ---------------------------------------------------------------------------


def get_setting(db: Session, key: str, default: str | None = None) -> str | None:
    setting = db.get(SystemSetting, key)
    return setting.value if setting else default


def set_setting(db: Session, key: str, value: str) -> None:
    setting = db.get(SystemSetting, key)
    if setting is None:
        db.add(SystemSetting(key=key, value=value))
    else:
        setting.value = value
        setting.updated_at = utcnow()
    db.commit()


def get_backup_frequency(db: Session) -> int:
    raw = get_setting(db, BACKUP_FREQUENCY_KEY)
    try:
        return int(raw) if raw is not None else settings.backup_frequency_minutes
    except ValueError:
        logger.warning("Ignoring unreadable %s setting %r", BACKUP_FREQUENCY_KEY, raw)
        return settings.backup_frequency_minutes


def seed_defaults(db: Session) -> None:
    """Insert default thresholds, dropdown options and settings on first run."""
    if not db.scalar(select(func.count()).select_from(ShirtSize)):
        db.add_all(ShirtSize(size=label, threshold_hours=hours) for label, hours in DEFAULT_THRESHOLDS)
        logger.info("Seeded default shirt sizes")

    if not db.scalar(select(func.count()).select_from(DropdownOption)):
        db.add_all(
            DropdownOption(category=category, value=value)
            for category, values in DEFAULT_DROPDOWN_OPTIONS.items()
            for value in values
        )
        logger.info("Seeded default dropdown options")

    if db.get(SystemSetting, BACKUP_FREQUENCY_KEY) is None:
        db.add(SystemSetting(key=BACKUP_FREQUENCY_KEY, value=str(settings.backup_frequency_minutes)))
    db.commit()
