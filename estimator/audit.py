"""Audit diffing.

Compares two flattened snapshots of an entity and produces human-readable
change lines. The same routine decides whether a save needs a new journal
entry and renders previously stored entries for display, so stored snapshots
from older releases (collections serialized as JSON text, missing keys) must
degrade to empty values instead of raising.

Line order: scalar keys in tracked-key order, then collection changes, then
per-resource map changes.
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

INITIATIVE_TRACKED_KEYS: tuple[str, ...] = (
    "name",
    "custom_id",
    "description",
    "priority",
    "priority_num",
    "status",
    "estimation_type",
    "classification",
    "scope",
    "out_of_scope",
    "computed_hours",
    "shirt_size",
    "start_date",
    "end_date",
    "estimated_duration",
    "selected_factors",
    "categories",
    "manual_resources",
)

FACTOR_TRACKED_KEYS: tuple[str, ...] = (
    "name",
    "description",
    "hoursPerResourceType",
    "valuePerResourceType",
)

RESOURCE_TYPE_TRACKED_KEYS: tuple[str, ...] = (
    "name",
    "description",
    "resource_category",
    "resource_cost",
)

DATE_KEYS = frozenset({"start_date", "end_date"})
NUMERIC_KEYS = frozenset({"estimated_duration", "priority_num", "computed_hours", "resource_cost"})
COLLECTION_KEYS = frozenset({"selected_factors", "categories"})

# key -> [(nested key or None, label, unit suffix)]
RESOURCE_MAP_KEYS: dict[str, tuple[tuple[str | None, str, str], ...]] = {
    "hoursPerResourceType": ((None, "hours", "h"),),
    "valuePerResourceType": ((None, "value", " units"),),
    "manual_resources": (("manualHours", "manual hours", "h"), ("manualValues", "manual value", " units")),
}


@dataclass
class AuditDiff:
    changes: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)


def _load(value: Any, empty: Any) -> Any:
    """Accept already-decoded values or legacy JSON text; anything else is `empty`."""
    if isinstance(value, str):
        try:
            value = json.loads(value or "null")
        except ValueError:
            return empty
    if value is None:
        return empty
    if isinstance(empty, list) and isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(empty, dict) and isinstance(value, Mapping):
        return dict(value)
    return empty


def _format_number(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


def _plain(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _numeric(value: Any) -> float | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _scalar_change(key: str, old: Any, new: Any) -> str | None:
    if key in DATE_KEYS:
        old_date, new_date = _plain(old)[:10], _plain(new)[:10]
        if old_date == new_date:
            return None
        return f"Changed {key} from {old_date or 'none'} to {new_date or 'none'}"

    if key in NUMERIC_KEYS:
        old_number, new_number = _numeric(old), _numeric(new)
        if old_number == new_number:
            return None
        old_text = "none" if old_number is None else _format_number(old_number)
        new_text = "none" if new_number is None else _format_number(new_number)
        return f"Changed {key} from {old_text} to {new_text}"

    old_text, new_text = _plain(old), _plain(new)
    if old_text == new_text:
        return None
    return f"Changed {key} from {old_text or 'empty'} to {new_text or 'empty'}"


def _factor_index(entries: Iterable[Any]) -> dict[str, Mapping[str, Any]]:
    index: dict[str, Mapping[str, Any]] = {}
    for entry in entries:
        if isinstance(entry, Mapping) and entry.get("factorId") is not None:
            index[str(entry["factorId"])] = entry
    return index


def _quantity(entry: Mapping[str, Any]) -> str:
    number = _numeric(entry.get("quantity"))
    return _format_number(number) if number else "1"


def _factor_changes(old: Any, new: Any) -> list[str]:
    old_index = _factor_index(_load(old, []))
    new_index = _factor_index(_load(new, []))
    changes: list[str] = []
    for factor_id, entry in new_index.items():
        name = entry.get("name") or factor_id
        previous = old_index.get(factor_id)
        if previous is None:
            changes.append(f"Added factor: {name} (Qty: {_quantity(entry)})")
        elif _quantity(previous) != _quantity(entry):
            changes.append(f"Changed quantity for factor {name} from {_quantity(previous)} to {_quantity(entry)}")
    for factor_id, entry in old_index.items():
        if factor_id not in new_index:
            changes.append(f"Removed factor: {entry.get('name') or factor_id} (Qty: {_quantity(entry)})")
    return changes


def _category_changes(old: Any, new: Any) -> list[str]:
    old_names = [str(name) for name in _load(old, []) if name]
    new_names = [str(name) for name in _load(new, []) if name]
    old_set, new_set = set(old_names), set(new_names)
    changes = [f"Added category: {name}" for name in dict.fromkeys(new_names) if name not in old_set]
    changes += [f"Removed category: {name}" for name in dict.fromkeys(old_names) if name not in new_set]
    return changes


def _map_changes(
    old: Any,
    new: Any,
    label: str,
    suffix: str,
    resource_names: Mapping[str, str],
) -> list[str]:
    old_map, new_map = _load(old, {}), _load(new, {})
    changes: list[str] = []
    for resource_id in dict.fromkeys([*old_map, *new_map]):
        old_value = _numeric(old_map.get(resource_id)) or 0.0
        new_value = _numeric(new_map.get(resource_id)) or 0.0
        if old_value == new_value:
            continue
        name = resource_names.get(resource_id, resource_id)
        if old_value <= 0 < new_value:
            changes.append(f"Added resource {name} with {_format_number(new_value)}{suffix}")
        elif new_value <= 0 < old_value:
            changes.append(f"Removed resource {name} (was {_format_number(old_value)}{suffix})")
        else:
            changes.append(
                f"Changed {label} for {name} from {_format_number(old_value)}{suffix} to {_format_number(new_value)}{suffix}"
            )
    return changes


def diff(
    old: Mapping[str, Any] | None,
    new: Mapping[str, Any] | None,
    tracked_keys: Sequence[str],
    resource_names: Mapping[str, str] | None = None,
) -> AuditDiff:
    """Describe every tracked difference between two snapshots."""
    old = old if isinstance(old, Mapping) else {}
    new = new if isinstance(new, Mapping) else {}
    names = resource_names or {}

    scalar_lines: list[str] = []
    collection_lines: list[str] = []
    map_lines: list[str] = []

    for key in tracked_keys:
        old_value, new_value = old.get(key), new.get(key)
        if key == "selected_factors":
            collection_lines += _factor_changes(old_value, new_value)
        elif key in COLLECTION_KEYS:
            collection_lines += _category_changes(old_value, new_value)
        elif key in RESOURCE_MAP_KEYS:
            for nested_key, label, suffix in RESOURCE_MAP_KEYS[key]:
                if nested_key is None:
                    map_lines += _map_changes(old_value, new_value, label, suffix, names)
                else:
                    map_lines += _map_changes(
                        _load(old_value, {}).get(nested_key),
                        _load(new_value, {}).get(nested_key),
                        label,
                        suffix,
                        names,
                    )
        else:
            line = _scalar_change(key, old_value, new_value)
            if line:
                scalar_lines.append(line)

    return AuditDiff(changes=scalar_lines + collection_lines + map_lines)


def diff_thresholds(old_rows: Any, new_rows: Any) -> list[str]:
    """Render a shirt-size bulk update stored as whole old/new threshold arrays."""
    old_sizes = {row.get("size"): row.get("threshold_hours") for row in _load(old_rows, []) if isinstance(row, Mapping)}
    changes: list[str] = []
    for row in _load(new_rows, []):
        if not isinstance(row, Mapping) or row.get("size") not in old_sizes:
            continue
        before, after = _numeric(old_sizes[row["size"]]), _numeric(row.get("threshold_hours"))
        if before != after:
            before_text = "none" if before is None else _format_number(before)
            after_text = "none" if after is None else _format_number(after)
            changes.append(f"Changed threshold for size {row['size']} from {before_text} to {after_text}")
    return changes
