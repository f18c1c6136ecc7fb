"""Estimate totals.

Aggregates hours and cost for an initiative from two sources: reusable
estimation factors selected with a quantity, and ad-hoc manual resource
allocations. Hours drive shirt-size classification; cost is only computed
when resource-type rates are supplied.

Selected factors carry a snapshot of their hours taken when they were picked,
so later edits to a factor do not move existing initiatives. Non-labour unit
values are not snapshotted and are always read from the factor catalog.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

HOURS_PRECISION = 1


@dataclass(frozen=True)
class FactorRates:
    """Per-resource-type hours and unit values of one catalog factor."""

    hours: Mapping[str, float] = field(default_factory=dict)
    values: Mapping[str, float] = field(default_factory=dict)

    @classmethod
    def from_factor(cls, factor: Any) -> FactorRates:
        return cls(
            hours=dict(getattr(factor, "hours_per_resource_type", None) or {}),
            values=dict(getattr(factor, "value_per_resource_type", None) or {}),
        )


@dataclass(frozen=True)
class Totals:
    total_hours: float = 0.0
    total_cost: float = 0.0


@dataclass(frozen=True)
class DurationBreakdown:
    hours: float
    days: float
    months: float


def _number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number > 0 else 0.0


def _quantity(entry: Mapping[str, Any]) -> float:
    # Missing, zero or junk quantities count as a single unit.
    return _number(entry.get("quantity")) or 1.0


def _positive_items(mapping: Any) -> Iterable[tuple[str, float]]:
    if not isinstance(mapping, Mapping):
        return ()
    return ((str(key), _number(value)) for key, value in mapping.items() if _number(value))


def compute_totals(
    selected_factors: Iterable[Mapping[str, Any]] | None,
    manual_resources: Mapping[str, Any] | None,
    cost_lookup: Mapping[str, float | None] | None = None,
    factors: Mapping[str, FactorRates] | None = None,
) -> Totals:
    """Sum hours (and cost, when rates are known) across factors and manual entries.

    When the `factors` catalog is supplied, a selection whose `factorId` is not
    in it is skipped and logged instead of failing the calculation.
    """
    costs = cost_lookup or {}
    hours_by_type: dict[str, float] = {}
    units_by_type: dict[str, float] = {}

    def _add(target: dict[str, float], items: Iterable[tuple[str, float]], multiplier: float = 1.0) -> None:
        for resource_type_id, amount in items:
            target[resource_type_id] = target.get(resource_type_id, 0.0) + amount * multiplier

    for entry in selected_factors or ():
        if not isinstance(entry, Mapping):
            continue
        factor_id = entry.get("factorId")
        catalog_entry = None
        if factors is not None:
            catalog_entry = factors.get(str(factor_id))
            if catalog_entry is None:
                logger.warning("Skipping selected factor %s: not present in the factor catalog", factor_id)
                continue

        quantity = _quantity(entry)
        snapshot_hours = entry.get("hoursPerResourceType")
        if not snapshot_hours and catalog_entry is not None:
            snapshot_hours = catalog_entry.hours
        _add(hours_by_type, _positive_items(snapshot_hours), quantity)
        if catalog_entry is not None:
            _add(units_by_type, _positive_items(catalog_entry.values), quantity)

    manual = manual_resources if isinstance(manual_resources, Mapping) else {}
    _add(hours_by_type, _positive_items(manual.get("manualHours")))
    _add(units_by_type, _positive_items(manual.get("manualValues")))

    total_hours = round(sum(hours_by_type.values()), HOURS_PRECISION)
    total_cost = 0.0
    for bucket in (hours_by_type, units_by_type):
        for resource_type_id, amount in bucket.items():
            total_cost += amount * _number(costs.get(resource_type_id))

    return Totals(total_hours=total_hours, total_cost=total_cost)


def duration_breakdown(hours: float, *, hours_per_day: float = 8, hours_per_month: float = 160) -> DurationBreakdown:
    """Express an hour total as working days and months, one decimal each."""
    hours = _number(hours)
    return DurationBreakdown(
        hours=round(hours, HOURS_PRECISION),
        days=round(hours / hours_per_day, 1) if hours_per_day else 0.0,
        months=round(hours / hours_per_month, 1) if hours_per_month else 0.0,
    )
