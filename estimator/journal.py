"""Journal helpers.

Builds the flattened snapshots the audit differ compares, creates new journal
entries, and renders stored entries for display. Journals are append-only:
callers always assign a new list so the JSON column is flushed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, timezone
from typing import Any

from estimator import audit
from estimator.models import EstimationFactor, Initiative, JournalAction, ResourceType
from estimator.schemas import AuditEntry, AuditEntryView, CommentEntry, parse_journal


def _iso_date(value: date | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return str(value)[:10] or None


def initiative_snapshot(initiative: Initiative) -> dict[str, Any]:
    return {
        "name": initiative.name,
        "custom_id": initiative.custom_id,
        "description": initiative.description,
        "priority": initiative.priority,
        "priority_num": initiative.priority_num,
        "status": initiative.status,
        "estimation_type": initiative.estimation_type,
        "classification": initiative.classification,
        "scope": initiative.scope,
        "out_of_scope": initiative.out_of_scope,
        "computed_hours": initiative.computed_hours,
        "shirt_size": initiative.shirt_size,
        "start_date": _iso_date(initiative.start_date),
        "end_date": _iso_date(initiative.end_date),
        "estimated_duration": initiative.estimated_duration,
        "selected_factors": [
            {"factorId": entry.get("factorId"), "quantity": entry.get("quantity", 1), "name": entry.get("name")}
            for entry in initiative.selected_factors or []
            if isinstance(entry, Mapping)
        ],
        "categories": list(initiative.categories or []),
        "manual_resources": dict(initiative.manual_resources or {}),
    }


def factor_snapshot(factor: EstimationFactor) -> dict[str, Any]:
    return {
        "name": factor.name,
        "description": factor.description,
        "hoursPerResourceType": dict(factor.hours_per_resource_type or {}),
        "valuePerResourceType": dict(factor.value_per_resource_type or {}),
    }


def resource_type_snapshot(resource_type: ResourceType) -> dict[str, Any]:
    return {
        "name": resource_type.name,
        "description": resource_type.description,
        "resource_category": resource_type.resource_category,
        "resource_cost": resource_type.resource_cost,
    }


def audit_entry(
    action: JournalAction,
    old_data: Mapping[str, Any] | None = None,
    new_data: Mapping[str, Any] | None = None,
    *,
    original_name: str | None = None,
) -> dict[str, Any]:
    entry = AuditEntry(
        timestamp=datetime.now(timezone.utc),
        action=action,
        old_data=dict(old_data or {}),
        new_data=dict(new_data or {}),
        original_name=original_name,
    )
    return entry.model_dump(mode="json", exclude_none=True)


def comment_entry(text: str) -> dict[str, Any]:
    return CommentEntry(timestamp=datetime.now(timezone.utc), text=text).model_dump(mode="json")


def append_journal(entity: Any, *entries: Mapping[str, Any]) -> None:
    entity.journal_entries = [*(entity.journal_entries or []), *entries]


def render_journal(
    raw_entries: Iterable[Any],
    tracked_keys: Sequence[str],
    resource_names: Mapping[str, str] | None = None,
) -> list[CommentEntry | AuditEntryView]:
    """Decode a stored journal oldest-first, attaching change lines to updates."""
    rendered: list[CommentEntry | AuditEntryView] = []
    for entry in parse_journal(list(raw_entries or [])):
        if isinstance(entry, CommentEntry):
            rendered.append(entry)
            continue
        changes: list[str] = []
        if entry.action == JournalAction.UPDATED:
            changes = audit.diff(entry.old_data, entry.new_data, tracked_keys, resource_names).changes
        rendered.append(AuditEntryView(**entry.model_dump(), changes=changes))
    return sorted(rendered, key=lambda item: item.timestamp.replace(tzinfo=item.timestamp.tzinfo or timezone.utc))
