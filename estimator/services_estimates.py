"""Initiative domain helpers.

This module owns the initiative save path: fill selection snapshots, compute
totals, classify, diff against the stored state, append the audit entry and
bump category usage. It also covers duplication, comments, bulk import, the
TSV exports and the bulk recompute used by the operator CLI.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from estimator import audit
from estimator.config import settings
from estimator.errors import EntityValidationError, NotFoundError
from estimator.journal import append_journal, audit_entry, comment_entry, initiative_snapshot, render_journal
from estimator.models import Initiative, JournalAction, utcnow
from estimator.schemas import (
    EstimatePreview,
    InitiativeCreate,
    InitiativeImportRow,
    ManualResources,
    SelectedFactor,
)
from estimator.services_catalog import (
    factor_catalog,
    factor_names,
    load_thresholds,
    resource_costs,
    resource_names,
    touch_categories,
)
from estimator.sizing import classify
from estimator.totals import FactorRates, Totals, compute_totals, duration_breakdown

logger = logging.getLogger(__name__)

IMPORT_CLASSIFICATION = "Imported"
IMPORT_DEFAULT_PRIORITY = "Low"
IMPORT_DEFAULT_STATUS = "To Do"


@dataclass(frozen=True)
class Estimate:
    totals: Totals
    shirt_size: str


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------


def fill_selection_snapshots(
    selections: Sequence[SelectedFactor],
    catalog: Mapping[str, FactorRates],
    names: Mapping[str, str],
    previous: Iterable[Mapping[str, Any]] = (),
) -> list[dict[str, Any]]:
    """Resolve each selection to a stored `{factorId, quantity, name, hoursPerResourceType}`.

    Hours come from the submitted snapshot, else the one already stored on the
    initiative, else the current catalog. A factor id that is neither in the
    catalog nor already stored is rejected.
    """
    stored = {str(entry.get("factorId")): entry for entry in previous if isinstance(entry, Mapping)}
    resolved: list[dict[str, Any]] = []
    for selection in selections:
        prior = stored.get(selection.factorId)
        catalog_entry = catalog.get(selection.factorId)
        if catalog_entry is None and prior is None:
            raise EntityValidationError(f"Unknown estimation factor: {selection.factorId}")

        hours = dict(selection.hoursPerResourceType)
        if not hours and prior is not None:
            hours = dict(prior.get("hoursPerResourceType") or {})
        if not hours and catalog_entry is not None:
            hours = dict(catalog_entry.hours)

        name = names.get(selection.factorId) or selection.name or (prior or {}).get("name")
        resolved.append(
            {
                "factorId": selection.factorId,
                "quantity": selection.quantity,
                "name": name,
                "hoursPerResourceType": hours,
            }
        )
    return resolved


def estimate(
    db: Session,
    selected_factors: Iterable[Mapping[str, Any]],
    manual_resources: Mapping[str, Any] | None,
) -> Estimate:
    totals = compute_totals(selected_factors, manual_resources, resource_costs(db), factor_catalog(db))
    return Estimate(totals=totals, shirt_size=classify(totals.total_hours, load_thresholds(db)))


def preview_estimate(
    db: Session,
    selections: Sequence[SelectedFactor],
    manual_resources: ManualResources,
) -> EstimatePreview:
    catalog = factor_catalog(db)
    resolved = fill_selection_snapshots(selections, catalog, factor_names(db))
    result = estimate(db, resolved, manual_resources.model_dump())
    breakdown = duration_breakdown(
        result.totals.total_hours,
        hours_per_day=settings.hours_per_day,
        hours_per_month=settings.hours_per_month,
    )
    return EstimatePreview(
        total_hours=result.totals.total_hours,
        total_cost=result.totals.total_cost,
        days=breakdown.days,
        months=breakdown.months,
        shirt_size=result.shirt_size,
    )


# ---------------------------------------------------------------------------
# Initiative CRUD
# ---------------------------------------------------------------------------


def list_initiatives(db: Session, status: str | None = None) -> list[Initiative]:
    statement = select(Initiative)
    if status:
        statement = statement.where(Initiative.status == status)
    return list(db.scalars(statement.order_by(Initiative.created_at.desc(), Initiative.id.desc())))


def get_initiative(db: Session, initiative_id: int) -> Initiative:
    initiative = db.get(Initiative, initiative_id)
    if not initiative:
        raise NotFoundError.for_entity("Initiative", initiative_id)
    return initiative


def _apply_payload(db: Session, initiative: Initiative, payload: InitiativeCreate) -> None:
    if payload.start_date and payload.end_date and payload.end_date < payload.start_date:
        raise EntityValidationError("End date cannot be before start date")

    selections = fill_selection_snapshots(
        payload.selected_factors,
        factor_catalog(db),
        factor_names(db),
        previous=initiative.selected_factors or [],
    )
    manual = payload.manual_resources.model_dump()
    result = estimate(db, selections, manual)

    initiative.name = payload.name
    initiative.custom_id = payload.custom_id
    initiative.description = payload.description
    initiative.priority = payload.priority
    initiative.priority_num = payload.priority_num
    initiative.status = payload.status
    initiative.estimation_type = payload.estimation_type
    initiative.classification = payload.classification
    initiative.scope = payload.scope
    initiative.out_of_scope = payload.out_of_scope
    initiative.selected_factors = selections
    initiative.manual_resources = manual
    initiative.start_date = payload.start_date
    initiative.end_date = payload.end_date
    initiative.estimated_duration = payload.estimated_duration
    initiative.categories = list(payload.categories)
    initiative.computed_hours = result.totals.total_hours
    initiative.shirt_size = result.shirt_size


def create_initiative(db: Session, payload: InitiativeCreate) -> Initiative:
    initiative = Initiative(selected_factors=[], manual_resources={}, journal_entries=[], categories=[])
    _apply_payload(db, initiative, payload)
    append_journal(initiative, audit_entry(JournalAction.CREATED, {}, initiative_snapshot(initiative)))
    touch_categories(db, initiative.categories)
    db.add(initiative)
    db.commit()
    db.refresh(initiative)
    logger.info("Created initiative %s (%s, %s)", initiative.id, initiative.name, initiative.shirt_size)
    return initiative


def update_initiative(db: Session, initiative_id: int, payload: InitiativeCreate) -> Initiative:
    initiative = get_initiative(db, initiative_id)
    old = initiative_snapshot(initiative)
    _apply_payload(db, initiative, payload)
    new = initiative_snapshot(initiative)

    if audit.diff(old, new, audit.INITIATIVE_TRACKED_KEYS).has_changes:
        append_journal(initiative, audit_entry(JournalAction.UPDATED, old, new))
        initiative.updated_at = utcnow()
    touch_categories(db, initiative.categories)
    db.commit()
    db.refresh(initiative)
    return initiative


def duplicate_initiative(db: Session, initiative_id: int, new_name: str | None = None) -> Initiative:
    original = get_initiative(db, initiative_id)
    copy = Initiative(
        name=new_name or f"{original.name} Copy",
        custom_id=None,
        description=original.description,
        priority=original.priority,
        priority_num=original.priority_num,
        status=original.status,
        estimation_type=original.estimation_type,
        classification=original.classification,
        scope=original.scope,
        out_of_scope=original.out_of_scope,
        selected_factors=[dict(entry) for entry in original.selected_factors or []],
        manual_resources=dict(original.manual_resources or {}),
        start_date=original.start_date,
        end_date=original.end_date,
        estimated_duration=original.estimated_duration,
        categories=list(original.categories or []),
        journal_entries=[],
    )
    result = estimate(db, copy.selected_factors, copy.manual_resources)
    copy.computed_hours = result.totals.total_hours
    copy.shirt_size = result.shirt_size
    append_journal(
        copy,
        audit_entry(JournalAction.DUPLICATED_FROM, original_name=original.name),
        audit_entry(JournalAction.CREATED, {}, initiative_snapshot(copy)),
    )
    touch_categories(db, copy.categories)
    db.add(copy)
    db.commit()
    db.refresh(copy)
    logger.info("Duplicated initiative %s as %s", original.id, copy.id)
    return copy


def add_comment(db: Session, initiative_id: int, text: str) -> Initiative:
    initiative = get_initiative(db, initiative_id)
    append_journal(initiative, comment_entry(text))
    db.commit()
    db.refresh(initiative)
    return initiative


def delete_initiative(db: Session, initiative_id: int) -> None:
    db.delete(get_initiative(db, initiative_id))
    db.commit()
    logger.info("Deleted initiative %s", initiative_id)


def initiative_journal(db: Session, initiative_id: int):
    initiative = get_initiative(db, initiative_id)
    return render_journal(initiative.journal_entries, audit.INITIATIVE_TRACKED_KEYS, resource_names(db))


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------


def import_initiatives(db: Session, rows: Sequence[InitiativeImportRow]) -> tuple[int, int]:
    """Create one initiative per named row in a single transaction.

    Imported initiatives carry no factors, so they are sized against zero hours.
    """
    size = classify(0, load_thresholds(db))
    imported = skipped = 0
    for row in rows:
        if not row.name:
            logger.warning("Skipping import row without a name: %.80r", row.model_dump(exclude_none=True))
            skipped += 1
            continue
        status = row.status or IMPORT_DEFAULT_STATUS
        initiative = Initiative(
            name=row.name,
            custom_id=row.custom_id,
            description=row.description,
            priority=row.priority or IMPORT_DEFAULT_PRIORITY,
            priority_num=row.priority_num,
            status=status,
            classification=IMPORT_CLASSIFICATION,
            scope=row.scope,
            out_of_scope=row.out_of_scope,
            selected_factors=[],
            manual_resources={},
            categories=[],
            computed_hours=0,
            shirt_size=size,
            start_date=row.start_date,
            end_date=row.end_date,
            journal_entries=[
                audit_entry(JournalAction.CREATED, {}, {"name": row.name, "status": status, "note": "Imported via TSV"})
            ],
        )
        db.add(initiative)
        imported += 1
    db.commit()
    logger.info("Imported %d initiatives (%d skipped)", imported, skipped)
    return imported, skipped


def _tsv(header: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter="\t", lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow(["" if value is None else str(value).replace("\t", " ").replace("\n", " ") for value in row])
    return buffer.getvalue()


def _format_hours(value: float) -> str:
    return f"{value:.1f}"


def export_initiatives_tsv(db: Session) -> str:
    header = (
        "Internal ID",
        "User-Defined ID",
        "Name",
        "Description",
        "Priority",
        "Priority Number",
        "Status",
        "Classification",
        "Scope",
        "Out of Scope",
        "Estimated Hours",
        "Estimated Days",
        "Estimated Months",
        "Shirt Size",
        "Start Date",
        "End Date",
        "Categories",
        "Selected Factors",
        "Created At",
        "Updated At",
    )
    rows = []
    for initiative in list_initiatives(db):
        breakdown = duration_breakdown(
            initiative.computed_hours or 0,
            hours_per_day=settings.hours_per_day,
            hours_per_month=settings.hours_per_month,
        )
        factors = ", ".join(
            f"{entry.get('name') or entry.get('factorId')} (Qty: {entry.get('quantity', 1)}, "
            f"Hours: {_format_hours(sum((entry.get('hoursPerResourceType') or {}).values()) * (entry.get('quantity') or 1))})"
            for entry in initiative.selected_factors or []
        )
        rows.append(
            (
                initiative.id,
                initiative.custom_id,
                initiative.name,
                initiative.description,
                initiative.priority,
                initiative.priority_num,
                initiative.status,
                initiative.classification,
                initiative.scope,
                initiative.out_of_scope,
                _format_hours(breakdown.hours),
                _format_hours(breakdown.days),
                _format_hours(breakdown.months),
                initiative.shirt_size,
                initiative.start_date,
                initiative.end_date,
                ", ".join(initiative.categories or []),
                factors,
                initiative.created_at,
                initiative.updated_at,
            )
        )
    return _tsv(header, rows)


def export_resource_view_tsv(db: Session) -> str:
    """One row per initiative, factor and resource type, using the stored snapshot hours."""
    header = (
        "Internal ID",
        "User-Defined ID",
        "Name",
        "Created",
        "Updated",
        "Status",
        "Shirt Size",
        "Start Date",
        "End Date",
        "Resource Type",
        "Factor",
        "Factor Hours",
    )
    names = resource_names(db)
    rows = []
    for initiative in list_initiatives(db):
        base = (
            initiative.id,
            initiative.custom_id,
            initiative.name,
            initiative.created_at,
            initiative.updated_at,
            initiative.status,
            initiative.shirt_size,
            initiative.start_date,
            initiative.end_date,
        )
        emitted = False
        for entry in initiative.selected_factors or []:
            quantity = entry.get("quantity") or 1
            for resource_type_id, hours in (entry.get("hoursPerResourceType") or {}).items():
                if resource_type_id not in names or not hours:
                    continue
                rows.append((*base, names[resource_type_id], entry.get("name"), _format_hours(hours * quantity)))
                emitted = True
        if not emitted:
            rows.append((*base, None, None, None))
    return _tsv(header, rows)


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


def recompute_initiative_totals(*, engine: Engine) -> int:
    """Refresh cached computed_hours/shirt_size on every initiative.

    Returns the number of initiatives whose cached values changed. Journals are
    left untouched; this only repairs derived values.
    """
    changed = 0
    with Session(engine) as db:
        catalog = factor_catalog(db)
        costs = resource_costs(db)
        thresholds = load_thresholds(db)
        for initiative in db.scalars(select(Initiative)).all():
            totals = compute_totals(initiative.selected_factors, initiative.manual_resources, costs, catalog)
            size = classify(totals.total_hours, thresholds)
            if (initiative.computed_hours, initiative.shirt_size) == (totals.total_hours, size):
                continue
            logger.info(
                "Initiative %s: %s h/%s -> %s h/%s",
                initiative.id,
                initiative.computed_hours,
                initiative.shirt_size,
                totals.total_hours,
                size,
            )
            initiative.computed_hours = totals.total_hours
            initiative.shirt_size = size
            changed += 1
        db.commit()
    return changed
