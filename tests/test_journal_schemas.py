"""Mini-README: Tests for journal entry parsing, rendering and payload validation."""

import json
import logging

import pytest
from pydantic import ValidationError
from sqlalchemy import select, text

from estimator.audit import INITIATIVE_TRACKED_KEYS
from estimator.journal import append_journal, audit_entry, comment_entry, render_journal
from estimator.models import Initiative, JournalAction
from estimator.schemas import (
    AuditEntry,
    CommentEntry,
    EstimationFactorCreate,
    InitiativeCreate,
    InitiativeImportRow,
    parse_journal,
)


def test_parse_journal_decodes_tagged_entries_and_skips_garbage(caplog) -> None:
    raw = [
        {"type": "comment", "timestamp": "2026-01-05T10:00:00Z", "text": "Kick-off"},
        {
            "type": "audit",
            "timestamp": "2026-01-06T10:00:00Z",
            "action": "updated",
            "old_data": json.dumps({"name": "A"}),
            "new_data": {"name": "B"},
        },
        {"type": "mystery"},
        "not an entry",
    ]
    with caplog.at_level(logging.WARNING, logger="estimator.schemas"):
        entries = parse_journal(raw)

    assert [type(entry) for entry in entries] == [CommentEntry, AuditEntry]
    assert entries[1].old_data == {"name": "A"}
    assert "Skipping unreadable journal entry" in caplog.text


def test_malformed_legacy_snapshot_becomes_empty() -> None:
    entry = AuditEntry(timestamp="2026-01-06T10:00:00Z", action="updated", old_data="{broken", new_data={})
    assert entry.old_data == {}


def test_render_journal_attaches_change_lines_to_updates_only() -> None:
    holder = Initiative(journal_entries=[])
    append_journal(holder, audit_entry(JournalAction.CREATED, {}, {"name": "Portal"}))
    append_journal(holder, audit_entry(JournalAction.UPDATED, {"name": "Portal"}, {"name": "Portal v2"}))
    append_journal(holder, comment_entry("Reviewed"))

    rendered = render_journal(holder.journal_entries, INITIATIVE_TRACKED_KEYS)

    assert [getattr(entry, "action", None) for entry in rendered] == [
        JournalAction.CREATED,
        JournalAction.UPDATED,
        None,
    ]
    assert rendered[0].changes == []
    assert rendered[1].changes == ["Changed name from Portal to Portal v2"]
    assert rendered[2].text == "Reviewed"


def test_append_journal_assigns_a_new_list() -> None:
    holder = Initiative(journal_entries=[])
    before = holder.journal_entries
    append_journal(holder, comment_entry("hi"))
    assert holder.journal_entries is not before
    assert len(holder.journal_entries) == 1


def test_initiative_payload_normalizes_optional_fields() -> None:
    payload = InitiativeCreate(
        name="  Portal  ",
        custom_id="",
        priority_num="",
        start_date="",
        manual_resources=None,
        categories=[" Platform ", "Platform", "", "Data"],
        selected_factors=[{"factorId": "f1", "quantity": 0, "hoursPerResourceType": {"dev": 8, "qa": 0}}],
    )
    assert payload.name == "Portal"
    assert payload.custom_id is None
    assert payload.priority_num is None
    assert payload.start_date is None
    assert payload.manual_resources.manualHours == {}
    assert payload.categories == ["Platform", "Data"]
    assert payload.selected_factors[0].quantity == 1
    assert payload.selected_factors[0].hoursPerResourceType == {"dev": 8}


@pytest.mark.parametrize(
    "payload",
    [
        {"name": ""},
        {"name": "   "},
        {"name": "x", "selected_factors": [{"factorId": "f1", "quantity": -2}]},
        {"name": "x", "manual_resources": {"manualHours": {"dev": -1}}},
        {"name": "x", "estimated_duration": -3},
    ],
)
def test_invalid_initiative_payloads_are_rejected(payload) -> None:
    with pytest.raises(ValidationError):
        InitiativeCreate(**payload)


def test_factor_payload_drops_zero_rates() -> None:
    payload = EstimationFactorCreate(name="API", hoursPerResourceType={"dev": 8, "qa": 0})
    assert payload.hoursPerResourceType == {"dev": 8}


def test_import_row_is_lenient_about_priority_number() -> None:
    assert InitiativeImportRow(name="A", priority_num="high").priority_num == 0
    assert InitiativeImportRow(name="A", priority_num="3").priority_num == 3
    assert InitiativeImportRow(name="").name is None


def test_malformed_json_column_loads_as_empty_container(db, caplog) -> None:
    db.execute(
        text(
            "INSERT INTO initiatives (name, selected_factors, manual_resources, categories, journal_entries, "
            "computed_hours, shirt_size) VALUES ('Legacy', '[{broken', '\"a string\"', NULL, '', 0, 'XS')"
        )
    )
    db.commit()

    with caplog.at_level(logging.WARNING, logger="estimator.models"):
        initiative = db.scalars(select(Initiative).where(Initiative.name == "Legacy")).one()

    assert initiative.selected_factors == []
    assert initiative.manual_resources == {}
    assert initiative.categories == []
    assert initiative.journal_entries == []
    assert "Discarding malformed JSON column value" in caplog.text
