"""Mini-README: Regression tests for Alembic bootstrap behavior on legacy DBs."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text

from estimator.database import (
    BASELINE_REVISION,
    _bootstrap_legacy_schema_if_required,
    _has_alembic_version,
    _has_existing_app_schema,
    ensure_sqlite_schema,
    sqlite_database_path,
)


def _alembic_config(database_url: str | None = None) -> Config:
    """Create a minimal Config object pointing at the project migrations."""
    cfg = Config()
    cfg.set_main_option("script_location", str(Path(__file__).resolve().parents[1] / "alembic"))
    if database_url:
        cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def _legacy_initiatives_table(connection) -> None:
    connection.execute(
        text(
            "CREATE TABLE initiatives (id INTEGER PRIMARY KEY, name VARCHAR(200), selected_factors TEXT, "
            "computed_hours FLOAT, shirt_size VARCHAR(10), journal_entries TEXT)"
        )
    )


def test_detects_legacy_schema_without_alembic_tracking(monkeypatch) -> None:
    engine = create_engine("sqlite://")
    with engine.begin() as connection:
        _legacy_initiatives_table(connection)

    assert _has_existing_app_schema(engine) is True
    assert _has_alembic_version(engine) is False

    stamped: list[str] = []

    def fake_stamp(_: Config, revision: str) -> None:
        stamped.append(revision)

    monkeypatch.setattr("estimator.database.command.stamp", fake_stamp)

    _bootstrap_legacy_schema_if_required(_alembic_config(), engine)

    assert stamped == [BASELINE_REVISION]


def test_does_not_stamp_fresh_database(monkeypatch) -> None:
    engine = create_engine("sqlite://")
    stamped: list[str] = []
    monkeypatch.setattr("estimator.database.command.stamp", lambda _cfg, revision: stamped.append(revision))

    _bootstrap_legacy_schema_if_required(_alembic_config(), engine)

    assert _has_existing_app_schema(engine) is False
    assert stamped == []


def test_does_not_stamp_when_alembic_version_exists(monkeypatch) -> None:
    engine = create_engine("sqlite://")
    with engine.begin() as connection:
        _legacy_initiatives_table(connection)
        connection.execute(text("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL)"))
        connection.execute(text("INSERT INTO alembic_version (version_num) VALUES ('5b2e8d4a61f0')"))

    stamped: list[str] = []
    monkeypatch.setattr("estimator.database.command.stamp", lambda _cfg, revision: stamped.append(revision))

    _bootstrap_legacy_schema_if_required(_alembic_config(), engine)

    assert _has_alembic_version(engine) is True
    assert stamped == []


def test_ensure_sqlite_schema_backfills_missing_columns() -> None:
    engine = create_engine("sqlite://")
    with engine.begin() as connection:
        _legacy_initiatives_table(connection)
        connection.execute(text("CREATE TABLE resource_types (id VARCHAR(36) PRIMARY KEY, name VARCHAR(120))"))

    ensure_sqlite_schema(engine)

    inspector = inspect(engine)
    initiative_columns = {column["name"] for column in inspector.get_columns("initiatives")}
    resource_columns = {column["name"] for column in inspector.get_columns("resource_types")}
    assert {"manual_resources", "categories", "estimated_duration"} <= initiative_columns
    assert {"resource_category", "resource_cost", "journal_entries"} <= resource_columns


def test_upgrade_head_builds_full_schema(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'fresh.db'}"

    command.upgrade(_alembic_config(url), "head")

    tables = set(inspect(create_engine(url)).get_table_names())
    assert {
        "initiatives",
        "resource_types",
        "estimation_factors",
        "shirt_sizes",
        "shirt_size_audit",
        "dropdown_options",
        "categories",
        "system_settings",
    } <= tables


def test_legacy_database_is_stamped_then_upgraded(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'legacy.db'}"
    engine = create_engine(url)
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE resource_types (id VARCHAR(36) PRIMARY KEY, name VARCHAR(120))"))
        connection.execute(
            text(
                "CREATE TABLE estimation_factors (id VARCHAR(36) PRIMARY KEY, name VARCHAR(160), "
                "hours_per_resource_type TEXT)"
            )
        )
        _legacy_initiatives_table(connection)

    cfg = _alembic_config(url)
    _bootstrap_legacy_schema_if_required(cfg, engine)
    command.upgrade(cfg, "head")

    inspector = inspect(engine)
    assert "value_per_resource_type" in {column["name"] for column in inspector.get_columns("estimation_factors")}
    assert "manual_resources" in {column["name"] for column in inspector.get_columns("initiatives")}
    assert "categories" in inspector.get_table_names()


def test_sqlite_database_path_ignores_memory_and_other_backends(tmp_path) -> None:
    assert sqlite_database_path("sqlite://") is None
    assert sqlite_database_path("sqlite:///:memory:") is None
    assert sqlite_database_path("postgresql://user@host/db") is None
    assert sqlite_database_path(f"sqlite:///{tmp_path / 'x.db'}") == (tmp_path / "x.db").resolve()
