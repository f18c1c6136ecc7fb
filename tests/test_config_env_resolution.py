"""Mini-README: Tests that configuration resolves the `.env` path deterministically.

These checks prevent settings drift (database file, backup directory) caused by
starting the app from a directory other than the repository root.
"""

from pathlib import Path

from estimator.config import ENV_FILE_PATH, PROJECT_ROOT, Settings


def test_env_file_path_is_absolute_and_repo_relative() -> None:
    """Ensure settings look for `.env` in the repository root, not cwd."""
    assert ENV_FILE_PATH.is_absolute()
    assert ENV_FILE_PATH == PROJECT_ROOT / ".env"
    assert Settings.model_config["env_file"] == ENV_FILE_PATH


def test_project_root_matches_package_parent() -> None:
    """Guard rail: keep project root aligned with the `estimator/` parent folder."""
    assert PROJECT_ROOT == Path(__file__).resolve().parents[1]


def test_environment_overrides_defaults(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("BACKUP_DIR", str(tmp_path))
    monkeypatch.setenv("HOURS_PER_DAY", "7.5")
    monkeypatch.setenv("BACKUPS_ENABLED", "false")

    configured = Settings(_env_file=None)

    assert configured.backup_dir == tmp_path
    assert configured.hours_per_day == 7.5
    assert configured.backups_enabled is False
    assert configured.hours_per_month == 160
