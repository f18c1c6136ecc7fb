"""Database backups.

File-level copies of the SQLite data file into `settings.backup_dir`, plus a
small timer-driven scheduler that takes them periodically. Scheduled failures
are logged and the next run is still scheduled; only explicit API/CLI calls
surface `BackupError` to the caller.
"""

from __future__ import annotations

import logging
import shutil
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy.engine import Engine

from estimator.config import settings
from estimator.database import engine as default_engine
from estimator.database import sqlite_database_path
from estimator.errors import BackupError, EntityValidationError, NotFoundError

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "estimator-db-"
BACKUP_SUFFIX = ".bak"


@dataclass(frozen=True)
class BackupFile:
    filename: str
    size: int
    created_at: datetime


def _database_file(database_path: Path | None) -> Path:
    path = database_path or sqlite_database_path()
    if path is None:
        raise BackupError("Backups are only supported for file-based SQLite databases")
    return path


def _backup_dir(backup_dir: Path | None) -> Path:
    return Path(backup_dir or settings.backup_dir)


def backup_database(*, database_path: Path | None = None, backup_dir: Path | None = None) -> Path:
    """Copy the database file to a new timestamped backup and return its path."""
    source = _database_file(database_path)
    if not source.exists():
        raise BackupError(f"Database file not found: {source}")

    target_dir = _backup_dir(backup_dir)
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    target = target_dir / f"{BACKUP_PREFIX}{stamp}{BACKUP_SUFFIX}"
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)
    except OSError as exc:
        raise BackupError(f"Could not write backup {target.name}: {exc}") from exc
    logger.info("Database backed up to %s", target)
    return target


def list_backups(*, backup_dir: Path | None = None) -> list[BackupFile]:
    """Return existing backups, newest first."""
    target_dir = _backup_dir(backup_dir)
    if not target_dir.is_dir():
        return []
    backups = []
    for path in target_dir.glob(f"{BACKUP_PREFIX}*{BACKUP_SUFFIX}"):
        stat = path.stat()
        backups.append(
            BackupFile(
                filename=path.name,
                size=stat.st_size,
                created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )
        )
    # Filenames embed a sortable UTC timestamp; mtime alone is not reliable after copies.
    return sorted(backups, key=lambda backup: (backup.filename, backup.created_at), reverse=True)


def restore_database(
    filename: str,
    *,
    database_path: Path | None = None,
    backup_dir: Path | None = None,
    db_engine: Engine | None = None,
) -> Path:
    """Replace the live database with a named backup.

    Only bare filenames from the backup directory are accepted. A safety backup
    of the current file is taken first, and pooled connections are disposed so
    the next request opens the restored file.
    """
    if not filename or Path(filename).name != filename or filename in {".", ".."}:
        raise EntityValidationError(f"Invalid backup filename: {filename!r}")

    target_dir = _backup_dir(backup_dir)
    source = target_dir / filename
    if not source.is_file():
        raise NotFoundError.for_entity("Backup", filename)

    destination = _database_file(database_path)
    if destination.exists():
        safety = backup_database(database_path=destination, backup_dir=target_dir)
        logger.info("Safety backup taken before restore: %s", safety.name)

    (db_engine or default_engine).dispose()
    try:
        shutil.copy2(source, destination)
    except OSError as exc:
        raise BackupError(f"Could not restore backup {filename}: {exc}") from exc
    logger.warning("Database restored from backup %s", filename)
    return destination


class BackupScheduler:
    """Runs `backup_database` every N minutes on a daemon timer thread."""

    def __init__(self, backup=backup_database) -> None:
        self._backup = backup
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self.interval_minutes: int | None = None

    @property
    def running(self) -> bool:
        return self._timer is not None

    def start(self, interval_minutes: int) -> None:
        with self._lock:
            self._cancel()
            self.interval_minutes = interval_minutes
            self._schedule()
        logger.info("Automatic backups scheduled every %s minutes", interval_minutes)

    def reschedule(self, interval_minutes: int) -> None:
        self.start(interval_minutes)

    def stop(self) -> None:
        with self._lock:
            self._cancel()
            self.interval_minutes = None

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self) -> None:
        timer = threading.Timer(self.interval_minutes * 60, self._run)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _run(self) -> None:
        try:
            self._backup()
        except Exception:
            logger.exception("Scheduled backup failed")
        with self._lock:
            if self._timer is None or not self.interval_minutes:
                return
            self._cancel()
            self._schedule()


scheduler = BackupScheduler()
