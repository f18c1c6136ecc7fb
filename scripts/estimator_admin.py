#!/usr/bin/env python3
"""Mini-README: operator CLI for backups and cached estimate maintenance.

Subcommands:
- `backup`        copy the SQLite data file into the backup directory
- `list-backups`  show existing backups, newest first
- `restore FILE`  restore a backup by bare filename (a safety copy is taken first)
- `recompute`     refresh stale computed hours and shirt sizes on all initiatives
"""

from __future__ import annotations

import argparse
import logging
import sys

from estimator.backups import backup_database, list_backups, restore_database
from estimator.config import settings
from estimator.database import engine
from estimator.errors import EstimatorError
from estimator.services_estimates import recompute_initiative_totals


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Maintenance commands for the initiative estimator database.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("backup", help="Create a timestamped backup of the database file.")
    subparsers.add_parser("list-backups", help="List backups in the configured backup directory.")

    restore = subparsers.add_parser("restore", help="Restore the database from a backup file.")
    restore.add_argument("filename", help="Bare backup filename as shown by list-backups.")

    subparsers.add_parser(
        "recompute",
        help="Recompute computed_hours and shirt_size for every initiative from current rates and thresholds.",
    )
    return parser


def _run(args: argparse.Namespace) -> int:
    if args.command == "backup":
        path = backup_database()
        print(f"[estimator-admin] Backup written to {path}")
    elif args.command == "list-backups":
        backups = list_backups()
        if not backups:
            print(f"[estimator-admin] No backups found in {settings.backup_dir}")
        for backup in backups:
            print(f"{backup.filename}\t{backup.size}\t{backup.created_at.isoformat()}")
    elif args.command == "restore":
        restore_database(args.filename)
        print(f"[estimator-admin] Database restored from {args.filename}")
    elif args.command == "recompute":
        changed = recompute_initiative_totals(engine=engine)
        print(f"[estimator-admin] Recomputed totals; {changed} initiative(s) updated.")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=settings.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    try:
        return _run(args)
    except EstimatorError as exc:
        print(f"[estimator-admin] ERROR: {exc.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
