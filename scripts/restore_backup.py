#!/usr/bin/env python3
"""
Restore a farm backup file into a farm.

The file is always validated first; errors abort, warnings are printed.
Run from project root. Uses .env for credentials.
"""
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from backend.dependencies import get_firestore_client
from backend.models.backup import RestoreMode
from backend.services import backup_service


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("file", type=Path)
    parser.add_argument("--farm-id", required=True, help="Destination farm")
    parser.add_argument("--user-id", required=True, help="User the restored records are assigned to")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in RestoreMode],
        default=RestoreMode.merge.value,
        help="replace deletes the farm's current records first",
    )
    parser.add_argument("--dry-run", action="store_true", help="Validate only")
    args = parser.parse_args(argv)

    data, validation = backup_service.read_backup_file(args.file.read_bytes(), args.farm_id)
    if validation.preview:
        meta = validation.preview
        print(f"Backup of farm {meta.get('farmName') or meta.get('farmId')} "
              f"exported {meta.get('exportDate', '?')} by {meta.get('exportedBy', '?')}")
        print(f"  counts: {meta.get('counts')}")
    for warning in validation.warnings:
        print(f"  warning: {warning}")
    for error in validation.errors:
        print(f"  error: {error}")

    if not validation.valid:
        print("\nBackup file is invalid; nothing was imported.")
        return 1
    if args.dry_run:
        print("\nBackup file is valid (dry run).")
        return 0

    try:
        db = get_firestore_client()
    except Exception as e:
        print(f"Firestore connection failed: {e}")
        return 1

    result = backup_service.restore_farm_backup(
        db, data, args.farm_id, args.user_id, RestoreMode(args.mode)
    )
    for name, count in result.counts.items():
        print(f"  {name}: {count} docs restored")
    for error in result.errors:
        print(f"  error: {error}")

    print(f"\nRestore {'complete' if result.success else 'finished with errors'}")
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
