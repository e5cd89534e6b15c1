#!/usr/bin/env python3
"""
Export one farm (farm document, animals, breeding records, reminders,
weight records, invitations) to a single JSON backup file.
Run from project root. Uses .env for credentials.
"""
import argparse
import sys
from pathlib import Path

# Add project root to path; pydantic-settings loads .env from cwd
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from backend.config import settings
from backend.dependencies import get_firestore_client
from backend.models.backup import BACKUP_COLLECTIONS
from backend.services import backup_service


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--farm-id", required=True)
    parser.add_argument("--user-id", required=True, help="Owner of reminders and weight records")
    parser.add_argument("--out", default=settings.backup_dir, help="Output directory")
    args = parser.parse_args(argv)

    try:
        db = get_firestore_client()
    except Exception as e:
        print(f"Firestore connection failed: {e}")
        return 1

    backup = backup_service.export_farm_backup(db, args.farm_id, args.user_id)

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / backup_service.export_filename(backup)
    out_path.write_text(backup_service.dump_backup(backup), encoding="utf-8")

    counts = backup["_meta"]["counts"]
    for name in BACKUP_COLLECTIONS:
        print(f"  {name}: {counts[name]} docs")
    print(f"\nFarm backup complete: {sum(counts.values())} total docs -> {out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
