#!/usr/bin/env python3
"""
Oracle -> PostgreSQL Sync Script

Jobs:
- full: elements, hierarchy, students, grades, pedagogical situation
- pedagogical_situation: current year's enrollments only
- laureats: graduates of the configured laureat years

Every step writes a row to sync_log. Exits with status 1 on the first failing step.

Usage:
    python scripts/sync_all.py
    python scripts/sync_all.py --job laureats --years 2024 2023
"""
import argparse
import sys
sys.path.insert(0, '.')

from portal.core.config import get_settings
from portal.core.errors import SyncError
from portal.core.logging import setup_logging
from portal.db.postgres import Database
from portal.schemas.schemas import SyncJob
from portal.services.sync_service import run_sync_job


def main():
    parser = argparse.ArgumentParser(description="Sync Apogee data into PostgreSQL")
    parser.add_argument("--job", choices=[j.value for j in SyncJob], default=SyncJob.full.value)
    parser.add_argument("--years", type=int, nargs="+", help="Academic years (default: from settings)")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings)

    print("=" * 50)
    print(f"STUDENT PORTAL - SYNC ({args.job})")
    print("=" * 50)

    db = Database.from_settings(settings)
    try:
        results = run_sync_job(db, settings, job=args.job, years=args.years)
    except SyncError as e:
        print(f"\n❌ Sync failed at step '{e.step}': {e}")
        sys.exit(1)
    finally:
        db.dispose()

    for result in results:
        print(f"\n✅ {result['sync_type']}")
        for key, value in result.items():
            if key != "sync_type":
                print(f"    {key}: {value}")

    print("\n" + "=" * 50)
    print("Sync complete!")
    print("=" * 50)


if __name__ == "__main__":
    main()
