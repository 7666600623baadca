#!/usr/bin/env python3
"""
Semester Backfill Script

Repairs rows already in PostgreSQL after a change to the classification
rules, without going back to Oracle:
1. Placeholder elements for grade codes missing from element_pedagogi
2. Element type / semester number of every element
3. Academic level / yearly flag of pedagogical situation rows

Usage: python scripts/backfill_semesters.py
"""
import sys
sys.path.insert(0, '.')

from portal.core.config import get_settings
from portal.core.logging import setup_logging
from portal.db.postgres import Database
from portal.services.backfill import (
    create_missing_elements,
    recompute_element_classification,
    reclassify_pedagogical_situation,
)


def main():
    settings = get_settings()
    setup_logging(settings)

    print("=" * 50)
    print("STUDENT PORTAL - SEMESTER BACKFILL")
    print("=" * 50)

    db = Database.from_settings(settings)
    try:
        if not db.test_connection():
            print("\n❌ PostgreSQL: FAILED")
            sys.exit(1)

        print("\n[1] Creating missing elements...")
        print(f"    ✅ {create_missing_elements(db)} placeholder elements")

        print("\n[2] Reclassifying elements...")
        print(f"    ✅ {recompute_element_classification(db)} elements changed")

        print("\n[3] Reclassifying pedagogical situation...")
        print(f"    ✅ {reclassify_pedagogical_situation(db)} rows changed")
    finally:
        db.dispose()

    print("\n" + "=" * 50)
    print("Backfill complete!")
    print("=" * 50)


if __name__ == "__main__":
    main()
