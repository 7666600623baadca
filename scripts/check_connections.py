#!/usr/bin/env python3
"""
Connection Check Script

Run this to verify the PostgreSQL cache and the Oracle source are reachable.
Usage: python scripts/check_connections.py
"""
import sys
sys.path.insert(0, '.')

from portal.core.config import get_settings
from portal.core.errors import ConfigurationError
from portal.core.logging import setup_logging
from portal.db.oracle import OracleSource
from portal.db.postgres import Database


def main():
    settings = get_settings()
    setup_logging(settings)
    ok = True

    print("=" * 50)
    print("STUDENT PORTAL - CONNECTION CHECK")
    print("=" * 50)

    # PostgreSQL
    print("\n[1] Checking PostgreSQL...")
    print(f"    URL: postgresql://{settings.postgres_user}:****@{settings.postgres_host}:{settings.postgres_port}/{settings.postgres_db}")
    db = Database.from_settings(settings)
    try:
        if db.test_connection():
            print("    ✅ PostgreSQL: CONNECTED")
        else:
            print("    ❌ PostgreSQL: FAILED")
            ok = False
    finally:
        db.dispose()

    # Oracle
    print("\n[2] Checking Oracle (Apogee)...")
    print(f"    DSN: {settings.oracle_dsn}")
    try:
        source = OracleSource.from_settings(settings)
    except ConfigurationError as e:
        print(f"    ⚠️  Oracle: {e}")
        ok = False
    else:
        try:
            if source.test_connection():
                print("    ✅ Oracle: CONNECTED")
            else:
                print("    ❌ Oracle: FAILED")
                ok = False
        finally:
            source.close()

    print("\n" + "=" * 50)
    print("Connection check complete!")
    print("=" * 50)

    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
