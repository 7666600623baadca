#!/usr/bin/env python3
"""
Database Setup Script

Creates the PostgreSQL tables, columns added since the first release and
indexes (idempotent), then optionally creates an admin account.

Usage:
    python scripts/setup_database.py
    python scripts/setup_database.py --admin-username alice --admin-password secret
"""
import argparse
import sys
sys.path.insert(0, '.')

from sqlalchemy import text

from portal.core.auth import hash_password
from portal.core.config import get_settings
from portal.core.logging import setup_logging
from portal.db.postgres import Database
from portal.db.schema import init_schema
from portal.schemas.schemas import AdminRole


def create_admin(db: Database, username: str, password: str, role: AdminRole, full_name: str) -> bool:
    """Insert an admin; returns False if the username already exists."""
    with db.session() as session:
        row = session.execute(
            text("""
                INSERT INTO admins (username, password_hash, role, full_name)
                VALUES (:username, :password_hash, :role, :full_name)
                ON CONFLICT (username) DO NOTHING
                RETURNING id
            """),
            {
                "username": username,
                "password_hash": hash_password(password),
                "role": role.value,
                "full_name": full_name,
            }
        ).fetchone()
    return row is not None


def main():
    parser = argparse.ArgumentParser(description="Create the student portal schema")
    parser.add_argument("--admin-username")
    parser.add_argument("--admin-password")
    parser.add_argument("--admin-role", choices=[r.value for r in AdminRole], default=AdminRole.super_admin.value)
    parser.add_argument("--admin-name", default="")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings)

    print("=" * 50)
    print("STUDENT PORTAL - DATABASE SETUP")
    print("=" * 50)

    db = Database.from_settings(settings)
    try:
        print(f"\n[1] Connecting to {settings.postgres_host}:{settings.postgres_port}/{settings.postgres_db}...")
        if not db.test_connection():
            print("    ❌ PostgreSQL: FAILED")
            sys.exit(1)
        print("    ✅ PostgreSQL: CONNECTED")

        print("\n[2] Creating tables and indexes...")
        count = init_schema(db)
        print(f"    ✅ {count} statements executed")

        if args.admin_username:
            print("\n[3] Creating admin account...")
            if not args.admin_password:
                print("    ❌ --admin-password is required with --admin-username")
                sys.exit(1)
            created = create_admin(
                db, args.admin_username, args.admin_password, AdminRole(args.admin_role), args.admin_name
            )
            if created:
                print(f"    ✅ Admin '{args.admin_username}' created")
            else:
                print(f"    ⚠️  Admin '{args.admin_username}' already exists")
    finally:
        db.dispose()

    print("\n" + "=" * 50)
    print("Setup complete!")
    print("=" * 50)


if __name__ == "__main__":
    main()
