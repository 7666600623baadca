"""
Database module - PostgreSQL cache, Oracle source and schema management.
"""
from portal.db.postgres import Database, get_database

__all__ = [
    "Database",
    "get_database",
]
