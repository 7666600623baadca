"""
Oracle source access (read-only) using python-oracledb.

Rows come back as dicts keyed by lower-cased column name so they can be
passed straight to the Postgres upserts.
"""

from typing import Dict, Iterable, List, Optional, Tuple

import oracledb

from portal.core.config import Settings
from portal.core.errors import ConfigurationError
from portal.core.logging import get_logger

logger = get_logger(__name__)

_thick_mode_initialized = False


def in_clause(name: str, values: Iterable) -> Tuple[str, Dict[str, object]]:
    """
    Oracle cannot bind a list, so expand `name IN (...)` into numbered binds.

    in_clause("year", [2023, 2024]) -> (":year0, :year1", {"year0": 2023, "year1": 2024})
    """
    params = {f"{name}{i}": value for i, value in enumerate(values)}
    if not params:
        raise ValueError(f"Empty value list for IN clause '{name}'")
    return ", ".join(f":{key}" for key in params), params


class OracleSource:
    """
    Thin wrapper around one oracledb connection.

    Usage:
        with OracleSource.from_settings(settings) as source:
            rows = source.fetch_all("SELECT COD_ETU FROM INDIVIDU")
    """

    def __init__(self, user: str, password: str, dsn: str, lib_dir: Optional[str] = None):
        self.user = user
        self.password = password
        self.dsn = dsn
        self.lib_dir = lib_dir
        self.connection = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "OracleSource":
        if not settings.oracle_user:
            raise ConfigurationError("ORACLE_USER is not configured")
        return cls(
            user=settings.oracle_user,
            password=settings.oracle_password,
            dsn=settings.oracle_dsn,
            lib_dir=settings.oracle_client_lib_dir,
        )

    def open(self) -> "OracleSource":
        global _thick_mode_initialized
        if self.lib_dir and not _thick_mode_initialized:
            # Thick mode can only be enabled once per process
            oracledb.init_oracle_client(lib_dir=self.lib_dir)
            _thick_mode_initialized = True
        self.connection = oracledb.connect(user=self.user, password=self.password, dsn=self.dsn)
        logger.info("oracle_connected", dsn=self.dsn, thick=not oracledb.is_thin_mode())
        return self

    def close(self) -> None:
        if self.connection is not None:
            self.connection.close()
            self.connection = None

    def __enter__(self) -> "OracleSource":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def fetch_all(self, sql: str, params: Optional[dict] = None) -> List[dict]:
        if self.connection is None:
            self.open()
        with self.connection.cursor() as cursor:
            cursor.arraysize = 1000
            cursor.execute(sql, params or {})
            columns = [col[0].lower() for col in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def test_connection(self) -> bool:
        try:
            rows = self.fetch_all("SELECT 1 AS test FROM DUAL")
            return rows[0]["test"] == 1
        except oracledb.Error as e:
            logger.warning("oracle_unreachable", error=str(e))
            return False
