from contextlib import contextmanager
from typing import Iterator, List, Optional

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from portal.core.config import Settings
from portal.core.logging import get_logger

logger = get_logger(__name__)


class Database:
    """
    PostgreSQL engine + session factory with an explicit lifecycle.

    Created once at startup (FastAPI lifespan or a script's main()),
    closed with dispose() at shutdown.
    Usage:
        db = Database.from_settings(settings)
        with db.session() as session:
            session.execute(text("SELECT * FROM students"))
        db.dispose()
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        # Session factory
        self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        # pool_size: connections kept ready, max_overflow: extra ones under load
        engine = create_engine(
            settings.postgres_url,
            pool_size=settings.postgres_pool_size,
            max_overflow=settings.postgres_max_overflow,
            pool_pre_ping=True,
            echo=False,
        )
        return cls(engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Context manager for database sessions.
        Commits on success, rolls back on any exception.
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def execute_raw_sql(self, sql: str, params: Optional[dict] = None) -> List[dict]:
        """
        Execute raw SQL and return results as list of dicts.
        """
        with self.session() as session:
            result = session.execute(text(sql), params or {})
            if not result.returns_rows:
                return []
            columns = result.keys()
            return [dict(zip(columns, row)) for row in result.fetchall()]

    def test_connection(self) -> bool:
        """
        Test if PostgreSQL is reachable.
        Returns True if connection successful, False otherwise.
        """
        try:
            with self.session() as session:
                row = session.execute(text("SELECT 1 as test")).fetchone()
                return row[0] == 1
        except Exception as e:
            logger.warning("postgres_unreachable", error=str(e))
            return False

    def dispose(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()


def get_database(request: Request) -> Database:
    """
    Dependency for FastAPI route injection.
    Usage:
        @router.get("/students")
        def list_students(db: Database = Depends(get_database)):
            ...
    """
    return request.app.state.db
