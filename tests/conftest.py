"""Shared fixtures: an in-memory stand-in for the Postgres Database and API clients."""

from contextlib import contextmanager
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from portal.core.auth import create_access_token, create_student_token
from portal.main import create_app
from portal.services.documents import SignedTokenVerifier


def _normalize(sql) -> str:
    return " ".join(str(sql).split())


class FakeResult:
    """Subset of the SQLAlchemy Result API used by the application."""

    def __init__(self, rows):
        self.rows = [dict(r) for r in rows]
        self.rowcount = len(self.rows)
        self.returns_rows = True

    def mappings(self):
        return self

    def first(self):
        return self.rows[0] if self.rows else None

    def one(self):
        assert len(self.rows) == 1, "expected exactly one row"
        return self.rows[0]

    def all(self):
        return list(self.rows)

    def fetchall(self):
        return [tuple(r.values()) for r in self.rows]

    def fetchone(self):
        return tuple(self.rows[0].values()) if self.rows else None

    def scalar(self):
        return next(iter(self.rows[0].values())) if self.rows else None

    def scalars(self):
        return FakeScalars([next(iter(r.values())) for r in self.rows])


class FakeScalars:
    def __init__(self, values):
        self.values = values

    def all(self):
        return list(self.values)


class FakeSession:
    def __init__(self, db):
        self.db = db

    def execute(self, statement, params=None):
        return FakeResult(self.db.record(statement, params))


class FakeDatabase:
    """
    Answers queries with canned rows.

    `on(fragment, rows)` registers rows for every statement containing
    `fragment` (whitespace-normalized); the first registered match wins.
    Every statement is kept in `calls` as (sql, params).
    """

    def __init__(self):
        self.responses = []
        self.calls = []
        self.healthy = True

    def on(self, fragment: str, rows):
        self.responses.append((_normalize(fragment), rows))
        return self

    def record(self, sql, params=None):
        sql = _normalize(sql)
        self.calls.append((sql, dict(params or {})))
        for fragment, rows in self.responses:
            if fragment in sql:
                return rows
        return []

    def queries(self, fragment: str):
        return [(sql, params) for sql, params in self.calls if fragment in sql]

    @contextmanager
    def session(self):
        yield FakeSession(self)

    def execute_raw_sql(self, sql, params=None):
        return [dict(r) for r in self.record(sql, params)]

    def test_connection(self) -> bool:
        return self.healthy

    def dispose(self) -> None:
        pass


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def verifier():
    return SignedTokenVerifier("test-document-secret")


@pytest.fixture
def client(fake_db, verifier):
    app = create_app(db=fake_db, document_verifier=verifier)
    return TestClient(app)


@pytest.fixture
def student_headers():
    token = create_student_token({"id": 1, "cod_etu": "20230001", "cin_ind": "AB123456"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    token = create_access_token(
        {"username": "admin", "role": "SUPER_ADMIN", "isAdmin": True, "loginTime": "2025-01-01T08:00:00"},
        expires_delta=timedelta(hours=1),
    )
    return {"Authorization": f"Bearer {token}"}
