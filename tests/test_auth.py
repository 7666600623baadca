"""Tests for authentication helpers and login endpoints."""

from datetime import timedelta

import pytest

from portal.core.auth import (
    authenticate_admin,
    create_access_token,
    create_student_token,
    decode_token,
    hash_password,
    verify_password,
)
from portal.core.config import get_settings


class TestTokens:
    """Tests for JWT helpers."""

    def test_student_token_claims(self):
        token = create_student_token({"id": 5, "cod_etu": "20230005", "cin_ind": "CD1"})
        payload = decode_token(token)
        assert payload["studentId"] == 5
        assert payload["codEtu"] == "20230005"
        assert payload["cin"] == "CD1"
        assert "exp" in payload

    def test_expired_token_rejected(self):
        token = create_access_token({"studentId": 1}, expires_delta=timedelta(seconds=-10))
        assert decode_token(token) is None

    def test_garbage_token_rejected(self):
        assert decode_token("not-a-token") is None


class TestPasswords:
    def test_hash_roundtrip(self):
        hashed = hash_password("s3cret")
        assert hashed != "s3cret"
        assert verify_password("s3cret", hashed)
        assert not verify_password("wrong", hashed)


class TestAuthenticateAdmin:
    """Tests for authenticate_admin()."""

    def test_database_account(self, fake_db):
        fake_db.on("FROM admins", [{
            "id": 3, "username": "alice", "password_hash": hash_password("pw"),
            "full_name": "Alice", "role": "RH_MANAGER",
        }])
        token, user = authenticate_admin(fake_db, "alice", "pw")

        assert user == {"username": "alice", "role": "RH_MANAGER", "fullName": "Alice"}
        payload = decode_token(token)
        assert payload["isAdmin"] is True
        assert payload["role"] == "RH_MANAGER"
        assert "loginTime" in payload

    def test_fallback_account(self, fake_db):
        settings = get_settings()
        token, user = authenticate_admin(fake_db, settings.admin_username, settings.admin_password)

        assert user["role"] == "SUPER_ADMIN"
        assert decode_token(token)["isAdmin"] is True

    def test_wrong_password(self, fake_db):
        fake_db.on("FROM admins", [{
            "id": 3, "username": "alice", "password_hash": hash_password("pw"),
            "full_name": "Alice", "role": "RH_MANAGER",
        }])
        assert authenticate_admin(fake_db, "alice", "nope") is None


class TestStudentLogin:
    """Tests for POST /api/auth/login."""

    STUDENT = {"id": 1, "cod_etu": "20230001", "lib_nom_pat_ind": "ALAMI", "lib_pr1_ind": "Omar",
               "cin_ind": "AB123456", "lib_etp": "Licence Droit"}

    def test_login_success(self, client, fake_db):
        fake_db.on("FROM students WHERE cin_ind", [self.STUDENT])
        response = client.post("/api/auth/login", json={"cin": "AB123456", "password": "20230001"})

        assert response.status_code == 200
        data = response.json()
        assert data["student"]["cod_etu"] == "20230001"
        assert decode_token(data["token"])["codEtu"] == "20230001"

    def test_wrong_password(self, client, fake_db):
        fake_db.on("FROM students WHERE cin_ind", [self.STUDENT])
        response = client.post("/api/auth/login", json={"cin": "AB123456", "password": "nope"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials"}

    @pytest.mark.parametrize("body", [{}, {"cin": "AB123456"}, {"password": "x"}])
    def test_missing_fields(self, client, body):
        response = client.post("/api/auth/login", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "CIN and password are required"}


class TestAdminLogin:
    """Tests for POST /api/admin/login and the admin guard."""

    def test_fallback_login(self, client):
        settings = get_settings()
        response = client.post(
            "/api/admin/login", json={"username": settings.admin_username, "password": settings.admin_password}
        )
        assert response.status_code == 200
        assert response.json()["user"]["role"] == "SUPER_ADMIN"

    def test_invalid_credentials(self, client):
        response = client.post("/api/admin/login", json={"username": "admin", "password": "wrong-password"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid admin credentials"}

    def test_missing_fields(self, client):
        response = client.post("/api/admin/login", json={"username": "admin"})
        assert response.status_code == 400

    def test_verify(self, client, admin_headers):
        response = client.get("/api/admin/verify", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["admin"]["username"] == "admin"


class TestGuards:
    """Missing token -> 401, bad token -> 403."""

    def test_student_route_without_token(self, client):
        response = client.get("/api/student/me")
        assert response.status_code == 401
        assert response.json() == {"error": "Access token required"}

    def test_student_route_with_bad_token(self, client):
        response = client.get("/api/student/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 403
        assert response.json() == {"error": "Invalid token"}

    def test_admin_route_without_token(self, client):
        response = client.get("/api/admin/dashboard/stats")
        assert response.status_code == 401
        assert response.json() == {"error": "Admin access token required"}

    def test_admin_route_with_student_token(self, client, student_headers):
        response = client.get("/api/admin/dashboard/stats", headers=student_headers)
        assert response.status_code == 403
        assert response.json() == {"error": "Invalid admin token"}
