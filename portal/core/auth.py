"""
Authentication Utility - JWT and Password handling.

Provides:
- Password hashing with bcrypt (admin accounts)
- JWT token creation/verification
- FastAPI dependencies for student and admin routes

Students authenticate with their CIN; admins with a username, checked
against the `admins` table first and the configured fallback account second.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import text

from portal.core.config import get_settings
from portal.core.logging import get_logger
from portal.db.postgres import Database

settings = get_settings()
logger = get_logger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer token extractor; missing tokens are reported by the dependencies (401)
bearer_scheme = HTTPBearer(auto_error=False)

ROLE_SUPER_ADMIN = "SUPER_ADMIN"


def hash_password(password: str) -> str:
    """Hash password with bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.student_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def create_student_token(student: dict) -> str:
    return create_access_token(
        data={"studentId": student["id"], "codEtu": student["cod_etu"], "cin": student["cin_ind"]},
        expires_delta=timedelta(minutes=settings.student_token_expire_minutes),
    )


def _admin_token(claims: dict, minutes: int) -> str:
    claims = {**claims, "isAdmin": True, "loginTime": datetime.now(timezone.utc).isoformat()}
    return create_access_token(data=claims, expires_delta=timedelta(minutes=minutes))


def authenticate_admin(db: Database, username: str, password: str) -> Optional[Tuple[str, dict]]:
    """
    Returns (token, user) or None.

    1. `admins` table, bcrypt hash: 12h token with the stored role
    2. configured fallback account: 8h SUPER_ADMIN token
    """
    with db.session() as session:
        admin = session.execute(
            text("SELECT id, username, password_hash, full_name, role FROM admins WHERE username = :username"),
            {"username": username},
        ).mappings().first()

    if admin and verify_password(password, admin["password_hash"]):
        token = _admin_token(
            {"id": admin["id"], "username": admin["username"], "role": admin["role"]},
            settings.admin_token_expire_minutes,
        )
        return token, {"username": admin["username"], "role": admin["role"], "fullName": admin["full_name"]}

    if username == settings.admin_username and password == settings.admin_password:
        token = _admin_token(
            {"username": username, "role": ROLE_SUPER_ADMIN},
            settings.admin_fallback_expire_minutes,
        )
        return token, {"username": username, "role": ROLE_SUPER_ADMIN}

    return None


async def get_current_student(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    """
    FastAPI dependency - student from the Bearer token.

    Usage:
        @router.get("/me")
        async def route(student: dict = Depends(get_current_student)):
            return student
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)
    if not payload or not payload.get("studentId") or not payload.get("codEtu"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")

    return {"student_id": payload["studentId"], "cod_etu": payload["codEtu"], "cin": payload.get("cin")}


async def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    """Dependency - require an admin token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)
    if not payload or not payload.get("isAdmin"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin token")

    return payload
