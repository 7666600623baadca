"""
Document verification.

Printed transcripts carry a token (QR code / link). Anyone holding the
token can check, through the public endpoint, that the document was
issued by the portal and for whom.

The API only relies on the DocumentVerifier contract:
    verify(token) -> VerificationResult(valid, claims, error)
SignedTokenVerifier is the default implementation (JWT signed with a
dedicated secret); another scheme can be plugged in through app.state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from jose import ExpiredSignatureError, JWTError, jwt

from portal.core.logging import get_logger

logger = get_logger(__name__)

DOCUMENT_TOKEN_TYPE = "document"


@dataclass
class VerificationResult:
    valid: bool
    claims: dict = field(default_factory=dict)
    error: Optional[str] = None


class DocumentVerifier(Protocol):
    def verify(self, token: str) -> VerificationResult:
        ...


class SignedTokenVerifier:
    """
    Issues and verifies signed document tokens.

    Claims: student_id, semester, item_count, issued_at (+ typ, exp).
    """

    def __init__(self, secret: str, algorithm: str = "HS256", validity_days: int = 365):
        self.secret = secret
        self.algorithm = algorithm
        self.validity_days = validity_days

    def issue(self, student_id: str, semester: Optional[str] = None, item_count: int = 0) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "typ": DOCUMENT_TOKEN_TYPE,
            "student_id": student_id,
            "semester": semester,
            "item_count": item_count,
            "issued_at": now.isoformat(),
            "exp": now + timedelta(days=self.validity_days),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> VerificationResult:
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            return VerificationResult(valid=False, error="Document token expired")
        except JWTError:
            return VerificationResult(valid=False, error="Invalid document token")

        if claims.get("typ") != DOCUMENT_TOKEN_TYPE or not claims.get("student_id"):
            return VerificationResult(valid=False, error="Invalid document token")
        return VerificationResult(valid=True, claims=claims)
