"""
Document Verification Routes (public, no authentication)

GET /verify-document/{token} - Check a printed document's token
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text

from portal.db.postgres import Database, get_database
from portal.core.logging import get_logger
from portal.services.documents import DocumentVerifier
from portal.schemas.schemas import DocumentVerificationResponse

router = APIRouter(tags=["Documents"])
logger = get_logger(__name__)


def get_document_verifier(request: Request) -> DocumentVerifier:
    """The verifier configured at startup (app.state.document_verifier)."""
    return request.app.state.document_verifier


@router.get("/verify-document/{token}", response_model=DocumentVerificationResponse, name="verify_document")
async def verify_document(
    token: str,
    verifier: DocumentVerifier = Depends(get_document_verifier),
    db: Database = Depends(get_database)
):
    """
    Validity of a document token plus the student it was issued for.

    Always answers 200: an invalid token is a normal outcome here.
    """
    verified_at = datetime.now(timezone.utc)
    result = verifier.verify(token)
    if not result.valid:
        logger.info("document_rejected", error=result.error)
        return DocumentVerificationResponse(valid=False, verified_at=verified_at, error=result.error)

    student_id = str(result.claims.get("student_id"))
    with db.session() as session:
        student = session.execute(
            text("SELECT lib_nom_pat_ind, lib_pr1_ind FROM students WHERE cod_etu = :cod_etu"),
            {"cod_etu": student_id},
        ).mappings().first()

    if not student:
        return DocumentVerificationResponse(
            valid=False, student_id=student_id, verified_at=verified_at, error="Student not found"
        )

    return DocumentVerificationResponse(
        valid=True,
        student_id=student_id,
        student_name=" ".join(p for p in (student["lib_nom_pat_ind"], student["lib_pr1_ind"]) if p),
        semester=result.claims.get("semester"),
        issued_at=result.claims.get("issued_at"),
        verified_at=verified_at,
    )
