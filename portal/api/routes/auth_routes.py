"""
Authentication Routes

POST /auth/login - Student login with CIN, get JWT token
"""

from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy import text

from portal.db.postgres import Database, get_database
from portal.core.auth import create_student_token
from portal.core.logging import get_logger
from portal.schemas.schemas import StudentLoginRequest, StudentLoginResponse, StudentSummary

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = get_logger(__name__)


@router.post("/login", response_model=StudentLoginResponse)
async def login(request: StudentLoginRequest, db: Database = Depends(get_database)):
    """
    Login with CIN and receive a JWT access token (24h).

    Until portal passwords exist, the password is the student code (cod_etu).
    Include token in requests: Authorization: Bearer <token>
    """
    if not request.cin or not request.password:
        raise HTTPException(status_code=400, detail="CIN and password are required")

    with db.session() as session:
        student = session.execute(
            text("""
                SELECT id, cod_etu, lib_nom_pat_ind, lib_pr1_ind, cin_ind, lib_etp
                FROM students WHERE cin_ind = :cin
            """),
            {"cin": request.cin.strip()},
        ).mappings().first()

    if not student or request.password != student["cod_etu"]:
        logger.info("student_login_failed", cin=request.cin)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_student_token(dict(student))
    logger.info("student_login", cod_etu=student["cod_etu"])

    return StudentLoginResponse(
        token=token,
        student=StudentSummary(
            id=student["id"],
            cod_etu=student["cod_etu"],
            nom=student["lib_nom_pat_ind"],
            prenom=student["lib_pr1_ind"],
            cin=student["cin_ind"],
            etape=student["lib_etp"],
        ),
    )
