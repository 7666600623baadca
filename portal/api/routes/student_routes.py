"""
Student Routes

GET /student/me - Own profile
GET /student/grades - Grades by year / session / semester (?year, ?session)
GET /student/grade-stats - Averages and pass/fail counts per semester
GET /student/pedagogical-situation - Enrolled modules by year (?year)
GET /student/pedagogical-stats - Enrolled module counts per year
GET /student/administrative-situation - Registrations by year (?year)
GET /student/administrative-stats - Registration counts per year
GET /student/exams - Upcoming exam convocations
POST /student/documents - Verification token for a printed transcript
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Request
from sqlalchemy import text

from portal.db.postgres import Database, get_database
from portal.core.auth import get_current_student
from portal.core.config import get_settings
from portal.services.grades import format_grade_stats, organize_grades, organize_pedagogical_situation
from portal.services.exam_planning import ExamPlanningService
from portal.services.registrations import organize_administrative_situation
from portal.api.routes.document_routes import get_document_verifier
from portal.schemas.schemas import (
    StudentProfile, StudentProfileResponse, GradeStatsResponse,
    DocumentRequest, DocumentTokenResponse
)

router = APIRouter(prefix="/student", tags=["Student"])

# One parent per element, so multi-parent elements do not duplicate grades
GRADES_SQL = """
    SELECT
        g.cod_anu, g.cod_ses, g.cod_elp, g.not_elp, g.cod_tre,
        ep.cod_nel, ep.cod_pel, ep.lib_elp, ep.lic_elp, ep.lib_elp_arb,
        ep.element_type, ep.semester_number,
        parent.cod_elp_pere,
        parent_ep.lib_elp AS parent_lib_elp,
        parent_ep.cod_pel AS parent_cod_pel,
        parent_ep.semester_number AS parent_semester_number
    FROM grades g
    LEFT JOIN element_pedagogi ep ON g.cod_elp = ep.cod_elp
    LEFT JOIN LATERAL (
        SELECT eh.cod_elp_pere FROM element_hierarchy eh
        WHERE eh.cod_elp_fils = g.cod_elp
        ORDER BY eh.cod_elp_pere
        LIMIT 1
    ) parent ON TRUE
    LEFT JOIN element_pedagogi parent_ep ON parent.cod_elp_pere = parent_ep.cod_elp
    WHERE g.cod_etu = :cod_etu
"""


def _full_name(*parts) -> str:
    return " ".join(p for p in parts if p)


@router.get("/me", response_model=StudentProfileResponse)
async def get_me(student: dict = Depends(get_current_student), db: Database = Depends(get_database)):
    """Current student's profile, with French field names."""
    with db.session() as session:
        row = session.execute(
            text("SELECT * FROM students WHERE id = :id"),
            {"id": student["student_id"]}
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=404, detail="Student not found")

    return StudentProfileResponse(student=StudentProfile(
        cod_etu=row["cod_etu"],
        nom_complet=_full_name(row["lib_nom_pat_ind"], row["lib_pr1_ind"]),
        nom_arabe=_full_name(row["lib_nom_ind_arb"], row["lib_prn_ind_arb"]) or None,
        cin=row["cin_ind"],
        date_naissance=row["date_nai_ind"],
        lieu_naissance=row["lib_vil_nai_etu"],
        lieu_naissance_arabe=row["lib_vil_nai_etu_arb"],
        sexe=row["cod_sex_etu"],
        etape=row["lib_etp"],
        licence_etape=row["lic_etp"],
        annee_universitaire=row["cod_anu"],
        diplome=row["cod_dip"],
        nombre_inscriptions_cycle=row["nbr_ins_cyc"],
        nombre_inscriptions_etape=row["nbr_ins_etp"],
        nombre_inscriptions_diplome=row["nbr_ins_dip"],
        derniere_mise_a_jour=row["updated_at"],
    ))


@router.get("/grades")
async def get_grades(
    year: Optional[int] = None,
    session: Optional[str] = None,
    student: dict = Depends(get_current_student),
    db: Database = Depends(get_database)
):
    """
    Grades organized as year -> session -> automne/printemps -> study year -> S<n>.

    Grades whose semester cannot be determined are left out of the structure
    but still counted in total_grades.
    """
    sql = GRADES_SQL
    params = {"cod_etu": student["cod_etu"]}
    if year is not None:
        sql += " AND g.cod_anu = :year"
        params["year"] = year
    if session:
        sql += " AND g.cod_ses = :session"
        params["session"] = session
    sql += " ORDER BY g.cod_anu DESC, g.cod_ses, ep.semester_number, ep.lib_elp"

    return organize_grades(db.execute_raw_sql(sql, params))


@router.get("/grade-stats", response_model=GradeStatsResponse)
async def get_grade_stats(student: dict = Depends(get_current_student), db: Database = Depends(get_database)):
    """Per year, session and semester: total, average, passed (>= 10), failed, absent."""
    rows = db.execute_raw_sql(
        f"""
        SELECT
            graded.cod_anu, graded.cod_ses, graded.semester_number,
            COUNT(*) AS total_subjects,
            AVG(graded.not_elp) AS average_grade,
            COUNT(CASE WHEN graded.not_elp >= 10 THEN 1 END) AS passed_subjects,
            COUNT(CASE WHEN graded.not_elp < 10 THEN 1 END) AS failed_subjects,
            COUNT(CASE WHEN graded.not_elp IS NULL THEN 1 END) AS absent_subjects
        FROM (
            SELECT g.cod_anu, g.cod_ses, g.not_elp,
                   COALESCE(g.semester_number, g.parent_semester_number) AS semester_number
            FROM ({GRADES_SQL}) g
        ) graded
        WHERE graded.semester_number IS NOT NULL
        GROUP BY graded.cod_anu, graded.cod_ses, graded.semester_number
        ORDER BY graded.cod_anu DESC, graded.cod_ses, graded.semester_number
        """,
        {"cod_etu": student["cod_etu"]}
    )
    return GradeStatsResponse(statistics=format_grade_stats(rows))


@router.get("/pedagogical-situation")
async def get_pedagogical_situation(
    year: Optional[int] = None,
    student: dict = Depends(get_current_student),
    db: Database = Depends(get_database)
):
    """Enrolled modules by academic year, split into yearly and semester elements."""
    sql = """
        SELECT
            ps.cod_etu, ps.lib_nom_pat_ind, ps.lib_pr1_ind, ps.daa_uni_con,
            ps.cod_elp, ps.lib_elp, ps.eta_iae, ps.academic_level, ps.is_yearly_element,
            ep.element_type, ep.semester_number, ep.cod_pel, ep.cod_nel,
            ps.last_sync
        FROM pedagogical_situation ps
        LEFT JOIN element_pedagogi ep ON ps.cod_elp = ep.cod_elp
        WHERE ps.cod_etu = :cod_etu
    """
    params = {"cod_etu": student["cod_etu"]}
    if year is not None:
        sql += " AND ps.daa_uni_con = :year"
        params["year"] = year
    sql += " ORDER BY ps.daa_uni_con DESC, ps.academic_level, ps.lib_elp"

    return organize_pedagogical_situation(db.execute_raw_sql(sql, params))


@router.get("/pedagogical-stats")
async def get_pedagogical_stats(student: dict = Depends(get_current_student), db: Database = Depends(get_database)):
    rows = db.execute_raw_sql(
        """
        SELECT
            ps.daa_uni_con,
            COUNT(*) AS total_modules,
            COUNT(CASE WHEN ps.eta_iae = 'E' THEN 1 END) AS enrolled_modules,
            COUNT(CASE WHEN ep.element_type = 'MODULE' THEN 1 END) AS modules,
            COUNT(CASE WHEN ep.element_type = 'MATIERE' THEN 1 END) AS subjects,
            COUNT(DISTINCT ep.semester_number) AS semesters
        FROM pedagogical_situation ps
        LEFT JOIN element_pedagogi ep ON ps.cod_elp = ep.cod_elp
        WHERE ps.cod_etu = :cod_etu
        GROUP BY ps.daa_uni_con
        ORDER BY ps.daa_uni_con DESC
        """,
        {"cod_etu": student["cod_etu"]}
    )
    return {
        "statistics": [
            {
                "year": row["daa_uni_con"],
                "total_modules": int(row["total_modules"]),
                "enrolled_modules": int(row["enrolled_modules"]),
                "modules": int(row["modules"]),
                "subjects": int(row["subjects"]),
                "semesters": int(row["semesters"]),
            }
            for row in rows
        ]
    }


@router.get("/administrative-situation")
async def get_administrative_situation(
    year: Optional[int] = None,
    student: dict = Depends(get_current_student),
    db: Database = Depends(get_database)
):
    """Every registration of the student (all steps, not only the primary one) by year."""
    sql = """
        SELECT cod_etu, cod_anu, cod_etp, lib_etp, lic_etp, cod_vrs_vet, eta_iae, tem_iae_prm,
               dat_cre_iae, dat_mod_iae, nbr_ins_cyc, nbr_ins_etp, nbr_ins_dip, tem_dip_iae,
               cod_uti, cod_dip, lib_dip, last_sync
        FROM administrative_situation
        WHERE cod_etu = :cod_etu
    """
    params = {"cod_etu": student["cod_etu"]}
    if year is not None:
        sql += " AND cod_anu = :year"
        params["year"] = year
    sql += " ORDER BY cod_anu DESC, dat_cre_iae DESC"

    rows = db.execute_raw_sql(sql, params)
    years = db.execute_raw_sql(
        "SELECT DISTINCT cod_anu FROM administrative_situation WHERE cod_etu = :cod_etu ORDER BY cod_anu DESC",
        {"cod_etu": student["cod_etu"]}
    )
    return {
        "administrative_situation": organize_administrative_situation(rows),
        "available_years": [r["cod_anu"] for r in years],
        "total_registrations": len(rows),
    }


@router.get("/administrative-stats")
async def get_administrative_stats(student: dict = Depends(get_current_student), db: Database = Depends(get_database)):
    rows = db.execute_raw_sql(
        """
        SELECT
            cod_anu,
            COUNT(*) AS total_registrations,
            COUNT(CASE WHEN eta_iae = 'E' THEN 1 END) AS active_registrations,
            COUNT(DISTINCT cod_etp) AS programs
        FROM administrative_situation
        WHERE cod_etu = :cod_etu
        GROUP BY cod_anu
        ORDER BY cod_anu DESC
        """,
        {"cod_etu": student["cod_etu"]}
    )
    return {
        "statistics": [
            {
                "year": row["cod_anu"],
                "total_registrations": int(row["total_registrations"]),
                "active_registrations": int(row["active_registrations"]),
                "programs": int(row["programs"]),
            }
            for row in rows
        ]
    }


@router.get("/exams")
async def get_my_exams(student: dict = Depends(get_current_student), db: Database = Depends(get_database)):
    """Upcoming exams the student is convoked to."""
    service = ExamPlanningService(db, get_settings().current_academic_year)
    exams = service.student_exams(student["cod_etu"])
    return {"exams": exams, "count": len(exams)}


@router.post("/documents", response_model=DocumentTokenResponse, status_code=201)
async def issue_document_token(
    data: DocumentRequest,
    request: Request,
    student: dict = Depends(get_current_student),
    verifier=Depends(get_document_verifier)
):
    """Token to print on a transcript; checked later via /verify-document/{token}."""
    if not hasattr(verifier, "issue"):
        raise HTTPException(status_code=501, detail="Document issuing is not available")

    token = verifier.issue(student["cod_etu"], semester=data.semester, item_count=data.item_count)
    return DocumentTokenResponse(
        token=token,
        verification_url=str(request.url_for("verify_document", token=token)),
    )
