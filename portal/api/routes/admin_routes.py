"""
Admin Routes

POST /admin/login - Admin login (admins table, then fallback account)
POST /admin/logout - Logout (client drops the token)
GET /admin/verify - Check admin token
GET /admin/dashboard/stats - Totals and recent activity
GET /admin/dashboard/overview - Students / grades per year and program
GET /admin/students/search - Paginated student search
GET /admin/students/{id} - Student with grades and statistics
GET /admin/sync/status - Recent sync runs and 30-day statistics
POST /admin/sync/manual - Start a sync in the background
GET /admin/system/health - Database and last sync
GET /admin/system/stats - Sync history per day
GET /admin/laureats - Graduates (filters + pagination)
GET /admin/laureats/stats - Graduates per year / diploma
GET /admin/laureats/student/{cod_etu} - Diplomas of one student
POST /admin/laureats/sync - Sync graduates in the background
"""

import math
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Depends, Query
from sqlalchemy import text

from portal.db.postgres import Database, get_database
from portal.core.auth import authenticate_admin, get_current_admin
from portal.core.config import get_settings
from portal.core.logging import get_logger
from portal.services.grades import format_average
from portal.services.sync_service import record_sync_log, run_sync_job
from portal.schemas.schemas import (
    AdminLoginRequest, AdminLoginResponse, AdminUser,
    ManualSyncRequest, ManualSyncResponse, MessageResponse, SyncJob
)

router = APIRouter(prefix="/admin", tags=["Admin"])
logger = get_logger(__name__)


def _count(session, sql: str, params: Optional[dict] = None) -> int:
    return int(session.execute(text(sql), params or {}).scalar() or 0)


def run_background_sync(db: Database, job: str, years: Optional[List[int]], initiated_by: str) -> None:
    """
    Background task body. Failures cannot reach the caller any more, so
    they are logged and recorded in sync_log.
    """
    try:
        results = run_sync_job(db, get_settings(), job=job, years=years)
        logger.info("manual_sync_completed", job=job, initiated_by=initiated_by, steps=len(results))
    except Exception as e:
        logger.exception("manual_sync_failed", job=job, initiated_by=initiated_by)
        record_sync_log(db, "manual_sync", 0, "error", f"Sync failed: {e}")


# ============================================================
# AUTHENTICATION
# ============================================================

@router.post("/login", response_model=AdminLoginResponse)
async def admin_login(request: AdminLoginRequest, db: Database = Depends(get_database)):
    if not request.username or not request.password:
        raise HTTPException(status_code=400, detail="Username and password are required")

    result = authenticate_admin(db, request.username, request.password)
    if result is None:
        logger.info("admin_login_failed", username=request.username)
        raise HTTPException(status_code=401, detail="Invalid admin credentials")

    token, user = result
    logger.info("admin_login", username=user["username"], role=user["role"])
    return AdminLoginResponse(token=token, user=AdminUser(**user))


@router.post("/logout", response_model=MessageResponse)
async def admin_logout(admin: dict = Depends(get_current_admin)):
    logger.info("admin_logout", username=admin.get("username"))
    return MessageResponse(message="Logged out successfully")


@router.get("/verify")
async def verify_admin(admin: dict = Depends(get_current_admin)):
    return {
        "valid": True,
        "admin": {
            "username": admin.get("username"),
            "role": admin.get("role") or "admin",
            "loginTime": admin.get("loginTime"),
        },
    }


# ============================================================
# DASHBOARD
# ============================================================

@router.get("/dashboard/stats")
async def dashboard_stats(admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    with db.session() as session:
        overview = {
            "total_students": _count(session, "SELECT COUNT(*) FROM students"),
            "total_grades": _count(session, "SELECT COUNT(*) FROM grades"),
            "total_elements": _count(session, "SELECT COUNT(*) FROM element_pedagogi"),
            "total_years": _count(session, "SELECT COUNT(DISTINCT cod_anu) FROM students"),
            "total_programs": _count(
                session, "SELECT COUNT(DISTINCT lib_etp) FROM students WHERE lib_etp IS NOT NULL"
            ),
        }
        recent = {
            "students_updated": _count(
                session, "SELECT COUNT(*) FROM students WHERE last_sync >= NOW() - INTERVAL '7 days'"
            ),
            "grades_updated": _count(
                session, "SELECT COUNT(*) FROM grades WHERE last_sync >= NOW() - INTERVAL '7 days'"
            ),
            "last_sync": session.execute(
                text("SELECT sync_timestamp FROM sync_log ORDER BY sync_timestamp DESC LIMIT 1")
            ).scalar(),
        }
    return {"overview": overview, "recent_activity": recent}


@router.get("/dashboard/overview")
async def dashboard_overview(admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    return {
        "students_by_year": db.execute_raw_sql(
            "SELECT cod_anu, COUNT(*) AS count FROM students GROUP BY cod_anu ORDER BY cod_anu DESC"
        ),
        "students_by_program": db.execute_raw_sql("""
            SELECT lib_etp, COUNT(*) AS count FROM students
            WHERE lib_etp IS NOT NULL
            GROUP BY lib_etp ORDER BY count DESC LIMIT 10
        """),
        "grades_by_year": db.execute_raw_sql(
            "SELECT cod_anu, COUNT(*) AS count FROM grades GROUP BY cod_anu ORDER BY cod_anu DESC"
        ),
    }


# ============================================================
# STUDENTS
# ============================================================

@router.get("/students/search")
async def search_students(
    search: str = "",
    program: str = "",
    year: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_database)
):
    """Search by name, student code or CIN; filter by program and year."""
    conditions = []
    params = {}
    if search:
        conditions.append(
            "(lib_nom_pat_ind ILIKE :search OR lib_pr1_ind ILIKE :search "
            "OR cod_etu ILIKE :search OR cin_ind ILIKE :search)"
        )
        params["search"] = f"%{search}%"
    if program:
        conditions.append("lib_etp = :program")
        params["program"] = program
    if year is not None:
        conditions.append("cod_anu = :year")
        params["year"] = year
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    offset = (page - 1) * limit
    with db.session() as session:
        total = _count(session, f"SELECT COUNT(*) FROM students {where}", params)
        rows = session.execute(
            text(f"""
                SELECT id, cod_etu,
                       CONCAT_WS(' ', lib_nom_pat_ind, lib_pr1_ind) AS full_name,
                       cin_ind, lib_etp, cod_anu, last_sync,
                       CASE
                           WHEN last_sync >= NOW() - INTERVAL '24 hours' THEN 'recent'
                           WHEN last_sync >= NOW() - INTERVAL '7 days' THEN 'week'
                           ELSE 'old'
                       END AS sync_status
                FROM students
                {where}
                ORDER BY last_sync DESC, lib_nom_pat_ind, lib_pr1_ind
                LIMIT :limit OFFSET :offset
            """),
            {**params, "limit": limit, "offset": offset},
        ).mappings().all()

    return {
        "students": [dict(r) for r in rows],
        "pagination": {
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_count": total,
            "per_page": limit,
            "has_next": offset + limit < total,
            "has_prev": page > 1,
        },
    }


@router.get("/students/{student_id}")
async def get_student_details(
    student_id: int,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_database)
):
    students = db.execute_raw_sql("SELECT * FROM students WHERE id = :id", {"id": student_id})
    if not students:
        raise HTTPException(status_code=404, detail="Student not found")
    student = students[0]

    grades = db.execute_raw_sql(
        """
        SELECT g.cod_anu, g.cod_ses, g.cod_elp, g.not_elp, g.cod_tre,
               ep.lib_elp, ep.lib_elp_arb, ep.element_type, ep.semester_number,
               g.last_sync AS grade_last_sync
        FROM grades g
        LEFT JOIN element_pedagogi ep ON g.cod_elp = ep.cod_elp
        WHERE g.cod_etu = :cod_etu
        ORDER BY g.cod_anu DESC, g.cod_ses, ep.semester_number, ep.lib_elp
        """,
        {"cod_etu": student["cod_etu"]},
    )
    stats = db.execute_raw_sql(
        """
        SELECT cod_anu, cod_ses,
               COUNT(*) AS total_subjects,
               COUNT(CASE WHEN not_elp >= 10 THEN 1 END) AS passed_subjects,
               COUNT(CASE WHEN not_elp < 10 THEN 1 END) AS failed_subjects,
               COUNT(CASE WHEN not_elp IS NULL THEN 1 END) AS absent_subjects,
               AVG(not_elp) AS average_grade
        FROM grades
        WHERE cod_etu = :cod_etu
        GROUP BY cod_anu, cod_ses
        ORDER BY cod_anu DESC, cod_ses
        """,
        {"cod_etu": student["cod_etu"]},
    )

    return {
        "student": student,
        "grades": grades,
        "statistics": [{**s, "average_grade": format_average(s["average_grade"])} for s in stats],
    }


# ============================================================
# SYNC MANAGEMENT
# ============================================================

@router.get("/sync/status")
async def sync_status(
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_database)
):
    recent = db.execute_raw_sql(
        """
        SELECT sync_type, records_processed, sync_status, error_message, sync_timestamp
        FROM sync_log
        ORDER BY sync_timestamp DESC
        LIMIT :limit
        """,
        {"limit": limit},
    )
    statistics = db.execute_raw_sql("""
        SELECT sync_type,
               COUNT(*) AS total_syncs,
               COUNT(CASE WHEN sync_status = 'success' THEN 1 END) AS successful_syncs,
               COUNT(CASE WHEN sync_status = 'error' THEN 1 END) AS failed_syncs,
               MAX(sync_timestamp) AS last_sync_time
        FROM sync_log
        WHERE sync_timestamp >= NOW() - INTERVAL '30 days'
        GROUP BY sync_type
        ORDER BY last_sync_time DESC
    """)
    return {
        "last_sync": recent[0] if recent else None,
        "recent_syncs": recent,
        "sync_statistics": statistics,
    }


@router.post("/sync/manual", response_model=ManualSyncResponse)
async def manual_sync(
    background_tasks: BackgroundTasks,
    data: Optional[ManualSyncRequest] = None,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_database)
):
    """Records a 'started' row, then runs the sync after the response is sent."""
    data = data or ManualSyncRequest()
    username = admin.get("username") or "admin"

    record_sync_log(db, "manual_trigger", 0, "started", f"Manual sync initiated by admin: {username}")
    background_tasks.add_task(run_background_sync, db, data.job.value, data.years, username)
    logger.info("manual_sync_requested", job=data.job.value, username=username)

    return ManualSyncResponse(message="Manual sync started.", initiated_by=username)


# ============================================================
# SYSTEM
# ============================================================

@router.get("/system/health")
async def system_health(admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    postgres_ok = db.test_connection()
    last_sync = None
    if postgres_ok:
        rows = db.execute_raw_sql("SELECT sync_timestamp FROM sync_log ORDER BY sync_timestamp DESC LIMIT 1")
        last_sync = rows[0]["sync_timestamp"] if rows else None

    return {
        "status": "completed",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "health_checks": {
            "database": {"postgresql": postgres_ok},
            "sync_health": {"last_sync": last_sync},
        },
    }


@router.get("/system/stats")
async def system_stats(
    period: int = Query(30, ge=1, le=365),
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_database)
):
    history = db.execute_raw_sql(
        """
        SELECT DATE(sync_timestamp) AS sync_date, sync_type,
               COUNT(*) AS sync_count, SUM(records_processed) AS total_records
        FROM sync_log
        WHERE sync_timestamp >= NOW() - make_interval(days => :period)
        GROUP BY DATE(sync_timestamp), sync_type
        ORDER BY sync_date DESC, sync_type
        """,
        {"period": period},
    )
    return {"sync_history": history, "period_days": period}


# ============================================================
# LAUREATS
# ============================================================

@router.get("/laureats")
async def list_laureats(
    year: Optional[str] = None,
    diploma: Optional[str] = None,
    search: Optional[str] = None,
    multi_diploma: bool = Query(False, alias="multiDiploma"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_database)
):
    conditions = ["1=1"]
    params = {}
    if year:
        conditions.append("cod_anu = :year")
        params["year"] = year
    if diploma:
        conditions.append("cod_dip = :diploma")
        params["diploma"] = diploma
    if search:
        conditions.append(
            "(cod_etu ILIKE :search OR cin_ind ILIKE :search "
            "OR nom_pat_ind ILIKE :search OR prenom_ind ILIKE :search)"
        )
        params["search"] = f"%{search}%"
    if multi_diploma:
        conditions.append(
            "cod_etu IN (SELECT cod_etu FROM laureats GROUP BY cod_etu HAVING COUNT(DISTINCT cod_dip) > 1)"
        )
    where = " AND ".join(conditions)

    with db.session() as session:
        total = _count(session, f"SELECT COUNT(*) FROM laureats WHERE {where}", params)
        rows = session.execute(
            text(f"""
                SELECT * FROM laureats WHERE {where}
                ORDER BY cod_anu DESC, nom_pat_ind
                LIMIT :limit OFFSET :offset
            """),
            {**params, "limit": limit, "offset": (page - 1) * limit},
        ).mappings().all()

    return {
        "laureats": [dict(r) for r in rows],
        "total": total,
        "page": page,
        "totalPages": math.ceil(total / limit),
    }


@router.get("/laureats/stats")
async def laureat_stats(admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    multi = db.execute_raw_sql("""
        SELECT COUNT(*) AS count FROM (
            SELECT cod_etu FROM laureats GROUP BY cod_etu HAVING COUNT(DISTINCT cod_dip) > 1
        ) AS multi
    """)
    return {
        "byYear": db.execute_raw_sql(
            "SELECT cod_anu, COUNT(*) AS count FROM laureats GROUP BY cod_anu ORDER BY cod_anu DESC"
        ),
        "byDiploma": db.execute_raw_sql("""
            SELECT cod_dip, MIN(lib_dip) AS lib_dip, COUNT(*) AS count
            FROM laureats GROUP BY cod_dip ORDER BY count DESC
        """),
        "multiDiplomaCount": int(multi[0]["count"]) if multi else 0,
    }


@router.get("/laureats/student/{cod_etu}")
async def laureat_student(cod_etu: str, admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    return db.execute_raw_sql(
        "SELECT * FROM laureats WHERE cod_etu = :cod_etu ORDER BY cod_anu DESC", {"cod_etu": cod_etu}
    )


@router.post("/laureats/sync", response_model=MessageResponse)
async def sync_laureats(
    background_tasks: BackgroundTasks,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_database)
):
    years = list(get_settings().laureat_years)
    background_tasks.add_task(
        run_background_sync, db, SyncJob.laureats.value, years, admin.get("username") or "admin"
    )
    return MessageResponse(message="Sync started")
