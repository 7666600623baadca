"""
Exam Planning Routes (admin)

GET /admin/exams - List exams (?upcoming=true for today on)
POST /admin/exams - Schedule an exam and convoke its students
GET /admin/exams/{id}/students - Convoked students
DELETE /admin/exams/{id} - Delete an exam and its assignments
POST /admin/exams/sync-assignments - Re-resolve upcoming exams
"""

from fastapi import APIRouter, HTTPException, Depends

from portal.db.postgres import Database, get_database
from portal.core.auth import get_current_admin
from portal.core.config import get_settings
from portal.services.exam_planning import ExamPlanningService
from portal.schemas.schemas import ExamCreate, ExamResponse, MessageResponse

router = APIRouter(prefix="/admin/exams", tags=["Exams"])


def _planning(db: Database) -> ExamPlanningService:
    return ExamPlanningService(db, get_settings().current_academic_year)


@router.get("")
async def list_exams(
    upcoming: bool = False,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_database)
):
    exams = _planning(db).list_exams(upcoming_only=upcoming)
    return {"exams": exams, "count": len(exams)}


@router.post("", response_model=ExamResponse, status_code=201)
async def create_exam(data: ExamCreate, admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    exam = _planning(db).create_exam(data.model_dump(exclude={"student_ids"}), student_ids=data.student_ids)
    return ExamResponse(**exam)


@router.get("/{exam_id}/students")
async def exam_students(exam_id: int, admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    service = _planning(db)
    exam = service.get_exam(exam_id)
    if not exam:
        raise HTTPException(status_code=404, detail="Exam not found")

    students = service.exam_students(exam_id)
    return {"exam": exam, "students": students, "count": len(students)}


@router.delete("/{exam_id}", response_model=MessageResponse)
async def delete_exam(exam_id: int, admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    if not _planning(db).delete_exam(exam_id):
        raise HTTPException(status_code=404, detail="Exam not found")
    return MessageResponse(message="Exam deleted successfully")


@router.post("/sync-assignments")
async def sync_assignments(admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    summary = _planning(db).sync_assignments()
    return {
        "success": True,
        "exams": summary,
        "new_assignments": sum(s["new_assignments"] for s in summary),
        "removed_assignments": sum(s["removed_assignments"] for s in summary),
    }
