"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import date, datetime, time
from enum import Enum


# ============================================================
# ENUMS
# ============================================================

class AdminRole(str, Enum):
    super_admin = "SUPER_ADMIN"
    rh_manager = "RH_MANAGER"


class SyncJob(str, Enum):
    full = "full"
    pedagogical_situation = "pedagogical_situation"
    administrative_situation = "administrative_situation"
    laureats = "laureats"


# ============================================================
# AUTH SCHEMAS
# ============================================================

# Fields are optional so the routes can answer 400 with their own message
class StudentLoginRequest(BaseModel):
    cin: Optional[str] = None
    password: Optional[str] = None


class StudentSummary(BaseModel):
    id: int
    cod_etu: str
    nom: Optional[str] = None
    prenom: Optional[str] = None
    cin: Optional[str] = None
    etape: Optional[str] = None


class StudentLoginResponse(BaseModel):
    token: str
    student: StudentSummary


class AdminLoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class AdminUser(BaseModel):
    username: str
    role: str
    fullName: Optional[str] = None


class AdminLoginResponse(BaseModel):
    success: bool = True
    token: str
    user: AdminUser


# ============================================================
# STUDENT SCHEMAS
# ============================================================

class StudentProfile(BaseModel):
    cod_etu: str
    nom_complet: str
    nom_arabe: Optional[str] = None
    cin: Optional[str] = None
    date_naissance: Optional[date] = None
    lieu_naissance: Optional[str] = None
    lieu_naissance_arabe: Optional[str] = None
    sexe: Optional[str] = None
    etape: Optional[str] = None
    licence_etape: Optional[str] = None
    annee_universitaire: Optional[int] = None
    diplome: Optional[str] = None
    nombre_inscriptions_cycle: Optional[int] = None
    nombre_inscriptions_etape: Optional[int] = None
    nombre_inscriptions_diplome: Optional[int] = None
    derniere_mise_a_jour: Optional[datetime] = None

    @field_validator("date_naissance", mode="before")
    @classmethod
    def date_only(cls, v):
        # Oracle DATE columns can arrive as datetimes
        if isinstance(v, datetime):
            return v.date()
        return v


class StudentProfileResponse(BaseModel):
    student: StudentProfile


class GradeStat(BaseModel):
    academic_year: Optional[int] = None
    session: Optional[str] = None
    semester_number: Optional[int] = None
    session_type: str
    logical_academic_year: int
    total_subjects: int
    average_grade: Optional[str] = None
    passed_subjects: int
    failed_subjects: int
    absent_subjects: int


class GradeStatsResponse(BaseModel):
    statistics: List[GradeStat]


# ============================================================
# GROUP RULE SCHEMAS
# ============================================================

class GroupingRuleCreate(BaseModel):
    module_pattern: Optional[str] = None
    group_name: Optional[str] = None
    range_start: Optional[str] = Field(None, max_length=10)
    range_end: Optional[str] = Field(None, max_length=10)


class GroupingRuleResponse(BaseModel):
    id: int
    module_pattern: str
    group_name: str
    range_start: str
    range_end: str
    created_at: Optional[datetime] = None
    student_count: Optional[int] = None


class ResolvedStudentResponse(BaseModel):
    cod_etu: str
    lib_nom_pat_ind: Optional[str] = None
    lib_pr1_ind: Optional[str] = None
    lib_elp: Optional[str] = None
    groups: List[str] = []


class GroupResolutionResponse(BaseModel):
    module_code: str
    group: str
    groups: Optional[List[str]] = None
    count: int
    students: List[ResolvedStudentResponse]


# ============================================================
# EXAM SCHEMAS
# ============================================================

class ExamCreate(BaseModel):
    module_code: str = Field(..., min_length=1)
    module_name: Optional[str] = None
    group_name: str = "Tous"
    exam_date: date
    start_time: time
    end_time: time
    location: Optional[str] = None
    professor_name: Optional[str] = None
    student_ids: Optional[List[str]] = None

    @field_validator("end_time")
    @classmethod
    def end_after_start(cls, v, info):
        start = info.data.get("start_time")
        if start is not None and v <= start:
            raise ValueError("end_time must be after start_time")
        return v


class ExamResponse(BaseModel):
    id: int
    module_code: str
    module_name: Optional[str] = None
    group_name: Optional[str] = None
    exam_date: date
    start_time: time
    end_time: time
    location: Optional[str] = None
    professor_name: Optional[str] = None
    created_at: Optional[datetime] = None
    assigned_count: int = 0


# ============================================================
# SYNC SCHEMAS
# ============================================================

class ManualSyncRequest(BaseModel):
    job: SyncJob = SyncJob.full
    years: Optional[List[int]] = None


class ManualSyncResponse(BaseModel):
    success: bool = True
    message: str
    initiated_by: Optional[str] = None


# ============================================================
# DOCUMENT SCHEMAS
# ============================================================

class DocumentRequest(BaseModel):
    semester: Optional[str] = None
    item_count: int = Field(0, ge=0)


class DocumentTokenResponse(BaseModel):
    token: str
    verification_url: str


class DocumentVerificationResponse(BaseModel):
    valid: bool
    student_id: Optional[str] = None
    student_name: Optional[str] = None
    semester: Optional[str] = None
    issued_at: Optional[str] = None
    verified_at: datetime
    error: Optional[str] = None


# ============================================================
# COMMON SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True

