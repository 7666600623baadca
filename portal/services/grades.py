"""
Grade and pedagogical-situation presentation.

Turns flat SQL rows into the nested structures the student screens show:
- organize_grades: year -> session -> automne/printemps -> study year -> "S<n>" -> grades
- organize_pedagogical_situation: year -> yearly / semester elements
"""

from decimal import Decimal
from typing import Dict, List, Optional

from portal.core.logging import get_logger
from portal.services.classification import academic_year_of, detect_semester, session_type

logger = get_logger(__name__)

MISSING_LABEL = "Module non trouvé"
MISSING_LABEL_AR = "الوحدة غير موجودة"
PASSING_GRADE = 10

STRUCTURE_INFO = {
    "sessions": {
        "automne": "Session d'Automne (S1, S3, S5)",
        "printemps": "Session de Printemps (S2, S4, S6)",
    }
}


def format_average(value) -> Optional[str]:
    """Two decimals as text, None when there is no grade."""
    if value is None:
        return None
    return f"{float(value):.2f}"


def _grade_value(value):
    return float(value) if isinstance(value, Decimal) else value


def resolve_semester(row: dict) -> Optional[int]:
    """Stored semester, then the parent's, then the codes themselves."""
    semester = row.get("semester_number") or row.get("parent_semester_number")
    if semester:
        return int(semester)
    for key in ("cod_pel", "parent_cod_pel", "cod_elp"):
        semester = detect_semester(row.get(key))
        if semester:
            return semester
    return None


def organize_grades(rows: List[dict]) -> dict:
    structure: Dict = {}
    has_arabic_names = False

    for row in rows:
        semester = resolve_semester(row)
        if not semester:
            logger.warning("grade_without_semester", cod_elp=row.get("cod_elp"), lib_elp=row.get("lib_elp"))
            continue

        kind = session_type(semester)
        study_year = academic_year_of(semester)
        if row.get("lib_elp_arb") and row["lib_elp_arb"].strip():
            has_arabic_names = True

        parent_info = None
        if row.get("parent_lib_elp"):
            parent_info = {
                "cod_elp": row.get("cod_elp_pere"),
                "lib_elp": row["parent_lib_elp"],
                "cod_pel": row.get("parent_cod_pel"),
            }

        bucket = (
            structure.setdefault(row["cod_anu"], {})
            .setdefault(row["cod_ses"], {})
            .setdefault(kind, {})
            .setdefault(study_year, {})
            .setdefault(f"S{semester}", [])
        )
        bucket.append({
            "cod_elp": row["cod_elp"],
            "lib_elp": row.get("lib_elp") or MISSING_LABEL,
            "lib_elp_arb": row.get("lib_elp_arb") or row.get("lib_elp") or MISSING_LABEL_AR,
            "lic_elp": row.get("lic_elp"),
            "cod_nel": row.get("cod_nel"),
            "cod_pel": row.get("cod_pel"),
            "not_elp": _grade_value(row.get("not_elp")),
            "cod_tre": row.get("cod_tre"),
            "element_type": row.get("element_type"),
            "is_module": row.get("element_type") == "MODULE" or row.get("cod_nel") == "MOD",
            "parent_info": parent_info,
            "semester_number": semester,
            "session_type": kind,
            "academic_year": study_year,
        })

    return {
        "grades": structure,
        "total_grades": len(rows),
        "has_arabic_names": has_arabic_names,
        "structure_info": STRUCTURE_INFO,
    }


def format_grade_stats(rows: List[dict]) -> List[dict]:
    return [
        {
            "academic_year": row["cod_anu"],
            "session": row["cod_ses"],
            "semester_number": row["semester_number"],
            "session_type": session_type(row["semester_number"]),
            "logical_academic_year": academic_year_of(row["semester_number"]),
            "total_subjects": int(row["total_subjects"]),
            "average_grade": format_average(row["average_grade"]),
            "passed_subjects": int(row["passed_subjects"]),
            "failed_subjects": int(row["failed_subjects"]),
            "absent_subjects": int(row["absent_subjects"]),
        }
        for row in rows
    ]


def organize_pedagogical_situation(rows: List[dict]) -> dict:
    by_year: Dict = {}
    years = set()

    for row in rows:
        year = row["daa_uni_con"]
        years.add(year)
        entry = by_year.setdefault(year, {"yearly_elements": {}, "semester_elements": {}})

        item = {
            "cod_elp": row["cod_elp"],
            "lib_elp": row.get("lib_elp"),
            "eta_iae": row.get("eta_iae"),
            "academic_level": row.get("academic_level"),
            "is_yearly_element": bool(row.get("is_yearly_element")),
            "element_type": row.get("element_type"),
            "cod_pel": row.get("cod_pel"),
            "cod_nel": row.get("cod_nel"),
            "last_sync": row.get("last_sync"),
        }
        if row.get("is_yearly_element"):
            level = row.get("academic_level") or "Unknown"
            entry["yearly_elements"].setdefault(level, []).append(item)
        else:
            semester = row.get("semester_number")
            item["semester_number"] = semester
            key = f"S{semester}" if semester else "Unknown"
            entry["semester_elements"].setdefault(key, []).append(item)

    student_info = None
    if rows:
        first = rows[0]
        student_info = {
            "cod_etu": first["cod_etu"],
            "nom_complet": f"{first.get('lib_nom_pat_ind') or ''} {first.get('lib_pr1_ind') or ''}".strip(),
        }

    return {
        "pedagogical_situation": by_year,
        "total_modules": len(rows),
        "available_years": sorted((y for y in years if y is not None), reverse=True),
        "student_info": student_info,
    }
