"""
Exam Planning Service

PURPOSE:
Schedule exams per module and group, and keep the list of convoked
students (exam_assignments) in line with the grouping rules.

HOW IT WORKS:
- create_exam: students come from an explicit list, or are resolved from
  the module code + group specifier with GroupResolver
- sync_assignments: re-resolve every upcoming exam created from the rules
  (rules or enrollments may have changed since) and replace its
  assignments; exams created from an explicit student list are left alone
- deleting an exam cascades to its assignments
"""

from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from portal.core.logging import get_logger
from portal.services.group_resolver import GroupResolver, ResolvedStudent

logger = get_logger(__name__)

DEFAULT_GROUP = "Tous"

ASSIGN_SQL = """
    INSERT INTO exam_assignments (exam_id, cod_etu, assigned_group)
    VALUES (:exam_id, :cod_etu, :assigned_group)
    ON CONFLICT (exam_id, cod_etu) DO UPDATE SET assigned_group = EXCLUDED.assigned_group
    RETURNING (xmax = 0) AS inserted
"""


def assignment_group(student: ResolvedStudent, group_name: str) -> str:
    """Groups that placed the student, or the exam's own group label."""
    return " + ".join(student.groups) if student.groups else group_name


class ExamPlanningService:

    def __init__(self, db, academic_year: int):
        self.db = db
        self.academic_year = academic_year
        self.resolver = GroupResolver(db)

    def _resolve(self, module_code: str, group_name: str) -> List[ResolvedStudent]:
        return self.resolver.resolve(module_code, group_name, academic_year=self.academic_year)

    def _assign(self, session: Session, exam_id: int, assignments: List[tuple]) -> int:
        """Upsert (cod_etu, group) pairs; returns how many were new."""
        created = 0
        statement = text(ASSIGN_SQL)
        for cod_etu, group in assignments:
            inserted = session.execute(
                statement, {"exam_id": exam_id, "cod_etu": cod_etu, "assigned_group": group}
            ).scalar()
            if inserted:
                created += 1
        return created

    def create_exam(self, data: dict, student_ids: Optional[List[str]] = None) -> dict:
        group_name = (data.get("group_name") or DEFAULT_GROUP).strip()
        if student_ids:
            assignments = [(cod_etu, group_name) for cod_etu in dict.fromkeys(student_ids)]
        else:
            assignments = [
                (s.cod_etu, assignment_group(s, group_name))
                for s in self._resolve(data["module_code"], group_name)
            ]

        with self.db.session() as session:
            exam = session.execute(
                text("""
                    INSERT INTO exam_planning
                        (module_code, module_name, group_name, exam_date, start_time, end_time,
                         location, professor_name, explicit_students)
                    VALUES (:module_code, :module_name, :group_name, :exam_date, :start_time,
                            :end_time, :location, :professor_name, :explicit_students)
                    RETURNING *
                """),
                {
                    "module_code": data["module_code"],
                    "module_name": data.get("module_name"),
                    "group_name": group_name,
                    "exam_date": data["exam_date"],
                    "start_time": data["start_time"],
                    "end_time": data["end_time"],
                    "location": data.get("location"),
                    "professor_name": data.get("professor_name"),
                    "explicit_students": bool(student_ids),
                },
            ).mappings().one()
            exam = dict(exam)
            self._assign(session, exam["id"], assignments)

        exam["assigned_count"] = len(assignments)
        logger.info("exam_created", exam_id=exam["id"], module_code=exam["module_code"],
                    group_name=group_name, assigned=len(assignments))
        return exam

    def list_exams(self, upcoming_only: bool = False) -> List[dict]:
        where = "WHERE ep.exam_date >= CURRENT_DATE" if upcoming_only else ""
        return self.db.execute_raw_sql(f"""
            SELECT ep.*, COUNT(ea.id) AS assigned_count
            FROM exam_planning ep
            LEFT JOIN exam_assignments ea ON ea.exam_id = ep.id
            {where}
            GROUP BY ep.id
            ORDER BY ep.exam_date, ep.start_time, ep.module_code
        """)

    def get_exam(self, exam_id: int) -> Optional[dict]:
        rows = self.db.execute_raw_sql("SELECT * FROM exam_planning WHERE id = :id", {"id": exam_id})
        return rows[0] if rows else None

    def exam_students(self, exam_id: int) -> List[dict]:
        return self.db.execute_raw_sql(
            """
            SELECT ea.cod_etu, ea.assigned_group, s.lib_nom_pat_ind, s.lib_pr1_ind, s.cin_ind, s.lib_etp
            FROM exam_assignments ea
            LEFT JOIN students s ON s.cod_etu = ea.cod_etu
            WHERE ea.exam_id = :id
            ORDER BY s.lib_nom_pat_ind, s.lib_pr1_ind, ea.cod_etu
            """,
            {"id": exam_id},
        )

    def delete_exam(self, exam_id: int) -> bool:
        rows = self.db.execute_raw_sql("DELETE FROM exam_planning WHERE id = :id RETURNING id", {"id": exam_id})
        return bool(rows)

    def sync_assignments(self) -> List[dict]:
        """
        Re-resolve every rule-based exam from today on; returns one summary
        per exam. Students no longer resolved lose their assignment.
        """
        exams = self.db.execute_raw_sql("""
            SELECT id, module_code, group_name FROM exam_planning
            WHERE exam_date >= CURRENT_DATE AND NOT COALESCE(explicit_students, FALSE)
            ORDER BY exam_date, id
        """)

        summary = []
        for exam in exams:
            group_name = exam["group_name"] or DEFAULT_GROUP
            students = self._resolve(exam["module_code"], group_name)
            with self.db.session() as session:
                created = self._assign(
                    session, exam["id"], [(s.cod_etu, assignment_group(s, group_name)) for s in students]
                )
                removed = session.execute(
                    text("""
                        DELETE FROM exam_assignments
                        WHERE exam_id = :exam_id AND NOT (cod_etu = ANY(:cod_etus))
                    """),
                    {"exam_id": exam["id"], "cod_etus": [s.cod_etu for s in students]},
                ).rowcount or 0
            summary.append({
                "exam_id": exam["id"],
                "module_code": exam["module_code"],
                "group_name": group_name,
                "resolved": len(students),
                "new_assignments": created,
                "removed_assignments": removed,
            })

        logger.info("exam_assignments_synced", exams=len(exams),
                    new_assignments=sum(s["new_assignments"] for s in summary),
                    removed_assignments=sum(s["removed_assignments"] for s in summary))
        return summary

    def student_exams(self, cod_etu: str) -> List[dict]:
        return self.db.execute_raw_sql(
            """
            SELECT ep.id, ep.module_code, ep.module_name, ep.exam_date, ep.start_time, ep.end_time,
                   ep.location, ep.professor_name, ea.assigned_group
            FROM exam_assignments ea
            JOIN exam_planning ep ON ep.id = ea.exam_id
            WHERE ea.cod_etu = :cod_etu AND ep.exam_date >= CURRENT_DATE
            ORDER BY ep.exam_date, ep.start_time
            """,
            {"cod_etu": cod_etu},
        )
