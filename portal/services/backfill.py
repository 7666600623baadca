"""
Backfill / data repair for rows already in Postgres.

- recompute_element_classification: re-run classify_element on element_pedagogi
- reclassify_pedagogical_situation: recompute academic_level / is_yearly_element
- create_missing_elements: placeholder elements for grade codes with no element row

Each function runs in one transaction and returns the number of rows changed.
"""

from typing import Dict

from sqlalchemy import text

from portal.core.logging import get_logger
from portal.services.classification import classify_element

logger = get_logger(__name__)

PLACEHOLDER_LABEL = "Element {code} (auto-created)"


def recompute_element_classification(db) -> int:
    with db.session() as session:
        rows = session.execute(
            text("""
                SELECT cod_elp, lib_elp, cod_nel, cod_pel, element_type, semester_number
                FROM element_pedagogi
            """)
        ).mappings().all()

        changed = 0
        for row in rows:
            result = classify_element(row["cod_elp"], row["lib_elp"], row["cod_nel"], row["cod_pel"])
            if (result.element_type, result.semester_number) == (row["element_type"], row["semester_number"]):
                continue
            session.execute(
                text("""
                    UPDATE element_pedagogi
                    SET element_type = :element_type, semester_number = :semester_number,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE cod_elp = :cod_elp
                """),
                {
                    "cod_elp": row["cod_elp"],
                    "element_type": result.element_type,
                    "semester_number": result.semester_number,
                },
            )
            changed += 1

    logger.info("elements_reclassified", scanned=len(rows), changed=changed)
    return changed


def reclassify_pedagogical_situation(db) -> int:
    with db.session() as session:
        rows = session.execute(
            text("""
                SELECT DISTINCT cod_elp, lib_elp
                FROM pedagogical_situation
            """)
        ).mappings().all()

        changed = 0
        for row in rows:
            result = classify_element(row["cod_elp"], row["lib_elp"])
            updated = session.execute(
                text("""
                    UPDATE pedagogical_situation
                    SET academic_level = :level, is_yearly_element = :yearly,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE cod_elp = :cod_elp
                      AND lib_elp IS NOT DISTINCT FROM :lib_elp
                      AND (academic_level, is_yearly_element) IS DISTINCT FROM (:level, :yearly)
                """),
                {
                    "level": result.academic_level,
                    "yearly": result.is_yearly_element,
                    "cod_elp": row["cod_elp"],
                    "lib_elp": row["lib_elp"],
                },
            )
            changed += updated.rowcount or 0

    logger.info("pedagogical_situation_reclassified", scanned=len(rows), changed=changed)
    return changed


def placeholder_element(cod_elp: str) -> Dict[str, object]:
    """Element row for a code only seen in grades."""
    result = classify_element(cod_elp)
    return {
        "cod_elp": cod_elp,
        "lib_elp": PLACEHOLDER_LABEL.format(code=cod_elp),
        "element_type": result.element_type,
        "semester_number": result.semester_number,
    }


def create_missing_elements(db) -> int:
    with db.session() as session:
        missing = session.execute(
            text("""
                SELECT DISTINCT g.cod_elp
                FROM grades g
                LEFT JOIN element_pedagogi ep ON g.cod_elp = ep.cod_elp
                WHERE ep.cod_elp IS NULL AND g.cod_elp IS NOT NULL
                ORDER BY g.cod_elp
            """)
        ).scalars().all()

        for code in missing:
            session.execute(
                text("""
                    INSERT INTO element_pedagogi (cod_elp, lib_elp, element_type, semester_number)
                    VALUES (:cod_elp, :lib_elp, :element_type, :semester_number)
                    ON CONFLICT (cod_elp) DO NOTHING
                """),
                placeholder_element(code),
            )

    logger.info("missing_elements_created", count=len(missing))
    return len(missing)
