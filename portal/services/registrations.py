"""
Registration Service

PURPOSE:
Serve the registration history synced into administrative_situation:
- a student's own registrations, grouped by academic year
- the admin view of new registrations (first registration in the cycle)
  with per-user, per-program and per-day statistics, and a CSV export

HOW IT WORKS:
Admin queries join administrative_situation with students for names and
sex. The same RegistrationFilters (year, creating user, creation date
range) apply to the list, the statistics and the export.
"""

import csv
import io
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy import text

from portal.core.logging import get_logger

logger = get_logger(__name__)

SYSTEM_USER = "System"

CREATED_BY = f"COALESCE(a.cod_uti, '{SYSTEM_USER}')"

GENDER_COUNTS = """
    COUNT(CASE WHEN s.cod_sex_etu = 'M' THEN 1 END) AS male_count,
    COUNT(CASE WHEN s.cod_sex_etu = 'F' THEN 1 END) AS female_count
"""

NEW_REGISTRATIONS_FROM = """
    FROM administrative_situation a
    LEFT JOIN students s ON s.cod_etu = a.cod_etu
"""

EXPORT_COLUMNS = [
    "cod_etu", "lib_nom_pat_ind", "lib_pr1_ind", "lib_nom_ind_arb", "lib_prn_ind_arb", "cin_ind",
    "cod_sex_etu", "cod_anu", "cod_etp", "lib_etp", "lib_dip", "dat_cre_iae", "created_by",
]


def organize_administrative_situation(rows: List[dict]) -> Dict[str, List[dict]]:
    """Registrations keyed by academic year (as a string), newest year first."""
    by_year: Dict[str, List[dict]] = {}
    for row in sorted(rows, key=lambda r: r.get("cod_anu") or 0, reverse=True):
        by_year.setdefault(str(row.get("cod_anu")), []).append(row)
    return by_year


@dataclass
class RegistrationFilters:
    year: Optional[int] = None
    user: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def where(self) -> Tuple[str, dict]:
        """WHERE clause over new registrations; date bounds are inclusive."""
        conditions = ["a.nbr_ins_cyc = 1", "a.eta_iae = 'E'"]
        params = {}
        if self.year is not None:
            conditions.append("a.cod_anu = :year")
            params["year"] = self.year
        if self.user:
            conditions.append(f"{CREATED_BY} = :user")
            params["user"] = self.user
        if self.date_from:
            conditions.append("CAST(a.dat_cre_iae AS DATE) >= :date_from")
            params["date_from"] = self.date_from
        if self.date_to:
            conditions.append("CAST(a.dat_cre_iae AS DATE) <= :date_to")
            params["date_to"] = self.date_to
        return " AND ".join(conditions), params

    def applied(self) -> dict:
        return {
            "year": self.year,
            "user": self.user,
            "date_from": self.date_from.isoformat() if self.date_from else None,
            "date_to": self.date_to.isoformat() if self.date_to else None,
        }


class RegistrationService:

    def __init__(self, db):
        self.db = db

    def list_registrations(self, filters: RegistrationFilters, limit: int = 100) -> dict:
        where, params = filters.where()
        with self.db.session() as session:
            total = int(session.execute(
                text(f"SELECT COUNT(*) {NEW_REGISTRATIONS_FROM} WHERE {where}"), params
            ).scalar() or 0)
            rows = session.execute(
                text(f"""
                    SELECT a.cod_etu, s.lib_nom_pat_ind, s.lib_pr1_ind, s.lib_nom_ind_arb, s.lib_prn_ind_arb,
                           s.cin_ind, s.cod_sex_etu, a.cod_anu, a.cod_etp, a.lib_etp, a.lib_dip,
                           a.dat_cre_iae, {CREATED_BY} AS created_by
                    {NEW_REGISTRATIONS_FROM}
                    WHERE {where}
                    ORDER BY a.dat_cre_iae DESC NULLS LAST, a.cod_etu
                    LIMIT :limit
                """),
                {**params, "limit": limit},
            ).mappings().all()
            years = session.execute(
                text("SELECT DISTINCT cod_anu FROM administrative_situation ORDER BY cod_anu DESC")
            ).scalars().all()
            users = session.execute(
                text(f"SELECT DISTINCT {CREATED_BY} AS created_by FROM administrative_situation a ORDER BY 1")
            ).scalars().all()

        return {
            "recent_registrations": [dict(r) for r in rows],
            "total": total,
            "available_years": [y for y in years if y is not None],
            "available_users": list(users),
            "filter_applied": filters.applied(),
        }

    def registration_stats(self, filters: RegistrationFilters) -> dict:
        where, params = filters.where()

        def query(sql: str) -> List[dict]:
            return self.db.execute_raw_sql(sql, params)

        summary = query(f"""
            SELECT COUNT(*) AS total_new_registrations,
                   {GENDER_COUNTS},
                   COUNT(DISTINCT a.cod_etp) AS unique_programs
            {NEW_REGISTRATIONS_FROM}
            WHERE {where}
        """)
        users = query(f"""
            SELECT {CREATED_BY} AS created_by,
                   COUNT(*) AS total_registrations,
                   {GENDER_COUNTS},
                   COUNT(DISTINCT a.cod_etp) AS programs_handled,
                   COUNT(DISTINCT CAST(a.dat_cre_iae AS DATE)) AS active_days,
                   MIN(a.dat_cre_iae) AS first_registration,
                   MAX(a.dat_cre_iae) AS latest_registration
            {NEW_REGISTRATIONS_FROM}
            WHERE {where}
            GROUP BY {CREATED_BY}
            ORDER BY total_registrations DESC, created_by
        """)
        programs = query(f"""
            SELECT COALESCE(a.lib_etp, a.cod_etp) AS program_name,
                   COUNT(*) AS total_count,
                   {GENDER_COUNTS}
            {NEW_REGISTRATIONS_FROM}
            WHERE {where}
            GROUP BY COALESCE(a.lib_etp, a.cod_etp)
            ORDER BY total_count DESC, program_name
        """)
        trends = query(f"""
            SELECT CAST(a.dat_cre_iae AS DATE) AS registration_date,
                   COUNT(*) AS daily_count,
                   COUNT(CASE WHEN s.cod_sex_etu = 'M' THEN 1 END) AS daily_male,
                   COUNT(CASE WHEN s.cod_sex_etu = 'F' THEN 1 END) AS daily_female
            {NEW_REGISTRATIONS_FROM}
            WHERE {where} AND a.dat_cre_iae IS NOT NULL
            GROUP BY CAST(a.dat_cre_iae AS DATE)
            ORDER BY registration_date DESC
            LIMIT 30
        """)
        date_range = query(f"""
            SELECT MIN(CAST(a.dat_cre_iae AS DATE)) AS earliest_date,
                   MAX(CAST(a.dat_cre_iae AS DATE)) AS latest_date
            {NEW_REGISTRATIONS_FROM}
            WHERE {where}
        """)

        totals = summary[0] if summary else {}
        return {
            "summary": {
                "total_new_registrations": int(totals.get("total_new_registrations") or 0),
                "male_count": int(totals.get("male_count") or 0),
                "female_count": int(totals.get("female_count") or 0),
                "unique_programs": int(totals.get("unique_programs") or 0),
            },
            "user_statistics": users,
            "program_breakdown": programs,
            "daily_trends": trends,
            "date_range": date_range[0] if date_range else None,
            "filter_applied": filters.applied(),
        }

    def export_csv(self, filters: RegistrationFilters) -> str:
        """All matching new registrations as CSV text (header row included)."""
        where, params = filters.where()
        rows = self.db.execute_raw_sql(
            f"""
            SELECT a.cod_etu, s.lib_nom_pat_ind, s.lib_pr1_ind, s.lib_nom_ind_arb, s.lib_prn_ind_arb,
                   s.cin_ind, s.cod_sex_etu, a.cod_anu, a.cod_etp, a.lib_etp, a.lib_dip,
                   a.dat_cre_iae, {CREATED_BY} AS created_by
            {NEW_REGISTRATIONS_FROM}
            WHERE {where}
            ORDER BY a.dat_cre_iae DESC NULLS LAST, a.cod_etu
            """,
            params,
        )
        logger.info("registrations_exported", count=len(rows), **filters.applied())
        return registrations_csv(rows)


def registrations_csv(rows: List[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({c: "" if row.get(c) is None else row.get(c) for c in EXPORT_COLUMNS})
    return buffer.getvalue()
