"""
Oracle -> PostgreSQL Sync Service

PURPOSE:
Copy the Apogee data the portal serves (elements, hierarchy, students,
registration history, grades, pedagogical situation, laureats) from Oracle
into the Postgres cache.

HOW IT WORKS:
1. Each step runs one Oracle SELECT scoped to the faculty component
2. Rows are classified where needed (classification.classify_element)
3. Rows are upserted into Postgres on their natural key
4. Each step commits in its own transaction and writes one sync_log row

IDEMPOTENCE:
Upserts only bump updated_at when a data column actually changed, so a
rerun with unchanged source data inserts nothing and leaves updated_at
alone. last_sync is refreshed on every run.
"""

import time
from dataclasses import asdict, dataclass
from typing import Callable, Iterable, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.orm import Session

from portal.core.config import Settings
from portal.core.errors import SyncError
from portal.core.logging import get_logger
from portal.db.oracle import OracleSource, in_clause
from portal.services.classification import classify_element

logger = get_logger(__name__)


# ============================================================
# ORACLE QUERIES
# ============================================================

ELEMENTS_QUERY = """
SELECT e.COD_ELP, e.COD_CMP, e.COD_NEL, e.COD_PEL, e.LIB_ELP, e.LIC_ELP,
       fix_encoding(e.LIB_ELP_ARB) AS LIB_ELP_ARB
FROM ELEMENT_PEDAGOGI e
WHERE e.COD_CMP = :component
ORDER BY e.COD_PEL, e.COD_NEL, e.COD_ELP
"""

HIERARCHY_QUERY = """
SELECT COD_ELP_PERE, COD_ELP_FILS
FROM ELP_REGROUPE_ELP
WHERE COD_ELP_PERE LIKE 'JL%' OR COD_ELP_PERE LIKE 'JF%'
ORDER BY COD_ELP_PERE, COD_ELP_FILS
"""

# One row per registration year; sync_students keeps the latest per student
STUDENTS_QUERY = """
SELECT DISTINCT
    ind.COD_ETU, ind.LIB_NOM_PAT_IND, ind.LIB_PR1_IND,
    i.COD_ETP, i.COD_ANU, i.COD_VRS_VET, i.COD_DIP, i.COD_UTI, i.DAT_CRE_IAE,
    i.NBR_INS_CYC, i.NBR_INS_ETP, i.NBR_INS_DIP, i.TEM_DIP_IAE,
    ind.COD_PAY_NAT, ind.COD_ETB, ind.COD_NNE_IND, ind.DAT_CRE_IND, ind.DAT_MOD_IND,
    ind.DATE_NAI_IND, ind.DAA_ENT_ETB, ind.LIB_NOM_USU_IND, ind.LIB_PR2_IND, ind.LIB_PR3_IND,
    ind.COD_SEX_ETU, ind.LIB_VIL_NAI_ETU, ind.COD_DEP_PAY_NAI, ind.DAA_ENS_SUP, ind.DAA_ETB,
    ind.LIB_NOM_IND_ARB, ind.LIB_PRN_IND_ARB, ind.CIN_IND, ind.LIB_VIL_NAI_ETU_ARB,
    e.LIB_ETP, e.LIC_ETP
FROM INS_ADM_ETP i
JOIN INDIVIDU ind ON i.COD_IND = ind.COD_IND
JOIN ETAPE e ON i.COD_ETP = e.COD_ETP
WHERE i.ETA_IAE = 'E'
  AND i.TEM_IAE_PRM = 'O'
  AND i.COD_CMP = :component
  AND i.COD_ANU IN ({years})
ORDER BY i.COD_ANU, ind.COD_ETU
"""

GRADES_QUERY = """
SELECT i.COD_ETU, r.COD_ANU, r.COD_SES, r.COD_ELP, r.NOT_ELP, r.COD_TRE
FROM RESULTAT_ELP r
JOIN INDIVIDU i ON r.COD_IND = i.COD_IND
JOIN INS_ADM_ETP iae ON r.COD_IND = iae.COD_IND AND r.COD_ANU = iae.COD_ANU
WHERE r.COD_ADM = 1
  AND iae.COD_CMP = :component
  AND iae.ETA_IAE = 'E'
  AND iae.TEM_IAE_PRM = 'O'
  AND r.COD_ANU IN ({years})
ORDER BY r.COD_ANU, i.COD_ETU, r.COD_SES, r.COD_ELP
"""

# Module contracts of one year, compensated modules excluded
PEDAGOGICAL_SITUATION_QUERY = """
SELECT DISTINCT
    IND.COD_ETU, IND.LIB_NOM_PAT_IND, IND.LIB_PR1_IND,
    ICE.COD_ANU AS DAA_UNI_CON,
    ICE.COD_ELP,
    fix_encoding(ELP.LIB_ELP) AS LIB_ELP,
    fix_encoding(ELP.LIB_ELP_ARB) AS LIB_ELP_ARB,
    MAX(IAE.ETA_IAE) OVER (
        PARTITION BY ICE.COD_IND, ICE.COD_ANU, ICE.COD_ETP, ICE.COD_VRS_VET
    ) AS ETA_IAE
FROM IND_CONTRAT_ELP ICE
JOIN INDIVIDU IND ON ICE.COD_IND = IND.COD_IND
JOIN ELEMENT_PEDAGOGI ELP ON ICE.COD_ELP = ELP.COD_ELP
LEFT JOIN INS_ADM_ETP IAE ON (
    ICE.COD_IND = IAE.COD_IND
    AND ICE.COD_ANU = IAE.COD_ANU
    AND ICE.COD_ETP = IAE.COD_ETP
    AND ICE.COD_VRS_VET = IAE.COD_VRS_VET
)
WHERE ICE.TEM_PRC_ICE = 'N'
  AND ICE.COD_ANU = :year
  AND ICE.COD_CIP = :component
  AND ELP.COD_NEL = 'MOD'
ORDER BY IND.COD_ETU, ICE.COD_ELP
"""

# Every active registration of the years, not only the primary one
ADMINISTRATIVE_SITUATION_QUERY = """
SELECT
    ind.COD_ETU, i.COD_ANU, i.COD_ETP, e.LIB_ETP, e.LIC_ETP, i.COD_VRS_VET,
    i.ETA_IAE, i.TEM_IAE_PRM, i.DAT_CRE_IAE, i.DAT_MOD_IAE,
    i.NBR_INS_CYC, i.NBR_INS_ETP, i.NBR_INS_DIP, i.TEM_DIP_IAE, i.COD_UTI,
    i.COD_DIP, d.LIB_DIP
FROM INS_ADM_ETP i
JOIN INDIVIDU ind ON i.COD_IND = ind.COD_IND
JOIN ETAPE e ON i.COD_ETP = e.COD_ETP
LEFT JOIN DIPLOME d ON i.COD_DIP = d.COD_DIP
WHERE i.COD_CMP = :component
  AND i.ETA_IAE = 'E'
  AND i.COD_ANU IN ({years})
ORDER BY ind.COD_ETU, i.COD_ANU DESC
"""

# Graduates: admitted (ADM) to a diploma version for the year
LAUREATS_QUERY = """
SELECT DISTINCT
    ind.COD_ETU, ind.LIB_NOM_PAT_IND AS NOM_PAT_IND, ind.LIB_PR1_IND AS PRENOM_IND,
    i.COD_ETP, TO_CHAR(i.COD_ANU) AS COD_ANU, i.COD_VRS_VET, i.COD_DIP, d.LIB_DIP, i.COD_UTI,
    i.DAT_CRE_IAE, i.NBR_INS_CYC, i.NBR_INS_ETP, i.NBR_INS_DIP, i.TEM_DIP_IAE,
    ind.COD_PAY_NAT, ind.COD_ETB, ind.COD_NNE_IND, ind.DAT_CRE_IND, ind.DATE_NAI_IND,
    ind.CIN_IND, ind.COD_SEX_ETU AS SEXE, ind.LIB_VIL_NAI_ETU,
    ind.LIB_NOM_IND_ARB AS NOM_ARABE, ind.LIB_PRN_IND_ARB AS PRENOM_ARABE,
    ind.LIB_VIL_NAI_ETU_ARB AS LIEU_NAI_ARABE
FROM INS_ADM_ETP i
JOIN INDIVIDU ind ON i.COD_IND = ind.COD_IND
JOIN DIPLOME d ON i.COD_DIP = d.COD_DIP
JOIN RESULTAT_VDI r ON r.COD_IND = i.COD_IND AND r.COD_ANU = i.COD_ANU AND r.COD_DIP = i.COD_DIP
WHERE i.COD_CMP = :component
  AND i.ETA_IAE = 'E'
  AND r.COD_TRE = 'ADM'
  AND i.COD_ANU IN ({years})
ORDER BY COD_ANU, ind.COD_ETU
"""


# ============================================================
# POSTGRES UPSERTS
# ============================================================

ELEMENT_COLUMNS = [
    "cod_elp", "cod_cmp", "cod_nel", "cod_pel", "lib_elp", "lic_elp", "lib_elp_arb",
    "element_type", "semester_number",
]
HIERARCHY_COLUMNS = ["cod_elp_pere", "cod_elp_fils"]
STUDENT_COLUMNS = [
    "cod_etu", "lib_nom_pat_ind", "lib_pr1_ind", "cod_etp", "cod_anu", "cod_vrs_vet", "cod_dip",
    "cod_uti", "dat_cre_iae", "nbr_ins_cyc", "nbr_ins_etp", "nbr_ins_dip", "tem_dip_iae",
    "cod_pay_nat", "cod_etb", "cod_nne_ind", "dat_cre_ind", "dat_mod_ind", "date_nai_ind",
    "daa_ent_etb", "lib_nom_usu_ind", "lib_pr2_ind", "lib_pr3_ind", "cod_sex_etu",
    "lib_vil_nai_etu", "cod_dep_pay_nai", "daa_ens_sup", "daa_etb", "lib_nom_ind_arb",
    "lib_prn_ind_arb", "cin_ind", "lib_vil_nai_etu_arb", "lib_etp", "lic_etp",
]
ADMINISTRATIVE_COLUMNS = [
    "cod_etu", "cod_anu", "cod_etp", "lib_etp", "lic_etp", "cod_vrs_vet", "eta_iae",
    "tem_iae_prm", "dat_cre_iae", "dat_mod_iae", "nbr_ins_cyc", "nbr_ins_etp", "nbr_ins_dip",
    "tem_dip_iae", "cod_uti", "cod_dip", "lib_dip",
]
GRADE_COLUMNS = ["cod_etu", "cod_anu", "cod_ses", "cod_elp", "not_elp", "cod_tre"]
PEDAGOGICAL_COLUMNS = [
    "cod_etu", "lib_nom_pat_ind", "lib_pr1_ind", "daa_uni_con", "cod_elp", "lib_elp",
    "lib_elp_arb", "eta_iae", "academic_level", "is_yearly_element",
]
LAUREAT_COLUMNS = [
    "cod_etu", "nom_pat_ind", "prenom_ind", "cod_etp", "cod_anu", "cod_vrs_vet", "cod_dip",
    "lib_dip", "cod_uti", "dat_cre_iae", "nbr_ins_cyc", "nbr_ins_etp", "nbr_ins_dip",
    "tem_dip_iae", "cod_pay_nat", "cod_etb", "cod_nne_ind", "dat_cre_ind", "date_nai_ind",
    "cin_ind", "sexe", "lib_vil_nai_etu", "nom_arabe", "prenom_arabe", "lieu_nai_arabe",
]


def build_upsert(
    table: str,
    columns: Sequence[str],
    conflict_columns: Sequence[str],
    track_updates: bool = True,
) -> str:
    """
    INSERT ... ON CONFLICT DO UPDATE for one row of named parameters.

    updated_at moves only when a non-key column differs from the stored
    value; last_sync always moves. RETURNING "inserted" tells a fresh
    insert (xmax = 0) from an update.
    """
    data_columns = [c for c in columns if c not in conflict_columns]
    assignments = [f"{c} = EXCLUDED.{c}" for c in data_columns]
    if track_updates and data_columns:
        current = ", ".join(f"{table}.{c}" for c in data_columns)
        incoming = ", ".join(f"EXCLUDED.{c}" for c in data_columns)
        assignments.append(
            f"updated_at = CASE WHEN ROW({current}) IS DISTINCT FROM ROW({incoming}) "
            f"THEN CURRENT_TIMESTAMP ELSE {table}.updated_at END"
        )
    assignments.append("last_sync = CURRENT_TIMESTAMP")

    return (
        f"INSERT INTO {table} ({', '.join(columns)}, last_sync) "
        f"VALUES ({', '.join(':' + c for c in columns)}, CURRENT_TIMESTAMP) "
        f"ON CONFLICT ({', '.join(conflict_columns)}) DO UPDATE SET {', '.join(assignments)} "
        f"RETURNING (xmax = 0) AS inserted"
    )


UPSERT_ELEMENT = build_upsert("element_pedagogi", ELEMENT_COLUMNS, ["cod_elp"])
UPSERT_HIERARCHY = build_upsert("element_hierarchy", HIERARCHY_COLUMNS, HIERARCHY_COLUMNS, track_updates=False)
UPSERT_STUDENT = build_upsert("students", STUDENT_COLUMNS, ["cod_etu"])
UPSERT_ADMINISTRATIVE = build_upsert(
    "administrative_situation", ADMINISTRATIVE_COLUMNS, ["cod_etu", "cod_anu", "cod_etp"]
)
UPSERT_GRADE = build_upsert("grades", GRADE_COLUMNS, ["cod_etu", "cod_elp", "cod_anu", "cod_ses"])
UPSERT_PEDAGOGICAL = build_upsert(
    "pedagogical_situation", PEDAGOGICAL_COLUMNS, ["cod_etu", "cod_elp", "daa_uni_con"]
)
UPSERT_LAUREAT = build_upsert("laureats", LAUREAT_COLUMNS, ["cod_etu", "cod_anu", "cod_dip"])


@dataclass
class SyncStats:
    sync_type: str
    fetched: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    duration_seconds: float = 0.0

    @property
    def processed(self) -> int:
        return self.inserted + self.updated

    def to_dict(self) -> dict:
        data = asdict(self)
        data["processed"] = self.processed
        return data


def upsert_rows(session: Session, sql: str, rows: Iterable[dict], columns: Sequence[str],
                stats: SyncStats) -> None:
    statement = text(sql)
    for row in rows:
        params = {c: row.get(c) for c in columns}
        inserted = session.execute(statement, params).scalar()
        if inserted:
            stats.inserted += 1
        else:
            stats.updated += 1


def collapse_rows(rows: Iterable[dict], key_columns: Sequence[str],
                  prefer: Optional[Callable[[dict], object]] = None) -> List[dict]:
    """
    One row per conflict key, so a single run never upserts the same key
    twice. Without `prefer` the last row wins; with it, the row with the
    highest `prefer(row)` wins and ties keep the last row.
    """
    kept: dict = {}
    for row in rows:
        key = tuple(row.get(c) for c in key_columns)
        current = kept.get(key)
        if current is None or prefer is None or prefer(row) >= prefer(current):
            kept[key] = row
    return list(kept.values())


def record_sync_log(db, sync_type: str, records: int, status: str,
                    message: Optional[str] = None) -> None:
    """Write one audit row in its own transaction."""
    with db.session() as session:
        session.execute(
            text("""
                INSERT INTO sync_log (sync_type, records_processed, sync_status, error_message)
                VALUES (:sync_type, :records, :status, :message)
            """),
            {"sync_type": sync_type, "records": records, "status": status, "message": message},
        )


# ============================================================
# SYNC SERVICE
# ============================================================

class SyncService:
    """
    Runs the sync steps against one Oracle source and one Postgres Database.

    Usage:
        with OracleSource.from_settings(settings) as source:
            SyncService(db, source, settings).run_full_sync()
    """

    def __init__(self, db, source: OracleSource, settings: Settings):
        self.db = db
        self.source = source
        self.settings = settings

    def _run_step(self, sync_type: str, step: Callable[[Session, SyncStats], None]) -> SyncStats:
        stats = SyncStats(sync_type=sync_type)
        started = time.monotonic()
        logger.info("sync_step_started", step=sync_type)
        try:
            with self.db.session() as session:
                step(session, stats)
        except Exception as e:
            logger.error("sync_step_failed", step=sync_type, error=str(e))
            record_sync_log(self.db, sync_type, 0, "error", str(e))
            raise SyncError(sync_type, str(e)) from e

        stats.duration_seconds = round(time.monotonic() - started, 2)
        record_sync_log(self.db, sync_type, stats.processed, "success")
        logger.info("sync_step_finished", **stats.to_dict())
        return stats

    def _years(self, years: Optional[Iterable[int]]) -> List[int]:
        return list(years) if years else list(self.settings.sync_years)

    # --------------------------------------------------------
    # Steps
    # --------------------------------------------------------

    def sync_elements(self) -> SyncStats:
        def step(session: Session, stats: SyncStats) -> None:
            rows = self.source.fetch_all(ELEMENTS_QUERY, {"component": self.settings.component_code})
            stats.fetched = len(rows)
            if not rows:
                logger.warning("no_elements_in_source", component=self.settings.component_code)
            for row in rows:
                result = classify_element(row["cod_elp"], row["lib_elp"], row["cod_nel"], row["cod_pel"])
                row["element_type"] = result.element_type
                row["semester_number"] = result.semester_number
            upsert_rows(session, UPSERT_ELEMENT, rows, ELEMENT_COLUMNS, stats)

        return self._run_step("element_pedagogi", step)

    def sync_hierarchy(self) -> SyncStats:
        def step(session: Session, stats: SyncStats) -> None:
            rows = self.source.fetch_all(HIERARCHY_QUERY)
            stats.fetched = len(rows)
            upsert_rows(session, UPSERT_HIERARCHY, rows, HIERARCHY_COLUMNS, stats)

        return self._run_step("element_hierarchy", step)

    def sync_students(self, years: Optional[Iterable[int]] = None) -> SyncStats:
        years = self._years(years)

        def step(session: Session, stats: SyncStats) -> None:
            placeholders, params = in_clause("year", years)
            params["component"] = self.settings.component_code
            rows = self.source.fetch_all(STUDENTS_QUERY.format(years=placeholders), params)
            stats.fetched = len(rows)
            rows = collapse_rows(rows, ["cod_etu"], prefer=lambda row: row.get("cod_anu") or 0)
            upsert_rows(session, UPSERT_STUDENT, rows, STUDENT_COLUMNS, stats)

        return self._run_step("students", step)

    def sync_administrative_situation(self, years: Optional[Iterable[int]] = None) -> SyncStats:
        """Every active registration (one per student, year and step), primary or not."""
        years = self._years(years)

        def step(session: Session, stats: SyncStats) -> None:
            placeholders, params = in_clause("year", years)
            params["component"] = self.settings.component_code
            rows = self.source.fetch_all(ADMINISTRATIVE_SITUATION_QUERY.format(years=placeholders), params)
            stats.fetched = len(rows)
            if not rows:
                logger.warning("no_administrative_situation_in_source", years=years)
            rows = collapse_rows(rows, ["cod_etu", "cod_anu", "cod_etp"])
            upsert_rows(session, UPSERT_ADMINISTRATIVE, rows, ADMINISTRATIVE_COLUMNS, stats)

        return self._run_step("administrative_situation", step)

    def sync_grades(self, years: Optional[Iterable[int]] = None) -> SyncStats:
        """Grades of students missing from the cache are skipped."""
        years = self._years(years)

        def step(session: Session, stats: SyncStats) -> None:
            known = {r[0] for r in session.execute(text("SELECT cod_etu FROM students")).fetchall()}
            placeholders, params = in_clause("year", years)
            params["component"] = self.settings.component_code
            rows = self.source.fetch_all(GRADES_QUERY.format(years=placeholders), params)
            stats.fetched = len(rows)

            kept = [row for row in rows if row["cod_etu"] in known]
            stats.skipped = len(rows) - len(kept)
            if stats.skipped:
                logger.warning("grades_skipped_unknown_student", count=stats.skipped)
            kept = collapse_rows(kept, ["cod_etu", "cod_elp", "cod_anu", "cod_ses"])
            upsert_rows(session, UPSERT_GRADE, kept, GRADE_COLUMNS, stats)

        return self._run_step("grades", step)

    def sync_pedagogical_situation(self, year: Optional[int] = None) -> SyncStats:
        """
        Upsert the year's module contracts, then drop rows of that year the
        source no longer has. All rows touched in this transaction share
        the same CURRENT_TIMESTAMP as last_sync.
        """
        year = year or self.settings.current_academic_year

        def step(session: Session, stats: SyncStats) -> None:
            rows = self.source.fetch_all(
                PEDAGOGICAL_SITUATION_QUERY, {"year": year, "component": self.settings.component_code}
            )
            stats.fetched = len(rows)
            if not rows:
                logger.warning("no_pedagogical_situation_in_source", year=year)
                return

            for row in rows:
                result = classify_element(row["cod_elp"], row["lib_elp"])
                row["academic_level"] = result.academic_level
                row["is_yearly_element"] = result.is_yearly_element
            # Step versions of one registration can disagree on eta_iae; E wins
            rows = collapse_rows(
                rows,
                ["cod_etu", "cod_elp", "daa_uni_con"],
                prefer=lambda row: (row.get("eta_iae") == "E", row.get("eta_iae") or ""),
            )
            upsert_rows(session, UPSERT_PEDAGOGICAL, rows, PEDAGOGICAL_COLUMNS, stats)

            deleted = session.execute(
                text("""
                    DELETE FROM pedagogical_situation
                    WHERE daa_uni_con = :year AND last_sync < CURRENT_TIMESTAMP
                """),
                {"year": year},
            )
            stats.deleted = deleted.rowcount or 0

        return self._run_step("pedagogical_situation", step)

    def sync_laureats(self, years: Optional[Iterable[int]] = None) -> SyncStats:
        years = list(years) if years else list(self.settings.laureat_years)

        def step(session: Session, stats: SyncStats) -> None:
            placeholders, params = in_clause("year", years)
            params["component"] = self.settings.component_code
            rows = self.source.fetch_all(LAUREATS_QUERY.format(years=placeholders), params)
            stats.fetched = len(rows)
            rows = collapse_rows(rows, ["cod_etu", "cod_anu", "cod_dip"])
            upsert_rows(session, UPSERT_LAUREAT, rows, LAUREAT_COLUMNS, stats)

        return self._run_step("laureats", step)

    def run_full_sync(self, years: Optional[Iterable[int]] = None) -> List[dict]:
        """
        Elements, hierarchy, students, administrative situation, grades,
        pedagogical situation.
        Stops at the first failing step (SyncError).
        """
        years = self._years(years)
        started = time.monotonic()
        logger.info("full_sync_started", years=years)

        results = [
            self.sync_elements(),
            self.sync_hierarchy(),
            self.sync_students(years),
            self.sync_administrative_situation(years),
            self.sync_grades(years),
            self.sync_pedagogical_situation(),
        ]

        logger.info(
            "full_sync_finished",
            duration_seconds=round(time.monotonic() - started, 2),
            processed=sum(r.processed for r in results),
        )
        return [r.to_dict() for r in results]


def run_sync_job(db, settings: Settings, job: str = "full", years: Optional[List[int]] = None) -> List[dict]:
    """
    Open an Oracle connection, run one job, close the connection.
    Used by the admin API background task and by scripts/sync_all.py.
    """
    with OracleSource.from_settings(settings) as source:
        service = SyncService(db, source, settings)
        if job == "full":
            return service.run_full_sync(years)
        if job == "administrative_situation":
            return [service.sync_administrative_situation(years).to_dict()]
        if job == "laureats":
            return [service.sync_laureats(years).to_dict()]
        if job == "pedagogical_situation":
            return [service.sync_pedagogical_situation(years[0] if years else None).to_dict()]
        raise ValueError(f"Unknown sync job: {job}")
