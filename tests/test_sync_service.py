"""Tests for the Oracle -> PostgreSQL sync steps (fake source and database)."""

import pytest

from portal.core.config import get_settings
from portal.core.errors import SyncError
from portal.db.oracle import in_clause
from portal.services.sync_service import (
    UPSERT_HIERARCHY,
    SyncService,
    SyncStats,
    build_upsert,
    collapse_rows,
)


class FakeSource:
    """Returns canned rows for the first query containing a registered table name."""

    def __init__(self, tables=None, error=None):
        self.tables = tables or {}
        self.error = error
        self.queries = []

    def fetch_all(self, sql, params=None):
        self.queries.append((sql, params))
        if self.error:
            raise self.error
        for table, rows in self.tables.items():
            if table in sql:
                return [dict(r) for r in rows]
        return []


class TestBuildUpsert:
    """Tests for build_upsert()."""

    def test_statement_shape(self):
        sql = build_upsert("grades", ["cod_etu", "cod_elp", "not_elp"], ["cod_etu", "cod_elp"])

        assert sql.startswith("INSERT INTO grades (cod_etu, cod_elp, not_elp, last_sync)")
        assert "VALUES (:cod_etu, :cod_elp, :not_elp, CURRENT_TIMESTAMP)" in sql
        assert "ON CONFLICT (cod_etu, cod_elp) DO UPDATE SET not_elp = EXCLUDED.not_elp" in sql
        assert "ROW(grades.not_elp) IS DISTINCT FROM ROW(EXCLUDED.not_elp)" in sql
        assert "last_sync = CURRENT_TIMESTAMP" in sql
        assert sql.endswith("RETURNING (xmax = 0) AS inserted")

    def test_key_only_table_refreshes_last_sync(self):
        assert "updated_at" not in UPSERT_HIERARCHY
        assert "DO UPDATE SET last_sync = CURRENT_TIMESTAMP" in UPSERT_HIERARCHY


class TestInClause:
    """Tests for in_clause()."""

    def test_numbered_binds(self):
        assert in_clause("year", [2023, 2024]) == (":year0, :year1", {"year0": 2023, "year1": 2024})

    def test_empty_list_rejected(self):
        with pytest.raises(ValueError):
            in_clause("year", [])


class TestCollapseRows:
    """Tests for collapse_rows()."""

    def test_last_row_wins(self):
        rows = [{"k": 1, "v": "a"}, {"k": 2, "v": "b"}, {"k": 1, "v": "c"}]
        assert collapse_rows(rows, ["k"]) == [{"k": 1, "v": "c"}, {"k": 2, "v": "b"}]

    def test_preferred_row_wins_regardless_of_order(self):
        rows = [{"k": 1, "year": 2024}, {"k": 1, "year": 2023}]
        assert collapse_rows(rows, ["k"], prefer=lambda r: r["year"]) == [{"k": 1, "year": 2024}]


class TestSyncStats:
    def test_processed(self):
        stats = SyncStats(sync_type="grades", inserted=3, updated=2, skipped=7)
        assert stats.processed == 5
        assert stats.to_dict()["processed"] == 5


class TestSyncSteps:
    """Tests for SyncService steps."""

    def test_elements_classified_and_counted(self, fake_db):
        fake_db.on("INSERT INTO element_pedagogi", [{"inserted": True}])
        source = FakeSource({"ELEMENT_PEDAGOGI": [
            {"cod_elp": "JMS3M01", "cod_cmp": "FJP", "cod_nel": "MOD", "cod_pel": None,
             "lib_elp": "Droit civil", "lic_elp": "DC", "lib_elp_arb": None},
        ]})

        stats = SyncService(fake_db, source, get_settings()).sync_elements()

        assert stats.inserted == 1
        _, params = fake_db.queries("INSERT INTO element_pedagogi")[0]
        assert params["element_type"] == "MODULE"
        assert params["semester_number"] == 3
        _, log = fake_db.queries("INSERT INTO sync_log")[0]
        assert log["sync_type"] == "element_pedagogi"
        assert log["status"] == "success"
        assert log["records"] == 1

    def test_grades_of_unknown_students_skipped(self, fake_db):
        fake_db.on("SELECT cod_etu FROM students", [{"cod_etu": "1"}])
        source = FakeSource({"RESULTAT_ELP": [
            {"cod_etu": "1", "cod_anu": 2024, "cod_ses": "1", "cod_elp": "JMS1M01", "not_elp": 12, "cod_tre": "V"},
            {"cod_etu": "9", "cod_anu": 2024, "cod_ses": "1", "cod_elp": "JMS1M01", "not_elp": 8, "cod_tre": "NV"},
        ]})

        stats = SyncService(fake_db, source, get_settings()).sync_grades([2024])

        assert stats.fetched == 2
        assert stats.skipped == 1
        assert len(fake_db.queries("INSERT INTO grades")) == 1

    def test_pedagogical_situation_empty_source_keeps_rows(self, fake_db):
        stats = SyncService(fake_db, FakeSource(), get_settings()).sync_pedagogical_situation(2025)

        assert stats.fetched == 0
        assert fake_db.queries("DELETE FROM pedagogical_situation") == []

    def test_pedagogical_situation_removes_stale_rows(self, fake_db):
        source = FakeSource({"IND_CONTRAT_ELP": [
            {"cod_etu": "1", "lib_nom_pat_ind": "ALAMI", "lib_pr1_ind": "Omar", "daa_uni_con": 2025,
             "cod_elp": "DRT1A", "lib_elp": "Droit 1ère année", "lib_elp_arb": None, "eta_iae": "E"},
        ]})

        SyncService(fake_db, source, get_settings()).sync_pedagogical_situation(2025)

        _, params = fake_db.queries("INSERT INTO pedagogical_situation")[0]
        assert params["academic_level"] == "1A"
        assert params["is_yearly_element"] is True
        _, delete_params = fake_db.queries("DELETE FROM pedagogical_situation")[0]
        assert delete_params == {"year": 2025}

    def test_student_registered_several_years_upserted_once(self, fake_db):
        source = FakeSource({"INS_ADM_ETP": [
            {"cod_etu": "1", "lib_nom_pat_ind": "ALAMI", "cod_anu": 2023, "cod_etp": "JL1"},
            {"cod_etu": "2", "lib_nom_pat_ind": "BENNANI", "cod_anu": 2023, "cod_etp": "JL1"},
            {"cod_etu": "1", "lib_nom_pat_ind": "ALAMI", "cod_anu": 2024, "cod_etp": "JL2"},
        ]})
        service = SyncService(fake_db, source, get_settings())

        first = service.sync_students([2023, 2024])
        first_params = [p for _, p in fake_db.queries("INSERT INTO students")]
        fake_db.calls.clear()
        service.sync_students([2023, 2024])
        second_params = [p for _, p in fake_db.queries("INSERT INTO students")]

        assert first.fetched == 3
        assert first.processed == 2
        assert [(p["cod_etu"], p["cod_anu"], p["cod_etp"]) for p in first_params] == [
            ("1", 2024, "JL2"), ("2", 2023, "JL1"),
        ]
        assert second_params == first_params

    def test_pedagogical_duplicates_keep_active_registration(self, fake_db):
        row = {"cod_etu": "1", "lib_nom_pat_ind": "ALAMI", "lib_pr1_ind": "Omar", "daa_uni_con": 2025,
               "cod_elp": "JLS3M01", "lib_elp": "Droit", "lib_elp_arb": None}
        source = FakeSource({"IND_CONTRAT_ELP": [{**row, "eta_iae": "E"}, {**row, "eta_iae": "A"}]})

        stats = SyncService(fake_db, source, get_settings()).sync_pedagogical_situation(2025)

        upserts = fake_db.queries("INSERT INTO pedagogical_situation")
        assert stats.fetched == 2
        assert len(upserts) == 1
        assert upserts[0][1]["eta_iae"] == "E"

    def test_administrative_situation_keeps_every_step(self, fake_db):
        source = FakeSource({"LEFT JOIN DIPLOME": [
            {"cod_etu": "1", "cod_anu": 2024, "cod_etp": "JL2", "tem_iae_prm": "O", "nbr_ins_cyc": 2},
            {"cod_etu": "1", "cod_anu": 2024, "cod_etp": "JLC", "tem_iae_prm": "N", "nbr_ins_cyc": 1},
            {"cod_etu": "1", "cod_anu": 2024, "cod_etp": "JL2", "tem_iae_prm": "O", "nbr_ins_cyc": 2},
        ]})

        stats = SyncService(fake_db, source, get_settings()).sync_administrative_situation([2024])

        upserts = [p for _, p in fake_db.queries("INSERT INTO administrative_situation")]
        assert stats.fetched == 3
        assert [(p["cod_etp"], p["tem_iae_prm"]) for p in upserts] == [("JL2", "O"), ("JLC", "N")]
        oracle_sql, oracle_params = source.queries[0]
        assert "i.ETA_IAE = 'E'" in oracle_sql
        assert oracle_params["year0"] == 2024
        _, log = fake_db.queries("INSERT INTO sync_log")[0]
        assert log["sync_type"] == "administrative_situation"

    def test_failure_logged_and_raised(self, fake_db):
        service = SyncService(fake_db, FakeSource(error=RuntimeError("ORA-12541")), get_settings())

        with pytest.raises(SyncError) as exc_info:
            service.sync_hierarchy()

        assert exc_info.value.step == "element_hierarchy"
        _, log = fake_db.queries("INSERT INTO sync_log")[0]
        assert log["status"] == "error"
        assert "ORA-12541" in log["message"]
