"""Tests for /api/admin endpoints: groups, exams, sync and laureats."""

from datetime import date, datetime, time

from portal.api.routes import admin_routes


RULE_ROW = {"id": 1, "module_pattern": "JLS3%", "group_name": "G1", "range_start": "A", "range_end": "B",
            "created_at": datetime(2025, 9, 1, 8, 0)}


class TestGroupRules:
    """Tests for /api/admin/groups/rules."""

    def test_list_rules(self, client, fake_db, admin_headers):
        fake_db.on("FROM grouping_rules gr ORDER BY", [{**RULE_ROW, "student_count": 42}])
        response = client.get("/api/admin/groups/rules", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()[0]["student_count"] == 42
        _, params = fake_db.queries("FROM grouping_rules gr ORDER BY")[0]
        assert params == {"year": 2025}

    def test_create_rule_uppercases(self, client, fake_db, admin_headers):
        fake_db.on("INSERT INTO grouping_rules", [RULE_ROW])
        response = client.post("/api/admin/groups/rules", headers=admin_headers, json={
            "module_pattern": "jls3%", "group_name": "G1", "range_start": "a", "range_end": "b",
        })

        assert response.status_code == 201
        assert response.json()["id"] == 1
        _, params = fake_db.queries("INSERT INTO grouping_rules")[0]
        assert params == {"module_pattern": "JLS3%", "group_name": "G1", "range_start": "A", "range_end": "B"}

    def test_create_rule_missing_field(self, client, admin_headers):
        response = client.post("/api/admin/groups/rules", headers=admin_headers, json={
            "module_pattern": "JLS3%", "group_name": "G1", "range_start": "A",
        })
        assert response.status_code == 400
        assert response.json() == {"error": "All fields are required"}

    def test_delete_rule(self, client, fake_db, admin_headers):
        fake_db.on("DELETE FROM grouping_rules", [{"id": 1}])
        response = client.delete("/api/admin/groups/rules/1", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Rule deleted successfully"

    def test_delete_unknown_rule(self, client, admin_headers):
        response = client.delete("/api/admin/groups/rules/99", headers=admin_headers)
        assert response.status_code == 404

    def test_rule_students_unknown_rule(self, client, admin_headers):
        response = client.get("/api/admin/groups/rules/99/students", headers=admin_headers)
        assert response.status_code == 404
        assert response.json() == {"error": "Rule not found"}

    def test_breakdown_requires_pattern(self, client, admin_headers):
        response = client.get("/api/admin/groups/stats/breakdown", headers=admin_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Pattern required"}


class TestResolve:
    """Tests for GET /api/admin/groups/resolve."""

    def test_resolve(self, client, fake_db, admin_headers):
        fake_db.on("FROM pedagogical_situation ps", [
            {"cod_etu": "1", "lib_nom_pat_ind": "ALAMI", "lib_pr1_ind": "Omar", "cod_elp": "JLS3M01", "lib_elp": "D"},
            {"cod_etu": "2", "lib_nom_pat_ind": "ZIANI", "lib_pr1_ind": "Hind", "cod_elp": "JLS3M01", "lib_elp": "D"},
        ]).on("FROM grouping_rules", [RULE_ROW])
        response = client.get("/api/admin/groups/resolve?module=JLS3%25&group=G1%20(matin)", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["groups"] == ["G1"]
        assert data["count"] == 1
        assert data["students"][0]["cod_etu"] == "1"

    def test_module_required(self, client, admin_headers):
        response = client.get("/api/admin/groups/resolve", headers=admin_headers)
        assert response.status_code == 400


class TestExams:
    """Tests for /api/admin/exams."""

    EXAM_ROW = {"id": 7, "module_code": "JLS3M01", "module_name": "Droit", "group_name": "Tous",
                "exam_date": date(2030, 1, 15), "start_time": time(9, 0), "end_time": time(11, 0),
                "location": "Amphi A", "professor_name": None, "created_at": datetime(2025, 9, 1)}

    def test_create_with_explicit_students(self, client, fake_db, admin_headers):
        fake_db.on("INSERT INTO exam_planning", [self.EXAM_ROW]).on("INSERT INTO exam_assignments", [{"inserted": True}])
        response = client.post("/api/admin/exams", headers=admin_headers, json={
            "module_code": "JLS3M01", "exam_date": "2030-01-15", "start_time": "09:00", "end_time": "11:00",
            "student_ids": ["1", "2", "1"],
        })

        assert response.status_code == 201
        assert response.json()["assigned_count"] == 2
        assignments = fake_db.queries("INSERT INTO exam_assignments")
        assert [p["cod_etu"] for _, p in assignments] == ["1", "2"]
        assert all(p["assigned_group"] == "Tous" for _, p in assignments)
        _, exam_params = fake_db.queries("INSERT INTO exam_planning")[0]
        assert exam_params["explicit_students"] is True

    def test_end_before_start_rejected(self, client, admin_headers):
        response = client.post("/api/admin/exams", headers=admin_headers, json={
            "module_code": "JLS3M01", "exam_date": "2030-01-15", "start_time": "11:00", "end_time": "09:00",
        })
        assert response.status_code == 400
        assert "end_time must be after start_time" in response.json()["error"]

    def test_delete_unknown_exam(self, client, admin_headers):
        response = client.delete("/api/admin/exams/99", headers=admin_headers)
        assert response.status_code == 404

    def test_sync_assignments(self, client, fake_db, admin_headers):
        fake_db.on("SELECT id, module_code, group_name FROM exam_planning", [
            {"id": 7, "module_code": "JLS3M01", "group_name": "G1"},
        ]).on("FROM pedagogical_situation ps", [
            {"cod_etu": "1", "lib_nom_pat_ind": "ALAMI", "lib_pr1_ind": "Omar", "cod_elp": "JLS3M01", "lib_elp": "D"},
        ]).on("FROM grouping_rules", [RULE_ROW]).on("INSERT INTO exam_assignments", [{"inserted": True}])
        response = client.post("/api/admin/exams/sync-assignments", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["new_assignments"] == 1
        _, params = fake_db.queries("INSERT INTO exam_assignments")[0]
        assert params == {"exam_id": 7, "cod_etu": "1", "assigned_group": "G1"}

    def test_sync_assignments_drops_students_no_longer_resolved(self, client, fake_db, admin_headers):
        fake_db.on("SELECT id, module_code, group_name FROM exam_planning", [
            {"id": 7, "module_code": "JLS3M01", "group_name": "G1"},
        ]).on("FROM pedagogical_situation ps", [
            {"cod_etu": "1", "lib_nom_pat_ind": "ALAMI", "lib_pr1_ind": "Omar", "cod_elp": "JLS3M01", "lib_elp": "D"},
        ]).on("FROM grouping_rules", [RULE_ROW]).on("DELETE FROM exam_assignments", [{"cod_etu": "9"}])
        response = client.post("/api/admin/exams/sync-assignments", headers=admin_headers)

        data = response.json()
        assert data["removed_assignments"] == 1
        assert data["exams"][0]["removed_assignments"] == 1
        sql, _ = fake_db.queries("SELECT id, module_code, group_name FROM exam_planning")[0]
        assert "NOT COALESCE(explicit_students, FALSE)" in sql
        _, params = fake_db.queries("DELETE FROM exam_assignments")[0]
        assert params == {"exam_id": 7, "cod_etus": ["1"]}


class TestSync:
    """Tests for manual sync and sync status."""

    def test_manual_sync_runs_in_background(self, client, fake_db, admin_headers, monkeypatch):
        calls = []
        monkeypatch.setattr(admin_routes, "run_sync_job", lambda db, settings, job, years: calls.append((job, years)) or [])
        response = client.post("/api/admin/sync/manual", headers=admin_headers, json={"job": "laureats", "years": [2024]})

        assert response.status_code == 200
        assert response.json()["initiated_by"] == "admin"
        assert calls == [("laureats", [2024])]
        _, log = fake_db.queries("INSERT INTO sync_log")[0]
        assert log["sync_type"] == "manual_trigger"
        assert log["status"] == "started"

    def test_background_failure_recorded(self, client, fake_db, admin_headers, monkeypatch):
        def failing(db, settings, job, years):
            raise RuntimeError("oracle down")

        monkeypatch.setattr(admin_routes, "run_sync_job", failing)
        response = client.post("/api/admin/sync/manual", headers=admin_headers)

        assert response.status_code == 200
        errors = [p for _, p in fake_db.queries("INSERT INTO sync_log") if p["status"] == "error"]
        assert errors[0]["sync_type"] == "manual_sync"
        assert "oracle down" in errors[0]["message"]

    def test_status(self, client, fake_db, admin_headers):
        fake_db.on("LIMIT :limit", [{"sync_type": "grades", "records_processed": 10, "sync_status": "success",
                                     "error_message": None, "sync_timestamp": datetime(2025, 1, 1)}])
        data = client.get("/api/admin/sync/status?limit=5", headers=admin_headers).json()

        assert data["last_sync"]["sync_type"] == "grades"
        assert fake_db.queries("LIMIT :limit")[0][1] == {"limit": 5}


class TestLaureats:
    def test_filters(self, client, fake_db, admin_headers):
        fake_db.on("SELECT COUNT(*) FROM laureats", [{"count": 120}])
        data = client.get(
            "/api/admin/laureats?year=2024&multiDiploma=true&page=2&limit=50", headers=admin_headers
        ).json()

        assert data["total"] == 120
        assert data["totalPages"] == 3
        sql, params = fake_db.queries("SELECT * FROM laureats")[0]
        assert "HAVING COUNT(DISTINCT cod_dip) > 1" in sql
        assert params == {"year": "2024", "limit": 50, "offset": 50}
