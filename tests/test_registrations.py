"""Tests for registration history: student views, admin registrations and CSV export."""

from datetime import date, datetime

from portal.services.registrations import (
    RegistrationFilters,
    organize_administrative_situation,
    registrations_csv,
)


REGISTRATIONS = [
    {"cod_etu": "20230001", "cod_anu": 2023, "cod_etp": "JL1", "lib_etp": "Licence 1", "eta_iae": "E",
     "tem_iae_prm": "O", "dat_cre_iae": datetime(2023, 9, 12)},
    {"cod_etu": "20230001", "cod_anu": 2024, "cod_etp": "JL2", "lib_etp": "Licence 2", "eta_iae": "E",
     "tem_iae_prm": "O", "dat_cre_iae": datetime(2024, 9, 10)},
    {"cod_etu": "20230001", "cod_anu": 2024, "cod_etp": "JLC", "lib_etp": "Certificat", "eta_iae": "E",
     "tem_iae_prm": "N", "dat_cre_iae": datetime(2024, 10, 2)},
]


class TestOrganizeAdministrativeSituation:
    def test_grouped_by_year_newest_first(self):
        grouped = organize_administrative_situation(REGISTRATIONS)

        assert list(grouped) == ["2024", "2023"]
        assert [r["cod_etp"] for r in grouped["2024"]] == ["JL2", "JLC"]


class TestRegistrationFilters:
    """Tests for RegistrationFilters.where()."""

    def test_new_registrations_only_by_default(self):
        where, params = RegistrationFilters().where()

        assert where == "a.nbr_ins_cyc = 1 AND a.eta_iae = 'E'"
        assert params == {}

    def test_all_filters(self):
        filters = RegistrationFilters(year=2025, user="System", date_from=date(2025, 9, 1), date_to=date(2025, 9, 30))
        where, params = filters.where()

        assert "COALESCE(a.cod_uti, 'System') = :user" in where
        assert "CAST(a.dat_cre_iae AS DATE) <= :date_to" in where
        assert params == {"year": 2025, "user": "System", "date_from": date(2025, 9, 1), "date_to": date(2025, 9, 30)}
        assert filters.applied()["date_from"] == "2025-09-01"


class TestRegistrationsCsv:
    def test_header_and_empty_values(self):
        lines = registrations_csv([{"cod_etu": "1", "lib_nom_pat_ind": "ALAMI", "cin_ind": None}]).splitlines()

        assert lines[0].startswith("cod_etu,lib_nom_pat_ind,lib_pr1_ind")
        assert lines[1].startswith("1,ALAMI,,")


class TestStudentAdministrativeSituation:
    """Tests for /api/student/administrative-situation and /administrative-stats."""

    def test_registrations_by_year(self, client, fake_db, student_headers):
        fake_db.on("SELECT DISTINCT cod_anu", [{"cod_anu": 2024}, {"cod_anu": 2023}])
        fake_db.on("FROM administrative_situation WHERE cod_etu", REGISTRATIONS)
        response = client.get("/api/student/administrative-situation", headers=student_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["available_years"] == [2024, 2023]
        assert data["total_registrations"] == 3
        assert len(data["administrative_situation"]["2024"]) == 2

    def test_year_filter_bound(self, client, fake_db, student_headers):
        client.get("/api/student/administrative-situation?year=2024", headers=student_headers)

        sql, params = fake_db.queries("dat_cre_iae DESC")[0]
        assert "AND cod_anu = :year" in sql
        assert params == {"cod_etu": "20230001", "year": 2024}

    def test_stats(self, client, fake_db, student_headers):
        fake_db.on("AS active_registrations", [
            {"cod_anu": 2024, "total_registrations": 2, "active_registrations": 2, "programs": 2},
        ])
        data = client.get("/api/student/administrative-stats", headers=student_headers).json()

        assert data["statistics"] == [
            {"year": 2024, "total_registrations": 2, "active_registrations": 2, "programs": 2},
        ]

    def test_requires_token(self, client):
        assert client.get("/api/student/administrative-situation").status_code == 401


class TestAdminRegistrations:
    """Tests for /api/admin/registrations."""

    def test_list_with_filters(self, client, fake_db, admin_headers):
        fake_db.on("SELECT COUNT(*) FROM administrative_situation", [{"count": 1}])
        fake_db.on("LIMIT :limit", [{"cod_etu": "1", "lib_nom_pat_ind": "ALAMI", "created_by": "USR1"}])
        fake_db.on("SELECT DISTINCT cod_anu FROM administrative_situation", [{"cod_anu": 2025}, {"cod_anu": 2024}])
        fake_db.on("AS created_by FROM administrative_situation", [{"created_by": "System"}, {"created_by": "USR1"}])
        response = client.get(
            "/api/admin/registrations?year=2025&user=USR1&dateFrom=2025-09-01&dateTo=2025-09-30&limit=10",
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["recent_registrations"][0]["created_by"] == "USR1"
        assert data["available_years"] == [2025, 2024]
        assert data["available_users"] == ["System", "USR1"]
        _, params = fake_db.queries("LIMIT :limit")[0]
        assert params == {
            "year": 2025, "user": "USR1", "date_from": date(2025, 9, 1), "date_to": date(2025, 9, 30), "limit": 10,
        }

    def test_inverted_date_range_rejected(self, client, admin_headers):
        response = client.get("/api/admin/registrations?dateFrom=2025-10-01&dateTo=2025-09-01", headers=admin_headers)

        assert response.status_code == 400
        assert response.json() == {"error": "dateFrom must be on or before dateTo"}

    def test_requires_admin(self, client, student_headers):
        assert client.get("/api/admin/registrations", headers=student_headers).status_code == 403

    def test_stats(self, client, fake_db, admin_headers):
        fake_db.on("AS total_new_registrations", [
            {"total_new_registrations": 3, "male_count": 1, "female_count": 2, "unique_programs": 2},
        ])
        fake_db.on("AS programs_handled", [
            {"created_by": "System", "total_registrations": 3, "male_count": 1, "female_count": 2,
             "programs_handled": 2, "active_days": 2, "first_registration": datetime(2025, 9, 1, 9, 0),
             "latest_registration": datetime(2025, 9, 2, 11, 0)},
        ])
        fake_db.on("AS earliest_date", [{"earliest_date": date(2025, 9, 1), "latest_date": date(2025, 9, 2)}])
        data = client.get("/api/admin/registrations/stats?year=2025", headers=admin_headers).json()

        assert data["summary"] == {"total_new_registrations": 3, "male_count": 1, "female_count": 2, "unique_programs": 2}
        assert data["user_statistics"][0]["created_by"] == "System"
        assert data["date_range"] == {"earliest_date": "2025-09-01", "latest_date": "2025-09-02"}
        assert data["filter_applied"]["year"] == 2025
        assert data["program_breakdown"] == []

    def test_export_csv(self, client, fake_db, admin_headers):
        fake_db.on("NULLS LAST", [
            {"cod_etu": "1", "lib_nom_pat_ind": "ALAMI", "lib_pr1_ind": "Omar", "cod_anu": 2025,
             "cod_etp": "JL1", "lib_etp": "Licence 1", "created_by": "System"},
        ])
        response = client.get("/api/admin/registrations/export", headers=admin_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        lines = response.text.splitlines()
        assert len(lines) == 2
        assert lines[1].startswith("1,ALAMI,Omar,")
