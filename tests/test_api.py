"""
Tests for the HTTP surface built by rms.main.create_app()

Covers sign-in, the shared form endpoints, the dashboard/statistics routes
and user administration.
"""
from datetime import datetime

from rms.db.models.survey import Survey

from conftest import PASSWORD, partner_mapping_entry, survey_payload


class TestAppFactory:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["cache"] == "MemoryBackend"

    def test_security_headers(self, client):
        resp = client.get("/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Process-Time-ms" in resp.headers

    def test_state_is_injected(self, app, database, cache):
        assert app.state.database is database
        assert app.state.cache is cache


class TestAuth:
    def test_login_sets_session_cookie(self, client, respondent):
        resp = client.post("/login", json={"email": "KOFI@example.org", "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["user"]["email"] == "kofi@example.org"
        assert "sid" in resp.cookies

    def test_wrong_password(self, client, respondent):
        resp = client.post("/login", json={"email": respondent.email, "password": "nope"})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "message": "Invalid email or password"}

    def test_missing_fields(self, client):
        resp = client.post("/login", json={"email": "", "password": ""})
        assert resp.status_code == 400
        assert "email" in resp.json()["errors"]

    def test_logout_clears_session(self, user_client):
        assert user_client.get("/api/users/me").status_code == 200
        user_client.post("/logout")
        assert user_client.get("/api/users/me").status_code == 401

    def test_change_password(self, user_client, login, respondent):
        resp = user_client.post(
            "/api/auth/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "Better456", "confirmPassword": "Better456"},
        )
        assert resp.status_code == 200
        login(respondent.email, "Better456")

    def test_change_password_rejects_weak_password(self, user_client):
        resp = user_client.post(
            "/api/auth/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "short", "confirmPassword": "short"},
        )
        assert resp.status_code == 400
        assert "newPassword" in resp.json()["errors"]


class TestSurveyEndpoints:
    def test_submit_requires_authentication_before_validation(self, client):
        resp = client.post("/api/surveys", json={})
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "message": "Authentication required"}

    def test_draft_round_trip(self, user_client):
        saved = user_client.put("/api/surveys/draft", json={"formData": {"risks": "none"}, "currentStep": "additional"})
        assert saved.status_code == 200
        assert saved.json()["message"] == "Draft saved successfully"

        loaded = user_client.get("/api/surveys/draft").json()
        assert loaded["draft"]["formData"] == {"risks": "none"}
        assert loaded["draft"]["currentStep"] == "additional"

    def test_draft_with_a_list_section_is_saved(self, user_client):
        resp = user_client.put("/api/surveys/draft", json={"formData": {"organisationInfo": ["x"]}})
        assert resp.status_code == 200
        assert resp.json()["draft"]["progress"] == 33

    def test_finalize_leaves_no_draft(self, user_client):
        user_client.put("/api/surveys/draft", json={"formData": {"a": 1}})
        resp = user_client.post("/api/surveys/finalize", json=survey_payload())
        assert resp.status_code == 200
        assert resp.json()["success"] is True

        after = user_client.get("/api/surveys/draft")
        assert after.status_code == 200
        assert after.json() == {"success": False, "message": "No draft found"}

    def test_invalid_survey_returns_field_errors(self, user_client):
        resp = user_client.post("/api/surveys", json={"organisationInfo": {"organisationName": ""}, "projectInfo": None})
        assert resp.status_code == 400
        errors = resp.json()["errors"]
        assert "organisationInfo.organisationName" in errors
        assert "projectInfo" in errors

    def test_step_validation(self, user_client):
        resp = user_client.post(
            "/api/surveys/steps/organisation/validate",
            json={"formData": {"organisationInfo": {"organisationName": ""}}},
        )
        assert resp.status_code == 400
        assert resp.json()["errors"]["organisationInfo.organisationName"] == ["Organisation name is required"]

        ok = user_client.post(
            "/api/surveys/steps/organisation/validate",
            json={"formData": {"organisationInfo": survey_payload()["organisationInfo"]}},
        )
        assert ok.status_code == 200
        assert ok.json()["message"] == "Organisation Info is valid"

    def test_records_are_private(self, user_client, admin_client):
        record_id = user_client.post("/api/surveys", json=survey_payload()).json()["id"]
        assert user_client.get(f"/api/surveys/{record_id}").status_code == 200
        assert admin_client.get(f"/api/surveys/{record_id}").status_code == 200
        assert user_client.get("/api/surveys").status_code == 403
        assert admin_client.get("/api/surveys").json()["total"] == 1
        assert user_client.get("/api/surveys/999").status_code == 404

    def test_end_to_end_top_region(self, user_client, admin_client, database):
        record_id = user_client.post("/api/surveys", json=survey_payload("Acme Health", "Ashanti")).json()["id"]
        with database.session() as db:
            db.get(Survey, int(record_id)).submission_date = datetime(2024, 3, 15, 9, 30)

        resp = admin_client.get("/api/dashboard", params={"start": "2024-03-01T00:00:00", "end": "2024-04-01T00:00:00"})
        assert resp.status_code == 200
        assert resp.json()["stats"]["topRegions"] == [{"region": "Ashanti", "count": 1}]


class TestPartnerMappingEndpoints:
    def test_empty_submission_is_rejected(self, user_client, admin_client):
        resp = user_client.post("/api/partner-mappings", json={"partnerMappings": []})
        assert resp.status_code == 400
        assert resp.json()["errors"] == {"partnerMappings": ["At least one partner mapping is required"]}
        assert admin_client.get("/api/partner-mappings").json()["total"] == 0

    def test_summary(self, user_client, admin_client):
        resp = user_client.post(
            "/api/partner-mappings/finalize",
            json={"partnerMappings": [partner_mapping_entry(), partner_mapping_entry(disease="HYPERTENSION")]},
        )
        assert resp.status_code == 200

        summary = admin_client.get("/api/admin/partner-mappings/summary").json()["data"]
        assert summary["totalRecords"] == 1
        assert summary["totalEntries"] == 2
        assert summary["topRegions"] == [{"region": "ASHANTI", "count": 2}]
        assert summary["byYear"] == [{"year": 2024, "count": 2}]


class TestDashboard:
    def test_public_stats(self, client, user_client):
        user_client.post("/api/surveys", json=survey_payload())
        body = client.get("/api/stats").json()
        assert body["totalSurveys"] == 1
        assert body["completionRate"] == 100
        assert "timestamp" in body

    def test_global_dashboard_needs_admin(self, client, user_client, admin_client):
        assert client.get("/api/dashboard").status_code == 401
        assert user_client.get("/api/dashboard").status_code == 403
        resp = admin_client.get("/api/dashboard", params={"includeActivity": "true"})
        assert resp.status_code == 200
        assert len(resp.json()["stats"]["monthlyTrends"]) == 6
        assert resp.json()["recentActivity"] == []

    def test_user_dashboard_is_scoped(self, user_client, admin_client, respondent, admin):
        own = user_client.get("/api/dashboard", params={"userId": str(respondent.id)})
        assert own.status_code == 200
        assert own.json()["stats"]["userId"] == str(respondent.id)
        assert user_client.get("/api/dashboard", params={"userId": str(admin.id)}).status_code == 403
        assert user_client.get("/api/dashboard", params={"userId": "abc"}).status_code == 400
        assert admin_client.get("/api/dashboard", params={"userId": str(respondent.id)}).status_code == 200

    def test_invalid_date_range(self, admin_client):
        resp = admin_client.get("/api/dashboard", params={"start": "2024-04-01T00:00:00", "end": "2024-03-01T00:00:00"})
        assert resp.status_code == 400
        assert "dateRange" in resp.json()["errors"]

    def test_range_may_mix_utc_and_naive_bounds(self, admin_client):
        resp = admin_client.get(
            "/api/dashboard", params={"start": "2024-01-01T00:00:00Z", "end": "2024-02-01T00:00:00"}
        )
        assert resp.status_code == 200
        assert resp.json()["stats"]["totalSurveys"] == 0

    def test_new_users_show_on_the_dashboard(self, admin_client):
        before = admin_client.get("/api/dashboard").json()["stats"]["totalUsers"]
        created = admin_client.post("/api/users", json={"email": "esi@example.org", "firstName": "Esi", "lastName": "Owusu"})
        assert created.status_code == 201
        assert admin_client.get("/api/dashboard").json()["stats"]["totalUsers"] == before + 1

    def test_refresh_recomputes(self, user_client, admin_client):
        assert admin_client.get("/api/dashboard").json()["stats"]["totalSurveys"] == 0
        user_client.post("/api/surveys", json=survey_payload())
        resp = admin_client.post("/api/dashboard", json={"action": "refresh"})
        assert resp.status_code == 200
        assert resp.json()["stats"]["totalSurveys"] == 1

    def test_unknown_action(self, admin_client):
        resp = admin_client.post("/api/dashboard", json={"action": "purge"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid action"

    def test_admin_stats_follow_submissions(self, user_client, admin_client):
        first = admin_client.get("/api/admin/stats").json()
        assert first["success"] is True
        assert first["data"]["stats"][0]["amount"] == 0

        user_client.post("/api/surveys", json=survey_payload())
        second = admin_client.get("/api/admin/stats").json()
        assert second["data"]["stats"][0]["amount"] == 1

    def test_admin_analytics(self, admin_client):
        resp = admin_client.get("/api/admin/analytics")
        assert resp.status_code == 200
        assert resp.json()["data"]["kpis"]["totalUsers"] == 1


class TestSurveyData:
    def test_views_need_admin(self, client, user_client):
        assert client.get("/api/admin/survey-data/sectors").status_code == 401
        assert user_client.get("/api/admin/survey-data/sectors").status_code == 403

    def test_region_totals_follow_submissions(self, user_client, admin_client):
        assert admin_client.get("/api/admin/survey-data/region-totals").json()["data"] == {}
        user_client.post("/api/surveys", json=survey_payload(region="Volta"))
        resp = admin_client.get("/api/admin/survey-data/region-totals")
        assert resp.status_code == 200
        assert resp.json()["data"] == {"Volta": {"total": 1}}

    def test_unknown_view(self, admin_client):
        resp = admin_client.get("/api/admin/survey-data/weather")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "message": "Unknown survey data view 'weather'"}

    def test_refresh(self, admin_client):
        resp = admin_client.post("/api/admin/survey-data/refresh")
        assert resp.status_code == 200
        assert len(resp.json()["data"]["views"]) == 8


class TestUsers:
    def test_admin_creates_user(self, admin_client, login):
        resp = admin_client.post(
            "/api/users",
            json={"email": "Esi@Example.org", "firstName": "Esi", "lastName": "Owusu", "region": "Volta"},
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["email"] == "esi@example.org"
        assert resp.json()["data"]["firstLogin"] is True

        dup = admin_client.post("/api/users", json={"email": "esi@example.org", "firstName": "E", "lastName": "O"})
        assert dup.status_code == 400
        assert "email" in dup.json()["errors"]

        login("esi@example.org", "ncd@2025")

    def test_respondent_cannot_create_users(self, user_client):
        resp = user_client.post("/api/users", json={"email": "x@example.org", "firstName": "X", "lastName": "Y"})
        assert resp.status_code == 403

    def test_deactivated_user_cannot_sign_in(self, admin_client, client, respondent):
        resp = admin_client.patch(f"/api/users/{respondent.id}/status", json={"isActive": False})
        assert resp.status_code == 200
        assert resp.json()["data"]["isActive"] is False

        denied = client.post("/login", json={"email": respondent.email, "password": PASSWORD})
        assert denied.status_code == 403

    def test_admin_cannot_deactivate_self(self, admin_client, admin):
        resp = admin_client.patch(f"/api/users/{admin.id}/status", json={"isActive": False})
        assert resp.status_code == 400

    def test_unknown_user(self, admin_client):
        assert admin_client.patch("/api/users/999/status", json={"isActive": True}).status_code == 404

    def test_profile_update(self, user_client):
        resp = user_client.put("/api/users/me", json={"telephone": " 024 000 0000 ", "bio": "Programme lead"})
        assert resp.status_code == 200
        me = user_client.get("/api/users/me").json()
        assert me["telephone"] == "024 000 0000"
        assert me["bio"] == "Programme lead"

    def test_list_users_filters_by_role(self, admin_client, respondent):
        body = admin_client.get("/api/users", params={"role": "User"}).json()
        assert body["total"] == 1
        assert body["users"][0]["email"] == respondent.email
