"""HTTP tests: routes, status codes and the error body shape."""

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from volunteer_portal import clock
from volunteer_portal.db import create_tables, get_db_connection
from volunteer_portal.main import app

FUTURE_DAY = date(2030, 3, 11)


@pytest.fixture
def client(tmp_path, monkeypatch):
    """TestClient against a fresh file database; startup hooks are not run."""
    db_path = str(tmp_path / "portal.db")
    conn = get_db_connection(db_path)
    create_tables(conn)
    conn.close()
    monkeypatch.setattr(app.state, "db_path", db_path)
    return TestClient(app)


def _user(client, email="ana@example.org", name="Ana", role="VOLUNTEER"):
    response = client.post("/api/users", json={"email": email, "name": name, "role": role})
    assert response.status_code == 201
    return response.json()


def _shift(client, day=FUTURE_DAY, start_hour=9, end_hour=12, location="Wellington", capacity=1):
    type_id = client.post("/api/admin/shift-types", json={"name": "Kitchen Prep"}).json()["id"]
    response = client.post(
        "/api/admin/shifts",
        json={
            "shift_type_id": type_id,
            "location": location,
            "start": clock.civil_datetime(day, start_hour).isoformat(),
            "end": clock.civil_datetime(day, end_hour).isoformat(),
            "capacity": capacity,
        },
    )
    assert response.status_code == 201
    return response.json()


def _signup(client, shift_id, user_id, status="CONFIRMED"):
    return client.post(f"/api/shifts/{shift_id}/signups", json={"user_id": user_id, "status": status})


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_unknown_route_returns_404(client):
    assert client.get("/nonexistent").status_code == 404


# ---------------------------------------------------------------------------
# Shifts and signups
# ---------------------------------------------------------------------------

class TestSignupRoutes:
    def test_signup_then_waitlist(self, client):
        shift = _shift(client, capacity=1)
        ana = _user(client)
        ben = _user(client, email="ben@example.org", name="Ben")

        first = _signup(client, shift["id"], ana["id"])
        second = _signup(client, shift["id"], ben["id"])

        assert first.status_code == 201
        assert first.json()["status"] == "CONFIRMED"
        assert second.json()["status"] == "WAITLISTED"
        detail = client.get(f"/api/shifts/{shift['id']}").json()
        assert detail["confirmed"] == 1
        assert detail["spots_left"] == 0

    def test_list_shifts_for_day(self, client):
        shift = _shift(client)
        _shift(client, day=FUTURE_DAY + timedelta(days=1))
        response = client.get("/api/shifts", params={"day": FUTURE_DAY.isoformat()})
        assert [s["shift"]["id"] for s in response.json()] == [shift["id"]]

    def test_bad_day_format(self, client):
        response = client.get("/api/shifts", params={"day": "11/03/2030"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_FAILED"

    def test_missing_shift(self, client):
        user = _user(client)
        response = _signup(client, 999, user["id"])
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SHIFT_NOT_FOUND"

    def test_duplicate_signup(self, client):
        shift = _shift(client, capacity=2)
        user = _user(client)
        _signup(client, shift["id"], user["id"])
        response = _signup(client, shift["id"], user["id"])
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_SIGNUP"

    def test_daily_double_booking_names_the_other_shift(self, client):
        morning = _shift(client)
        evening = _shift(client, start_hour=17, end_hour=20, location="Onehunga")
        user = _user(client)
        _signup(client, morning["id"], user["id"])

        response = _signup(client, evening["id"], user["id"])

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "DAILY_DOUBLE_BOOKING"
        assert error["conflicting_shift_id"] == morning["id"]
        assert "one shift per day" in error["message"]

    def test_cancel_notifies_and_lists(self, client):
        shift = _shift(client)
        user = _user(client)
        signup = _signup(client, shift["id"], user["id"]).json()

        response = client.post(f"/api/signups/{signup['id']}/cancel")
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELED"

        again = client.post(f"/api/signups/{signup['id']}/cancel")
        assert again.status_code == 409

        notifications = client.get(f"/api/users/{user['id']}/notifications").json()
        assert [n["type"] for n in notifications] == ["SIGNUP_CREATED"]

    def test_admin_move(self, client):
        source = _shift(client)
        target = _shift(client, day=FUTURE_DAY + timedelta(days=2), location="Onehunga")
        user = _user(client)
        signup = _signup(client, source["id"], user["id"]).json()

        response = client.post(
            f"/api/admin/signups/{signup['id']}/move", json={"target_shift_id": target["id"]}
        )
        assert response.status_code == 200
        assert response.json()["shift_id"] == target["id"]

    def test_admin_update_rejects_naive_time(self, client):
        shift = _shift(client)
        response = client.patch(f"/api/admin/shifts/{shift['id']}", json={"start": "2030-03-11T08:00:00"})
        assert response.status_code == 422
        assert client.get(f"/api/shifts/{shift['id']}").json()["shift"]["start"] == shift["start"]

    def test_admin_delete_day(self, client):
        shift = _shift(client)
        _signup(client, shift["id"], _user(client)["id"])
        response = client.delete(
            "/api/admin/shifts", params={"day": FUTURE_DAY.isoformat(), "location": "Wellington"}
        )
        assert response.json() == {"deleted_count": 1, "affected_volunteers": 1}


def test_locations_are_listed_by_name(client):
    client.post("/api/admin/locations", json={"name": "Wellington", "default_meals_served": 60})
    client.post("/api/admin/locations", json={"name": "Onehunga"})
    response = client.get("/api/admin/locations")
    assert [(loc["name"], loc["default_meals_served"]) for loc in response.json()] == [
        ("Onehunga", 0),
        ("Wellington", 60),
    ]


def test_duplicate_email_is_a_conflict(client):
    _user(client)
    response = client.post("/api/users", json={"email": "ANA@example.org"})
    assert response.status_code == 409


def test_unknown_user(client):
    response = client.get("/api/users/999")
    assert response.status_code == 404
    assert response.json() == {"error": {"code": "NOT_FOUND", "message": "User 999 not found"}}


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------

def test_achievement_catalogue_and_delete(client):
    created = client.post(
        "/api/admin/achievements",
        json={
            "name": "Kitchen Hand",
            "category": "SPECIALIZATION",
            "criteria": {"type": "specific_shift_type", "value": 5, "shiftType": "Kitchen Prep"},
            "points": 40,
        },
    )
    assert created.status_code == 201
    achievement_id = created.json()["id"]
    assert [a["name"] for a in client.get("/api/achievements").json()] == ["Kitchen Hand"]

    response = client.delete(f"/api/admin/achievements/{achievement_id}")
    assert response.json() == {"result": "deleted"}


def test_unknown_criteria_type_is_rejected(client):
    response = client.post(
        "/api/admin/achievements",
        json={"name": "Odd", "category": "MILESTONE", "criteria": {"type": "karma", "value": 1}},
    )
    assert response.status_code == 422


def test_refresh_for_new_volunteer(client):
    user = _user(client)
    response = client.post(f"/api/users/{user['id']}/refresh")
    assert response.status_code == 200
    assert response.json() == {"unlocked": [], "surveys_assigned": 0}


# ---------------------------------------------------------------------------
# Surveys
# ---------------------------------------------------------------------------

def _manual_survey(client):
    response = client.post(
        "/api/admin/surveys",
        json={
            "title": "How are we doing?",
            "trigger_type": "MANUAL",
            "questions": [
                {"id": "q1", "type": "rating_scale", "text": "Overall", "required": True},
            ],
        },
    )
    assert response.status_code == 201
    return response.json()


class TestSurveyRoutes:
    def test_assign_view_submit(self, client):
        user = _user(client)
        survey = _manual_survey(client)

        assigned = client.post(f"/api/admin/surveys/{survey['id']}/assign", json={"user_ids": [user["id"], 999]})
        assert assigned.json() == {"assigned": [user["id"]], "skipped": [999]}

        [pending] = client.get(f"/api/users/{user['id']}/surveys/pending").json()
        token = pending["token"]

        view = client.get(f"/api/surveys/{token}")
        assert view.status_code == 200
        assert view.json()["user_name"] == "Ana"
        assert view.json()["survey"]["questions"][0]["maxValue"] == 5

        bad = client.post(f"/api/surveys/{token}/submit", json={"answers": [{"questionId": "q1", "value": 9}]})
        assert bad.status_code == 400
        assert "Overall" in bad.json()["error"]["message"]

        ok = client.post(f"/api/surveys/{token}/submit", json={"answers": [{"questionId": "q1", "value": 4}]})
        assert ok.status_code == 200
        assert ok.json()["success"] is True

        twice = client.post(f"/api/surveys/{token}/submit", json={"answers": [{"questionId": "q1", "value": 4}]})
        assert twice.status_code == 409
        assert twice.json()["error"]["code"] == "ALREADY_COMPLETED"

        responses = client.get(f"/api/admin/surveys/{survey['id']}/responses").json()
        assert len(responses) == 1

    def test_list_surveys(self, client):
        survey = _manual_survey(client)
        client.patch(f"/api/admin/surveys/{survey['id']}", json={"is_active": False})
        assert [s["title"] for s in client.get("/api/admin/surveys").json()] == ["How are we doing?"]
        assert client.get("/api/admin/surveys", params={"active_only": True}).json() == []

    def test_unknown_token(self, client):
        response = client.get("/api/surveys/not-a-token")
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Invalid survey token"

    def test_expired_token_is_gone(self, client, monkeypatch):
        user = _user(client)
        survey = _manual_survey(client)
        client.post(f"/api/admin/surveys/{survey['id']}/assign", json={"user_ids": [user["id"]]})
        token = client.get(f"/api/users/{user['id']}/surveys/pending").json()[0]["token"]

        conn = get_db_connection(app.state.db_path)
        conn.execute("UPDATE survey_tokens SET expires_at = '2000-01-01T00:00:00+00:00'")
        conn.commit()
        conn.close()

        response = client.get(f"/api/surveys/{token}")
        assert response.status_code == 410
        assert "expired" in response.json()["error"]["message"]

    def test_dismiss(self, client):
        user = _user(client)
        other = _user(client, email="ben@example.org")
        survey = _manual_survey(client)
        client.post(f"/api/admin/surveys/{survey['id']}/assign", json={"user_ids": [user["id"]]})
        assignment_id = client.get(f"/api/users/{user['id']}/surveys/pending").json()[0]["assignment"]["id"]

        forbidden = client.post(f"/api/surveys/assignments/{assignment_id}/dismiss", json={"user_id": other["id"]})
        assert forbidden.status_code == 403

        response = client.post(f"/api/surveys/assignments/{assignment_id}/dismiss", json={"user_id": user["id"]})
        assert response.json()["status"] == "DISMISSED"

    def test_eligibility_and_bulk_assign(self, client):
        first = _user(client)
        second = _user(client, email="ben@example.org")
        survey = _manual_survey(client)

        preview = client.get(f"/api/admin/surveys/{survey['id']}/eligible").json()
        assert preview["eligible_user_ids"] == [first["id"], second["id"]]

        result = client.post(f"/api/admin/surveys/{survey['id']}/bulk-assign").json()
        assert result["assigned"] == [first["id"], second["id"]]
        assert client.get(f"/api/admin/surveys/{survey['id']}/eligible").json()["total_eligible"] == 0


def test_delete_user(client):
    user = _user(client)
    response = client.delete(f"/api/admin/users/{user['id']}")
    assert response.status_code == 200
    assert response.json()["deleted"]["users"] == 1
    assert client.get(f"/api/users/{user['id']}").status_code == 404
