"""Integration tests for API endpoints using Starlette TestClient."""

import pytest
from unittest.mock import patch
from starlette.testclient import TestClient

from fitledger.core.ledger import add_entry, new_day
from fitledger.core.models import Goal, GoalType
from fitledger.main import create_app
from tests.fakes import TODAY, entry_at, make_profile


@pytest.fixture
def client(tracker):
    """Create test client backed by the in-memory tracker."""
    with patch("fitledger.main.get_tracker", return_value=tracker):
        yield TestClient(create_app())


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_200(self, client):
        """Health endpoint returns 200 OK."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_returns_json(self, client):
        """Health endpoint returns JSON with status."""
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["service"] == "fitledger"


class TestDayEndpoints:
    """Tests for /days/{date} and /balance/{date}."""

    def test_get_day(self, client, store):
        store.days[TODAY] = add_entry(new_day(TODAY), entry_at(640, name="Burrito"))

        response = client.get("/days/2024-03-13")

        assert response.status_code == 200
        data = response.json()
        assert data["total_calories"] == 640
        assert data["entries"][0]["name"] == "Burrito"

    def test_get_empty_day(self, client):
        response = client.get("/days/2024-03-10")
        assert response.status_code == 200
        assert response.json()["entries"] == []

    def test_invalid_date(self, client):
        response = client.get("/days/not-a-date")
        assert response.status_code == 400
        assert "YYYY-MM-DD" in response.json()["error"]

    def test_get_balance(self, client, store):
        store.days[TODAY] = add_entry(new_day(TODAY), entry_at(1000))

        response = client.get("/balance/2024-03-13")

        assert response.status_code == 200
        data = response.json()
        assert data["calories_consumed"] == 1000
        assert data["source"] == "estimated"
        assert data["balance"] == pytest.approx(1000 - 2160)


class TestGoalAndProgressEndpoints:
    """Tests for /goal, /progress and /summary."""

    def test_no_goal_returns_404(self, client):
        response = client.get("/goal")
        assert response.status_code == 404
        assert "error" in response.json()

    def test_get_goal(self, client, store):
        goal = Goal(goal_type=GoalType.LOSE, weekly_rate_kg=-0.5)
        store.goals[goal.id] = goal

        response = client.get("/goal")

        assert response.status_code == 200
        assert response.json()["goal_type"] == "lose"

    def test_progress_without_goal(self, client):
        response = client.get("/progress")
        assert response.status_code == 200
        assert response.json()["has_goal"] is False

    def test_summary(self, client):
        response = client.get("/summary")
        assert response.status_code == 200
        assert response.json()["log_date"] == "2024-03-13"

    def test_store_failure_returns_503(self, client, store):
        store.fail = True
        response = client.get("/goal")
        assert response.status_code == 503
        assert response.json() == {"error": "Data unavailable, try again."}


class TestSampleEndpoints:
    """Tests for health sample ingestion routes."""

    def test_energy_sample_accepted(self, client, store):
        response = client.post(
            "/samples/energy",
            json={"sample_date": "2024-03-13", "resting_kcal": 1700, "active_kcal": 400},
        )

        assert response.status_code == 202
        assert store.energy[TODAY].resting_kcal == 1700

    def test_invalid_energy_sample(self, client, store):
        response = client.post("/samples/energy", json={"sample_date": "2024-03-13", "resting_kcal": -5})
        assert response.status_code == 400
        assert store.energy == {}

    def test_weight_sample_updates_profile(self, client, store):
        store.profile = make_profile()

        response = client.post("/samples/weight", json={"weight_kg": 79.2, "measured_at": "2024-03-13T07:00:00"})

        assert response.status_code == 202
        assert response.json()["profile_updated"] is True
        assert store.profile.weight_kg == 79.2

    def test_weight_sample_out_of_range(self, client):
        response = client.post("/samples/weight", json={"weight_kg": 0})
        assert response.status_code == 400

    def test_workouts(self, client, store):
        response = client.post(
            "/samples/workouts",
            json=[
                {
                    "activity_type": "running",
                    "start": "2024-03-13T07:00:00",
                    "end": "2024-03-13T07:30:00",
                    "energy_burned": 300,
                }
            ],
        )

        assert response.status_code == 202
        assert response.json()["days_updated"] == ["2024-03-13"]
        assert store.days[TODAY].calories_from_exercise == 300


class TestCORS:
    """Tests for CORS configuration."""

    def test_preflight_from_dev_origin(self, client):
        response = client.options(
            "/health",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
