import logging
import random
from datetime import datetime
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.api import get_aggregator
from app.main import create_app
from datastore.city_store import CityStore, seed_store
from logging_config import configure_logging
from services.telemetry import SensorFeed
from settings import Settings


@pytest.fixture
def store() -> CityStore:
    return seed_store()


@pytest.fixture
def api_client(store: CityStore, monkeypatch) -> Iterator[TestClient]:
    feed = SensorFeed(rng=random.Random(1234))
    monkeypatch.setattr("app.api.build_default_store", lambda: store)
    monkeypatch.setattr("app.api.build_default_feed", lambda: feed)

    app = create_app(Settings())
    with TestClient(app) as client:
        yield client


def _project_payload(**overrides) -> dict:
    payload = {"name": "Irtysh Embankment", "sector": "water", "budget": 7500000}
    payload.update(overrides)
    return payload


def test_health_reports_healthy(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["environment"] == "development"
    assert body["uptime"] >= 0
    assert datetime.fromisoformat(body["timestamp"].replace("Z", "+00:00"))


def test_create_project_assigns_next_sequential_id(api_client: TestClient) -> None:
    before = api_client.get("/api/v1/projects").json()["count"]

    response = api_client.post("/api/v1/projects", json=_project_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert "error" not in body
    project = body["data"]
    assert project["id"] == before + 1
    assert project["status"] == "planning"
    assert project["roi"] == 0
    assert project["esg_score"] == 0
    assert project["created_at"] is not None

    fetched = api_client.get(f"/api/v1/projects/{project['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["name"] == "Irtysh Embankment"


def test_create_project_keeps_optional_fields(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/v1/projects",
        json=_project_payload(status="active", roi="18.4", esg_score=70),
    )

    assert response.status_code == 201
    project = response.json()["data"]
    assert project["status"] == "active"
    assert project["roi"] == pytest.approx(18.4)
    assert project["esg_score"] == 70


def test_create_project_without_name_is_rejected(api_client: TestClient) -> None:
    payload = _project_payload()
    del payload["name"]

    response = api_client.post("/api/v1/projects", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Missing required fields"
    assert "name" in body["message"]


def test_create_project_with_zero_budget_is_rejected(api_client: TestClient) -> None:
    response = api_client.post("/api/v1/projects", json=_project_payload(budget=0))

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_create_project_with_non_numeric_budget_is_rejected(api_client: TestClient) -> None:
    response = api_client.post("/api/v1/projects", json=_project_payload(budget="lots"))

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request payload"
    assert "budget" in body["message"]


def test_list_projects_filters_by_sector(api_client: TestClient) -> None:
    api_client.post("/api/v1/projects", json=_project_payload(sector="transport"))

    response = api_client.get("/api/v1/projects", params={"sector": "water"})

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == len(body["data"]) == 1
    assert all(project["sector"] == "water" for project in body["data"])


def test_list_projects_filters_by_status_and_sector(api_client: TestClient) -> None:
    active = api_client.get("/api/v1/projects", params={"status": "active"}).json()
    assert {project["id"] for project in active["data"]} == {1, 3}

    combined = api_client.get(
        "/api/v1/projects", params={"status": "active", "sector": "ecology"}
    ).json()
    assert [project["name"] for project in combined["data"]] == ["Green.City.Semei"]


def test_get_missing_project_returns_not_found(api_client: TestClient) -> None:
    response = api_client.get("/api/v1/projects/999")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Project not found"}


def test_get_project_with_non_integer_id_is_bad_request(api_client: TestClient) -> None:
    response = api_client.get("/api/v1/projects/abc")

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_sensor_list_is_jittered_within_tolerance(api_client: TestClient, store: CityStore) -> None:
    stored = {reading.sensor_id: reading.value for reading in store.list_readings()}

    response = api_client.get("/api/v1/iot/sensors")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 3
    for reading in body["data"]:
        assert abs(reading["value"] - stored[reading["sensor_id"]]) <= 5.0

    # The stored values stay untouched.
    assert {r.sensor_id: r.value for r in store.list_readings()} == stored


def test_sensor_list_filters_by_type(api_client: TestClient) -> None:
    response = api_client.get("/api/v1/iot/sensors", params={"type": "traffic"})

    body = response.json()
    assert body["count"] == 1
    assert body["data"][0]["sensor_id"] == "TRF-001"
    assert body["data"][0]["unit"] == "vehicles/h"


def test_submit_sensor_reading(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/v1/iot/sensors",
        json={"sensor_id": "AIR-007", "type": "air", "value": 0},
    )

    assert response.status_code == 201
    reading = response.json()["data"]
    assert reading["value"] == 0
    assert reading["unit"] == "unit"
    assert reading["timestamp"]

    listed = api_client.get("/api/v1/iot/sensors", params={"type": "air"}).json()
    assert listed["count"] == 1


def test_submit_sensor_reading_without_value_is_rejected(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/v1/iot/sensors",
        json={"sensor_id": "AIR-007", "type": "air"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields"


def test_loyalty_add_creates_account_lazily(api_client: TestClient) -> None:
    assert api_client.get("/api/v1/loyalty/3").status_code == 404

    response = api_client.post(
        "/api/v1/loyalty/add",
        json={"user_id": 3, "points": 50, "activity": "test"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["data"] == {"user_id": 3, "points": 50, "activities": ["test"]}
    assert body["message"] == "Added 50 points for test"


def test_loyalty_points_accumulate_monotonically(api_client: TestClient) -> None:
    previous = api_client.get("/api/v1/loyalty/1").json()["data"]["points"]
    activities = ["recycling", "volunteer", "public_transport"]

    for activity in activities:
        response = api_client.post(
            "/api/v1/loyalty/add",
            json={"user_id": 1, "points": 25, "activity": activity},
        )
        points = response.json()["data"]["points"]
        assert points == previous + 25
        previous = points

    account = api_client.get("/api/v1/loyalty/1").json()["data"]
    assert account["points"] == 1250 + 75
    assert account["activities"][-3:] == activities


def test_loyalty_add_rejects_missing_and_negative_points(api_client: TestClient) -> None:
    missing = api_client.post("/api/v1/loyalty/add", json={"user_id": 1, "activity": "x"})
    negative = api_client.post(
        "/api/v1/loyalty/add",
        json={"user_id": 1, "points": -10, "activity": "x"},
    )

    assert missing.status_code == 400
    assert negative.status_code == 400
    assert api_client.get("/api/v1/loyalty/1").json()["data"]["points"] == 1250


def test_get_unknown_loyalty_account(api_client: TestClient) -> None:
    response = api_client.get("/api/v1/loyalty/42")

    assert response.status_code == 404
    assert response.json()["error"] == "User not found"


def test_dashboard_averages_current_projects(api_client: TestClient) -> None:
    api_client.post("/api/v1/projects", json=_project_payload(roi=30, status="active"))
    projects = api_client.get("/api/v1/projects").json()["data"]

    response = api_client.get("/api/v1/dashboard")

    assert response.status_code == 200
    analytics = response.json()["data"]
    expected_roi = round(sum(p["roi"] for p in projects) / len(projects), 2)
    assert analytics["avg_roi"] == expected_roi
    assert analytics["total_projects"] == 4
    assert analytics["active_projects"] == 3
    assert analytics["total_budget"] == sum(p["budget"] for p in projects)
    assert analytics["total_users"] == 2
    assert analytics["iot_sensors_active"] == 3
    assert analytics["last_update"]


def test_predictions_are_static(api_client: TestClient) -> None:
    response = api_client.get("/api/v1/analytics/predictions")

    body = response.json()
    assert body["success"] is True
    assert body["generated_at"]
    assert body["data"]["water_consumption"]["trend"] == "decreasing"
    assert body["data"]["project_roi"]["confidence"] == 0.85


def test_users_are_listed(api_client: TestClient) -> None:
    body = api_client.get("/api/v1/users").json()

    assert body["count"] == 2
    assert body["data"][0] == {
        "id": 1,
        "name": "Admin User",
        "email": "admin@semey.kz",
        "role": "admin",
    }


def test_integration_status(api_client: TestClient) -> None:
    body = api_client.get("/api/v1/integrations/status").json()

    statuses = {item["name"]: item["status"] for item in body["data"]}
    assert len(statuses) == 5
    assert statuses["eGov API"] == "degraded"
    assert statuses["FreshUz"] == "connected"


def test_unknown_route_reports_path(api_client: TestClient) -> None:
    response = api_client.get("/api/v1/unknown")

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": "Route not found",
        "path": "/api/v1/unknown",
    }


class _ExplodingAggregator:
    def summarize(self, projects):
        raise RuntimeError("aggregation blew up")


@pytest.mark.parametrize(
    ("environment", "expect_message"),
    [("development", True), ("production", False)],
)
def test_internal_errors_hide_message_outside_development(
    store: CityStore, monkeypatch, caplog, environment: str, expect_message: bool
) -> None:
    monkeypatch.setattr("app.api.build_default_store", lambda: store)
    app = create_app(
        Settings(environment=environment, allowed_origins=("https://dashboard.semey.kz",))
    )
    app.dependency_overrides[get_aggregator] = _ExplodingAggregator
    caplog.set_level(logging.INFO, logger="citydash.access")

    try:
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get(
                "/api/v1/dashboard", headers={"Origin": "https://dashboard.semey.kz"}
            )
    finally:
        configure_logging(level="INFO", environment="development")

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Internal server error"
    if expect_message:
        assert body["message"] == "aggregation blew up"
    else:
        assert "message" not in body

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["access-control-allow-origin"] == "https://dashboard.semey.kz"
    assert response.headers["X-RateLimit-Limit"] == "100"
    access_lines = [r for r in caplog.records if r.name == "citydash.access"]
    assert len(access_lines) == 1
    assert access_lines[0].status == 500


def test_non_finite_budget_is_rejected(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/v1/projects",
        content='{"name": "Flood barrier", "sector": "water", "budget": NaN}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request payload"
    assert "budget" in body["message"]
    assert api_client.get("/api/v1/projects").json()["count"] == 3
    assert api_client.get("/api/v1/dashboard").json()["data"]["total_budget"] == 200_000_000


@pytest.mark.parametrize(
    ("path", "payload"),
    [
        (
            "/api/v1/projects",
            '{"name": "Flood barrier", "sector": "water", "budget": 10, "roi": Infinity}',
        ),
        ("/api/v1/iot/sensors", '{"sensor_id": "WTR-009", "type": "water", "value": -Infinity}'),
    ],
)
def test_non_finite_numbers_are_rejected(api_client: TestClient, path: str, payload: str) -> None:
    response = api_client.post(path, content=payload, headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["success"] is False
