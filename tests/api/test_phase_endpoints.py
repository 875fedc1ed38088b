from datetime import date
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from dtps_planner import api
from dtps_planner.application.api_services import PhaseApiService
from dtps_planner.application.exceptions import CascadeError
from dtps_planner.application.services import PlanningService
from dtps_planner.cli.status import CheckResult
from tests.builders import make_phase, make_purchase
from tests.mock_dal import InMemoryPlanningRepository

HEADERS = {"X-API-Key": "test-key"}


@pytest.fixture()
def repository() -> InMemoryPlanningRepository:
    return InMemoryPlanningRepository(purchases=[make_purchase(total_purchased_days=30)])


@pytest.fixture()
def client(repository):
    service = PhaseApiService(PlanningService(repository, clock=lambda: date(2024, 1, 1)))
    api.app.dependency_overrides[api.get_phase_service] = lambda: service
    try:
        yield TestClient(api.app)
    finally:
        api.app.dependency_overrides.clear()


def _create(client, start="2024-01-01", days=10):
    response = client.post(
        "/phases",
        json={"purchase_id": "purchase-1", "duration_days": days, "start_date": start},
        headers=HEADERS,
    )
    assert response.status_code == 201, response.text
    return response.json()["phases"][0]["phase_id"]


def test_requests_without_api_key_are_rejected(client) -> None:
    response = client.get("/clients/client-1/phases")
    assert response.status_code == 401

    response = client.get("/clients/client-1/phases", headers={"X-API-Key": "wrong"})
    assert response.status_code == 401


def test_api_key_accepted_from_query_string(client) -> None:
    response = client.get("/clients/client-1/phases", params={"api_key": "test-key"})
    assert response.status_code == 200
    assert response.json()["phases"] == []


def test_create_phase_returns_events(client, repository) -> None:
    phase_id = _create(client)

    assert repository.phases[phase_id].end_date == date(2024, 1, 10)
    listing = client.get("/clients/client-1/phases", headers=HEADERS).json()
    assert [p["phase_id"] for p in listing["phases"]] == [phase_id]
    assert listing["next_available_start"] == "2024-01-11"


def test_overlap_maps_to_conflict(client) -> None:
    existing = _create(client)

    response = client.post(
        "/phases",
        json={"purchase_id": "purchase-1", "duration_days": 5, "start_date": "2024-01-05"},
        headers=HEADERS,
    )

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["error"] == "overlap"
    assert detail["conflicting_phase_id"] == existing
    assert detail["next_available_start"] == "2024-01-11"


def test_allowance_exceeded_maps_to_bad_request(client) -> None:
    response = client.post(
        "/phases",
        json={"purchase_id": "purchase-1", "duration_days": 31, "start_date": "2024-01-01"},
        headers=HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "allowance_exceeded"


def test_unparseable_dates_map_to_unprocessable(client) -> None:
    phase_id = _create(client)

    response = client.post(
        f"/phases/{phase_id}/extend", json={"new_start_date": "03/01/2024"}, headers=HEADERS
    )

    assert response.status_code == 422


def test_unknown_phase_maps_to_not_found(client) -> None:
    response = client.post("/phases/nope/resume", headers=HEADERS)
    assert response.status_code == 404


def test_extend_cascades_through_api(client, repository) -> None:
    first = _create(client, "2024-01-01", 10)
    second = _create(client, "2024-01-11", 10)

    response = client.post(
        f"/phases/{first}/extend", json={"new_start_date": "2024-01-03"}, headers=HEADERS
    )

    assert response.status_code == 200
    events = response.json()["events"]
    assert {e["phase_id"] for e in events} == {first, second}
    assert repository.phases[second].start_date == date(2024, 1, 13)


def test_pause_freeze_unfreeze_and_delete(client, repository) -> None:
    phase_id = _create(client)

    paused = client.post(f"/phases/{phase_id}/pause", json={"days": 2}, headers=HEADERS)
    assert paused.status_code == 200
    assert paused.json()["end_date_extended"] is True

    resumed = client.post(f"/phases/{phase_id}/resume", headers=HEADERS)
    assert resumed.json()["events"][0]["type"] == "phase-resumed"

    frozen = client.post(f"/phases/{phase_id}/freeze", json={"dates": ["2024-01-04"]}, headers=HEADERS)
    assert frozen.status_code == 200
    assert frozen.json()["phases"][0]["end_date"] == "2024-01-13"

    info = client.get(f"/phases/{phase_id}/freeze", headers=HEADERS).json()
    assert info["total_freeze_count"] == 1

    again = client.post(f"/phases/{phase_id}/freeze", json={"dates": ["2024-01-04"]}, headers=HEADERS)
    assert again.status_code == 400
    assert again.json()["detail"]["error"] == "invalid_date"

    thawed = client.post(f"/phases/{phase_id}/unfreeze", json={"dates": ["2024-01-04"]}, headers=HEADERS)
    assert thawed.json()["phases"][0]["end_date"] == "2024-01-12"

    deleted = client.delete(f"/phases/{phase_id}", headers=HEADERS)
    assert deleted.json()["events"] == [{"type": "phase-deleted", "phase_id": phase_id}]
    assert phase_id not in repository.phases


def test_empty_freeze_request_is_rejected_by_validation(client) -> None:
    phase_id = _create(client)
    response = client.post(f"/phases/{phase_id}/freeze", json={"dates": []}, headers=HEADERS)
    assert response.status_code == 422


def test_duplicate_without_body_uses_next_free_day(client) -> None:
    phase_id = _create(client)

    response = client.post(f"/phases/{phase_id}/duplicate", headers=HEADERS)

    assert response.status_code == 201
    assert response.json()["phases"][0]["start_date"] == "2024-01-11"


def test_view_and_allowance(client) -> None:
    _create(client, "2024-01-01", 25)

    view = client.get("/clients/client-1/view", headers=HEADERS).json()
    assert view["label"] == "running"

    allowance = client.get("/clients/client-1/allowance", params={"days": 10}, headers=HEADERS).json()
    assert allowance["can_create"] is False
    assert allowance["message"] == "Only 5 days remaining in plan"


def test_persistence_failures_map_to_server_error() -> None:
    service = MagicMock()
    service.extend.side_effect = CascadeError("Failed to extend phase a: disk full")
    api.app.dependency_overrides[api.get_phase_service] = lambda: service
    try:
        response = TestClient(api.app).post(
            "/phases/a/extend", json={"new_start_date": "2024-01-03"}, headers=HEADERS
        )
    finally:
        api.app.dependency_overrides.clear()

    assert response.status_code == 500
    assert "disk full" in response.json()["detail"]


def test_status_endpoint_reports_checks(monkeypatch) -> None:
    monkeypatch.setattr(
        api,
        "run_status_checks",
        lambda *, timeout: [CheckResult("DB", True, "2ms"), CheckResult("Schema", False, "missing purchases")],
    )

    response = TestClient(api.app).get("/status", headers=HEADERS)

    payload = response.json()
    assert payload["ok"] is False
    assert payload["checks"][1] == {"name": "Schema", "ok": False, "detail": "missing purchases"}
    assert "FAIL" in payload["summary"]


def test_root_is_open() -> None:
    assert TestClient(api.app).get("/").json()["status"] == "ok"
