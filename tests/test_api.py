from __future__ import annotations

from datetime import datetime

from fastapi.testclient import TestClient

from app.web.main import create_app
from deedscraper.batch import BatchCoordinator
from deedscraper.config import Settings
from deedscraper.models import ErrorKind, Failure, SearchRequest, SearchResult, Success
from deedscraper.registry import default_registry


class RecordingOrchestrator:
    def __init__(self) -> None:
        self.registry = default_registry()
        self.requests: list[SearchRequest] = []

    async def run(self, request: SearchRequest):
        self.requests.append(request)
        if "Nowhere" in request.address:
            return Failure(address=request.address, error_kind=ErrorKind.NO_RESULTS_FOUND, detail="No property found")
        return Success(result=SearchResult(address=request.address, parcel_id="P-1"))

    async def close(self) -> None:
        return None


def _client(settings: Settings | None = None) -> tuple[TestClient, RecordingOrchestrator]:
    settings = settings or Settings()
    orchestrator = RecordingOrchestrator()
    app = create_app(settings=settings, coordinator=BatchCoordinator(orchestrator, settings))
    return TestClient(app), orchestrator


def test_scrape_returns_one_outcome_per_address() -> None:
    client, orchestrator = _client()

    response = client.post("/api/scrape", json={"addresses": ["1 A St", "2 B St"], "county": "King", "state": "WA"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [o["address"] for o in body["data"]] == ["1 A St", "2 B St"]
    assert body["data"][0]["outcome"] == "success"
    assert body["data"][0]["parcelId"] == "P-1"
    assert orchestrator.requests[0].jurisdiction.county == "King"


def test_scrape_summarizes_outcomes() -> None:
    client, _ = _client()

    response = client.post(
        "/api/scrape",
        json={"addresses": ["1 A St", "9 Nowhere Ln", "2 B St"], "county": "King", "state": "WA"},
    )

    body = response.json()
    assert body["summary"] == {"total": 3, "successful": 2, "failed": 1}
    assert body["data"][1]["outcome"] == "failure"
    assert datetime.fromisoformat(body["timestamp"]).tzinfo is not None


def test_scrape_passes_parcel_id() -> None:
    client, orchestrator = _client()

    response = client.post(
        "/api/scrape",
        json={"addresses": ["3500 Bridgeport Way W"], "county": "Pierce", "state": "WA", "parcelId": "0220123456"},
    )

    assert response.status_code == 200
    assert orchestrator.requests[0].parcel_id == "0220123456"


def test_missing_addresses_is_400() -> None:
    client, orchestrator = _client()

    response = client.post("/api/scrape", json={"county": "King"})

    assert response.status_code == 400
    assert response.json()["error"] == "addresses is required"
    assert response.json()["error_id"]
    assert orchestrator.requests == []


def test_addresses_must_be_array() -> None:
    client, _ = _client()

    response = client.post("/api/scrape", json={"addresses": "1 A St"})

    assert response.status_code == 400
    assert "array" in response.json()["error"]


def test_empty_and_oversize_batches_are_400() -> None:
    client, orchestrator = _client()

    empty = client.post("/api/scrape", json={"addresses": []})
    oversize = client.post("/api/scrape", json={"addresses": [f"{i} Main St" for i in range(11)]})

    assert empty.status_code == 400
    assert oversize.status_code == 400
    assert "Maximum 10" in oversize.json()["error"]
    assert orchestrator.requests == []


def test_non_json_body_is_400() -> None:
    client, _ = _client()

    response = client.post("/api/scrape", content=b"addresses=1", headers={"content-type": "application/json"})

    assert response.status_code == 400


def test_unknown_county_is_400() -> None:
    client, _ = _client()

    response = client.post("/api/scrape", json={"addresses": ["1 A St"], "county": "Cook", "state": "IL"})

    assert response.status_code == 400
    assert "Unsupported county" in response.json()["error"]


def test_captcha_county_without_solver_is_503() -> None:
    client, orchestrator = _client()

    response = client.post("/api/scrape", json={"addresses": ["12729 Hawkstone Drive"], "county": "Orange"})

    assert response.status_code == 503
    assert "CAPTCHA_SOLVER_TOKEN" in response.json()["error"]
    assert orchestrator.requests == []


def test_captcha_county_with_solver_is_accepted() -> None:
    client, _ = _client(Settings(captcha_solver_token="KEY"))

    response = client.post("/api/scrape", json={"addresses": ["12729 Hawkstone Drive"], "county": "Orange"})

    assert response.status_code == 200


def test_counties_lists_capabilities() -> None:
    client, _ = _client()

    data = client.get("/api/counties").json()["data"]

    orange = next(c for c in data if c["key"] == "orange-fl")
    assert orange["requiresCaptcha"] is True
    assert {c["key"] for c in data} == {"duval-fl", "king-wa", "orange-fl", "pierce-wa"}


def test_health_reports_solver_state() -> None:
    client, _ = _client(Settings(captcha_solver_token="KEY"))

    body = client.get("/api/health").json()

    assert body["status"] == "ok"
    assert body["captchaSolverConfigured"] is True
