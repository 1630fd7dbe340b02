from __future__ import annotations

import asyncio

import pytest

from deedscraper.batch import BatchCoordinator, requests_from_addresses
from deedscraper.config import Settings
from deedscraper.exceptions import BatchValidationError
from deedscraper.models import ErrorKind, Failure, Jurisdiction, SearchRequest, SearchResult, Success
from deedscraper.registry import default_registry


class FakeOrchestrator:
    def __init__(self, delays: dict[str, float] | None = None, explode: set[str] | None = None) -> None:
        self.registry = default_registry()
        self.delays = delays or {}
        self.explode = explode or set()
        self.in_flight = 0
        self.peak = 0
        self.seen: list[str] = []
        self.closed = False

    async def run(self, request: SearchRequest):
        self.seen.append(request.address)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(request.address, 0))
            if request.address in self.explode:
                raise RuntimeError("browser crashed")
            if request.address.startswith("missing"):
                return Failure(address=request.address, error_kind=ErrorKind.NO_RESULTS_FOUND, detail="none")
            return Success(result=SearchResult(address=request.address))
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True


def _requests(*addresses: str) -> list[SearchRequest]:
    return [SearchRequest(address=a) for a in addresses]


def test_outcomes_follow_input_order() -> None:
    orchestrator = FakeOrchestrator(delays={"a": 0.03, "b": 0.0, "c": 0.01})
    coordinator = BatchCoordinator(orchestrator, Settings(max_concurrency=3))

    outcomes = asyncio.run(coordinator.scrape_batch(_requests("a", "b", "c")))

    assert [o.result.address for o in outcomes] == ["a", "b", "c"]


def test_one_failure_does_not_sink_siblings() -> None:
    orchestrator = FakeOrchestrator(explode={"bad"})
    coordinator = BatchCoordinator(orchestrator, Settings())

    outcomes = asyncio.run(coordinator.scrape_batch(_requests("good-1", "bad", "missing", "good-2")))

    assert len(outcomes) == 4
    assert [o.outcome for o in outcomes] == ["success", "failure", "failure", "success"]
    assert outcomes[1].error_kind is ErrorKind.UNEXPECTED
    assert "browser crashed" in outcomes[1].detail
    assert outcomes[2].error_kind is ErrorKind.NO_RESULTS_FOUND


def test_concurrency_is_capped() -> None:
    addresses = [f"addr-{i}" for i in range(6)]
    orchestrator = FakeOrchestrator(delays={a: 0.01 for a in addresses})
    coordinator = BatchCoordinator(orchestrator, Settings(max_concurrency=2))

    asyncio.run(coordinator.scrape_batch(_requests(*addresses)))

    assert orchestrator.peak == 2
    assert sorted(orchestrator.seen) == sorted(addresses)


def test_empty_batch_rejected_before_any_work() -> None:
    orchestrator = FakeOrchestrator()

    with pytest.raises(BatchValidationError, match="At least one address"):
        asyncio.run(BatchCoordinator(orchestrator, Settings()).scrape_batch([]))

    assert orchestrator.seen == []


def test_oversize_batch_rejected_before_any_work() -> None:
    orchestrator = FakeOrchestrator()
    requests = _requests(*(f"{i} Main St" for i in range(11)))

    with pytest.raises(BatchValidationError, match="Maximum 10 addresses"):
        asyncio.run(BatchCoordinator(orchestrator, Settings()).scrape_batch(requests))

    assert orchestrator.seen == []


def test_blank_address_rejected() -> None:
    with pytest.raises(BatchValidationError, match=r"position\(s\) \[1\]"):
        BatchCoordinator(FakeOrchestrator(), Settings()).validate(_requests("1 Main St", "   "))


def test_requests_from_addresses_pins_county() -> None:
    requests = requests_from_addresses([" 1 Main St ", "2 Main St"], county="Orange", state="FL")

    assert [r.address for r in requests] == ["1 Main St", "2 Main St"]
    assert all(r.jurisdiction == Jurisdiction(county="Orange", state="FL") for r in requests)
    assert requests_from_addresses(["1 Main St"])[0].jurisdiction is None


def test_close_releases_orchestrator() -> None:
    orchestrator = FakeOrchestrator()

    asyncio.run(BatchCoordinator(orchestrator, Settings()).close())

    assert orchestrator.closed
