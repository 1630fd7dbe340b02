from __future__ import annotations

import pytest
from pydantic import TypeAdapter

from deedscraper.models import (
    CaptchaChallenge,
    DeedDocument,
    ErrorKind,
    Failure,
    Jurisdiction,
    PartialFailure,
    ScrapeOutcome,
    SearchRequest,
    SearchResult,
    Success,
    TransactionRecord,
)
from deedscraper.state import InvalidTransition, NavigationSession, WorkflowState


def _session() -> NavigationSession:
    return NavigationSession(request=SearchRequest(address="1 Main St"), browser=object())


def test_jurisdiction_key_is_lowercase_slug() -> None:
    assert Jurisdiction(county="Miami Dade", state="FL").key == "miami-dade-fl"
    assert str(Jurisdiction(county="Orange", state="FL")) == "Orange County, FL"


def test_search_request_is_immutable() -> None:
    request = SearchRequest(address="1 Main St")

    with pytest.raises(ValueError):
        request.address = "2 Main St"  # type: ignore[misc]


def test_no_results_is_not_an_error_kind() -> None:
    assert ErrorKind.NO_RESULTS_FOUND.is_error is False
    assert ErrorKind.SELECTOR_NOT_FOUND.is_error is True


def test_session_walks_full_happy_path() -> None:
    nav = _session()
    for target in (
        WorkflowState.DISCLAIMER_HANDLED,
        WorkflowState.SEARCHED,
        WorkflowState.DOCUMENT_SELECTED,
        WorkflowState.CAPTCHA_RESOLVED,
        WorkflowState.DOWNLOADED,
        WorkflowState.DONE,
    ):
        nav.advance(target)

    assert nav.state is WorkflowState.DONE
    assert nav.history[0] is WorkflowState.INIT
    assert len(nav.history) == 7


def test_captcha_state_is_optional() -> None:
    nav = _session()
    nav.advance(WorkflowState.DISCLAIMER_HANDLED)
    nav.advance(WorkflowState.SEARCHED)
    nav.advance(WorkflowState.DOCUMENT_SELECTED)
    nav.advance(WorkflowState.DOWNLOADED)

    assert WorkflowState.CAPTCHA_RESOLVED not in nav.history


def test_session_rejects_skipping_states() -> None:
    nav = _session()

    with pytest.raises(InvalidTransition, match="Init -> Searched"):
        nav.advance(WorkflowState.SEARCHED)


def test_errored_is_absorbing() -> None:
    nav = _session()
    nav.fail(ErrorKind.NAVIGATION_TIMEOUT, "slow site")

    assert nav.state is WorkflowState.ERRORED
    assert nav.error_detail == "slow site"
    with pytest.raises(InvalidTransition):
        nav.advance(WorkflowState.DISCLAIMER_HANDLED)
    with pytest.raises(InvalidTransition, match="terminal"):
        nav.fail(ErrorKind.UNEXPECTED)


def test_errored_only_reachable_through_fail() -> None:
    nav = _session()

    with pytest.raises(InvalidTransition, match="fail"):
        nav.advance(WorkflowState.ERRORED)


def test_only_one_active_challenge() -> None:
    nav = _session()
    challenge = CaptchaChallenge(site_key="k", page_url="https://x.test")
    nav.begin_challenge(challenge)

    with pytest.raises(InvalidTransition, match="already active"):
        nav.begin_challenge(challenge)

    nav.end_challenge()
    nav.begin_challenge(challenge)
    assert nav.challenge == challenge


def test_found_anything_tracks_parcel_facts() -> None:
    nav = _session()
    assert nav.found_anything is False

    nav.parcel_id = "12-34"
    assert nav.found_anything is True


def test_outcome_union_dispatches_on_tag() -> None:
    adapter = TypeAdapter(ScrapeOutcome)

    outcome = adapter.validate_python(
        {"outcome": "failure", "address": "1 Main St", "error_kind": "NoResultsFound", "detail": "none"}
    )

    assert isinstance(outcome, Failure)
    assert outcome.error_kind is ErrorKind.NO_RESULTS_FOUND


def test_failure_responses_carry_error_pair() -> None:
    result = SearchResult(address="1 Main St", parcel_id="P-1")

    partial = PartialFailure(result=result, error_kind=ErrorKind.DOWNLOAD_FAILED, reason="html page").to_response()
    failure = Failure(address="1 Main St", error_kind=ErrorKind.SELECTOR_NOT_FOUND, detail="layout").to_response()

    assert partial["error"] == "html page"
    assert partial["errorKind"] == "DownloadFailed"
    assert partial["parcelId"] == "P-1"
    assert failure == {
        "outcome": "failure",
        "address": "1 Main St",
        "error": "layout",
        "errorKind": "SelectorNotFound",
    }


def test_success_response_embeds_document_as_base64() -> None:
    document = DeedDocument(instrument_number="1", document_type="Warranty Deed", content=b"%PDF", page_count=1)
    record = TransactionRecord(instrument_number="1", document_type="Warranty Deed", view_handle="secret")
    result = SearchResult(
        address="1 Main St",
        jurisdiction=Jurisdiction(county="Orange", state="FL"),
        transactions=[record],
        document=document,
    )

    payload = Success(result=result).to_response()

    assert payload["outcome"] == "success"
    assert payload["county"] == "Orange"
    assert payload["document"]["contentBase64"] == "JVBERg=="
    assert "view_handle" not in payload["transactions"][0]
    assert "viewHandle" not in payload["transactions"][0]
