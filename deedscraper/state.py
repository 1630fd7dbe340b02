"""Workflow state for one search request."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional

from deedscraper.models import (
    CaptchaChallenge,
    DeedDocument,
    ErrorKind,
    Jurisdiction,
    SearchRequest,
    SearchResult,
    TransactionRecord,
)

if TYPE_CHECKING:
    from deedscraper.browser.session import BrowserSession
    from deedscraper.captcha.resolver import CaptchaResolver


class WorkflowState(Enum):
    INIT = "Init"
    DISCLAIMER_HANDLED = "DisclaimerHandled"
    SEARCHED = "Searched"
    DOCUMENT_SELECTED = "DocumentSelected"
    CAPTCHA_RESOLVED = "CaptchaResolved"
    DOWNLOADED = "Downloaded"
    DONE = "Done"
    ERRORED = "Errored"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowState.DONE, WorkflowState.ERRORED)


# Allowed forward edges; ERRORED is reachable from every non-terminal state.
TRANSITIONS: dict[WorkflowState, tuple[WorkflowState, ...]] = {
    WorkflowState.INIT: (WorkflowState.DISCLAIMER_HANDLED,),
    WorkflowState.DISCLAIMER_HANDLED: (WorkflowState.SEARCHED,),
    WorkflowState.SEARCHED: (WorkflowState.DOCUMENT_SELECTED,),
    WorkflowState.DOCUMENT_SELECTED: (WorkflowState.CAPTCHA_RESOLVED, WorkflowState.DOWNLOADED),
    WorkflowState.CAPTCHA_RESOLVED: (WorkflowState.DOWNLOADED,),
    WorkflowState.DOWNLOADED: (WorkflowState.DONE,),
    WorkflowState.DONE: (),
    WorkflowState.ERRORED: (),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass(slots=True)
class NavigationSession:
    """Everything one request accumulates while an adapter walks the site.

    Owns exactly one browser session. Adapters write discovered facts here
    instead of onto themselves.
    """

    request: SearchRequest
    browser: "BrowserSession"
    jurisdiction: Jurisdiction | None = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    attempt: int = 1
    state: WorkflowState = WorkflowState.INIT
    captcha: "CaptchaResolver | None" = None
    error_kind: ErrorKind | None = None
    error_detail: str | None = None
    history: List[WorkflowState] = field(default_factory=lambda: [WorkflowState.INIT])
    parcel_id: str | None = None
    owner_name: str | None = None
    transactions: List[TransactionRecord] = field(default_factory=list)
    selected: TransactionRecord | None = None
    challenge: CaptchaChallenge | None = None
    document: DeedDocument | None = None
    scratch: dict[str, Any] = field(default_factory=dict)

    def advance(self, target: WorkflowState) -> None:
        if target is WorkflowState.ERRORED:
            raise InvalidTransition("use fail() to enter the errored state")
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    def fail(self, kind: ErrorKind, detail: str | None = None) -> None:
        if self.state.is_terminal:
            raise InvalidTransition(f"{self.state.value} is terminal")
        self.state = WorkflowState.ERRORED
        self.error_kind = kind
        self.error_detail = detail or kind.value
        self.history.append(WorkflowState.ERRORED)

    def begin_challenge(self, challenge: CaptchaChallenge) -> None:
        if self.challenge is not None:
            raise InvalidTransition("a CAPTCHA challenge is already active")
        self.challenge = challenge

    def end_challenge(self) -> None:
        self.challenge = None

    @property
    def found_anything(self) -> bool:
        return bool(self.parcel_id or self.transactions)

    def to_result(self, document: Optional[DeedDocument] = None) -> SearchResult:
        return SearchResult(
            address=self.request.address,
            jurisdiction=self.jurisdiction,
            parcel_id=self.parcel_id,
            owner_name=self.owner_name,
            transactions=list(self.transactions),
            document=document or self.document,
        )
