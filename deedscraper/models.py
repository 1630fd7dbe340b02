from __future__ import annotations

import base64
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(Enum):
    LAUNCH_ERROR = "LaunchError"                      # Browser process failed to start
    NAVIGATION_TIMEOUT = "NavigationTimeout"          # Page never settled within the ceiling
    SELECTOR_NOT_FOUND = "SelectorNotFound"           # Expected elements missing, layout likely changed
    SCRIPT_ERROR = "ScriptError"                      # In-page evaluation threw
    NO_RESULTS_FOUND = "NoResultsFound"               # Search ran and matched nothing
    CAPTCHA_UNSOLVED = "CaptchaUnsolved"              # Token injected but challenge still pending
    CAPTCHA_TIMEOUT = "CaptchaTimeout"                # Solver never returned a token
    SOLVER_REJECTED = "SolverRejected"                # Solver reported a permanent error
    SOLVER_UNAVAILABLE = "SolverUnavailable"          # Solver unreachable or not configured
    AUTHENTICATION_REQUIRED = "AuthenticationRequired"  # Site wants credentials we don't hold
    DOWNLOAD_FAILED = "DownloadFailed"                # Artifact failed signature validation
    UNSUPPORTED_JURISDICTION = "UnsupportedJurisdiction"
    UNEXPECTED = "Unexpected"

    @property
    def is_error(self) -> bool:
        return self is not ErrorKind.NO_RESULTS_FOUND


class Jurisdiction(BaseModel):
    model_config = ConfigDict(frozen=True)

    county: str
    state: str

    @property
    def key(self) -> str:
        return f"{self.county}-{self.state}".lower().replace(" ", "-")

    def __str__(self) -> str:
        return f"{self.county} County, {self.state}"


class SearchRequest(BaseModel):
    """A single address (or parcel) lookup. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    address: str
    parcel_id: Optional[str] = None
    jurisdiction: Optional[Jurisdiction] = None


class TransactionRecord(BaseModel):
    """
    One entry of a parcel's recorded document history.

    ``view_handle`` is opaque to everything except the adapter that produced it
    (a link, an onclick target, a row index...).
    """

    model_config = ConfigDict(frozen=True)

    instrument_number: str
    document_type: str
    recorded_date: Optional[str] = None
    book_page: Optional[str] = None
    sale_price: Optional[str] = None
    grantor: Optional[str] = None
    grantee: Optional[str] = None
    view_handle: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        return {
            "instrumentNumber": self.instrument_number,
            "documentType": self.document_type,
            "recordedDate": self.recorded_date,
            "bookPage": self.book_page,
            "salePrice": self.sale_price,
            "grantor": self.grantor,
            "grantee": self.grantee,
        }


class DeedDocument(BaseModel):
    instrument_number: str
    document_type: str
    content: Optional[bytes] = None  # Always a single PDF once normalized
    url: Optional[str] = None
    media_type: str = "application/pdf"
    page_count: int = 0
    content_hash: Optional[str] = None
    source_format: str = "pdf"  # pdf | tiff | image-sequence | url

    def to_response(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "instrumentNumber": self.instrument_number,
            "documentType": self.document_type,
            "mediaType": self.media_type,
            "pageCount": self.page_count,
            "contentHash": self.content_hash,
            "sourceFormat": self.source_format,
            "url": self.url,
        }
        if self.content is not None:
            payload["contentBase64"] = base64.b64encode(self.content).decode("ascii")
        return payload


class CaptchaChallenge(BaseModel):
    site_key: str
    page_url: str
    kind: Literal["recaptcha-v2"] = "recaptcha-v2"


class SearchResult(BaseModel):
    address: str
    jurisdiction: Optional[Jurisdiction] = None
    parcel_id: Optional[str] = None
    owner_name: Optional[str] = None
    transactions: List[TransactionRecord] = Field(default_factory=list)
    document: Optional[DeedDocument] = None
    scraped_at: datetime = Field(default_factory=datetime.now)

    def to_response(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "county": self.jurisdiction.county if self.jurisdiction else None,
            "state": self.jurisdiction.state if self.jurisdiction else None,
            "parcelId": self.parcel_id,
            "ownerName": self.owner_name,
            "transactions": [t.to_response() for t in self.transactions],
            "document": self.document.to_response() if self.document else None,
            "scrapedAt": self.scraped_at.isoformat(),
        }


# =============================================================================
# Tagged outcome, one per SearchRequest
# =============================================================================

class Success(BaseModel):
    outcome: Literal["success"] = "success"
    result: SearchResult

    def to_response(self) -> Dict[str, Any]:
        return {"outcome": self.outcome, **self.result.to_response()}


class PartialFailure(BaseModel):
    """Parcel facts were found but the document could not be retrieved."""

    outcome: Literal["partial_failure"] = "partial_failure"
    result: SearchResult
    error_kind: ErrorKind
    reason: str

    def to_response(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome,
            **self.result.to_response(),
            "error": self.reason,
            "errorKind": self.error_kind.value,
        }


class Failure(BaseModel):
    outcome: Literal["failure"] = "failure"
    address: str
    error_kind: ErrorKind
    detail: str

    def to_response(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome,
            "address": self.address,
            "error": self.detail,
            "errorKind": self.error_kind.value,
        }


ScrapeOutcome = Annotated[Union[Success, PartialFailure, Failure], Field(discriminator="outcome")]
