"""Scrape error taxonomy.

Library code raises these; only the navigation orchestrator turns them into
``ScrapeOutcome`` values.
"""

from deedscraper.models import ErrorKind


class ScrapeError(Exception):
    """Base class for every failure attributable to one search request."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str = "", *, url: str | None = None) -> None:
        super().__init__(message or self.kind.value)
        self.url = url


class LaunchError(ScrapeError):
    kind = ErrorKind.LAUNCH_ERROR


class NavigationTimeout(ScrapeError):
    kind = ErrorKind.NAVIGATION_TIMEOUT


class SelectorNotFound(ScrapeError):
    kind = ErrorKind.SELECTOR_NOT_FOUND


class ScriptError(ScrapeError):
    kind = ErrorKind.SCRIPT_ERROR


class NoResultsFound(ScrapeError):
    """Not a failure: the search ran and legitimately matched nothing."""

    kind = ErrorKind.NO_RESULTS_FOUND


class CaptchaError(ScrapeError):
    """Common base for the CAPTCHA family, retried within the solver budget."""


class CaptchaUnsolved(CaptchaError):
    kind = ErrorKind.CAPTCHA_UNSOLVED


class CaptchaTimeout(CaptchaError):
    kind = ErrorKind.CAPTCHA_TIMEOUT


class SolverRejected(CaptchaError):
    kind = ErrorKind.SOLVER_REJECTED


class SolverUnavailable(CaptchaError):
    kind = ErrorKind.SOLVER_UNAVAILABLE


class AuthenticationRequired(ScrapeError):
    kind = ErrorKind.AUTHENTICATION_REQUIRED


class DownloadFailed(ScrapeError):
    kind = ErrorKind.DOWNLOAD_FAILED


class UnsupportedJurisdiction(ScrapeError):
    kind = ErrorKind.UNSUPPORTED_JURISDICTION


class BatchValidationError(ValueError):
    """Raised for malformed batches, before any browser session is opened."""
