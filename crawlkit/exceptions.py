# crawlkit/exceptions.py
"""
Error taxonomy.

Setup errors (CrawlConfigError, UnknownJobError) abort the call that raised
them. Per-URI errors (TransportError, HttpStatusError) are handed to
exception-aware subscribers and never stop the queue drain.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from crawlkit.models import Response


class CrawlError(Exception):
    """Base class for everything raised by crawlkit."""


# ---- Setup errors -----------------------------------------------------------


class CrawlConfigError(CrawlError):
    """The crawl cannot start because it is misconfigured."""


class EmptyBaseUriCollectionError(CrawlConfigError):
    def __init__(self) -> None:
        super().__init__("Cannot crawl without at least one base URI.")


class InvalidSubscriberSelectionError(CrawlConfigError):
    def __init__(self, valid_names: Iterable[str]) -> None:
        self.valid_names = list(valid_names)
        super().__init__(
            "You have to specify at least one valid subscriber name. "
            f"Valid subscribers are: {', '.join(self.valid_names)}"
        )


class UnknownJobError(CrawlError):
    def __init__(self, job_id: str, message: str | None = None) -> None:
        self.job_id = job_id
        super().__init__(message or f'Job ID "{job_id}" does not exist.')


class InvalidJobIdError(UnknownJobError):
    def __init__(self, job_id: str) -> None:
        super().__init__(job_id, f'Job ID "{job_id}" is not a valid job ID.')


# ---- Per-URI errors ---------------------------------------------------------


class TransportError(CrawlError):
    """Network or connection failure while fetching one URI."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(message)


class MalformedResponseError(TransportError):
    """The response stream was inconsistent (e.g. data after the last chunk)."""


class HttpStatusError(CrawlError):
    """Content of an HTTP error response (status >= 400) was read."""

    def __init__(self, response: "Response") -> None:
        self.response = response
        super().__init__(
            f"HTTP/{response.status_code} returned for \"{response.url}\"."
        )
