"""
exceptions.py

Error kinds, error records and the exception hierarchy of the library.

Inside the request layer a failed exchange is described by an immutable
ErrorRecord tagged with an ErrorKind. Only the public client surface turns a
record into an exception (see `map_error_record`), so the dispatcher and the
retry coordinator pass plain values around.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Any

__all__ = [
    "ErrorKind", "ErrorRecord", "map_error_record",
    "NexusError", "UncertainOutcomeError", "RequestTimeoutError", "AmbiguousResultError",
    "ServiceUnavailableError", "RateLimitError", "InvalidResponseError",
    "RemoteError", "BadRequestError", "UnauthorizedError", "ForbiddenError", "NotFoundError",
    "InvalidParameterError", "NetworkError", "RequestCancelled",
]


class ErrorKind(str, Enum):
    """Classification of a failed request."""

    TIMEOUT = "timeout"
    SERVICE_UNAVAILABLE = "service_unavailable"
    RATE_LIMITED = "rate_limited"
    AMBIGUOUS = "ambiguous"
    MALFORMED_RESPONSE = "malformed_response"
    REMOTE_ERROR = "remote_error"
    INVALID_PARAMETER = "invalid_parameter"


@dataclass(frozen=True)
class ErrorRecord:
    """
    Immutable description of a failed request.

    Attributes
    ----------
    kind: ErrorKind
        What went wrong.
    message: str
        Human readable message (server supplied where available).
    status: Optional[int]
        HTTP status code, if a response was received.
    url: Optional[str]
        URL of the originating request.
    """

    kind: ErrorKind
    message: str
    status: Optional[int] = None
    url: Optional[str] = None


class NexusError(Exception):
    """
    Base class for all library-specific exceptions.

    Attributes
    ----------
    message: str
        Human readable error message.
    code: Optional[int]
        HTTP status code if applicable.
    url: Optional[str]
        URL of the request that failed.
    record: Optional[ErrorRecord]
        The record this exception was built from, if any.
    """

    def __init__(self, message: str, code: Optional[int] = None, url: Optional[str] = None,
                 record: Optional[ErrorRecord] = None):
        self.message = message
        self.code = code
        self.url = url
        self.record = record
        super().__init__(self.__str__())

    def __str__(self) -> str:
        base = f"[{self.__class__.__name__}] {self.message}"
        if self.code is not None:
            base += f" (code={self.code})"
        if self.url:
            base += f" [{self.url}]"
        return base

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} code={self.code!r} message={self.message!r} url={self.url!r}>"

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.record.kind if self.record is not None else None


class UncertainOutcomeError(NexusError):
    """
    The request may or may not have been processed by the server.

    Callers that issued a request with side effects (endorsements, feedback)
    have to check the remote state before repeating it.
    """


class RequestTimeoutError(UncertainOutcomeError):
    """Connect or read phase exceeded the request timeout."""


class AmbiguousResultError(UncertainOutcomeError):
    """HTTP 202 - accepted, but not processed within the server's own deadline."""


class ServiceUnavailableError(NexusError):
    """HTTP 521 / 'Bad Gateway' - the API is currently offline."""


class RateLimitError(NexusError):
    """HTTP 429 - rate limit exceeded and the retry bound was exhausted."""


class InvalidResponseError(NexusError):
    """The server returned a body that could not be parsed as JSON."""


class RemoteError(NexusError):
    """Non-2xx response carrying a server supplied message."""


class BadRequestError(RemoteError):
    """HTTP 400 - invalid parameters or payload."""


class UnauthorizedError(RemoteError):
    """HTTP 401 - missing or invalid API key."""


class ForbiddenError(RemoteError):
    """HTTP 403 - authenticated but not allowed."""


class NotFoundError(RemoteError):
    """HTTP 404 - requested resource not found."""


class InvalidParameterError(NexusError, ValueError):
    """A parameter was rejected, locally or by the md5 search (HTTP 422)."""


class NetworkError(NexusError):
    """Transport error not covered by the classification table (DNS, refused connection...)."""


class RequestCancelled(NexusError):
    """The caller abandoned the request, or the client was closed, while it was queued or cooling down."""


_REMOTE_BY_STATUS = {
    400: BadRequestError,
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
}

_BY_KIND = {
    ErrorKind.TIMEOUT: RequestTimeoutError,
    ErrorKind.SERVICE_UNAVAILABLE: ServiceUnavailableError,
    ErrorKind.RATE_LIMITED: RateLimitError,
    ErrorKind.AMBIGUOUS: AmbiguousResultError,
    ErrorKind.MALFORMED_RESPONSE: InvalidResponseError,
    ErrorKind.REMOTE_ERROR: RemoteError,
    ErrorKind.INVALID_PARAMETER: InvalidParameterError,
}


def map_error_record(record: ErrorRecord) -> NexusError:
    """
    Convert an ErrorRecord into the matching NexusError instance.

    Remote errors with a well known status code map to a more specific
    subclass; everything else maps on the record's kind alone.

    Parameters
    ----------
    record : ErrorRecord
        The failure to convert.

    Returns
    -------
    NexusError
        An instance (not raised) carrying the record.
    """
    cls: Any = _BY_KIND.get(record.kind, NexusError)
    if record.kind is ErrorKind.REMOTE_ERROR and record.status in _REMOTE_BY_STATUS:
        cls = _REMOTE_BY_STATUS[record.status]
    return cls(record.message, record.status, record.url, record)
