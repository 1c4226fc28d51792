"""
dispatcher.py - one HTTP exchange, classified.

The Dispatcher sends exactly one request described by a RequestContext and
turns whatever comes back into an Outcome: either the parsed JSON value or an
ErrorRecord tagged with its ErrorKind. It never retries and never raises for
HTTP level failures; only transport errors outside the classification table
(DNS failure, refused connection, ...) escape as NetworkError.

Classification order:
  1. connect/read timeout            -> TIMEOUT
  2. 521 or body "Bad Gateway"       -> SERVICE_UNAVAILABLE (body not parsed)
  3. 429                             -> RATE_LIMITED (body not parsed)
  4. 202                             -> AMBIGUOUS
  5. body not JSON (empty means {})  -> MALFORMED_RESPONSE
  6. status outside [200, 300)       -> REMOTE_ERROR
  7. otherwise                       -> success
"""

from __future__ import annotations

import copy
import json
import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import *
from urllib.parse import quote

import requests
from urllib3.exceptions import ReadTimeoutError

from .exceptions import ErrorKind, ErrorRecord, NetworkError, map_error_record
from .utils import filter_none

logger = logging.getLogger(__name__)


def _frozen(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(filter_none(mapping))


@dataclass(frozen=True)
class RequestContext:
    """
    Everything needed to perform one request.

    Parameter mappings drop entries whose value is None on construction, so
    an optional argument left unset is omitted rather than sent empty.

    Attributes
    ----------
    url_template : str
        Absolute URL with `{name}` placeholders, e.g. ".../games/{gameId}".
    path_params : Mapping[str, Any]
        Values for the placeholders.
    query_params : Mapping[str, Any]
        Appended as query string.
    headers : Mapping[str, str]
        Request headers.
    body : Optional[Any]
        Payload; when present the request is a POST.
    files : Optional[Mapping[str, Any]]
        Multipart attachments. With files, `body` is sent as form fields.
    timeout : float
        Connect and read timeout in seconds.
    """

    url_template: str
    path_params: Mapping[str, Any] = field(default_factory=dict)
    query_params: Mapping[str, Any] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[Any] = None
    files: Optional[Mapping[str, Any]] = None
    timeout: float = 5.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "path_params", _frozen(self.path_params))
        object.__setattr__(self, "query_params", _frozen(self.query_params))
        object.__setattr__(self, "headers", _frozen(self.headers))
        # private copies: the same context is resent after a 429
        object.__setattr__(self, "body", copy.deepcopy(self.body))
        if self.files is not None:
            object.__setattr__(self, "files", MappingProxyType(dict(self.files)))

    @property
    def method(self) -> str:
        return "POST" if self.body is not None else "GET"

    @property
    def url(self) -> str:
        return build_url(self.url_template, self.path_params)


@dataclass(frozen=True)
class Outcome:
    """
    Tagged result of a dispatch: success with `value`, or failure with `error`.
    """

    value: Any = None
    error: Optional[ErrorRecord] = None

    @classmethod
    def success(cls, value: Any) -> "Outcome":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, status: Optional[int] = None,
                url: Optional[str] = None) -> "Outcome":
        return cls(error=ErrorRecord(kind, message, status, url))

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return None if self.error is None else self.error.kind

    def unwrap(self) -> Any:
        """Return the value, or raise the exception matching the error kind."""
        if self.error is not None:
            raise map_error_record(self.error)
        return self.value


def build_url(url_template: str, path_params: Mapping[str, Any]) -> str:
    """
    Fill the `{name}` placeholders of `url_template`.

    Values are percent-encoded. A placeholder without a value raises KeyError.
    """
    return url_template.format(**{k: quote(str(v), safe="") for k, v in path_params.items()})


def classify_response(status: int, reason: str, body: Optional[str], url: str) -> Outcome:
    """
    Classify a received response.

    Pure function of its arguments: the same (status, body) always yields the
    same outcome kind.

    Parameters
    ----------
    status : int
        HTTP status code.
    reason : str
        HTTP reason phrase, used when the server sends no message.
    body : Optional[str]
        Response text.
    url : str
        Request URL, attached to failures.
    """
    if status == 521 or body == "Bad Gateway":
        # not produced by the API itself, so not JSON
        return Outcome.failure(ErrorKind.SERVICE_UNAVAILABLE, "API currently offline", status, url)

    if status == 429:
        return Outcome.failure(ErrorKind.RATE_LIMITED, "rate limit exceeded", status, url)

    if status == 202:
        # accepted, but the server could not tell us in time whether it was processed
        return Outcome.failure(ErrorKind.AMBIGUOUS, "Not processed in time", status, url)

    try:
        data = json.loads(body or "{}")
    except ValueError as exc:
        return Outcome.failure(ErrorKind.MALFORMED_RESPONSE,
                               f'failed to parse server response for request "{url}": {exc}', status, url)

    if status < 200 or status >= 300:
        message = None
        if isinstance(data, dict):
            message = data.get("message") or data.get("error")
        if not message:
            message = f"{status} {reason}".strip()
        return Outcome.failure(ErrorKind.REMOTE_ERROR, str(message), status, url)

    return Outcome.success(data)


def _is_timeout(exc: requests.RequestException) -> bool:
    """
    True for a connect or read timeout, including one hit while requests
    reads the body, which it re-raises as a ConnectionError wrapping
    urllib3's ReadTimeoutError.
    """
    if isinstance(exc, requests.Timeout):
        return True
    return isinstance(exc, requests.ConnectionError) and any(isinstance(a, ReadTimeoutError) for a in exc.args)


class Dispatcher:
    """
    Performs single HTTP exchanges over a shared requests.Session.

    Parameters
    ----------
    session : requests.Session
        Session used for every request (connection pooling, default headers).
    """

    def __init__(self, session: requests.Session):
        self.session = session

    def dispatch(self, context: RequestContext) -> Outcome:
        """
        Send the request described by `context` and classify the result.

        Returns
        -------
        Outcome

        Raises
        ------
        NetworkError
            Transport failure other than a timeout, with the request URL
            appended to the message.
        KeyError
            A placeholder of the URL template has no value.
        """
        url = context.url
        method = context.method
        headers = dict(context.headers)
        kwargs: Dict[str, Any] = {}
        if context.files is not None:
            # requests generates the multipart boundary header
            headers.pop("Content-Type", None)
            kwargs["data"] = dict(context.body or {})
            kwargs["files"] = dict(context.files)
        elif context.body is not None:
            kwargs["data"] = json.dumps(context.body)

        started = time.monotonic()
        try:
            resp = self.session.request(
                method,
                url,
                params=dict(context.query_params) or None,
                headers=headers,
                timeout=(context.timeout, context.timeout),
                allow_redirects=True,
                **kwargs,
            )
        except requests.RequestException as exc:
            if not _is_timeout(exc):
                raise NetworkError(f"{exc} (request: {url})", url=url) from exc
            logger.debug("%s %s timed out after %.3fs", method, url, time.monotonic() - started)
            return Outcome.failure(ErrorKind.TIMEOUT, f"request timed out: {url}", None, url)

        logger.debug("%s %s -> %s in %.3fs", method, url, resp.status_code, time.monotonic() - started)
        return classify_response(resp.status_code, resp.reason or "", resp.text, url)
