"""
client.py - Nexus Mods API client.

Provides the Nexus class, the entrypoint for library users. Every endpoint
method builds a RequestContext and hands it to the RetryCoordinator, which
takes a token from the shared Quota, dispatches the request and recovers from
rate limiting. Failures surface as NexusError subclasses (see exceptions.py).

Usage example:
    from nexuspy import Nexus
    nexus = Nexus.create("MY_KEY", app_version="1.2.0", default_game="skyrimspecialedition")
    mod = nexus.get_mod_info(266)
"""

from __future__ import annotations

import logging
import os
import threading
from typing import *

import requests

from . import parameters as param
from .dispatcher import Dispatcher, RequestContext
from .exceptions import InvalidParameterError, NexusError, RemoteError
from .parameters import NEXUSAPIURLS
from .quota import Quota
from .retry import RetryCoordinator
from .types_models import *
from .utils import filter_none, parse_app_version, session_factory

logger = logging.getLogger(__name__)


class Nexus:
    """
    High-level client for the Nexus Mods REST API.

    Responsibilities:
      - Hold the API key and the result of its validation; swap keys at runtime.
      - Keep the request quota in line with the account tier (anonymous/premium).
      - Map each endpoint to a typed method.

    Parameters
    ----------
    app_version : str
        Version of the calling application (semantic version), sent as
        `Application-Version` with every request.
    default_game : Optional[str]
        Game domain used when a method's `game_id` is omitted.
    timeout : Optional[float]
        Request timeout in seconds (connect and read). Defaults to
        DEFAULT_TIMEOUT_MS.
    base_url : Optional[str]
        API root, defaults to parameters.API_URL.
    session : Optional[requests.Session]
        Session to use (e.g. a mocked one in tests); built by
        utils.session_factory when omitted.
    user_agent : Optional[str]
        User-Agent for the default session.
    quota_max, quota_max_premium : int
        Quota capacity for anonymous and premium keys.
    quota_rate : Optional[float]
        Seconds to regenerate one quota token.
    cooldown : Optional[float]
        Seconds to wait after a 429 before resubmitting.
    max_rate_limit_retries : Optional[int]
        Bound on 429 resubmissions per call; None retries indefinitely.

    Examples
    --------
    >>> nexus = Nexus("1.0.0", default_game="skyrim")
    >>> nexus.set_key("MY_KEY")
    >>> files = nexus.get_mod_files(1234)
    """

    def __init__(
        self,
        app_version: str,
        default_game: Optional[str] = None,
        timeout: Optional[float] = None,
        *,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        user_agent: Optional[str] = None,
        quota_max: int = param.QUOTA_MAX,
        quota_max_premium: int = param.QUOTA_MAX_PREMIUM,
        quota_rate: Optional[float] = None,
        cooldown: Optional[float] = None,
        max_rate_limit_retries: Optional[int] = None,
        protocol_version: str = param.PROTOCOL_VERSION,
    ):
        parse_app_version(app_version)
        self.app_version = str(app_version)
        self.protocol_version = protocol_version
        self.base_url = (base_url or param.API_URL).rstrip("/")
        self.timeout = float(timeout) if timeout is not None else param.ms_to_seconds(param.DEFAULT_TIMEOUT_MS)
        self.quota_max = int(quota_max)
        self.quota_max_premium = int(quota_max_premium)

        self._game_id = default_game
        self._api_key: Optional[str] = None
        self._validation_result: Optional[ValidateKeyResult] = None
        self._key_lock = threading.Lock()

        self.session = session or session_factory(user_agent)
        self.quota = Quota(
            self.quota_max,
            quota_rate if quota_rate is not None else param.ms_to_seconds(param.QUOTA_RATE_MS),
        )
        self._coordinator = RetryCoordinator(
            self.quota,
            Dispatcher(self.session),
            cooldown if cooldown is not None else param.ms_to_seconds(param.DELAY_AFTER_429_MS),
            max_rate_limit_retries,
        )

    @classmethod
    def create(cls, api_key: Optional[str], app_version: str, default_game: Optional[str] = None,
               timeout: Optional[float] = None, **kwargs) -> "Nexus":
        """
        Create a client and immediately validate `api_key`.

        Raises whatever the validation raises (e.g. UnauthorizedError).
        """
        nexus = cls(app_version, default_game, timeout, **kwargs)
        nexus.set_key(api_key)
        return nexus

    # Configuration helpers
    def set_game(self, game_id: str) -> None:
        """Change the default game used when a method's `game_id` is omitted."""
        self._game_id = game_id

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key

    def get_validation_result(self) -> Optional[ValidateKeyResult]:
        """Result of the last successful key validation, None if unset or invalid."""
        return self._validation_result

    def set_key(self, api_key: Optional[str]) -> Optional[ValidateKeyResult]:
        """
        Change the API key and validate it. Pass None to unset the key.

        A valid premium key raises the quota to `quota_max_premium`; anything
        else (non-premium, invalid, unset) uses `quota_max`. If the key was
        swapped again while validation was in flight, the stale result does
        not touch the quota.

        Returns
        -------
        Optional[ValidateKeyResult]
            User info for the key, None when the key was unset.

        Raises
        ------
        NexusError
            Validation failed; the validation result is cleared.
        """
        with self._key_lock:
            self._api_key = api_key

        if api_key is None:
            self.quota.set_max(self.quota_max)
            self._validation_result = None
            return None

        try:
            result = self.validate_key(api_key)
        except NexusError:
            self.quota.set_max(self.quota_max)
            self._validation_result = None
            raise

        self._validation_result = result
        with self._key_lock:
            still_current = self._api_key == api_key
        if still_current:
            self.quota.set_max(self.quota_max_premium if result.is_premium else self.quota_max)
            logger.debug("API key validated for %s (premium=%s)", result.name, result.is_premium)
        return result

    def validate_key(self, key: Optional[str] = None) -> ValidateKeyResult:
        """
        Validate an API key; the current one when `key` is None.

        Leaves the quota and the cached validation result untouched.
        """
        payload = self.request(NEXUSAPIURLS.VALIDATE_KEY, headers={"APIKEY": key})
        return ValidateKeyResult.from_dict(payload)

    # Request plumbing
    def _base_headers(self) -> Dict[str, Optional[str]]:
        return {
            "Content-Type": "application/json",
            "APIKEY": self._api_key,
            "Protocol-Version": self.protocol_version,
            "Application-Version": self.app_version,
        }

    def build_context(
        self,
        path_template: str,
        *,
        path: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
        body: Optional[Any] = None,
        headers: Optional[Mapping[str, Optional[str]]] = None,
        files: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
        replace_headers: bool = False,
    ) -> RequestContext:
        """
        Build the RequestContext for an endpoint path.

        `gameId` defaults to the client's default game. None values in `path`,
        `query` and `headers` mean "not given": path/query entries are omitted,
        header entries fall back to the client's defaults. With
        `replace_headers`, `headers` is used as is instead of being merged.
        """
        path_params: Dict[str, Any] = {"gameId": self._game_id}
        path_params.update(filter_none(path))
        if replace_headers:
            merged_headers = dict(headers or {})
        else:
            merged_headers = self._base_headers()
            merged_headers.update(filter_none(headers))
        return RequestContext(
            url_template=self.base_url + path_template,
            path_params=path_params,
            query_params=query or {},
            headers=merged_headers,
            body=body,
            files=files,
            timeout=self.timeout if timeout is None else float(timeout),
        )

    def request(self, path_template: str, *, cancel: Optional[threading.Event] = None, **kwargs) -> Any:
        """
        Run a request through the quota and return the parsed JSON.

        Keyword arguments are those of `build_context`. `cancel` abandons the
        call while it is queued for a quota token or cooling down after a 429.

        Raises
        ------
        NexusError subclass : classified failure, NetworkError or RequestCancelled.
        """
        context = self.build_context(path_template, **kwargs)
        return self._coordinator.execute(context, cancel=cancel).unwrap()

    # Games
    def get_games(self) -> List[Game]:
        """Retrieve the list of all games currently supported."""
        payload = self.request(NEXUSAPIURLS.GAMES)
        return [Game.from_dict(item) for item in payload or []]

    def get_game_info(self, game_id: Optional[str] = None) -> Game:
        """Retrieve details (including categories) about a game."""
        return Game.from_dict(self.request(NEXUSAPIURLS.GAME_INFO, path={"gameId": game_id}))

    # Mods
    def get_mod_info(self, mod_id: int, game_id: Optional[str] = None) -> ModInfo:
        return ModInfo.from_dict(self.request(NEXUSAPIURLS.MOD_INFO, path={"gameId": game_id, "modId": mod_id}))

    def endorse_mod(self, mod_id: int, mod_version: str, endorse_status: str,
                    game_id: Optional[str] = None) -> Any:
        """
        Endorse or un-endorse ("abstain") a mod.

        Parameters
        ----------
        mod_id : int
        mod_version : str
            Version the user has installed; must exist on the site.
        endorse_status : str
            "endorse" or "abstain".
        game_id : Optional[str]

        Raises
        ------
        InvalidParameterError
            `endorse_status` is not one of the accepted values.
        """
        if endorse_status not in param.ENDORSE_STATUSES:
            raise InvalidParameterError('invalid endorse status, should be "endorse" or "abstain"')
        return self.request(
            NEXUSAPIURLS.ENDORSE_MOD,
            path={"gameId": game_id, "modId": mod_id, "endorseStatus": endorse_status},
            body=filter_none({"Version": mod_version}),
        )

    # Files
    def get_mod_files(self, mod_id: int, game_id: Optional[str] = None) -> ModFiles:
        """List all files uploaded for a mod, plus the file update chain."""
        return ModFiles.from_dict(self.request(NEXUSAPIURLS.MOD_FILES, path={"gameId": game_id, "modId": mod_id}))

    def get_file_info(self, mod_id: int, file_id: int, game_id: Optional[str] = None) -> FileInfo:
        payload = self.request(NEXUSAPIURLS.FILE_INFO, path={"gameId": game_id, "modId": mod_id, "fileId": file_id})
        return FileInfo.from_dict(payload)

    def get_download_urls(self, mod_id: int, file_id: int, key: Optional[str] = None,
                          expires: Optional[int] = None, game_id: Optional[str] = None) -> List[DownloadURL]:
        """
        Generate download links for a file.

        Non-premium accounts need the `key`/`expires` pair from an nxm:// link
        generated on the website; both are sent only when both are given.
        """
        query = {"key": key, "expires": expires} if key is not None and expires is not None else None
        payload = self.request(
            NEXUSAPIURLS.DOWNLOAD_LINK,
            path={"gameId": game_id, "modId": mod_id, "fileId": file_id},
            query=query,
        )
        return [DownloadURL.from_dict(item) for item in payload or []]

    def get_file_by_md5(self, md5_hash: str, game_id: Optional[str] = None) -> List[MD5Result]:
        """
        Find files by md5 hash.

        Several results are possible (the same file uploaded twice, or a hash
        collision); compare e.g. the size to pick the right one.

        Raises
        ------
        InvalidParameterError
            The server rejected the hash (HTTP 422).
        """
        try:
            payload = self.request(NEXUSAPIURLS.MD5_SEARCH, path={"gameId": game_id, "hash": md5_hash})
        except RemoteError as exc:
            if exc.code != 422:
                raise
            raise InvalidParameterError(exc.message, exc.code, exc.url, exc.record) from exc
        return [MD5Result.from_dict(item) for item in payload or []]

    # Feedback
    def get_own_issues(self) -> List[Issue]:
        """Issues reported by the current user."""
        payload = self.request(NEXUSAPIURLS.OWN_ISSUES)
        issues = payload.get("issues") if isinstance(payload, dict) else None
        return [Issue.from_dict(item) for item in issues or []]

    def send_feedback(self, title: str, message: str, file_bundle: Optional[str] = None,
                      anonymous: bool = False, grouping_key: Optional[str] = None,
                      reference_id: Optional[str] = None) -> FeedbackResponse:
        """
        Send a feedback report, optionally with an archive attached.

        Parameters
        ----------
        title : str
            Truncated to 255 characters.
        message : str
            Report text; must not be empty.
        file_bundle : Optional[str]
            Path of an archive to attach, at most MAX_FILE_SIZE bytes.
        anonymous : bool
            Send without the API key.
        grouping_key : Optional[str]
            Groups identical reports.
        reference_id : Optional[str]
            Reference id of the report.

        Raises
        ------
        InvalidParameterError
            Empty message or attachment too large.
        OSError
            The attachment cannot be read.
        """
        if not message:
            raise InvalidParameterError("Feedback message can't be empty")
        files = {}
        if file_bundle is not None:
            files["feedback_file"] = (os.path.basename(file_bundle), self._read_attachment(file_bundle))

        form = filter_none({
            "feedback_text": message,
            "feedback_title": title[:255],
            "grouping_key": grouping_key,
            "reference": reference_id,
        })
        headers = self._base_headers()
        if anonymous:
            del headers["APIKEY"]

        payload = self.request(
            NEXUSAPIURLS.FEEDBACK_ANONYMOUS if anonymous else NEXUSAPIURLS.FEEDBACK,
            body=form,
            files=files,
            headers=headers,
            replace_headers=True,
            timeout=param.ms_to_seconds(param.FEEDBACK_TIMEOUT_MS),
        )
        return FeedbackResponse.from_dict(payload)

    @staticmethod
    def _read_attachment(file_path: str) -> bytes:
        # read up front so a resubmission after a 429 sends the same bytes
        if os.stat(file_path).st_size > param.MAX_FILE_SIZE:
            raise InvalidParameterError("The attachment is too large")
        with open(file_path, "rb") as f:
            return f.read()

    # Lifecycle
    def close(self) -> None:
        """Cancel queued and cooling-down requests and close the HTTP session."""
        self.quota.close()
        self._coordinator.stop()
        self.session.close()

    def __enter__(self) -> "Nexus":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<Nexus game={self._game_id!r} authenticated={self._api_key is not None} quota={self.quota!r}>"


def create_client(api_key: Optional[str] = None, app_version: str = "0.1.0", **kwargs) -> Nexus:
    """
    Convenience factory: build a client and, if `api_key` is given, validate it.

    Parameters
    ----------
    api_key : Optional[str]
        API key to set and validate.
    app_version : str
        Version of the calling application.
    kwargs : forwarded to the Nexus constructor.
    """
    if api_key is None:
        return Nexus(app_version, **kwargs)
    return Nexus.create(api_key, app_version, **kwargs)
