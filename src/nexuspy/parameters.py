"""
parameters.py

Default configuration values and the endpoint path table.

Durations are declared in milliseconds, the unit the server documents its
limits in; the client converts them to seconds where they meet `time` and
`requests`.
"""

API_URL = "https://api.nexusmods.com/v1"
PROTOCOL_VERSION = "0.15.5"
DEFAULT_USER_AGENT = "nexuspy/0.1"

DEFAULT_TIMEOUT_MS = 5000
FEEDBACK_TIMEOUT_MS = 30000

# request quota: anonymous and premium tier capacity, one token per QUOTA_RATE_MS
QUOTA_MAX = 30
QUOTA_MAX_PREMIUM = 300
QUOTA_RATE_MS = 1000

DELAY_AFTER_429_MS = 2000

MAX_FILE_SIZE = 20 * 1024 * 1024

ENDORSE_STATUSES = ("endorse", "abstain")


def ms_to_seconds(value_ms: float) -> float:
    return float(value_ms) / 1000.0


class NEXUSAPIURLS:
    """
    Endpoint path templates, relative to API_URL.

    Placeholders use `str.format` syntax and are filled from a request's path
    parameters (see dispatcher.build_url).

    Usage:
        >>> url = API_URL + NEXUSAPIURLS.MOD_INFO
    """

    # ------------------------------------------
    # ACCOUNT
    # ------------------------------------------
    VALIDATE_KEY = "/users/validate"
    """GET → validate the API key, returns user info including `is_premium?`."""

    # ------------------------------------------
    # GAMES
    # ------------------------------------------
    GAMES = "/games"
    """GET → list of all supported games."""

    GAME_INFO = "/games/{gameId}"
    """GET → details about one game."""

    # ------------------------------------------
    # MODS & FILES
    # ------------------------------------------
    MOD_INFO = "/games/{gameId}/mods/{modId}"
    """GET → details about a mod."""

    ENDORSE_MOD = "/games/{gameId}/mods/{modId}/{endorseStatus}"
    """POST → endorse or abstain. Body: {"Version": "<installed mod version>"}."""

    MOD_FILES = "/games/{gameId}/mods/{modId}/files"
    """GET → all files uploaded for a mod."""

    FILE_INFO = "/games/{gameId}/mods/{modId}/files/{fileId}"
    """GET → details about one file."""

    DOWNLOAD_LINK = "/games/{gameId}/mods/{modId}/files/{fileId}/download_link"
    """GET → download URLs. Query Parameters: key, expires (non-premium only, both or none)."""

    MD5_SEARCH = "/games/{gameId}/mods/md5_search/{hash}"
    """GET → files matching an md5 hash. 422 when the hash is malformed."""

    # ------------------------------------------
    # FEEDBACK
    # ------------------------------------------
    OWN_ISSUES = "/feedbacks/list_user_issues/"
    """GET → issues reported by the current user."""

    FEEDBACK = "/feedbacks"
    """POST (multipart) → send a feedback report."""

    FEEDBACK_ANONYMOUS = "/feedbacks/anonymous"
    """POST (multipart) → send a feedback report without the API key."""
