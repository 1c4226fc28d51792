from __future__ import annotations

import logging
from typing import *

import requests
from packaging import version
from requests.adapters import HTTPAdapter

from .exceptions import InvalidParameterError
from .parameters import DEFAULT_USER_AGENT

__all__ = [
    "logger_setup",
    "session_factory",
    "filter_none",
    "parse_app_version",
]


def logger_setup(name: str = "nexuspy",
                 level: int = logging.INFO,
                 *,
                 log_to_file: Optional[str] = None,
                 file_level: Optional[int] = None,
                 fmt: str = "%(asctime)s %(name)s %(levelname)s: %(message)s",
                 datefmt: str = "%Y-%m-%d %H:%M:%S") -> logging.Logger:
    """
    Create and return a configured logger for the library.

    Behavior:
        - Adds a console (StreamHandler) with the given `level`.
        - If `log_to_file` is provided, also adds a FileHandler; its level
          defaults to `level` unless `file_level` is set.
        - Multiple calls with the same `name` do not duplicate handlers.

    The library itself never calls this; every module logs through
    `logging.getLogger(__name__)` and stays silent until the application
    configures logging, with this helper or otherwise.

    Parameters
    ----------
    name : str
        Logger name, usually the package name.
    level : int
        Logging level for console output.
    log_to_file : Optional[str]
        Path of a file to log to (created if missing).
    file_level : Optional[int]
        Logging level for the file handler.
    fmt : str
        Log message format string.
    datefmt : str
        Date format used by the formatter.

    Returns
    -------
    logging.Logger

    Example
    -------
    >>> logger = logger_setup("nexuspy", level=logging.DEBUG, log_to_file="nexus.log")
    """
    logger = logging.getLogger(name)
    logger.setLevel(min(level, file_level if file_level is not None else level))

    if not getattr(logger, "_nexuspy_setup_done", False):
        formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

        ch = logging.StreamHandler()
        ch.setLevel(level)
        ch.setFormatter(formatter)
        logger.addHandler(ch)

        if log_to_file:
            fh = logging.FileHandler(log_to_file, encoding="utf-8")
            fh.setLevel(file_level if file_level is not None else level)
            fh.setFormatter(formatter)
            logger.addHandler(fh)

        logger._nexuspy_setup_done = True

    return logger


def session_factory(user_agent: Optional[str] = None,
                    *,
                    pool_maxsize: int = 10,
                    pool_connections: int = 10,
                    default_headers: Optional[Dict[str, str]] = None) -> requests.Session:
    """
    Create a configured requests.Session for the client.

    The adapter is mounted without transport-level retries: a request is sent
    exactly once per dispatch and the only automatic resend is the rate-limit
    path of the retry coordinator.

    Parameters
    ----------
    user_agent : Optional[str]
        User-Agent string. If None, DEFAULT_USER_AGENT is used.
    pool_maxsize : int
        Max connection pool size for the adapter.
    pool_connections : int
        Pool connections count for the adapter.
    default_headers : Optional[Dict[str,str]]
        Additional headers merged into session.headers.

    Returns
    -------
    requests.Session
    """
    session = requests.Session()
    headers = {
        "Accept": "application/json",
        "User-Agent": user_agent or DEFAULT_USER_AGENT,
    }
    if default_headers:
        headers.update(default_headers)
    session.headers.update(headers)

    adapter = HTTPAdapter(pool_connections=pool_connections, pool_maxsize=pool_maxsize, max_retries=0)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def filter_none(mapping: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return a copy of `mapping` without the entries whose value is None."""
    if not mapping:
        return {}
    return {k: v for k, v in mapping.items() if v is not None}


def parse_app_version(ver_str: str) -> version.Version:
    """
    Validate the client application version sent with every request.

    Parameters
    ----------
    ver_str : str
        Version string, e.g. '1.4.2'.

    Returns
    -------
    packaging.version.Version

    Raises
    ------
    InvalidParameterError
        If the string is not a valid version.
    """
    try:
        return version.Version(str(ver_str))
    except version.InvalidVersion as exc:
        raise InvalidParameterError(f"application version must be a semantic version, got {ver_str!r}") from exc
