"""Shared fixtures: a scripted stand-in for requests.Session."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import pytest
import requests

from nexuspy import Nexus


def make_response(status: int = 200, body: Union[str, bytes] = "{}", reason: str = "OK",
                  url: str = "https://api.example.test/") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.reason = reason
    resp._content = body.encode("utf-8") if isinstance(body, str) else body
    resp.encoding = "utf-8"
    resp.url = url
    return resp


class FakeSession:
    """
    Replays queued responses (or raises queued exceptions) in order and
    records every call made through `request()`.
    """

    def __init__(self, *replies: Union[requests.Response, BaseException]):
        self.replies: List[Union[requests.Response, BaseException]] = list(replies)
        self.calls: List[Dict[str, Any]] = []
        self.headers: Dict[str, str] = {}
        self.closed = False

    def queue(self, *replies: Union[requests.Response, BaseException]) -> None:
        self.replies.extend(replies)

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.replies:
            raise AssertionError(f"unexpected request {method} {url}")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    def close(self) -> None:
        self.closed = True

    @property
    def last(self) -> Optional[Dict[str, Any]]:
        return self.calls[-1] if self.calls else None


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def nexus(session):
    client = Nexus(
        "1.2.0",
        default_game="skyrim",
        timeout=2.0,
        base_url="https://api.example.test/v1",
        session=session,
        quota_rate=0.01,
        cooldown=0.01,
    )
    yield client
    client.close()
