"""Shared fixtures for source adapter tests."""

from __future__ import annotations

import json
import urllib.error
from collections.abc import Callable, Iterator
from unittest.mock import MagicMock, patch

import pytest

from trendscout.config import TrendscoutConfig


def make_response(body: bytes | str | object) -> MagicMock:
    """Build a urlopen() context-manager response returning *body*."""
    if isinstance(body, str):
        payload = body.encode()
    elif isinstance(body, bytes):
        payload = body
    else:
        payload = json.dumps(body).encode()
    response = MagicMock()
    response.read.return_value = payload
    response.__enter__ = lambda s: s
    response.__exit__ = MagicMock(return_value=False)
    return response


class FakeUrlopen:
    """Routes requests to canned bodies by URL prefix; records every URL."""

    def __init__(self, routes: dict[str, object]) -> None:
        self.routes = routes
        self.requests: list[MagicMock] = []

    @property
    def urls(self) -> list[str]:
        return [req.full_url for req in self.requests]

    def __call__(self, req, timeout=None):
        self.requests.append(req)
        for prefix, body in self.routes.items():
            if req.full_url.startswith(prefix):
                if isinstance(body, Exception):
                    raise body
                return make_response(body)
        raise urllib.error.URLError(f"no route for {req.full_url}")


@pytest.fixture
def fake_urlopen() -> Iterator[Callable[[dict[str, object]], FakeUrlopen]]:
    """Patch ``urllib.request.urlopen`` with a router built from a dict."""
    patchers = []

    def _install(routes: dict[str, object]) -> FakeUrlopen:
        fake = FakeUrlopen(routes)
        patcher = patch("urllib.request.urlopen", side_effect=fake)
        patcher.start()
        patchers.append(patcher)
        return fake

    yield _install

    for patcher in patchers:
        patcher.stop()


@pytest.fixture
def config() -> TrendscoutConfig:
    return TrendscoutConfig()


@pytest.fixture
def http_error() -> Callable[[str, int], urllib.error.HTTPError]:
    """Factory for HTTPError instances to feed through the router."""

    def _make(url: str, code: int) -> urllib.error.HTTPError:
        return urllib.error.HTTPError(url, code, "error", hdrs=None, fp=None)  # type: ignore[arg-type]

    return _make
