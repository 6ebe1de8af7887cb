"""Thin urllib helpers shared by the source adapters."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from trendscout.config import USER_AGENT
from trendscout.errors import SourceFetchError

logger = logging.getLogger(__name__)


def build_url(url: str, params: dict[str, object] | None = None) -> str:
    if not params:
        return url
    return f"{url}?{urllib.parse.urlencode(params)}"


def fetch_bytes(
    url: str,
    *,
    source: str,
    timeout: float,
    params: dict[str, object] | None = None,
    headers: dict[str, str] | None = None,
) -> bytes:
    """GET *url* and return the response body.

    Raises:
        SourceFetchError: On HTTP errors, timeouts and connection failures.
    """
    full_url = build_url(url, params)
    request_headers = {"User-Agent": USER_AGENT}
    request_headers.update(headers or {})
    req = urllib.request.Request(full_url, headers=request_headers)  # noqa: S310

    logger.debug("GET %s", full_url)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:  # noqa: S310
            return resp.read()
    except urllib.error.HTTPError as exc:
        raise SourceFetchError(
            source, f"HTTP {exc.code} from {full_url}", status=exc.code
        ) from exc
    except (urllib.error.URLError, TimeoutError, OSError) as exc:
        raise SourceFetchError(source, f"Request to {full_url} failed: {exc}") from exc


def fetch_json(
    url: str,
    *,
    source: str,
    timeout: float,
    params: dict[str, object] | None = None,
    headers: dict[str, str] | None = None,
) -> Any:
    """GET *url* and decode the JSON body."""
    body = fetch_bytes(url, source=source, timeout=timeout, params=params, headers=headers)
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SourceFetchError(source, f"Invalid JSON from {url}: {exc}") from exc
