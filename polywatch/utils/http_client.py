"""
Shared async HTTP client with retry and timeout logic.

Two flavours of GET are provided:
  - get_json:     retried on transient errors, raises UpstreamUnavailable when exhausted.
  - try_get_json: single shot with a short timeout, never raises. Used by the
                  lookup chains where one failing source must not abort the rest.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from polywatch.errors import UpstreamUnavailable

log = logging.getLogger(__name__)

# Default timeouts (seconds)
_CONNECT_TIMEOUT = 5.0
_READ_TIMEOUT = 10.0

# Retry settings
_MAX_RETRIES = 3
_BACKOFF_DELAYS = [1, 2, 4]  # seconds between attempts
_MAX_RETRY_AFTER = 60  # cap on a server-requested wait

# The profile pages and some data endpoints reject non-browser clients.
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
    ),
    "Origin": "https://polymarket.com",
    "Referer": "https://polymarket.com/",
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}


def _build_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(connect=_CONNECT_TIMEOUT, read=_READ_TIMEOUT, write=10.0, pool=5.0),
        follow_redirects=True,
        headers=BROWSER_HEADERS,
    )


def _retry_after(response: httpx.Response, default: int) -> int:
    """Seconds to wait after a 429. Date-valued or garbage headers fall back to *default*."""
    try:
        seconds = int(float(response.headers.get("Retry-After", default)))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(0, min(seconds, _MAX_RETRY_AFTER))


# Module-level shared client (initialised lazily per async context)
_client: httpx.AsyncClient | None = None


async def get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        _client = _build_client()
    return _client


async def close_client() -> None:
    global _client
    if _client and not _client.is_closed:
        await _client.aclose()
        _client = None


async def get_json(url: str, params: dict | None = None, *, timeout: float = _READ_TIMEOUT) -> Any:
    """
    Perform a GET request and return the parsed JSON response.
    Retries up to _MAX_RETRIES times with backoff on transient errors and 429s.
    Raises UpstreamUnavailable for non-2xx responses, malformed bodies, or once
    all retries are exhausted.
    """
    client = await get_client()

    last_exc: Exception | None = None
    for attempt in range(_MAX_RETRIES):
        try:
            response = await client.get(url, params=params, timeout=timeout)
            response.raise_for_status()
            return response.json()
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            last_exc = exc
            delay = _BACKOFF_DELAYS[min(attempt, len(_BACKOFF_DELAYS) - 1)]
            log.warning(
                "Request to %s failed (attempt %d/%d): %s, retrying in %ds",
                url, attempt + 1, _MAX_RETRIES, exc, delay,
            )
            await asyncio.sleep(delay)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                retry_after = _retry_after(exc.response, default=5)
                log.warning("Rate-limited by %s, waiting %ds", url, retry_after)
                await asyncio.sleep(retry_after)
                last_exc = exc
            else:
                raise UpstreamUnavailable(
                    f"GET {url} returned {exc.response.status_code}"
                ) from exc
        except ValueError as exc:
            raise UpstreamUnavailable(f"GET {url} returned a malformed body") from exc

    raise UpstreamUnavailable(f"All {_MAX_RETRIES} attempts to GET {url} failed") from last_exc


async def try_get_json(url: str, params: dict | None = None, *, timeout: float = 5.0) -> Any | None:
    """
    Single-shot GET for best-effort lookups.

    Returns the parsed body on a 200 response and None otherwise. A 4xx is a
    valid negative answer and is only logged at debug level; 5xx, timeouts and
    malformed bodies are logged as warnings. Never raises.
    """
    client = await get_client()
    try:
        response = await client.get(url, params=params, timeout=timeout)
    except httpx.HTTPError as exc:
        log.warning("GET %s failed: %s", url, exc)
        return None

    if response.status_code >= 500:
        log.warning("GET %s returned %d", url, response.status_code)
        return None
    if response.status_code != 200:
        log.debug("GET %s returned %d", url, response.status_code)
        return None

    try:
        return response.json()
    except ValueError:
        log.warning("GET %s returned a malformed body", url)
        return None


async def get_text(url: str, *, timeout: float = 8.0) -> str:
    """Single-shot GET returning the response body as text. Raises UpstreamUnavailable."""
    client = await get_client()
    try:
        response = await client.get(url, timeout=timeout, headers={"Accept": "text/html"})
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise UpstreamUnavailable(f"GET {url} returned {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise UpstreamUnavailable(f"GET {url} failed: {exc}") from exc
    return response.text


async def post_json(url: str, payload: dict) -> dict:
    """POST JSON payload and return the parsed JSON response with retry logic."""
    client = await get_client()

    last_exc: Exception | None = None
    for attempt in range(_MAX_RETRIES):
        try:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            return response.json()
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            last_exc = exc
            delay = _BACKOFF_DELAYS[min(attempt, len(_BACKOFF_DELAYS) - 1)]
            log.warning(
                "POST to %s failed (attempt %d/%d): %s, retrying in %ds",
                url, attempt + 1, _MAX_RETRIES, exc, delay,
            )
            await asyncio.sleep(delay)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                retry_after = _retry_after(exc.response, default=10)
                log.warning("Rate-limited by %s, waiting %ds", url, retry_after)
                await asyncio.sleep(retry_after)
                last_exc = exc
            else:
                raise

    raise UpstreamUnavailable(f"All {_MAX_RETRIES} attempts to POST {url} failed") from last_exc
