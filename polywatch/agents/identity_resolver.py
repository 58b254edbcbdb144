"""
Identity Resolver Agent — resolves an address, @handle or profile URL to a
canonical lowercase wallet address, and an address back to a display handle.

Polymarket has no public handle → address endpoint, so handles are resolved by
scraping the profile page for the wallet embedded in its JSON payload.
"""
from __future__ import annotations

import logging
import re
import time
from typing import Callable

from polywatch.errors import UpstreamUnavailable
from polywatch.utils.http_client import get_text
from polywatch.utils.logger import short_address
from polywatch.utils.ttl_cache import TTLCache

log = logging.getLogger(__name__)

PROFILE_BASE = "https://polymarket.com"

ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$", re.IGNORECASE)

_URL_PREFIXES = (
    "https://polymarket.com/@",
    "https://polymarket.com/profile/",
)

# Ordered: first match wins.
_ADDRESS_PATTERNS = [
    re.compile(r'"proxyWallet":"(0x[a-f0-9]{40})"', re.IGNORECASE),
    re.compile(r'"address":"(0x[a-f0-9]{40})"', re.IGNORECASE),
    re.compile(r'wallet["\']:\s*["\'](0x[a-f0-9]{40})["\']', re.IGNORECASE),
]

_HANDLE_PATTERNS = [
    re.compile(r'"username":"([^"]+)"', re.IGNORECASE),
    re.compile(r'"name":"([^"]+)"', re.IGNORECASE),
    re.compile(r"<title>([^<|]+)", re.IGNORECASE),
]


def is_address(value: str) -> bool:
    return bool(ADDRESS_RE.match(value.strip()))


def extract_handle(value: str) -> str:
    """Strip profile URL prefixes, '@' and query strings: 'https://polymarket.com/@Foo?tab=x' → 'Foo'."""
    slug = value.strip()
    for prefix in _URL_PREFIXES:
        slug = slug.replace(prefix, "")
    return slug.replace("@", "").split("?")[0].strip("/")


def extract_address(html: str) -> str | None:
    for pattern in _ADDRESS_PATTERNS:
        match = pattern.search(html)
        if match:
            return match.group(1).lower()
    return None


def extract_display_handle(html: str) -> str | None:
    for pattern in _HANDLE_PATTERNS:
        match = pattern.search(html)
        if match and match.group(1) and "Polymarket" not in match.group(1):
            return match.group(1).strip()
    return None


class IdentityResolver:
    def __init__(self, *, ttl: float = 3600, clock: Callable[[], float] = time.time) -> None:
        self._addresses: TTLCache[str, str] = TTLCache(ttl, clock)   # handle (lowercase) → address
        self._handles: TTLCache[str, str] = TTLCache(ttl, clock)     # address → display handle

    async def resolve(self, value: str) -> str | None:
        """
        Resolve *value* to a lowercase 0x address.

        Returns None if the handle cannot be found or the profile page could not
        be fetched; the failure is logged, never raised.
        """
        clean = value.strip()
        if is_address(clean):
            return clean.lower()

        handle = extract_handle(clean)
        if not handle:
            log.warning("Nothing to resolve in '%s'", value)
            return None
        if is_address(handle):
            return handle.lower()

        cached = self._addresses.get(handle.lower())
        if cached:
            log.debug("Cache hit for handle '%s' → %s", handle, cached)
            return cached

        try:
            html = await get_text(f"{PROFILE_BASE}/@{handle}", timeout=8.0)
        except UpstreamUnavailable as exc:
            log.error("Error resolving @%s: %s", handle, exc)
            return None

        address = extract_address(html)
        if not address:
            log.warning("No wallet address found on the profile page of @%s", handle)
            return None

        log.info("Resolved @%s → %s", handle, address)
        self._addresses.set(handle.lower(), address)
        return address

    async def lookup_handle(self, address: str) -> str | None:
        """Best-effort reverse lookup of the display handle for *address*."""
        cached = self._handles.get(address)
        if cached:
            return cached

        try:
            html = await get_text(f"{PROFILE_BASE}/profile/{address}", timeout=5.0)
        except UpstreamUnavailable as exc:
            log.debug("[%s] Handle lookup failed: %s", short_address(address), exc)
            return None

        handle = extract_display_handle(html)
        if handle:
            self._handles.set(address, handle)
        return handle

    def forget(self, address: str) -> None:
        self._handles.delete(address)
