"""
Market Metadata Agent — resolves a condition id into a display title plus the
event and market slugs needed to build a link, and a condition id into the
outcome → token id mapping used to deep-link the right side of a market.

No single upstream source is reliable for all markets, so resolution walks an
ordered list of sources and stops as soon as the merged result is complete:

  1. data API   GET /markets/{id}
  2. CLOB       GET /markets/{id}
  3. Gamma      GET /markets?condition_id=   (+ event lookups for the event slug)
  4. Gamma      GET /markets?clob_token_ids= (only when an asset id is known)

Results with a title are cached for 24h even when partial. A resolution that
found no title at all is not cached, so it is retried on the next poll.
"""
from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Awaitable, Callable

from polywatch.models import MarketMetadata, OutcomeTokens
from polywatch.utils.http_client import try_get_json
from polywatch.utils.ttl_cache import TTLCache

log = logging.getLogger(__name__)

DATA_API_BASE = "https://data-api.polymarket.com"
CLOB_API_BASE = "https://clob.polymarket.com"
GAMMA_API_BASE = "https://gamma-api.polymarket.com"

_NUMERIC_SUFFIX = re.compile(r"(-\d{3,})+$")

Source = Callable[[str, str], Awaitable["MarketMetadata | None"]]


def _event_slug_of(d: dict) -> str:
    """The event slug hides under a different key depending on the source."""
    for key in ("groupItemSlug", "eventSlug", "event_slug", "parentSlug", "groupSlug"):
        if d.get(key):
            return str(d[key])
    events = d.get("events")
    if isinstance(events, list) and events and isinstance(events[0], dict) and events[0].get("slug"):
        return str(events[0]["slug"])
    for key in ("event", "group"):
        nested = d.get(key)
        if isinstance(nested, dict) and nested.get("slug"):
            return str(nested["slug"])
    return ""


def _market_slug_of(d: dict) -> str:
    return str(d.get("slug") or d.get("market_slug") or "")


def _first_market(data: Any) -> dict | None:
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return data[0]
    return None


def derive_event_slug(market_slug: str) -> str:
    """
    Guess the event slug from a market slug by dropping trailing numeric ids.

    'fed-decision-in-march-281' → 'fed-decision-in-march'. Returns "" when the
    cleaned slug is too short or purely numeric to be trusted.
    """
    clean = _NUMERIC_SUFFIX.sub("", market_slug.rstrip("-")).rstrip("-")
    if len(clean) > 5 and not clean.isdigit():
        return clean
    return ""


def _as_list(value: Any) -> list:
    """Gamma sends some arrays as JSON-encoded strings."""
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value:
        try:
            parsed = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return []
        return parsed if isinstance(parsed, list) else []
    return []


def parse_outcome_tokens(data: dict) -> OutcomeTokens:
    names = [str(o) for o in _as_list(data.get("outcomes"))]
    token_ids = [str(t) for t in _as_list(data.get("clobTokenIds"))]
    if not names and not token_ids and isinstance(data.get("tokens"), list):
        tokens = [t for t in data["tokens"] if isinstance(t, dict)]
        names = [str(t.get("outcome") or "") for t in tokens]
        token_ids = [str(t.get("token_id") or "") for t in tokens]
    return OutcomeTokens(outcome_names=tuple(names), token_ids=tuple(token_ids))


class MarketMetadataResolver:
    def __init__(self, *, ttl: float = 24 * 3600, clock: Callable[[], float] = time.time) -> None:
        self._metadata: TTLCache[str, MarketMetadata] = TTLCache(ttl, clock)
        self._tokens: TTLCache[str, OutcomeTokens] = TTLCache(ttl, clock)
        self.sources: list[Source] = [
            self._from_data_api,
            self._from_clob,
            self._from_gamma_by_condition,
            self._from_gamma_by_token,
        ]

    # ------------------------------------------------------------------
    # Sources. Each returns whatever it found (possibly partial) or None.
    # ------------------------------------------------------------------

    async def _from_data_api(self, market_id: str, asset_id: str) -> MarketMetadata | None:
        d = await try_get_json(f"{DATA_API_BASE}/markets/{market_id}", timeout=5.0)
        if not isinstance(d, dict):
            return None
        found = MarketMetadata(
            title=str(d.get("question") or d.get("title") or ""),
            event_slug=_event_slug_of(d),
            market_slug=_market_slug_of(d),
        )
        if not found.event_slug:
            log.debug("Data API market %s has no event slug; fields: %s", market_id[:8], ", ".join(d))
        return found

    async def _from_clob(self, market_id: str, asset_id: str) -> MarketMetadata | None:
        d = await try_get_json(f"{CLOB_API_BASE}/markets/{market_id}", timeout=3.0)
        if not isinstance(d, dict):
            return None
        return MarketMetadata(
            title=str(d.get("question") or d.get("description") or ""),
            event_slug=_event_slug_of(d),
            market_slug=_market_slug_of(d),
        )

    async def _from_gamma_by_condition(self, market_id: str, asset_id: str) -> MarketMetadata | None:
        market = _first_market(
            await try_get_json(f"{GAMMA_API_BASE}/markets", params={"condition_id": market_id}, timeout=5.0)
        )
        if market is None:
            return None

        market_slug = _market_slug_of(market)
        event_slug = _event_slug_of(market)
        event_id = market.get("event_id") or market.get("eventId") or market.get("group_id") or ""

        if not event_slug and event_id:
            event = await try_get_json(f"{GAMMA_API_BASE}/events/{event_id}", timeout=3.0)
            if isinstance(event, dict) and event.get("slug"):
                event_slug = str(event["slug"])
                log.debug("Event slug for %s found via event id: %s", market_id[:8], event_slug)

        if not event_slug and market_slug:
            event = _first_market(
                await try_get_json(
                    f"{GAMMA_API_BASE}/events", params={"slug": market_slug, "limit": 1}, timeout=3.0
                )
            )
            if event and event.get("slug"):
                event_slug = str(event["slug"])
                log.debug("Event slug for %s found via slug search: %s", market_id[:8], event_slug)

        return MarketMetadata(
            title=str(market.get("question") or market.get("title") or ""),
            event_slug=event_slug,
            market_slug=market_slug,
        )

    async def _from_gamma_by_token(self, market_id: str, asset_id: str) -> MarketMetadata | None:
        if not asset_id:
            return None
        market = _first_market(
            await try_get_json(f"{GAMMA_API_BASE}/markets", params={"clob_token_ids": asset_id}, timeout=3.0)
        )
        if market is None:
            return None
        return MarketMetadata(
            title=str(market.get("question") or market.get("title") or ""),
            event_slug=_event_slug_of(market),
            market_slug=_market_slug_of(market),
        )

    # ------------------------------------------------------------------

    async def resolve(self, market_id: str, asset_id: str = "") -> MarketMetadata | None:
        """Return cached or freshly resolved metadata for *market_id*, or None if nothing has a title."""
        cached = self._metadata.get(market_id)
        if cached is not None:
            return cached

        found = MarketMetadata()
        for source in self.sources:
            try:
                found = found.merge(await source(market_id, asset_id))
            except Exception as exc:
                name = getattr(source, "__name__", repr(source))
                log.warning("Metadata source %s failed for %s: %s", name, market_id[:8], exc)
            if found.is_complete():
                break

        if not found.title:
            log.warning("All metadata sources failed for %s", market_id[:8])
            return None

        if not found.event_slug and found.market_slug:
            derived = derive_event_slug(found.market_slug)
            if derived:
                log.debug("Using cleaned market slug as event slug for %s: %s", market_id[:8], derived)
                found = MarketMetadata(found.title, derived, found.market_slug)
        if not found.event_slug:
            log.info("No event slug available for %s", market_id[:8])

        self._metadata.set(market_id, found)
        return found

    async def resolve_outcome_tokens(self, market_id: str) -> OutcomeTokens | None:
        cached = self._tokens.get(market_id)
        if cached is not None:
            return cached

        d = await try_get_json(f"{CLOB_API_BASE}/markets/{market_id}", timeout=4.0)
        if not isinstance(d, dict):
            return None

        tokens = parse_outcome_tokens(d)
        if not tokens.outcome_names and not tokens.token_ids:
            return None

        self._tokens.set(market_id, tokens)
        return tokens
