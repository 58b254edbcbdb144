"""
Tests for the Market Metadata agent.

Run with:  pytest tests/test_market_metadata.py
"""
from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from polywatch.agents.market_metadata import (
    CLOB_API_BASE,
    DATA_API_BASE,
    GAMMA_API_BASE,
    MarketMetadataResolver,
    derive_event_slug,
    parse_outcome_tokens,
)
from polywatch.models import MarketMetadata

MARKET = "0xcondition123"
PATCH_TARGET = "polywatch.agents.market_metadata.try_get_json"


def _router(routes: dict):
    """Build a fake try_get_json answering from {(url, frozenset(params)) or url: body}."""

    def fake(url, params=None, *, timeout=5.0):
        key = (url, frozenset((params or {}).items()))
        if key in routes:
            return routes[key]
        return routes.get(url)

    return fake


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

class TestDeriveEventSlug:
    def test_strips_trailing_numeric_id(self):
        assert derive_event_slug("fed-decision-in-march-281") == "fed-decision-in-march"

    def test_strips_several_numeric_groups_and_hyphens(self):
        assert derive_event_slug("nba-champion-123-4567-") == "nba-champion"

    def test_keeps_short_numbers(self):
        assert derive_event_slug("will-btc-hit-99k") == "will-btc-hit-99k"

    def test_rejects_short_result(self):
        assert derive_event_slug("us-12345") == ""

    def test_rejects_numeric_result(self):
        assert derive_event_slug("1234567-890") == ""


class TestParseOutcomeTokens:
    def test_parallel_arrays(self):
        tokens = parse_outcome_tokens({"outcomes": ["Yes", "No"], "clobTokenIds": ["1", "2"]})
        assert tokens.outcome_names == ("Yes", "No")
        assert tokens.token_ids == ("1", "2")

    def test_json_encoded_arrays(self):
        tokens = parse_outcome_tokens({"outcomes": '["Up", "Down"]', "clobTokenIds": '["11", "22"]'})
        assert tokens.outcome_names == ("Up", "Down")
        assert tokens.token_ids == ("11", "22")

    def test_tokens_list(self):
        tokens = parse_outcome_tokens(
            {"tokens": [{"outcome": "Yes", "token_id": "7"}, {"outcome": "No", "token_id": "8"}]}
        )
        assert tokens.outcome_names == ("Yes", "No")
        assert tokens.token_ids == ("7", "8")


# ---------------------------------------------------------------------------
# resolve() with mocked HTTP
# ---------------------------------------------------------------------------

class TestResolve:
    @pytest.mark.asyncio
    async def test_first_source_complete_stops_chain(self):
        routes = {
            f"{DATA_API_BASE}/markets/{MARKET}": {
                "question": "Will it rain?",
                "slug": "will-it-rain",
                "eventSlug": "weather",
            },
        }
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(side_effect=_router(routes))) as mock_get:
            meta = await resolver.resolve(MARKET)
        assert meta == MarketMetadata("Will it rain?", "weather", "will-it-rain")
        assert mock_get.call_count == 1

    @pytest.mark.asyncio
    async def test_secondary_source_with_derived_event_slug(self):
        routes = {
            f"{DATA_API_BASE}/markets/{MARKET}": None,  # 404
            f"{CLOB_API_BASE}/markets/{MARKET}": {
                "question": "Fed decision in March?",
                "market_slug": "fed-decision-in-march-281",
            },
        }
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(side_effect=_router(routes))) as mock_get:
            meta = await resolver.resolve(MARKET)
        assert meta.title == "Fed decision in March?"
        assert meta.market_slug == "fed-decision-in-march-281"
        assert meta.event_slug == "fed-decision-in-march"
        assert mock_get.call_count == 2

    @pytest.mark.asyncio
    async def test_secondary_source_with_unusable_slug_leaves_event_slug_empty(self):
        routes = {
            f"{CLOB_API_BASE}/markets/{MARKET}": {"question": "Q?", "market_slug": "us-12345"},
        }
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(side_effect=_router(routes))):
            meta = await resolver.resolve(MARKET)
        assert meta.event_slug == ""
        assert meta.market_slug == "us-12345"

    @pytest.mark.asyncio
    async def test_gamma_event_lookup_by_event_id(self):
        routes = {
            (f"{GAMMA_API_BASE}/markets", frozenset({"condition_id": MARKET}.items())): [
                {"question": "Who wins?", "slug": "who-wins-team-a", "eventId": 42}
            ],
            f"{GAMMA_API_BASE}/events/42": {"slug": "who-wins"},
        }
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(side_effect=_router(routes))):
            meta = await resolver.resolve(MARKET)
        assert meta == MarketMetadata("Who wins?", "who-wins", "who-wins-team-a")

    @pytest.mark.asyncio
    async def test_gamma_event_search_by_market_slug(self):
        routes = {
            (f"{GAMMA_API_BASE}/markets", frozenset({"condition_id": MARKET}.items())): [
                {"question": "Who wins?", "slug": "who-wins-team-a"}
            ],
            (f"{GAMMA_API_BASE}/events", frozenset({"slug": "who-wins-team-a", "limit": 1}.items())): [
                {"slug": "who-wins"}
            ],
        }
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(side_effect=_router(routes))):
            meta = await resolver.resolve(MARKET)
        assert meta.event_slug == "who-wins"

    @pytest.mark.asyncio
    async def test_nested_event_slug_fields(self):
        routes = {
            f"{DATA_API_BASE}/markets/{MARKET}": {
                "title": "Nested?",
                "slug": "nested",
                "events": [{"slug": "parent-event"}],
            },
        }
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(side_effect=_router(routes))):
            meta = await resolver.resolve(MARKET)
        assert meta.event_slug == "parent-event"

    @pytest.mark.asyncio
    async def test_token_lookup_when_market_id_path_fails(self):
        routes = {
            (f"{GAMMA_API_BASE}/markets", frozenset({"condition_id": MARKET}.items())): [],
            (f"{GAMMA_API_BASE}/markets", frozenset({"clob_token_ids": "tok-1"}.items())): [
                {"question": "Found by token", "slug": "found-by-token", "eventSlug": "found"}
            ],
        }
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(side_effect=_router(routes))):
            meta = await resolver.resolve(MARKET, "tok-1")
        assert meta == MarketMetadata("Found by token", "found", "found-by-token")

    @pytest.mark.asyncio
    async def test_fields_from_earlier_sources_win(self):
        routes = {
            f"{DATA_API_BASE}/markets/{MARKET}": {"question": "First title"},
            f"{CLOB_API_BASE}/markets/{MARKET}": {"question": "Second title", "market_slug": "second-slug"},
        }
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(side_effect=_router(routes))):
            meta = await resolver.resolve(MARKET)
        assert meta.title == "First title"
        assert meta.market_slug == "second-slug"

    @pytest.mark.asyncio
    async def test_no_title_returns_none_and_is_not_cached(self):
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(return_value=None)) as mock_get:
            assert await resolver.resolve(MARKET) is None
            first_calls = mock_get.call_count
            assert await resolver.resolve(MARKET) is None
        assert mock_get.call_count == 2 * first_calls

    @pytest.mark.asyncio
    async def test_partial_result_is_cached(self):
        routes = {f"{DATA_API_BASE}/markets/{MARKET}": {"question": "Title only"}}
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(side_effect=_router(routes))) as mock_get:
            first = await resolver.resolve(MARKET)
            calls = mock_get.call_count
            second = await resolver.resolve(MARKET)
        assert first == second == MarketMetadata(title="Title only")
        assert mock_get.call_count == calls

    @pytest.mark.asyncio
    async def test_cache_expires_after_ttl(self):
        clock = FakeClock()
        routes = {
            f"{DATA_API_BASE}/markets/{MARKET}": {"question": "Q", "slug": "q-market", "eventSlug": "q"},
        }
        resolver = MarketMetadataResolver(ttl=24 * 3600, clock=clock)
        with patch(PATCH_TARGET, new=AsyncMock(side_effect=_router(routes))) as mock_get:
            await resolver.resolve(MARKET)
            clock.now = 24 * 3600 - 1
            await resolver.resolve(MARKET)
            assert mock_get.call_count == 1
            clock.now = 24 * 3600 + 1
            await resolver.resolve(MARKET)
        assert mock_get.call_count == 2

    @pytest.mark.asyncio
    async def test_failing_source_does_not_abort_chain(self):
        resolver = MarketMetadataResolver()

        async def broken(market_id, asset_id):
            raise KeyError("unexpected shape")

        async def working(market_id, asset_id):
            return MarketMetadata("Recovered", "", "recovered-market")

        resolver.sources = [broken, working]
        meta = await resolver.resolve(MARKET)
        assert meta.title == "Recovered"


class TestResolveOutcomeTokens:
    @pytest.mark.asyncio
    async def test_resolves_and_caches(self):
        body = {"outcomes": ["Yes", "No"], "clobTokenIds": ["111", "222"]}
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(return_value=body)) as mock_get:
            tokens = await resolver.resolve_outcome_tokens(MARKET)
            again = await resolver.resolve_outcome_tokens(MARKET)
        assert tokens.token_ids == ("111", "222")
        assert again == tokens
        assert mock_get.call_count == 1
        assert mock_get.call_args.args[0] == f"{CLOB_API_BASE}/markets/{MARKET}"

    @pytest.mark.asyncio
    async def test_empty_arrays_are_not_found(self):
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(return_value={"outcomes": [], "clobTokenIds": []})):
            assert await resolver.resolve_outcome_tokens(MARKET) is None

    @pytest.mark.asyncio
    async def test_upstream_failure_is_not_found(self):
        resolver = MarketMetadataResolver()
        with patch(PATCH_TARGET, new=AsyncMock(return_value=None)):
            assert await resolver.resolve_outcome_tokens(MARKET) is None
