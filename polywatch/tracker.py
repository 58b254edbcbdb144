"""
Tracker — wires the agents together around one set of caches and snapshots.

Construct once at process start and share; every piece of mutable state
(snapshots, metadata caches, portfolio cache, handle cache) lives on this
instance, so tests can build isolated trackers.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from polywatch.agents.activity_enricher import ActivityEnricher
from polywatch.agents.change_detector import SnapshotDiffEngine
from polywatch.agents.identity_resolver import IdentityResolver
from polywatch.agents.market_metadata import MarketMetadataResolver
from polywatch.agents.position_poller import PortfolioFetcher
from polywatch.agents.quote_price import QuotePriceService
from polywatch.config import TrackerSettings
from polywatch.models import ChangeEvent, Position
from polywatch.utils.logger import short_address
from polywatch.utils.pacer import Pacer

log = logging.getLogger(__name__)


class Tracker:
    def __init__(
        self,
        settings: TrackerSettings | None = None,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or TrackerSettings()
        s = self.settings

        self.identity = IdentityResolver(ttl=s.identity_ttl_seconds, clock=clock)
        self.quotes = QuotePriceService()
        self.metadata = MarketMetadataResolver(ttl=s.metadata_ttl_seconds, clock=clock)
        self.fetcher = PortfolioFetcher(
            self.metadata,
            self.quotes,
            Pacer(s.request_delay_seconds, sleep=sleep),
            dust_threshold=s.dust_threshold,
            cache_ttl=s.portfolio_ttl_seconds,
            clock=clock,
        )
        self.engine = SnapshotDiffEngine(
            self.fetcher, self.quotes, threshold=s.size_change_threshold, clock=clock
        )
        self.enricher = ActivityEnricher(self.metadata, Pacer(s.request_delay_seconds, sleep=sleep))

    async def resolve_identity(self, value: str) -> str | None:
        return await self.identity.resolve(value)

    async def display_name(self, address: str) -> str:
        """'@handle' when the profile page has one, else the short address."""
        handle = await self.identity.lookup_handle(address)
        return f"@{handle}" if handle else short_address(address)

    async def get_portfolio(self, address: str) -> list[Position]:
        return await self.fetcher.fetch_portfolio(address)

    async def detect(self, address: str) -> list[ChangeEvent]:
        return await self.engine.diff(address)

    def last_poll_failed(self, address: str) -> bool:
        return self.engine.last_fetch_failed(address)

    async def enrich(self, events: list[ChangeEvent]) -> list[ChangeEvent]:
        if not events:
            return events
        return await self.enricher.enrich(events)

    async def poll_once(self, address: str) -> list[ChangeEvent]:
        """Uncached diff followed by enrichment."""
        return await self.enrich(await self.detect(address))

    def invalidate(self, address: str) -> None:
        """Forget everything held for *address*; the next poll starts a new baseline."""
        self.engine.forget(address)
        self.fetcher.forget(address)
        self.identity.forget(address)
        log.info("[%s] Tracking state cleared", short_address(address))
