"""
Position Poller Agent — fetches the current open positions for a wallet and
enriches each with display metadata and a current price.
"""
from __future__ import annotations

import logging
import time
from typing import Callable

from polywatch.agents.market_metadata import MarketMetadataResolver
from polywatch.agents.quote_price import QuotePriceService
from polywatch.errors import UpstreamUnavailable
from polywatch.models import MarketMetadata, Position, placeholder_title
from polywatch.utils.http_client import get_json
from polywatch.utils.logger import short_address
from polywatch.utils.pacer import Pacer
from polywatch.utils.ttl_cache import TTLCache

log = logging.getLogger(__name__)

DATA_API_BASE = "https://data-api.polymarket.com"


def _slug_to_title(slug: str) -> str:
    """'will-btc-hit-100k' → 'Will Btc Hit 100k'."""
    return " ".join(word[:1].upper() + word[1:] for word in slug.split("-"))


def _embedded_metadata(market: dict, market_id: str) -> MarketMetadata:
    """Title fallback chain from the market object embedded in a position record."""
    slug = str(market.get("slug") or "")
    if market.get("question"):
        return MarketMetadata(title=str(market["question"]), market_slug=slug)
    if market.get("title"):
        return MarketMetadata(title=str(market["title"]), market_slug=slug)
    if slug:
        return MarketMetadata(title=_slug_to_title(slug), market_slug=slug)
    log.warning("No metadata at all for market %s", market_id[:8])
    return MarketMetadata(title=placeholder_title(market_id))


def _embedded_price(market: dict, outcome: str) -> float:
    """Outcome price from the embedded [yes, no] pair, 0.0 if unusable."""
    prices = market.get("outcomePrices")
    if not isinstance(prices, list):
        return 0.0
    index = {"yes": 0, "no": 1}.get(outcome.lower())
    if index is None or index >= len(prices):
        return 0.0
    try:
        return float(prices[index] or 0)
    except (TypeError, ValueError):
        return 0.0


def _float(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


class PortfolioFetcher:
    def __init__(
        self,
        metadata: MarketMetadataResolver,
        quotes: QuotePriceService,
        pacer: Pacer,
        *,
        dust_threshold: float = 0.01,
        cache_ttl: float = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.metadata = metadata
        self.quotes = quotes
        self.pacer = pacer
        self.dust_threshold = dust_threshold
        self._portfolios: TTLCache[str, list[Position]] = TTLCache(cache_ttl, clock)

    async def fetch_open_positions(self, address: str) -> list[Position]:
        """
        Fetch all open positions for *address* from the Data API.

        Raises
        ------
        UpstreamUnavailable
            If the positions endpoint fails or returns something other than a list.
            An empty list is a real answer: the wallet holds nothing.
        """
        log.debug("[%s] Fetching positions …", short_address(address))

        raw = await get_json(
            f"{DATA_API_BASE}/positions",
            params={"user": address, "size_gt": self.dust_threshold},
        )
        if not isinstance(raw, list):
            raise UpstreamUnavailable(f"Unexpected positions payload for {address}: {type(raw).__name__}")

        self.pacer.reset()
        positions: list[Position] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            position = await self._build_position(item)
            if position is not None:
                positions.append(position)

        markets = len({p.market_id for p in positions})
        log.info("[%s] %d position(s) across %d market(s)", short_address(address), len(positions), markets)
        return positions

    async def _build_position(self, item: dict) -> Position | None:
        size = _float(item.get("size"))
        if size < self.dust_threshold:
            return None

        market_id = str(item.get("conditionId") or item.get("condition_id") or "")
        if not market_id:
            log.warning("Dropping position without a market id: asset=%s", item.get("asset"))
            return None

        await self.pacer.wait()

        outcome = str(item.get("outcome") or "Unknown")
        asset_id = str(item.get("asset") or item.get("assetId") or "")
        market = item.get("market") if isinstance(item.get("market"), dict) else {}

        meta = await self.metadata.resolve(market_id, asset_id)
        if meta is None:
            meta = _embedded_metadata(market, market_id)

        entry_price = _float(item.get("avgPrice"))
        current_price = await self.quotes.get_mid(asset_id)
        if current_price <= 0:
            current_price = _embedded_price(market, outcome) or entry_price

        return Position(
            market_id=market_id,
            outcome=outcome,
            asset_id=asset_id,
            title=meta.title,
            size=size,
            entry_price=entry_price,
            current_price=current_price,
            event_slug=meta.event_slug,
            market_slug=meta.market_slug,
        )

    async def fetch_portfolio(self, address: str) -> list[Position]:
        """Cached view for display, largest current value first. Never raises."""
        cached = self._portfolios.get(address)
        if cached is not None:
            log.debug("[%s] Portfolio served from cache", short_address(address))
            return cached

        try:
            positions = await self.fetch_open_positions(address)
        except UpstreamUnavailable as exc:
            log.warning("[%s] Portfolio unavailable: %s", short_address(address), exc)
            return []

        positions.sort(key=lambda p: p.current_value, reverse=True)
        if positions:
            self._portfolios.set(address, positions)
        return positions

    def forget(self, address: str) -> None:
        self._portfolios.delete(address)
