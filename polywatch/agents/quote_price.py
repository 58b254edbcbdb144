"""
Quote Price Agent — best-effort current price for an outcome token from the CLOB.

Quotes are proxies for an execution price, never exact: a SELL is priced at the
bid, a BUY at the ask, with a single fallback to the mid. 0.0 means "no better
estimate available", not a real price.
"""
from __future__ import annotations

import logging

from polywatch.models import Direction
from polywatch.utils.http_client import try_get_json

log = logging.getLogger(__name__)

CLOB_API_BASE = "https://clob.polymarket.com"

_SIDE_FOR_INTENT = {"SELL": "bid", "BUY": "ask"}


class QuotePriceService:
    def __init__(self, base_url: str = CLOB_API_BASE, timeout: float = 2.0) -> None:
        self.base_url = base_url
        self.timeout = timeout

    async def _quote(self, asset_id: str, side: str) -> float:
        data = await try_get_json(
            f"{self.base_url}/price",
            params={"token_id": asset_id, "side": side},
            timeout=self.timeout,
        )
        if not isinstance(data, dict):
            return 0.0
        try:
            price = float(data.get("price") or 0)
        except (TypeError, ValueError):
            return 0.0
        return price if price > 0 else 0.0

    async def get_price(self, asset_id: str, intent: Direction) -> float:
        if not asset_id:
            return 0.0
        price = await self._quote(asset_id, _SIDE_FOR_INTENT[intent])
        if price > 0:
            return price
        price = await self._quote(asset_id, "mid")
        if price <= 0:
            log.debug("No %s quote for %s", intent, asset_id[:10])
        return price

    async def get_mid(self, asset_id: str) -> float:
        if not asset_id:
            return 0.0
        return await self._quote(asset_id, "mid")
