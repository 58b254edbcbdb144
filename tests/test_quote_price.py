"""
Tests for the Quote Price agent.

Run with:  pytest tests/test_quote_price.py
"""
from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from polywatch.agents.quote_price import QuotePriceService

PATCH_TARGET = "polywatch.agents.quote_price.try_get_json"


def _sides(mock) -> list[str]:
    return [c.kwargs["params"]["side"] for c in mock.await_args_list]


class TestGetPrice:
    @pytest.mark.asyncio
    async def test_sell_uses_bid(self):
        with patch(PATCH_TARGET, new=AsyncMock(return_value={"price": "0.55"})) as mock_get:
            price = await QuotePriceService().get_price("tok", "SELL")
        assert price == 0.55
        assert _sides(mock_get) == ["bid"]

    @pytest.mark.asyncio
    async def test_buy_uses_ask(self):
        with patch(PATCH_TARGET, new=AsyncMock(return_value={"price": 0.6})) as mock_get:
            price = await QuotePriceService().get_price("tok", "BUY")
        assert price == 0.6
        assert _sides(mock_get) == ["ask"]

    @pytest.mark.asyncio
    async def test_falls_back_to_mid_once(self):
        with patch(PATCH_TARGET, new=AsyncMock(side_effect=[{"price": "0"}, {"price": "0.5"}])) as mock_get:
            price = await QuotePriceService().get_price("tok", "SELL")
        assert price == 0.5
        assert _sides(mock_get) == ["bid", "mid"]

    @pytest.mark.asyncio
    async def test_zero_when_nothing_available(self):
        with patch(PATCH_TARGET, new=AsyncMock(return_value=None)) as mock_get:
            price = await QuotePriceService().get_price("tok", "SELL")
        assert price == 0.0
        assert mock_get.await_count == 2

    @pytest.mark.asyncio
    async def test_malformed_price_is_zero(self):
        with patch(PATCH_TARGET, new=AsyncMock(return_value={"price": "n/a"})):
            assert await QuotePriceService().get_price("tok", "BUY") == 0.0

    @pytest.mark.asyncio
    async def test_empty_asset_makes_no_request(self):
        with patch(PATCH_TARGET, new=AsyncMock()) as mock_get:
            assert await QuotePriceService().get_price("", "SELL") == 0.0
        mock_get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_short_timeout(self):
        with patch(PATCH_TARGET, new=AsyncMock(return_value={"price": "0.5"})) as mock_get:
            await QuotePriceService().get_mid("tok")
        assert mock_get.await_args.kwargs["timeout"] == 2.0
        assert mock_get.await_args.kwargs["params"] == {"token_id": "tok", "side": "mid"}
