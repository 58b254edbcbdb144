"""
Tests for the Telegram Notifier agent.

Run with:  pytest tests/test_telegram_notifier.py
"""
from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from polywatch.agents.telegram_notifier import escape_markdown, format_event, market_url, send_event
from polywatch.models import ChangeEvent

ADDRESS = "0x56687bf447db6ffa42ffe2204a05edaa20f55839"
PATCH_TARGET = "polywatch.agents.telegram_notifier.post_json"


def _make_event(kind: str = "opened", direction: str = "BUY", **overrides) -> ChangeEvent:
    fields = dict(
        id="evt-1",
        kind=kind,
        direction=direction,
        market_title="Will Oscar Piastri be the 2026 F1 Drivers' Champion?",
        outcome="Yes",
        price=0.07,
        quantity=8583.2,
        market_id="0xm1",
        asset_id="999",
        event_slug="2026-f1-drivers-champion",
        market_slug="will-oscar-piastri-be-the-2026-f1-drivers-champion",
    )
    fields.update(overrides)
    return ChangeEvent(**fields)


class TestFormatters:
    def test_format_opened(self):
        msg = format_event(_make_event(), ADDRESS, "@Pedro-Messi")
        assert "New Position" in msg
        assert "@Pedro-Messi" in msg
        assert "BUY Yes @ 7¢" in msg
        assert "8,583.2" in msg
        assert "$600.82" in msg
        assert "polymarket.com/event/2026-f1-drivers-champion/will-oscar-piastri" in msg

    def test_format_closed(self):
        msg = format_event(_make_event("closed", "SELL", price=0.405), ADDRESS)
        assert "🔴" in msg
        assert "SELL Yes @ 40.5¢" in msg
        assert "0x5668...5839" in msg

    def test_markup_in_label_and_title_is_escaped(self):
        event = _make_event(market_title="Will *BTC* hit 100k_usd [EOY]?")
        msg = format_event(event, ADDRESS, "@Rain_Maker")
        assert "[@Rain\\_Maker](https://polymarket.com/profile/" in msg
        assert "Will \\*BTC\\* hit 100k\\_usd \\[EOY]?" in msg

    def test_escape_markdown(self):
        assert escape_markdown("a_b*c`d[e]") == "a\\_b\\*c\\`d\\[e]"
        assert escape_markdown("plain") == "plain"

    def test_market_url_with_token(self):
        url = market_url(_make_event(outcome_token_id="123"))
        assert url.endswith("?tid=123")

    def test_market_url_single_slug(self):
        url = market_url(_make_event(event_slug="", market_slug="simple-market"))
        assert url == "https://polymarket.com/event/simple-market"

    def test_market_url_without_slugs(self):
        assert market_url(_make_event(event_slug="", market_slug="")) == "https://polymarket.com"


class TestSendEvent:
    @pytest.mark.asyncio
    async def test_sends_to_every_chat(self):
        with patch(PATCH_TARGET, new=AsyncMock(return_value={"ok": True})) as mock_post:
            sent = await send_event(_make_event(), ADDRESS, ["c1", "c2"], "TOKEN")
        assert sent == 2
        assert [c.args[1]["chat_id"] for c in mock_post.await_args_list] == ["c1", "c2"]
        assert mock_post.await_args.args[0] == "https://api.telegram.org/botTOKEN/sendMessage"

    @pytest.mark.asyncio
    async def test_rejected_message_not_counted(self):
        with patch(PATCH_TARGET, new=AsyncMock(return_value={"ok": False})):
            assert await send_event(_make_event(), ADDRESS, ["c1"], "TOKEN") == 0

    @pytest.mark.asyncio
    async def test_returns_zero_on_telegram_failure(self):
        with patch(PATCH_TARGET, new=AsyncMock(side_effect=Exception("Network error"))):
            assert await send_event(_make_event(), ADDRESS, ["c1"], "TOKEN") == 0
