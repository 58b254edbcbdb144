"""
Telegram Notifier Agent — sends formatted Telegram messages for each ChangeEvent.
"""
from __future__ import annotations

import logging
import re

from polywatch.models import ChangeEvent
from polywatch.utils.http_client import post_json

log = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"

_MARKDOWN_SPECIAL = re.compile(r"([_*`\[])")

_HEADLINES = {
    "opened": "🟢 *New Position*",
    "increased": "📈 *Position Increased*",
    "decreased": "📉 *Position Reduced*",
    "closed": "🔴 *Position Closed*",
}


def escape_markdown(text: str) -> str:
    """Escape the characters Telegram's legacy Markdown treats as markup."""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", text)


def _format_price(price: float) -> str:
    """Format a 0–1 price as a cent string, e.g. 0.07 → '7¢'."""
    cents = round(price * 100, 1)
    return f"{cents:g}¢"


def _format_shares(size: float) -> str:
    return f"{size:,.1f}"


def market_url(event: ChangeEvent) -> str:
    if event.event_slug and event.market_slug and event.event_slug != event.market_slug:
        url = f"https://polymarket.com/event/{event.event_slug}/{event.market_slug}"
    elif event.event_slug or event.market_slug:
        url = f"https://polymarket.com/event/{event.event_slug or event.market_slug}"
    else:
        return "https://polymarket.com"
    if event.outcome_token_id:
        url += f"?tid={event.outcome_token_id}"
    return url


def profile_url(address: str) -> str:
    return f"https://polymarket.com/profile/{address}"


def format_event(event: ChangeEvent, address: str, wallet_label: str = "") -> str:
    label = escape_markdown(wallet_label or f"{address[:6]}...{address[-4:]}")
    side = "BUY" if event.direction == "BUY" else "SELL"
    return (
        f"{_HEADLINES.get(event.kind, '📊 *Trade*')}\n\n"
        f"👤 [{label}]({profile_url(address)})\n"
        f"📊 {escape_markdown(event.market_title or 'Unknown market')}\n\n"
        f"{side} {escape_markdown(event.outcome)} @ {_format_price(event.price)}\n"
        f"Shares: {_format_shares(event.quantity)}\n"
        f"Value: ${event.value:,.2f}\n\n"
        f"🔗 {market_url(event)}"
    )


async def _send_message(bot_token: str, chat_id: str, text: str) -> bool:
    url = f"{TELEGRAM_API_BASE}/bot{bot_token}/sendMessage"
    try:
        result = await post_json(url, {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        })
    except Exception as exc:
        log.error("Failed to send Telegram message to %s: %s", chat_id, exc)
        return False
    if not result.get("ok", False):
        log.error("Telegram rejected message for %s: %s", chat_id, result)
        return False
    return True


async def send_event(
    event: ChangeEvent,
    address: str,
    chat_ids: list[str],
    bot_token: str,
    wallet_label: str = "",
) -> int:
    """
    Send a Telegram message for *event* to every chat in *chat_ids*.

    Returns how many chats accepted the message. Failures are logged but not
    raised so that other notifications are not blocked.
    """
    text = format_event(event, address, wallet_label)
    sent = 0
    for chat_id in chat_ids:
        if await _send_message(bot_token, chat_id, text):
            sent += 1
    log.info("Sent '%s' event for %s to %d/%d chat(s)", event.kind, address[:8], sent, len(chat_ids))
    return sent


async def send_startup_message(
    bot_token: str,
    chat_id: str,
    wallet_labels: list[str],
    polling_interval: int,
) -> None:
    """Send a startup notification listing all tracked wallets."""
    lines = ["\U0001f7e2 *Polymarket Wallet Tracker is online*\n"]
    lines.append(f"Polling every *{polling_interval}s* for {len(wallet_labels)} wallet(s):\n")
    for label in wallet_labels:
        lines.append(f"\U0001f464 {escape_markdown(label)}")
    if await _send_message(bot_token, chat_id, "\n".join(lines)):
        log.info("Startup message sent to Telegram.")


async def send_shutdown_message(bot_token: str, chat_id: str) -> None:
    """Send an offline notification when the tracker is shutting down."""
    if await _send_message(bot_token, chat_id, "\U0001f534 *Polymarket Wallet Tracker is offline*"):
        log.info("Shutdown message sent to Telegram.")
