"""
Config loader — reads .env and config.json into typed config objects.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level above polywatch/)
_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_ROOT / ".env")

CONFIG_PATH = _ROOT / "config.json"


@dataclass
class NotificationSettings:
    on_opened: bool = True
    on_increased: bool = True
    on_decreased: bool = True
    on_closed: bool = True

    def enabled(self, kind: str) -> bool:
        return {
            "opened": self.on_opened,
            "increased": self.on_increased,
            "decreased": self.on_decreased,
            "closed": self.on_closed,
        }.get(kind, False)


@dataclass
class TrackerSettings:
    dust_threshold: float = 0.01
    size_change_threshold: float = 0.5
    request_delay_seconds: float = 0.1    # between positions / between enriched markets
    wallet_delay_seconds: float = 1.0     # between wallets in one sweep
    event_delay_seconds: float = 0.5      # between deliveries of one wallet's batch
    metadata_ttl_seconds: float = 24 * 3600
    portfolio_ttl_seconds: float = 30
    dedup_ttl_seconds: float = 120
    identity_ttl_seconds: float = 3600


@dataclass
class TrackedWalletConfig:
    wallet: str                        # 0x address, @handle or profile URL
    chat_ids: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    telegram_bot_token: str
    telegram_chat_id: str
    polling_interval_seconds: int
    tracked_wallets: list[TrackedWalletConfig]
    notifications: NotificationSettings
    tracker: TrackerSettings
    log_level: str = "INFO"


def _read_raw(path: Path) -> dict:
    if not path.exists():
        return {}
    return json.loads(path.read_text(encoding="utf-8"))


def _parse_wallets(raw: dict, default_chat_id: str) -> list[TrackedWalletConfig]:
    wallets = []
    for entry in raw.get("tracked_wallets", []):
        if isinstance(entry, str):
            entry = {"wallet": entry}
        chat_ids = [str(c) for c in entry.get("chat_ids", [])] or [default_chat_id]
        wallets.append(TrackedWalletConfig(wallet=entry["wallet"], chat_ids=chat_ids))
    return wallets


def _parse_tracker(raw: dict) -> TrackerSettings:
    known = TrackerSettings.__dataclass_fields__
    values = {k: float(v) for k, v in raw.get("tracker", {}).items() if k in known}
    return TrackerSettings(**values)


def load_config(path: Path = CONFIG_PATH) -> AppConfig:
    """Load and validate configuration from .env and config.json."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    chat_id = os.getenv("TELEGRAM_CHAT_ID", "")

    if not token:
        raise ValueError(
            "TELEGRAM_BOT_TOKEN is not set. Copy .env.example to .env and fill in your credentials."
        )
    if not chat_id:
        raise ValueError(
            "TELEGRAM_CHAT_ID is not set. Copy .env.example to .env and fill in your credentials."
        )

    raw = _read_raw(path)

    notif_raw = raw.get("notifications", {})
    notifications = NotificationSettings(
        on_opened=notif_raw.get("on_opened", True),
        on_increased=notif_raw.get("on_increased", True),
        on_decreased=notif_raw.get("on_decreased", True),
        on_closed=notif_raw.get("on_closed", True),
    )

    return AppConfig(
        telegram_bot_token=token,
        telegram_chat_id=chat_id,
        polling_interval_seconds=int(raw.get("polling_interval_seconds", 15)),
        tracked_wallets=_parse_wallets(raw, chat_id),
        notifications=notifications,
        tracker=_parse_tracker(raw),
        log_level=os.getenv("LOG_LEVEL", raw.get("log_level", "INFO")),
    )


def reload_tracked_wallets(default_chat_id: str, path: Path = CONFIG_PATH) -> list[TrackedWalletConfig]:
    """Re-read only the tracked_wallets list from config.json (hot-reload)."""
    return _parse_wallets(_read_raw(path), default_chat_id)
