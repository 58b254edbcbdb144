"""
Data models used across the Polymarket wallet tracker.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

ChangeKind = Literal["opened", "increased", "decreased", "closed"]
Direction = Literal["BUY", "SELL"]

# (market_id, outcome, asset_id)
PositionKey = tuple[str, str, str]

_PLACEHOLDER_TITLE = re.compile(r"^Market 0x[0-9a-fA-F]{1,6}$")


def placeholder_title(market_id: str) -> str:
    """Last-resort title when no source knows the market, e.g. 'Market 0x1a2b3c'."""
    return f"Market {market_id[:8]}"


def is_placeholder_title(title: str) -> bool:
    return bool(_PLACEHOLDER_TITLE.match(title))


@dataclass
class TrackedWallet:
    address: str                  # lowercase 0x address
    subscribers: list[str] = field(default_factory=list)  # chat ids listening to this wallet
    last_checked: float = 0.0     # epoch seconds, 0 = never checked


@dataclass(frozen=True)
class MarketMetadata:
    title: str = ""
    event_slug: str = ""          # e.g. "2026-nba-champion"
    market_slug: str = ""         # e.g. "will-the-toronto-raptors-win-the-2026-nba-finals"

    def is_complete(self) -> bool:
        """A title plus at least one slug is enough to render a link."""
        return bool(self.title) and bool(self.event_slug or self.market_slug)

    def merge(self, other: MarketMetadata | None) -> MarketMetadata:
        """Fill fields that are still empty from *other*; fields already set win."""
        if other is None:
            return self
        return MarketMetadata(
            title=self.title or other.title,
            event_slug=self.event_slug or other.event_slug,
            market_slug=self.market_slug or other.market_slug,
        )


@dataclass(frozen=True)
class OutcomeTokens:
    outcome_names: tuple[str, ...] = ()
    token_ids: tuple[str, ...] = ()

    def token_for(self, outcome: str) -> str | None:
        """Map an outcome name to its token id, falling back to the binary [Yes, No] convention."""
        wanted = (outcome or "").strip().lower()
        if self.outcome_names and len(self.outcome_names) == len(self.token_ids):
            for name, token_id in zip(self.outcome_names, self.token_ids):
                if (name or "").strip().lower() == wanted:
                    return token_id
        if len(self.token_ids) == 2:
            return self.token_ids[0] if wanted == "yes" else self.token_ids[1]
        return None


@dataclass(frozen=True)
class Position:
    market_id: str           # condition id
    outcome: str             # "Yes", "No", or a named outcome
    asset_id: str            # CLOB token id of the held outcome
    title: str               # e.g. "Will Oscar Piastri be the 2026 F1 Drivers' Champion?"
    size: float              # shares held
    entry_price: float       # average entry price (0.0 – 1.0)
    current_price: float     # best-effort current price (0.0 – 1.0)
    event_slug: str = ""
    market_slug: str = ""

    @property
    def key(self) -> PositionKey:
        return (self.market_id, self.outcome, self.asset_id)

    @property
    def invested(self) -> float:
        return self.size * self.entry_price

    @property
    def current_value(self) -> float:
        return self.size * self.current_price

    @property
    def pnl(self) -> float:
        return self.current_value - self.invested

    @property
    def pnl_percent(self) -> float:
        invested = self.invested
        return self.pnl / invested * 100 if invested > 0 else 0.0


@dataclass
class ChangeEvent:
    id: str
    kind: ChangeKind
    direction: Direction
    market_title: str
    outcome: str
    price: float
    quantity: float
    market_id: str
    asset_id: str
    event_slug: str = ""
    market_slug: str = ""
    outcome_token_id: str | None = None
    timestamp: float = 0.0   # epoch seconds of detection

    @property
    def value(self) -> float:
        return self.price * self.quantity
