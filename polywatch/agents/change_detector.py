"""
Change Detector Agent — diffs a wallet's current positions against its stored
snapshot and emits a ChangeEvent for each detected trade.
"""
from __future__ import annotations

import logging
import time
from typing import Callable

from polywatch.agents.position_poller import PortfolioFetcher
from polywatch.agents.quote_price import QuotePriceService
from polywatch.errors import UpstreamUnavailable
from polywatch.models import ChangeEvent, ChangeKind, Direction, Position, PositionKey
from polywatch.utils.logger import short_address

log = logging.getLogger(__name__)

Snapshot = dict[PositionKey, Position]


def event_id(key: PositionKey, kind: ChangeKind, detected_at: float) -> str:
    market_id, outcome, asset_id = key
    return f"{market_id}-{outcome}-{asset_id}-{kind}-{int(detected_at * 1000)}"


def _event(
    position: Position,
    kind: ChangeKind,
    direction: Direction,
    price: float,
    quantity: float,
    detected_at: float,
) -> ChangeEvent:
    return ChangeEvent(
        id=event_id(position.key, kind, detected_at),
        kind=kind,
        direction=direction,
        market_title=position.title,
        outcome=position.outcome,
        price=price,
        quantity=quantity,
        market_id=position.market_id,
        asset_id=position.asset_id,
        event_slug=position.event_slug,
        market_slug=position.market_slug,
        timestamp=detected_at,
    )


class SnapshotDiffEngine:
    """Owns the per-wallet snapshots; one instance per process."""

    def __init__(
        self,
        fetcher: PortfolioFetcher,
        quotes: QuotePriceService,
        *,
        threshold: float = 0.5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.fetcher = fetcher
        self.quotes = quotes
        self.threshold = threshold
        self._clock = clock
        self._snapshots: dict[str, Snapshot] = {}
        self._failed: set[str] = set()

    def has_snapshot(self, address: str) -> bool:
        return address in self._snapshots

    def snapshot(self, address: str) -> Snapshot | None:
        return self._snapshots.get(address)

    def forget(self, address: str) -> None:
        self._snapshots.pop(address, None)
        self._failed.discard(address)

    def last_fetch_failed(self, address: str) -> bool:
        """True when the most recent diff of *address* could not fetch its positions."""
        return address in self._failed

    async def _sell_price(self, position: Position, fallback: float) -> float:
        price = await self.quotes.get_price(position.asset_id, "SELL")
        return price if price > 0 else fallback

    async def diff(self, address: str) -> list[ChangeEvent]:
        """
        Fetch the wallet's positions and compare them to the stored snapshot.

        The first successful observation of a wallet is stored as a baseline and
        yields no events. A failed fetch leaves the snapshot untouched, yields no
        events and is reported by last_fetch_failed. Otherwise the snapshot is
        replaced, even when nothing changed, so the next diff compares against
        the freshest prices.
        """
        tag = short_address(address)
        try:
            positions = await self.fetcher.fetch_open_positions(address)
        except UpstreamUnavailable as exc:
            log.warning("[%s] Positions unavailable, keeping previous snapshot: %s", tag, exc)
            self._failed.add(address)
            return []
        self._failed.discard(address)

        current: Snapshot = {p.key: p for p in positions}
        previous = self._snapshots.get(address)

        if previous is None:
            log.info("[%s] Baseline snapshot stored (%d position(s))", tag, len(current))
            self._snapshots[address] = current
            return []

        now = self._clock()
        events: list[ChangeEvent] = []

        for key, curr in current.items():
            prev = previous.get(key)
            if prev is None:
                log.info("[%s] Opened: %s %s (%.1f shares)", tag, curr.title[:40], curr.outcome, curr.size)
                events.append(_event(curr, "opened", "BUY", curr.entry_price, curr.size, now))
                continue

            size_diff = curr.size - prev.size
            if size_diff > self.threshold:
                # Known approximation: upstream's avgPrice may already blend the new fill.
                avg_price = (curr.invested - prev.invested) / size_diff
                price = avg_price if avg_price > 0 else curr.current_price
                log.info(
                    "[%s] Increased: %s %s +%.1f shares @ %.3f",
                    tag, curr.title[:40], curr.outcome, size_diff, price,
                )
                events.append(_event(curr, "increased", "BUY", price, size_diff, now))
            elif size_diff < -self.threshold:
                price = await self._sell_price(curr, curr.current_price)
                log.info(
                    "[%s] Decreased: %s %s %.1f shares @ %.3f",
                    tag, curr.title[:40], curr.outcome, size_diff, price,
                )
                events.append(_event(curr, "decreased", "SELL", price, abs(size_diff), now))

        for key, prev in previous.items():
            if key in current:
                continue
            price = await self._sell_price(prev, prev.current_price)
            log.info("[%s] Closed: %s %s (%.1f shares)", tag, prev.title[:40], prev.outcome, prev.size)
            events.append(_event(prev, "closed", "SELL", price, prev.size, now))

        self._snapshots[address] = current

        if events:
            log.info("[%s] %d change(s) detected", tag, len(events))
        return events
