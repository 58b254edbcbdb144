"""
Polling Scheduler — sweeps every tracked wallet, one at a time, on a fixed
interval and hands new change events to the delivery callback.

Wallets are processed strictly sequentially with pauses between wallets and
between deliveries; the upstream APIs are the bottleneck, not local CPU.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Literal

from polywatch.agents.delivery_dedup import DeliveryDeduplicator
from polywatch.agents.identity_resolver import is_address
from polywatch.agents.wallet_store import WalletStore
from polywatch.models import ChangeEvent, TrackedWallet
from polywatch.tracker import Tracker
from polywatch.utils.logger import short_address

log = logging.getLogger(__name__)

SchedulerState = Literal["idle", "polling", "enriching", "delivering"]

# (event, wallet) → delivered?
Deliver = Callable[[ChangeEvent, TrackedWallet], Awaitable[bool]]


class PollingScheduler:
    def __init__(
        self,
        tracker: Tracker,
        store: WalletStore,
        deliver: Deliver,
        *,
        interval: float = 15,
        wallet_delay: float = 1.0,
        event_delay: float = 0.5,
        dedup: DeliveryDeduplicator | None = None,
        before_sweep: Callable[[], Awaitable[None]] | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.tracker = tracker
        self.store = store
        self.deliver = deliver
        self.interval = interval
        self.wallet_delay = wallet_delay
        self.event_delay = event_delay
        self.dedup = dedup or DeliveryDeduplicator(clock=clock)
        self.before_sweep = before_sweep
        self._clock = clock
        self._sleep = sleep
        self.state: SchedulerState = "idle"

    async def poll_wallet(self, wallet: TrackedWallet) -> int:
        """Detect, enrich and deliver for one wallet. Returns the number of events delivered."""
        tag = short_address(wallet.address)

        self.state = "polling"
        events = await self.tracker.detect(wallet.address)
        if self.tracker.last_poll_failed(wallet.address):
            log.warning("[%s] Positions could not be fetched, last_checked left unchanged", tag)
            return 0

        self.state = "enriching"
        events = await self.tracker.enrich(events)

        self.state = "delivering"
        delivered = 0
        for index, event in enumerate(events):
            if not self.dedup.should_deliver(event.id):
                log.debug("[%s] Skipping already delivered event %s", tag, event.id)
                continue
            if index:
                await self._sleep(self.event_delay)
            log.info(
                "[%s] Delivering %s %s %s @ %.3f",
                tag, event.kind, event.direction, event.outcome, event.price,
            )
            if await self.deliver(event, wallet):
                delivered += 1
            self.dedup.mark_delivered(event.id)

        self.store.touch(wallet.address, self._clock())
        return delivered

    async def run_sweep(self) -> int:
        """One pass over every tracked wallet. Returns the total events delivered."""
        if self.before_sweep is not None:
            try:
                await self.before_sweep()
            except Exception as exc:
                log.error("Pre-sweep hook failed: %s", exc, exc_info=True)

        self.dedup.evict()
        wallets = self.store.list_wallets()
        log.info("=== Sweep start: %d wallet(s) ===", len(wallets))

        total = 0
        for wallet in wallets:
            tag = short_address(wallet.address)
            if not is_address(wallet.address):
                log.warning("[%s] Malformed address, skipping", wallet.address)
                continue
            if not wallet.subscribers:
                log.info("[%s] No subscribers, skipping", tag)
                continue

            try:
                total += await self.poll_wallet(wallet)
            except Exception as exc:
                # Isolate failures: one wallet failing does not block others.
                log.error("[%s] Error during sweep: %s", tag, exc, exc_info=True)

            await self._sleep(self.wallet_delay)

        self.state = "idle"
        log.info("=== Sweep complete: %d event(s) delivered ===", total)
        return total

    async def run_forever(self) -> None:
        """Sweep, then wait the full interval. Sweeps never overlap."""
        while True:
            await self.run_sweep()
            await self._sleep(self.interval)
