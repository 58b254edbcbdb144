"""
Delivery Deduplicator — remembers which change events were delivered recently.

Event ids include the detection time, so a correct repeat trade always gets a
new id. The records only absorb the same transition being detected twice in
adjacent sweeps.
"""
from __future__ import annotations

import logging
import time
from typing import Callable

log = logging.getLogger(__name__)


class DeliveryDeduplicator:
    def __init__(self, ttl: float = 120, clock: Callable[[], float] = time.time) -> None:
        self.ttl = ttl
        self._clock = clock
        self._delivered: dict[str, float] = {}

    def evict(self) -> int:
        """Drop records older than the TTL. Returns how many were dropped."""
        now = self._clock()
        expired = [eid for eid, at in self._delivered.items() if now - at >= self.ttl]
        for eid in expired:
            del self._delivered[eid]
        if expired:
            log.debug("Evicted %d delivery record(s)", len(expired))
        return len(expired)

    def should_deliver(self, event_id: str) -> bool:
        delivered_at = self._delivered.get(event_id)
        return delivered_at is None or self._clock() - delivered_at >= self.ttl

    def mark_delivered(self, event_id: str) -> None:
        self._delivered[event_id] = self._clock()

    def __len__(self) -> int:
        return len(self._delivered)
