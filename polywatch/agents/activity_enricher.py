"""
Activity Enricher Agent — fills in missing market metadata and outcome token
ids on a batch of change events, looking up each market only once.
"""
from __future__ import annotations

import logging

from polywatch.agents.market_metadata import MarketMetadataResolver
from polywatch.models import ChangeEvent, is_placeholder_title
from polywatch.utils.pacer import Pacer

log = logging.getLogger(__name__)


def needs_enrichment(event: ChangeEvent) -> bool:
    return is_placeholder_title(event.market_title) or not (event.event_slug or event.market_slug)


class ActivityEnricher:
    def __init__(self, metadata: MarketMetadataResolver, pacer: Pacer) -> None:
        self.metadata = metadata
        self.pacer = pacer

    async def enrich(self, events: list[ChangeEvent]) -> list[ChangeEvent]:
        """Mutates and returns *events*."""
        by_market: dict[str, list[ChangeEvent]] = {}
        for event in events:
            if event.market_id:
                by_market.setdefault(event.market_id, []).append(event)

        self.pacer.reset()
        for market_id, group in by_market.items():
            if not any(needs_enrichment(e) for e in group):
                continue

            await self.pacer.wait()

            asset_id = next((e.asset_id for e in group if e.asset_id), "")
            meta = await self.metadata.resolve(market_id, asset_id)
            if meta is not None:
                for event in group:
                    event.market_title = meta.title
                    event.event_slug = meta.event_slug
                    event.market_slug = meta.market_slug
                log.info("Enriched %s: %s", market_id[:8], meta.title[:50])

            tokens = await self.metadata.resolve_outcome_tokens(market_id)
            if tokens is not None:
                for event in group:
                    token_id = tokens.token_for(event.outcome)
                    if token_id:
                        event.outcome_token_id = token_id

        return events
