"""
Probe the upstream APIs for one wallet: resolve it, list its positions and show
what the metadata chain finds for the first market.

Run with:
    python -m scripts.probe_wallet @handle
    python -m scripts.probe_wallet 0x...
"""
from __future__ import annotations

import asyncio
import sys

from polywatch.tracker import Tracker
from polywatch.utils.http_client import close_client, try_get_json
from polywatch.utils.logger import setup_logging

DATA_API_BASE = "https://data-api.polymarket.com"


async def probe(value: str) -> None:
    tracker = Tracker()

    address = await tracker.resolve_identity(value)
    if not address:
        print(f"Could not resolve '{value}'")
        return
    print(f"Address: {address}")
    print(f"Display: {await tracker.display_name(address)}")

    raw = await try_get_json(f"{DATA_API_BASE}/positions", params={"user": address}, timeout=5.0)
    if not isinstance(raw, list):
        print("Positions: invalid payload")
        return
    print(f"Positions: {len(raw)} item(s)")
    if not raw:
        return

    sample = raw[0]
    market = sample.get("market") or {}
    print("\nFirst position:")
    print(f"  conditionId:     {sample.get('conditionId') or 'N/A'}")
    print(f"  outcome:         {sample.get('outcome') or 'N/A'}")
    print(f"  size:            {sample.get('size') or 'N/A'}")
    print(f"  market.question: {market.get('question') or 'N/A'}")
    print(f"  market.slug:     {market.get('slug') or 'N/A'}")

    if sample.get("conditionId"):
        info = await tracker.metadata.resolve(sample["conditionId"], str(sample.get("asset") or ""))
        if info is None:
            print("\nMetadata: nothing found")
        else:
            print(f"\nTitle:       {info.title}")
            print(f"Event slug:  {info.event_slug or '(empty)'}")
            print(f"Market slug: {info.market_slug or '(empty)'}")

    portfolio = await tracker.get_portfolio(address)
    print("\nTop positions by value:")
    for p in portfolio[:5]:
        print(f"  {p.title[:50]:<50} {p.outcome:<5} {p.size:>10.1f} @ {p.current_price:.3f}  PnL {p.pnl_percent:+.1f}%")


async def main() -> None:
    setup_logging("WARNING")
    if len(sys.argv) < 2:
        print(__doc__)
        return
    try:
        await probe(sys.argv[1])
    finally:
        await close_client()


if __name__ == "__main__":
    asyncio.run(main())
