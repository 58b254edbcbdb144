"""
main.py — Entry point. Starts the polling scheduler loop.

Run with:
    python -m polywatch.main
"""
from __future__ import annotations

import asyncio
import logging

from polywatch.agents import telegram_notifier
from polywatch.agents.delivery_dedup import DeliveryDeduplicator
from polywatch.agents.scheduler import PollingScheduler
from polywatch.agents.wallet_store import WalletStore
from polywatch.config import AppConfig, TrackedWalletConfig, load_config, reload_tracked_wallets
from polywatch.models import ChangeEvent, TrackedWallet
from polywatch.tracker import Tracker
from polywatch.utils.http_client import close_client
from polywatch.utils.logger import setup_logging

log = logging.getLogger(__name__)


async def sync_tracked_wallets(
    entries: list[TrackedWalletConfig],
    store: WalletStore,
    tracker: Tracker,
) -> None:
    """
    Reconcile the wallets listed in config.json with the store:
    1. Resolve each entry to an address and subscribe its chats.
    2. Unsubscribe chats that are no longer listed.
    3. Wallets left without subscribers are dropped and their tracking state cleared.
    """
    wanted: dict[str, set[str]] = {}
    unresolved = 0
    for entry in entries:
        address = await tracker.resolve_identity(entry.wallet)
        if not address:
            log.warning("Could not resolve tracked wallet '%s', skipping this sweep.", entry.wallet)
            unresolved += 1
            continue
        wanted.setdefault(address, set()).update(entry.chat_ids)

    for address, chat_ids in wanted.items():
        for chat_id in sorted(chat_ids):
            store.subscribe(address, chat_id)

    if unresolved:
        # An unresolved handle may map to a stored wallet; don't untrack on a lookup failure.
        return

    for wallet in store.list_wallets():
        stale = [c for c in wallet.subscribers if c not in wanted.get(wallet.address, set())]
        remaining = len(wallet.subscribers)
        for chat_id in stale:
            remaining = store.unsubscribe(wallet.address, chat_id)
        if stale and remaining == 0:
            tracker.invalidate(wallet.address)


def build_deliver(config: AppConfig, tracker: Tracker):
    """Delivery callback for the scheduler honouring the per-kind notification toggles."""

    async def deliver(event: ChangeEvent, wallet: TrackedWallet) -> bool:
        if not config.notifications.enabled(event.kind):
            log.debug("Notifications for '%s' are disabled", event.kind)
            return False
        label = await tracker.display_name(wallet.address)
        sent = await telegram_notifier.send_event(
            event,
            wallet.address,
            wallet.subscribers,
            config.telegram_bot_token,
            wallet_label=label,
        )
        return sent > 0

    return deliver


async def main() -> None:
    setup_logging()

    log.info("Loading configuration …")
    try:
        config = load_config()
    except ValueError as exc:
        log.critical("Configuration error: %s", exc)
        return

    setup_logging(config.log_level)

    tracker = Tracker(config.tracker)
    store = WalletStore()

    async def reload_wallets() -> None:
        await sync_tracked_wallets(
            reload_tracked_wallets(config.telegram_chat_id), store, tracker
        )

    scheduler = PollingScheduler(
        tracker,
        store,
        build_deliver(config, tracker),
        interval=config.polling_interval_seconds,
        wallet_delay=config.tracker.wallet_delay_seconds,
        event_delay=config.tracker.event_delay_seconds,
        dedup=DeliveryDeduplicator(ttl=config.tracker.dedup_ttl_seconds),
        before_sweep=reload_wallets,
    )

    await sync_tracked_wallets(config.tracked_wallets, store, tracker)
    wallets = store.list_wallets()
    log.info(
        "Polymarket Wallet Tracker started. Polling every %ds for %d wallet(s).",
        config.polling_interval_seconds,
        len(wallets),
    )

    await telegram_notifier.send_startup_message(
        bot_token=config.telegram_bot_token,
        chat_id=config.telegram_chat_id,
        wallet_labels=[await tracker.display_name(w.address) for w in wallets],
        polling_interval=config.polling_interval_seconds,
    )

    try:
        await scheduler.run_forever()
    except (KeyboardInterrupt, asyncio.CancelledError):
        log.info("Shutting down ...")
    finally:
        await telegram_notifier.send_shutdown_message(
            bot_token=config.telegram_bot_token,
            chat_id=config.telegram_chat_id,
        )
        await close_client()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
