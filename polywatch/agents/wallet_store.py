"""
Wallet Store Agent — persists tracked wallets, their subscriber chats and the
time each wallet was last checked.

Backend: JSON file at data/wallets.json (zero external dependencies).
"""
from __future__ import annotations

import json
import logging
from pathlib import Path

from polywatch.models import TrackedWallet

log = logging.getLogger(__name__)

_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_PATH = _ROOT / "data" / "wallets.json"


class WalletStore:
    def __init__(self, path: Path = DEFAULT_PATH) -> None:
        self.path = path

    def _load_raw(self) -> dict[str, dict]:
        """Load the raw store file. Returns an empty dict if the file doesn't exist or is corrupt."""
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except Exception as exc:
            log.warning("Wallet store is corrupt or unreadable (%s), starting empty.", exc)
            return {}

    def _save_raw(self, raw: dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(raw, indent=2), encoding="utf-8")

    def list_wallets(self) -> list[TrackedWallet]:
        return [
            TrackedWallet(
                address=address,
                subscribers=[str(c) for c in row.get("subscribers", [])],
                last_checked=float(row.get("last_checked", 0)),
            )
            for address, row in self._load_raw().items()
        ]

    def get(self, address: str) -> TrackedWallet | None:
        for wallet in self.list_wallets():
            if wallet.address == address:
                return wallet
        return None

    def subscribe(self, address: str, chat_id: str) -> bool:
        """Add *chat_id* as a subscriber. Returns False if it was already subscribed."""
        raw = self._load_raw()
        row = raw.setdefault(address, {"subscribers": [], "last_checked": 0})
        if chat_id in row["subscribers"]:
            return False
        row["subscribers"].append(chat_id)
        self._save_raw(raw)
        log.info("Subscribed chat %s to %s", chat_id, address)
        return True

    def unsubscribe(self, address: str, chat_id: str) -> int:
        """
        Remove *chat_id* from the wallet's subscribers.

        Returns the number of remaining subscribers. A wallet left with none is
        deleted from the store.
        """
        raw = self._load_raw()
        row = raw.get(address)
        if row is None:
            return 0
        if chat_id in row.get("subscribers", []):
            row["subscribers"].remove(chat_id)
        remaining = len(row.get("subscribers", []))
        if remaining == 0:
            del raw[address]
            log.info("Removed %s (no subscribers left)", address)
        self._save_raw(raw)
        return remaining

    def touch(self, address: str, checked_at: float) -> None:
        raw = self._load_raw()
        if address not in raw:
            return
        raw[address]["last_checked"] = checked_at
        self._save_raw(raw)
