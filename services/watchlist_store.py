from __future__ import annotations

import json
import logging
from typing import Callable, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from schemas.portfolio import WatchlistItem, WatchlistState
from services.local_storage import LocalStorage

logger = logging.getLogger(__name__)

STORAGE_KEY = "tp_watchlist_v1"

Listener = Callable[[Tuple[WatchlistItem, ...]], None]


def load_watchlist(storage: LocalStorage, key: str = STORAGE_KEY) -> List[WatchlistItem]:
    """Read the persisted watchlist; a missing or corrupt blob yields []."""
    raw = storage.get_item(key)
    if not raw:
        return []
    try:
        state = WatchlistState.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        # json.JSONDecodeError is a ValueError
        logger.warning("Discarding unreadable watchlist under %s: %s", key, e)
        return []

    out: List[WatchlistItem] = []
    seen: set[str] = set()
    for item in state.items:
        if item.id in seen:
            continue
        seen.add(item.id)
        out.append(item)
    return out


class WatchlistStore:
    """
    Authoritative, durable watchlist.

    Every state-changing mutation persists the full list under STORAGE_KEY and
    then notifies subscribers synchronously with the new item tuple.
    """

    def __init__(self, storage: LocalStorage, key: str = STORAGE_KEY) -> None:
        self._storage = storage
        self._key = key
        self._items: List[WatchlistItem] = load_watchlist(storage, key)
        self._listeners: List[Listener] = []

    # -----------------------
    # Reads
    # -----------------------

    def get_all(self) -> Tuple[WatchlistItem, ...]:
        return tuple(self._items)

    def ids(self) -> List[str]:
        return [i.id for i in self._items]

    def get(self, item_id: str) -> Optional[WatchlistItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def __len__(self) -> int:
        return len(self._items)

    # -----------------------
    # Mutations
    # -----------------------

    def add_items(self, items: Iterable[WatchlistItem]) -> int:
        """Prepend items whose id is not tracked yet. Returns how many were added."""
        existing = {i.id for i in self._items}
        fresh: List[WatchlistItem] = []
        for item in items:
            if item.id in existing:
                continue
            existing.add(item.id)
            fresh.append(item)

        if not fresh:
            return 0
        self._items = fresh + self._items
        self._commit()
        return len(fresh)

    def update_holdings(self, item_id: str, holdings: float) -> bool:
        for idx, item in enumerate(self._items):
            if item.id == item_id:
                self._items[idx] = item.model_copy(update={"holdings": float(holdings)})
                self._commit()
                return True
        return False

    def remove_item(self, item_id: str) -> bool:
        kept = [i for i in self._items if i.id != item_id]
        if len(kept) == len(self._items):
            return False
        self._items = kept
        self._commit()
        return True

    # -----------------------
    # Subscriptions
    # -----------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self) -> None:
        self._persist()
        snapshot = self.get_all()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Watchlist listener %r failed", listener)

    def _persist(self) -> None:
        payload = WatchlistState(items=list(self._items)).model_dump(mode="json")
        try:
            self._storage.set_item(self._key, json.dumps(payload, separators=(",", ":")))
        except OSError:
            # In-memory state stays authoritative; next mutation retries the write.
            logger.exception("Failed to persist watchlist under %s", self._key)
