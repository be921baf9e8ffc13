# services/dashboard_service.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from schemas.portfolio import DisplayRow, MarketSnapshot, PortfolioSlice, WatchlistItem
from services.coingecko.client import CoinGeckoService, CoinGeckoServiceError
from services.portfolio_view import (
    PAGE_SIZE,
    TOP_SLICES,
    clamp_page,
    index_snapshots,
    join_rows,
    page_range,
    page_rows,
    portfolio_slices,
    portfolio_total,
    total_pages,
)
from services.watchlist_store import WatchlistStore
from utils.common_helpers import now_utc

logger = logging.getLogger(__name__)

SEED_HOLDINGS = (0.05, 2.5, 2.5, 0.05, 2.5, 15000.0)
DEFAULT_ERROR = "Failed to fetch data"


class Dashboard:
    """
    Joins the watchlist with live market data and keeps the derived views.

    Watchlist changes re-join rows immediately against the snapshots already
    held and schedule a refresh on the running loop. Overlapping refreshes are
    not coalesced: the last one to resolve decides the visible rows, unless
    `sequenced_refresh` is on, in which case a refresh that started before an
    already-applied one is dropped.
    """

    def __init__(
        self,
        store: WatchlistStore,
        gateway: CoinGeckoService,
        page_size: int = PAGE_SIZE,
        sequenced_refresh: bool = False,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self.page_size = max(1, int(page_size))
        self.sequenced_refresh = sequenced_refresh

        self.snapshots: Dict[str, MarketSnapshot] = {}
        self.rows: List[DisplayRow] = join_rows(store.get_all(), self.snapshots)
        self.page = 1
        self.error: Optional[str] = None
        self.last_updated: Optional[datetime] = None

        self._inflight = 0
        self._refresh_seq = 0
        self._applied_seq = 0
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe = store.subscribe(self._on_watchlist_change)

    # -----------------------
    # Refresh
    # -----------------------

    @property
    def loading(self) -> bool:
        return self._inflight > 0

    async def refresh(self) -> bool:
        """Fetch prices for the current ids. Returns False when the result was not applied."""
        ids = self._store.ids()
        self._refresh_seq += 1
        seq = self._refresh_seq

        self._inflight += 1
        self.error = None
        try:
            markets = await self._gateway.fetch_markets_by_ids(ids) if ids else []
        except CoinGeckoServiceError as e:
            self.error = str(e) or DEFAULT_ERROR
            logger.warning(
                "Market refresh failed for %d ids: %s", len(ids), e,
                extra={"extra": {"coin_ids": ",".join(ids), "status_code": e.status_code}},
            )
            return False
        finally:
            self._inflight -= 1

        if self.sequenced_refresh and seq < self._applied_seq:
            logger.debug("Dropping refresh #%d, #%d already applied", seq, self._applied_seq)
            return False
        self._applied_seq = max(self._applied_seq, seq)

        self.snapshots = index_snapshots(markets)
        self._set_rows(join_rows(self._store.get_all(), self.snapshots))
        self.last_updated = now_utc()
        logger.debug("Refreshed %d/%d ids", len(self.snapshots), len(ids))
        return True

    def schedule_refresh(self) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet (sync bootstrap); the caller refreshes explicitly.
            return None
        task = loop.create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def seed_if_empty(self, holdings: Sequence[float] = SEED_HOLDINGS) -> int:
        """Fill an empty watchlist with the top coins by market cap."""
        if len(self._store):
            return 0
        try:
            markets = await self._gateway.fetch_markets(1, len(holdings))
        except CoinGeckoServiceError as e:
            logger.warning("Seeding the watchlist failed: %s", e)
            return 0
        items = [
            m.to_watchlist_item(holdings[i] if i < len(holdings) else 0.0)
            for i, m in enumerate(markets)
        ]
        return self._store.add_items(items)

    def close(self) -> None:
        self._unsubscribe()
        for task in list(self._tasks):
            task.cancel()

    def _on_watchlist_change(self, items: Tuple[WatchlistItem, ...]) -> None:
        self._set_rows(join_rows(items, self.snapshots))
        self.schedule_refresh()

    def _set_rows(self, rows: List[DisplayRow]) -> None:
        if len(rows) != len(self.rows):
            self.page = 1
        self.rows = rows
        self.page = clamp_page(self.page, len(rows), self.page_size)

    # -----------------------
    # Pagination
    # -----------------------

    @property
    def total_pages(self) -> int:
        return total_pages(len(self.rows), self.page_size)

    @property
    def visible_rows(self) -> List[DisplayRow]:
        return page_rows(self.rows, self.page, self.page_size)

    @property
    def page_range(self) -> Tuple[int, int]:
        return page_range(self.page, self.page_size, len(self.rows))

    def set_page(self, page: int) -> int:
        self.page = clamp_page(page, len(self.rows), self.page_size)
        return self.page

    def next_page(self) -> int:
        return self.set_page(self.page + 1)

    def prev_page(self) -> int:
        return self.set_page(self.page - 1)

    # -----------------------
    # Portfolio
    # -----------------------

    @property
    def slices(self) -> List[PortfolioSlice]:
        return portfolio_slices(self.rows, TOP_SLICES)

    @property
    def total_value(self) -> float:
        return portfolio_total(self.slices)
