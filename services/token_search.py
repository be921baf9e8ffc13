# services/token_search.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional

from schemas.portfolio import SearchResultItem
from services.coingecko.client import CoinGeckoService, CoinGeckoServiceError
from services.watchlist_store import WatchlistStore

logger = logging.getLogger(__name__)

SEARCH_DEBOUNCE_SEC = 0.25


@dataclass
class SearchSessionState:
    """Everything scoped to one open add-token interaction."""

    generation: int
    query: str = ""
    query_generation: int = 0
    results: List[SearchResultItem] = field(default_factory=list)
    selected: Dict[str, None] = field(default_factory=dict)
    error: Optional[str] = None
    showing_search: bool = False
    pending: Optional[asyncio.Task] = None

    def cancel_pending(self) -> None:
        if self.pending is not None and not self.pending.done():
            self.pending.cancel()
        self.pending = None


class TokenSearchWorkflow:
    """
    Closed -> Open(session) -> Closed.

    Opening creates a fresh SearchSessionState; closing drops it, which is what
    clears query, results, selection and error. Async results are applied only
    while the session object that issued them is still the open one (and, for
    searches, while its query generation is unchanged), so anything resolving
    after a close or a newer keystroke is discarded.
    """

    def __init__(
        self,
        gateway: CoinGeckoService,
        store: WatchlistStore,
        debounce_sec: float = SEARCH_DEBOUNCE_SEC,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self.debounce_sec = debounce_sec
        self._generation = 0
        self._session: Optional[SearchSessionState] = None

    # -----------------------
    # Session view
    # -----------------------

    @property
    def is_open(self) -> bool:
        return self._session is not None

    @property
    def query(self) -> str:
        return self._session.query if self._session else ""

    @property
    def results(self) -> List[SearchResultItem]:
        return list(self._session.results) if self._session else []

    @property
    def selected(self) -> FrozenSet[str]:
        return frozenset(self._session.selected) if self._session else frozenset()

    @property
    def error(self) -> Optional[str]:
        return self._session.error if self._session else None

    @property
    def can_commit(self) -> bool:
        return bool(self._session and self._session.selected)

    # -----------------------
    # Transitions
    # -----------------------

    async def open(self) -> None:
        """Open a session and show trending coins until a search lands."""
        if self._session is not None:
            return
        self._generation += 1
        session = SearchSessionState(generation=self._generation)
        self._session = session

        try:
            trending = await self._gateway.fetch_trending()
        except CoinGeckoServiceError as e:
            if self._session is session:
                session.error = str(e)
            logger.warning("Trending fetch failed: %s", e)
            return

        if self._session is not session or session.showing_search:
            logger.debug("Discarding trending result for session #%d", session.generation)
            return
        session.results = trending

    def close(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.cancel_pending()

    cancel = close

    # -----------------------
    # In-session actions
    # -----------------------

    def set_query(self, text: str) -> Optional[asyncio.Task]:
        """Record the query text and (re)start the debounce timer."""
        session = self._session
        if session is None:
            return None
        session.query = text
        session.cancel_pending()
        session.query_generation += 1
        session.pending = asyncio.get_running_loop().create_task(
            self._debounced_search(session, session.query_generation, text)
        )
        return session.pending

    async def _debounced_search(self, session: SearchSessionState, query_generation: int, text: str) -> None:
        await asyncio.sleep(self.debounce_sec)
        q = (text or "").strip()
        if not q or not self._is_live(session, query_generation):
            return

        try:
            found = await self._gateway.search_coins(q)
        except CoinGeckoServiceError as e:
            if self._is_live(session, query_generation):
                session.error = str(e)
            logger.warning("Search for %r failed: %s", q, e)
            return

        if not self._is_live(session, query_generation):
            logger.debug("Discarding stale search result for %r", q)
            return
        session.results = found
        session.showing_search = True
        session.error = None

    def toggle(self, coin_id: str) -> bool:
        """Flip selection of one result; returns whether it is now selected."""
        session = self._session
        if session is None:
            return False
        if coin_id in session.selected:
            del session.selected[coin_id]
            return False
        session.selected[coin_id] = None
        return True

    async def commit(self) -> bool:
        """Add the selected coins to the watchlist with zero holdings, then close."""
        session = self._session
        if session is None or not session.selected:
            return False
        ids = list(session.selected)

        try:
            markets = await self._gateway.fetch_markets_by_ids(ids)
        except CoinGeckoServiceError as e:
            if self._session is session:
                session.error = str(e)
            logger.warning("Adding %d coins failed: %s", len(ids), e)
            return False

        if self._session is not session:
            logger.debug("Session #%d closed before commit resolved", session.generation)
            return False
        added = self._store.add_items([m.to_watchlist_item(0.0) for m in markets])
        logger.info("Added %d of %d selected coins to the watchlist", added, len(ids))
        self.close()
        return True

    def _is_live(self, session: SearchSessionState, query_generation: int) -> bool:
        return self._session is session and session.query_generation == query_generation
