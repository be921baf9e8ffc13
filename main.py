# main.py
"""Application root: builds and owns the dashboard object graph."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from config.logging_config import configure_logging
from config.settings import Settings, get_settings
from services.coingecko.client import CoinGeckoService
from services.dashboard_service import Dashboard
from services.holdings_editor import HoldingsEditor
from services.local_storage import JsonFileStorage, LocalStorage
from services.token_search import TokenSearchWorkflow
from services.watchlist_store import WatchlistStore

logger = logging.getLogger(__name__)


@dataclass
class TokenPortfolioApp:
    settings: Settings
    storage: LocalStorage
    store: WatchlistStore
    gateway: CoinGeckoService
    dashboard: Dashboard
    search: TokenSearchWorkflow
    editor: HoldingsEditor

    async def start(self) -> None:
        """First-run seeding, then one price refresh."""
        if self.settings.seed_on_first_run:
            seeded = await self.dashboard.seed_if_empty()
            if seeded:
                logger.info("Seeded watchlist with %d coins", seeded)
                # the store notification already scheduled a refresh
                await self.dashboard.wait_idle()
                return
        await self.dashboard.refresh()

    async def aclose(self) -> None:
        self.search.close()
        self.dashboard.close()
        await self.dashboard.wait_idle()


def build_app(
    settings: Optional[Settings] = None,
    storage: Optional[LocalStorage] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> TokenPortfolioApp:
    settings = settings or get_settings()
    storage = storage if storage is not None else JsonFileStorage(settings.storage_path)

    store = WatchlistStore(storage)
    gateway = CoinGeckoService(
        api_key=settings.coingecko_api_key,
        storage=storage,
        base_url=settings.coingecko_base_url,
        timeout=settings.request_timeout_sec,
        client=client,
    )
    return TokenPortfolioApp(
        settings=settings,
        storage=storage,
        store=store,
        gateway=gateway,
        dashboard=Dashboard(store, gateway, page_size=settings.page_size),
        search=TokenSearchWorkflow(gateway, store, debounce_sec=settings.search_debounce_sec),
        editor=HoldingsEditor(store),
    )


def create_app(**kwargs) -> TokenPortfolioApp:
    configure_logging()
    return build_app(**kwargs)
