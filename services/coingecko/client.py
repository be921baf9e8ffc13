# services/coingecko/client.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Optional

import httpx

from schemas.portfolio import MarketSnapshot, SearchResultItem
from services.local_storage import LocalStorage
from utils.common_helpers import safe_json, safe_json_list

logger = logging.getLogger(__name__)

API_KEY_STORAGE_KEY = "VITE_CG_KEY"
API_KEY_PARAM = "x_cg_demo_api_key"


class CoinGeckoServiceError(Exception):
    """Non-success response or transport failure from CoinGecko."""

    def __init__(self, status_code: Optional[int], body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        if status_code is None:
            message = f"Coingecko request failed: {body}"
        else:
            message = f"Coingecko error {status_code}: {body}"
        super().__init__(message)


class CoinGeckoService:
    """
    Async market-data gateway over the public CoinGecko v3 API.

    Stateless apart from configuration: every call reads the API key fresh, so
    a key saved to local storage after start-up is picked up on the next call.
    Pass `client` to share a connection pool (or a MockTransport in tests);
    otherwise one AsyncClient is opened per call.
    """

    BASE_URL = "https://api.coingecko.com/api/v3"

    def __init__(
        self,
        api_key: Optional[str] = None,
        storage: Optional[LocalStorage] = None,
        base_url: Optional[str] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.storage = storage
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self._shared_client = client

    @asynccontextmanager
    async def _client(self):
        if self._shared_client is not None:
            yield self._shared_client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as c:
            yield c

    def _resolve_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        if self.storage is not None:
            stored = self.storage.get_item(API_KEY_STORAGE_KEY)
            if stored and stored.strip():
                return stored.strip()
        return None

    def _params(self, **params: Any) -> Dict[str, str]:
        out = {k: _param_str(v) for k, v in params.items()}
        key = self._resolve_api_key()
        if key:
            out[API_KEY_PARAM] = key
        return out

    async def _get(self, path: str, **params: Any) -> httpx.Response:
        async with self._client() as c:
            try:
                r = await c.get(
                    f"{self.base_url}{path}",
                    params=self._params(**params),
                    headers={"accept": "application/json"},
                )
            except httpx.HTTPError as e:
                raise CoinGeckoServiceError(None, str(e) or type(e).__name__) from e

            if not r.is_success:
                raise CoinGeckoServiceError(r.status_code, r.text)
            return r

    # -----------------------
    # Markets
    # -----------------------

    async def fetch_markets(self, page: int = 1, per_page: int = 6) -> List[MarketSnapshot]:
        """Top coins by market cap, used to seed an empty watchlist."""
        r = await self._get(
            "/coins/markets",
            vs_currency="usd",
            order="market_cap_desc",
            page=page,
            per_page=per_page,
            sparkline=True,
            price_change_percentage="24h",
        )
        return _parse_markets(safe_json_list(r))

    async def fetch_markets_by_ids(self, ids: Iterable[str]) -> List[MarketSnapshot]:
        ids = [i for i in ids if i]
        if not ids:
            return []
        r = await self._get(
            "/coins/markets",
            vs_currency="usd",
            ids=",".join(ids),
            sparkline=True,
            price_change_percentage="24h",
        )
        return _parse_markets(safe_json_list(r))

    # -----------------------
    # Search / trending
    # -----------------------

    async def search_coins(self, query: str) -> List[SearchResultItem]:
        q = (query or "").strip()
        if not q:
            return []
        r = await self._get("/search", query=q)
        data = safe_json(r) or {}
        return _parse_search_items(data.get("coins"))

    async def fetch_trending(self) -> List[SearchResultItem]:
        r = await self._get("/search/trending")
        data = safe_json(r) or {}
        coins = data.get("coins")
        items = [c.get("item") for c in coins if isinstance(c, dict)] if isinstance(coins, list) else []
        return _parse_search_items(items)

    async def ping(self) -> Dict[str, Any]:
        r = await self._get("/ping")
        return safe_json(r) or {}


def _param_str(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


def _parse_markets(rows: List[Any]) -> List[MarketSnapshot]:
    out: List[MarketSnapshot] = []
    for row in rows:
        if not isinstance(row, dict) or not row.get("id"):
            continue
        out.append(MarketSnapshot.from_api(row))
    return out


def _parse_search_items(rows: Any) -> List[SearchResultItem]:
    if not isinstance(rows, list):
        return []
    out: List[SearchResultItem] = []
    for c in rows:
        if not isinstance(c, dict) or not c.get("id"):
            continue
        out.append(
            SearchResultItem(
                id=str(c["id"]),
                name=str(c.get("name") or ""),
                symbol=str(c.get("symbol") or ""),
                thumb=str(c.get("thumb") or ""),
            )
        )
    return out
