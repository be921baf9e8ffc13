from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.common_helpers import safe_float, to_float

PALETTE = ("#7C8CF8", "#64E1B1", "#F7B267", "#59C3FF", "#7CE7FD", "#F47171")


def _normalize_symbol(value: Any) -> str:
    return str(value or "").strip().upper()


class WatchlistItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    symbol: str
    icon: str = ""
    holdings: float = 0.0


class WatchlistState(BaseModel):
    """Persisted shape under the watchlist storage key."""

    items: List[WatchlistItem] = Field(default_factory=list)


class MarketSnapshot(BaseModel):
    """One /coins/markets entry."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    symbol: str = ""
    image: str = ""
    current_price: float = 0.0
    change_24h_percent: Optional[float] = None
    sparkline_7d: List[float] = Field(default_factory=list)

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "MarketSnapshot":
        spark = payload.get("sparkline_in_7d") or {}
        prices = spark.get("price") if isinstance(spark, dict) else None
        return cls(
            id=str(payload.get("id") or ""),
            name=str(payload.get("name") or ""),
            symbol=_normalize_symbol(payload.get("symbol")),
            image=str(payload.get("image") or ""),
            current_price=to_float(payload.get("current_price")),
            change_24h_percent=safe_float(payload.get("price_change_percentage_24h")),
            sparkline_7d=[to_float(p) for p in prices] if isinstance(prices, list) else [],
        )

    def to_watchlist_item(self, holdings: float = 0.0) -> WatchlistItem:
        return WatchlistItem(
            id=self.id,
            name=self.name,
            symbol=self.symbol,
            icon=self.image,
            holdings=holdings,
        )


class SearchResultItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    symbol: str
    thumb: str = ""

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, value: str) -> str:
        return _normalize_symbol(value)


class DisplayRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    symbol: str
    icon: str
    price: float = 0.0
    change_24h: float = 0.0
    spark_7d: List[float] = Field(default_factory=list)
    holdings: float = 0.0

    @property
    def value(self) -> float:
        return self.price * self.holdings


class PortfolioSlice(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    value: float
    color_index: int

    @property
    def color(self) -> str:
        return PALETTE[self.color_index % len(PALETTE)]
