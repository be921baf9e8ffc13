"""
Pure derivations over the watchlist and the latest market snapshots.

Nothing here holds state: callers pass the current watchlist and snapshot set
and get fresh rows/slices back. Rows follow watchlist order and never drop or
invent an id.
"""
from __future__ import annotations

import math
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from schemas.portfolio import PALETTE, DisplayRow, MarketSnapshot, PortfolioSlice, WatchlistItem
from utils.common_helpers import safe_div

PAGE_SIZE = 10
TOP_SLICES = 6


def index_snapshots(snapshots: Iterable[MarketSnapshot]) -> Dict[str, MarketSnapshot]:
    return {s.id: s for s in snapshots}


def join_rows(
    watchlist: Sequence[WatchlistItem],
    snapshots: Mapping[str, MarketSnapshot],
) -> List[DisplayRow]:
    rows: List[DisplayRow] = []
    for w in watchlist:
        m = snapshots.get(w.id)
        rows.append(
            DisplayRow(
                id=w.id,
                name=w.name,
                symbol=w.symbol,
                icon=w.icon,
                price=m.current_price if m else 0.0,
                change_24h=(m.change_24h_percent or 0.0) if m else 0.0,
                spark_7d=list(m.sparkline_7d) if m else [],
                holdings=w.holdings,
            )
        )
    return rows


def portfolio_slices(rows: Sequence[DisplayRow], limit: int = TOP_SLICES) -> List[PortfolioSlice]:
    # First N in watchlist order, not the N largest
    return [
        PortfolioSlice(label=f"{r.name} ({r.symbol})", value=r.value, color_index=i % len(PALETTE))
        for i, r in enumerate(rows[:limit])
    ]


def portfolio_total(slices: Sequence[PortfolioSlice]) -> float:
    return sum(s.value for s in slices)


def slice_share(s: PortfolioSlice, total: float) -> float:
    share = safe_div(s.value, total)
    return share if math.isfinite(share) else 0.0


def share_percent(s: PortfolioSlice, total: float, digits: int = 1) -> float:
    return round(slice_share(s, total) * 100.0, digits)


def total_pages(row_count: int, page_size: int = PAGE_SIZE) -> int:
    return max(1, math.ceil(max(0, row_count) / page_size))


def clamp_page(page: int, row_count: int, page_size: int = PAGE_SIZE) -> int:
    return min(max(1, page), total_pages(row_count, page_size))


def page_rows(rows: Sequence[DisplayRow], page: int, page_size: int = PAGE_SIZE) -> List[DisplayRow]:
    start = (page - 1) * page_size
    return list(rows[start:start + page_size])


def page_range(page: int, page_size: int, row_count: int) -> Tuple[int, int]:
    """1-based inclusive bounds of the visible page, (0, 0) when empty."""
    if row_count <= 0:
        return 0, 0
    return (page - 1) * page_size + 1, min(page * page_size, row_count)
