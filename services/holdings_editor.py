from __future__ import annotations

import math
from typing import Optional

from services.watchlist_store import WatchlistStore


def parse_holdings(text: str) -> Optional[float]:
    """
    Numeric coercion for a holdings draft.

    Blank means 0. Returns None for anything that is not a finite decimal
    number ("abc", "nan", "inf", "1_000").
    """
    s = (text or "").strip()
    if not s:
        return 0.0
    if "_" in s:
        return None
    try:
        value = float(s)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


class HoldingsEditor:
    """
    Viewing -> Editing(row, draft) -> Viewing.

    One row at most is in edit mode; starting an edit elsewhere drops the
    previous draft. An unparseable draft is rejected silently: save() returns
    False and the row stays in edit mode.
    """

    def __init__(self, store: WatchlistStore) -> None:
        self._store = store
        self.editing_id: Optional[str] = None
        self.draft_value: str = ""

    def is_editing(self, row_id: str) -> bool:
        return self.editing_id is not None and self.editing_id == row_id

    def start_edit(self, row_id: str, current_holdings: float) -> None:
        self.editing_id = row_id
        self.draft_value = str(current_holdings)

    def set_draft(self, text: str) -> None:
        if self.editing_id is not None:
            self.draft_value = text

    def cancel(self) -> None:
        self.editing_id = None
        self.draft_value = ""

    def save(self) -> bool:
        if self.editing_id is None:
            return False
        value = parse_holdings(self.draft_value)
        if value is None:
            return False
        self._store.update_holdings(self.editing_id, value)
        self.cancel()
        return True
