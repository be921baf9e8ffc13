import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx


def to_float(x: Any) -> float:
    """Coerce provider numbers; anything missing or broken becomes 0.0."""
    if x is None:
        return 0.0
    if isinstance(x, Decimal):
        return float(x)
    try:
        v = float(x)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return v if math.isfinite(v) else 0.0


def safe_float(x: Any) -> Optional[float]:
    try:
        if x is None or (isinstance(x, float) and math.isnan(x)):
            return None
        return float(x)
    except (TypeError, ValueError, OverflowError):
        return None


def safe_div(n: float, d: float) -> float:
    try:
        return (n / d) if d else 0.0
    except ZeroDivisionError:
        return 0.0


def safe_json(resp: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def safe_json_list(resp: httpx.Response) -> List[Any]:
    try:
        data = resp.json()
    except ValueError:
        return []
    return data if isinstance(data, list) else []


def now_utc() -> datetime:
    return datetime.now(timezone.utc)
