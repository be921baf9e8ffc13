"""Environment-driven settings for the dashboard engine."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"
DEFAULT_STORAGE_PATH = Path.home() / ".token_portfolio" / "storage.json"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    coingecko_base_url: str = COINGECKO_BASE_URL
    coingecko_api_key: Optional[str] = None
    request_timeout_sec: float = 15.0
    storage_path: Path = DEFAULT_STORAGE_PATH
    search_debounce_sec: float = 0.25
    page_size: int = 10
    seed_on_first_run: bool = True


def _as_float(value: Optional[str], default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _as_int(value: Optional[str], default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def get_settings() -> Settings:
    """Load settings from the environment (and a local .env, if any)."""
    load_dotenv()

    api_key = os.getenv("COINGECKO_API_KEY") or os.getenv("VITE_CG_KEY") or None
    storage_path = os.getenv("TOKEN_PORTFOLIO_STORAGE")

    return Settings(
        coingecko_base_url=(os.getenv("COINGECKO_BASE_URL") or COINGECKO_BASE_URL).rstrip("/"),
        coingecko_api_key=api_key.strip() if api_key else None,
        request_timeout_sec=_as_float(os.getenv("COINGECKO_TIMEOUT_SEC"), 15.0),
        storage_path=Path(storage_path).expanduser() if storage_path else DEFAULT_STORAGE_PATH,
        search_debounce_sec=_as_float(os.getenv("SEARCH_DEBOUNCE_SEC"), 0.25),
        page_size=max(1, _as_int(os.getenv("PAGE_SIZE"), 10)),
        seed_on_first_run=_as_bool(os.getenv("SEED_ON_FIRST_RUN"), True),
    )
