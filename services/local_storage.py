# services/local_storage.py
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class LocalStorage(Protocol):
    """Key -> string store with localStorage semantics."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


def _norm_key(key: str) -> str:
    return (key or "").strip()


class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(_norm_key(key))

    def set_item(self, key: str, value: str) -> None:
        k = _norm_key(key)
        if not k:
            return
        self._data[k] = str(value)

    def remove_item(self, key: str) -> None:
        self._data.pop(_norm_key(key), None)


class JsonFileStorage:
    """
    Durable storage in one JSON object file: {"<key>": "<string value>", ...}.

    Every write rewrites the whole file through a temp file + os.replace, so a
    crash mid-write leaves the previous version intact. A missing or unreadable
    file reads as empty.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable storage file %s: %s", self.path, e)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring storage file %s: top-level value is not an object", self.path)
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".storage-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, separators=(",", ":"))
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(_norm_key(key))

    def set_item(self, key: str, value: str) -> None:
        k = _norm_key(key)
        if not k:
            return
        self._data[k] = str(value)
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._data.pop(_norm_key(key), None) is not None:
            self._flush()
