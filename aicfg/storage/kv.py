# -*- coding: utf-8 -*-
"""String key-value stores backing every persisted record."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ..errors import StorageError

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal storage contract: string keys to string values."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def keys(self) -> List[str]:
        ...


class MemoryStore:
    """In-process store, used by tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileStore:
    """One JSON document on disk; every write replaces the file atomically.

    A missing or unreadable file is treated as an empty store and repaired
    on the next write.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.is_file():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                raw: Any = json.load(fh)
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning(
                "Store file %s is unreadable, starting empty: %s",
                self.path,
                exc,
            )
            return {}
        if not isinstance(raw, dict):
            logger.warning("Store file %s is not an object, ignoring", self.path)
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _flush(self, data: Dict[str, str]) -> None:
        """Write *data* to disk; ``self._data`` is untouched on failure."""
        tmp: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                prefix=f".{self.path.name}.",
                dir=str(self.path.parent),
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
            tmp = None
        except OSError as exc:
            raise StorageError(f"Failed to write {self.path}: {exc}") from exc
        finally:
            if tmp is not None and os.path.exists(tmp):
                os.unlink(tmp)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = {**self._data, key: value}
            self._flush(data)
            self._data = data

    def remove(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            data = {k: v for k, v in self._data.items() if k != key}
            self._flush(data)
            self._data = data

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------


def read_json(store: KeyValueStore, key: str, default: Any = None) -> Any:
    """Load and parse a JSON value; unparseable values yield *default*."""
    raw = store.get(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        logger.warning("Stored value under %r is not valid JSON", key)
        return default


def write_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.set(key, json.dumps(value, ensure_ascii=False))
