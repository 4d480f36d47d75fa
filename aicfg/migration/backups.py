# -*- coding: utf-8 -*-
"""Bounded, checksummed snapshots of the persisted configuration."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from ..constant import CURRENT_CONFIG_KEY, LEGACY_CONFIG_KEY, MAX_BACKUPS
from ..errors import BackupNotFoundError, IntegrityCheckFailedError
from ..providers.models import utcnow
from ..storage.kv import KeyValueStore, read_json, write_json
from ..utils.checksum import checksum
from .models import BackupEntry

logger = logging.getLogger(__name__)

# Keys that together make up "the persisted configuration".
CONFIG_KEYS = (CURRENT_CONFIG_KEY, LEGACY_CONFIG_KEY)


def take_snapshot(
    store: KeyValueStore,
    keys: Sequence[str] = CONFIG_KEYS,
) -> Dict[str, str]:
    """Raw stored values for *keys*; absent keys are left out."""
    data: Dict[str, str] = {}
    for key in keys:
        value = store.get(key)
        if value is not None:
            data[key] = value
    return data


def restore_snapshot(
    store: KeyValueStore,
    data: Dict[str, str],
    keys: Sequence[str] = CONFIG_KEYS,
) -> None:
    """Make *keys* in *store* match *data* exactly."""
    for key in keys:
        if key in data:
            store.set(key, data[key])
        else:
            store.remove(key)


def store_checksum(
    store: KeyValueStore,
    keys: Sequence[str] = CONFIG_KEYS,
) -> str:
    return checksum(take_snapshot(store, keys))


def new_id(prefix: str = "backup") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class BackupStore:
    """Backups persisted as an ordered id -> entry map under one key.

    Oldest entries are evicted once more than ``max_backups`` exist.
    """

    def __init__(
        self,
        store: KeyValueStore,
        storage_key: str,
        *,
        max_backups: int = MAX_BACKUPS,
        keys: Sequence[str] = CONFIG_KEYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._storage_key = storage_key
        self._max = max(1, max_backups)
        self._keys = tuple(keys)
        self._clock = clock

    @property
    def keys(self) -> Sequence[str]:
        return self._keys

    def _load(self) -> Dict[str, BackupEntry]:
        raw = read_json(self._store, self._storage_key, {})
        entries: Dict[str, BackupEntry] = {}
        if not isinstance(raw, dict):
            return entries
        for bid, value in raw.items():
            try:
                entries[bid] = BackupEntry.model_validate(value)
            except ValidationError:
                logger.warning("Dropping unreadable backup entry %s", bid)
        return entries

    def _save(self, entries: Dict[str, BackupEntry]) -> None:
        write_json(
            self._store,
            self._storage_key,
            {bid: e.to_json_dict() for bid, e in entries.items()},
        )

    def create(
        self,
        version: str,
        description: Optional[str] = None,
        data: Optional[Dict[str, str]] = None,
    ) -> BackupEntry:
        """Snapshot the configuration keys (or *data*) and persist it."""
        if data is None:
            data = take_snapshot(self._store, self._keys)
        entry = BackupEntry(
            id=new_id(),
            version=version,
            timestamp=self._clock(),
            data=data,
            checksum=checksum(data),
            size=sum(len(v) for v in data.values()),
            description=description,
        )
        entries = self._load()
        entries[entry.id] = entry
        while len(entries) > self._max:
            oldest = next(iter(entries))
            del entries[oldest]
            logger.debug("Evicted backup %s", oldest)
        self._save(entries)
        logger.info("Created backup %s (%s)", entry.id, description or "")
        return entry

    def get(self, backup_id: str) -> BackupEntry:
        entry = self._load().get(backup_id)
        if entry is None:
            raise BackupNotFoundError(f"Backup '{backup_id}' not found")
        return entry

    def find_by_version(self, version: str) -> BackupEntry:
        """Newest backup labelled *version*."""
        for entry in reversed(list(self._load().values())):
            if entry.version == version:
                return entry
        raise BackupNotFoundError(f"No backup for version '{version}'")

    def list_backups(self) -> List[BackupEntry]:
        """All backups, newest first."""
        return list(reversed(list(self._load().values())))

    def verify(self, entry: BackupEntry) -> None:
        actual = checksum(entry.data)
        if actual != entry.checksum:
            raise IntegrityCheckFailedError(
                f"Backup '{entry.id}' failed its integrity check",
            )

    def restore(self, backup_id: str) -> BackupEntry:
        """Verify and apply a backup verbatim; returns the entry."""
        entry = self.get(backup_id)
        self.verify(entry)
        restore_snapshot(self._store, entry.data, self._keys)
        logger.info("Restored backup %s", backup_id)
        return entry

    def prune(self, keep: Optional[int] = None) -> int:
        """Drop all but the newest *keep* backups; returns how many went."""
        keep = self._max if keep is None else max(0, keep)
        entries = self._load()
        removed = max(0, len(entries) - keep)
        for bid in list(entries)[:removed]:
            del entries[bid]
        if removed:
            self._save(entries)
        return removed
