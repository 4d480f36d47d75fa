# -*- coding: utf-8 -*-
"""Version log, migration history and rollback to tagged snapshots."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from ..constant import (
    CONFIG_FORMAT_VERSION,
    CURRENT_SCHEMA_VERSION,
    MAX_BACKUPS,
    VERSION_BACKUPS_KEY,
    VERSIONING_KEY,
)
from ..errors import InvalidConfigurationError
from ..providers.models import utcnow
from ..storage.kv import KeyValueStore, read_json, write_json
from .backups import BackupStore, new_id, restore_snapshot, take_snapshot
from .models import (
    BackupEntry,
    ConfigVersion,
    MigrationRecord,
    VersioningState,
    VersioningStats,
)

logger = logging.getLogger(__name__)

_SEMVER = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$",
)


def is_semver(version: str) -> bool:
    return bool(_SEMVER.match(version or ""))


class VersioningManager:
    """Append-only version log plus a bounded ring of full-state backups.

    A version tags the configuration as it is when the version is created;
    :meth:`rollback` brings that state back.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_backups: int = MAX_BACKUPS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._clock = clock
        self.backups = BackupStore(
            store,
            VERSION_BACKUPS_KEY,
            max_backups=max_backups,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _load(self) -> Optional[VersioningState]:
        raw = read_json(self._store, VERSIONING_KEY)
        if not isinstance(raw, dict):
            return None
        # Older states predate some fields; fill them before parsing.
        raw = {
            "currentVersion": CONFIG_FORMAT_VERSION,
            "schemaVersion": 1,
            **raw,
        }
        try:
            return VersioningState.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Versioning state is unreadable: %s", exc)
            return None

    def _save(self, state: VersioningState) -> None:
        write_json(self._store, VERSIONING_KEY, state.to_json_dict())

    def _state(self) -> VersioningState:
        state = self._load()
        if state is None:
            state = self.initialize()
        return state

    def initialize(self) -> VersioningState:
        """Create the initial log, or upgrade an older stored one."""
        state = self._load()
        if state is None:
            state = VersioningState(
                current_version=CONFIG_FORMAT_VERSION,
                schema_version=CURRENT_SCHEMA_VERSION,
                versions=[
                    ConfigVersion(
                        version=CONFIG_FORMAT_VERSION,
                        timestamp=self._clock(),
                        schema_version=CURRENT_SCHEMA_VERSION,
                        description="Initial configuration",
                    ),
                ],
            )
            self._save(state)
            logger.info("Initialized configuration versioning")
            return state
        if state.schema_version < CURRENT_SCHEMA_VERSION:
            state = self._upgrade_schema(state)
        return state

    def _upgrade_schema(self, state: VersioningState) -> VersioningState:
        """Bring an older log up to the current schema; only adds data."""
        old = state.schema_version
        versions = list(state.versions)
        if not any(v.version == state.current_version for v in versions):
            versions.append(
                ConfigVersion(
                    version=state.current_version,
                    timestamp=self._clock(),
                    schema_version=CURRENT_SCHEMA_VERSION,
                    description="Recovered during schema upgrade",
                ),
            )
        record = MigrationRecord(
            id=new_id("migration"),
            from_version=f"schema-{old}",
            to_version=f"schema-{CURRENT_SCHEMA_VERSION}",
            timestamp=self._clock(),
            description="Versioning schema upgrade",
            migration_steps=["Added missing version entries"],
        )
        state = state.model_copy(
            update={
                "schema_version": CURRENT_SCHEMA_VERSION,
                "versions": versions,
                "migrations": [*state.migrations, record],
            },
        )
        self._save(state)
        logger.info(
            "Upgraded versioning schema %s -> %s",
            old,
            CURRENT_SCHEMA_VERSION,
        )
        return state

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def current_version(self) -> str:
        return self._state().current_version

    def create_version(
        self,
        version: str,
        description: str = "",
        changes: Optional[List[str]] = None,
        data: Optional[Dict[str, str]] = None,
    ) -> ConfigVersion:
        """Snapshot the current configuration (or *data*) as *version*."""
        if not is_semver(version):
            raise InvalidConfigurationError(
                f"'{version}' is not a semantic version (MAJOR.MINOR.PATCH)",
            )
        self.backups.create(
            version,
            description or f"Version {version}",
            data,
        )
        entry = ConfigVersion(
            version=version,
            timestamp=self._clock(),
            schema_version=CURRENT_SCHEMA_VERSION,
            description=description,
            changes=list(changes or []),
        )
        state = self._state()
        state = state.model_copy(
            update={
                "current_version": version,
                "versions": [*state.versions, entry],
            },
        )
        self._save(state)
        logger.info("Created configuration version %s", version)
        return entry

    def record_migration(
        self,
        from_version: str,
        to_version: str,
        description: str,
        steps: Optional[List[str]] = None,
        *,
        success: bool = True,
        error: Optional[str] = None,
        backup_id: Optional[str] = None,
    ) -> MigrationRecord:
        record = MigrationRecord(
            id=new_id("migration"),
            from_version=from_version,
            to_version=to_version,
            timestamp=self._clock(),
            description=description,
            migration_steps=list(steps or []),
            success=success,
            error=error,
            backup_id=backup_id,
        )
        state = self._state()
        self._save(
            state.model_copy(
                update={"migrations": [*state.migrations, record]},
            ),
        )
        return record

    def rollback(self, target_version: str) -> Dict[str, str]:
        """Restore the snapshot tagged *target_version*.

        The current state is backed up first.  Raises
        ``BackupNotFoundError`` or ``IntegrityCheckFailedError`` without
        writing anything.
        """
        entry = self.backups.find_by_version(target_version)
        self.backups.verify(entry)
        current = self.current_version()
        before = self.backups.create(
            current,
            f"Before rollback to {target_version}",
        )
        # The new snapshot may evict the target from a full ring.
        restore_snapshot(self._store, entry.data, self.backups.keys)
        self.record_migration(
            current,
            target_version,
            f"Rollback to {target_version}",
            [f"Restored backup {entry.id}"],
            backup_id=before.id,
        )
        state = self._state()
        self._save(state.model_copy(update={"current_version": target_version}))
        logger.info("Rolled back configuration to %s", target_version)
        return dict(entry.data)

    # ------------------------------------------------------------------
    # Queries / maintenance
    # ------------------------------------------------------------------

    def migration_history(self) -> List[MigrationRecord]:
        return list(self._state().migrations)

    def versions(self) -> List[ConfigVersion]:
        return list(self._state().versions)

    def available_versions(self) -> List[str]:
        """Versions that can be rolled back to (have a backup), newest first."""
        seen: List[str] = []
        for entry in self.backups.list_backups():
            if entry.version not in seen:
                seen.append(entry.version)
        return seen

    def list_backups(self) -> List[BackupEntry]:
        return self.backups.list_backups()

    def cleanup_old_backups(self, keep: Optional[int] = None) -> int:
        removed = self.backups.prune(keep)
        if removed:
            logger.info("Removed %d old version backups", removed)
        return removed

    def stats(self) -> VersioningStats:
        state = self._state()
        backups = self.backups.list_backups()
        ok = sum(1 for m in state.migrations if m.success)
        return VersioningStats(
            current_version=state.current_version,
            schema_version=state.schema_version,
            total_versions=len(state.versions),
            total_migrations=len(state.migrations),
            successful_migrations=ok,
            failed_migrations=len(state.migrations) - ok,
            total_backups=len(backups),
            backup_size=sum(b.size for b in backups),
            oldest_backup=backups[-1].timestamp if backups else None,
            newest_backup=backups[0].timestamp if backups else None,
        )

    def snapshot(self) -> Dict[str, str]:
        """The configuration keys as currently stored."""
        return take_snapshot(self._store, self.backups.keys)
