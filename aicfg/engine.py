# -*- coding: utf-8 -*-
"""The engine callers use: one object wiring every service to one store."""

from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional

import httpx

from .config.config import Settings, load_env, load_settings
from .constant import CURRENT_CONFIG_KEY
from .errors import InvalidConfigurationError, StorageError
from .migration.compat import CompatibilityLayer, LoadResult
from .migration.engine import MigrationEngine
from .migration.models import BackupEntry, ConfigFormat, MigrationOptions
from .migration.versioning import VersioningManager
from .providers.discovery import DiscoveryResult, ModelDiscoveryService
from .providers.models import ConfigurationSystem, ProviderConfig, utcnow
from .providers.registry import ProviderClient, ProviderRegistry
from .providers.validation import validate_configuration_system
from .security.encryption import EncryptionService
from .security.fingerprint import device_fingerprint, static_fingerprint
from .storage.kv import JsonFileStore, KeyValueStore
from .storage.manager import StorageManager
from .testing.health import HealthMonitor
from .testing.models import ProviderTestResult
from .testing.service import ConfigTestingService, apply_result
from .utils.checksum import config_checksum

logger = logging.getLogger(__name__)


class ConfigEngine:
    """Load/migrate configuration, test providers and build clients.

    Stored secrets are encrypted; :meth:`test_provider` and
    :meth:`create_provider` decrypt a copy before use and never persist
    plaintext.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        settings: Optional[Settings] = None,
        encryption: Optional[EncryptionService] = None,
        registry: Optional[ProviderRegistry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or Settings()
        self.store = store
        self.encryption = encryption or EncryptionService(
            iterations=self.settings.encryption.iterations,
        )
        self.registry = registry or ProviderRegistry()
        self.versioning = VersioningManager(
            store,
            max_backups=self.settings.migration.max_backups,
        )
        self.migration = MigrationEngine(
            store,
            self.encryption,
            self.versioning,
            max_backups=self.settings.migration.max_backups,
        )
        self.compat = CompatibilityLayer(store, self.migration)
        self.storage = StorageManager(store, self.encryption)
        probe = self.settings.testing
        self.testing = ConfigTestingService(
            self.registry,
            transport=transport,
            retries=probe.retries,
            timeout=probe.timeout,
            cache_ttl=probe.cache_ttl,
        )
        self.discovery = ModelDiscoveryService(
            store,
            self.registry,
            ttl=probe.discovery_cache_ttl,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ConfigEngine":
        """Default wiring: ``.env`` loaded, JSON file store in the working dir."""
        load_env()
        settings = settings or load_settings()
        fingerprint = (
            static_fingerprint(settings.encryption.fingerprint)
            if settings.encryption.fingerprint
            else device_fingerprint
        )
        encryption = EncryptionService(
            fingerprint,
            iterations=settings.encryption.iterations,
        )
        store = JsonFileStore(settings.storage.store_path)
        return cls(store, settings=settings, encryption=encryption)

    # ------------------------------------------------------------------
    # Loading and saving
    # ------------------------------------------------------------------

    async def load_and_migrate_config(
        self,
        auto_migrate: Optional[bool] = None,
        options: Optional[MigrationOptions] = None,
    ) -> LoadResult:
        """Never raises; see :meth:`CompatibilityLayer.load_and_migrate_config`."""
        try:
            self.versioning.initialize()
        except StorageError as exc:
            logger.warning("Versioning state could not be written: %s", exc)
        if auto_migrate is None:
            auto_migrate = self.settings.migration.auto_migrate
        if options is None:
            options = MigrationOptions(
                auto_backup=self.settings.migration.auto_backup,
            )
        return await self.compat.load_and_migrate_config(auto_migrate, options)

    async def save_config(self, config: ConfigurationSystem) -> ConfigurationSystem:
        """Encrypt secrets, validate and persist *config* as current.

        The separated provider/model/preference stores are refreshed to
        match.  Raises ``InvalidConfigurationError`` without writing.
        """
        providers = [
            await self.storage.providers.encrypt_provider(p)
            for p in config.providers
        ]
        config = config.model_copy(update={"providers": providers})
        check = validate_configuration_system(config)
        if not check:
            raise InvalidConfigurationError(
                "Refusing to save an invalid configuration",
                check.errors,
            )
        config = check.value
        config.metadata.updated_at = utcnow()
        config.metadata.checksum = config_checksum(config)
        self.compat.save_to_storage(config, ConfigFormat.CURRENT)
        await self.storage.import_configuration(config)
        return config

    async def current_config(self) -> Optional[ConfigurationSystem]:
        """The stored current-format configuration, if there is one."""
        read = self.compat.load_from_storage()
        if read.success and read.format == ConfigFormat.CURRENT:
            return read.config
        return None

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    async def decrypt_provider(
        self,
        provider: ProviderConfig,
        warnings: Optional[List[str]] = None,
    ) -> ProviderConfig:
        return await self.storage.providers.decrypt_provider(provider, warnings)

    async def create_provider(
        self,
        provider: ProviderConfig,
        model_id: Optional[str] = None,
    ) -> ProviderClient:
        """Build a client handle; raises the registry errors."""
        plain = await self.decrypt_provider(provider)
        return self.registry.create_client(plain, model_id)

    async def test_provider(
        self,
        provider: ProviderConfig,
        model_id: Optional[str] = None,
        *,
        use_cache: bool = True,
    ) -> ProviderTestResult:
        plain = await self.decrypt_provider(provider)
        return await self.testing.test_provider(
            plain,
            model_id,
            use_cache=use_cache,
        )

    async def test_providers(
        self,
        providers: List[ProviderConfig],
        max_concurrency: Optional[int] = None,
    ) -> Dict[str, ProviderTestResult]:
        plain = [await self.decrypt_provider(p) for p in providers]
        return await self.testing.test_multiple_providers(
            plain,
            max_concurrency or self.settings.testing.max_concurrency,
        )

    async def record_results(
        self,
        config: ConfigurationSystem,
        results: Dict[str, ProviderTestResult],
    ) -> ConfigurationSystem:
        """Fold test results into provider metadata and persist."""
        providers = [
            apply_result(p, results[p.id]) if p.id in results else p
            for p in config.providers
        ]
        updated = config.model_copy(update={"providers": providers})
        updated = updated.model_copy(
            update={
                "metadata": updated.metadata.model_copy(
                    update={
                        "updated_at": utcnow(),
                        "checksum": config_checksum(updated),
                    },
                ),
            },
        )
        self.store.set(CURRENT_CONFIG_KEY, json.dumps(updated.to_json_dict()))
        for provider in providers:
            self.storage.providers.replace_metadata(provider)
        return updated

    async def discover_models(
        self,
        provider: ProviderConfig,
        *,
        force_refresh: bool = False,
    ) -> DiscoveryResult:
        plain = await self.decrypt_provider(provider)
        return await self.discovery.discover(plain, force_refresh=force_refresh)

    def health_monitor(self, **kwargs) -> HealthMonitor:
        """A monitor over the enabled providers of the stored config."""

        async def _providers() -> List[ProviderConfig]:
            config = await self.current_config()
            if config is None:
                return []
            return [await self.decrypt_provider(p) for p in config.providers]

        kwargs.setdefault("interval", self.settings.testing.health_check_interval)
        kwargs.setdefault("max_concurrency", self.settings.testing.max_concurrency)
        return HealthMonitor(self.testing, _providers, **kwargs)

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def list_backups(self) -> List[BackupEntry]:
        return self.migration.list_backups()

    def rollback(self, backup_id: str) -> BackupEntry:
        """Restore a migration backup; returns the pre-rollback snapshot."""
        entry = self.migration.rollback_migration(backup_id)
        self.testing.clear_cache()
        return entry
