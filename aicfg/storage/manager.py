# -*- coding: utf-8 -*-
"""Separated persistence of providers, models and user preferences.

Providers are stored with their secret fields encrypted; models and
preferences are stored as plain JSON lists/objects.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..constant import MODELS_KEY, PREFERENCES_KEY, PROVIDERS_KEY
from ..errors import InvalidConfigurationError
from ..providers.models import (
    SECRET_AUTH_FIELDS,
    ConfigurationSystem,
    ModelConfig,
    ProviderConfig,
    SystemMetadata,
    TestStatus,
    UserPreferences,
    utcnow,
)
from ..providers.validation import (
    validate_configuration_system,
    validate_model_config,
    validate_provider_config,
    validate_user_preferences,
)
from ..security.encryption import EncryptionService
from ..utils.checksum import config_checksum
from .kv import KeyValueStore, read_json, write_json

logger = logging.getLogger(__name__)

EXPORT_SOURCE = "storage-manager"


class StorageStats(BaseModel):
    total_providers: int = 0
    total_models: int = 0
    enabled_providers: int = 0
    enabled_models: int = 0
    storage_size: int = Field(default=0, description="Bytes of stored JSON")


class ConsistencyReport(BaseModel):
    valid: bool
    issues: List[str] = Field(default_factory=list)


def _load_list(store: KeyValueStore, key: str, model):
    """Parse a stored JSON list, skipping entries that no longer validate."""
    raw = read_json(store, key, [])
    items = []
    if not isinstance(raw, list):
        logger.warning("Stored value under %r is not a list", key)
        return items
    for entry in raw:
        try:
            items.append(model.model_validate(entry))
        except ValidationError as exc:
            logger.warning("Skipping invalid entry under %r: %s", key, exc)
    return items


def _save_list(store: KeyValueStore, key: str, items) -> None:
    write_json(store, key, [item.to_json_dict() for item in items])


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class ProviderStorage:
    def __init__(self, store: KeyValueStore, encryption: EncryptionService):
        self._store = store
        self._encryption = encryption

    def _load(self) -> List[ProviderConfig]:
        return _load_list(self._store, PROVIDERS_KEY, ProviderConfig)

    def _save(self, providers: List[ProviderConfig]) -> None:
        _save_list(self._store, PROVIDERS_KEY, providers)

    async def encrypt_provider(self, provider: ProviderConfig) -> ProviderConfig:
        auth = provider.authentication
        update = {}
        for field in SECRET_AUTH_FIELDS:
            value = getattr(auth, field)
            if value and not self._encryption.looks_encrypted(value):
                update[field] = await self._encryption.encrypt(value)
        if not update:
            return provider
        return provider.model_copy(
            update={"authentication": auth.model_copy(update=update)},
        )

    async def decrypt_provider(
        self,
        provider: ProviderConfig,
        warnings: Optional[List[str]],
    ) -> ProviderConfig:
        auth = provider.authentication
        update = {}
        for field in SECRET_AUTH_FIELDS:
            value = getattr(auth, field)
            if not value:
                continue
            result = await self._encryption.decrypt_result(value)
            if result:
                update[field] = result.value
                continue
            # Undecryptable secrets are dropped so the rest stays usable.
            update[field] = None
            message = (
                f"Could not decrypt {field} of provider '{provider.id}': "
                f"{'; '.join(result.messages())}"
            )
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)
        if not update:
            return provider
        return provider.model_copy(
            update={"authentication": auth.model_copy(update=update)},
        )

    async def save_provider(self, provider: ProviderConfig) -> ProviderConfig:
        """Validate, encrypt secrets and insert or replace by id.

        Returns the provider as stored (secrets encrypted).
        """
        check = validate_provider_config(provider)
        if not check:
            raise InvalidConfigurationError(
                f"Invalid provider configuration '{provider.id}'",
                check.errors,
            )
        stored = await self.encrypt_provider(check.value)
        stored.metadata.updated_at = utcnow()
        providers = self._load()
        for i, existing in enumerate(providers):
            if existing.id == stored.id:
                stored.metadata.created_at = existing.metadata.created_at
                providers[i] = stored
                break
        else:
            providers.append(stored)
        self._save(providers)
        logger.info("Provider %s saved", stored.id)
        return stored

    async def get_provider(
        self,
        provider_id: str,
        *,
        decrypt: bool = True,
        warnings: Optional[List[str]] = None,
    ) -> Optional[ProviderConfig]:
        for provider in self._load():
            if provider.id == provider_id:
                if decrypt:
                    return await self.decrypt_provider(provider, warnings)
                return provider
        return None

    async def get_all_providers(
        self,
        *,
        decrypt: bool = True,
        warnings: Optional[List[str]] = None,
    ) -> List[ProviderConfig]:
        providers = self._load()
        if not decrypt:
            return providers
        return [await self.decrypt_provider(p, warnings) for p in providers]

    async def get_enabled_providers(self) -> List[ProviderConfig]:
        return [p for p in await self.get_all_providers() if p.enabled]

    async def get_providers_by_type(self, provider_type: str) -> List[ProviderConfig]:
        return [
            p
            for p in await self.get_all_providers()
            if p.type.value == provider_type
        ]

    def delete_provider(self, provider_id: str) -> bool:
        providers = self._load()
        remaining = [p for p in providers if p.id != provider_id]
        if len(remaining) == len(providers):
            return False
        self._save(remaining)
        logger.info("Provider %s deleted", provider_id)
        return True

    def update_test_status(
        self,
        provider_id: str,
        status: TestStatus,
        error: Optional[str] = None,
    ) -> ProviderConfig:
        """Record a test outcome; raises ``KeyError`` for unknown ids."""
        providers = self._load()
        for provider in providers:
            if provider.id != provider_id:
                continue
            meta = provider.metadata
            meta.test_status = status
            meta.last_tested = utcnow()
            if status == "failure":
                meta.error_count += 1
                meta.last_error = error
            elif status == "success":
                meta.error_count = 0
                meta.last_error = None
            self._save(providers)
            return provider
        raise KeyError(provider_id)

    def replace_metadata(self, provider: ProviderConfig) -> bool:
        """Persist ``provider.metadata`` onto the stored record."""
        providers = self._load()
        for stored in providers:
            if stored.id == provider.id:
                stored.metadata = provider.metadata.model_copy()
                self._save(providers)
                return True
        return False

    def stats(self) -> StorageStats:
        providers = self._load()
        enabled = [p for p in providers if p.enabled]
        return StorageStats(
            total_providers=len(providers),
            total_models=sum(len(p.models) for p in providers),
            enabled_providers=len(enabled),
            enabled_models=sum(
                1 for p in enabled for m in p.models if m.enabled
            ),
            storage_size=len(self._store.get(PROVIDERS_KEY) or ""),
        )


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ModelStorage:
    def __init__(self, store: KeyValueStore):
        self._store = store

    def _load(self) -> List[ModelConfig]:
        return _load_list(self._store, MODELS_KEY, ModelConfig)

    def _save(self, models: List[ModelConfig]) -> None:
        _save_list(self._store, MODELS_KEY, models)

    def save_model(self, model: ModelConfig) -> ModelConfig:
        check = validate_model_config(model)
        if not check:
            raise InvalidConfigurationError(
                f"Invalid model configuration '{model.id}'",
                check.errors,
            )
        models = self._load()
        for i, existing in enumerate(models):
            if existing.id == model.id and existing.provider_id == model.provider_id:
                models[i] = check.value
                break
        else:
            models.append(check.value)
        self._save(models)
        return check.value

    def get_model(self, model_id: str) -> Optional[ModelConfig]:
        return next((m for m in self._load() if m.id == model_id), None)

    def get_all_models(self) -> List[ModelConfig]:
        return self._load()

    def get_models_by_provider(self, provider_id: str) -> List[ModelConfig]:
        return [m for m in self._load() if m.provider_id == provider_id]

    def get_enabled_models(self) -> List[ModelConfig]:
        return [m for m in self._load() if m.enabled]

    def delete_model(self, model_id: str) -> bool:
        models = self._load()
        remaining = [m for m in models if m.id != model_id]
        if len(remaining) == len(models):
            return False
        self._save(remaining)
        return True

    def delete_models_by_provider(self, provider_id: str) -> int:
        models = self._load()
        remaining = [m for m in models if m.provider_id != provider_id]
        removed = len(models) - len(remaining)
        if removed:
            self._save(remaining)
        return removed


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


class PreferencesStorage:
    def __init__(self, store: KeyValueStore):
        self._store = store

    def save_preferences(self, preferences: UserPreferences) -> UserPreferences:
        check = validate_user_preferences(preferences)
        if not check:
            raise InvalidConfigurationError(
                "Invalid user preferences",
                check.errors,
            )
        write_json(self._store, PREFERENCES_KEY, check.value.to_json_dict())
        return check.value

    def get_preferences(self) -> UserPreferences:
        """Stored preferences merged over the defaults."""
        raw = read_json(self._store, PREFERENCES_KEY, {})
        if not isinstance(raw, dict):
            return UserPreferences()
        merged = {**UserPreferences().to_json_dict(), **raw}
        try:
            return UserPreferences.model_validate(merged)
        except ValidationError as exc:
            logger.warning("Stored preferences are invalid, using defaults: %s", exc)
            return UserPreferences()

    def reset_preferences(self) -> None:
        self._store.remove(PREFERENCES_KEY)


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class StorageManager:
    """Facade over the three stores, keeping them consistent."""

    def __init__(self, store: KeyValueStore, encryption: EncryptionService):
        self._store = store
        self.providers = ProviderStorage(store, encryption)
        self.models = ModelStorage(store)
        self.preferences = PreferencesStorage(store)

    async def save_provider(self, provider: ProviderConfig) -> ProviderConfig:
        """Save a provider and mirror its models into the model store."""
        stored = await self.providers.save_provider(provider)
        self.models.delete_models_by_provider(stored.id)
        for model in stored.models:
            self.models.save_model(model)
        return stored

    def delete_provider(self, provider_id: str) -> bool:
        removed = self.providers.delete_provider(provider_id)
        if removed:
            self.models.delete_models_by_provider(provider_id)
        return removed

    async def consistency_check(self) -> ConsistencyReport:
        issues: List[str] = []
        providers = await self.providers.get_all_providers(decrypt=False)
        models = self.models.get_all_models()
        provider_ids = {p.id for p in providers}

        orphaned = [m for m in models if m.provider_id not in provider_ids]
        if orphaned:
            issues.append(
                f"Found {len(orphaned)} orphaned models without "
                "corresponding providers",
            )

        counts: Dict[str, int] = {}
        for provider in providers:
            counts[provider.id] = counts.get(provider.id, 0) + 1
        dup_providers = sorted(pid for pid, n in counts.items() if n > 1)
        if dup_providers:
            issues.append(f"Found duplicate provider IDs: {', '.join(dup_providers)}")

        counts = {}
        for model in models:
            key = f"{model.provider_id}/{model.id}"
            counts[key] = counts.get(key, 0) + 1
        dup_models = sorted(mid for mid, n in counts.items() if n > 1)
        if dup_models:
            issues.append(f"Found duplicate model IDs: {', '.join(dup_models)}")

        prefs = self.preferences.get_preferences()
        model_ids = {m.id for m in models}
        for label, pid, mid, active in (
            ("Default", prefs.default_provider_id, prefs.default_model_id, True),
            (
                "Fallback",
                prefs.fallback_provider_id,
                prefs.fallback_model_id,
                prefs.fallback_enabled,
            ),
        ):
            if not active:
                continue
            if pid and pid not in provider_ids:
                issues.append(f"{label} provider {pid} does not exist")
            if mid and mid not in model_ids:
                issues.append(f"{label} model {mid} does not exist")
        return ConsistencyReport(valid=not issues, issues=issues)

    async def import_configuration(self, config: ConfigurationSystem) -> None:
        """Replace everything stored with *config* (secrets encrypted)."""
        check = validate_configuration_system(config)
        if not check:
            raise InvalidConfigurationError(
                "Cannot import an invalid configuration",
                check.errors,
            )
        self.clear_all()
        for provider in check.value.providers:
            await self.save_provider(provider)
        self.preferences.save_preferences(check.value.user_preferences)
        logger.info(
            "Imported configuration with %d providers",
            len(check.value.providers),
        )

    async def export_configuration(self) -> ConfigurationSystem:
        """Assemble the stored records; secrets stay encrypted."""
        providers = await self.providers.get_all_providers(decrypt=False)
        if not providers:
            raise InvalidConfigurationError("No providers are stored")
        now = utcnow()
        config = ConfigurationSystem(
            providers=providers,
            user_preferences=self.preferences.get_preferences(),
            metadata=SystemMetadata(
                created_at=min(p.metadata.created_at for p in providers),
                updated_at=now,
                export_source=EXPORT_SOURCE,
            ),
        )
        config.metadata.checksum = config_checksum(config)
        return config

    async def stats(self) -> Dict[str, object]:
        report = await self.consistency_check()
        return {
            **self.providers.stats().model_dump(),
            "consistency_issues": report.issues,
        }

    def clear_all(self) -> None:
        for key in (PROVIDERS_KEY, MODELS_KEY, PREFERENCES_KEY):
            self._store.remove(key)
        logger.info("Cleared provider, model and preference storage")
