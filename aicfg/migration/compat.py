# -*- coding: utf-8 -*-
"""Read either schema, convert between them and load with auto-migration."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

from pydantic import Field

from ..constant import CURRENT_CONFIG_KEY, LEGACY_CONFIG_KEY
from ..errors import ConfigEngineError, StorageError
from ..providers.models import (
    CamelModel,
    ConfigurationSystem,
    LegacyAIConfig,
    LegacyCustomProvider,
    LegacyParameters,
    ModelConfig,
    ProviderConfig,
    ProviderType,
    UserPreferences,
)
from ..providers.registry import PROVIDER_OPENAI
from ..storage.kv import KeyValueStore
from .detector import AnyConfig, FormatInfo, detect, detect_format, format_info
from .engine import MigrationEngine
from .models import ConfigFormat, MigrationOptions

logger = logging.getLogger(__name__)

_STORAGE_KEYS = {
    ConfigFormat.CURRENT: CURRENT_CONFIG_KEY,
    ConfigFormat.LEGACY: LEGACY_CONFIG_KEY,
}


class ConfigReadResult(CamelModel):
    success: bool
    format: ConfigFormat
    config: Optional[AnyConfig] = None
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    migration_required: bool = False
    migration_available: bool = False


class ConversionResult(CamelModel):
    success: bool
    data: Optional[AnyConfig] = None
    from_format: ConfigFormat
    to_format: ConfigFormat
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    migration_performed: bool = False


class LoadResult(CamelModel):
    """What a caller renders: always a config, plus what happened."""

    config: ConfigurationSystem
    format: ConfigFormat
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    migration_required: bool = False
    migrated: bool = False
    backup_id: Optional[str] = None
    used_default: bool = False

    @property
    def success(self) -> bool:
        return not self.errors


def default_configuration() -> ConfigurationSystem:
    """Placeholder configuration used when nothing usable is stored."""
    first = PROVIDER_OPENAI.models[0]
    provider = ProviderConfig(
        id=PROVIDER_OPENAI.id,
        name=PROVIDER_OPENAI.name,
        type=ProviderType.OPENAI,
        models=[
            ModelConfig(
                id=f"{PROVIDER_OPENAI.id}-{first.id}",
                name=first.id,
                provider_id=PROVIDER_OPENAI.id,
                is_default=True,
            ),
        ],
    )
    return ConfigurationSystem(
        providers=[provider],
        user_preferences=UserPreferences(
            default_provider_id=provider.id,
            default_model_id=provider.models[0].id,
        ),
    )


class CompatibilityLayer:
    """Unified reader over the legacy and current storage keys."""

    def __init__(self, store: KeyValueStore, engine: MigrationEngine):
        self._store = store
        self._engine = engine

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def detect_format(self, raw: Any) -> ConfigFormat:
        return detect_format(raw)

    def read_config(self, raw: Any) -> ConfigReadResult:
        detection = detect(raw)
        if detection.format == ConfigFormat.LEGACY:
            legacy: LegacyAIConfig = detection.config
            warnings: List[str] = []
            customs = legacy.custom_providers or []
            if not legacy.api_key and not any(c.api_key for c in customs):
                warnings.append("No API keys found in legacy configuration")
            if customs:
                warnings.append(
                    f"Found {len(customs)} custom providers that will be "
                    "migrated",
                )
            return ConfigReadResult(
                success=True,
                format=ConfigFormat.LEGACY,
                config=legacy,
                warnings=warnings,
                migration_required=True,
                migration_available=True,
            )
        if detection.format == ConfigFormat.CURRENT:
            config: ConfigurationSystem = detection.config
            warnings = []
            if not any(p.enabled for p in config.providers):
                warnings.append("No providers are enabled")
            if not any(m.enabled for p in config.providers for m in p.models):
                warnings.append("No models are enabled")
            return ConfigReadResult(
                success=True,
                format=ConfigFormat.CURRENT,
                config=config,
                warnings=warnings,
            )
        # A recognised shape that failed validation keeps its format so
        # callers can tell "broken legacy" from "not a config at all".
        return ConfigReadResult(
            success=False,
            format=detection.candidate,
            errors=detection.errors,
            migration_required=detection.candidate == ConfigFormat.LEGACY,
        )

    def load_from_storage(self) -> ConfigReadResult:
        """Read the current key, falling back to the legacy key."""
        for key in (CURRENT_CONFIG_KEY, LEGACY_CONFIG_KEY):
            stored = self._store.get(key)
            if stored is None:
                continue
            try:
                raw = json.loads(stored)
            except ValueError as exc:
                logger.warning("Stored configuration %s is not JSON", key)
                return ConfigReadResult(
                    success=False,
                    format=ConfigFormat.UNKNOWN,
                    errors=[f"Storage read failed for '{key}': {exc}"],
                )
            return self.read_config(raw)
        return ConfigReadResult(
            success=False,
            format=ConfigFormat.UNKNOWN,
            errors=["No configuration found in storage"],
        )

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def save_to_storage(
        self,
        config: AnyConfig,
        fmt: Optional[ConfigFormat] = None,
    ) -> None:
        """Persist *config* under the key of its format.

        Saving the current format removes the stale legacy key.
        """
        fmt = fmt or detect_format(config)
        key = _STORAGE_KEYS.get(fmt)
        if key is None:
            raise StorageError("Cannot save configuration in unknown format")
        self._store.set(key, json.dumps(config.to_json_dict()))
        if fmt == ConfigFormat.CURRENT:
            self._store.remove(LEGACY_CONFIG_KEY)
        logger.debug("Saved configuration under %s", key)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    async def convert_format(
        self,
        raw: Any,
        target: ConfigFormat,
        options: Optional[MigrationOptions] = None,
    ) -> ConversionResult:
        detection = detect(raw)
        source = detection.format
        if source == ConfigFormat.UNKNOWN or target == ConfigFormat.UNKNOWN:
            return ConversionResult(
                success=False,
                from_format=source,
                to_format=target,
                errors=detection.errors
                or ["Cannot convert to an unknown format"],
            )
        if source == target:
            return ConversionResult(
                success=True,
                data=detection.config,
                from_format=source,
                to_format=target,
            )
        if source == ConfigFormat.LEGACY:
            try:
                config, warnings = await self._engine.transform(
                    detection.config,
                    options,
                )
            except (ConfigEngineError, ValueError) as exc:
                return ConversionResult(
                    success=False,
                    from_format=source,
                    to_format=target,
                    errors=[f"Legacy to provider conversion failed: {exc}"],
                )
            return ConversionResult(
                success=True,
                data=config,
                from_format=source,
                to_format=target,
                warnings=warnings,
                migration_performed=True,
            )
        return self._to_legacy(detection.config)

    @staticmethod
    def _to_legacy(config: ConfigurationSystem) -> ConversionResult:
        """Lossy reduction to the default provider and model."""
        prefs = config.user_preferences
        provider = config.get_provider(prefs.default_provider_id)
        model = (
            next((m for m in provider.models if m.id == prefs.default_model_id), None)
            if provider
            else None
        )
        if provider is None or model is None:
            return ConversionResult(
                success=False,
                from_format=ConfigFormat.CURRENT,
                to_format=ConfigFormat.LEGACY,
                errors=["Default provider or model not found in configuration"],
            )

        warnings = [
            "Provider configuration converted to legacy format "
            "(data loss may occur)",
        ]
        customs: List[LegacyCustomProvider] = []
        for other in config.providers:
            if other.id == provider.id:
                continue
            if other.type != ProviderType.CUSTOM or not other.authentication.base_url:
                warnings.append(f"Discarded provider '{other.id}'")
                continue
            customs.append(
                LegacyCustomProvider(
                    id=other.id,
                    name=other.name,
                    base_url=other.authentication.base_url,
                    models=[m.name for m in other.models],
                    api_key=other.authentication.api_key,
                ),
            )
        dropped = len(provider.models) - 1
        if dropped:
            warnings.append(
                f"Discarded {dropped} non-default models of '{provider.id}'",
            )

        params = model.parameters
        legacy = LegacyAIConfig(
            provider=provider.type.value
            if provider.type != ProviderType.CUSTOM
            else provider.id,
            model=model.name,
            api_key=provider.authentication.api_key,
            parameters=LegacyParameters(
                temperature=params.temperature,
                max_tokens=params.max_tokens,
                top_p=params.top_p,
            ),
            custom_providers=customs or None,
        )
        return ConversionResult(
            success=True,
            data=legacy,
            from_format=ConfigFormat.CURRENT,
            to_format=ConfigFormat.LEGACY,
            warnings=warnings,
            migration_performed=True,
        )

    # ------------------------------------------------------------------
    # Describing formats
    # ------------------------------------------------------------------

    def validate_compatibility(self, fmt: ConfigFormat) -> FormatInfo:
        return format_info(fmt)

    # ------------------------------------------------------------------
    # Load with auto-migration
    # ------------------------------------------------------------------

    async def load_and_migrate_config(
        self,
        auto_migrate: bool = True,
        options: Optional[MigrationOptions] = None,
    ) -> LoadResult:
        """Load the stored configuration, migrating legacy data.

        Never raises: anything unusable falls back to
        :func:`default_configuration` with the reason in ``errors``.
        """
        try:
            return await self._load(auto_migrate, options)
        except Exception as exc:
            logger.exception("Loading configuration failed")
            return LoadResult(
                config=default_configuration(),
                format=ConfigFormat.UNKNOWN,
                errors=[f"Configuration load failed: {exc}"],
                used_default=True,
            )

    async def _load(
        self,
        auto_migrate: bool,
        options: Optional[MigrationOptions],
    ) -> LoadResult:
        read = self.load_from_storage()
        if read.format == ConfigFormat.CURRENT and read.success:
            return LoadResult(
                config=read.config,
                format=ConfigFormat.CURRENT,
                warnings=read.warnings,
            )
        if read.format != ConfigFormat.LEGACY or not read.success:
            nothing_stored = (
                self._store.get(CURRENT_CONFIG_KEY) is None
                and self._store.get(LEGACY_CONFIG_KEY) is None
            )
            return LoadResult(
                config=default_configuration(),
                format=read.format,
                warnings=["Using the default configuration"],
                errors=[] if nothing_stored else read.errors,
                migration_required=read.migration_required,
                used_default=True,
            )

        legacy: LegacyAIConfig = read.config
        if auto_migrate:
            result = await self._engine.migrate_to_provider_config(
                legacy,
                options,
            )
            if result.success and result.config is not None:
                return LoadResult(
                    config=result.config,
                    format=ConfigFormat.CURRENT,
                    warnings=[*read.warnings, *result.warnings],
                    migrated=True,
                    backup_id=result.backup_id,
                )
            errors = result.errors
        else:
            errors = []

        # Not migrated: present an in-memory conversion, store untouched.
        conversion = await self.convert_format(
            legacy,
            ConfigFormat.CURRENT,
            options,
        )
        if conversion.success:
            return LoadResult(
                config=conversion.data,
                format=ConfigFormat.LEGACY,
                warnings=[*read.warnings, *conversion.warnings],
                errors=errors,
                migration_required=True,
            )
        return LoadResult(
            config=default_configuration(),
            format=ConfigFormat.LEGACY,
            warnings=read.warnings,
            errors=[*errors, *conversion.errors],
            migration_required=True,
            used_default=True,
        )

    async def is_migration_needed(self) -> bool:
        return self.load_from_storage().migration_required
