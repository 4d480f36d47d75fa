# -*- coding: utf-8 -*-
"""Legacy → provider-centric migration with backup and rollback.

Steps: ANALYZE → BACKUP → TRANSFORM → VALIDATE → COMMIT.  Nothing is
written to the configuration keys before COMMIT; a COMMIT failure restores
the BACKUP snapshot.
"""

from __future__ import annotations

import json
import logging
import math
import os
import re
import time
from datetime import datetime
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Union,
)

from ..constant import (
    CONFIG_FORMAT_VERSION,
    CURRENT_CONFIG_KEY,
    LEGACY_CONFIG_KEY,
    MAX_BACKUPS,
    MIGRATED_MARKER_KEY,
    MIGRATION_BACKUPS_KEY,
)
from ..errors import (
    ConfigEngineError,
    InvalidConfigurationError,
    StorageError,
)
from ..providers.models import (
    ConfigurationSystem,
    LegacyAIConfig,
    LegacyCustomProvider,
    ModelConfig,
    ModelParameters,
    ProviderAuthentication,
    ProviderCapabilities,
    ProviderConfig,
    ProviderMetadata,
    ProviderType,
    SystemMetadata,
    UserPreferences,
    utcnow,
)
from ..providers.registry import PROVIDERS
from ..providers.validation import (
    validate_configuration_system,
    validate_legacy_ai_config,
)
from ..security.encryption import EncryptionService
from ..storage.kv import KeyValueStore, write_json
from ..utils.checksum import config_checksum
from .backups import BackupStore, restore_snapshot, take_snapshot
from .detector import detect, sniff_format
from .models import (
    BackupEntry,
    ConfigFormat,
    MigrationAnalysis,
    MigrationOptions,
    MigrationResult,
    MigrationValidation,
)
from .versioning import VersioningManager

logger = logging.getLogger(__name__)

LEGACY_VERSION = "0.0.0"
EXPORT_SOURCE = "migration-engine"

_BUILTIN_TYPES = {
    ProviderType.OPENAI.value,
    ProviderType.GOOGLE.value,
    ProviderType.BEDROCK.value,
    ProviderType.OPENROUTER.value,
}
_DEFAULT_BEDROCK_REGION = "us-east-1"
_KEY_TYPES = ("openai", "google", "openrouter")

_COMPLEXITY_FACTOR = {"simple": 1, "moderate": 2, "complex": 4}


def normalise_id(value: str) -> str:
    """Lower-case, non-alphanumerics collapsed to ``-``."""
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-") or "provider"


def model_id_for(provider_id: str, model_name: str) -> str:
    return f"{provider_id}-{normalise_id(model_name)}"


def estimate_seconds(complexity: str, providers: int, models: int) -> int:
    factor = _COMPLEXITY_FACTOR.get(complexity, 1)
    return math.ceil(5 * factor * (1 + 0.5 * providers + 0.1 * models))


class MigrationEngine:
    def __init__(
        self,
        store: KeyValueStore,
        encryption: EncryptionService,
        versioning: VersioningManager,
        *,
        max_backups: int = MAX_BACKUPS,
        clock: Callable[[], datetime] = utcnow,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self._store = store
        self._encryption = encryption
        self._versioning = versioning
        self._clock = clock
        # Bedrock credentials are not part of the legacy format; they come
        # from the standard AWS variables when present.
        self._environ = os.environ if environ is None else environ
        self.backups = BackupStore(
            store,
            MIGRATION_BACKUPS_KEY,
            max_backups=max_backups,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # ANALYZE
    # ------------------------------------------------------------------

    def analyze_existing_config(self, raw: Any) -> MigrationAnalysis:
        """Describe what migrating *raw* would involve; never writes."""
        detection = detect(raw)
        if detection.format == ConfigFormat.CURRENT:
            return self._analyze_current(detection.config)
        if detection.format == ConfigFormat.LEGACY:
            return self._analyze_legacy(detection.config)
        return MigrationAnalysis(
            format=ConfigFormat.UNKNOWN,
            needs_migration=False,
            errors=detection.errors,
        )

    def _analyze_current(self, config: ConfigurationSystem) -> MigrationAnalysis:
        providers = len(config.providers)
        models = sum(len(p.models) for p in config.providers)
        if providers > 5 or models > 20:
            complexity = "complex"
        elif providers > 1:
            complexity = "moderate"
        else:
            complexity = "simple"
        return MigrationAnalysis(
            format=ConfigFormat.CURRENT,
            needs_migration=False,
            provider_count=providers,
            model_count=models,
            custom_provider_count=sum(
                1 for p in config.providers if p.type == ProviderType.CUSTOM
            ),
            complexity=complexity,
            warnings=["Configuration is already in the current format"],
        )

    def _analyze_legacy(self, legacy: LegacyAIConfig) -> MigrationAnalysis:
        customs = legacy.custom_providers or []
        main_is_custom = self._custom_main(legacy) is not None
        providers = len(customs) + (0 if main_is_custom else 1)
        models = sum(len(c.models) for c in customs) + (
            0 if main_is_custom else 1
        )
        if len(customs) > 3:
            complexity = "complex"
        elif customs or legacy.parameters:
            complexity = "moderate"
        else:
            complexity = "simple"

        warnings: List[str] = []
        requirements: List[str] = []
        ptype = legacy.provider.lower()
        if not main_is_custom:
            if ptype in _KEY_TYPES and not legacy.api_key:
                warnings.append(f"No API key configured for '{legacy.provider}'")
                requirements.append(f"API key for '{legacy.provider}'")
            if ptype == ProviderType.BEDROCK.value and not (
                self._environ.get("AWS_ACCESS_KEY_ID")
                and self._environ.get("AWS_SECRET_ACCESS_KEY")
            ):
                warnings.append(
                    "Bedrock access keys are not set (AWS_ACCESS_KEY_ID, "
                    "AWS_SECRET_ACCESS_KEY)",
                )
                requirements.append("Bedrock access key id and secret")
            if ptype not in _BUILTIN_TYPES:
                warnings.append(
                    f"'{legacy.provider}' is not a built-in provider and "
                    "will be migrated as a custom provider",
                )
                requirements.append(f"Base URL for '{legacy.provider}'")
        for custom in customs:
            if not custom.api_key:
                warnings.append(f"Custom provider '{custom.name}' has no API key")
            if custom.custom_endpoint:
                warnings.append(
                    f"Custom endpoint of '{custom.name}' is not carried over",
                )
        return MigrationAnalysis(
            format=ConfigFormat.LEGACY,
            needs_migration=True,
            provider_count=providers,
            model_count=models,
            custom_provider_count=len(customs),
            complexity=complexity,
            estimated_seconds=estimate_seconds(complexity, providers, models),
            warnings=warnings,
            requirements=requirements,
        )

    # ------------------------------------------------------------------
    # TRANSFORM
    # ------------------------------------------------------------------

    @staticmethod
    def _custom_main(legacy: LegacyAIConfig) -> Optional[LegacyCustomProvider]:
        """The custom provider the legacy active provider refers to."""
        wanted = normalise_id(legacy.provider)
        for custom in legacy.custom_providers or []:
            if normalise_id(custom.id) == wanted:
                return custom
        return None

    async def _secret(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if self._encryption.looks_encrypted(value):
            return value
        return await self._encryption.encrypt(value)

    @staticmethod
    def _unique_id(base: str, taken: Set[str]) -> str:
        candidate, n = base, 2
        while candidate in taken:
            candidate = f"{base}-{n}"
            n += 1
        taken.add(candidate)
        return candidate

    def _models_for(
        self,
        provider_id: str,
        names: List[str],
        default_name: Optional[str],
        parameters: ModelParameters,
        options: MigrationOptions,
    ) -> List[ModelConfig]:
        models: List[ModelConfig] = []
        seen: Set[str] = set()
        mapped_default = (
            options.model_mappings.get(default_name, default_name)
            if default_name
            else None
        )
        for name in names:
            mapped = options.model_mappings.get(name, name)
            mid = model_id_for(provider_id, mapped)
            if mid in seen:
                continue
            seen.add(mid)
            models.append(
                ModelConfig(
                    id=mid,
                    name=mapped,
                    provider_id=provider_id,
                    parameters=parameters,
                ),
            )
        if not models:
            return models
        default_idx = next(
            (i for i, m in enumerate(models) if m.name == mapped_default),
            0,
        )
        models[default_idx] = models[default_idx].model_copy(
            update={"is_default": True},
        )
        return models

    async def _custom_provider(
        self,
        custom: LegacyCustomProvider,
        provider_id: str,
        default_model: Optional[str],
        parameters: ModelParameters,
        options: MigrationOptions,
        now: datetime,
    ) -> ProviderConfig:
        names = list(custom.models)
        if default_model and default_model not in names:
            names.insert(0, default_model)
        return ProviderConfig(
            id=provider_id,
            name=custom.name,
            type=ProviderType.CUSTOM,
            authentication=ProviderAuthentication(
                base_url=custom.base_url,
                api_key=await self._secret(custom.api_key),
            ),
            models=self._models_for(
                provider_id,
                names,
                default_model or names[0],
                parameters,
                options,
            ),
            capabilities=ProviderCapabilities(model_discovery=True),
            metadata=ProviderMetadata(created_at=now, updated_at=now),
            priority=10,
            description=f"Migrated from legacy custom provider ({custom.type})",
        )

    async def transform(
        self,
        legacy: LegacyAIConfig,
        options: Optional[MigrationOptions] = None,
    ) -> Tuple[ConfigurationSystem, List[str]]:
        """Build the current-schema config; secrets come out encrypted."""
        options = options or MigrationOptions()
        now = self._clock()
        warnings: List[str] = []
        taken: Set[str] = set()
        providers: List[ProviderConfig] = []

        params = legacy.parameters
        parameters = ModelParameters(
            temperature=params.temperature if params else None,
            max_tokens=params.max_tokens if params else None,
            top_p=params.top_p if params else None,
        )
        default_model = options.model_mappings.get(legacy.model, legacy.model)

        main_custom = self._custom_main(legacy)
        main_id: str
        if main_custom is None:
            ptype = legacy.provider.lower()
            kind = (
                ProviderType(ptype)
                if ptype in _BUILTIN_TYPES
                else ProviderType.CUSTOM
            )
            main_id = self._unique_id(
                options.provider_mappings.get(legacy.provider)
                or normalise_id(legacy.provider),
                taken,
            )
            definition = PROVIDERS.get(kind.value)
            display = (
                definition.name
                if definition and kind != ProviderType.CUSTOM
                else legacy.provider
            )
            auth = ProviderAuthentication(
                api_key=await self._secret(legacy.api_key),
            )
            if kind == ProviderType.BEDROCK:
                env = self._environ
                auth.region = (
                    env.get("AWS_REGION")
                    or env.get("AWS_DEFAULT_REGION")
                    or _DEFAULT_BEDROCK_REGION
                )
                auth.access_key_id = await self._secret(
                    env.get("AWS_ACCESS_KEY_ID"),
                )
                auth.secret_access_key = await self._secret(
                    env.get("AWS_SECRET_ACCESS_KEY"),
                )
            providers.append(
                ProviderConfig(
                    id=main_id,
                    name=display,
                    type=kind,
                    authentication=auth,
                    models=self._models_for(
                        main_id,
                        [legacy.model],
                        legacy.model,
                        parameters,
                        options,
                    ),
                    capabilities=ProviderCapabilities(
                        model_discovery=bool(
                            definition and definition.supports_model_listing,
                        ),
                    ),
                    metadata=ProviderMetadata(created_at=now, updated_at=now),
                    priority=1,
                ),
            )
            if kind == ProviderType.CUSTOM:
                warnings.append(
                    f"'{legacy.provider}' was migrated as a custom provider "
                    "without a base URL",
                )

        for custom in legacy.custom_providers or []:
            is_main = custom is main_custom
            pid = self._unique_id(
                options.provider_mappings.get(custom.id)
                or normalise_id(custom.id),
                taken,
            )
            if is_main:
                main_id = pid
            providers.append(
                await self._custom_provider(
                    custom,
                    pid,
                    legacy.model if is_main else None,
                    parameters if is_main else ModelParameters(),
                    options,
                    now,
                ),
            )
            if custom.custom_endpoint:
                warnings.append(
                    f"Custom endpoint of '{custom.name}' is not carried over",
                )

        main = next(p for p in providers if p.id == main_id)
        default = next(
            (m for m in main.models if m.name == default_model),
            main.default_model(),
        )
        config = ConfigurationSystem(
            providers=providers,
            user_preferences=UserPreferences(
                default_provider_id=main_id,
                default_model_id=default.id,
                max_retries=3,
                timeout=30_000,
                max_concurrent_tests=3,
            ),
            version=CONFIG_FORMAT_VERSION,
            last_migrated=now,
            metadata=SystemMetadata(
                created_at=now,
                updated_at=now,
                export_source=EXPORT_SOURCE,
            ),
        )
        config.metadata.checksum = config_checksum(config)
        return config, warnings

    # ------------------------------------------------------------------
    # Full migration
    # ------------------------------------------------------------------

    async def migrate_to_provider_config(
        self,
        legacy: Union[LegacyAIConfig, Dict[str, Any]],
        options: Optional[MigrationOptions] = None,
    ) -> MigrationResult:
        """Run ANALYZE → BACKUP → TRANSFORM → VALIDATE → COMMIT."""
        options = options or MigrationOptions()
        started = time.monotonic()
        steps: List[str] = []

        def _done(**kwargs) -> MigrationResult:
            return MigrationResult(
                steps=steps,
                dry_run=options.dry_run,
                duration_ms=(time.monotonic() - started) * 1000,
                **kwargs,
            )

        # ANALYZE
        if sniff_format(legacy) == ConfigFormat.CURRENT:
            current = validate_configuration_system(legacy)
            steps.append("analyze: configuration is already current")
            if current:
                return _done(
                    success=True,
                    config=current.value,
                    migration_required=False,
                )
            return _done(
                success=False,
                migration_required=False,
                errors=current.messages(),
            )
        parsed = validate_legacy_ai_config(legacy)
        if not parsed:
            steps.append("analyze: legacy configuration is invalid")
            return _done(success=False, errors=parsed.messages())
        analysis = self._analyze_legacy(parsed.value)
        steps.append(
            f"analyze: {analysis.provider_count} providers, "
            f"{analysis.model_count} models ({analysis.complexity})",
        )

        # BACKUP
        backup: Optional[BackupEntry] = None
        if options.auto_backup and not options.dry_run:
            backup = self.create_backup(
                options.description or "Before migration to provider config",
            )
            steps.append(f"backup: {backup.id}")

        # TRANSFORM
        try:
            config, warnings = await self.transform(parsed.value, options)
        except (ConfigEngineError, ValueError) as exc:
            logger.error("Migration transform failed: %s", exc)
            return _done(
                success=False,
                backup_id=backup.id if backup else None,
                errors=[f"Transform failed: {exc}"],
            )
        steps.append(f"transform: {len(config.providers)} providers")
        warnings = [*analysis.warnings, *warnings]

        # VALIDATE
        if options.validate_result:
            check = validate_configuration_system(config)
            if not check:
                steps.append("validate: failed")
                logger.warning(
                    "Migrated configuration failed validation: %s",
                    check.messages(),
                )
                return _done(
                    success=False,
                    backup_id=backup.id if backup else None,
                    warnings=warnings,
                    errors=check.messages(),
                )
            steps.append("validate: ok")

        if options.dry_run:
            steps.append("commit: skipped (dry run)")
            return _done(success=True, config=config, warnings=warnings)

        # COMMIT
        before = take_snapshot(self._store, self.backups.keys)
        try:
            self._commit(config, options, backup)
        except (StorageError, OSError) as exc:
            restore_snapshot(self._store, before, self.backups.keys)
            self._versioning.record_migration(
                LEGACY_VERSION,
                CONFIG_FORMAT_VERSION,
                "Legacy to provider configuration",
                steps,
                success=False,
                error=str(exc),
                backup_id=backup.id if backup else None,
            )
            logger.error("Migration commit failed, restored backup: %s", exc)
            return _done(
                success=False,
                backup_id=backup.id if backup else None,
                warnings=warnings,
                errors=[f"Commit failed: {exc}"],
            )
        steps.append("commit: ok")
        self._versioning.record_migration(
            LEGACY_VERSION,
            CONFIG_FORMAT_VERSION,
            "Legacy to provider configuration",
            steps,
            backup_id=backup.id if backup else None,
        )
        logger.info(
            "Migrated legacy configuration (%d providers)",
            len(config.providers),
        )
        return _done(
            success=True,
            config=config,
            backup_id=backup.id if backup else None,
            warnings=warnings,
        )

    def _commit(
        self,
        config: ConfigurationSystem,
        options: MigrationOptions,
        backup: Optional[BackupEntry],
    ) -> None:
        self._store.set(CURRENT_CONFIG_KEY, json.dumps(config.to_json_dict()))
        if not options.preserve_legacy:
            self._store.remove(LEGACY_CONFIG_KEY)
        write_json(
            self._store,
            MIGRATED_MARKER_KEY,
            {
                "migratedAt": self._clock().isoformat(),
                "backupId": backup.id if backup else None,
                "version": config.version,
            },
        )

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def create_backup(self, description: Optional[str] = None) -> BackupEntry:
        fmt = ConfigFormat.UNKNOWN
        if self._store.get(CURRENT_CONFIG_KEY) is not None:
            fmt = ConfigFormat.CURRENT
        elif self._store.get(LEGACY_CONFIG_KEY) is not None:
            fmt = ConfigFormat.LEGACY
        version = (
            CONFIG_FORMAT_VERSION if fmt == ConfigFormat.CURRENT else LEGACY_VERSION
        )
        return self.backups.create(version, description)

    def list_backups(self) -> List[BackupEntry]:
        return self.backups.list_backups()

    def restore_from_backup(self, backup_id: str) -> BackupEntry:
        """Apply a backup verbatim after checking its checksum."""
        return self.backups.restore(backup_id)

    def rollback_migration(self, backup_id: str) -> BackupEntry:
        """Restore *backup_id*, snapshotting the current state first.

        Returns the pre-rollback backup so the rollback can be undone.
        """
        entry = self.backups.get(backup_id)
        self.backups.verify(entry)
        before = self.create_backup(f"Before rollback to {backup_id}")
        restore_snapshot(self._store, entry.data, self.backups.keys)
        self._store.remove(MIGRATED_MARKER_KEY)
        self._versioning.record_migration(
            CONFIG_FORMAT_VERSION,
            entry.version,
            f"Rollback to backup {backup_id}",
            [f"snapshot: {before.id}", f"restore: {backup_id}"],
            backup_id=before.id,
        )
        logger.info("Rolled back to backup %s", backup_id)
        return before

    # ------------------------------------------------------------------
    # Result validation
    # ------------------------------------------------------------------

    def validate_migration_result(
        self,
        legacy: LegacyAIConfig,
        config: ConfigurationSystem,
    ) -> MigrationValidation:
        """Check provider/model counts and references of a migration."""
        customs = legacy.custom_providers or []
        main_is_custom = self._custom_main(legacy) is not None
        expected_providers = len(customs) + (0 if main_is_custom else 1)
        expected_models = sum(len(set(c.models)) for c in customs)
        if not main_is_custom:
            expected_models += 1
        per_provider = {p.id: len(p.models) for p in config.providers}
        models = sum(per_provider.values())

        errors: List[str] = []
        warnings: List[str] = []
        if len(config.providers) != expected_providers:
            errors.append(
                f"Expected {expected_providers} providers, "
                f"found {len(config.providers)}",
            )
        if models < expected_models:
            errors.append(
                f"Expected at least {expected_models} models, found {models}",
            )
        ids = set(per_provider)
        for provider in config.providers:
            for model in provider.models:
                if model.provider_id not in ids:
                    errors.append(
                        f"Model '{model.id}' references unknown provider "
                        f"'{model.provider_id}'",
                    )
        check = validate_configuration_system(config)
        if not check:
            warnings.extend(check.messages())
        return MigrationValidation(
            valid=not errors,
            provider_count=len(config.providers),
            model_count=models,
            expected_provider_count=expected_providers,
            expected_model_count=expected_models,
            models_per_provider=per_provider,
            errors=errors,
            warnings=warnings,
        )

    def load_backup_config(self, backup_id: str) -> Optional[Dict[str, Any]]:
        """Parsed configuration held in a backup, if any."""
        entry = self.backups.get(backup_id)
        for key in (CURRENT_CONFIG_KEY, LEGACY_CONFIG_KEY):
            if key in entry.data:
                try:
                    return json.loads(entry.data[key])
                except ValueError as exc:
                    raise InvalidConfigurationError(
                        f"Backup '{backup_id}' holds unparseable JSON",
                    ) from exc
        return None
