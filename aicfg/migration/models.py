# -*- coding: utf-8 -*-
"""Records written by migration and versioning."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import Field

from ..providers.models import CamelModel, ConfigurationSystem, utcnow


class ConfigFormat(str, Enum):
    LEGACY = "legacy"
    CURRENT = "current"
    UNKNOWN = "unknown"


class BackupEntry(CamelModel):
    """Immutable snapshot of the persisted configuration keys."""

    model_config = {**CamelModel.model_config, "frozen": True}

    id: str
    version: str
    timestamp: datetime = Field(default_factory=utcnow)
    data: Dict[str, str] = Field(
        default_factory=dict,
        description="Storage key -> raw stored value",
    )
    checksum: str
    size: int = 0
    description: Optional[str] = None


class MigrationRecord(CamelModel):
    id: str
    from_version: str
    to_version: str
    timestamp: datetime = Field(default_factory=utcnow)
    description: str = ""
    migration_steps: List[str] = Field(default_factory=list)
    success: bool = True
    error: Optional[str] = None
    backup_id: Optional[str] = None


class ConfigVersion(CamelModel):
    version: str
    timestamp: datetime = Field(default_factory=utcnow)
    schema_version: int
    description: str = ""
    changes: List[str] = Field(default_factory=list)


class VersioningState(CamelModel):
    current_version: str
    schema_version: int
    versions: List[ConfigVersion] = Field(default_factory=list)
    migrations: List[MigrationRecord] = Field(default_factory=list)


class VersioningStats(CamelModel):
    current_version: str
    schema_version: int
    total_versions: int
    total_migrations: int
    successful_migrations: int
    failed_migrations: int
    total_backups: int
    backup_size: int
    oldest_backup: Optional[datetime] = None
    newest_backup: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Migration engine results
# ---------------------------------------------------------------------------

Complexity = Literal["simple", "moderate", "complex"]


class MigrationOptions(CamelModel):
    auto_backup: bool = True
    validate_result: bool = True
    dry_run: bool = False
    preserve_legacy: bool = Field(
        default=False,
        description="Keep the legacy key after a successful commit",
    )
    provider_mappings: Dict[str, str] = Field(
        default_factory=dict,
        description="Legacy provider name -> new provider id",
    )
    model_mappings: Dict[str, str] = Field(
        default_factory=dict,
        description="Legacy model name -> new model name",
    )
    description: Optional[str] = None


class MigrationAnalysis(CamelModel):
    format: ConfigFormat
    needs_migration: bool
    provider_count: int = 0
    model_count: int = 0
    custom_provider_count: int = 0
    complexity: Complexity = "simple"
    estimated_seconds: int = 0
    warnings: List[str] = Field(default_factory=list)
    requirements: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class MigrationResult(CamelModel):
    success: bool
    config: Optional[ConfigurationSystem] = None
    backup_id: Optional[str] = None
    steps: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    dry_run: bool = False
    migration_required: bool = True
    duration_ms: float = 0.0


class MigrationValidation(CamelModel):
    valid: bool
    provider_count: int
    model_count: int
    expected_provider_count: int
    expected_model_count: int
    models_per_provider: Dict[str, int] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
