# -*- coding: utf-8 -*-
from .backups import BackupStore
from .compat import (
    CompatibilityLayer,
    ConfigReadResult,
    ConversionResult,
    LoadResult,
    default_configuration,
)
from .detector import Detection, FormatInfo, detect, detect_format, format_info
from .engine import MigrationEngine, model_id_for, normalise_id
from .models import (
    BackupEntry,
    ConfigFormat,
    ConfigVersion,
    MigrationAnalysis,
    MigrationOptions,
    MigrationRecord,
    MigrationResult,
    MigrationValidation,
    VersioningStats,
)
from .versioning import VersioningManager, is_semver

__all__ = [
    "BackupEntry",
    "BackupStore",
    "CompatibilityLayer",
    "ConfigFormat",
    "ConfigReadResult",
    "ConfigVersion",
    "ConversionResult",
    "Detection",
    "FormatInfo",
    "LoadResult",
    "MigrationAnalysis",
    "MigrationEngine",
    "MigrationOptions",
    "MigrationRecord",
    "MigrationResult",
    "MigrationValidation",
    "VersioningManager",
    "VersioningStats",
    "default_configuration",
    "detect",
    "detect_format",
    "format_info",
    "is_semver",
    "model_id_for",
    "normalise_id",
]
