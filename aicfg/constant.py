# -*- coding: utf-8 -*-
import os
from pathlib import Path

WORKING_DIR = (
    Path(os.environ.get("AICFG_WORKING_DIR", "~/.aicfg"))
    .expanduser()
    .resolve()
)

# JSON document backing the key-value store (relative to WORKING_DIR).
STORE_FILE = os.environ.get("AICFG_STORE_FILE", "store.json")

CONFIG_FILE = os.environ.get("AICFG_CONFIG_FILE", "config.json")

# Env key for the package log level (used by CLI and the app factory).
LOG_LEVEL_ENV = "AICFG_LOG_LEVEL"

# When True, expose /docs, /redoc, /openapi.json
# (dev only; keep False in prod).
DOCS_ENABLED = os.environ.get("AICFG_OPENAPI_DOCS", "false").lower() in (
    "true",
    "1",
    "yes",
)

# ---------------------------------------------------------------------------
# Storage keys
# ---------------------------------------------------------------------------

LEGACY_CONFIG_KEY = "ai-config"
CURRENT_CONFIG_KEY = "ai-provider-config"
MIGRATION_BACKUPS_KEY = "ai-config-backups"
MIGRATED_MARKER_KEY = "ai-config-migrated"
VERSIONING_KEY = "ai_config_versioning"
VERSION_BACKUPS_KEY = "ai_config_backups"
DISCOVERY_CACHE_KEY = "model-discovery-cache"
PROVIDERS_KEY = "ai_providers"
MODELS_KEY = "ai_models"
PREFERENCES_KEY = "ai_user_preferences"

# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

# Lower values are clamped up to this floor.
MIN_PBKDF2_ITERATIONS = 100_000

PBKDF2_ITERATIONS = max(
    int(os.environ.get("AICFG_PBKDF2_ITERATIONS", "100000")),
    MIN_PBKDF2_ITERATIONS,
)

# ---------------------------------------------------------------------------
# Testing / discovery
# ---------------------------------------------------------------------------

TEST_CACHE_TTL = float(os.environ.get("AICFG_TEST_CACHE_TTL", "300"))

TEST_TIMEOUT = float(os.environ.get("AICFG_TEST_TIMEOUT", "30"))

TEST_RETRIES = int(os.environ.get("AICFG_TEST_RETRIES", "2"))

TEST_MAX_CONCURRENCY = int(os.environ.get("AICFG_TEST_CONCURRENCY", "3"))

HEALTH_CHECK_INTERVAL = float(
    os.environ.get("AICFG_HEALTH_CHECK_INTERVAL", "300"),
)

DISCOVERY_CACHE_TTL = float(
    os.environ.get("AICFG_DISCOVERY_CACHE_TTL", str(24 * 60 * 60)),
)

TEST_PROMPT = "Hello! Please respond with a brief greeting."

# ---------------------------------------------------------------------------
# Migration / versioning
# ---------------------------------------------------------------------------

MAX_BACKUPS = int(os.environ.get("AICFG_MAX_BACKUPS", "10"))

CURRENT_SCHEMA_VERSION = 2

CONFIG_FORMAT_VERSION = "1.0.0"
