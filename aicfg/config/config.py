# -*- coding: utf-8 -*-
"""Runtime settings (config.json in the working directory, env overrides)."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..constant import (
    CONFIG_FILE,
    DISCOVERY_CACHE_TTL,
    HEALTH_CHECK_INTERVAL,
    MAX_BACKUPS,
    MIN_PBKDF2_ITERATIONS,
    PBKDF2_ITERATIONS,
    STORE_FILE,
    TEST_CACHE_TTL,
    TEST_MAX_CONCURRENCY,
    TEST_RETRIES,
    TEST_TIMEOUT,
    WORKING_DIR,
)

logger = logging.getLogger(__name__)


class EncryptionSettings(BaseModel):
    iterations: int = PBKDF2_ITERATIONS
    fingerprint: Optional[str] = Field(
        default=None,
        description="Fixed key material instead of the device fingerprint "
        "(for containers whose fingerprint changes between runs)",
    )

    @field_validator("iterations")
    @classmethod
    def _clamp_iterations(cls, value: int) -> int:
        return max(value, MIN_PBKDF2_ITERATIONS)


class ProbeSettings(BaseModel):
    timeout: float = Field(default=TEST_TIMEOUT, gt=0, description="Seconds")
    retries: int = Field(default=TEST_RETRIES, ge=0, le=10)
    max_concurrency: int = Field(default=TEST_MAX_CONCURRENCY, ge=1, le=20)
    cache_ttl: float = Field(default=TEST_CACHE_TTL, ge=0)
    health_check_interval: float = Field(default=HEALTH_CHECK_INTERVAL, gt=0)
    discovery_cache_ttl: float = Field(default=DISCOVERY_CACHE_TTL, ge=0)


class MigrationSettings(BaseModel):
    auto_migrate: bool = True
    auto_backup: bool = True
    max_backups: int = Field(default=MAX_BACKUPS, ge=1)


class StorageSettings(BaseModel):
    working_dir: Path = WORKING_DIR
    store_file: str = STORE_FILE

    @property
    def store_path(self) -> Path:
        return Path(self.working_dir).expanduser() / self.store_file


class Settings(BaseModel):
    """Root settings (config.json)."""

    encryption: EncryptionSettings = Field(default_factory=EncryptionSettings)
    testing: ProbeSettings = Field(default_factory=ProbeSettings)
    migration: MigrationSettings = Field(default_factory=MigrationSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


# Environment variables read at load time: name -> (section, field).
_ENV_OVERRIDES: Dict[str, Tuple[str, str]] = {
    "AICFG_PBKDF2_ITERATIONS": ("encryption", "iterations"),
    "AICFG_FINGERPRINT": ("encryption", "fingerprint"),
    "AICFG_TEST_TIMEOUT": ("testing", "timeout"),
    "AICFG_TEST_RETRIES": ("testing", "retries"),
    "AICFG_TEST_CONCURRENCY": ("testing", "max_concurrency"),
    "AICFG_TEST_CACHE_TTL": ("testing", "cache_ttl"),
    "AICFG_MAX_BACKUPS": ("migration", "max_backups"),
    "AICFG_WORKING_DIR": ("storage", "working_dir"),
    "AICFG_STORE_FILE": ("storage", "store_file"),
}


def load_env(path: Optional[Path] = None) -> bool:
    """Load a ``.env`` file (working dir first, then cwd) into os.environ."""
    candidates = [path] if path else [WORKING_DIR / ".env", Path.cwd() / ".env"]
    for env_path in candidates:
        if env_path and Path(env_path).is_file():
            load_dotenv(env_path)
            logger.debug("Loaded environment variables from %s", env_path)
            return True
    logger.debug(".env file not found, using existing environment variables")
    return False


def get_config_path() -> Path:
    return WORKING_DIR / CONFIG_FILE


def load_settings(path: Optional[Path] = None) -> Settings:
    """Read settings from *path* (default config.json), then apply env.

    A missing or unreadable file yields defaults.
    """
    path = Path(path) if path else get_config_path()
    data: dict = {}
    if path.is_file():
        try:
            with open(path, "r", encoding="utf-8") as fh:
                loaded = json.load(fh)
            if isinstance(loaded, dict):
                data = loaded
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Settings file %s is unreadable: %s", path, exc)
    for env, (section, field) in _ENV_OVERRIDES.items():
        value = os.environ.get(env)
        if value:
            data.setdefault(section, {})[field] = value
    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        logger.warning("Invalid settings in %s, using defaults: %s", path, exc)
        return Settings()


def save_settings(settings: Settings, path: Optional[Path] = None) -> None:
    path = Path(path) if path else get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(settings.model_dump(mode="json"), fh, indent=2)
