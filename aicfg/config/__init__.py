# -*- coding: utf-8 -*-
from .config import (
    EncryptionSettings,
    MigrationSettings,
    ProbeSettings,
    Settings,
    StorageSettings,
    get_config_path,
    load_env,
    load_settings,
    save_settings,
)

__all__ = [
    "EncryptionSettings",
    "MigrationSettings",
    "ProbeSettings",
    "Settings",
    "StorageSettings",
    "get_config_path",
    "load_env",
    "load_settings",
    "save_settings",
]
