# -*- coding: utf-8 -*-
from .checksum import canonical_json, checksum, config_checksum
from .logging import setup_logger
from .masking import mask_api_key, mask_secrets

__all__ = [
    "canonical_json",
    "checksum",
    "config_checksum",
    "mask_api_key",
    "mask_secrets",
    "setup_logger",
]
