# -*- coding: utf-8 -*-
"""Credential encryption bound to the current device."""

from .encryption import BlobInfo, EncryptionService
from .fingerprint import (
    FingerprintProvider,
    device_fingerprint,
    static_fingerprint,
)

__all__ = [
    "BlobInfo",
    "EncryptionService",
    "FingerprintProvider",
    "device_fingerprint",
    "static_fingerprint",
]
