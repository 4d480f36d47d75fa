# -*- coding: utf-8 -*-
"""Exception hierarchy shared by every service.

Low-level services (encryption, registry, versioning) raise these;
orchestrators catch them and fold them into structured results.
"""

from __future__ import annotations

from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .result import FieldError


class ConfigEngineError(Exception):
    """Base class for all aicfg errors."""


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------


class CryptoEnvironmentError(ConfigEngineError):
    """The host cannot provide the required primitives (AES-GCM, PBKDF2)."""


class EncryptionError(ConfigEngineError):
    """Encrypting a value failed."""


class EmptyInputError(EncryptionError):
    """Refusing to encrypt an empty string."""


class DecryptionError(ConfigEngineError):
    """Decrypting a blob failed."""


class CorruptedDataError(DecryptionError):
    """The blob is not valid base64 or does not match any known layout."""


class AuthenticationFailedError(DecryptionError):
    """The GCM tag was rejected: tampered blob or different device."""


# ---------------------------------------------------------------------------
# Configuration / registry
# ---------------------------------------------------------------------------


class InvalidConfigurationError(ConfigEngineError):
    """A configuration failed validation.

    ``errors`` carries the field-level details.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List["FieldError"]] = None,
    ):
        super().__init__(message)
        self.errors: List["FieldError"] = list(errors or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        details = "; ".join(str(e) for e in self.errors)
        return f"{base}: {details}"


class UnsupportedProviderError(ConfigEngineError):
    """No registered factory handles the provider type."""


# ---------------------------------------------------------------------------
# Probing
# ---------------------------------------------------------------------------


class ProbeError(ConfigEngineError):
    """A network probe against a provider failed."""


class NetworkError(ProbeError):
    """Transport-level failure (DNS, refused connection, TLS)."""


class ProbeTimeoutError(ProbeError):
    """A probe exceeded its time limit."""


# ---------------------------------------------------------------------------
# Backups / storage
# ---------------------------------------------------------------------------


class BackupNotFoundError(ConfigEngineError):
    """No backup exists with the requested id or version."""


class IntegrityCheckFailedError(ConfigEngineError):
    """A backup's stored checksum does not match its data."""


class StorageError(ConfigEngineError):
    """Reading or writing the key-value store failed."""
