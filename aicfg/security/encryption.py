# -*- coding: utf-8 -*-
"""Device-bound encryption of credential strings.

Blob layout (base64 of)::

    current: [u32 LE version][u64 LE ms timestamp][salt 16][nonce 12][ct+tag]
    legacy:                                      [salt 16][nonce 12][ct+tag]

The 12-byte header is bound as AES-GCM associated data, so flipping any
byte of a current blob is detected.  Legacy blobs stay decryptable.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import os
import struct
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel

from ..constant import MIN_PBKDF2_ITERATIONS, PBKDF2_ITERATIONS
from ..errors import (
    AuthenticationFailedError,
    CorruptedDataError,
    CryptoEnvironmentError,
    DecryptionError,
    EmptyInputError,
)
from ..result import Result
from .fingerprint import FingerprintProvider, device_fingerprint

logger = logging.getLogger(__name__)

CURRENT_VERSION = 1
SUPPORTED_VERSIONS = (CURRENT_VERSION,)

KEY_SIZE = 32
SALT_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16

_HEADER = struct.Struct("<IQ")
HEADER_SIZE = _HEADER.size

_LEGACY_MIN = SALT_SIZE + NONCE_SIZE + TAG_SIZE
_CURRENT_MIN = HEADER_SIZE + _LEGACY_MIN

_KEY_CACHE_SIZE = 32


class BlobInfo(BaseModel):
    """What can be learned about a blob without decrypting it."""

    valid: bool
    version: Optional[int] = None
    legacy: bool = False
    timestamp: Optional[datetime] = None
    error: Optional[str] = None


class _Parts:
    __slots__ = ("header", "salt", "nonce", "ciphertext")

    def __init__(self, header, salt, nonce, ciphertext):
        self.header: Optional[bytes] = header
        self.salt: bytes = salt
        self.nonce: bytes = nonce
        self.ciphertext: bytes = ciphertext


def _decode(blob: str) -> bytes:
    if not isinstance(blob, str) or not blob:
        raise CorruptedDataError("Encrypted value is empty")
    try:
        return base64.b64decode(blob.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
        raise CorruptedDataError("Encrypted value is not valid base64") from exc


def _split_legacy(raw: bytes) -> _Parts:
    if len(raw) < _LEGACY_MIN:
        raise CorruptedDataError(
            f"Encrypted value too short ({len(raw)} bytes)",
        )
    salt = raw[:SALT_SIZE]
    nonce = raw[SALT_SIZE : SALT_SIZE + NONCE_SIZE]
    return _Parts(None, salt, nonce, raw[SALT_SIZE + NONCE_SIZE :])


def _split_current(raw: bytes) -> Optional[_Parts]:
    """Split a versioned blob, or return None if the tag is unknown."""
    if len(raw) < _CURRENT_MIN:
        return None
    version, _ = _HEADER.unpack_from(raw)
    if version not in SUPPORTED_VERSIONS:
        return None
    body = raw[HEADER_SIZE:]
    salt = body[:SALT_SIZE]
    nonce = body[SALT_SIZE : SALT_SIZE + NONCE_SIZE]
    return _Parts(
        raw[:HEADER_SIZE],
        salt,
        nonce,
        body[SALT_SIZE + NONCE_SIZE :],
    )


class EncryptionService:
    """AES-256-GCM with a PBKDF2 key derived from the device fingerprint.

    No key material is persisted; derived keys are only cached in memory
    per salt.
    """

    def __init__(
        self,
        fingerprint: FingerprintProvider = device_fingerprint,
        *,
        iterations: int = PBKDF2_ITERATIONS,
        clock: Callable[[], float] = time.time,
        random_bytes: Callable[[int], bytes] = os.urandom,
    ):
        self._fingerprint = fingerprint
        self._iterations = max(int(iterations), MIN_PBKDF2_ITERATIONS)
        self._clock = clock
        self._random = random_bytes
        self._keys: "OrderedDict[Tuple[str, bytes], bytes]" = OrderedDict()

    @property
    def iterations(self) -> int:
        return self._iterations

    # ------------------------------------------------------------------
    # Key derivation
    # ------------------------------------------------------------------

    def _derive_key(self, salt: bytes) -> bytes:
        secret = self._fingerprint()
        cache_key = (secret, salt)
        cached = self._keys.get(cache_key)
        if cached is not None:
            self._keys.move_to_end(cache_key)
            return cached
        try:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=KEY_SIZE,
                salt=salt,
                iterations=self._iterations,
            )
            key = kdf.derive(secret.encode("utf-8"))
        except UnsupportedAlgorithm as exc:
            raise CryptoEnvironmentError(
                "PBKDF2-HMAC-SHA256 is not available on this host",
            ) from exc
        self._keys[cache_key] = key
        if len(self._keys) > _KEY_CACHE_SIZE:
            self._keys.popitem(last=False)
        return key

    # ------------------------------------------------------------------
    # Sync workers (run via asyncio.to_thread)
    # ------------------------------------------------------------------

    def _encrypt_sync(self, plaintext: str) -> str:
        salt = self._random(SALT_SIZE)
        nonce = self._random(NONCE_SIZE)
        header = _HEADER.pack(CURRENT_VERSION, int(self._clock() * 1000))
        key = self._derive_key(salt)
        try:
            ciphertext = AESGCM(key).encrypt(
                nonce,
                plaintext.encode("utf-8"),
                header,
            )
        except UnsupportedAlgorithm as exc:
            raise CryptoEnvironmentError(
                "AES-256-GCM is not available on this host",
            ) from exc
        return base64.b64encode(header + salt + nonce + ciphertext).decode(
            "ascii",
        )

    def _open(self, parts: _Parts) -> str:
        key = self._derive_key(parts.salt)
        try:
            plaintext = AESGCM(key).decrypt(
                parts.nonce,
                parts.ciphertext,
                parts.header,
            )
        except UnsupportedAlgorithm as exc:
            raise CryptoEnvironmentError(
                "AES-256-GCM is not available on this host",
            ) from exc
        except InvalidTag as exc:
            raise AuthenticationFailedError(
                "Authentication tag rejected: value was tampered with "
                "or encrypted on another device",
            ) from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptedDataError("Decrypted value is not UTF-8") from exc

    def _decrypt_sync(self, blob: str) -> str:
        raw = _decode(blob)
        parts = _split_current(raw)
        if parts is None:
            return self._open(_split_legacy(raw))
        try:
            return self._open(parts)
        except AuthenticationFailedError:
            # A legacy salt can start with a valid version tag by chance.
            return self._open(_split_legacy(raw))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def encrypt(self, plaintext: str) -> str:
        """Encrypt *plaintext* into a versioned base64 blob."""
        if not plaintext:
            raise EmptyInputError("Cannot encrypt an empty value")
        return await asyncio.to_thread(self._encrypt_sync, plaintext)

    async def decrypt(self, blob: str) -> str:
        """Decrypt a current or legacy blob.

        Raises ``CorruptedDataError`` or ``AuthenticationFailedError``.
        """
        return await asyncio.to_thread(self._decrypt_sync, blob)

    async def decrypt_result(self, blob: str) -> Result[str]:
        """Like :meth:`decrypt`, but returns a failed result instead."""
        try:
            return Result.ok(await self.decrypt(blob))
        except DecryptionError as exc:
            logger.debug("Decryption failed: %s", exc)
            return Result.fail_message(str(exc))

    def validate_format(self, blob: str) -> BlobInfo:
        """Inspect a blob's layout without decrypting it."""
        try:
            raw = _decode(blob)
        except CorruptedDataError as exc:
            return BlobInfo(valid=False, error=str(exc))
        if len(raw) >= _CURRENT_MIN:
            version, millis = _HEADER.unpack_from(raw)
            if version in SUPPORTED_VERSIONS:
                return BlobInfo(
                    valid=True,
                    version=version,
                    timestamp=datetime.fromtimestamp(
                        millis / 1000,
                        tz=timezone.utc,
                    ),
                )
        if len(raw) >= _LEGACY_MIN:
            return BlobInfo(valid=True, legacy=True)
        return BlobInfo(
            valid=False,
            error=f"Encrypted value too short ({len(raw)} bytes)",
        )

    def looks_encrypted(self, value: Optional[str]) -> bool:
        """Heuristic used by migration to avoid double encryption."""
        if not value:
            return False
        info = self.validate_format(value)
        return info.valid and not info.legacy

    @staticmethod
    def is_available() -> bool:
        """Whether the host's crypto backend provides AES-GCM and PBKDF2."""
        try:
            AESGCM(bytes(KEY_SIZE))
            PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=KEY_SIZE,
                salt=bytes(SALT_SIZE),
                iterations=1,
            )
        except UnsupportedAlgorithm:
            return False
        return True
