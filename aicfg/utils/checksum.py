# -*- coding: utf-8 -*-
"""Content checksums over canonical JSON."""
from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json(value: Any) -> str:
    """Serialise with sorted keys and no whitespace so equal data hashes
    equally regardless of insertion order."""
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def checksum(value: Any) -> str:
    """SHA-256 hex digest of ``canonical_json(value)``."""
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()


def config_checksum(config: Any) -> str:
    """Checksum of a configuration's providers and preferences.

    *config* is anything with ``to_json_dict()``; metadata is left out so
    the checksum can be stored inside it.
    """
    data = config.to_json_dict()
    return checksum(
        {
            "providers": data.get("providers", []),
            "userPreferences": data.get("userPreferences", {}),
        },
    )
