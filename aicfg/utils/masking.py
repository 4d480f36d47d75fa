# -*- coding: utf-8 -*-
"""Display-safe renderings of stored secrets."""
from __future__ import annotations

from typing import Any, Dict, Iterable

from pydantic.alias_generators import to_camel

VISIBLE_CHARS = 6
_MASK = "*" * 8


def mask_api_key(secret: str, visible_chars: int = VISIBLE_CHARS) -> str:
    """Mask a key or encrypted blob, keeping its first 3 and last few chars.

    The mask has a fixed width so the output does not reveal the length.
    Values too short to show any part of are masked entirely.
    """
    if not secret:
        return ""
    if len(secret) <= 3 + visible_chars * 2:
        return _MASK
    return f"{secret[:3]}{_MASK}{secret[-visible_chars:]}"


def mask_secrets(
    auth: Dict[str, Any],
    fields: Iterable[str],
    visible_chars: int = VISIBLE_CHARS,
) -> Dict[str, Any]:
    """Copy of a JSON authentication block with *fields* masked.

    *fields* are attribute names; both the snake_case and the camelCase
    spelling are looked up.
    """
    masked = dict(auth)
    for field in fields:
        for key in {field, to_camel(field)}:
            if masked.get(key):
                masked[key] = mask_api_key(masked[key], visible_chars)
    return masked
