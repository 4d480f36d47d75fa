# -*- coding: utf-8 -*-
"""Structural format sniffing, confirmed by the matching validator."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from ..providers.models import ConfigurationSystem, LegacyAIConfig
from ..providers.validation import (
    validate_configuration_system,
    validate_legacy_ai_config,
)
from .models import ConfigFormat

AnyConfig = Union[ConfigurationSystem, LegacyAIConfig]


class Detection(BaseModel):
    """Outcome of detection: the confirmed format plus the parsed config.

    ``candidate`` is what the structure suggested; when the validator
    rejects it, ``format`` is ``unknown`` and ``errors`` says why.
    """

    format: ConfigFormat
    candidate: ConfigFormat
    config: Optional[AnyConfig] = None
    errors: List[str] = Field(default_factory=list)


class FormatInfo(BaseModel):
    name: str
    description: str
    features: List[str] = Field(default_factory=list)
    limitations: List[str] = Field(default_factory=list)
    migration_path: Optional[str] = None


_FORMAT_INFO: Dict[ConfigFormat, FormatInfo] = {
    ConfigFormat.LEGACY: FormatInfo(
        name="Legacy AI config",
        description="Single active provider and model with flat parameters",
        features=[
            "One active provider",
            "Flat generation parameters",
            "Ad-hoc custom providers",
        ],
        limitations=[
            "No per-provider model lists for built-in providers",
            "No fallback provider",
            "No test metadata",
        ],
        migration_path="Migrate to the provider-centric format",
    ),
    ConfigFormat.CURRENT: FormatInfo(
        name="Provider configuration",
        description="Provider-centric configuration with preferences",
        features=[
            "Multiple providers with ordered model lists",
            "Encrypted credentials",
            "Default and fallback selection",
            "Connectivity test metadata",
        ],
    ),
    ConfigFormat.UNKNOWN: FormatInfo(
        name="Unknown",
        description="Not recognised as any supported configuration format",
        limitations=["Cannot be loaded or migrated"],
    ),
}


def sniff_format(raw: Any) -> ConfigFormat:
    """Guess the format from structure alone."""
    if isinstance(raw, ConfigurationSystem):
        return ConfigFormat.CURRENT
    if isinstance(raw, LegacyAIConfig):
        return ConfigFormat.LEGACY
    if not isinstance(raw, dict):
        return ConfigFormat.UNKNOWN
    if isinstance(raw.get("providers"), list) and isinstance(
        raw.get("userPreferences", raw.get("user_preferences")),
        dict,
    ):
        return ConfigFormat.CURRENT
    if isinstance(raw.get("provider"), str) and isinstance(
        raw.get("model"),
        str,
    ):
        return ConfigFormat.LEGACY
    return ConfigFormat.UNKNOWN


def detect(raw: Any) -> Detection:
    candidate = sniff_format(raw)
    if candidate == ConfigFormat.CURRENT:
        result = validate_configuration_system(raw)
    elif candidate == ConfigFormat.LEGACY:
        result = validate_legacy_ai_config(raw)
    else:
        return Detection(
            format=ConfigFormat.UNKNOWN,
            candidate=candidate,
            errors=["Configuration does not match any known format"],
        )
    if result:
        return Detection(
            format=candidate,
            candidate=candidate,
            config=result.value,
        )
    return Detection(
        format=ConfigFormat.UNKNOWN,
        candidate=candidate,
        errors=result.messages(),
    )


def detect_format(raw: Any) -> ConfigFormat:
    return detect(raw).format


def format_info(fmt: ConfigFormat) -> FormatInfo:
    return _FORMAT_INFO[fmt]
