# -*- coding: utf-8 -*-
"""Validators for both config schemas.

Every ``validate_*`` function returns a :class:`~aicfg.result.Result`
holding either the typed value or an ordered list of field errors.
Malformed input never raises; only programmer errors (a ``None`` schema)
do.
"""

from __future__ import annotations

import ipaddress
import re
from typing import Any, List, Optional, Type, TypeVar
from urllib.parse import urlparse

from pydantic import BaseModel, ValidationError

from ..result import FieldError, Result
from .models import (
    ConfigurationSystem,
    LegacyAIConfig,
    ModelConfig,
    ProviderConfig,
    ProviderType,
    UserPreferences,
)

M = TypeVar("M", bound=BaseModel)

# Providers that authenticate with a single API key.
_API_KEY_TYPES = (
    ProviderType.OPENAI,
    ProviderType.GOOGLE,
    ProviderType.OPENROUTER,
)

_PRIVATE_172 = re.compile(r"^172\.(1[6-9]|2\d|3[01])\.")
_INTERNAL_PREFIXES = ("127.", "10.", "192.168.", "169.254.", "0.")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _join(prefix: str, path: str) -> str:
    if not prefix:
        return path
    if not path:
        return prefix
    return f"{prefix}.{path}"


def _pydantic_errors(exc: ValidationError, prefix: str = "") -> List[FieldError]:
    """Flatten a pydantic ``ValidationError`` into field errors."""
    errors: List[FieldError] = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err.get("loc", ()))
        errors.append(FieldError(path=_join(prefix, path), message=err["msg"]))
    return errors


def _parse(schema: Optional[Type[M]], raw: Any) -> Result[M]:
    """Validate *raw* against *schema* without raising on bad input."""
    if schema is None:
        raise TypeError("schema must not be None")
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(by_alias=True)
    try:
        return Result.ok(schema.model_validate(raw))
    except ValidationError as exc:
        return Result(errors=_pydantic_errors(exc))


def _is_internal_host(host: str) -> bool:
    host = host.strip("[]").lower()
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        # A DNS name such as 10.example.com is not an address.
        return False
    if host.startswith(_INTERNAL_PREFIXES) or _PRIVATE_172.match(host):
        return True
    return (
        addr.is_loopback
        or addr.is_private
        or addr.is_link_local
        or addr.is_unspecified
    )


def _check_model(model: ModelConfig, prefix: str = "") -> List[FieldError]:
    errors: List[FieldError] = []
    max_tokens = model.parameters.max_tokens
    window = model.metadata.context_window
    if max_tokens is not None and window is not None and max_tokens > window:
        errors.append(
            FieldError(
                path=_join(prefix, "parameters.maxTokens"),
                message=(
                    f"maxTokens ({max_tokens}) must not exceed the "
                    f"context window ({window})"
                ),
            ),
        )
    return errors


def authentication_errors(
    provider: ProviderConfig,
    prefix: str = "",
) -> List[FieldError]:
    """Presence checks for the credentials each provider type needs."""
    auth = provider.authentication
    path = _join(prefix, "authentication")
    errors: List[FieldError] = []

    if provider.type in _API_KEY_TYPES and not auth.api_key:
        errors.append(
            FieldError(
                path=_join(path, "apiKey"),
                message=f"API key is required for {provider.type.value} "
                "providers",
            ),
        )
    elif provider.type == ProviderType.BEDROCK:
        required = (
            ("region", auth.region, "Region"),
            ("accessKeyId", auth.access_key_id, "Access key id"),
            ("secretAccessKey", auth.secret_access_key, "Secret access key"),
        )
        for field, value, label in required:
            if not value:
                errors.append(
                    FieldError(
                        path=_join(path, field),
                        message=f"{label} is required for bedrock providers "
                        f"({field})",
                    ),
                )
    elif provider.type == ProviderType.CUSTOM and not auth.base_url:
        errors.append(
            FieldError(
                path=_join(path, "baseUrl"),
                message="Base URL is required for custom providers",
            ),
        )

    if auth.base_url:
        url_result = validate_url(auth.base_url)
        for err in url_result.errors:
            errors.append(
                FieldError(path=_join(path, "baseUrl"), message=err.message),
            )
    return errors


def _check_provider(
    provider: ProviderConfig,
    prefix: str = "",
) -> List[FieldError]:
    errors = authentication_errors(provider, prefix)

    seen: set[str] = set()
    defaults = 0
    for i, model in enumerate(provider.models):
        model_path = _join(prefix, f"models.{i}")
        if model.provider_id != provider.id:
            errors.append(
                FieldError(
                    path=_join(model_path, "providerId"),
                    message=f"Model providerId '{model.provider_id}' does not "
                    f"match provider id '{provider.id}'",
                ),
            )
        if model.id in seen:
            errors.append(
                FieldError(
                    path=_join(model_path, "id"),
                    message=f"Duplicate model id '{model.id}'",
                ),
            )
        seen.add(model.id)
        if model.is_default:
            defaults += 1
        errors.extend(_check_model(model, model_path))

    if defaults > 1:
        errors.append(
            FieldError(
                path=_join(prefix, "models"),
                message="At most one model per provider may be the default",
            ),
        )
    return errors


def _check_preferences(
    prefs: UserPreferences,
    prefix: str = "",
) -> List[FieldError]:
    errors: List[FieldError] = []
    if prefs.fallback_enabled:
        if not prefs.fallback_provider_id:
            errors.append(
                FieldError(
                    path=_join(prefix, "fallbackProviderId"),
                    message="Fallback provider is required when fallback "
                    "is enabled",
                ),
            )
        if not prefs.fallback_model_id:
            errors.append(
                FieldError(
                    path=_join(prefix, "fallbackModelId"),
                    message="Fallback model is required when fallback "
                    "is enabled",
                ),
            )
    return errors


def _check_reference(
    config: ConfigurationSystem,
    provider_id: Optional[str],
    model_id: Optional[str],
    provider_path: str,
    model_path: str,
    label: str,
) -> List[FieldError]:
    provider = config.get_provider(provider_id or "")
    if provider is None:
        return [
            FieldError(
                path=provider_path,
                message=f"{label} provider '{provider_id}' does not exist",
            ),
        ]
    errors: List[FieldError] = []
    if not provider.enabled:
        errors.append(
            FieldError(
                path=provider_path,
                message=f"{label} provider '{provider_id}' is disabled",
            ),
        )
    model = next((m for m in provider.models if m.id == model_id), None)
    if model is None:
        errors.append(
            FieldError(
                path=model_path,
                message=f"{label} model '{model_id}' does not exist in "
                f"provider '{provider_id}'",
            ),
        )
    elif not model.enabled:
        errors.append(
            FieldError(
                path=model_path,
                message=f"{label} model '{model_id}' is disabled",
            ),
        )
    return errors


# ---------------------------------------------------------------------------
# Public validators
# ---------------------------------------------------------------------------


def validate_url(url: Any) -> Result[str]:
    """Accept only HTTPS URLs that do not target internal addresses."""
    if not isinstance(url, str) or not url.strip():
        return Result.fail_message("URL must be a non-empty string")
    parsed = urlparse(url.strip())
    errors: List[FieldError] = []
    if parsed.scheme.lower() != "https":
        errors.append(FieldError(message="URL must use HTTPS"))
    host = parsed.hostname
    if not host:
        errors.append(FieldError(message="URL must include a host"))
    elif _is_internal_host(host):
        errors.append(
            FieldError(
                message=f"URL must not point to an internal or private "
                f"address ({host})",
            ),
        )
    if errors:
        return Result(errors=errors)
    return Result.ok(url.strip())


def validate_model_config(
    raw: Any,
    schema: Optional[Type[ModelConfig]] = ModelConfig,
) -> Result[ModelConfig]:
    result = _parse(schema, raw)
    if not result:
        return result
    errors = _check_model(result.value)
    return Result(errors=errors) if errors else result


def validate_provider_config(
    raw: Any,
    schema: Optional[Type[ProviderConfig]] = ProviderConfig,
) -> Result[ProviderConfig]:
    result = _parse(schema, raw)
    if not result:
        return result
    errors = _check_provider(result.value)
    return Result(errors=errors) if errors else result


def validate_user_preferences(
    raw: Any,
    schema: Optional[Type[UserPreferences]] = UserPreferences,
) -> Result[UserPreferences]:
    result = _parse(schema, raw)
    if not result:
        return result
    errors = _check_preferences(result.value)
    return Result(errors=errors) if errors else result


def validate_configuration_system(
    raw: Any,
    schema: Optional[Type[ConfigurationSystem]] = ConfigurationSystem,
) -> Result[ConfigurationSystem]:
    """Structural checks plus every cross-reference inside the system."""
    result = _parse(schema, raw)
    if not result:
        return result
    config = result.value
    errors: List[FieldError] = []

    seen: set[str] = set()
    for i, provider in enumerate(config.providers):
        if provider.id in seen:
            errors.append(
                FieldError(
                    path=f"providers.{i}.id",
                    message=f"Duplicate provider id '{provider.id}'",
                ),
            )
        seen.add(provider.id)
        errors.extend(_check_provider(provider, f"providers.{i}"))

    prefs = config.user_preferences
    errors.extend(_check_preferences(prefs, "userPreferences"))
    errors.extend(
        _check_reference(
            config,
            prefs.default_provider_id,
            prefs.default_model_id,
            "userPreferences.defaultProviderId",
            "userPreferences.defaultModelId",
            "Default",
        ),
    )
    if prefs.fallback_enabled and prefs.fallback_provider_id:
        errors.extend(
            _check_reference(
                config,
                prefs.fallback_provider_id,
                prefs.fallback_model_id,
                "userPreferences.fallbackProviderId",
                "userPreferences.fallbackModelId",
                "Fallback",
            ),
        )
    return Result(errors=errors) if errors else result


def validate_legacy_ai_config(
    raw: Any,
    schema: Optional[Type[LegacyAIConfig]] = LegacyAIConfig,
) -> Result[LegacyAIConfig]:
    result = _parse(schema, raw)
    if not result:
        return result
    errors: List[FieldError] = []
    seen: set[str] = set()
    for i, custom in enumerate(result.value.custom_providers or []):
        path = f"customProviders.{i}"
        if custom.id in seen:
            errors.append(
                FieldError(
                    path=f"{path}.id",
                    message=f"Duplicate custom provider id '{custom.id}'",
                ),
            )
        seen.add(custom.id)
        for err in validate_url(custom.base_url).errors:
            errors.append(
                FieldError(path=f"{path}.baseURL", message=err.message),
            )
    return Result(errors=errors) if errors else result
