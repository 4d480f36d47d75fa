# -*- coding: utf-8 -*-
"""Provider management: schemas, validation, registry + discovery."""

from .discovery import DiscoveryResult, ModelDiscoveryService
from .models import (
    ConfigurationSystem,
    LegacyAIConfig,
    LegacyCustomProvider,
    ModelConfig,
    ModelInfo,
    ModelMetadata,
    ModelParameters,
    ProviderAuthentication,
    ProviderCapabilities,
    ProviderConfig,
    ProviderDefinition,
    ProviderMetadata,
    ProviderType,
    UserPreferences,
)
from .registry import (
    PROVIDERS,
    ProviderClient,
    ProviderFactory,
    ProviderRegistry,
    list_providers,
)
from .validation import (
    validate_configuration_system,
    validate_legacy_ai_config,
    validate_model_config,
    validate_provider_config,
    validate_url,
    validate_user_preferences,
)

__all__ = [
    # models
    "ConfigurationSystem",
    "LegacyAIConfig",
    "LegacyCustomProvider",
    "ModelConfig",
    "ModelInfo",
    "ModelMetadata",
    "ModelParameters",
    "ProviderAuthentication",
    "ProviderCapabilities",
    "ProviderConfig",
    "ProviderDefinition",
    "ProviderMetadata",
    "ProviderType",
    "UserPreferences",
    # registry
    "PROVIDERS",
    "ProviderClient",
    "ProviderFactory",
    "ProviderRegistry",
    "list_providers",
    # validation
    "validate_configuration_system",
    "validate_legacy_ai_config",
    "validate_model_config",
    "validate_provider_config",
    "validate_url",
    "validate_user_preferences",
    # discovery
    "DiscoveryResult",
    "ModelDiscoveryService",
]
