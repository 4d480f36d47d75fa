# -*- coding: utf-8 -*-
"""Pydantic data models for providers, models and the two config schemas.

Attributes are snake_case; persisted JSON uses camelCase aliases.  Range
and shape constraints live here, cross-field rules live in
:mod:`aicfg.providers.validation`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from ..constant import CONFIG_FORMAT_VERSION


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderType(str, Enum):
    """Closed set of provider kinds. Anything else is ``custom``."""

    OPENAI = "openai"
    GOOGLE = "google"
    BEDROCK = "bedrock"
    OPENROUTER = "openrouter"
    CUSTOM = "custom"


TestStatus = Literal["success", "failure", "pending", "untested"]

# Authentication fields stored as encrypted blobs at rest.
SECRET_AUTH_FIELDS = ("api_key", "access_key_id", "secret_access_key")


class CamelModel(BaseModel):
    """Base for persisted records: camelCase on the wire."""

    model_config = {
        "populate_by_name": True,
        "alias_generator": to_camel,
        "protected_namespaces": (),
    }

    def to_json_dict(self) -> Dict[str, Any]:
        """Dump to a JSON-ready dict using the persisted (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Current schema
# ---------------------------------------------------------------------------


class ProviderAuthentication(CamelModel):
    """Credentials and endpoint details for one provider."""

    api_key: Optional[str] = Field(default=None, description="API key")
    base_url: Optional[str] = Field(default=None, description="API base URL")
    channel: Optional[str] = Field(
        default=None,
        description="Release channel for providers that expose one",
    )
    region: Optional[str] = Field(default=None, description="Cloud region")
    access_key_id: Optional[str] = Field(default=None)
    secret_access_key: Optional[str] = Field(default=None)
    custom_headers: Optional[Dict[str, str]] = Field(
        default=None,
        description="Extra headers sent with every request",
    )
    timeout: Optional[int] = Field(
        default=None,
        ge=100,
        le=300_000,
        description="Request timeout in milliseconds",
    )


class ProviderCapabilities(CamelModel):
    streaming: bool = True
    tools: bool = False
    images: bool = False
    reasoning: bool = False
    model_discovery: bool = False
    configuration_testing: bool = True


class ProviderMetadata(CamelModel):
    """Bookkeeping updated by tests and storage."""

    last_tested: Optional[datetime] = None
    test_status: TestStatus = "untested"
    error_count: int = Field(
        default=0,
        ge=0,
        description="Consecutive failed tests",
    )
    last_error: Optional[str] = None
    average_response_time: Optional[float] = Field(default=None, ge=0)
    reliability_score: Optional[float] = Field(default=None, ge=0, le=100)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: str = CONFIG_FORMAT_VERSION


class ModelParameters(CamelModel):
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    top_p: Optional[float] = Field(default=None, ge=0, le=1)
    top_k: Optional[int] = Field(default=None, ge=1, le=1000)
    frequency_penalty: Optional[float] = Field(default=None, ge=-2, le=2)
    presence_penalty: Optional[float] = Field(default=None, ge=-2, le=2)
    stop_sequences: Optional[List[str]] = Field(default=None, max_length=10)
    system_prompt: Optional[str] = None
    custom_parameters: Optional[Dict[str, Any]] = None


class ModelMetadata(CamelModel):
    context_window: Optional[int] = Field(default=None, gt=0)
    input_cost: Optional[float] = Field(
        default=None,
        ge=0,
        description="Cost per input token",
    )
    output_cost: Optional[float] = Field(
        default=None,
        ge=0,
        description="Cost per output token",
    )
    max_output_tokens: Optional[int] = Field(default=None, gt=0)
    capabilities: List[str] = Field(default_factory=list)
    family: Optional[str] = None
    deprecated: bool = False
    replacement_model_id: Optional[str] = None


class ModelConfig(CamelModel):
    """A model offered by a provider. ``provider_id`` is a back-reference."""

    id: str = Field(..., min_length=1, description="Model identifier")
    name: str = Field(
        ...,
        min_length=1,
        description="Model name used in API calls",
    )
    provider_id: str = Field(..., min_length=1)
    enabled: bool = True
    parameters: ModelParameters = Field(default_factory=ModelParameters)
    metadata: ModelMetadata = Field(default_factory=ModelMetadata)
    priority: int = Field(default=0, ge=0)
    tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    is_default: bool = False


class ProviderConfig(CamelModel):
    """One configured provider and the models it serves."""

    id: str = Field(..., min_length=1, pattern=r"^[A-Za-z0-9_-]+$")
    name: str = Field(..., min_length=1, description="Display name")
    type: ProviderType
    enabled: bool = True
    authentication: ProviderAuthentication = Field(
        default_factory=ProviderAuthentication,
    )
    models: List[ModelConfig] = Field(..., min_length=1)
    capabilities: ProviderCapabilities = Field(
        default_factory=ProviderCapabilities,
    )
    metadata: ProviderMetadata = Field(default_factory=ProviderMetadata)
    priority: int = Field(default=0, ge=0)
    tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None

    def get_model(self, model_id: str) -> Optional[ModelConfig]:
        """Find a model by id, falling back to a match on its API name."""
        for model in self.models:
            if model.id == model_id:
                return model
        for model in self.models:
            if model.name == model_id:
                return model
        return None

    def default_model(self) -> ModelConfig:
        """Return the model flagged default, else the first model."""
        for model in self.models:
            if model.is_default:
                return model
        return self.models[0]


class UserPreferences(CamelModel):
    default_provider_id: str = ""
    default_model_id: str = ""
    auto_switch: bool = False
    fallback_enabled: bool = False
    fallback_provider_id: Optional[str] = None
    fallback_model_id: Optional[str] = None
    max_retries: int = Field(default=3, ge=0, le=10)
    timeout: int = Field(
        default=30_000,
        ge=1000,
        le=300_000,
        description="Request timeout in milliseconds",
    )
    prefer_streaming: bool = True
    max_concurrent_tests: int = Field(default=3, ge=1, le=20)


class SystemMetadata(CamelModel):
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    export_source: Optional[str] = None
    checksum: Optional[str] = None


class ConfigurationSystem(CamelModel):
    """Top-level record of the current (provider-centric) schema."""

    providers: List[ProviderConfig] = Field(..., min_length=1)
    user_preferences: UserPreferences
    version: str = CONFIG_FORMAT_VERSION
    last_migrated: Optional[datetime] = None
    metadata: SystemMetadata = Field(default_factory=SystemMetadata)

    def get_provider(self, provider_id: str) -> Optional[ProviderConfig]:
        for provider in self.providers:
            if provider.id == provider_id:
                return provider
        return None


# ---------------------------------------------------------------------------
# Legacy schema
# ---------------------------------------------------------------------------


class LegacyParameters(BaseModel):
    model_config = {"populate_by_name": True}

    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0, alias="maxTokens")
    top_p: Optional[float] = Field(default=None, ge=0, le=1, alias="topP")


class LegacyCustomProvider(BaseModel):
    """An ad-hoc endpoint declared inside the legacy flat config."""

    model_config = {"populate_by_name": True}

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: Literal["openai-compatible", "custom-api"] = "openai-compatible"
    base_url: str = Field(..., min_length=1, alias="baseURL")
    models: List[str] = Field(..., min_length=1)
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    custom_endpoint: Optional[str] = Field(
        default=None,
        alias="customEndpoint",
    )


class LegacyAIConfig(BaseModel):
    """Single active provider plus model, flat parameters, custom list."""

    model_config = {"populate_by_name": True}

    provider: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    parameters: Optional[LegacyParameters] = None
    custom_providers: Optional[List[LegacyCustomProvider]] = Field(
        default=None,
        alias="customProviders",
    )

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Static provider definitions (registry)
# ---------------------------------------------------------------------------


class ModelInfo(BaseModel):
    """A single model offered by a built-in provider."""

    id: str = Field(..., description="Model identifier used in API calls")
    name: str = Field(..., description="Human-readable model name")


class ProviderDefinition(BaseModel):
    """Static definition of a provider kind (built-in or custom)."""

    id: str = Field(..., description="Provider identifier")
    name: str = Field(..., description="Human-readable provider name")
    type: ProviderType
    default_base_url: str = Field(
        default="",
        description="Default API base URL",
    )
    models: List[ModelInfo] = Field(
        default_factory=list,
        description="Built-in LLM model list",
    )
    supports_model_listing: bool = Field(
        default=False,
        description="Whether GET {base_url}/models lists models",
    )
    temperature_max: float = Field(
        default=2.0,
        description="Upper bound accepted for temperature",
    )
