# -*- coding: utf-8 -*-
"""Built-in provider definitions and the client factory registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from ..constant import TEST_TIMEOUT
from ..errors import InvalidConfigurationError, UnsupportedProviderError
from ..result import FieldError
from .models import (
    ModelConfig,
    ModelInfo,
    ModelParameters,
    ProviderConfig,
    ProviderDefinition,
    ProviderType,
)
from .validation import authentication_errors

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Built-in LLM model lists
# ---------------------------------------------------------------------------

OPENAI_MODELS: List[ModelInfo] = [
    ModelInfo(id="gpt-4-turbo", name="GPT-4 Turbo"),
    ModelInfo(id="gpt-4", name="GPT-4"),
    ModelInfo(id="gpt-3.5-turbo", name="GPT-3.5 Turbo"),
    ModelInfo(id="gpt-4o", name="GPT-4o"),
]

GOOGLE_MODELS: List[ModelInfo] = [
    ModelInfo(
        id="gemini-2.5-flash-preview-05-20",
        name="Gemini 2.5 Flash Preview",
    ),
    ModelInfo(id="gemini-2.5-pro", name="Gemini 2.5 Pro"),
    ModelInfo(id="gemini-pro", name="Gemini Pro"),
]

BEDROCK_MODELS: List[ModelInfo] = [
    ModelInfo(
        id="global.anthropic.claude-sonnet-4-5-20250929-v1:0",
        name="Claude Sonnet 4.5 (global)",
    ),
    ModelInfo(
        id="anthropic.claude-sonnet-4-20250514-v1:0",
        name="Claude Sonnet 4",
    ),
    ModelInfo(
        id="anthropic.claude-3-5-sonnet-20240620-v1:0",
        name="Claude 3.5 Sonnet",
    ),
]

OPENROUTER_MODELS: List[ModelInfo] = [
    ModelInfo(id="anthropic/claude-3.5-sonnet", name="Claude 3.5 Sonnet"),
    ModelInfo(id="google/gemini-pro", name="Gemini Pro"),
    ModelInfo(id="openai/gpt-4-turbo", name="GPT-4 Turbo"),
]

# ---------------------------------------------------------------------------
# Provider definitions
# ---------------------------------------------------------------------------

PROVIDER_OPENAI = ProviderDefinition(
    id="openai",
    name="OpenAI",
    type=ProviderType.OPENAI,
    default_base_url="https://api.openai.com/v1",
    models=OPENAI_MODELS,
    supports_model_listing=True,
)

PROVIDER_GOOGLE = ProviderDefinition(
    id="google",
    name="Google AI",
    type=ProviderType.GOOGLE,
    default_base_url="https://generativelanguage.googleapis.com/v1beta",
    models=GOOGLE_MODELS,
)

PROVIDER_BEDROCK = ProviderDefinition(
    id="bedrock",
    name="AWS Bedrock",
    type=ProviderType.BEDROCK,
    models=BEDROCK_MODELS,
    temperature_max=1.0,
)

PROVIDER_OPENROUTER = ProviderDefinition(
    id="openrouter",
    name="OpenRouter",
    type=ProviderType.OPENROUTER,
    default_base_url="https://openrouter.ai/api/v1",
    models=OPENROUTER_MODELS,
    supports_model_listing=True,
)

PROVIDER_CUSTOM = ProviderDefinition(
    id="custom",
    name="Custom",
    type=ProviderType.CUSTOM,
    supports_model_listing=True,
)

# Registry: provider type -> ProviderDefinition
PROVIDERS: Dict[str, ProviderDefinition] = {
    PROVIDER_OPENAI.id: PROVIDER_OPENAI,
    PROVIDER_GOOGLE.id: PROVIDER_GOOGLE,
    PROVIDER_BEDROCK.id: PROVIDER_BEDROCK,
    PROVIDER_OPENROUTER.id: PROVIDER_OPENROUTER,
    PROVIDER_CUSTOM.id: PROVIDER_CUSTOM,
}


def list_providers() -> List[ProviderDefinition]:
    """Return all registered provider definitions."""
    return list(PROVIDERS.values())


def bedrock_endpoint(region: str) -> str:
    return f"https://bedrock-runtime.{region}.amazonaws.com"


# ---------------------------------------------------------------------------
# Client handle
# ---------------------------------------------------------------------------


class ProviderClient(BaseModel):
    """Everything needed to talk to one provider/model pair.

    Credentials on the handle are plaintext; decrypt before building.
    """

    model_config = {"frozen": True}

    provider_id: str
    kind: ProviderType
    base_url: str = Field(default="", description="API base URL")
    model: str = Field(..., description="Model name used in API calls")
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: float = Field(default=TEST_TIMEOUT, description="Seconds")
    region: Optional[str] = None
    credentials: Dict[str, str] = Field(
        default_factory=dict,
        description="Signing credentials for providers without bearer auth",
    )
    parameters: ModelParameters = Field(default_factory=ModelParameters)

    def http_client(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url.rstrip("/"),
            headers=self.headers,
            timeout=self.timeout,
            transport=transport,
        )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

Validator = Callable[[ProviderConfig, Optional[str]], List[FieldError]]
Builder = Callable[[ProviderConfig, ModelConfig], ProviderClient]


@dataclass(frozen=True)
class ProviderFactory:
    """Pure functions that recognise, check and build one provider kind."""

    kind: ProviderType
    definition: ProviderDefinition
    handles: Callable[[ProviderConfig], bool]
    validate: Validator
    build: Builder


def _timeout(provider: ProviderConfig) -> float:
    if provider.authentication.timeout:
        return provider.authentication.timeout / 1000
    return TEST_TIMEOUT


def _merge_headers(
    provider: ProviderConfig,
    base: Dict[str, str],
) -> Dict[str, str]:
    headers = {"Content-Type": "application/json", **base}
    headers.update(provider.authentication.custom_headers or {})
    return headers


def _resolve_model(
    provider: ProviderConfig,
    model_id: Optional[str],
    definition: ProviderDefinition,
) -> Optional[ModelConfig]:
    """Find the requested model, accepting built-in names for vendors."""
    if model_id is None:
        return provider.default_model()
    model = provider.get_model(model_id)
    if model is not None:
        return model
    if any(m.id == model_id for m in definition.models):
        return ModelConfig(id=model_id, name=model_id, provider_id=provider.id)
    return None


def _common_errors(
    provider: ProviderConfig,
    model_id: Optional[str],
    definition: ProviderDefinition,
) -> List[FieldError]:
    errors = list(authentication_errors(provider))
    model = _resolve_model(provider, model_id, definition)
    if model is None:
        errors.append(
            FieldError(
                path="modelId",
                message=f"Model '{model_id}' is not configured for provider "
                f"'{provider.id}'",
            ),
        )
        return errors
    temperature = model.parameters.temperature
    if temperature is not None and temperature > definition.temperature_max:
        errors.append(
            FieldError(
                path="parameters.temperature",
                message=f"Temperature must be between 0 and "
                f"{definition.temperature_max:g} for "
                f"{definition.type.value} providers",
            ),
        )
    return errors


def _bearer_builder(definition: ProviderDefinition) -> Builder:
    def _build(provider: ProviderConfig, model: ModelConfig) -> ProviderClient:
        auth = provider.authentication
        base = {"Authorization": f"Bearer {auth.api_key}"} if auth.api_key else {}
        return ProviderClient(
            provider_id=provider.id,
            kind=definition.type,
            base_url=auth.base_url or definition.default_base_url,
            model=model.name,
            headers=_merge_headers(provider, base),
            timeout=_timeout(provider),
            parameters=model.parameters,
        )

    return _build


def _build_google(provider: ProviderConfig, model: ModelConfig) -> ProviderClient:
    auth = provider.authentication
    return ProviderClient(
        provider_id=provider.id,
        kind=ProviderType.GOOGLE,
        base_url=auth.base_url or PROVIDER_GOOGLE.default_base_url,
        model=model.name,
        headers=_merge_headers(provider, {"x-goog-api-key": auth.api_key or ""}),
        timeout=_timeout(provider),
        parameters=model.parameters,
    )


def _build_bedrock(
    provider: ProviderConfig,
    model: ModelConfig,
) -> ProviderClient:
    auth = provider.authentication
    region = auth.region or ""
    return ProviderClient(
        provider_id=provider.id,
        kind=ProviderType.BEDROCK,
        base_url=auth.base_url or bedrock_endpoint(region),
        model=model.name,
        headers=_merge_headers(provider, {}),
        timeout=_timeout(provider),
        region=region,
        credentials={
            "access_key_id": auth.access_key_id or "",
            "secret_access_key": auth.secret_access_key or "",
        },
        parameters=model.parameters,
    )


def _validator(definition: ProviderDefinition) -> Validator:
    def _validate(
        provider: ProviderConfig,
        model_id: Optional[str],
    ) -> List[FieldError]:
        return _common_errors(provider, model_id, definition)

    return _validate


def _of_type(kind: ProviderType) -> Callable[[ProviderConfig], bool]:
    def _handles(provider: ProviderConfig) -> bool:
        return provider.type == kind

    return _handles


def _always(provider: ProviderConfig) -> bool:
    return True


OPENAI_FACTORY = ProviderFactory(
    kind=ProviderType.OPENAI,
    definition=PROVIDER_OPENAI,
    handles=_of_type(ProviderType.OPENAI),
    validate=_validator(PROVIDER_OPENAI),
    build=_bearer_builder(PROVIDER_OPENAI),
)

GOOGLE_FACTORY = ProviderFactory(
    kind=ProviderType.GOOGLE,
    definition=PROVIDER_GOOGLE,
    handles=_of_type(ProviderType.GOOGLE),
    validate=_validator(PROVIDER_GOOGLE),
    build=_build_google,
)

BEDROCK_FACTORY = ProviderFactory(
    kind=ProviderType.BEDROCK,
    definition=PROVIDER_BEDROCK,
    handles=_of_type(ProviderType.BEDROCK),
    validate=_validator(PROVIDER_BEDROCK),
    build=_build_bedrock,
)

OPENROUTER_FACTORY = ProviderFactory(
    kind=ProviderType.OPENROUTER,
    definition=PROVIDER_OPENROUTER,
    handles=_of_type(ProviderType.OPENROUTER),
    validate=_validator(PROVIDER_OPENROUTER),
    build=_bearer_builder(PROVIDER_OPENROUTER),
)

# Handles anything the specific factories do not, as OpenAI-compatible.
CUSTOM_FACTORY = ProviderFactory(
    kind=ProviderType.CUSTOM,
    definition=PROVIDER_CUSTOM,
    handles=_always,
    validate=_validator(PROVIDER_CUSTOM),
    build=_bearer_builder(PROVIDER_CUSTOM),
)


def default_factories() -> List[ProviderFactory]:
    return [OPENAI_FACTORY, GOOGLE_FACTORY, BEDROCK_FACTORY, OPENROUTER_FACTORY]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ProviderRegistry:
    """Maps a provider config to the factory that builds its client.

    Selection is first match over the ordered factory list, with the
    custom factory (if any) always consulted last.
    """

    def __init__(
        self,
        factories: Optional[List[ProviderFactory]] = None,
        fallback: Optional[ProviderFactory] = CUSTOM_FACTORY,
    ):
        self._factories: List[ProviderFactory] = (
            list(factories) if factories is not None else default_factories()
        )
        self._fallback = fallback

    def _chain(self) -> List[ProviderFactory]:
        if self._fallback is None:
            return list(self._factories)
        return [*self._factories, self._fallback]

    def _select(self, provider: ProviderConfig) -> ProviderFactory:
        for factory in self._chain():
            if factory.handles(provider):
                return factory
        raise UnsupportedProviderError(
            f"No factory handles provider '{provider.id}' "
            f"(type '{provider.type.value}')",
        )

    def _factory_for_type(self, provider_type: str) -> ProviderFactory:
        for factory in self._chain():
            if factory.kind.value == provider_type:
                return factory
        raise UnsupportedProviderError(
            f"Unsupported provider type '{provider_type}'",
        )

    def register(self, factory: ProviderFactory) -> None:
        """Add a factory ahead of the custom fallback."""
        self._factories.append(factory)
        logger.debug("Registered provider factory for %s", factory.kind.value)

    def supported_types(self) -> List[str]:
        seen: List[str] = []
        for factory in self._chain():
            if factory.kind.value not in seen:
                seen.append(factory.kind.value)
        return seen

    def is_supported(self, provider_type: str) -> bool:
        return provider_type in self.supported_types()

    def list_supported_models(self, provider_type: str) -> List[str]:
        """Static model ids known for a provider type (empty for custom)."""
        factory = self._factory_for_type(provider_type)
        return [m.id for m in factory.definition.models]

    def definition_for(self, provider: ProviderConfig) -> ProviderDefinition:
        return self._select(provider).definition

    def validation_errors(
        self,
        provider: ProviderConfig,
        model_id: Optional[str] = None,
    ) -> List[FieldError]:
        return self._select(provider).validate(provider, model_id)

    def validate(
        self,
        provider: ProviderConfig,
        model_id: Optional[str] = None,
    ) -> bool:
        try:
            return not self.validation_errors(provider, model_id)
        except UnsupportedProviderError:
            return False

    def create_client(
        self,
        provider: ProviderConfig,
        model_id: Optional[str] = None,
    ) -> ProviderClient:
        """Build a client handle for *provider* and *model_id*.

        Raises ``UnsupportedProviderError`` if nothing handles the provider
        and ``InvalidConfigurationError`` if the factory rejects it.
        """
        factory = self._select(provider)
        errors = factory.validate(provider, model_id)
        if errors:
            raise InvalidConfigurationError(
                f"Invalid configuration for provider '{provider.id}'",
                errors,
            )
        model = _resolve_model(provider, model_id, factory.definition)
        if model is None:
            raise InvalidConfigurationError(
                f"Model '{model_id}' is not configured for provider "
                f"'{provider.id}'",
            )
        return factory.build(provider, model)
