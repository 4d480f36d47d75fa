# -*- coding: utf-8 -*-
"""ProviderRegistry dispatch and client construction."""

import dataclasses

import pytest

from aicfg import providers
from aicfg.errors import InvalidConfigurationError, UnsupportedProviderError
from aicfg.providers.models import ProviderType
from aicfg.providers.registry import (
    CUSTOM_FACTORY,
    OPENAI_FACTORY,
    ProviderRegistry,
    bedrock_endpoint,
    list_providers,
)

BEDROCK_MODEL = "anthropic.claude-sonnet-4-20250514-v1:0"


@pytest.fixture
def registry():
    return ProviderRegistry()


class TestDispatch:
    def test_supported_types_end_with_custom(self, registry):
        assert registry.supported_types() == [
            "openai",
            "google",
            "bedrock",
            "openrouter",
            "custom",
        ]
        assert registry.is_supported("bedrock")
        assert not registry.is_supported("azure")

    def test_openai_client(self, registry, make_provider):
        client = registry.create_client(make_provider())
        assert client.kind == ProviderType.OPENAI
        assert client.base_url == "https://api.openai.com/v1"
        assert client.model == "gpt-4"
        assert client.headers["Authorization"] == "Bearer sk-test-1234567890"

    def test_google_uses_api_key_header(self, registry, make_provider):
        provider = make_provider("gemini", ProviderType.GOOGLE, ["gemini-pro"])
        client = registry.create_client(provider)
        assert client.headers["x-goog-api-key"] == "AIza-test-123456"
        assert "Authorization" not in client.headers

    def test_bedrock_endpoint_and_credentials(self, registry, make_provider):
        provider = make_provider(
            "aws",
            ProviderType.BEDROCK,
            [BEDROCK_MODEL],
            region="eu-west-1",
        )
        client = registry.create_client(provider)
        assert client.base_url == bedrock_endpoint("eu-west-1")
        assert client.region == "eu-west-1"
        assert client.credentials["access_key_id"] == "AKIATEST"

    def test_custom_falls_back_to_custom_factory(self, registry, make_provider):
        provider = make_provider("acme", ProviderType.CUSTOM, ["m1"])
        client = registry.create_client(provider)
        assert client.kind == ProviderType.CUSTOM
        assert client.base_url == "https://llm.example.com/v1"
        assert "Authorization" not in client.headers

    def test_without_fallback_custom_is_unsupported(self, make_provider):
        registry = ProviderRegistry(factories=[OPENAI_FACTORY], fallback=None)
        provider = make_provider("acme", ProviderType.CUSTOM, ["m1"])
        with pytest.raises(UnsupportedProviderError):
            registry.create_client(provider)
        assert not registry.validate(provider)

    def test_registered_factory_wins_over_fallback(self, make_provider):
        registry = ProviderRegistry(factories=[])
        special = dataclasses.replace(
            CUSTOM_FACTORY,
            handles=lambda p: p.id == "special",
        )
        registry.register(special)
        provider = make_provider("special", ProviderType.CUSTOM, ["m1"])
        assert registry.create_client(provider).provider_id == "special"


class TestClientOptions:
    def test_timeout_and_custom_headers(self, registry, make_provider):
        provider = make_provider(timeout=5000, custom_headers={"X-Org": "o1"})
        client = registry.create_client(provider)
        assert client.timeout == 5.0
        assert client.headers["X-Org"] == "o1"
        assert client.headers["Content-Type"] == "application/json"

    def test_builtin_model_not_in_config_is_accepted(
        self,
        registry,
        make_provider,
    ):
        client = registry.create_client(make_provider(), "gpt-4o")
        assert client.model == "gpt-4o"

    def test_unknown_model_rejected(self, registry, make_provider):
        with pytest.raises(InvalidConfigurationError) as exc_info:
            registry.create_client(make_provider(), "gpt-99")
        assert exc_info.value.errors[0].path == "modelId"

    def test_missing_credentials_rejected(self, registry, make_provider):
        with pytest.raises(InvalidConfigurationError) as exc_info:
            registry.create_client(make_provider(api_key=None))
        assert "API key" in str(exc_info.value)

    def test_bedrock_temperature_limit(self, registry, make_provider):
        provider = make_provider("aws", ProviderType.BEDROCK, [BEDROCK_MODEL])
        provider.models[0].parameters.temperature = 1.5
        errors = registry.validation_errors(provider)
        assert errors[0].path == "parameters.temperature"


class TestStaticModels:
    def test_list_supported_models(self, registry):
        assert "gpt-4" in registry.list_supported_models("openai")
        assert registry.list_supported_models("custom") == []

    def test_unknown_type(self, registry):
        with pytest.raises(UnsupportedProviderError):
            registry.list_supported_models("azure")

    def test_definitions_cover_every_kind(self):
        kinds = {defn.type for defn in list_providers()}
        assert kinds == set(ProviderType)

    def test_package_exports_resolve(self):
        missing = [
            name for name in providers.__all__ if not hasattr(providers, name)
        ]
        assert missing == []
