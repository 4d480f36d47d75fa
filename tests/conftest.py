# -*- coding: utf-8 -*-
"""Shared fixtures: in-memory store, fixed-fingerprint encryption, fakes."""

from typing import Any, Dict, List, Optional

import httpx
import pytest

from aicfg.config.config import Settings
from aicfg.engine import ConfigEngine
from aicfg.providers.models import (
    ModelConfig,
    ProviderAuthentication,
    ProviderConfig,
    ProviderType,
)
from aicfg.security.encryption import EncryptionService
from aicfg.security.fingerprint import static_fingerprint
from aicfg.storage.kv import MemoryStore

TEST_FINGERPRINT = "test-device|linux|x86_64|tester"


class RecordingSleep:
    """Async stand-in for ``asyncio.sleep`` that only records delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def encryption():
    return EncryptionService(
        static_fingerprint(TEST_FINGERPRINT),
        iterations=100_000,
    )


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def legacy_acme() -> Dict[str, Any]:
    """Legacy config: openai main provider plus one custom endpoint."""
    return {
        "provider": "openai",
        "model": "gpt-4",
        "apiKey": "sk-x",
        "customProviders": [
            {
                "id": "acme",
                "name": "Acme",
                "baseURL": "https://acme.example.com/v1",
                "models": ["m1"],
            },
        ],
    }


@pytest.fixture
def make_provider():
    """Build a valid ``ProviderConfig`` with sensible defaults per type."""

    def _make(
        provider_id: str = "openai",
        provider_type: ProviderType = ProviderType.OPENAI,
        models: Optional[List[str]] = None,
        **auth: Any,
    ) -> ProviderConfig:
        defaults: Dict[str, Any] = {
            ProviderType.OPENAI: {"api_key": "sk-test-1234567890"},
            ProviderType.OPENROUTER: {"api_key": "sk-or-test-123456"},
            ProviderType.GOOGLE: {"api_key": "AIza-test-123456"},
            ProviderType.BEDROCK: {
                "region": "us-east-1",
                "access_key_id": "AKIATEST",
                "secret_access_key": "secret",
            },
            ProviderType.CUSTOM: {"base_url": "https://llm.example.com/v1"},
        }[provider_type]
        names = models or ["gpt-4"]
        return ProviderConfig(
            id=provider_id,
            name=provider_id.title(),
            type=provider_type,
            authentication=ProviderAuthentication(**{**defaults, **auth}),
            models=[
                ModelConfig(
                    id=name,
                    name=name,
                    provider_id=provider_id,
                    is_default=i == 0,
                )
                for i, name in enumerate(names)
            ],
        )

    return _make


def chat_ok_handler(request: httpx.Request) -> httpx.Response:
    """OpenAI-compatible endpoint that accepts everything."""
    if request.url.path.endswith("/models"):
        return httpx.Response(
            200,
            json={"data": [{"id": "gpt-4"}, {"id": "gpt-4o"}]},
        )
    return httpx.Response(
        200,
        json={
            "choices": [{"message": {"content": "Hello there!"}}],
            "usage": {"prompt_tokens": 5, "completion_tokens": 3},
        },
    )


@pytest.fixture
def ok_transport():
    return httpx.MockTransport(chat_ok_handler)


@pytest.fixture
def engine(store, encryption, ok_transport):
    settings = Settings()
    settings.testing.retries = 0
    return ConfigEngine(
        store,
        settings=settings,
        encryption=encryption,
        transport=ok_transport,
    )
