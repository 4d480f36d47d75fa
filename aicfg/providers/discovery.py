# -*- coding: utf-8 -*-
"""Model discovery: list a provider's models, cached for a day."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Literal, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from ..constant import DISCOVERY_CACHE_KEY, DISCOVERY_CACHE_TTL
from ..errors import ConfigEngineError
from ..storage.kv import KeyValueStore, read_json, write_json
from .models import ModelInfo, ProviderConfig
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)


class DiscoveryResult(BaseModel):
    provider_id: str
    models: List[ModelInfo] = Field(default_factory=list)
    source: Literal["api", "cache", "static"] = "static"
    error: Optional[str] = None


def cache_key(provider: ProviderConfig) -> str:
    auth = provider.authentication
    return f"{provider.type.value}:{auth.base_url or ''}:{auth.region or ''}"


def _parse_models(payload) -> List[ModelInfo]:
    """Read an OpenAI-style ``{"data": [{"id": ...}]}`` listing."""
    if not isinstance(payload, dict):
        return []
    models: List[ModelInfo] = []
    for item in payload.get("data") or []:
        if isinstance(item, dict) and item.get("id"):
            mid = str(item["id"])
            models.append(ModelInfo(id=mid, name=str(item.get("name") or mid)))
    return models


class ModelDiscoveryService:
    """Queries ``GET {base_url}/models`` where supported.

    Providers without a listing endpoint get their static model list.
    Credentials on *provider* must already be decrypted.
    """

    def __init__(
        self,
        store: KeyValueStore,
        registry: ProviderRegistry,
        *,
        ttl: float = DISCOVERY_CACHE_TTL,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._store = store
        self._registry = registry
        self._ttl = ttl
        self._clock = clock
        self._transport = transport

    def _load_cache(self) -> Dict[str, dict]:
        cache = read_json(self._store, DISCOVERY_CACHE_KEY, {})
        return cache if isinstance(cache, dict) else {}

    def _fresh(self, entry, now: float) -> bool:
        if not isinstance(entry, dict):
            return False
        try:
            stamp = float(entry.get("timestamp", 0))
        except (TypeError, ValueError):
            return False
        return now - stamp <= self._ttl

    def _cached(self, key: str) -> Optional[List[ModelInfo]]:
        entry = self._load_cache().get(key)
        if not self._fresh(entry, self._clock()):
            return None
        try:
            return [ModelInfo.model_validate(m) for m in entry.get("models", [])]
        except (ValidationError, TypeError):
            logger.warning("Ignoring unreadable discovery cache entry %s", key)
            return None

    def _remember(self, key: str, models: List[ModelInfo]) -> None:
        now = self._clock()
        cache = {
            k: v for k, v in self._load_cache().items() if self._fresh(v, now)
        }
        cache[key] = {
            "timestamp": now,
            "models": [m.model_dump(mode="json") for m in models],
        }
        write_json(self._store, DISCOVERY_CACHE_KEY, cache)

    def clear_cache(self) -> None:
        self._store.remove(DISCOVERY_CACHE_KEY)

    async def discover(
        self,
        provider: ProviderConfig,
        *,
        force_refresh: bool = False,
    ) -> DiscoveryResult:
        definition = self._registry.definition_for(provider)
        static = list(definition.models)
        if not definition.supports_model_listing:
            return DiscoveryResult(provider_id=provider.id, models=static)

        key = cache_key(provider)
        if not force_refresh:
            cached = self._cached(key)
            if cached is not None:
                return DiscoveryResult(
                    provider_id=provider.id,
                    models=cached,
                    source="cache",
                )

        try:
            client = self._registry.create_client(provider)
            async with client.http_client(self._transport) as http:
                resp = await http.get("/models")
            resp.raise_for_status()
            models = _parse_models(resp.json())
        except (httpx.HTTPError, ValueError, ConfigEngineError) as exc:
            logger.warning("Model discovery failed for %s: %s", provider.id, exc)
            return DiscoveryResult(
                provider_id=provider.id,
                models=static,
                error=str(exc),
            )

        if not models:
            return DiscoveryResult(
                provider_id=provider.id,
                models=static,
                error="Provider returned no models",
            )
        self._remember(key, models)
        logger.info("Discovered %d models for %s", len(models), provider.id)
        return DiscoveryResult(
            provider_id=provider.id,
            models=models,
            source="api",
        )
