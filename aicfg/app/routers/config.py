# -*- coding: utf-8 -*-
"""API routes for loading configuration, testing providers and backups."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from pydantic import BaseModel, Field

from ...engine import ConfigEngine
from ...errors import BackupNotFoundError, IntegrityCheckFailedError
from ...providers.models import (
    SECRET_AUTH_FIELDS,
    ConfigurationSystem,
    ProviderConfig,
)
from ...testing.models import ProviderTestResult
from ...utils.masking import mask_api_key, mask_secrets

router = APIRouter(prefix="/config", tags=["config"])


def get_engine(request: Request) -> ConfigEngine:
    """The engine the app was created with."""
    return request.app.state.engine


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ProviderSummary(BaseModel):
    """A configured provider as shown to clients (secrets masked)."""

    id: str
    name: str
    type: str
    enabled: bool
    is_default: bool = False
    base_url: Optional[str] = None
    region: Optional[str] = None
    has_api_key: bool = False
    current_api_key: str = Field(
        default="",
        description="Masked stored value",
    )
    models: List[str] = Field(default_factory=list)
    test_status: str = "untested"
    last_tested: Optional[datetime] = None


class BackupSummary(BaseModel):
    id: str
    version: str
    timestamp: datetime
    size: int
    description: Optional[str] = None


class RollbackResponse(BaseModel):
    restored: str
    previous_state_backup: str = Field(
        ...,
        description="Backup holding the state before the rollback",
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _redact(config: ConfigurationSystem) -> Dict[str, Any]:
    """JSON form of *config* with every stored secret masked."""
    data = config.to_json_dict()
    for provider in data.get("providers", []):
        provider["authentication"] = mask_secrets(
            provider.get("authentication", {}),
            SECRET_AUTH_FIELDS,
        )
    return data


def _summary(provider: ProviderConfig, default_id: str) -> ProviderSummary:
    auth = provider.authentication
    return ProviderSummary(
        id=provider.id,
        name=provider.name,
        type=provider.type.value,
        enabled=provider.enabled,
        is_default=provider.id == default_id,
        base_url=auth.base_url,
        region=auth.region,
        has_api_key=bool(auth.api_key),
        current_api_key=mask_api_key(auth.api_key or ""),
        models=[m.id for m in provider.models],
        test_status=provider.metadata.test_status,
        last_tested=provider.metadata.last_tested,
    )


async def _require_config(engine: ConfigEngine) -> ConfigurationSystem:
    config = await engine.current_config()
    if config is None:
        raise HTTPException(
            status_code=404,
            detail="No current configuration stored. Migrate first.",
        )
    return config


# ---------------------------------------------------------------------------
# Endpoints: configuration
# ---------------------------------------------------------------------------


@router.get(
    "",
    summary="Load the configuration",
    description="Load the stored configuration, migrating a legacy one "
    "when auto_migrate is set. Secrets are masked.",
)
async def load_config(
    auto_migrate: bool = Query(
        True,
        description="Persist the migration of a legacy configuration",
    ),
    engine: ConfigEngine = Depends(get_engine),
) -> Dict[str, Any]:
    result = await engine.load_and_migrate_config(auto_migrate=auto_migrate)
    data = result.to_json_dict()
    data["config"] = _redact(result.config)
    data["success"] = result.success
    return data


@router.get(
    "/providers",
    response_model=List[ProviderSummary],
    summary="List configured providers",
)
async def list_configured_providers(
    engine: ConfigEngine = Depends(get_engine),
) -> List[ProviderSummary]:
    config = await engine.current_config()
    if config is None:
        return []
    default_id = config.user_preferences.default_provider_id
    return [_summary(p, default_id) for p in config.providers]


@router.post(
    "/providers/{provider_id}/test",
    response_model=ProviderTestResult,
    summary="Test a provider",
    description="Run the staged probe against a provider and record the "
    "outcome in its metadata.",
)
async def probe_provider(
    provider_id: str = Path(..., description="Provider identifier"),
    model_id: Optional[str] = Query(None, description="Model to probe"),
    use_cache: bool = Query(True, description="Reuse a recent result"),
    engine: ConfigEngine = Depends(get_engine),
) -> ProviderTestResult:
    config = await _require_config(engine)
    provider = config.get_provider(provider_id)
    if provider is None:
        raise HTTPException(
            status_code=404,
            detail=f"Provider '{provider_id}' not found",
        )
    result = await engine.test_provider(
        provider,
        model_id,
        use_cache=use_cache,
    )
    await engine.record_results(config, {provider.id: result})
    return result


# ---------------------------------------------------------------------------
# Endpoints: backups
# ---------------------------------------------------------------------------


@router.get(
    "/backups",
    response_model=List[BackupSummary],
    summary="List migration backups",
)
async def list_backups(
    engine: ConfigEngine = Depends(get_engine),
) -> List[BackupSummary]:
    return [
        BackupSummary(
            id=b.id,
            version=b.version,
            timestamp=b.timestamp,
            size=b.size,
            description=b.description,
        )
        for b in engine.list_backups()
    ]


@router.post(
    "/backups/{backup_id}/rollback",
    response_model=RollbackResponse,
    summary="Roll back to a backup",
)
async def rollback_backup(
    backup_id: str = Path(..., description="Backup identifier"),
    engine: ConfigEngine = Depends(get_engine),
) -> RollbackResponse:
    try:
        before = engine.rollback(backup_id)
    except BackupNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except IntegrityCheckFailedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return RollbackResponse(restored=backup_id, previous_state_backup=before.id)
