# -*- coding: utf-8 -*-
"""Result types for provider probes."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..providers.models import utcnow


class Stage(str, Enum):
    """Probe stages, in execution order."""

    CONNECTIVITY = "connectivity"
    AUTHENTICATION = "authentication"
    MODEL_AVAILABILITY = "model_availability"
    FUNCTIONALITY = "functionality"


STAGE_ORDER: List[Stage] = [
    Stage.CONNECTIVITY,
    Stage.AUTHENTICATION,
    Stage.MODEL_AVAILABILITY,
    Stage.FUNCTIONALITY,
]


class ErrorKind(str, Enum):
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    PROVIDER = "provider"
    UNKNOWN = "unknown"


class StageResult(BaseModel):
    stage: Stage
    success: bool
    latency_ms: float = 0.0
    status_code: Optional[int] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    attempts: int = 1
    skipped: bool = Field(
        default=False,
        description="Stage not applicable to this provider; counted as pass",
    )
    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def retryable(self) -> bool:
        """429, 5xx, timeouts and transport failures are worth retrying."""
        if self.success:
            return False
        if self.error_kind in (
            ErrorKind.RATE_LIMIT,
            ErrorKind.TIMEOUT,
            ErrorKind.NETWORK,
        ):
            return True
        return self.error_kind == ErrorKind.PROVIDER and (
            self.status_code is None or self.status_code >= 500
        )


class ProviderTestResult(BaseModel):
    """Composite outcome of one provider run through every stage."""

    provider_id: str
    model_id: Optional[str] = None
    success: bool
    stages: List[StageResult] = Field(default_factory=list)
    failed_stage: Optional[Stage] = None
    total_latency_ms: float = 0.0
    tested_at: datetime = Field(default_factory=utcnow)
    cached: bool = False
    response_preview: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None

    @property
    def error(self) -> Optional[str]:
        for stage in self.stages:
            if not stage.success:
                return stage.error
        return None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        for stage in self.stages:
            if not stage.success:
                return stage.error_kind
        return None

    def stage(self, stage: Stage) -> Optional[StageResult]:
        for result in self.stages:
            if result.stage == stage:
                return result
        return None


HealthStatus = Literal["healthy", "degraded", "unhealthy"]


class HealthReport(BaseModel):
    status: HealthStatus
    checked_at: datetime = Field(default_factory=utcnow)
    total: int = 0
    healthy: int = 0
    results: Dict[str, ProviderTestResult] = Field(default_factory=dict)
    recommendations: List[str] = Field(default_factory=list)
