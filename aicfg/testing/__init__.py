# -*- coding: utf-8 -*-
"""Staged provider testing and health monitoring."""

from .health import HealthMonitor, build_report
from .models import (
    STAGE_ORDER,
    ErrorKind,
    HealthReport,
    ProviderTestResult,
    Stage,
    StageResult,
)
from .service import ConfigTestingService, apply_result
from .strategies import (
    HttpProbeStrategy,
    ProbeContext,
    ProbeStrategy,
    StaticProbeStrategy,
    classify_status,
)

__all__ = [
    "ConfigTestingService",
    "ErrorKind",
    "HealthMonitor",
    "HealthReport",
    "HttpProbeStrategy",
    "ProbeContext",
    "ProbeStrategy",
    "ProviderTestResult",
    "STAGE_ORDER",
    "Stage",
    "StageResult",
    "StaticProbeStrategy",
    "apply_result",
    "build_report",
    "classify_status",
]
