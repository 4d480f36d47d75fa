# -*- coding: utf-8 -*-
"""Periodic health checks over the configured providers."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from ..constant import HEALTH_CHECK_INTERVAL, TEST_MAX_CONCURRENCY
from ..providers.models import ProviderConfig
from .models import ErrorKind, HealthReport, ProviderTestResult
from .service import ConfigTestingService

logger = logging.getLogger(__name__)

ProvidersSource = Callable[[], Awaitable[List[ProviderConfig]]]
OnReport = Optional[Callable[[HealthReport], None]]

_ADVICE = {
    ErrorKind.AUTHENTICATION: "Check the API key for '{pid}'.",
    ErrorKind.NETWORK: "Check network connectivity to '{pid}'.",
    ErrorKind.TIMEOUT: "'{pid}' is slow to respond; consider a longer "
    "timeout.",
    ErrorKind.RATE_LIMIT: "'{pid}' is rate limiting requests; reduce "
    "request volume.",
    ErrorKind.CONFIGURATION: "Review the configuration of '{pid}'.",
    ErrorKind.PROVIDER: "'{pid}' is returning server errors; try again "
    "later.",
    ErrorKind.UNKNOWN: "Inspect the logs for '{pid}'.",
}


def _recommend(pid: str, result: ProviderTestResult) -> str:
    template = _ADVICE.get(result.error_kind or ErrorKind.UNKNOWN)
    return (template or _ADVICE[ErrorKind.UNKNOWN]).format(pid=pid)


def build_report(results: dict) -> HealthReport:
    total = len(results)
    healthy = sum(1 for r in results.values() if r.success)
    if total == 0:
        return HealthReport(
            status="unhealthy",
            recommendations=["Configure at least one provider."],
        )
    if healthy == total:
        status = "healthy"
    elif healthy == 0:
        status = "unhealthy"
    else:
        status = "degraded"
    recommendations = [
        _recommend(pid, r) for pid, r in results.items() if not r.success
    ]
    return HealthReport(
        status=status,
        total=total,
        healthy=healthy,
        results=results,
        recommendations=recommendations,
    )


class HealthMonitor:
    """One recurring task; the next cycle starts only after the previous
    one has finished."""

    def __init__(
        self,
        testing: ConfigTestingService,
        providers: ProvidersSource,
        *,
        interval: float = HEALTH_CHECK_INTERVAL,
        max_concurrency: int = TEST_MAX_CONCURRENCY,
        on_report: OnReport = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._testing = testing
        self._providers = providers
        self._interval = interval
        self._max_concurrency = max_concurrency
        self._on_report = on_report
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.last_report: Optional[HealthReport] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check_health(
        self,
        providers: Optional[List[ProviderConfig]] = None,
    ) -> HealthReport:
        if providers is None:
            providers = await self._providers()
        enabled = [p for p in providers if p.enabled]
        results = await self._testing.test_multiple_providers(
            enabled,
            self._max_concurrency,
            use_cache=False,
        )
        report = build_report(results)
        self.last_report = report
        logger.info(
            "Health check: %s (%d/%d healthy)",
            report.status,
            report.healthy,
            report.total,
        )
        return report

    async def _loop(self) -> None:
        while True:
            try:
                report = await self.check_health()
                if self._on_report is not None:
                    self._on_report(report)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Health check cycle failed")
            await self._sleep(self._interval)

    def start(self) -> None:
        """Start polling; a second call while running is a no-op."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.debug("Health monitor started (every %ss)", self._interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Health monitor stopped")
