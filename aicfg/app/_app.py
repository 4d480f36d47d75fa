# -*- coding: utf-8 -*-
"""FastAPI application exposing the configuration engine."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from ..constant import DOCS_ENABLED
from ..engine import ConfigEngine
from ..utils.logging import setup_logger
from .routers.config import router as config_router

logger = logging.getLogger(__name__)


def create_app(
    engine: Optional[ConfigEngine] = None,
    *,
    health_checks: bool = False,
) -> FastAPI:
    """Build the app around *engine* (default wiring when omitted).

    With *health_checks* the engine's health monitor polls the enabled
    providers for the lifetime of the app.
    """
    setup_logger()
    engine = engine or ConfigEngine.from_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        monitor = engine.health_monitor() if health_checks else None
        if monitor is not None:
            monitor.start()
        app.state.health_monitor = monitor
        logger.info("aicfg API started (health checks: %s)", health_checks)
        try:
            yield
        finally:
            if monitor is not None:
                await monitor.stop()
            logger.info("aicfg API stopped")

    app = FastAPI(
        title="aicfg",
        lifespan=lifespan,
        docs_url="/docs" if DOCS_ENABLED else None,
        redoc_url="/redoc" if DOCS_ENABLED else None,
        openapi_url="/openapi.json" if DOCS_ENABLED else None,
    )
    app.state.engine = engine
    app.include_router(config_router)
    return app
