# -*- coding: utf-8 -*-
"""Package logger setup shared by the CLI and the app factory."""
from __future__ import annotations

import logging
import os
from typing import Optional

from ..constant import LOG_LEVEL_ENV

_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s: %(message)s"

LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


def setup_logger(level: Optional[str] = None) -> logging.Logger:
    """Configure the ``aicfg`` logger with a single stream handler.

    *level* falls back to ``AICFG_LOG_LEVEL`` and then ``info``.  Calling
    this again only updates the level.
    """
    name = (level or os.environ.get(LOG_LEVEL_ENV) or "info").lower()
    if name not in LOG_LEVELS:
        name = "info"

    logger = logging.getLogger("aicfg")
    logger.setLevel(getattr(logging, name.upper()))
    if not any(getattr(h, "_aicfg", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._aicfg = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
