# -*- coding: utf-8 -*-
"""Lifecycle engine for AI provider configuration."""

__version__ = "0.1.0"
