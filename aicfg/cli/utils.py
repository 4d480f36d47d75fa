# -*- coding: utf-8 -*-
"""Shared helpers for the click commands."""
from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, List, Optional, TypeVar

import click

from ..engine import ConfigEngine

T = TypeVar("T")


def run(coro: Awaitable[T]) -> T:
    """Run a coroutine from a synchronous click command."""
    return asyncio.run(coro)


def get_engine(ctx: click.Context) -> ConfigEngine:
    """The engine stored on the context, created on first use.

    Tests inject one with ``CliRunner().invoke(cli, obj={"engine": ...})``.
    """
    obj = ctx.ensure_object(dict)
    engine = obj.get("engine")
    if engine is None:
        engine = ConfigEngine.from_settings()
        obj["engine"] = engine
    return engine


def print_json(data: Any) -> None:
    click.echo(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def fail(message: str) -> None:
    """Print *message* in red and exit with status 1."""
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    raise SystemExit(1)


def prompt_choice(
    prompt_text: str,
    options: List[str],
    default: Optional[str] = None,
) -> str:
    """Numbered menu; returns the chosen option."""
    if not options:
        raise click.UsageError("Nothing to choose from")
    click.echo(prompt_text)
    for i, option in enumerate(options, 1):
        marker = "*" if option == default else " "
        click.echo(f" {marker}{i:2d}. {option}")
    default_index = options.index(default) + 1 if default in options else 1
    index = click.prompt(
        "Choice",
        type=click.IntRange(1, len(options)),
        default=default_index,
    )
    return options[index - 1]
