# -*- coding: utf-8 -*-
"""CLI commands for managing providers in the stored configuration."""
from __future__ import annotations

from typing import Optional, Tuple

import click

from ..errors import InvalidConfigurationError
from ..migration.engine import model_id_for
from ..providers.models import (
    ConfigurationSystem,
    ModelConfig,
    ProviderAuthentication,
    ProviderCapabilities,
    ProviderConfig,
    ProviderType,
    UserPreferences,
)
from ..providers.registry import list_providers
from ..providers.validation import validate_url
from .utils import fail, get_engine, prompt_choice, run


def _save(ctx: click.Context, config: ConfigurationSystem) -> None:
    try:
        run(get_engine(ctx).save_config(config))
    except InvalidConfigurationError as exc:
        fail(str(exc))


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------


@click.group("providers")
def providers_group() -> None:
    """Manage configured providers and the default model."""


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


@providers_group.command("list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """Show supported provider types and configured providers."""
    engine = get_engine(ctx)
    click.echo("\n=== Supported provider types ===")
    for defn in list_providers():
        models = ", ".join(m.id for m in defn.models) or "(any)"
        click.echo(f"  {defn.name} ({defn.id}): {models}")

    config = run(engine.current_config())
    click.echo(f"\n{'═' * 44}")
    click.echo("  Configured providers")
    click.echo(f"{'═' * 44}")
    if config is None:
        click.echo("  (none; run 'aicfg migrate' or 'aicfg providers add-custom')")
        return
    prefs = config.user_preferences
    for provider in config.providers:
        mark = "*" if provider.id == prefs.default_provider_id else " "
        state = "enabled" if provider.enabled else "disabled"
        click.echo(
            f" {mark}{provider.id:20s} {provider.type.value:10s} "
            f"{len(provider.models)} models, {state}, "
            f"{provider.metadata.test_status}",
        )


# ---------------------------------------------------------------------------
# add-custom
# ---------------------------------------------------------------------------


@providers_group.command("add-custom")
@click.option("--id", "provider_id", required=True, help="Provider id")
@click.option("--name", default=None, help="Display name (default: id)")
@click.option(
    "--base-url",
    prompt="Base URL (OpenAI-compatible endpoint)",
    help="HTTPS base URL",
)
@click.option(
    "--model",
    "models",
    multiple=True,
    required=True,
    help="Model name (repeatable; the first is the default)",
)
@click.option(
    "--api-key",
    default="",
    prompt="API key (optional)",
    hide_input=True,
    show_default=False,
    help="API key, stored encrypted",
)
@click.option("--replace", is_flag=True, help="Overwrite an existing provider")
@click.pass_context
def add_custom_cmd(
    ctx: click.Context,
    provider_id: str,
    name: Optional[str],
    base_url: str,
    models: Tuple[str, ...],
    api_key: str,
    replace: bool,
) -> None:
    """Add an OpenAI-compatible endpoint as a custom provider."""
    url = validate_url(base_url)
    if not url:
        fail("; ".join(url.messages()))

    engine = get_engine(ctx)
    config = run(engine.current_config())
    if config is not None and config.get_provider(provider_id) and not replace:
        fail(f"provider '{provider_id}' exists (use --replace)")

    model_configs = [
        ModelConfig(
            id=model_id_for(provider_id, m),
            name=m,
            provider_id=provider_id,
            is_default=i == 0,
        )
        for i, m in enumerate(dict.fromkeys(models))
    ]
    provider = ProviderConfig(
        id=provider_id,
        name=name or provider_id,
        type=ProviderType.CUSTOM,
        authentication=ProviderAuthentication(
            base_url=url.value,
            api_key=api_key or None,
        ),
        models=model_configs,
        capabilities=ProviderCapabilities(model_discovery=True),
        priority=10,
    )

    if config is None:
        config = ConfigurationSystem(
            providers=[provider],
            user_preferences=UserPreferences(
                default_provider_id=provider.id,
                default_model_id=model_configs[0].id,
            ),
        )
    else:
        others = [p for p in config.providers if p.id != provider_id]
        config = config.model_copy(update={"providers": [*others, provider]})
    _save(ctx, config)
    click.echo(f"✓ {provider.name} ({provider.id}): {len(model_configs)} models")


# ---------------------------------------------------------------------------
# set-default
# ---------------------------------------------------------------------------


@providers_group.command("set-default")
@click.argument("provider_id")
@click.argument("model_id", required=False, default=None)
@click.pass_context
def set_default_cmd(
    ctx: click.Context,
    provider_id: str,
    model_id: Optional[str],
) -> None:
    """Make PROVIDER_ID (and MODEL_ID) the default."""
    engine = get_engine(ctx)
    config = run(engine.current_config())
    provider = config.get_provider(provider_id) if config else None
    if provider is None:
        fail(f"unknown provider: {provider_id}")

    if model_id is None:
        ids = [m.id for m in provider.models]
        model_id = prompt_choice(
            "Select default model:",
            options=ids,
            default=provider.default_model().id,
        )
    model = provider.get_model(model_id)
    if model is None:
        fail(f"provider '{provider_id}' has no model '{model_id}'")

    prefs = config.user_preferences.model_copy(
        update={"default_provider_id": provider.id, "default_model_id": model.id},
    )
    _save(ctx, config.model_copy(update={"user_preferences": prefs}))
    click.echo(f"✓ Default: {provider.id} / {model.id}")
