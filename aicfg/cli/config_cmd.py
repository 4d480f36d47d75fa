# -*- coding: utf-8 -*-
"""CLI commands for loading, migrating, backing up and testing config."""
from __future__ import annotations

from typing import Optional, Tuple

import click

from ..errors import BackupNotFoundError, IntegrityCheckFailedError
from ..migration.models import ConfigFormat, MigrationOptions
from ..providers.models import ConfigurationSystem
from ..utils.masking import mask_api_key
from .utils import fail, get_engine, print_json, run


def _secret_label(value: Optional[str]) -> str:
    if not value:
        return "(not set)"
    return f"(encrypted) {mask_api_key(value)}"


def _print_config(config: ConfigurationSystem) -> None:
    prefs = config.user_preferences
    for provider in config.providers:
        auth = provider.authentication
        default_mark = "*" if provider.id == prefs.default_provider_id else " "
        state = "" if provider.enabled else " [disabled]"
        click.echo(f"\n{'─' * 44}")
        click.echo(f" {default_mark}{provider.name} ({provider.id}){state}")
        click.echo(f"{'─' * 44}")
        click.echo(f"  {'type':16s}: {provider.type.value}")
        if auth.base_url:
            click.echo(f"  {'base_url':16s}: {auth.base_url}")
        if auth.region:
            click.echo(f"  {'region':16s}: {auth.region}")
        click.echo(f"  {'api_key':16s}: {_secret_label(auth.api_key)}")
        click.echo(f"  {'test_status':16s}: {provider.metadata.test_status}")
        for model in provider.models:
            mark = "*" if model.id == prefs.default_model_id else " "
            click.echo(f"   {mark} {model.id} ({model.name})")
    click.echo(
        f"\nDefault: {prefs.default_provider_id} / {prefs.default_model_id}",
    )


def _print_messages(warnings, errors) -> None:
    for warning in warnings:
        click.echo(click.style(f"! {warning}", fg="yellow"))
    for error in errors:
        click.echo(click.style(f"✗ {error}", fg="red"))


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


@click.command("show")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def show_cmd(ctx: click.Context, as_json: bool) -> None:
    """Show the stored configuration (legacy data is converted in memory)."""
    engine = get_engine(ctx)
    result = run(engine.load_and_migrate_config(auto_migrate=False))
    if as_json:
        print_json({**result.to_json_dict(), "success": result.success})
        return
    click.echo(f"Format: {result.format.value}")
    if result.migration_required:
        click.echo("Migration required: run 'aicfg migrate'.")
    if result.used_default:
        click.echo("(showing the default configuration)")
    _print_config(result.config)
    _print_messages(result.warnings, result.errors)


# ---------------------------------------------------------------------------
# migrate
# ---------------------------------------------------------------------------


@click.command("migrate")
@click.option("--dry-run", is_flag=True, help="Transform and validate only")
@click.option("--no-backup", is_flag=True, help="Skip the pre-migration backup")
@click.pass_context
def migrate_cmd(ctx: click.Context, dry_run: bool, no_backup: bool) -> None:
    """Migrate a stored legacy configuration to the provider format."""
    engine = get_engine(ctx)
    engine.versioning.initialize()
    read = engine.compat.load_from_storage()
    if read.format == ConfigFormat.CURRENT and read.success:
        click.echo("Configuration is already in the current format.")
        return
    if read.format != ConfigFormat.LEGACY or not read.success:
        _print_messages(read.warnings, read.errors)
        fail("no migratable legacy configuration found")

    analysis = engine.migration.analyze_existing_config(read.config)
    click.echo(
        f"Analysis: {analysis.provider_count} providers, "
        f"{analysis.model_count} models, {analysis.complexity} "
        f"(~{analysis.estimated_seconds}s)",
    )
    result = run(
        engine.migration.migrate_to_provider_config(
            read.config,
            MigrationOptions(auto_backup=not no_backup, dry_run=dry_run),
        ),
    )
    for step in result.steps:
        click.echo(f"  - {step}")
    _print_messages(result.warnings, result.errors)
    if not result.success:
        fail("migration failed")
    if result.backup_id:
        click.echo(f"Backup: {result.backup_id}")
    verb = "would migrate" if dry_run else "migrated"
    click.echo(
        click.style(
            f"✓ {verb} {len(result.config.providers)} providers",
            fg="green",
        ),
    )


# ---------------------------------------------------------------------------
# backups
# ---------------------------------------------------------------------------


@click.group("backups")
def backups_group() -> None:
    """List migration backups and roll back to one."""


@backups_group.command("list")
@click.pass_context
def backups_list_cmd(ctx: click.Context) -> None:
    """List backups, newest first."""
    backups = get_engine(ctx).list_backups()
    if not backups:
        click.echo("No backups.")
        return
    for entry in backups:
        click.echo(
            f"{entry.id}  {entry.timestamp:%Y-%m-%d %H:%M:%S}  "
            f"v{entry.version}  {entry.size:>6d}B  {entry.description or ''}",
        )


@backups_group.command("rollback")
@click.argument("backup_id")
@click.pass_context
def backups_rollback_cmd(ctx: click.Context, backup_id: str) -> None:
    """Restore BACKUP_ID (the current state is backed up first)."""
    try:
        before = get_engine(ctx).rollback(backup_id)
    except (BackupNotFoundError, IntegrityCheckFailedError) as exc:
        fail(str(exc))
    click.echo(f"✓ Restored {backup_id} (previous state saved as {before.id})")


# ---------------------------------------------------------------------------
# test
# ---------------------------------------------------------------------------


@click.command("test")
@click.argument("provider_ids", nargs=-1)
@click.option(
    "--concurrency",
    type=click.IntRange(1, 20),
    default=None,
    help="Providers tested at once",
)
@click.pass_context
def test_cmd(
    ctx: click.Context,
    provider_ids: Tuple[str, ...],
    concurrency: Optional[int],
) -> None:
    """Test connectivity of PROVIDER_IDS (default: all enabled)."""
    engine = get_engine(ctx)
    config = run(engine.current_config())
    if config is None:
        fail("no current configuration; run 'aicfg migrate' first")
    if provider_ids:
        unknown = [p for p in provider_ids if config.get_provider(p) is None]
        if unknown:
            fail(f"unknown providers: {', '.join(unknown)}")
        providers = [config.get_provider(p) for p in provider_ids]
    else:
        providers = [p for p in config.providers if p.enabled]

    results = run(engine.test_providers(providers, concurrency))
    run(engine.record_results(config, results))

    failed = 0
    for pid, result in results.items():
        if result.success:
            click.echo(
                click.style(f"✓ {pid}", fg="green")
                + f"  {result.total_latency_ms:.0f} ms",
            )
            continue
        failed += 1
        stage = result.failed_stage.value if result.failed_stage else "?"
        click.echo(click.style(f"✗ {pid}", fg="red") + f"  [{stage}] {result.error}")
    if failed:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# discover
# ---------------------------------------------------------------------------


@click.command("discover")
@click.argument("provider_id")
@click.option("--refresh", is_flag=True, help="Ignore the cached listing")
@click.pass_context
def discover_cmd(ctx: click.Context, provider_id: str, refresh: bool) -> None:
    """List the models PROVIDER_ID offers."""
    engine = get_engine(ctx)
    config = run(engine.current_config())
    provider = config.get_provider(provider_id) if config else None
    if provider is None:
        fail(f"unknown provider: {provider_id}")
    result = run(engine.discover_models(provider, force_refresh=refresh))
    click.echo(f"{len(result.models)} models ({result.source}):")
    for model in result.models:
        click.echo(f"  {model.id}")
    if result.error:
        click.echo(click.style(f"! {result.error}", fg="yellow"))


# ---------------------------------------------------------------------------
# check / versions
# ---------------------------------------------------------------------------


@click.command("check")
@click.pass_context
def check_cmd(ctx: click.Context) -> None:
    """Check the provider/model/preference stores for consistency."""
    report = run(get_engine(ctx).storage.consistency_check())
    if report.valid:
        click.echo(click.style("✓ storage is consistent", fg="green"))
        return
    for issue in report.issues:
        click.echo(click.style(f"✗ {issue}", fg="red"))
    raise SystemExit(1)


@click.command("versions")
@click.pass_context
def versions_cmd(ctx: click.Context) -> None:
    """Show the version log and migration history."""
    versioning = get_engine(ctx).versioning
    versioning.initialize()
    stats = versioning.stats()
    click.echo(
        f"Current version: {stats.current_version} "
        f"(schema {stats.schema_version}), {stats.total_backups} backups",
    )
    for version in versioning.versions():
        click.echo(
            f"  v{version.version}  {version.timestamp:%Y-%m-%d}  "
            f"{version.description}",
        )
    history = versioning.migration_history()
    if history:
        click.echo("Migrations:")
    for record in history:
        mark = "✓" if record.success else "✗"
        click.echo(
            f"  {mark} {record.from_version} -> {record.to_version}  "
            f"{record.description}",
        )
