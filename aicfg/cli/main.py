# -*- coding: utf-8 -*-
from __future__ import annotations

from typing import Optional

import click

from ..utils.logging import LOG_LEVELS, setup_logger
from .config_cmd import (
    backups_group,
    check_cmd,
    discover_cmd,
    migrate_cmd,
    show_cmd,
    test_cmd,
    versions_cmd,
)
from .providers_cmd import providers_group


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log level (default: $AICFG_LOG_LEVEL or info)",
)
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]) -> None:
    """Manage AI provider configuration."""
    setup_logger(log_level)
    ctx.ensure_object(dict)


cli.add_command(show_cmd)
cli.add_command(migrate_cmd)
cli.add_command(backups_group)
cli.add_command(test_cmd)
cli.add_command(discover_cmd)
cli.add_command(check_cmd)
cli.add_command(versions_cmd)
cli.add_command(providers_group)


def main() -> None:
    cli()  # pylint: disable=no-value-for-parameter


if __name__ == "__main__":
    main()
