"""CLI module for Voice Note Orchestrator."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import click

from vno.cli.exit_codes import ExitCode
from vno.cli.output import error_exit
from vno.config import ConfigError, configure_logging_from_cli, get_config
from vno.config.models import VNOConfig
from vno.services import Services, build_services

logger = logging.getLogger(__name__)


def get_cli_config(ctx: click.Context) -> VNOConfig:
    """Configuration loaded by the main group (or injected by tests)."""
    obj = ctx.ensure_object(dict)
    if "services" in obj:
        return obj["services"].config
    return obj["config"]


def get_services(ctx: click.Context, *, memory: bool = False) -> Services:
    """Return the process services, building them on first use.

    Services built here are closed when the command finishes. Tests may
    pass prebuilt services via ``obj={"services": ...}``.
    """
    obj = ctx.ensure_object(dict)
    if "services" not in obj:
        try:
            services = build_services(get_cli_config(ctx), memory=memory)
        except ValueError as e:
            error_exit(str(e), ExitCode.CONFIG_ERROR)
        except (sqlite3.Error, OSError) as e:
            error_exit(f"Cannot open database: {e}", ExitCode.DATABASE_ERROR)
        obj["services"] = services
        ctx.find_root().call_on_close(services.close)
    return obj["services"]


@click.group()
@click.version_option(package_name="voicenote-orchestrator")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to configuration file (default: ~/.vno/config.toml).",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level (default: info).",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Override log file path.",
)
@click.option(
    "--log-format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default=None,
    help="Log format: text or json (default: text).",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    log_level: str | None,
    log_file: Path | None,
    log_format: str | None,
) -> None:
    """Voice Note Orchestrator - background transcription and summarization."""
    obj = ctx.ensure_object(dict)
    if "services" in obj:
        return

    try:
        config = get_config(config_path=config_path, strict=config_path is not None)
    except ConfigError as e:
        error_exit(str(e), ExitCode.CONFIG_ERROR)

    try:
        config.logging = configure_logging_from_cli(
            config.logging,
            level=log_level.lower() if log_level else None,
            file=log_file,
            format=log_format.lower() if log_format else None,
        )
    except ValueError as e:
        error_exit(f"Invalid logging configuration: {e}", ExitCode.CONFIG_ERROR)

    obj["config"] = config
    obj["config_path"] = config_path
    logger.debug(
        "Loaded configuration (data_dir=%s, database=%s)",
        config.data_dir,
        config.database_path,
    )


# Defer import to avoid circular dependency
def _register_commands():
    from vno.cli.notes import notes_group
    from vno.cli.queues import queues_group
    from vno.cli.serve import serve_command
    from vno.cli.worker import worker_command

    main.add_command(serve_command)
    main.add_command(worker_command)
    main.add_command(queues_group)
    main.add_command(notes_group)


_register_commands()
