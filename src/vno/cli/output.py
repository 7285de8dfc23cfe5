"""Shared CLI output helpers for JSON and human-readable output."""

from __future__ import annotations

import json
import sys
from typing import Any, NoReturn

import click

from vno.cli.exit_codes import ExitCode


def error_exit(
    message: str,
    code: ExitCode | int,
    json_output: bool = False,
) -> NoReturn:
    """Print an error and exit with code.

    JSON output uses the same envelope as the admin API.
    """
    if isinstance(code, ExitCode):
        code_name = code.name
        exit_value = int(code)
    else:
        code_name = "UNKNOWN_ERROR"
        exit_value = code

    if json_output:
        click.echo(
            json.dumps({"error": {"code": code_name, "message": message}}),
            err=True,
        )
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(exit_value)


def echo_json(data: Any) -> None:
    """Print data as indented JSON."""
    click.echo(json.dumps(data, indent=2, default=str))
