"""Exit handling utilities for the CLI.

Inside a GitHub Actions step (GITHUB_ACTIONS=true) errors and warnings are
also emitted as workflow commands, so they show up as annotations on the
run summary and not only in the step log.
"""

import os
from typing import NoReturn

import typer

from cancelruns.cli.common.output import out


def _annotate(level: str, msg: str) -> None:
    """Emit a `::error::` / `::warning::` workflow command when running in Actions."""
    if os.getenv("GITHUB_ACTIONS") != "true":
        return
    # workflow commands are line based
    escaped = msg.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
    typer.echo(f"::{level}::{escaped}")


def ok_exit(msg: str | None = None) -> NoReturn:
    """Exit successfully with an optional informational message."""
    if msg:
        out.info(msg)
    raise typer.Exit(0)


def die(msg: str, code: int = 1) -> NoReturn:
    """Exit with an error message (and error annotation) and exit code."""
    out.error(msg)
    _annotate("error", msg)
    raise typer.Exit(code)


def warn_exit(msg: str, code: int = 0) -> NoReturn:
    """Exit with a warning message (and warning annotation) and exit code."""
    out.warn(msg)
    _annotate("warning", msg)
    raise typer.Exit(code)


def exit_from_exc(exc: Exception, *, message: str, code: int = 1) -> NoReturn:
    """
    Report a failure caused by `exc` and exit, chaining the cause.

    Args:
        exc: The exception that ended the command.
        message: What to tell the user.
        code: Process exit code (1 for API / resolution failures, 2 for
              invalid configuration).
    """
    out.error(message)
    _annotate("error", message)
    raise typer.Exit(code) from exc
