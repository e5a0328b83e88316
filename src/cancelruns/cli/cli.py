"""CLI application for cancelling obsolete GitHub Actions workflow runs."""

import typer

from cancelruns.cli.commands.runs import app as runs_app

app = typer.Typer(
    help="cancel-runs - keep only the newest GitHub Actions run per branch, PR or schedule",
    no_args_is_help=True,
)

app.add_typer(runs_app, name="runs", help="List / cancel workflow runs.")


if __name__ == "__main__":
    app()
