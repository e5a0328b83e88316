"""Console rendering for cancel-runs.

Everything the tool tells the user goes through the module level `out`
object: decision logs from the core (it implements the core Reporter),
step outputs, the tables of runs and the confirmation prompt.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

import questionary
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from cancelruns.cli.common.tui_style import QUESTIONARY_STYLE_CONFIRM

RUNS_THEME = Theme(
    {
        "log": "dim",
        "done": "bold green",
        "warn": "yellow",
        "fail": "bold red",
        "heading": "bold cyan",
        "key": "cyan",
        "run": "bold",
        "sha": "magenta",
    }
)

SHORT_SHA = 7


def _short_sha(sha: str | None) -> str:
    return sha[:SHORT_SHA] if sha else "-"


@dataclass(frozen=True)
class Out:
    """Rich based output for CLI messages, step outputs and run tables."""

    console: Console = field(default_factory=lambda: Console(theme=RUNS_THEME, highlight=False))

    def info(self, msg: str) -> None:
        self.console.print(f"[log]·[/] {escape(msg)}")

    def warn(self, msg: str) -> None:
        self.console.print(f"[warn]! {escape(msg)}[/]")

    def error(self, msg: str) -> None:
        self.console.print(f"[fail]error:[/] {escape(msg)}")

    def success(self, msg: str) -> None:
        self.console.print(f"[done]{escape(msg)}[/]")

    def header(self, title: str) -> None:
        self.console.rule(f"[heading]{escape(title)}[/]", align="left")

    @contextmanager
    def status(self, msg: str) -> Iterator[None]:
        """Spinner shown while runs are being listed."""
        with self.console.status(msg, spinner="dots"):
            yield

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print step outputs as `name = value` lines."""
        for name, value in items.items():
            self.console.print(f"[key]{name}[/] = {escape(str(value))}")

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """
        Ask a yes/no question before anything is cancelled.

        Args:
            message: Question shown to the user.
            default: Answer used when the user just presses enter.

        Returns:
            True if the user confirms. Aborting the prompt (Ctrl-C) counts
            as no.
        """
        answer = questionary.confirm(
            message,
            default=default,
            qmark="?",
            style=QUESTIONARY_STYLE_CONFIRM,
        ).ask()
        return bool(answer)

    def runs_table(self, runs: Iterable[Any], title: str = "Runs") -> None:
        """Render RunRecord-like objects, one row per run."""
        table = Table(title=title, title_justify="left")
        table.add_column("Run", style="run", no_wrap=True)
        table.add_column("#", justify="right")
        table.add_column("Status")
        table.add_column("Event", style="log")
        table.add_column("Head")
        table.add_column("Commit", style="sha", no_wrap=True)

        for run in runs:
            run_id = str(run.id)
            if getattr(run, "html_url", None):
                run_id = f"[link={run.html_url}]{run_id}[/link]"
            table.add_row(
                run_id,
                str(run.run_number),
                run.status,
                run.event,
                run.head_key,
                _short_sha(getattr(run, "head_sha", None)),
            )

        self.console.print(table)

    def outcome_table(self, results: Iterable[Any], title: str = "Cancellation results") -> None:
        """Render CancelResult-like objects in the order the cancels were sent."""
        table = Table(title=title, title_justify="left")
        table.add_column("Run", style="run", no_wrap=True)
        table.add_column("Result")

        for result in results:
            if result.ok:
                table.add_row(str(result.run_id), "[done]cancel requested[/]")
            else:
                table.add_row(str(result.run_id), f"[fail]failed[/] {escape(result.error or '')}")

        self.console.print(table)


out = Out()
