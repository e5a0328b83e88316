"""Reporting seam between the core engine and whatever renders messages.

The core never imports the CLI output layer. Components that need to tell
the user what they decided receive a Reporter explicitly, so tests can
record messages and the CLI can render them with Rich.
"""

from __future__ import annotations

from typing import Protocol


class Reporter(Protocol):
    """Sink for informational and warning messages emitted by the core."""

    def info(self, msg: str) -> None:
        """Report progress or a decision."""
        ...

    def warn(self, msg: str) -> None:
        """Report a recovered, non-fatal problem."""
        ...


class NullReporter:
    """Reporter that drops every message."""

    def info(self, msg: str) -> None:
        return None

    def warn(self, msg: str) -> None:
        return None
