"""Step outputs for GitHub Actions.

Outputs are echoed to the console and, when running inside a workflow step,
appended to the file named by GITHUB_OUTPUT.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from cancelruns.cli.common.output import out

GITHUB_OUTPUT_ENV = "GITHUB_OUTPUT"


def set_outputs(values: Mapping[str, object], *, path: str | None = None) -> None:
    """Publish step outputs. None values are written as empty strings."""
    rendered = {name: "" if value is None else str(value) for name, value in values.items()}
    out.kv(rendered)

    target = path or os.getenv(GITHUB_OUTPUT_ENV)
    if not target:
        return
    with Path(target).open("a", encoding="utf-8") as fh:
        for name, value in rendered.items():
            fh.write(f"{name}={value}\n")
