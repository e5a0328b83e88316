"""Application context management for the CLI."""

from __future__ import annotations

import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from cancelruns.cli.common.exits import die
from cancelruns.core.adapters.github import GitHubActionsAdapter
from cancelruns.core.auth import AuthError, get_client, require_token
from cancelruns.core.cancel import run_url

_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def parse_repository(repository: str) -> tuple[str, str]:
    """Split `owner/name` into (owner, name)."""
    parts = repository.strip().split("/")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Repository must be in the form `owner/name`, got '{repository}'.")
    owner, repo = parts
    if not _NAME_RE.match(owner) or not _NAME_RE.match(repo):
        raise ValueError(f"Invalid characters in repository '{repository}'.")
    return owner, repo


@dataclass
class RunsAppContext:
    """Application context holding GitHub connection settings and the invoking run."""

    owner: str
    repo: str
    token: str
    api_url: str
    server_url: str
    run_id: int | None
    event: str

    @asynccontextmanager
    async def adapter(self) -> AsyncIterator[GitHubActionsAdapter]:
        """Open an HTTP client for the duration of one event loop run."""
        async with get_client(self.token, self.api_url) as client:
            yield GitHubActionsAdapter(client)

    def run_url(self, run_id: int) -> str:
        return run_url(self.server_url, self.owner, self.repo, run_id)


def build_runs_context(
    *,
    token: str | None,
    repository: str | None,
    api_url: str,
    server_url: str,
    run_id: int | None,
    event: str,
) -> RunsAppContext:
    """Validate connection settings and return the application context.

    Exits with code 1 on missing credentials and code 2 on a malformed
    repository name.
    """
    try:
        token = require_token(token)
    except AuthError as exc:
        die(str(exc), code=1)
    if not repository:
        die("Missing repository. Pass --repository or set GITHUB_REPOSITORY.", code=2)
    try:
        owner, repo = parse_repository(repository)
    except ValueError as exc:
        die(str(exc), code=2)
    return RunsAppContext(
        owner=owner,
        repo=repo,
        token=token,
        api_url=api_url,
        server_url=server_url,
        run_id=run_id,
        event=event or "",
    )
