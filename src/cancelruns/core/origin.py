"""Resolution of the source run the cancellation is evaluated against.

Given a run id, find out which workflow it belongs to, where it came from
(head repository, branch and commit), what triggered it, and which open
pull request it builds, if any.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Protocol

from cancelruns.core.adapters.github import GitHubApiError
from cancelruns.core.reporting import NullReporter, Reporter
from cancelruns.core.runs import workflow_id_from_payload


class OriginNotFoundError(RuntimeError):
    """Raised when the source run does not exist."""


class WorkflowResolutionError(RuntimeError):
    """Raised when the workflow of a run cannot be determined."""


@dataclass(frozen=True)
class PullRequestRef:
    """Pull request a run was built for."""

    number: int
    head_sha: str
    merge_commit_sha: str | None = None


@dataclass(frozen=True)
class Origin:
    """
    Coordinates of the source run.

    Attributes:
        run_id: The resolved run.
        head_repo: `owner/name` of the head repository.
        head_branch: Branch the run was triggered from.
        event: Triggering event name.
        head_sha: Commit the run was triggered from.
        workflow_id: Workflow the run belongs to.
        pull_request: Open pull request for `pull_request` runs, if found.
    """

    run_id: int
    head_repo: str | None
    head_branch: str | None
    event: str
    head_sha: str | None
    workflow_id: int | None
    pull_request: PullRequestRef | None = None

    @property
    def merge_commit_sha(self) -> str | None:
        return self.pull_request.merge_commit_sha if self.pull_request else None

    @property
    def target_commit_sha(self) -> str | None:
        """Commit a build of this run effectively tests."""
        if self.pull_request:
            return self.merge_commit_sha
        return self.head_sha


class OriginAdapter(Protocol):
    """Interface for single-run lookup and pull request search."""

    async def get_run(self, owner: str, repo: str, run_id: int) -> dict[str, Any]:
        ...

    async def list_pull_requests(
        self, owner: str, repo: str, head: str
    ) -> list[dict[str, Any]]:
        ...


class OriginResolver:
    """Looks up source runs and their pull requests in one repository."""

    def __init__(
        self,
        adapter: OriginAdapter,
        owner: str,
        repo: str,
        reporter: Reporter | None = None,
    ) -> None:
        self.adapter = adapter
        self.owner = owner
        self.repo = repo
        self.reporter = reporter or NullReporter()

    async def _get_run(self, run_id: int) -> dict[str, Any]:
        try:
            return await self.adapter.get_run(self.owner, self.repo, run_id)
        except GitHubApiError as exc:
            if exc.status_code == 404:
                raise OriginNotFoundError(
                    f"Run {run_id} was not found in {self.owner}/{self.repo}"
                ) from exc
            raise

    async def resolve_workflow_ref(self, run_id: int) -> int:
        """Return the id of the workflow the run belongs to."""
        run = await self._get_run(run_id)
        workflow_id = workflow_id_from_payload(run)
        if workflow_id is None:
            raise WorkflowResolutionError(f"Could not resolve the workflow of run {run_id}")
        self.reporter.info(f"Run {run_id} belongs to workflow {workflow_id}")
        return workflow_id

    async def find_pull_request(
        self,
        head_owner: str | None,
        head_branch: str | None,
        head_sha: str | None,
    ) -> PullRequestRef | None:
        """
        Find the open pull request built from `head_owner:head_branch` at `head_sha`.

        Returns the first pull request whose head commit matches exactly, or
        None when there is no such pull request.
        """
        if not head_owner or not head_branch:
            return None
        head = f"{head_owner}:{head_branch}"
        pulls = await self.adapter.list_pull_requests(self.owner, self.repo, head)
        for pull in pulls:
            sha = (pull.get("head") or {}).get("sha")
            if sha == head_sha:
                self.reporter.info(f"Found pull request #{pull['number']} for {head}")
                return PullRequestRef(
                    number=int(pull["number"]),
                    head_sha=sha,
                    merge_commit_sha=pull.get("merge_commit_sha"),
                )
        self.reporter.info(f"No open pull request for {head} at {head_sha}")
        return None

    async def resolve_origin(self, run_id: int) -> Origin:
        """Resolve the head coordinates, event, workflow and pull request of a run."""
        run = await self._get_run(run_id)
        head_repo = run.get("head_repository") or {}
        event = str(run.get("event") or "")
        origin = Origin(
            run_id=run_id,
            head_repo=head_repo.get("full_name"),
            head_branch=run.get("head_branch"),
            event=event,
            head_sha=run.get("head_sha"),
            workflow_id=workflow_id_from_payload(run),
        )
        self.reporter.info(
            f"Source run {run_id}: head repo {origin.head_repo}, branch {origin.head_branch}, "
            f"event {event}, sha {origin.head_sha}"
        )
        if event != "pull_request":
            return origin

        pull_request = await self.find_pull_request(
            (head_repo.get("owner") or {}).get("login"),
            origin.head_branch,
            origin.head_sha,
        )
        return replace(origin, pull_request=pull_request)
