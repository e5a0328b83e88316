"""Core run collection and cancellation logic.

This module builds the run index for one workflow, walks it with a policy to
find obsolete runs, and cancels them. Cancellation is strictly sequential
and always awaited: runs are cancelled oldest id first so that, should the
invoking run be among the candidates, every other obsolete run is gone
before it cancels itself. A failed cancellation is reported and skipped,
never fatal, and so is a failed pull request notification.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable, Protocol

from cancelruns.core.adapters.github import GitHubApiError
from cancelruns.core.origin import OriginResolver, PullRequestRef
from cancelruns.core.policies import CancelPolicy, EvaluationContext, should_cancel
from cancelruns.core.reporting import NullReporter, Reporter
from cancelruns.core.runs import ACTIVE_STATUSES, RunIndex, RunRecord, RunStatus, normalize_page

DEFAULT_SERVER_URL = "https://github.com"


class RunListingAdapter(Protocol):
    """Interface for listing the runs of a workflow page by page."""

    def list_runs(
        self,
        owner: str,
        repo: str,
        *,
        workflow: int | str,
        status: str,
        branch: str | None = None,
        event: str | None = None,
    ) -> AsyncIterator[Any]:
        ...


class CancelAdapter(Protocol):
    """Interface for cancelling runs and commenting on pull requests."""

    async def cancel_run(self, owner: str, repo: str, run_id: int) -> int:
        ...

    async def create_comment(
        self, owner: str, repo: str, issue_number: int, body: str
    ) -> None:
        ...


@dataclass(frozen=True)
class CancelResult:
    """Result for a single run cancellation."""

    run_id: int
    ok: bool
    error: str | None = None


@dataclass
class CancellationOutcome:
    """
    Results of one cancellation pass, in the order the calls were issued.

    Attributes:
        results: One entry per targeted run, oldest id first.
        notified_pull_requests: Pull requests that received a comment.
    """

    results: list[CancelResult] = field(default_factory=list)
    notified_pull_requests: list[int] = field(default_factory=list)

    @property
    def targeted_ids(self) -> list[int]:
        return [r.run_id for r in self.results]

    @property
    def cancelled_ids(self) -> list[int]:
        return [r.run_id for r in self.results if r.ok]

    @property
    def failed_ids(self) -> list[int]:
        return [r.run_id for r in self.results if not r.ok]


def run_url(server_url: str | None, owner: str, repo: str, run_id: int) -> str:
    """Browser URL of a workflow run."""
    base = (server_url or DEFAULT_SERVER_URL).rstrip("/")
    return f"{base}/{owner}/{repo}/actions/runs/{run_id}"


async def collect_runs(
    adapter: RunListingAdapter,
    owner: str,
    repo: str,
    workflow: int | str,
    *,
    statuses: Iterable[RunStatus | str] = ACTIVE_STATUSES,
    branch: str | None = None,
    event: str | None = None,
    reporter: Reporter | None = None,
) -> RunIndex:
    """
    Build the run index of a workflow from one listing query per status.

    Every page goes through the normalizer, so a page of unknown shape
    aborts the whole collection with MalformedPageError instead of leaving
    an incomplete index behind.

    Args:
        adapter: Listing source for workflow runs.
        owner: Repository owner.
        repo: Repository name.
        workflow: Workflow id or workflow file name.
        statuses: Run statuses to query, one listing query each.
        branch: Optional server-side head branch filter.
        event: Optional server-side triggering event filter.
        reporter: Sink for progress messages.

    Returns:
        A RunIndex holding each run once, keyed by run number.
    """
    reporter = reporter or NullReporter()
    index = RunIndex()
    for status in statuses:
        status_value = status.value if isinstance(status, RunStatus) else str(status)
        reporter.info(
            f"Listing {status_value} runs of workflow {workflow} in {owner}/{repo}"
            + (f", branch {branch}" if branch else "")
            + (f", event {event}" if event else "")
        )
        pages = adapter.list_runs(
            owner, repo, workflow=workflow, status=status_value, branch=branch, event=event
        )
        async for page in pages:
            for record in normalize_page(page):
                index.insert(record)
    reporter.info(f"Found runs: {index.run_numbers()}")
    return index


async def plan_cancellations(
    policy: CancelPolicy, index: RunIndex, context: EvaluationContext
) -> list[RunRecord]:
    """
    Walk the index in the order the policy needs and collect candidates.

    Returns:
        Candidate runs in the order they were evaluated.
    """
    runs = index.backward() if policy.newest_first else index.forward()
    candidates: list[RunRecord] = []
    for record in runs:
        context.reporter.info(
            f"Checking run number {record.run_number}, run id {record.id}, status {record.status}"
        )
        if await should_cancel(policy, record, context):
            candidates.append(record)
    return candidates


class CancellationOrchestrator:
    """Plans and performs run cancellations for one repository."""

    def __init__(
        self,
        adapter: CancelAdapter,
        owner: str,
        repo: str,
        *,
        resolver: OriginResolver,
        self_run_url: str,
        reporter: Reporter | None = None,
    ) -> None:
        self.adapter = adapter
        self.owner = owner
        self.repo = repo
        self.resolver = resolver
        self.self_run_url = self_run_url
        self.reporter = reporter or NullReporter()

    async def plan(
        self, policy: CancelPolicy, index: RunIndex, context: EvaluationContext
    ) -> list[RunRecord]:
        """Return the runs the policy would cancel, oldest id first."""
        candidates = await plan_cancellations(policy, index, context)
        return sorted(candidates, key=lambda r: r.id)

    async def execute(
        self,
        policy: CancelPolicy,
        index: RunIndex,
        context: EvaluationContext,
        *,
        notify: bool = False,
    ) -> CancellationOutcome:
        """
        Cancel every run the policy selects, then optionally notify pull requests.

        Args:
            policy: Policy deciding which runs are obsolete.
            index: Runs of the workflow.
            context: Evaluation state shared across runs.
            notify: Comment on the pull request of each cancelled
                `pull_request` run.

        Returns:
            A CancellationOutcome with one result per targeted run.
        """
        candidates = await self.plan(policy, index, context)
        return await self.cancel_runs(candidates, policy, notify=notify)

    async def cancel_runs(
        self,
        candidates: Iterable[RunRecord],
        policy: CancelPolicy,
        *,
        notify: bool = False,
    ) -> CancellationOutcome:
        """Cancel the given runs oldest id first and notify afterwards."""
        ordered = sorted(candidates, key=lambda r: r.id)
        outcome = CancellationOutcome()
        if not ordered:
            self.reporter.info("There are no runs to cancel")
            return outcome

        self.reporter.info(f"Cancelling {len(ordered)} run(s), starting from the oldest")
        for record in ordered:
            outcome.results.append(await self._cancel(record.id))

        if notify:
            cancelled = set(outcome.cancelled_ids)
            for record in ordered:
                if record.id in cancelled and record.event == "pull_request":
                    number = await self._notify(record, policy.reason(record))
                    if number is not None:
                        outcome.notified_pull_requests.append(number)
        return outcome

    async def _cancel(self, run_id: int) -> CancelResult:
        try:
            status = await self.adapter.cancel_run(self.owner, self.repo, run_id)
        except GitHubApiError as exc:
            self.reporter.warn(f"Could not cancel run {run_id}: {exc}")
            return CancelResult(run_id=run_id, ok=False, error=str(exc))
        self.reporter.info(f"Run {run_id} cancelled, status = {status}")
        return CancelResult(run_id=run_id, ok=True)

    async def _notify(self, record: RunRecord, reason: str) -> int | None:
        """Comment on the pull request of a cancelled run. Returns the PR number."""
        try:
            pull_request = await self.resolver.find_pull_request(
                record.head_repo_owner, record.head_branch, record.head_sha
            )
            if pull_request is None:
                return None
            body = f"[The Build Workflow run]({self.self_run_url}) is cancelling this PR. {reason}"
            await self.adapter.create_comment(self.owner, self.repo, pull_request.number, body)
        except GitHubApiError as exc:
            self.reporter.warn(f"Could not notify the pull request of run {record.id}: {exc}")
            return None
        self.reporter.info(f"Notified pull request #{pull_request.number}")
        return pull_request.number

    async def post_start_message(self, pull_request: PullRequestRef | None, prefix: str) -> bool:
        """Comment `<prefix> [The workflow run](<url>)` on the source pull request."""
        if not prefix or pull_request is None:
            return False
        body = f"{prefix} [The workflow run]({self.self_run_url})"
        try:
            await self.adapter.create_comment(self.owner, self.repo, pull_request.number, body)
        except GitHubApiError as exc:
            self.reporter.warn(f"Could not comment on pull request #{pull_request.number}: {exc}")
            return False
        return True
