"""Cancellation policies and the decision of whether a run is obsolete.

Each policy encapsulates one way of telling an obsolete run from one that
should keep running. All policies share the same entry point,
`should_cancel`, which applies the terminal guard common to every policy
before dispatching to the policy itself. Policies never list runs or cancel
anything; the orchestrator in `cancelruns.core.cancel` does that.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from cancelruns.core.jobs import JobInspector
from cancelruns.core.reporting import NullReporter, Reporter
from cancelruns.core.runs import CANCELLABLE_EVENTS, RunRecord


class PolicyConfigError(ValueError):
    """Raised when a policy is configured with incompatible or invalid options."""


class CancelMode(str, Enum):
    """Names under which the policies are selected by users."""

    DUPLICATES = "duplicates"
    ALL_DUPLICATES = "allDuplicates"
    SELF = "self"
    FAILED_JOBS = "failedJobs"
    NAMED_JOBS = "namedJobs"


@dataclass
class EvaluationContext:
    """
    State shared by the evaluation of all runs of one invocation.

    Attributes:
        inspector: Job inspector used by job-based policies.
        reporter: Sink for decision messages.
        kept_heads: Head keys already kept by the head-deduplication sweep.
    """

    inspector: JobInspector | None = None
    reporter: Reporter = field(default_factory=NullReporter)
    kept_heads: set[str] = field(default_factory=set)

    def require_inspector(self) -> JobInspector:
        if self.inspector is None:
            raise RuntimeError("This policy needs a job inspector in its context")
        return self.inspector


def compile_patterns(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    """Compile job name patterns, turning regex syntax errors into config errors."""
    compiled: list[re.Pattern[str]] = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise PolicyConfigError(f"Invalid job name regex '{pattern}': {exc}") from exc
    return compiled


class CancelPolicy(ABC):
    """
    Abstract base class for all cancellation policies.

    Attributes:
        mode: The user-facing name of the policy.
        newest_first: Whether runs must be evaluated newest run first.
    """

    mode: CancelMode
    newest_first: bool = False

    @abstractmethod
    async def evaluate(self, record: RunRecord, context: EvaluationContext) -> bool:
        """
        Decide whether a non-terminal run is a cancellation candidate.

        Only called for runs that passed the terminal guard of `should_cancel`.
        """
        ...

    @abstractmethod
    def reason(self, record: RunRecord) -> str:
        """Human readable reason for cancelling `record`, used in pull request comments."""
        ...

    def listing_filters(self) -> dict[str, str]:
        """Extra server-side filters for the run listing queries."""
        return {}

    def describe(self) -> str:
        return self.mode.value


class SelfPolicy(CancelPolicy):
    """Cancel exactly the source run."""

    mode = CancelMode.SELF

    def __init__(self, source_run_id: int):
        self.source_run_id = source_run_id

    async def evaluate(self, record: RunRecord, context: EvaluationContext) -> bool:
        if record.id != self.source_run_id:
            return False
        context.reporter.info(f"Cancelling the source run {record.id}")
        return True

    def reason(self, record: RunRecord) -> str:
        return "The job has been cancelled by another workflow."

    def describe(self) -> str:
        return f"cancel source run {self.source_run_id}"


class DuplicatesPolicy(CancelPolicy):
    """
    Cancel runs started before the source run for the same head.

    The source run itself and runs created after it are never cancelled.
    Run ids grow with creation time, so they order runs by age even across
    workflows; run numbers do not.
    """

    mode = CancelMode.DUPLICATES

    def __init__(
        self,
        source_run_id: int,
        head_repo: str | None,
        head_branch: str | None = None,
        event: str | None = None,
    ):
        self.source_run_id = source_run_id
        self.head_repo = head_repo
        self.head_branch = head_branch
        self.event = event

    async def evaluate(self, record: RunRecord, context: EvaluationContext) -> bool:
        reporter = context.reporter
        if self.head_repo is not None and record.head_repo_full_name != self.head_repo:
            reporter.info(
                f"Run {record.id} is from a different repo: {record.head_repo_full_name} "
                f"(expected {self.head_repo}). Not cancelling it"
            )
            return False
        if self.head_branch is not None and record.head_key != f"{self.head_repo}/{self.head_branch}":
            reporter.info(f"Run {record.id} is for a different head: {record.head_key}")
            return False
        if record.id == self.source_run_id:
            reporter.info(f"Run {record.id} is the source run. Not cancelling it")
            return False
        if record.id > self.source_run_id:
            reporter.info(
                f"Run {record.id} started later than the source run {self.source_run_id}. "
                "Not cancelling it"
            )
            return False
        reporter.info(f"Cancelling run {record.id}: duplicate of source run {self.source_run_id}")
        return True

    def reason(self, record: RunRecord) -> str:
        return f"It is an earlier duplicate of run {self.source_run_id}."

    def listing_filters(self) -> dict[str, str]:
        filters: dict[str, str] = {}
        if self.head_branch:
            filters["branch"] = self.head_branch
        if self.event:
            filters["event"] = self.event
        return filters

    def describe(self) -> str:
        return f"cancel duplicates started before run {self.source_run_id}"


class _JobPatternPolicy(CancelPolicy):
    """Shared base of the policies that look at job names."""

    require_failure: bool = False

    def __init__(self, job_name_patterns: Iterable[str]):
        self.raw_patterns = list(job_name_patterns)
        if not self.raw_patterns:
            raise PolicyConfigError(f"The {self.mode.value} mode needs at least one job name regex")
        self.patterns = compile_patterns(self.raw_patterns)

    async def evaluate(self, record: RunRecord, context: EvaluationContext) -> bool:
        inspector = context.require_inspector()
        matched = await inspector.jobs_match(record.id, self.patterns, self.require_failure)
        if matched:
            context.reporter.info(f"Cancelling run {record.id}: matching jobs found")
        else:
            context.reporter.info(f"Run {record.id} has no qualifying jobs. Not cancelling it")
        return matched


class FailedJobsPolicy(_JobPatternPolicy):
    """Cancel runs in which a job with a matching name has failed."""

    mode = CancelMode.FAILED_JOBS
    require_failure = True

    def reason(self, record: RunRecord) -> str:
        return f"It has some failed jobs matching {self.raw_patterns}."

    def describe(self) -> str:
        return f"cancel runs where jobs matching {self.raw_patterns} failed"


class NamedJobsPolicy(_JobPatternPolicy):
    """Cancel runs that contain a job with a matching name, whatever its outcome."""

    mode = CancelMode.NAMED_JOBS

    def reason(self, record: RunRecord) -> str:
        return f"It has jobs matching {self.raw_patterns}."

    def describe(self) -> str:
        return f"cancel runs with jobs matching {self.raw_patterns}"


class AllDuplicatesPolicy(CancelPolicy):
    """
    Keep only the newest run per head across a whole workflow.

    Runs must be evaluated newest first: the first run seen for a head key
    is kept and every later-seen (older) run for that head is cancelled.
    When job name patterns are given, the kept run is also cancelled if one
    of its matching jobs has already failed.
    """

    mode = CancelMode.ALL_DUPLICATES
    newest_first = True

    def __init__(self, job_name_patterns: Iterable[str] = ()):
        self.raw_patterns = list(job_name_patterns)
        self.patterns = compile_patterns(self.raw_patterns)
        # kept runs cancelled because matching jobs failed
        self.failed_kept_ids: set[int] = set()

    async def evaluate(self, record: RunRecord, context: EvaluationContext) -> bool:
        key = record.head_key
        if key in context.kept_heads:
            context.reporter.info(f"Cancelling run {record.id}: a newer run exists for {key}")
            return True
        context.kept_heads.add(key)
        context.reporter.info(f"Keeping run {record.id}: newest run for {key}")
        if not self.patterns:
            return False
        failed = await context.require_inspector().jobs_match(record.id, self.patterns, True)
        if failed:
            self.failed_kept_ids.add(record.id)
            context.reporter.info(f"Cancelling run {record.id}: matching jobs failed")
        return failed

    def reason(self, record: RunRecord) -> str:
        if record.id in self.failed_kept_ids:
            return f"It has some failed jobs matching {self.raw_patterns}."
        return "It is an earlier duplicate of a newer run on the same branch."

    def describe(self) -> str:
        return "cancel all but the newest run per branch"


async def should_cancel(
    policy: CancelPolicy, record: RunRecord, context: EvaluationContext
) -> bool:
    """
    Decide whether a run should be cancelled under a policy.

    Runs that are completed, or that were triggered by an event which does
    not start regular workflow runs, are never cancelled whatever the policy.
    """
    if record.is_completed:
        context.reporter.info(f"Run {record.id} is completed. Not cancelling it")
        return False
    if record.event not in CANCELLABLE_EVENTS:
        context.reporter.info(
            f"Run {record.id} was triggered by '{record.event}', "
            f"not one of {sorted(CANCELLABLE_EVENTS)}. Not cancelling it"
        )
        return False
    return await policy.evaluate(record, context)


def check_options(mode: CancelMode | str, job_name_patterns: Iterable[str] = ()) -> CancelMode:
    """
    Validate a mode and its job name patterns without touching the network.

    Raises:
        PolicyConfigError: If the mode is unknown, if job name patterns are
            given to a mode that does not use them, if a job-based mode has
            no patterns, or if a pattern is not a valid regex.
    """
    try:
        mode = CancelMode(mode)
    except ValueError as exc:
        choices = ", ".join(m.value for m in CancelMode)
        raise PolicyConfigError(f"Unknown cancel mode '{mode}' (expected one of {choices})") from exc

    patterns = list(job_name_patterns)
    if patterns and mode in (CancelMode.SELF, CancelMode.DUPLICATES):
        raise PolicyConfigError(f"You cannot specify job name regexps in the {mode.value} mode.")
    if not patterns and mode in (CancelMode.FAILED_JOBS, CancelMode.NAMED_JOBS):
        raise PolicyConfigError(f"The {mode.value} mode needs at least one job name regex.")
    compile_patterns(patterns)
    return mode


def check_invocation(
    mode: CancelMode,
    *,
    event: str,
    explicit_source_run: bool,
    workflow: str | None,
) -> None:
    """
    Reject mode / trigger combinations that would cancel the wrong runs.

    - A `workflow_run` invocation in duplicates mode must name the source
      run, otherwise the canceller's own run would be used as reference.
    - A `schedule` sweep has no meaningful source run, so the workflow to
      sweep must be named explicitly.
    """
    if event == "workflow_run" and mode is CancelMode.DUPLICATES and not explicit_source_run:
        raise PolicyConfigError(
            "You cannot run on a workflow_run event in duplicates mode without a source run id: "
            "it would cancel runs which are not duplicates."
        )
    if event == "schedule" and mode is CancelMode.ALL_DUPLICATES and not workflow:
        raise PolicyConfigError(
            "A schedule sweep in allDuplicates mode needs the workflow to sweep (--workflow)."
        )


def build_policy(
    mode: CancelMode | str,
    *,
    source_run_id: int | None = None,
    head_repo: str | None = None,
    head_branch: str | None = None,
    event: str | None = None,
    job_name_patterns: Iterable[str] = (),
) -> CancelPolicy:
    """
    Build a policy from user-provided options.

    Raises:
        PolicyConfigError: If `check_options` rejects the options, or if
            the self / duplicates modes get no source run id.
    """
    mode = check_options(mode, job_name_patterns)
    patterns = list(job_name_patterns)
    if mode in (CancelMode.SELF, CancelMode.DUPLICATES) and source_run_id is None:
        raise PolicyConfigError(f"The {mode.value} mode needs a source run id.")

    if mode is CancelMode.SELF:
        return SelfPolicy(source_run_id)
    if mode is CancelMode.DUPLICATES:
        return DuplicatesPolicy(source_run_id, head_repo, head_branch=head_branch, event=event)
    if mode is CancelMode.FAILED_JOBS:
        return FailedJobsPolicy(patterns)
    if mode is CancelMode.NAMED_JOBS:
        return NamedJobsPolicy(patterns)
    return AllDuplicatesPolicy(patterns)
