import asyncio

import pytest

from cancelruns.core.jobs import JobInspector, JobRecord
from cancelruns.core.policies import (
    AllDuplicatesPolicy,
    CancelMode,
    DuplicatesPolicy,
    EvaluationContext,
    FailedJobsPolicy,
    NamedJobsPolicy,
    PolicyConfigError,
    SelfPolicy,
    build_policy,
    check_invocation,
    check_options,
    should_cancel,
)
from cancelruns.core.runs import RunRecord


class _JobsAdapterStub:
    def __init__(self, jobs_by_run: dict[int, list[JobRecord]] | None = None):
        self.jobs_by_run = jobs_by_run or {}
        self.inspected: list[int] = []

    async def iter_jobs(self, owner: str, repo: str, run_id: int):
        self.inspected.append(run_id)
        for job in self.jobs_by_run.get(run_id, []):
            yield job


def _run(
    run_id: int,
    *,
    status: str = "in_progress",
    event: str = "push",
    repo: str = "octo/app",
    branch: str = "main",
    number: int | None = None,
) -> RunRecord:
    return RunRecord(
        id=run_id,
        run_number=number if number is not None else run_id,
        status=status,
        event=event,
        head_repo_full_name=repo,
        head_repo_owner=repo.split("/")[0],
        head_branch=branch,
        head_sha=f"sha{run_id}",
    )


def _context(jobs_by_run: dict[int, list[JobRecord]] | None = None) -> EvaluationContext:
    inspector = JobInspector(_JobsAdapterStub(jobs_by_run), "octo", "app")
    return EvaluationContext(inspector=inspector)


def _decide(policy, record: RunRecord, context: EvaluationContext | None = None) -> bool:
    return asyncio.run(should_cancel(policy, record, context or _context()))


def _all_policies():
    return [
        SelfPolicy(5),
        DuplicatesPolicy(10, "octo/app"),
        FailedJobsPolicy([".*"]),
        NamedJobsPolicy([".*"]),
        AllDuplicatesPolicy(),
    ]


@pytest.mark.parametrize("policy", _all_policies(), ids=lambda p: p.mode.value)
def test_completed_runs_are_never_cancelled(policy):
    jobs = {5: [JobRecord("any", "failure")]}

    assert _decide(policy, _run(5, status="completed"), _context(jobs)) is False


@pytest.mark.parametrize("policy", _all_policies(), ids=lambda p: p.mode.value)
@pytest.mark.parametrize("event", ["issue_comment", "release", "pull_request_target", ""])
def test_runs_from_other_events_are_never_cancelled(policy, event):
    jobs = {5: [JobRecord("any", "failure")]}

    assert _decide(policy, _run(5, event=event), _context(jobs)) is False


def test_self_policy_matches_only_source_run():
    policy = SelfPolicy(42)

    assert _decide(policy, _run(42, event="schedule", repo="fork/app", branch="x")) is True
    assert _decide(policy, _run(41)) is False
    assert _decide(policy, _run(43)) is False


def test_duplicates_cancels_earlier_run_only():
    policy = DuplicatesPolicy(150, "octo/app", head_branch="main")

    assert _decide(policy, _run(100)) is True
    assert _decide(policy, _run(150)) is False


@pytest.mark.parametrize("run_id", [151, 200, 10_000])
def test_duplicates_never_cancels_later_runs(run_id):
    policy = DuplicatesPolicy(150, "octo/app", head_branch="main")

    assert _decide(policy, _run(run_id)) is False


def test_duplicates_ignores_runs_from_other_repositories():
    policy = DuplicatesPolicy(150, "octo/app")

    assert _decide(policy, _run(100, repo="fork/app")) is False


def test_duplicates_without_expected_repo_compares_ids_only():
    policy = DuplicatesPolicy(150, None)

    assert _decide(policy, _run(100, repo="fork/app")) is True


def test_duplicates_ignores_other_heads_when_branch_is_known():
    policy = DuplicatesPolicy(150, "octo/app", head_branch="feature-x")

    assert _decide(policy, _run(100, branch="feature-y")) is False
    assert _decide(policy, _run(100, branch="feature-x")) is True


def test_failed_jobs_policy_needs_failed_matching_job():
    jobs = {
        7: [JobRecord("Build docs", "success"), JobRecord("Static checks", "failure")],
    }

    assert _decide(FailedJobsPolicy(["^Static checks$"]), _run(7), _context(jobs)) is True
    assert _decide(FailedJobsPolicy(["^Build docs$"]), _run(7), _context(jobs)) is False


def test_named_jobs_policy_ignores_conclusion():
    jobs = {8: [JobRecord("Integration Tests", "success")]}

    assert _decide(NamedJobsPolicy(["Integration.*"]), _run(8), _context(jobs)) is True
    assert _decide(NamedJobsPolicy(["Unit.*"]), _run(8), _context(jobs)) is False


def test_all_duplicates_keeps_first_seen_run_per_head():
    policy = AllDuplicatesPolicy()
    context = _context()

    decisions = [
        asyncio.run(should_cancel(policy, record, context))
        for record in [_run(30), _run(25, branch="dev"), _run(20), _run(10)]
    ]

    assert decisions == [False, False, True, True]
    assert context.kept_heads == {"octo/app/main", "octo/app/dev"}


def test_all_duplicates_fail_fast_checks_only_kept_run():
    adapter = _JobsAdapterStub(
        {30: [JobRecord("Static checks", "failure")], 20: [JobRecord("Static checks", "failure")]}
    )
    context = EvaluationContext(inspector=JobInspector(adapter, "octo", "app"))
    policy = AllDuplicatesPolicy(["^Static checks$"])

    assert asyncio.run(should_cancel(policy, _run(30), context)) is True
    assert asyncio.run(should_cancel(policy, _run(20), context)) is True
    assert adapter.inspected == [30]


@pytest.mark.parametrize("mode", [CancelMode.SELF, CancelMode.DUPLICATES])
def test_job_patterns_rejected_for_self_and_duplicates(mode):
    with pytest.raises(PolicyConfigError, match="cannot specify"):
        check_options(mode, ["^Build$"])


@pytest.mark.parametrize("mode", ["failedJobs", "namedJobs"])
def test_job_modes_require_patterns(mode):
    with pytest.raises(PolicyConfigError, match="at least one"):
        check_options(mode, [])


def test_check_options_rejects_bad_regex_and_unknown_mode():
    with pytest.raises(PolicyConfigError, match="Invalid job name regex"):
        check_options("namedJobs", ["(unclosed"])
    with pytest.raises(PolicyConfigError, match="Unknown cancel mode"):
        check_options("everything", [])


def test_check_invocation_rejects_unsafe_combinations():
    with pytest.raises(PolicyConfigError, match="workflow_run"):
        check_invocation(
            CancelMode.DUPLICATES, event="workflow_run", explicit_source_run=False, workflow=None
        )
    with pytest.raises(PolicyConfigError, match="schedule"):
        check_invocation(
            CancelMode.ALL_DUPLICATES, event="schedule", explicit_source_run=False, workflow=None
        )

    check_invocation(
        CancelMode.DUPLICATES, event="workflow_run", explicit_source_run=True, workflow=None
    )
    check_invocation(
        CancelMode.ALL_DUPLICATES, event="schedule", explicit_source_run=False, workflow="ci.yml"
    )


def test_build_policy_returns_matching_variant():
    assert isinstance(build_policy("self", source_run_id=1), SelfPolicy)
    duplicates = build_policy(
        "duplicates", source_run_id=1, head_repo="octo/app", head_branch="main", event="push"
    )
    assert isinstance(duplicates, DuplicatesPolicy)
    assert duplicates.listing_filters() == {"branch": "main", "event": "push"}
    assert isinstance(build_policy("failedJobs", job_name_patterns=["x"]), FailedJobsPolicy)
    assert isinstance(build_policy("namedJobs", job_name_patterns=["x"]), NamedJobsPolicy)
    sweep = build_policy("allDuplicates")
    assert isinstance(sweep, AllDuplicatesPolicy)
    assert sweep.newest_first is True
    assert sweep.listing_filters() == {}
