"""Commands for finding and cancelling obsolete workflow runs."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass

import typer

from cancelruns.cli.common.actions_output import set_outputs
from cancelruns.cli.common.context import RunsAppContext, build_runs_context
from cancelruns.cli.common.exits import die, exit_from_exc, ok_exit, warn_exit
from cancelruns.cli.common.options import (
    ApiUrlOpt,
    ConfirmOpt,
    DryRunOpt,
    EventOpt,
    JobNameOpt,
    JobNamesJsonOpt,
    MessageStartOpt,
    ModeOpt,
    NotifyOpt,
    RepositoryOpt,
    RunIdOpt,
    ServerUrlOpt,
    SourceRunIdOpt,
    TokenOpt,
    WorkflowOpt,
)
from cancelruns.cli.common.output import out
from cancelruns.core.adapters.github import GitHubApiError
from cancelruns.core.cancel import CancellationOrchestrator, CancellationOutcome, collect_runs
from cancelruns.core.jobs import JobInspector
from cancelruns.core.origin import (
    Origin,
    OriginNotFoundError,
    OriginResolver,
    WorkflowResolutionError,
)
from cancelruns.core.policies import (
    CancelMode,
    CancelPolicy,
    EvaluationContext,
    PolicyConfigError,
    build_policy,
    check_invocation,
    check_options,
)
from cancelruns.core.runs import MalformedPageError, RunRecord

FATAL_ERRORS = (
    OriginNotFoundError,
    WorkflowResolutionError,
    MalformedPageError,
    GitHubApiError,
)

app = typer.Typer(
    help="Find and cancel obsolete GitHub Actions workflow runs",
    no_args_is_help=False,
    invoke_without_command=True,
)


@app.callback()
def _init(
    ctx: typer.Context,
    token: str | None = TokenOpt,
    repository: str | None = RepositoryOpt,
    api_url: str = ApiUrlOpt,
    server_url: str = ServerUrlOpt,
    run_id: int | None = RunIdOpt,
    event: str = EventOpt,
):
    """Initialize the runs context (GitHub connection and invoking run)."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)
    ctx.obj = build_runs_context(
        token=token,
        repository=repository,
        api_url=api_url,
        server_url=server_url,
        run_id=run_id,
        event=event,
    )


@dataclass
class _Plan:
    """What a cancel invocation resolved before touching any run."""

    origin: Origin
    policy: CancelPolicy
    workflow: int | str
    candidates: list[RunRecord]


def _job_name_patterns(job_name: list[str], job_names_json: str | None) -> list[str]:
    """Merge repeatable --job-name values with the JSON array form."""
    patterns = list(job_name)
    if job_names_json and job_names_json.strip():
        try:
            parsed = json.loads(job_names_json)
        except json.JSONDecodeError as exc:
            exit_from_exc(exc, message=f"Job name regexps are not valid JSON: {exc}", code=2)
        if not isinstance(parsed, list) or not all(isinstance(p, str) for p in parsed):
            die("Job name regexps must be a JSON array of strings.", code=2)
        patterns.extend(parsed)
    return patterns


def _source_run_id(appctx: RunsAppContext, source_run_id: int | None) -> int:
    run_id = source_run_id or appctx.run_id
    if run_id is None:
        die("Missing run id. Pass --source-run-id / --run-id or set GITHUB_RUN_ID.", code=2)
    return run_id


async def _plan(
    appctx: RunsAppContext,
    *,
    mode: CancelMode,
    source_run_id: int,
    patterns: list[str],
    workflow: str | None,
    self_run_url: str,
) -> _Plan:
    async with appctx.adapter() as adapter:
        resolver = OriginResolver(adapter, appctx.owner, appctx.repo, reporter=out)
        workflow_ref = workflow or await resolver.resolve_workflow_ref(source_run_id)
        origin = await resolver.resolve_origin(source_run_id)
        policy = build_policy(
            mode,
            source_run_id=source_run_id,
            head_repo=origin.head_repo,
            head_branch=origin.head_branch,
            event=origin.event,
            job_name_patterns=patterns,
        )
        out.header(f"{policy.describe()} (workflow {workflow_ref})")

        index = await collect_runs(
            adapter,
            appctx.owner,
            appctx.repo,
            workflow_ref,
            reporter=out,
            **policy.listing_filters(),
        )
        context = EvaluationContext(
            inspector=JobInspector(adapter, appctx.owner, appctx.repo, reporter=out),
            reporter=out,
        )
        orchestrator = CancellationOrchestrator(
            adapter,
            appctx.owner,
            appctx.repo,
            resolver=resolver,
            self_run_url=self_run_url,
            reporter=out,
        )
        candidates = await orchestrator.plan(policy, index, context)
    return _Plan(origin=origin, policy=policy, workflow=workflow_ref, candidates=candidates)


async def _cancel(
    appctx: RunsAppContext,
    plan: _Plan,
    *,
    notify: bool,
    message_start: str,
    self_run_url: str,
) -> CancellationOutcome:
    async with appctx.adapter() as adapter:
        resolver = OriginResolver(adapter, appctx.owner, appctx.repo, reporter=out)
        orchestrator = CancellationOrchestrator(
            adapter,
            appctx.owner,
            appctx.repo,
            resolver=resolver,
            self_run_url=self_run_url,
            reporter=out,
        )
        await orchestrator.post_start_message(plan.origin.pull_request, message_start)
        return await orchestrator.cancel_runs(plan.candidates, plan.policy, notify=notify)


def _origin_outputs(origin: Origin) -> dict[str, object]:
    return {
        "sourceHeadRepo": origin.head_repo,
        "sourceHeadBranch": origin.head_branch,
        "sourceHeadSha": origin.head_sha,
        "sourceEvent": origin.event,
        "pullRequestNumber": origin.pull_request.number if origin.pull_request else None,
        "mergeCommitSha": origin.merge_commit_sha,
        "targetCommitSha": origin.target_commit_sha,
    }


@app.command()
def cancel(
    ctx: typer.Context,
    mode: CancelMode = ModeOpt,
    source_run_id: int | None = SourceRunIdOpt,
    job_name: list[str] = JobNameOpt,
    job_names_json: str | None = JobNamesJsonOpt,
    notify_pr_cancel: bool = NotifyOpt,
    notify_pr_message_start: str = MessageStartOpt,
    workflow: str | None = WorkflowOpt,
    confirm: bool = ConfirmOpt,
    dry_run: bool = DryRunOpt,
):
    """
    Cancel obsolete runs of the source run's workflow.
    """
    appctx: RunsAppContext = ctx.obj
    patterns = _job_name_patterns(job_name, job_names_json)

    try:
        mode = check_options(mode, patterns)
        check_invocation(
            mode,
            event=appctx.event,
            explicit_source_run=source_run_id is not None,
            workflow=workflow,
        )
    except PolicyConfigError as exc:
        exit_from_exc(exc, message=str(exc), code=2)

    run_id = _source_run_id(appctx, source_run_id)
    self_run_url = appctx.run_url(appctx.run_id or run_id)

    try:
        plan = asyncio.run(
            _plan(
                appctx,
                mode=mode,
                source_run_id=run_id,
                patterns=patterns,
                workflow=workflow,
                self_run_url=self_run_url,
            )
        )
    except PolicyConfigError as exc:
        exit_from_exc(exc, message=str(exc), code=2)
    except FATAL_ERRORS as exc:
        exit_from_exc(exc, message=str(exc), code=1)

    set_outputs(_origin_outputs(plan.origin))

    if plan.candidates:
        out.runs_table(plan.candidates, title="Runs to cancel")

    if dry_run:
        set_outputs({"cancelledRuns": "[]"})
        warn_exit("Dry-run enabled: no runs were cancelled", code=0)

    if plan.candidates and confirm and not out.confirm(
        f"Cancel {len(plan.candidates)} run(s)?"
    ):
        set_outputs({"cancelledRuns": "[]"})
        ok_exit("Cancelled")

    outcome = asyncio.run(
        _cancel(
            appctx,
            plan,
            notify=notify_pr_cancel,
            message_start=notify_pr_message_start,
            self_run_url=self_run_url,
        )
    )

    if outcome.results:
        out.outcome_table(outcome.results)
    if outcome.failed_ids:
        out.warn(f"Could not cancel {len(outcome.failed_ids)} run(s): {outcome.failed_ids}")
    set_outputs({"cancelledRuns": json.dumps(outcome.cancelled_ids)})
    out.success(f"Cancelled {len(outcome.cancelled_ids)} run(s)")


@app.command("list")
def list_runs(
    ctx: typer.Context,
    source_run_id: int | None = SourceRunIdOpt,
    workflow: str | None = WorkflowOpt,
):
    """
    List queued and in-progress runs of a workflow.
    """
    appctx: RunsAppContext = ctx.obj
    run_id = None if workflow else _source_run_id(appctx, source_run_id)

    async def _list() -> list[RunRecord]:
        async with appctx.adapter() as adapter:
            workflow_ref: int | str | None = workflow
            if workflow_ref is None:
                resolver = OriginResolver(adapter, appctx.owner, appctx.repo)
                workflow_ref = await resolver.resolve_workflow_ref(run_id)
            index = await collect_runs(adapter, appctx.owner, appctx.repo, workflow_ref)
            return list(index.forward())

    try:
        with out.status("Loading runs..."):
            runs = asyncio.run(_list())
    except FATAL_ERRORS as exc:
        exit_from_exc(exc, message=str(exc), code=1)

    if not runs:
        warn_exit("No queued or in-progress runs found", code=0)

    out.runs_table(runs, title="In-flight runs")
