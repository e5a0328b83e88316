"""Job-level inspection of workflow runs.

The fail-fast policies need to look inside a run: does it contain a job
whose name matches one of the configured patterns, and did that job fail?
This module pages through the jobs of a run and answers that question for
both policies with one routine.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import AsyncIterator, Protocol, Sequence

from cancelruns.core.reporting import NullReporter, Reporter

FAILURE = "failure"


@dataclass(frozen=True)
class JobRecord:
    """
    Represents one job of a workflow run.

    Attributes:
        name: Display name of the job.
        conclusion: Outcome of the job (success, failure, cancelled, ...),
                    or None while the job has not finished.
    """

    name: str
    conclusion: str | None = None


class JobsAdapter(Protocol):
    """Interface for listing the jobs of a run."""

    def iter_jobs(self, owner: str, repo: str, run_id: int) -> AsyncIterator[JobRecord]:
        """Yield all jobs of a run across pages."""
        ...


def name_matches(name: str, patterns: Sequence[re.Pattern[str]]) -> bool:
    """Return True if any pattern matches somewhere in the job name."""
    return any(p.search(name) for p in patterns)


class JobInspector:
    """Evaluates job name / outcome predicates for runs of one repository."""

    def __init__(
        self,
        adapter: JobsAdapter,
        owner: str,
        repo: str,
        reporter: Reporter | None = None,
    ) -> None:
        self.adapter = adapter
        self.owner = owner
        self.repo = repo
        self.reporter = reporter or NullReporter()

    async def jobs_match(
        self,
        run_id: int,
        patterns: Sequence[re.Pattern[str]],
        require_failure: bool,
    ) -> bool:
        """
        Check whether a run has a job matching any of the patterns.

        Args:
            run_id: Run whose jobs are inspected.
            patterns: Compiled regular expressions tested against job names.
            require_failure: If True, only a matching job that concluded with
                `failure` counts; matching jobs with other conclusions are
                skipped and scanning continues. If False, the first matching
                job counts regardless of its conclusion.

        Returns:
            True as soon as a qualifying job is found, False once all job
            pages are exhausted without one.
        """
        shown = [p.pattern for p in patterns]
        if require_failure:
            self.reporter.info(f"Checking if run {run_id} has failed jobs matching {shown}")
        else:
            self.reporter.info(f"Checking if run {run_id} has jobs matching {shown}")

        async for job in self.adapter.iter_jobs(self.owner, self.repo, run_id):
            if not name_matches(job.name, patterns):
                continue
            if not require_failure:
                self.reporter.info(f"Job '{job.name}' in run {run_id} matches")
                return True
            if job.conclusion == FAILURE:
                self.reporter.info(f"Job '{job.name}' in run {run_id} matches and failed")
                return True
            self.reporter.info(
                f"Job '{job.name}' in run {run_id} matches but concluded "
                f"{job.conclusion or 'nothing yet'}"
            )
        return False
