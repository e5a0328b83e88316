"""Core workflow run models plus page normalization and run indexing.

This module defines the run data structures (RunRecord, RunStatus) and the
logic that turns raw listing pages into an ordered, de-duplicated view of
the runs of one workflow. It is intentionally free of transport and CLI
concerns; the adapter yields raw page payloads and this module decides how
to read them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Union

CANCELLABLE_EVENTS = frozenset(
    {
        "push",
        "pull_request",
        "workflow_run",
        "schedule",
        "workflow_dispatch",
    }
)


class MalformedPageError(RuntimeError):
    """Raised when a run listing page has neither known shape."""


class RunStatus(str, Enum):
    """
    Workflow run statuses reported by GitHub Actions.

    Only QUEUED and IN_PROGRESS are queried when building the run index;
    the rest are listed so records can be compared against them.
    """

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    WAITING = "waiting"
    REQUESTED = "requested"
    PENDING = "pending"


ACTIVE_STATUSES: tuple[RunStatus, ...] = (RunStatus.QUEUED, RunStatus.IN_PROGRESS)


@dataclass(frozen=True)
class RunRecord:
    """
    Represents one observed workflow run.

    Attributes:
        id: Unique identifier of the run. Increases with creation time
            across the whole installation.
        run_number: Sequence number of the run within its workflow. Used
            only for ordering inside the run index.
        status: Run status (queued, in_progress, completed, ...).
        event: Name of the event that triggered the run.
        workflow_id: Identifier of the workflow the run belongs to.
        head_repo_full_name: `owner/name` of the repository the run was
            triggered from. None when the head repository was deleted.
        head_repo_owner: Login of the head repository owner.
        head_branch: Branch the run was triggered from.
        head_sha: Commit the run was triggered from.
        html_url: Browser URL of the run.
    """

    id: int
    run_number: int
    status: str
    event: str
    workflow_id: int | None = None
    head_repo_full_name: str | None = None
    head_repo_owner: str | None = None
    head_branch: str | None = None
    head_sha: str | None = None
    html_url: str | None = None

    @property
    def head_key(self) -> str:
        """Key grouping runs that represent the same logical work."""
        return f"{self.head_repo_full_name}/{self.head_branch}"

    @property
    def is_completed(self) -> bool:
        return self.status == RunStatus.COMPLETED.value


def workflow_id_from_payload(payload: Mapping[str, Any]) -> int | None:
    """
    Extract the workflow identifier of a run payload.

    Prefers the explicit `workflow_id` field and falls back to the last
    path segment of `workflow_url`.
    """
    raw = payload.get("workflow_id")
    if raw is None:
        url = payload.get("workflow_url") or ""
        raw = url.rstrip("/").rsplit("/", 1)[-1] if url else None
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def parse_run(payload: Mapping[str, Any]) -> RunRecord:
    """
    Build a RunRecord from one run object of the REST API.

    Raises:
        MalformedPageError: If the object is not a mapping or lacks an
            integer `id` / `run_number`.
    """
    if not isinstance(payload, Mapping):
        raise MalformedPageError(f"Run entry is not an object: {type(payload).__name__}")
    try:
        run_id = int(payload["id"])
        run_number = int(payload["run_number"])
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedPageError(
            f"Run entry has no usable id / run_number: {exc!r}"
        ) from exc
    head_repo = payload.get("head_repository") or {}
    owner = head_repo.get("owner") or {}
    return RunRecord(
        id=run_id,
        run_number=run_number,
        status=str(payload.get("status") or ""),
        event=str(payload.get("event") or ""),
        workflow_id=workflow_id_from_payload(payload),
        head_repo_full_name=head_repo.get("full_name"),
        head_repo_owner=owner.get("login"),
        head_branch=payload.get("head_branch"),
        head_sha=payload.get("head_sha"),
        html_url=payload.get("html_url"),
    )


@dataclass(frozen=True)
class BareRunPage:
    """A listing page delivered as a plain sequence of run objects."""

    items: Sequence[Mapping[str, Any]]


@dataclass(frozen=True)
class WrappedRunPage:
    """A listing page delivered as `{"total_count": n, "workflow_runs": [...]}`."""

    items: Sequence[Mapping[str, Any]]
    total_count: int | None = None


RunPage = Union[BareRunPage, WrappedRunPage]


def decode_page(payload: Any) -> RunPage:
    """
    Decide which shape a listing page payload has.

    Some paginated responses come back as a bare list (the pagination link
    points at a differently shaped endpoint), others as the documented
    object wrapping `workflow_runs`. Both are accepted.

    Raises:
        MalformedPageError: If the payload has neither shape.
    """
    if isinstance(payload, Sequence) and not isinstance(payload, (str, bytes)):
        return BareRunPage(items=payload)
    if isinstance(payload, Mapping):
        runs = payload.get("workflow_runs")
        if isinstance(runs, Sequence) and not isinstance(runs, (str, bytes)):
            return WrappedRunPage(items=runs, total_count=payload.get("total_count"))
    raise MalformedPageError(
        f"Unrecognized workflow run page: expected a list or an object with "
        f"'workflow_runs', got {type(payload).__name__}"
    )


def normalize_page(payload: Any) -> list[RunRecord]:
    """Return the run records contained in one listing page payload."""
    page = decode_page(payload)
    return [parse_run(item) for item in page.items]


class RunIndex:
    """
    Runs of one workflow keyed and ordered by run number.

    The same run may be seen by more than one status-filtered query; later
    sightings replace earlier ones.
    """

    def __init__(self, records: Iterator[RunRecord] | Sequence[RunRecord] = ()):
        self._by_number: dict[int, RunRecord] = {}
        for record in records:
            self.insert(record)

    def insert(self, record: RunRecord) -> None:
        self._by_number[record.run_number] = record

    def forward(self) -> Iterator[RunRecord]:
        """Iterate records oldest run number first."""
        for number in sorted(self._by_number):
            yield self._by_number[number]

    def backward(self) -> Iterator[RunRecord]:
        """Iterate records newest run number first."""
        for number in sorted(self._by_number, reverse=True):
            yield self._by_number[number]

    def run_numbers(self) -> list[int]:
        return sorted(self._by_number)

    def __len__(self) -> int:
        return len(self._by_number)

    def __iter__(self) -> Iterator[RunRecord]:
        return self.forward()
