import pytest

from cancelruns.core.runs import (
    BareRunPage,
    MalformedPageError,
    RunIndex,
    RunRecord,
    WrappedRunPage,
    decode_page,
    normalize_page,
    parse_run,
)


def _payload(run_id: int, number: int, status: str = "in_progress") -> dict:
    return {
        "id": run_id,
        "run_number": number,
        "status": status,
        "event": "push",
        "workflow_id": 7,
        "head_branch": "main",
        "head_sha": f"sha{run_id}",
        "head_repository": {"full_name": "octo/app", "owner": {"login": "octo"}},
    }


def test_normalize_page_accepts_bare_sequence():
    records = normalize_page([_payload(1, 10), _payload(2, 11), _payload(3, 12)])

    assert [r.id for r in records] == [1, 2, 3]
    assert [r.run_number for r in records] == [10, 11, 12]
    assert records[0].head_repo_full_name == "octo/app"
    assert records[0].head_repo_owner == "octo"
    assert records[2].head_sha == "sha3"


def test_normalize_page_accepts_wrapped_sequence():
    records = normalize_page(
        {"total_count": 2, "workflow_runs": [_payload(4, 20), _payload(5, 21, "queued")]}
    )

    assert len(records) == 2
    assert records[1].id == 5
    assert records[1].status == "queued"
    assert records[1].workflow_id == 7


def test_decode_page_returns_shape_variant():
    assert isinstance(decode_page([]), BareRunPage)
    wrapped = decode_page({"total_count": 0, "workflow_runs": []})
    assert isinstance(wrapped, WrappedRunPage)
    assert wrapped.total_count == 0


@pytest.mark.parametrize("payload", [{"runs": []}, "workflow_runs", None, 42, {"workflow_runs": 3}])
def test_decode_page_rejects_unknown_shape(payload):
    with pytest.raises(MalformedPageError):
        decode_page(payload)


def test_parse_run_falls_back_to_workflow_url():
    payload = _payload(9, 1)
    del payload["workflow_id"]
    payload["workflow_url"] = "https://api.github.com/repos/octo/app/actions/workflows/1234"

    assert parse_run(payload).workflow_id == 1234


def test_parse_run_tolerates_deleted_head_repository():
    payload = _payload(9, 1)
    payload["head_repository"] = None

    record = parse_run(payload)

    assert record.head_repo_full_name is None
    assert record.head_repo_owner is None


def test_run_index_orders_by_run_number_and_coalesces():
    index = RunIndex()
    index.insert(RunRecord(id=30, run_number=3, status="queued", event="push"))
    index.insert(RunRecord(id=10, run_number=1, status="queued", event="push"))
    index.insert(RunRecord(id=20, run_number=2, status="queued", event="push"))
    index.insert(RunRecord(id=10, run_number=1, status="in_progress", event="push"))

    assert len(index) == 3
    assert [r.id for r in index.forward()] == [10, 20, 30]
    assert [r.id for r in index.backward()] == [30, 20, 10]
    assert next(index.forward()).status == "in_progress"


def test_head_key_joins_repo_and_branch():
    record = RunRecord(
        id=1,
        run_number=1,
        status="queued",
        event="push",
        head_repo_full_name="octo/app",
        head_branch="feature-x",
    )

    assert record.head_key == "octo/app/feature-x"


@pytest.mark.parametrize(
    "item",
    [
        {"run_number": 1, "status": "queued"},
        {"id": 5, "status": "queued"},
        {"id": "five", "run_number": 1},
        {"id": None, "run_number": 1},
        "not-a-run",
    ],
)
def test_normalize_page_rejects_unusable_run_entries(item):
    with pytest.raises(MalformedPageError):
        normalize_page({"workflow_runs": [item]})
