"""Unit tests for the file-backed run registry."""

import json
import re
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from panecrew.core.errors import RunCorruptError, RunNotFoundError
from panecrew.core.models import AgentRun, SessionRun
from panecrew.core.run_registry import RunStore, generate_run_id

pytestmark = pytest.mark.unit


@pytest.fixture
def store(tmp_path: Path) -> RunStore:
    store = RunStore.for_common_dir(tmp_path / ".git")
    store.ensure_storage()
    return store


def _agent(run_id: str, created_at: str = "2025-01-01T12:00:00+00:00") -> AgentRun:
    return AgentRun(
        id=run_id,
        prompt="do things",
        branch=f"agent/{run_id}",
        worktree=f"/tmp/wt/{run_id}",
        created_at=created_at,
    )


def test_generate_run_id_format():
    run_id = generate_run_id(datetime(2025, 3, 9, 7, 5))

    assert re.fullmatch(r"20250309-0705-[0-9a-f]{4}", run_id)


def test_generate_run_id_suffixes_differ_within_a_minute():
    now = datetime(2025, 3, 9, 7, 5)
    suffixes = iter(["0a1b", "ffee"])

    with patch("panecrew.core.run_registry.secrets.token_hex", side_effect=lambda n: next(suffixes)) as mock_hex:
        first = generate_run_id(now)
        second = generate_run_id(now)

    assert (first, second) == ("20250309-0705-0a1b", "20250309-0705-ffee")
    mock_hex.assert_called_with(2)


def test_generate_run_id_burst_is_well_formed_and_distinct():
    ids = [generate_run_id() for _ in range(5)]

    assert all(re.fullmatch(r"\d{8}-\d{4}-[0-9a-f]{4}", run_id) for run_id in ids)
    assert len(set(ids)) == len(ids)


def test_for_common_dir_layout(tmp_path: Path):
    store = RunStore.for_common_dir(tmp_path)

    assert store.runs_dir == tmp_path / "panecrew" / "runs"
    assert store.logs_dir == tmp_path / "panecrew" / "logs"
    assert store.log_path("abc") == tmp_path / "panecrew" / "logs" / "abc.jsonl"


def test_ensure_storage_is_idempotent(store: RunStore):
    store.ensure_storage()

    assert store.runs_dir.is_dir()
    assert store.logs_dir.is_dir()


def test_save_then_load(store: RunStore):
    record = _agent("20250101-1200-aaaa")

    path = store.save(record)

    assert path == store.record_path(record.id)
    assert store.load(record.id) == record
    assert json.loads(path.read_text())["id"] == record.id


def test_save_overwrites_and_leaves_no_temp_files(store: RunStore):
    record = _agent("20250101-1200-aaaa")
    store.save(record)

    store.save(record.with_outcome(cost_usd=2.0))

    assert store.load(record.id).cost_usd == 2.0
    assert [p.name for p in store.runs_dir.iterdir()] == ["20250101-1200-aaaa.json"]


def test_load_missing_raises_not_found(store: RunStore):
    with pytest.raises(RunNotFoundError) as exc_info:
        store.load("nope")

    assert "no run found with id: nope" in str(exc_info.value)


def test_load_corrupt_raises(store: RunStore):
    store.record_path("bad").write_text("{not json")

    with pytest.raises(RunCorruptError):
        store.load("bad")


def test_list_runs_newest_first_and_skips_bad_files(store: RunStore):
    store.save(_agent("20250101-1200-aaaa", "2025-01-01T12:00:00+00:00"))
    store.save(_agent("20250102-1200-bbbb", "2025-01-02T12:00:00+00:00"))
    store.save(
        SessionRun(
            id="session-20250103-1200-cccc",
            prompt="(interactive session)",
            branch="session/session-20250103-1200-cccc",
            worktree="/tmp/wt/s",
            created_at="2025-01-03T12:00:00+00:00",
        )
    )
    store.record_path("corrupt").write_text("garbage")
    (store.runs_dir / "notes.txt").write_text("ignored")
    (store.runs_dir / ".hidden.json").write_text("{}")

    ids = [record.id for record in store.list_runs()]

    assert ids == ["session-20250103-1200-cccc", "20250102-1200-bbbb", "20250101-1200-aaaa"]


def test_list_runs_without_storage_is_empty(tmp_path: Path):
    assert RunStore.for_common_dir(tmp_path / "missing").list_runs() == []


def test_delete(store: RunStore):
    store.save(_agent("20250101-1200-aaaa"))

    store.delete("20250101-1200-aaaa")

    assert not store.record_path("20250101-1200-aaaa").exists()
    with pytest.raises(RunNotFoundError):
        store.delete("20250101-1200-aaaa")


def test_save_then_load_with_every_optional_present(store: RunStore):
    record = AgentRun(
        id="20250101-1200-aaaa",
        prompt="ship it",
        issue="42",
        branch="agent/20250101-1200-aaaa",
        worktree="/tmp/wt/20250101-1200-aaaa",
        tmux_pane="%3",
        budget="2.50",
        log_file="/tmp/logs/20250101-1200-aaaa.jsonl",
        created_at="2025-01-01T12:00:00+00:00",
        cost_usd=1.23,
        duration_ms=45000,
        pr_url="https://github.com/o/r/pull/7",
    )
    store.save(record)

    loaded = store.load(record.id)

    assert loaded == record
    assert (loaded.issue, loaded.cost_usd, loaded.duration_ms, loaded.pr_url) == (
        "42",
        1.23,
        45000,
        "https://github.com/o/r/pull/7",
    )


def test_record_filed_under_another_id_is_corrupt(store: RunStore):
    store.record_path("20250101-1200-xxxx").write_text(_agent("20250101-1200-yyyy").to_json())

    with pytest.raises(RunCorruptError) as exc_info:
        store.load("20250101-1200-xxxx")

    assert "id mismatch" in str(exc_info.value)
    assert store.list_runs() == []
