"""Unit tests for run status derivation and the status table."""

from pathlib import Path

import pytest

from panecrew.core.errors import ExternalToolError
from panecrew.core.models import AgentRun, RunStatus, SessionRun
from panecrew.core.status import (
    build_status_rows,
    determine_status,
    format_cost,
    format_pr,
    render_status_table,
)

pytestmark = pytest.mark.unit


class FakeProbe:
    def __init__(self, alive: set[str] | None = None, fail: bool = False) -> None:
        self.alive = alive or set()
        self.fail = fail
        self.calls: list[str] = []

    def pane_exists(self, pane_id: str) -> bool:
        self.calls.append(pane_id)
        if self.fail:
            raise ExternalToolError("tmux", ["list-panes"], "no server running")
        return pane_id in self.alive


def _agent(**overrides) -> AgentRun:
    fields = {
        "id": "20250101-1200-abcd",
        "prompt": "fix it",
        "branch": "agent/20250101-1200-abcd",
        "worktree": "/tmp/wt",
        "tmux_pane": "%5",
        "budget": "5.00",
        "created_at": "2025-01-01T12:00:00+00:00",
    }
    fields.update(overrides)
    return AgentRun(**fields)


def _session(worktree: str) -> SessionRun:
    return SessionRun(
        id="session-20250101-1200-abcd",
        prompt="(interactive session)",
        branch="session/session-20250101-1200-abcd",
        worktree=worktree,
        created_at="2025-01-01T12:00:00+00:00",
    )


def test_live_pane_is_running_even_with_pr():
    record = _agent(pr_url="https://github.com/o/r/pull/1")

    assert determine_status(record, FakeProbe({"%5"})) is RunStatus.RUNNING


def test_dead_pane_with_pr_is_pr_created():
    record = _agent(pr_url="https://github.com/o/r/pull/1")

    assert determine_status(record, FakeProbe()) is RunStatus.PR_CREATED


def test_dead_pane_without_pr_is_exited():
    assert determine_status(_agent(), FakeProbe()) is RunStatus.EXITED


def test_agent_without_pane_is_not_probed():
    probe = FakeProbe({"%5"})

    assert determine_status(_agent(tmux_pane=None), probe) is RunStatus.EXITED
    assert probe.calls == []


def test_probe_failure_counts_as_dead_pane():
    assert determine_status(_agent(), FakeProbe(fail=True)) is RunStatus.EXITED


def test_session_status_follows_worktree(tmp_path: Path):
    probe = FakeProbe()

    assert determine_status(_session(str(tmp_path)), probe) is RunStatus.ACTIVE
    assert determine_status(_session(str(tmp_path / "gone")), probe) is RunStatus.ENDED
    assert probe.calls == []


def test_format_cost_prefers_actual_spend():
    assert format_cost(_agent(cost_usd=3.421)) == "$3.42"
    assert format_cost(_agent()) == "<$5.00"
    assert format_cost(_agent(budget=None)) == "-"


def test_format_pr_shows_number():
    assert format_pr(_agent(pr_url="https://github.com/o/r/pull/42")) == "#42"
    assert format_pr(_agent()) == "-"


def test_build_status_rows_truncates_prompt():
    rows = build_status_rows([_agent(prompt="x" * 60, issue="17")], FakeProbe({"%5"}))

    assert len(rows) == 1
    assert rows[0].status is RunStatus.RUNNING
    assert rows[0].issue == "17"
    assert rows[0].prompt == "x" * 40 + "..."


def test_render_status_table():
    assert render_status_table([]) == "No runs found."

    table = render_status_table(build_status_rows([_agent()], FakeProbe()))

    lines = table.splitlines()
    assert lines[0].startswith("RUN ID")
    assert "20250101-1200-abcd" in lines[2]
    assert "exited" in lines[2]
