"""Unit tests for run record models."""

import json

import pytest

from panecrew.core.models import AgentRun, RecordParseError, RunType, SessionRun, parse_run_record

pytestmark = pytest.mark.unit


def _agent(**overrides) -> AgentRun:
    fields = {
        "id": "20250101-1200-abcd",
        "prompt": "fix the flaky test",
        "branch": "agent/20250101-1200-abcd",
        "worktree": "/tmp/panecrew-sessions/repo/20250101-1200-abcd",
        "tmux_pane": "%3",
        "budget": "5.00",
        "log_file": "/repo/.git/panecrew/logs/20250101-1200-abcd.jsonl",
        "created_at": "2025-01-01T12:00:00+00:00",
    }
    fields.update(overrides)
    return AgentRun(**fields)


def test_agent_record_round_trips_with_absent_optionals():
    record = _agent()

    parsed = parse_run_record(record.to_json())

    assert parsed == record
    assert parsed.issue is None
    assert parsed.cost_usd is None
    assert parsed.pr_url is None


def test_absent_optionals_are_written_as_null():
    data = json.loads(_agent().to_json())

    assert data["type"] == "agent"
    assert data["issue"] is None
    assert data["cost_usd"] is None
    assert data["duration_ms"] is None


def test_session_record_round_trips():
    record = SessionRun(
        id="session-20250101-1200-abcd",
        prompt="(interactive session)",
        branch="session/session-20250101-1200-abcd",
        worktree="/tmp/x",
        created_at="2025-01-01T12:00:00+00:00",
    )

    parsed = parse_run_record(record.to_json())

    assert isinstance(parsed, SessionRun)
    assert parsed.type == RunType.SESSION.value
    assert parsed.tmux_pane is None


def test_record_without_type_is_an_agent():
    data = json.loads(_agent().to_json())
    del data["type"]

    parsed = parse_run_record(json.dumps(data))

    assert isinstance(parsed, AgentRun)


def test_empty_type_is_an_agent():
    data = json.loads(_agent().to_json())
    data["type"] = ""

    assert isinstance(parse_run_record(json.dumps(data)), AgentRun)


def test_unknown_fields_are_ignored():
    data = json.loads(_agent().to_json())
    data["future_field"] = 42

    parsed = parse_run_record(json.dumps(data).encode())

    assert parsed.id == "20250101-1200-abcd"


@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b"[1, 2]",
        b'{"type": "agent"}',
        b'{"type": "robot", "id": "x", "prompt": "", "branch": "b", "worktree": "w", "created_at": "t"}',
    ],
)
def test_invalid_records_raise_parse_error(raw: bytes):
    with pytest.raises(RecordParseError):
        parse_run_record(raw)


def test_with_outcome_applies_only_discovered_values():
    record = _agent(cost_usd=1.5)

    enriched = record.with_outcome(duration_ms=45000, pr_url="https://github.com/o/r/pull/7")

    assert enriched.cost_usd == 1.5
    assert enriched.duration_ms == 45000
    assert enriched.pr_url == "https://github.com/o/r/pull/7"
    assert enriched.created_at == record.created_at
    assert isinstance(enriched, AgentRun)
    assert record.duration_ms is None


def test_record_round_trips_with_every_optional_present():
    record = _agent(issue="42", cost_usd=3.42, duration_ms=45000, pr_url="https://github.com/o/r/pull/7")

    parsed = parse_run_record(record.to_json())

    assert parsed == record
    assert parsed.issue == "42"
    assert parsed.cost_usd == 3.42
    assert parsed.duration_ms == 45000
    assert parsed.pr_url == "https://github.com/o/r/pull/7"
