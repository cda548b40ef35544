"""Data models for panecrew runs.

A run is either an autonomous agent working in its own pane or an
interactive coordinator session. Both share the same persisted fields and
are told apart by the ``type`` tag.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class RunType(str, Enum):
    """Run variant tag."""

    AGENT = "agent"
    SESSION = "session"


class RunStatus(str, Enum):
    """Lifecycle label derived on demand from a record and live probes."""

    RUNNING = "running"
    PR_CREATED = "pr-created"
    EXITED = "exited"
    ACTIVE = "active"
    ENDED = "ended"


class _RunBase(BaseModel):
    """Fields shared by every run variant."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    prompt: str
    issue: str | None = None
    branch: str
    worktree: str
    tmux_pane: str | None = None
    budget: str | None = None
    log_file: str | None = None
    created_at: str
    cost_usd: float | None = None
    duration_ms: int | None = None
    pr_url: str | None = None

    def with_outcome(
        self,
        *,
        cost_usd: float | None = None,
        duration_ms: int | None = None,
        pr_url: str | None = None,
    ) -> "RunRecord":
        """Return a copy enriched with finalize results.

        Only values that were discovered are applied; everything else,
        including ``created_at``, is carried over unchanged.
        """
        update: dict[str, object] = {}
        if cost_usd is not None:
            update["cost_usd"] = cost_usd
        if duration_ms is not None:
            update["duration_ms"] = duration_ms
        if pr_url is not None:
            update["pr_url"] = pr_url
        return self.model_copy(update=update)  # type: ignore[return-value]

    def to_json(self) -> str:
        """Pretty-printed JSON with absent optionals written as null."""
        return json.dumps(self.model_dump(mode="json"), indent=2) + "\n"


class AgentRun(_RunBase):
    """Autonomous agent launched into a detached pane."""

    type: Literal["agent"] = "agent"


class SessionRun(_RunBase):
    """Interactive coordinator session in its own worktree."""

    type: Literal["session"] = "session"


RunRecord = Annotated[Union[AgentRun, SessionRun], Field(discriminator="type")]

_RUN_RECORD_ADAPTER: TypeAdapter[AgentRun | SessionRun] = TypeAdapter(RunRecord)


class RecordParseError(ValueError):
    """Raised when raw bytes are not a valid run record."""


def parse_run_record(raw: str | bytes) -> AgentRun | SessionRun:
    """Parse a stored record.

    Records written before run types existed have no ``type`` key; those are
    agent runs.
    """
    try:
        data: object = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise RecordParseError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise RecordParseError(f"expected a JSON object, got {type(data).__name__}")
    if not data.get("type"):
        data["type"] = RunType.AGENT.value
    try:
        return _RUN_RECORD_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise RecordParseError(str(exc)) from exc
