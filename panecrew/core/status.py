"""Run status derivation.

A run's status is never stored. It is recomputed on every query from the
persisted record and live probes, in priority order: a live pane beats a
recorded PR, which beats the "exited" fallback. An agent that opened a PR
and keeps working therefore still reports ``running``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from panecrew.core.errors import ExternalToolError
from panecrew.core.models import AgentRun, RunStatus, SessionRun
from panecrew.utils import truncate

logger = logging.getLogger(__name__)


class PaneProbe(Protocol):
    def pane_exists(self, pane_id: str) -> bool: ...


def determine_status(
    record: AgentRun | SessionRun,
    probe: PaneProbe,
    *,
    path_exists: Callable[[str], bool] = os.path.isdir,
) -> RunStatus:
    """Derive the lifecycle label for one run."""
    match record:
        case SessionRun(worktree=worktree):
            return RunStatus.ACTIVE if path_exists(worktree) else RunStatus.ENDED
        case AgentRun(tmux_pane=pane, pr_url=pr_url):
            if pane and _pane_alive(probe, pane):
                return RunStatus.RUNNING
            if pr_url:
                return RunStatus.PR_CREATED
            return RunStatus.EXITED
    raise TypeError(f"Unknown run variant: {type(record).__name__}")


def _pane_alive(probe: PaneProbe, pane_id: str) -> bool:
    # An unreachable tmux server has no live panes.
    try:
        return probe.pane_exists(pane_id)
    except ExternalToolError as exc:
        logger.debug("Pane probe for %s failed: %s", pane_id, exc)
        return False


def format_cost(record: AgentRun | SessionRun) -> str:
    """Actual spend when known, otherwise the budget ceiling."""
    if record.cost_usd is not None:
        return f"${record.cost_usd:.2f}"
    if record.budget is not None:
        return f"<${record.budget}"
    return "-"


def format_pr(record: AgentRun | SessionRun) -> str:
    """Short ``#<number>`` form of the PR URL."""
    if record.pr_url is None:
        return "-"
    _, sep, tail = record.pr_url.rstrip("/").rpartition("/")
    return f"#{tail}" if sep else record.pr_url


@dataclass(frozen=True)
class StatusRow:
    run_id: str
    status: RunStatus
    cost: str
    issue: str
    pr: str
    prompt: str


def build_status_rows(records: Iterable[AgentRun | SessionRun], probe: PaneProbe) -> list[StatusRow]:
    """Status table rows, one per record, in the order given."""
    return [
        StatusRow(
            run_id=record.id,
            status=determine_status(record, probe),
            cost=format_cost(record),
            issue=record.issue or "-",
            pr=format_pr(record),
            prompt=truncate(record.prompt, 40),
        )
        for record in records
    ]


def render_status_table(rows: list[StatusRow]) -> str:
    """Fixed-width text table for terminal output."""
    if not rows:
        return "No runs found."
    line = "{:<22}  {:<10}  {:<8}  {:<6}  {:<30}  {}"
    lines = [
        line.format("RUN ID", "STATUS", "COST", "ISSUE", "PR", "PROMPT"),
        line.format("------", "------", "----", "-----", "--", "------"),
    ]
    for row in rows:
        lines.append(line.format(row.run_id, row.status.value, row.cost, row.issue, row.pr, row.prompt))
    return "\n".join(lines)
