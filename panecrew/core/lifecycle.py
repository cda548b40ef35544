"""Run lifecycle operations: launch, session, finalize, publish, logs, cleanup.

These compose the registry, the data ref sync, git and tmux. Core state
changes (creating a worktree, saving a record, committing to the data ref)
raise on failure. Tear-down and remote steps are best effort: a failure is
logged as a warning and the operation moves on, so cleanup always makes as
much progress as it can and can simply be re-run.
"""

from __future__ import annotations

import json
import logging
import os
import shlex
import shutil
import subprocess
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional, TextIO

from panecrew.constants import (
    AGENT_BRANCH_PREFIX,
    LIVE_CAPTURE_HISTORY_LINES,
    SESSION_BRANCH_PREFIX,
    SESSION_ID_PREFIX,
    SESSION_PROMPT,
)
from panecrew.core.errors import ExternalToolError, PanecrewError, RunCorruptError, RunNotFoundError, StorageError
from panecrew.core.log_scanner import summarize_log
from panecrew.core.models import AgentRun, SessionRun
from panecrew.core.run_registry import generate_run_id
from panecrew.core.sensitivity import Classifier, check_sensitivity
from panecrew.core.status import StatusRow, build_status_rows
from panecrew.core.stream_formatter import format_stream
from panecrew.core.workspace import Workspace

logger = logging.getLogger(__name__)

LogMode = Literal["live", "replay", "raw"]


def _now_rfc3339() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


def _worktree_path(ws: Workspace, run_id: str) -> Path:
    return Path(ws.config.worktree_base) / ws.repo.name / run_id


def _tree_paths(run_id: str) -> tuple[str, str]:
    return f"runs/{run_id}.json", f"logs/{run_id}.jsonl"


# ---------------------------------------------------------------------------
# Worktree setup
# ---------------------------------------------------------------------------


def write_claude_settings(worktree: Path, repo_name: str) -> Path:
    """Merge a statusLine showing repo and branch into .claude/settings.json.

    Existing settings (e.g. committed on the checked-out branch) are kept;
    an unreadable file is replaced.
    """
    settings_path = worktree / ".claude" / "settings.json"
    status_line = (
        "input=$(cat); cwd=$(echo \"$input\" | jq -r '.workspace.current_dir'); "
        'branch=$(git -C "$cwd" --no-optional-locks branch --show-current 2>/dev/null); '
        f'if [ -n "$branch" ]; then echo "{repo_name} ($branch)"; else echo "{repo_name}"; fi'
    )

    settings: dict[str, object] = {}
    if settings_path.exists():
        try:
            loaded = json.loads(settings_path.read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                settings = loaded
        except (OSError, json.JSONDecodeError) as e:
            logger.debug("Replacing unreadable %s: %s", settings_path, e)

    settings["statusLine"] = status_line
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text(json.dumps(settings, indent=2) + "\n", encoding="utf-8")
    return settings_path


def _prepare_worktree(ws: Workspace, run_id: str, branch: str) -> Path:
    worktree = _worktree_path(ws, run_id)
    default_branch = ws.config.default_branch
    ws.repo.fetch_branch(default_branch, ws.config.remote)
    ws.repo.add_worktree(worktree, branch, f"{ws.config.remote}/{default_branch}")
    try:
        write_claude_settings(worktree, ws.repo.name)
    except OSError as e:
        logger.warning("Could not write .claude/settings.json in %s: %s", worktree, e)
    return worktree


# ---------------------------------------------------------------------------
# Launch
# ---------------------------------------------------------------------------


def build_agent_command(agent_binary: str, system_prompt: str, budget: str, prompt: str) -> str:
    """Shell command for an autonomous agent emitting stream-json."""
    parts = [
        agent_binary,
        "-p",
        "--dangerously-skip-permissions",
        "--verbose",
        "--output-format",
        "stream-json",
        "--max-budget-usd",
        budget,
    ]
    if system_prompt:
        parts += ["--append-system-prompt", system_prompt]
    parts.append(prompt)
    return shlex.join(parts)


def build_pane_command(worktree: Path, agent_command: str, log_file: Path, run_id: str) -> str:
    """Pane script: run the agent, tee its log, show formatted output, then finalize."""
    python = shlex.quote(sys.executable)
    return (
        f"cd {shlex.quote(str(worktree))} && {agent_command}"
        f" | tee {shlex.quote(str(log_file))}"
        f" | {python} -m panecrew.entrypoints.format_stream;"
        f" {python} -m panecrew.entrypoints.finalize {shlex.quote(run_id)};"
        f" echo ''; echo {shlex.quote(f'Run {run_id} exited. Press Enter to close.')}; read"
    )


def launch_agent(
    ws: Workspace,
    prompt: str,
    *,
    issue: Optional[str] = None,
    budget: Optional[str] = None,
    system_prompt: str = "",
) -> AgentRun:
    """Start an autonomous agent in a new worktree and a detached tmux pane.

    Returns as soon as the pane is up; the agent finalizes its own run when
    it exits.
    """
    if not ws.tmux.in_session():
        raise PanecrewError("launch must be run inside a tmux session")

    budget = budget or ws.config.default_budget
    ws.store.ensure_storage()
    run_id = generate_run_id()
    branch = f"{AGENT_BRANCH_PREFIX}{run_id}"
    logger.info("Launching agent %s", run_id)

    worktree = _prepare_worktree(ws, run_id, branch)
    log_file = ws.store.log_path(run_id)
    agent_command = build_agent_command(ws.config.agent_binary, system_prompt, budget, prompt)
    pane_id = ws.tmux.split_window(str(worktree), build_pane_command(worktree, agent_command, log_file, run_id))

    try:
        ws.tmux.set_pane_title(pane_id, f"agent:{run_id}")
        ws.tmux.rebalance_layout()
    except ExternalToolError as e:
        logger.warning("Could not tidy pane %s: %s", pane_id, e)

    record = AgentRun(
        id=run_id,
        prompt=prompt,
        issue=issue or None,
        branch=branch,
        worktree=str(worktree),
        tmux_pane=pane_id,
        budget=budget,
        log_file=str(log_file),
        created_at=_now_rfc3339(),
    )
    ws.store.save(record)
    logger.info("Agent %s running in pane %s (worktree %s)", run_id, pane_id, worktree)
    return record


def start_session(
    ws: Workspace,
    *,
    system_prompt: str = "",
    runner: Callable[..., subprocess.CompletedProcess[bytes]] = subprocess.run,
) -> SessionRun:
    """Create a coordinator worktree and run the agent interactively in it.

    Blocks until the interactive agent exits. The worktree is kept; its run
    stays ``active`` until cleaned up.
    """
    if not ws.tmux.in_session():
        raise PanecrewError("session must be run inside a tmux session")

    ws.store.ensure_storage()
    run_id = f"{SESSION_ID_PREFIX}{generate_run_id()}"
    branch = f"{SESSION_BRANCH_PREFIX}{run_id}"
    logger.info("Creating coordinator session %s", run_id)

    worktree = _prepare_worktree(ws, run_id, branch)
    record = SessionRun(
        id=run_id,
        prompt=SESSION_PROMPT,
        branch=branch,
        worktree=str(worktree),
        created_at=_now_rfc3339(),
    )
    ws.store.save(record)

    command = [ws.config.agent_binary]
    if system_prompt:
        command += ["--append-system-prompt", system_prompt]
    try:
        result = runner(command, cwd=str(worktree), check=False)
    except OSError as e:
        raise ExternalToolError(ws.config.agent_binary, command[1:], str(e)) from e
    # Exit status is the user's business (quitting the agent is normal).
    logger.info("Session %s ended (exit %s); worktree kept at %s", run_id, result.returncode, worktree)
    return record


# ---------------------------------------------------------------------------
# Finalize and publish
# ---------------------------------------------------------------------------


@dataclass
class FinalizeResult:
    record: AgentRun | SessionRun
    commit: Optional[str] = None
    log_published: bool = False
    findings: list[str] = field(default_factory=list)


def _enrich_from_log(ws: Workspace, record: AgentRun | SessionRun) -> AgentRun | SessionRun:
    if not record.log_file:
        return record
    try:
        summary = summarize_log(record.log_file)
    except OSError as e:
        logger.warning("Could not read log for %s: %s", record.id, e)
        return record
    enriched = record.with_outcome(
        cost_usd=summary.cost_usd,
        duration_ms=summary.duration_ms,
        pr_url=summary.pr_url,
    )
    ws.store.save(enriched)
    return enriched


def _publish(ws: Workspace, run_id: str, files: dict[str, str]) -> str:
    """Commit files to the data ref and push; only the commit is fatal."""
    sync = ws.data_ref
    commit = sync.sync(files, f"Run {run_id}")
    try:
        sync.push(ws.config.remote)
    except ExternalToolError as e:
        logger.warning("Push of %s to %s failed: %s", sync.ref, ws.config.remote, e)
    return commit


def finalize_run(ws: Workspace, run_id: str, *, classifier: Classifier = check_sensitivity) -> Optional[FinalizeResult]:
    """Record the outcome of a finished run and publish it.

    Runs once, from the agent's pane after the agent exits. A run that was
    already cleaned up is ignored. The log is only published when the
    classifier finds nothing sensitive; otherwise the categories are reported
    and `push_log` can publish it after review.
    """
    try:
        record = ws.store.load(run_id)
    except RunNotFoundError:
        logger.info("Run %s has no record; nothing to finalize", run_id)
        return None

    record = _enrich_from_log(ws, record)
    result = FinalizeResult(record=record)

    record_tree_path, log_tree_path = _tree_paths(run_id)
    files = {record_tree_path: str(ws.store.record_path(run_id))}
    if record.log_file and os.path.isfile(record.log_file):
        try:
            result.findings = classifier(Path(record.log_file).read_bytes())
        except OSError as e:
            logger.warning("Could not read log for %s: %s", run_id, e)
        else:
            if result.findings:
                logger.warning(
                    "Skipping log publish for %s, potentially sensitive data: %s. Review it, then use push_log.",
                    run_id,
                    ", ".join(result.findings),
                )
            else:
                files[log_tree_path] = record.log_file
                result.log_published = True

    try:
        result.commit = _publish(ws, run_id, files)
    except PanecrewError as e:
        logger.warning("Sync of %s to data ref failed: %s", run_id, e)
        result.log_published = False
    return result


def push_log(ws: Workspace, run_id: str) -> str:
    """Publish a run's record and log, bypassing the sensitivity check.

    Returns:
        The data ref commit.
    """
    record = ws.store.load(run_id)
    if not record.log_file:
        raise PanecrewError(f"no log file for run {run_id}")
    if not os.path.isfile(record.log_file):
        raise StorageError("reading", record.log_file)

    logger.info("Publishing log for %s without sensitivity check", run_id)
    record_tree_path, log_tree_path = _tree_paths(run_id)
    commit = _publish(
        ws,
        run_id,
        {record_tree_path: str(ws.store.record_path(run_id)), log_tree_path: record.log_file},
    )
    return commit


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------


def status_rows(ws: Workspace) -> list[StatusRow]:
    return build_status_rows(ws.store.list_runs(), ws.tmux)


def _replay(record: AgentRun | SessionRun, out: TextIO) -> None:
    if not record.log_file:
        raise PanecrewError(f"no log file for run {record.id}")
    try:
        with open(record.log_file, "r", encoding="utf-8", errors="replace") as f:
            format_stream(f, out)
    except OSError as e:
        raise StorageError("reading", record.log_file, e) from e


def read_logs(ws: Workspace, run_id: str, mode: LogMode = "live", out: TextIO = sys.stdout) -> None:
    """Write a run's output to `out`.

    live: capture the pane if it is still alive, else replay the log.
    replay: render the saved log through the stream formatter.
    raw: dump the saved log unchanged.
    """
    record = ws.store.load(run_id)

    if mode == "raw":
        if not record.log_file:
            raise PanecrewError(f"no log file for run {run_id}")
        try:
            with open(record.log_file, "r", encoding="utf-8", errors="replace") as f:
                shutil.copyfileobj(f, out)
        except OSError as e:
            raise StorageError("reading", record.log_file, e) from e
        return

    if mode == "replay":
        _replay(record, out)
        return

    if record.tmux_pane:
        try:
            alive = ws.tmux.pane_exists(record.tmux_pane)
        except ExternalToolError as e:
            logger.debug("Pane probe for %s failed: %s", record.tmux_pane, e)
            alive = False
        if alive:
            out.write(ws.tmux.capture_pane(record.tmux_pane, LIVE_CAPTURE_HISTORY_LINES))
            return

    if record.log_file:
        _replay(record, out)
        return
    out.write(f"No live pane or log file available for run {run_id}.\n")


# ---------------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------------


@dataclass
class CleanupReport:
    run_id: str
    killed_pane: bool = False
    removed_worktree: bool = False
    deleted_branch: bool = False
    removed_record: bool = False


def _teardown(ws: Workspace, record: AgentRun | SessionRun, report: CleanupReport) -> None:
    if record.tmux_pane:
        try:
            if ws.tmux.pane_exists(record.tmux_pane):
                ws.tmux.kill_pane(record.tmux_pane)
                report.killed_pane = True
        except ExternalToolError as e:
            logger.warning("Could not kill pane %s for %s: %s", record.tmux_pane, record.id, e)

    if record.worktree:
        try:
            if os.path.isdir(record.worktree):
                ws.repo.remove_worktree(record.worktree)
                report.removed_worktree = True
            else:
                ws.repo.prune_worktrees()
        except ExternalToolError as e:
            logger.warning("Could not remove worktree %s for %s: %s", record.worktree, record.id, e)

    if record.branch:
        try:
            ws.repo.delete_branch(record.branch)
            report.deleted_branch = True
        except ExternalToolError as e:
            logger.warning("Could not delete branch %s for %s: %s", record.branch, record.id, e)


def cleanup_run(ws: Workspace, run_id: str) -> CleanupReport:
    """Tear down a run's pane, worktree, branch and record.

    Safe to repeat: a run without a record is already clean.
    """
    report = CleanupReport(run_id=run_id)
    try:
        record = ws.store.load(run_id)
    except RunNotFoundError:
        logger.info("Run %s has no record; nothing to clean up", run_id)
        return report
    except RunCorruptError as e:
        logger.warning("Run %s record is corrupt (%s); removing the record only", run_id, e)
    else:
        _teardown(ws, record, report)

    try:
        ws.store.delete(run_id)
        report.removed_record = True
    except RunNotFoundError:
        pass
    except StorageError as e:
        logger.warning("Could not remove record for %s: %s", run_id, e)

    logger.info("Cleaned up %s", run_id)
    return report


def cleanup_all(ws: Workspace) -> list[CleanupReport]:
    """Clean up every listed run, continuing past individual failures."""
    reports: list[CleanupReport] = []
    for record in ws.store.list_runs():
        try:
            reports.append(cleanup_run(ws, record.id))
        except PanecrewError as e:
            logger.warning("Failed to clean up %s: %s", record.id, e)
    return reports
