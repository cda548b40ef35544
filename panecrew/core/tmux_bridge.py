"""Tmux bridge for panecrew - pane lifecycle for detached agent runs.

All calls are synchronous and shell out to the tmux binary. Failures are
raised as `ExternalToolError`; deciding whether a failure matters is left to
the caller.
"""

from __future__ import annotations

import logging
import os
import subprocess

from panecrew.core.errors import ExternalToolError

logger = logging.getLogger(__name__)


class TmuxBridge:
    """Pane operations against the tmux server the caller is attached to."""

    def __init__(self, binary: str = "tmux") -> None:
        self.binary = binary

    def in_session(self) -> bool:
        """True when running inside a tmux client (panes can be split here)."""
        return bool(os.environ.get("TMUX"))

    def split_window(self, directory: str, command: str) -> str:
        """Split a new pane below the current one running `command`.

        The pane is created detached (focus stays where it was).

        Returns:
            The new pane ID (e.g. ``%12``).
        """
        pane_id = self._run_tmux(
            "split-window",
            "-v",
            "-d",
            "-P",
            "-F",
            "#{pane_id}",
            "-c",
            directory,
            command,
        )
        if not pane_id:
            raise ExternalToolError(self.binary, ["split-window"], "no pane id returned")
        logger.debug("Split pane %s in %s", pane_id, directory)
        return pane_id

    def set_pane_title(self, pane_id: str, title: str) -> None:
        self._run_tmux("select-pane", "-t", pane_id, "-T", title)

    def rebalance_layout(self) -> None:
        self._run_tmux("select-layout", "even-vertical")

    def pane_exists(self, pane_id: str) -> bool:
        """Check whether a pane is still alive on any session of the server."""
        output = self._run_tmux("list-panes", "-a", "-F", "#{pane_id}")
        return any(line.strip() == pane_id for line in output.splitlines())

    def capture_pane(self, pane_id: str, history: int) -> str:
        """Capture the visible content of a pane plus `history` lines of scrollback."""
        return self._run_tmux("capture-pane", "-t", pane_id, "-p", "-S", f"-{history}")

    def kill_pane(self, pane_id: str) -> None:
        self._run_tmux("kill-pane", "-t", pane_id)

    def _run_tmux(self, *args: str) -> str:
        """Run a tmux command and return its stripped stdout."""
        try:
            result = subprocess.run(
                [self.binary, *args],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise ExternalToolError(self.binary, args, str(exc)) from exc
        if result.returncode != 0:
            raise ExternalToolError(self.binary, args, result.stderr.strip())
        return result.stdout.strip()
