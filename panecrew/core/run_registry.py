"""File-backed registry of run records.

One pretty-printed JSON file per run under ``<git-common-dir>/panecrew/runs``
plus a sibling ``logs`` directory for the agents' event logs. Living in the
common dir means every worktree of the repository sees the same registry.

There is no locking: a single invocation owns a run ID for the duration of
a lifecycle operation.
"""

from __future__ import annotations

import logging
import os
import secrets
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from panecrew.constants import LOGS_DIRNAME, NAMESPACE, RUNS_DIRNAME
from panecrew.core.errors import RunCorruptError, RunNotFoundError, StorageError
from panecrew.core.models import AgentRun, RecordParseError, SessionRun, parse_run_record

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"
LOG_SUFFIX = ".jsonl"


def generate_run_id(now: datetime | None = None) -> str:
    """Generate a run ID in the format YYYYMMDD-HHMM-xxxx.

    The suffix is 2 random bytes in hex; collisions within the same minute are
    possible but negligible.
    """
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M")
    return f"{stamp}-{secrets.token_hex(2)}"


@dataclass(frozen=True)
class RunStore:
    """Storage handle for run records and logs."""

    runs_dir: Path
    logs_dir: Path

    @classmethod
    def for_common_dir(cls, common_dir: Path, namespace: str = NAMESPACE) -> "RunStore":
        base = Path(common_dir) / namespace
        return cls(runs_dir=base / RUNS_DIRNAME, logs_dir=base / LOGS_DIRNAME)

    def record_path(self, run_id: str) -> Path:
        return self.runs_dir / f"{run_id}{RECORD_SUFFIX}"

    def log_path(self, run_id: str) -> Path:
        return self.logs_dir / f"{run_id}{LOG_SUFFIX}"

    def ensure_storage(self) -> None:
        """Create the runs and logs directories if missing."""
        for directory in (self.runs_dir, self.logs_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StorageError("creating", directory, exc) from exc

    def save(self, record: AgentRun | SessionRun) -> Path:
        """Write a record, replacing any previous version atomically.

        The content goes to a temp file in the same directory, is fsynced and
        then renamed over the target, so readers never see a half-written
        record.
        """
        path = self.record_path(record.id)
        try:
            self.runs_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{record.id}.", suffix=".tmp", dir=self.runs_dir)
        except OSError as exc:
            raise StorageError("writing", path, exc) from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(record.to_json())
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, path)
        except OSError as exc:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise StorageError("writing", path, exc) from exc

        logger.debug("Saved run %s to %s", record.id, path)
        return path

    def load(self, run_id: str) -> AgentRun | SessionRun:
        """Read a single record.

        Raises:
            RunNotFoundError: no file for this ID.
            RunCorruptError: the file is not a valid record, or holds another run.
        """
        path = self.record_path(run_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError as exc:
            raise RunNotFoundError(run_id) from exc
        except OSError as exc:
            raise StorageError("reading", path, exc) from exc

        try:
            record = parse_run_record(raw)
        except RecordParseError as exc:
            raise RunCorruptError(run_id, str(exc)) from exc
        if record.id != run_id:
            raise RunCorruptError(run_id, f"id mismatch: file holds run {record.id!r}")
        return record

    def list_runs(self) -> list[AgentRun | SessionRun]:
        """All readable records, newest first.

        Corrupt or unreadable files are skipped so one bad record never hides
        the rest.
        """
        try:
            entries = sorted(self.runs_dir.iterdir())
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageError("listing", self.runs_dir, exc) from exc

        records: list[AgentRun | SessionRun] = []
        for entry in entries:
            if entry.suffix != RECORD_SUFFIX or entry.name.startswith(".") or not entry.is_file():
                continue
            try:
                records.append(self.load(entry.stem))
            except (RunCorruptError, RunNotFoundError, StorageError) as exc:
                logger.debug("Skipping unreadable run record %s: %s", entry.name, exc)

        # RFC3339 timestamps of one fixed format sort correctly as strings
        records.sort(key=lambda record: record.created_at, reverse=True)
        return records

    def delete(self, run_id: str) -> None:
        """Remove a record file; absent IDs are an error."""
        path = self.record_path(run_id)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise RunNotFoundError(run_id) from exc
        except OSError as exc:
            raise StorageError("deleting", path, exc) from exc
        logger.debug("Deleted run record %s", path)
