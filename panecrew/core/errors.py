"""Error taxonomy for panecrew.

Every failure surfaced by the registry, the data ref sync and the leaf
wrappers is one of these. Callers that want best-effort behavior catch
`PanecrewError` and log a warning.
"""

from __future__ import annotations


class PanecrewError(Exception):
    """Base class for all panecrew failures."""


class RunNotFoundError(PanecrewError):
    """No record exists for the given run ID."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"no run found with id: {run_id}")
        self.run_id = run_id


class RunCorruptError(PanecrewError):
    """A record file exists but cannot be parsed into a run record."""

    def __init__(self, run_id: str, reason: str) -> None:
        super().__init__(f"corrupt run record {run_id}: {reason}")
        self.run_id = run_id
        self.reason = reason


class StorageError(PanecrewError):
    """Filesystem I/O failed while reading or writing run state."""

    def __init__(self, operation: str, path: object, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} {path}{detail}")
        self.operation = operation
        self.path = path


class ExternalToolError(PanecrewError):
    """git or tmux exited non-zero or could not be executed."""

    def __init__(self, tool: str, args: list[str] | tuple[str, ...], detail: str = "") -> None:
        command = " ".join([tool, *args])
        message = f"{command} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.tool = tool
        self.args_list = list(args)
        self.detail = detail


class PublishConflictError(PanecrewError):
    """The data ref moved between resolving its tip and advancing it."""

    def __init__(self, ref: str, expected: str, actual: str | None) -> None:
        super().__init__(f"{ref} moved from {expected[:12]} to {actual[:12] if actual else 'nothing'} during publish")
        self.ref = ref
        self.expected = expected
        self.actual = actual


class ConfigError(PanecrewError):
    """The configuration file holds invalid values."""

    def __init__(self, path: object, detail: str) -> None:
        super().__init__(f"invalid config {path}: {detail}")
        self.path = path
        self.detail = detail
