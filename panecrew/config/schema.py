"""Pydantic schema for .panecrew/config.yml."""

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from panecrew.constants import DEFAULT_BRANCH, DEFAULT_BUDGET, DEFAULT_DATA_REF, DEFAULT_REMOTE


def _default_worktree_base() -> str:
    return str(Path(os.environ.get("TMPDIR", "/tmp")) / "panecrew-sessions")


class PanecrewConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    worktree_base: str = Field(default_factory=_default_worktree_base)
    default_budget: str = DEFAULT_BUDGET
    data_ref: str = DEFAULT_DATA_REF
    default_branch: str = DEFAULT_BRANCH
    remote: str = DEFAULT_REMOTE
    agent_binary: str = "claude"
    tmux_binary: str = "tmux"

    @field_validator("default_budget", mode="before")
    @classmethod
    def validate_budget(cls, v: object) -> str:
        """Accept numbers from YAML but keep the budget a decimal string."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return f"{v:.2f}"
        if not isinstance(v, str):
            raise ValueError(f"Invalid budget: {v!r}")
        try:
            amount = float(v)
        except ValueError as exc:
            raise ValueError(f"Invalid budget: {v!r}. Expected a decimal amount like '5.00'") from exc
        if amount <= 0:
            raise ValueError(f"Budget must be positive, got: {v}")
        return v

    @field_validator("data_ref")
    @classmethod
    def validate_data_ref(cls, v: str) -> str:
        if not v.startswith("refs/"):
            raise ValueError(f"data_ref must be a full ref name under refs/, got: {v}")
        return v

    @field_validator("worktree_base")
    @classmethod
    def expand_worktree_base(cls, v: str) -> str:
        return str(Path(v).expanduser())
