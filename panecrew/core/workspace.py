"""Resolved handles for one repository.

`Workspace.discover()` is the only place that looks at the caller's
environment (cwd, git layout, config file). Everything downstream receives
the handle explicitly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from panecrew.config import PanecrewConfig, load_config
from panecrew.core.data_ref_sync import DataRefSync
from panecrew.core.git_repo import GitRepository
from panecrew.core.run_registry import RunStore
from panecrew.core.tmux_bridge import TmuxBridge


@dataclass
class Workspace:
    repo: GitRepository
    store: RunStore
    config: PanecrewConfig
    tmux: TmuxBridge

    @classmethod
    def discover(cls, path: Optional[str | os.PathLike[str]] = None) -> "Workspace":
        repo = GitRepository.discover(path)
        config = load_config(repo.root)
        return cls(
            repo=repo,
            store=RunStore.for_common_dir(repo.common_dir),
            config=config,
            tmux=TmuxBridge(config.tmux_binary),
        )

    @property
    def data_ref(self) -> DataRefSync:
        return DataRefSync(self.repo, self.config.data_ref)
