"""Git repository access for panecrew.

Porcelain helpers for worktree management plus the plumbing primitives the
data ref sync builds commits with. Everything goes through GitPython's
command wrapper so git's own object model does the work; failures surface as
`ExternalToolError` with the git subcommand and its stderr.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, cast

from git import Repo
from git.exc import CommandError, InvalidGitRepositoryError, NoSuchPathError

from panecrew.constants import DATA_REF_FILE_MODE, DEFAULT_REMOTE
from panecrew.core.errors import ExternalToolError

logger = logging.getLogger(__name__)


class GitRepository:
    """Thin wrapper around a GitPython `Repo` bound to one working copy."""

    def __init__(self, repo: Repo) -> None:
        self._repo = repo

    @classmethod
    def discover(cls, path: Optional[str | os.PathLike[str]] = None) -> "GitRepository":
        """Open the repository containing `path` (default: cwd)."""
        start = str(path) if path is not None else os.getcwd()
        try:
            repo = Repo(start, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as exc:
            raise ExternalToolError("git", ["rev-parse", "--show-toplevel"], "not inside a git repository") from exc
        if repo.bare or repo.working_tree_dir is None:
            raise ExternalToolError("git", ["rev-parse", "--show-toplevel"], "bare repositories are not supported")
        return cls(repo)

    # ------------------------------------------------------------------
    # Location
    # ------------------------------------------------------------------

    @property
    def root(self) -> Path:
        """Top-level directory of the current working copy."""
        return Path(cast(str, self._repo.working_tree_dir))

    @property
    def name(self) -> str:
        return self.root.name

    @property
    def common_dir(self) -> Path:
        """Absolute path of the shared git dir.

        From a linked worktree this is still the main repository's ``.git``,
        so every worktree sees the same run state.
        """
        raw = self._git("rev_parse", "--git-common-dir")
        common = Path(raw)
        if not common.is_absolute():
            common = self.root / common
        return common.resolve()

    # ------------------------------------------------------------------
    # Worktrees and branches
    # ------------------------------------------------------------------

    def fetch_branch(self, branch: str, remote: str = DEFAULT_REMOTE) -> None:
        self._git("fetch", remote, branch, "--quiet")

    def add_worktree(self, path: str | os.PathLike[str], branch: str, start_point: str) -> None:
        """Create a worktree at `path` on a new branch starting at `start_point`."""
        self._git("worktree", "add", str(path), "-b", branch, start_point, "--quiet")
        logger.info("Created worktree %s on %s (from %s)", path, branch, start_point)

    def remove_worktree(self, path: str | os.PathLike[str]) -> None:
        self._git("worktree", "remove", "--force", str(path))

    def prune_worktrees(self) -> None:
        """Drop git metadata for worktrees whose directories are gone."""
        self._git("worktree", "prune")

    def delete_branch(self, branch: str) -> None:
        self._git("branch", "-D", branch)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def verify_ref(self, ref: str) -> Optional[str]:
        """Return the commit `ref` points at, or None when it does not exist."""
        try:
            return self._git("rev_parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        except ExternalToolError:
            return None

    def resolve_ref(self, ref: str) -> str:
        """Resolve `ref` to a commit, failing loudly when it is gone."""
        return self._git("rev_parse", "--verify", f"{ref}^{{commit}}")

    def hash_object(self, path: str | os.PathLike[str]) -> str:
        """Store a file's bytes as a blob and return its object ID."""
        return self._git("hash_object", "-w", "--", str(path))

    def empty_tree(self) -> str:
        """Write the empty tree object and return its ID."""
        return self._git("hash_object", "-w", "-t", "tree", os.devnull)

    def read_tree(self, treeish: str, index_file: str | os.PathLike[str]) -> None:
        """Load `treeish` into a private index file."""
        self._git("read_tree", treeish, env=self._index_env(index_file))

    def update_index(self, index_file: str | os.PathLike[str], blob: str, path: str) -> None:
        """Register `blob` at `path` in a private index, replacing any prior entry."""
        cacheinfo = f"{DATA_REF_FILE_MODE},{blob},{path}"
        self._git("update_index", "--add", "--cacheinfo", cacheinfo, env=self._index_env(index_file))

    def write_tree(self, index_file: str | os.PathLike[str]) -> str:
        return self._git("write_tree", env=self._index_env(index_file))

    def commit_tree(self, tree: str, message: str, parent: Optional[str] = None) -> str:
        args: list[str] = []
        if parent:
            args += ["-p", parent]
        args += ["-m", message, tree]
        return self._git("commit_tree", *args)

    def update_ref(self, ref: str, new: str, expected_old: Optional[str] = None, *, create_only: bool = False) -> None:
        """Point `ref` at `new`.

        With `expected_old` git refuses the update unless the ref is still at
        that commit; with `create_only` it refuses unless the ref is absent.
        """
        args = [ref, new]
        if create_only:
            args.append("0" * len(new))
        elif expected_old:
            args.append(expected_old)
        self._git("update_ref", *args)

    def push_ref(self, ref: str, remote: str = DEFAULT_REMOTE) -> None:
        """Push a single ref to the same name on `remote`."""
        self._git("push", remote, f"{ref}:{ref}", "--quiet")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _index_env(index_file: str | os.PathLike[str]) -> dict[str, str]:
        return {"GIT_INDEX_FILE": str(index_file)}

    def _git(self, command: str, *args: str, env: Optional[dict[str, str]] = None) -> str:
        """Run a git subcommand and return its stripped stdout."""
        runner = getattr(self._repo.git, command)
        try:
            if env is None:
                output = runner(*args)
            else:
                output = runner(*args, env=env)
        except CommandError as exc:
            stderr = (exc.stderr or "").strip()
            raise ExternalToolError("git", [command.replace("_", "-"), *args], stderr) from exc
        return cast(str, output).strip()
