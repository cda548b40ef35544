"""Publish run artifacts into a private, append-only git ref.

The ref (``refs/panecrew/data`` by default) carries its own history that
never shares commits with the project's branches. Each sync layers a batch of
files on top of the previous snapshot using plumbing only:

    read-tree (private index) -> hash-object -> update-index
    -> write-tree -> commit-tree -> update-ref (compare-and-swap)

Nothing here reads or writes a working tree, the real index or HEAD.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path

from panecrew.constants import DATA_REF_INIT_MESSAGE, DEFAULT_REMOTE
from panecrew.core.errors import ExternalToolError, PublishConflictError, StorageError
from panecrew.core.git_repo import GitRepository

logger = logging.getLogger(__name__)


class DataRefSync:
    """Writer for one data ref in one repository.

    Assumes at most one publisher per ref at a time. A concurrent publisher
    is detected by the compare-and-swap on the ref and reported as
    `PublishConflictError` instead of being overwritten.
    """

    def __init__(self, repo: GitRepository, ref: str) -> None:
        self.repo = repo
        self.ref = ref

    def ensure_ref(self) -> str:
        """Create the ref with an empty root commit if it does not exist yet.

        Returns:
            The commit the ref points at.
        """
        existing = self.repo.verify_ref(self.ref)
        if existing:
            return existing

        tree = self.repo.empty_tree()
        commit = self.repo.commit_tree(tree, DATA_REF_INIT_MESSAGE)
        try:
            self.repo.update_ref(self.ref, commit, create_only=True)
        except ExternalToolError:
            # Someone else bootstrapped the ref first; use theirs.
            winner = self.repo.verify_ref(self.ref)
            if winner is None:
                raise
            logger.debug("Data ref %s was created concurrently at %s", self.ref, winner[:12])
            return winner
        logger.info("Initialized data ref %s at %s", self.ref, commit[:12])
        return commit

    def sync(self, files: Mapping[str, str | os.PathLike[str]], message: str, *, retries: int = 0) -> str:
        """Commit `files` (path in tree -> local file) onto the data ref.

        Paths not mentioned keep their previous content. On a ref race the
        whole batch is re-layered onto the new tip up to `retries` times.

        Returns:
            The new commit ID.

        Raises:
            PublishConflictError: the ref kept moving after all retries.
            ExternalToolError: a git step failed; the ref is unchanged.
            StorageError: a local file could not be read.
        """
        # git runs from the repository root, so relative paths are pinned to the caller's cwd here
        resolved: dict[str, Path] = {tree_path: Path(local).resolve() for tree_path, local in files.items()}
        for local in resolved.values():
            if not local.is_file():
                raise StorageError("reading", local)

        self.ensure_ref()
        attempt = 0
        while True:
            parent = self.repo.resolve_ref(self.ref)
            commit = self._build_commit(parent, resolved, message)
            try:
                self._advance(parent, commit)
            except PublishConflictError as conflict:
                if attempt >= retries:
                    raise
                attempt += 1
                logger.warning("%s; re-layering onto new tip (attempt %d/%d)", conflict, attempt, retries)
                continue
            logger.info("Published %d file(s) to %s at %s", len(resolved), self.ref, commit[:12])
            return commit

    def push(self, remote: str = DEFAULT_REMOTE) -> None:
        """Push just the data ref to `remote`."""
        self.repo.push_ref(self.ref, remote)

    def _build_commit(self, parent: str, files: Mapping[str, str | os.PathLike[str]], message: str) -> str:
        fd, index_file = tempfile.mkstemp(prefix="panecrew-index-")
        os.close(fd)
        # git expects either no index file or a valid one
        os.unlink(index_file)
        try:
            self.repo.read_tree(parent, index_file)
            for tree_path, local_path in files.items():
                blob = self.repo.hash_object(local_path)
                self.repo.update_index(index_file, blob, tree_path)
            tree = self.repo.write_tree(index_file)
            return self.repo.commit_tree(tree, message, parent=parent)
        finally:
            for leftover in (index_file, f"{index_file}.lock"):
                try:
                    os.unlink(leftover)
                except FileNotFoundError:
                    pass

    def _advance(self, parent: str, commit: str) -> None:
        try:
            self.repo.update_ref(self.ref, commit, expected_old=parent)
        except ExternalToolError as exc:
            actual = self.repo.verify_ref(self.ref)
            if actual != parent:
                raise PublishConflictError(self.ref, parent, actual) from exc
            raise
