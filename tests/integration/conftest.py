"""Shared fixtures for integration tests that drive a real git binary."""

import shutil
import subprocess
from pathlib import Path

import pytest

from panecrew.core.git_repo import GitRepository


def run_git(cwd: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, check=True)
    return result.stdout.strip()


@pytest.fixture(autouse=True)
def git_identity(monkeypatch, tmp_path: Path):
    """Isolate git from the user's config and give it an identity."""
    if shutil.which("git") is None:
        pytest.skip("git binary not available")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Panecrew Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Panecrew Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("PANECREW_CONFIG_PATH", raising=False)


@pytest.fixture
def repo_path(tmp_path: Path) -> Path:
    """A repository with one commit on main and a bare origin."""
    origin = tmp_path / "origin.git"
    path = tmp_path / "project"
    path.mkdir()
    run_git(tmp_path, "init", "--quiet", "--bare", str(origin))
    run_git(path, "init", "--quiet", "-b", "main")
    (path / "README.md").write_text("hello\n")
    run_git(path, "add", "README.md")
    run_git(path, "commit", "--quiet", "-m", "initial")
    run_git(path, "remote", "add", "origin", str(origin))
    run_git(path, "push", "--quiet", "origin", "main")
    return path


@pytest.fixture
def repo(repo_path: Path) -> GitRepository:
    return GitRepository.discover(repo_path)


@pytest.fixture
def git():
    return run_git
