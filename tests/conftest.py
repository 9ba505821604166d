"""Pytest fixtures for git-flotilla tests"""
import subprocess
from pathlib import Path

import pytest


def git(cwd: Path, *args: str) -> str:
    """Run git in ``cwd`` and return stripped stdout, failing the test on error."""
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


def commit(repo: Path, filename: str, message: str, content: str | None = None) -> None:
    (repo / filename).write_text(content if content is not None else f"{message}\n")
    git(repo, "add", filename)
    git(repo, "commit", "-q", "-m", message)


def current_branch(repo: Path) -> str:
    return git(repo, "rev-parse", "--abbrev-ref", "HEAD")


def branches(repo: Path) -> list[str]:
    return git(repo, "for-each-ref", "--format=%(refname:short)", "refs/heads").splitlines()


@pytest.fixture(autouse=True)
def isolated_git(tmp_path, monkeypatch):
    """Give every test its own HOME and git identity."""
    home = tmp_path / "home"
    home.mkdir()
    (home / ".gitconfig").write_text(
        "[user]\n"
        "\tname = Test User\n"
        "\temail = test@example.com\n"
        "[pull]\n"
        "\trebase = false\n"
        "[advice]\n"
        "\tdetachedHead = false\n"
        "[protocol \"file\"]\n"
        "\tallow = always\n"
    )
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("GIT_CONFIG_GLOBAL", raising=False)
    for name in ("GIT_FLOTILLA_CONFIG", "GIT_FLOTILLA_ROOT",
                 "GIT_FLOTILLA_EXCLUDE", "GIT_FLOTILLA_TERMINAL"):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def fleet_root(tmp_path):
    """Empty fleet root directory."""
    root = tmp_path / "fleet"
    root.mkdir()
    return root


@pytest.fixture
def remotes_dir(tmp_path):
    path = tmp_path / "remotes"
    path.mkdir()
    return path


@pytest.fixture
def make_repo(fleet_root, remotes_dir):
    """Factory creating a repository in the fleet root.

    By default the repository has a bare ``origin``, a pushed ``main`` and a
    pushed ``dev`` branch, and ``dev`` is checked out.
    """

    def _make(name: str, *, default: str = "main", dev: bool = True, remote: bool = True) -> Path:
        repo = fleet_root / name
        repo.mkdir()
        git(repo, "init", "-q")
        git(repo, "symbolic-ref", "HEAD", f"refs/heads/{default}")
        commit(repo, "README.md", "Initial commit", f"# {name}\n")

        if remote:
            bare = remotes_dir / f"{name}.git"
            git(remotes_dir, "init", "-q", "--bare", str(bare))
            git(bare, "symbolic-ref", "HEAD", f"refs/heads/{default}")
            git(repo, "remote", "add", "origin", str(bare))
            git(repo, "push", "-q", "-u", "origin", default)
            git(repo, "remote", "set-head", "origin", "--auto")

        if dev:
            git(repo, "checkout", "-q", "-b", "dev")
            if remote:
                git(repo, "push", "-q", "-u", "origin", "dev")
        return repo

    return _make


@pytest.fixture
def other_clone(tmp_path, remotes_dir):
    """Factory cloning a repository's origin elsewhere, to publish upstream changes."""

    def _clone(name: str, branch: str = "dev") -> Path:
        clone = tmp_path / "clones" / name
        clone.parent.mkdir(exist_ok=True)
        git(tmp_path, "clone", "-q", "-b", branch, str(remotes_dir / f"{name}.git"), str(clone))
        return clone

    return _clone
