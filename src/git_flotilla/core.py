"""
git-flotilla: Sail a fleet of repositories that share one branching model.

Domain models, low-level Git/GitHub wrappers, the repository state inspector
and the fleet manager that discovers repositories and drives executors over
them one at a time.
"""

from __future__ import annotations

import json
import logging
import subprocess
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .operations import Executor

logger = logging.getLogger(__name__)

DETACHED = "(detached)"
DEV_BRANCH = "dev"
REMOTE = "origin"

# =============================================================================
# Errors
# =============================================================================


class FleetError(Exception):
    """Fatal, fleet-wide error. Raised before (or instead of) per-repository work."""


class FleetValidationError(FleetError):
    """Malformed invocation: unknown operation or missing argument."""


# =============================================================================
# Domain Models
# =============================================================================


class Operation(StrEnum):
    """Fleet-wide operations."""

    STATUS = "status"
    BRANCH = "branch"
    CHECKOUT = "checkout"
    PULL = "pull"
    PUSH = "push"
    PR_CREATE = "pr-create"
    PR_MERGE = "pr-merge"
    PR_DEV_TO_MAIN = "pr-dev-to-main"
    WORKTREE_ADD = "worktree-add"
    WORKTREE_REMOVE = "worktree-remove"

    @property
    def requires_name(self) -> bool:
        return self in (
            Operation.BRANCH,
            Operation.CHECKOUT,
            Operation.WORKTREE_ADD,
            Operation.WORKTREE_REMOVE,
        )


class MergeStrategy(StrEnum):
    """Pull request merge strategy."""

    MERGE = "merge"
    SQUASH = "squash"
    REBASE = "rebase"


class ResultStatus(StrEnum):
    """Terminal status of one repository for one operation."""

    OK = "ok"
    SKIP = "skip"
    FAIL = "fail"
    DRYRUN = "dryrun"


@dataclass(frozen=True)
class Outcome:
    """Tagged executor outcome: Skip(reason) | DryRun(preview) | Ok(detail) | Fail(error)."""

    status: ResultStatus
    details: str = ""

    @classmethod
    def ok(cls, detail: str = "") -> Outcome:
        return cls(ResultStatus.OK, detail)

    @classmethod
    def skip(cls, reason: str) -> Outcome:
        return cls(ResultStatus.SKIP, reason)

    @classmethod
    def dry_run(cls, preview: str) -> Outcome:
        return cls(ResultStatus.DRYRUN, preview)

    @classmethod
    def fail(cls, error: str) -> Outcome:
        return cls(ResultStatus.FAIL, error or "Unknown error")


@dataclass(frozen=True)
class RepositoryState:
    """Snapshot of one repository, built fresh for every invocation."""

    path: Path
    name: str
    current_branch: str = DETACHED
    is_dirty: bool = False
    default_branch: str = "main"
    has_dev_branch: bool = False
    upstream: str = ""
    ahead_count: int = 0
    behind_count: int = 0
    error_message: str = ""

    @property
    def is_detached(self) -> bool:
        return self.current_branch == DETACHED

    @property
    def has_upstream(self) -> bool:
        return bool(self.upstream)

    @property
    def is_error(self) -> bool:
        return bool(self.error_message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "path": str(self.path),
            "name": self.name,
            "current_branch": self.current_branch,
            "is_detached": self.is_detached,
            "is_dirty": self.is_dirty,
            "default_branch": self.default_branch,
            "has_dev_branch": self.has_dev_branch,
            "upstream": self.upstream,
            "ahead_count": self.ahead_count,
            "behind_count": self.behind_count,
            "status": "error" if self.is_error else "ok",
            "error_message": self.error_message,
        }


@dataclass
class OperationResult:
    """Result of one operation on one repository."""

    path: Path
    name: str
    operation: str
    status: ResultStatus
    details: str = ""

    @classmethod
    def from_outcome(
        cls, repo: GitRepository, operation: str, outcome: Outcome
    ) -> OperationResult:
        return cls(
            path=repo.path,
            name=repo.name,
            operation=operation,
            status=outcome.status,
            details=outcome.details,
        )

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "operation": self.operation,
            "status": self.status.value,
            "details": self.details,
        }


@dataclass
class FleetSummary:
    """Result counts by status."""

    total: int = 0
    ok: int = 0
    skipped: int = 0
    dry_run: int = 0
    failed: int = 0

    @classmethod
    def from_results(cls, results: Iterable[OperationResult]) -> FleetSummary:
        summary = cls()
        for result in results:
            summary.total += 1
            match result.status:
                case ResultStatus.OK:
                    summary.ok += 1
                case ResultStatus.SKIP:
                    summary.skipped += 1
                case ResultStatus.DRYRUN:
                    summary.dry_run += 1
                case ResultStatus.FAIL:
                    summary.failed += 1
        return summary

    def describe(self) -> str:
        """Human summary listing only non-zero counts, e.g. '2 skipped'."""
        parts = []
        if self.ok:
            parts.append(f"{self.ok} ok")
        if self.skipped:
            parts.append(f"{self.skipped} skipped")
        if self.dry_run:
            parts.append(f"{self.dry_run} dry-run")
        if self.failed:
            parts.append(f"{self.failed} failed")
        return ", ".join(parts) if parts else "nothing to do"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FleetReport:
    """Aggregated, fleet-ordered results of one invocation."""

    operation: str
    root: Path
    results: list[OperationResult] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def summary(self) -> FleetSummary:
        return FleetSummary.from_results(self.results)

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "root": str(self.root),
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary.to_dict(),
            "notes": list(self.notes),
        }


# =============================================================================
# Git Operations (Low-level)
# =============================================================================


def run_tool(args: list[str], cwd: Path) -> tuple[bool, str]:
    """Run an external command in ``cwd`` and return (success, output).

    On failure the output is stderr (falling back to stdout) so the raw
    diagnostic reaches the report untouched.
    """
    logger.debug("%s $ %s", cwd, " ".join(args))
    try:
        result = subprocess.run(
            args,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        return False, str(e)
    if result.returncode != 0:
        return False, result.stderr.strip() or result.stdout.strip()
    return True, result.stdout.strip()


class GitOperations:
    """Low-level Git operations for a single repository."""

    def __init__(self, repo_path: Path):
        self.repo_path = repo_path

    def _run(self, *args: str) -> tuple[bool, str]:
        """Run a git command in the repository."""
        return run_tool(["git", *args], self.repo_path)

    def _ref_exists(self, ref: str) -> bool:
        success, _ = self._run("show-ref", "--verify", "--quiet", ref)
        return success

    # -- queries ---------------------------------------------------------------

    def get_current_branch(self) -> str:
        """Current branch name, or DETACHED when HEAD is not symbolic."""
        success, output = self._run("symbolic-ref", "--short", "-q", "HEAD")
        if success and output:
            return output
        return DETACHED

    def is_dirty(self) -> bool:
        success, output = self._run("status", "--short")
        if not success:
            raise RuntimeError(output or "git status failed")
        return bool(output)

    def has_local_branch(self, branch: str) -> bool:
        return self._ref_exists(f"refs/heads/{branch}")

    def has_remote_branch(self, branch: str) -> bool:
        return self._ref_exists(f"refs/remotes/{REMOTE}/{branch}")

    def get_remote_head(self) -> str:
        """Branch advertised by origin/HEAD, or empty string."""
        success, output = self._run("symbolic-ref", "--short", "-q", f"refs/remotes/{REMOTE}/HEAD")
        if success and output.startswith(f"{REMOTE}/"):
            return output[len(REMOTE) + 1 :]
        return ""

    def get_upstream(self) -> str:
        success, output = self._run("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}")
        return output if success else ""

    def get_ahead_behind(self) -> tuple[int, int]:
        """Get ahead/behind counts against upstream."""
        success, output = self._run("rev-list", "--left-right", "--count", "@{u}...HEAD")
        if success:
            parts = output.split()
            if len(parts) == 2:
                return int(parts[1]), int(parts[0])  # ahead, behind
        return 0, 0

    def count_commits(self, base: str, head: str) -> tuple[bool, int | str]:
        """Count commits reachable from head but not base."""
        success, output = self._run("rev-list", "--count", f"{base}..{head}")
        if not success:
            return False, output
        return True, int(output or 0)

    def get_commit_subjects(self, base: str, head: str) -> list[str]:
        """Commit subject lines between base and head, in git log order."""
        success, output = self._run("log", "--format=%s", f"{base}..{head}")
        if not success or not output:
            return []
        return output.splitlines()

    def list_worktrees(self) -> list[Path]:
        """Paths of all worktrees registered for this repository."""
        success, output = self._run("worktree", "list", "--porcelain")
        if not success:
            return []
        return [
            Path(line[len("worktree ") :])
            for line in output.splitlines()
            if line.startswith("worktree ")
        ]

    # -- mutations -------------------------------------------------------------

    def fetch(self, *refs: str) -> tuple[bool, str]:
        return self._run("fetch", REMOTE, *refs)

    def checkout(self, branch: str) -> tuple[bool, str]:
        return self._run("checkout", branch)

    def create_branch(self, branch: str) -> tuple[bool, str]:
        return self._run("checkout", "-b", branch)

    def pull(self, branch: str) -> tuple[bool, str]:
        """Pull ``branch`` from origin into the current branch."""
        return self._run("pull", REMOTE, branch)

    def push(self, branch: str, set_upstream: bool = False) -> tuple[bool, str]:
        if set_upstream:
            return self._run("push", "--set-upstream", REMOTE, branch)
        return self._run("push")

    def add_worktree(self, path: Path, branch: str) -> tuple[bool, str]:
        return self._run("worktree", "add", str(path), branch)

    def add_worktree_tracking(self, path: Path, branch: str) -> tuple[bool, str]:
        return self._run(
            "worktree", "add", "--track", "-b", branch, str(path), f"{REMOTE}/{branch}"
        )

    def add_worktree_new_branch(self, path: Path, branch: str, start: str) -> tuple[bool, str]:
        return self._run("worktree", "add", "--no-track", "-b", branch, str(path), start)

    def remove_worktree(self, path: Path) -> tuple[bool, str]:
        return self._run("worktree", "remove", "--force", str(path))


class GitHubOperations:
    """Pull request operations through the authenticated ``gh`` CLI."""

    def __init__(self, repo_path: Path):
        self.repo_path = repo_path

    def _run(self, *args: str) -> tuple[bool, str]:
        return run_tool(["gh", *args], self.repo_path)

    def create_pr(self, base: str, head: str, title: str, body: str) -> tuple[bool, str]:
        """Create a pull request; on success the output is its URL."""
        return self._run(
            "pr", "create", "--base", base, "--head", head, "--title", title, "--body", body
        )

    def enable_auto_merge(
        self, pr: str, strategy: MergeStrategy, delete_branch: bool
    ) -> tuple[bool, str]:
        args = ["pr", "merge", pr, "--auto", f"--{strategy.value}"]
        if delete_branch:
            args.append("--delete-branch")
        return self._run(*args)

    def merge_pr(self, pr: str, strategy: MergeStrategy) -> tuple[bool, str]:
        return self._run("pr", "merge", pr, f"--{strategy.value}", "--delete-branch")

    def list_open_prs(self, head: str) -> tuple[bool, list[dict] | str]:
        """Open pull requests whose head is ``head``, as returned by gh."""
        success, output = self._run(
            "pr", "list", "--head", head, "--state", "open", "--json", "number,url,title"
        )
        if not success:
            return False, output
        try:
            return True, json.loads(output or "[]")
        except json.JSONDecodeError as e:
            return False, f"Unexpected gh output: {e}"


# =============================================================================
# Repository Manager
# =============================================================================


DefaultBranchResolver = Callable[[GitOperations], str]


def _local_named(name: str) -> DefaultBranchResolver:
    return lambda ops: name if ops.has_local_branch(name) else ""


def _remote_named(name: str) -> DefaultBranchResolver:
    return lambda ops: name if ops.has_remote_branch(name) else ""


def _remote_head(ops: GitOperations) -> str:
    return ops.get_remote_head()


def _fallback(ops: GitOperations) -> str:
    return "main"


# Evaluated in order; the first non-empty answer wins.
DEFAULT_BRANCH_RESOLVERS: tuple[DefaultBranchResolver, ...] = (
    _local_named("main"),
    _local_named("master"),
    _remote_head,
    _remote_named("main"),
    _remote_named("master"),
    _fallback,
)


def resolve_default_branch(ops: GitOperations) -> str:
    """Resolve the repository's main-line branch name."""
    for resolver in DEFAULT_BRANCH_RESOLVERS:
        branch = resolver(ops)
        if branch:
            return branch
    return "main"


class GitRepository:
    """High-level interface for a single Git repository."""

    def __init__(self, path: Path):
        self.path = path
        self.name = path.name
        self.ops = GitOperations(path)
        self.gh = GitHubOperations(path)

    def __repr__(self) -> str:
        return f"GitRepository({self.path!s})"

    def get_state(self) -> RepositoryState:
        """Inspect branch, working tree, default branch, dev branch and sync counts.

        Never raises: an unexpected failure yields a degraded record with
        ``error_message`` set.
        """
        try:
            current = self.ops.get_current_branch()
            dirty = self.ops.is_dirty()
            default_branch = resolve_default_branch(self.ops)
            has_dev = self.ops.has_local_branch(DEV_BRANCH)
            upstream = self.ops.get_upstream() if current != DETACHED else ""
            ahead, behind = self.ops.get_ahead_behind() if upstream else (0, 0)
        except Exception as e:
            logger.warning("Could not inspect %s: %s", self.name, e)
            return RepositoryState(path=self.path, name=self.name, error_message=str(e))

        return RepositoryState(
            path=self.path,
            name=self.name,
            current_branch=current,
            is_dirty=dirty,
            default_branch=default_branch,
            has_dev_branch=has_dev,
            upstream=upstream,
            ahead_count=max(ahead, 0),
            behind_count=max(behind, 0),
        )


# =============================================================================
# Fleet Manager
# =============================================================================


def is_repository(path: Path) -> bool:
    """A directory is a fleet member if it carries git metadata."""
    return path.is_dir() and (path / ".git").exists()


class FleetManager:
    """Discover the repositories under a root and run executors across them."""

    def __init__(
        self,
        root_path: Path,
        *,
        exclude: Iterable[str] = (),
        only: Iterable[str] | None = None,
    ):
        self.root_path = root_path.resolve()
        self.exclude = frozenset(exclude)
        self.only = frozenset(only) if only else None
        self._repositories: list[GitRepository] | None = None

    def discover_repositories(self) -> list[GitRepository]:
        """Immediate subdirectories holding a repository, sorted by name."""
        if self._repositories is not None:
            return self._repositories

        repos = []
        for child in self.root_path.iterdir():
            if child.name in self.exclude:
                continue
            if self.only is not None and child.name not in self.only:
                continue
            if is_repository(child):
                repos.append(GitRepository(child))

        repos.sort(key=lambda r: r.name)
        logger.debug("Discovered %d repositories under %s", len(repos), self.root_path)

        self._repositories = repos
        return repos

    def get_all_states(self) -> list[RepositoryState]:
        """Inspect every repository in fleet order."""
        return [repo.get_state() for repo in self.discover_repositories()]

    def run(
        self,
        executor: Executor,
        *,
        dry_run: bool = False,
        on_result: Callable[[OperationResult], None] | None = None,
    ) -> FleetReport:
        """Execute ``executor`` on every repository, sequentially and in order."""
        report = FleetReport(operation=executor.operation.value, root=self.root_path)

        for repo in self.discover_repositories():
            try:
                outcome = executor.execute(repo, dry_run=dry_run)
            except Exception as e:
                logger.exception("Unexpected error in %s", repo.name)
                outcome = Outcome.fail(str(e))

            result = OperationResult.from_outcome(repo, executor.operation.value, outcome)
            logger.info("%s: %s %s", repo.name, result.status.value, result.details)
            report.results.append(result)
            if on_result is not None:
                on_result(result)

        return report
