"""Fleet-wide linked worktrees.

A worktree root is a sibling of the fleet root named after the branch
(``projects`` + ``feat/login`` -> ``projects-feat-login``). It holds one
linked worktree per repository plus copies of the fleet's auxiliary files.
"""

from __future__ import annotations

import logging
import re
import shlex
import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path

from .config import FleetConfig
from .core import (
    DEV_BRANCH,
    REMOTE,
    FleetError,
    FleetManager,
    FleetReport,
    GitRepository,
    Operation,
    OperationResult,
    Outcome,
    ResultStatus,
)
from .operations import Executor

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[/\\:]")


def safe_branch_name(branch: str) -> str:
    """Make a branch name usable as a single path component."""
    return _UNSAFE_CHARS.sub("-", branch)


def worktree_root_for(root: Path, branch: str) -> Path:
    return root.parent / f"{root.name}-{safe_branch_name(branch)}"


class WorktreeAddExecutor(Executor):
    """Add a linked worktree for one repository under the worktree root."""

    operation = Operation.WORKTREE_ADD

    def __init__(self, name: str, *, target_root: Path, **kwargs):
        super().__init__(name, **kwargs)
        self.target_root = target_root

    def _branch_exists(self, repo: GitRepository) -> tuple[bool, bool]:
        return repo.ops.has_local_branch(self.name), repo.ops.has_remote_branch(self.name)

    def check(self, repo, state):
        local, remote = self._branch_exists(repo)
        if not (local or remote or state.has_dev_branch):
            return Outcome.skip(f"No {DEV_BRANCH} branch to create from")
        return None

    def preview(self, repo, state):
        path = self.target_root / repo.name
        local, remote = self._branch_exists(repo)
        if local or remote:
            return f"Would add worktree {path} on {self.name}"
        return f"Would create {self.name} from {DEV_BRANCH} in {path}"

    def apply(self, repo, state):
        path = self.target_root / repo.name
        local, remote = self._branch_exists(repo)

        if local:
            success, output = repo.ops.add_worktree(path, self.name)
            detail = f"Added {path} on {self.name}"
        elif remote:
            success, output = repo.ops.add_worktree_tracking(path, self.name)
            detail = f"Added {path} tracking {REMOTE}/{self.name}"
        else:
            fetched, fetch_output = repo.ops.fetch(DEV_BRANCH)
            if not fetched:
                logger.info("%s: fetch of %s failed: %s", repo.name, DEV_BRANCH, fetch_output)
            start = (
                f"{REMOTE}/{DEV_BRANCH}" if repo.ops.has_remote_branch(DEV_BRANCH) else DEV_BRANCH
            )
            success, output = repo.ops.add_worktree_new_branch(path, self.name, start)
            detail = f"Created {self.name} from {start} in {path}"

        if not success:
            return Outcome.fail(output)
        return Outcome.ok(detail)


class WorktreeRemoveExecutor(Executor):
    """Force-remove one repository's linked worktree under the worktree root."""

    operation = Operation.WORKTREE_REMOVE

    def __init__(self, name: str, *, target_root: Path, **kwargs):
        super().__init__(name, **kwargs)
        self.target_root = target_root

    def check(self, repo, state):
        path = (self.target_root / repo.name).resolve()
        registered = {p.resolve() for p in repo.ops.list_worktrees()}
        if path not in registered:
            return Outcome.skip(f"No worktree at {path}")
        return None

    def preview(self, repo, state):
        return f"Would remove worktree {self.target_root / repo.name}"

    def apply(self, repo, state):
        path = self.target_root / repo.name
        success, output = repo.ops.remove_worktree(path)
        if not success:
            return Outcome.fail(output)
        return Outcome.ok(f"Removed {path}")


class WorktreeManager:
    """Create and tear down a fleet-wide worktree root."""

    def __init__(self, fleet: FleetManager, config: FleetConfig):
        self.fleet = fleet
        self.config = config

    def root_for(self, branch: str) -> Path:
        return worktree_root_for(self.fleet.root_path, branch)

    def is_auxiliary_copy(self, entry: Path) -> bool:
        """True for entries the manager itself copied into a worktree root.

        A git checkout never counts, even under an auxiliary name: the tool
        can be a fleet repository with its own linked worktree.
        """
        if entry.name not in {*self.config.aux_files, self.config.tool_name}:
            return False
        return not (entry / ".git").exists()

    def add(
        self,
        branch: str,
        *,
        dry_run: bool = False,
        launch_terminal: bool = True,
        on_result: Callable[[OperationResult], None] | None = None,
    ) -> FleetReport:
        target = self.root_for(branch)
        if target.exists():
            raise FleetError(f"Worktree root already exists: {target}")

        if not dry_run:
            target.mkdir(parents=True)

        executor = WorktreeAddExecutor(branch, target_root=target)
        report = self.fleet.run(executor, dry_run=dry_run, on_result=on_result)
        if dry_run:
            report.notes.append(f"Would create worktree root {target}")
            return report

        if not any(r.status == ResultStatus.OK for r in report.results):
            if not any(target.iterdir()):
                target.rmdir()
            report.notes.append(f"No worktree was added; nothing copied into {target}")
            return report

        copied = self.copy_auxiliary_files(target)
        if copied:
            report.notes.append(f"Copied {', '.join(copied)} into {target}")
        report.notes.append(f"Worktree root: {target}")

        if launch_terminal:
            self.launch_terminal(target)
        return report

    def copy_auxiliary_files(self, target: Path) -> list[str]:
        """Copy fleet-level files into ``target``; returns the names copied."""
        root = self.fleet.root_path
        copied = []

        for name in self.config.aux_files:
            source = root / name
            if source.is_file():
                shutil.copy2(source, target / name)
                copied.append(name)

        fleet_names = {repo.name for repo in self.fleet.discover_repositories()}
        tool = root / self.config.tool_name
        if self.config.tool_name not in fleet_names and tool.exists():
            if tool.is_dir():
                shutil.copytree(
                    tool,
                    target / self.config.tool_name,
                    symlinks=True,
                    ignore=shutil.ignore_patterns(".git"),
                )
            else:
                shutil.copy2(tool, target / self.config.tool_name)
            copied.append(self.config.tool_name)

        return copied

    def launch_terminal(self, target: Path) -> None:
        """Open a terminal session in ``target``. Failures are only logged."""
        template = self.config.terminal_command
        if not template:
            return
        try:
            args = shlex.split(template.format(path=target))
            subprocess.Popen(
                args,
                cwd=target,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except (OSError, ValueError, KeyError, IndexError) as e:
            logger.warning("Could not launch terminal in %s: %s", target, e)

    def remove(
        self,
        branch: str,
        *,
        dry_run: bool = False,
        on_result: Callable[[OperationResult], None] | None = None,
    ) -> FleetReport:
        target = self.root_for(branch)
        executor = WorktreeRemoveExecutor(branch, target_root=target)
        report = self.fleet.run(executor, dry_run=dry_run, on_result=on_result)

        if not target.exists():
            return report
        if dry_run:
            report.notes.append(f"Would remove {target} if only auxiliary files remain")
            return report

        leftovers = sorted(p.name for p in target.iterdir() if not self.is_auxiliary_copy(p))
        if leftovers:
            logger.warning("Keeping %s, it still contains: %s", target, ", ".join(leftovers))
            report.notes.append(f"Kept {target}: still contains {', '.join(leftovers)}")
        else:
            shutil.rmtree(target)
            report.notes.append(f"Removed {target}")
        return report
