"""Per-repository operation executors.

Every executor follows the same contract: inspect the repository, run the
read-only precondition checks, then either report a dry-run preview or apply
the change through git/gh. Dry-run shares every check with the real run and
only diverges at the final mutating call.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from .core import (
    DEV_BRANCH,
    REMOTE,
    GitRepository,
    MergeStrategy,
    Operation,
    Outcome,
    RepositoryState,
)

logger = logging.getLogger(__name__)

_UPDATED_RE = re.compile(r"\d+ files? changed")


def pr_already_exists(error: str) -> bool:
    return "already exists" in error.lower()


def pr_title(branch: str) -> str:
    """Title a pull request after its branch: 'feat/add_login' -> 'feat add login'."""
    return re.sub(r"[/_]", " ", branch)


def pr_body(subjects: list[str]) -> str:
    """Markdown list of commit subjects, in the order given."""
    return "\n".join(f"- {subject}" for subject in subjects)


class Executor:
    """Base class for fleet operations."""

    operation: Operation

    def __init__(
        self,
        name: str | None = None,
        *,
        base: str = DEV_BRANCH,
        strategy: MergeStrategy = MergeStrategy.MERGE,
    ):
        self.name = name
        self.base = base
        self.strategy = strategy

    def execute(self, repo: GitRepository, dry_run: bool = False) -> Outcome:
        state = repo.get_state()
        if state.is_error:
            return Outcome.fail(f"Inspection failed: {state.error_message}")

        outcome = self.check(repo, state)
        if outcome is not None:
            return outcome
        if dry_run:
            return Outcome.dry_run(self.preview(repo, state))
        return self.apply(repo, state)

    def check(self, repo: GitRepository, state: RepositoryState) -> Outcome | None:
        """Return an outcome to stop at (usually a skip), or None to proceed."""
        return None

    def preview(self, repo: GitRepository, state: RepositoryState) -> str:
        raise NotImplementedError

    def apply(self, repo: GitRepository, state: RepositoryState) -> Outcome:
        raise NotImplementedError


class BranchExecutor(Executor):
    """Create a feature branch from a freshly pulled dev."""

    operation = Operation.BRANCH

    def check(self, repo, state):
        if not state.has_dev_branch:
            return Outcome.skip("No dev branch")
        if repo.ops.has_local_branch(self.name):
            return Outcome.skip(f"Branch {self.name} already exists")
        return None

    def preview(self, repo, state):
        return f"Would create {self.name} from {DEV_BRANCH}"

    def apply(self, repo, state):
        # Steps are not rolled back: a failed branch creation leaves dev updated.
        success, output = repo.ops.checkout(DEV_BRANCH)
        if not success:
            return Outcome.fail(output)
        success, output = repo.ops.pull(DEV_BRANCH)
        if not success:
            return Outcome.fail(output)
        success, output = repo.ops.create_branch(self.name)
        if not success:
            return Outcome.fail(output)
        return Outcome.ok(f"Created {self.name} from {DEV_BRANCH}")


class CheckoutExecutor(Executor):
    """Switch every clean repository to an existing branch."""

    operation = Operation.CHECKOUT

    def check(self, repo, state):
        if state.is_dirty:
            return Outcome.skip("Uncommitted changes")
        if not (repo.ops.has_local_branch(self.name) or repo.ops.has_remote_branch(self.name)):
            return Outcome.skip(f"Branch {self.name} not found")
        return None

    def preview(self, repo, state):
        return f"Would switch to {self.name}"

    def apply(self, repo, state):
        success, output = repo.ops.checkout(self.name)
        if not success:
            return Outcome.fail(output)
        return Outcome.ok(f"Switched to {self.name}")


class PullExecutor(Executor):
    operation = Operation.PULL

    def check(self, repo, state):
        if state.is_detached:
            return Outcome.skip("Detached HEAD")
        return None

    def preview(self, repo, state):
        return f"Would pull {REMOTE}/{state.current_branch}"

    def apply(self, repo, state):
        success, output = repo.ops.pull(state.current_branch)
        if not success:
            return Outcome.fail(output)
        match = _UPDATED_RE.search(output)
        if match:
            return Outcome.ok(f"Updated {state.current_branch} ({match.group(0)})")
        return Outcome.ok(f"Already up to date ({state.current_branch})")


class PushExecutor(Executor):
    operation = Operation.PUSH

    def check(self, repo, state):
        if state.is_detached:
            return Outcome.skip("Detached HEAD")
        if state.has_upstream and state.ahead_count == 0:
            return Outcome.skip(f"Nothing to push ({state.current_branch})")
        return None

    def preview(self, repo, state):
        if state.has_upstream:
            return f"Would push {state.ahead_count} commit(s) on {state.current_branch}"
        return f"Would publish {state.current_branch} to {REMOTE}"

    def apply(self, repo, state):
        branch = state.current_branch
        success, output = repo.ops.push(branch, set_upstream=not state.has_upstream)
        if not success:
            return Outcome.fail(output)
        if state.has_upstream:
            return Outcome.ok(f"Pushed {state.ahead_count} commit(s) on {branch}")
        return Outcome.ok(f"Published {branch} to {REMOTE}")


class PrCreateExecutor(Executor):
    """Open a pull request from the current branch into the base branch."""

    operation = Operation.PR_CREATE

    def check(self, repo, state):
        if state.is_detached:
            return Outcome.skip("Detached HEAD")
        if state.current_branch == self.base:
            return Outcome.skip(f"Already on base branch ({self.base})")

        success, output = repo.ops.fetch(self.base)
        if not success:
            return Outcome.fail(output)
        success, count = repo.ops.count_commits(f"{REMOTE}/{self.base}", "HEAD")
        if not success:
            return Outcome.fail(count)
        if count == 0:
            return Outcome.skip(f"No commits ahead of {REMOTE}/{self.base}")
        return None

    def _subjects(self, repo):
        return repo.ops.get_commit_subjects(f"{REMOTE}/{self.base}", "HEAD")

    def preview(self, repo, state):
        subjects = self._subjects(repo)
        return (
            f"Would open PR {state.current_branch} -> {self.base} "
            f"({len(subjects)} commit(s)): {pr_title(state.current_branch)}"
        )

    def apply(self, repo, state):
        branch = state.current_branch
        success, output = repo.gh.create_pr(
            base=self.base,
            head=branch,
            title=pr_title(branch),
            body=pr_body(self._subjects(repo)),
        )
        if not success:
            if pr_already_exists(output):
                return Outcome.skip(f"PR already exists for {branch}")
            return Outcome.fail(output)

        url = output.splitlines()[-1] if output else branch
        merged, merge_output = repo.gh.enable_auto_merge(url, self.strategy, delete_branch=True)
        if merged:
            return Outcome.ok(f"Created {url}; auto-merge enabled ({self.strategy.value})")
        logger.info("Auto-merge not enabled for %s: %s", url, merge_output)
        return Outcome.ok(f"Created {url}; auto-merge failed: {merge_output}")


class PrMergeExecutor(Executor):
    """Merge the open pull request whose head is the current branch."""

    operation = Operation.PR_MERGE

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Open PRs found by check(), reused by preview() and apply()
        self._open_prs: dict[Path, list[dict]] = {}

    def check(self, repo, state):
        if state.is_detached:
            return Outcome.skip("Detached HEAD")
        success, prs = repo.gh.list_open_prs(state.current_branch)
        if not success:
            return Outcome.fail(prs)
        if not prs:
            return Outcome.skip(f"No open PR for {state.current_branch}")
        self._open_prs[repo.path] = prs
        return None

    def preview(self, repo, state):
        prs = self._open_prs[repo.path]
        return f"Would merge PR #{prs[0]['number']} ({self.strategy.value})"

    def apply(self, repo, state):
        prs = self._open_prs[repo.path]

        # One open PR per branch is expected; with several, the first one wins.
        pr = prs[0]
        if len(prs) > 1:
            logger.warning(
                "%s: %d open PRs for %s, merging #%s only",
                repo.name,
                len(prs),
                state.current_branch,
                pr["number"],
            )

        success, output = repo.gh.merge_pr(str(pr["number"]), self.strategy)
        if not success:
            return Outcome.fail(output)
        detail = f"Merged PR #{pr['number']} ({self.strategy.value})"
        if len(prs) > 1:
            detail += f"; {len(prs) - 1} other open PR(s) left untouched"
        return Outcome.ok(detail)


class PrDevToMainExecutor(Executor):
    """Promote dev into the repository's default branch through a pull request."""

    operation = Operation.PR_DEV_TO_MAIN

    def check(self, repo, state):
        success, output = repo.ops.fetch()
        if not success:
            return Outcome.fail(output)

        default = state.default_branch
        if not repo.ops.has_remote_branch(DEV_BRANCH):
            return Outcome.skip(f"No remote {DEV_BRANCH} branch")
        if not repo.ops.has_remote_branch(default):
            return Outcome.skip(f"No remote {default} branch")

        success, count = repo.ops.count_commits(f"{REMOTE}/{default}", f"{REMOTE}/{DEV_BRANCH}")
        if not success:
            return Outcome.fail(count)
        if count == 0:
            return Outcome.skip(f"{DEV_BRANCH} has no commits ahead of {default}")
        return None

    def _subjects(self, repo, state):
        return repo.ops.get_commit_subjects(
            f"{REMOTE}/{state.default_branch}", f"{REMOTE}/{DEV_BRANCH}"
        )

    def preview(self, repo, state):
        count = len(self._subjects(repo, state))
        return f"Would open PR {DEV_BRANCH} -> {state.default_branch} ({count} commit(s))"

    def apply(self, repo, state):
        default = state.default_branch
        subjects = self._subjects(repo, state)
        title = f"Merge {DEV_BRANCH} into {default} ({len(subjects)} commits)"
        body = f"{len(subjects)} commit(s) from `{DEV_BRANCH}`:\n\n{pr_body(subjects)}"

        success, output = repo.gh.create_pr(base=default, head=DEV_BRANCH, title=title, body=body)
        if not success:
            if pr_already_exists(output):
                return Outcome.skip(f"PR already exists for {DEV_BRANCH} -> {default}")
            return Outcome.fail(output)

        url = output.splitlines()[-1] if output else DEV_BRANCH
        # dev is long-lived: never delete it on merge.
        merged, merge_output = repo.gh.enable_auto_merge(url, self.strategy, delete_branch=False)
        if merged:
            return Outcome.ok(f"Created {url}; auto-merge enabled ({self.strategy.value})")
        logger.info("Auto-merge not enabled for %s: %s", url, merge_output)
        return Outcome.ok(f"Created {url}; auto-merge failed: {merge_output}")


EXECUTORS: dict[Operation, type[Executor]] = {
    Operation.BRANCH: BranchExecutor,
    Operation.CHECKOUT: CheckoutExecutor,
    Operation.PULL: PullExecutor,
    Operation.PUSH: PushExecutor,
    Operation.PR_CREATE: PrCreateExecutor,
    Operation.PR_MERGE: PrMergeExecutor,
    Operation.PR_DEV_TO_MAIN: PrDevToMainExecutor,
}
