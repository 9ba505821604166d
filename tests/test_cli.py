"""Tests for the command-line dispatcher"""
import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from conftest import branches, git

from git_flotilla import __version__
from git_flotilla.cli import app
from git_flotilla.core import GitHubOperations


@pytest.fixture
def runner():
    return CliRunner()


def invoke_json(runner, fleet_root, *args):
    result = runner.invoke(app, [*args, "--root", str(fleet_root), "--json"])
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestValidation:
    @pytest.mark.parametrize("operation", ["branch", "checkout", "worktree-add", "worktree-remove"])
    def test_missing_name_is_fatal(self, runner, fleet_root, make_repo, operation):
        repo = make_repo("app")

        result = runner.invoke(app, [operation, "--root", str(fleet_root)])

        assert result.exit_code == 1
        assert "requires a branch name" in result.output
        assert branches(repo) == ["dev", "main"]
        assert not any(p.name.startswith("fleet-") for p in fleet_root.parent.iterdir())

    def test_unknown_operation(self, runner, fleet_root):
        result = runner.invoke(app, ["launch", "--root", str(fleet_root)])

        assert result.exit_code != 0

    def test_missing_root(self, runner, tmp_path):
        result = runner.invoke(app, ["status", "--root", str(tmp_path / "absent")])

        assert result.exit_code == 1
        assert "not a directory" in result.output

    def test_existing_worktree_root_is_fatal(self, runner, fleet_root, make_repo):
        make_repo("app")
        (fleet_root.parent / "fleet-feat-x").mkdir()

        result = runner.invoke(app, ["worktree-add", "feat/x", "--root", str(fleet_root)])

        assert result.exit_code == 1
        assert "already exists" in result.output


class TestReports:
    def test_push_scenario(self, runner, fleet_root, make_repo):
        make_repo("A")
        b = make_repo("B")
        (b / "wip.txt").write_text("wip\n")
        git(b, "checkout", "-q", "--detach")

        output = invoke_json(runner, fleet_root, "push")

        assert [(r["name"], r["status"], r["details"]) for r in output["results"]] == [
            ("A", "skip", "Nothing to push (dev)"),
            ("B", "skip", "Detached HEAD"),
        ]
        assert output["summary"]["skipped"] == 2
        assert output["operation"] == "push"

    def test_table_output_ends_with_summary(self, runner, fleet_root, make_repo):
        make_repo("A")

        result = runner.invoke(app, ["push", "--root", str(fleet_root)])

        assert result.exit_code == 0
        assert "Summary: 1 skipped" in result.output

    def test_repo_filter(self, runner, fleet_root, make_repo):
        for name in ("a", "b", "c"):
            make_repo(name)

        output = invoke_json(runner, fleet_root, "pull", "-r", "c", "-r", "a")

        assert [r["name"] for r in output["results"]] == ["a", "c"]

    def test_exclude_option(self, runner, fleet_root, make_repo):
        for name in ("a", "b"):
            make_repo(name)

        output = invoke_json(runner, fleet_root, "pull", "--exclude", "b")

        assert [r["name"] for r in output["results"]] == ["a"]

    def test_dry_run_matches_real_classification(self, runner, fleet_root, make_repo):
        make_repo("a")
        make_repo("b", dev=False)

        preview = invoke_json(runner, fleet_root, "branch", "feat/x", "--dry-run")
        real = invoke_json(runner, fleet_root, "branch", "feat/x")

        assert [r["status"] for r in preview["results"]] == ["dryrun", "skip"]
        assert [r["status"] for r in real["results"]] == ["ok", "skip"]

    def test_failures_do_not_change_exit_code(self, runner, fleet_root, make_repo):
        make_repo("a", remote=False)

        output = invoke_json(runner, fleet_root, "pull")

        assert output["results"][0]["status"] == "fail"

    def test_pr_create_scenario(self, runner, fleet_root, make_repo):
        repo = make_repo("C")
        git(repo, "checkout", "-q", "-b", "feat/x")
        for n in (1, 2, 3):
            (repo / f"{n}.txt").write_text(f"{n}\n")
            git(repo, "add", f"{n}.txt")
            git(repo, "commit", "-q", "-m", f"Step {n}")

        url = "https://github.com/acme/C/pull/1"
        with patch.object(
            GitHubOperations, "create_pr", return_value=(True, url)
        ), patch.object(GitHubOperations, "enable_auto_merge", return_value=(True, "")):
            output = invoke_json(runner, fleet_root, "pr-create", "--base", "dev")

        (result,) = output["results"]
        assert result["status"] == "ok"
        assert url in result["details"]
        assert "auto-merge" in result["details"]

    def test_empty_fleet(self, runner, fleet_root):
        output = invoke_json(runner, fleet_root, "pull")

        assert output["results"] == []
        assert output["summary"]["total"] == 0

    def test_empty_fleet_status_table(self, runner, fleet_root):
        result = runner.invoke(app, ["status", "--root", str(fleet_root)])

        assert result.exit_code == 0
        assert "No repositories found" in result.output


class TestStatus:
    def test_status_json(self, runner, fleet_root, make_repo):
        make_repo("api")
        web = make_repo("web", dev=False)
        (web / "wip.txt").write_text("wip\n")

        output = invoke_json(runner, fleet_root, "status")

        repos = {r["name"]: r for r in output["repositories"]}
        assert list(repos) == ["api", "web"]
        assert repos["api"]["current_branch"] == "dev"
        assert repos["api"]["has_dev_branch"] is True
        assert repos["web"]["is_dirty"] is True
        assert repos["web"]["default_branch"] == "main"
        assert output["summary"]["dirty"] == 1


class TestMetadata:
    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_schema(self, runner):
        result = runner.invoke(app, ["--schema"])

        assert result.exit_code == 0
        schema = json.loads(result.output)
        operations = schema["tools"][0]["inputSchema"]["properties"]["operation"]["enum"]
        assert "worktree-add" in operations

    def test_schema_lists_every_cli_option(self, runner):
        result = runner.invoke(app, ["--schema"])

        properties = json.loads(result.output)["tools"][0]["inputSchema"]["properties"]
        assert {
            "name",
            "base",
            "strategy",
            "dry_run",
            "repo",
            "exclude",
            "root",
            "json",
            "no_terminal",
            "verbose",
            "debug",
        } <= set(properties)
