"""Command-line entry point: validate, discover, execute, report."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from ._version import __version__
from .config import load_config
from .core import (
    DEV_BRANCH,
    FleetError,
    FleetManager,
    FleetReport,
    FleetValidationError,
    MergeStrategy,
    Operation,
    OperationResult,
)
from .formatters import OutputFormatter
from .logging_config import setup_logging
from .operations import EXECUTORS
from .schema import get_tool_schema
from .worktrees import WorktreeManager

T = TypeVar("T")

app = typer.Typer(
    name="git-flotilla",
    help="Run branch, sync, pull request and worktree operations across a fleet of repositories.",
    no_args_is_help=True,
    add_completion=False,
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"git-flotilla {__version__}")
        raise typer.Exit()


def schema_callback(value: bool):
    """Print the tool schema and exit."""
    if value:
        print(json.dumps(get_tool_schema(), indent=2))
        raise typer.Exit()


def get_console_and_formatter(json_output: bool) -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    console = Console(force_terminal=False if json_output else None)
    formatter = OutputFormatter(console, use_json=json_output)
    return console, formatter


def validate_arguments(operation: Operation, name: str | None) -> None:
    """Reject invocations that can't run before any repository is touched."""
    if operation.requires_name and not name:
        raise FleetValidationError(f"'{operation.value}' requires a branch name")


def _with_spinner(
    console: Console,
    enabled: bool,
    description: str,
    work: Callable[[Callable[[OperationResult], None] | None], T],
) -> T:
    """Run ``work`` under a spinner that follows per-repository progress."""
    if not enabled:
        return work(None)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(description, total=None)

        def on_result(result: OperationResult) -> None:
            progress.update(task, description=f"{description} {result.name}: {result.status}")

        return work(on_result)


def dispatch(
    operation: Operation,
    name: str | None,
    fleet: FleetManager,
    manager: WorktreeManager,
    *,
    base: str,
    strategy: MergeStrategy,
    dry_run: bool,
    launch_terminal: bool,
    on_result: Callable[[OperationResult], None] | None = None,
) -> FleetReport:
    """Select the executor for ``operation`` and run it over the fleet."""
    match operation:
        case Operation.WORKTREE_ADD:
            return manager.add(
                name, dry_run=dry_run, launch_terminal=launch_terminal, on_result=on_result
            )
        case Operation.WORKTREE_REMOVE:
            return manager.remove(name, dry_run=dry_run, on_result=on_result)
        case _ if operation in EXECUTORS:
            executor = EXECUTORS[operation](name, base=base, strategy=strategy)
            return fleet.run(executor, dry_run=dry_run, on_result=on_result)
    raise FleetValidationError(f"Unsupported operation: {operation.value}")


@app.command()
def main(
    operation: Operation = typer.Argument(
        ...,
        case_sensitive=False,
        help="Operation to run across the fleet",
    ),
    name: str = typer.Argument(
        None,
        help="Branch name (required for branch, checkout, worktree-add, worktree-remove)",
    ),
    base: str = typer.Option(
        DEV_BRANCH,
        "--base",
        "-b",
        help="Base branch for pr-create",
    ),
    strategy: MergeStrategy = typer.Option(
        MergeStrategy.MERGE,
        "--strategy",
        "-m",
        case_sensitive=False,
        help="Merge strategy for pull requests",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Run every check but change nothing",
    ),
    repos: list[str] = typer.Option(
        None,
        "--repo",
        "-r",
        help="Only operate on this repository (repeatable)",
    ),
    exclude: list[str] = typer.Option(
        None,
        "--exclude",
        "-x",
        help="Never treat this directory as a repository (repeatable)",
    ),
    root: Path = typer.Option(
        None,
        "--root",
        help="Fleet root directory (default: current directory)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
    no_terminal: bool = typer.Option(
        False,
        "--no-terminal",
        help="Don't open a terminal in a new worktree root",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log each repository outcome",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Log every git/gh command",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    schema: bool = typer.Option(
        False,
        "--schema",
        callback=schema_callback,
        is_eager=True,
        help="Output MCP-compatible tool schema for AI agents",
    ),
):
    """Run OPERATION on every repository under the fleet root."""
    setup_logging(verbose=verbose, debug=debug)
    console, formatter = get_console_and_formatter(json_output)
    err_console = Console(stderr=True)

    try:
        validate_arguments(operation, name)

        config = load_config().with_overrides(root=root, exclude=exclude, no_terminal=no_terminal)
        if not config.root.is_dir():
            raise FleetValidationError(f"Fleet root is not a directory: {config.root}")

        fleet = FleetManager(config.root, exclude=config.exclude, only=repos or None)
        repositories = fleet.discover_repositories()

        if operation == Operation.STATUS:
            if not repositories and not json_output:
                root_text = escape(str(fleet.root_path))
                console.print(f"[yellow]No repositories found under {root_text}[/]")
                return
            states = _with_spinner(
                console,
                not json_output,
                "Inspecting repositories...",
                lambda _: fleet.get_all_states(),
            )
            formatter.print_status_list(states, fleet.root_path)
            return

        manager = WorktreeManager(fleet, config)
        report = _with_spinner(
            console,
            not json_output,
            f"Running {operation.value}...",
            lambda on_result: dispatch(
                operation,
                name,
                fleet,
                manager,
                base=base,
                strategy=strategy,
                dry_run=dry_run,
                launch_terminal=not no_terminal,
                on_result=on_result,
            ),
        )
    except FleetError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/]")
        raise typer.Exit(1) from e

    formatter.print_report(report)
