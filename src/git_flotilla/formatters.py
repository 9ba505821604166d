"""Output formatters for console and JSON display."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .core import ResultStatus

if TYPE_CHECKING:
    from .core import FleetReport, FleetSummary, RepositoryState

_STATUS_DISPLAY = {
    ResultStatus.OK: "[green]✓ ok[/]",
    ResultStatus.SKIP: "[yellow]- skip[/]",
    ResultStatus.DRYRUN: "[cyan]~ dry-run[/]",
    ResultStatus.FAIL: "[red]✗ fail[/]",
}


class OutputFormatter:
    """Format output for console or JSON."""

    def __init__(self, console: Console, use_json: bool = False):
        self.console = console
        self.use_json = use_json

    # -- status ----------------------------------------------------------------

    def print_status_list(self, states: list[RepositoryState], root_path: Path):
        """Print repository states."""
        if self.use_json:
            self._print_status_json(states, root_path)
        else:
            self._print_status_table(states, root_path)

    def _print_status_table(self, states: list[RepositoryState], root_path: Path):
        """Print rich table output."""
        table = Table(title=f"Fleet Status: {root_path}")

        table.add_column("Repository", style="cyan", no_wrap=True)
        table.add_column("Branch")
        table.add_column("Default")
        table.add_column("Dev", justify="center")
        table.add_column("Sync", justify="center")
        table.add_column("Working Tree", justify="center")

        for state in states:
            if state.is_error:
                table.add_row(
                    state.name,
                    "[dim]?[/]",
                    "",
                    "",
                    f"[red]✗ {escape(state.error_message[:40])}[/]",
                    "",
                )
                continue

            table.add_row(
                state.name,
                self._get_branch_display(state),
                state.default_branch,
                "[green]✓[/]" if state.has_dev_branch else "[dim]-[/]",
                self._get_sync_icon(state),
                "[yellow]dirty[/]" if state.is_dirty else "[green]clean[/]",
            )

        self.console.print(table)
        errors = sum(1 for s in states if s.is_error)
        dirty = sum(1 for s in states if s.is_dirty)
        parts = [f"[bold]Total:[/] {len(states)}"]
        if dirty:
            parts.append(f"[yellow]✎ Dirty:[/] {dirty}")
        if errors:
            parts.append(f"[red]✗ Errors:[/] {errors}")
        self.console.print(" | ".join(parts))

    def _get_branch_display(self, state: RepositoryState) -> str:
        """Get branch name with color based on default branch."""
        if state.is_detached:
            return "[dim]detached[/]"
        if state.current_branch == state.default_branch:
            return f"[blue]{escape(state.current_branch)}[/]"
        return f"[green]{escape(state.current_branch)}[/]"

    def _get_sync_icon(self, state: RepositoryState) -> str:
        """Get sync status icon."""
        if not state.has_upstream:
            return "[dim]no upstream[/]"
        if state.ahead_count and state.behind_count:
            return f"[red]⬆{state.ahead_count} ⬇{state.behind_count}[/]"
        if state.ahead_count:
            return f"[yellow]⬆ {state.ahead_count}[/]"
        if state.behind_count:
            return f"[blue]⬇ {state.behind_count}[/]"
        return "[green]✓[/]"

    def _print_status_json(self, states: list[RepositoryState], root_path: Path):
        """Print JSON output."""
        output = {
            "root": str(root_path),
            "repositories": [s.to_dict() for s in states],
            "summary": {
                "total": len(states),
                "dirty": sum(1 for s in states if s.is_dirty),
                "detached": sum(1 for s in states if s.is_detached and not s.is_error),
                "errors": sum(1 for s in states if s.is_error),
            },
        }
        self.console.print_json(json.dumps(output, default=str))

    # -- operation reports -------------------------------------------------------

    def print_report(self, report: FleetReport):
        """Print an operation report."""
        if self.use_json:
            self.console.print_json(json.dumps(report.to_dict(), default=str))
        else:
            self._print_report_table(report)

    def _print_report_table(self, report: FleetReport):
        """Print operation results as table."""
        if not report.results:
            self.console.print(f"[dim]No repositories to {report.operation}[/]")
        else:
            table = Table(title=f"{report.operation.title()} Results: {report.root}")
            table.add_column("Repository", style="cyan", no_wrap=True)
            table.add_column("Status", justify="center")
            table.add_column("Details")

            for result in report.results:
                details = escape(result.details)
                if result.status == ResultStatus.FAIL:
                    details = f"[red]{details}[/]"
                table.add_row(result.name, _STATUS_DISPLAY[result.status], details)

            self.console.print(table)

        for note in report.notes:
            self.console.print(f"[dim]{escape(note)}[/]")
        self._print_summary(report.summary)

    def _print_summary(self, summary: FleetSummary):
        self.console.print(f"\n[bold]Summary:[/] {summary.describe()}")
