"""MCP-compatible tool schema for AI agents."""

from __future__ import annotations

from ._version import __version__
from .core import MergeStrategy, Operation, ResultStatus

_RESULT_SCHEMA = {
    "type": "object",
    "properties": {
        "operation": {"type": "string"},
        "root": {"type": "string"},
        "results": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "path": {"type": "string"},
                    "name": {"type": "string"},
                    "operation": {"type": "string"},
                    "status": {"type": "string", "enum": [s.value for s in ResultStatus]},
                    "details": {"type": "string"},
                },
            },
        },
        "summary": {
            "type": "object",
            "properties": {
                "total": {"type": "integer"},
                "ok": {"type": "integer"},
                "skipped": {"type": "integer"},
                "dry_run": {"type": "integer"},
                "failed": {"type": "integer"},
            },
        },
        "notes": {"type": "array", "items": {"type": "string"}},
    },
}


def get_tool_schema() -> dict:
    """Generate MCP-compatible tool schema for AI agents."""
    return {
        "name": "git-flotilla",
        "version": __version__,
        "description": "Run branch, sync, pull request and worktree operations across every "
        "repository under a root directory. Repositories are processed one at a time in name "
        "order; each gets exactly one result row (ok, skip, dryrun or fail).",
        "usage": "git-flotilla <operation> [name] [options]",
        "tools": [
            {
                "name": "git-flotilla",
                "description": "Execute one fleet operation. 'name' is required for branch, "
                "checkout, worktree-add and worktree-remove. Use dry_run to preview which "
                "repositories would change.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "operation": {
                            "type": "string",
                            "enum": [op.value for op in Operation],
                        },
                        "name": {
                            "type": "string",
                            "description": "Target branch name",
                        },
                        "base": {
                            "type": "string",
                            "description": "Base branch for pr-create",
                            "default": "dev",
                        },
                        "strategy": {
                            "type": "string",
                            "enum": [s.value for s in MergeStrategy],
                            "default": MergeStrategy.MERGE.value,
                        },
                        "dry_run": {
                            "type": "boolean",
                            "description": "Run every check but change nothing",
                            "default": False,
                        },
                        "repo": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Only operate on these repository names",
                        },
                        "exclude": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Directory names never treated as repositories",
                        },
                        "root": {
                            "type": "string",
                            "description": "Fleet root directory (default: current directory)",
                        },
                        "json": {
                            "type": "boolean",
                            "description": "Output as JSON for machine parsing",
                            "default": False,
                        },
                        "no_terminal": {
                            "type": "boolean",
                            "description": "Don't open a terminal in a new worktree root",
                            "default": False,
                        },
                        "verbose": {
                            "type": "boolean",
                            "description": "Log each repository outcome to stderr",
                            "default": False,
                        },
                        "debug": {
                            "type": "boolean",
                            "description": "Log every git/gh command to stderr",
                            "default": False,
                        },
                    },
                    "required": ["operation"],
                },
                "outputSchema": _RESULT_SCHEMA,
            }
        ],
    }
