"""git-flotilla: Sail a fleet of repositories that share one branching model."""

# Guard against deleted CWD (e.g. a worktree root removed by another process).
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

from ._version import __version__
from .cli import app
from .config import FleetConfig, load_config
from .core import (
    DETACHED,
    FleetError,
    FleetManager,
    FleetReport,
    FleetSummary,
    FleetValidationError,
    GitHubOperations,
    GitOperations,
    GitRepository,
    MergeStrategy,
    Operation,
    OperationResult,
    Outcome,
    RepositoryState,
    ResultStatus,
    resolve_default_branch,
)
from .formatters import OutputFormatter
from .operations import EXECUTORS, Executor
from .schema import get_tool_schema
from .worktrees import WorktreeManager, worktree_root_for

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Config
    "FleetConfig",
    "load_config",
    # Models
    "DETACHED",
    "FleetReport",
    "FleetSummary",
    "MergeStrategy",
    "Operation",
    "OperationResult",
    "Outcome",
    "RepositoryState",
    "ResultStatus",
    # Errors
    "FleetError",
    "FleetValidationError",
    # Operations
    "EXECUTORS",
    "Executor",
    "FleetManager",
    "GitHubOperations",
    "GitOperations",
    "GitRepository",
    "WorktreeManager",
    # Functions
    "get_tool_schema",
    "resolve_default_branch",
    "worktree_root_for",
    # Formatters
    "OutputFormatter",
]
