"""Logging configuration for git-flotilla."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Route log records to stderr through rich.

    Args:
        verbose: If True, show INFO level messages
        debug: If True, show DEBUG level messages (every git/gh call) with source paths
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=debug,
        show_time=debug,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    package_logger = logging.getLogger("git_flotilla")
    for existing in package_logger.handlers[:]:
        package_logger.removeHandler(existing)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
