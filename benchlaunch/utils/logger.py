"""Logging for benchlaunch: a Rich console on a TTY, plain stderr lines otherwise.

stdout is reserved for command output such as `benchlaunch run --json`.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler


# Global console instance
_console: Optional[Console] = None


def get_console() -> Console:
    """Get global Rich console instance."""
    global _console
    if _console is None:
        # stderr keeps stdout free for machine-readable output
        _console = Console(stderr=True)
    return _console


def is_tty() -> bool:
    """Check if stderr is a TTY (interactive terminal)."""
    return sys.stderr.isatty()


def setup_logging(level: str = "INFO", use_rich: Optional[bool] = None) -> None:
    """Route every logger to stderr at ``level``.

    Rich is used when ``use_rich`` is True, or when it is None and stderr is a TTY.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if use_rich is None:
        use_rich = is_tty()

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    console_handler: Union[RichHandler, logging.Handler]
    if use_rich:
        console_handler = RichHandler(
            console=get_console(),
            show_time=False,
            show_level=False,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_execute_start(logger: logging.Logger, command_line: str, working_directory: Optional[Path]) -> None:
    """Log the exact command about to be started."""
    where = str(working_directory) if working_directory is not None else "<inherited>"
    logger.info("// Execute: %s in %s", command_line, where)


def log_execute_timeout(logger: logging.Logger, pid: int, timeout_seconds: float) -> None:
    logger.warning(
        "// The benchmarking process (pid %d) did not quit within %.1fs, it's going to get force killed now.",
        pid,
        timeout_seconds,
    )


def log_execute_complete(logger: logging.Logger, pid: int, exit_code: Optional[int], result_lines: int) -> None:
    """Log process completion with its exit status."""
    status = "unknown" if exit_code is None else str(exit_code)
    logger.info("// Process %d finished (exit code %s, %d result lines)", pid, status, result_lines)
