"""Custom exception hierarchy for benchmark process execution.

Only configuration problems and spawn failures are raised. Everything that can
go wrong with the benchmarked process itself (non-zero exit, timeout,
architecture mismatch) is reported as data on the ExecutionResult.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional


class BenchmarkError(Exception):
    """Base exception for all benchmark-related errors."""
    pass


class ConfigurationError(BenchmarkError):
    """Raised when the execution configuration is invalid.

    Never retried: the same configuration fails the same way.

    Attributes:
        config_key: Configuration key that is invalid
        config_value: Invalid value
        reason: Reason for invalidity
    """

    def __init__(
        self,
        message: str,
        config_key: str,
        config_value: Any,
        reason: str,
    ):
        super().__init__(message)
        self.config_key = config_key
        self.config_value = config_value
        self.reason = reason


class UnsupportedVariantError(ConfigurationError):
    """Raised when an execution target variant has no launch planner."""

    def __init__(self, variant: Any):
        super().__init__(
            f"Unsupported execution target variant: {variant!r}",
            config_key="variant",
            config_value=variant,
            reason="no launch planner registered for this variant type",
        )


class MissingArtifactError(BenchmarkError):
    """Raised when the built artifact is not present on disk.

    Raised by check_artifact(). Executor.execute() catches it and reports a
    failed result instead.
    """

    def __init__(self, path: Path):
        super().__init__(f"Artifact executable not found: {path}")
        self.path = path


class SpawnError(BenchmarkError):
    """Raised when the OS refuses to create the benchmark process.

    Attributes:
        file_name: Executable that could not be started
        original_error: The OSError reported by the platform, if any
        hint: Actionable advice when the cause is recognised, otherwise None
    """

    def __init__(
        self,
        message: str,
        file_name: str,
        original_error: Optional[BaseException] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(f"{message}. {hint}" if hint else message)
        self.file_name = file_name
        self.original_error = original_error
        self.hint = hint
