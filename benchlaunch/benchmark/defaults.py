"""Centralized default values for benchmark process execution.

These are process-wide constants rather than per-request settings. Tests and
embedding tools replace the global instance with set_defaults().
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass
class ExecutionDefaults:
    """Process-wide execution constants."""

    # Wall-clock ceiling for one benchmark process, from start to exit
    process_exit_timeout_seconds: float = 600.0
    # Time between SIGTERM and SIGKILL when tearing down a process tree
    kill_grace_seconds: float = 2.0
    # How long to wait for the output threads after the process is gone
    output_drain_timeout_seconds: float = 5.0

    # Niceness requested for the benchmark process on POSIX (needs privileges)
    posix_priority_nice: int = -10

    # Handshake protocol
    acknowledgment_token: str = "Acknowledgment"
    stdout_encoding: str = "utf-8"

    @classmethod
    def from_env(cls) -> ExecutionDefaults:
        """Return declared defaults (environment overrides are not supported)."""
        return cls()

    def to_dict(self) -> dict:
        """Convert defaults to dictionary."""
        return asdict(self)


# Global instance - can be overridden for testing or custom configurations
_defaults = ExecutionDefaults.from_env()


def get_defaults() -> ExecutionDefaults:
    """Get the global ExecutionDefaults instance."""
    return _defaults


def set_defaults(defaults: ExecutionDefaults) -> None:
    """Set the global ExecutionDefaults instance (useful for testing)."""
    global _defaults
    _defaults = defaults
