"""Host signals and the diagnoser interface.

A diagnoser attaches instrumentation to a benchmark process. The executor calls
it twice around the process lifetime (BEFORE_PROCESS_START / AFTER_PROCESS_EXIT)
and the output synchronizer forwards every in-run signal the child announces on
stdout. Returning from handle() means the diagnoser has consumed the signal; at
that point the child is acknowledged and allowed to continue.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable, List, Optional

if TYPE_CHECKING:
    from benchlaunch.benchmark.models import BenchmarkIdentity
    from benchlaunch.harness.process_guard import ProcessHandle


class HostSignal(str, Enum):
    """Signals exchanged between the host and the benchmark process."""

    # Raised by the host itself
    BEFORE_PROCESS_START = "BeforeProcessStart"
    AFTER_PROCESS_EXIT = "AfterProcessExit"

    # Announced by the child on stdout as "// <value>"
    BEFORE_ANYTHING_ELSE = "BeforeAnythingElse"
    AFTER_SETUP = "AfterSetup"
    BEFORE_ACTUAL_RUN = "BeforeActualRun"
    AFTER_ACTUAL_RUN = "AfterActualRun"
    BEFORE_CLEANUP = "BeforeCleanup"
    AFTER_ALL = "AfterAll"
    BEFORE_EXTRA_ITERATION = "BeforeExtraIteration"
    AFTER_EXTRA_ITERATION = "AfterExtraIteration"

    @property
    def is_host_side(self) -> bool:
        return self in (HostSignal.BEFORE_PROCESS_START, HostSignal.AFTER_PROCESS_EXIT)


SIGNAL_PREFIX = "// "

# Wire text -> signal, for the signals a child may announce
_IN_RUN_SIGNALS = {
    f"{SIGNAL_PREFIX}{signal.value}": signal
    for signal in HostSignal
    if not signal.is_host_side
}


def parse_signal(line: str) -> Optional[HostSignal]:
    """Return the in-run signal a stdout line announces, or None."""
    return _IN_RUN_SIGNALS.get(line.strip())


def signal_line(signal: HostSignal) -> str:
    """Render the stdout line a child prints to announce ``signal``."""
    return f"{SIGNAL_PREFIX}{signal.value}"


@dataclass(frozen=True)
class DiagnoserActionParameters:
    """Context handed to a diagnoser with every signal."""

    process: Optional["ProcessHandle"]
    benchmark: "BenchmarkIdentity"


class Diagnoser:
    """Base diagnoser; subclasses override handle()."""

    def handle(self, signal: HostSignal, parameters: DiagnoserActionParameters) -> None:
        pass


class CompositeDiagnoser(Diagnoser):
    """Fans every signal out to several diagnosers, in registration order."""

    def __init__(self, diagnosers: Iterable[Diagnoser]):
        self.diagnosers: List[Diagnoser] = list(diagnosers)

    def handle(self, signal: HostSignal, parameters: DiagnoserActionParameters) -> None:
        for diagnoser in self.diagnosers:
            diagnoser.handle(signal, parameters)
