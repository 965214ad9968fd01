"""Drain, classify and acknowledge benchmark process output.

Two background threads cooperate through a queue:

* the reader only pulls lines off the child's stdout, so the pipe never fills up
  no matter how slow the diagnoser is;
* the dispatcher classifies each line in arrival order, forwards control
  signals to the diagnoser and, when the handshake is enabled, writes the
  acknowledgment token back to the child's stdin once the diagnoser returns.

The line sequences are written only by the dispatcher and should be read after
join() has returned True, or after close() when draining did not finish.
"""

from __future__ import annotations

import queue
import threading
import time
from typing import IO, List, Optional, Tuple

from benchlaunch.benchmark.models import LineKind, OutputLine
from benchlaunch.diagnostics.hooks import (
    Diagnoser,
    DiagnoserActionParameters,
    HostSignal,
    parse_signal,
)
from benchlaunch.utils.logger import get_logger

logger = get_logger(__name__)

COMMENT_PREFIX = "//"

ARCHITECTURE_MISMATCH_MARKERS: Tuple[str, ...] = (
    "BadImageFormatException",
    "Exec format error",
    "wrong ELF class",
)
ARCHITECTURE_MISMATCH_HINT = (
    "The artifact was probably built for a different platform word size "
    "(e.g. 32-bit vs 64-bit); rebuild it for the host architecture."
)

_END_OF_STREAM = object()


def classify_line(text: str) -> Tuple[Optional[LineKind], Optional[HostSignal]]:
    """Classify one stdout line. Blank lines yield ``(None, None)``."""
    signal = parse_signal(text)
    if signal is not None:
        return LineKind.CONTROL, signal
    if not text.strip():
        return None, None
    if text.lstrip().startswith(COMMENT_PREFIX):
        return LineKind.AUXILIARY, None
    return LineKind.RESULT, None


def has_architecture_mismatch(text: str) -> bool:
    return any(marker in text for marker in ARCHITECTURE_MISMATCH_MARKERS)


class OutputSynchronizer:
    """Background consumer of one benchmark process's stdout."""

    def __init__(
        self,
        stdout: IO[str],
        stdin: Optional[IO[str]],
        parameters: DiagnoserActionParameters,
        *,
        diagnoser: Optional[Diagnoser] = None,
        acknowledgments: bool = True,
        acknowledgment_token: str = "Acknowledgment",
    ) -> None:
        self._stdout = stdout
        self._stdin = stdin
        self.parameters = parameters
        self.diagnoser = diagnoser
        # Without a writable stdin there is nobody to acknowledge
        self.acknowledgments = acknowledgments and stdin is not None
        self.acknowledgment_token = acknowledgment_token

        self._queue: "queue.Queue[object]" = queue.Queue()
        self._reader: Optional[threading.Thread] = None
        self._dispatcher: Optional[threading.Thread] = None
        self._input_closed = False
        self._lock = threading.Lock()
        self._closed = False

        self._timeline: List[OutputLine] = []
        self._results: List[str] = []
        self._extra: List[str] = []
        self._hints: List[str] = []
        self._signals: List[HostSignal] = []

    # ------------------------------------------------------------------ Thread control
    def start(self) -> None:
        if self._reader is not None:
            raise RuntimeError("OutputSynchronizer already started")
        self._reader = threading.Thread(target=self._read_lines, name="benchlaunch-stdout-reader", daemon=True)
        self._dispatcher = threading.Thread(target=self._dispatch, name="benchlaunch-dispatcher", daemon=True)
        self._reader.start()
        self._dispatcher.start()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait until stdout hit EOF and every line was dispatched.

        Both threads share one ``timeout``. Returns False if either is still
        running when it expires.
        """
        if self._reader is None or self._dispatcher is None:
            return True
        deadline = None if timeout is None else time.monotonic() + timeout
        self._reader.join(timeout)
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        self._dispatcher.join(remaining)
        return not (self._reader.is_alive() or self._dispatcher.is_alive())

    def close(self) -> None:
        """Stop recording. Lines dispatched afterwards are dropped."""
        with self._lock:
            self._closed = True

    # ------------------------------------------------------------------ Results
    @property
    def lines_with_results(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._results)

    @property
    def lines_with_extra_output(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._extra)

    @property
    def timeline(self) -> Tuple[OutputLine, ...]:
        with self._lock:
            return tuple(self._timeline)

    @property
    def hints(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._hints)

    @property
    def signals(self) -> Tuple[HostSignal, ...]:
        with self._lock:
            return tuple(self._signals)

    # ------------------------------------------------------------------ Workers
    def _read_lines(self) -> None:
        try:
            for line in iter(self._stdout.readline, ""):
                self._queue.put(line.rstrip("\r\n"))
        except (OSError, ValueError) as exc:
            # stdout closed under us during teardown
            logger.debug("Stopped reading benchmark output: %s", exc)
        finally:
            self._queue.put(_END_OF_STREAM)

    def _dispatch(self) -> None:
        while True:
            item = self._queue.get()
            if item is _END_OF_STREAM:
                return
            self.process_line(item)  # type: ignore[arg-type]

    def process_line(self, text: str) -> Optional[OutputLine]:
        """Classify and record one line; returns the recorded entry, if any."""
        kind, signal = classify_line(text)
        if kind is None:
            return None
        new_hint = False
        with self._lock:
            if self._closed:
                return None
            entry = OutputLine(index=len(self._timeline), text=text, kind=kind, signal=signal)
            self._timeline.append(entry)
            if kind is LineKind.CONTROL:
                self._signals.append(signal)
            elif kind is LineKind.RESULT:
                self._results.append(text)
            else:
                self._extra.append(text)
            if kind is not LineKind.CONTROL and not self._hints and has_architecture_mismatch(text):
                self._hints.append(ARCHITECTURE_MISMATCH_HINT)
                new_hint = True

        if kind is LineKind.CONTROL:
            self._handle_signal(signal)
            return entry

        logger.debug("%s", text)
        if new_hint:
            logger.error(ARCHITECTURE_MISMATCH_HINT)
        return entry

    def _handle_signal(self, signal: HostSignal) -> None:
        if self.diagnoser is not None:
            try:
                self.diagnoser.handle(signal, self.parameters)
            except Exception:
                # the child is still blocked on us; keep the handshake going
                logger.exception("Diagnoser failed while handling %s", signal.value)
        if self.acknowledgments:
            self._acknowledge()

    def _acknowledge(self) -> None:
        if self._input_closed or self._stdin is None:
            return
        try:
            self._stdin.write(self.acknowledgment_token + "\n")
            self._stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            self._input_closed = True
            logger.debug("Benchmark process stopped accepting acknowledgments: %s", exc)
