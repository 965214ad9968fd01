"""Scoped ownership of one benchmark process.

The guard starts the process described by a LaunchPlan, applies best-effort
scheduling hints, and tears down the whole process tree when it is released,
whichever way control leaves the ``with`` block.
"""

from __future__ import annotations

import errno
import os
import signal
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import IO, List, Optional

import psutil

from benchlaunch.benchmark.defaults import ExecutionDefaults, get_defaults
from benchlaunch.benchmark.exceptions import SpawnError
from benchlaunch.benchmark.models import LaunchPlan
from benchlaunch.harness.output_sync import ARCHITECTURE_MISMATCH_HINT
from benchlaunch.utils.logger import get_logger

logger = get_logger(__name__)


class TuningOutcome(str, Enum):
    """Result of a best-effort OS tuning call."""
    APPLIED = "applied"
    UNSUPPORTED = "unsupported-on-platform"


@dataclass
class ProcessHandle:
    """A started benchmark process and its redirected streams."""
    process: subprocess.Popen

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdout(self) -> IO[str]:
        return self.process.stdout

    @property
    def stdin(self) -> Optional[IO[str]]:
        return self.process.stdin

    @property
    def has_exited(self) -> bool:
        return self.process.poll() is not None

    @property
    def exit_code(self) -> Optional[int]:
        return self.process.poll()


def cpus_from_mask(mask: int) -> List[int]:
    """Expand an affinity bitmask (bit N = CPU N) into a CPU list."""
    if mask <= 0:
        return []
    return [cpu for cpu in range(mask.bit_length()) if (mask >> cpu) & 1]


class ProcessLifecycleGuard:
    """Owns exactly one child process from start() until release()."""

    def __init__(
        self,
        plan: LaunchPlan,
        redirect_input: bool,
        defaults: Optional[ExecutionDefaults] = None,
    ) -> None:
        self.plan = plan
        self.redirect_input = redirect_input
        self.defaults = defaults or get_defaults()
        self._handle: Optional[ProcessHandle] = None
        self._released = False

    # ------------------------------------------------------------------ Lifecycle
    def __enter__(self) -> ProcessLifecycleGuard:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def handle(self) -> Optional[ProcessHandle]:
        return self._handle

    def start(self) -> ProcessHandle:
        """Spawn the planned process.

        stdout is always captured. stderr is left on the inherited stream so a
        chatty child can never block on an unread error pipe. stdin is a pipe
        only when the handshake is enabled; otherwise the child reads EOF.
        """
        if self._handle is not None:
            raise RuntimeError("ProcessLifecycleGuard already started a process")
        if self._released:
            raise RuntimeError("ProcessLifecycleGuard has been released")

        kwargs = {
            "cwd": str(self.plan.working_directory) if self.plan.working_directory is not None else None,
            "env": self.plan.build_environment(),
            "stdin": subprocess.PIPE if self.redirect_input else subprocess.DEVNULL,
            "stdout": subprocess.PIPE,
            "stderr": None,
            "text": True,
            "encoding": self.defaults.stdout_encoding,
            "errors": "replace",
            "bufsize": 1,
        }
        if os.name == "nt":
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP | subprocess.CREATE_NO_WINDOW
        else:
            # New session so the whole tree can be signalled through one group
            kwargs["start_new_session"] = True

        try:
            process = subprocess.Popen(self.plan.popen_args(), **kwargs)
        except FileNotFoundError as exc:
            raise SpawnError(
                f"Executable not found: {self.plan.file_name}", self.plan.file_name, exc
            ) from exc
        except OSError as exc:
            # ENOEXEC: the kernel does not recognise the binary format
            hint = ARCHITECTURE_MISMATCH_HINT if exc.errno == errno.ENOEXEC else None
            if hint:
                logger.error(hint)
            raise SpawnError(
                f"Failed to start {self.plan.file_name}: {exc}", self.plan.file_name, exc, hint=hint
            ) from exc

        self._handle = ProcessHandle(process=process)
        return self._handle

    def wait_until_exit_or_timeout(self, timeout_seconds: float) -> bool:
        """Return True if the process exited within ``timeout_seconds``."""
        if self._handle is None:
            raise RuntimeError("Process not started")
        try:
            self._handle.process.wait(timeout=timeout_seconds)
        except subprocess.TimeoutExpired:
            return False
        return True

    def release(self) -> None:
        """Kill whatever is left of the tree and close the pipes. Runs once."""
        if self._released:
            return
        self._released = True
        if self._handle is None:
            return

        process = self._handle.process
        if process.poll() is None:
            self.force_kill_tree()
        else:
            self.reclaim_group()

        for stream in (process.stdin, process.stdout):
            if stream is None:
                continue
            try:
                stream.close()
            except (OSError, ValueError):
                pass
        try:
            process.wait(timeout=self.defaults.kill_grace_seconds)
        except subprocess.TimeoutExpired:
            logger.error("Process %d could not be reaped after release", process.pid)

    # ------------------------------------------------------------------ Tree termination
    def force_kill_tree(self) -> None:
        """Terminate the process and every descendant, then reap them."""
        if self._handle is None:
            return
        process = self._handle.process
        grace = self.defaults.kill_grace_seconds
        descendants = self._collect_descendants(process.pid)

        self._signal_group(signal.SIGTERM)
        if os.name == "nt":
            self._terminate_process(process)
        for child in descendants:
            try:
                child.terminate()
            except psutil.Error:
                pass

        try:
            process.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            pass
        _, alive = psutil.wait_procs(descendants, timeout=grace)

        # Anything that survived SIGTERM gets killed outright
        self._signal_group(getattr(signal, "SIGKILL", signal.SIGTERM))
        survivors = _merge_processes(alive, self._group_members())
        for child in survivors:
            try:
                child.kill()
            except psutil.Error:
                pass
        if process.poll() is None:
            try:
                process.kill()
            except OSError:
                pass
        try:
            process.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            logger.error("Process %d survived SIGKILL", process.pid)
        _, alive = psutil.wait_procs(survivors, timeout=grace)
        for child in alive:
            logger.error("Descendant process %d survived SIGKILL", child.pid)

    def reclaim_group(self) -> int:
        """Kill processes left in the group after the leader exited.

        A leftover that inherited stdout keeps the pipe open, so output would
        never reach EOF while it lives. Returns how many processes were killed.
        """
        if self._handle is None:
            return 0
        leftovers = self._group_members()
        if not leftovers:
            return 0
        logger.warning(
            "Killing %d process(es) left behind by benchmark process %d",
            len(leftovers),
            self._handle.pid,
        )
        for child in leftovers:
            try:
                child.kill()
            except psutil.Error:
                pass
        _, alive = psutil.wait_procs(leftovers, timeout=self.defaults.kill_grace_seconds)
        for child in alive:
            logger.error("Leftover process %d survived SIGKILL", child.pid)
        return len(leftovers)

    def _collect_descendants(self, pid: int) -> List[psutil.Process]:
        try:
            return psutil.Process(pid).children(recursive=True)
        except psutil.Error:
            return []

    def _group_members(self) -> List[psutil.Process]:
        """Live processes other than the leader in the group created at start."""
        if os.name == "nt" or self._handle is None:
            return []
        pgid = self._handle.pid
        members = []
        for proc in psutil.process_iter():
            if proc.pid == pgid:
                continue
            try:
                if os.getpgid(proc.pid) == pgid and proc.status() != psutil.STATUS_ZOMBIE:
                    members.append(proc)
            except (OSError, psutil.Error):
                continue
        return members

    def _signal_group(self, sig: int) -> None:
        """Signal the process group created at start (POSIX only).

        Only done while the leader is unreaped: its pid, and with it the group
        id, can be recycled once it has been waited for.
        """
        if os.name == "nt" or self._handle is None:
            return
        if self._handle.process.returncode is not None:
            return
        try:
            os.killpg(self._handle.pid, sig)
        except (ProcessLookupError, PermissionError, OSError):
            pass

    @staticmethod
    def _terminate_process(process: subprocess.Popen) -> None:
        try:
            process.terminate()
        except OSError:
            pass

    # ------------------------------------------------------------------ Best-effort tuning
    def ensure_high_priority(self) -> TuningOutcome:
        """Raise the scheduling priority of the process, if the OS lets us."""
        if self._handle is None:
            raise RuntimeError("Process not started")
        try:
            ps_process = psutil.Process(self._handle.pid)
            if os.name == "nt":
                ps_process.nice(psutil.HIGH_PRIORITY_CLASS)
            else:
                ps_process.nice(self.defaults.posix_priority_nice)
        except (psutil.Error, OSError, AttributeError, ValueError) as exc:
            logger.warning(
                "Failed to set up high priority for process %d (%s). "
                "Run with elevated permissions to benchmark at high priority.",
                self._handle.pid,
                exc,
            )
            return TuningOutcome.UNSUPPORTED
        logger.debug("Raised priority of process %d", self._handle.pid)
        return TuningOutcome.APPLIED

    def try_set_affinity(self, mask: int) -> TuningOutcome:
        """Pin the process to the CPUs in ``mask``, if the OS supports it."""
        if self._handle is None:
            raise RuntimeError("Process not started")
        cpus = cpus_from_mask(mask)
        if not cpus:
            logger.warning("Ignoring empty CPU affinity mask %#x", mask)
            return TuningOutcome.UNSUPPORTED
        try:
            psutil.Process(self._handle.pid).cpu_affinity(cpus)
        except (psutil.Error, OSError, AttributeError, ValueError) as exc:
            # cpu_affinity does not exist on macOS
            logger.warning("Failed to set CPU affinity %#x for process %d (%s)", mask, self._handle.pid, exc)
            return TuningOutcome.UNSUPPORTED
        logger.debug("Pinned process %d to CPUs %s", self._handle.pid, cpus)
        return TuningOutcome.APPLIED


def _merge_processes(*groups: List[psutil.Process]) -> List[psutil.Process]:
    seen = {}
    for group in groups:
        for proc in group:
            seen.setdefault(proc.pid, proc)
    return list(seen.values())
