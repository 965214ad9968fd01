"""Shared fixtures: throwaway script artifacts, diagnosers and short timeouts."""

from __future__ import annotations

import logging
import stat
import sys
import textwrap
from pathlib import Path
from typing import Callable

import pytest

from benchlaunch.benchmark.defaults import ExecutionDefaults, get_defaults, set_defaults
from benchlaunch.benchmark.models import ArtifactLocation
from process_helpers import RecordingDiagnoser


@pytest.fixture
def recording_diagnoser() -> RecordingDiagnoser:
    return RecordingDiagnoser()


@pytest.fixture
def make_artifact(tmp_path: Path) -> Callable[..., ArtifactLocation]:
    """Write a Python script with a shebang and hand it out as a built artifact."""

    def _make(body: str, name: str = "bench_app", executable: bool = True) -> ArtifactLocation:
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir(exist_ok=True)
        script = bin_dir / name
        script.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body), encoding="utf-8")
        mode = script.stat().st_mode
        if executable:
            script.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        else:
            script.chmod(mode & ~(stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))
        return ArtifactLocation(executable_path=script, binaries_directory=bin_dir, program_name=name)

    return _make


@pytest.fixture
def short_timeouts():
    """Swap in a short process ceiling for the duration of a test."""
    original = get_defaults()
    set_defaults(ExecutionDefaults(
        process_exit_timeout_seconds=1.5,
        kill_grace_seconds=0.5,
        output_drain_timeout_seconds=5.0,
    ))
    try:
        yield get_defaults()
    finally:
        set_defaults(original)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    try:
        yield
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)


@pytest.fixture
def corrupt_elf_artifact(tmp_path: Path) -> ArtifactLocation:
    """An executable whose ELF header the kernel refuses to load."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)
    exe = bin_dir / "app"
    exe.write_bytes(b"\x7fELF" + b"\x00" * 60)
    exe.chmod(0o755)
    return ArtifactLocation(executable_path=exe, binaries_directory=bin_dir, program_name="app")
