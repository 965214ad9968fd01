"""Smoke tests for the benchlaunch command line."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from benchlaunch.cli import app
from process_helpers import posix_only

runner = CliRunner()


def test_plan_alternate_vm(tmp_path: Path):
    exe = tmp_path / "Demo.exe"
    result = runner.invoke(app, [
        "plan", str(exe),
        "--variant", "vm", "--jit", "--vm-arg=--gc=sgen", "--vm-arg=--debug",
        "--args=--benchmarkId 0",
    ])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["file_name"] == "mono"
    assert payload["arguments"] == f'--llvm --gc=sgen --debug "{exe.resolve()}" --benchmarkId 0'


def test_plan_browser_requires_version(tmp_path: Path):
    result = runner.invoke(app, ["plan", str(tmp_path / "x"), "--variant", "browser", "--engine-path", "v8"])
    assert result.exit_code != 0


def test_plan_rejects_malformed_env(tmp_path: Path):
    result = runner.invoke(app, ["plan", str(tmp_path / "x"), "--env", "NOVALUE"])
    assert result.exit_code != 0


@posix_only
def test_run_json(make_artifact, restore_logging):
    artifact = make_artifact("print('WorkloadActual 1: 1 op, 5 ns')\nprint('// note')\n")
    result = runner.invoke(app, ["run", str(artifact.executable_path), "--json", "--no-ack", "--launch-index", "2", "--log-level", "ERROR"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["success"] is True
    assert payload["exit_code"] == 0
    assert payload["launch_index"] == 2
    assert payload["lines_with_results"] == ["WorkloadActual 1: 1 op, 5 ns"]
    assert payload["lines_with_extra_output"] == ["// note"]


def test_run_missing_artifact_fails(tmp_path: Path, restore_logging):
    result = runner.invoke(app, ["run", str(tmp_path / "missing"), "--json", "--log-level", "CRITICAL"])
    assert result.exit_code == 1
