"""Command line entry point: resolve or run a single benchmark artifact."""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer

from benchlaunch.benchmark.exceptions import BenchmarkError
from benchlaunch.benchmark.models import (
    AlternateVM,
    AotWithWorkingDirOverride,
    ArtifactLocation,
    BenchmarkIdentity,
    BrowserEngine,
    DirectNative,
    EntryScriptSelector,
    EnvironmentVariable,
    ExecutionRequest,
)
from benchlaunch.harness import launch_planner
from benchlaunch.harness.executor import Executor
from benchlaunch.utils.logger import setup_logging


class VariantChoice(str, Enum):
    direct = "direct"
    vm = "vm"
    browser = "browser"
    aot = "aot"


app = typer.Typer(help="Launch built benchmark artifacts and collect their measurement output.")


def _build_variant(
    variant: VariantChoice,
    engine_path: Optional[str],
    jit: bool,
    vm_args: List[str],
    engine_args: str,
    target_version: Optional[str],
):
    if variant is VariantChoice.direct:
        return DirectNative()
    if variant is VariantChoice.aot:
        return AotWithWorkingDirOverride()
    if variant is VariantChoice.vm:
        return AlternateVM(
            engine_path=engine_path or "mono",
            jit_enabled=jit,
            extra_arguments=tuple(vm_args),
        )
    if not engine_path or not target_version:
        raise typer.BadParameter("--variant browser needs --engine-path and --target-version")
    return BrowserEngine(
        engine_path=engine_path,
        engine_arguments=engine_args,
        entry_script=EntryScriptSelector(target_version=target_version),
    )


def _parse_env(values: List[str]) -> List[EnvironmentVariable]:
    parsed = []
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Expected NAME=VALUE, got {item!r}", param_hint="--env")
        parsed.append(EnvironmentVariable(name=name, value=value))
    return parsed


def _artifact(executable: Path, bin_dir: Optional[Path], program_name: Optional[str]) -> ArtifactLocation:
    executable = executable.expanduser().resolve()
    return ArtifactLocation(
        executable_path=executable,
        binaries_directory=bin_dir.expanduser().resolve() if bin_dir else executable.parent,
        program_name=program_name or executable.stem,
    )


@app.command("plan")
def cli_plan(
    executable: Path = typer.Argument(..., help="Built artifact executable"),
    variant: VariantChoice = typer.Option(VariantChoice.direct, "--variant", "-v", help="Execution target variant"),
    engine_path: Optional[str] = typer.Option(None, "--engine-path", help="VM or script engine executable"),
    jit: bool = typer.Option(False, "--jit/--no-jit", help="Enable the VM's optimizing code generator"),
    vm_args: List[str] = typer.Option([], "--vm-arg", help="Extra VM option (repeatable, order kept)"),
    engine_args: str = typer.Option("", "--engine-args", help="Arguments passed to the script engine"),
    target_version: Optional[str] = typer.Option(None, "--target-version", help="Target version for entry script selection"),
    bin_dir: Optional[Path] = typer.Option(None, "--bin-dir", help="Binaries directory (defaults to the executable's)"),
    program_name: Optional[str] = typer.Option(None, "--program-name", help="Program name (defaults to the executable stem)"),
    arguments: str = typer.Option("", "--args", "-a", help="Benchmark argument string"),
    env: List[str] = typer.Option([], "--env", "-e", help="NAME=VALUE environment overlay (repeatable)"),
) -> None:
    """Print the launch plan without starting anything."""
    try:
        resolved = launch_planner.plan(
            _build_variant(variant, engine_path, jit, vm_args, engine_args, target_version),
            _artifact(executable, bin_dir, program_name),
            arguments,
            _parse_env(env),
        )
    except BenchmarkError as exc:
        typer.secho(f"ERROR: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)
    typer.echo(resolved.model_dump_json(indent=2))


@app.command("run")
def cli_run(
    executable: Path = typer.Argument(..., help="Built artifact executable"),
    variant: VariantChoice = typer.Option(VariantChoice.direct, "--variant", "-v", help="Execution target variant"),
    engine_path: Optional[str] = typer.Option(None, "--engine-path", help="VM or script engine executable"),
    jit: bool = typer.Option(False, "--jit/--no-jit", help="Enable the VM's optimizing code generator"),
    vm_args: List[str] = typer.Option([], "--vm-arg", help="Extra VM option (repeatable, order kept)"),
    engine_args: str = typer.Option("", "--engine-args", help="Arguments passed to the script engine"),
    target_version: Optional[str] = typer.Option(None, "--target-version", help="Target version for entry script selection"),
    bin_dir: Optional[Path] = typer.Option(None, "--bin-dir", help="Binaries directory (defaults to the executable's)"),
    program_name: Optional[str] = typer.Option(None, "--program-name", help="Program name (defaults to the executable stem)"),
    arguments: str = typer.Option("", "--args", "-a", help="Benchmark argument string"),
    env: List[str] = typer.Option([], "--env", "-e", help="NAME=VALUE environment overlay (repeatable)"),
    benchmark_name: Optional[str] = typer.Option(None, "--name", help="Benchmark name reported to diagnosers"),
    no_ack: bool = typer.Option(False, "--no-ack", help="Artifact does not take acknowledgments on stdin"),
    affinity: Optional[str] = typer.Option(None, "--affinity", help="CPU affinity bitmask, e.g. 0x3"),
    launch_index: int = typer.Option(0, "--launch-index", help="Launch number for repeated runs"),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON"),
    log_level: str = typer.Option("INFO", "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
) -> None:
    """Run the artifact once and print the collected result."""
    setup_logging(level=log_level)
    artifact = _artifact(executable, bin_dir, program_name)
    try:
        affinity_mask = int(affinity, 0) if affinity else None
    except ValueError:
        raise typer.BadParameter(f"Invalid affinity mask {affinity!r}", param_hint="--affinity")

    request = ExecutionRequest(
        benchmark=BenchmarkIdentity(name=benchmark_name or artifact.program_name),
        variant=_build_variant(variant, engine_path, jit, vm_args, engine_args, target_version),
        artifact=artifact,
        arguments=arguments,
        acknowledgments=not no_ack,
        launch_index=launch_index,
        affinity_mask=affinity_mask,
        environment=tuple(_parse_env(env)),
    )
    try:
        result = Executor().execute(request)
    except BenchmarkError as exc:
        typer.secho(f"ERROR: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)

    if json_out:
        typer.echo(json.dumps(result.model_dump(mode="json", exclude={"timeline"}), indent=2))
    else:
        for line in result.lines_with_results:
            typer.echo(line)
        for hint in result.diagnostic_hints:
            typer.secho(f"HINT: {hint}", fg=typer.colors.YELLOW, err=True)
        status = "timed out" if result.timed_out else f"exit code {result.exit_code}"
        typer.echo(f"// pid {result.process_id}: {status}, {len(result.lines_with_results)} result lines")
    if not result.success:
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
