"""Resolve an execution target variant into a concrete launch plan.

Planning is pure: the plan depends only on the variant, the artifact location,
the argument tail and the environment overlay. Each variant type has exactly one
planning function in ``_PLANNERS``; supporting a new target means adding a model
to the variant union and a row to that table.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, Tuple

from benchlaunch.benchmark.exceptions import ConfigurationError, UnsupportedVariantError
from benchlaunch.benchmark.models import (
    AlternateVM,
    AotWithWorkingDirOverride,
    ArtifactLocation,
    BrowserEngine,
    DirectNative,
    EntryScriptSelector,
    EnvironmentVariable,
    LaunchPlan,
)

JIT_ENABLED_FLAG = "--llvm"
JIT_DISABLED_FLAG = "--nollvm"


def select_entry_script(selector: EntryScriptSelector) -> str:
    """Pick the script of the highest threshold not above the target version."""
    chosen = None
    for row in sorted(selector.thresholds, key=lambda r: r.min_version):
        if selector.target_version >= row.min_version:
            chosen = row.script_name
    if chosen is None:
        raise ConfigurationError(
            f"No entry script configured for target version {selector.target_version}",
            config_key="entry_script.target_version",
            config_value=selector.target_version,
            reason="target version is below every entry script threshold",
        )
    return chosen


def alternate_vm_arguments(variant: AlternateVM, executable_path: str, arguments: str) -> str:
    # <engine> [options] program [program-options]
    parts = [JIT_ENABLED_FLAG if variant.jit_enabled else JIT_DISABLED_FLAG]
    parts.extend(variant.extra_arguments)
    return " ".join(parts) + f' "{executable_path}" ' + arguments


def _plan_direct_native(variant: DirectNative, artifact: ArtifactLocation, arguments: str) -> dict:
    return {
        "file_name": str(artifact.executable_path),
        "arguments": arguments,
    }


def _plan_alternate_vm(variant: AlternateVM, artifact: ArtifactLocation, arguments: str) -> dict:
    return {
        "file_name": variant.engine_path,
        "arguments": alternate_vm_arguments(variant, str(artifact.executable_path), arguments),
    }


def _plan_browser_engine(variant: BrowserEngine, artifact: ArtifactLocation, arguments: str) -> dict:
    entry_script = select_entry_script(variant.entry_script)
    return {
        "file_name": variant.engine_path,
        "arguments": (
            f"{variant.engine_arguments} {entry_script} -- --run {artifact.program_name} {arguments} "
        ),
        "working_directory": artifact.binaries_directory,
        # the engine host does not forward stdin to the program
        "accepts_acknowledgments": False,
    }


def _plan_aot_working_dir(variant: AotWithWorkingDirOverride, artifact: ArtifactLocation, arguments: str) -> dict:
    return {
        "file_name": str(artifact.executable_path),
        "arguments": arguments,
        "working_directory": artifact.binaries_directory,
    }


_PLANNERS: Dict[type, Callable[..., dict]] = {
    DirectNative: _plan_direct_native,
    AlternateVM: _plan_alternate_vm,
    BrowserEngine: _plan_browser_engine,
    AotWithWorkingDirOverride: _plan_aot_working_dir,
}


def supported_variants() -> Tuple[type, ...]:
    return tuple(_PLANNERS)


def plan(
    variant,
    artifact: ArtifactLocation,
    arguments: str = "",
    environment: Iterable[EnvironmentVariable] = (),
) -> LaunchPlan:
    """Build the launch plan for ``artifact`` under ``variant``.

    Args:
        variant: One of the ExecutionTargetVariant models
        artifact: Location of the built artifact
        arguments: Pre-rendered benchmark argument tail
        environment: Ordered environment overlay for the child

    Raises:
        UnsupportedVariantError: variant is not part of the closed set
        ConfigurationError: the variant's own settings cannot be resolved
    """
    planner = _PLANNERS.get(type(variant))
    if planner is None:
        raise UnsupportedVariantError(variant)
    fields = planner(variant, artifact, arguments)
    return LaunchPlan(environment=tuple(environment), **fields)
