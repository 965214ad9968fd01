"""Tests for resolving execution target variants into launch plans."""

from __future__ import annotations

import itertools
import sys
from pathlib import Path

import pytest

from benchlaunch.benchmark.exceptions import ConfigurationError, UnsupportedVariantError
from benchlaunch.benchmark.models import (
    AlternateVM,
    AotWithWorkingDirOverride,
    ArtifactLocation,
    BrowserEngine,
    DirectNative,
    EntryScriptSelector,
    EntryScriptThreshold,
    EnvironmentVariable,
)
from benchlaunch.harness import launch_planner

ARGS = "--benchmarkName Demo.Sum --benchmarkId 0"


@pytest.fixture
def artifact() -> ArtifactLocation:
    return ArtifactLocation(
        executable_path=Path("/opt/bench/bin/Demo.exe"),
        binaries_directory=Path("/opt/bench/bin"),
        program_name="Demo",
    )


def _browser(version, thresholds=None) -> BrowserEngine:
    selector = (
        EntryScriptSelector(target_version=version)
        if thresholds is None
        else EntryScriptSelector(target_version=version, thresholds=thresholds)
    )
    return BrowserEngine(engine_path="v8", engine_arguments="--expose_wasm", entry_script=selector)


class TestDirectVariants:
    def test_direct_native_runs_executable_in_place(self, artifact):
        plan = launch_planner.plan(DirectNative(), artifact, ARGS)
        assert plan.file_name == str(artifact.executable_path)
        assert plan.arguments == ARGS
        assert plan.working_directory is None
        assert plan.accepts_acknowledgments is True

    def test_aot_forces_binaries_directory(self, artifact):
        plan = launch_planner.plan(AotWithWorkingDirOverride(), artifact, ARGS)
        assert plan.file_name == str(artifact.executable_path)
        assert plan.arguments == ARGS
        assert plan.working_directory == artifact.binaries_directory


class TestAlternateVM:
    def test_argument_order(self, artifact):
        variant = AlternateVM(engine_path="/usr/bin/mono", jit_enabled=True, extra_arguments=("--gc=sgen", "--debug"))
        plan = launch_planner.plan(variant, artifact, ARGS)
        assert plan.file_name == "/usr/bin/mono"
        assert plan.arguments == f'--llvm --gc=sgen --debug "{artifact.executable_path}" {ARGS}'
        assert plan.working_directory is None

    def test_jit_disabled_flag_comes_first(self, artifact):
        plan = launch_planner.plan(AlternateVM(), artifact, ARGS)
        assert plan.file_name == "mono"
        assert plan.arguments == f'--nollvm "{artifact.executable_path}" {ARGS}'

    @pytest.mark.parametrize("extras", list(itertools.permutations(("--a", "--b=1", "-c"))))
    def test_extra_arguments_keep_their_order(self, artifact, extras):
        variant = AlternateVM(jit_enabled=False, extra_arguments=extras)
        first = launch_planner.plan(variant, artifact, ARGS)
        second = launch_planner.plan(variant, artifact, ARGS)
        assert first == second
        expected_prefix = " ".join(("--nollvm",) + extras)
        assert first.arguments.startswith(expected_prefix + " ")
        assert first.arguments.endswith(f'"{artifact.executable_path}" {ARGS}')

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX argument splitting")
    def test_quoted_path_survives_splitting(self):
        spaced = ArtifactLocation(
            executable_path=Path("/opt/my bench/Demo.exe"),
            binaries_directory=Path("/opt/my bench"),
            program_name="Demo",
        )
        plan = launch_planner.plan(AlternateVM(extra_arguments=("--debug",)), spaced, "--benchmarkId 3")
        assert plan.popen_args() == ["mono", "--nollvm", "--debug", "/opt/my bench/Demo.exe", "--benchmarkId", "3"]


class TestBrowserEngine:
    @pytest.mark.parametrize(
        "version, script",
        [
            ("6", "main.js"),
            ((6, 9), "main.js"),
            ("6.9.99", "main.js"),
            ("7", "test-main.js"),
            ("7.0", "test-main.js"),
            ((7, 0, 0), "test-main.js"),
            ("7.0.1", "test-main.js"),
            ("8", "test-main.js"),
        ],
    )
    def test_entry_script_threshold(self, artifact, version, script):
        plan = launch_planner.plan(_browser(version), artifact, ARGS)
        assert plan.arguments == f"--expose_wasm {script} -- --run Demo {ARGS} "

    def test_plan_runs_in_binaries_directory_without_handshake(self, artifact):
        plan = launch_planner.plan(_browser("7.0"), artifact, ARGS)
        assert plan.file_name == "v8"
        assert plan.working_directory == artifact.binaries_directory
        assert plan.accepts_acknowledgments is False

    def test_new_threshold_is_a_table_row(self, artifact):
        table = (
            EntryScriptThreshold(min_version="0", script_name="main.js"),
            EntryScriptThreshold(min_version="7.0", script_name="test-main.js"),
            EntryScriptThreshold(min_version="9.0", script_name="next-main.js"),
        )
        assert "next-main.js" in launch_planner.plan(_browser("9", table), artifact, "").arguments
        assert "test-main.js" in launch_planner.plan(_browser("8.9", table), artifact, "").arguments

    def test_version_below_every_threshold_is_configuration_error(self, artifact):
        table = (EntryScriptThreshold(min_version="5", script_name="main.js"),)
        with pytest.raises(ConfigurationError):
            launch_planner.plan(_browser("4.8", table), artifact, ARGS)


class TestPlanInvariants:
    def test_unknown_variant_is_rejected(self, artifact):
        with pytest.raises(UnsupportedVariantError) as excinfo:
            launch_planner.plan(object(), artifact, ARGS)
        assert excinfo.value.config_key == "variant"

    def test_subclass_of_known_variant_is_rejected(self, artifact):
        class CustomNative(DirectNative):
            pass

        with pytest.raises(UnsupportedVariantError):
            launch_planner.plan(CustomNative(), artifact, ARGS)

    def test_environment_overlay_is_ordered(self, artifact):
        overlay = [
            EnvironmentVariable(name="A", value="1"),
            EnvironmentVariable(name="B", value="2"),
            EnvironmentVariable(name="A", value="3"),
        ]
        plan = launch_planner.plan(DirectNative(), artifact, ARGS, overlay)
        assert [v.name for v in plan.environment] == ["A", "B", "A"]
        env = plan.build_environment(base={"A": "0", "KEEP": "x"})
        assert env == {"A": "3", "B": "2", "KEEP": "x"}

    def test_every_variant_type_has_a_planner(self):
        assert set(launch_planner.supported_variants()) == {
            DirectNative,
            AlternateVM,
            BrowserEngine,
            AotWithWorkingDirOverride,
        }
