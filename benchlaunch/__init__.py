"""Execution stage of the benchmark harness: launch built artifacts and collect their output."""

from benchlaunch.benchmark.exceptions import (
    BenchmarkError,
    ConfigurationError,
    MissingArtifactError,
    SpawnError,
    UnsupportedVariantError,
)
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
    ExecutionResult,
    LaunchPlan,
)
from benchlaunch.harness.executor import Executor, check_artifact, execute
from benchlaunch.harness.launch_planner import plan

__version__ = "0.1.0"
