"""Pydantic models for benchmark execution data structures.

Provides type-safe, immutable records for the artifact handed over by the build
step, the execution target variants, the resolved launch plan and the result of
one benchmark process. All models include schemaVersion for forward
compatibility.
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Annotated, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from benchlaunch.diagnostics.hooks import Diagnoser, HostSignal


Version = Tuple[int, ...]


def parse_version(value: Union[str, int, float, Sequence[int]]) -> Version:
    """Parse ``"7.0"``, ``7`` or ``(7, 0)`` into a comparable int tuple."""
    if isinstance(value, (list, tuple)):
        parts = tuple(int(part) for part in value)
    elif isinstance(value, int):
        parts = (value,)
    else:
        text = str(value).strip().lstrip("vV")
        if not text:
            raise ValueError("empty version")
        parts = tuple(int(part) for part in text.split("."))
    if not parts:
        raise ValueError("empty version")
    # 7 == 7.0 == 7.0.0
    while len(parts) > 1 and parts[-1] == 0:
        parts = parts[:-1]
    return parts


class ArtifactLocation(BaseModel):
    """Where the build step left the runnable artifact."""

    executable_path: Path = Field(..., description="Path of the runnable executable")
    binaries_directory: Path = Field(..., description="Directory holding the build output")
    program_name: str = Field(..., description="Logical program name of the artifact")

    schemaVersion: str = Field("1.0", description="Schema version for forward compatibility")

    model_config = ConfigDict(frozen=True)

    def exists(self) -> bool:
        return self.executable_path.is_file()


# ---------------------------------------------------------------- Target variants


class DirectNative(BaseModel):
    """Run the artifact executable directly."""

    kind: Literal["direct_native"] = "direct_native"

    model_config = ConfigDict(frozen=True)


class AlternateVM(BaseModel):
    """Run the artifact inside a separate virtual machine executable.

    The VM is invoked as ``<engine> [options] program [program-options]``.
    """

    kind: Literal["alternate_vm"] = "alternate_vm"
    engine_path: str = Field("mono", description="VM executable")
    jit_enabled: bool = Field(False, description="Toggle the optimizing code generator")
    extra_arguments: Tuple[str, ...] = Field(default=(), description="Opaque VM options, kept in order")

    model_config = ConfigDict(frozen=True)


class EntryScriptThreshold(BaseModel):
    """One row of the entry script table: from ``min_version`` on, use ``script_name``."""

    min_version: Version
    script_name: str

    model_config = ConfigDict(frozen=True)

    @field_validator("min_version", mode="before")
    @classmethod
    def _parse_min_version(cls, v):
        return parse_version(v)


DEFAULT_ENTRY_SCRIPTS: Tuple[EntryScriptThreshold, ...] = (
    EntryScriptThreshold(min_version=(0,), script_name="main.js"),
    EntryScriptThreshold(min_version=(7,), script_name="test-main.js"),
)


class EntryScriptSelector(BaseModel):
    """Chooses the engine entry script from the target version."""

    target_version: Version
    thresholds: Tuple[EntryScriptThreshold, ...] = Field(default=DEFAULT_ENTRY_SCRIPTS)

    model_config = ConfigDict(frozen=True)

    @field_validator("target_version", mode="before")
    @classmethod
    def _parse_target_version(cls, v):
        return parse_version(v)


class BrowserEngine(BaseModel):
    """Run the artifact through an external script engine binary."""

    kind: Literal["browser_engine"] = "browser_engine"
    engine_path: str = Field(..., description="Script engine executable (e.g. v8, node)")
    engine_arguments: str = Field("", description="Arguments placed before the entry script")
    entry_script: EntryScriptSelector

    model_config = ConfigDict(frozen=True)


class AotWithWorkingDirOverride(BaseModel):
    """Run the artifact directly with the binaries directory as working directory."""

    kind: Literal["aot_working_dir"] = "aot_working_dir"

    model_config = ConfigDict(frozen=True)


ExecutionTargetVariant = Annotated[
    Union[DirectNative, AlternateVM, BrowserEngine, AotWithWorkingDirOverride],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------- Launch plan


class EnvironmentVariable(BaseModel):
    name: str
    value: str

    model_config = ConfigDict(frozen=True)


class LaunchPlan(BaseModel):
    """Fully resolved, side-effect free description of how to start the child."""

    file_name: str = Field(..., description="Executable to start")
    arguments: str = Field("", description="Single argument string")
    working_directory: Optional[Path] = Field(None, description="None inherits the caller's directory")
    environment: Tuple[EnvironmentVariable, ...] = Field(default=(), description="Ordered overlay")
    accepts_acknowledgments: bool = Field(True, description="Whether stdin can carry the handshake")

    schemaVersion: str = Field("1.0", description="Schema version for forward compatibility")

    model_config = ConfigDict(frozen=True)

    @property
    def command_line(self) -> str:
        return f"{self.file_name} {self.arguments}".rstrip()

    def popen_args(self) -> Union[List[str], str]:
        """Arguments for subprocess.Popen.

        Windows takes the command line verbatim; POSIX needs it split.
        """
        if os.name == "nt":
            return f'"{self.file_name}" {self.arguments}'
        return [self.file_name, *shlex.split(self.arguments)]

    def build_environment(self, base: Optional[dict] = None) -> dict:
        """Apply the overlay on top of ``base`` (defaults to os.environ)."""
        env = dict(os.environ if base is None else base)
        for variable in self.environment:
            env[variable.name] = variable.value
        return env


# ---------------------------------------------------------------- Request / result


class BenchmarkIdentity(BaseModel):
    """Which benchmark a process runs; passed along to diagnosers."""

    name: str
    id: int = 0

    model_config = ConfigDict(frozen=True)


@dataclass
class ExecutionRequest:
    """Everything the executor needs to run one benchmark process."""

    benchmark: BenchmarkIdentity
    variant: ExecutionTargetVariant
    artifact: ArtifactLocation
    # Pre-rendered benchmark arguments appended to the command line
    arguments: str = ""
    # Whether the artifact's protocol supports acknowledgment handshaking
    acknowledgments: bool = True
    diagnoser: Optional[Diagnoser] = None
    launch_index: int = 0
    affinity_mask: Optional[int] = None
    environment: Sequence[EnvironmentVariable] = field(default_factory=tuple)


class LineKind(str, Enum):
    RESULT = "result"
    AUXILIARY = "auxiliary"
    CONTROL = "control"


class OutputLine(BaseModel):
    """One line of child stdout, in arrival order."""

    index: int = Field(..., description="Arrival position across all kinds")
    text: str
    kind: LineKind
    signal: Optional[HostSignal] = None

    model_config = ConfigDict(frozen=True)


class ExecutionResult(BaseModel):
    """Outcome of one benchmark process.

    ``exit_code`` is None when the process timed out or never reported one.
    """

    success: bool
    exit_code: Optional[int] = None
    process_id: Optional[int] = None
    lines_with_results: Tuple[str, ...] = ()
    lines_with_extra_output: Tuple[str, ...] = ()
    launch_index: int = 0
    timed_out: bool = False
    diagnostic_hints: Tuple[str, ...] = ()
    timeline: Tuple[OutputLine, ...] = ()

    schemaVersion: str = Field("1.0", description="Schema version for forward compatibility")

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "success": True,
                "exit_code": 0,
                "process_id": 4242,
                "lines_with_results": ["WorkloadActual   1: 1 op, 120 ns, 120.0000 ns/op"],
                "lines_with_extra_output": ["// Benchmark: Demo.Sum"],
                "launch_index": 1,
                "timed_out": False,
                "diagnostic_hints": [],
                "schemaVersion": "1.0",
            }
        },
    )

    @classmethod
    def failed(cls, launch_index: int = 0) -> ExecutionResult:
        """Result for a run that never produced a process."""
        return cls(success=False, launch_index=launch_index)
