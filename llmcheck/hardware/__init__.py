"""Hardware detection subsystem for llmcheck.

Each component (CPU, GPU, memory, storage, accelerator runtimes) is
probed by an ordered chain of :class:`ProbeStrategy` objects.
:class:`HardwareDetector` runs the chains concurrently and returns an
immutable :class:`HardwareSnapshot`.
"""

from __future__ import annotations

from ._base import CommandProbe, ProbeStrategy, run_command
from ._detector import DEFAULT_STRATEGIES, HardwareDetector, detect_hardware
from ._errors import (
    ProbeCancelled,
    ProbeError,
    ProbeExecutionFailed,
    ProbeParseFailed,
    ProbeTimeout,
    ProbeUnavailable,
)
from ._types import (
    Component,
    ComponentResult,
    CpuInfo,
    Detected,
    FrameworksInfo,
    FrameworkStatus,
    GpuInfo,
    HardwareSnapshot,
    MemoryInfo,
    StorageInfo,
    StorageType,
    Undetected,
)

__all__ = [
    "CommandProbe",
    "Component",
    "ComponentResult",
    "CpuInfo",
    "DEFAULT_STRATEGIES",
    "Detected",
    "FrameworkStatus",
    "FrameworksInfo",
    "GpuInfo",
    "HardwareDetector",
    "HardwareSnapshot",
    "MemoryInfo",
    "ProbeCancelled",
    "ProbeError",
    "ProbeExecutionFailed",
    "ProbeParseFailed",
    "ProbeStrategy",
    "ProbeTimeout",
    "ProbeUnavailable",
    "StorageInfo",
    "StorageType",
    "Undetected",
    "detect_hardware",
    "run_command",
]
