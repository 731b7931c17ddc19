"""Accelerator runtime probes and the per-runtime strategy chains."""

from __future__ import annotations

import logging
import os
import platform
import re
import shutil
from importlib import metadata

from ._base import ProbeStrategy
from ._cuda import NvccProbe, NvidiaSmiCudaProbe
from ._errors import ProbeParseFailed, ProbeUnavailable
from ._metal import SwVersMetalProbe
from ._rocm import RocmDirectoryProbe, RocmSmiVersionProbe
from ._types import Component, FrameworkStatus

logger = logging.getLogger(__name__)

# DirectML ships in-box from Windows 10 1903
_DIRECTML_MIN_BUILD = 18362

_OPENVINO_DIRS: tuple[str, ...] = (
    "/opt/intel/openvino",
    r"C:\Program Files (x86)\Intel\openvino",
    r"C:\Program Files\Intel\openvino",
)


class WindowsBuildDirectMLProbe(ProbeStrategy):
    component = Component.FRAMEWORKS
    runtime = "directml"
    priority = 100
    platforms = frozenset({"win32"})

    async def probe(self, timeout: float) -> FrameworkStatus:
        version = platform.version()  # "10.0.19045"
        parts = version.split(".")
        if len(parts) < 3 or not parts[2].isdigit():
            raise ProbeParseFailed(f"unexpected Windows version {version!r}")
        if int(parts[0]) < 10 or int(parts[2]) < _DIRECTML_MIN_BUILD:
            raise ProbeUnavailable(f"Windows build {parts[2]} predates DirectML")
        return FrameworkStatus(present=True, version=f"build {parts[2]}")


class OpenVinoProbe(ProbeStrategy):
    """Toolkit install directories, ``INTEL_OPENVINO_DIR`` or ``benchmark_app`` on PATH."""

    component = Component.FRAMEWORKS
    runtime = "openvino"
    priority = 100

    def __init__(self, dirs: tuple[str, ...] = _OPENVINO_DIRS) -> None:
        self.dirs = dirs

    async def probe(self, timeout: float) -> FrameworkStatus:
        candidates = list(self.dirs)
        env_dir = os.environ.get("INTEL_OPENVINO_DIR")
        if env_dir:
            candidates.insert(0, env_dir)
        for path in candidates:
            if os.path.isdir(path):
                match = re.search(r"(\d{4}\.\d+(?:\.\d+)?)", os.path.realpath(path))
                return FrameworkStatus(present=True, version=match.group(1) if match else None)
        if shutil.which("benchmark_app"):
            return FrameworkStatus(present=True)
        raise ProbeUnavailable("no OpenVINO toolkit found")


class OpenVinoPackageProbe(ProbeStrategy):
    """The pip ``openvino`` wheel bundles the runtime."""

    component = Component.FRAMEWORKS
    runtime = "openvino"
    priority = 50

    async def probe(self, timeout: float) -> FrameworkStatus:
        try:
            return FrameworkStatus(present=True, version=metadata.version("openvino"))
        except metadata.PackageNotFoundError as exc:
            raise ProbeUnavailable("openvino package not installed") from exc


RUNTIMES: tuple[str, ...] = ("cuda", "rocm", "metal", "directml", "openvino")

FRAMEWORK_STRATEGIES: tuple[ProbeStrategy, ...] = (
    NvidiaSmiCudaProbe(),
    NvccProbe(),
    RocmSmiVersionProbe(),
    RocmDirectoryProbe(),
    SwVersMetalProbe(),
    WindowsBuildDirectMLProbe(),
    OpenVinoProbe(),
    OpenVinoPackageProbe(),
)
