"""Apple Silicon GPU and Metal runtime probe strategies."""

from __future__ import annotations

import json
import logging
import re

from ._base import CommandProbe, ProbeStrategy, run_command
from ._errors import ProbeParseFailed
from ._types import Component, FrameworkStatus, GpuInfo

logger = logging.getLogger(__name__)

# M-series SKU table: (gpu_cores, speed_coefficient)
_M_SERIES_SKUS: dict[str, tuple[int, int]] = {
    "M1": (8, 25),
    "M1 Pro": (16, 45),
    "M1 Max": (32, 75),
    "M1 Ultra": (64, 130),
    "M2": (10, 30),
    "M2 Pro": (19, 50),
    "M2 Max": (38, 80),
    "M2 Ultra": (76, 140),
    "M3": (10, 35),
    "M3 Pro": (18, 50),
    "M3 Max": (40, 85),
    "M3 Ultra": (80, 150),
    "M4": (10, 40),
    "M4 Pro": (20, 60),
    "M4 Max": (40, 100),
}

_CHIP_RE = re.compile(r"(M[1-9]\d*(?:\s+(?:Pro|Max|Ultra))?)")


def match_sku(chip_name: str) -> str | None:
    """Map 'Apple M2 Pro' style names to an SKU table key."""
    match = _CHIP_RE.search(chip_name)
    if not match:
        return None
    key = match.group(1)
    return key if key in _M_SERIES_SKUS else None


def apple_gpu(chip_name: str, unified_gb: float, gpu_cores: int = 0) -> GpuInfo:
    sku = match_sku(chip_name)
    speed = 20
    if sku:
        table_cores, speed = _M_SERIES_SKUS[sku]
        gpu_cores = gpu_cores or table_cores
    else:
        logger.debug("metal: unknown chip %r, using conservative estimates", chip_name)
        gpu_cores = gpu_cores or 8
    name = chip_name if chip_name.startswith("Apple") else f"Apple {chip_name}"
    return GpuInfo(
        detected=True,
        vendor="Apple",
        model=name,
        vram_gb=round(unified_gb, 2),
        architecture="Apple Silicon",
        compute_units=gpu_cores,
        is_dedicated=False,
        unified_memory=True,
        supports_fp16=True,
        supports_int8=True,
        speed_coefficient=speed,
    )


def _size_to_gb(raw: str) -> float:
    match = re.search(r"([\d.]+)\s*(GB|MB)", raw, re.IGNORECASE)
    if not match:
        return 0.0
    value = float(match.group(1))
    return value / 1024 if match.group(2).upper() == "MB" else value


class SystemProfilerGpuProbe(ProbeStrategy):
    """``system_profiler SPDisplaysDataType -json`` plus ``hw.memsize``.

    Apple Silicon reports no VRAM of its own; the GPU addresses the whole
    unified pool, so total memory is recorded as its VRAM. Intel Macs with
    discrete cards report ``spdisplays_vram``.
    """

    component = Component.GPU
    priority = 70
    platforms = frozenset({"darwin"})

    async def probe(self, timeout: float) -> GpuInfo:
        stdout = await run_command(
            ("system_profiler", "SPDisplaysDataType", "-json"), timeout
        )
        try:
            displays = json.loads(stdout).get("SPDisplaysDataType", [])
        except ValueError as exc:
            raise ProbeParseFailed(f"system_profiler: {exc}") from exc
        if not displays:
            raise ProbeParseFailed("system_profiler: no display adapters")

        entry = displays[0]
        model = str(entry.get("sppci_model") or entry.get("_name") or "")
        vendor = str(entry.get("spdisplays_vendor") or "").lower()
        cores = int(entry.get("sppci_cores") or 0)

        if "apple" in vendor or model.startswith("Apple"):
            memsize = await run_command(("sysctl", "-n", "hw.memsize"), timeout)
            try:
                total_gb = int(memsize.strip()) / (1024**3)
            except ValueError as exc:
                raise ProbeParseFailed(f"sysctl hw.memsize: {exc}") from exc
            return apple_gpu(model, total_gb, cores)

        vram_raw = str(entry.get("spdisplays_vram") or entry.get("spdisplays_vram_shared") or "")
        vram_gb = _size_to_gb(vram_raw)
        if "amd" in vendor or "ati" in vendor:
            gpu_vendor = "AMD"
        elif "intel" in vendor:
            gpu_vendor = "Intel"
        elif "nvidia" in vendor:
            gpu_vendor = "NVIDIA"
        else:
            gpu_vendor = "Unknown"
        return GpuInfo(
            detected=True,
            vendor=gpu_vendor,
            model=model or "Unknown",
            vram_gb=round(vram_gb, 2),
            is_dedicated="spdisplays_vram" in entry,
            supports_fp16=gpu_vendor == "AMD",
        )


class SysctlAppleGpuProbe(CommandProbe):
    """Chip name and memory size from sysctl when system_profiler is slow."""

    component = Component.GPU
    priority = 65
    platforms = frozenset({"darwin"})
    command = ("sysctl", "-n", "machdep.cpu.brand_string", "hw.memsize")

    def parse(self, stdout: str) -> GpuInfo | None:
        lines = [line.strip() for line in stdout.strip().splitlines() if line.strip()]
        if len(lines) < 2 or "Apple" not in lines[0]:
            return None
        return apple_gpu(lines[0], int(lines[1]) / (1024**3))


# ---------------------------------------------------------------------------
# Metal runtime
# ---------------------------------------------------------------------------


class SwVersMetalProbe(CommandProbe):
    """Metal ships with macOS; the OS release decides the Metal family."""

    component = Component.FRAMEWORKS
    runtime = "metal"
    priority = 100
    platforms = frozenset({"darwin"})
    command = ("sw_vers", "-productVersion")

    def parse(self, stdout: str) -> FrameworkStatus | None:
        match = re.match(r"(\d+)\.(\d+)", stdout.strip())
        if not match:
            return None
        major, minor = int(match.group(1)), int(match.group(2))
        if major >= 13:
            version = "3"
        elif major >= 11 or (major == 10 and minor >= 13):
            version = "2"
        else:
            return None
        return FrameworkStatus(present=True, version=version)
