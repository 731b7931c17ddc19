"""System memory probe strategies."""

from __future__ import annotations

import asyncio
import json
import logging
import re

import psutil

from ._base import CommandProbe, ProbeStrategy, read_text, run_command
from ._errors import ProbeError, ProbeParseFailed
from ._types import Component, MemoryInfo

logger = logging.getLogger(__name__)

_GIB = 1024**3

# SMBIOS memory type codes (Win32_PhysicalMemory.SMBIOSMemoryType)
_SMBIOS_MEMORY_TYPES: dict[int, str] = {
    24: "DDR3",
    26: "DDR4",
    29: "LPDDR3",
    30: "LPDDR4",
    34: "DDR5",
    35: "LPDDR5",
}


class ProcMeminfoProbe(ProbeStrategy):
    component = Component.MEMORY
    priority = 100
    platforms = frozenset({"linux"})

    def __init__(self, path: str = "/proc/meminfo") -> None:
        self.path = path

    async def probe(self, timeout: float) -> MemoryInfo:
        values: dict[str, int] = {}
        for line in read_text(self.path).splitlines():
            match = re.match(r"(\w+):\s+(\d+)\s*kB", line)
            if match:
                values[match.group(1)] = int(match.group(2))
        if "MemTotal" not in values:
            raise ProbeParseFailed(f"{self.path}: no MemTotal")
        # MemAvailable appeared in 3.14; older kernels need the sum
        available_kb = values.get("MemAvailable")
        if available_kb is None:
            available_kb = (
                values.get("MemFree", 0) + values.get("Buffers", 0) + values.get("Cached", 0)
            )
        return MemoryInfo(
            detected=True,
            total_gb=round(values["MemTotal"] / 1024**2, 2),
            available_gb=round(available_kb / 1024**2, 2),
        )


class SysctlMemoryProbe(ProbeStrategy):
    """``hw.memsize`` for the total, ``vm_stat`` page counts for what is free."""

    component = Component.MEMORY
    priority = 100
    platforms = frozenset({"darwin"})

    async def probe(self, timeout: float) -> MemoryInfo:
        memsize = await run_command(("sysctl", "-n", "hw.memsize"), timeout)
        try:
            total = int(memsize.strip())
        except ValueError as exc:
            raise ProbeParseFailed(f"sysctl hw.memsize: {memsize[:40]!r}") from exc

        available = 0
        vm_stat = await run_command(("vm_stat",), timeout)
        page_match = re.search(r"page size of (\d+) bytes", vm_stat)
        page_size = int(page_match.group(1)) if page_match else 4096
        for label in ("Pages free", "Pages inactive", "Pages speculative", "Pages purgeable"):
            match = re.search(rf"{label}:\s+(\d+)", vm_stat)
            if match:
                available += int(match.group(1)) * page_size

        # Apple Silicon ships soldered LPDDR only
        chip = await self._chip(timeout)
        return MemoryInfo(
            detected=True,
            total_gb=round(total / _GIB, 2),
            available_gb=round(available / _GIB, 2),
            type="LPDDR5" if "Apple" in chip else "Unknown",
        )

    @staticmethod
    async def _chip(timeout: float) -> str:
        try:
            return await run_command(("sysctl", "-n", "machdep.cpu.brand_string"), timeout)
        except ProbeError:
            return ""


class WindowsMemoryProbe(CommandProbe):
    component = Component.MEMORY
    priority = 100
    platforms = frozenset({"win32"})
    command = (
        "powershell",
        "-NoProfile",
        "-NonInteractive",
        "-Command",
        "$os = Get-CimInstance Win32_OperatingSystem; "
        "$mem = @(Get-CimInstance Win32_PhysicalMemory); "
        "@{TotalKB=$os.TotalVisibleMemorySize; FreeKB=$os.FreePhysicalMemory; "
        "Speed=$mem[0].Speed; MemoryType=$mem[0].SMBIOSMemoryType} | ConvertTo-Json",
    )

    def parse(self, stdout: str) -> MemoryInfo | None:
        data = json.loads(stdout)
        total_kb = int(data.get("TotalKB") or 0)
        if not total_kb:
            return None
        return MemoryInfo(
            detected=True,
            total_gb=round(total_kb / 1024**2, 2),
            available_gb=round(int(data.get("FreeKB") or 0) / 1024**2, 2),
            type=_SMBIOS_MEMORY_TYPES.get(int(data.get("MemoryType") or 0), "Unknown"),
            speed_mhz=int(data.get("Speed") or 0),
        )


class PsutilMemoryProbe(ProbeStrategy):
    component = Component.MEMORY
    priority = 10

    async def probe(self, timeout: float) -> MemoryInfo:
        return await asyncio.to_thread(self._read)

    def _read(self) -> MemoryInfo:
        vm = psutil.virtual_memory()
        if not vm.total:
            raise ProbeParseFailed("psutil reported zero memory")
        return MemoryInfo(
            detected=True,
            total_gb=round(vm.total / _GIB, 2),
            available_gb=round(vm.available / _GIB, 2),
        )


MEMORY_STRATEGIES: tuple[ProbeStrategy, ...] = (
    ProcMeminfoProbe(),
    SysctlMemoryProbe(),
    WindowsMemoryProbe(),
    PsutilMemoryProbe(),
)
