"""CPU probe strategies: lscpu, /proc/cpuinfo, sysctl, CIM and psutil."""

from __future__ import annotations

import asyncio
import json
import logging
import platform
import re
from typing import Iterable

import psutil

from ._base import CommandProbe, ProbeStrategy, read_text
from ._errors import ProbeParseFailed
from ._types import Component, CpuInfo

logger = logging.getLogger(__name__)

# Flags worth carrying into the snapshot; everything else is noise for scoring.
_INTERESTING_FLAGS: frozenset[str] = frozenset(
    {
        "sse4_2",
        "avx",
        "avx2",
        "fma",
        "f16c",
        "avx512f",
        "avx512_vnni",
        "avx512_bf16",
        "amx_tile",
        "neon",
        "sve",
    }
)

# Aliases reported by different tools for the same feature
_FLAG_ALIASES: dict[str, str] = {
    "asimd": "neon",
    "avx512vnni": "avx512_vnni",
    "avx512bf16": "avx512_bf16",
    "sse4.2": "sse4_2",
    "avx1.0": "avx",
    "amx-tile": "amx_tile",
}


def _instruction_sets(flags: Iterable[str]) -> tuple[str, ...]:
    found: set[str] = set()
    for flag in flags:
        key = flag.strip().lower()
        key = _FLAG_ALIASES.get(key, key)
        if key in _INTERESTING_FLAGS:
            found.add(key)
    return tuple(sorted(found))


def _manufacturer(vendor: str, brand: str) -> str:
    text = f"{vendor} {brand}".lower()
    if "intel" in text:
        return "Intel"
    if "amd" in text:
        return "AMD"
    if "apple" in text:
        return "Apple"
    if "qualcomm" in text or "snapdragon" in text:
        return "Qualcomm"
    if "arm" in text:
        return "ARM"
    return vendor or "Unknown"


def _parse_cache_kb(raw: str) -> int:
    """Parse '8 MiB (8 instances)', '256K' or '32768 KB' into KiB."""
    match = re.search(r"([\d.]+)\s*([KMG]i?B?|[KMG])?", raw.strip(), re.IGNORECASE)
    if not match:
        return 0
    value = float(match.group(1))
    unit = (match.group(2) or "K").upper()[0]
    if unit == "M":
        value *= 1024
    elif unit == "G":
        value *= 1024 * 1024
    return int(value)


def _key_values(text: str, sep: str = ":") -> dict[str, str]:
    out: dict[str, str] = {}
    for line in text.splitlines():
        if sep not in line:
            continue
        key, value = line.split(sep, 1)
        out.setdefault(key.strip(), value.strip())
    return out


class LscpuProbe(CommandProbe):
    component = Component.CPU
    priority = 100
    platforms = frozenset({"linux"})
    command = ("lscpu",)

    def parse(self, stdout: str) -> CpuInfo | None:
        fields = _key_values(stdout)
        model = fields.get("Model name")
        if not model:
            return None
        logical = int(fields.get("CPU(s)", "0"))
        per_socket = int(fields.get("Core(s) per socket", "0"))
        sockets = int(fields.get("Socket(s)", "1") or "1")
        physical = per_socket * sockets or logical
        max_mhz = float(fields.get("CPU max MHz", "0") or 0)
        cur_mhz = float(fields.get("CPU MHz", "0") or 0)
        base_mhz = cur_mhz or float(fields.get("CPU min MHz", "0") or 0)
        return CpuInfo(
            detected=True,
            model=model,
            manufacturer=_manufacturer(fields.get("Vendor ID", ""), model),
            physical_cores=physical,
            logical_cores=logical,
            base_clock_ghz=round(base_mhz / 1000, 2),
            boost_clock_ghz=round(max_mhz / 1000, 2),
            l2_cache_kb=_parse_cache_kb(fields.get("L2 cache", "0")),
            l3_cache_kb=_parse_cache_kb(fields.get("L3 cache", "0")),
            architecture=fields.get("Architecture", platform.machine()),
            instruction_sets=_instruction_sets(fields.get("Flags", "").split()),
        )


class ProcCpuinfoProbe(ProbeStrategy):
    component = Component.CPU
    priority = 60
    platforms = frozenset({"linux"})

    async def probe(self, timeout: float) -> CpuInfo:
        content = read_text("/proc/cpuinfo")
        blocks = [b for b in content.split("\n\n") if b.strip()]
        if not blocks:
            raise ProbeParseFailed("/proc/cpuinfo is empty")
        first = _key_values(blocks[0])
        model = first.get("model name") or first.get("Hardware") or first.get("Model")
        if not model:
            raise ProbeParseFailed("/proc/cpuinfo has no model name")

        logical = sum(1 for b in blocks if "processor" in _key_values(b))
        core_ids = {
            (kv.get("physical id", "0"), kv.get("core id"))
            for kv in (_key_values(b) for b in blocks)
            if kv.get("core id") is not None
        }
        physical = len(core_ids) or int(first.get("cpu cores", "0") or 0) or logical
        mhz = float(first.get("cpu MHz", "0") or 0)
        flags = (first.get("flags") or first.get("Features") or "").split()
        return CpuInfo(
            detected=True,
            model=model,
            manufacturer=_manufacturer(first.get("vendor_id", ""), model),
            physical_cores=physical,
            logical_cores=logical,
            base_clock_ghz=round(mhz / 1000, 2),
            l3_cache_kb=_parse_cache_kb(first.get("cache size", "0")),
            architecture=platform.machine(),
            instruction_sets=_instruction_sets(flags),
        )


class SysctlCpuProbe(CommandProbe):
    component = Component.CPU
    priority = 100
    platforms = frozenset({"darwin"})
    command = ("sysctl", "hw", "machdep.cpu")

    def parse(self, stdout: str) -> CpuInfo | None:
        fields = _key_values(stdout)
        brand = fields.get("machdep.cpu.brand_string")
        if not brand:
            return None
        physical = int(fields.get("hw.physicalcpu", "0"))
        logical = int(fields.get("hw.logicalcpu", "0"))
        # Apple Silicon does not report a frequency
        freq_hz = int(fields.get("hw.cpufrequency", "0") or 0)
        max_hz = int(fields.get("hw.cpufrequency_max", "0") or 0)
        flags = (
            fields.get("machdep.cpu.features", "")
            + " "
            + fields.get("machdep.cpu.leaf7_features", "")
        ).split()
        arch = "arm64" if "apple" in brand.lower() else platform.machine()
        if arch == "arm64":
            flags.append("neon")
        return CpuInfo(
            detected=True,
            model=brand,
            manufacturer=_manufacturer("", brand),
            physical_cores=physical,
            logical_cores=logical,
            base_clock_ghz=round(freq_hz / 1e9, 2),
            boost_clock_ghz=round(max_hz / 1e9, 2),
            l2_cache_kb=int(fields.get("hw.l2cachesize", "0") or 0) // 1024,
            l3_cache_kb=int(fields.get("hw.l3cachesize", "0") or 0) // 1024,
            architecture=arch,
            instruction_sets=_instruction_sets(flags),
        )


# IsProcessorFeaturePresent constants (winnt.h)
_WINDOWS_FEATURES: dict[int, str] = {
    19: "neon",  # PF_ARM_NEON_INSTRUCTIONS_AVAILABLE
    38: "sse4_2",  # PF_SSE4_2_INSTRUCTIONS_AVAILABLE
    39: "avx",  # PF_AVX_INSTRUCTIONS_AVAILABLE
    40: "avx2",  # PF_AVX2_INSTRUCTIONS_AVAILABLE
    41: "avx512f",  # PF_AVX512F_INSTRUCTIONS_AVAILABLE
}

_WINDOWS_CPU_SCRIPT = (
    "$k = Add-Type -Name Cpu -Namespace LlmCheck -PassThru -MemberDefinition "
    "'[DllImport(\"kernel32.dll\")] public static extern bool IsProcessorFeaturePresent(uint f);'; "
    "[pscustomobject]@{"
    "Processors = @(Get-CimInstance Win32_Processor | Select-Object Name,Manufacturer,"
    "NumberOfCores,NumberOfLogicalProcessors,CurrentClockSpeed,MaxClockSpeed,"
    "L2CacheSize,L3CacheSize); "
    "Features = @(" + ",".join(str(f) for f in _WINDOWS_FEATURES) + " | "
    "Where-Object { $k::IsProcessorFeaturePresent($_) })"
    "} | ConvertTo-Json -Depth 3"
)


class WindowsCpuProbe(CommandProbe):
    """Win32_Processor via CIM plus kernel32 feature queries.

    CIM carries no instruction-set information, so flags come only from
    ``IsProcessorFeaturePresent``; a missing feature list means no flags.
    """

    component = Component.CPU
    priority = 100
    platforms = frozenset({"win32"})
    command = ("powershell", "-NoProfile", "-NonInteractive", "-Command", _WINDOWS_CPU_SCRIPT)

    def parse(self, stdout: str) -> CpuInfo | None:
        data = json.loads(stdout)
        if not isinstance(data, dict):
            return None
        procs = data.get("Processors") or []
        if isinstance(procs, dict):
            procs = [procs]
        if not procs or not procs[0].get("Name"):
            return None
        first = procs[0]
        model = str(first["Name"]).strip()
        features = data.get("Features") or []
        if not isinstance(features, list):
            features = [features]
        flags = [_WINDOWS_FEATURES[int(f)] for f in features if int(f) in _WINDOWS_FEATURES]
        return CpuInfo(
            detected=True,
            model=model,
            manufacturer=_manufacturer(str(first.get("Manufacturer") or ""), model),
            physical_cores=sum(int(p.get("NumberOfCores") or 0) for p in procs),
            logical_cores=sum(int(p.get("NumberOfLogicalProcessors") or 0) for p in procs),
            base_clock_ghz=round(int(first.get("CurrentClockSpeed") or 0) / 1000, 2),
            boost_clock_ghz=round(int(first.get("MaxClockSpeed") or 0) / 1000, 2),
            l2_cache_kb=int(first.get("L2CacheSize") or 0),
            l3_cache_kb=int(first.get("L3CacheSize") or 0),
            architecture=platform.machine().lower(),
            instruction_sets=_instruction_sets(flags),
        )


class PsutilCpuProbe(ProbeStrategy):
    """Generic fallback: psutil counts and frequency, no instruction sets."""

    component = Component.CPU
    priority = 10

    async def probe(self, timeout: float) -> CpuInfo:
        return await asyncio.to_thread(self._read)

    def _read(self) -> CpuInfo:
        physical = psutil.cpu_count(logical=False) or 0
        logical = psutil.cpu_count(logical=True) or 0
        if not logical:
            raise ProbeParseFailed("psutil reported no CPUs")
        freq = psutil.cpu_freq()
        base = (freq.current / 1000) if freq else 0.0
        boost = (freq.max / 1000) if freq and freq.max else 0.0
        brand = platform.processor() or platform.machine()
        return CpuInfo(
            detected=True,
            model=brand,
            manufacturer=_manufacturer("", brand),
            physical_cores=physical or logical,
            logical_cores=logical,
            base_clock_ghz=round(base, 2),
            boost_clock_ghz=round(boost, 2),
            architecture=platform.machine(),
        )


CPU_STRATEGIES: tuple[ProbeStrategy, ...] = (
    LscpuProbe(),
    SysctlCpuProbe(),
    WindowsCpuProbe(),
    ProcCpuinfoProbe(),
    PsutilCpuProbe(),
)
