"""Vendor-neutral GPU probe strategies (lspci, Windows CIM)."""

from __future__ import annotations

import json
import logging
import re

from ._base import CommandProbe, ProbeStrategy
from ._cuda import JetsonProbe, NvidiaSmiBasicProbe, NvidiaSmiProbe, lookup_nvidia, nvidia_gpu
from ._metal import SysctlAppleGpuProbe, SystemProfilerGpuProbe
from ._rocm import (
    _AMD_PCI_DEVICES,
    DrmSysfsGpuProbe,
    RocminfoProbe,
    RocmSmiProbe,
    amd_gpu,
)
from ._types import Component, GpuInfo

logger = logging.getLogger(__name__)

_PCI_VENDORS: dict[str, str] = {
    "10de": "NVIDIA",
    "1002": "AMD",
    "8086": "Intel",
}

# Discrete vendors first when a machine reports more than one adapter
_VENDOR_RANK: dict[str, int] = {"NVIDIA": 3, "AMD": 2, "Intel": 1}


def vendor_from_name(name: str) -> str:
    lower = name.lower()
    if any(k in lower for k in ("nvidia", "geforce", "quadro", "tesla", "rtx")):
        return "NVIDIA"
    if any(k in lower for k in ("amd", "radeon", "instinct", "ati ")):
        return "AMD"
    if "intel" in lower or "arc " in lower:
        return "Intel"
    if "apple" in lower:
        return "Apple"
    return "Unknown"


def intel_gpu(name: str, vram_gb: float = 0.0) -> GpuInfo:
    # Arc cards are the only dedicated Intel parts
    dedicated = "arc" in name.lower() and vram_gb > 2.0
    return GpuInfo(
        detected=True,
        vendor="Intel",
        model=name,
        vram_gb=round(vram_gb, 2),
        architecture="Xe" if ("arc" in name.lower() or "iris xe" in name.lower()) else None,
        is_dedicated=dedicated,
        supports_fp16=True,
        supports_int8=dedicated,
    )


def _pick(gpus: list[GpuInfo]) -> GpuInfo | None:
    if not gpus:
        return None
    return max(gpus, key=lambda g: (_VENDOR_RANK.get(g.vendor, 0), g.vram_gb))


class LspciGpuProbe(CommandProbe):
    """PCI listing: identifies the adapter even without vendor tooling.

    VRAM comes from the lookup tables, for cards that are in them.
    """

    component = Component.GPU
    priority = 40
    platforms = frozenset({"linux"})
    command = ("lspci", "-nn")

    def parse(self, stdout: str) -> GpuInfo | None:
        gpus: list[GpuInfo] = []
        for line in stdout.splitlines():
            if not re.search(r"VGA|3D controller|Display controller", line):
                continue
            ids = re.search(r"\[([0-9a-fA-F]{4}):([0-9a-fA-F]{4})\]\s*(?:\(rev|$)", line)
            if not ids:
                continue
            vendor = _PCI_VENDORS.get(ids.group(1).lower())
            device_id = ids.group(2).lower()
            # "... [0300]: NVIDIA Corporation AD107 [GeForce RTX 4060] [10de:2882]"
            desc = line.split("]: ", 1)[-1]
            bracketed = re.findall(r"\[([^\]]+)\]", desc)
            marketing = next(
                (b for b in bracketed if not re.fullmatch(r"[0-9a-fA-F]{4}(:[0-9a-fA-F]{4})?", b)),
                None,
            )
            if vendor == "NVIDIA":
                gpus.append(nvidia_gpu(marketing or desc.split("[")[0].strip(), 0.0))
            elif vendor == "AMD":
                if device_id in _AMD_PCI_DEVICES:
                    name, vram_gb = _AMD_PCI_DEVICES[device_id]
                else:
                    name, vram_gb = marketing or f"Radeon [{device_id}]", 0.0
                gpus.append(amd_gpu(name, vram_gb))
            elif vendor == "Intel":
                gpus.append(intel_gpu(marketing or desc.split("[")[0].strip()))
        return _pick(gpus)


class WindowsGpuProbe(CommandProbe):
    """Win32_VideoController via PowerShell.

    AdapterRAM is a 32-bit field and tops out at 4 GB; cards in the NVIDIA
    or AMD tables get their known VRAM instead.
    """

    component = Component.GPU
    priority = 60
    platforms = frozenset({"win32"})
    command = (
        "powershell",
        "-NoProfile",
        "-NonInteractive",
        "-Command",
        "Get-CimInstance Win32_VideoController | Select-Object Name,AdapterRAM,"
        "DriverVersion,AdapterCompatibility | ConvertTo-Json",
    )

    def parse(self, stdout: str) -> GpuInfo | None:
        data = json.loads(stdout)
        adapters = data if isinstance(data, list) else [data]
        gpus: list[GpuInfo] = []
        for adapter in adapters:
            name = str(adapter.get("Name") or "").strip()
            if not name or "basic display" in name.lower() or "remote" in name.lower():
                continue
            vram_gb = int(adapter.get("AdapterRAM") or 0) / (1024**3)
            driver = adapter.get("DriverVersion")
            vendor = vendor_from_name(f"{adapter.get('AdapterCompatibility') or ''} {name}")
            if vendor == "NVIDIA":
                entry = lookup_nvidia(name)
                known = entry[3] if entry else 0.0
                gpus.append(nvidia_gpu(name, max(vram_gb, known), driver_version=driver))
            elif vendor == "AMD":
                known = next(
                    (v for n, v in _AMD_PCI_DEVICES.values() if n.upper() in name.upper()),
                    0.0,
                )
                gpus.append(amd_gpu(name, max(vram_gb, known)))
            elif vendor == "Intel":
                gpus.append(intel_gpu(name, vram_gb))
        return _pick(gpus)


GPU_STRATEGIES: tuple[ProbeStrategy, ...] = (
    NvidiaSmiProbe(),
    NvidiaSmiBasicProbe(),
    RocmSmiProbe(),
    RocminfoProbe(),
    JetsonProbe(),
    SystemProfilerGpuProbe(),
    SysctlAppleGpuProbe(),
    WindowsGpuProbe(),
    LspciGpuProbe(),
    DrmSysfsGpuProbe(),
)
