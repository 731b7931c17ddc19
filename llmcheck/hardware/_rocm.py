"""AMD GPU and ROCm runtime probe strategies."""

from __future__ import annotations

import logging
import os
import re

from ._base import CommandProbe, ProbeStrategy, read_text
from ._errors import ProbeParseFailed, ProbeUnavailable
from ._types import Component, FrameworkStatus, GpuInfo

logger = logging.getLogger(__name__)

AMD_VENDOR_ID = "0x1002"

# AMD PCI device ID -> (name, estimated_vram_gb)
_AMD_PCI_DEVICES: dict[str, tuple[str, float]] = {
    # RDNA 4
    "7551": ("Radeon RX 9070 XT", 16.0),
    "7552": ("Radeon RX 9070", 16.0),
    # RDNA 3
    "744c": ("Radeon RX 7900 XTX", 24.0),
    "7448": ("Radeon RX 7900 XT", 20.0),
    "745e": ("Radeon RX 7900 GRE", 16.0),
    "7480": ("Radeon RX 7800 XT", 16.0),
    "7470": ("Radeon RX 7700 XT", 12.0),
    "7460": ("Radeon RX 7600 XT", 16.0),
    "7422": ("Radeon RX 7600", 8.0),
    # RDNA 2
    "73bf": ("Radeon RX 6900 XT", 16.0),
    "73a5": ("Radeon RX 6950 XT", 16.0),
    "73df": ("Radeon RX 6700 XT", 12.0),
    "73ff": ("Radeon RX 6600 XT", 8.0),
    "73e3": ("Radeon RX 6600", 8.0),
    # CDNA
    "740f": ("Instinct MI300X", 192.0),
    "740c": ("Instinct MI300A", 128.0),
    "7408": ("Instinct MI250X", 128.0),
    "7388": ("Instinct MI250", 128.0),
    "738c": ("Instinct MI210", 64.0),
    "738e": ("Instinct MI100", 32.0),
}

# name -> (architecture, compute units, speed coefficient)
_AMD_GPUS: dict[str, tuple[str, int, int]] = {
    "MI300X": ("CDNA3", 304, 150),
    "MI300A": ("CDNA3", 228, 120),
    "MI250X": ("CDNA2", 220, 90),
    "MI250": ("CDNA2", 208, 80),
    "MI210": ("CDNA2", 104, 60),
    "MI100": ("CDNA", 120, 40),
    "RX 9070 XT": ("RDNA4", 64, 60),
    "RX 9070": ("RDNA4", 56, 50),
    "RX 7900 XTX": ("RDNA3", 96, 55),
    "RX 7900 XT": ("RDNA3", 84, 48),
    "RX 7900 GRE": ("RDNA3", 80, 40),
    "RX 7800 XT": ("RDNA3", 60, 38),
    "RX 7700 XT": ("RDNA3", 54, 30),
    "RX 7600 XT": ("RDNA3", 32, 25),
    "RX 7600": ("RDNA3", 32, 20),
    "RX 6950 XT": ("RDNA2", 80, 35),
    "RX 6900 XT": ("RDNA2", 80, 32),
    "RX 6700 XT": ("RDNA2", 40, 22),
    "RX 6600 XT": ("RDNA2", 32, 18),
    "RX 6600": ("RDNA2", 28, 15),
}

# gfx target prefix -> architecture, for GPUs missing from the table
_GFX_ARCH: tuple[tuple[str, str], ...] = (
    ("gfx12", "RDNA4"),
    ("gfx11", "RDNA3"),
    ("gfx103", "RDNA2"),
    ("gfx101", "RDNA"),
    ("gfx94", "CDNA3"),
    ("gfx90a", "CDNA2"),
    ("gfx908", "CDNA"),
)


def lookup_amd(gpu_name: str) -> tuple[str, int, int] | None:
    upper = gpu_name.upper()
    for key in sorted(_AMD_GPUS, key=len, reverse=True):
        if key.upper() in upper:
            return _AMD_GPUS[key]
    return None


def amd_gpu(
    name: str,
    vram_gb: float,
    gfx_version: str | None = None,
    compute_units: int = 0,
) -> GpuInfo:
    """Build a GpuInfo for an AMD card, filling gaps from the lookup tables."""
    arch = None
    speed = 0
    entry = lookup_amd(name)
    if entry:
        arch, table_cus, speed = entry
        compute_units = compute_units or table_cus
    if not arch and gfx_version:
        arch = next((a for prefix, a in _GFX_ARCH if gfx_version.startswith(prefix)), None)
    # Anything RDNA/CDNA runs packed fp16 and int8 dot products
    modern = bool(arch and (arch.startswith("RDNA") or arch.startswith("CDNA")))
    return GpuInfo(
        detected=True,
        vendor="AMD",
        model=name if name.startswith("AMD") else f"AMD {name}",
        vram_gb=round(vram_gb, 2),
        architecture=arch,
        compute_units=compute_units,
        is_dedicated=vram_gb > 2.0,
        supports_fp16=modern,
        supports_int8=modern,
        speed_coefficient=speed,
    )


def _memory_to_gb(raw: str) -> float:
    match = re.search(r"([\d.]+)\s*(MB|GB|bytes)?", raw)
    if not match:
        return 0.0
    val = float(match.group(1))
    unit = (match.group(2) or "bytes").upper()
    if unit == "GB":
        return val
    if unit == "MB":
        return val / 1024
    return val / (1024**3)


def list_drm_cards(drm_path: str = "/sys/class/drm") -> list[str]:
    """``/sys/class/drm/cardN`` directories, skipping connector entries."""
    if not os.path.isdir(drm_path):
        return []
    return sorted(
        os.path.join(drm_path, entry)
        for entry in os.listdir(drm_path)
        if re.fullmatch(r"card\d+", entry)
    )


class RocmSmiProbe(CommandProbe):
    component = Component.GPU
    priority = 90
    platforms = frozenset({"linux"})
    command = ("rocm-smi", "--showid", "--showproductname", "--showmeminfo", "vram")

    def parse(self, stdout: str) -> GpuInfo | None:
        names: dict[int, str] = {}
        vram: dict[int, float] = {}
        for line in stdout.splitlines():
            line = line.strip()
            idx_match = re.match(r"GPU\[(\d+)\]", line)
            # Lines look like "GPU[0] : Card series: Radeon RX 7900 XTX"
            fields = [f.strip() for f in line.split(":")]
            if not idx_match or len(fields) < 3:
                continue
            idx = int(idx_match.group(1))
            label, value = fields[-2].lower(), fields[-1]
            if "card series" in label or "product name" in label:
                names[idx] = value
            elif "vram total memory" in label:
                vram[idx] = _memory_to_gb(value)

        gpus = [
            amd_gpu(names.get(idx, f"GPU {idx}"), vram.get(idx, 0.0))
            for idx in sorted(set(names) | set(vram))
        ]
        if not gpus:
            return None
        return max(gpus, key=lambda g: g.vram_gb)


class RocminfoProbe(CommandProbe):
    component = Component.GPU
    priority = 85
    platforms = frozenset({"linux"})
    command = ("rocminfo",)

    def parse(self, stdout: str) -> GpuInfo | None:
        gpus: list[GpuInfo] = []
        for block in stdout.split("*******"):
            agent_type = re.search(r"Device Type:\s*(\w+)", block)
            if not agent_type or agent_type.group(1).upper() != "GPU":
                continue
            gfx_match = re.search(r"Name:\s*(gfx\w+)", block)
            marketing = re.search(r"Marketing Name:\s*(.+)", block)
            name = marketing.group(1).strip() if marketing else "GPU"
            cus = re.search(r"Compute Unit:\s*(\d+)", block)
            # The largest pool on a GPU agent is its VRAM
            sizes = [int(s) for s in re.findall(r"Size:\s*(\d+)\s*\(.*?\)\s*KB", block)]
            vram_gb = max(sizes, default=0) / (1024**2)
            gpus.append(
                amd_gpu(
                    name,
                    vram_gb,
                    gfx_version=gfx_match.group(1) if gfx_match else None,
                    compute_units=int(cus.group(1)) if cus else 0,
                )
            )
        if not gpus:
            return None
        return max(gpus, key=lambda g: g.vram_gb)


class DrmSysfsGpuProbe(ProbeStrategy):
    """Read ``/sys/class/drm/card*`` for an AMD vendor id."""

    component = Component.GPU
    priority = 20
    platforms = frozenset({"linux"})

    def __init__(self, drm_path: str = "/sys/class/drm") -> None:
        self.drm_path = drm_path

    async def probe(self, timeout: float) -> GpuInfo:
        cards = list_drm_cards(self.drm_path)
        if not cards:
            raise ProbeUnavailable(f"{self.drm_path} has no cards")
        gpus: list[GpuInfo] = []
        for card_dir in cards:
            device_dir = os.path.join(card_dir, "device")
            vendor_path = os.path.join(device_dir, "vendor")
            if not os.path.isfile(vendor_path) or read_text(vendor_path).strip() != AMD_VENDOR_ID:
                continue
            device_path = os.path.join(device_dir, "device")
            device_id = ""
            if os.path.isfile(device_path):
                device_id = read_text(device_path).strip().lower().replace("0x", "")

            vram_gb = 0.0
            vram_path = os.path.join(device_dir, "mem_info_vram_total")
            if os.path.isfile(vram_path):
                try:
                    vram_gb = int(read_text(vram_path).strip()) / (1024**3)
                except ValueError as exc:
                    raise ProbeParseFailed(f"{vram_path}: {exc}") from exc

            if device_id in _AMD_PCI_DEVICES:
                name, table_vram = _AMD_PCI_DEVICES[device_id]
                vram_gb = vram_gb or table_vram
            else:
                name = f"Radeon [{device_id or 'unknown'}]"
            gpus.append(amd_gpu(name, vram_gb))
        if not gpus:
            raise ProbeUnavailable("no AMD card in sysfs")
        return max(gpus, key=lambda g: g.vram_gb)


# ---------------------------------------------------------------------------
# ROCm runtime
# ---------------------------------------------------------------------------


class RocmSmiVersionProbe(CommandProbe):
    component = Component.FRAMEWORKS
    runtime = "rocm"
    priority = 100
    platforms = frozenset({"linux"})
    command = ("rocm-smi", "--version")

    def parse(self, stdout: str) -> FrameworkStatus | None:
        for line in stdout.splitlines():
            if "version" in line.lower():
                match = re.search(r"(\d+\.\d+(?:\.\d+)?)", line)
                if match:
                    return FrameworkStatus(present=True, version=match.group(1))
        return None


class RocmDirectoryProbe(ProbeStrategy):
    """An installed ROCm leaves its version under ``/opt/rocm/.info``."""

    component = Component.FRAMEWORKS
    runtime = "rocm"
    priority = 50
    platforms = frozenset({"linux"})

    def __init__(self, root: str = "/opt/rocm") -> None:
        self.root = root

    async def probe(self, timeout: float) -> FrameworkStatus:
        if not os.path.isdir(self.root):
            raise ProbeUnavailable(f"{self.root} does not exist")
        version_file = os.path.join(self.root, ".info", "version")
        if not os.path.isfile(version_file):
            return FrameworkStatus(present=True)
        match = re.match(r"(\d+\.\d+(?:\.\d+)?)", read_text(version_file).strip())
        return FrameworkStatus(present=True, version=match.group(1) if match else None)
