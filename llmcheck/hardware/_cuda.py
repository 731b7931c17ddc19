"""NVIDIA GPU and CUDA runtime probe strategies."""

from __future__ import annotations

import logging
import os
import platform
import re

from ._base import CommandProbe, ProbeStrategy, read_text
from ._errors import ProbeUnavailable
from ._types import Component, FrameworkStatus, GpuInfo

logger = logging.getLogger(__name__)

# name -> (architecture, compute capability, SM count, VRAM GB, speed coefficient)
# Speed coefficient: tok/s per B params at Q4_K_M
# VRAM is the smallest shipping variant; used only when nothing reports memory
_NVIDIA_GPUS: dict[str, tuple[str, str, int, float, int]] = {
    # RTX 50 series
    "RTX 5090": ("Blackwell", "12.0", 170, 32.0, 120),
    "RTX 5080": ("Blackwell", "12.0", 84, 16.0, 95),
    "RTX 5070 Ti": ("Blackwell", "12.0", 70, 16.0, 80),
    "RTX 5070": ("Blackwell", "12.0", 48, 12.0, 70),
    # RTX 40 series
    "RTX 4090": ("Ada Lovelace", "8.9", 128, 24.0, 105),
    "RTX 4080 SUPER": ("Ada Lovelace", "8.9", 80, 16.0, 85),
    "RTX 4080": ("Ada Lovelace", "8.9", 76, 16.0, 80),
    "RTX 4070 Ti SUPER": ("Ada Lovelace", "8.9", 66, 16.0, 70),
    "RTX 4070 Ti": ("Ada Lovelace", "8.9", 60, 12.0, 65),
    "RTX 4070 SUPER": ("Ada Lovelace", "8.9", 56, 12.0, 60),
    "RTX 4070": ("Ada Lovelace", "8.9", 46, 12.0, 55),
    "RTX 4060 Ti": ("Ada Lovelace", "8.9", 34, 8.0, 45),
    "RTX 4060": ("Ada Lovelace", "8.9", 24, 8.0, 40),
    # RTX 30 series
    "RTX 3090 Ti": ("Ampere", "8.6", 84, 24.0, 65),
    "RTX 3090": ("Ampere", "8.6", 82, 24.0, 60),
    "RTX 3080 Ti": ("Ampere", "8.6", 80, 12.0, 55),
    "RTX 3080": ("Ampere", "8.6", 68, 10.0, 50),
    "RTX 3070 Ti": ("Ampere", "8.6", 48, 8.0, 42),
    "RTX 3070": ("Ampere", "8.6", 46, 8.0, 38),
    "RTX 3060 Ti": ("Ampere", "8.6", 38, 8.0, 35),
    "RTX 3060": ("Ampere", "8.6", 28, 8.0, 30),
    # RTX 20 series
    "RTX 2080 Ti": ("Turing", "7.5", 68, 11.0, 35),
    "RTX 2080 SUPER": ("Turing", "7.5", 48, 8.0, 30),
    "RTX 2080": ("Turing", "7.5", 46, 8.0, 28),
    "RTX 2070 SUPER": ("Turing", "7.5", 40, 8.0, 25),
    "RTX 2070": ("Turing", "7.5", 36, 8.0, 22),
    "RTX 2060 SUPER": ("Turing", "7.5", 34, 8.0, 20),
    "RTX 2060": ("Turing", "7.5", 30, 6.0, 18),
    # GTX 16/10 series
    "GTX 1660 Ti": ("Turing", "7.5", 24, 6.0, 15),
    "GTX 1660 SUPER": ("Turing", "7.5", 22, 6.0, 14),
    "GTX 1650": ("Turing", "7.5", 14, 4.0, 8),
    "GTX 1080 Ti": ("Pascal", "6.1", 28, 11.0, 22),
    "GTX 1080": ("Pascal", "6.1", 20, 8.0, 18),
    "GTX 1070 Ti": ("Pascal", "6.1", 19, 8.0, 16),
    "GTX 1070": ("Pascal", "6.1", 15, 8.0, 14),
    # Datacenter
    "H200": ("Hopper", "9.0", 132, 141.0, 200),
    "H100": ("Hopper", "9.0", 132, 80.0, 180),
    "A100": ("Ampere", "8.0", 108, 40.0, 130),
    "A6000": ("Ampere", "8.6", 84, 48.0, 80),
    "A5000": ("Ampere", "8.6", 64, 24.0, 60),
    "A4000": ("Ampere", "8.6", 48, 16.0, 45),
    "L40S": ("Ada Lovelace", "8.9", 142, 48.0, 90),
    "L40": ("Ada Lovelace", "8.9", 142, 48.0, 80),
    "L4": ("Ada Lovelace", "8.9", 58, 24.0, 40),
    "T4": ("Turing", "7.5", 40, 16.0, 20),
    "V100": ("Volta", "7.0", 80, 16.0, 30),
}

# Jetson model substring -> (normalized name, shared memory GB, speed coefficient)
_JETSON_MODELS: dict[str, tuple[str, float, int]] = {
    "agx orin": ("AGX Orin", 32.0, 35),
    "orin nx 16": ("Orin NX 16GB", 16.0, 25),
    "orin nx 8": ("Orin NX 8GB", 8.0, 18),
    "orin nx": ("Orin NX 16GB", 16.0, 25),
    "orin nano 8": ("Orin Nano 8GB", 8.0, 15),
    "orin nano 4": ("Orin Nano 4GB", 4.0, 10),
    "orin nano": ("Orin Nano 8GB", 8.0, 15),
    "orin": ("AGX Orin", 32.0, 35),
    "xavier nx": ("Xavier", 8.0, 12),
    "agx xavier": ("Xavier", 32.0, 12),
    "xavier": ("Xavier", 16.0, 12),
    "tx2": ("TX2", 8.0, 5),
    "nano": ("Nano", 4.0, 4),
}


def lookup_nvidia(gpu_name: str) -> tuple[str, str, int, float, int] | None:
    """Look up a GPU name in the NVIDIA table. Tries longest match first."""
    upper = gpu_name.upper()
    for key in sorted(_NVIDIA_GPUS, key=len, reverse=True):
        if key.upper() in upper:
            return _NVIDIA_GPUS[key]
    return None


def architecture_for_cc(compute_capability: str) -> str:
    cc = float(compute_capability)
    if cc >= 10.0:
        return "Blackwell"
    if cc >= 9.0:
        return "Hopper"
    if cc >= 8.9:
        return "Ada Lovelace"
    if cc >= 8.0:
        return "Ampere"
    if cc >= 7.5:
        return "Turing"
    if cc >= 7.0:
        return "Volta"
    if cc >= 6.0:
        return "Pascal"
    if cc >= 5.0:
        return "Maxwell"
    return "Kepler"


def nvidia_gpu(
    name: str,
    vram_gb: float,
    driver_version: str | None = None,
    compute_capability: str | None = None,
) -> GpuInfo:
    """Build a GpuInfo for an NVIDIA card, filling gaps from the lookup table.

    ``vram_gb <= 0`` means the caller could not read the memory size.
    """
    entry = lookup_nvidia(name)
    arch = None
    sms = 0
    speed = 0
    if entry:
        arch, table_cc, sms, table_vram, speed = entry
        compute_capability = compute_capability or table_cc
        if vram_gb <= 0:
            vram_gb = table_vram
    if compute_capability and not arch:
        arch = architecture_for_cc(compute_capability)
    cc = float(compute_capability) if compute_capability else 0.0
    return GpuInfo(
        detected=True,
        vendor="NVIDIA",
        model=name,
        vram_gb=round(vram_gb, 2),
        compute_capability=compute_capability,
        architecture=arch,
        compute_units=sms,
        is_dedicated=True,
        supports_fp16=cc >= 5.3,
        supports_int8=cc >= 6.1,
        driver_version=driver_version,
        speed_coefficient=speed,
    )


def _best_of(gpus: list[GpuInfo]) -> GpuInfo | None:
    if not gpus:
        return None
    return max(gpus, key=lambda g: (g.vram_gb, g.speed_coefficient))


class NvidiaSmiProbe(CommandProbe):
    """Full nvidia-smi CSV query including compute capability."""

    component = Component.GPU
    priority = 100
    command = (
        "nvidia-smi",
        "--query-gpu=index,name,memory.total,driver_version,compute_cap",
        "--format=csv,noheader,nounits",
    )

    def parse(self, stdout: str) -> GpuInfo | None:
        gpus: list[GpuInfo] = []
        for line in stdout.strip().splitlines():
            parts = [p.strip() for p in line.split(",")]
            if len(parts) < 5:
                continue
            cc = parts[4] if re.fullmatch(r"\d+\.\d+", parts[4]) else None
            gpus.append(
                nvidia_gpu(
                    parts[1],
                    float(parts[2]) / 1024,
                    driver_version=parts[3],
                    compute_capability=cc,
                )
            )
        return _best_of(gpus)


class NvidiaSmiBasicProbe(CommandProbe):
    """Simpler query for drivers that predate the compute_cap field."""

    component = Component.GPU
    priority = 95
    command = (
        "nvidia-smi",
        "--query-gpu=name,memory.total,driver_version",
        "--format=csv,noheader,nounits",
    )

    def parse(self, stdout: str) -> GpuInfo | None:
        gpus: list[GpuInfo] = []
        for line in stdout.strip().splitlines():
            parts = [p.strip() for p in line.split(",")]
            if len(parts) < 3:
                continue
            gpus.append(nvidia_gpu(parts[0], float(parts[1]) / 1024, parts[2]))
        return _best_of(gpus)


class JetsonProbe(ProbeStrategy):
    """NVIDIA Jetson boards have no nvidia-smi; identify them from the device tree."""

    component = Component.GPU
    priority = 80
    platforms = frozenset({"linux"})

    async def probe(self, timeout: float) -> GpuInfo:
        if platform.machine() not in ("aarch64", "arm64"):
            raise ProbeUnavailable("not an ARM board")
        model_str = None
        for path in (
            "/etc/nv_tegra_release",
            "/proc/device-tree/model",
            "/sys/firmware/devicetree/base/model",
        ):
            if os.path.exists(path):
                raw = read_text(path).rstrip("\x00").strip()
                if raw:
                    model_str = raw
                    break
        if not model_str or not (
            "tegra" in model_str.lower()
            or "jetson" in model_str.lower()
            or "nvidia" in model_str.lower()
        ):
            raise ProbeUnavailable("no Jetson identification found")

        name, shared_gb, speed = self._normalize(model_str)
        return GpuInfo(
            detected=True,
            vendor="NVIDIA",
            model=f"NVIDIA Jetson {name}",
            vram_gb=shared_gb,
            architecture="Ampere" if "orin" in name.lower() else "Volta",
            is_dedicated=False,
            unified_memory=True,
            supports_fp16=True,
            supports_int8=True,
            speed_coefficient=speed,
        )

    @staticmethod
    def _normalize(raw: str) -> tuple[str, float, int]:
        lower = raw.lower()
        for key in sorted(_JETSON_MODELS, key=len, reverse=True):
            if key in lower:
                return _JETSON_MODELS[key]
        # Unknown Jetson, conservative
        return _JETSON_MODELS["nano"]


# ---------------------------------------------------------------------------
# CUDA runtime
# ---------------------------------------------------------------------------


class NvidiaSmiCudaProbe(CommandProbe):
    """The nvidia-smi banner reports the driver's CUDA version."""

    component = Component.FRAMEWORKS
    runtime = "cuda"
    priority = 100
    command = ("nvidia-smi",)

    def parse(self, stdout: str) -> FrameworkStatus | None:
        match = re.search(r"CUDA Version:\s*([\d.]+)", stdout)
        if not match:
            return None
        return FrameworkStatus(present=True, version=match.group(1))


class NvccProbe(CommandProbe):
    component = Component.FRAMEWORKS
    runtime = "cuda"
    priority = 50
    command = ("nvcc", "--version")

    def parse(self, stdout: str) -> FrameworkStatus | None:
        match = re.search(r"release\s+([\d.]+)", stdout)
        if not match:
            return None
        return FrameworkStatus(present=True, version=match.group(1))
