"""Shared dataclasses for hardware detection."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Generic, TypeVar, Union


class Component(str, Enum):
    CPU = "cpu"
    GPU = "gpu"
    MEMORY = "memory"
    STORAGE = "storage"
    FRAMEWORKS = "frameworks"


class StorageType(str, Enum):
    HDD = "HDD"
    SSD = "SSD"
    NVME = "NVMe"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class CpuInfo:
    detected: bool = False
    model: str = "Unknown"
    manufacturer: str = "Unknown"
    physical_cores: int = 0
    logical_cores: int = 0
    base_clock_ghz: float = 0.0
    boost_clock_ghz: float = 0.0
    l2_cache_kb: int = 0
    l3_cache_kb: int = 0
    architecture: str = ""  # "x86_64", "arm64"
    instruction_sets: tuple[str, ...] = ()

    @property
    def has_avx2(self) -> bool:
        return "avx2" in self.instruction_sets

    @property
    def has_avx512(self) -> bool:
        return "avx512f" in self.instruction_sets

    @property
    def has_neon(self) -> bool:
        return "neon" in self.instruction_sets or self.architecture in (
            "arm64",
            "aarch64",
        )

    @property
    def clock_ghz(self) -> float:
        return max(self.base_clock_ghz, self.boost_clock_ghz)

    def sanitized(self) -> CpuInfo:
        physical = max(self.physical_cores, 0)
        logical = max(self.logical_cores, physical)
        return replace(self, physical_cores=physical, logical_cores=logical)


@dataclass(frozen=True)
class GpuInfo:
    detected: bool = False
    vendor: str = "Unknown"  # "NVIDIA", "AMD", "Intel", "Apple"
    model: str = "Unknown"
    vram_gb: float = 0.0
    compute_capability: str | None = None
    architecture: str | None = None
    compute_units: int = 0  # SMs / CUs / GPU cores
    is_dedicated: bool = False
    unified_memory: bool = False
    supports_fp16: bool = False
    supports_int8: bool = False
    driver_version: str | None = None
    speed_coefficient: int = 0  # tok/s per B params at Q4

    def sanitized(self) -> GpuInfo:
        return replace(
            self,
            vram_gb=max(self.vram_gb, 0.0),
            compute_units=max(self.compute_units, 0),
        )


@dataclass(frozen=True)
class MemoryInfo:
    detected: bool = False
    total_gb: float = 0.0
    available_gb: float = 0.0
    type: str = "Unknown"  # "DDR4", "DDR5", "LPDDR5", ...
    speed_mhz: int = 0

    def sanitized(self) -> MemoryInfo:
        total = max(self.total_gb, 0.0)
        return replace(
            self,
            total_gb=total,
            available_gb=min(max(self.available_gb, 0.0), total),
        )


@dataclass(frozen=True)
class StorageInfo:
    detected: bool = False
    type: StorageType = StorageType.UNKNOWN
    total_gb: float = 0.0
    available_gb: float = 0.0
    read_mbps: int = 0
    write_mbps: int = 0
    device: str | None = None

    def sanitized(self) -> StorageInfo:
        total = max(self.total_gb, 0.0)
        return replace(
            self,
            total_gb=total,
            available_gb=min(max(self.available_gb, 0.0), total),
        )


@dataclass(frozen=True)
class FrameworkStatus:
    present: bool = False
    version: str | None = None


@dataclass(frozen=True)
class FrameworksInfo:
    cuda: FrameworkStatus = FrameworkStatus()
    rocm: FrameworkStatus = FrameworkStatus()
    metal: FrameworkStatus = FrameworkStatus()
    directml: FrameworkStatus = FrameworkStatus()
    openvino: FrameworkStatus = FrameworkStatus()

    @property
    def detected(self) -> bool:
        return any(status.present for status in self.runtimes().values())

    def runtimes(self) -> dict[str, FrameworkStatus]:
        return {
            "cuda": self.cuda,
            "rocm": self.rocm,
            "metal": self.metal,
            "directml": self.directml,
            "openvino": self.openvino,
        }


@dataclass(frozen=True)
class HardwareSnapshot:
    cpu: CpuInfo = CpuInfo()
    gpu: GpuInfo = GpuInfo()
    memory: MemoryInfo = MemoryInfo()
    storage: StorageInfo = StorageInfo()
    frameworks: FrameworksInfo = FrameworksInfo()
    detected_at: float = 0.0
    platform: str = ""  # "darwin", "linux", "win32"
    os_name: str = ""
    diagnostics: tuple[str, ...] = ()
    sources: tuple[tuple[str, str], ...] = ()  # sorted (component, strategy) pairs

    @property
    def has_gpu(self) -> bool:
        return self.gpu.detected

    def source(self, key: str) -> str | None:
        """Strategy that produced *key* ("cpu", "frameworks.cuda", ...)."""
        return dict(self.sources).get(key)


T = TypeVar("T")


@dataclass(frozen=True)
class Detected(Generic[T]):
    """A component probe that produced a value."""

    value: T
    source: str


@dataclass(frozen=True)
class Undetected:
    """A component whose strategies were all exhausted."""

    reason: str


ComponentResult = Union[Detected, Undetected]
