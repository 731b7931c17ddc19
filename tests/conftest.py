"""Shared hardware snapshots for scoring, matching and advisor tests."""

from __future__ import annotations

from dataclasses import replace

import pytest

from llmcheck.hardware import (
    CpuInfo,
    FrameworksInfo,
    FrameworkStatus,
    GpuInfo,
    HardwareSnapshot,
    MemoryInfo,
    StorageInfo,
    StorageType,
)


def desktop_cpu(cores: int = 8, clock: float = 3.6) -> CpuInfo:
    return CpuInfo(
        detected=True,
        model="Intel(R) Core(TM) i7-9700K CPU @ 3.60GHz",
        manufacturer="Intel",
        physical_cores=cores,
        logical_cores=cores,
        base_clock_ghz=clock,
        architecture="x86_64",
        instruction_sets=("sse4_2", "avx", "avx2", "fma"),
    )


def rtx_4060() -> GpuInfo:
    return GpuInfo(
        detected=True,
        vendor="NVIDIA",
        model="NVIDIA GeForce RTX 4060",
        vram_gb=8.0,
        compute_capability="8.9",
        architecture="Ada Lovelace",
        compute_units=24,
        is_dedicated=True,
        supports_fp16=True,
        supports_int8=True,
        speed_coefficient=40,
    )


def make_snapshot(**overrides) -> HardwareSnapshot:
    """8-core desktop, RTX 4060 8 GB, 16 GB RAM, 250 GB free SSD, no runtimes."""
    base = HardwareSnapshot(
        cpu=desktop_cpu(),
        gpu=rtx_4060(),
        memory=MemoryInfo(detected=True, total_gb=16.0, available_gb=10.0, type="DDR4", speed_mhz=3200),
        storage=StorageInfo(
            detected=True,
            type=StorageType.SSD,
            total_gb=500.0,
            available_gb=250.0,
            read_mbps=550,
            write_mbps=500,
        ),
        frameworks=FrameworksInfo(),
        detected_at=1_700_000_000.0,
        platform="linux",
        os_name="Linux 6.8.0",
    )
    return replace(base, **overrides)


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def desktop() -> HardwareSnapshot:
    return make_snapshot()


@pytest.fixture
def no_gpu() -> HardwareSnapshot:
    return make_snapshot(gpu=GpuInfo())


@pytest.fixture
def cuda_desktop() -> HardwareSnapshot:
    return make_snapshot(frameworks=FrameworksInfo(cuda=FrameworkStatus(present=True, version="12.4")))


@pytest.fixture
def m2_max() -> HardwareSnapshot:
    return HardwareSnapshot(
        cpu=CpuInfo(
            detected=True,
            model="Apple M2 Max",
            manufacturer="Apple",
            physical_cores=12,
            logical_cores=12,
            base_clock_ghz=3.5,
            architecture="arm64",
            instruction_sets=("neon",),
        ),
        gpu=GpuInfo(
            detected=True,
            vendor="Apple",
            model="Apple M2 Max",
            vram_gb=64.0,
            architecture="Apple GPU",
            compute_units=38,
            unified_memory=True,
            supports_fp16=True,
            supports_int8=True,
            speed_coefficient=80,
        ),
        memory=MemoryInfo(detected=True, total_gb=64.0, available_gb=40.0, type="LPDDR5"),
        storage=StorageInfo(detected=True, type=StorageType.NVME, total_gb=1000.0, available_gb=600.0),
        frameworks=FrameworksInfo(metal=FrameworkStatus(present=True, version="3")),
        platform="darwin",
        os_name="Darwin 23.4.0",
    )
