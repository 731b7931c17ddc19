"""Tests for the detection orchestrator (llmcheck.hardware._detector)."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import pytest

from llmcheck.config import DetectionConfig
from llmcheck.hardware import (
    Component,
    CpuInfo,
    FrameworkStatus,
    GpuInfo,
    HardwareDetector,
    MemoryInfo,
    ProbeExecutionFailed,
    ProbeStrategy,
    ProbeUnavailable,
    detect_hardware,
)


class FakeProbe(ProbeStrategy):
    """Scripted strategy: returns *result*, raises *error* or hangs for *delay*."""

    def __init__(
        self,
        name: str,
        component: Component,
        priority: int = 50,
        result: Any = None,
        error: BaseException | None = None,
        delay: float = 0.0,
        platforms: frozenset[str] | None = None,
        runtime: str | None = None,
    ) -> None:
        self._name = name
        self.component = component
        self.priority = priority
        self.result = result
        self.error = error
        self.delay = delay
        self.platforms = platforms
        self.runtime = runtime
        self.calls = 0
        self.cancelled = False

    @property
    def name(self) -> str:
        return self._name

    async def probe(self, timeout: float) -> Any:
        self.calls += 1
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.result


_CPU = CpuInfo(detected=True, model="Test CPU", physical_cores=8, logical_cores=16)
_GPU = GpuInfo(detected=True, vendor="NVIDIA", model="Test GPU", vram_gb=8.0, is_dedicated=True)


def _detector(*strategies: ProbeStrategy, timeout: float = 0.5, platform: str = "linux") -> HardwareDetector:
    return HardwareDetector(
        strategies,
        config=DetectionConfig(probe_timeout=timeout),
        platform_name=platform,
        clock=lambda: 1234.0,
    )


# ---------------------------------------------------------------------------
# Fallback chains
# ---------------------------------------------------------------------------


class TestFallback:
    @pytest.mark.asyncio
    async def test_falls_back_to_lower_priority(self) -> None:
        primary = FakeProbe("Primary", Component.CPU, 100, error=ProbeUnavailable("lscpu not found"))
        fallback = FakeProbe("Fallback", Component.CPU, 10, result=_CPU)
        snapshot = await _detector(primary, fallback).detect()

        assert snapshot.cpu.model == "Test CPU"
        assert snapshot.source("cpu") == "Fallback"
        assert "cpu: Primary: unavailable" in snapshot.diagnostics
        assert "cpu: detected via Fallback" in snapshot.diagnostics

    @pytest.mark.asyncio
    async def test_higher_priority_wins_regardless_of_registration_order(self) -> None:
        low = FakeProbe("Low", Component.CPU, 10, result=CpuInfo(detected=True, model="low"))
        high = FakeProbe("High", Component.CPU, 90, result=CpuInfo(detected=True, model="high"))
        snapshot = await _detector(low, high).detect()
        assert snapshot.cpu.model == "high"
        assert low.calls == 0

    @pytest.mark.asyncio
    async def test_equal_priority_keeps_registration_order(self) -> None:
        first = FakeProbe("First", Component.CPU, 50, result=CpuInfo(detected=True, model="first"))
        second = FakeProbe("Second", Component.CPU, 50, result=CpuInfo(detected=True, model="second"))
        snapshot = await _detector(first, second).detect()
        assert snapshot.cpu.model == "first"

    @pytest.mark.asyncio
    async def test_unexpected_exception_moves_to_next_strategy(self) -> None:
        broken = FakeProbe("Broken", Component.GPU, 100, error=RuntimeError("boom"))
        good = FakeProbe("Good", Component.GPU, 10, result=_GPU)
        snapshot = await _detector(broken, good).detect()
        assert snapshot.gpu.model == "Test GPU"
        assert "gpu: Broken: RuntimeError" in snapshot.diagnostics

    @pytest.mark.asyncio
    async def test_all_strategies_exhausted(self) -> None:
        a = FakeProbe("A", Component.GPU, 100, error=ProbeUnavailable("no nvidia-smi"))
        b = FakeProbe("B", Component.GPU, 10, error=ProbeExecutionFailed("exit 1"))
        snapshot = await _detector(a, b).detect()
        assert snapshot.gpu.detected is False
        assert snapshot.has_gpu is False
        assert snapshot.source("gpu") == "undetected: B: execution failed"

    @pytest.mark.asyncio
    async def test_no_applicable_strategy(self) -> None:
        linux_only = FakeProbe("LinuxOnly", Component.CPU, result=_CPU, platforms=frozenset({"linux"}))
        snapshot = await _detector(linux_only, platform="win32").detect()
        assert snapshot.cpu.detected is False
        assert linux_only.calls == 0
        assert "cpu: no applicable strategy on win32" in snapshot.diagnostics
        assert snapshot.platform == "win32"


# ---------------------------------------------------------------------------
# Timeouts and cancellation
# ---------------------------------------------------------------------------


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_hung_probe_is_abandoned_within_timeout(self) -> None:
        hung = FakeProbe("Hung", Component.MEMORY, 100, result=MemoryInfo(detected=True), delay=30.0)
        cpu = FakeProbe("Cpu", Component.CPU, result=_CPU)
        started = time.monotonic()
        snapshot = await _detector(hung, cpu, timeout=0.1).detect()
        elapsed = time.monotonic() - started

        assert elapsed < 2.0
        assert hung.cancelled is True
        assert snapshot.memory.detected is False
        assert snapshot.source("memory") == "undetected: Hung: timeout"
        # other components are unaffected
        assert snapshot.cpu.detected is True

    @pytest.mark.asyncio
    async def test_timeout_falls_through_to_next_strategy(self) -> None:
        slow = FakeProbe("Slow", Component.MEMORY, 100, delay=30.0)
        fast = FakeProbe("Fast", Component.MEMORY, 10, result=MemoryInfo(detected=True, total_gb=16.0))
        snapshot = await _detector(slow, fast, timeout=0.1).detect()
        assert snapshot.memory.total_gb == 16.0
        assert "memory: Slow: timeout" in snapshot.diagnostics

    @pytest.mark.asyncio
    async def test_components_run_concurrently(self) -> None:
        probes = [
            FakeProbe("Cpu", Component.CPU, result=_CPU, delay=0.2),
            FakeProbe("Gpu", Component.GPU, result=_GPU, delay=0.2),
            FakeProbe("Mem", Component.MEMORY, result=MemoryInfo(detected=True, total_gb=8.0), delay=0.2),
        ]
        started = time.monotonic()
        await _detector(*probes, timeout=1.0).detect()
        assert time.monotonic() - started < 0.55

    @pytest.mark.asyncio
    async def test_cancel_event_set_before_start(self) -> None:
        cpu = FakeProbe("Cpu", Component.CPU, result=_CPU)
        cancel = asyncio.Event()
        cancel.set()
        snapshot = await _detector(cpu).detect(cancel)
        assert cpu.calls == 0
        assert snapshot.cpu.detected is False
        assert snapshot.source("cpu") == "undetected: Cpu: cancelled"

    @pytest.mark.asyncio
    async def test_cancel_event_interrupts_running_probe(self) -> None:
        hung = FakeProbe("Hung", Component.CPU, result=_CPU, delay=30.0)
        cancel = asyncio.Event()
        detector = _detector(hung, timeout=10.0)

        async def fire() -> None:
            await asyncio.sleep(0.05)
            cancel.set()

        started = time.monotonic()
        snapshot, _ = await asyncio.gather(detector.detect(cancel), fire())
        assert time.monotonic() - started < 2.0
        assert hung.cancelled is True
        assert snapshot.cpu.detected is False
        assert "cpu: Hung: cancelled" in snapshot.diagnostics

    @pytest.mark.asyncio
    async def test_cancelled_attempt_stops_its_strategy(self) -> None:
        hung = FakeProbe("Hung", Component.CPU, result=_CPU, delay=30.0)
        detector = _detector(hung, timeout=10.0)
        attempt = asyncio.ensure_future(detector._attempt(hung, asyncio.Event()))
        while hung.calls == 0:
            await asyncio.sleep(0.01)
        attempt.cancel()
        with pytest.raises(asyncio.CancelledError):
            await attempt
        # stopped before the attempt finished, not at loop teardown
        assert hung.cancelled is True


# ---------------------------------------------------------------------------
# Snapshot caching
# ---------------------------------------------------------------------------


class TestCaching:
    @pytest.mark.asyncio
    async def test_detect_reuses_snapshot(self) -> None:
        cpu = FakeProbe("Cpu", Component.CPU, result=_CPU)
        detector = _detector(cpu)
        assert detector.snapshot is None
        first = await detector.detect()
        second = await detector.detect()
        assert first is second
        assert detector.snapshot is first
        assert cpu.calls == 1

    @pytest.mark.asyncio
    async def test_refresh_runs_a_new_cycle(self) -> None:
        cpu = FakeProbe("Cpu", Component.CPU, result=_CPU)
        detector = _detector(cpu)
        first = await detector.detect()
        second = await detector.refresh()
        assert first is not second
        assert detector.snapshot is second
        assert cpu.calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_share_one_cycle(self) -> None:
        cpu = FakeProbe("Cpu", Component.CPU, result=_CPU, delay=0.1)
        detector = _detector(cpu)
        a, b, c = await asyncio.gather(detector.refresh(), detector.refresh(), detector.detect())
        assert a is b is c
        assert cpu.calls == 1

    @pytest.mark.asyncio
    async def test_snapshot_metadata(self) -> None:
        snapshot = await _detector(FakeProbe("Cpu", Component.CPU, result=_CPU)).detect()
        assert snapshot.detected_at == 1234.0
        assert snapshot.platform == "linux"
        assert snapshot.os_name

    def test_blocking_wrapper(self) -> None:
        cpu = FakeProbe("Cpu", Component.CPU, result=_CPU)
        detector = _detector(cpu)
        snapshot = detect_hardware(detector)
        assert snapshot.cpu.model == "Test CPU"
        assert detect_hardware(detector) is snapshot
        assert detect_hardware(detector, refresh=True) is not snapshot
        assert cpu.calls == 2


# ---------------------------------------------------------------------------
# Invariants and frameworks
# ---------------------------------------------------------------------------


class TestSanitizing:
    @pytest.mark.asyncio
    async def test_available_never_exceeds_total(self) -> None:
        mem = FakeProbe(
            "Mem", Component.MEMORY, result=MemoryInfo(detected=True, total_gb=16.0, available_gb=20.0)
        )
        snapshot = await _detector(mem).detect()
        assert snapshot.memory.available_gb == 16.0

    @pytest.mark.asyncio
    async def test_logical_cores_at_least_physical(self) -> None:
        cpu = FakeProbe(
            "Cpu", Component.CPU, result=CpuInfo(detected=True, physical_cores=8, logical_cores=4)
        )
        snapshot = await _detector(cpu).detect()
        assert snapshot.cpu.logical_cores == 8

    @pytest.mark.asyncio
    async def test_negative_vram_clamped(self) -> None:
        gpu = FakeProbe("Gpu", Component.GPU, result=GpuInfo(detected=True, vram_gb=-1.0))
        snapshot = await _detector(gpu).detect()
        assert snapshot.gpu.vram_gb == 0.0

    @pytest.mark.asyncio
    async def test_sources_are_immutable_sorted_pairs(self) -> None:
        cpu = FakeProbe("Cpu", Component.CPU, result=_CPU)
        gpu = FakeProbe("Gpu", Component.GPU, result=_GPU)
        snapshot = await _detector(gpu, cpu).detect()
        assert isinstance(snapshot.sources, tuple)
        keys = [key for key, _ in snapshot.sources]
        assert keys == sorted(keys)
        assert ("cpu", "Cpu") in snapshot.sources
        assert snapshot.source("gpu") == "Gpu"
        assert snapshot.source("nope") is None
        # every field is immutable, so the snapshot hashes
        assert hash(snapshot) == hash(snapshot)


class TestFrameworks:
    @pytest.mark.asyncio
    async def test_each_runtime_has_its_own_chain(self) -> None:
        cuda_fail = FakeProbe(
            "CudaSmi", Component.FRAMEWORKS, 100, error=ProbeUnavailable("no"), runtime="cuda"
        )
        cuda_ok = FakeProbe(
            "Nvcc", Component.FRAMEWORKS, 50,
            result=FrameworkStatus(present=True, version="12.1"), runtime="cuda",
        )
        rocm = FakeProbe(
            "RocmDir", Component.FRAMEWORKS, 50, error=ProbeUnavailable("no /opt/rocm"), runtime="rocm"
        )
        snapshot = await _detector(cuda_fail, cuda_ok, rocm).detect()

        assert snapshot.frameworks.cuda.present is True
        assert snapshot.frameworks.cuda.version == "12.1"
        assert snapshot.frameworks.rocm.present is False
        assert snapshot.frameworks.detected is True
        assert snapshot.source("frameworks.cuda") == "Nvcc"
        assert snapshot.source("frameworks.rocm").startswith("undetected")
        assert "frameworks.metal: no applicable strategy on linux" in snapshot.diagnostics

    @pytest.mark.asyncio
    async def test_no_runtimes(self) -> None:
        snapshot = await _detector().detect()
        assert snapshot.frameworks.detected is False
        assert all(not s.present for s in snapshot.frameworks.runtimes().values())
