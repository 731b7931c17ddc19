"""Detection orchestrator: concurrent component pipelines with fallback chains."""

from __future__ import annotations

import asyncio
import logging
import platform
import sys
import time
from typing import Any, Callable, Iterable

from ..config import DetectionConfig
from ._base import ProbeStrategy
from ._cpu import CPU_STRATEGIES
from ._errors import ProbeCancelled, ProbeError, ProbeTimeout, ProbeUnavailable
from ._frameworks import FRAMEWORK_STRATEGIES, RUNTIMES
from ._gpu import GPU_STRATEGIES
from ._memory import MEMORY_STRATEGIES
from ._storage import STORAGE_STRATEGIES
from ._types import (
    Component,
    ComponentResult,
    CpuInfo,
    Detected,
    FrameworksInfo,
    FrameworkStatus,
    GpuInfo,
    HardwareSnapshot,
    MemoryInfo,
    StorageInfo,
    Undetected,
)

logger = logging.getLogger(__name__)

DEFAULT_STRATEGIES: tuple[ProbeStrategy, ...] = (
    CPU_STRATEGIES
    + GPU_STRATEGIES
    + MEMORY_STRATEGIES
    + STORAGE_STRATEGIES
    + FRAMEWORK_STRATEGIES
)


class HardwareDetector:
    """Owns the strategy lists and the cached :class:`HardwareSnapshot`.

    ``detect()`` returns the cached snapshot when there is one and runs a
    probe cycle otherwise. ``refresh()`` always runs a new cycle; callers
    that refresh while a cycle is in flight share its result. Neither
    raises for probe failures: a component whose strategies are all
    exhausted comes back with ``detected=False``.
    """

    def __init__(
        self,
        strategies: Iterable[ProbeStrategy] | None = None,
        *,
        config: DetectionConfig | None = None,
        platform_name: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._strategies = tuple(DEFAULT_STRATEGIES if strategies is None else strategies)
        self._config = config or DetectionConfig.from_env()
        self._platform = platform_name or sys.platform
        self._clock = clock
        self._snapshot: HardwareSnapshot | None = None
        self._inflight: asyncio.Future[HardwareSnapshot] | None = None

    @property
    def snapshot(self) -> HardwareSnapshot | None:
        return self._snapshot

    @property
    def probe_timeout(self) -> float:
        return self._config.probe_timeout

    async def detect(self, cancel: asyncio.Event | None = None) -> HardwareSnapshot:
        if self._snapshot is not None:
            return self._snapshot
        return await self.refresh(cancel)

    async def refresh(self, cancel: asyncio.Event | None = None) -> HardwareSnapshot:
        """Run a full probe cycle and replace the cached snapshot.

        Single-flight: if a cycle is already running, await it instead of
        starting another. The shared cycle keeps the first caller's cancel
        event, and cancelling one waiter does not cancel the cycle.
        """
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._probe_cycle(cancel))
        return await asyncio.shield(self._inflight)

    # ------------------------------------------------------------------

    async def _probe_cycle(self, cancel: asyncio.Event | None) -> HardwareSnapshot:
        started = time.monotonic()
        diagnostics: list[str] = []
        cpu, gpu, memory, storage, frameworks = await asyncio.gather(
            self._run_chain(Component.CPU, diagnostics, cancel),
            self._run_chain(Component.GPU, diagnostics, cancel),
            self._run_chain(Component.MEMORY, diagnostics, cancel),
            self._run_chain(Component.STORAGE, diagnostics, cancel),
            self._detect_frameworks(diagnostics, cancel),
        )

        sources: dict[str, str] = {}
        for component, result in (
            (Component.CPU, cpu),
            (Component.GPU, gpu),
            (Component.MEMORY, memory),
            (Component.STORAGE, storage),
        ):
            sources[component.value] = _source_label(result)
        frameworks_info, framework_sources = frameworks
        sources.update(framework_sources)

        snapshot = HardwareSnapshot(
            cpu=_value_or(cpu, CpuInfo()).sanitized(),
            gpu=_value_or(gpu, GpuInfo()).sanitized(),
            memory=_value_or(memory, MemoryInfo()).sanitized(),
            storage=_value_or(storage, StorageInfo()).sanitized(),
            frameworks=frameworks_info,
            detected_at=self._clock(),
            platform=self._platform,
            os_name=f"{platform.system()} {platform.release()}".strip(),
            diagnostics=tuple(diagnostics),
            sources=tuple(sorted(sources.items())),
        )
        # Replaced as a whole; readers never see a half-built snapshot
        self._snapshot = snapshot
        logger.debug("Detection cycle finished in %.2fs", time.monotonic() - started)
        return snapshot

    async def _detect_frameworks(
        self, diagnostics: list[str], cancel: asyncio.Event | None
    ) -> tuple[FrameworksInfo, dict[str, str]]:
        results = await asyncio.gather(
            *(
                self._run_chain(Component.FRAMEWORKS, diagnostics, cancel, runtime=runtime)
                for runtime in RUNTIMES
            )
        )
        statuses: dict[str, FrameworkStatus] = {}
        sources: dict[str, str] = {}
        for runtime, result in zip(RUNTIMES, results):
            statuses[runtime] = _value_or(result, FrameworkStatus())
            sources[f"frameworks.{runtime}"] = _source_label(result)
        return FrameworksInfo(**statuses), sources

    def _chain(self, component: Component, runtime: str | None) -> list[ProbeStrategy]:
        applicable = [
            s
            for s in self._strategies
            if s.component is component
            and (runtime is None or s.runtime == runtime)
            and s.is_applicable(self._platform)
        ]
        # sorted() is stable: equal priorities keep registration order
        return sorted(applicable, key=lambda s: s.priority, reverse=True)

    async def _run_chain(
        self,
        component: Component,
        diagnostics: list[str],
        cancel: asyncio.Event | None,
        runtime: str | None = None,
    ) -> ComponentResult:
        label = f"{component.value}.{runtime}" if runtime else component.value
        chain = self._chain(component, runtime)
        if not chain:
            diagnostics.append(f"{label}: no applicable strategy on {self._platform}")
            return Undetected("no applicable strategy")

        reason = "no strategy succeeded"
        for strategy in chain:
            try:
                value = await self._attempt(strategy, cancel)
            except ProbeUnavailable as exc:
                logger.debug("%s: %s unavailable: %s", label, strategy.name, exc)
                reason = f"{strategy.name}: {exc.reason}"
            except ProbeError as exc:
                logger.warning("%s: %s %s: %s", label, strategy.name, exc.reason, exc)
                reason = f"{strategy.name}: {exc.reason}"
            except Exception as exc:
                logger.warning("%s: %s raised unexpectedly", label, strategy.name, exc_info=True)
                reason = f"{strategy.name}: {type(exc).__name__}"
            else:
                diagnostics.append(f"{label}: detected via {strategy.name}")
                return Detected(value, strategy.name)
            diagnostics.append(f"{label}: {reason}")
        return Undetected(reason)

    async def _attempt(self, strategy: ProbeStrategy, cancel: asyncio.Event | None) -> Any:
        """Run one strategy, racing its timeout and the cancel event."""
        if cancel is not None and cancel.is_set():
            raise ProbeCancelled("detection cancelled")

        timeout = self._config.probe_timeout
        task = asyncio.ensure_future(strategy.probe(timeout))
        waiters: set[asyncio.Future[Any]] = {task}
        cancel_waiter = None
        if cancel is not None:
            cancel_waiter = asyncio.ensure_future(cancel.wait())
            waiters.add(cancel_waiter)
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task in done:
            return task.result()

        # Cancelling the task kills and reaps any child process it spawned
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        if cancel is not None and cancel.is_set():
            raise ProbeCancelled("detection cancelled")
        raise ProbeTimeout(f"no result within {timeout:.1f}s")


def _value_or(result: ComponentResult, default: Any) -> Any:
    return result.value if isinstance(result, Detected) else default


def _source_label(result: ComponentResult) -> str:
    if isinstance(result, Detected):
        return result.source
    return f"undetected: {result.reason}"


def detect_hardware(
    detector: HardwareDetector | None = None, *, refresh: bool = False
) -> HardwareSnapshot:
    """Blocking convenience wrapper for scripts and the CLI."""
    detector = detector or HardwareDetector()
    if refresh:
        return asyncio.run(detector.refresh())
    return asyncio.run(detector.detect())
