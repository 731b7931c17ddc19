"""Abstract probe strategy base classes and the subprocess runner."""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import Any, Sequence

from ._errors import (
    ProbeExecutionFailed,
    ProbeParseFailed,
    ProbeTimeout,
    ProbeUnavailable,
)
from ._types import Component

logger = logging.getLogger(__name__)


async def run_command(argv: Sequence[str], timeout: float) -> str:
    """Run *argv* and return its UTF-8 stdout.

    Raises a :class:`ProbeError` subclass on a missing binary, timeout,
    non-zero exit or any stderr output. The child is killed and reaped
    before this returns, including when the awaiting task is cancelled.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as exc:
        raise ProbeUnavailable(f"{argv[0]} not found") from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        await _kill(proc)
        raise ProbeTimeout(f"{argv[0]} timed out after {timeout:.1f}s") from exc
    except asyncio.CancelledError:
        await _kill(proc)
        raise

    if proc.returncode != 0:
        raise ProbeExecutionFailed(f"{argv[0]} exited with code {proc.returncode}")
    if stderr and stderr.strip():
        first = stderr.decode("utf-8", errors="replace").strip().splitlines()[0]
        raise ProbeExecutionFailed(f"{argv[0]} wrote to stderr: {first[:120]}")
    return stdout.decode("utf-8", errors="replace")


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


def read_text(path: str) -> str:
    """Read a structured OS file (``/proc``, ``/sys``) or raise ProbeUnavailable."""
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return f.read()
    except OSError as exc:
        raise ProbeUnavailable(f"{path} not readable") from exc


class ProbeStrategy(abc.ABC):
    """One way of inspecting one hardware component.

    Subclasses declare which platforms they apply to and a priority;
    the detector tries applicable strategies from the highest priority
    down until one returns a result.
    """

    component: Component
    priority: int = 0
    platforms: frozenset[str] | None = None  # None = any platform
    runtime: str | None = None  # frameworks only: "cuda", "rocm", ...

    @property
    def name(self) -> str:
        return type(self).__name__

    def is_applicable(self, platform: str) -> bool:
        return self.platforms is None or platform in self.platforms

    @abc.abstractmethod
    async def probe(self, timeout: float) -> Any:
        """Return a partial result or raise a ProbeError."""


class CommandProbe(ProbeStrategy):
    """A strategy backed by a single external command."""

    command: tuple[str, ...] = ()

    async def probe(self, timeout: float) -> Any:
        stdout = await run_command(self.command, timeout)
        try:
            result = self.parse(stdout)
        except (ValueError, IndexError, KeyError) as exc:
            raise ProbeParseFailed(f"{self.command[0]}: {exc}") from exc
        if result is None:
            raise ProbeParseFailed(f"{self.command[0]}: no usable output")
        return result

    @abc.abstractmethod
    def parse(self, stdout: str) -> Any:
        """Extract a partial result from stdout, or return None."""
