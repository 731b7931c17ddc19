"""Soft failure types raised by probe strategies.

None of these escape :class:`~llmcheck.hardware.HardwareDetector`; they
only tell the detector why an attempt failed before it moves on to the
next strategy.
"""

from __future__ import annotations


class ProbeError(Exception):
    """Base class for probe failures."""

    reason = "failed"


class ProbeUnavailable(ProbeError):
    """The tool or OS interface the strategy needs is missing."""

    reason = "unavailable"


class ProbeTimeout(ProbeError):
    """The attempt exceeded its time budget."""

    reason = "timeout"


class ProbeExecutionFailed(ProbeError):
    """The command exited non-zero or wrote to stderr."""

    reason = "execution failed"


class ProbeParseFailed(ProbeError):
    """The command ran but its output had an unexpected shape."""

    reason = "parse failed"


class ProbeCancelled(ProbeTimeout):
    """The caller's cancel event fired before the attempt finished."""

    reason = "cancelled"
