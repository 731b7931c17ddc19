"""Tunable constants for detection, scoring, matching and upgrade advice.

Every number here is a product-tuning value. The formulas that consume
them live in :mod:`llmcheck.scoring`, :mod:`llmcheck.matching` and
:mod:`llmcheck.advisor`; pass a modified config to experiment without
touching the algorithms.

Environment overrides (read by the ``from_env`` constructors):

* ``LLMCHECK_PROBE_TIMEOUT`` -- seconds per probe attempt (default 2.0)
* ``LLMCHECK_CATALOG_URL`` -- remote model catalog JSON
* ``LLMCHECK_CATALOG_TIMEOUT`` -- seconds for the catalog fetch (default 10)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", name, raw)
        return default
    if value <= 0:
        logger.warning("Ignoring %s=%r: must be positive", name, raw)
        return default
    return value


@dataclass(frozen=True)
class DetectionConfig:
    probe_timeout: float = 2.0

    @classmethod
    def from_env(cls) -> DetectionConfig:
        return cls(probe_timeout=_env_float("LLMCHECK_PROBE_TIMEOUT", 2.0))


@dataclass(frozen=True)
class CatalogConfig:
    url: str | None = None
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> CatalogConfig:
        return cls(
            url=os.environ.get("LLMCHECK_CATALOG_URL") or None,
            timeout=_env_float("LLMCHECK_CATALOG_TIMEOUT", 10.0),
        )


@dataclass(frozen=True)
class ScoringConfig:
    # GPU: VRAM curve saturates at the per-use-case target
    vram_points: float = 60.0
    vram_targets_gb: dict[str, float] = field(
        default_factory=lambda: {"inference": 16.0, "fine_tuning": 24.0, "training": 48.0}
    )
    compute_points: float = 15.0
    compute_units_target: int = 80
    arch_bonus_modern: float = 10.0
    arch_bonus_recent: float = 6.0
    arch_bonus_other: float = 3.0
    tensor_bonus: float = 15.0

    # CPU
    cpu_core_points: float = 40.0
    cpu_core_target: int = 16
    cpu_clock_points: float = 30.0
    cpu_clock_target_ghz: float = 4.0
    cpu_modern_bonus: float = 20.0
    cpu_avx512_bonus: float = 10.0

    # RAM: (threshold GB, points), highest first; linear below the last step
    ram_steps: tuple[tuple[float, float], ...] = ((64.0, 100.0), (32.0, 80.0), (16.0, 60.0))

    storage_points: dict[str, float] = field(
        default_factory=lambda: {"NVMe": 100.0, "SSD": 75.0, "Unknown": 50.0, "HDD": 35.0}
    )

    # Frameworks: CPU execution always works, runtimes add on top
    framework_base: float = 20.0
    framework_points: dict[str, float] = field(
        default_factory=lambda: {
            "cuda": 60.0,
            "rocm": 50.0,
            "metal": 60.0,
            "directml": 30.0,
            "openvino": 20.0,
        }
    )
    cuda_modern_version: float = 12.0
    cuda_modern_bonus: float = 10.0

    # (gpu, cpu, memory, storage)
    weights: dict[str, tuple[float, float, float, float]] = field(
        default_factory=lambda: {
            "inference": (0.40, 0.20, 0.30, 0.10),
            "fine_tuning": (0.50, 0.10, 0.30, 0.10),
            "training": (0.60, 0.05, 0.25, 0.10),
        }
    )

    # Upper bounds (exclusive) for each rating; above the last is Excellent
    rating_bounds: tuple[tuple[int, str], ...] = (
        (30, "Poor"),
        (50, "Fair"),
        (70, "Good"),
        (85, "Very Good"),
    )
    tier_bounds: tuple[tuple[int, str], ...] = (
        (80, "Enthusiast"),
        (65, "High-End"),
        (50, "Mid-Range"),
        (35, "Entry-Level"),
    )
    strength_threshold: float = 75.0
    weakness_threshold: float = 40.0


@dataclass(frozen=True)
class MatchingConfig:
    fit_weight: float = 0.85
    popularity_weight: float = 0.15
    headroom_base: float = 0.2
    popularity_decay: float = 0.1
    # Models that do not fit never reach the "good" tier
    nonfit_cap: float = 69.0
    perfect_threshold: float = 90.0
    good_threshold: float = 70.0
    possible_threshold: float = 50.0
    display_count: int = 5
    # Unified-memory machines keep this much RAM for the OS
    unified_reserve_gb: float = 4.0


@dataclass(frozen=True)
class AdvisorConfig:
    bottleneck_margin: float = 10.0
    # Components scoring below this get hardware suggestions
    upgrade_threshold: float = 70.0
    max_recommendations: int = 5
    low_storage_gb: float = 200.0
    precedence: tuple[str, ...] = ("gpu", "memory", "storage", "cpu", "frameworks")


DEFAULT_SCORING = ScoringConfig()
DEFAULT_MATCHING = MatchingConfig()
DEFAULT_ADVISOR = AdvisorConfig()
