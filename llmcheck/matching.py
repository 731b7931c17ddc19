"""Model compatibility matching: (snapshot, catalog) -> ranked, tiered models."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .catalog import ModelEntry, QuantRequirement, TrainingMethod
from .config import DEFAULT_MATCHING, MatchingConfig
from .hardware import HardwareSnapshot
from .scoring import UseCase, score

logger = logging.getLogger(__name__)

# Ratios beyond this add nothing measurable to headroom(); keeps zero requirements finite
_MAX_RATIO = 10.0


class CompatibilityTier(str, Enum):
    PERFECT = "perfect"
    GOOD = "good"
    POSSIBLE = "possible"
    NOT_RECOMMENDED = "not_recommended"


@dataclass(frozen=True)
class Resources:
    """What the machine can give a model, in GB."""

    model_memory_gb: float  # VRAM, or RAM minus the OS reserve without a usable GPU
    ram_gb: float
    storage_gb: float
    training_vram_gb: float
    hardware_class: str


@dataclass(frozen=True)
class ModelMatch:
    model: ModelEntry
    score: float
    tier: CompatibilityTier
    fits: bool
    best_fit: Optional[str]  # least-resource level that fits
    max_fit: Optional[str]  # most demanding level that fits
    closest: str  # level the score was computed from
    ratio: float
    expected_tokens_per_sec: Optional[float]
    performance: str
    trainable: tuple[TrainingMethod, ...] = ()


@dataclass(frozen=True)
class MatchReport:
    resources: Resources
    ranked: tuple[ModelMatch, ...]
    perfect: tuple[ModelMatch, ...]
    good: tuple[ModelMatch, ...]
    possible: tuple[ModelMatch, ...]
    not_recommended: tuple[ModelMatch, ...]

    @property
    def compatible(self) -> tuple[ModelMatch, ...]:
        return tuple(m for m in self.ranked if m.fits)

    def tiers(self) -> dict[CompatibilityTier, tuple[ModelMatch, ...]]:
        return {
            CompatibilityTier.PERFECT: self.perfect,
            CompatibilityTier.GOOD: self.good,
            CompatibilityTier.POSSIBLE: self.possible,
            CompatibilityTier.NOT_RECOMMENDED: self.not_recommended,
        }


def available_resources(
    snapshot: HardwareSnapshot, config: MatchingConfig = DEFAULT_MATCHING
) -> Resources:
    gpu, memory = snapshot.gpu, snapshot.memory
    ram = memory.total_gb if memory.detected else 0.0
    storage = snapshot.storage.available_gb if snapshot.storage.detected else 0.0

    if gpu.detected and gpu.unified_memory:
        pool = ram or gpu.vram_gb
        usable = max(pool - config.unified_reserve_gb, 0.0)
        return Resources(usable, ram, storage, usable, "apple_silicon")
    if gpu.detected and gpu.is_dedicated and gpu.vram_gb > 0:
        if gpu.vram_gb >= 16:
            hw_class = "high_end_gpu"
        elif gpu.vram_gb >= 8:
            hw_class = "mid_range_gpu"
        else:
            hw_class = "entry_gpu"
        return Resources(gpu.vram_gb, ram, storage, gpu.vram_gb, hw_class)
    # CPU inference keeps the weights in system RAM
    return Resources(max(ram - config.unified_reserve_gb, 0.0), ram, storage, 0.0, "cpu")


def _ratio(req: QuantRequirement, res: Resources) -> float:
    ratios = []
    for have, need in (
        (res.model_memory_gb, req.vram_gb),
        (res.ram_gb, req.ram_gb),
        (res.storage_gb, req.storage_gb),
    ):
        ratios.append(_MAX_RATIO if need <= 0 else min(have / need, _MAX_RATIO))
    return min(ratios)


def headroom(ratio: float, config: MatchingConfig = DEFAULT_MATCHING) -> float:
    """Diminishing returns: 0 at ratio 0, 80 at ratio 1, ~96 at ratio 2."""
    return 100.0 * (1.0 - math.pow(config.headroom_base, max(ratio, 0.0)))


def popularity(rank: int, config: MatchingConfig = DEFAULT_MATCHING) -> float:
    return 100.0 / (1.0 + (max(rank, 1) - 1) * config.popularity_decay)


def _tier(value: float, config: MatchingConfig) -> CompatibilityTier:
    if value >= config.perfect_threshold:
        return CompatibilityTier.PERFECT
    if value >= config.good_threshold:
        return CompatibilityTier.GOOD
    if value >= config.possible_threshold:
        return CompatibilityTier.POSSIBLE
    return CompatibilityTier.NOT_RECOMMENDED


_PERFORMANCE_STEPS = ("Excellent", "Good", "Moderate", "Slow")


def _performance(tokens_per_sec: Optional[float], below_min_score: bool) -> str:
    if tokens_per_sec is None:
        return "Unknown"
    if tokens_per_sec >= 30:
        step = 0
    elif tokens_per_sec >= 15:
        step = 1
    elif tokens_per_sec >= 5:
        step = 2
    else:
        step = 3
    if below_min_score:
        step = min(step + 1, len(_PERFORMANCE_STEPS) - 1)
    return _PERFORMANCE_STEPS[step]


def match_model(
    entry: ModelEntry,
    resources: Resources,
    inference_score: int,
    config: MatchingConfig = DEFAULT_MATCHING,
) -> ModelMatch:
    levels = sorted(
        entry.quantizations.items(),
        key=lambda kv: (kv[1].vram_gb, kv[1].ram_gb, kv[1].storage_gb, kv[1].bits, kv[0]),
    )
    ratios = {level: _ratio(req, resources) for level, req in levels}
    fitting = [level for level, _ in levels if ratios[level] >= 1.0]

    if fitting:
        best_fit, max_fit = fitting[0], fitting[-1]
        closest = best_fit
    else:
        best_fit = max_fit = None
        # max() keeps the first of equal ratios, i.e. the cheapest level
        closest = max(ratios, key=ratios.__getitem__)
    ratio = ratios[closest]

    value = config.fit_weight * headroom(ratio, config) + config.popularity_weight * popularity(
        entry.popularity_rank, config
    )
    if not fitting:
        value = min(value, config.nonfit_cap)
    value = round(max(0.0, min(100.0, value)), 1)

    req = entry.quantizations[closest]
    if best_fit is not None:
        tps = req.throughput.get(resources.hardware_class)
        performance = _performance(tps, inference_score < req.min_inference_score)
    else:
        tps = None
        performance = "Not Compatible"

    trainable = tuple(
        method
        for method in TrainingMethod
        if method in entry.training
        and resources.training_vram_gb >= entry.training[method].vram_gb
        and resources.ram_gb >= entry.training[method].ram_gb
    )
    return ModelMatch(
        model=entry,
        score=value,
        tier=_tier(value, config),
        fits=bool(fitting),
        best_fit=best_fit,
        max_fit=max_fit,
        closest=closest,
        ratio=round(ratio, 3),
        expected_tokens_per_sec=tps,
        performance=performance,
        trainable=trainable,
    )


def match(
    snapshot: HardwareSnapshot,
    catalog: Iterable[ModelEntry],
    config: MatchingConfig = DEFAULT_MATCHING,
) -> MatchReport:
    """Rank every catalog entry against *snapshot*.

    Models that fit no quantization level are still scored by how close
    they came, but never above ``config.nonfit_cap``.
    """
    resources = available_resources(snapshot, config)
    inference_score = score(snapshot, UseCase.INFERENCE).score
    matches = [match_model(entry, resources, inference_score, config) for entry in catalog]
    matches.sort(key=lambda m: (-m.score, m.model.parameters_b, m.model.id))
    ranked = tuple(matches)

    def _cap(tier: CompatibilityTier) -> tuple[ModelMatch, ...]:
        return tuple(m for m in ranked if m.tier is tier)[: config.display_count]

    report = MatchReport(
        resources=resources,
        ranked=ranked,
        perfect=_cap(CompatibilityTier.PERFECT),
        good=_cap(CompatibilityTier.GOOD),
        possible=_cap(CompatibilityTier.POSSIBLE),
        not_recommended=_cap(CompatibilityTier.NOT_RECOMMENDED),
    )
    logger.debug(
        "Matched %d models (%d compatible) for %s",
        len(ranked),
        len(report.compatible),
        resources.hardware_class,
    )
    return report
