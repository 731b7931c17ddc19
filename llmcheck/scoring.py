"""Capability scoring: HardwareSnapshot -> per-use-case scores on a 0-100 scale.

Four component sub-scores (GPU, CPU, RAM, storage) are combined with a
fixed weight vector per use case. Every sub-score is a bounded curve, so
one outstanding part cannot push the total past 100, and an undetected
component contributes 0 rather than being left out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .config import DEFAULT_SCORING, ScoringConfig
from .hardware import CpuInfo, FrameworksInfo, GpuInfo, HardwareSnapshot, MemoryInfo, StorageInfo

logger = logging.getLogger(__name__)


class UseCase(str, Enum):
    INFERENCE = "inference"
    FINE_TUNING = "fine_tuning"
    TRAINING = "training"


class Rating(str, Enum):
    POOR = "Poor"
    FAIR = "Fair"
    GOOD = "Good"
    VERY_GOOD = "Very Good"
    EXCELLENT = "Excellent"


@dataclass(frozen=True)
class ScoreBreakdown:
    gpu: float
    cpu: float
    memory: float
    storage: float
    frameworks: float
    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()

    def components(self) -> dict[str, float]:
        return {
            "gpu": self.gpu,
            "cpu": self.cpu,
            "memory": self.memory,
            "storage": self.storage,
            "frameworks": self.frameworks,
        }


@dataclass(frozen=True)
class UseCaseScore:
    use_case: UseCase
    score: int
    rating: Rating
    breakdown: ScoreBreakdown


@dataclass(frozen=True)
class SystemScores:
    inference: int
    training: int
    fine_tuning: int
    breakdown: ScoreBreakdown  # inference-weighted view
    rating: Rating
    use_cases: dict[UseCase, UseCaseScore]
    capabilities: dict[UseCase, str]
    system_tier: str
    recommended_model_size: str


def _use_case(value: UseCase | str) -> UseCase:
    try:
        return UseCase(value)
    except ValueError:
        valid = ", ".join(u.value for u in UseCase)
        raise ValueError(f"Unknown use case {value!r}; expected one of: {valid}") from None


# ---------------------------------------------------------------------------
# Component sub-scores
# ---------------------------------------------------------------------------


def _architecture_bonus(gpu: GpuInfo, config: ScoringConfig) -> float:
    arch = (gpu.architecture or "").upper()
    if gpu.vendor == "Apple":
        return config.arch_bonus_modern
    if gpu.compute_capability:
        try:
            cc = float(gpu.compute_capability)
        except ValueError:
            cc = 0.0
        if cc >= 8.0:
            return config.arch_bonus_modern
        if cc >= 7.0:
            return config.arch_bonus_recent
        return config.arch_bonus_other
    if arch.startswith(("RDNA3", "RDNA4", "CDNA")):
        return config.arch_bonus_modern
    if arch.startswith("RDNA2") or arch == "XE":
        return config.arch_bonus_recent
    return config.arch_bonus_other


def gpu_score(
    gpu: GpuInfo, use_case: UseCase | str = UseCase.INFERENCE, config: ScoringConfig = DEFAULT_SCORING
) -> float:
    if not gpu.detected:
        return 0.0
    use_case = _use_case(use_case)
    target = config.vram_targets_gb[use_case.value]

    # Integrated GPUs borrow system RAM the CPU is already credited for
    if gpu.is_dedicated or gpu.unified_memory:
        vram = config.vram_points * min(gpu.vram_gb, target) / target
    else:
        vram = 0.0
    compute = min(
        config.compute_points,
        config.compute_points * gpu.compute_units / config.compute_units_target,
    )
    if gpu.supports_fp16 and gpu.supports_int8:
        tensor = config.tensor_bonus
    elif gpu.supports_fp16:
        tensor = config.tensor_bonus / 2
    else:
        tensor = 0.0
    total = vram + compute + _architecture_bonus(gpu, config) + tensor
    return round(min(100.0, total), 1)


def cpu_score(cpu: CpuInfo, config: ScoringConfig = DEFAULT_SCORING) -> float:
    if not cpu.detected:
        return 0.0
    cores = min(
        config.cpu_core_points,
        config.cpu_core_points * cpu.physical_cores / config.cpu_core_target,
    )
    clock = min(
        config.cpu_clock_points,
        config.cpu_clock_points * cpu.clock_ghz / config.cpu_clock_target_ghz,
    )
    bonus = 0.0
    if cpu.has_avx2 or cpu.has_neon:
        bonus += config.cpu_modern_bonus
    if cpu.has_avx512:
        bonus += config.cpu_avx512_bonus
    return round(min(100.0, cores + clock + bonus), 1)


def memory_score(memory: MemoryInfo, config: ScoringConfig = DEFAULT_SCORING) -> float:
    if not memory.detected:
        return 0.0
    for threshold, points in config.ram_steps:
        if memory.total_gb >= threshold:
            return points
    lowest_threshold, lowest_points = config.ram_steps[-1]
    return round(lowest_points * memory.total_gb / lowest_threshold, 1)


def storage_score(storage: StorageInfo, config: ScoringConfig = DEFAULT_SCORING) -> float:
    if not storage.detected:
        return 0.0
    return config.storage_points.get(storage.type.value, config.storage_points["Unknown"])


def _major_version(version: str | None) -> float:
    if not version:
        return 0.0
    try:
        return float(version.split(".")[0])
    except ValueError:
        return 0.0


def frameworks_score(frameworks: FrameworksInfo, config: ScoringConfig = DEFAULT_SCORING) -> float:
    total = config.framework_base
    for runtime, status in frameworks.runtimes().items():
        if status.present:
            total += config.framework_points.get(runtime, 0.0)
    if frameworks.cuda.present and _major_version(frameworks.cuda.version) >= config.cuda_modern_version:
        total += config.cuda_modern_bonus
    return round(min(100.0, total), 1)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def _strengths_and_weaknesses(
    snapshot: HardwareSnapshot, subs: dict[str, float], config: ScoringConfig
) -> tuple[tuple[str, ...], tuple[str, ...]]:
    gpu, cpu, mem, disk = snapshot.gpu, snapshot.cpu, snapshot.memory, snapshot.storage
    describe = {
        "gpu": (
            f"{gpu.model} with {gpu.vram_gb:g} GB {'unified memory' if gpu.unified_memory else 'VRAM'}"
            if gpu.detected
            else "No GPU detected"
        ),
        "cpu": (
            f"{cpu.model} ({cpu.physical_cores} cores, {cpu.clock_ghz:g} GHz)"
            if cpu.detected
            else "CPU not detected"
        ),
        "memory": f"{mem.total_gb:g} GB system RAM" if mem.detected else "Memory not detected",
        "storage": f"{disk.type.value} storage" if disk.detected else "Storage not detected",
        "frameworks": (
            "Accelerator runtimes: "
            + ", ".join(name for name, s in snapshot.frameworks.runtimes().items() if s.present)
            if snapshot.frameworks.detected
            else "No accelerator runtime installed"
        ),
    }
    strengths = tuple(
        describe[name] for name, value in subs.items() if value >= config.strength_threshold
    )
    weaknesses = tuple(
        describe[name] for name, value in subs.items() if value < config.weakness_threshold
    )
    return strengths, weaknesses


def rating_for(score: float, config: ScoringConfig = DEFAULT_SCORING) -> Rating:
    for bound, label in config.rating_bounds:
        if score < bound:
            return Rating(label)
    return Rating.EXCELLENT


def score(
    snapshot: HardwareSnapshot,
    use_case: UseCase | str,
    config: ScoringConfig = DEFAULT_SCORING,
) -> UseCaseScore:
    """Score *snapshot* for one use case.

    Raises ValueError for an unknown use case.
    """
    use_case = _use_case(use_case)
    subs = {
        "gpu": gpu_score(snapshot.gpu, use_case, config),
        "cpu": cpu_score(snapshot.cpu, config),
        "memory": memory_score(snapshot.memory, config),
        "storage": storage_score(snapshot.storage, config),
        "frameworks": frameworks_score(snapshot.frameworks, config),
    }
    w_gpu, w_cpu, w_mem, w_disk = config.weights[use_case.value]
    total = (
        w_gpu * subs["gpu"]
        + w_cpu * subs["cpu"]
        + w_mem * subs["memory"]
        + w_disk * subs["storage"]
    )
    value = max(0, min(100, int(round(total))))
    strengths, weaknesses = _strengths_and_weaknesses(snapshot, subs, config)
    breakdown = ScoreBreakdown(strengths=strengths, weaknesses=weaknesses, **subs)
    return UseCaseScore(
        use_case=use_case,
        score=value,
        rating=rating_for(value, config),
        breakdown=breakdown,
    )


def _capability(use_case: UseCase, value: int, vram_gb: float) -> str:
    if use_case is UseCase.INFERENCE:
        if value >= 80:
            return "Run 13B-34B models smoothly"
        if value >= 60:
            return "Run 7B-13B models efficiently"
        if value >= 40:
            return "Run 3B-7B models"
        return "Limited to small models (<3B)"
    if use_case is UseCase.TRAINING:
        if vram_gb >= 40:
            return "Full fine-tuning of 13B models"
        if vram_gb >= 24:
            return "Full fine-tuning of 7B models"
        if vram_gb >= 16:
            return "Full fine-tuning of 3B models"
        if vram_gb >= 12:
            return "Full fine-tuning of 1B models"
        return "Training not recommended"
    if vram_gb >= 16:
        return "LoRA fine-tune 13B-34B models"
    if vram_gb >= 12:
        return "LoRA fine-tune 7B-13B models"
    if vram_gb >= 8:
        return "LoRA fine-tune 3B-7B models"
    if vram_gb >= 6:
        return "QLoRA fine-tune small models"
    return "Fine-tuning limited"


def _system_tier(average: float, config: ScoringConfig) -> str:
    for bound, label in config.tier_bounds:
        if average >= bound:
            return label
    return "Limited"


def recommended_model_size(snapshot: HardwareSnapshot) -> str:
    gpu, ram = snapshot.gpu, snapshot.memory.total_gb
    if gpu.detected and (gpu.is_dedicated or gpu.unified_memory) and gpu.vram_gb >= 4:
        vram = gpu.vram_gb
        if vram >= 48:
            return "70B+ (or 34B unquantized)"
        if vram >= 24:
            return "34B (or 13B unquantized)"
        if vram >= 16:
            return "13B (or 7B unquantized)"
        if vram >= 10:
            return "13B (quantized)"
        if vram >= 6:
            return "7B"
        return "3B or smaller"
    if ram >= 64:
        return "34B (CPU, quantized)"
    if ram >= 32:
        return "13B (CPU, quantized)"
    if ram >= 16:
        return "7B (CPU, quantized)"
    if ram >= 8:
        return "3B (CPU, quantized)"
    return "1B or smaller"


def score_all(snapshot: HardwareSnapshot, config: ScoringConfig = DEFAULT_SCORING) -> SystemScores:
    """Score every use case and derive rating, tier and capability text."""
    per_case = {uc: score(snapshot, uc, config) for uc in UseCase}
    inference = per_case[UseCase.INFERENCE]
    vram = snapshot.gpu.vram_gb if snapshot.gpu.detected else 0.0
    average = sum(s.score for s in per_case.values()) / len(per_case)
    result = SystemScores(
        inference=inference.score,
        training=per_case[UseCase.TRAINING].score,
        fine_tuning=per_case[UseCase.FINE_TUNING].score,
        breakdown=inference.breakdown,
        rating=inference.rating,
        use_cases=per_case,
        capabilities={uc: _capability(uc, s.score, vram) for uc, s in per_case.items()},
        system_tier=_system_tier(average, config),
        recommended_model_size=recommended_model_size(snapshot),
    )
    logger.debug(
        "Scores: inference=%d training=%d fine_tuning=%d tier=%s",
        result.inference,
        result.training,
        result.fine_tuning,
        result.system_tier,
    )
    return result
