"""Bottleneck analysis and upgrade recommendations.

``advise()`` is pure: it never touches the machine, only the snapshot and
the scores computed from it. Every hardware candidate is applied to a copy
of the snapshot and re-scored, so the reported score delta is what the
scoring engine would actually give after the upgrade.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from .config import DEFAULT_ADVISOR, DEFAULT_SCORING, AdvisorConfig, ScoringConfig
from .hardware import CpuInfo, FrameworkStatus, HardwareSnapshot, MemoryInfo, StorageInfo, StorageType
from .hardware._cuda import nvidia_gpu
from .scoring import ScoreBreakdown, SystemScores, UseCase, score

logger = logging.getLogger(__name__)


class Priority(str, Enum):
    IMMEDIATE = "Immediate"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class CostTier(str, Enum):
    FREE = "free"
    BUDGET = "budget"
    MID = "mid"
    HIGH = "high"


@dataclass(frozen=True)
class Bottleneck:
    component: str
    score: float
    mean: float
    deficit: float


@dataclass(frozen=True)
class UpgradeRecommendation:
    component: str
    current_spec: str
    recommended_spec: str
    dimension: str
    current_value: float
    recommended_value: float
    cost_tier: CostTier
    estimated_cost_usd: int
    score_delta: int  # change in the inference score
    subscore_delta: float  # change in the component's own sub-score
    priority: Priority
    rationale: str
    product: str

    @property
    def is_software(self) -> bool:
        return self.cost_tier is CostTier.FREE


@dataclass(frozen=True)
class Advice:
    bottleneck: Optional[Bottleneck]
    recommendations: tuple[UpgradeRecommendation, ...]


# ---------------------------------------------------------------------------
# Bottleneck
# ---------------------------------------------------------------------------


def find_bottleneck(
    breakdown: ScoreBreakdown, config: AdvisorConfig = DEFAULT_ADVISOR
) -> Optional[Bottleneck]:
    """Return the sub-score furthest below the mean, if it is far enough below.

    Equal deficits resolve by ``config.precedence``.
    """
    subs = breakdown.components()
    mean = sum(subs.values()) / len(subs)
    candidates = [
        Bottleneck(name, subs[name], round(mean, 1), round(mean - subs[name], 1))
        for name in config.precedence
        if mean - subs[name] > config.bottleneck_margin
    ]
    if not candidates:
        return None
    # max() keeps the first of equal deficits, i.e. precedence order
    return max(candidates, key=lambda b: b.deficit)


# ---------------------------------------------------------------------------
# Hardware candidates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Candidate:
    component: str
    dimension: str
    value: float
    cost_tier: CostTier
    cost: int
    product: str
    spec: str
    rationale: str
    apply: Callable[[HardwareSnapshot], HardwareSnapshot]
    tier_value: float = 0.0  # speed class / clock; must not drop below the current part's


def _gpu_candidates() -> list[_Candidate]:
    rows = (
        (CostTier.BUDGET, 450, "NVIDIA GeForce RTX 4060 Ti 16GB", 16.0,
         "16 GB VRAM runs 13B models quantized and 7B models unquantized"),
        (CostTier.MID, 800, "NVIDIA GeForce RTX 4070 Ti SUPER", 16.0,
         "Faster 16 GB card for high-throughput 7B-13B inference"),
        (CostTier.HIGH, 1600, "NVIDIA GeForce RTX 4090", 24.0,
         "24 GB VRAM enables 34B inference and LoRA fine-tuning"),
    )
    out = []
    for tier, cost, product, vram, why in rows:
        gpu = nvidia_gpu(product, vram)
        out.append(
            _Candidate(
                component="gpu",
                dimension="vram_gb",
                value=vram,
                cost_tier=tier,
                cost=cost,
                product=product,
                spec=f"{vram:g} GB VRAM GPU",
                rationale=why,
                apply=lambda s, gpu=gpu: replace(s, gpu=gpu),
                tier_value=gpu.speed_coefficient,
            )
        )
    return out


def _memory_candidates(current: MemoryInfo) -> list[_Candidate]:
    kind = current.type if current.type.startswith("DDR") else "DDR4/DDR5"
    rows = (
        (CostTier.BUDGET, 100, 32.0, "2x16GB", "32 GB leaves room for larger contexts next to the OS"),
        (CostTier.MID, 200, 64.0, "2x32GB", "64 GB allows CPU offload of 30B-class models"),
        (CostTier.HIGH, 400, 128.0, "4x32GB", "128 GB holds 70B models quantized in system RAM"),
    )
    return [
        _Candidate(
            component="memory",
            dimension="ram_gb",
            value=total,
            cost_tier=tier,
            cost=cost,
            product=f"{total:g}GB {kind} ({kit} kit)",
            spec=f"{total:g} GB RAM",
            rationale=why,
            apply=lambda s, total=total: replace(
                s,
                memory=replace(
                    s.memory,
                    detected=True,
                    total_gb=total,
                    available_gb=s.memory.available_gb + total - s.memory.total_gb,
                ).sanitized(),
            ),
        )
        for tier, cost, total, kit, why in rows
    ]


_STORAGE_RANK = {
    StorageType.HDD: 0,
    # An unidentified drive is assumed to be at least SATA SSD
    StorageType.UNKNOWN: 1,
    StorageType.SSD: 1,
    StorageType.NVME: 2,
}


def _storage_candidates(current: StorageInfo, config: AdvisorConfig) -> list[_Candidate]:
    def with_type(kind: StorageType, extra_gb: float = 0.0):
        def apply(s: HardwareSnapshot) -> HardwareSnapshot:
            return replace(
                s,
                storage=replace(
                    s.storage,
                    detected=True,
                    type=kind,
                    total_gb=s.storage.total_gb + extra_gb,
                    available_gb=s.storage.available_gb + extra_gb,
                ),
            )

        return apply

    out = [
        _Candidate(
            component="storage",
            dimension="storage_tier",
            value=_STORAGE_RANK[StorageType.SSD],
            cost_tier=CostTier.BUDGET,
            cost=60,
            product="1TB SATA SSD (Samsung 870 EVO, Crucial MX500)",
            spec="SATA SSD (~550 MB/s)",
            rationale="An SSD cuts model load times several-fold over a hard drive",
            apply=with_type(StorageType.SSD),
        ),
        _Candidate(
            component="storage",
            dimension="storage_tier",
            value=_STORAGE_RANK[StorageType.NVME],
            cost_tier=CostTier.MID,
            cost=100,
            product="1TB NVMe Gen4 SSD (Samsung 990 Pro, WD Black SN850X)",
            spec="NVMe SSD (3500+ MB/s)",
            rationale="NVMe loads multi-gigabyte model files in seconds",
            apply=with_type(StorageType.NVME),
        ),
    ]
    if current.available_gb < config.low_storage_gb:
        out.append(
            _Candidate(
                component="storage",
                dimension="storage_available_gb",
                value=current.available_gb + 2000.0,
                cost_tier=CostTier.HIGH,
                cost=150,
                product="2TB NVMe SSD",
                spec=f"{current.available_gb + 2000.0:g} GB available",
                rationale="Room to keep several models downloaded at once",
                apply=with_type(StorageType.NVME, 2000.0),
            )
        )
    return out


def _cpu_candidates() -> list[_Candidate]:
    rows = (
        (CostTier.BUDGET, 200, "AMD Ryzen 5 7600", 6, 12, 3.8, 5.1),
        (CostTier.MID, 330, "AMD Ryzen 7 7700X", 8, 16, 4.5, 5.4),
        (CostTier.HIGH, 550, "AMD Ryzen 9 7950X", 16, 32, 4.5, 5.7),
    )
    out = []
    for tier, cost, product, cores, threads, base, boost in rows:
        cpu = CpuInfo(
            detected=True,
            model=product,
            manufacturer="AMD",
            physical_cores=cores,
            logical_cores=threads,
            base_clock_ghz=base,
            boost_clock_ghz=boost,
            architecture="x86_64",
            instruction_sets=("sse4_2", "avx", "avx2", "fma", "avx512f"),
        )
        out.append(
            _Candidate(
                component="cpu",
                dimension="physical_cores",
                value=cores,
                cost_tier=tier,
                cost=cost,
                product=product,
                spec=f"{cores} cores, {boost:g} GHz boost, AVX-512",
                rationale="More cores speed up prompt processing and CPU offload",
                apply=lambda s, cpu=cpu: replace(s, cpu=cpu),
                tier_value=boost,
            )
        )
    return out


def _current(snapshot: HardwareSnapshot, component: str) -> tuple[float, float, str]:
    """(value on the candidate's dimension, current tier value, description)."""
    gpu, cpu, mem, disk = snapshot.gpu, snapshot.cpu, snapshot.memory, snapshot.storage
    if component == "gpu":
        desc = f"{gpu.model} ({gpu.vram_gb:g} GB VRAM)" if gpu.detected else "No GPU detected"
        return (gpu.vram_gb if gpu.detected else 0.0), gpu.speed_coefficient, desc
    if component == "memory":
        return mem.total_gb, 0.0, f"{mem.total_gb:g} GB {mem.type}"
    if component == "cpu":
        desc = f"{cpu.model} ({cpu.physical_cores} cores, {cpu.clock_ghz:.1f} GHz)"
        return float(cpu.physical_cores), cpu.clock_ghz, desc
    rank = _STORAGE_RANK[disk.type] if disk.detected else -1
    return float(rank), 0.0, f"{disk.type.value} ({disk.available_gb:g} GB available)"


def _dimension_value(snapshot: HardwareSnapshot, candidate: _Candidate) -> tuple[float, float, str]:
    value, tier_value, desc = _current(snapshot, candidate.component)
    if candidate.dimension == "storage_available_gb":
        value = snapshot.storage.available_gb
    return value, tier_value, desc


def _hardware_candidates(
    snapshot: HardwareSnapshot, breakdown: ScoreBreakdown, config: AdvisorConfig
) -> list[_Candidate]:
    subs = breakdown.components()
    out: list[_Candidate] = []
    # Unified-memory machines ship CPU, GPU and RAM as one package
    integrated = snapshot.gpu.unified_memory
    if subs["gpu"] < config.upgrade_threshold and not integrated:
        out.extend(_gpu_candidates())
    if subs["memory"] < config.upgrade_threshold and not integrated:
        out.extend(_memory_candidates(snapshot.memory))
    if subs["storage"] < config.upgrade_threshold or (
        snapshot.storage.available_gb < config.low_storage_gb
    ):
        out.extend(_storage_candidates(snapshot.storage, config))
    if subs["cpu"] < config.upgrade_threshold and not integrated:
        out.extend(_cpu_candidates())
    return out


# ---------------------------------------------------------------------------
# Software fixes
# ---------------------------------------------------------------------------


def _software_fixes(snapshot: HardwareSnapshot) -> list[tuple[str, str, str, str]]:
    """(runtime, product, recommended spec, rationale) for missing runtimes."""
    gpu, fw = snapshot.gpu, snapshot.frameworks
    fixes = []
    if gpu.detected and gpu.vendor == "NVIDIA" and not fw.cuda.present:
        fixes.append(
            ("cuda", "NVIDIA CUDA Toolkit 12.x", "CUDA installed",
             "CUDA is free and gives order-of-magnitude faster inference on NVIDIA GPUs")
        )
    if gpu.detected and gpu.vendor == "AMD" and snapshot.platform == "linux" and not fw.rocm.present:
        fixes.append(
            ("rocm", "AMD ROCm 6.x", "ROCm installed",
             "ROCm enables GPU acceleration for AMD cards in llama.cpp and PyTorch")
        )
    if gpu.detected and gpu.vendor == "Apple" and not fw.metal.present:
        fixes.append(
            ("metal", "macOS 13 or later", "Metal 3",
             "Metal 3 ships with current macOS and accelerates Apple Silicon inference")
        )
    if gpu.detected and snapshot.platform == "win32" and not fw.directml.present:
        fixes.append(
            ("directml", "Windows 10 1903 or later", "DirectML available",
             "DirectML provides vendor-neutral GPU acceleration on Windows")
        )
    if gpu.detected and gpu.vendor == "Intel" and not fw.openvino.present:
        fixes.append(
            ("openvino", "Intel OpenVINO toolkit", "OpenVINO installed",
             "OpenVINO accelerates inference on Intel GPUs and CPUs")
        )
    return fixes


# ---------------------------------------------------------------------------
# advise()
# ---------------------------------------------------------------------------


def _subscore(breakdown: ScoreBreakdown, component: str) -> float:
    return breakdown.components()[component]


def _priority(component: str, delta: int, bottleneck: Optional[Bottleneck]) -> Priority:
    if bottleneck is not None and bottleneck.component == component:
        return Priority.HIGH
    return Priority.MEDIUM if delta >= 5 else Priority.LOW


def advise(
    snapshot: HardwareSnapshot,
    scores: SystemScores,
    config: AdvisorConfig = DEFAULT_ADVISOR,
    scoring_config: ScoringConfig = DEFAULT_SCORING,
) -> Advice:
    """Find the bottleneck and rank upgrade recommendations.

    A hardware candidate is kept only when it strictly exceeds the current
    part on its dimension and is not slower than the current part. A GPU
    whose memory size is unknown only loses to a strictly faster card.
    Software fixes cost nothing and always come first.
    """
    breakdown = scores.breakdown
    bottleneck = find_bottleneck(breakdown, config)
    base = scores.inference

    recommendations: list[UpgradeRecommendation] = []
    for runtime, product, spec, why in _software_fixes(snapshot):
        upgraded = replace(
            snapshot,
            frameworks=replace(snapshot.frameworks, **{runtime: FrameworkStatus(present=True)}),
        )
        after = score(upgraded, UseCase.INFERENCE, scoring_config)
        recommendations.append(
            UpgradeRecommendation(
                component="frameworks",
                current_spec=f"{runtime} not detected",
                recommended_spec=spec,
                dimension=runtime,
                current_value=0.0,
                recommended_value=1.0,
                cost_tier=CostTier.FREE,
                estimated_cost_usd=0,
                score_delta=after.score - base,
                subscore_delta=round(after.breakdown.frameworks - breakdown.frameworks, 1),
                priority=Priority.IMMEDIATE,
                rationale=why,
                product=product,
            )
        )

    for candidate in _hardware_candidates(snapshot, breakdown, config):
        current_value, current_tier, current_desc = _dimension_value(snapshot, candidate)
        if candidate.value <= current_value:
            continue
        # A detected GPU with no VRAM reading can only be beaten on speed
        unknown = candidate.component == "gpu" and snapshot.gpu.detected and current_value <= 0
        if unknown and candidate.tier_value <= current_tier:
            logger.debug(
                "Skipping %s: current GPU memory unknown and not faster", candidate.product
            )
            continue
        if candidate.tier_value < current_tier:
            logger.debug(
                "Skipping %s: slower than the current %s", candidate.product, candidate.component
            )
            continue
        after = score(candidate.apply(snapshot), UseCase.INFERENCE, scoring_config)
        delta = after.score - base
        recommendations.append(
            UpgradeRecommendation(
                component=candidate.component,
                current_spec=current_desc,
                recommended_spec=candidate.spec,
                dimension=candidate.dimension,
                current_value=current_value,
                recommended_value=candidate.value,
                cost_tier=candidate.cost_tier,
                estimated_cost_usd=candidate.cost,
                score_delta=delta,
                subscore_delta=round(
                    _subscore(after.breakdown, candidate.component)
                    - _subscore(breakdown, candidate.component),
                    1,
                ),
                priority=_priority(candidate.component, delta, bottleneck),
                rationale=candidate.rationale,
                product=candidate.product,
            )
        )

    recommendations.sort(
        key=lambda r: (
            not r.is_software,
            -(r.score_delta / r.estimated_cost_usd) if r.estimated_cost_usd else 0.0,
            -r.score_delta,
            r.product,
        )
    )
    capped = tuple(recommendations[: config.max_recommendations])
    logger.debug(
        "Bottleneck=%s, %d candidates, %d recommended",
        bottleneck.component if bottleneck else None,
        len(recommendations),
        len(capped),
    )
    return Advice(bottleneck=bottleneck, recommendations=capped)
