"""
llmcheck: can this machine run that model?

Detects CPU, GPU, memory, storage and accelerator runtimes, scores the
machine for inference, fine-tuning and training, ranks catalog models by
fit and suggests upgrades.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .advisor import Advice, Bottleneck, UpgradeRecommendation, advise, find_bottleneck
from .catalog import DEFAULT_CATALOG, ModelEntry, find_model, load_catalog, models_by_family
from .hardware import HardwareDetector, HardwareSnapshot, detect_hardware
from .matching import CompatibilityTier, MatchReport, ModelMatch, match
from .report import build_report
from .scoring import Rating, SystemScores, UseCase, UseCaseScore, score, score_all

__all__ = [
    "Advice",
    "Bottleneck",
    "CompatibilityTier",
    "DEFAULT_CATALOG",
    "HardwareDetector",
    "HardwareSnapshot",
    "MatchReport",
    "ModelEntry",
    "ModelMatch",
    "Rating",
    "SystemScores",
    "UpgradeRecommendation",
    "UseCase",
    "UseCaseScore",
    "advise",
    "build_report",
    "detect_hardware",
    "find_bottleneck",
    "find_model",
    "load_catalog",
    "match",
    "models_by_family",
    "score",
    "score_all",
]
