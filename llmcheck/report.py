"""Plain-dict assembly of detection, scoring, matching and advice results."""

from __future__ import annotations

import dataclasses
import json
from enum import Enum
from typing import Any, Optional

from . import __version__
from .advisor import Advice, UpgradeRecommendation
from .hardware import HardwareSnapshot
from .matching import MatchReport, ModelMatch
from .scoring import SystemScores


def _serialize(obj: object) -> object:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if hasattr(obj, "value"):
        return obj.value
    return str(obj)


def _plain(obj: Any) -> Any:
    """asdict() keeps Enum dict keys; JSON wants their string values."""
    if isinstance(obj, dict):
        return {(k.value if isinstance(k, Enum) else k): _plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_plain(v) for v in obj]
    if isinstance(obj, Enum):
        return obj.value
    return obj


def snapshot_dict(snapshot: HardwareSnapshot) -> dict[str, Any]:
    data = _plain(dataclasses.asdict(snapshot))
    data["sources"] = dict(snapshot.sources)
    return data


def scores_dict(scores: SystemScores) -> dict[str, Any]:
    return _plain(dataclasses.asdict(scores))


def match_dict(m: ModelMatch) -> dict[str, Any]:
    return {
        "id": m.model.id,
        "name": m.model.name,
        "family": m.model.family,
        "parameters_b": m.model.parameters_b,
        "score": m.score,
        "tier": m.tier.value,
        "fits": m.fits,
        "best_fit": m.best_fit,
        "max_fit": m.max_fit,
        "expected_tokens_per_sec": m.expected_tokens_per_sec,
        "performance": m.performance,
        "trainable": [method.value for method in m.trainable],
    }


def models_dict(report: MatchReport) -> dict[str, Any]:
    return {
        "hardware_class": report.resources.hardware_class,
        "resources": dataclasses.asdict(report.resources),
        "tiers": {tier.value: [match_dict(m) for m in ms] for tier, ms in report.tiers().items()},
        "compatible": len(report.compatible),
        "total": len(report.ranked),
    }


def recommendation_dict(rec: UpgradeRecommendation) -> dict[str, Any]:
    return _plain(dataclasses.asdict(rec))


def advice_dict(advice: Advice) -> dict[str, Any]:
    return {
        "bottleneck": dataclasses.asdict(advice.bottleneck) if advice.bottleneck else None,
        "recommendations": [recommendation_dict(r) for r in advice.recommendations],
    }


def build_report(
    snapshot: HardwareSnapshot,
    scores: SystemScores,
    matches: Optional[MatchReport] = None,
    advice: Optional[Advice] = None,
) -> dict[str, Any]:
    """Assemble everything the CLI prints into one JSON-ready dict."""
    report: dict[str, Any] = {
        "version": __version__,
        "generated_at": snapshot.detected_at,
        "hardware": snapshot_dict(snapshot),
        "scores": scores_dict(scores),
    }
    if matches is not None:
        report["models"] = models_dict(matches)
    if advice is not None:
        report["upgrades"] = advice_dict(advice)
    return report


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2, default=_serialize)
