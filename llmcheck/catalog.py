"""Model requirement catalog.

Each :class:`ModelEntry` maps quantization levels to the resources a
machine needs to run them, plus optional training requirements. The
embedded :data:`DEFAULT_CATALOG` is always available; :func:`load_catalog`
can replace it with a newer versioned JSON document fetched over HTTP.

Throughput tables are keyed by hardware class:

- ``high_end_gpu``: 16 GB+ dedicated VRAM
- ``mid_range_gpu``: 8-16 GB dedicated VRAM
- ``entry_gpu``: under 8 GB dedicated VRAM
- ``apple_silicon``: unified memory
- ``cpu``: no usable GPU
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import httpx

from .config import CatalogConfig

logger = logging.getLogger(__name__)

CATALOG_VERSION = 1

HARDWARE_CLASSES: tuple[str, ...] = (
    "high_end_gpu",
    "mid_range_gpu",
    "entry_gpu",
    "apple_silicon",
    "cpu",
)

# Rough tok/s for a 1B model at 4 bits; scaled by size and bit width
_CLASS_SPEED: dict[str, float] = {
    "high_end_gpu": 110.0,
    "mid_range_gpu": 60.0,
    "entry_gpu": 30.0,
    "apple_silicon": 45.0,
    "cpu": 8.0,
}


class TrainingMethod(str, Enum):
    FULL = "full"
    LORA = "lora"
    QLORA = "qlora"


@dataclass(frozen=True)
class QuantRequirement:
    vram_gb: float
    ram_gb: float
    storage_gb: float
    bits: int = 4
    min_inference_score: int = 0
    throughput: dict[str, float] = field(default_factory=dict)  # hardware class -> tok/s


@dataclass(frozen=True)
class TrainingRequirement:
    vram_gb: float
    ram_gb: float


@dataclass(frozen=True)
class ModelEntry:
    id: str
    name: str
    family: str
    parameters_b: float
    quantizations: dict[str, QuantRequirement]
    popularity_rank: int
    beginner_friendly: bool = False
    training: dict[TrainingMethod, TrainingRequirement] = field(default_factory=dict)
    description: str = ""
    tags: tuple[str, ...] = ()
    license: str = ""
    url: str = ""


# ---------------------------------------------------------------------------
# Embedded catalog
# ---------------------------------------------------------------------------


def _throughput(params_b: float, bits: int) -> dict[str, float]:
    return {
        hw: round(speed / max(params_b, 0.5) * 4 / bits, 1) for hw, speed in _CLASS_SPEED.items()
    }


def _quants(params_b: float, *rows: tuple[str, int, float, float, float]) -> dict[str, QuantRequirement]:
    """Rows are (level, bits, vram_gb, ram_gb, storage_gb)."""
    return {
        level: QuantRequirement(
            vram_gb=vram,
            ram_gb=ram,
            storage_gb=storage,
            bits=bits,
            min_inference_score=min(80, int(20 + vram)),
            throughput=_throughput(params_b, bits),
        )
        for level, bits, vram, ram, storage in rows
    }


def _training(params_b: float) -> dict[TrainingMethod, TrainingRequirement]:
    # Full: fp16 weights + grads + Adam states; LoRA: fp16 frozen base; QLoRA: 4-bit base
    return {
        TrainingMethod.FULL: TrainingRequirement(
            vram_gb=round(params_b * 16 + 4, 1), ram_gb=round(params_b * 8 + 16, 1)
        ),
        TrainingMethod.LORA: TrainingRequirement(
            vram_gb=round(params_b * 2.4 + 2, 1), ram_gb=round(params_b * 2 + 8, 1)
        ),
        TrainingMethod.QLORA: TrainingRequirement(
            vram_gb=round(params_b * 0.75 + 2, 1), ram_gb=round(params_b + 8, 1)
        ),
    }


DEFAULT_CATALOG: tuple[ModelEntry, ...] = (
    ModelEntry(
        id="llama-3.2-1b",
        name="Llama 3.2 1B",
        family="Llama",
        parameters_b=1.2,
        quantizations=_quants(
            1.2,
            ("Q4_K_M", 4, 1.0, 2.0, 0.8),
            ("Q8_0", 8, 1.5, 3.0, 1.3),
            ("FP16", 16, 2.5, 4.0, 2.5),
        ),
        training=_training(1.2),
        popularity_rank=6,
        beginner_friendly=True,
        description="Tiny Llama model for edge devices and quick experiments.",
        tags=("chat", "edge", "beginner-friendly"),
        license="Llama 3.2 Community License",
        url="https://huggingface.co/meta-llama/Llama-3.2-1B-Instruct",
    ),
    ModelEntry(
        id="llama-3.2-3b",
        name="Llama 3.2 3B",
        family="Llama",
        parameters_b=3.2,
        quantizations=_quants(
            3.2,
            ("Q4_K_M", 4, 2.5, 4.0, 2.0),
            ("Q8_0", 8, 4.0, 6.0, 3.4),
            ("FP16", 16, 7.0, 10.0, 6.4),
        ),
        training=_training(3.2),
        popularity_rank=4,
        beginner_friendly=True,
        description="Small Llama model with good instruction following for its size.",
        tags=("chat", "general-purpose", "beginner-friendly"),
        license="Llama 3.2 Community License",
        url="https://huggingface.co/meta-llama/Llama-3.2-3B-Instruct",
    ),
    ModelEntry(
        id="llama-3.1-8b",
        name="Llama 3.1 8B",
        family="Llama",
        parameters_b=8.0,
        quantizations=_quants(
            8.0,
            ("Q4_K_M", 4, 6.0, 10.0, 5.0),
            ("Q5_K_M", 5, 7.0, 12.0, 5.7),
            ("Q8_0", 8, 10.0, 16.0, 8.5),
            ("FP16", 16, 17.0, 24.0, 16.0),
        ),
        training=_training(8.0),
        popularity_rank=1,
        beginner_friendly=True,
        description=(
            "Meta's Llama 3.1 model with 8 billion parameters. Excellent for "
            "general-purpose tasks, coding, and conversational AI."
        ),
        tags=("chat", "coding", "general-purpose", "beginner-friendly"),
        license="Llama 3.1 Community License",
        url="https://huggingface.co/meta-llama/Meta-Llama-3.1-8B",
    ),
    ModelEntry(
        id="llama-3.1-70b",
        name="Llama 3.1 70B",
        family="Llama",
        parameters_b=70.0,
        quantizations=_quants(
            70.0,
            ("Q4_K_M", 4, 40.0, 80.0, 40.0),
            ("Q5_K_M", 5, 50.0, 96.0, 48.0),
            ("Q8_0", 8, 75.0, 128.0, 75.0),
        ),
        training={
            TrainingMethod.QLORA: TrainingRequirement(vram_gb=48.0, ram_gb=96.0),
        },
        popularity_rank=5,
        description=(
            "Large Llama 3.1 model with exceptional reasoning and coding "
            "capabilities. Requires high-end hardware."
        ),
        tags=("chat", "coding", "reasoning", "advanced"),
        license="Llama 3.1 Community License",
        url="https://huggingface.co/meta-llama/Meta-Llama-3.1-70B",
    ),
    ModelEntry(
        id="mistral-7b",
        name="Mistral 7B",
        family="Mistral",
        parameters_b=7.3,
        quantizations=_quants(
            7.3,
            ("Q4_K_M", 4, 5.0, 8.0, 4.0),
            ("Q5_K_M", 5, 6.0, 10.0, 5.0),
            ("Q8_0", 8, 8.0, 14.0, 7.7),
            ("FP16", 16, 15.0, 20.0, 14.5),
        ),
        training=_training(7.3),
        popularity_rank=2,
        beginner_friendly=True,
        description=(
            "Mistral AI's flagship 7B model. Excellent performance-to-size "
            "ratio, great for coding and general tasks."
        ),
        tags=("chat", "coding", "general-purpose", "efficient"),
        license="Apache 2.0",
        url="https://huggingface.co/mistralai/Mistral-7B-v0.1",
    ),
    ModelEntry(
        id="mixtral-8x7b",
        name="Mixtral 8x7B",
        family="Mistral",
        parameters_b=46.7,
        quantizations=_quants(
            46.7,
            ("Q4_K_M", 4, 26.0, 32.0, 26.0),
            ("Q5_K_M", 5, 32.0, 40.0, 32.0),
            ("Q8_0", 8, 48.0, 56.0, 49.0),
        ),
        popularity_rank=9,
        description="Sparse mixture-of-experts model; 12.9B parameters active per token.",
        tags=("chat", "moe", "advanced"),
        license="Apache 2.0",
        url="https://huggingface.co/mistralai/Mixtral-8x7B-Instruct-v0.1",
    ),
    ModelEntry(
        id="phi-3-mini",
        name="Phi-3 Mini 3.8B",
        family="Phi",
        parameters_b=3.8,
        quantizations=_quants(
            3.8,
            ("Q4_K_M", 4, 3.0, 5.0, 2.3),
            ("Q8_0", 8, 4.5, 7.0, 4.1),
            ("FP16", 16, 8.0, 10.0, 7.6),
        ),
        training=_training(3.8),
        popularity_rank=7,
        beginner_friendly=True,
        description="Microsoft's small model with strong reasoning for its size.",
        tags=("chat", "reasoning", "efficient", "beginner-friendly"),
        license="MIT",
        url="https://huggingface.co/microsoft/Phi-3-mini-4k-instruct",
    ),
    ModelEntry(
        id="phi-4",
        name="Phi-4 14B",
        family="Phi",
        parameters_b=14.7,
        quantizations=_quants(
            14.7,
            ("Q4_K_M", 4, 9.0, 14.0, 9.0),
            ("Q8_0", 8, 16.0, 22.0, 15.6),
        ),
        training=_training(14.7),
        popularity_rank=10,
        description="Reasoning-focused 14B model trained largely on synthetic data.",
        tags=("reasoning", "math", "coding"),
        license="MIT",
        url="https://huggingface.co/microsoft/phi-4",
    ),
    ModelEntry(
        id="gemma-2-2b",
        name="Gemma 2 2B",
        family="Gemma",
        parameters_b=2.6,
        quantizations=_quants(
            2.6,
            ("Q4_K_M", 4, 2.0, 4.0, 1.7),
            ("Q8_0", 8, 3.0, 5.0, 2.8),
            ("FP16", 16, 5.5, 8.0, 5.2),
        ),
        training=_training(2.6),
        popularity_rank=11,
        beginner_friendly=True,
        description="Google's compact Gemma 2 model for laptops and edge devices.",
        tags=("chat", "edge", "beginner-friendly"),
        license="Gemma Terms of Use",
        url="https://huggingface.co/google/gemma-2-2b-it",
    ),
    ModelEntry(
        id="gemma-2-9b",
        name="Gemma 2 9B",
        family="Gemma",
        parameters_b=9.2,
        quantizations=_quants(
            9.2,
            ("Q4_K_M", 4, 6.5, 10.0, 5.8),
            ("Q8_0", 8, 10.5, 16.0, 9.8),
        ),
        training=_training(9.2),
        popularity_rank=8,
        description="Mid-size Gemma 2 model with strong multilingual quality.",
        tags=("chat", "multilingual"),
        license="Gemma Terms of Use",
        url="https://huggingface.co/google/gemma-2-9b-it",
    ),
    ModelEntry(
        id="qwen2.5-7b",
        name="Qwen2.5 7B",
        family="Qwen",
        parameters_b=7.6,
        quantizations=_quants(
            7.6,
            ("Q4_K_M", 4, 5.5, 9.0, 4.7),
            ("Q8_0", 8, 9.0, 14.0, 8.1),
            ("FP16", 16, 16.0, 22.0, 15.2),
        ),
        training=_training(7.6),
        popularity_rank=3,
        beginner_friendly=True,
        description="Alibaba's Qwen2.5 general model with long context support.",
        tags=("chat", "coding", "multilingual", "beginner-friendly"),
        license="Apache 2.0",
        url="https://huggingface.co/Qwen/Qwen2.5-7B-Instruct",
    ),
    ModelEntry(
        id="qwen2.5-32b",
        name="Qwen2.5 32B",
        family="Qwen",
        parameters_b=32.8,
        quantizations=_quants(
            32.8,
            ("Q4_K_M", 4, 20.0, 32.0, 19.9),
            ("Q8_0", 8, 35.0, 48.0, 34.8),
        ),
        training={
            TrainingMethod.QLORA: TrainingRequirement(vram_gb=26.0, ram_gb=48.0),
        },
        popularity_rank=12,
        description="Large Qwen2.5 model close to 70B-class quality.",
        tags=("chat", "coding", "reasoning", "advanced"),
        license="Apache 2.0",
        url="https://huggingface.co/Qwen/Qwen2.5-32B-Instruct",
    ),
    ModelEntry(
        id="codellama-13b",
        name="CodeLlama 13B",
        family="CodeLlama",
        parameters_b=13.0,
        quantizations=_quants(
            13.0,
            ("Q4_K_M", 4, 8.5, 14.0, 7.9),
            ("Q8_0", 8, 14.5, 20.0, 13.8),
        ),
        training=_training(13.0),
        popularity_rank=14,
        description="Code-specialized Llama 2 derivative for completion and infilling.",
        tags=("coding",),
        license="Llama 2 Community License",
        url="https://huggingface.co/codellama/CodeLlama-13b-hf",
    ),
    ModelEntry(
        id="deepseek-coder-6.7b",
        name="DeepSeek Coder 6.7B",
        family="DeepSeek",
        parameters_b=6.7,
        quantizations=_quants(
            6.7,
            ("Q4_K_M", 4, 5.0, 8.0, 4.1),
            ("Q8_0", 8, 8.0, 12.0, 7.2),
        ),
        training=_training(6.7),
        popularity_rank=13,
        description="Code model trained on 2T tokens across 80+ programming languages.",
        tags=("coding",),
        license="DeepSeek License",
        url="https://huggingface.co/deepseek-ai/deepseek-coder-6.7b-instruct",
    ),
    ModelEntry(
        id="deepseek-r1-70b",
        name="DeepSeek-R1 70B",
        family="DeepSeek",
        parameters_b=70.6,
        quantizations=_quants(
            70.6,
            ("Q4_K_M", 4, 42.0, 80.0, 42.5),
            ("Q8_0", 8, 75.0, 128.0, 75.0),
        ),
        popularity_rank=15,
        description="Reasoning model distilled from DeepSeek-R1 onto Llama 3.3 70B.",
        tags=("reasoning", "math", "advanced"),
        license="MIT",
        url="https://huggingface.co/deepseek-ai/DeepSeek-R1-Distill-Llama-70B",
    ),
)


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------


def find_model(catalog: tuple[ModelEntry, ...] | list[ModelEntry], name: str) -> Optional[ModelEntry]:
    """Case-insensitive lookup by id or display name."""
    needle = name.strip().lower()
    for entry in catalog:
        if entry.id.lower() == needle or entry.name.lower() == needle:
            return entry
    return None


def models_by_family(catalog: tuple[ModelEntry, ...] | list[ModelEntry], family: str) -> list[ModelEntry]:
    needle = family.strip().lower()
    return [entry for entry in catalog if entry.family.lower() == needle]


# ---------------------------------------------------------------------------
# JSON document <-> entries
# ---------------------------------------------------------------------------


def _mapping(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise TypeError(f"{what} must be an object, got {type(value).__name__}")
    return value


def entry_from_dict(data: dict[str, Any]) -> ModelEntry:
    """Build a ModelEntry from one element of a catalog document's ``models``.

    Raises KeyError/TypeError/ValueError on a malformed element.
    """
    data = _mapping(data, "model")
    model_id = data.get("id")
    quants: dict[str, QuantRequirement] = {}
    for level, raw in _mapping(data["quantizations"], f"{model_id} quantizations").items():
        q = _mapping(raw, f"{model_id} {level}")
        throughput = _mapping(q.get("throughput") or {}, f"{model_id} {level} throughput")
        quants[level] = QuantRequirement(
            vram_gb=float(q["vram_gb"]),
            ram_gb=float(q["ram_gb"]),
            storage_gb=float(q["storage_gb"]),
            bits=int(q.get("bits", 4)),
            min_inference_score=int(q.get("min_inference_score", 0)),
            throughput={k: float(v) for k, v in throughput.items()},
        )
    if not quants:
        raise ValueError(f"model {model_id!r} has no quantization levels")
    training = {}
    for method, raw in _mapping(data.get("training") or {}, f"{model_id} training").items():
        t = _mapping(raw, f"{model_id} {method}")
        training[TrainingMethod(method)] = TrainingRequirement(
            vram_gb=float(t["vram_gb"]), ram_gb=float(t["ram_gb"])
        )
    return ModelEntry(
        id=str(data["id"]),
        name=str(data.get("name") or data["id"]),
        family=str(data.get("family", "")),
        parameters_b=float(data["parameters_b"]),
        quantizations=quants,
        popularity_rank=int(data.get("popularity_rank", 100)),
        beginner_friendly=bool(data.get("beginner_friendly", False)),
        training=training,
        description=str(data.get("description", "")),
        tags=tuple(data.get("tags") or ()),
        license=str(data.get("license", "")),
        url=str(data.get("url", "")),
    )


def parse_catalog(document: dict[str, Any]) -> tuple[ModelEntry, ...]:
    document = _mapping(document, "catalog document")
    version = int(document.get("version", 0))
    if version != CATALOG_VERSION:
        raise ValueError(f"unsupported catalog version {version}")
    raw_models = document["models"]
    if not isinstance(raw_models, list):
        raise TypeError("catalog models must be a list")
    models = tuple(entry_from_dict(m) for m in raw_models)
    if not models:
        raise ValueError("catalog has no models")
    return models


def load_catalog(
    url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> tuple[ModelEntry, ...]:
    """Fetch a catalog document, falling back to :data:`DEFAULT_CATALOG`.

    With no *url* argument, ``LLMCHECK_CATALOG_URL`` is used; with neither,
    the embedded catalog is returned without any network access.
    """
    env = CatalogConfig.from_env()
    url = url or env.url
    if not url:
        return DEFAULT_CATALOG
    try:
        resp = httpx.get(url, timeout=timeout or env.timeout, follow_redirects=True)
        resp.raise_for_status()
        catalog = parse_catalog(resp.json())
    except httpx.HTTPError as exc:
        logger.warning("Could not fetch model catalog from %s: %s; using built-in catalog", url, exc)
        return DEFAULT_CATALOG
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Malformed model catalog at %s: %s; using built-in catalog", url, exc)
        return DEFAULT_CATALOG
    logger.debug("Loaded %d models from %s", len(catalog), url)
    return catalog
