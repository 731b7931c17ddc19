"""
llmcheck command-line interface.

Usage::

    llmcheck detect
    llmcheck detect --json
    llmcheck score
    llmcheck models --family llama
    llmcheck models --catalog-url https://example.com/catalog.json
    llmcheck upgrade
    llmcheck report --json
"""

from __future__ import annotations

import logging
from typing import Optional

import click

from . import __version__
from .advisor import Advice, advise
from .catalog import find_model, load_catalog, models_by_family
from .config import DetectionConfig
from .hardware import HardwareDetector, HardwareSnapshot, detect_hardware
from .matching import CompatibilityTier, MatchReport, match
from .report import advice_dict, build_report, models_dict, scores_dict, snapshot_dict, to_json
from .scoring import SystemScores, UseCase, score_all

logger = logging.getLogger(__name__)

_TIER_COLORS = {
    CompatibilityTier.PERFECT: "green",
    CompatibilityTier.GOOD: "cyan",
    CompatibilityTier.POSSIBLE: "yellow",
    CompatibilityTier.NOT_RECOMMENDED: "red",
}


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="llmcheck")
@click.option("--verbose", "-v", is_flag=True, help="Log probe attempts at DEBUG level.")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0.1),
    default=None,
    help="Seconds per probe attempt (default: LLMCHECK_PROBE_TIMEOUT or 2).",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, timeout: Optional[float]) -> None:
    """llmcheck - see which LLMs your hardware can run."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = DetectionConfig(probe_timeout=timeout) if timeout else None
    ctx.obj = HardwareDetector(config=config)


def _snapshot(ctx: click.Context) -> HardwareSnapshot:
    detector: HardwareDetector = ctx.obj
    return detect_hardware(detector)


def _bar(value: float, width: int = 20) -> str:
    filled = int(round(width * max(0.0, min(value, 100.0)) / 100))
    return "#" * filled + "-" * (width - filled)


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _print_hardware(snapshot: HardwareSnapshot, verbose: bool = False) -> None:
    cpu, gpu, mem, disk, fw = (
        snapshot.cpu,
        snapshot.gpu,
        snapshot.memory,
        snapshot.storage,
        snapshot.frameworks,
    )
    click.secho("\n  Hardware Profile\n", bold=True)
    if snapshot.os_name:
        click.echo(f"  OS: {snapshot.os_name}")
        click.echo()

    click.secho("  CPU", bold=True)
    if cpu.detected:
        click.echo(f"    {cpu.model}")
        click.echo(f"    Cores: {cpu.physical_cores} ({cpu.logical_cores} threads)")
        click.echo(f"    Speed: {cpu.clock_ghz:.2f} GHz")
        features = []
        if cpu.has_avx512:
            features.append("AVX-512")
        if cpu.has_avx2:
            features.append("AVX2")
        if cpu.has_neon:
            features.append("NEON")
        if features:
            click.echo(f"    Features: {', '.join(features)}")
    else:
        click.secho("    Not detected", fg="yellow")
    click.echo()

    if gpu.detected:
        click.secho("  GPU", bold=True)
        click.echo(f"    {gpu.model}")
        kind = "unified" if gpu.unified_memory else ("dedicated" if gpu.is_dedicated else "shared")
        click.echo(f"    VRAM: {gpu.vram_gb:.1f} GB ({kind})")
        if gpu.architecture:
            click.echo(f"    Arch: {gpu.architecture}")
        if gpu.compute_capability:
            click.echo(f"    Compute: {gpu.compute_capability}")
        if gpu.driver_version:
            click.echo(f"    Driver: {gpu.driver_version}")
    else:
        click.secho("  GPU: None detected", fg="yellow")
    click.echo()

    click.secho("  Memory", bold=True)
    if mem.detected:
        click.echo(f"    Total: {mem.total_gb:.1f} GB {mem.type if mem.type != 'Unknown' else ''}".rstrip())
        click.echo(f"    Available: {mem.available_gb:.1f} GB")
    else:
        click.secho("    Not detected", fg="yellow")
    click.echo()

    click.secho("  Storage", bold=True)
    if disk.detected:
        click.echo(f"    {disk.type.value}: {disk.available_gb:.0f} GB free of {disk.total_gb:.0f} GB")
        if disk.read_mbps:
            click.echo(f"    Est. read: ~{disk.read_mbps} MB/s")
    else:
        click.secho("    Not detected", fg="yellow")
    click.echo()

    click.secho("  Accelerator runtimes", bold=True)
    present = [
        f"{name} {status.version}" if status.version else name
        for name, status in fw.runtimes().items()
        if status.present
    ]
    click.echo(f"    {', '.join(present) if present else 'None (CPU only)'}")

    if verbose and snapshot.diagnostics:
        click.echo()
        click.secho("  Diagnostics", bold=True, fg="yellow")
        for d in snapshot.diagnostics:
            click.echo(f"    • {d}")
    click.echo()


def _print_scores(scores: SystemScores) -> None:
    click.secho("\n  Capability Scores\n", bold=True)
    for use_case in (UseCase.INFERENCE, UseCase.FINE_TUNING, UseCase.TRAINING):
        result = scores.use_cases[use_case]
        label = use_case.value.replace("_", "-")
        click.echo(
            f"    {label:<12} {result.score:>3}/100  {_bar(result.score)}  {result.rating.value}"
        )
        click.echo(f"      {scores.capabilities[use_case]}")
    click.echo()
    click.echo(f"    System tier: {scores.system_tier}")
    click.echo(f"    Recommended model size: {scores.recommended_model_size}")

    click.echo()
    click.secho("  Breakdown", bold=True)
    for name, value in scores.breakdown.components().items():
        click.echo(f"    {name:<11} {value:>5.1f}  {_bar(value)}")
    for s in scores.breakdown.strengths:
        click.secho(f"    + {s}", fg="green")
    for w in scores.breakdown.weaknesses:
        click.secho(f"    - {w}", fg="red")
    click.echo()


def _print_models(report: MatchReport) -> None:
    click.secho(f"\n  Model Compatibility ({report.resources.hardware_class})\n", bold=True)
    click.echo(
        f"    {len(report.compatible)} of {len(report.ranked)} models fit "
        f"({report.resources.model_memory_gb:.1f} GB for weights)"
    )
    for tier, matches in report.tiers().items():
        if not matches:
            continue
        click.echo()
        click.secho(f"  {tier.value.replace('_', ' ').title()}", bold=True, fg=_TIER_COLORS[tier])
        for m in matches:
            level = m.best_fit or f"closest {m.closest}"
            click.echo(f"    {m.model.name:<28} {m.score:>5.1f}  {level}")
            if m.expected_tokens_per_sec is not None:
                click.echo(f"      ~{m.expected_tokens_per_sec:.0f} tok/s ({m.performance})")
            if m.trainable:
                click.echo(f"      Trainable: {', '.join(t.value for t in m.trainable)}")
    click.echo()


def _print_advice(advice: Advice) -> None:
    click.secho("\n  Upgrade Advice\n", bold=True)
    if advice.bottleneck:
        b = advice.bottleneck
        click.echo(f"    Bottleneck: {b.component} ({b.score:.0f} vs. mean {b.mean:.0f})")
    else:
        click.echo("    No single component is holding this machine back.")
    if not advice.recommendations:
        click.echo("    No upgrades recommended.")
        click.echo()
        return
    for i, rec in enumerate(advice.recommendations, 1):
        click.echo()
        cost = "free" if rec.is_software else f"~${rec.estimated_cost_usd}"
        click.secho(f"    {i}. [{rec.priority.value}] {rec.product} ({cost})", bold=True)
        click.echo(f"       {rec.current_spec} -> {rec.recommended_spec}")
        if rec.score_delta:
            click.echo(f"       Inference score {rec.score_delta:+d}")
        click.echo(f"       {rec.rationale}")
    click.echo()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--diagnostics", is_flag=True, help="Show every probe attempt.")
@click.pass_context
def detect(ctx: click.Context, as_json: bool, diagnostics: bool) -> None:
    """Detect CPU, GPU, memory, storage and accelerator runtimes."""
    snapshot = _snapshot(ctx)
    if as_json:
        click.echo(to_json(snapshot_dict(snapshot)))
        return
    _print_hardware(snapshot, verbose=diagnostics)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def score(ctx: click.Context, as_json: bool) -> None:
    """Score this machine for inference, fine-tuning and training."""
    scores = score_all(_snapshot(ctx))
    if as_json:
        click.echo(to_json(scores_dict(scores)))
        return
    _print_scores(scores)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--family", default=None, help="Only models from this family (e.g. llama).")
@click.option("--model", "model_name", default=None, help="Only this model (id or name).")
@click.option("--catalog-url", default=None, help="Fetch the model catalog from this URL.")
@click.pass_context
def models(
    ctx: click.Context,
    as_json: bool,
    family: Optional[str],
    model_name: Optional[str],
    catalog_url: Optional[str],
) -> None:
    """Rank catalog models by how well they fit this machine."""
    catalog = load_catalog(catalog_url)
    if model_name:
        entry = find_model(catalog, model_name)
        if entry is None:
            raise click.ClickException(f"Unknown model {model_name!r}")
        catalog = [entry]
    if family:
        catalog = models_by_family(catalog, family)
        if not catalog:
            raise click.ClickException(f"No models in family {family!r}")
    report = match(_snapshot(ctx), catalog)
    if as_json:
        click.echo(to_json(models_dict(report)))
        return
    _print_models(report)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def upgrade(ctx: click.Context, as_json: bool) -> None:
    """Find the bottleneck and suggest upgrades."""
    snapshot = _snapshot(ctx)
    advice = advise(snapshot, score_all(snapshot))
    if as_json:
        click.echo(to_json(advice_dict(advice)))
        return
    _print_advice(advice)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--catalog-url", default=None, help="Fetch the model catalog from this URL.")
@click.pass_context
def report(ctx: click.Context, as_json: bool, catalog_url: Optional[str]) -> None:
    """Full report: hardware, scores, models and upgrades."""
    snapshot = _snapshot(ctx)
    scores = score_all(snapshot)
    matches = match(snapshot, load_catalog(catalog_url))
    advice = advise(snapshot, scores)
    if as_json:
        click.echo(to_json(build_report(snapshot, scores, matches, advice)))
        return
    _print_hardware(snapshot)
    _print_scores(scores)
    _print_models(matches)
    _print_advice(advice)


if __name__ == "__main__":
    main()
