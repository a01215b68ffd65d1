"""wristflick CLI.

Usage:
    wristflick replay      — Replay a recorded sensor session through the engine
    wristflick simulate    — Run a scripted synthetic typing session
    wristflick benchmark   — Measure per-sample processing latency
    wristflick config      — Print, validate or write engine configurations
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import typer
import yaml

from wristflick.config import ConfigError, EngineConfig, PRESETS, get_preset, load_config, save_config
from wristflick.detectors import GestureEvent
from wristflick.engine import GestureEngine
from wristflick.recorder import SamplePlayer, SampleRecorder
from wristflick.sources import ReplaySource, SensorUnavailableError

app = typer.Typer(
    name="wristflick",
    help="⌚ Wrist-motion text entry: aim with orientation, select with a flick.",
    add_completion=False,
)


@app.callback()
def _configure(
    log_level: str = typer.Option("warning", "--log-level", help="Log level (debug, info, warning, error)"),
):
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )


def _resolve_config(preset: str, config_path: Optional[str]) -> EngineConfig:
    try:
        if config_path:
            return load_config(config_path)
        return get_preset(preset)
    except (ConfigError, OSError) as e:
        typer.echo(f"❌ Invalid configuration: {e}", err=True)
        raise typer.Exit(1)


def _start_engine(engine: GestureEngine, source: ReplaySource, verbose: bool = True) -> list[GestureEvent]:
    events: list[GestureEvent] = []

    def on_gesture(event: GestureEvent):
        # The callback is the consumer here; keep the channel from filling up
        engine.events.drain()
        events.append(event)
        if verbose:
            arc = event.arc_index if event.arc_index is not None else engine.arc_index()
            typer.echo(
                f"   🤚 {event.type.value:6s} via {event.detector:6s} "
                f"t={event.timestamp_ns / 1e6:8.1f} ms  arc={arc}  magnitude={event.magnitude:.2f}"
            )

    try:
        engine.start(on_gesture, source=source)
    except SensorUnavailableError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)
    return events


def _print_summary(engine: GestureEngine, events: list[GestureEvent]):
    stats = engine.stats
    selects = sum(1 for e in events if e.type.value == "select")
    deletes = len(events) - selects
    typer.echo(f"\n✅ {len(events)} gestures ({selects} select, {deletes} delete)")
    typer.echo(f"   Samples: {stats.samples}")
    typer.echo(f"   Aim updates: {stats.aim_updates}  suppressed: {stats.suppressed}  "
               f"busy drops: {stats.busy_drops}  events dropped: {stats.events_dropped}")


@app.command()
def replay(
    recording: str = typer.Argument(..., help="Path to a .json or .npz recording"),
    preset: str = typer.Option("flick", help=f"Config preset ({', '.join(PRESETS)})"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="YAML config file (overrides --preset)"),
    speed: float = typer.Option(1.0, help="Playback speed multiplier"),
    realtime: bool = typer.Option(False, help="Play at original timing"),
    threaded: bool = typer.Option(False, help="Deliver each sensor from its own thread"),
):
    """Replay a recorded sensor session through the engine."""
    path = Path(recording)
    if not path.exists():
        typer.echo(f"❌ Recording not found: {recording}", err=True)
        raise typer.Exit(1)

    engine_config = _resolve_config(preset, config)
    player = SamplePlayer.load(path)
    typer.echo(f"▶️  Replaying {path.name} ({player.sample_count} samples, {player.duration:.1f}s)")

    # Real-time playback pushes samples itself instead of queueing them
    if realtime:
        source = ReplaySource(sensors=player.sensors())
    else:
        source = player.to_source()

    with GestureEngine(engine_config) as engine:
        events = _start_engine(engine, source)
        if realtime:
            for sample in player.play_realtime(speed=speed):
                source.push(sample)
        elif threaded:
            source.play_threaded()
        else:
            source.play()
        _print_summary(engine, events)


@app.command()
def simulate(
    arcs: str = typer.Option("0,1,2,3", help="Comma-separated arc indices to select in turn"),
    preset: str = typer.Option("flick", help=f"Config preset ({', '.join(PRESETS)})"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="YAML config file (overrides --preset)"),
    shake: bool = typer.Option(True, help="End the session with a shake-to-delete"),
    output: Optional[str] = typer.Option(None, "-o", help="Save the synthetic session as a recording"),
    compact: bool = typer.Option(False, help="Save in compact .npz format"),
    metrics: bool = typer.Option(False, help="Print Prometheus metrics afterwards"),
):
    """Run a scripted synthetic typing session through the engine."""
    from wristflick.synthetic import typing_session

    engine_config = _resolve_config(preset, config)
    try:
        targets = [int(a) for a in arcs.split(",") if a.strip()]
    except ValueError:
        typer.echo(f"❌ Bad --arcs value: {arcs}", err=True)
        raise typer.Exit(1)

    samples = typing_session(targets, engine_config, shake_at_end=shake)
    typer.echo(f"🧪 Simulating {len(targets)} selections ({len(samples)} samples), "
               f"{engine_config.aim.num_arcs} arcs")

    if output:
        recorder = SampleRecorder()
        recorder.start()
        for sample in samples:
            recorder.add_sample(sample)
        recorder.stop()
        if compact:
            written = recorder.save_compact(output)
        else:
            recorder.save(output)
            written = Path(output)
        typer.echo(f"💾 Saved to: {written}")

    source = ReplaySource(samples)
    with GestureEngine(engine_config) as engine:
        events = _start_engine(engine, source)
        source.play()
        _print_summary(engine, events)
        if metrics:
            typer.echo("")
            typer.echo(engine.metrics.render())


@app.command()
def benchmark(
    iterations: int = typer.Option(20, help="Number of synthetic sessions to replay"),
    preset: str = typer.Option("dual", help=f"Config preset ({', '.join(PRESETS)})"),
):
    """Measure per-sample engine latency on synthetic sessions."""
    from wristflick.synthetic import typing_session

    engine_config = _resolve_config(preset, None)
    samples = typing_session(list(range(engine_config.aim.num_arcs)), engine_config)
    typer.echo(f"⚡ Running benchmark: {iterations} x {len(samples)} samples, preset '{preset}'")

    engine = GestureEngine(engine_config)
    source = ReplaySource()
    engine.start(source=source)

    t0 = time.perf_counter()
    for _ in range(iterations):
        engine.reset()
        for sample in samples:
            source.push(sample)
        engine.events.drain()
    elapsed = time.perf_counter() - t0
    engine.stop()

    total = iterations * len(samples)
    avg_us = elapsed / total * 1e6 if total else 0.0
    typer.echo(f"\n📊 Results:")
    typer.echo(f"   Samples:        {total}")
    typer.echo(f"   Average:        {avg_us:.1f} us/sample")
    typer.echo(f"   Throughput:     {total / elapsed if elapsed > 0 else 0:.0f} samples/s")

    typer.echo(f"\n📈 Sensor breakdown:")
    for name, stats in engine.profiler.summary().items():
        typer.echo(f"   {name:15s} avg={stats['avg_ms']:.4f}ms  p95={stats['p95_ms']:.4f}ms  "
                   f"max={stats['max_ms']:.4f}ms  over budget={stats['over_budget']}")


@app.command("config")
def config_cmd(
    preset: str = typer.Option("flick", help=f"Preset to print ({', '.join(PRESETS)})"),
    check: Optional[str] = typer.Option(None, help="Validate a YAML config file"),
    output: Optional[str] = typer.Option(None, "-o", help="Write the preset to a YAML file"),
):
    """Print a preset as YAML, validate a config file, or write one out."""
    if check:
        engine_config = _resolve_config(preset, check)
        typer.echo(f"✅ {check} is valid (select={','.join(engine_config.select_detectors)}, "
                   f"aim={engine_config.aim.mode.value}, arcs={engine_config.aim.num_arcs})")
        return

    engine_config = _resolve_config(preset, None)
    if output:
        save_config(engine_config, output)
        typer.echo(f"💾 Saved preset '{preset}' to {output}")
        return

    typer.echo(yaml.dump(engine_config.to_dict(), default_flow_style=False, sort_keys=False), nl=False)


def main():
    app()


if __name__ == "__main__":
    main()
