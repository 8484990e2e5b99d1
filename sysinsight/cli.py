"""sysinsight CLI entry point.

Provides command-line access to the metrics history: ingesting snapshot
logs, usage summaries, trends, live insights with their explanations,
thermal diagnostics, health scoring and retention.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from sysinsight.config import get_config
from sysinsight.insights.health import calculate_health
from sysinsight.insights.heuristics import ThermalAnalyzer
from sysinsight.main import InsightApplication
from sysinsight.models import AnalysisPeriod, Insight, InsightState, Snapshot

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = typer.Typer(
    name="sysinsight",
    help="sysinsight - metrics history, trends and explainable system insights",
    add_completion=False,
)

DbOption = Annotated[str, typer.Option("--db", help="History database path (overrides config)")]
ConfigOption = Annotated[str, typer.Option("--config", "-c", help="Path to YAML configuration file")]


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose output")] = False,
) -> None:
    """sysinsight command line."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@asynccontextmanager
async def _open_app(db: str, config: str) -> AsyncIterator[InsightApplication]:
    cfg = get_config(config or None)
    if db:
        cfg = cfg.model_copy(update={"storage": cfg.storage.model_copy(update={"path": db})})

    application = InsightApplication(cfg)
    await application.initialize()
    try:
        yield application
    finally:
        await application.store.close()


async def _replay(application: InsightApplication, window: int) -> InsightState:
    """Rebuild engine state from the latest snapshots and a fresh analysis pass."""
    await application.run_analysis()
    state = application.engine.state()
    for snapshot in await application.store.latest(window):
        state = await application.engine.evaluate(snapshot)
    return state


def _load_config_or_exit(config: str) -> None:
    if config and not Path(config).exists():
        typer.echo(f"❌ Configuration file not found: {config}", err=True)
        raise typer.Exit(code=1)


def _format_bytes(value: float) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if abs(value) < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


def _echo_insight(insight: Insight, detailed: bool = False) -> None:
    typer.echo(f"[{insight.severity.value.upper()}] {insight.title}")
    typer.echo(f"   Symptom: {insight.symptom}")
    if detailed:
        typer.echo(f"   Root cause: {insight.root_cause}")
        typer.echo(f"   If changed: {insight.counterfactual}")
        typer.echo(f"   Confidence: {insight.confidence:.0%}")
        for action in insight.suggested_actions:
            typer.echo(f"   → {action}")


@app.command()
def ingest(
    file: Annotated[Path, typer.Argument(help="JSON-lines file, one snapshot per line")],
    analyze: Annotated[bool, typer.Option("--analyze/--no-analyze", help="Run trend analysis afterwards")] = True,
    db: DbOption = "",
    config: ConfigOption = "",
) -> None:
    """Record snapshots from a JSON-lines file and evaluate each one."""
    _load_config_or_exit(config)
    if not file.exists():
        typer.echo(f"❌ File not found: {file}", err=True)
        raise typer.Exit(code=1)

    async def run() -> tuple[int, int, InsightState]:
        recorded = rejected = 0
        async with _open_app(db, config) as application:
            state = application.engine.state()
            with file.open() as f:
                for line_no, line in enumerate(f, 1):
                    if not line.strip():
                        continue
                    try:
                        snapshot = Snapshot.model_validate_json(line)
                    except ValidationError as e:
                        rejected += 1
                        logger.warning(f"Skipping line {line_no}: {e.error_count()} validation errors")
                        continue
                    state = await application.ingest(snapshot)
                    recorded += 1
            if analyze and recorded:
                await application.run_analysis()
        return recorded, rejected, state

    recorded, rejected, state = asyncio.run(run())
    typer.echo(f"Ingested {recorded} snapshots ({rejected} rejected)")
    typer.echo(f"Status: {state.current_status.value} - {state.status_summary}")


@app.command()
def summary(
    period: Annotated[str, typer.Option("--period", "-p", help="day, week or month")] = "day",
    db: DbOption = "",
    config: ConfigOption = "",
) -> None:
    """Show mean and peak usage for a period."""
    _load_config_or_exit(config)
    try:
        analysis_period = AnalysisPeriod(period)
    except ValueError:
        typer.echo(f"❌ Invalid period: {period}", err=True)
        typer.echo("   Valid periods: day, week, month", err=True)
        raise typer.Exit(code=1)

    async def run():
        async with _open_app(db, config) as application:
            return await application.analyzer.usage_summary(analysis_period)

    usage = asyncio.run(run())
    typer.echo(f"Usage summary ({analysis_period.value})")
    if usage.is_empty:
        typer.echo("   No data recorded for this period")
        return

    typer.echo(f"   Samples: {usage.sample_count}")
    typer.echo(f"   CPU: avg {usage.avg_cpu:.1f}% / max {usage.max_cpu:.1f}% / min {usage.min_cpu:.1f}%")
    typer.echo(f"   Memory: avg {_format_bytes(usage.avg_memory)} / max {_format_bytes(usage.max_memory)}")
    typer.echo(f"   GPU: avg {usage.avg_gpu:.1f}% / max {usage.max_gpu:.1f}%")
    typer.echo(f"   Temperature: avg {usage.avg_temperature:.1f}°C / max {usage.max_temperature:.1f}°C")


@app.command()
def trends(db: DbOption = "", config: ConfigOption = "") -> None:
    """Show recurring load patterns, anomalies and leak suspects."""
    _load_config_or_exit(config)

    async def run():
        async with _open_app(db, config) as application:
            await application.run_analysis()
            return application.analyzer

    analyzer = asyncio.run(run())

    if not analyzer.daily_patterns:
        typer.echo("Not enough history for trend analysis yet")
        return

    peaks = ", ".join(f"{hour:02d}:00" for hour in analyzer.peak_usage_hours)
    typer.echo(f"Peak usage hours (UTC): {peaks}")
    typer.echo("")
    typer.echo("Weekly pattern:")
    for pattern in analyzer.weekly_patterns:
        typer.echo(f"   {pattern.label:<10} CPU {pattern.avg_cpu:5.1f}%  ({pattern.sample_count} samples)")

    typer.echo("")
    typer.echo(f"Anomalies: {len(analyzer.anomalies)}")
    for anomaly in analyzer.anomalies[-10:]:
        typer.echo(f"   {anomaly.date:%Y-%m-%d %H:%M} [{anomaly.severity.value}] {anomaly.description}")

    typer.echo(f"Memory leak suspects: {len(analyzer.memory_leak_suspects)}")
    for suspect in analyzer.memory_leak_suspects:
        typer.echo(f"   {suspect.description} (confidence {suspect.confidence:.0%})")

    prediction = analyzer.predict_next_hour()
    if prediction is not None:
        typer.echo("")
        typer.echo(
            f"Next hour: CPU ~{prediction.predicted_cpu:.0f}% "
            f"(confidence {prediction.confidence:.0%})"
        )


@app.command()
def insights(
    window: Annotated[int, typer.Option("--window", "-w", help="Recent snapshots to evaluate")] = 20,
    db: DbOption = "",
    config: ConfigOption = "",
) -> None:
    """Show active insights derived from the most recent snapshots."""
    _load_config_or_exit(config)

    async def run() -> InsightState:
        async with _open_app(db, config) as application:
            return await _replay(application, window)

    state = asyncio.run(run())
    typer.echo(f"Status: {state.current_status.value} - {state.status_summary}")
    for insight in state.current_insights:
        _echo_insight(insight)
    if state.insight_history:
        typer.echo(f"Recently resolved: {len(state.insight_history)}")


@app.command()
def why(
    target: Annotated[str, typer.Argument(help="Symptom to explain: cpu, memory, thermal, disk, gpu...")],
    window: Annotated[int, typer.Option("--window", "-w", help="Recent snapshots to evaluate")] = 20,
    db: DbOption = "",
    config: ConfigOption = "",
) -> None:
    """Explain why something is happening: symptom, root cause, remedy."""
    _load_config_or_exit(config)

    async def run() -> InsightState:
        async with _open_app(db, config) as application:
            return await _replay(application, window)

    state = asyncio.run(run())
    needle = target.lower()
    matches = [
        i
        for i in state.current_insights
        if needle == i.category.value or needle in i.title.lower() or needle in i.symptom.lower()
    ]

    typer.echo(f"🔍 Analyzing: {target}")
    if not matches:
        typer.echo(f"   No active issue found for '{target}'")
        return
    for insight in matches:
        _echo_insight(insight, detailed=True)


@app.command()
def thermal(
    current_freq: Annotated[float, typer.Option("--current-freq", help="Current CPU frequency (MHz)")] = 0.0,
    base_freq: Annotated[float, typer.Option("--base-freq", help="Base CPU frequency (MHz)")] = 0.0,
    db: DbOption = "",
    config: ConfigOption = "",
) -> None:
    """Thermal diagnostics for the latest snapshot."""
    _load_config_or_exit(config)

    async def run() -> list[Snapshot]:
        async with _open_app(db, config) as application:
            return await application.store.latest(1)

    latest = asyncio.run(run())
    typer.echo("🌡️ Thermal Analysis")
    if not latest:
        typer.echo("   No snapshots recorded yet")
        return

    snapshot = latest[0]
    if snapshot.cpu_temperature_c is not None:
        typer.echo(f"   CPU temperature: {snapshot.cpu_temperature_c:.1f}°C")
    if snapshot.gpu_temperature_c is not None:
        typer.echo(f"   GPU temperature: {snapshot.gpu_temperature_c:.1f}°C")
    if snapshot.fan_rpm is not None:
        typer.echo(f"   Fan: {snapshot.fan_rpm} RPM")
    if snapshot.thermal_state is not None:
        typer.echo(f"   Thermal state: {snapshot.thermal_state.value}")

    found: list[Insight] = []
    if current_freq and base_freq and snapshot.cpu_temperature_c is not None:
        throttling = ThermalAnalyzer.detect_silent_throttling(
            current_freq, base_freq, snapshot.cpu_temperature_c
        )
        if throttling is not None:
            found.append(throttling)
    if snapshot.cpu_performance_core_percent is not None and snapshot.cpu_efficiency_core_percent is not None:
        imbalance = ThermalAnalyzer.detect_core_imbalance(
            [snapshot.cpu_performance_core_percent],
            [snapshot.cpu_efficiency_core_percent],
        )
        if imbalance is not None:
            found.append(imbalance)

    if not found:
        typer.echo("   No thermal issues detected")
    for insight in found:
        _echo_insight(insight, detailed=True)


@app.command()
def forecast(
    window: Annotated[int, typer.Option("--window", "-w", help="Recent temperature samples")] = 5,
    interval: Annotated[float, typer.Option("--interval", help="Seconds between samples")] = 30.0,
    db: DbOption = "",
    config: ConfigOption = "",
) -> None:
    """Predict thermal throttling and next-hour load."""
    _load_config_or_exit(config)

    async def run():
        async with _open_app(db, config) as application:
            recent = await application.store.latest(window)
            await application.run_analysis()
            return recent, application.analyzer.predict_next_hour()

    recent, prediction = asyncio.run(run())
    temps = [s.cpu_temperature_c for s in recent if s.cpu_temperature_c is not None]

    typer.echo("🔮 Thermal Forecast")
    if len(temps) < window:
        typer.echo(f"   Need {window} temperature samples, have {len(temps)}")
    else:
        outlook = ThermalAnalyzer.forecast_throttle(
            temps[-1], temps[:-1], window=window, sample_interval_seconds=interval
        )
        if outlook is None:
            typer.echo(f"   Temperature stable at {temps[-1]:.1f}°C, no throttling expected")
        else:
            _echo_insight(outlook, detailed=True)

    if prediction is not None:
        typer.echo(
            f"Next hour: CPU ~{prediction.predicted_cpu:.0f}%, "
            f"GPU ~{prediction.predicted_gpu:.0f}% (confidence {prediction.confidence:.0%})"
        )


@app.command()
def health(db: DbOption = "", config: ConfigOption = "") -> None:
    """Score overall system health from the latest snapshot."""
    _load_config_or_exit(config)

    async def run() -> list[Snapshot]:
        async with _open_app(db, config) as application:
            return await application.store.latest(1)

    latest = asyncio.run(run())
    if not latest:
        typer.echo("No snapshots recorded yet")
        return

    report = calculate_health(latest[0])
    typer.echo(f"Health: {report.overall_score}/100 ({report.status.value})")
    typer.echo(
        f"   CPU {report.cpu_score}  Memory {report.memory_score}  "
        f"Thermal {report.thermal_score}  Disk {report.disk_score}"
    )
    for rec in report.recommendations:
        typer.echo(f"   → {rec.title}: {rec.description}")


@app.command()
def trim(
    days: Annotated[int, typer.Option("--days", "-d", help="Retention horizon in days (0 = configured)")] = 0,
    db: DbOption = "",
    config: ConfigOption = "",
) -> None:
    """Remove snapshots older than the retention horizon."""
    _load_config_or_exit(config)
    if days < 0:
        typer.echo("❌ --days must be non-negative", err=True)
        raise typer.Exit(code=1)

    async def run():
        async with _open_app(db, config) as application:
            return await application.retention.trim(days or None)

    stats = asyncio.run(run())
    typer.echo(f"Trimmed {stats.rows_deleted} snapshots older than {stats.cutoff:%Y-%m-%d %H:%M} UTC")


@app.command()
def version() -> None:
    """Show sysinsight version information."""
    import importlib.metadata

    try:
        ver = importlib.metadata.version("sysinsight")
    except importlib.metadata.PackageNotFoundError:
        ver = "unknown"
    typer.echo(f"sysinsight version: {ver}")


@app.command()
def info(config: ConfigOption = "") -> None:
    """Show sysinsight configuration summary."""
    _load_config_or_exit(config)
    cfg = get_config(config or None)

    typer.echo("sysinsight - metrics history and insight inference")
    typer.echo("")
    typer.echo(f"History database: {cfg.storage.path}")
    typer.echo(f"Retention: {cfg.storage.retention_days} days")
    typer.echo(
        "Thresholds: "
        f"CPU {cfg.thresholds.cpu_percent:.0f}%, memory {cfg.thresholds.memory_percent:.0f}%, "
        f"GPU {cfg.thresholds.gpu_percent:.0f}%, temperature {cfg.thresholds.temperature_c:.0f}°C"
    )
    typer.echo(
        f"Anomaly detection: window {cfg.analysis.anomaly_window}, k={cfg.analysis.anomaly_multiplier}"
    )
    typer.echo(
        f"Leak detection: {cfg.analysis.leak_min_days}-{cfg.analysis.leak_window_days} days, "
        f"growth > {cfg.analysis.leak_min_growth_rate:.0%}/day, R² ≥ {cfg.analysis.leak_min_r_squared}"
    )


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
