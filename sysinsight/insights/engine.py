"""Insight engine: continuous rule evaluation and insight lifecycle.

Each evaluation tick moves insights through absent → active → history:
triggered conditions with a new id are raised, ones already active are
updated in place (keeping ``first_seen``), and active ones that no longer
trigger are resolved into a bounded history.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from sysinsight.config import EngineConfig, ThresholdConfig
from sysinsight.insights.heuristics import ThermalAnalyzer, anomaly_insight, leak_suspect_insight
from sysinsight.insights.rules import RuleMetric, ThresholdRule, build_rules, validate_threshold
from sysinsight.models import (
    Insight,
    InsightCategory,
    InsightEvent,
    InsightEventKind,
    InsightState,
    MemoryLeakSuspect,
    Severity,
    Snapshot,
    SystemStatus,
    TrendAnomaly,
)
from sysinsight.monitoring import metrics
from sysinsight.observability import add_span_attributes, traced

logger = logging.getLogger(__name__)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def summarize_status(insights: Sequence[Insight]) -> tuple[SystemStatus, str]:
    """Overall status (max severity) and a one-line summary."""
    if not insights:
        return SystemStatus.NORMAL, "System normal"

    worst = max(i.severity for i in insights)
    warnings = sum(1 for i in insights if i.severity is Severity.WARNING)
    critical = sum(1 for i in insights if i.severity is Severity.CRITICAL)
    return SystemStatus.from_severity(worst), f"{_plural(warnings, 'warning')}, {critical} critical"


class InsightEngine:
    """Owns the active and historical insight sets.

    Consumers get immutable copies (tuples of frozen models, or an
    ``InsightState``) and never a reference into the engine.
    """

    def __init__(
        self,
        thresholds: ThresholdConfig | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        """Initialize insight engine.

        Args:
            thresholds: Live rule thresholds
            config: History, thermal window and subscriber settings
        """
        self.config = config or EngineConfig()
        self._rules: dict[RuleMetric, ThresholdRule] = build_rules(thresholds)
        self._pending_thresholds: dict[RuleMetric, float] = {}

        self._active: dict[str, Insight] = {}
        self._history: deque[Insight] = deque(maxlen=self.config.history_limit)
        self._trend_insights: list[Insight] = []
        self._temperatures: deque[float] = deque(maxlen=self.config.thermal_window)

        self._status = SystemStatus.NORMAL
        self._summary = "System normal"
        self._evaluated_at: datetime | None = None

        self._subscribers: list[asyncio.Queue[InsightEvent]] = []
        self._lock = asyncio.Lock()

        logger.info("Insight engine initialized")

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def current_insights(self) -> tuple[Insight, ...]:
        """Active insights, most severe first."""
        return tuple(
            sorted(self._active.values(), key=lambda i: (-i.severity.priority, i.first_seen or i.timestamp))
        )

    @property
    def insight_history(self) -> tuple[Insight, ...]:
        """Resolved insights, oldest first."""
        return tuple(self._history)

    @property
    def current_status(self) -> SystemStatus:
        return self._status

    @property
    def status_summary(self) -> str:
        return self._summary

    @property
    def most_critical(self) -> Insight | None:
        current = self.current_insights
        return current[0] if current else None

    def state(self) -> InsightState:
        """Immutable snapshot of the engine's state."""
        return InsightState(
            current_insights=self.current_insights,
            insight_history=self.insight_history,
            current_status=self._status,
            status_summary=self._summary,
            evaluated_at=self._evaluated_at,
        )

    def insights_of_category(self, category: InsightCategory) -> tuple[Insight, ...]:
        return tuple(i for i in self.current_insights if i.category is category)

    def insights_with_severity(self, severity: Severity) -> tuple[Insight, ...]:
        return tuple(i for i in self.current_insights if i.severity is severity)

    def threshold(self, metric: RuleMetric | str) -> float:
        metric = RuleMetric(metric)
        return self._pending_thresholds.get(metric, self._rules[metric].threshold)

    # ------------------------------------------------------------------
    # Configuration and subscriptions
    # ------------------------------------------------------------------

    def set_threshold(self, metric: RuleMetric | str, value: float) -> None:
        """Change a rule threshold, effective from the next evaluation tick.

        Already active insights are not re-judged until that tick.

        Raises:
            ValueError: If the metric is unknown or the value out of range
        """
        metric = RuleMetric(metric)
        self._pending_thresholds[metric] = validate_threshold(metric, value)
        logger.info(f"Set {metric.value} threshold to {value} (applies next tick)")

    def subscribe(self, maxsize: int | None = None) -> asyncio.Queue[InsightEvent]:
        """Register a bounded queue receiving insight lifecycle events.

        When the queue is full the oldest pending event is discarded.
        """
        queue: asyncio.Queue[InsightEvent] = asyncio.Queue(maxsize=maxsize or self.config.subscriber_queue_size)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[InsightEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def _publish(self, kind: InsightEventKind, insight: Insight) -> None:
        metrics.insight_transitions_total.labels(kind=kind.value, category=insight.category.value).inc()
        event = InsightEvent(kind=kind, insight=insight)
        for queue in self._subscribers:
            if queue.full():
                queue.get_nowait()
                metrics.subscriber_events_dropped_total.inc()
            queue.put_nowait(event)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def update_trend_insights(
        self,
        suspects: Iterable[MemoryLeakSuspect],
        anomalies: Iterable[TrendAnomaly] = (),
    ) -> None:
        """Replace the insights derived from the latest analysis pass.

        Leak suspects and critical anomalies stay active on every tick until
        the next call replaces them.
        """
        derived: dict[str, Insight] = {}
        for suspect in suspects:
            insight = leak_suspect_insight(suspect)
            derived[insight.id] = insight

        # Keep only the latest critical anomaly per series.
        for anomaly in sorted(anomalies, key=lambda a: a.date):
            if anomaly.severity is Severity.CRITICAL:
                insight = anomaly_insight(anomaly)
                derived[insight.id] = insight

        self._trend_insights = list(derived.values())
        logger.debug(f"Trend insights updated: {len(self._trend_insights)}")

    def _apply_pending_thresholds(self) -> None:
        for metric, value in self._pending_thresholds.items():
            self._rules[metric].threshold = value
        self._pending_thresholds.clear()

    def _live_heuristics(self, snapshot: Snapshot) -> list[Insight]:
        found: list[Insight] = []

        if snapshot.cpu_temperature_c is not None:
            history = list(self._temperatures)
            self._temperatures.append(snapshot.cpu_temperature_c)
            forecast = ThermalAnalyzer.forecast_throttle(snapshot.cpu_temperature_c, history)
            if forecast is not None:
                found.append(forecast)

        if (
            snapshot.cpu_performance_core_percent is not None
            and snapshot.cpu_efficiency_core_percent is not None
        ):
            imbalance = ThermalAnalyzer.detect_core_imbalance(
                [snapshot.cpu_performance_core_percent],
                [snapshot.cpu_efficiency_core_percent],
            )
            if imbalance is not None:
                found.append(imbalance)

        return found

    @traced("insights.evaluate")
    async def evaluate(self, snapshot: Snapshot, signals: Iterable[Insight] = ()) -> InsightState:
        """Run one evaluation tick.

        Args:
            snapshot: Latest snapshot
            signals: Extra insights from external detectors, treated as triggered this tick

        Returns:
            State after the tick
        """
        async with self._lock:
            with metrics.evaluation_duration_seconds.time():
                self._apply_pending_thresholds()
                now = datetime.now(UTC)

                triggered: dict[str, Insight] = {}
                for rule in self._rules.values():
                    insight = rule.evaluate(snapshot)
                    if insight is not None:
                        triggered[insight.id] = insight
                for insight in [*self._live_heuristics(snapshot), *signals, *self._trend_insights]:
                    triggered.setdefault(insight.id, insight)

                for insight_id, insight in triggered.items():
                    existing = self._active.get(insight_id)
                    if existing is None:
                        insight = insight.model_copy(update={"first_seen": insight.timestamp})
                        self._active[insight_id] = insight
                        logger.info(f"Insight raised: {insight.title} ({insight.severity.value})")
                        self._publish(InsightEventKind.RAISED, insight)
                    else:
                        insight = insight.model_copy(update={"first_seen": existing.first_seen})
                        self._active[insight_id] = insight
                        if insight.severity is not existing.severity:
                            logger.info(
                                f"Insight {insight.title} changed {existing.severity.value} -> {insight.severity.value}"
                            )
                        self._publish(InsightEventKind.UPDATED, insight)

                for insight_id in [i for i in self._active if i not in triggered]:
                    resolved = self._active.pop(insight_id).model_copy(update={"resolved_at": now})
                    self._history.append(resolved)
                    logger.info(f"Insight resolved: {resolved.title}")
                    self._publish(InsightEventKind.RESOLVED, resolved)

                self._status, self._summary = summarize_status(list(self._active.values()))
                self._evaluated_at = now

                for severity in Severity:
                    metrics.active_insights.labels(severity=severity.value).set(
                        sum(1 for i in self._active.values() if i.severity is severity)
                    )
                add_span_attributes({"insights.active": len(self._active), "insights.status": self._status.value})

            return self.state()
