# --- START OF performance_analyzer.py

import logging
import time
from typing import Dict, Any, List, Optional, Mapping

from ..protocols import AdaptiveComponent, MetricsProvider
from ..models.enums import (
    AnalysisStatus, BottleneckType, OpportunityType, Priority, Severity, TrendDirection,
)
from ..models.datatypes import (
    Bottleneck, HistoricalAggregates, Opportunity, PerformanceReport, SystemSnapshot, Trend,
)
from ..models.exceptions import AnalysisFailure
from ..adaptive_helpers.ring_buffer import RingBuffer
from ..adaptive_helpers.observer_hub import ObserverHub, EVENT_PERFORMANCE_ANALYZED
from ..utils.metrics_providers import merge_metrics
from ..utils.scoring import clamp, mean

logger_perf_analyzer = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 100
DEFAULT_THRESHOLDS: Dict[str, float] = {
    "cpu_high": 80.0,
    "cpu_critical": 90.0,
    "cpu_low": 30.0,
    "memory_high": 85.0,
    "memory_critical": 95.0,
    "memory_low": 40.0,
    "response_time_ms": 5000.0,
    "response_time_critical_ms": 10000.0,
    "success_rate": 0.8,
    "success_rate_critical": 0.6,
    "quality": 0.6,
    "quality_critical": 0.4,
    "confidence": 0.8,
    "trend_change": 0.05,
}

# Overall score weights
SCORE_WEIGHTS: Dict[str, float] = {
    "cpu": 0.20,
    "memory": 0.15,
    "response_time": 0.25,
    "success_rate": 0.20,
    "quality": 0.20,
}
RESPONSE_TIME_SCALE_MS = 10000.0

HISTORY_MIN_SAMPLES = 3
HISTORY_WINDOW = 10
TREND_MIN_SAMPLES = 5
TREND_WINDOW = 3
TREND_CONFIDENCE = 0.8

RESPONSE_REGRESSION_FACTOR = 1.2
QUALITY_REGRESSION_FACTOR = 0.9

_POTENTIAL_ORDER = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}
_EFFORT_ORDER = {Priority.LOW: 3, Priority.MEDIUM: 2, Priority.HIGH: 1}


def compute_overall_score(snapshot: SystemSnapshot) -> float:
    """Weighted 0-1 score; lower cpu/memory/latency and higher success/quality score better."""
    score = 0.0
    score += max(0.0, 1.0 - snapshot.cpu.usage / 100.0) * SCORE_WEIGHTS["cpu"]
    score += max(0.0, 1.0 - snapshot.memory.percentage / 100.0) * SCORE_WEIGHTS["memory"]
    score += clamp(1.0 - snapshot.performance.avg_response_time / RESPONSE_TIME_SCALE_MS) * SCORE_WEIGHTS["response_time"]
    score += snapshot.throughput.success_rate * SCORE_WEIGHTS["success_rate"]
    score += snapshot.quality.avg_score * SCORE_WEIGHTS["quality"]
    return clamp(score)


class PerformanceAnalyzer(AdaptiveComponent):
    """Turns measured counters into a scored performance report."""

    def __init__(self, metrics_provider: Optional[MetricsProvider] = None,
                 observer_hub: Optional[ObserverHub] = None):
        self.metrics_provider = metrics_provider
        self.observer_hub = observer_hub
        self.history_size: int = DEFAULT_HISTORY_SIZE
        self.history: RingBuffer[PerformanceReport] = RingBuffer(DEFAULT_HISTORY_SIZE)
        self.thresholds: Dict[str, float] = DEFAULT_THRESHOLDS.copy()
        self.strict_mode: bool = False
        self.total_analyses: int = 0
        self.failed_analyses: int = 0
        self._controller: Optional[Any] = None

    async def initialize(self, config: Dict[str, Any], controller: Any) -> bool:
        self._controller = controller
        analyzer_config = config.get("performance_analyzer", {})

        history_size = analyzer_config.get("history_size", DEFAULT_HISTORY_SIZE)
        if not isinstance(history_size, int) or history_size <= 0:
            logger_perf_analyzer.warning(f"Invalid history_size ({history_size}). Using default {DEFAULT_HISTORY_SIZE}.")
            history_size = DEFAULT_HISTORY_SIZE
        self.history_size = history_size
        self.history = RingBuffer(self.history_size)

        thresholds_from_config = analyzer_config.get("thresholds", {})
        if isinstance(thresholds_from_config, dict):
            for key, value in thresholds_from_config.items():
                if key not in DEFAULT_THRESHOLDS:
                    logger_perf_analyzer.warning(f"Unknown performance threshold '{key}' ignored.")
                elif isinstance(value, bool) or not isinstance(value, (int, float)):
                    logger_perf_analyzer.warning(f"Threshold '{key}' is not numeric ({value}). Using default {DEFAULT_THRESHOLDS[key]}.")
                else:
                    self.thresholds[key] = float(value)
        else:
            logger_perf_analyzer.warning("thresholds in [performance_analyzer] is not a table. Using defaults.")

        self.strict_mode = bool(analyzer_config.get("strict_mode", False))
        logger_perf_analyzer.info(
            f"PerformanceAnalyzer initialized. History size: {self.history_size}. Strict mode: {self.strict_mode}."
        )
        logger_perf_analyzer.debug(f"Analyzer thresholds: {self.thresholds}")
        return True

    async def analyze(self, current_metrics: Optional[Mapping[str, Any]] = None) -> PerformanceReport:
        """
        Builds a PerformanceReport from the provider's counters merged with
        ``current_metrics`` (caller values win).

        Never raises unless strict mode is on; a failed analysis yields a degraded
        report with status ``analysis_failed`` and confidence 0.1.
        """
        start_time = time.time()
        self.total_analyses += 1
        try:
            if current_metrics is not None and not isinstance(current_metrics, Mapping):
                raise AnalysisFailure(f"Metrics must be a mapping, got {type(current_metrics).__name__}")

            measured: Dict[str, Any] = {}
            if self.metrics_provider is not None:
                measured = await self.metrics_provider.collect()
            snapshot = SystemSnapshot.from_metrics(merge_metrics(measured, current_metrics or {}))

            historical = self._historical_aggregates()
            bottlenecks = self.detect_bottlenecks(snapshot)
            opportunities = self.identify_opportunities(snapshot, historical)
            trend = self._performance_trend()
            overall_score = compute_overall_score(snapshot)

            confidence = 0.6
            if historical is not None: confidence += 0.2
            if bottlenecks: confidence += 0.1
            if opportunities: confidence += 0.1

            report = PerformanceReport(
                current=snapshot,
                overall_score=overall_score,
                historical=historical,
                trend=trend,
                bottlenecks=bottlenecks,
                opportunities=opportunities,
                confidence=min(0.95, confidence),
            )
            self.history.append(report)
            logger_perf_analyzer.debug(
                f"Analysis complete in {time.time() - start_time:.4f}s. Score: {overall_score:.3f}, "
                f"bottlenecks: {[b.type.value for b in bottlenecks]}, trend: {trend.direction.value}"
            )
        except Exception as e:
            self.failed_analyses += 1
            if self.strict_mode:
                if isinstance(e, AnalysisFailure):
                    raise
                raise AnalysisFailure(f"Performance analysis failed: {e}") from e
            logger_perf_analyzer.exception(f"Performance analysis failed: {e}")
            report = PerformanceReport(
                current=SystemSnapshot(),
                overall_score=0.0,
                confidence=0.1,
                status=AnalysisStatus.ANALYSIS_FAILED,
                error=str(e),
            )

        if self.observer_hub is not None:
            await self.observer_hub.notify(EVENT_PERFORMANCE_ANALYZED, {
                "status": report.status.value,
                "overall_score": report.overall_score,
                "bottlenecks": len(report.bottlenecks),
            })
        return report

    def detect_bottlenecks(self, snapshot: SystemSnapshot) -> List[Bottleneck]:
        t = self.thresholds
        bottlenecks: List[Bottleneck] = []

        cpu = snapshot.cpu.usage
        if cpu > t["cpu_high"]:
            bottlenecks.append(Bottleneck(
                type=BottleneckType.CPU_BOTTLENECK,
                severity=Severity.HIGH if cpu > t["cpu_critical"] else Severity.MEDIUM,
                value=cpu, threshold=t["cpu_high"],
                impact="Response time degradation, reduced throughput",
                recommendations=["Scale CPU resources", "Optimize CPU-intensive operations", "Implement caching"],
            ))

        mem = snapshot.memory.percentage
        if mem > t["memory_high"]:
            bottlenecks.append(Bottleneck(
                type=BottleneckType.MEMORY_BOTTLENECK,
                severity=Severity.HIGH if mem > t["memory_critical"] else Severity.MEDIUM,
                value=mem, threshold=t["memory_high"],
                impact="Memory pressure, potential GC issues",
                recommendations=["Increase memory allocation", "Optimize memory usage", "Clear unused caches"],
            ))

        resp = snapshot.performance.avg_response_time
        if resp > t["response_time_ms"]:
            bottlenecks.append(Bottleneck(
                type=BottleneckType.RESPONSE_TIME_BOTTLENECK,
                severity=Severity.HIGH if resp > t["response_time_critical_ms"] else Severity.MEDIUM,
                value=resp, threshold=t["response_time_ms"],
                impact="Poor user experience, timeout risks",
                recommendations=["Optimize algorithms", "Implement async processing", "Add caching layers"],
            ))

        success = snapshot.throughput.success_rate
        if success < t["success_rate"]:
            bottlenecks.append(Bottleneck(
                type=BottleneckType.SUCCESS_RATE_BOTTLENECK,
                severity=Severity.HIGH if success < t["success_rate_critical"] else Severity.MEDIUM,
                value=success, threshold=t["success_rate"],
                impact="High failure rate, reduced reliability",
                recommendations=["Investigate error causes", "Improve error handling", "Add circuit breakers"],
            ))

        quality = snapshot.quality.avg_score
        if quality < t["quality"]:
            bottlenecks.append(Bottleneck(
                type=BottleneckType.QUALITY_BOTTLENECK,
                severity=Severity.HIGH if quality < t["quality_critical"] else Severity.MEDIUM,
                value=quality, threshold=t["quality"],
                impact="Poor output quality, reduced user satisfaction",
                recommendations=["Improve quality scoring", "Enhance response generation", "Better context analysis"],
            ))

        # Stable sort keeps rule order within a severity
        return sorted(bottlenecks, key=lambda b: b.severity.rank)

    def identify_opportunities(self, snapshot: SystemSnapshot,
                               historical: Optional[HistoricalAggregates]) -> List[Opportunity]:
        t = self.thresholds
        opportunities: List[Opportunity] = []

        if historical is not None:
            if snapshot.performance.avg_response_time > historical.avg_response_time * RESPONSE_REGRESSION_FACTOR:
                opportunities.append(Opportunity(
                    type=OpportunityType.RESPONSE_TIME_REGRESSION,
                    potential=Priority.HIGH, effort=Priority.MEDIUM,
                    expected_improvement="Response time back to historical average",
                    actions=["Profile slow operations", "Optimize critical paths", "Review recent changes"],
                ))
            if snapshot.quality.avg_score < historical.avg_quality * QUALITY_REGRESSION_FACTOR:
                opportunities.append(Opportunity(
                    type=OpportunityType.QUALITY_REGRESSION,
                    potential=Priority.HIGH, effort=Priority.MEDIUM,
                    expected_improvement="Quality back to historical levels",
                    actions=["Review quality factors", "Retune scoring weights", "Enhance training data"],
                ))

        has_throughput = snapshot.throughput.rps > 0
        if snapshot.cpu.usage < t["cpu_low"] and has_throughput:
            opportunities.append(Opportunity(
                type=OpportunityType.CPU_UNDERUTILIZATION,
                potential=Priority.MEDIUM, effort=Priority.LOW,
                expected_improvement="Higher concurrency within current CPU budget",
                actions=["Increase concurrent processing", "Reduce artificial delays", "Optimize resource allocation"],
            ))
        if snapshot.memory.percentage < t["memory_low"] and has_throughput:
            opportunities.append(Opportunity(
                type=OpportunityType.MEMORY_UNDERUTILIZATION,
                potential=Priority.MEDIUM, effort=Priority.LOW,
                expected_improvement="Larger caches within current memory budget",
                actions=["Implement response caching", "Add memory-based optimizations", "Preload frequently used data"],
            ))

        if snapshot.quality.confidence > t["confidence"] and snapshot.quality.avg_score < t["quality"] + 0.2:
            opportunities.append(Opportunity(
                type=OpportunityType.QUALITY_IMPROVEMENT,
                potential=Priority.HIGH, effort=Priority.HIGH,
                expected_improvement="Quality closer to confidence level",
                actions=["Enhance quality algorithms", "Improve training data", "Add quality validation layers"],
            ))

        return sorted(opportunities,
                      key=lambda o: -(_POTENTIAL_ORDER[o.potential] * _EFFORT_ORDER[o.effort]))

    def _historical_aggregates(self) -> Optional[HistoricalAggregates]:
        reports = [r for r in self.history if r.status == AnalysisStatus.ANALYZED]
        if len(reports) < HISTORY_MIN_SAMPLES:
            return None
        recent = reports[-HISTORY_WINDOW:]
        return HistoricalAggregates(
            avg_cpu=mean(r.current.cpu.usage for r in recent),
            avg_memory=mean(r.current.memory.percentage for r in recent),
            avg_response_time=mean(r.current.performance.avg_response_time for r in recent),
            avg_throughput=mean(r.current.throughput.rps for r in recent),
            avg_quality=mean(r.current.quality.avg_score for r in recent),
            samples=len(recent),
        )

    def _performance_trend(self) -> Trend:
        scores = [r.overall_score for r in self.history if r.status == AnalysisStatus.ANALYZED]
        if len(scores) < TREND_MIN_SAMPLES:
            return Trend(TrendDirection.INSUFFICIENT_DATA, 0.0)

        recent = scores[-TREND_WINDOW:]
        older = scores[-2 * TREND_WINDOW:-TREND_WINDOW]
        recent_avg = mean(recent)
        older_avg = mean(older)
        if not older_avg:
            return Trend(TrendDirection.STABLE, TREND_CONFIDENCE, 0.0)

        change = (recent_avg - older_avg) / abs(older_avg)
        threshold = self.thresholds["trend_change"]
        if change > threshold:
            direction = TrendDirection.INCREASING
        elif change < -threshold:
            direction = TrendDirection.DECREASING
        else:
            direction = TrendDirection.STABLE
        return Trend(direction, TREND_CONFIDENCE, change)

    async def process(self, input_state: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        metrics = (input_state or {}).get("metrics")
        report = await self.analyze(metrics)
        return {"performance_report": report}

    async def reset(self) -> None:
        self.history.clear()
        self.total_analyses = 0
        self.failed_analyses = 0
        logger_perf_analyzer.info("PerformanceAnalyzer reset.")

    async def get_status(self) -> Dict[str, Any]:
        last_score = self.history.last().overall_score if self.history else None
        return {
            "component": "PerformanceAnalyzer",
            "status": "operational",
            "history_size": len(self.history),
            "history_capacity": self.history_size,
            "total_analyses": self.total_analyses,
            "failed_analyses": self.failed_analyses,
            "last_overall_score": last_score,
            "strict_mode": self.strict_mode,
        }

    async def shutdown(self) -> None:
        logger_perf_analyzer.info("PerformanceAnalyzer shutting down.")

# --- END OF performance_analyzer.py ---
