# tests/unit/adaptive_modules/test_performance_analyzer.py

import logging
from typing import Dict, Any

import pytest
import pytest_asyncio
from unittest.mock import MagicMock, AsyncMock

from alex_adaptation.adaptive_modules.performance_analyzer import (
    PerformanceAnalyzer, compute_overall_score, DEFAULT_HISTORY_SIZE, DEFAULT_THRESHOLDS,
)
from alex_adaptation.adaptive_helpers.observer_hub import ObserverHub, EVENT_PERFORMANCE_ANALYZED
from alex_adaptation.models.datatypes import SystemSnapshot
from alex_adaptation.models.enums import (
    AnalysisStatus, BottleneckType, OpportunityType, Severity, TrendDirection,
)
from alex_adaptation.models.exceptions import AnalysisFailure
from alex_adaptation.utils.metrics_providers import StaticMetricsProvider

logger = logging.getLogger(__name__)


def healthy_metrics(**overrides: Dict[str, Any]) -> Dict[str, Any]:
    metrics = {
        "cpu": {"usage": 50.0, "load": 0.5, "cores": 4},
        "memory": {"used": 4096, "total": 8192, "percentage": 60.0},
        "performance": {"avg_response_time": 1000.0},
        "throughput": {"rps": 10.0, "success_rate": 0.97, "error_rate": 0.03},
        "quality": {"avg_score": 0.85, "confidence": 0.7},
        "errors": {"crash_count": 0, "exception_count": 0},
    }
    for section, values in overrides.items():
        metrics[section] = {**metrics[section], **values}
    return metrics


@pytest.fixture
def analyzer_config() -> Dict[str, Any]:
    return {"performance_analyzer": {"history_size": 20, "strict_mode": False}}


@pytest_asyncio.fixture
async def analyzer(analyzer_config: Dict[str, Any]) -> PerformanceAnalyzer:
    component = PerformanceAnalyzer()
    await component.initialize(analyzer_config, MagicMock())
    return component


class TestOverallScore:

    def test_perfect_and_worst_snapshots(self):
        best = SystemSnapshot.from_metrics({
            "cpu": {"usage": 0}, "memory": {"percentage": 0}, "performance": {"avg_response_time": 0},
            "throughput": {"success_rate": 1.0}, "quality": {"avg_score": 1.0},
        })
        worst = SystemSnapshot.from_metrics({
            "cpu": {"usage": 100}, "memory": {"percentage": 100}, "performance": {"avg_response_time": 20000},
            "throughput": {"success_rate": 0.0}, "quality": {"avg_score": 0.0},
        })
        assert compute_overall_score(best) == pytest.approx(1.0)
        assert compute_overall_score(worst) == pytest.approx(0.0)

    def test_weighted_sum(self):
        snapshot = SystemSnapshot.from_metrics(healthy_metrics())
        expected = 0.5 * 0.2 + 0.4 * 0.15 + 0.9 * 0.25 + 0.97 * 0.2 + 0.85 * 0.2
        assert compute_overall_score(snapshot) == pytest.approx(expected)


@pytest.mark.asyncio
class TestPerformanceAnalyzer:

    async def test_initialize_defaults_and_invalid_values(self):
        logger.info("--- Test: PerformanceAnalyzer config fallbacks ---")
        component = PerformanceAnalyzer()
        assert await component.initialize({}, MagicMock()) is True
        assert component.history_size == DEFAULT_HISTORY_SIZE
        assert component.thresholds == DEFAULT_THRESHOLDS

        component = PerformanceAnalyzer()
        await component.initialize({"performance_analyzer": {
            "history_size": -4,
            "thresholds": {"cpu_high": 70, "memory_high": "lots", "unknown_key": 1.0},
        }}, MagicMock())
        assert component.history_size == DEFAULT_HISTORY_SIZE, "Negative history size should fall back"
        assert component.thresholds["cpu_high"] == 70.0
        assert component.thresholds["memory_high"] == DEFAULT_THRESHOLDS["memory_high"]
        assert "unknown_key" not in component.thresholds

    async def test_healthy_snapshot_has_no_bottlenecks(self, analyzer: PerformanceAnalyzer):
        logger.info("--- Test: Healthy snapshot ---")
        report = await analyzer.analyze(healthy_metrics())
        assert report.status == AnalysisStatus.ANALYZED
        assert report.bottlenecks == []
        assert report.historical is None
        assert report.trend.direction == TrendDirection.INSUFFICIENT_DATA
        assert report.confidence == pytest.approx(0.6)
        assert 0.0 <= report.overall_score <= 1.0

    async def test_overloaded_snapshot_bottlenecks_sorted_by_severity(self, analyzer: PerformanceAnalyzer):
        logger.info("--- Test: Overloaded snapshot ---")
        report = await analyzer.analyze(healthy_metrics(
            cpu={"usage": 95.0},
            memory={"percentage": 88.0},
            performance={"avg_response_time": 12000.0},
            throughput={"success_rate": 0.7},
            quality={"avg_score": 0.3},
        ))
        types = [b.type for b in report.bottlenecks]
        assert types == [
            BottleneckType.CPU_BOTTLENECK,
            BottleneckType.RESPONSE_TIME_BOTTLENECK,
            BottleneckType.QUALITY_BOTTLENECK,
            BottleneckType.MEMORY_BOTTLENECK,
            BottleneckType.SUCCESS_RATE_BOTTLENECK,
        ], f"Unexpected bottleneck order: {types}"
        severities = [b.severity.rank for b in report.bottlenecks]
        assert severities == sorted(severities)
        assert report.bottlenecks[0].severity == Severity.HIGH
        assert report.bottlenecks[-1].severity == Severity.MEDIUM
        assert report.has_high_severity_bottleneck()
        assert report.confidence == pytest.approx(0.7)

    async def test_threshold_boundaries_are_exclusive(self, analyzer: PerformanceAnalyzer):
        report = await analyzer.analyze(healthy_metrics(
            cpu={"usage": 80.0}, throughput={"success_rate": 0.8}, quality={"avg_score": 0.6},
        ))
        assert report.bottlenecks == [], "Values exactly at the threshold are not bottlenecks"

    async def test_underutilization_requires_throughput(self, analyzer: PerformanceAnalyzer):
        idle = await analyzer.analyze(healthy_metrics(cpu={"usage": 10.0}, memory={"percentage": 20.0}, throughput={"rps": 0}))
        assert idle.opportunities == []

        busy = await analyzer.analyze(healthy_metrics(cpu={"usage": 10.0}, memory={"percentage": 20.0}))
        kinds = {o.type for o in busy.opportunities}
        assert kinds == {OpportunityType.CPU_UNDERUTILIZATION, OpportunityType.MEMORY_UNDERUTILIZATION}

    async def test_quality_improvement_and_ordering(self, analyzer: PerformanceAnalyzer):
        report = await analyzer.analyze(healthy_metrics(
            cpu={"usage": 10.0}, quality={"avg_score": 0.7, "confidence": 0.9},
        ))
        kinds = [o.type for o in report.opportunities]
        assert kinds == [OpportunityType.CPU_UNDERUTILIZATION, OpportunityType.QUALITY_IMPROVEMENT], \
            "Low-effort opportunities rank ahead of high-effort ones"

    async def test_history_enables_regression_detection(self, analyzer: PerformanceAnalyzer):
        logger.info("--- Test: Regression against history ---")
        for _ in range(3):
            await analyzer.analyze(healthy_metrics())
        report = await analyzer.analyze(healthy_metrics(
            performance={"avg_response_time": 1500.0}, quality={"avg_score": 0.7},
        ))
        assert report.historical is not None
        assert report.historical.samples == 3
        assert report.historical.avg_response_time == pytest.approx(1000.0)
        kinds = {o.type for o in report.opportunities}
        assert OpportunityType.RESPONSE_TIME_REGRESSION in kinds
        assert OpportunityType.QUALITY_REGRESSION in kinds
        assert report.confidence == pytest.approx(0.9)

    async def test_trend_detects_decline(self, analyzer: PerformanceAnalyzer):
        logger.info("--- Test: Declining trend ---")
        for _ in range(3):
            await analyzer.analyze(healthy_metrics())
        for _ in range(3):
            await analyzer.analyze(healthy_metrics(cpu={"usage": 95.0}, performance={"avg_response_time": 9000.0}))
        report = await analyzer.analyze(healthy_metrics())
        assert report.trend.direction == TrendDirection.DECREASING
        assert report.trend.confidence == pytest.approx(0.8)
        assert report.trend.change < -0.05

    async def test_trend_stable_for_constant_scores(self, analyzer: PerformanceAnalyzer):
        for _ in range(6):
            await analyzer.analyze(healthy_metrics())
        report = await analyzer.analyze(healthy_metrics())
        assert report.trend.direction == TrendDirection.STABLE

    async def test_history_is_bounded(self):
        component = PerformanceAnalyzer()
        await component.initialize({"performance_analyzer": {"history_size": 4}}, MagicMock())
        for _ in range(10):
            await component.analyze(healthy_metrics())
        status = await component.get_status()
        assert status["history_size"] == 4
        assert status["total_analyses"] == 10

    async def test_provider_metrics_merged_with_caller_values(self):
        provider = StaticMetricsProvider(healthy_metrics(cpu={"usage": 20.0}))
        component = PerformanceAnalyzer(metrics_provider=provider)
        await component.initialize({}, MagicMock())
        report = await component.analyze({"cpu": {"usage": 85.0}})
        assert provider.collect_count == 1
        assert report.current.cpu.usage == 85.0, "Caller metrics override provider metrics"
        assert report.current.cpu.cores == 4

    async def test_invalid_metrics_degrade_gracefully(self, analyzer: PerformanceAnalyzer):
        logger.info("--- Test: Degraded report ---")
        report = await analyzer.analyze(["not", "a", "mapping"])
        assert report.status == AnalysisStatus.ANALYSIS_FAILED
        assert report.confidence == pytest.approx(0.1)
        assert report.error
        assert analyzer.failed_analyses == 1
        assert len(analyzer.history) == 0, "Failed analyses are not recorded"

    async def test_provider_failure_raises_in_strict_mode(self):
        provider = MagicMock()
        provider.collect = AsyncMock(side_effect=RuntimeError("sensor offline"))
        component = PerformanceAnalyzer(metrics_provider=provider)
        await component.initialize({"performance_analyzer": {"strict_mode": True}}, MagicMock())
        with pytest.raises(AnalysisFailure, match="sensor offline"):
            await component.analyze()

    async def test_observer_notified(self):
        hub = ObserverHub()
        observer = AsyncMock()
        hub.register(EVENT_PERFORMANCE_ANALYZED, observer)
        component = PerformanceAnalyzer(observer_hub=hub)
        await component.initialize({}, MagicMock())
        report = await component.analyze(healthy_metrics())
        observer.assert_awaited_once()
        event, payload = observer.await_args.args
        assert event == EVENT_PERFORMANCE_ANALYZED
        assert payload["overall_score"] == report.overall_score
        assert payload["status"] == "analyzed"

    async def test_process_reset_and_status(self, analyzer: PerformanceAnalyzer):
        result = await analyzer.process({"metrics": healthy_metrics()})
        assert "performance_report" in result
        status = await analyzer.get_status()
        assert status["component"] == "PerformanceAnalyzer"
        assert status["last_overall_score"] == result["performance_report"].overall_score
        await analyzer.reset()
        status = await analyzer.get_status()
        assert status["history_size"] == 0
        assert status["last_overall_score"] is None
