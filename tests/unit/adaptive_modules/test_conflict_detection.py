# tests/unit/adaptive_modules/test_conflict_detection.py

import asyncio
import logging
from typing import Dict, Any, List

import pytest
import pytest_asyncio
from unittest.mock import MagicMock, AsyncMock

from alex_adaptation.adaptive_modules.conflict_detection import (
    SystemConflictAnalyzer, ConflictResolver, ConflictDetectionEngine, DEFAULT_ANALYZER_SETTINGS,
)
from alex_adaptation.adaptive_helpers.id_generator import IdGenerator
from alex_adaptation.adaptive_helpers.observer_hub import (
    ObserverHub, EVENT_CONFLICT_DETECTION_COMPLETED, EVENT_CONFLICT_RESOLVED,
)
from alex_adaptation.models.datatypes import (
    Adjustment, Conflict, ConflictAnalysis, Decision, OptimizationPlan, PlanPhase, StabilityAssessment,
)
from alex_adaptation.models.enums import (
    AdjustmentAction, ConflictRiskLevel, ConflictType, DecisionType, DetectionStatus, Priority,
    ResolutionStatus, RiskLevel, Severity, StabilityLevel,
)
from alex_adaptation.models.exceptions import ResolutionFailure, ValidationFailure

logger = logging.getLogger(__name__)

SEVERITY_LEVEL = {None: 0, Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3}


def calm_state() -> Dict[str, Any]:
    return {
        "cpu": {"usage": 20.0, "load": 0.5},
        "memory": {"percentage": 30.0},
        "performance": {"avg_response_time": 500.0},
        "throughput": {"success_rate": 0.98, "error_rate": 0.01},
    }


def overloaded_state() -> Dict[str, Any]:
    return {"cpu": {"usage": 95.0}, "memory": {"percentage": 97.0}, "throughput": {"success_rate": 0.42}}


def opposing_cache_optimizations() -> List[Dict[str, Any]]:
    return [
        {"id": "opt_a", "adjustments": [{"parameter": "cacheSize", "action": "increase", "amount": 0.2}]},
        {"id": "opt_b", "adjustments": [{"parameter": "cacheSize", "action": "decrease", "amount": 0.1}]},
    ]


def of_type(conflicts: List[Conflict], conflict_type: ConflictType) -> List[Conflict]:
    return [c for c in conflicts if c.type == conflict_type]


def analysis_with_all_types() -> ConflictAnalysis:
    conflicts = [
        Conflict("c_res", ConflictType.RESOURCE, "CPU_OVERUTILIZATION", Severity.HIGH, "cpu",
                 {"resource": "cpu", "total_projected": 0.82}),
        Conflict("c_dec", ConflictType.DECISION, "CONTRADICTORY_DECISIONS", Severity.MEDIUM, "decisions",
                 {"decisions": ["d1", "d2"]}),
        Conflict("c_opt", ConflictType.OPTIMIZATION, "PARAMETER_CONTRADICTION", Severity.HIGH, "cache",
                 {"parameter": "cacheSize", "changes": [{"action": "increase", "amount": 0.2},
                                                        {"action": "decrease", "amount": 0.4}]}),
        Conflict("c_tmp", ConflictType.TEMPORAL, "OVERLAPPING_OPERATIONS", Severity.LOW, "overlap",
                 {"events": ["d1", "opt_a"]}),
        Conflict("c_log", ConflictType.LOGICAL, "PREMATURE_SCALING", Severity.MEDIUM, "scaling", {}),
    ]
    return ConflictAnalysis(
        conflicts=conflicts,
        risk_level=ConflictRiskLevel.CRITICAL,
        stability=StabilityAssessment(0.5, 0.5, 0.5, 0.5, 0.5, StabilityLevel.UNSTABLE),
        matrix={},
        strategies=SystemConflictAnalyzer.resolution_strategies(conflicts),
        confidence=0.7,
    )


@pytest.fixture
def analyzer() -> SystemConflictAnalyzer:
    return SystemConflictAnalyzer(id_generator=IdGenerator(1))


@pytest_asyncio.fixture
async def engine() -> ConflictDetectionEngine:
    component = ConflictDetectionEngine(id_generator=IdGenerator(9))
    await component.initialize({"conflict_detection": {"auto_resolve": True}}, MagicMock())
    return component


class TestSystemConflictAnalyzer:

    def test_overloaded_state_is_critical_without_pending_work(self, analyzer: SystemConflictAnalyzer):
        logger.info("--- Test: Overloaded state, nothing pending ---")
        analysis = analyzer.analyze(overloaded_state())
        resource = of_type(analysis.conflicts, ConflictType.RESOURCE)
        assert {c.subtype for c in resource} == {"CPU_OVERUTILIZATION", "MEMORY_OVERUTILIZATION"}
        assert all(c.severity == Severity.HIGH for c in resource)
        assert analysis.risk_level in (ConflictRiskLevel.ELEVATED, ConflictRiskLevel.CRITICAL)
        assert analysis.strategies[0].type == "RESOURCE_CONFLICT_RESOLUTION"

    def test_opposing_parameter_changes(self, analyzer: SystemConflictAnalyzer):
        logger.info("--- Test: Opposing optimizations on one parameter ---")
        analysis = analyzer.analyze(calm_state(), [], opposing_cache_optimizations())
        optimization = of_type(analysis.conflicts, ConflictType.OPTIMIZATION)
        assert len(optimization) == 1
        conflict = optimization[0]
        assert conflict.severity == Severity.HIGH
        assert conflict.subtype == "PARAMETER_CONTRADICTION"
        assert conflict.evidence["optimizations"] == ["opt_a", "opt_b"]
        assert of_type(analysis.conflicts, ConflictType.TEMPORAL) == [], "Optimizations never overlap each other"

    def test_excessive_cumulative_change(self, analyzer: SystemConflictAnalyzer):
        optimizations = [
            {"id": "opt_a", "adjustments": [{"parameter": "cacheTTL", "action": "increase", "amount": 0.3}]},
            {"id": "opt_b", "adjustments": [{"parameter": "cacheTTL", "action": "increase", "amount": 0.3}]},
        ]
        conflicts = analyzer.analyze(calm_state(), [], optimizations).conflicts
        assert [(c.subtype, c.severity) for c in conflicts] == [("EXCESSIVE_CUMULATIVE_CHANGE", Severity.MEDIUM)]
        assert conflicts[0].evidence["total_change"] == pytest.approx(0.6)

    @pytest.mark.parametrize("other_type", [
        DecisionType.PERFORMANCE_OPTIMIZATION, DecisionType.RESOURCE_SCALING,
        DecisionType.CONFIGURATION_ADAPTATION, DecisionType.LEARNING_ADJUSTMENT,
        DecisionType.SYSTEM_MAINTENANCE,
    ])
    def test_maintenance_overlap_is_high_severity(self, analyzer: SystemConflictAnalyzer, other_type: DecisionType):
        decisions = [{"id": "m1", "type": "SYSTEM_MAINTENANCE"}, {"id": "d2", "type": other_type.value}]
        temporal = of_type(analyzer.analyze(calm_state(), decisions).conflicts, ConflictType.TEMPORAL)
        assert len(temporal) == 1
        assert temporal[0].severity == Severity.HIGH
        assert temporal[0].evidence["events"] == ["m1", "d2"]

    def test_decision_and_optimization_overlap(self, analyzer: SystemConflictAnalyzer):
        decisions = [{"id": "d1", "type": "CONFIGURATION_ADAPTATION"}]
        optimizations = [{"id": "opt_a", "adjustments": []}]
        temporal = of_type(analyzer.analyze(calm_state(), decisions, optimizations).conflicts, ConflictType.TEMPORAL)
        assert len(temporal) == 1
        assert temporal[0].severity == Severity.MEDIUM
        assert temporal[0].evidence["overlap_ms"] == 2000

    def test_zero_duration_never_overlaps(self, analyzer: SystemConflictAnalyzer):
        decisions = [
            {"id": "m1", "type": "SYSTEM_MAINTENANCE"},
            {"id": "d2", "type": "PERFORMANCE_OPTIMIZATION", "expected_outcome": {"time_to_effect_ms": 0}},
        ]
        assert of_type(analyzer.analyze(calm_state(), decisions).conflicts, ConflictType.TEMPORAL) == []

    def test_contradictory_decisions(self, analyzer: SystemConflictAnalyzer):
        decisions = [{"id": "p1", "type": "PERFORMANCE_OPTIMIZATION"}, {"id": "m1", "type": "SYSTEM_MAINTENANCE"}]
        conflicts = of_type(analyzer.analyze(calm_state(), decisions).conflicts, ConflictType.DECISION)
        assert len(conflicts) == 1
        assert conflicts[0].severity == Severity.MEDIUM
        assert conflicts[0].evidence["decisions"] == ["p1", "m1"]

    def test_logical_conflicts(self, analyzer: SystemConflictAnalyzer):
        decisions = [{"id": "p1", "type": "PERFORMANCE_OPTIMIZATION"}, {"id": "s1", "type": "RESOURCE_SCALING"}]
        logical = of_type(analyzer.analyze(calm_state(), decisions).conflicts, ConflictType.LOGICAL)
        assert {(c.subtype, c.severity) for c in logical} == {
            ("UNNECESSARY_OPTIMIZATION", Severity.LOW), ("PREMATURE_SCALING", Severity.MEDIUM),
        }

        logical = of_type(analyzer.analyze({}, decisions).conflicts, ConflictType.LOGICAL)
        assert [c.subtype for c in logical] == ["PREMATURE_SCALING"], \
            "Missing usage counts as zero; an unknown response time is never called stable"

    def test_resource_severity_rises_with_cpu_usage(self, analyzer: SystemConflictAnalyzer):
        logger.info("--- Test: Resource severity monotonic in cpu usage ---")
        decisions = [{"id": "p1", "type": "PERFORMANCE_OPTIMIZATION"}]
        previous = 0
        for usage in range(40, 96):
            state = {"cpu": {"usage": float(usage)}, "memory": {"percentage": 10.0}}
            cpu_conflicts = [c for c in analyzer.analyze(state, decisions).conflicts
                             if c.subtype == "CPU_OVERUTILIZATION"]
            level = SEVERITY_LEVEL[cpu_conflicts[0].severity] if cpu_conflicts else 0
            assert level >= previous, f"Severity dropped at cpu usage {usage}"
            previous = level
        assert previous == SEVERITY_LEVEL[Severity.HIGH]

    def test_detection_is_repeatable(self, analyzer: SystemConflictAnalyzer):
        decisions = [{"id": "m1", "type": "SYSTEM_MAINTENANCE"}, {"id": "p1", "type": "PERFORMANCE_OPTIMIZATION"}]
        first = analyzer.analyze(overloaded_state(), decisions, opposing_cache_optimizations())
        second = analyzer.analyze(overloaded_state(), decisions, opposing_cache_optimizations())
        assert [c.signature() for c in first.conflicts] == [c.signature() for c in second.conflicts]
        assert first.risk_level == second.risk_level
        assert [c.id for c in first.conflicts] != [c.id for c in second.conflicts]

    def test_accepts_engine_objects(self, analyzer: SystemConflictAnalyzer):
        decision = Decision(id="decision_1_abc", type=DecisionType.SYSTEM_MAINTENANCE, priority=0.9, risk=0.2,
                            effort=0.5, expected_impact=0.8, reasoning="crashes", confidence=0.8,
                            expected_outcome={"time_to_effect_ms": 30000})
        plan = OptimizationPlan(
            id="optimization_1_abc",
            phases=[PlanPhase(1, "Critical Performance Fixes", Priority.HIGH, [
                Adjustment("cacheSize", AdjustmentAction.DECREASE, 0.2, priority=Priority.HIGH),
            ], 10000, RiskLevel.MEDIUM)],
            total_adjustments=1, estimated_impact=0.2, risk_level=RiskLevel.LOW,
        )
        analysis = analyzer.analyze(calm_state(), [decision], [plan])
        temporal = of_type(analysis.conflicts, ConflictType.TEMPORAL)
        assert temporal[0].evidence["events"] == ["decision_1_abc", "optimization_1_abc"]
        assert temporal[0].evidence["overlap_ms"] == 30000
        assert analysis.matrix["optimizations"]["cacheSize"][0]["action"] == "decrease"

    def test_conflict_matrix_interactions(self, analyzer: SystemConflictAnalyzer):
        decisions = [{"id": "p1", "type": "PERFORMANCE_OPTIMIZATION"}, {"id": "s1", "type": "RESOURCE_SCALING"}]
        optimizations = [{"id": "opt_a", "adjustments": [
            {"parameter": "cacheSize", "action": "increase", "amount": 0.1},
            {"parameter": "memoryLimit", "action": "decrease", "amount": 0.1},
        ]}]
        matrix = analyzer.analyze(calm_state(), decisions, optimizations).matrix
        kinds = sorted(i["type"] for i in matrix["interactions"])
        assert kinds == ["decision_decision", "optimization_optimization"]
        assert matrix["decisions"]["RESOURCE_SCALING"][0]["resources"]["memory"] == 0.5

    def test_calm_state_stability_and_confidence(self, analyzer: SystemConflictAnalyzer):
        analysis = analyzer.analyze(calm_state())
        assert analysis.conflicts == []
        assert analysis.risk_level == ConflictRiskLevel.MINIMAL
        assert analysis.stability.level == StabilityLevel.STABLE
        assert analysis.confidence == pytest.approx(min(0.95, 0.7 + analysis.stability.overall * 0.2))

    def test_risk_level_rules(self):
        low = Conflict("a", ConflictType.LOGICAL, "X", Severity.LOW, "")
        medium = Conflict("b", ConflictType.DECISION, "Y", Severity.MEDIUM, "")
        high = Conflict("c", ConflictType.RESOURCE, "Z", Severity.HIGH, "")
        assert SystemConflictAnalyzer.risk_level([], 0) == ConflictRiskLevel.MINIMAL
        assert SystemConflictAnalyzer.risk_level([low], 0) == ConflictRiskLevel.MODERATE
        assert SystemConflictAnalyzer.risk_level([medium, medium], 0) == ConflictRiskLevel.MODERATE
        assert SystemConflictAnalyzer.risk_level([medium, medium, medium], 0) == ConflictRiskLevel.ELEVATED
        assert SystemConflictAnalyzer.risk_level([medium, medium], 1) == ConflictRiskLevel.ELEVATED
        assert SystemConflictAnalyzer.risk_level([low, high], 0) == ConflictRiskLevel.CRITICAL

    def test_invalid_inputs_rejected(self, analyzer: SystemConflictAnalyzer):
        with pytest.raises(ValidationFailure):
            analyzer.analyze("cpu=95")
        with pytest.raises(ValidationFailure):
            analyzer.analyze(calm_state(), "SYSTEM_MAINTENANCE")
        with pytest.raises(ValidationFailure):
            analyzer.analyze(calm_state(), [], [42])


@pytest.mark.asyncio
class TestConflictResolver:

    async def test_handlers_produce_system_changes(self):
        logger.info("--- Test: Built-in resolution handlers ---")
        resolver = ConflictResolver()
        result = await resolver.resolve_conflicts(analysis_with_all_types())
        assert result["status"] == ResolutionStatus.RESOLVED.value
        assert result["success_rate"] == pytest.approx(1.0)
        resolution = result["resolution"]
        assert sorted(resolution["resolved_conflicts"]) == ["c_dec", "c_log", "c_opt", "c_res", "c_tmp"]
        changes = resolution["system_changes"]
        assert changes["cpu_throttle"] == 1.0, "0.82 projected usage only queues operations"
        assert changes["decision_queue"] == {"active": "d1", "queued": ["d2"]}
        assert changes["cacheSize"] == {"action": "decrease", "amount": pytest.approx(0.1)}
        assert changes["reschedule_d1"] == 10000
        assert changes["reschedule_opt_a"] == 20000
        assert changes["cancelled_premature_scaling"] is True
        assert all("conflict_id" in action for action in resolution["applied_actions"])

    async def test_concurrency_is_bounded(self):
        logger.info("--- Test: Bounded concurrent strategies ---")
        resolver = ConflictResolver(max_concurrent_resolutions=2, handler_delay_s=0.02)
        result = await resolver.resolve_conflicts(analysis_with_all_types())
        assert len(result["resolution"]["resolved_conflicts"]) == 5
        assert resolver.peak_active_resolutions == 2
        assert resolver.active_resolutions == 0

    async def test_failing_handler_marks_only_its_conflict(self):
        resolver = ConflictResolver()
        resolver.register_handler(ConflictType.TEMPORAL, MagicMock(side_effect=RuntimeError("scheduler down")))
        result = await resolver.resolve_conflicts(analysis_with_all_types())
        resolution = result["resolution"]
        assert result["status"] == ResolutionStatus.RESOLVED.value
        assert len(resolution["resolved_conflicts"]) == 4
        assert [f["conflict_id"] for f in resolution["failed_resolutions"]] == ["c_tmp"]
        assert "scheduler down" in resolution["failed_resolutions"][0]["reason"]
        assert result["success_rate"] == pytest.approx(0.8)

    async def test_all_handlers_failing(self):
        resolver = ConflictResolver()
        for conflict_type in ConflictType:
            resolver.register_handler(conflict_type, MagicMock(side_effect=KeyError("missing")))
        result = await resolver.resolve_conflicts(analysis_with_all_types())
        assert result["status"] == ResolutionStatus.FAILED.value
        assert result["success_rate"] == 0.0

    async def test_failing_handler_raises_in_strict_mode(self):
        resolver = ConflictResolver(strict_mode=True)
        resolver.register_handler(ConflictType.LOGICAL, MagicMock(side_effect=RuntimeError("bad repair")))
        with pytest.raises(ResolutionFailure) as exc_info:
            await resolver.resolve_conflicts(analysis_with_all_types())
        assert exc_info.value.conflict_id == "c_log"
        assert resolver.is_resolving is False

    async def test_strict_failure_raised_after_every_strategy_finishes(self):
        logger.info("--- Test: Strict mode resolution still runs to completion ---")
        resolver = ConflictResolver(strict_mode=True, max_concurrent_resolutions=1, handler_delay_s=0.01)
        resolver.register_handler(ConflictType.RESOURCE, MagicMock(side_effect=RuntimeError("throttle offline")))
        temporal = MagicMock(wraps=resolver.reschedule_temporal_conflict)
        resolver.register_handler(ConflictType.TEMPORAL, temporal)

        with pytest.raises(ResolutionFailure) as exc_info:
            await resolver.resolve_conflicts(analysis_with_all_types())

        assert exc_info.value.conflict_id == "c_res"
        temporal.assert_called_once()
        assert resolver.active_resolutions == 0
        assert resolver.is_resolving is False
        assert len(resolver.resolution_history) == 1
        record = resolver.resolution_history.last()
        assert record["resolved_count"] == 4, "Sibling strategies complete before the failure surfaces"
        assert record["failed_count"] == 1

    async def test_reentry_rejected(self):
        resolver = ConflictResolver(handler_delay_s=0.01)
        first, second = await asyncio.gather(
            resolver.resolve_conflicts(analysis_with_all_types()),
            resolver.resolve_conflicts(analysis_with_all_types()),
        )
        assert first["status"] == ResolutionStatus.RESOLVED.value
        assert second["status"] == DetectionStatus.RESOLUTION_IN_PROGRESS.value
        assert len(resolver.resolution_history) == 1


@pytest.mark.asyncio
class TestConflictDetectionEngine:

    async def test_initialize_repairs_inverted_thresholds(self):
        component = ConflictDetectionEngine()
        await component.initialize({"conflict_detection": {
            "resource_threshold": 0.95, "resource_high_cut": 0.85, "max_concurrent_resolutions": 0,
        }}, MagicMock())
        assert component.analyzer.settings["resource_threshold"] == DEFAULT_ANALYZER_SETTINGS["resource_threshold"]
        assert component.analyzer.settings["resource_high_cut"] == DEFAULT_ANALYZER_SETTINGS["resource_high_cut"]
        assert component.resolver.max_concurrent_resolutions == 3

    async def test_detect_and_resolve(self, engine: ConflictDetectionEngine):
        logger.info("--- Test: Detection with automatic resolution ---")
        report = await engine.detect_and_resolve_conflicts(overloaded_state())
        assert report.status == DetectionStatus.COMPLETED
        assert report.summary["conflicts_detected"] == 2
        assert report.summary["conflicts_resolved"] == 2
        assert report.summary["risk_level"] == ConflictRiskLevel.CRITICAL.value
        changes = report.resolution["resolution"]["system_changes"]
        assert changes == {"cpu_throttle": 0.85, "memory_throttle": 0.7}

        metrics = engine.get_metrics()
        assert metrics["total_detections"] == 1
        assert metrics["total_conflicts"] == 2
        assert metrics["total_resolutions"] == 1
        assert metrics["resolution_success_rate"] == pytest.approx(1.0)
        assert metrics["avg_resolution_time"] == pytest.approx(report.resolution["processing_time"])

    async def test_auto_resolve_override(self, engine: ConflictDetectionEngine):
        report = await engine.detect_and_resolve_conflicts(overloaded_state(), options={"auto_resolve": False})
        assert report.resolution is None
        assert report.summary["conflicts_resolved"] == 0
        assert engine.get_metrics()["total_resolutions"] == 0

    async def test_no_conflicts_skips_resolution(self, engine: ConflictDetectionEngine):
        report = await engine.detect_and_resolve_conflicts(calm_state(), [], [])
        assert report.resolution is None
        assert report.summary["risk_level"] == "minimal"
        assert report.summary["system_stability"] == "stable"

    async def test_busy_resolver_reports_in_progress(self):
        component = ConflictDetectionEngine()
        await component.initialize({"conflict_detection": {"handler_delay_s": 0.01}}, MagicMock())
        first, second = await asyncio.gather(
            component.detect_and_resolve_conflicts(overloaded_state()),
            component.detect_and_resolve_conflicts(overloaded_state()),
        )
        assert first.status == DetectionStatus.COMPLETED
        assert second.status == DetectionStatus.RESOLUTION_IN_PROGRESS
        assert second.summary["conflicts_resolved"] == 0

    async def test_invalid_input_degrades(self, engine: ConflictDetectionEngine):
        report = await engine.detect_and_resolve_conflicts(["cpu", 95])
        assert report.status == DetectionStatus.FAILED
        assert report.confidence == pytest.approx(0.1)
        assert report.summary["risk_level"] is None
        assert report.error

    async def test_invalid_input_raises_in_strict_mode(self):
        component = ConflictDetectionEngine()
        await component.initialize({"conflict_detection": {"strict_mode": True}}, MagicMock())
        with pytest.raises(ValidationFailure):
            await component.detect_and_resolve_conflicts(calm_state(), decisions="SYSTEM_MAINTENANCE")

    async def test_observers_notified(self):
        hub = ObserverHub()
        detection_observer, resolution_observer = AsyncMock(), AsyncMock()
        hub.register(EVENT_CONFLICT_DETECTION_COMPLETED, detection_observer)
        hub.register(EVENT_CONFLICT_RESOLVED, resolution_observer)
        component = ConflictDetectionEngine(observer_hub=hub)
        await component.initialize({}, MagicMock())
        await component.detect_and_resolve_conflicts(overloaded_state())
        detection_observer.assert_awaited_once()
        resolution_observer.assert_awaited_once()
        _, payload = resolution_observer.await_args.args
        assert payload["resolved"] == 2

    async def test_process_reset_and_status(self, engine: ConflictDetectionEngine):
        assert await engine.process({}) is None
        result = await engine.process({
            "system_state": calm_state(),
            "pending_optimizations": opposing_cache_optimizations(),
        })
        assert result["conflict_report"].summary["conflicts_detected"] == 1
        status = await engine.get_status()
        assert status["total_detections"] == 1
        assert status["active_resolutions"] == 0
        await engine.reset()
        assert engine.get_metrics()["total_detections"] == 0
        assert engine.get_metrics()["resolution_history_size"] == 0
