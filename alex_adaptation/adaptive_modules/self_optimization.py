# --- START OF self_optimization.py

import asyncio
import logging
import time
from contextlib import suppress
from typing import Dict, Any, List, Optional, Mapping, Tuple

from ..protocols import AdaptiveComponent, MetricsProvider
from ..models.enums import (
    AdjustmentAction, AnalysisStatus, OptimizationStatus, Priority, RiskLevel, Severity, TrendDirection,
)
from ..models.datatypes import (
    Adjustment, OptimizationPlan, ParameterBounds, ParameterState, PerformanceReport, PlanPhase,
)
from ..models.exceptions import AnalysisFailure, ConcurrencyRejection
from ..adaptive_helpers.ring_buffer import RingBuffer
from ..adaptive_helpers.id_generator import IdGenerator
from ..adaptive_helpers.observer_hub import ObserverHub, EVENT_OPTIMIZATION_COMPLETED
from ..utils.scoring import clamp
from .performance_analyzer import PerformanceAnalyzer

logger_self_optimization = logging.getLogger(__name__)

# name -> (default, min, max)
DEFAULT_PARAMETERS: Dict[str, Tuple[float, float, float]] = {
    "maxConcurrentRequests": (10, 1, 100),
    "responseTimeout": (30000, 5000, 120000),
    "cacheSize": (1000, 100, 10000),
    "cacheTTL": (300000, 60000, 3600000),
    "confidenceThreshold": (0.7, 0.3, 0.95),
    "qualityThreshold": (0.6, 0.3, 0.9),
    "memoryLimit": (512, 128, 2048),
    "cpuThrottleThreshold": (80, 50, 95),
    "learningRate": (0.1, 0.01, 0.5),
    "adaptationRate": (0.05, 0.01, 0.2),
}
UNKNOWN_BOUNDS_FACTORS = (0.5, 2.0)

INTEGRAL_NAME_MARKERS = ("Requests", "Size", "Limit", "TTL", "Timeout")
RATIO_NAME_MARKERS = ("Threshold", "Rate")

DEFAULT_TRIGGERS: Dict[str, float] = {
    "cpu_high": 80.0,
    "cpu_low": 30.0,
    "memory_high": 85.0,
    "memory_low": 40.0,
    "response_time_ms": 5000.0,
    "quality_low": 0.6,
    "success_rate_low": 0.8,
}

# Base impact per parameter before priority weighting
PARAMETER_IMPACT: Dict[str, float] = {
    "cacheSize": 0.2,
    "cacheTTL": 0.2,
    "responseTimeout": 0.05,
    "confidenceThreshold": 0.1,
    "qualityThreshold": 0.1,
    "learningRate": 0.3,
}
CONCURRENCY_IMPACT_DECREASE = 0.15
CONCURRENCY_IMPACT_INCREASE = 0.1
DEFAULT_PARAMETER_IMPACT = 0.05
PRIORITY_WEIGHTS = {Priority.HIGH: 1.0, Priority.MEDIUM: 0.7, Priority.LOW: 0.4}
MAX_EXPECTED_IMPACT = 0.8

# (phase number, name, priority, duration ms, risk)
PLAN_PHASES = (
    (1, "Critical Performance Fixes", Priority.HIGH, 10000, RiskLevel.MEDIUM),
    (2, "Performance Optimizations", Priority.MEDIUM, 30000, RiskLevel.LOW),
    (3, "Performance Enhancements", Priority.LOW, 60000, RiskLevel.LOW),
)
PLAN_MEDIUM_RISK_ADJUSTMENTS = 5
PLAN_HIGH_RISK_ADJUSTMENTS = 8

DEFAULT_PERFORMANCE_THRESHOLD = 0.6
DEFAULT_TREND_CONFIDENCE_THRESHOLD = 0.6
DEFAULT_HIGH_URGENCY_SCORE = 0.4
DEFAULT_OPTIMIZATION_INTERVAL_S = 300.0
DEFAULT_PARAMETER_HISTORY_SIZE = 50
DEFAULT_OPTIMIZATION_HISTORY_SIZE = 200

FALLBACK_ACTIONS = [
    "Monitor system performance closely",
    "Consider manual intervention",
    "Check system logs for issues",
]


def round_for_parameter(name: str, value: float) -> float:
    if any(marker in name for marker in INTEGRAL_NAME_MARKERS):
        return float(round(value))
    if any(marker in name for marker in RATIO_NAME_MARKERS):
        return round(value, 2)
    return value


class AdaptiveParameterOptimizer:
    """Holds the tunable ParameterSet and turns a performance report into bounded adjustments."""

    def __init__(self, parameter_specs: Optional[Mapping[str, Tuple[float, float, float]]] = None,
                 triggers: Optional[Mapping[str, float]] = None,
                 parameter_history_size: int = DEFAULT_PARAMETER_HISTORY_SIZE,
                 optimization_history_size: int = DEFAULT_OPTIMIZATION_HISTORY_SIZE):
        self.parameter_specs: Dict[str, Tuple[float, float, float]] = dict(DEFAULT_PARAMETERS)
        if parameter_specs:
            self.parameter_specs.update(parameter_specs)
        self.triggers: Dict[str, float] = DEFAULT_TRIGGERS.copy()
        if triggers:
            self.triggers.update(triggers)
        self.parameter_history_size = parameter_history_size
        self.parameters: Dict[str, ParameterState] = {}
        self.optimization_history: RingBuffer[Dict[str, Any]] = RingBuffer(optimization_history_size)

    def initialize_parameters(self, current_params: Optional[Mapping[str, float]] = None) -> None:
        current_params = current_params or {}
        for name, (default, low, high) in self.parameter_specs.items():
            value = clamp(float(current_params.get(name, default)), low, high)
            self.parameters[name] = self._new_state(name, value, ParameterBounds(low, high))
        for name, value in current_params.items():
            if name not in self.parameters:
                self.parameters[name] = self._new_state(name, float(value), self.bounds_for(name, float(value)))

    def _new_state(self, name: str, value: float, bounds: ParameterBounds) -> ParameterState:
        history: RingBuffer[Dict[str, Any]] = RingBuffer(self.parameter_history_size)
        history.append({"value": value, "reason": "initial", "timestamp": time.time()})
        return ParameterState(name=name, current=value, optimal=value, bounds=bounds, history=history)

    def bounds_for(self, name: str, value: float) -> ParameterBounds:
        if name in self.parameter_specs:
            _, low, high = self.parameter_specs[name]
            return ParameterBounds(low, high)
        low_factor, high_factor = UNKNOWN_BOUNDS_FACTORS
        return ParameterBounds(min(value * low_factor, value * high_factor), max(value * low_factor, value * high_factor))

    def sync_parameters(self, current_params: Mapping[str, float]) -> None:
        """Takes externally supplied current values, clamped to each parameter's bounds."""
        if not self.parameters:
            self.initialize_parameters(current_params)
            return
        for name, value in current_params.items():
            state = self.parameters.get(name)
            if state is None:
                self.parameters[name] = self._new_state(name, float(value), self.bounds_for(name, float(value)))
            else:
                state.current = clamp(float(value), state.bounds.min, state.bounds.max)

    def snapshot(self) -> Dict[str, float]:
        return {name: state.current for name, state in self.parameters.items()}

    def capture_state(self) -> Dict[str, Dict[str, Any]]:
        """Everything a rollback needs to reproduce the ParameterSet exactly."""
        return {
            name: {
                "current": state.current,
                "optimal": state.optimal,
                "last_adjustment": state.last_adjustment,
                "history": state.history.to_list() if state.history is not None else [],
            }
            for name, state in self.parameters.items()
        }

    def restore_state(self, saved: Mapping[str, Mapping[str, Any]]) -> None:
        for name, fields in saved.items():
            state = self.parameters.get(name)
            if state is None:
                continue
            state.current = fields["current"]
            state.optimal = fields["optimal"]
            state.last_adjustment = fields["last_adjustment"]
            if state.history is not None:
                state.history.clear()
                for entry in fields["history"]:
                    state.history.append(entry)

    def generate_adjustments(self, report: PerformanceReport) -> List[Adjustment]:
        t = self.triggers
        snap = report.current
        adjustments: List[Adjustment] = []

        if snap.cpu.usage > t["cpu_high"]:
            adjustments.append(Adjustment("maxConcurrentRequests", AdjustmentAction.DECREASE, 0.2,
                                          "High CPU usage - reducing concurrent load", Priority.HIGH))
            adjustments.append(Adjustment("cpuThrottleThreshold", AdjustmentAction.DECREASE, 0.1,
                                          "Lower CPU throttle threshold for early intervention", Priority.MEDIUM))
        elif snap.cpu.usage < t["cpu_low"]:
            adjustments.append(Adjustment("maxConcurrentRequests", AdjustmentAction.INCREASE, 0.15,
                                          "Low CPU usage - can handle more concurrent requests", Priority.MEDIUM))

        if snap.memory.percentage > t["memory_high"]:
            adjustments.append(Adjustment("cacheSize", AdjustmentAction.DECREASE, 0.2,
                                          "High memory usage - reducing cache size", Priority.HIGH))
            adjustments.append(Adjustment("memoryLimit", AdjustmentAction.INCREASE, 0.1,
                                          "Increase memory limit to prevent pressure", Priority.MEDIUM))
        elif snap.memory.percentage < t["memory_low"]:
            adjustments.append(Adjustment("cacheSize", AdjustmentAction.INCREASE, 0.1,
                                          "Low memory usage - can increase cache size", Priority.LOW))

        if snap.performance.avg_response_time > t["response_time_ms"]:
            adjustments.append(Adjustment("responseTimeout", AdjustmentAction.INCREASE, 0.1,
                                          "High response time - increase timeout to prevent false failures", Priority.MEDIUM))
            adjustments.append(Adjustment("cacheTTL", AdjustmentAction.INCREASE, 0.2,
                                          "Increase cache TTL to reduce recomputation", Priority.MEDIUM))

        if snap.quality.avg_score < t["quality_low"]:
            adjustments.append(Adjustment("qualityThreshold", AdjustmentAction.DECREASE, 0.1,
                                          "Low quality scores - temporarily lower threshold", Priority.LOW))
            adjustments.append(Adjustment("learningRate", AdjustmentAction.INCREASE, 0.1,
                                          "Increase learning rate for faster adaptation", Priority.MEDIUM))

        if snap.throughput.success_rate < t["success_rate_low"]:
            adjustments.append(Adjustment("confidenceThreshold", AdjustmentAction.DECREASE, 0.05,
                                          "Low success rate - lower confidence threshold", Priority.MEDIUM))

        return sorted(adjustments, key=lambda a: a.priority.rank)

    def compute_new_value(self, adjustment: Adjustment) -> Optional[float]:
        state = self.parameters.get(adjustment.parameter)
        if state is None:
            return None
        factor = 1 + adjustment.amount if adjustment.action == AdjustmentAction.INCREASE else 1 - adjustment.amount
        value = clamp(state.current * factor, state.bounds.min, state.bounds.max)
        return clamp(round_for_parameter(adjustment.parameter, value), state.bounds.min, state.bounds.max)

    def apply_adjustment(self, adjustment: Adjustment) -> bool:
        """Applies one adjustment to the ParameterSet. Returns False for unknown parameters."""
        new_value = self.compute_new_value(adjustment)
        if new_value is None:
            logger_self_optimization.warning(f"Adjustment for unknown parameter '{adjustment.parameter}' skipped.")
            return False
        state = self.parameters[adjustment.parameter]
        adjustment.old_value = state.current
        adjustment.new_value = new_value
        adjustment.impact = self.adjustment_impact(adjustment)
        state.current = new_value
        state.optimal = new_value
        state.last_adjustment = time.time()
        state.history.append({"value": new_value, "reason": adjustment.reason, "timestamp": state.last_adjustment})
        return True

    def restore(self, values: Mapping[str, float]) -> None:
        """Value-only restore for plans that carry no full state capture."""
        for name, value in values.items():
            state = self.parameters.get(name)
            if state is None:
                continue
            if state.current != value:
                state.current = value
                state.optimal = value
                state.history.append({"value": value, "reason": "rollback", "timestamp": time.time()})

    @staticmethod
    def adjustment_impact(adjustment: Adjustment) -> float:
        if adjustment.parameter == "maxConcurrentRequests":
            base = CONCURRENCY_IMPACT_DECREASE if adjustment.action == AdjustmentAction.DECREASE else CONCURRENCY_IMPACT_INCREASE
        else:
            base = PARAMETER_IMPACT.get(adjustment.parameter, DEFAULT_PARAMETER_IMPACT)
        return base * PRIORITY_WEIGHTS[adjustment.priority]

    def estimate_impact(self, adjustments: List[Adjustment]) -> float:
        return min(MAX_EXPECTED_IMPACT, sum(self.adjustment_impact(a) for a in adjustments))

    def optimization_confidence(self, report: PerformanceReport, adjustments: List[Adjustment]) -> float:
        confidence = 0.5
        measured = [r for r in self.optimization_history if r["success"] is not None]
        if measured:
            confidence += sum(1 for r in measured if r["success"]) / len(measured) * 0.3
        confidence += report.confidence * 0.2
        confidence -= min(0.2, len(adjustments) * 0.05)
        return clamp(confidence, 0.1, 0.9)


class SelfOptimizationSystem(AdaptiveComponent):
    """
    Runs optimization cycles: analyze, gate, adjust parameters, and plan the
    rollout in phases with a rollback snapshot attached.

    Only one cycle runs at a time; a cycle requested while another is running is
    rejected with ``optimization_in_progress``.
    """

    def __init__(self, analyzer: Optional[PerformanceAnalyzer] = None,
                 metrics_provider: Optional[MetricsProvider] = None,
                 observer_hub: Optional[ObserverHub] = None,
                 id_generator: Optional[IdGenerator] = None):
        self._owns_analyzer = analyzer is None
        self.analyzer = analyzer or PerformanceAnalyzer(metrics_provider)
        self.observer_hub = observer_hub
        self.id_generator = id_generator or IdGenerator()
        self.optimizer = AdaptiveParameterOptimizer()
        self.performance_threshold: float = DEFAULT_PERFORMANCE_THRESHOLD
        self.trend_confidence_threshold: float = DEFAULT_TREND_CONFIDENCE_THRESHOLD
        self.high_urgency_score: float = DEFAULT_HIGH_URGENCY_SCORE
        self.optimization_interval_s: float = DEFAULT_OPTIMIZATION_INTERVAL_S
        self.auto_optimization: bool = False
        self.stage_delay_s: float = 0.0
        self.strict_mode: bool = False
        self.is_optimizing: bool = False
        self.optimization_cycles: int = 0
        self.last_optimization: Optional[Dict[str, Any]] = None
        self._auto_task: Optional[asyncio.Task] = None
        self._controller: Optional[Any] = None

    async def initialize(self, config: Dict[str, Any], controller: Any) -> bool:
        self._controller = controller
        opt_config = config.get("self_optimization", {})

        self.performance_threshold = self._read_float(opt_config, "performance_threshold", DEFAULT_PERFORMANCE_THRESHOLD, 0.0, 1.0)
        self.trend_confidence_threshold = self._read_float(opt_config, "trend_confidence_threshold", DEFAULT_TREND_CONFIDENCE_THRESHOLD, 0.0, 1.0)
        self.high_urgency_score = self._read_float(opt_config, "high_urgency_score", DEFAULT_HIGH_URGENCY_SCORE, 0.0, 1.0)
        self.optimization_interval_s = self._read_float(opt_config, "optimization_interval_s", DEFAULT_OPTIMIZATION_INTERVAL_S, 0.001, None)
        self.stage_delay_s = self._read_float(opt_config, "stage_delay_s", 0.0, 0.0, None)
        self.auto_optimization = bool(opt_config.get("auto_optimization", False))
        self.strict_mode = bool(opt_config.get("strict_mode", False))

        param_history = opt_config.get("parameter_history_size", DEFAULT_PARAMETER_HISTORY_SIZE)
        if not isinstance(param_history, int) or param_history <= 0:
            logger_self_optimization.warning(f"Invalid parameter_history_size ({param_history}). Using default {DEFAULT_PARAMETER_HISTORY_SIZE}.")
            param_history = DEFAULT_PARAMETER_HISTORY_SIZE
        opt_history = opt_config.get("optimization_history_size", DEFAULT_OPTIMIZATION_HISTORY_SIZE)
        if not isinstance(opt_history, int) or opt_history <= 0:
            logger_self_optimization.warning(f"Invalid optimization_history_size ({opt_history}). Using default {DEFAULT_OPTIMIZATION_HISTORY_SIZE}.")
            opt_history = DEFAULT_OPTIMIZATION_HISTORY_SIZE

        triggers = opt_config.get("triggers", {})
        if not isinstance(triggers, dict):
            logger_self_optimization.warning("[self_optimization.triggers] is not a table. Using defaults.")
            triggers = {}

        self.optimizer = AdaptiveParameterOptimizer(
            parameter_specs=self._parameter_specs_from_config(config.get("parameters", {})),
            triggers={k: float(v) for k, v in triggers.items() if k in DEFAULT_TRIGGERS},
            parameter_history_size=param_history,
            optimization_history_size=opt_history,
        )
        self.optimizer.initialize_parameters()

        if self._owns_analyzer:
            await self.analyzer.initialize(config, controller)

        if self.auto_optimization:
            self.start_auto_optimization()

        logger_self_optimization.info(
            f"SelfOptimizationSystem initialized. Performance threshold: {self.performance_threshold}, "
            f"parameters: {len(self.optimizer.parameters)}, auto optimization: {self.auto_optimization}."
        )
        return True

    @staticmethod
    def _read_float(section: Dict[str, Any], key: str, default: float,
                    low: Optional[float], high: Optional[float]) -> float:
        value = section.get(key, default)
        valid = isinstance(value, (int, float)) and not isinstance(value, bool)
        if valid and low is not None and value < low: valid = False
        if valid and high is not None and value > high: valid = False
        if not valid:
            logger_self_optimization.warning(f"Invalid {key} ({value}). Using default {default}.")
            return default
        return float(value)

    @staticmethod
    def _parameter_specs_from_config(section: Any) -> Dict[str, Tuple[float, float, float]]:
        specs: Dict[str, Tuple[float, float, float]] = {}
        if not isinstance(section, dict):
            logger_self_optimization.warning("[parameters] is not a table. Using default parameter set.")
            return specs
        for name, entry in section.items():
            if not isinstance(entry, dict):
                logger_self_optimization.warning(f"[parameters.{name}] is not a table. Ignored.")
                continue
            default_spec = DEFAULT_PARAMETERS.get(name)
            try:
                default = float(entry.get("default", default_spec[0] if default_spec else None))
                low = float(entry.get("min", default_spec[1] if default_spec else default * UNKNOWN_BOUNDS_FACTORS[0]))
                high = float(entry.get("max", default_spec[2] if default_spec else default * UNKNOWN_BOUNDS_FACTORS[1]))
            except (TypeError, ValueError) as e:
                logger_self_optimization.warning(f"[parameters.{name}] has invalid values ({e}). Ignored.")
                continue
            if not low <= default <= high:
                logger_self_optimization.warning(f"[parameters.{name}] default {default} outside [{low}, {high}]. Ignored.")
                continue
            specs[name] = (default, low, high)
        return specs

    def assess_optimization_need(self, report: PerformanceReport) -> Dict[str, Any]:
        if report.overall_score < self.performance_threshold:
            return {
                "required": True,
                "reason": f"Performance score {report.overall_score:.3f} below threshold {self.performance_threshold}",
                "urgency": Priority.HIGH.value if report.overall_score < self.high_urgency_score else Priority.MEDIUM.value,
            }
        critical = [b for b in report.bottlenecks if b.severity == Severity.HIGH]
        if critical:
            return {
                "required": True,
                "reason": f"Critical bottlenecks detected: {', '.join(b.type.value for b in critical)}",
                "urgency": Priority.HIGH.value,
            }
        if report.trend.direction == TrendDirection.DECREASING and report.trend.confidence > self.trend_confidence_threshold:
            return {"required": True, "reason": "Performance degradation trend detected", "urgency": Priority.MEDIUM.value}
        if any(o.potential == Priority.HIGH for o in report.opportunities):
            return {"required": True, "reason": "High-potential optimization opportunities available", "urgency": Priority.LOW.value}
        return {"required": False, "reason": "System performance within acceptable parameters"}

    def create_plan(self, adjustments: List[Adjustment], rollback: Dict[str, Dict[str, Any]],
                    expected_impact: float) -> OptimizationPlan:
        phases: List[PlanPhase] = []
        for number, name, priority, duration, risk in PLAN_PHASES:
            grouped = [a for a in adjustments if a.priority == priority]
            if grouped:
                phases.append(PlanPhase(number, name, priority, grouped, duration, risk))

        risk_level = RiskLevel.LOW
        if len(adjustments) > PLAN_HIGH_RISK_ADJUSTMENTS:
            risk_level = RiskLevel.HIGH
        elif len(adjustments) > PLAN_MEDIUM_RISK_ADJUSTMENTS:
            risk_level = RiskLevel.MEDIUM

        return OptimizationPlan(
            id=self.id_generator.next_id("optimization"),
            phases=phases,
            total_adjustments=len(adjustments),
            estimated_impact=expected_impact,
            risk_level=risk_level,
            rollback={name: fields["current"] for name, fields in rollback.items()},
            rollback_state=rollback,
        )

    async def run_optimization_cycle(self, metrics: Optional[Mapping[str, Any]] = None,
                                     params: Optional[Mapping[str, float]] = None,
                                     report: Optional[PerformanceReport] = None) -> Dict[str, Any]:
        """
        Runs one optimization cycle. Pass ``report`` to reuse an analysis already
        made this cycle; otherwise ``metrics`` are analyzed first.
        """
        if self.is_optimizing:
            if self.strict_mode:
                raise ConcurrencyRejection("Another optimization cycle is already running")
            logger_self_optimization.info("Optimization cycle rejected: another cycle is in progress.")
            return {
                "status": OptimizationStatus.OPTIMIZATION_IN_PROGRESS.value,
                "message": "Another optimization cycle is already running",
                "timestamp": time.time(),
            }

        self.is_optimizing = True
        start_time = time.time()
        rollback: Optional[Dict[str, Dict[str, Any]]] = None
        try:
            await asyncio.sleep(self.stage_delay_s)
            if report is None:
                report = await self.analyzer.analyze(metrics)
            if report.status != AnalysisStatus.ANALYZED:
                raise AnalysisFailure(f"Performance analysis failed: {report.error}")

            need = self.assess_optimization_need(report)
            if not need["required"]:
                logger_self_optimization.info("No optimization needed - system performing well.")
                return {
                    "status": OptimizationStatus.NO_OPTIMIZATION_NEEDED.value,
                    "reason": need["reason"],
                    "performance_score": report.overall_score,
                    "processing_time": time.time() - start_time,
                    "timestamp": time.time(),
                }

            await asyncio.sleep(self.stage_delay_s)
            if params:
                self.optimizer.sync_parameters(params)
            elif not self.optimizer.parameters:
                self.optimizer.initialize_parameters()
            rollback = self.optimizer.capture_state()

            adjustments = self.optimizer.generate_adjustments(report)
            applied = [a for a in adjustments if self.optimizer.apply_adjustment(a)]
            expected_impact = self.optimizer.estimate_impact(applied)
            confidence = self.optimizer.optimization_confidence(report, applied)
            plan = self.create_plan(applied, rollback, expected_impact)

            self.optimizer.optimization_history.append({
                "id": plan.id,
                "timestamp": time.time(),
                "adjustments": [a.parameter for a in applied],
                "expected_impact": expected_impact,
                "confidence": confidence,
                "performance_score": report.overall_score,
                "success": None,
            })
            self.optimization_cycles += 1
            self.last_optimization = {
                "id": plan.id,
                "timestamp": time.time(),
                "performance_score": report.overall_score,
                "adjustments": len(applied),
                "expected_impact": expected_impact,
            }

            result = {
                "status": OptimizationStatus.OPTIMIZED.value,
                "cycle": self.optimization_cycles,
                "optimization_id": plan.id,
                "performance_report": report,
                "need": need,
                "adjustments": applied,
                "optimized_parameters": self.optimizer.snapshot(),
                "expected_impact": expected_impact,
                "confidence": confidence,
                "plan": plan,
                "processing_time": time.time() - start_time,
                "timestamp": time.time(),
            }
            logger_self_optimization.info(
                f"Optimization cycle {self.optimization_cycles} completed - {len(applied)} adjustments, "
                f"expected improvement: {expected_impact * 100:.1f}%"
            )
            if self.observer_hub is not None:
                await self.observer_hub.notify(EVENT_OPTIMIZATION_COMPLETED, {
                    "optimization_id": plan.id,
                    "cycle": self.optimization_cycles,
                    "adjustments": len(applied),
                    "expected_impact": expected_impact,
                })
            return result
        except Exception as e:
            if rollback is not None:
                self.optimizer.restore_state(rollback)
            if self.strict_mode:
                raise
            logger_self_optimization.exception(f"Optimization cycle failed: {e}")
            return {
                "status": OptimizationStatus.OPTIMIZATION_FAILED.value,
                "error": str(e),
                "fallback_actions": list(FALLBACK_ACTIONS),
                "processing_time": time.time() - start_time,
                "timestamp": time.time(),
            }
        finally:
            self.is_optimizing = False

    def rollback(self, plan: OptimizationPlan) -> bool:
        """Restores the parameter values captured before ``plan`` was applied."""
        if plan.rollback_state:
            self.optimizer.restore_state(plan.rollback_state)
        elif plan.rollback:
            self.optimizer.restore(plan.rollback)
        else:
            logger_self_optimization.warning(f"Plan {plan.id} has no rollback snapshot.")
            return False
        logger_self_optimization.info(f"Rolled back plan {plan.id} ({len(plan.rollback)} parameters).")
        return True

    def update_optimization_outcome(self, optimization_id: Optional[str], outcome: Mapping[str, Any]) -> bool:
        """Marks a recorded optimization as successful or not. ``None`` targets the most recent one."""
        records = self.optimizer.optimization_history.to_list()
        record = None
        if optimization_id is None:
            record = records[-1] if records else None
        else:
            record = next((r for r in records if r["id"] == optimization_id), None)
        if record is None:
            logger_self_optimization.warning(f"Cannot update outcome: optimization {optimization_id} not in history.")
            return False
        record["success"] = bool(outcome.get("success", False))
        record["actual_impact"] = float(outcome.get("actual_impact", 0.0))
        record["side_effects"] = list(outcome.get("side_effects", []))
        record["measured_at"] = time.time()
        logger_self_optimization.info(
            f"Optimization outcome updated - {record['id']}: success {record['success']}, impact {record['actual_impact']}"
        )
        return True

    def get_parameters(self) -> Dict[str, float]:
        return self.optimizer.snapshot()

    def get_metrics(self) -> Dict[str, Any]:
        history = self.optimizer.optimization_history.to_list()
        measured = [r for r in history if r["success"] is not None]
        successful = [r for r in measured if r["success"]]
        impacts = [r["actual_impact"] for r in measured if "actual_impact" in r]
        return {
            "status": "measured",
            "optimization_cycles": self.optimization_cycles,
            "total_optimizations": len(history),
            "successful_optimizations": len(successful),
            "failed_optimizations": len(measured) - len(successful),
            "success_rate": len(successful) / len(history) if history else 0.0,
            "avg_improvement": sum(impacts) / len(impacts) if impacts else 0.0,
            "last_optimization": self.last_optimization,
            "parameter_count": len(self.optimizer.parameters),
            "performance_history_size": len(self.analyzer.history),
            "optimization_history_size": len(history),
            "currently_optimizing": self.is_optimizing,
            "auto_optimizing": self._auto_task is not None and not self._auto_task.done(),
            "optimization_interval_s": self.optimization_interval_s,
            "confidence": min(0.9, self.optimization_cycles * 0.05),
        }

    def start_auto_optimization(self, interval_s: Optional[float] = None) -> None:
        if self._auto_task is not None and not self._auto_task.done():
            logger_self_optimization.warning("Auto-optimization already running.")
            return
        if interval_s is not None:
            self.optimization_interval_s = interval_s
        logger_self_optimization.info(f"Starting auto-optimization (interval: {self.optimization_interval_s}s)")
        self._auto_task = asyncio.get_running_loop().create_task(self._auto_optimization_loop())

    async def _auto_optimization_loop(self) -> None:
        while True:
            await asyncio.sleep(self.optimization_interval_s)
            if self.is_optimizing:
                continue
            try:
                await self.run_optimization_cycle()
            except Exception as e:
                logger_self_optimization.error(f"Auto-optimization failed: {e}")

    async def stop_auto_optimization(self) -> None:
        if self._auto_task is None:
            return
        self._auto_task.cancel()
        with suppress(asyncio.CancelledError):
            await self._auto_task
        self._auto_task = None
        logger_self_optimization.info("Auto-optimization stopped.")

    async def process(self, input_state: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        input_state = input_state or {}
        result = await self.run_optimization_cycle(
            metrics=input_state.get("metrics"),
            params=input_state.get("parameters"),
            report=input_state.get("performance_report"),
        )
        return {"optimization": result}

    async def reset(self) -> None:
        await self.stop_auto_optimization()
        self.optimizer.parameters.clear()
        self.optimizer.optimization_history.clear()
        self.optimizer.initialize_parameters()
        self.optimization_cycles = 0
        self.last_optimization = None
        self.is_optimizing = False
        if self._owns_analyzer:
            await self.analyzer.reset()
        logger_self_optimization.info("SelfOptimizationSystem reset.")

    async def get_status(self) -> Dict[str, Any]:
        return {
            "component": "SelfOptimizationSystem",
            "status": "optimizing" if self.is_optimizing else "operational",
            "optimization_cycles": self.optimization_cycles,
            "parameter_count": len(self.optimizer.parameters),
            "performance_threshold": self.performance_threshold,
            "strict_mode": self.strict_mode,
        }

    async def shutdown(self) -> None:
        logger_self_optimization.info("SelfOptimizationSystem shutting down...")
        await self.stop_auto_optimization()
        self.is_optimizing = False

# --- END OF self_optimization.py ---
