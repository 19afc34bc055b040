# --- START OF conflict_detection.py

import asyncio
import logging
import time
from typing import Dict, Any, List, Optional, Mapping, Callable, Sequence, Union

from ..protocols import AdaptiveComponent
from ..models.enums import (
    AdjustmentAction, ConflictRiskLevel, ConflictType, DecisionType, DetectionStatus, Priority,
    ResolutionStatus, Severity, StabilityLevel,
)
from ..models.datatypes import (
    Adjustment, Conflict, ConflictAnalysis, ConflictReport, Decision, OptimizationPlan,
    ResolutionStrategy, StabilityAssessment, SystemSnapshot,
)
from ..models.exceptions import ResolutionFailure, ValidationFailure
from ..adaptive_helpers.ring_buffer import RingBuffer
from ..adaptive_helpers.id_generator import IdGenerator
from ..adaptive_helpers.observer_hub import (
    ObserverHub, EVENT_CONFLICT_DETECTION_COMPLETED, EVENT_CONFLICT_RESOLVED,
)
from ..utils.scoring import clamp, ema
from .decision_engine import expected_time_to_effect_ms

logger_conflict_detection = logging.getLogger(__name__)

DEFAULT_ANALYZER_SETTINGS: Dict[str, float] = {
    "resource_threshold": 0.8,
    "resource_high_cut": 0.9,
    "cumulative_change_limit": 0.5,
    "optimization_window_ms": 30000.0,
    "stable_response_time_ms": 2000.0,
    "stable_cpu_usage": 50.0,
    "scaling_cpu_usage": 30.0,
    "scaling_memory_percentage": 40.0,
    "stable_level": 0.8,
    "moderate_level": 0.6,
}

DEFAULT_MAX_CONCURRENT_RESOLUTIONS = 3
DEFAULT_RESOLUTION_HISTORY_SIZE = 100
DEFAULT_HANDLER_DELAY_S = 0.0
STATS_EMA_ALPHA = 0.1
FAILED_DETECTION_CONFIDENCE = 0.1

RESOURCES = ("cpu", "memory", "bandwidth", "storage")
# state section and key holding the current usage of each resource, in percent
RESOURCE_USAGE_KEYS = {
    "cpu": ("cpu", "usage"),
    "memory": ("memory", "percentage"),
    "bandwidth": ("bandwidth", "usage"),
    "storage": ("storage", "usage"),
}

RESOURCE_REQUIREMENTS: Dict[str, Dict[str, float]] = {
    DecisionType.PERFORMANCE_OPTIMIZATION.value: {"cpu": 0.3, "memory": 0.2},
    DecisionType.RESOURCE_SCALING.value: {"memory": 0.5, "cpu": 0.2},
    DecisionType.SYSTEM_MAINTENANCE.value: {"cpu": 0.4, "bandwidth": 0.3},
    DecisionType.LEARNING_ADJUSTMENT.value: {"cpu": 0.6, "memory": 0.4},
}
DEFAULT_RESOURCE_REQUIREMENTS = {"cpu": 0.1, "memory": 0.1}

DECISION_INTERACTIONS = {
    frozenset((DecisionType.PERFORMANCE_OPTIMIZATION.value, DecisionType.RESOURCE_SCALING.value)):
        (0.6, "Performance optimization may conflict with resource scaling timing"),
    frozenset((DecisionType.SYSTEM_MAINTENANCE.value, DecisionType.PERFORMANCE_OPTIMIZATION.value)):
        (0.7, "System maintenance may interfere with performance optimization"),
    frozenset((DecisionType.RESOURCE_SCALING.value, DecisionType.SYSTEM_MAINTENANCE.value)):
        (0.5, "Resource scaling during maintenance may cause instability"),
}
PARAMETER_INTERACTIONS = {
    frozenset(("maxConcurrentRequests", "responseTimeout")):
        (0.4, "Increasing concurrent requests while extending timeout may cause resource strain"),
    frozenset(("cacheSize", "memoryLimit")):
        (0.6, "Increasing cache size conflicts with memory limit reduction"),
    frozenset(("confidenceThreshold", "qualityThreshold")):
        (0.3, "Conflicting quality and confidence thresholds may cause inconsistent behavior"),
}

# (severity, reason, suggested resolution)
DECISION_CONTRADICTIONS = {
    frozenset((DecisionType.PERFORMANCE_OPTIMIZATION.value, DecisionType.SYSTEM_MAINTENANCE.value)): (
        Severity.MEDIUM,
        "Performance optimization conflicts with system maintenance downtime",
        "Delay optimization until maintenance completes",
    ),
    frozenset((DecisionType.RESOURCE_SCALING.value, DecisionType.LEARNING_ADJUSTMENT.value)): (
        Severity.LOW,
        "Resource scaling may interfere with learning parameter tuning",
        "Coordinate timing of both operations",
    ),
}

# conflict type -> (strategy name, priority, expected impact, estimated time ms, actions)
STRATEGY_TEMPLATES = {
    ConflictType.RESOURCE: ("RESOURCE_CONFLICT_RESOLUTION", Priority.HIGH, 0.8, 60000, [
        "Defer non-critical operations", "Implement resource queuing",
        "Scale resources if possible", "Optimize resource usage",
    ]),
    ConflictType.DECISION: ("DECISION_ARBITRATION", Priority.MEDIUM, 0.6, 30000, [
        "Prioritize by business impact", "Sequence conflicting decisions",
        "Merge compatible decisions", "Cancel redundant decisions",
    ]),
    ConflictType.OPTIMIZATION: ("OPTIMIZATION_COORDINATION", Priority.MEDIUM, 0.7, 45000, [
        "Consolidate parameter changes", "Apply changes incrementally",
        "Validate parameter interactions", "Rollback conflicting changes",
    ]),
    ConflictType.TEMPORAL: ("TEMPORAL_COORDINATION", Priority.LOW, 0.5, 20000, [
        "Reschedule overlapping operations", "Implement operation queuing",
        "Adjust timing windows", "Parallelize compatible operations",
    ]),
    ConflictType.LOGICAL: ("LOGICAL_CONSISTENCY_REPAIR", Priority.HIGH, 0.9, 90000, [
        "Review decision logic", "Update decision criteria",
        "Cancel inconsistent operations", "Improve context analysis",
    ]),
}

# (peak projected usage above, action, expected reduction, throttle value)
THROTTLE_TIERS = (
    (0.95, "EMERGENCY_THROTTLE", 0.3, 0.7),
    (0.85, "MODERATE_THROTTLE", 0.15, 0.85),
)
QUEUE_TIER = ("QUEUE_OPERATIONS", 0.1, 1.0)
RESCHEDULE_OFFSETS_MS = (10000, 20000)

ConflictHandler = Callable[[Conflict, Mapping[str, Any]], Dict[str, Any]]


def _state_value(state: Mapping[str, Any], section: str, key: str) -> Optional[float]:
    values = state.get(section)
    if not isinstance(values, Mapping):
        return None
    value = values.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class SystemConflictAnalyzer:
    """Detects the five conflict kinds among pending decisions and optimizations."""

    def __init__(self, settings: Optional[Mapping[str, float]] = None,
                 id_generator: Optional[IdGenerator] = None):
        self.settings: Dict[str, float] = DEFAULT_ANALYZER_SETTINGS.copy()
        if settings:
            self.settings.update(settings)
        self.id_generator = id_generator or IdGenerator()

    # --- Input normalization ---

    @staticmethod
    def normalize_state(state: Union[SystemSnapshot, Mapping[str, Any], None]) -> Dict[str, Any]:
        if state is None:
            return {}
        if isinstance(state, SystemSnapshot):
            return state.to_dict()
        if isinstance(state, Mapping):
            return dict(state)
        raise ValidationFailure(f"System state must be a mapping or SystemSnapshot, got {type(state).__name__}")

    @staticmethod
    def normalize_decisions(decisions: Optional[Sequence[Any]]) -> List[Dict[str, Any]]:
        """Reduces Decision objects or ``{"type": ...}`` mappings to id, type and time to effect."""
        if decisions is None:
            return []
        if isinstance(decisions, (str, bytes, Mapping)) or not isinstance(decisions, Sequence):
            raise ValidationFailure("Pending decisions must be a list")
        normalized = []
        for index, item in enumerate(decisions):
            if isinstance(item, Decision):
                decision_type = item.type.value
                decision_id = item.id
                time_to_effect = item.time_to_effect_ms
            elif isinstance(item, Mapping):
                raw_type = item.get("type")
                decision_type = raw_type.value if isinstance(raw_type, DecisionType) else str(raw_type or "UNKNOWN")
                decision_id = str(item.get("id") or f"decision_{index}")
                outcome = item.get("expected_outcome") or {}
                time_to_effect = outcome.get("time_to_effect_ms") if isinstance(outcome, Mapping) else None
                if time_to_effect is None:
                    try:
                        time_to_effect = expected_time_to_effect_ms(DecisionType(decision_type))
                    except ValueError:
                        time_to_effect = 0
            else:
                raise ValidationFailure(f"Unsupported pending decision at index {index}: {type(item).__name__}")
            normalized.append({"id": decision_id, "type": decision_type, "time_to_effect_ms": float(time_to_effect)})
        return normalized

    @staticmethod
    def _normalize_change(adjustment: Any) -> Dict[str, Any]:
        if isinstance(adjustment, Adjustment):
            return {
                "parameter": adjustment.parameter,
                "action": adjustment.action.value,
                "amount": adjustment.amount,
                "priority": adjustment.priority.value,
            }
        if isinstance(adjustment, Mapping) and "parameter" in adjustment:
            action = adjustment.get("action")
            priority = adjustment.get("priority", Priority.MEDIUM)
            return {
                "parameter": str(adjustment["parameter"]),
                "action": action.value if isinstance(action, AdjustmentAction) else str(action),
                "amount": float(adjustment.get("amount", 0.0)),
                "priority": priority.value if isinstance(priority, Priority) else str(priority),
            }
        raise ValidationFailure(f"Unsupported adjustment: {adjustment!r}")

    def normalize_optimizations(self, optimizations: Optional[Sequence[Any]]) -> List[Dict[str, Any]]:
        """Accepts plans, optimization cycle results, ``{"adjustments": [...]}`` mappings or bare Adjustments."""
        if optimizations is None:
            return []
        if isinstance(optimizations, (str, bytes, Mapping)) or not isinstance(optimizations, Sequence):
            raise ValidationFailure("Pending optimizations must be a list")
        normalized = []
        for index, item in enumerate(optimizations):
            if isinstance(item, OptimizationPlan):
                opt_id, adjustments = item.id, item.all_adjustments()
            elif isinstance(item, Adjustment):
                opt_id, adjustments = f"optimization_{index}", [item]
            elif isinstance(item, Mapping):
                opt_id = str(item.get("id") or item.get("optimization_id") or f"optimization_{index}")
                adjustments = item.get("adjustments") or []
            else:
                raise ValidationFailure(f"Unsupported pending optimization at index {index}: {type(item).__name__}")
            normalized.append({"id": opt_id, "changes": [self._normalize_change(a) for a in adjustments]})
        return normalized

    # --- Stability and matrix ---

    def assess_stability(self, state: Mapping[str, Any]) -> StabilityAssessment:
        snapshot = SystemSnapshot.from_metrics(state)
        cpu = (max(0.0, 1 - snapshot.cpu.usage / 100) + clamp(2 - snapshot.cpu.load)) / 2
        pressure = snapshot.memory.pressure if snapshot.memory.pressure is not None else 0.0
        memory = (max(0.0, 1 - snapshot.memory.percentage / 100) + max(0.0, 1 - pressure)) / 2
        performance = (clamp(1 - snapshot.performance.avg_response_time / 10000)
                       + max(0.0, 1 - snapshot.throughput.error_rate * 10)) / 2
        crash_count = snapshot.errors.crash_count
        crash_score = 1.0 if crash_count == 0 else max(0.0, 1 - crash_count / 10)
        errors = (crash_score + max(0.0, 1 - snapshot.errors.exception_count / 100)) / 2

        overall = cpu * 0.3 + memory * 0.25 + performance * 0.25 + errors * 0.2
        if overall > self.settings["stable_level"]:
            level = StabilityLevel.STABLE
        elif overall > self.settings["moderate_level"]:
            level = StabilityLevel.MODERATE
        else:
            level = StabilityLevel.UNSTABLE
        return StabilityAssessment(cpu, memory, performance, errors, clamp(overall), level)

    @staticmethod
    def resource_requirements(decision_type: str) -> Dict[str, float]:
        requirements = {resource: 0.0 for resource in RESOURCES}
        requirements.update(RESOURCE_REQUIREMENTS.get(decision_type, DEFAULT_RESOURCE_REQUIREMENTS))
        return requirements

    def build_conflict_matrix(self, decisions: List[Dict[str, Any]],
                              optimizations: List[Dict[str, Any]]) -> Dict[str, Any]:
        matrix: Dict[str, Any] = {"decisions": {}, "optimizations": {}, "interactions": []}
        for decision in decisions:
            matrix["decisions"].setdefault(decision["type"], []).append({
                "id": decision["id"],
                "resources": self.resource_requirements(decision["type"]),
                "timing_ms": decision["time_to_effect_ms"],
            })
        for parameter, changes in self._group_parameter_changes(optimizations).items():
            matrix["optimizations"][parameter] = changes

        for kind, keys, table in (
            ("decision_decision", list(matrix["decisions"]), DECISION_INTERACTIONS),
            ("optimization_optimization", list(matrix["optimizations"]), PARAMETER_INTERACTIONS),
        ):
            for i, first in enumerate(keys):
                for second in keys[i + 1:]:
                    interaction = table.get(frozenset((first, second)))
                    if interaction:
                        matrix["interactions"].append({
                            "type": kind, "entities": [first, second],
                            "conflict_level": interaction[0], "reason": interaction[1],
                        })
        return matrix

    @staticmethod
    def _group_parameter_changes(optimizations: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for optimization in optimizations:
            for change in optimization["changes"]:
                grouped.setdefault(change["parameter"], []).append({
                    "optimization": optimization["id"],
                    "action": change["action"],
                    "amount": change["amount"],
                    "priority": change["priority"],
                })
        return grouped

    def _conflict(self, conflict_type: ConflictType, subtype: str, severity: Severity, description: str,
                  evidence: Dict[str, Any], suggested_resolution: Optional[str] = None) -> Conflict:
        return Conflict(
            id=self.id_generator.next_id("conflict"),
            type=conflict_type,
            subtype=subtype,
            severity=severity,
            description=description,
            evidence=evidence,
            suggested_resolution=suggested_resolution,
        )

    # --- Detectors ---

    def detect_resource_conflicts(self, state: Mapping[str, Any], decisions: List[Dict[str, Any]]) -> List[Conflict]:
        threshold = self.settings["resource_threshold"]
        demand = {resource: 0.0 for resource in RESOURCES}
        for decision in decisions:
            for resource, amount in self.resource_requirements(decision["type"]).items():
                demand[resource] += amount

        conflicts = []
        for resource in RESOURCES:
            current = (_state_value(state, *RESOURCE_USAGE_KEYS[resource]) or 0.0) / 100
            projected = current + demand[resource]
            if projected <= threshold:
                continue
            severity = Severity.HIGH if projected > self.settings["resource_high_cut"] else Severity.MEDIUM
            conflicts.append(self._conflict(
                ConflictType.RESOURCE,
                f"{resource.upper()}_OVERUTILIZATION",
                severity,
                f"{resource.upper()} usage would exceed threshold: {projected * 100:.1f}% > {threshold * 100:.1f}%",
                {
                    "resource": resource,
                    "current_usage": current,
                    "additional_demand": demand[resource],
                    "total_projected": projected,
                    "threshold": threshold,
                    "affected_decisions": [d["id"] for d in decisions],
                },
            ))
        return conflicts

    def detect_decision_conflicts(self, decisions: List[Dict[str, Any]]) -> List[Conflict]:
        conflicts = []
        for i, first in enumerate(decisions):
            for second in decisions[i + 1:]:
                contradiction = DECISION_CONTRADICTIONS.get(frozenset((first["type"], second["type"])))
                if contradiction is None:
                    continue
                severity, reason, resolution = contradiction
                conflicts.append(self._conflict(
                    ConflictType.DECISION,
                    "CONTRADICTORY_DECISIONS",
                    severity,
                    f"Conflicting decisions: {first['type']} vs {second['type']}",
                    {"decisions": [first["id"], second["id"]], "types": [first["type"], second["type"]], "reason": reason},
                    resolution,
                ))
        return conflicts

    def detect_optimization_conflicts(self, optimizations: List[Dict[str, Any]]) -> List[Conflict]:
        conflicts = []
        for parameter, changes in self._group_parameter_changes(optimizations).items():
            if len(changes) < 2:
                continue
            increases = [c for c in changes if c["action"] == AdjustmentAction.INCREASE.value]
            decreases = [c for c in changes if c["action"] == AdjustmentAction.DECREASE.value]
            total_change = sum(c["amount"] for c in changes)
            evidence = {
                "parameter": parameter,
                "optimizations": [c["optimization"] for c in changes],
                "changes": [{"action": c["action"], "amount": c["amount"]} for c in changes],
                "total_change": total_change,
            }
            if increases and decreases:
                conflicts.append(self._conflict(
                    ConflictType.OPTIMIZATION, "PARAMETER_CONTRADICTION", Severity.HIGH,
                    f"Conflicting optimizations for parameter: {parameter}",
                    evidence,
                    "Prioritize based on severity and expected impact",
                ))
            elif total_change > self.settings["cumulative_change_limit"]:
                conflicts.append(self._conflict(
                    ConflictType.OPTIMIZATION, "EXCESSIVE_CUMULATIVE_CHANGE", Severity.MEDIUM,
                    f"Excessive cumulative change on {parameter}: {total_change * 100:.1f}%",
                    evidence,
                    "Consolidate changes or apply incrementally",
                ))
        return conflicts

    def detect_temporal_conflicts(self, decisions: List[Dict[str, Any]],
                                  optimizations: List[Dict[str, Any]]) -> List[Conflict]:
        # Every window opens now, so two windows overlap for the shorter of their durations
        events = [{"kind": "decision", "id": d["id"], "type": d["type"], "duration_ms": d["time_to_effect_ms"]}
                  for d in decisions]
        events += [{"kind": "optimization", "id": o["id"], "type": None, "duration_ms": self.settings["optimization_window_ms"]}
                   for o in optimizations]

        conflicts = []
        for i, first in enumerate(events):
            for second in events[i + 1:]:
                overlap = min(first["duration_ms"], second["duration_ms"])
                if overlap <= 0:
                    continue
                kinds = {first["kind"], second["kind"]}
                if kinds == {"decision"}:
                    if DecisionType.SYSTEM_MAINTENANCE.value in (first["type"], second["type"]):
                        severity = Severity.HIGH
                        reason = "System maintenance should not overlap with other operations"
                        resolution = "Schedule maintenance during low-activity periods"
                    else:
                        severity = Severity.LOW
                        reason = "Concurrent decisions take effect in the same window"
                        resolution = "Stagger decision execution"
                elif kinds == {"decision", "optimization"}:
                    severity = Severity.MEDIUM
                    reason = "Optimization during decision execution may cause instability"
                    resolution = "Complete optimization before executing decisions"
                else:
                    continue
                conflicts.append(self._conflict(
                    ConflictType.TEMPORAL, "OVERLAPPING_OPERATIONS", severity,
                    f"Temporal overlap between {first['kind']} and {second['kind']}",
                    {"events": [first["id"], second["id"]], "overlap_ms": overlap, "reason": reason},
                    resolution,
                ))
        return conflicts

    def detect_logical_conflicts(self, state: Mapping[str, Any], decisions: List[Dict[str, Any]]) -> List[Conflict]:
        conflicts = []
        types = {d["type"] for d in decisions}
        response_time = _state_value(state, "performance", "avg_response_time")
        cpu_usage = _state_value(state, "cpu", "usage")
        memory_pct = _state_value(state, "memory", "percentage")

        stable_system = (response_time is not None and cpu_usage is not None
                         and response_time < self.settings["stable_response_time_ms"]
                         and cpu_usage < self.settings["stable_cpu_usage"])
        if stable_system and DecisionType.PERFORMANCE_OPTIMIZATION.value in types:
            conflicts.append(self._conflict(
                ConflictType.LOGICAL, "UNNECESSARY_OPTIMIZATION", Severity.LOW,
                "Performance optimization scheduled for stable system",
                {"entities": ["system_state", "performance_optimization"], "response_time": response_time, "cpu_usage": cpu_usage},
                "Cancel or defer optimization until performance degrades",
            ))

        low_usage = ((cpu_usage or 0.0) < self.settings["scaling_cpu_usage"]
                     and (memory_pct or 0.0) < self.settings["scaling_memory_percentage"])
        if low_usage and DecisionType.RESOURCE_SCALING.value in types:
            conflicts.append(self._conflict(
                ConflictType.LOGICAL, "PREMATURE_SCALING", Severity.MEDIUM,
                "Resource scaling scheduled despite low current usage",
                {"entities": ["resource_usage", "scaling_decision"], "cpu_usage": cpu_usage or 0.0, "memory_percentage": memory_pct or 0.0},
                "Monitor usage trends before scaling",
            ))
        return conflicts

    # --- Aggregation ---

    @staticmethod
    def risk_level(conflicts: List[Conflict], load_adjustment: int) -> ConflictRiskLevel:
        if not conflicts:
            return ConflictRiskLevel.MINIMAL
        if any(c.severity == Severity.HIGH for c in conflicts):
            return ConflictRiskLevel.CRITICAL
        medium = sum(1 for c in conflicts if c.severity == Severity.MEDIUM)
        if medium > max(1, 2 - load_adjustment):
            return ConflictRiskLevel.ELEVATED
        return ConflictRiskLevel.MODERATE

    @staticmethod
    def resolution_strategies(conflicts: List[Conflict]) -> List[ResolutionStrategy]:
        strategies = []
        for conflict_type in ConflictType:
            if not any(c.type == conflict_type for c in conflicts):
                continue
            name, priority, impact, estimated_ms, actions = STRATEGY_TEMPLATES[conflict_type]
            strategies.append(ResolutionStrategy(name, conflict_type, priority, list(actions), impact, estimated_ms))
        return sorted(strategies, key=lambda s: s.priority.rank)

    def analyze(self, state: Union[SystemSnapshot, Mapping[str, Any], None],
                decisions: Optional[Sequence[Any]] = None,
                optimizations: Optional[Sequence[Any]] = None) -> ConflictAnalysis:
        start_time = time.time()
        state_map = self.normalize_state(state)
        pending_decisions = self.normalize_decisions(decisions)
        pending_optimizations = self.normalize_optimizations(optimizations)

        conflicts: List[Conflict] = []
        conflicts += self.detect_resource_conflicts(state_map, pending_decisions)
        conflicts += self.detect_decision_conflicts(pending_decisions)
        conflicts += self.detect_optimization_conflicts(pending_optimizations)
        conflicts += self.detect_temporal_conflicts(pending_decisions, pending_optimizations)
        conflicts += self.detect_logical_conflicts(state_map, pending_decisions)

        load = SystemSnapshot.from_metrics(state_map).cpu.load
        risk = self.risk_level(conflicts, int(clamp(load) * 2))
        stability = self.assess_stability(state_map)
        strategies = self.resolution_strategies(conflicts)

        confidence = 0.6 + stability.overall * 0.2
        if not conflicts or strategies:
            confidence += 0.1

        return ConflictAnalysis(
            conflicts=conflicts,
            risk_level=risk,
            stability=stability,
            matrix=self.build_conflict_matrix(pending_decisions, pending_optimizations),
            strategies=strategies,
            confidence=min(0.95, confidence),
            processing_time=time.time() - start_time,
        )


class ConflictResolver:
    """
    Executes resolution strategies with a bounded number running at once.

    Each strategy handles the conflicts of its type one at a time through a
    registered handler. A handler exception marks only that conflict as failed.
    """

    def __init__(self, max_concurrent_resolutions: int = DEFAULT_MAX_CONCURRENT_RESOLUTIONS,
                 handler_delay_s: float = DEFAULT_HANDLER_DELAY_S,
                 history_size: int = DEFAULT_RESOLUTION_HISTORY_SIZE,
                 strict_mode: bool = False,
                 observer_hub: Optional[ObserverHub] = None):
        self.max_concurrent_resolutions = max_concurrent_resolutions
        self.handler_delay_s = handler_delay_s
        self.strict_mode = strict_mode
        self.observer_hub = observer_hub
        self.resolution_history: RingBuffer[Dict[str, Any]] = RingBuffer(history_size)
        self.is_resolving = False
        self.active_resolutions = 0
        self.peak_active_resolutions = 0
        self._semaphore = asyncio.Semaphore(max_concurrent_resolutions)
        self.handlers: Dict[ConflictType, ConflictHandler] = {
            ConflictType.RESOURCE: self.resolve_resource_conflict,
            ConflictType.DECISION: self.arbitrate_decision_conflict,
            ConflictType.OPTIMIZATION: self.coordinate_optimization_conflict,
            ConflictType.TEMPORAL: self.reschedule_temporal_conflict,
            ConflictType.LOGICAL: self.repair_logical_conflict,
        }

    def register_handler(self, conflict_type: ConflictType, handler: ConflictHandler) -> None:
        self.handlers[conflict_type] = handler

    # --- Handlers ---

    @staticmethod
    def resolve_resource_conflict(conflict: Conflict, context: Mapping[str, Any]) -> Dict[str, Any]:
        projected = conflict.evidence.get("total_projected", 0.0)
        action, reduction, throttle = QUEUE_TIER
        for cut, tier_action, tier_reduction, tier_throttle in THROTTLE_TIERS:
            if projected > cut:
                action, reduction, throttle = tier_action, tier_reduction, tier_throttle
                break
        resource = conflict.evidence.get("resource", conflict.subtype.lower().replace("_overutilization", ""))
        return {
            "action": {"action": action, "resource": conflict.subtype, "expected_reduction": reduction},
            "system_changes": {f"{resource}_throttle": throttle},
        }

    @staticmethod
    def arbitrate_decision_conflict(conflict: Conflict, context: Mapping[str, Any]) -> Dict[str, Any]:
        decisions = list(conflict.evidence.get("decisions", []))
        primary, deferred = (decisions[0], decisions[1:]) if decisions else (None, [])
        return {
            "action": {
                "action": "DECISION_PRIORITIZATION",
                "primary_decision": primary,
                "deferred_decisions": deferred,
                "reason": "First pending decision kept, later ones deferred",
            },
            "system_changes": {"decision_queue": {"active": primary, "queued": deferred}},
        }

    @staticmethod
    def coordinate_optimization_conflict(conflict: Conflict, context: Mapping[str, Any]) -> Dict[str, Any]:
        changes = conflict.evidence.get("changes", [])
        signed = [c["amount"] if c["action"] == AdjustmentAction.INCREASE.value else -c["amount"] for c in changes]
        average = sum(signed) / len(signed) if signed else 0.0
        if average > 0:
            direction = AdjustmentAction.INCREASE.value
        elif average < 0:
            direction = AdjustmentAction.DECREASE.value
        else:
            direction = "hold"
        parameter = conflict.evidence.get("parameter")
        coordinated = {"action": direction, "amount": abs(average)}
        return {
            "action": {
                "action": "PARAMETER_COORDINATION",
                "parameter": parameter,
                "coordinated_change": coordinated,
                "strategy": "AVERAGE_CONFLICTING_CHANGES",
            },
            "system_changes": {parameter: coordinated},
        }

    @staticmethod
    def reschedule_temporal_conflict(conflict: Conflict, context: Mapping[str, Any]) -> Dict[str, Any]:
        events = conflict.evidence.get("events", [])
        schedule = {event: offset for event, offset in zip(events, RESCHEDULE_OFFSETS_MS)}
        return {
            "action": {"action": "TEMPORAL_RESCHEDULING", "events": list(events), "start_offsets_ms": schedule},
            "system_changes": {f"reschedule_{event}": offset for event, offset in schedule.items()},
        }

    @staticmethod
    def repair_logical_conflict(conflict: Conflict, context: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "action": {
                "action": "LOGICAL_REPAIR",
                "conflict_type": conflict.subtype,
                "repair_strategy": "CANCEL_INCONSISTENT_OPERATION",
            },
            "system_changes": {f"cancelled_{conflict.subtype.lower()}": True},
        }

    # --- Execution ---

    async def _execute_strategy(self, strategy: ResolutionStrategy, conflicts: List[Conflict],
                                context: Mapping[str, Any], outcome: Dict[str, Any]) -> None:
        async with self._semaphore:
            self.active_resolutions += 1
            self.peak_active_resolutions = max(self.peak_active_resolutions, self.active_resolutions)
            try:
                handler = self.handlers[strategy.conflict_type]
                for conflict in (c for c in conflicts if c.type == strategy.conflict_type):
                    await asyncio.sleep(self.handler_delay_s)
                    try:
                        result = handler(conflict, context)
                    except Exception as e:
                        failure = ResolutionFailure(f"{strategy.type} failed for {conflict.id}: {e}", conflict.id)
                        logger_conflict_detection.error(str(failure))
                        outcome["failed_resolutions"].append({
                            "strategy": strategy.type, "conflict_id": conflict.id, "reason": str(failure),
                        })
                        if self.strict_mode:
                            raise failure from e
                        continue
                    outcome["resolved_conflicts"].append(conflict.id)
                    outcome["applied_actions"].append(dict(result.get("action", {}), conflict_id=conflict.id))
                    outcome["system_changes"].update(result.get("system_changes", {}))
            finally:
                self.active_resolutions -= 1

    async def resolve_conflicts(self, analysis: ConflictAnalysis,
                                context: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        if self.is_resolving:
            logger_conflict_detection.info("Conflict resolution rejected: another resolution is in progress.")
            return {"status": DetectionStatus.RESOLUTION_IN_PROGRESS.value, "timestamp": time.time()}

        self.is_resolving = True
        start_time = time.time()
        outcome: Dict[str, Any] = {
            "resolved_conflicts": [], "failed_resolutions": [], "applied_actions": [], "system_changes": {},
        }
        try:
            # Every strategy runs to completion; a strict-mode failure is raised afterwards
            results = await asyncio.gather(*(
                self._execute_strategy(strategy, analysis.conflicts, context or {}, outcome)
                for strategy in analysis.strategies
            ), return_exceptions=True)
        finally:
            self.is_resolving = False
        errors = [r for r in results if isinstance(r, BaseException)]

        resolved = len(outcome["resolved_conflicts"])
        failed = len(outcome["failed_resolutions"])
        success_rate = resolved / (resolved + failed) if resolved + failed else 0.0
        total_time = time.time() - start_time
        status = ResolutionStatus.FAILED if failed and not resolved else ResolutionStatus.RESOLVED
        self.resolution_history.append({
            "timestamp": time.time(),
            "conflict_count": analysis.conflict_count,
            "resolved_count": resolved,
            "failed_count": failed,
            "total_time": total_time,
            "success_rate": success_rate,
        })
        if errors:
            raise errors[0]
        result = {
            "status": status.value,
            "resolution": outcome,
            "success_rate": success_rate,
            "processing_time": total_time,
            "timestamp": time.time(),
        }
        if self.observer_hub is not None:
            await self.observer_hub.notify(EVENT_CONFLICT_RESOLVED, {
                "resolved": resolved, "failed": failed, "success_rate": success_rate,
            })
        return result


class ConflictDetectionEngine(AdaptiveComponent):
    """Detects conflicts among pending interventions and resolves them when auto resolution is on."""

    def __init__(self, observer_hub: Optional[ObserverHub] = None,
                 id_generator: Optional[IdGenerator] = None):
        self.observer_hub = observer_hub
        self.id_generator = id_generator or IdGenerator()
        self.analyzer = SystemConflictAnalyzer(id_generator=self.id_generator)
        self.resolver = ConflictResolver(observer_hub=observer_hub)
        self.auto_resolve: bool = True
        self.strict_mode: bool = False
        self._controller: Optional[Any] = None
        self._reset_stats()

    def _reset_stats(self) -> None:
        self.stats: Dict[str, Any] = {
            "total_detections": 0,
            "total_conflicts": 0,
            "total_resolutions": 0,
            "avg_resolution_time": 0.0,
            "success_rate": 0.0,
        }

    async def initialize(self, config: Dict[str, Any], controller: Any) -> bool:
        self._controller = controller
        cd_config = config.get("conflict_detection", {})

        settings: Dict[str, float] = {}
        for key, default in DEFAULT_ANALYZER_SETTINGS.items():
            value = cd_config.get(key, default)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                logger_conflict_detection.warning(f"Invalid {key} ({value}). Using default {default}.")
                value = default
            settings[key] = float(value)
        if settings["resource_high_cut"] < settings["resource_threshold"]:
            logger_conflict_detection.warning(
                f"resource_high_cut ({settings['resource_high_cut']}) below resource_threshold "
                f"({settings['resource_threshold']}). Using defaults for both."
            )
            settings["resource_threshold"] = DEFAULT_ANALYZER_SETTINGS["resource_threshold"]
            settings["resource_high_cut"] = DEFAULT_ANALYZER_SETTINGS["resource_high_cut"]

        seed = cd_config.get("id_seed")
        if isinstance(seed, int):
            self.id_generator.reseed(seed)
        self.analyzer = SystemConflictAnalyzer(settings, self.id_generator)

        max_concurrent = cd_config.get("max_concurrent_resolutions", DEFAULT_MAX_CONCURRENT_RESOLUTIONS)
        if not isinstance(max_concurrent, int) or max_concurrent <= 0:
            logger_conflict_detection.warning(f"Invalid max_concurrent_resolutions ({max_concurrent}). Using default {DEFAULT_MAX_CONCURRENT_RESOLUTIONS}.")
            max_concurrent = DEFAULT_MAX_CONCURRENT_RESOLUTIONS
        history_size = cd_config.get("history_size", DEFAULT_RESOLUTION_HISTORY_SIZE)
        if not isinstance(history_size, int) or history_size <= 0:
            logger_conflict_detection.warning(f"Invalid history_size ({history_size}). Using default {DEFAULT_RESOLUTION_HISTORY_SIZE}.")
            history_size = DEFAULT_RESOLUTION_HISTORY_SIZE
        delay = cd_config.get("handler_delay_s", DEFAULT_HANDLER_DELAY_S)
        if isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0:
            logger_conflict_detection.warning(f"Invalid handler_delay_s ({delay}). Using default {DEFAULT_HANDLER_DELAY_S}.")
            delay = DEFAULT_HANDLER_DELAY_S

        self.auto_resolve = bool(cd_config.get("auto_resolve", True))
        self.strict_mode = bool(cd_config.get("strict_mode", False))
        self.resolver = ConflictResolver(max_concurrent, float(delay), history_size, self.strict_mode, self.observer_hub)

        logger_conflict_detection.info(
            f"ConflictDetectionEngine initialized. Resource threshold: {settings['resource_threshold']}, "
            f"max concurrent resolutions: {max_concurrent}, auto resolve: {self.auto_resolve}."
        )
        return True

    async def detect_and_resolve_conflicts(self, state: Union[SystemSnapshot, Mapping[str, Any], None],
                                           decisions: Optional[Sequence[Any]] = None,
                                           optimizations: Optional[Sequence[Any]] = None,
                                           options: Optional[Mapping[str, Any]] = None) -> ConflictReport:
        """
        Detects conflicts among pending decisions and optimizations, then resolves
        them when ``auto_resolve`` is on (``options`` may override it per call).
        """
        options = options or {}
        start_time = time.time()
        try:
            analysis = self.analyzer.analyze(state, decisions, optimizations)
            self.stats["total_detections"] += 1
            self.stats["total_conflicts"] += analysis.conflict_count
            logger_conflict_detection.debug(
                f"Detected {analysis.conflict_count} conflicts: "
                f"{[(c.type.value, c.subtype, c.severity.value) for c in analysis.conflicts]}"
            )

            status = DetectionStatus.COMPLETED
            resolution = None
            if analysis.conflicts and options.get("auto_resolve", self.auto_resolve):
                resolution = await self.resolver.resolve_conflicts(analysis, {
                    "state": state, "decisions": decisions, "optimizations": optimizations,
                })
                if resolution["status"] == DetectionStatus.RESOLUTION_IN_PROGRESS.value:
                    status = DetectionStatus.RESOLUTION_IN_PROGRESS
                elif resolution["status"] == ResolutionStatus.RESOLVED.value:
                    self._update_resolution_stats(resolution)

            resolved_count = len(resolution["resolution"]["resolved_conflicts"]) if resolution and "resolution" in resolution else 0
            report = ConflictReport(
                status=status,
                detection=analysis,
                resolution=resolution,
                summary={
                    "conflicts_detected": analysis.conflict_count,
                    "conflicts_resolved": resolved_count,
                    "risk_level": analysis.risk_level.value,
                    "system_stability": analysis.stability.level.value,
                },
                processing_time=time.time() - start_time,
                confidence=analysis.confidence,
            )
        except Exception as e:
            if self.strict_mode:
                raise
            logger_conflict_detection.exception(f"Conflict detection and resolution failed: {e}")
            return ConflictReport(
                status=DetectionStatus.FAILED,
                detection=None,
                resolution=None,
                summary={"conflicts_detected": 0, "conflicts_resolved": 0, "risk_level": None, "system_stability": None},
                processing_time=time.time() - start_time,
                confidence=FAILED_DETECTION_CONFIDENCE,
                error=str(e),
            )

        logger_conflict_detection.info(
            f"Conflict detection completed - {report.summary['conflicts_detected']} detected, "
            f"{report.summary['conflicts_resolved']} resolved, risk {report.summary['risk_level']}"
        )
        if self.observer_hub is not None:
            await self.observer_hub.notify(EVENT_CONFLICT_DETECTION_COMPLETED, {
                "status": report.status.value, "summary": dict(report.summary),
            })
        return report

    def _update_resolution_stats(self, resolution: Dict[str, Any]) -> None:
        self.stats["total_resolutions"] += 1
        count = self.stats["total_resolutions"]
        self.stats["avg_resolution_time"] = ema(self.stats["avg_resolution_time"], resolution["processing_time"], STATS_EMA_ALPHA, count)
        self.stats["success_rate"] += (resolution["success_rate"] - self.stats["success_rate"]) / count

    def get_metrics(self) -> Dict[str, Any]:
        detections = self.stats["total_detections"]
        return {
            "status": "measured",
            "total_detections": detections,
            "total_conflicts": self.stats["total_conflicts"],
            "total_resolutions": self.stats["total_resolutions"],
            "avg_conflicts_per_detection": self.stats["total_conflicts"] / detections if detections else 0.0,
            "avg_resolution_time": self.stats["avg_resolution_time"],
            "resolution_success_rate": self.stats["success_rate"],
            "auto_resolution_enabled": self.auto_resolve,
            "resolution_history_size": len(self.resolver.resolution_history),
            "confidence": min(0.9, detections * 0.02),
        }

    async def process(self, input_state: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        input_state = input_state or {}
        if "system_state" not in input_state:
            return None
        report = await self.detect_and_resolve_conflicts(
            input_state["system_state"],
            input_state.get("pending_decisions"),
            input_state.get("pending_optimizations"),
        )
        return {"conflict_report": report}

    async def reset(self) -> None:
        self.resolver.resolution_history.clear()
        self._reset_stats()
        logger_conflict_detection.info("ConflictDetectionEngine reset.")

    async def get_status(self) -> Dict[str, Any]:
        return {
            "component": "ConflictDetectionEngine",
            "status": "resolving" if self.resolver.is_resolving else "operational",
            "total_detections": self.stats["total_detections"],
            "active_resolutions": self.resolver.active_resolutions,
            "max_concurrent_resolutions": self.resolver.max_concurrent_resolutions,
            "auto_resolve": self.auto_resolve,
            "strict_mode": self.strict_mode,
        }

    async def shutdown(self) -> None:
        logger_conflict_detection.info("ConflictDetectionEngine shutting down.")

# --- END OF conflict_detection.py ---
