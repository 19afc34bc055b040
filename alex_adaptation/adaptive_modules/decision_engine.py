# --- START OF decision_engine.py

import logging
import time
from typing import Dict, Any, List, Optional, Mapping, Tuple, Union

from ..protocols import AdaptiveComponent
from ..models.enums import DecisionType, DecisionStatus, MetricTrend, RiskLevel, AnalysisStatus
from ..models.datatypes import (
    Decision, DecisionContext, DecisionOption, PerformanceReport, RiskProfile, SystemSnapshot,
)
from ..models.exceptions import AnalysisFailure, ValidationFailure
from ..adaptive_helpers.ring_buffer import RingBuffer
from ..adaptive_helpers.id_generator import IdGenerator
from ..adaptive_helpers.observer_hub import ObserverHub, EVENT_DECISION_MADE
from ..utils.scoring import clamp, ema, mean
from .performance_analyzer import compute_overall_score

logger_decision_engine = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 1000
DEFAULT_CONTEXT_HISTORY_WINDOW = 20
DEFAULT_CONFIDENCE_THRESHOLD = 0.7
DEFAULT_RISK_TOLERANCE = 0.5
DEFAULT_SCORE_NOISE = 0.0
STATS_EMA_ALPHA = 0.1

# Context analysis thresholds, overridable under [decision_engine.context]
DEFAULT_CONTEXT_SETTINGS: Dict[str, float] = {
    "urgency_threshold": 0.7,
    "low_performance_threshold": 0.7,
    "high_utilization_threshold": 0.8,
    "improve_utilization_threshold": 0.7,
    "performance_threshold": 0.7,
    "high_risk_threshold": 0.7,
    "medium_risk_threshold": 0.4,
    "success_threshold": 0.7,
    "history_confidence_max": 0.9,
    "history_multiplier": 0.05,
    "max_confidence": 0.95,
    "trend_change": 0.05,
    "response_time_scale_ms": 5000.0,
}

# Option archetypes: priority, risk (None = taken from the matching sub-risk), effort, expected impact
OPTION_ARCHETYPES: Dict[DecisionType, Tuple[float, Optional[float], float, float]] = {
    DecisionType.PERFORMANCE_OPTIMIZATION: (0.8, None, 0.6, 0.7),
    DecisionType.RESOURCE_SCALING: (0.7, None, 0.4, 0.6),
    DecisionType.CONFIGURATION_ADAPTATION: (0.6, 0.3, 0.3, 0.5),
    DecisionType.SYSTEM_MAINTENANCE: (0.9, 0.2, 0.5, 0.8),
    DecisionType.LEARNING_ADJUSTMENT: (0.5, 0.2, 0.4, 0.6),
}

OPTION_DESCRIPTIONS: Dict[DecisionType, str] = {
    DecisionType.PERFORMANCE_OPTIMIZATION: "Optimize hot paths and request handling",
    DecisionType.RESOURCE_SCALING: "Scale resources to relieve capacity pressure",
    DecisionType.CONFIGURATION_ADAPTATION: "Adapt configuration to counter declining quality",
    DecisionType.SYSTEM_MAINTENANCE: "Run maintenance to restore stability after crashes",
    DecisionType.LEARNING_ADJUSTMENT: "Adjust learning parameters to raise output quality",
    DecisionType.MONITORING_ONLY: "No intervention; keep monitoring",
}

# Expected outcome per decision type: time to effect (ms), success probability,
# performance improvement factor (times expected impact), risk reduction, side effects
OUTCOME_PROFILES: Dict[DecisionType, Dict[str, Any]] = {
    DecisionType.PERFORMANCE_OPTIMIZATION: {"time_to_effect_ms": 5000, "success_probability": 0.8, "improvement_factor": 0.8, "risk_reduction": 0.0, "side_effects": []},
    DecisionType.RESOURCE_SCALING: {"time_to_effect_ms": 10000, "success_probability": 0.9, "improvement_factor": 0.6, "risk_reduction": 0.0, "side_effects": ["increased_resource_usage"]},
    DecisionType.SYSTEM_MAINTENANCE: {"time_to_effect_ms": 30000, "success_probability": 0.95, "improvement_factor": 0.0, "risk_reduction": 0.7, "side_effects": ["temporary_service_disruption"]},
    DecisionType.CONFIGURATION_ADAPTATION: {"time_to_effect_ms": 2000, "success_probability": 0.7, "improvement_factor": 0.5, "risk_reduction": 0.0, "side_effects": []},
    DecisionType.LEARNING_ADJUSTMENT: {"time_to_effect_ms": 60000, "success_probability": 0.6, "improvement_factor": 0.4, "risk_reduction": 0.0, "side_effects": []},
}
DEFAULT_OUTCOME_PROFILE: Dict[str, Any] = {"time_to_effect_ms": 1000, "success_probability": 0.5, "improvement_factor": 0.0, "risk_reduction": 0.0, "side_effects": []}

FALLBACK_CONFIDENCE = 0.1
NO_OPTION_REASONING_CONFIDENCE = 0.2


def expected_time_to_effect_ms(decision_type: DecisionType) -> int:
    return OUTCOME_PROFILES.get(decision_type, DEFAULT_OUTCOME_PROFILE)["time_to_effect_ms"]


class DecisionContextAnalyzer:
    """
    Derives the decision context for one cycle: health, performance, urgency,
    complexity, risk and the candidate options.

    ``state`` is an optional mapping of caller-known facts that the metrics do not
    carry: ``current_load``/``max_capacity`` (or ``resource_utilization``),
    ``crash_count``, ``dependencies``, ``impacts_other_systems`` and metric
    histories (``response_time_history``, ``quality_history``, ``success_history``).
    """

    def __init__(self, settings: Optional[Mapping[str, float]] = None):
        self.settings: Dict[str, float] = DEFAULT_CONTEXT_SETTINGS.copy()
        if settings:
            self.settings.update(settings)

    def analyze(self, report: PerformanceReport, state: Mapping[str, Any],
                history: List[Decision]) -> DecisionContext:
        s = self.settings
        snapshot = report.current

        utilization = self._utilization(snapshot, state)
        crash_count = int(state.get("crash_count", snapshot.errors.crash_count) or 0)
        health = self._health_score(snapshot, utilization, crash_count)

        perf_score = (
            clamp(1.0 - snapshot.performance.avg_response_time / s["response_time_scale_ms"]) * 0.3
            + snapshot.throughput.success_rate * 0.4
            + snapshot.quality.avg_score * 0.3
        )
        trends = {
            "response_time": self.metric_trend(state.get("response_time_history"), lower_is_better=True),
            "quality": self.metric_trend(state.get("quality_history")),
            "success": self.metric_trend(state.get("success_history")),
        }

        urgency = self._urgency(health, snapshot)
        complexity = self._complexity(state)
        historical = self._historical_patterns(history)

        risk = self._assess_risks(perf_score, trends, health, crash_count, urgency, utilization, snapshot)
        options = self._identify_options(perf_score, utilization, trends, crash_count, snapshot, risk)

        priority = 0.3 + urgency * 0.4
        if perf_score < 0.5: priority += 0.2
        if risk.overall > 0.6: priority += 0.3
        if historical["confidence"] > 0.5: priority += 0.1

        data_factors = [True, True, historical["confidence"] > 0.3, bool(options)]
        data_availability = sum(data_factors) / len(data_factors)
        confidence = min(s["max_confidence"], 0.5 + data_availability * 0.3 + historical["confidence"] * 0.2)

        return DecisionContext(
            snapshot=snapshot,
            health_score=health,
            performance_score=perf_score,
            urgency=urgency,
            complexity=complexity,
            risk=risk,
            available_options=options,
            priority=min(1.0, priority),
            trends=trends,
            historical=historical,
            confidence=confidence,
        )

    @staticmethod
    def _utilization(snapshot: SystemSnapshot, state: Mapping[str, Any]) -> float:
        if "resource_utilization" in state:
            return clamp(float(state["resource_utilization"]))
        if "current_load" in state:
            max_capacity = float(state.get("max_capacity", 100) or 100)
            return clamp(float(state["current_load"]) / max_capacity)
        return clamp(snapshot.memory.percentage / 100.0)

    @staticmethod
    def _health_score(snapshot: SystemSnapshot, utilization: float, crash_count: int) -> float:
        cpu_score = max(0.0, 1.0 - snapshot.cpu.usage / 100.0)
        capacity_score = max(0.0, 1.0 - utilization)
        stability_score = 1.0 if crash_count == 0 else max(0.0, 1.0 - crash_count / 10.0)
        return cpu_score * 0.4 + capacity_score * 0.35 + stability_score * 0.25

    def metric_trend(self, values: Optional[List[float]], lower_is_better: bool = False) -> MetricTrend:
        """Compares the mean of the last 3 samples with the mean of up to 3 before them."""
        if not values or len(values) < 4:
            return MetricTrend.STABLE
        recent_avg = mean(values[-3:])
        older_avg = mean(values[-6:-3])
        if not older_avg:
            return MetricTrend.STABLE
        change = (recent_avg - older_avg) / abs(older_avg)
        if lower_is_better:
            change = -change
        if change > self.settings["trend_change"]:
            return MetricTrend.IMPROVING
        if change < -self.settings["trend_change"]:
            return MetricTrend.DECLINING
        return MetricTrend.STABLE

    def _urgency(self, health: float, snapshot: SystemSnapshot) -> float:
        urgency = 0.0
        if health < 0.3: urgency += 0.4
        elif health < 0.6: urgency += 0.2

        success = snapshot.throughput.success_rate
        if success < 0.5: urgency += 0.3
        elif success < self.settings["low_performance_threshold"]: urgency += 0.15

        error_rate = snapshot.throughput.error_rate
        if error_rate > 0.1: urgency += 0.2
        elif error_rate > 0.05: urgency += 0.1

        resp = snapshot.performance.avg_response_time
        if resp > 10000: urgency += 0.2
        elif resp > 5000: urgency += 0.1
        return min(1.0, urgency)

    @staticmethod
    def _complexity(state: Mapping[str, Any]) -> float:
        complexity = 0.3 + min(0.3, len(state) * 0.02)
        dependencies = state.get("dependencies") or []
        if dependencies:
            complexity += min(0.2, len(dependencies) * 0.05)
        if state.get("impacts_other_systems"):
            complexity += 0.2
        return min(1.0, complexity)

    def _historical_patterns(self, history: List[Decision]) -> Dict[str, Any]:
        s = self.settings
        if not history:
            return {"decision_types": {}, "success_rates": {}, "successful_types": [], "confidence": 0.0}

        counts: Dict[str, int] = {}
        successes: Dict[str, int] = {}
        for decision in history:
            key = decision.type.value
            counts[key] = counts.get(key, 0) + 1
            if decision.outcome and decision.outcome.get("success"):
                successes[key] = successes.get(key, 0) + 1
        rates = {key: successes.get(key, 0) / count for key, count in counts.items()}
        successful = sorted((k for k, r in rates.items() if r > s["success_threshold"]),
                            key=lambda k: -rates[k])[:5]
        return {
            "decision_types": counts,
            "success_rates": rates,
            "successful_types": successful,
            "confidence": min(s["history_confidence_max"], len(history) * s["history_multiplier"]),
        }

    def _assess_risks(self, perf_score: float, trends: Dict[str, MetricTrend], health: float,
                      crash_count: int, urgency: float, utilization: float,
                      snapshot: SystemSnapshot) -> RiskProfile:
        s = self.settings

        performance = 0.0
        if perf_score < 0.5: performance += 0.4
        if trends["response_time"] == MetricTrend.DECLINING: performance += 0.3
        if trends["quality"] == MetricTrend.DECLINING: performance += 0.3

        stability = 0.0
        if crash_count > 0: stability += 0.3
        if health < 0.6: stability += 0.4
        if urgency > s["urgency_threshold"]: stability += 0.3

        resource = 0.0
        if utilization > s["high_utilization_threshold"]: resource += 0.4
        if snapshot.cpu.usage > 80: resource += 0.3
        if snapshot.memory.percentage > 80: resource += 0.3

        business = 0.0
        if snapshot.throughput.success_rate < s["low_performance_threshold"]: business += 0.5
        if snapshot.quality.avg_score < 0.6: business += 0.3
        if urgency > 0.5: business += 0.2

        performance, stability = min(1.0, performance), min(1.0, stability)
        resource, business = min(1.0, resource), min(1.0, business)
        overall = performance * 0.3 + stability * 0.3 + resource * 0.2 + business * 0.2
        if overall > s["high_risk_threshold"]:
            level = RiskLevel.HIGH
        elif overall > s["medium_risk_threshold"]:
            level = RiskLevel.MEDIUM
        else:
            level = RiskLevel.LOW
        return RiskProfile(performance, stability, resource, business, overall, level)

    def _identify_options(self, perf_score: float, utilization: float, trends: Dict[str, MetricTrend],
                          crash_count: int, snapshot: SystemSnapshot, risk: RiskProfile) -> List[DecisionOption]:
        s = self.settings
        triggered: List[Tuple[DecisionType, Optional[float]]] = []
        if perf_score < s["performance_threshold"]:
            triggered.append((DecisionType.PERFORMANCE_OPTIMIZATION, risk.performance))
        if utilization > s["improve_utilization_threshold"]:
            triggered.append((DecisionType.RESOURCE_SCALING, risk.resource))
        if trends["quality"] == MetricTrend.DECLINING:
            triggered.append((DecisionType.CONFIGURATION_ADAPTATION, None))
        if crash_count > 0:
            triggered.append((DecisionType.SYSTEM_MAINTENANCE, None))
        if snapshot.quality.avg_score < 0.6:
            triggered.append((DecisionType.LEARNING_ADJUSTMENT, None))

        options = []
        for decision_type, derived_risk in triggered:
            priority, fixed_risk, effort, impact = OPTION_ARCHETYPES[decision_type]
            options.append(DecisionOption(
                type=decision_type,
                priority=priority,
                risk=fixed_risk if fixed_risk is not None else derived_risk,
                effort=effort,
                expected_impact=impact,
                description=OPTION_DESCRIPTIONS[decision_type],
            ))
        return options


class DecisionEngine(AdaptiveComponent):
    """Selects one intervention per cycle through context, reasoning and validation phases."""

    def __init__(self, observer_hub: Optional[ObserverHub] = None,
                 id_generator: Optional[IdGenerator] = None):
        self.observer_hub = observer_hub
        self.id_generator = id_generator or IdGenerator()
        self.context_analyzer = DecisionContextAnalyzer()
        self.confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
        self.risk_tolerance: float = DEFAULT_RISK_TOLERANCE
        self.context_history_window: int = DEFAULT_CONTEXT_HISTORY_WINDOW
        self.score_noise: float = DEFAULT_SCORE_NOISE
        self.strict_mode: bool = False
        self.decision_history: RingBuffer[Decision] = RingBuffer(DEFAULT_HISTORY_SIZE)
        self._controller: Optional[Any] = None
        self._reset_stats()

    def _reset_stats(self) -> None:
        self.stats: Dict[str, Any] = {
            "total_decisions": 0,
            "successful_decisions": 0,
            "fallback_decisions": 0,
            "avg_decision_time": 0.0,
            "avg_confidence": 0.0,
            "decision_types": {},
        }

    async def initialize(self, config: Dict[str, Any], controller: Any) -> bool:
        self._controller = controller
        engine_config = config.get("decision_engine", {})

        self.confidence_threshold = self._read_unit_float(engine_config, "confidence_threshold", DEFAULT_CONFIDENCE_THRESHOLD)
        self.risk_tolerance = self._read_unit_float(engine_config, "risk_tolerance", DEFAULT_RISK_TOLERANCE)
        self.score_noise = self._read_unit_float(engine_config, "score_noise", DEFAULT_SCORE_NOISE)

        history_size = engine_config.get("history_size", DEFAULT_HISTORY_SIZE)
        if not isinstance(history_size, int) or history_size <= 0:
            logger_decision_engine.warning(f"Invalid history_size ({history_size}). Using default {DEFAULT_HISTORY_SIZE}.")
            history_size = DEFAULT_HISTORY_SIZE
        self.decision_history = RingBuffer(history_size)

        window = engine_config.get("context_history_window", DEFAULT_CONTEXT_HISTORY_WINDOW)
        if not isinstance(window, int) or window <= 0:
            logger_decision_engine.warning(f"Invalid context_history_window ({window}). Using default {DEFAULT_CONTEXT_HISTORY_WINDOW}.")
            window = DEFAULT_CONTEXT_HISTORY_WINDOW
        self.context_history_window = window

        context_settings = engine_config.get("context", {})
        if not isinstance(context_settings, dict):
            logger_decision_engine.warning("[decision_engine.context] is not a table. Using defaults.")
            context_settings = {}
        unknown = set(context_settings) - set(DEFAULT_CONTEXT_SETTINGS)
        if unknown:
            logger_decision_engine.warning(f"Unknown decision context settings ignored: {sorted(unknown)}")
        self.context_analyzer = DecisionContextAnalyzer(
            {k: float(v) for k, v in context_settings.items() if k in DEFAULT_CONTEXT_SETTINGS}
        )

        seed = engine_config.get("id_seed")
        if isinstance(seed, int):
            self.id_generator.reseed(seed)

        self.strict_mode = bool(engine_config.get("strict_mode", False))
        logger_decision_engine.info(
            f"DecisionEngine initialized. Confidence threshold: {self.confidence_threshold}, "
            f"risk tolerance: {self.risk_tolerance}, history: {self.decision_history.capacity}, "
            f"strict mode: {self.strict_mode}."
        )
        return True

    @staticmethod
    def _read_unit_float(section: Dict[str, Any], key: str, default: float) -> float:
        value = section.get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
            logger_decision_engine.warning(f"Invalid {key} ({value}). Using default {default}.")
            return default
        return float(value)

    async def make_decision(self, report: Union[PerformanceReport, Mapping[str, Any]],
                            state: Optional[Mapping[str, Any]] = None,
                            constraints: Optional[Mapping[str, Any]] = None) -> Decision:
        """
        Runs context analysis, reasoning, validation and confidence scoring.

        ``report`` may be a PerformanceReport or a raw metrics mapping.
        ``constraints`` accepts ``max_effort``, ``max_risk`` and ``required_impact``.
        Always returns a Decision; on internal error a MONITORING_ONLY fallback
        unless strict mode is on.
        """
        start_time = time.time()
        try:
            report = self._coerce_report(report)
            if state is not None and not isinstance(state, Mapping):
                raise ValidationFailure(f"Decision state must be a mapping, got {type(state).__name__}")
            if constraints is not None and not isinstance(constraints, Mapping):
                raise ValidationFailure(f"Constraints must be a mapping, got {type(constraints).__name__}")
            state = state or {}
            constraints = constraints or {}

            # Phase 1: context
            try:
                context = self.context_analyzer.analyze(
                    report, state, self.decision_history.latest(self.context_history_window)
                )
            except (TypeError, ValueError, KeyError) as e:
                raise AnalysisFailure(f"Decision context analysis failed: {e}") from e

            # Phase 2: reasoning
            selected, alternatives, reasoning_confidence, logic = self._apply_reasoning(context, constraints)

            # Phase 3: validation
            selected, alternatives, validation_score, issues = self._validate(
                selected, alternatives, reasoning_confidence, constraints
            )
            if issues:
                logic.append(f"Validation issues: {'; '.join(issues)}")

            # Phase 4: confidence
            final_confidence = (
                context.confidence * 0.3 + reasoning_confidence * 0.4 + validation_score * 0.3
            )

            decision = Decision(
                id=self.id_generator.next_id("decision"),
                type=selected.type,
                priority=selected.priority,
                risk=selected.risk,
                effort=selected.effort,
                expected_impact=selected.expected_impact,
                reasoning=". ".join(logic),
                confidence=final_confidence,
                alternatives=alternatives,
                expected_outcome=self.predict_outcome(selected),
                status=DecisionStatus.DECIDED,
                processing_time=time.time() - start_time,
            )
            self.decision_history.append(decision)
            self._update_stats(decision)
            logger_decision_engine.info(
                f"Decision {decision.id}: {decision.type.value} (confidence {decision.confidence:.2f}, "
                f"urgency {context.urgency:.2f}, risk {context.risk.level.value})"
            )
        except Exception as e:
            if self.strict_mode:
                raise
            logger_decision_engine.exception(f"Decision making failed: {e}")
            decision = self._fallback_decision(e, time.time() - start_time)

        if self.observer_hub is not None:
            await self.observer_hub.notify(EVENT_DECISION_MADE, {
                "decision_id": decision.id,
                "type": decision.type.value,
                "status": decision.status.value,
                "confidence": decision.confidence,
            })
        return decision

    @staticmethod
    def _coerce_report(report: Any) -> PerformanceReport:
        if isinstance(report, PerformanceReport):
            if report.status != AnalysisStatus.ANALYZED:
                raise ValidationFailure(f"Performance report unusable: {report.error or report.status.value}")
            return report
        if isinstance(report, Mapping):
            snapshot = SystemSnapshot.from_metrics(report)
            return PerformanceReport(current=snapshot, overall_score=compute_overall_score(snapshot))
        raise ValidationFailure(f"Expected a PerformanceReport or metrics mapping, got {type(report).__name__}")

    def _build_factors(self, context: DecisionContext) -> Tuple[List[Dict[str, Any]], List[str]]:
        factors: List[Dict[str, Any]] = []
        logic: List[str] = []
        if context.urgency > self.context_analyzer.settings["urgency_threshold"]:
            factors.append({"factor": "high_urgency", "weight": 0.4, "value": context.urgency})
            logic.append("High urgency detected - prioritizing immediate corrective actions")
        if context.performance_score < 0.5:
            factors.append({"factor": "poor_performance", "weight": 0.3, "value": 1.0 - context.performance_score})
            logic.append("Performance below acceptable threshold - optimization required")
        if context.risk.overall > self.risk_tolerance:
            factors.append({"factor": "high_risk", "weight": 0.25, "value": context.risk.overall})
            logic.append(f"Risk level {context.risk.level.value} exceeds tolerance - mitigation needed")
        if context.historical["confidence"] > 0.5:
            factors.append({"factor": "historical_success", "weight": 0.15, "value": context.historical["confidence"]})
            logic.append("Historical patterns available - leveraging successful strategies")
        return factors, logic

    def score_option(self, option: DecisionOption, factors: List[Dict[str, Any]],
                     constraints: Mapping[str, Any]) -> float:
        score = option.priority
        for factor in factors:
            name, weight, value = factor["factor"], factor["weight"], factor["value"]
            if name == "high_urgency":
                if option.type in (DecisionType.SYSTEM_MAINTENANCE, DecisionType.PERFORMANCE_OPTIMIZATION):
                    score += value * weight
            elif name == "poor_performance":
                if option.type in (DecisionType.PERFORMANCE_OPTIMIZATION, DecisionType.RESOURCE_SCALING):
                    score += value * weight
            elif name == "high_risk":
                score -= min(0.2, option.risk * weight)
            elif name == "historical_success":
                score += value * weight * 0.5

        max_effort = constraints.get("max_effort")
        if max_effort is not None and option.effort > max_effort:
            score *= 0.5
        max_risk = constraints.get("max_risk")
        if max_risk is not None and option.risk > max_risk:
            score *= 0.3

        score += option.expected_impact * 0.2
        if self.score_noise > 0:
            score += self.id_generator.uniform(-self.score_noise, self.score_noise)
        return clamp(score, 0.1, 1.0)

    def _apply_reasoning(self, context: DecisionContext, constraints: Mapping[str, Any]
                         ) -> Tuple[DecisionOption, List[DecisionOption], float, List[str]]:
        factors, logic = self._build_factors(context)

        scored: List[DecisionOption] = []
        for option in context.available_options:
            scored.append(DecisionOption(
                type=option.type, priority=option.priority, risk=option.risk, effort=option.effort,
                expected_impact=option.expected_impact, description=option.description,
                score=self.score_option(option, factors, constraints),
            ))
        # sorted() is stable: equal scores keep generation order
        ranked = sorted(scored, key=lambda o: -o.score)

        if ranked:
            selected = ranked[0]
            confidence = clamp(selected.score * 0.8 + min(0.2, len(ranked) * 0.05), 0.3, 0.95)
            logic.append(f"Selected {selected.type.value} based on highest score: {selected.score:.3f}")
        else:
            selected = DecisionOption(
                type=DecisionType.MONITORING_ONLY, priority=0.3, risk=0.1, effort=0.1,
                expected_impact=0.2, description=OPTION_DESCRIPTIONS[DecisionType.MONITORING_ONLY], score=0.3,
            )
            confidence = NO_OPTION_REASONING_CONFIDENCE
            logic.append("No suitable options available - defaulting to monitoring")
        return selected, ranked[1:4], confidence, logic

    def _validate(self, selected: DecisionOption, alternatives: List[DecisionOption],
                  reasoning_confidence: float, constraints: Mapping[str, Any]
                  ) -> Tuple[DecisionOption, List[DecisionOption], float, List[str]]:
        score = 0.8
        issues: List[str] = []
        max_effort = constraints.get("max_effort")
        required_impact = constraints.get("required_impact")

        if reasoning_confidence < self.confidence_threshold:
            issues.append(f"Low confidence: {reasoning_confidence:.2f} < {self.confidence_threshold}")
            score -= 0.2
        if selected.risk > self.risk_tolerance:
            issues.append(f"High risk: {selected.risk:.2f} > {self.risk_tolerance}")
            score -= 0.3
        if max_effort is not None and selected.effort > max_effort:
            issues.append(f"Effort exceeds limit: {selected.effort} > {max_effort}")
            score -= 0.2
        if required_impact is not None and selected.expected_impact < required_impact:
            issues.append(f"Insufficient impact: {selected.expected_impact} < {required_impact}")
            score -= 0.2

        if issues and score < 0.4:
            for alternative in alternatives:
                if alternative.risk <= self.risk_tolerance and (max_effort is None or alternative.effort <= max_effort):
                    logger_decision_engine.debug(f"Validation switched {selected.type.value} to {alternative.type.value}")
                    remaining = [selected] + [a for a in alternatives if a is not alternative]
                    selected, alternatives = alternative, remaining[:3]
                    issues.append(f"Switched to alternative: {alternative.type.value}")
                    score += 0.3
                    break

        return selected, alternatives, clamp(score, 0.1, 1.0), issues

    @staticmethod
    def predict_outcome(option: DecisionOption) -> Dict[str, Any]:
        profile = OUTCOME_PROFILES.get(option.type, DEFAULT_OUTCOME_PROFILE)
        return {
            "expected_performance_improvement": option.expected_impact * profile["improvement_factor"],
            "expected_risk_reduction": profile["risk_reduction"],
            "time_to_effect_ms": profile["time_to_effect_ms"],
            "success_probability": profile["success_probability"],
            "side_effects": list(profile["side_effects"]),
        }

    def _fallback_decision(self, error: Exception, processing_time: float) -> Decision:
        self.stats["fallback_decisions"] += 1
        return Decision(
            id=self.id_generator.next_id("fallback"),
            type=DecisionType.MONITORING_ONLY,
            priority=0.1,
            risk=0.1,
            effort=0.1,
            expected_impact=0.1,
            reasoning=f"Decision making failed: {error}. Defaulting to monitoring mode.",
            confidence=FALLBACK_CONFIDENCE,
            expected_outcome=self.predict_outcome(DecisionOption(DecisionType.MONITORING_ONLY, 0.1, 0.1, 0.1, 0.1)),
            status=DecisionStatus.FALLBACK,
            processing_time=processing_time,
            error=str(error),
        )

    def _update_stats(self, decision: Decision) -> None:
        self.stats["total_decisions"] += 1
        count = self.stats["total_decisions"]
        self.stats["avg_decision_time"] = ema(self.stats["avg_decision_time"], decision.processing_time, STATS_EMA_ALPHA, count)
        self.stats["avg_confidence"] = ema(self.stats["avg_confidence"], decision.confidence, STATS_EMA_ALPHA, count)
        types = self.stats["decision_types"]
        types[decision.type.value] = types.get(decision.type.value, 0) + 1

    def update_decision_outcome(self, decision_id: str, outcome: Mapping[str, Any]) -> bool:
        """Records the observed outcome of a past decision. Returns False for unknown ids."""
        for decision in self.decision_history:
            if decision.id == decision_id:
                was_successful = bool(decision.outcome and decision.outcome.get("success"))
                decision.outcome = {
                    "success": bool(outcome.get("success", False)),
                    "actual_impact": float(outcome.get("actual_impact", 0.0)),
                    "actual_time": float(outcome.get("actual_time", 0.0)),
                    "side_effects": list(outcome.get("side_effects", [])),
                    "updated_at": time.time(),
                }
                if decision.outcome["success"] and not was_successful:
                    self.stats["successful_decisions"] += 1
                elif was_successful and not decision.outcome["success"]:
                    self.stats["successful_decisions"] -= 1
                logger_decision_engine.info(f"Decision outcome updated: {decision_id} - success: {decision.outcome['success']}")
                return True
        logger_decision_engine.warning(f"Cannot update outcome: decision {decision_id} not in history.")
        return False

    def get_metrics(self) -> Dict[str, Any]:
        total = self.stats["total_decisions"]
        return {
            "status": "measured",
            "total_decisions": total,
            "successful_decisions": self.stats["successful_decisions"],
            "fallback_decisions": self.stats["fallback_decisions"],
            "success_rate": self.stats["successful_decisions"] / total if total else 0.0,
            "avg_decision_time": self.stats["avg_decision_time"],
            "avg_confidence": self.stats["avg_confidence"],
            "decision_type_distribution": dict(self.stats["decision_types"]),
            "history_size": len(self.decision_history),
        }

    async def process(self, input_state: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        input_state = input_state or {}
        report = input_state.get("performance_report")
        if report is None:
            return None
        decision = await self.make_decision(report, input_state.get("decision_state"), input_state.get("constraints"))
        return {"decision": decision}

    async def reset(self) -> None:
        self.decision_history.clear()
        self._reset_stats()
        logger_decision_engine.info("DecisionEngine reset.")

    async def get_status(self) -> Dict[str, Any]:
        return {
            "component": "DecisionEngine",
            "status": "operational",
            "total_decisions": self.stats["total_decisions"],
            "history_size": len(self.decision_history),
            "history_capacity": self.decision_history.capacity,
            "confidence_threshold": self.confidence_threshold,
            "risk_tolerance": self.risk_tolerance,
            "strict_mode": self.strict_mode,
        }

    async def shutdown(self) -> None:
        logger_decision_engine.info("DecisionEngine shutting down.")

# --- END OF decision_engine.py ---
