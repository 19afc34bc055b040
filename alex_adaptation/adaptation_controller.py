# --- START OF FILE adaptation_controller.py ---

import asyncio
import copy
import logging
import time
from pathlib import Path
from typing import Dict, Any, Optional, List, Sequence

import toml

from .protocols import AdaptiveComponent, MetricsProvider
from .models.enums import ConflictRiskLevel, DecisionStatus, DecisionType, EngineState, OptimizationStatus
from .models.datatypes import Decision, PerformanceReport
from .models.exceptions import ConfigurationError
from .adaptive_helpers.id_generator import IdGenerator
from .adaptive_helpers.observer_hub import ObserverHub
from .adaptive_modules.performance_analyzer import PerformanceAnalyzer
from .adaptive_modules.decision_engine import DecisionEngine
from .adaptive_modules.self_optimization import SelfOptimizationSystem
from .adaptive_modules.conflict_detection import ConflictDetectionEngine
from .utils.metrics_providers import PsutilMetricsProvider

logger_adaptation_controller = logging.getLogger(__name__)

COMPONENT_INIT_ORDER = [
    "performance_analyzer",
    "decision_engine",
    "self_optimization",
    "conflict_detection",
]

DEFAULT_CYCLE_INTERVAL_S = 60.0


class AdaptationController:
    """
    Wires the adaptation engines around one MetricsProvider and ObserverHub and
    runs full cycles: metrics, analysis, decision and optimization, then conflict
    arbitration over everything pending.
    """

    def __init__(self, config_path: str = "config.toml",
                 metrics_provider: Optional[MetricsProvider] = None,
                 config: Optional[Dict[str, Any]] = None):
        logger_adaptation_controller.info("Initializing AdaptationController...")
        self.config_path = Path(config_path).resolve()
        self.config: Dict[str, Any] = copy.deepcopy(config) if config is not None else self._load_config()

        controller_config = self.config.get("controller", {})
        self.cycle_interval_s = controller_config.get("cycle_interval_s", DEFAULT_CYCLE_INTERVAL_S)
        if isinstance(self.cycle_interval_s, bool) or not isinstance(self.cycle_interval_s, (int, float)) or self.cycle_interval_s <= 0:
            logger_adaptation_controller.warning(f"Invalid cycle_interval_s ({self.cycle_interval_s}). Using default {DEFAULT_CYCLE_INTERVAL_S}.")
            self.cycle_interval_s = DEFAULT_CYCLE_INTERVAL_S
        seed = controller_config.get("id_seed")
        seed = seed if isinstance(seed, int) and not isinstance(seed, bool) else None

        self.metrics_provider = metrics_provider or PsutilMetricsProvider(self.config.get("application_metrics", {}))
        self.observer_hub = ObserverHub()
        self.performance_analyzer = PerformanceAnalyzer(self.metrics_provider, self.observer_hub)
        self.decision_engine = DecisionEngine(self.observer_hub, IdGenerator(seed))
        self.self_optimization = SelfOptimizationSystem(
            analyzer=self.performance_analyzer, observer_hub=self.observer_hub, id_generator=IdGenerator(seed),
        )
        self.conflict_detection = ConflictDetectionEngine(self.observer_hub, IdGenerator(seed))
        self.components: Dict[str, AdaptiveComponent] = {
            "performance_analyzer": self.performance_analyzer,
            "decision_engine": self.decision_engine,
            "self_optimization": self.self_optimization,
            "conflict_detection": self.conflict_detection,
        }

        self.state = EngineState.STOPPED
        self.cycle_count = 0
        self.last_cycle: Optional[Dict[str, Any]] = None
        self._initialized_components: List[str] = []
        self._stop_event = asyncio.Event()
        logger_adaptation_controller.info("AdaptationController created.")

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            logger_adaptation_controller.warning(f"Config file not found: {self.config_path}. Using defaults.")
            return {}
        try:
            with open(self.config_path, "r") as f:
                config_data = toml.load(f)
        except (OSError, toml.TomlDecodeError) as e:
            raise ConfigurationError(f"Failed to load config {self.config_path}: {e}") from e
        logger_adaptation_controller.info(f"Loaded configuration from {self.config_path}")
        return config_data

    async def initialize(self) -> bool:
        self.state = EngineState.STARTING
        for name in COMPONENT_INIT_ORDER:
            component = self.components[name]
            logger_adaptation_controller.debug(f"Running .initialize() for component: {name}...")
            try:
                success = await component.initialize(self.config, self)
            except Exception as e:
                logger_adaptation_controller.exception(f"Exception during {name} .initialize(): {e}")
                success = False
            if not success:
                logger_adaptation_controller.error(f"Component {name} initialization failed.")
                await self._shutdown_components(self._initialized_components)
                self._initialized_components = []
                self.state = EngineState.ERROR
                return False
            self._initialized_components.append(name)
            logger_adaptation_controller.info(f"Component {name} initialized.")
        self.state = EngineState.RUNNING
        return True

    async def run_cycle(self, application_metrics: Optional[Dict[str, Any]] = None,
                        decision_state: Optional[Dict[str, Any]] = None,
                        pending_decisions: Optional[Sequence[Any]] = None,
                        pending_optimizations: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        """
        Runs one adaptation cycle and returns the arbitrated action set.

        ``pending_decisions`` and ``pending_optimizations`` are interventions
        already queued elsewhere; they take part in conflict detection alongside
        this cycle's own decision and plan.
        """
        start_time = time.time()
        self.cycle_count += 1
        logger_adaptation_controller.debug(f"Adaptation cycle {self.cycle_count} starting.")

        report: PerformanceReport = await self.performance_analyzer.analyze(application_metrics)
        decision, optimization = await asyncio.gather(
            self.decision_engine.make_decision(report, decision_state),
            self.self_optimization.run_optimization_cycle(report=report),
        )

        decisions: List[Any] = list(pending_decisions or [])
        if decision.status == DecisionStatus.DECIDED and decision.type != DecisionType.MONITORING_ONLY:
            decisions.append(decision)
        optimizations: List[Any] = list(pending_optimizations or [])
        if optimization.get("status") == OptimizationStatus.OPTIMIZED.value:
            optimizations.append(optimization["plan"])

        conflict_report = await self.conflict_detection.detect_and_resolve_conflicts(
            copy.deepcopy(report.current.to_dict()), decisions, optimizations,
        )

        result = {
            "cycle": self.cycle_count,
            "performance_report": report,
            "decision": decision,
            "optimization": optimization,
            "conflict_report": conflict_report,
            "actions": self._arbitrated_actions(decisions, optimizations, conflict_report),
            "processing_time": time.time() - start_time,
            "timestamp": time.time(),
        }
        self.last_cycle = result
        logger_adaptation_controller.info(
            f"Cycle {self.cycle_count}: score {report.overall_score:.3f}, decision {decision.type.value}, "
            f"optimization {optimization.get('status')}, risk {conflict_report.summary.get('risk_level')}"
        )
        return result

    @staticmethod
    def _arbitrated_actions(decisions: List[Any], optimizations: List[Any], conflict_report: Any) -> Dict[str, Any]:
        system_changes: Dict[str, Any] = {}
        if conflict_report.resolution and "resolution" in conflict_report.resolution:
            system_changes = dict(conflict_report.resolution["resolution"]["system_changes"])
        queue = system_changes.get("decision_queue") or {}
        deferred = set(queue.get("queued", []))

        def decision_id(item: Any) -> Optional[str]:
            if isinstance(item, Decision):
                return item.id
            return item.get("id") if isinstance(item, dict) else None

        risk = conflict_report.summary.get("risk_level")
        return {
            "decisions": [d for d in decisions if decision_id(d) not in deferred],
            "deferred_decisions": sorted(deferred),
            "optimizations": optimizations,
            "system_changes": system_changes,
            "risk_level": risk,
            "requires_review": risk in (ConflictRiskLevel.CRITICAL.value, None),
        }

    async def run(self, max_cycles: Optional[int] = None) -> None:
        """Runs cycles every ``cycle_interval_s`` until stopped or ``max_cycles`` is reached."""
        self._stop_event.clear()
        completed = 0
        while not self._stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception as e:
                logger_adaptation_controller.exception(f"Adaptation cycle failed: {e}")
            completed += 1
            if max_cycles is not None and completed >= max_cycles:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.cycle_interval_s)
            except asyncio.TimeoutError:
                pass
        logger_adaptation_controller.info(f"Adaptation loop finished after {completed} cycles.")

    def stop(self) -> None:
        logger_adaptation_controller.info("Stop requested.")
        self._stop_event.set()

    async def get_status(self) -> Dict[str, Any]:
        statuses = {}
        for name in COMPONENT_INIT_ORDER:
            try:
                statuses[name] = await self.components[name].get_status()
            except Exception as e:
                logger_adaptation_controller.error(f"Status of {name} unavailable: {e}")
                statuses[name] = {"component": name, "status": "error", "error": str(e)}
        return {
            "state": self.state.name,
            "cycle_count": self.cycle_count,
            "cycle_interval_s": self.cycle_interval_s,
            "components": statuses,
        }

    async def _shutdown_components(self, component_names: List[str]) -> None:
        logger_adaptation_controller.info(f"Shutting down {len(component_names)} components...")
        for name in reversed(component_names):
            try:
                await self.components[name].shutdown()
                logger_adaptation_controller.debug(f"{name} shutdown complete.")
            except Exception as e:
                logger_adaptation_controller.exception(f"Error shutting down {name}: {e}")

    async def shutdown(self) -> None:
        self.state = EngineState.STOPPING
        self.stop()
        await self._shutdown_components(self._initialized_components)
        self._initialized_components = []
        self.state = EngineState.STOPPED
        logger_adaptation_controller.info("AdaptationController shut down.")

# --- END OF FILE adaptation_controller.py ---
