# alex_adaptation/models/datatypes.py

import time
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional, List, Mapping

from .enums import (
    BottleneckType, OpportunityType, Severity, Priority, TrendDirection, MetricTrend,
    DecisionType, DecisionStatus, RiskLevel, AnalysisStatus, AdjustmentAction,
    ConflictType, ConflictRiskLevel, DetectionStatus, StabilityLevel,
)
from ..utils.scoring import clamp

# Fallback values for counters missing from a metrics mapping
DEFAULT_CPU_USAGE = 50.0
DEFAULT_CPU_LOAD = 1.0
DEFAULT_CPU_CORES = 1
DEFAULT_MEMORY_PERCENTAGE = 50.0
DEFAULT_RESPONSE_TIME_MS = 1000.0
DEFAULT_SUCCESS_RATE = 1.0
DEFAULT_ERROR_RATE = 0.02
DEFAULT_QUALITY_SCORE = 0.8
DEFAULT_QUALITY_CONFIDENCE = 0.8


def _section(metrics: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = metrics.get(key)
    return value if isinstance(value, Mapping) else {}


def _num(section: Mapping[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return float(default)
    return float(value)


@dataclass
class CpuMetrics:
    usage: float = DEFAULT_CPU_USAGE  # percent 0-100
    load: float = DEFAULT_CPU_LOAD  # 1-minute load normalised per core
    cores: int = DEFAULT_CPU_CORES


@dataclass
class MemoryMetrics:
    used: float = 0.0  # MB
    total: float = 0.0  # MB
    percentage: float = DEFAULT_MEMORY_PERCENTAGE
    pressure: Optional[float] = None  # 0-1, defaults to percentage/100

    @property
    def effective_pressure(self) -> float:
        if self.pressure is None:
            return clamp(self.percentage / 100.0)
        return clamp(self.pressure)


@dataclass
class ResponseMetrics:
    avg_response_time: float = DEFAULT_RESPONSE_TIME_MS  # ms
    p95: float = 0.0
    p99: float = 0.0


@dataclass
class ThroughputMetrics:
    rps: float = 0.0
    success_rate: float = DEFAULT_SUCCESS_RATE
    error_rate: float = DEFAULT_ERROR_RATE


@dataclass
class QualityMetrics:
    avg_score: float = DEFAULT_QUALITY_SCORE
    confidence: float = DEFAULT_QUALITY_CONFIDENCE


@dataclass
class ErrorMetrics:
    crash_count: int = 0
    exception_count: int = 0


@dataclass
class SystemSnapshot:
    """One cycle's view of the system, merged from OS and application counters."""
    cpu: CpuMetrics = field(default_factory=CpuMetrics)
    memory: MemoryMetrics = field(default_factory=MemoryMetrics)
    performance: ResponseMetrics = field(default_factory=ResponseMetrics)
    throughput: ThroughputMetrics = field(default_factory=ThroughputMetrics)
    quality: QualityMetrics = field(default_factory=QualityMetrics)
    errors: ErrorMetrics = field(default_factory=ErrorMetrics)
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_metrics(cls, metrics: Mapping[str, Any]) -> "SystemSnapshot":
        """
        Builds a snapshot from a nested metrics mapping.

        Expected sections are ``cpu``, ``memory``, ``performance``, ``throughput``,
        ``quality`` and ``errors``. Missing sections or keys fall back to module
        defaults; non-numeric values are ignored.
        """
        cpu = _section(metrics, "cpu")
        mem = _section(metrics, "memory")
        perf = _section(metrics, "performance")
        thr = _section(metrics, "throughput")
        qual = _section(metrics, "quality")
        errs = _section(metrics, "errors")

        pressure = mem.get("pressure")
        snapshot = cls(
            cpu=CpuMetrics(
                usage=clamp(_num(cpu, "usage", DEFAULT_CPU_USAGE), 0.0, 100.0),
                load=max(0.0, _num(cpu, "load", DEFAULT_CPU_LOAD)),
                cores=int(_num(cpu, "cores", DEFAULT_CPU_CORES)) or DEFAULT_CPU_CORES,
            ),
            memory=MemoryMetrics(
                used=_num(mem, "used", 0.0),
                total=_num(mem, "total", 0.0),
                percentage=clamp(_num(mem, "percentage", DEFAULT_MEMORY_PERCENTAGE), 0.0, 100.0),
                pressure=float(pressure) if isinstance(pressure, (int, float)) and not isinstance(pressure, bool) else None,
            ),
            performance=ResponseMetrics(
                avg_response_time=max(0.0, _num(perf, "avg_response_time", DEFAULT_RESPONSE_TIME_MS)),
                p95=max(0.0, _num(perf, "p95", 0.0)),
                p99=max(0.0, _num(perf, "p99", 0.0)),
            ),
            throughput=ThroughputMetrics(
                rps=max(0.0, _num(thr, "rps", 0.0)),
                success_rate=clamp(_num(thr, "success_rate", DEFAULT_SUCCESS_RATE)),
                error_rate=clamp(_num(thr, "error_rate", DEFAULT_ERROR_RATE)),
            ),
            quality=QualityMetrics(
                avg_score=clamp(_num(qual, "avg_score", DEFAULT_QUALITY_SCORE)),
                confidence=clamp(_num(qual, "confidence", DEFAULT_QUALITY_CONFIDENCE)),
            ),
            errors=ErrorMetrics(
                crash_count=max(0, int(_num(errs, "crash_count", 0))),
                exception_count=max(0, int(_num(errs, "exception_count", 0))),
            ),
        )
        ts = metrics.get("timestamp")
        if isinstance(ts, (int, float)) and not isinstance(ts, bool):
            snapshot.timestamp = float(ts)
        return snapshot

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Bottleneck:
    type: BottleneckType
    severity: Severity
    value: float
    threshold: float
    impact: str = ""
    recommendations: List[str] = field(default_factory=list)


@dataclass
class Opportunity:
    type: OpportunityType
    potential: Priority
    effort: Priority
    expected_improvement: str = ""
    actions: List[str] = field(default_factory=list)


@dataclass
class Trend:
    direction: TrendDirection = TrendDirection.INSUFFICIENT_DATA
    confidence: float = 0.0
    change: float = 0.0  # relative change of the recent window vs. the prior one

    def __post_init__(self):
        self.confidence = clamp(self.confidence)


@dataclass
class HistoricalAggregates:
    avg_cpu: float
    avg_memory: float
    avg_response_time: float
    avg_throughput: float
    avg_quality: float
    samples: int


@dataclass
class PerformanceReport:
    """Scored view of one snapshot in the context of recent history."""
    current: SystemSnapshot
    overall_score: float
    historical: Optional[HistoricalAggregates] = None
    trend: Trend = field(default_factory=Trend)
    bottlenecks: List[Bottleneck] = field(default_factory=list)
    opportunities: List[Opportunity] = field(default_factory=list)
    confidence: float = 0.6
    status: AnalysisStatus = AnalysisStatus.ANALYZED
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        self.overall_score = clamp(self.overall_score)
        self.confidence = clamp(self.confidence)

    def has_high_severity_bottleneck(self) -> bool:
        return any(b.severity == Severity.HIGH for b in self.bottlenecks)


@dataclass
class RiskProfile:
    performance: float = 0.0
    stability: float = 0.0
    resource: float = 0.0
    business: float = 0.0
    overall: float = 0.0
    level: RiskLevel = RiskLevel.LOW

    def __post_init__(self):
        self.performance = clamp(self.performance)
        self.stability = clamp(self.stability)
        self.resource = clamp(self.resource)
        self.business = clamp(self.business)
        self.overall = clamp(self.overall)


@dataclass
class DecisionOption:
    type: DecisionType
    priority: float
    risk: float
    effort: float
    expected_impact: float
    description: str = ""
    score: float = 0.0

    def __post_init__(self):
        self.priority = clamp(self.priority)
        self.risk = clamp(self.risk)
        self.effort = clamp(self.effort)
        self.expected_impact = clamp(self.expected_impact)
        self.score = clamp(self.score)


@dataclass
class DecisionContext:
    """Everything the decision pipeline derived about the current cycle."""
    snapshot: SystemSnapshot
    health_score: float
    performance_score: float
    urgency: float
    complexity: float
    risk: RiskProfile
    available_options: List[DecisionOption] = field(default_factory=list)
    priority: float = 0.0
    trends: Dict[str, MetricTrend] = field(default_factory=dict)
    historical: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.5

    def __post_init__(self):
        self.health_score = clamp(self.health_score)
        self.performance_score = clamp(self.performance_score)
        self.urgency = clamp(self.urgency)
        self.complexity = clamp(self.complexity)
        self.priority = clamp(self.priority)
        self.confidence = clamp(self.confidence)


@dataclass
class Decision:
    id: str
    type: DecisionType
    priority: float
    risk: float
    effort: float
    expected_impact: float
    reasoning: str
    confidence: float
    alternatives: List[DecisionOption] = field(default_factory=list)
    expected_outcome: Dict[str, Any] = field(default_factory=dict)
    status: DecisionStatus = DecisionStatus.DECIDED
    processing_time: float = 0.0  # seconds
    timestamp: float = field(default_factory=time.time)
    outcome: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def __post_init__(self):
        self.priority = clamp(self.priority)
        self.risk = clamp(self.risk)
        self.effort = clamp(self.effort)
        self.expected_impact = clamp(self.expected_impact)
        self.confidence = clamp(self.confidence)

    @property
    def time_to_effect_ms(self) -> float:
        return float(self.expected_outcome.get("time_to_effect_ms", 0.0))


@dataclass
class ParameterBounds:
    min: float
    max: float


@dataclass
class ParameterState:
    """A tunable parameter. Mutated in place only by the parameter optimizer."""
    name: str
    current: float
    optimal: float
    bounds: ParameterBounds
    history: Any = None  # RingBuffer of adjustment records, set by the optimizer
    last_adjustment: Optional[float] = None  # timestamp


@dataclass
class Adjustment:
    parameter: str
    action: AdjustmentAction
    amount: float  # fraction in (0, 1)
    reason: str = ""
    priority: Priority = Priority.MEDIUM
    old_value: Optional[float] = None
    new_value: Optional[float] = None
    impact: float = 0.0

    def __post_init__(self):
        if not 0.0 < self.amount < 1.0:
            raise ValueError(f"Adjustment amount must be in (0, 1), got {self.amount}")


@dataclass
class PlanPhase:
    phase: int
    name: str
    priority: Priority
    adjustments: List[Adjustment]
    estimated_duration_ms: int
    risk: RiskLevel


@dataclass
class OptimizationPlan:
    id: str
    phases: List[PlanPhase]
    total_adjustments: int
    estimated_impact: float
    risk_level: RiskLevel
    rollback: Dict[str, float] = field(default_factory=dict)
    # Full pre-cycle ParameterState fields (current, optimal, last_adjustment, history) per parameter
    rollback_state: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def all_adjustments(self) -> List[Adjustment]:
        return [adj for phase in self.phases for adj in phase.adjustments]


@dataclass
class Conflict:
    id: str
    type: ConflictType
    subtype: str
    severity: Severity
    description: str
    evidence: Dict[str, Any] = field(default_factory=dict)
    suggested_resolution: Optional[str] = None

    def signature(self) -> tuple:
        """Identity of the conflict without its generated id."""
        return (self.type, self.subtype, self.severity, repr(sorted(self.evidence.items())))


@dataclass
class ResolutionStrategy:
    type: str
    conflict_type: ConflictType
    priority: Priority
    actions: List[str]
    expected_impact: float
    estimated_time_ms: int


@dataclass
class StabilityAssessment:
    cpu: float
    memory: float
    performance: float
    errors: float
    overall: float
    level: StabilityLevel


@dataclass
class ConflictAnalysis:
    """Outcome of one detection pass over pending decisions and optimizations."""
    conflicts: List[Conflict]
    risk_level: ConflictRiskLevel
    stability: StabilityAssessment
    matrix: Dict[str, Any]
    strategies: List[ResolutionStrategy]
    confidence: float
    processing_time: float = 0.0  # seconds

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)


@dataclass
class ConflictReport:
    status: DetectionStatus
    detection: Optional[ConflictAnalysis]
    resolution: Optional[Dict[str, Any]]
    summary: Dict[str, Any]
    processing_time: float = 0.0  # seconds
    confidence: float = 1.0
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
