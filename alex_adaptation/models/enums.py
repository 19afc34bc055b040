# --- START OF FILE enums.py ---

from enum import Enum


class EngineState(Enum):
    STOPPED = 0
    STARTING = 1
    RUNNING = 2
    STOPPING = 3
    ERROR = 4


class Severity(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort key, lower ranks first (high before medium before low)."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


class Priority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class BottleneckType(Enum):
    CPU_BOTTLENECK = "CPU_BOTTLENECK"
    MEMORY_BOTTLENECK = "MEMORY_BOTTLENECK"
    RESPONSE_TIME_BOTTLENECK = "RESPONSE_TIME_BOTTLENECK"
    SUCCESS_RATE_BOTTLENECK = "SUCCESS_RATE_BOTTLENECK"
    QUALITY_BOTTLENECK = "QUALITY_BOTTLENECK"


class OpportunityType(Enum):
    RESPONSE_TIME_REGRESSION = "RESPONSE_TIME_REGRESSION"
    QUALITY_REGRESSION = "QUALITY_REGRESSION"
    CPU_UNDERUTILIZATION = "CPU_UNDERUTILIZATION"
    MEMORY_UNDERUTILIZATION = "MEMORY_UNDERUTILIZATION"
    QUALITY_IMPROVEMENT = "QUALITY_IMPROVEMENT"


class TrendDirection(Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


class MetricTrend(Enum):
    """Direction of a supplied metric history as seen by the decision context."""
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class DecisionType(Enum):
    PERFORMANCE_OPTIMIZATION = "PERFORMANCE_OPTIMIZATION"
    RESOURCE_SCALING = "RESOURCE_SCALING"
    CONFIGURATION_ADAPTATION = "CONFIGURATION_ADAPTATION"
    SYSTEM_MAINTENANCE = "SYSTEM_MAINTENANCE"
    LEARNING_ADJUSTMENT = "LEARNING_ADJUSTMENT"
    MONITORING_ONLY = "MONITORING_ONLY"


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DecisionStatus(Enum):
    DECIDED = "decided"
    FALLBACK = "fallback"


class AnalysisStatus(Enum):
    ANALYZED = "analyzed"
    ANALYSIS_FAILED = "analysis_failed"


class AdjustmentAction(Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


class OptimizationStatus(Enum):
    OPTIMIZED = "optimized"
    NO_OPTIMIZATION_NEEDED = "no_optimization_needed"
    OPTIMIZATION_IN_PROGRESS = "optimization_in_progress"
    OPTIMIZATION_FAILED = "optimization_failed"


class ConflictType(Enum):
    RESOURCE = "RESOURCE"
    DECISION = "DECISION"
    OPTIMIZATION = "OPTIMIZATION"
    TEMPORAL = "TEMPORAL"
    LOGICAL = "LOGICAL"


class StabilityLevel(Enum):
    STABLE = "stable"
    MODERATE = "moderate"
    UNSTABLE = "unstable"


class ConflictRiskLevel(Enum):
    MINIMAL = "minimal"
    MODERATE = "moderate"
    ELEVATED = "elevated"
    CRITICAL = "critical"


class ResolutionStatus(Enum):
    RESOLVED = "resolved"
    FAILED = "failed"


class DetectionStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    RESOLUTION_IN_PROGRESS = "resolution_in_progress"

# --- END OF FILE enums.py ---
