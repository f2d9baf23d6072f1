"""Value objects shared by the rollout analyzers.

Every object here is created fresh per request and discarded once the response
is returned; nothing carries a storage identity.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from rollout_ai.core.errors import InvalidRolloutConfiguration

ERROR_RATE = "error_rate"
RESPONSE_TIME = "response_time"
CONVERSION_RATE = "conversion_rate"
USER_COUNT = "user_count"

TRACKED_METRICS = (ERROR_RATE, RESPONSE_TIME, CONVERSION_RATE, USER_COUNT)


class Severity(str, Enum):
    """Anomaly severity buckets."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def weight(self) -> float:
        return _SEVERITY_WEIGHTS[self]

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_WEIGHTS = {
    Severity.CRITICAL: 1.0,
    Severity.HIGH: 0.8,
    Severity.MEDIUM: 0.6,
    Severity.LOW: 0.3,
}
_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class StepAction(str, Enum):
    """Decision for one simulated rollout step."""

    PROCEED = "proceed"
    PAUSE = "pause"
    ACCELERATE = "accelerate"
    ROLLBACK = "rollback"


class RealtimeAction(str, Enum):
    """Decision for live traffic."""

    CONTINUE = "continue"
    PAUSE = "pause"
    ACCELERATE = "accelerate"
    ROLLBACK = "rollback"


class AlertType(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class OptimizationGoal(str, Enum):
    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"


class PredictionSource(str, Enum):
    MODEL = "model"
    HEURISTIC = "heuristic"


def as_utc(ts: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp(value: float, low: float = 0.1, high: float = 0.99) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class MetricDataPoint:
    """A single timestamped metric sample."""

    timestamp: datetime
    metric_name: str
    value: float
    tags: Mapping[str, str] = field(default_factory=dict)


def group_by_metric(points: Iterable[MetricDataPoint]) -> Dict[str, List[MetricDataPoint]]:
    """Split a mixed series into per-metric channels ordered by timestamp."""
    channels: Dict[str, List[MetricDataPoint]] = defaultdict(list)
    for point in points:
        channels[point.metric_name].append(point)
    return {
        name: sorted(series, key=lambda p: as_utc(p.timestamp))
        for name, series in channels.items()
    }


def latest_values(points: Iterable[MetricDataPoint]) -> Dict[str, float]:
    """Latest value per metric name."""
    return {
        name: float(series[-1].value)
        for name, series in group_by_metric(points).items()
    }


def mean_values(points: Iterable[MetricDataPoint]) -> Dict[str, float]:
    """Average value per metric name."""
    return {
        name: sum(p.value for p in series) / len(series)
        for name, series in group_by_metric(points).items()
    }


@dataclass(frozen=True)
class RolloutStep:
    """A step in a progressive rollout plan."""

    step_number: int
    percentage_target: float
    duration: timedelta = timedelta(0)
    conditions: Tuple[str, ...] = ()

    def scaled(self, percentage_factor: float, duration_factor: float) -> "RolloutStep":
        """Return a copy with scaled percentage (capped at 100) and duration."""
        return replace(
            self,
            percentage_target=min(100.0, self.percentage_target * percentage_factor),
            duration=self.duration * duration_factor,
        )


@dataclass(frozen=True)
class RolloutConfiguration:
    """Rollout plan plus target metrics and safety limits."""

    steps: Tuple[RolloutStep, ...] = ()
    target_metrics: Mapping[str, float] = field(default_factory=dict)
    safety_limits: Mapping[str, float] = field(default_factory=dict)
    strategy: str = OptimizationGoal.BALANCED.value

    @property
    def ordered_steps(self) -> List[RolloutStep]:
        return sorted(self.steps, key=lambda s: s.step_number)

    @property
    def total_duration(self) -> timedelta:
        return sum((s.duration for s in self.steps), timedelta(0))

    def validate_for_simulation(self) -> None:
        """Raise InvalidRolloutConfiguration when the plan cannot be simulated.

        Steps must exist, stay within [0, 100] and never decrease in percentage.
        """
        if not self.steps:
            raise InvalidRolloutConfiguration("Configuration must contain at least one step")
        previous: Optional[RolloutStep] = None
        for step in self.ordered_steps:
            if not 0.0 <= step.percentage_target <= 100.0:
                raise InvalidRolloutConfiguration(
                    f"Step {step.step_number} percentage {step.percentage_target} is outside [0, 100]",
                    step_number=step.step_number,
                )
            if previous is not None and step.percentage_target < previous.percentage_target:
                raise InvalidRolloutConfiguration(
                    f"Step {step.step_number} percentage {step.percentage_target} is lower than "
                    f"step {previous.step_number} ({previous.percentage_target})",
                    step_number=step.step_number,
                )
            previous = step


@dataclass(frozen=True)
class AnomalyAlert:
    metric_name: str
    current_value: float
    expected_value: float
    deviation: float
    severity: Severity
    detected_at: datetime
    description: str
    margin_score: float = 0.0


@dataclass(frozen=True)
class RiskFactor:
    name: str
    level: RiskLevel
    impact: float
    description: str


@dataclass(frozen=True)
class AIDecision:
    recommended_action: StepAction
    confidence: float
    reasoning: str
    considerations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RolloutPrediction:
    success_probability: float
    risk_factors: Tuple[RiskFactor, ...] = ()
    expected_metrics: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class SimulationStep:
    step: RolloutStep
    ai_decision: AIDecision
    predicted_metrics: Mapping[str, float]
    estimated_duration: timedelta


@dataclass(frozen=True)
class MetricAlert:
    metric_name: str
    current_value: float
    threshold_value: float
    alert_type: AlertType
    message: str


@dataclass(frozen=True)
class RiskMitigation:
    risk_type: str
    mitigation_strategy: str
    effectiveness_score: float


# Requests -----------------------------------------------------------------


@dataclass(frozen=True)
class FlagScope:
    """Identifies the flag and environment a request is about."""

    project_key: str = ""
    environment: str = ""
    feature_flag_key: str = ""

    def log_extra(self, operation: str) -> Dict[str, str]:
        return {
            "project_key": self.project_key,
            "environment": self.environment,
            "flag_key": self.feature_flag_key,
            "operation": operation,
        }


@dataclass(frozen=True)
class AnomalyDetectionRequest:
    scope: FlagScope
    metric_history: Tuple[MetricDataPoint, ...] = ()
    lookback_days: Optional[int] = None


@dataclass(frozen=True)
class RolloutPredictionRequest:
    scope: FlagScope
    configuration: RolloutConfiguration = field(default_factory=RolloutConfiguration)
    historical_data: Tuple[MetricDataPoint, ...] = ()
    # Advisory only; never used in scoring
    user_attributes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RolloutSimulationRequest:
    scope: FlagScope
    configuration: RolloutConfiguration = field(default_factory=RolloutConfiguration)
    baseline_metrics: Tuple[MetricDataPoint, ...] = ()
    simulation_days: int = 30


@dataclass(frozen=True)
class RolloutRecommendationRequest:
    scope: FlagScope
    current_metrics: Tuple[MetricDataPoint, ...] = ()
    current_configuration: RolloutConfiguration = field(default_factory=RolloutConfiguration)
    optimization_goal: OptimizationGoal = OptimizationGoal.BALANCED


@dataclass(frozen=True)
class RealtimeAnalysisRequest:
    scope: FlagScope
    realtime_metrics: Tuple[MetricDataPoint, ...] = ()
    active_configuration: RolloutConfiguration = field(default_factory=RolloutConfiguration)


@dataclass(frozen=True)
class ModelTrainingRequest:
    project_key: str
    training_data: Tuple[MetricDataPoint, ...] = ()
    model_type: str = "all"  # all|anomaly|prediction


# Responses ----------------------------------------------------------------


@dataclass(frozen=True)
class AnomalyDetectionResponse:
    has_anomalies: bool
    anomalies: Tuple[AnomalyAlert, ...] = ()
    overall_risk_score: float = 0.0
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RolloutPredictionResponse:
    success_probability: float
    risk_factors: Tuple[RiskFactor, ...] = ()
    recommendations: Tuple[str, ...] = ()
    metric_predictions: Mapping[str, float] = field(default_factory=dict)
    estimated_duration: timedelta = timedelta(0)
    prediction_source: PredictionSource = PredictionSource.HEURISTIC
    fallback_reason: Optional[str] = None


@dataclass(frozen=True)
class RolloutSimulationResponse:
    simulation_steps: Tuple[SimulationStep, ...] = ()
    overall_prediction: RolloutPrediction = field(
        default_factory=lambda: RolloutPrediction(success_probability=0.5)
    )
    recommended_adjustments: Tuple[str, ...] = ()
    predicted_metrics: Mapping[str, Tuple[MetricDataPoint, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class RolloutRecommendations:
    recommended_configuration: RolloutConfiguration
    justifications: Tuple[str, ...] = ()
    confidence_score: float = 0.5
    risk_mitigations: Tuple[RiskMitigation, ...] = ()


@dataclass(frozen=True)
class RealtimeAnalysisResponse:
    recommended_action: RealtimeAction
    reasoning: str
    confidence_level: float
    alerts: Tuple[MetricAlert, ...] = ()
    current_metrics: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class ModelTrainingResult:
    status: str
    project_key: str
    data_points_processed: int
    labeled_days: int
    model_fitted: bool
    training_accuracy: Optional[float] = None
    models_evaluated: Tuple[str, ...] = ()
    channels_analyzed: int = 0
    anomalies_found: Optional[int] = None
    detail: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
