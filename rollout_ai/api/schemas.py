"""Request/response models for the rollout intelligence API.

Wire names are camelCase; Python attributes stay snake_case. Response models
are populated straight from the engine's value objects.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rollout_ai.core.rollout.models import (
    AlertType,
    AnomalyDetectionRequest,
    FlagScope,
    MetricDataPoint,
    ModelTrainingRequest,
    OptimizationGoal,
    PredictionSource,
    RealtimeAction,
    RealtimeAnalysisRequest,
    RiskLevel,
    RolloutConfiguration,
    RolloutPredictionRequest,
    RolloutRecommendationRequest,
    RolloutSimulationRequest,
    RolloutStep,
    Severity,
    StepAction,
)


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MetricDataPointModel(ApiModel):
    timestamp: datetime
    metric_name: str
    value: float
    tags: Dict[str, str] = Field(default_factory=dict)

    def to_domain(self) -> MetricDataPoint:
        return MetricDataPoint(
            timestamp=self.timestamp,
            metric_name=self.metric_name,
            value=self.value,
            tags=dict(self.tags),
        )


def _points(models: List[MetricDataPointModel]) -> tuple:
    return tuple(m.to_domain() for m in models)


class RolloutStepModel(ApiModel):
    step_number: int
    percentage_target: float
    duration: timedelta = Field(default=timedelta(0), description="ISO 8601 duration or seconds")
    conditions: List[str] = Field(default_factory=list)

    def to_domain(self) -> RolloutStep:
        return RolloutStep(
            step_number=self.step_number,
            percentage_target=self.percentage_target,
            duration=self.duration,
            conditions=tuple(self.conditions),
        )


class RolloutConfigurationModel(ApiModel):
    steps: List[RolloutStepModel] = Field(default_factory=list)
    target_metrics: Dict[str, float] = Field(default_factory=dict)
    safety_limits: Dict[str, float] = Field(default_factory=dict)
    strategy: str = "balanced"

    def to_domain(self) -> RolloutConfiguration:
        return RolloutConfiguration(
            steps=tuple(s.to_domain() for s in self.steps),
            target_metrics=dict(self.target_metrics),
            safety_limits=dict(self.safety_limits),
            strategy=self.strategy,
        )


class FlagRequestModel(ApiModel):
    project_key: str = ""
    environment: str = ""
    feature_flag_key: str = ""

    def scope(self) -> FlagScope:
        return FlagScope(
            project_key=self.project_key,
            environment=self.environment,
            feature_flag_key=self.feature_flag_key,
        )


# Requests -----------------------------------------------------------------


class AnomalyDetectionRequestModel(FlagRequestModel):
    metric_history: List[MetricDataPointModel] = Field(default_factory=list)
    lookback_days: Optional[int] = Field(default=None, ge=1, le=365)

    def to_domain(self) -> AnomalyDetectionRequest:
        return AnomalyDetectionRequest(
            scope=self.scope(),
            metric_history=_points(self.metric_history),
            lookback_days=self.lookback_days,
        )


class RolloutPredictionRequestModel(FlagRequestModel):
    configuration: Optional[RolloutConfigurationModel] = None
    historical_data: List[MetricDataPointModel] = Field(default_factory=list)
    user_attributes: Dict[str, Any] = Field(default_factory=dict)

    def to_domain(self) -> RolloutPredictionRequest:
        return RolloutPredictionRequest(
            scope=self.scope(),
            configuration=self.configuration.to_domain() if self.configuration else RolloutConfiguration(),
            historical_data=_points(self.historical_data),
            user_attributes=dict(self.user_attributes),
        )


class RolloutSimulationRequestModel(FlagRequestModel):
    configuration: Optional[RolloutConfigurationModel] = None
    baseline_metrics: List[MetricDataPointModel] = Field(default_factory=list)
    simulation_days: int = Field(default=30, ge=1, le=365)

    def to_domain(self) -> RolloutSimulationRequest:
        return RolloutSimulationRequest(
            scope=self.scope(),
            configuration=self.configuration.to_domain() if self.configuration else RolloutConfiguration(),
            baseline_metrics=_points(self.baseline_metrics),
            simulation_days=self.simulation_days,
        )


class RolloutRecommendationRequestModel(FlagRequestModel):
    current_metrics: List[MetricDataPointModel] = Field(default_factory=list)
    current_configuration: Optional[RolloutConfigurationModel] = None
    optimization_goal: OptimizationGoal = OptimizationGoal.BALANCED

    def to_domain(self) -> RolloutRecommendationRequest:
        return RolloutRecommendationRequest(
            scope=self.scope(),
            current_metrics=_points(self.current_metrics),
            current_configuration=(
                self.current_configuration.to_domain()
                if self.current_configuration
                else RolloutConfiguration()
            ),
            optimization_goal=self.optimization_goal,
        )


class RealtimeAnalysisRequestModel(FlagRequestModel):
    realtime_metrics: List[MetricDataPointModel] = Field(default_factory=list)
    active_configuration: RolloutConfigurationModel = Field(default_factory=RolloutConfigurationModel)

    def to_domain(self) -> RealtimeAnalysisRequest:
        return RealtimeAnalysisRequest(
            scope=self.scope(),
            realtime_metrics=_points(self.realtime_metrics),
            active_configuration=self.active_configuration.to_domain(),
        )


class ModelTrainingRequestModel(ApiModel):
    project_key: str = ""
    training_data: List[MetricDataPointModel] = Field(default_factory=list)
    model_type: Literal["all", "anomaly", "prediction"] = "all"
    training_parameters: Dict[str, Any] = Field(default_factory=dict)

    def to_domain(self) -> ModelTrainingRequest:
        return ModelTrainingRequest(
            project_key=self.project_key,
            training_data=_points(self.training_data),
            model_type=self.model_type,
        )


# Responses ----------------------------------------------------------------


class AnomalyAlertModel(ApiModel):
    metric_name: str
    current_value: float
    expected_value: float
    deviation: float
    severity: Severity
    detected_at: datetime
    description: str
    margin_score: float


class AnomalyDetectionResponseModel(ApiModel):
    has_anomalies: bool
    anomalies: List[AnomalyAlertModel]
    overall_risk_score: float
    recommendations: List[str]


class RiskFactorModel(ApiModel):
    name: str
    level: RiskLevel
    impact: float
    description: str


class RolloutPredictionResponseModel(ApiModel):
    success_probability: float
    risk_factors: List[RiskFactorModel]
    recommendations: List[str]
    metric_predictions: Dict[str, float]
    estimated_duration: timedelta
    prediction_source: PredictionSource
    fallback_reason: Optional[str] = None


class AIDecisionModel(ApiModel):
    recommended_action: StepAction
    confidence: float
    reasoning: str
    considerations: List[str]


class SimulationStepModel(ApiModel):
    step: RolloutStepModel
    ai_decision: AIDecisionModel
    predicted_metrics: Dict[str, float]
    estimated_duration: timedelta


class RolloutPredictionModel(ApiModel):
    success_probability: float
    risk_factors: List[RiskFactorModel]
    expected_metrics: Dict[str, float]


class RolloutSimulationResponseModel(ApiModel):
    simulation_steps: List[SimulationStepModel]
    overall_prediction: RolloutPredictionModel
    recommended_adjustments: List[str]
    predicted_metrics: Dict[str, List[MetricDataPointModel]]


class RiskMitigationModel(ApiModel):
    risk_type: str
    mitigation_strategy: str
    effectiveness_score: float


class RolloutRecommendationsModel(ApiModel):
    recommended_configuration: RolloutConfigurationModel
    justifications: List[str]
    confidence_score: float
    risk_mitigations: List[RiskMitigationModel]


class MetricAlertModel(ApiModel):
    metric_name: str
    current_value: float
    threshold_value: float
    alert_type: AlertType
    message: str


class RealtimeAnalysisResponseModel(ApiModel):
    recommended_action: RealtimeAction
    reasoning: str
    confidence_level: float
    alerts: List[MetricAlertModel]
    current_metrics: Dict[str, float]


class ModelTrainingResponseModel(ApiModel):
    status: str
    timestamp: datetime
    project_key: str
    data_points_processed: int
    labeled_days: int
    model_fitted: bool
    training_accuracy: Optional[float] = None
    models_evaluated: List[str]
    channels_analyzed: int = 0
    anomalies_found: Optional[int] = None
    detail: Optional[str] = None
