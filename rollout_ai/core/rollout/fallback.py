"""Safe default responses for every analyzer.

Each analyzer catches its own failures and answers with one of these instead of
raising. The direction is always toward caution: no anomalies are invented, no
acceleration is ever recommended by a degraded path.
"""

from __future__ import annotations

import logging
from typing import Optional

from rollout_ai.core.rollout.models import (
    AnomalyDetectionResponse,
    FlagScope,
    RealtimeAction,
    RealtimeAnalysisResponse,
    RolloutConfiguration,
    RolloutPrediction,
    RolloutPredictionResponse,
    RolloutRecommendations,
    RolloutSimulationResponse,
)
from rollout_ai.ml.success_predictor import SuccessPredictor
from rollout_ai.utils.analysis_metrics import rollout_ai_fallback_total

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA = "insufficient_data"
SINGLE_CLASS = "single_class"
COMPUTATION_FAILED = "computation_failed"
TIMEOUT = "timeout"

ANOMALY_INSUFFICIENT_MESSAGE = "Insufficient data for anomaly analysis"
ANOMALY_ERROR_MESSAGE = "Anomaly analysis failed. Proceed with caution."


def record_fallback(operation: str, reason: str, scope: Optional[FlagScope] = None) -> None:
    rollout_ai_fallback_total.labels(operation=operation, reason=reason).inc()
    extra = scope.log_extra(operation) if scope else {"operation": operation}
    logger.warning(
        "Analyzer answered with a safe default",
        extra={**extra, "fallback_reason": reason},
    )


def degrade_anomaly(reason: str, scope: Optional[FlagScope] = None) -> AnomalyDetectionResponse:
    record_fallback("detect_anomalies", reason, scope)
    message = ANOMALY_INSUFFICIENT_MESSAGE if reason == INSUFFICIENT_DATA else ANOMALY_ERROR_MESSAGE
    return AnomalyDetectionResponse(
        has_anomalies=False,
        anomalies=(),
        overall_risk_score=0.0,
        recommendations=(message,),
    )


def degrade_simulation(reason: str, scope: Optional[FlagScope] = None) -> RolloutSimulationResponse:
    record_fallback("simulate", reason, scope)
    return RolloutSimulationResponse(
        simulation_steps=(),
        overall_prediction=RolloutPrediction(success_probability=0.5),
        recommended_adjustments=("Simulation failed. Proceed with the default configuration.",),
    )


def degrade_recommendations(
    configuration: RolloutConfiguration,
    reason: str,
    scope: Optional[FlagScope] = None,
) -> RolloutRecommendations:
    record_fallback("recommendations", reason, scope)
    return RolloutRecommendations(
        recommended_configuration=configuration,
        justifications=("Recommendation generation failed. Keep the current configuration.",),
        confidence_score=0.5,
    )


def degrade_realtime(reason: str, scope: Optional[FlagScope] = None) -> RealtimeAnalysisResponse:
    record_fallback("analyze", reason, scope)
    return RealtimeAnalysisResponse(
        recommended_action=RealtimeAction.PAUSE,
        reasoning="Realtime analysis failed. Pausing for safety.",
        confidence_level=0.9,
    )


def degrade_prediction(
    configuration: RolloutConfiguration,
    reason: str,
    scope: Optional[FlagScope] = None,
) -> RolloutPredictionResponse:
    record_fallback("predict", reason, scope)
    return SuccessPredictor().predict_with_heuristics(configuration, fallback_reason=reason)
