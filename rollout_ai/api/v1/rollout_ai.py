"""Rollout intelligence endpoints.

Each analyzer runs in a worker thread under a per-call time budget. A call
that overruns the budget answers with the analyzer's safe default instead of
an error, the same way internal analyzer failures do.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

import anyio
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from rollout_ai.api.dependencies import get_service
from rollout_ai.api.schemas import (
    AnomalyDetectionRequestModel,
    AnomalyDetectionResponseModel,
    FlagRequestModel,
    ModelTrainingRequestModel,
    ModelTrainingResponseModel,
    RealtimeAnalysisRequestModel,
    RealtimeAnalysisResponseModel,
    RolloutPredictionRequestModel,
    RolloutPredictionResponseModel,
    RolloutRecommendationRequestModel,
    RolloutRecommendationsModel,
    RolloutSimulationRequestModel,
    RolloutSimulationResponseModel,
)
from rollout_ai.core.config import get_settings
from rollout_ai.core.errors import ErrorCode, InvalidRolloutConfiguration, build_error
from rollout_ai.core.rollout import fallback
from rollout_ai.core.rollout.service import RolloutIntelligenceService
from rollout_ai.utils.analysis_metrics import rollout_ai_requests_total

logger = logging.getLogger(__name__)

router = APIRouter()

CAPABILITIES = [
    "anomaly_detection",
    "rollout_prediction",
    "rollout_simulation",
    "personalized_recommendations",
    "realtime_analysis",
]


class AIHealthResponse(BaseModel):
    status: str
    timestamp: datetime
    services: Dict[str, str]
    version: str
    capabilities: List[str]


class AIModelInfo(BaseModel):
    name: str
    algorithm: str
    purpose: str
    training_data: str


class AIModelsResponse(BaseModel):
    models: List[AIModelInfo]


def _bad_request(code: ErrorCode, stage: str, message: str, **context: Any) -> HTTPException:
    err = build_error(code, stage=stage, message=message, **context)
    rollout_ai_requests_total.labels(operation=stage, status="rejected").inc()
    return HTTPException(status_code=400, detail=err)


def _require_flag(payload: FlagRequestModel, stage: str) -> None:
    if not payload.project_key or not payload.feature_flag_key:
        raise _bad_request(
            ErrorCode.INPUT_ERROR,
            stage,
            "projectKey and featureFlagKey are required",
        )


async def _run(
    operation: str,
    service: RolloutIntelligenceService,
    call: Callable[[Any], Any],
    request: Any,
) -> Any:
    """Run a blocking analyzer call off the event loop within the time budget."""
    budget = get_settings().ENGINE_TIMEOUT_SECONDS
    try:
        with anyio.fail_after(budget):
            return await anyio.to_thread.run_sync(call, request, abandon_on_cancel=True)
    except TimeoutError:
        scope = getattr(request, "scope", None)
        logger.warning(
            "Rollout analysis exceeded %.1fs budget",
            budget,
            extra=scope.log_extra(operation) if scope else {"operation": operation},
        )
        return service.degrade(operation, request, fallback.TIMEOUT)


@router.post("/detect-anomalies", response_model=AnomalyDetectionResponseModel)
async def detect_anomalies(
    payload: AnomalyDetectionRequestModel,
    service: RolloutIntelligenceService = Depends(get_service),
):
    """Flag unusual points in a flag's metric history."""
    _require_flag(payload, "detect_anomalies")
    result = await _run("detect_anomalies", service, service.detect_anomalies, payload.to_domain())
    return AnomalyDetectionResponseModel.model_validate(result)


@router.post("/predict", response_model=RolloutPredictionResponseModel)
async def predict_rollout_success(
    payload: RolloutPredictionRequestModel,
    service: RolloutIntelligenceService = Depends(get_service),
):
    """Estimate the success probability of a planned rollout."""
    _require_flag(payload, "predict")
    if payload.configuration is None:
        raise _bad_request(ErrorCode.INPUT_ERROR, "predict", "configuration is required")
    result = await _run("predict", service, service.predict, payload.to_domain())
    return RolloutPredictionResponseModel.model_validate(result)


@router.post("/simulate", response_model=RolloutSimulationResponseModel)
async def simulate_rollout(
    payload: RolloutSimulationRequestModel,
    service: RolloutIntelligenceService = Depends(get_service),
):
    """Walk the rollout plan step by step and project its metrics."""
    _require_flag(payload, "simulate")
    if payload.configuration is None or not payload.configuration.steps:
        raise _bad_request(
            ErrorCode.VALIDATION_FAILED, "simulate", "configuration with steps is required"
        )
    request = payload.to_domain()
    try:
        request.configuration.validate_for_simulation()
    except InvalidRolloutConfiguration as exc:
        raise _bad_request(ErrorCode.VALIDATION_FAILED, "simulate", str(exc), **exc.context)
    result = await _run("simulate", service, service.simulate, request)
    return RolloutSimulationResponseModel.model_validate(result)


@router.post("/recommendations", response_model=RolloutRecommendationsModel)
async def get_recommendations(
    payload: RolloutRecommendationRequestModel,
    service: RolloutIntelligenceService = Depends(get_service),
):
    """Propose a rollout configuration tuned for the optimization goal."""
    _require_flag(payload, "recommendations")
    if payload.current_configuration is None:
        raise _bad_request(
            ErrorCode.INPUT_ERROR, "recommendations", "currentConfiguration is required"
        )
    result = await _run("recommendations", service, service.recommend, payload.to_domain())
    return RolloutRecommendationsModel.model_validate(result)


@router.post("/analyze", response_model=RealtimeAnalysisResponseModel)
async def analyze_realtime(
    payload: RealtimeAnalysisRequestModel,
    service: RolloutIntelligenceService = Depends(get_service),
):
    """Recommend continue, pause, accelerate or rollback from live metrics."""
    _require_flag(payload, "analyze")
    if not payload.realtime_metrics:
        raise _bad_request(ErrorCode.INPUT_ERROR, "analyze", "realtimeMetrics are required")
    result = await _run("analyze", service, service.analyze_realtime, payload.to_domain())
    return RealtimeAnalysisResponseModel.model_validate(result)


@router.post("/train", response_model=ModelTrainingResponseModel)
async def train_models(
    payload: ModelTrainingRequestModel,
    service: RolloutIntelligenceService = Depends(get_service),
):
    """Dry-run fit of the analyzers on the supplied data. Nothing is stored."""
    if not payload.project_key:
        raise _bad_request(ErrorCode.INPUT_ERROR, "train", "projectKey is required")
    if not payload.training_data:
        raise _bad_request(ErrorCode.INPUT_ERROR, "train", "trainingData is required")

    budget = get_settings().ENGINE_TIMEOUT_SECONDS
    try:
        with anyio.fail_after(budget):
            result = await anyio.to_thread.run_sync(
                service.train, payload.to_domain(), abandon_on_cancel=True
            )
    except TimeoutError:
        err = build_error(
            ErrorCode.TIMEOUT,
            stage="train",
            message=f"Training exceeded {budget}s",
            project_key=payload.project_key,
        )
        raise HTTPException(status_code=504, detail=err)
    logger.info(
        "Dry-run training finished: %d data points, fitted=%s",
        result.data_points_processed,
        result.model_fitted,
        extra={"project_key": payload.project_key, "operation": "train"},
    )
    return ModelTrainingResponseModel.model_validate(result)


@router.get("/health", response_model=AIHealthResponse)
async def ai_health():
    """Static status of the rollout analyzers."""
    return AIHealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        services={name: "operational" for name in CAPABILITIES},
        version="1.0.0",
        capabilities=CAPABILITIES,
    )


@router.get("/models", response_model=AIModelsResponse)
async def ai_models():
    return AIModelsResponse(
        models=[
            AIModelInfo(
                name="Anomaly Detection",
                algorithm="Robust trend residual (rolling median, MAD-scaled z-score)",
                purpose="Flag unusual points in performance metric history",
                training_data="Recent metric history of the flag, per metric",
            ),
            AIModelInfo(
                name="Rollout Success Prediction",
                algorithm="Logistic regression on daily metric aggregates (scikit-learn)",
                purpose="Estimate the probability that a rollout succeeds",
                training_data="Historical metrics aggregated per calendar day",
            ),
            AIModelInfo(
                name="Realtime Decision Engine",
                algorithm="Rule-based thresholds against safety limits",
                purpose="Continue, pause, accelerate or roll back a running rollout",
                training_data="Safety limits of the active configuration",
            ),
        ]
    )
