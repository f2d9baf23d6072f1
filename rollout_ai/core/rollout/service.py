"""Rollout intelligence service.

Entry point used by the API layer. Every method is a self-contained call:
inputs in, a structured response out, no state kept between calls. Each method
is also the failure boundary of its analyzer: internal errors are logged and
turned into that analyzer's safe default, never re-raised.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from rollout_ai.core.config import Settings, get_settings
from rollout_ai.core.rollout import fallback
from rollout_ai.core.rollout.metrics_source import MetricsSource
from rollout_ai.core.rollout.models import (
    AnomalyDetectionRequest,
    AnomalyDetectionResponse,
    FlagScope,
    ModelTrainingRequest,
    ModelTrainingResult,
    PredictionSource,
    RealtimeAnalysisRequest,
    RealtimeAnalysisResponse,
    RolloutConfiguration,
    RolloutPredictionRequest,
    RolloutPredictionResponse,
    RolloutRecommendationRequest,
    RolloutRecommendations,
    RolloutSimulationRequest,
    RolloutSimulationResponse,
    as_utc,
    group_by_metric,
)
from rollout_ai.core.rollout.realtime import analyze_realtime
from rollout_ai.core.rollout.recommendations import recommend_configuration
from rollout_ai.core.rollout.simulator import simulate_rollout
from rollout_ai.ml.anomaly import AnomalyDetector, DetectorParams, InsufficientDataError
from rollout_ai.ml.success_predictor import (
    InsufficientTrainingData,
    PredictorParams,
    SuccessPredictor,
)
from rollout_ai.utils.analysis_metrics import (
    rollout_ai_anomalies_total,
    rollout_ai_decisions_total,
    rollout_ai_operation_seconds,
    rollout_ai_requests_total,
)

logger = logging.getLogger(__name__)


class RolloutIntelligenceService:
    """Runs the rollout analyzers with logging, metrics and safe degradation."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        metrics_source: Optional[MetricsSource] = None,
    ):
        self.settings = settings or get_settings()
        self.metrics_source = metrics_source
        self.detector_params = DetectorParams(
            threshold=self.settings.ANOMALY_THRESHOLD,
            sensitivity=self.settings.ANOMALY_SENSITIVITY,
            window=self.settings.ANOMALY_WINDOW,
            min_points=self.settings.ANOMALY_MIN_POINTS,
        )
        self.predictor_params = PredictorParams(
            min_training_days=self.settings.PREDICTOR_MIN_TRAINING_DAYS,
            success_bar=self.settings.PREDICTOR_SUCCESS_BAR,
        )

    @contextmanager
    def _observe(self, operation: str, scope: FlagScope) -> Iterator[None]:
        started = time.perf_counter()
        logger.info("Rollout analysis started", extra=scope.log_extra(operation))
        status = "success"
        try:
            yield
        except Exception:
            status = "error"
            raise
        finally:
            elapsed = time.perf_counter() - started
            rollout_ai_operation_seconds.labels(operation=operation).observe(elapsed)
            rollout_ai_requests_total.labels(operation=operation, status=status).inc()
            logger.info(
                "Rollout analysis finished",
                extra={**scope.log_extra(operation), "latency_ms": round(elapsed * 1000, 2)},
            )

    def detect_anomalies(
        self,
        request: AnomalyDetectionRequest,
        now: Optional[datetime] = None,
    ) -> AnomalyDetectionResponse:
        with self._observe("detect_anomalies", request.scope):
            lookback = request.lookback_days or self.settings.ANOMALY_LOOKBACK_DAYS
            try:
                response = AnomalyDetector(self.detector_params).detect(
                    request.metric_history, lookback_days=lookback, now=now
                )
            except InsufficientDataError:
                return fallback.degrade_anomaly(fallback.INSUFFICIENT_DATA, request.scope)
            except Exception:
                logger.error(
                    "Error detecting anomalies",
                    exc_info=True,
                    extra=request.scope.log_extra("detect_anomalies"),
                )
                return fallback.degrade_anomaly(fallback.COMPUTATION_FAILED, request.scope)

            for alert in response.anomalies:
                rollout_ai_anomalies_total.labels(severity=alert.severity.value).inc()
            return response

    def predict(self, request: RolloutPredictionRequest) -> RolloutPredictionResponse:
        with self._observe("predict", request.scope):
            try:
                response = SuccessPredictor(self.predictor_params).predict(
                    request.configuration, request.historical_data
                )
            except Exception:
                logger.error(
                    "Error predicting rollout success",
                    exc_info=True,
                    extra=request.scope.log_extra("predict"),
                )
                return fallback.degrade_prediction(
                    request.configuration, fallback.COMPUTATION_FAILED, request.scope
                )
            if response.prediction_source == PredictionSource.HEURISTIC:
                fallback.record_fallback(
                    "predict", response.fallback_reason or fallback.INSUFFICIENT_DATA, request.scope
                )
            return response

    def simulate(
        self,
        request: RolloutSimulationRequest,
        start: Optional[datetime] = None,
    ) -> RolloutSimulationResponse:
        with self._observe("simulate", request.scope):
            try:
                response = simulate_rollout(
                    request.configuration,
                    request.baseline_metrics,
                    request.simulation_days,
                    start=start,
                )
            except Exception:
                logger.error(
                    "Error simulating rollout",
                    exc_info=True,
                    extra=request.scope.log_extra("simulate"),
                )
                return fallback.degrade_simulation(fallback.COMPUTATION_FAILED, request.scope)

            for step in response.simulation_steps:
                rollout_ai_decisions_total.labels(
                    engine="step", action=step.ai_decision.recommended_action.value
                ).inc()
            return response

    def recommend(self, request: RolloutRecommendationRequest) -> RolloutRecommendations:
        with self._observe("recommendations", request.scope):
            try:
                return recommend_configuration(
                    list(request.current_metrics),
                    request.current_configuration,
                    request.optimization_goal,
                )
            except Exception:
                logger.error(
                    "Error generating recommendations",
                    exc_info=True,
                    extra=request.scope.log_extra("recommendations"),
                )
                return fallback.degrade_recommendations(
                    request.current_configuration, fallback.COMPUTATION_FAILED, request.scope
                )

    def analyze_realtime(self, request: RealtimeAnalysisRequest) -> RealtimeAnalysisResponse:
        with self._observe("analyze", request.scope):
            try:
                response = analyze_realtime(request.realtime_metrics, request.active_configuration)
            except Exception:
                logger.error(
                    "Error analyzing realtime metrics",
                    exc_info=True,
                    extra=request.scope.log_extra("analyze"),
                )
                response = fallback.degrade_realtime(fallback.COMPUTATION_FAILED, request.scope)

            rollout_ai_decisions_total.labels(
                engine="realtime", action=response.recommended_action.value
            ).inc()
            logger.info(
                "Realtime recommendation issued",
                extra={
                    **request.scope.log_extra("analyze"),
                    "action": response.recommended_action.value,
                },
            )
            return response

    def analyze_from_source(
        self,
        scope: FlagScope,
        configuration: RolloutConfiguration,
    ) -> RealtimeAnalysisResponse:
        """Pull the live snapshot from the configured metrics source and analyze it."""
        if self.metrics_source is None:
            raise RuntimeError("No metrics source configured")
        try:
            points = self.metrics_source.latest(
                scope.project_key, scope.environment, scope.feature_flag_key
            )
        except Exception:
            logger.error("Metrics source failed", exc_info=True, extra=scope.log_extra("analyze"))
            return fallback.degrade_realtime(fallback.COMPUTATION_FAILED, scope)
        if not points:
            return fallback.degrade_realtime(fallback.INSUFFICIENT_DATA, scope)
        return self.analyze_realtime(
            RealtimeAnalysisRequest(
                scope=scope,
                realtime_metrics=tuple(points),
                active_configuration=configuration,
            )
        )

    def train(self, request: ModelTrainingRequest) -> ModelTrainingResult:
        """Dry-run fit of the analyzers on supplied data; nothing is persisted."""
        scope = FlagScope(project_key=request.project_key)
        with self._observe("train", scope):
            evaluated = []
            outcomes = []
            details = []
            labeled_days = 0
            fitted = False
            accuracy: Optional[float] = None
            channels = 0
            anomalies: Optional[int] = None

            if request.model_type in ("all", "prediction"):
                evaluated.append("rollout_prediction")
                try:
                    fit = SuccessPredictor(self.predictor_params).fit(request.training_data)
                    labeled_days = len(fit.training.days)
                    fitted = True
                    accuracy = round(fit.training_accuracy, 4)
                except InsufficientTrainingData as exc:
                    details.append(str(exc))
                except Exception:
                    logger.error("Dry-run fit failed", exc_info=True, extra=scope.log_extra("train"))
                    details.append("model fitting failed")
                outcomes.append(fitted)

            if request.model_type in ("all", "anomaly"):
                evaluated.append("anomaly_detection")
                try:
                    channels, anomalies = self._scan_training_data(request)
                except InsufficientDataError as exc:
                    details.append(str(exc))
                except Exception:
                    logger.error("Dry-run anomaly scan failed", exc_info=True, extra=scope.log_extra("train"))
                    details.append("anomaly scan failed")
                outcomes.append(anomalies is not None)

            if all(outcomes):
                status = "completed"
            elif any(outcomes):
                status = "partial"
            else:
                status = "insufficient_data"

            return ModelTrainingResult(
                status=status,
                project_key=request.project_key,
                data_points_processed=len(request.training_data),
                labeled_days=labeled_days,
                model_fitted=fitted,
                training_accuracy=accuracy,
                models_evaluated=tuple(evaluated),
                channels_analyzed=channels,
                anomalies_found=anomalies,
                detail="; ".join(details) or None,
            )

    def _scan_training_data(self, request: ModelTrainingRequest) -> Tuple[int, int]:
        """Run the detector over the whole training window; returns (channels, alerts)."""
        points = request.training_data
        if not points:
            raise InsufficientDataError("no training data")
        stamps = [as_utc(p.timestamp) for p in points]
        latest = max(stamps)
        span_days = (latest - min(stamps)).days + 1
        response = AnomalyDetector(self.detector_params).detect(
            points, lookback_days=span_days, now=latest
        )
        channels = sum(
            1
            for series in group_by_metric(points).values()
            if len(series) >= self.detector_params.min_points
        )
        return channels, len(response.anomalies)

    def degrade(self, operation: str, request: Any, reason: str) -> Any:
        """Safe default for `operation`, used when a call exceeds its time budget."""
        handlers: Dict[str, Callable[[], Any]] = {
            "detect_anomalies": lambda: fallback.degrade_anomaly(reason, request.scope),
            "predict": lambda: fallback.degrade_prediction(
                request.configuration, reason, request.scope
            ),
            "simulate": lambda: fallback.degrade_simulation(reason, request.scope),
            "recommendations": lambda: fallback.degrade_recommendations(
                request.current_configuration, reason, request.scope
            ),
            "analyze": lambda: fallback.degrade_realtime(reason, request.scope),
        }
        return handlers[operation]()


# Global service instance
_rollout_service: Optional[RolloutIntelligenceService] = None


def get_rollout_service() -> RolloutIntelligenceService:
    """Get global rollout intelligence service."""
    global _rollout_service
    if _rollout_service is None:
        _rollout_service = RolloutIntelligenceService()
    return _rollout_service


def reset_rollout_service() -> None:
    global _rollout_service
    _rollout_service = None
