"""
Rollout AI - service entry point
Decision support for progressive feature-flag rollouts
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from prometheus_client import make_asgi_app

from rollout_ai.api import api_router
from rollout_ai.core.config import get_settings
from rollout_ai.core.rollout.service import get_rollout_service
from rollout_ai.utils.logging import setup_logging

settings = get_settings()

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle."""
    logger.info("Starting Rollout AI...")
    service = get_rollout_service()
    logger.info(
        "Rollout analyzers ready (anomaly threshold=%.2f, min training days=%d)",
        service.detector_params.threshold,
        service.predictor_params.min_training_days,
    )
    yield
    logger.info("Shutting down Rollout AI...")


app = FastAPI(
    title="Rollout AI",
    description="Anomaly detection, success prediction and realtime decisions for feature-flag rollouts",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

app.include_router(api_router, prefix="/api")

if settings.METRICS_ENABLED:
    app.mount("/metrics", make_asgi_app())


@app.get("/")
async def root():
    return {
        "name": "Rollout AI",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health")
async def health_check():
    """Process health with the runtime limits operators usually ask about."""
    current = get_settings()
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "runtime": {
            "python_version": sys.version.split(" ")[0],
            "metrics_enabled": current.METRICS_ENABLED,
        },
        "config": {
            "engine_timeout_seconds": current.ENGINE_TIMEOUT_SECONDS,
            "anomaly_lookback_days": current.ANOMALY_LOOKBACK_DAYS,
            "predictor_min_training_days": current.PREDICTOR_MIN_TRAINING_DAYS,
        },
    }


if __name__ == "__main__":
    uvicorn.run(
        "rollout_ai.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=settings.WORKERS,
        log_level=settings.LOG_LEVEL.lower(),
    )
