"""API router aggregation."""
from fastapi import APIRouter

from rollout_ai.api.v1 import rollout_ai

api_router = APIRouter()

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(rollout_ai.router, prefix="/rollout-ai", tags=["rollout-ai"])

api_router.include_router(v1_router)

__all__ = ["api_router"]
