"""API dependencies."""

from rollout_ai.core.rollout.service import RolloutIntelligenceService, get_rollout_service


def get_service() -> RolloutIntelligenceService:
    return get_rollout_service()
