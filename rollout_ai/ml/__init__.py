"""Statistical and learned analyzers used by the rollout engine."""
