"""Validation pipeline: engine, result cache, per-stage validators and the hook orchestrator."""

from hookgate.pipeline.cache import CacheError, ResultCache
from hookgate.pipeline.engine import (
    PipelineOutcome,
    ValidationPipeline,
    ValidatorSpec,
    stage_succeeded,
)
from hookgate.pipeline.environment import HookEnvironment
from hookgate.pipeline.orchestrator import HookOrchestrator
from hookgate.pipeline.reports import RollbackRecommendation, rollback_recommendations

__all__ = [
    "CacheError",
    "HookEnvironment",
    "HookOrchestrator",
    "PipelineOutcome",
    "ResultCache",
    "RollbackRecommendation",
    "ValidationPipeline",
    "ValidatorSpec",
    "rollback_recommendations",
    "stage_succeeded",
]
