"""Service layer: validation, caching, orchestration, fusion and enrichment."""

from .cache import CacheStore, make_cache_key
from .enricher import ContextEnricher, EnrichedAnalysis
from .fuser import FusedAnalysis, FusionEmptyError, ResultFuser
from .metrics import MetricsCollector, MetricsSnapshot
from .orchestrator import OrchestrationOutcome, ProviderFailure, ProviderOrchestrator
from .pipeline import VisionPipeline
from .results import AnalysisResult, AnalysisStatus
from .semantics import SemanticAnalyzer, SemanticProfile
from .validator import (
    AnalysisRequest,
    ImageProperties,
    ImageValidationError,
    ImageValidator,
    ValidationVerdict,
)

__all__ = [
    "AnalysisRequest",
    "AnalysisResult",
    "AnalysisStatus",
    "CacheStore",
    "ContextEnricher",
    "EnrichedAnalysis",
    "FusedAnalysis",
    "FusionEmptyError",
    "ImageProperties",
    "ImageValidationError",
    "ImageValidator",
    "MetricsCollector",
    "MetricsSnapshot",
    "OrchestrationOutcome",
    "ProviderFailure",
    "ProviderOrchestrator",
    "ResultFuser",
    "SemanticAnalyzer",
    "SemanticProfile",
    "ValidationVerdict",
    "VisionPipeline",
    "make_cache_key",
]
