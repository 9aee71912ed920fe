"""Provider registry, adapter interface and built-in backends."""

from .base import (
    AnalysisMode,
    AnalysisOptions,
    DetailLevel,
    DetectedObject,
    Face,
    ProviderAdapter,
    ProviderCapability,
    ProviderError,
    ProviderInfo,
    ProviderResult,
    ProviderTimeout,
)
from .builtin import DegradedAnalyzer
from .google_vision import GoogleVisionProvider
from .registry import ProviderRegistry
from .vision_remote import OllamaVisionProvider, OpenAIVisionProvider

__all__ = [
    "AnalysisMode",
    "AnalysisOptions",
    "DegradedAnalyzer",
    "DetailLevel",
    "DetectedObject",
    "Face",
    "GoogleVisionProvider",
    "OllamaVisionProvider",
    "OpenAIVisionProvider",
    "ProviderAdapter",
    "ProviderCapability",
    "ProviderError",
    "ProviderInfo",
    "ProviderRegistry",
    "ProviderResult",
    "ProviderTimeout",
]
