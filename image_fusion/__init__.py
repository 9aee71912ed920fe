"""Top-level package for the image fusion library."""

from .config import AppConfig, ProviderSettings
from .providers.base import AnalysisOptions
from .services.pipeline import VisionPipeline
from .services.results import AnalysisResult
from .settings_store import SettingsStore

__all__ = [
    "AnalysisOptions",
    "AnalysisResult",
    "AppConfig",
    "ProviderSettings",
    "SettingsStore",
    "VisionPipeline",
]
