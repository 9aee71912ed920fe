"""Providers that run locally without external services."""

from .degraded import DegradedAnalyzer

__all__ = ["DegradedAnalyzer"]
