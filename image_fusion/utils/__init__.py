"""Utility helpers for the image fusion library."""

from .text import detect_language, normalize_label, unique

__all__ = ["detect_language", "normalize_label", "unique"]
