"""Merge the findings of several providers into one analysis."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ..providers.base import DetectedObject, Face, ProviderResult
from ..utils.text import normalize_label, unique

DEFAULT_DESCRIPTION = "Image analysis completed"


class FusionEmptyError(RuntimeError):
    """Raised when fusion is asked to merge zero provider results."""


@dataclass(slots=True, frozen=True)
class ConfidenceShare:
    provider: str
    confidence: float

    def as_dict(self) -> dict[str, Any]:
        return {"provider": self.provider, "confidence": self.confidence}


@dataclass(slots=True, frozen=True)
class FusedAnalysis:
    """The merged view over every provider that answered a request."""

    description: str
    objects: tuple[DetectedObject, ...]
    faces: tuple[Face, ...]
    text: tuple[str, ...]
    labels: tuple[str, ...]
    scene_type: str
    mood: str
    brands: tuple[str, ...]
    landmarks: tuple[str, ...]
    confidence: float
    confidence_breakdown: tuple[ConfidenceShare, ...]
    fallback: bool = False


def dedup_key(obj: DetectedObject) -> tuple[str, int]:
    """Group detections by normalised name and a 0.1-wide confidence bucket."""
    return normalize_label(obj.name), math.floor(obj.confidence * 10 + 0.5)


def weighted_confidence(confidences: Sequence[float]) -> float:
    """Mean of the confidences, each weighted by itself."""
    total = sum(confidences)
    if total <= 0:
        return 0.0
    return sum(value * value for value in confidences) / total


class ResultFuser:
    """Combines ordered provider results into a :class:`FusedAnalysis`."""

    def __init__(self, *, max_objects: int = 20) -> None:
        self._max_objects = max_objects

    def fuse(self, results: Sequence[ProviderResult]) -> FusedAnalysis:
        if not results:
            raise FusionEmptyError("No provider results available to fuse")

        breakdown = tuple(
            ConfidenceShare(provider=result.provider, confidence=_confidence(result))
            for result in results
        )
        fallback = all(result.fallback for result in results)

        if len(results) == 1:
            only = results[0]
            return FusedAnalysis(
                description=only.description or DEFAULT_DESCRIPTION,
                objects=tuple(only.objects),
                faces=tuple(only.faces),
                text=tuple(only.text),
                labels=tuple(only.labels),
                scene_type=only.scene_type or "general",
                mood=only.mood or "neutral",
                brands=tuple(only.brands),
                landmarks=tuple(only.landmarks),
                confidence=breakdown[0].confidence,
                confidence_breakdown=breakdown,
                fallback=fallback,
            )

        return FusedAnalysis(
            description=_first(result.description for result in results) or DEFAULT_DESCRIPTION,
            objects=self._merge_objects(results),
            faces=tuple(face for result in results for face in result.faces),
            text=tuple(text for result in results for text in result.text),
            labels=tuple(unique(label for result in results for label in result.labels)),
            scene_type=_first(result.scene_type for result in results) or "general",
            mood=_first(result.mood for result in results) or "neutral",
            brands=tuple(unique(brand for result in results for brand in result.brands)),
            landmarks=tuple(unique(mark for result in results for mark in result.landmarks)),
            confidence=weighted_confidence([share.confidence for share in breakdown]),
            confidence_breakdown=breakdown,
            fallback=fallback,
        )

    def _merge_objects(self, results: Sequence[ProviderResult]) -> tuple[DetectedObject, ...]:
        best: dict[tuple[str, int], DetectedObject] = {}
        for result in results:
            for obj in result.objects:
                key = dedup_key(obj)
                current = best.get(key)
                if current is None or obj.confidence > current.confidence:
                    best[key] = obj
        # sorted() is stable, so equal confidences keep first-seen order.
        ranked = sorted(best.values(), key=lambda obj: obj.confidence, reverse=True)
        return tuple(ranked[: self._max_objects])


def _confidence(result: ProviderResult) -> float:
    return float(result.confidence) if result.confidence is not None else 0.0


def _first(values) -> str | None:
    for value in values:
        if value and value.strip():
            return value.strip()
    return None
