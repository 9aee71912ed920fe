"""The result shape returned to callers for every analysis request."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any


class AnalysisStatus(str, Enum):
    """Terminal state of a request."""

    DONE = "done"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class ResultSummary:
    description: str = "Image analysis unavailable"
    main_objects: tuple[dict[str, Any], ...] = ()
    overall_confidence: float = 0.0
    scene_type: str = "unknown"
    mood: str = "neutral"


@dataclass(slots=True, frozen=True)
class ResultDetails:
    objects: tuple[dict[str, Any], ...] = ()
    faces: tuple[dict[str, Any], ...] = ()
    text: dict[str, Any] = field(default_factory=dict)
    colors: dict[str, Any] = field(default_factory=dict)
    composition: dict[str, Any] = field(default_factory=dict)
    brands: tuple[str, ...] = ()
    landmarks: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class ResultSemantics:
    concepts: tuple[str, ...] = ()
    emotions: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    narrative: dict[str, Any] = field(default_factory=dict)
    business_insights: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ResultMetadata:
    processing_time: float = 0.0
    providers_used: tuple[str, ...] = ()
    provider_failures: tuple[dict[str, Any], ...] = ()
    image_properties: dict[str, Any] | None = None
    confidence_breakdown: tuple[dict[str, Any], ...] = ()
    version: str = ""
    cache_key: str | None = None


@dataclass(slots=True, frozen=True)
class AnalysisResult:
    """Structurally complete outcome of one request, successful or not."""

    id: str
    timestamp: str
    status: AnalysisStatus
    summary: ResultSummary = field(default_factory=ResultSummary)
    details: ResultDetails = field(default_factory=ResultDetails)
    semantics: ResultSemantics = field(default_factory=ResultSemantics)
    metadata: ResultMetadata = field(default_factory=ResultMetadata)
    fallback: bool = False
    message: str | None = None

    @property
    def error(self) -> bool:
        return self.status != AnalysisStatus.DONE

    @property
    def rejected(self) -> bool:
        return self.status == AnalysisStatus.REJECTED

    def snapshot(self) -> AnalysisResult:
        """Return an equal result that shares no mutable state with this one."""
        return replace(
            self,
            summary=_detached(self.summary),
            details=_detached(self.details),
            semantics=_detached(self.semantics),
            metadata=_detached(self.metadata),
        )

    def as_dict(self) -> dict[str, Any]:
        """Serialize the result to JSON-compatible primitives."""
        summary, details = self.summary, self.details
        semantics, metadata = self.semantics, self.metadata
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "status": self.status.value,
            "error": self.error,
            "fallback": self.fallback,
            "message": self.message,
            "summary": {
                "description": summary.description,
                "main_objects": list(summary.main_objects),
                "overall_confidence": summary.overall_confidence,
                "scene_type": summary.scene_type,
                "mood": summary.mood,
            },
            "details": {
                "objects": list(details.objects),
                "faces": list(details.faces),
                "text": dict(details.text),
                "colors": dict(details.colors),
                "composition": dict(details.composition),
                "brands": list(details.brands),
                "landmarks": list(details.landmarks),
            },
            "semantics": {
                "concepts": list(semantics.concepts),
                "emotions": dict(semantics.emotions),
                "context": dict(semantics.context),
                "narrative": dict(semantics.narrative),
                "business_insights": dict(semantics.business_insights),
            },
            "metadata": {
                "processing_time": metadata.processing_time,
                "providers_used": list(metadata.providers_used),
                "provider_failures": list(metadata.provider_failures),
                "image_properties": metadata.image_properties,
                "confidence_breakdown": list(metadata.confidence_breakdown),
                "version": metadata.version,
                "cache_key": metadata.cache_key,
            },
        }


def _detached(part: Any) -> Any:
    copies = {item.name: copy.deepcopy(getattr(part, item.name)) for item in fields(part)}
    return replace(part, **copies)
