"""Shared types and the adapter interface for image analysis providers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field

BoundingBox = tuple[float, float, float, float]


class AnalysisMode(str, Enum):
    """How much work providers should put into a request."""

    QUICK = "quick"
    COMPREHENSIVE = "comprehensive"


class DetailLevel(str, Enum):
    """Image resolution hint forwarded to providers."""

    LOW = "low"
    HIGH = "high"


class ProviderCapability(str, Enum):
    """Kinds of findings a provider can contribute."""

    DESCRIPTION = "description"
    OBJECTS = "objects"
    FACES = "faces"
    TEXT = "text"
    SCENE = "scene"
    BRANDS = "brands"
    LANDMARKS = "landmarks"


class AnalysisOptions(BaseModel):
    """Caller-supplied options recognised by the pipeline."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    mode: AnalysisMode = AnalysisMode.COMPREHENSIVE
    domain: str | None = None
    force_refresh: bool = Field(default=False, alias="forceRefresh")
    detail: DetailLevel = DetailLevel.HIGH

    @classmethod
    def coerce(cls, value: AnalysisOptions | Mapping[str, Any] | None) -> AnalysisOptions:
        """Build options from a mapping, an existing instance, or ``None``."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        return cls.model_validate(dict(value))

    @property
    def normalized_domain(self) -> str | None:
        if self.domain is None:
            return None
        domain = self.domain.strip().lower()
        return domain or None

    def cache_fields(self) -> dict[str, Any]:
        """Options that influence the analysis outcome, as JSON primitives."""
        return {
            "mode": self.mode.value,
            "domain": self.normalized_domain,
            "detail": self.detail.value,
        }


@dataclass(slots=True, frozen=True)
class DetectedObject:
    """A single object detection reported by a provider."""

    name: str
    confidence: float
    bbox: BoundingBox | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "confidence": float(self.confidence)}
        if self.bbox is not None:
            payload["bbox"] = [float(value) for value in self.bbox]
        return payload


@dataclass(slots=True, frozen=True)
class Face:
    """A detected face with optional emotion scores in ``[0, 1]``."""

    confidence: float
    emotions: Mapping[str, float] = field(default_factory=dict)
    bbox: BoundingBox | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "confidence": float(self.confidence),
            "emotions": {key: float(value) for key, value in self.emotions.items()},
        }
        if self.bbox is not None:
            payload["bbox"] = [float(value) for value in self.bbox]
        return payload


@dataclass(slots=True, frozen=True)
class ProviderResult:
    """Structured findings returned by one provider for one request."""

    provider: str
    description: str | None = None
    objects: tuple[DetectedObject, ...] = ()
    faces: tuple[Face, ...] = ()
    text: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()
    scene_type: str | None = None
    mood: str | None = None
    brands: tuple[str, ...] = ()
    landmarks: tuple[str, ...] = ()
    confidence: float | None = None
    fallback: bool = False
    extras: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ProviderInfo:
    """Metadata describing an available provider implementation."""

    identifier: str
    display_name: str
    description: str
    capabilities: tuple[ProviderCapability, ...]
    tags: Sequence[str] = ()


class ProviderError(RuntimeError):
    """Raised when a provider cannot produce output for a given request."""


class ProviderTimeout(ProviderError):
    """Raised when a provider does not answer within its timeout."""


class ProviderAdapter(Protocol):
    """Interface that all analysis providers must satisfy."""

    def info(self) -> ProviderInfo:
        """Return metadata describing the provider."""

    def load(self) -> None:
        """Prepare sessions or clients before the first call."""

    def analyze(self, payload: bytes, options: AnalysisOptions) -> ProviderResult:
        """Analyse the raw image bytes and return the provider's findings."""
