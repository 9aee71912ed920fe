"""Google Cloud Vision integration via the ``images:annotate`` REST endpoint."""

from __future__ import annotations

import logging
from typing import Any

from ..config import ProviderSettings
from ..utils.text import normalize_label, unique
from .base import (
    AnalysisMode,
    AnalysisOptions,
    DetectedObject,
    Face,
    ProviderCapability,
    ProviderError,
    ProviderInfo,
    ProviderResult,
)
from .registry import ProviderRegistry
from .vision_remote import BaseRemoteVisionProvider, _encode_payload

logger = logging.getLogger(__name__)

LIKELIHOOD_SCORES = {
    "UNKNOWN": 0.0,
    "VERY_UNLIKELY": 0.05,
    "UNLIKELY": 0.25,
    "POSSIBLE": 0.5,
    "LIKELY": 0.75,
    "VERY_LIKELY": 0.95,
}

_FACE_EMOTIONS = {
    "joyLikelihood": "joy",
    "sorrowLikelihood": "sorrow",
    "angerLikelihood": "anger",
    "surpriseLikelihood": "surprise",
}

_COMPREHENSIVE_FEATURES = (
    "LABEL_DETECTION",
    "OBJECT_LOCALIZATION",
    "FACE_DETECTION",
    "TEXT_DETECTION",
    "LOGO_DETECTION",
    "LANDMARK_DETECTION",
)
_QUICK_FEATURES = ("LABEL_DETECTION", "OBJECT_LOCALIZATION")


class GoogleVisionProvider(BaseRemoteVisionProvider):
    """Maps Cloud Vision annotations onto the common provider result."""

    default_base_url = "https://vision.googleapis.com/v1"
    default_model = "builtin/stable"

    def __init__(self, settings: ProviderSettings | None = None, *, max_results: int = 20) -> None:
        super().__init__(
            identifier="google.vision",
            display_name="Google Cloud Vision",
            description="Label, object, face, text, logo and landmark detection.",
            backend="google",
            settings=settings,
            tags=("remote", "google", "vision", "http"),
        )
        self._info = ProviderInfo(
            identifier=self._info.identifier,
            display_name=self._info.display_name,
            description=self._info.description,
            capabilities=(
                ProviderCapability.OBJECTS,
                ProviderCapability.FACES,
                ProviderCapability.TEXT,
                ProviderCapability.SCENE,
                ProviderCapability.BRANDS,
                ProviderCapability.LANDMARKS,
            ),
            tags=self._info.tags,
        )
        self._max_results = max_results

    def analyze(self, payload: bytes, options: AnalysisOptions) -> ProviderResult:
        if not self._settings.api_key:
            raise ProviderError("Google Cloud Vision requires an API key.")
        quick = options.mode == AnalysisMode.QUICK
        features = _QUICK_FEATURES if quick else _COMPREHENSIVE_FEATURES
        max_results = min(self._max_results, 5) if quick else self._max_results
        body = {
            "requests": [
                {
                    "image": {"content": _encode_payload(payload)},
                    "features": [
                        {"type": feature, "maxResults": max_results, "model": self.model}
                        for feature in features
                    ],
                }
            ]
        }
        data = self._session_post(f"{self.base_url}/images:annotate", body).json()
        responses = data.get("responses")
        if not isinstance(responses, list) or not responses:
            raise ProviderError("Google Cloud Vision returned no annotations.")
        annotation = responses[0]
        if "error" in annotation:
            message = annotation["error"].get("message", annotation["error"])
            raise ProviderError(f"Google Cloud Vision error: {message}")
        return self._build_annotation_result(annotation)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._settings.api_key:
            headers["X-Goog-Api-Key"] = self._settings.api_key
        return headers

    def _build_annotation_result(self, annotation: dict[str, Any]) -> ProviderResult:
        labels = [
            (normalize_label(item.get("description", "")), float(item.get("score", 0.0)))
            for item in annotation.get("labelAnnotations", [])
        ]
        labels = [(name, score) for name, score in labels if name]

        objects = tuple(
            DetectedObject(
                name=normalize_label(item["name"]),
                confidence=float(item.get("score", 0.0)),
                bbox=_normalized_bbox(item.get("boundingPoly", {})),
            )
            for item in annotation.get("localizedObjectAnnotations", [])
            if item.get("name")
        )

        faces = tuple(
            Face(
                confidence=float(item.get("detectionConfidence", 0.0)),
                emotions={
                    emotion: LIKELIHOOD_SCORES.get(item.get(field, "UNKNOWN"), 0.0)
                    for field, emotion in _FACE_EMOTIONS.items()
                },
            )
            for item in annotation.get("faceAnnotations", [])
        )

        text: tuple[str, ...] = ()
        text_annotations = annotation.get("textAnnotations", [])
        if text_annotations:
            # The first entry holds the full detected text block.
            full_text = str(text_annotations[0].get("description", "")).strip()
            text = (full_text,) if full_text else ()

        scores = [score for _, score in labels] + [obj.confidence for obj in objects]
        confidence = sum(scores) / len(scores) if scores else None

        return ProviderResult(
            provider=self._info.identifier,
            objects=objects,
            faces=faces,
            text=text,
            labels=tuple(unique(name for name, _ in labels)),
            scene_type=labels[0][0].replace(" ", "_") if labels else None,
            brands=_descriptions(annotation.get("logoAnnotations", [])),
            landmarks=_descriptions(annotation.get("landmarkAnnotations", [])),
            confidence=confidence,
            extras={"backend": self._backend},
        )

    def _fetch_remote_model_metadata(self) -> list[tuple[str, dict[str, Any]]]:
        return [(self.model, {"families": ["vision"]})]


def _normalized_bbox(poly: dict[str, Any]) -> tuple[float, float, float, float] | None:
    vertices = poly.get("normalizedVertices") or []
    if not vertices:
        return None
    xs = [float(vertex.get("x", 0.0)) for vertex in vertices]
    ys = [float(vertex.get("y", 0.0)) for vertex in vertices]
    return (min(xs), min(ys), max(xs), max(ys))


def _descriptions(items: list[dict[str, Any]]) -> tuple[str, ...]:
    return tuple(unique(str(item.get("description", "")).strip() for item in items))


def _register() -> None:
    ProviderRegistry.register(
        "google.vision", lambda settings=None: GoogleVisionProvider(settings=settings)
    )


_register()
