"""A network-free heuristic analyzer used when every provider fails."""

from __future__ import annotations

import io
import logging

from PIL import Image

from ...utils import colors
from ..base import (
    AnalysisOptions,
    DetectedObject,
    ProviderCapability,
    ProviderInfo,
    ProviderResult,
)
from ..registry import ProviderRegistry

logger = logging.getLogger(__name__)

DEGRADED_DESCRIPTION = "Image received and processed by the local fallback analyzer"


class DegradedAnalyzer:
    """Produces a minimal, low-confidence result from image statistics."""

    def __init__(self, confidence: float = 0.3) -> None:
        self._confidence = confidence
        self._info = ProviderInfo(
            identifier="builtin.degraded",
            display_name="Local Fallback",
            description="Describes brightness, orientation and palette without external services.",
            capabilities=(ProviderCapability.DESCRIPTION, ProviderCapability.SCENE),
            tags=("local", "no-internet", "fallback"),
        )

    def info(self) -> ProviderInfo:
        return self._info

    def load(self) -> None:
        # Nothing to initialise for the heuristic analyzer.
        return

    def analyze(self, payload: bytes, options: AnalysisOptions) -> ProviderResult:
        """Describe the image; never raises, even for undecodable payloads."""
        description = DEGRADED_DESCRIPTION
        labels: list[str] = []
        mood = "neutral"
        try:
            with Image.open(io.BytesIO(payload)) as image:
                image.load()
                exposure, _ = colors.brightness_level(image)
                shape = colors.orientation(image)
                families = [name for name, _ in colors.palette(image, limit=2)]
                width, height = image.size
        except Exception as exc:
            logger.debug("Local fallback could not decode image: %s", exc)
        else:
            labels = [exposure, shape, *families]
            mood = colors.color_mood(families, exposure)
            tones = " and ".join(families) or "mixed"
            description = (
                f"{DEGRADED_DESCRIPTION}: a {exposure} {shape} image "
                f"with {tones} tones ({width}x{height})"
            )

        return ProviderResult(
            provider=self._info.identifier,
            description=description,
            objects=(
                DetectedObject(
                    name="image_content",
                    confidence=self._confidence,
                    bbox=(0.0, 0.0, 1.0, 1.0),
                ),
            ),
            labels=tuple(labels),
            scene_type="general",
            mood=mood,
            confidence=self._confidence,
            fallback=True,
            extras={"note": "Local fallback analysis - limited capabilities"},
        )


def _register() -> None:
    ProviderRegistry.register("builtin.degraded", lambda settings=None: DegradedAnalyzer())


_register()
