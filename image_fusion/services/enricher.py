"""Secondary attributes derived from a fused analysis and the image pixels."""

from __future__ import annotations

import io
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from PIL import Image, ImageChops, ImageOps, ImageStat

from ..utils import colors
from ..utils.text import detect_language
from .fuser import FusedAnalysis

logger = logging.getLogger(__name__)

T = TypeVar("T")

_THIRDS = (1 / 3, 2 / 3)
_FOCAL_COLUMNS = ("left", "center", "right")
_FOCAL_ROWS = ("top", "middle", "bottom")


@dataclass(slots=True, frozen=True)
class EnrichedAnalysis:
    """A fused analysis plus colour, composition and text attributes."""

    fused: FusedAnalysis
    colors: dict[str, Any] = field(default_factory=dict)
    composition: dict[str, Any] = field(default_factory=dict)
    extracted_text: dict[str, Any] = field(default_factory=dict)
    brands: tuple[str, ...] = ()
    landmarks: tuple[str, ...] = ()


def empty_colors() -> dict[str, Any]:
    return {"dominant": [], "palette": [], "mood": None, "brightness": None}


def empty_composition() -> dict[str, Any]:
    return {"balance": None, "focus_points": [], "rule_of_thirds": False, "symmetry": None}


def empty_text() -> dict[str, Any]:
    return {"detected": False, "text": "", "language": None, "confidence": 0.0}


class ContextEnricher:
    """Adds derived attributes; a failing attribute is emitted empty."""

    def __init__(self, *, palette_size: int = 3) -> None:
        self._palette_size = palette_size

    def enrich(self, fused: FusedAnalysis, payload: bytes | None = None) -> EnrichedAnalysis:
        image = self._open(payload)
        try:
            return EnrichedAnalysis(
                fused=fused,
                colors=self._safely("colors", empty_colors, lambda: self._colors(image)),
                composition=self._safely(
                    "composition", empty_composition, lambda: self._composition(fused, image)
                ),
                extracted_text=self._safely("text", empty_text, lambda: self._text(fused)),
                brands=tuple(fused.brands),
                landmarks=tuple(fused.landmarks),
            )
        finally:
            if image is not None:
                image.close()

    @staticmethod
    def _safely(name: str, empty: Callable[[], T], compute: Callable[[], T]) -> T:
        try:
            return compute()
        except Exception as exc:
            logger.warning("Could not derive %s attributes: %s", name, exc)
            return empty()

    @staticmethod
    def _open(payload: bytes | None) -> Image.Image | None:
        if not payload:
            return None
        try:
            with Image.open(io.BytesIO(payload)) as raw:
                return raw.convert("RGB")
        except (OSError, ValueError) as exc:
            logger.warning("Could not decode image for enrichment: %s", exc)
            return None

    def _colors(self, image: Image.Image | None) -> dict[str, Any]:
        if image is None:
            return empty_colors()
        exposure, _ = colors.brightness_level(image)
        families = [name for name, _ in colors.palette(image, limit=self._palette_size)]
        return {
            "dominant": [hex_value for hex_value, _ in colors.dominant_colors(image)],
            "palette": families,
            "mood": colors.color_mood(families, exposure),
            "brightness": exposure,
        }

    def _composition(self, fused: FusedAnalysis, image: Image.Image | None) -> dict[str, Any]:
        boxed = [obj for obj in fused.objects if obj.bbox is not None]
        composition = empty_composition()
        if image is not None:
            composition["symmetry"] = _mirror_symmetry(image)
        if not boxed:
            return composition

        centers: list[tuple[float, float, float]] = []
        for obj in boxed:
            x1, y1, x2, y2 = obj.bbox
            centers.append(((x1 + x2) / 2, (y1 + y2) / 2, obj.confidence))
        total = sum(conf for _, _, conf in centers)
        if total > 0:
            cx = sum(x * conf for x, _, conf in centers) / total
            cy = sum(y * conf for _, y, conf in centers) / total
        else:
            cx = sum(x for x, _, _ in centers) / len(centers)
            cy = sum(y for _, y, _ in centers) / len(centers)

        ranked = sorted(centers, key=lambda item: item[2], reverse=True)[:3]
        composition["balance"] = _balance(cx, cy)
        composition["focus_points"] = list(dict.fromkeys(_focal_cell(x, y) for x, y, _ in ranked))
        composition["rule_of_thirds"] = any(_near_thirds(x, y) for x, y, _ in ranked)
        return composition

    @staticmethod
    def _text(fused: FusedAnalysis) -> dict[str, Any]:
        text = "\n".join(chunk for chunk in fused.text if chunk.strip())
        if not text:
            return empty_text()
        language, _ = detect_language(text)
        return {
            "detected": True,
            "text": text,
            "language": language,
            "confidence": round(fused.confidence, 3),
        }


def _mirror_symmetry(image: Image.Image) -> float:
    """Score left/right mirror similarity of the greyscale image in ``[0, 1]``."""
    gray = image.convert("L").resize((64, 64))
    diff = ImageChops.difference(gray, ImageOps.mirror(gray))
    return round(1.0 - ImageStat.Stat(diff).mean[0] / 255.0, 3)


def _balance(cx: float, cy: float) -> str:
    dx, dy = cx - 0.5, cy - 0.5
    if abs(dx) < 0.1 and abs(dy) < 0.1:
        return "centered"
    if abs(dx) >= abs(dy):
        return "left-weighted" if dx < 0 else "right-weighted"
    return "top-weighted" if dy < 0 else "bottom-weighted"


def _focal_cell(x: float, y: float) -> str:
    column = _FOCAL_COLUMNS[min(int(x * 3), 2)]
    row = _FOCAL_ROWS[min(int(y * 3), 2)]
    if (row, column) == ("middle", "center"):
        return "center"
    return f"{row}_{column}"


def _near_thirds(x: float, y: float, tolerance: float = 0.1) -> bool:
    return any(abs(x - tx) <= tolerance for tx in _THIRDS) and any(
        abs(y - ty) <= tolerance for ty in _THIRDS
    )
