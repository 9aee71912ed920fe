"""Higher-level tags derived from an enriched analysis."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from ..providers.base import AnalysisMode, AnalysisOptions
from ..utils.text import normalize_label, unique
from .enricher import EnrichedAnalysis

_INDOOR_HINTS = frozenset(
    "office room kitchen table chair sofa couch bed desk indoor interior laptop "
    "conference classroom restaurant shelf".split()
)
_OUTDOOR_HINTS = frozenset(
    "sky tree street beach mountain outdoor grass road park sea ocean field forest "
    "garden building car".split()
)
_NIGHT_HINTS = frozenset("night evening dusk moon darkness neon".split())
_DAY_HINTS = frozenset("daylight sunlight sunny day morning noon".split())
_DOCUMENT_HINTS = frozenset("document paper page receipt invoice letter form".split())
_CHART_HINTS = frozenset("chart graph diagram plot table".split())
_PRESENTATION_HINTS = frozenset("slide presentation screen projector whiteboard".split())
_ART_HINTS = frozenset("art painting illustration drawing sketch artwork design".split())


@dataclass(slots=True, frozen=True)
class DomainProfile:
    name: str
    focus: tuple[str, ...]
    audience: str
    use_cases: tuple[str, ...]


DOMAIN_PROFILES: dict[str, DomainProfile] = {
    "ecommerce": DomainProfile(
        name="ecommerce",
        focus=("products", "brands", "text", "colors"),
        audience="shoppers",
        use_cases=("product listing", "catalog search", "advertising"),
    ),
    "social": DomainProfile(
        name="social",
        focus=("faces", "emotions", "activities", "locations"),
        audience="social media audiences",
        use_cases=("post captioning", "content moderation", "engagement"),
    ),
    "business": DomainProfile(
        name="business",
        focus=("documents", "text", "charts", "presentations"),
        audience="professionals",
        use_cases=("documentation", "presentation", "archiving"),
    ),
    "creative": DomainProfile(
        name="creative",
        focus=("composition", "colors", "artistic_style", "mood"),
        audience="designers and artists",
        use_cases=("mood boards", "style reference", "portfolio"),
    ),
    "general": DomainProfile(
        name="general",
        focus=("objects", "scene", "text"),
        audience="general audiences",
        use_cases=("marketing", "presentation", "documentation"),
    ),
}


@dataclass(slots=True, frozen=True)
class SemanticProfile:
    concepts: tuple[str, ...] = ()
    emotions: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    narrative: dict[str, Any] = field(default_factory=dict)
    business: dict[str, Any] = field(default_factory=dict)


def resolve_domain(domain: str | None) -> DomainProfile:
    if domain is None:
        return DOMAIN_PROFILES["general"]
    return DOMAIN_PROFILES.get(domain.strip().lower(), DOMAIN_PROFILES["general"])


class SemanticAnalyzer:
    """Pure function of the enriched analysis and the request options."""

    def analyze(self, enriched: EnrichedAnalysis, options: AnalysisOptions) -> SemanticProfile:
        fused = enriched.fused
        names = [obj.name for obj in fused.objects] + list(fused.labels)
        concepts = tuple(unique(normalize_label(name) for name in names))
        tokens = _tokens(concepts)
        quick = options.mode == AnalysisMode.QUICK
        return SemanticProfile(
            concepts=concepts,
            emotions=self._emotions(enriched),
            context=self._context(enriched, tokens),
            narrative={} if quick else self._narrative(enriched),
            business={} if quick else self._business(enriched, tokens, options.normalized_domain),
        )

    @staticmethod
    def _emotions(enriched: EnrichedAnalysis) -> dict[str, Any]:
        fused = enriched.fused
        totals: dict[str, float] = {}
        counts: dict[str, int] = {}
        for face in fused.faces:
            for emotion, score in face.emotions.items():
                totals[emotion] = totals.get(emotion, 0.0) + score
                counts[emotion] = counts.get(emotion, 0) + 1

        if totals:
            averages = {emotion: round(totals[emotion] / counts[emotion], 3) for emotion in totals}
            dominant = max(sorted(averages), key=lambda emotion: averages[emotion])
            return {
                "overall": dominant,
                "intensity": averages[dominant],
                "faces": len(fused.faces),
                "source": "faces",
                "scores": averages,
            }
        return {
            "overall": fused.mood,
            "intensity": 0.0 if fused.mood == "neutral" else 0.5,
            "faces": len(fused.faces),
            "source": "scene",
            "scores": {},
        }

    @staticmethod
    def _context(enriched: EnrichedAnalysis, tokens: frozenset[str]) -> dict[str, Any]:
        indoor_hits = len(tokens & _INDOOR_HINTS)
        outdoor_hits = len(tokens & _OUTDOOR_HINTS)
        indoor: bool | None = None
        if indoor_hits != outdoor_hits:
            indoor = indoor_hits > outdoor_hits

        time_of_day = "unknown"
        if tokens & _NIGHT_HINTS:
            time_of_day = "night"
        elif tokens & _DAY_HINTS:
            time_of_day = "day"

        return {
            "setting": enriched.fused.scene_type,
            "indoor": indoor,
            "time_of_day": time_of_day,
            "landmarks": list(enriched.landmarks),
        }

    @staticmethod
    def _narrative(enriched: EnrichedAnalysis) -> dict[str, Any]:
        fused = enriched.fused
        return {
            "story": fused.description,
            "characters": len(fused.faces),
            "setting": fused.scene_type,
        }

    @staticmethod
    def _business(
        enriched: EnrichedAnalysis, tokens: frozenset[str], domain: str | None
    ) -> dict[str, Any]:
        profile = resolve_domain(domain)
        checks = _focus_checks(enriched, tokens)
        matched = [area for area in profile.focus if checks.get(area, lambda: False)()]
        ratio = len(matched) / len(profile.focus)
        if ratio >= 0.75:
            value = "high"
        elif ratio >= 0.4:
            value = "medium"
        else:
            value = "low"
        return {
            "domain": profile.name,
            "focus": list(profile.focus),
            "signals": matched,
            "commercial_value": value,
            "target_audience": profile.audience,
            "use_cases": list(profile.use_cases),
        }


def _tokens(concepts: Iterable[str]) -> frozenset[str]:
    return frozenset(word for concept in concepts for word in concept.split())


def _focus_checks(
    enriched: EnrichedAnalysis, tokens: frozenset[str]
) -> dict[str, Callable[[], bool]]:
    fused = enriched.fused
    return {
        "products": lambda: bool(fused.objects) and not fused.fallback,
        "brands": lambda: bool(enriched.brands),
        "text": lambda: bool(enriched.extracted_text.get("detected")),
        "colors": lambda: bool(enriched.colors.get("palette")),
        "faces": lambda: bool(fused.faces),
        "emotions": lambda: any(face.emotions for face in fused.faces),
        "activities": lambda: bool(fused.labels),
        "locations": lambda: bool(enriched.landmarks) or fused.scene_type != "general",
        "documents": lambda: bool(tokens & _DOCUMENT_HINTS),
        "charts": lambda: bool(tokens & _CHART_HINTS),
        "presentations": lambda: bool(tokens & _PRESENTATION_HINTS),
        "composition": lambda: enriched.composition.get("balance") is not None,
        "artistic_style": lambda: bool(tokens & _ART_HINTS),
        "mood": lambda: fused.mood != "neutral",
        "objects": lambda: bool(fused.objects) and not fused.fallback,
        "scene": lambda: fused.scene_type != "general",
    }
