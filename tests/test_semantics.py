"""Tests for semantic tagging and domain insights."""

from __future__ import annotations

from image_fusion.providers.base import AnalysisOptions, DetectedObject, Face, ProviderResult
from image_fusion.services.enricher import ContextEnricher
from image_fusion.services.fuser import ResultFuser
from image_fusion.services.semantics import SemanticAnalyzer, resolve_domain


def _enriched(**kwargs):
    result = ProviderResult(provider="a", confidence=0.8, **kwargs)
    return ContextEnricher().enrich(ResultFuser().fuse([result]))


def test_concepts_are_normalised_and_unique():
    enriched = _enriched(
        objects=(
            DetectedObject(name="Coffee_Cup", confidence=0.9),
            DetectedObject(name="coffee cup", confidence=0.4),
        ),
        labels=("Desk",),
    )
    profile = SemanticAnalyzer().analyze(enriched, AnalysisOptions())

    assert profile.concepts == ("coffee cup", "desk")


def test_emotions_from_faces():
    enriched = _enriched(
        faces=(
            Face(confidence=0.9, emotions={"joy": 0.9, "anger": 0.1}),
            Face(confidence=0.8, emotions={"joy": 0.7, "anger": 0.3}),
        )
    )
    emotions = SemanticAnalyzer().analyze(enriched, AnalysisOptions()).emotions

    assert emotions["overall"] == "joy"
    assert emotions["intensity"] == 0.8
    assert emotions["faces"] == 2
    assert emotions["source"] == "faces"


def test_emotions_fall_back_to_scene_mood():
    emotions = SemanticAnalyzer().analyze(_enriched(mood="calm"), AnalysisOptions()).emotions

    assert emotions["overall"] == "calm"
    assert emotions["source"] == "scene"


def test_context_hints():
    enriched = _enriched(
        objects=(DetectedObject(name="desk", confidence=0.9),),
        labels=("office", "night"),
        scene_type="office",
        landmarks=("Big Ben",),
    )
    context = SemanticAnalyzer().analyze(enriched, AnalysisOptions()).context

    assert context["setting"] == "office"
    assert context["indoor"] is True
    assert context["time_of_day"] == "night"
    assert context["landmarks"] == ["Big Ben"]


def test_business_insights_for_domain():
    enriched = _enriched(
        objects=(DetectedObject(name="sneaker", confidence=0.9),),
        brands=("Acme",),
        text=("SALE",),
    )
    business = SemanticAnalyzer().analyze(
        enriched, AnalysisOptions(domain=" Ecommerce ")
    ).business

    assert business["domain"] == "ecommerce"
    assert business["signals"] == ["products", "brands", "text"]
    assert business["commercial_value"] == "high"
    assert business["target_audience"] == "shoppers"


def test_unknown_domain_uses_general_profile():
    assert resolve_domain("underwater").name == "general"
    assert resolve_domain(None).name == "general"


def test_quick_mode_omits_narrative_and_business():
    enriched = _enriched(description="A desk", scene_type="office")
    profile = SemanticAnalyzer().analyze(enriched, AnalysisOptions(mode="quick"))

    assert profile.narrative == {}
    assert profile.business == {}
    assert profile.context["setting"] == "office"


def test_comprehensive_mode_builds_narrative():
    enriched = _enriched(description="A desk", scene_type="office")
    narrative = SemanticAnalyzer().analyze(enriched, AnalysisOptions()).narrative

    assert narrative == {"story": "A desk", "characters": 0, "setting": "office"}
