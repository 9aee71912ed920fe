"""Tests for merging provider results."""

from __future__ import annotations

import pytest
from image_fusion.providers.base import DetectedObject, Face, ProviderResult
from image_fusion.services.fuser import (
    DEFAULT_DESCRIPTION,
    FusionEmptyError,
    ResultFuser,
    dedup_key,
    weighted_confidence,
)


def _result(provider, objects=(), confidence=0.8, **kwargs):
    return ProviderResult(
        provider=provider,
        objects=tuple(DetectedObject(name=name, confidence=conf) for name, conf in objects),
        confidence=confidence,
        **kwargs,
    )


def test_empty_input_raises():
    with pytest.raises(FusionEmptyError):
        ResultFuser().fuse([])


def test_single_result_is_passed_through():
    only = _result(
        "a",
        objects=[("chair", 0.4), ("Chair", 0.41), ("lamp", 0.9)],
        confidence=0.7,
        description="A room",
        scene_type="office",
    )
    fused = ResultFuser(max_objects=1).fuse([only])

    assert [obj.name for obj in fused.objects] == ["chair", "Chair", "lamp"]
    assert fused.confidence == 0.7
    assert fused.description == "A room"
    assert fused.scene_type == "office"
    assert fused.mood == "neutral"


def test_duplicate_objects_keep_highest_confidence():
    fused = ResultFuser().fuse(
        [_result("a", objects=[("chair", 0.91)]), _result("b", objects=[("Chair", 0.93)])]
    )

    assert len(fused.objects) == 1
    assert fused.objects[0].confidence == 0.93
    assert fused.objects[0].name == "Chair"


def test_distinct_confidence_buckets_are_kept():
    fused = ResultFuser().fuse(
        [_result("a", objects=[("chair", 0.3)]), _result("b", objects=[("chair", 0.9)])]
    )
    assert [obj.confidence for obj in fused.objects] == [0.9, 0.3]


def test_objects_are_sorted_and_capped():
    many = [(f"item{index}", index / 30) for index in range(25)]
    fused = ResultFuser(max_objects=20).fuse([_result("a", objects=many), _result("b")])

    confidences = [obj.confidence for obj in fused.objects]
    assert len(confidences) == 20
    assert confidences == sorted(confidences, reverse=True)


def test_weighted_confidence():
    fused = ResultFuser().fuse([_result("a", confidence=0.9), _result("b", confidence=0.3)])

    assert fused.confidence == pytest.approx((0.81 + 0.09) / 1.2)
    assert [share.provider for share in fused.confidence_breakdown] == ["a", "b"]
    assert weighted_confidence([]) == 0.0
    assert weighted_confidence([0.0, 0.0]) == 0.0


def test_first_non_empty_fields_win():
    fused = ResultFuser().fuse(
        [
            _result("a", description="  ", mood=None, labels=("desk",)),
            _result(
                "b",
                description="An office",
                mood="calm",
                scene_type="office",
                labels=("desk", "lamp"),
                faces=(Face(confidence=0.8),),
                text=("OPEN",),
                brands=("Acme",),
            ),
            _result("c", description="Ignored", mood="tense", brands=("Acme",)),
        ]
    )

    assert fused.description == "An office"
    assert fused.mood == "calm"
    assert fused.scene_type == "office"
    assert fused.labels == ("desk", "lamp")
    assert len(fused.faces) == 1
    assert fused.text == ("OPEN",)
    assert fused.brands == ("Acme",)


def test_defaults_when_no_provider_describes():
    fused = ResultFuser().fuse([_result("a"), _result("b")])

    assert fused.description == DEFAULT_DESCRIPTION
    assert fused.scene_type == "general"
    assert fused.mood == "neutral"


def test_dedup_key_rounds_to_tenths():
    assert dedup_key(DetectedObject(name="Coffee_Cup", confidence=0.86)) == ("coffee cup", 9)
    assert dedup_key(DetectedObject(name="cup", confidence=0.84)) == ("cup", 8)
