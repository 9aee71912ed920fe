"""Tests for concurrent provider fan-out."""

from __future__ import annotations

import threading

import pytest
from image_fusion.config import AppConfig
from image_fusion.providers.base import (
    DetectedObject,
    ProviderCapability,
    ProviderError,
    ProviderInfo,
    ProviderResult,
)
from image_fusion.providers.builtin.degraded import DegradedAnalyzer
from image_fusion.services.orchestrator import ProviderFailure, ProviderOrchestrator
from image_fusion.services.validator import ImageValidator


class StubProvider:
    def __init__(self, identifier, *, result=None, error=None, gate=None, confidence=0.9):
        self._info = ProviderInfo(
            identifier=identifier,
            display_name=identifier,
            description="",
            capabilities=(ProviderCapability.OBJECTS,),
        )
        self._result = result
        self._error = error
        self._gate = gate
        self._confidence = confidence
        self.calls = 0

    def info(self):
        return self._info

    def load(self):  # pragma: no cover - nothing to load
        return None

    def analyze(self, payload, options):
        self.calls += 1
        if self._gate is not None:
            self._gate.wait(5)
        if self._error is not None:
            raise self._error
        if self._result is not None:
            return self._result
        return ProviderResult(
            provider="ignored",
            description=f"seen by {self._info.identifier}",
            objects=(DetectedObject(name=self._info.identifier, confidence=0.5),),
            confidence=self._confidence,
        )


@pytest.fixture
def request_(png_bytes):
    return ImageValidator(AppConfig()).build_request(png_bytes)


def test_results_follow_configuration_order(request_):
    gate = threading.Event()
    slow = StubProvider("slow", gate=gate)
    fast = StubProvider("fast")
    orchestrator = ProviderOrchestrator([slow, fast], default_timeout=2.0)

    threading.Timer(0.05, gate.set).start()
    outcome = orchestrator.run(request_)

    assert outcome.providers_used == ["slow", "fast"]
    assert outcome.failures == []
    assert outcome.used_fallback is False


def test_failure_is_isolated(request_):
    broken = StubProvider("broken", error=ProviderError("backend down"))
    healthy = StubProvider("healthy")
    outcome = ProviderOrchestrator([broken, healthy], default_timeout=1.0).run(request_)

    assert outcome.providers_used == ["healthy"]
    assert outcome.failures[0].provider == "broken"
    assert outcome.failures[0].reason == "backend down"
    assert outcome.failures[0].timed_out is False


def test_unexpected_exceptions_count_as_failures(request_):
    broken = StubProvider("broken", error=KeyError("missing"))
    outcome = ProviderOrchestrator([broken, StubProvider("ok")], default_timeout=1.0).run(request_)

    assert outcome.providers_used == ["ok"]
    assert len(outcome.failures) == 1


def test_slow_provider_times_out_without_blocking_others(request_):
    gate = threading.Event()
    stuck = StubProvider("stuck", gate=gate)
    quick = StubProvider("quick")
    orchestrator = ProviderOrchestrator(
        [stuck, quick], default_timeout=1.0, timeouts={"stuck": 0.05}
    )

    try:
        outcome = orchestrator.run(request_)
    finally:
        gate.set()

    assert outcome.providers_used == ["quick"]
    assert outcome.failures[0].provider == "stuck"
    assert outcome.failures[0].timed_out is True


def test_all_failures_use_fallback(request_):
    orchestrator = ProviderOrchestrator(
        [StubProvider("a", error=ProviderError("x")), StubProvider("b", error=ProviderError("y"))],
        default_timeout=1.0,
        fallback=DegradedAnalyzer(confidence=0.3),
    )
    outcome = orchestrator.run(request_)

    assert outcome.used_fallback is True
    assert len(outcome.failures) == 2
    assert len(outcome.results) == 1
    fallback = outcome.results[0]
    assert fallback.fallback is True
    assert fallback.confidence == 0.3
    assert fallback.provider == "builtin.degraded"


def test_no_providers_uses_fallback(request_):
    outcome = ProviderOrchestrator([], default_timeout=1.0).run(request_)

    assert outcome.used_fallback is True
    assert outcome.failures == []


def test_results_are_tagged_and_clamped(request_):
    missing = StubProvider("missing", confidence=None)
    excessive = StubProvider("excessive", confidence=1.7)
    outcome = ProviderOrchestrator(
        [missing, excessive], default_timeout=1.0, default_confidence=0.8
    ).run(request_)

    assert [result.provider for result in outcome.results] == ["missing", "excessive"]
    assert [result.confidence for result in outcome.results] == [0.8, 1.0]


def test_non_result_return_value_is_a_failure(request_):
    odd = StubProvider("odd", result={"objects": []})
    outcome = ProviderOrchestrator([odd, StubProvider("ok")], default_timeout=1.0).run(request_)

    assert outcome.providers_used == ["ok"]
    assert outcome.failures[0].provider == "odd"


class FaultyInfoProvider(StubProvider):
    def info(self):
        raise RuntimeError("metadata unavailable")


def test_provider_without_identity_is_skipped(request_):
    faulty = FaultyInfoProvider("faulty")
    healthy = StubProvider("healthy")
    orchestrator = ProviderOrchestrator([faulty, healthy], default_timeout=1.0)

    outcome = orchestrator.run(request_)

    assert orchestrator.identifiers == ["healthy"]
    assert orchestrator.provider_count == 2
    assert outcome.providers_used == ["healthy"]
    assert outcome.used_fallback is False
    assert outcome.failures[0].provider == "FaultyInfoProvider"
    assert "metadata unavailable" in outcome.failures[0].reason
    assert faulty.calls == 0


def test_unavailable_providers_are_reported_on_every_run(request_):
    missing = ProviderFailure(provider="remote.down", reason="no session")
    orchestrator = ProviderOrchestrator(
        [StubProvider("ok")], default_timeout=1.0, unavailable=[missing]
    )

    first = orchestrator.run(request_)
    second = orchestrator.run(request_)

    assert first.failures == [missing]
    assert second.failures == [missing]
    assert first.failures is not second.failures
    assert orchestrator.provider_count == 2
