"""Process-wide counters and rolling averages for the analysis pipeline."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from threading import Lock
from typing import Any


@dataclass(slots=True, frozen=True)
class MetricsSnapshot:
    """A read-only copy of the collector state."""

    total_analyses: int = 0
    successful_analyses: int = 0
    fallback_analyses: int = 0
    cache_hits: int = 0
    average_processing_time: float = 0.0
    average_confidence: float = 0.0
    error_rate: float = 0.0
    provider_calls: int = 0
    provider_failures: int = 0
    popular_objects: tuple[tuple[str, int], ...] = field(default_factory=tuple)

    @property
    def provider_failure_rate(self) -> float:
        if self.provider_calls == 0:
            return 0.0
        return self.provider_failures / self.provider_calls

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_analyses": self.total_analyses,
            "successful_analyses": self.successful_analyses,
            "fallback_analyses": self.fallback_analyses,
            "cache_hits": self.cache_hits,
            "average_processing_time": self.average_processing_time,
            "average_confidence": self.average_confidence,
            "error_rate": self.error_rate,
            "provider_calls": self.provider_calls,
            "provider_failures": self.provider_failures,
            "provider_failure_rate": self.provider_failure_rate,
            "popular_objects": [list(item) for item in self.popular_objects],
        }


class MetricsCollector:
    """Tracks analysis counts and exponentially smoothed averages."""

    def __init__(self, *, smoothing: float = 0.2, popular_limit: int = 10) -> None:
        if not 0.0 < smoothing <= 1.0:
            raise ValueError("smoothing must be in (0, 1]")
        self._alpha = smoothing
        self._popular_limit = popular_limit
        self._lock = Lock()
        self._total = 0
        self._successful = 0
        self._fallbacks = 0
        self._cache_hits = 0
        self._latency: float | None = None
        self._confidence: float | None = None
        self._provider_calls = 0
        self._provider_failures = 0
        self._objects: Counter[str] = Counter()

    def record_analysis(
        self,
        *,
        success: bool,
        latency: float,
        confidence: float | None = None,
        fallback: bool = False,
        objects: Iterable[str] = (),
    ) -> None:
        with self._lock:
            self._total += 1
            self._latency = self._smooth(self._latency, latency)
            if success:
                self._successful += 1
                if confidence is not None:
                    self._confidence = self._smooth(self._confidence, confidence)
                self._objects.update(objects)
            if fallback:
                self._fallbacks += 1

    def record_providers(self, *, calls: int, failures: int) -> None:
        with self._lock:
            self._provider_calls += calls
            self._provider_failures += failures

    def record_cache_hit(self) -> None:
        with self._lock:
            self._cache_hits += 1

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            error_rate = 1.0 - self._successful / self._total if self._total else 0.0
            return MetricsSnapshot(
                total_analyses=self._total,
                successful_analyses=self._successful,
                fallback_analyses=self._fallbacks,
                cache_hits=self._cache_hits,
                average_processing_time=self._latency or 0.0,
                average_confidence=self._confidence or 0.0,
                error_rate=error_rate,
                provider_calls=self._provider_calls,
                provider_failures=self._provider_failures,
                popular_objects=tuple(self._objects.most_common(self._popular_limit)),
            )

    def _smooth(self, current: float | None, sample: float) -> float:
        # The first sample seeds the average.
        if current is None:
            return float(sample)
        return current * (1.0 - self._alpha) + sample * self._alpha
