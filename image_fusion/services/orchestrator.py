"""Parallel fan-out of a validated request to every configured provider."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field, replace
from typing import Any

from ..providers.base import ProviderAdapter, ProviderError, ProviderResult, ProviderTimeout
from ..providers.builtin.degraded import DegradedAnalyzer
from .validator import AnalysisRequest

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProviderFailure:
    """Why a provider did not contribute to a request."""

    provider: str
    reason: str
    timed_out: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {"provider": self.provider, "reason": self.reason, "timed_out": self.timed_out}


@dataclass(slots=True)
class OrchestrationOutcome:
    """Successful provider results in configuration order plus the failures."""

    results: list[ProviderResult] = field(default_factory=list)
    failures: list[ProviderFailure] = field(default_factory=list)
    used_fallback: bool = False

    @property
    def providers_used(self) -> list[str]:
        return [result.provider for result in self.results]


def resolve_identifier(provider: ProviderAdapter) -> str:
    """Return the provider's registry identifier, raising ``ProviderError`` on failure."""
    try:
        return provider.info().identifier
    except Exception as exc:
        raise ProviderError(
            f"{type(provider).__name__} could not describe itself: {exc}"
        ) from exc


class ProviderOrchestrator:
    """Runs every provider concurrently with its own timeout.

    A slow or failing provider never affects its siblings: its failure is
    recorded and its call abandoned. When nothing succeeds, the degraded
    local analyzer supplies the only result. Providers that could not be
    prepared are passed as ``unavailable`` and reported on every run.
    """

    def __init__(
        self,
        providers: Sequence[ProviderAdapter],
        *,
        default_timeout: float,
        timeouts: Mapping[str, float] | None = None,
        default_confidence: float = 0.8,
        fallback: DegradedAnalyzer | None = None,
        unavailable: Sequence[ProviderFailure] = (),
    ) -> None:
        self._entries: list[tuple[str, ProviderAdapter]] = []
        self._unavailable = list(unavailable)
        for provider in providers:
            try:
                identifier = resolve_identifier(provider)
            except ProviderError as exc:
                logger.warning("Skipping provider: %s", exc)
                self._unavailable.append(
                    ProviderFailure(provider=type(provider).__name__, reason=str(exc))
                )
                continue
            self._entries.append((identifier, provider))
        self._default_timeout = default_timeout
        self._timeouts = dict(timeouts or {})
        self._default_confidence = default_confidence
        self._fallback = fallback or DegradedAnalyzer()

    @property
    def providers(self) -> list[ProviderAdapter]:
        return [provider for _, provider in self._entries]

    @property
    def identifiers(self) -> list[str]:
        return [identifier for identifier, _ in self._entries]

    @property
    def provider_count(self) -> int:
        """Configured providers, including those that could not be prepared."""
        return len(self._entries) + len(self._unavailable)

    def timeout_for(self, identifier: str) -> float:
        return self._timeouts.get(identifier, self._default_timeout)

    def run(self, request: AnalysisRequest) -> OrchestrationOutcome:
        outcome = OrchestrationOutcome(failures=list(self._unavailable))
        if self._entries:
            self._fan_out(request, outcome)

        if not outcome.results:
            if self.provider_count:
                logger.warning(
                    "All %d providers failed; using local fallback analysis.",
                    self.provider_count,
                )
            outcome.results.append(self._run_fallback(request))
            outcome.used_fallback = True
        return outcome

    def _fan_out(self, request: AnalysisRequest, outcome: OrchestrationOutcome) -> None:
        executor = ThreadPoolExecutor(
            max_workers=len(self._entries), thread_name_prefix="image-fusion-provider"
        )
        try:
            started = time.monotonic()
            submitted: list[tuple[str, Future[ProviderResult]]] = []
            for identifier, provider in self._entries:
                future = executor.submit(provider.analyze, request.payload, request.options)
                submitted.append((identifier, future))

            # Collect in configuration order; each provider is bounded by its own deadline.
            for identifier, future in submitted:
                deadline = started + self.timeout_for(identifier)
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    result = future.result(timeout=remaining)
                except (FutureTimeoutError, ProviderTimeout):
                    future.cancel()
                    reason = f"timed out after {self.timeout_for(identifier)}s"
                    logger.warning("Provider '%s' %s", identifier, reason)
                    outcome.failures.append(
                        ProviderFailure(provider=identifier, reason=reason, timed_out=True)
                    )
                    continue
                except Exception as exc:
                    logger.warning("Provider '%s' failed: %s", identifier, exc)
                    outcome.failures.append(ProviderFailure(provider=identifier, reason=str(exc)))
                    continue

                if not isinstance(result, ProviderResult):
                    reason = f"returned {type(result).__name__} instead of a provider result"
                    logger.warning("Provider '%s' %s", identifier, reason)
                    outcome.failures.append(ProviderFailure(provider=identifier, reason=reason))
                    continue

                logger.debug(
                    "Provider '%s' answered in %.3fs", identifier, time.monotonic() - started
                )
                outcome.results.append(self._tag(result, identifier))
        finally:
            # Abandoned calls finish in the background; nobody waits for them.
            executor.shutdown(wait=False, cancel_futures=True)

    def _tag(self, result: ProviderResult, identifier: str) -> ProviderResult:
        confidence = result.confidence
        if confidence is None:
            confidence = self._default_confidence
        return replace(
            result,
            provider=identifier,
            confidence=max(0.0, min(1.0, float(confidence))),
        )

    def _run_fallback(self, request: AnalysisRequest) -> ProviderResult:
        result = self._fallback.analyze(request.payload, request.options)
        return replace(result, fallback=True)
