"""Public entry point orchestrating validation, analysis, fusion and caching."""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from importlib import metadata
from threading import Lock
from typing import Any

from ..config import AppConfig
from ..providers.base import (
    AnalysisMode,
    AnalysisOptions,
    DetailLevel,
    ProviderAdapter,
    ProviderError,
)
from ..providers.builtin.degraded import DegradedAnalyzer
from ..providers.registry import ProviderRegistry
from ..settings_store import SettingsStore
from .cache import CacheStore, Clock, make_cache_key
from .enricher import ContextEnricher, EnrichedAnalysis
from .fuser import FusionEmptyError, ResultFuser
from .metrics import MetricsCollector, MetricsSnapshot
from .orchestrator import (
    OrchestrationOutcome,
    ProviderFailure,
    ProviderOrchestrator,
    resolve_identifier,
)
from .results import (
    AnalysisResult,
    AnalysisStatus,
    ResultDetails,
    ResultMetadata,
    ResultSemantics,
    ResultSummary,
)
from .semantics import SemanticAnalyzer, SemanticProfile
from .validator import (
    AnalysisRequest,
    ImageValidationError,
    ImageValidator,
    decode_payload,
)

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, Mapping[str, Any]], None]
Payload = bytes | bytearray | memoryview | str
Options = AnalysisOptions | Mapping[str, Any] | None


def _package_version() -> str:
    try:
        return metadata.version("image-fusion")
    except metadata.PackageNotFoundError:
        return "0.0.0+unknown"


VERSION = _package_version()


class VisionPipeline:
    """Analyse images with several providers and return one fused result.

    ``analyze`` never raises: rejected payloads and internal failures come
    back as results with ``error`` set. Successful analyses are cached by
    payload and options.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        providers: Sequence[ProviderAdapter] | None = None,
        *,
        fallback: DegradedAnalyzer | None = None,
        event_callback: EventCallback | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self._providers = list(providers or [])
        self._fallback = fallback or DegradedAnalyzer(confidence=self.config.fallback_confidence)
        self._event_callback = event_callback
        self.validator = ImageValidator(self.config)
        self.cache: CacheStore[AnalysisResult] = CacheStore(
            max_size=self.config.cache_max_size, ttl=self.config.cache_ttl, clock=clock
        )
        self.fuser = ResultFuser(max_objects=self.config.max_fused_objects)
        self.enricher = ContextEnricher()
        self.semantics = SemanticAnalyzer()
        self._metrics = MetricsCollector(smoothing=self.config.metrics_smoothing)
        self._history: deque[AnalysisResult] = deque(maxlen=self.config.history_size)
        self._history_lock = Lock()
        self._init_lock = Lock()
        self._orchestrator: ProviderOrchestrator | None = None

    @classmethod
    def from_config(cls, config: AppConfig, **kwargs: Any) -> VisionPipeline:
        """Build a pipeline whose providers come from the registry."""
        providers = ProviderRegistry.build_enabled(config, load=False)
        return cls(config, providers, **kwargs)

    @classmethod
    def from_settings(cls, store: SettingsStore | None = None, **kwargs: Any) -> VisionPipeline:
        """Build a pipeline from the persisted settings file."""
        store = store or SettingsStore()
        config = store.load()
        logger.info("Building vision pipeline from settings at %s", store.path)
        return cls.from_config(config, **kwargs)

    # ----- Lifecycle -------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._orchestrator is not None

    def initialize(self) -> VisionPipeline:
        """Load every provider and prepare the orchestrator; idempotent."""
        self._ensure_orchestrator()
        return self

    def _ensure_orchestrator(self) -> ProviderOrchestrator:
        with self._init_lock:
            if self._orchestrator is not None:
                return self._orchestrator
            logger.info("Initialising vision pipeline with %d providers...", len(self._providers))
            ready: list[ProviderAdapter] = []
            unavailable: list[ProviderFailure] = []
            for provider in self._providers:
                try:
                    identifier = resolve_identifier(provider)
                except ProviderError as exc:
                    logger.warning("Skipping provider: %s", exc)
                    unavailable.append(
                        ProviderFailure(provider=type(provider).__name__, reason=str(exc))
                    )
                    continue
                try:
                    provider.load()
                except Exception as exc:
                    logger.warning("Provider '%s' could not be loaded: %s", identifier, exc)
                    unavailable.append(ProviderFailure(provider=identifier, reason=str(exc)))
                    continue
                ready.append(provider)
            orchestrator = self._orchestrator = ProviderOrchestrator(
                ready,
                default_timeout=self.config.provider_timeout,
                timeouts=self._provider_timeouts(),
                default_confidence=self.config.default_provider_confidence,
                fallback=self._fallback,
                unavailable=unavailable,
            )
            identifiers = orchestrator.identifiers
            logger.info("Vision pipeline ready: %s", ", ".join(identifiers) or "local only")
        self._emit("pipeline_ready", {"version": VERSION, "providers": identifiers})
        return orchestrator

    def shutdown(self) -> None:
        """Drop cached state; the next ``analyze`` call initialises again."""
        with self._init_lock:
            self._orchestrator = None
        self.clear_cache()
        with self._history_lock:
            self._history.clear()
        logger.info("Vision pipeline shut down.")

    @property
    def provider_ids(self) -> list[str]:
        """Identifiers of the providers in use, or of those configured before initialisation."""
        orchestrator = self._orchestrator
        if orchestrator is not None:
            return orchestrator.identifiers
        identifiers: list[str] = []
        for provider in self._providers:
            try:
                identifiers.append(resolve_identifier(provider))
            except ProviderError as exc:
                logger.debug("Provider omitted from listing: %s", exc)
        return identifiers

    def _provider_timeouts(self) -> dict[str, float]:
        return {
            settings.identifier: self.config.timeout_for(settings)
            for settings in self.config.providers
        }

    # ----- Analysis --------------------------------------------------------

    def analyze(self, payload: Payload, options: Options = None) -> AnalysisResult:
        """Analyse ``payload`` and return exactly one result, never raising."""
        started = time.perf_counter()
        analysis_id = uuid.uuid4().hex

        try:
            parsed_options = AnalysisOptions.coerce(options)
        except (TypeError, ValueError) as exc:
            return self._reject(analysis_id, started, f"Invalid options: {exc}")

        try:
            raw = decode_payload(payload)
        except ImageValidationError as exc:
            return self._reject(analysis_id, started, str(exc))

        verdict = self.validator.validate(raw)
        if not verdict.is_valid:
            return self._reject(analysis_id, started, verdict.reason or "Invalid image")

        request = AnalysisRequest(
            payload=raw, properties=verdict.properties, options=parsed_options
        )
        cache_key = make_cache_key(raw, parsed_options)
        if not parsed_options.force_refresh:
            cached, found = self.cache.get(cache_key)
            if found:
                logger.debug("Using cached analysis %s", cached.id)
                self._metrics.record_cache_hit()
                return cached.snapshot()

        try:
            result = self._analyze_request(analysis_id, request, cache_key, started)
        except FusionEmptyError:
            logger.error("Fusion received no provider results for analysis %s", analysis_id)
            result = self._failure(analysis_id, started, "No analysis results available", request)
        except Exception as exc:
            logger.exception("Image analysis %s failed", analysis_id)
            result = self._failure(analysis_id, started, str(exc), request)

        self._metrics.record_analysis(
            success=not result.error,
            latency=result.metadata.processing_time,
            confidence=result.summary.overall_confidence,
            fallback=result.fallback,
            objects=[obj["name"] for obj in result.details.objects],
        )
        if result.error:
            return result

        if not result.fallback:
            self.cache.put(cache_key, result.snapshot())
        self._archive(result)
        self._emit(
            "image_analyzed",
            {
                "id": result.id,
                "object_count": len(result.details.objects),
                "confidence": result.summary.overall_confidence,
                "processing_time": result.metadata.processing_time,
            },
        )
        logger.info(
            "Image analysed: %d objects, confidence %.2f",
            len(result.details.objects),
            result.summary.overall_confidence,
        )
        return result

    def quick_analyze(self, payload: Payload) -> AnalysisResult:
        """Lightweight analysis suitable for previews and thumbnails."""
        return self.analyze(
            payload, AnalysisOptions(mode=AnalysisMode.QUICK, detail=DetailLevel.LOW)
        )

    def analyze_for_domain(self, payload: Payload, domain: str) -> AnalysisResult:
        """Comprehensive analysis with insights tuned to ``domain``."""
        return self.analyze(payload, AnalysisOptions(domain=domain))

    def _analyze_request(
        self, analysis_id: str, request: AnalysisRequest, cache_key: str, started: float
    ) -> AnalysisResult:
        orchestrator = self._ensure_orchestrator()
        outcome = orchestrator.run(request)
        self._metrics.record_providers(
            calls=orchestrator.provider_count, failures=len(outcome.failures)
        )
        fused = self.fuser.fuse(outcome.results)
        enriched = self.enricher.enrich(fused, request.payload)
        profile = self.semantics.analyze(enriched, request.options)
        return self._build_result(
            analysis_id, request, outcome, enriched, profile, cache_key, started
        )

    def _build_result(
        self,
        analysis_id: str,
        request: AnalysisRequest,
        outcome: OrchestrationOutcome,
        enriched: EnrichedAnalysis,
        profile: SemanticProfile,
        cache_key: str,
        started: float,
    ) -> AnalysisResult:
        fused = enriched.fused
        objects = tuple(obj.as_dict() for obj in fused.objects)
        return AnalysisResult(
            id=analysis_id,
            timestamp=_utc_now(),
            status=AnalysisStatus.DONE,
            fallback=outcome.used_fallback,
            message="Local fallback analysis" if outcome.used_fallback else None,
            summary=ResultSummary(
                description=fused.description,
                main_objects=objects[: self.config.summary_object_count],
                overall_confidence=fused.confidence,
                scene_type=fused.scene_type,
                mood=fused.mood,
            ),
            details=ResultDetails(
                objects=objects,
                faces=tuple(face.as_dict() for face in fused.faces),
                text=enriched.extracted_text,
                colors=enriched.colors,
                composition=enriched.composition,
                brands=enriched.brands,
                landmarks=enriched.landmarks,
            ),
            semantics=ResultSemantics(
                concepts=profile.concepts,
                emotions=profile.emotions,
                context=profile.context,
                narrative=profile.narrative,
                business_insights=profile.business,
            ),
            metadata=ResultMetadata(
                processing_time=_elapsed_ms(started),
                providers_used=tuple(outcome.providers_used),
                provider_failures=tuple(failure.as_dict() for failure in outcome.failures),
                image_properties=request.properties.as_dict(),
                confidence_breakdown=tuple(
                    share.as_dict() for share in fused.confidence_breakdown
                ),
                version=VERSION,
                cache_key=cache_key,
            ),
        )

    def _reject(self, analysis_id: str, started: float, reason: str) -> AnalysisResult:
        logger.info("Rejected image: %s", reason)
        result = AnalysisResult(
            id=analysis_id,
            timestamp=_utc_now(),
            status=AnalysisStatus.REJECTED,
            message=reason,
            metadata=ResultMetadata(processing_time=_elapsed_ms(started), version=VERSION),
        )
        self._metrics.record_analysis(success=False, latency=result.metadata.processing_time)
        return result

    @staticmethod
    def _failure(
        analysis_id: str, started: float, message: str, request: AnalysisRequest
    ) -> AnalysisResult:
        return AnalysisResult(
            id=analysis_id,
            timestamp=_utc_now(),
            status=AnalysisStatus.FAILED,
            fallback=True,
            message=message,
            summary=ResultSummary(description="Image analysis temporarily unavailable"),
            metadata=ResultMetadata(
                processing_time=_elapsed_ms(started),
                image_properties=request.properties.as_dict(),
                version=VERSION,
            ),
        )

    # ----- Introspection ---------------------------------------------------

    @property
    def metrics(self) -> MetricsSnapshot:
        return self._metrics.snapshot()

    def status(self) -> dict[str, Any]:
        return {
            "name": "VisionPipeline",
            "version": VERSION,
            "initialized": self.is_initialized,
            "providers": self.provider_ids,
            "metrics": self.metrics.as_dict(),
            "cache_size": len(self.cache),
        }

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Vision analysis cache cleared")

    def history(self, limit: int = 10) -> list[AnalysisResult]:
        """Return up to ``limit`` of the most recent successful results, oldest first."""
        if limit <= 0:
            return []
        with self._history_lock:
            recent = list(self._history)[-limit:]
        return [result.snapshot() for result in recent]

    def _archive(self, result: AnalysisResult) -> None:
        with self._history_lock:
            self._history.append(result.snapshot())

    def _emit(self, name: str, payload: Mapping[str, Any]) -> None:
        if self._event_callback is None:
            return
        try:
            self._event_callback(name, payload)
        except Exception:
            logger.exception("Event callback failed for '%s'", name)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
