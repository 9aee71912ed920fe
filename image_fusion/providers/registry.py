"""Registry for dynamically discovering provider adapters."""

from __future__ import annotations

import logging
from importlib import import_module
from typing import Callable, Dict

from ..config import AppConfig, ProviderSettings
from .base import ProviderAdapter, ProviderError, ProviderInfo

Factory = Callable[..., ProviderAdapter]
logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Tracks available provider factories and lazily loads them on demand."""

    _factories: Dict[str, Factory] = {}
    _bootstrap_complete: bool = False

    @classmethod
    def register(cls, name: str, factory: Factory) -> None:
        """Register a provider factory under the provided name."""
        cls._factories[name] = factory

    @classmethod
    def unregister(cls, name: str) -> None:
        cls._factories.pop(name, None)

    @classmethod
    def ensure_bootstrapped(cls) -> None:
        if cls._bootstrap_complete:
            return
        modules = [
            "image_fusion.providers.vision_remote",
            "image_fusion.providers.google_vision",
            "image_fusion.providers.builtin.degraded",
        ]
        for module_name in modules:
            try:
                import_module(module_name)
            except ImportError as exc:  # pragma: no cover - optional dependency paths
                logger.debug(
                    "Optional provider module %s could not be imported: %s", module_name, exc
                )
        cls._bootstrap_complete = True

    @classmethod
    def list_provider_infos(cls) -> list[ProviderInfo]:
        """Return metadata for all registered providers."""
        cls.ensure_bootstrapped()
        return [factory().info() for factory in cls._factories.values()]

    @classmethod
    def get(
        cls, name: str, *, settings: ProviderSettings | None = None, load: bool = True
    ) -> ProviderAdapter:
        cls.ensure_bootstrapped()
        try:
            factory = cls._factories[name]
        except KeyError as exc:
            available = ", ".join(sorted(cls._factories))
            raise KeyError(f"Unknown provider '{name}'. Available: {available}") from exc
        instance = cls._instantiate_factory(factory, settings=settings)
        if load:
            instance.load()
        return instance

    @classmethod
    def build_enabled(cls, config: AppConfig, *, load: bool = True) -> list[ProviderAdapter]:
        """Instantiate every enabled provider in configuration order.

        Each adapter receives its settings with the effective timeout filled in.
        Unknown providers and providers that fail to load are logged and skipped.
        """
        adapters: list[ProviderAdapter] = []
        for settings in config.enabled_providers():
            resolved = settings.model_copy(update={"timeout": config.timeout_for(settings)})
            try:
                adapters.append(cls.get(resolved.identifier, settings=resolved, load=load))
            except (KeyError, ProviderError) as exc:
                logger.warning("Skipping provider '%s': %s", resolved.identifier, exc)
        return adapters

    @staticmethod
    def _instantiate_factory(
        factory: Callable[..., ProviderAdapter], *, settings: ProviderSettings | None
    ) -> ProviderAdapter:
        if settings is not None:
            try:
                return factory(settings)
            except TypeError:
                logger.debug(
                    "Factory %s does not accept provider settings; instantiating without them.",
                    getattr(factory, "__name__", repr(factory)),
                )
        return factory()
