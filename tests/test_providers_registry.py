"""Tests for the dynamic provider registry."""

from __future__ import annotations

import pytest

from image_fusion.config import AppConfig, ProviderSettings
from image_fusion.providers.base import ProviderCapability, ProviderError, ProviderInfo
from image_fusion.providers.registry import ProviderRegistry


class DummyProvider:
    def __init__(self, *, settings: ProviderSettings | None = None, fail_load: bool = False):
        self.settings = settings
        self.fail_load = fail_load
        self.loaded = False

    def info(self) -> ProviderInfo:
        return ProviderInfo(
            identifier="dummy",
            display_name="Dummy",
            description="",
            capabilities=(ProviderCapability.OBJECTS,),
        )

    def load(self) -> None:
        if self.fail_load:
            raise ProviderError("cannot load")
        self.loaded = True

    def analyze(self, payload, options):  # pragma: no cover - not needed
        raise NotImplementedError


@pytest.fixture(autouse=True)
def reset_registry():
    ProviderRegistry.ensure_bootstrapped()
    original = ProviderRegistry._factories.copy()
    original_bootstrapped = ProviderRegistry._bootstrap_complete
    yield
    ProviderRegistry._factories = original
    ProviderRegistry._bootstrap_complete = original_bootstrapped


def test_builtin_providers_are_registered():
    identifiers = {info.identifier for info in ProviderRegistry.list_provider_infos()}
    assert {"remote.ollama", "remote.openai", "google.vision", "builtin.degraded"} <= identifiers


def test_register_and_list_providers():
    ProviderRegistry._factories = {}
    ProviderRegistry.register("demo", lambda: DummyProvider())

    infos = ProviderRegistry.list_provider_infos()
    assert infos[0].identifier == "dummy"


def test_get_passes_settings_and_handles_missing():
    ProviderRegistry._factories = {}
    captured: list[ProviderSettings | None] = []

    def factory(settings: ProviderSettings | None = None):
        captured.append(settings)
        return DummyProvider(settings=settings)

    ProviderRegistry.register("demo", factory)

    settings = ProviderSettings(identifier="demo", model="m")
    instance = ProviderRegistry.get("demo", settings=settings)
    assert captured[0] == settings
    assert instance.loaded is True

    with pytest.raises(KeyError):
        ProviderRegistry.get("missing")


def test_get_without_loading():
    ProviderRegistry._factories = {}
    ProviderRegistry.register("demo", lambda: DummyProvider())

    assert ProviderRegistry.get("demo", load=False).loaded is False


def test_instantiate_factory_fallback():
    called = []

    def factory():
        called.append("ok")
        return DummyProvider()

    instance = ProviderRegistry._instantiate_factory(
        factory, settings=ProviderSettings(identifier="demo")
    )
    assert isinstance(instance, DummyProvider)
    assert called == ["ok"]


def test_build_enabled_skips_unknown_and_broken_providers():
    ProviderRegistry._factories = {}
    ProviderRegistry.register("good", lambda settings=None: DummyProvider(settings=settings))
    ProviderRegistry.register("broken", lambda settings=None: DummyProvider(fail_load=True))
    config = AppConfig(
        providers=[
            ProviderSettings(identifier="broken"),
            ProviderSettings(identifier="missing"),
            ProviderSettings(identifier="off", enabled=False),
            ProviderSettings(identifier="good", model="vision-1"),
        ]
    )

    adapters = ProviderRegistry.build_enabled(config)

    assert len(adapters) == 1
    assert adapters[0].settings.model == "vision-1"


def test_ensure_bootstrapped_imports_modules(monkeypatch):
    called = []

    monkeypatch.setattr("image_fusion.providers.registry.import_module", called.append)
    ProviderRegistry._bootstrap_complete = False

    ProviderRegistry.ensure_bootstrapped()

    assert "image_fusion.providers.google_vision" in called
    assert ProviderRegistry._bootstrap_complete is True


def test_ensure_bootstrapped_tolerates_import_error(monkeypatch):
    def fake_import(name):
        raise ImportError("boom")

    monkeypatch.setattr("image_fusion.providers.registry.import_module", fake_import)
    ProviderRegistry._bootstrap_complete = False
    ProviderRegistry.ensure_bootstrapped()
    assert ProviderRegistry._bootstrap_complete is True


def test_unregister():
    ProviderRegistry._factories = {}
    ProviderRegistry.register("demo", lambda: DummyProvider())
    ProviderRegistry.unregister("demo")
    assert ProviderRegistry._factories == {}


def test_build_enabled_fills_in_effective_timeouts():
    ProviderRegistry._factories = {}
    ProviderRegistry.register("good", lambda settings=None: DummyProvider(settings=settings))
    ProviderRegistry.register("tuned", lambda settings=None: DummyProvider(settings=settings))
    config = AppConfig(
        provider_timeout=5,
        providers=[
            ProviderSettings(identifier="good"),
            ProviderSettings(identifier="tuned", timeout=2.5),
        ],
    )

    adapters = ProviderRegistry.build_enabled(config, load=False)

    assert [adapter.settings.timeout for adapter in adapters] == [5, 2.5]
    assert config.providers[0].timeout is None


def test_remote_adapter_http_timeout_follows_global_setting():
    config = AppConfig(
        provider_timeout=7, providers=[ProviderSettings(identifier="remote.ollama")]
    )

    (adapter,) = ProviderRegistry.build_enabled(config, load=False)

    assert adapter._http_timeout() == 7
