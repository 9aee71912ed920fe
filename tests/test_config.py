"""Tests for AppConfig validation and persistence."""

from __future__ import annotations

import json

import pytest
from image_fusion.config import AppConfig, ProviderSettings


def test_defaults_match_documented_limits():
    config = AppConfig()
    assert config.max_image_size == 20 * 1024 * 1024
    assert (config.max_image_width, config.max_image_height) == (4096, 4096)
    assert config.cache_max_size == 100
    assert config.cache_ttl == 3600.0
    assert config.provider_timeout == 30.0
    assert set(config.supported_formats) == {"jpg", "jpeg", "png", "gif", "webp", "bmp"}


def test_supported_formats_are_normalised():
    config = AppConfig(supported_formats=[".PNG", " Jpg ", "png"])
    assert config.supported_formats == ["png", "jpg", "jpeg"]


def test_supported_formats_require_value():
    with pytest.raises(ValueError):
        AppConfig(supported_formats=[" "])


def test_provider_base_url_is_trimmed():
    settings = ProviderSettings(identifier="remote.ollama", base_url=" http://example.com/base/ ")
    assert settings.base_url == "http://example.com/base"


def test_provider_base_url_requires_scheme():
    with pytest.raises(ValueError):
        ProviderSettings(identifier="remote.ollama", base_url="localhost:11434")


def test_duplicate_providers_are_rejected():
    with pytest.raises(ValueError):
        AppConfig(
            providers=[
                ProviderSettings(identifier="remote.ollama"),
                ProviderSettings(identifier="remote.ollama"),
            ]
        )


def test_enabled_providers_and_timeouts():
    config = AppConfig(
        provider_timeout=12.0,
        providers=[
            ProviderSettings(identifier="remote.ollama", timeout=3.0),
            ProviderSettings(identifier="remote.openai", enabled=False),
            ProviderSettings(identifier="google.vision"),
        ],
    )
    enabled = config.enabled_providers()
    assert [item.identifier for item in enabled] == ["remote.ollama", "google.vision"]
    assert config.timeout_for(enabled[0]) == 3.0
    assert config.timeout_for(enabled[1]) == 12.0
    assert config.timeout_for(None) == 12.0


def test_load_and_save_round_trip(tmp_path):
    path = tmp_path / "config.yaml"
    original = AppConfig(
        cache_max_size=5,
        providers=[ProviderSettings(identifier="remote.ollama", base_url="http://localhost:1234/")],
    )
    original.save(path)

    loaded = AppConfig.load(path)
    assert loaded.cache_max_size == 5
    assert loaded.providers[0].base_url == "http://localhost:1234"


def test_load_json_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"provider_timeout": 5}), encoding="utf-8")

    assert AppConfig.load(path).provider_timeout == 5.0


def test_load_rejects_invalid_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"cache_max_size": -1}), encoding="utf-8")

    with pytest.raises(ValueError):
        AppConfig.load(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        AppConfig.load(tmp_path / "absent.yaml")
