"""Application-wide configuration models and persistence helpers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

DEFAULT_SUPPORTED_FORMATS = ("jpg", "jpeg", "png", "gif", "webp", "bmp")


class ProviderSettings(BaseModel):
    """Connection settings for a single analysis backend."""

    identifier: str = Field(
        description="Registry identifier of the provider adapter, e.g. 'remote.ollama'.",
    )
    enabled: bool = Field(
        default=True,
        description="Disabled providers are skipped when building the pipeline.",
    )
    base_url: str | None = Field(
        default=None,
        description="Base URL of the backend; adapters fall back to their own default.",
    )
    model: str | None = Field(
        default=None,
        description="Model identifier served by the backend.",
    )
    api_key: str | None = Field(
        default=None,
        description="Optional credential for backends that require one.",
    )
    timeout: float | None = Field(
        default=None,
        ge=0.1,
        le=600.0,
        description="Per-provider timeout in seconds; overrides the global provider timeout.",
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="Sampling temperature passed to generative backends.",
    )
    max_tokens: int = Field(
        default=768,
        ge=64,
        le=8192,
        description="Maximum number of tokens requested from generative backends.",
    )

    @model_validator(mode="after")
    def _normalise_base_url(self) -> ProviderSettings:
        self.identifier = self.identifier.strip()
        if not self.identifier:
            raise ValueError("Provider identifier must not be empty.")
        if self.base_url is None:
            return self
        base = self.base_url.strip()
        if not base:
            self.base_url = None
            return self
        if "://" not in base:
            raise ValueError(
                "Provider base URL must include a scheme such as http://localhost:11434."
            )
        self.base_url = base.rstrip("/")
        return self


class AppConfig(BaseModel):
    """Validates and stores runtime settings for the analysis pipeline."""

    supported_formats: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_FORMATS),
        description="Image formats accepted by the validator.",
    )
    max_image_size: int = Field(
        default=20 * 1024 * 1024,
        ge=1,
        description="Maximum accepted payload size in bytes.",
    )
    max_image_width: int = Field(
        default=4096,
        ge=1,
        description="Maximum accepted image width in pixels.",
    )
    max_image_height: int = Field(
        default=4096,
        ge=1,
        description="Maximum accepted image height in pixels.",
    )
    cache_max_size: int = Field(
        default=100,
        ge=0,
        description="Maximum number of cached analysis results; 0 disables caching.",
    )
    cache_ttl: float = Field(
        default=3600.0,
        gt=0.0,
        description="Age in seconds after which a cached result is treated as absent.",
    )
    provider_timeout: float = Field(
        default=30.0,
        ge=0.1,
        le=600.0,
        description="Default timeout (seconds) for a single provider call.",
    )
    default_provider_confidence: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Confidence assigned to providers that do not report one.",
    )
    fallback_confidence: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Confidence of the local degraded analysis.",
    )
    max_fused_objects: int = Field(
        default=20,
        ge=1,
        le=256,
        description="Maximum number of objects kept after fusing several providers.",
    )
    summary_object_count: int = Field(
        default=5,
        ge=0,
        le=64,
        description="Number of top objects listed in the result summary.",
    )
    metrics_smoothing: float = Field(
        default=0.2,
        gt=0.0,
        le=1.0,
        description="Exponential smoothing factor for rolling metric averages.",
    )
    history_size: int = Field(
        default=1000,
        ge=0,
        description="Number of recent results kept in the in-memory history.",
    )
    providers: list[ProviderSettings] = Field(
        default_factory=list,
        description="Analysis backends queried for every request, in order.",
    )

    @model_validator(mode="after")
    def _normalise_formats(self) -> AppConfig:
        formats: list[str] = []
        for value in self.supported_formats:
            name = value.strip().lower().lstrip(".")
            if name and name not in formats:
                formats.append(name)
        if not formats:
            raise ValueError("At least one supported image format must be configured.")
        if "jpg" in formats and "jpeg" not in formats:
            formats.append("jpeg")
        elif "jpeg" in formats and "jpg" not in formats:
            formats.append("jpg")
        self.supported_formats = formats
        return self

    @model_validator(mode="after")
    def _validate_providers(self) -> AppConfig:
        seen: set[str] = set()
        for provider in self.providers:
            if provider.identifier in seen:
                raise ValueError(f"Provider '{provider.identifier}' is configured twice.")
            seen.add(provider.identifier)
        return self

    def enabled_providers(self) -> list[ProviderSettings]:
        return [provider for provider in self.providers if provider.enabled]

    def timeout_for(self, settings: ProviderSettings | None) -> float:
        """Return the effective timeout for a provider."""
        if settings is not None and settings.timeout is not None:
            return settings.timeout
        return self.provider_timeout

    def as_dict(self) -> dict[str, Any]:
        """Serialize the configuration to primitive Python types."""
        return self.model_dump(mode="json")

    @classmethod
    def load(cls, path: Path) -> AppConfig:
        """Load configuration from a YAML or JSON file."""
        data = _read_config_file(path)
        try:
            return cls.model_validate(data)
        except ValidationError as exc:  # pragma: no cover - pass through details
            raise ValueError(f"Invalid configuration file at {path}: {exc}") from exc

    def save(self, path: Path) -> None:
        """Persist configuration to a YAML file."""
        _write_config_file(path, self.as_dict())


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)

    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        return yaml.safe_load(text) or {}
    return json.loads(text)


def _write_config_file(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in {".yaml", ".yml"}:
        yaml_text = yaml.safe_dump(
            data,
            allow_unicode=False,
            sort_keys=False,
        )
        path.write_text(yaml_text, encoding="utf-8")
    else:
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
