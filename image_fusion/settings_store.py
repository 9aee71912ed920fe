"""Locate and persist the pipeline configuration used by ``VisionPipeline.from_settings``."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config import AppConfig

logger = logging.getLogger(__name__)

SETTINGS_ENV_VAR = "IMAGE_FUSION_SETTINGS"


class SettingsStore:
    """Reads and writes an ``AppConfig`` at a well-known path."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or default_settings_path()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppConfig:
        """Return the stored configuration, or defaults when nothing was saved."""
        if not self._path.exists():
            logger.debug("No pipeline settings at %s; using defaults.", self._path)
            return AppConfig()
        return AppConfig.load(self._path)

    def save(self, config: AppConfig) -> None:
        config.save(self._path)
        logger.info("Saved pipeline settings to %s", self._path)

    def update(self, **changes: Any) -> AppConfig:
        """Apply ``changes`` to the stored configuration, validate and persist it."""
        merged = {**self.load().as_dict(), **changes}
        config = AppConfig.model_validate(merged)
        self.save(config)
        return config


def default_settings_path() -> Path:
    override = os.getenv(SETTINGS_ENV_VAR)
    if override:
        return Path(override).expanduser()
    if os.name == "nt":
        base = Path(os.getenv("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base.expanduser() / "image_fusion" / "settings.yaml"
