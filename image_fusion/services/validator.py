"""Format, size and dimension checks applied before any analysis work."""

from __future__ import annotations

import base64
import binascii
import io
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from PIL import Image, UnidentifiedImageError

from ..config import AppConfig
from ..providers.base import AnalysisOptions

UNKNOWN_FORMAT = "unknown"


class ImageValidationError(ValueError):
    """Raised when an image payload cannot be accepted for analysis."""


@dataclass(slots=True, frozen=True)
class ImageProperties:
    """Normalised facts about an accepted image."""

    format: str
    size: int
    width: int
    height: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "size": self.size,
            "dimensions": {"width": self.width, "height": self.height},
        }


@dataclass(slots=True, frozen=True)
class ValidationVerdict:
    """Either the accepted image properties or a single rejection reason."""

    properties: ImageProperties | None = None
    reason: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.properties is not None


@dataclass(slots=True, frozen=True)
class AnalysisRequest:
    """A validated payload together with its analysis options."""

    payload: bytes
    properties: ImageProperties
    options: AnalysisOptions

    @property
    def format(self) -> str:
        return self.properties.format

    @property
    def size(self) -> int:
        return self.properties.size

    @property
    def dimensions(self) -> tuple[int, int]:
        return self.properties.width, self.properties.height


def decode_payload(payload: bytes | bytearray | memoryview | str) -> bytes:
    """Return raw image bytes, decoding base64 text and ``data:`` URIs."""
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)
    if not isinstance(payload, str):
        raise ImageValidationError(f"Unsupported payload type: {type(payload).__name__}")
    text = payload.strip()
    if text.startswith("data:") and "," in text:
        text = text.split(",", 1)[1]
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageValidationError("Payload is neither bytes nor valid base64 text") from exc


class ImageValidator:
    """Applies the configured gatekeeping rules to incoming payloads."""

    def __init__(self, config: AppConfig) -> None:
        self._formats = frozenset(config.supported_formats)
        self._max_size = config.max_image_size
        self._max_width = config.max_image_width
        self._max_height = config.max_image_height

    def validate(self, payload: bytes) -> ValidationVerdict:
        """Check format, then size, then dimensions; the first failure wins."""
        try:
            image_format, width, height = self._inspect(payload)
        except ImageValidationError as exc:
            return ValidationVerdict(reason=str(exc))

        if image_format not in self._formats:
            return ValidationVerdict(reason=f"Unsupported format: {image_format}")

        size = len(payload)
        if size > self._max_size:
            return ValidationVerdict(
                reason=f"Image too large: {size} bytes (limit {self._max_size})"
            )

        if width is None or height is None:
            return ValidationVerdict(reason="Dimensions too large: exceeds decompression limit")

        if width > self._max_width or height > self._max_height:
            return ValidationVerdict(
                reason=(
                    f"Dimensions too large: {width}x{height} "
                    f"(limit {self._max_width}x{self._max_height})"
                )
            )

        return ValidationVerdict(
            properties=ImageProperties(format=image_format, size=size, width=width, height=height)
        )

    def build_request(
        self,
        payload: bytes | bytearray | memoryview | str,
        options: AnalysisOptions | Mapping[str, Any] | None = None,
    ) -> AnalysisRequest:
        """Decode, validate and freeze a request, raising on rejection."""
        raw = decode_payload(payload)
        verdict = self.validate(raw)
        if not verdict.is_valid:
            raise ImageValidationError(verdict.reason)
        return AnalysisRequest(
            payload=raw,
            properties=verdict.properties,
            options=AnalysisOptions.coerce(options),
        )

    @staticmethod
    def _inspect(payload: bytes) -> tuple[str, int | None, int | None]:
        """Return the lower-cased format and dimensions of ``payload``.

        Dimensions are ``None`` when the image exceeds Pillow's decompression
        limit; the format is still identified so the checks keep their order.
        """
        if not payload:
            raise ImageValidationError(f"Unsupported format: {UNKNOWN_FORMAT}")
        try:
            # Image.open only parses the header; pixel data is never decoded here.
            with Image.open(io.BytesIO(payload)) as image:
                image_format = (image.format or UNKNOWN_FORMAT).lower()
                width, height = image.size
        except Image.DecompressionBombError:
            image_format, width, height = _bomb_format(payload), None, None
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise ImageValidationError(f"Unsupported format: {UNKNOWN_FORMAT}") from exc
        if image_format == "jpeg":
            image_format = "jpg"
        return image_format, width, height


def _bomb_format(payload: bytes) -> str:
    """Find the plugin that recognised an over-limit image."""
    Image.init()
    for plugin in Image.ID:
        try:
            with Image.open(io.BytesIO(payload), formats=[plugin]):
                pass
        except Image.DecompressionBombError:
            return plugin.lower()
        except (UnidentifiedImageError, OSError, ValueError):
            continue
    return UNKNOWN_FORMAT
