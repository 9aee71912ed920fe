"""Vision-language backends reached over HTTP (Ollama, OpenAI-compatible)."""

from __future__ import annotations

import base64
import io
import json
import logging
import re
from collections.abc import Sequence
from typing import Any

import requests
from PIL import Image
from requests import Response, Session

from ..config import ProviderSettings
from ..utils.text import normalize_label, unique
from .base import (
    AnalysisMode,
    AnalysisOptions,
    DetailLevel,
    DetectedObject,
    Face,
    ProviderCapability,
    ProviderError,
    ProviderInfo,
    ProviderResult,
    ProviderTimeout,
)
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)

_JSON_OBJECT_PATTERN = re.compile(r"\{.*?\}", re.DOTALL)
_VISION_KEYWORDS = {
    "vision",
    "multimodal",
    "vl",
    "llava",
    "minicpm",
    "paligemma",
    "gemma",
    "qwen",
    "moondream",
    "pixtral",
    "idefics",
    "cogvlm",
    "omni",
    "image",
}
_DEFAULT_HTTP_TIMEOUT = 30.0


def _encode_payload(payload: bytes) -> str:
    """Encode raw image bytes as base64 text suitable for JSON APIs."""
    return base64.b64encode(payload).decode("ascii")


def _mime_type(payload: bytes) -> str:
    """Return the MIME type Pillow reports for ``payload``, defaulting to JPEG."""
    try:
        with Image.open(io.BytesIO(payload)) as image:
            return image.get_format_mimetype() or "image/jpeg"
    except (OSError, ValueError):
        return "image/jpeg"


def _clamp(value: Any, *, default: float | None = None) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(1.0, number))


def _parse_bbox(raw: Any) -> tuple[float, float, float, float] | None:
    if not isinstance(raw, Sequence) or isinstance(raw, str) or len(raw) != 4:
        return None
    values = [_clamp(item) for item in raw]
    if any(value is None for value in values):
        return None
    return tuple(values)  # type: ignore[return-value]


class BaseRemoteVisionProvider:
    """Common functionality for remote multimodal providers."""

    default_base_url = ""
    default_model = ""

    def __init__(
        self,
        *,
        identifier: str,
        display_name: str,
        description: str,
        backend: str,
        settings: ProviderSettings | None,
        tags: Sequence[str],
    ) -> None:
        self._backend = backend
        self._settings = settings or ProviderSettings(identifier=identifier)
        self._info = ProviderInfo(
            identifier=identifier,
            display_name=display_name,
            description=description,
            capabilities=(
                ProviderCapability.DESCRIPTION,
                ProviderCapability.OBJECTS,
                ProviderCapability.FACES,
                ProviderCapability.TEXT,
                ProviderCapability.SCENE,
            ),
            tags=tuple(tags),
        )
        self._prompt_version = "vision_remote/v1"
        self._session: Session | None = None

    @property
    def base_url(self) -> str:
        return self._settings.base_url or self.default_base_url

    @property
    def model(self) -> str:
        return self._settings.model or self.default_model

    def info(self) -> ProviderInfo:
        return self._info

    def load(self) -> None:
        self._session = requests.Session()

    def analyze(self, payload: bytes, options: AnalysisOptions) -> ProviderResult:
        prompt = self._build_prompt(options)
        raw_text = self._call_backend(
            _encode_payload(payload), _mime_type(payload), prompt, options
        )
        data = self._parse_json_response(raw_text)
        return self._build_result(data)

    # ----- Prompt creation -------------------------------------------------

    def _build_prompt(self, options: AnalysisOptions) -> str:
        instructions: list[str] = [
            "You are an assistant that analyses a single image and returns strictly valid JSON.",
            "Respond with minified JSON that matches this schema:",
            '{"description": string|null, "objects": [{"name": string, "confidence": number, '
            '"bbox": [x1, y1, x2, y2]|null}], "faces": [{"confidence": number, '
            '"emotions": {string: number}}], "text": string[], "labels": string[], '
            '"scene_type": string|null, "mood": string|null, "confidence": number}',
            "Confidences and box coordinates are numbers between 0 and 1.",
            "Never wrap the JSON in backticks or additional commentary.",
        ]

        if options.mode == AnalysisMode.QUICK:
            instructions.append(
                "Describe this image briefly in one sentence, focusing on the main objects "
                "and the scene type. List at most five objects."
            )
        else:
            instructions.append(
                "Analyse this image comprehensively: describe the scene, identify objects, "
                "assess mood and composition, and transcribe any visible text."
            )
        if options.detail == DetailLevel.HIGH:
            instructions.append("Include small or partially visible objects.")

        domain = options.normalized_domain
        if domain:
            instructions.append(f"The image will be used in a {domain} context.")

        instructions.append(
            "If you cannot understand the image, return "
            '{"description": null, "objects": [], "confidence": 0}.'
        )
        return " ".join(instructions)

    # ----- Backend dispatch ------------------------------------------------

    def _call_backend(
        self, encoded_image: str, mime_type: str, prompt: str, options: AnalysisOptions
    ) -> str:
        raise NotImplementedError

    # ----- Response handling -----------------------------------------------

    def _parse_json_response(self, text: str) -> dict[str, Any]:
        cleaned = text.strip()
        if cleaned.startswith("```"):
            cleaned = self._strip_markdown(cleaned)

        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError as err:
            matches = list(_JSON_OBJECT_PATTERN.finditer(cleaned))
            if not matches:
                raise ProviderError(
                    f"{self._info.display_name} returned non-JSON output: {cleaned!r}"
                ) from err
            merged: dict[str, Any] = {}
            for match in matches:
                try:
                    fragment = json.loads(match.group(0))
                except json.JSONDecodeError:
                    continue
                if isinstance(fragment, dict):
                    merged.update(fragment)
            if merged:
                return merged
            raise ProviderError(
                f"{self._info.display_name} produced invalid JSON: {cleaned}"
            ) from err
        if not isinstance(payload, dict):
            raise ProviderError(f"{self._info.display_name} returned a non-object JSON payload.")
        return payload

    @staticmethod
    def _strip_markdown(text: str) -> str:
        stripped = text.strip()
        if not stripped.startswith("```"):
            return stripped
        parts = stripped.split("```")
        # The second segment holds the JSON payload, possibly behind a language tag.
        if len(parts) < 3:
            return stripped
        candidate = parts[1]
        if "\n" in candidate:
            _, remainder = candidate.split("\n", 1)
            return remainder.strip()
        return parts[-1].strip()

    def _build_result(self, data: dict[str, Any]) -> ProviderResult:
        description = data.get("description")
        if not isinstance(description, str) or not description.strip():
            description = None

        objects: list[DetectedObject] = []
        for item in data.get("objects") or []:
            if isinstance(item, str):
                item = {"name": item}
            if not isinstance(item, dict) or not isinstance(item.get("name"), str):
                continue
            name = item["name"].strip()
            if not name:
                continue
            objects.append(
                DetectedObject(
                    name=name,
                    confidence=_clamp(item.get("confidence"), default=0.5),
                    bbox=_parse_bbox(item.get("bbox")),
                )
            )

        faces: list[Face] = []
        for item in data.get("faces") or []:
            if not isinstance(item, dict):
                continue
            emotions = item.get("emotions") if isinstance(item.get("emotions"), dict) else {}
            faces.append(
                Face(
                    confidence=_clamp(item.get("confidence"), default=0.5),
                    emotions={
                        str(key): score
                        for key, value in emotions.items()
                        if (score := _clamp(value)) is not None
                    },
                    bbox=_parse_bbox(item.get("bbox")),
                )
            )

        return ProviderResult(
            provider=self._info.identifier,
            description=description.strip() if description else None,
            objects=tuple(objects),
            faces=tuple(faces),
            text=tuple(self._normalize_strings(data.get("text"), lowercase=False)),
            labels=tuple(self._normalize_strings(data.get("labels"))),
            scene_type=self._optional_label(data.get("scene_type")),
            mood=self._optional_label(data.get("mood")),
            confidence=_clamp(data.get("confidence")),
            extras={
                "backend": self._backend,
                "remote_model": self.model,
                "prompt_version": self._prompt_version,
            },
        )

    @staticmethod
    def _normalize_strings(payload: Any, *, lowercase: bool = True) -> list[str]:
        if isinstance(payload, str):
            raw_items = re.split(r"[,\n;]+", payload) if lowercase else [payload]
        elif isinstance(payload, Sequence):
            raw_items = [str(item) for item in payload]
        else:
            raw_items = []
        processed = [item.strip() for item in raw_items]
        if lowercase:
            processed = [normalize_label(item) for item in processed]
        return unique(processed)

    @staticmethod
    def _optional_label(value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        return normalize_label(value).replace(" ", "_") or None

    # ----- HTTP helpers ----------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._settings.api_key:
            headers["Authorization"] = f"Bearer {self._settings.api_key}"
        return headers

    def _http_timeout(self) -> float:
        return self._settings.timeout or _DEFAULT_HTTP_TIMEOUT

    def _session_post(self, url: str, payload: dict[str, Any]) -> Response:
        if self._session is None:
            raise ProviderError("HTTP session not initialised.")
        timeout = self._http_timeout()
        try:
            response = self._session.post(
                url,
                json=payload,
                headers=self._headers(),
                timeout=timeout,
            )
        except requests.exceptions.Timeout as exc:
            raise ProviderTimeout(f"{self._backend} request timed out after {timeout}s.") from exc
        except requests.exceptions.RequestException as exc:
            raise ProviderError(f"Failed to contact {self._backend} backend: {exc}") from exc
        if response.status_code >= 400:
            raise ProviderError(
                f"{self._backend} backend returned HTTP {response.status_code}: {response.text}"
            )
        return response

    def _session_get(self, url: str) -> Response:
        if self._session is None:
            raise ProviderError("HTTP session not initialised.")
        timeout = self._http_timeout()
        try:
            response = self._session.get(url, headers=self._headers(), timeout=timeout)
        except requests.exceptions.Timeout as exc:
            raise ProviderTimeout(f"{self._backend} request timed out after {timeout}s.") from exc
        except requests.exceptions.RequestException as exc:
            raise ProviderError(f"Failed to contact {self._backend} backend: {exc}") from exc
        if response.status_code >= 400:
            raise ProviderError(
                f"{self._backend} backend returned HTTP {response.status_code}: {response.text}"
            )
        return response

    # ----- Discovery helpers ----------------------------------------------

    def discover_remote_models(self) -> list[str]:
        """Return remote models that appear to support image analysis."""
        try:
            models = self._fetch_remote_model_metadata()
        except ProviderError as exc:
            logger.info("Unable to query %s backend for models: %s", self._backend, exc)
            return []
        return [name for name, metadata in models if self._is_vision_candidate(name, metadata)]

    def _fetch_remote_model_metadata(self) -> list[tuple[str, dict[str, Any]]]:
        raise NotImplementedError

    def _is_vision_candidate(self, name: str, metadata: dict[str, Any]) -> bool:
        text = f"{name} {json.dumps(metadata, ensure_ascii=False)}".lower()
        families = metadata.get("families")
        if isinstance(families, (list, tuple)):
            lowered = " ".join(str(item).lower() for item in families)
            if any(keyword in lowered for keyword in _VISION_KEYWORDS):
                return True
        return any(keyword in text for keyword in _VISION_KEYWORDS)


class OllamaVisionProvider(BaseRemoteVisionProvider):
    """Vision-language integration using the Ollama HTTP API."""

    default_base_url = "http://127.0.0.1:11434"
    default_model = "llava"

    def __init__(self, settings: ProviderSettings | None = None) -> None:
        super().__init__(
            identifier="remote.ollama",
            display_name="Ollama Vision",
            description=(
                "Leverages Ollama-hosted multimodal models such as LLaVA, Qwen2.5-VL, or Gemma."
            ),
            backend="ollama",
            settings=settings,
            tags=("remote", "ollama", "vision", "http"),
        )

    def _call_backend(
        self, encoded_image: str, mime_type: str, prompt: str, options: AnalysisOptions
    ) -> str:
        endpoint = f"{self.base_url}/api/generate"
        payload = {
            "model": self.model,
            "prompt": prompt,
            "images": [encoded_image],
            "stream": False,
            "format": "json",
            "options": {
                "temperature": self._settings.temperature,
                "num_predict": self._settings.max_tokens,
            },
        }
        data = self._session_post(endpoint, payload).json()
        if "error" in data:
            raise ProviderError(f"Ollama backend error: {data['error']}")
        text = data.get("response")
        if not isinstance(text, str):
            raise ProviderError("Ollama backend returned an unexpected payload.")
        return text

    def _fetch_remote_model_metadata(self) -> list[tuple[str, dict[str, Any]]]:
        payload = self._session_get(f"{self.base_url}/api/tags").json()
        models = payload.get("models")
        if not isinstance(models, list):
            return []
        results: list[tuple[str, dict[str, Any]]] = []
        for item in models:
            if not isinstance(item, dict):
                continue
            name = item.get("model") or item.get("name")
            if not isinstance(name, str):
                continue
            details = item.get("details")
            results.append((name, details if isinstance(details, dict) else {}))
        return results


class OpenAIVisionProvider(BaseRemoteVisionProvider):
    """Vision integration for OpenAI-compatible chat completion endpoints."""

    default_base_url = "https://api.openai.com/v1"
    default_model = "gpt-4o-mini"

    def __init__(self, settings: ProviderSettings | None = None) -> None:
        super().__init__(
            identifier="remote.openai",
            display_name="OpenAI Vision",
            description="Uses an OpenAI-compatible /chat/completions endpoint with image input.",
            backend="openai",
            settings=settings,
            tags=("remote", "openai", "vision", "http"),
        )

    def _call_backend(
        self, encoded_image: str, mime_type: str, prompt: str, options: AnalysisOptions
    ) -> str:
        endpoint = f"{self.base_url}/chat/completions"
        payload = {
            "model": self.model,
            "temperature": self._settings.temperature,
            "max_tokens": self._settings.max_tokens,
            "response_format": {"type": "json_object"},
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{mime_type};base64,{encoded_image}",
                                "detail": options.detail.value,
                            },
                        },
                    ],
                }
            ],
        }
        data = self._session_post(endpoint, payload).json()
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError("OpenAI backend returned an unexpected payload.") from exc
        if not isinstance(text, str):
            raise ProviderError("OpenAI backend returned an empty message.")
        return text

    def _fetch_remote_model_metadata(self) -> list[tuple[str, dict[str, Any]]]:
        payload = self._session_get(f"{self.base_url}/models").json()
        models = payload.get("data")
        if not isinstance(models, list):
            return []
        return [
            (item["id"], item)
            for item in models
            if isinstance(item, dict) and isinstance(item.get("id"), str)
        ]


def _register() -> None:
    ProviderRegistry.register(
        "remote.ollama", lambda settings=None: OllamaVisionProvider(settings=settings)
    )
    ProviderRegistry.register(
        "remote.openai", lambda settings=None: OpenAIVisionProvider(settings=settings)
    )


_register()
