"""String helpers shared by providers and the fusion stages."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

_WHITESPACE_PATTERN = re.compile(r"\s+")
_WORD_PATTERN = re.compile(r"[^\W\d_]+", re.UNICODE)

_STOPWORDS: dict[str, frozenset[str]] = {
    "en": frozenset(
        "the and is are of to in for with on this that it you we be at by from or".split()
    ),
    "fr": frozenset("le la les et est des du un une pour dans avec sur que qui pas au".split()),
    "es": frozenset("el la los las y es de del un una para con en que por se al".split()),
    "de": frozenset("der die das und ist ein eine mit auf den dem zu von nicht im".split()),
    "it": frozenset("il lo la gli le e di del un una per con che non sono nel".split()),
    "pt": frozenset("o a os as e de do da um uma para com em que nao no na".split()),
}


def normalize_label(text: str) -> str:
    """Lowercase ``text`` and collapse runs of whitespace, underscores and hyphens."""
    folded = unicodedata.normalize("NFKC", text).replace("_", " ").replace("-", " ")
    return _WHITESPACE_PATTERN.sub(" ", folded).strip().lower()


def unique(values: Iterable[str]) -> list[str]:
    """Drop empty and repeated values while keeping first-seen order."""
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if not value or value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


def detect_language(text: str, *, default: str = "unknown") -> tuple[str, float]:
    """Guess the language of ``text`` from stop-word frequency.

    Returns the language code and the share of words that matched its
    stop-word list. Text with no recognisable words returns ``default``.
    """
    words = [word.lower() for word in _WORD_PATTERN.findall(text)]
    if not words:
        return default, 0.0
    scores = {
        code: sum(1 for word in words if word in stopwords)
        for code, stopwords in _STOPWORDS.items()
    }
    code, hits = max(scores.items(), key=lambda item: item[1])
    if hits == 0:
        return default, 0.0
    return code, round(hits / len(words), 3)
