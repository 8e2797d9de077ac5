"""Text normalisation and bigram (Dice coefficient) similarity."""

from __future__ import annotations

import re
from collections import Counter
from typing import Any, Optional

_ZERO_WIDTH_RE = re.compile("[\u200c\u200d]")
_PUNCTUATION_RE = re.compile(r"""[!@#$%^&*(),.?":{}|<>]""")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: Optional[Any]) -> str:
    """Canonical form used for every text comparison.

    Lower-cases, removes zero-width joiner/non-joiner marks (common in Telugu
    script), turns a fixed punctuation set into spaces and collapses
    whitespace. ``None`` normalises to ``""``.
    """
    if not text:
        return ""
    value = str(text).lower().strip()
    value = _ZERO_WIDTH_RE.sub("", value)
    value = _PUNCTUATION_RE.sub(" ", value)
    value = _WHITESPACE_RE.sub(" ", value)
    return value.strip()


def _bigrams(value: str) -> Counter:
    return Counter(value[idx : idx + 2] for idx in range(len(value) - 1))


def dice_similarity(first: str, second: str) -> float:
    """Sorensen-Dice coefficient over character bigrams, in [0, 1].

    Whitespace is ignored. Identical strings score 1.0; strings shorter than
    two characters that are not identical score 0.0.
    """
    a = _WHITESPACE_RE.sub("", first or "")
    b = _WHITESPACE_RE.sub("", second or "")
    if a == b:
        return 1.0 if a else 0.0
    if len(a) < 2 or len(b) < 2:
        return 0.0

    first_bigrams = _bigrams(a)
    second_bigrams = _bigrams(b)
    overlap = sum((first_bigrams & second_bigrams).values())
    return (2.0 * overlap) / (len(a) + len(b) - 2)


def is_near_duplicate(first: Optional[str], second: Optional[str], threshold: float) -> bool:
    """Compare two raw texts after normalisation.

    Empty normalised text never matches anything, so items missing their text
    never collapse into one duplicate bucket.
    """
    normalized_first = normalize_text(first)
    normalized_second = normalize_text(second)
    if not normalized_first or not normalized_second:
        return False
    return dice_similarity(normalized_first, normalized_second) >= threshold
