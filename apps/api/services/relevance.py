"""Fuzzy relevance matching of a free-text topic against content pools."""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from rapidfuzz import fuzz, process

from services.categories import Category, parse_category
from services.text_similarity import normalize_text

logger = logging.getLogger(__name__)

# Fuse-style "max distance": 0.0 is a perfect match, 1.0 no match at all.
DEFAULT_MATCH_THRESHOLD = 0.4
SEARCHABLE_FIELDS = ("situation", "text", "dialogue", "caption", "headline")
MIN_QUERY_TOKEN_LENGTH = 2


def _searchable_values(item: Dict[str, Any]) -> List[str]:
    values: List[str] = []
    for field in SEARCHABLE_FIELDS:
        value = item.get(field)
        if isinstance(value, str):
            values.append(normalize_text(value))
    tags = item.get("tags")
    if isinstance(tags, (list, tuple, set)):
        values.extend(normalize_text(tag) for tag in tags if isinstance(tag, str))
    elif isinstance(tags, str):
        values.append(normalize_text(tags))
    return [value for value in values if value]


def _match_distance(normalized_query: str, query_tokens: Sequence[str], item: Dict[str, Any]) -> float:
    values = _searchable_values(item)
    if not values:
        return 1.0
    if any(normalized_query in value for value in values):
        return 0.0

    field_tokens = sorted({token for value in values for token in value.split(" ")})
    total = 0.0
    for token in query_tokens:
        best = process.extractOne(token, field_tokens, scorer=fuzz.ratio)
        total += best[1] if best else 0.0
    quality = total / (100.0 * len(query_tokens))
    return 1.0 - quality


def promote_genre(items: List[Dict[str, Any]], genre: Optional[str]) -> List[Dict[str, Any]]:
    """Stable partition: items tagged with the genre first, order kept within each half."""
    needle = str(genre or "").strip().lower()
    if not needle:
        return list(items)

    def _tagged(item: Dict[str, Any]) -> bool:
        tags = item.get("tags")
        if isinstance(tags, str):
            tags = [tags]
        if not isinstance(tags, (list, tuple, set)):
            return False
        return any(needle in str(tag).lower() for tag in tags)

    tagged = [item for item in items if _tagged(item)]
    rest = [item for item in items if not _tagged(item)]
    return tagged + rest


def find_relevant_items(
    query: str,
    pool: Sequence[Dict[str, Any]],
    category: Union[Category, str, None],
    limit: int = 3,
    genre: Optional[str] = None,
    *,
    threshold: float = DEFAULT_MATCH_THRESHOLD,
    rng: Optional[random.Random] = None,
) -> List[Dict[str, Any]]:
    """Top ``limit`` items of ``category`` ranked by fuzzy relevance to ``query``.

    When nothing clears the threshold but the filtered pool is not empty, a
    uniformly random sample of ``min(limit, len(pool))`` items is returned
    instead, so callers always get reference material.
    """
    limit = max(int(limit), 0)
    if category is None:
        candidates = list(pool)
    else:
        resolved = category if isinstance(category, Category) else parse_category(category)
        wanted = resolved.value if resolved else str(category)
        candidates = [item for item in pool if item.get("type") == wanted]

    if not candidates or limit == 0:
        return []

    normalized_query = normalize_text(query)
    query_tokens = [token for token in normalized_query.split(" ") if len(token) >= MIN_QUERY_TOKEN_LENGTH]

    scored: List[Tuple[float, int, Dict[str, Any]]] = []
    if normalized_query and query_tokens:
        for idx, item in enumerate(candidates):
            distance = _match_distance(normalized_query, query_tokens, item)
            if distance <= threshold:
                scored.append((distance, idx, item))

    if not scored:
        chooser = rng or random
        sample = chooser.sample(candidates, min(limit, len(candidates)))
        logger.info(
            "No fuzzy match for %r in %s pool; returning %s random items",
            query,
            getattr(category, "value", category) or "mixed",
            len(sample),
        )
        return sample

    scored.sort(key=lambda row: (row[0], row[1]))
    ranked = [item for _distance, _idx, item in scored]
    return promote_genre(ranked, genre)[:limit]
