"""Content pools for generation: persisted datasets, contributions, static fallback."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from config import settings
from services.categories import Category, canonical_text, normalize_tags
from services.document_store import CONTENT_ITEMS_COLLECTION, DocumentStore
from services.resilience import with_fallback

logger = logging.getLogger(__name__)

Pools = Dict[Category, List[Dict[str, Any]]]


def to_content_item(raw: Any, category: Category) -> Optional[Dict[str, Any]]:
    """Normalise a stored record; ``None`` when it has no usable id or text."""
    if not isinstance(raw, dict):
        return None
    item_id = raw.get("id")
    if isinstance(item_id, int):
        item_id = str(item_id)
    text = canonical_text(raw, category).strip()
    if not isinstance(item_id, str) or not item_id.strip() or not text:
        return None
    item = dict(raw)
    item.update(
        {
            "id": item_id,
            "type": category.value,
            "text": text,
            "situation": str(raw.get("situation") or "").strip(),
            "tags": normalize_tags(raw.get("tags")),
        }
    )
    return item


def _normalize_pool(rows: List[Any], category: Category, source: str) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    dropped = 0
    for row in rows:
        item = to_content_item(row, category)
        if item is None:
            dropped += 1
            continue
        items.append(item)
    if dropped:
        logger.warning("Dropped %s invalid %s items from %s", dropped, category.value, source)
    return items


def load_static_pools(path: Optional[str] = None) -> Pools:
    """Bundled fallback datasets, keyed by collection name in the JSON file."""
    file_path = Path(path or settings.STATIC_DATASET_PATH)
    try:
        payload = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Static dataset unavailable at %s: %s", file_path, exc)
        return {category: [] for category in Category}
    return {
        category: _normalize_pool(list(payload.get(category.collection) or []), category, str(file_path))
        for category in Category
    }


class DatasetCatalog:
    """Per-process cache of the three category pools."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        ttl_seconds: Optional[float] = None,
        static_path: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.ttl_seconds = settings.DATASET_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.static_path = static_path
        self._clock = clock
        self._pools: Optional[Pools] = None
        self._loaded_at = 0.0
        self._static: Optional[Pools] = None

    def invalidate(self) -> None:
        self._pools = None

    def _static_pools(self) -> Pools:
        if self._static is None:
            self._static = load_static_pools(self.static_path)
        return self._static

    async def _load_category(self, category: Category) -> List[Dict[str, Any]]:
        uploaded = await with_fallback(
            lambda: self.store.get_dataset(category),
            [],
            label=f"load {category.collection} dataset",
        )
        contributed = await with_fallback(
            lambda: self.store.query_by_field(CONTENT_ITEMS_COLLECTION, "type", category.value),
            [],
            label=f"load {category.value} contributions",
        )
        items = _normalize_pool(uploaded, category, "datasets") + _normalize_pool(
            contributed, category, CONTENT_ITEMS_COLLECTION
        )
        if not items:
            logger.info("No stored %s items, using static dataset", category.collection)
            return list(self._static_pools()[category])
        return items

    async def get_pools(self) -> Pools:
        now = self._clock()
        if self._pools is not None and now - self._loaded_at < self.ttl_seconds:
            return self._pools
        pools: Pools = {}
        for category in Category:
            pools[category] = await self._load_category(category)
        self._pools = pools
        self._loaded_at = now
        logger.info(
            "Loaded content pools: %s",
            ", ".join(f"{category.collection}={len(items)}" for category, items in pools.items()),
        )
        return pools
