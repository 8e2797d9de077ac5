"""Admin bulk upload: content-similarity merge into a persisted dataset."""

from __future__ import annotations

import json
import logging
import secrets
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from fastapi import HTTPException

from config import settings
from services.categories import Category, primary_text, require_category
from services.document_store import DocumentStore
from services.resilience import with_fallback
from services.text_similarity import is_near_duplicate, normalize_text

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.85


class MergeMode(str, Enum):
    SMART = "smart-merge"
    APPEND = "append"


@dataclass
class MergeStats:
    inputItems: int = 0
    newItemsAdded: int = 0
    duplicatesSkipped: int = 0
    totalItems: int = 0


@dataclass
class MergeResult:
    merged: List[Dict[str, Any]] = field(default_factory=list)
    stats: MergeStats = field(default_factory=MergeStats)


def generate_item_id(category: Category) -> str:
    """Category-prefixed id, e.g. ``dlg_1718000000000_k3j9x0a1b``."""
    return f"{category.id_prefix}_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def _require_item_list(value: Any, name: str) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        raise TypeError(f"{name} must be a list of items, got {type(value).__name__}")
    return value


def _with_id(item: Dict[str, Any], category: Category, id_factory: Callable[[Category], str]) -> Dict[str, Any]:
    accepted = dict(item)
    if not accepted.get("id"):
        accepted["id"] = id_factory(category)
    return accepted


def merge_items(
    existing: List[Dict[str, Any]],
    incoming: List[Dict[str, Any]],
    category: Category,
    *,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    id_factory: Callable[[Category], str] = generate_item_id,
) -> MergeResult:
    """Append incoming items that are not near-duplicates of an existing item.

    Each incoming item is compared against ``existing`` only, never against
    items accepted earlier from the same batch. Existing items are kept as-is
    and in order; accepted items follow in their original order.
    """
    _require_item_list(existing, "existing")
    _require_item_list(incoming, "incoming")

    existing_texts = [normalize_text(primary_text(item, category)) for item in existing]
    merged = list(existing)
    added = 0
    skipped = 0

    for item in incoming:
        candidate_text = primary_text(item, category)
        duplicate = any(is_near_duplicate(candidate_text, old_text, threshold) for old_text in existing_texts)
        if duplicate:
            skipped += 1
            continue
        merged.append(_with_id(item, category, id_factory))
        added += 1

    return MergeResult(
        merged=merged,
        stats=MergeStats(
            inputItems=len(incoming),
            newItemsAdded=added,
            duplicatesSkipped=skipped,
            totalItems=len(merged),
        ),
    )


def append_items(
    existing: List[Dict[str, Any]],
    incoming: List[Dict[str, Any]],
    category: Category,
    *,
    id_factory: Callable[[Category], str] = generate_item_id,
) -> MergeResult:
    """Plain concatenation without duplicate checks."""
    _require_item_list(existing, "existing")
    _require_item_list(incoming, "incoming")
    merged = list(existing) + [_with_id(item, category, id_factory) for item in incoming]
    return MergeResult(
        merged=merged,
        stats=MergeStats(
            inputItems=len(incoming),
            newItemsAdded=len(incoming),
            duplicatesSkipped=0,
            totalItems=len(merged),
        ),
    )


def parse_merge_mode(value: Any) -> MergeMode:
    text = str(value or MergeMode.SMART.value).strip().lower()
    if text == "smart":
        return MergeMode.SMART
    for mode in MergeMode:
        if text == mode.value:
            return mode
    raise HTTPException(status_code=422, detail="mode must be smart-merge or append")


def parse_upload_payload(data: Any) -> List[Dict[str, Any]]:
    """Accept the raw JSON text (or already-decoded list) of an admin upload."""
    if isinstance(data, str):
        if not data.strip():
            raise HTTPException(status_code=422, detail="Please enter JSON data")
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise HTTPException(status_code=422, detail=f"Invalid JSON: {exc.msg}") from exc
    if not isinstance(data, list):
        raise HTTPException(status_code=422, detail="Data must be an array")
    if any(not isinstance(item, dict) for item in data):
        raise HTTPException(status_code=422, detail="Every item must be a JSON object")
    return data


def _success_message(category: Category, mode: MergeMode, stats: MergeStats, threshold: float) -> str:
    if mode == MergeMode.APPEND:
        return (
            f"{stats.inputItems} new items appended to {category.collection}! "
            f"Total: {stats.totalItems} items"
        )
    return (
        "Smart merge completed!\n"
        f"- Input items: {stats.inputItems}\n"
        f"- New items added: {stats.newItemsAdded}\n"
        f"- Duplicates detected & skipped: {stats.duplicatesSkipped}\n"
        f"- Total dataset: {stats.totalItems} items\n\n"
        f"Duplicate detection based on {round(threshold * 100)}% content similarity."
    )


async def merge_dataset_service(
    *,
    store: DocumentStore,
    category: Any,
    mode: Any,
    data: Any,
    threshold: Optional[float] = None,
) -> Dict[str, Any]:
    """Read-modify-write of one category dataset.

    There is no optimistic-concurrency check: two concurrent merges into the
    same category can overwrite each other's additions.
    """
    resolved_category = require_category(category)
    merge_mode = parse_merge_mode(mode)
    incoming = parse_upload_payload(data)
    similarity_threshold = threshold if threshold is not None else settings.DUPLICATE_SIMILARITY_THRESHOLD

    loaded = await with_fallback(
        lambda: store.get_dataset(resolved_category),
        None,
        label=f"load dataset {resolved_category.collection}",
    )
    existing = loaded if loaded is not None else []

    if merge_mode == MergeMode.APPEND:
        result = append_items(existing, incoming, resolved_category)
    else:
        result = merge_items(existing, incoming, resolved_category, threshold=similarity_threshold)

    logger.info(
        "Merge %s into %s: input=%s added=%s skipped=%s total=%s",
        merge_mode.value,
        resolved_category.collection,
        result.stats.inputItems,
        result.stats.newItemsAdded,
        result.stats.duplicatesSkipped,
        result.stats.totalItems,
    )

    # Without the current dataset a write would drop every stored item.
    if loaded is None:
        logger.warning("Skipping save of %s: existing dataset could not be read", resolved_category.collection)
        saved = False
    else:
        saved = await with_fallback(
            lambda: store.put_dataset(resolved_category, result.merged, merge_mode=merge_mode.value),
            False,
            label=f"save dataset {resolved_category.collection}",
        )

    message = _success_message(resolved_category, merge_mode, result.stats, similarity_threshold)
    if not saved:
        message += "\n\nNote: Data processed successfully but not synced to the store due to connection issues."

    return {
        "category": resolved_category.value,
        "collection": resolved_category.collection,
        "mode": merge_mode.value,
        "stats": asdict(result.stats),
        "saved": bool(saved),
        "message": message,
    }
