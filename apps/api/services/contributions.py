"""End-user content contributions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException

from services.categories import normalize_tags, parse_category
from services.document_store import CONTENT_ITEMS_COLLECTION, DocumentStore

logger = logging.getLogger(__name__)


async def submit_contribution(
    *,
    store: DocumentStore,
    type: Any,
    content: Optional[str],
    situation: Optional[str],
    tags: Any = None,
) -> Dict[str, Any]:
    content_text = str(content or "").strip()
    situation_text = str(situation or "").strip()
    if not content_text or not situation_text:
        raise HTTPException(status_code=422, detail="Please fill in all required fields.")

    category = parse_category(type)
    if category is None:
        raise HTTPException(status_code=422, detail="type must be one of: dialogue, meme, trend")

    document = {
        "type": category.value,
        "dialogue": content_text,
        "situation": situation_text,
        "tags": normalize_tags(tags),
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }
    doc_id = await store.add(CONTENT_ITEMS_COLLECTION, document)
    logger.info("Stored %s contribution %s", category.value, doc_id)
    return {"id": doc_id, **document}
