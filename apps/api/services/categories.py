"""Content categories and the per-category field lookup table."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import HTTPException


class Category(str, Enum):
    DIALOGUE = "dialogue"
    MEME = "meme"
    TREND = "trend"

    @property
    def collection(self) -> str:
        return CATEGORY_FIELDS[self]["collection"]

    @property
    def id_prefix(self) -> str:
        return CATEGORY_FIELDS[self]["id_prefix"]

    @property
    def text_field(self) -> str:
        return CATEGORY_FIELDS[self]["text_field"]


# Adding a category means adding one row here.
CATEGORY_FIELDS: Dict[Category, Dict[str, str]] = {
    Category.DIALOGUE: {"collection": "dialogues", "id_prefix": "dlg", "text_field": "text"},
    Category.MEME: {"collection": "memes", "id_prefix": "meme", "text_field": "caption"},
    Category.TREND: {"collection": "trends", "id_prefix": "trend", "text_field": "headline"},
}

# Fields consulted (in order) when an item lacks its category's primary field.
SECONDARY_TEXT_FIELDS = ("text", "dialogue", "caption", "headline")


def parse_category(value: Any) -> Optional[Category]:
    """Resolve a category tag or collection name ("meme" / "memes")."""
    text = str(value or "").strip().lower()
    for category in Category:
        if text in (category.value, category.collection):
            return category
    return None


def require_category(value: Any) -> Category:
    category = parse_category(value)
    if category is None:
        allowed = ", ".join(c.value for c in Category)
        raise HTTPException(status_code=422, detail=f"category must be one of: {allowed}")
    return category


def primary_text(item: Dict[str, Any], category: Category) -> str:
    """The category's own text field only; used for duplicate detection."""
    value = item.get(category.text_field)
    return value if isinstance(value, str) else ""


def canonical_text(item: Dict[str, Any], category: Category) -> str:
    """Primary text, falling back to the other known text fields."""
    text = primary_text(item, category)
    if text:
        return text
    for field in SECONDARY_TEXT_FIELDS:
        value = item.get(field)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def normalize_tags(value: Any) -> List[str]:
    if isinstance(value, str):
        candidates = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        candidates = list(value)
    else:
        return []
    tags: List[str] = []
    for raw in candidates:
        tag = str(raw or "").strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags
