"""Key/document store over the ``documents`` table.

Every method raises on failure. Callers in the generation and merge paths
wrap calls with ``services.resilience.with_fallback`` so persistence stays
best-effort.
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from database import async_session_maker
from models.document import Document
from services.categories import Category

DATASETS_COLLECTION = "datasets"
CONTENT_ITEMS_COLLECTION = "contentItems"
SCRIPTS_COLLECTION = "scripts"
SETTINGS_COLLECTION = "settings"
METRICS_COLLECTION = "metrics"

_UPSERT_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def batch_cache_key(topic: str, genre: Optional[str]) -> str:
    """Deterministic document id for a (topic, genre) cache record."""
    raw = f"{str(topic or '').strip()}|{str(genre or '').strip()}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    text = str(value or "").strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class DocumentStore:
    """get/set/delete/query-by-field over JSON documents."""

    def __init__(self, session_maker: async_sessionmaker = async_session_maker):
        self._session_maker = session_maker

    async def _find(self, session: AsyncSession, collection: str, doc_id: str) -> Optional[Document]:
        result = await session.execute(
            select(Document).where(
                Document.collection == collection,
                Document.doc_id == doc_id,
            )
        )
        return result.scalar_one_or_none()

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        async with self._session_maker() as session:
            row = await self._find(session, collection, doc_id)
            if row is None:
                return None
            return dict(row.data or {})

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or fully replace a document in one statement."""
        async with self._session_maker() as session:
            insert_factory = _UPSERT_INSERTS.get(session.get_bind().dialect.name)
            if insert_factory is not None:
                stmt = insert_factory(Document).values(
                    id=str(uuid.uuid4()),
                    collection=collection,
                    doc_id=doc_id,
                    data=data,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["collection", "doc_id"],
                    set_={"data": stmt.excluded.data, "updated_at": _utcnow()},
                )
                await session.execute(stmt)
                await session.commit()
                return

            row = await self._find(session, collection, doc_id)
            if row is None:
                session.add(Document(collection=collection, doc_id=doc_id, data=data))
            else:
                row.data = data
                row.updated_at = _utcnow()
            await session.commit()

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        async with self._session_maker() as session:
            session.add(Document(collection=collection, doc_id=doc_id, data=data))
            await session.commit()
        return doc_id

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._session_maker() as session:
            await session.execute(
                delete(Document).where(
                    Document.collection == collection,
                    Document.doc_id == doc_id,
                )
            )
            await session.commit()

    async def list_documents(self, collection: str) -> List[Dict[str, Any]]:
        """All documents of a collection, oldest first, with ``id`` injected."""
        async with self._session_maker() as session:
            result = await session.execute(
                select(Document)
                .where(Document.collection == collection)
                .order_by(Document.created_at.asc(), Document.id.asc())
            )
            rows = result.scalars().all()
        return [{**(row.data or {}), "id": row.doc_id} for row in rows]

    async def query_by_field(self, collection: str, field: str, value: Any) -> List[Dict[str, Any]]:
        """Documents whose top-level ``field`` equals a scalar ``value``."""
        element = Document.data[field]
        if isinstance(value, bool):
            condition = element.as_boolean() == value
        elif isinstance(value, int):
            condition = element.as_integer() == value
        elif isinstance(value, float):
            condition = element.as_float() == value
        elif isinstance(value, str):
            condition = element.as_string() == value
        else:
            raise TypeError(f"query_by_field supports scalar values, got {type(value).__name__}")

        async with self._session_maker() as session:
            result = await session.execute(
                select(Document)
                .where(Document.collection == collection, condition)
                .order_by(Document.created_at.asc(), Document.id.asc())
            )
            rows = result.scalars().all()
        return [{**(row.data or {}), "id": row.doc_id} for row in rows]

    # Dataset contract

    async def get_dataset(self, category: Category) -> List[Dict[str, Any]]:
        document = await self.get(DATASETS_COLLECTION, category.collection)
        if not document:
            return []
        data = document.get("data")
        return list(data) if isinstance(data, list) else []

    async def put_dataset(
        self,
        category: Category,
        items: List[Dict[str, Any]],
        *,
        merge_mode: Optional[str] = None,
    ) -> bool:
        await self.set(
            DATASETS_COLLECTION,
            category.collection,
            {
                "data": items,
                "updatedAt": _utcnow().isoformat(),
                "totalItems": len(items),
                "lastMergeMode": merge_mode,
            },
        )
        return True

    # Script batch cache contract

    async def get_cached_batch(self, topic: str, genre: Optional[str]) -> Optional[Dict[str, Any]]:
        key = batch_cache_key(topic, genre)
        document = await self.get(SCRIPTS_COLLECTION, key)
        if document is None:
            return None
        return {
            "key": key,
            "batch": document.get("batch"),
            "createdAt": parse_timestamp(document.get("createdAt")),
            "expiresAt": parse_timestamp(document.get("expiresAt")),
        }

    async def put_cached_batch(
        self,
        topic: str,
        genre: Optional[str],
        batch: List[Dict[str, Any]],
        expires_at: datetime,
    ) -> str:
        key = batch_cache_key(topic, genre)
        await self.set(
            SCRIPTS_COLLECTION,
            key,
            {
                "topic": topic,
                "genre": genre,
                "batch": batch,
                "createdAt": _utcnow().isoformat(),
                "expiresAt": expires_at.isoformat(),
            },
        )
        return key

    async def delete_cached_batch(self, key: str) -> None:
        await self.delete(SCRIPTS_COLLECTION, key)


def get_document_store() -> DocumentStore:
    """FastAPI dependency; tests override it with a store on a temp database."""
    return DocumentStore(async_session_maker)
