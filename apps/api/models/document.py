"""Document model backing the key/document store."""

import uuid

from sqlalchemy import Column, DateTime, JSON, String, UniqueConstraint
from sqlalchemy.sql import func

from database import Base


class Document(Base):
    """One JSON document addressed by (collection, doc_id)."""

    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    collection = Column(String, nullable=False, index=True)
    doc_id = Column(String, nullable=False)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
