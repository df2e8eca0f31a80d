"""
SQLAlchemy models for WasteWatch AI
Reports and accounts are stored as JSON documents keyed by collection
"""

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, JSON, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(Base):
    """
    A schemaless document in a named collection.

    The pipeline only relies on merge updates, atomic appends and atomic
    increments, so every collection shares this table.
    """
    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    doc_id = Column(String(128), primary_key=True)

    data = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)

    # Metadata
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_documents_collection", "collection"),
    )

    def to_dict(self) -> dict:
        """Document payload with its id merged in."""
        payload = dict(self.data or {})
        payload["id"] = self.doc_id
        return payload

    def __repr__(self):
        return f"<Document({self.collection}/{self.doc_id})>"
