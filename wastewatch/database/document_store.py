"""
Document store contract used by the pipeline
Merge updates, atomic history appends, guarded writes and atomic increments
"""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .connection import DatabaseConnection
from .models import Document

logger = logging.getLogger(__name__)

# Evaluated against the current document inside the write lock
Precondition = Callable[[Dict[str, Any]], bool]


def new_document_id() -> str:
    """Generate an opaque document id."""
    return uuid.uuid4().hex[:20]


def set_path(doc: Dict[str, Any], dotted_key: str, value: Any) -> None:
    """Set a possibly nested field ("rewards.intake_citizen") in place."""
    parts = dotted_key.split(".")
    target = doc
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value


def merge_update(
    doc: Dict[str, Any],
    fields: Optional[Dict[str, Any]] = None,
    append_to_history: Optional[Dict[str, Any]] = None,
    array_union: Optional[Dict[str, Iterable[Any]]] = None,
) -> Dict[str, Any]:
    """
    Return a copy of ``doc`` with a partial update applied.

    Args:
        doc: Current document
        fields: Fields to set; dotted keys address nested mappings
        append_to_history: One entry appended to ``history``
        array_union: Values appended to array fields when not already present

    Returns:
        Updated document copy
    """
    updated = copy.deepcopy(doc)

    for key, value in (fields or {}).items():
        set_path(updated, key, copy.deepcopy(value))

    if append_to_history is not None:
        history = list(updated.get("history") or [])
        history.append(copy.deepcopy(append_to_history))
        updated["history"] = history

    for key, values in (array_union or {}).items():
        current = list(updated.get(key) or [])
        for value in values:
            if value not in current:
                current.append(value)
        updated[key] = current

    return updated


def matches_filters(doc: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    """Equality filters; list/tuple/set values mean membership."""
    for key, expected in (filters or {}).items():
        actual = doc.get(key)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class DocumentStore(ABC):
    """
    Minimal document database contract.

    All writes are partial merges. ``update`` applies its fields, the history
    entry and the array unions as one unit, and only when ``when`` accepts the
    current document, which is how callers make state transitions idempotent.
    """

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document (with its ``id``) or None."""

    @abstractmethod
    def find(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Query documents by top-level field equality."""

    @abstractmethod
    def create(
        self,
        collection: str,
        data: Dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        """Insert a new document and return its id."""

    @abstractmethod
    def update(
        self,
        collection: str,
        doc_id: str,
        fields: Optional[Dict[str, Any]] = None,
        append_to_history: Optional[Dict[str, Any]] = None,
        array_union: Optional[Dict[str, Iterable[Any]]] = None,
        when: Optional[Precondition] = None,
    ) -> bool:
        """
        Merge-update a document.

        Returns:
            False if the document is missing or ``when`` rejected it
        """

    @abstractmethod
    def increment(
        self,
        collection: str,
        doc_id: str,
        deltas: Dict[str, int],
        fields: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Atomically add ``deltas`` to numeric fields, creating the document
        if needed. ``fields`` are merged in alongside.
        """


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe in-process store, used for tests and local runs."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    @staticmethod
    def _with_id(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = copy.deepcopy(data)
        payload["id"] = doc_id
        return payload

    def get(self, collection, doc_id):
        with self._lock:
            data = self._collection(collection).get(doc_id)
            return self._with_id(doc_id, data) if data is not None else None

    def find(self, collection, filters=None, order_by=None, descending=False, limit=None):
        with self._lock:
            docs = [
                self._with_id(doc_id, data)
                for doc_id, data in self._collection(collection).items()
                if matches_filters(data, filters)
            ]

        if order_by:
            docs.sort(key=lambda d: (d.get(order_by) is not None, d.get(order_by) or ""), reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return docs

    def create(self, collection, data, doc_id=None):
        doc_id = doc_id or new_document_id()
        payload = copy.deepcopy(data)
        payload.pop("id", None)
        with self._lock:
            docs = self._collection(collection)
            if doc_id in docs:
                raise ValueError(f"Document already exists: {collection}/{doc_id}")
            docs[doc_id] = payload
        return doc_id

    def update(self, collection, doc_id, fields=None, append_to_history=None,
               array_union=None, when=None):
        with self._lock:
            docs = self._collection(collection)
            current = docs.get(doc_id)
            if current is None:
                return False
            if when is not None and not when(self._with_id(doc_id, current)):
                return False
            docs[doc_id] = merge_update(current, fields, append_to_history, array_union)
            return True

    def increment(self, collection, doc_id, deltas, fields=None):
        with self._lock:
            docs = self._collection(collection)
            current = copy.deepcopy(docs.get(doc_id) or {})
            for key, delta in deltas.items():
                current[key] = (current.get(key) or 0) + delta
            docs[doc_id] = merge_update(current, fields)


class SQLDocumentStore(DocumentStore):
    """
    Document store on top of SQLAlchemy.

    Guarded updates and increments lock the row (SELECT ... FOR UPDATE) for
    the duration of the transaction.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def _locked_row(self, session, collection: str, doc_id: str) -> Optional[Document]:
        stmt = (
            select(Document)
            .where(Document.collection == collection, Document.doc_id == doc_id)
            .with_for_update()
        )
        return session.execute(stmt).scalar_one_or_none()

    def get(self, collection, doc_id):
        with self.db.get_session() as session:
            row = session.get(Document, (collection, doc_id))
            return row.to_dict() if row is not None else None

    def find(self, collection, filters=None, order_by=None, descending=False, limit=None):
        stmt = select(Document).where(Document.collection == collection)

        for key, expected in (filters or {}).items():
            column = Document.data[key].as_string()
            if isinstance(expected, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(expected)))
            else:
                stmt = stmt.where(column == expected)

        if order_by:
            order_column = Document.data[order_by].as_string()
            stmt = stmt.order_by(order_column.desc() if descending else order_column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with self.db.get_session() as session:
            return [row.to_dict() for row in session.execute(stmt).scalars()]

    def create(self, collection, data, doc_id=None):
        doc_id = doc_id or new_document_id()
        payload = copy.deepcopy(data)
        payload.pop("id", None)
        with self.db.get_session() as session:
            session.add(Document(collection=collection, doc_id=doc_id, data=payload))
        logger.debug(f"Created document {collection}/{doc_id}")
        return doc_id

    def update(self, collection, doc_id, fields=None, append_to_history=None,
               array_union=None, when=None):
        with self.db.get_session() as session:
            row = self._locked_row(session, collection, doc_id)
            if row is None:
                return False
            if when is not None and not when(row.to_dict()):
                return False
            row.data = merge_update(row.data or {}, fields, append_to_history, array_union)
            row.updated_at = datetime.now(timezone.utc)
        return True

    def increment(self, collection, doc_id, deltas, fields=None):
        # A concurrent first insert loses the race once; the retry then
        # finds the row and increments it under lock.
        for attempt in range(2):
            try:
                with self.db.get_session() as session:
                    row = self._locked_row(session, collection, doc_id)
                    data = copy.deepcopy(row.data or {}) if row is not None else {}
                    for key, delta in deltas.items():
                        data[key] = (data.get(key) or 0) + delta
                    data = merge_update(data, fields)
                    if row is None:
                        session.add(Document(collection=collection, doc_id=doc_id, data=data))
                    else:
                        row.data = data
                        row.updated_at = datetime.now(timezone.utc)
                return
            except IntegrityError:
                if attempt:
                    raise
                logger.info(f"Concurrent create of {collection}/{doc_id}, retrying increment")
