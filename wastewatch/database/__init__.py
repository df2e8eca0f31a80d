"""
Database module for WasteWatch AI
Document persistence for reports and accounts
"""

from .connection import DatabaseConnection
from .models import Base, Document
from .document_store import (
    DocumentStore,
    InMemoryDocumentStore,
    SQLDocumentStore,
)

__all__ = [
    "DatabaseConnection",
    "Base",
    "Document",
    "DocumentStore",
    "InMemoryDocumentStore",
    "SQLDocumentStore",
]
