"""
WasteWatch AI - Ingestion Module
Clients for the object store and the image oracle.
"""

from wastewatch.ingestion.storage_client import (
    StorageClient,
    StorageObject,
)
from wastewatch.ingestion.gemini_client import (
    GeminiClient,
    ImagePart,
)

__all__ = [
    # Storage
    "StorageClient",
    "StorageObject",
    # Gemini
    "GeminiClient",
    "ImagePart",
]
