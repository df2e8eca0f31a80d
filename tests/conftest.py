"""
Pytest configuration and fixtures
"""
import json
import pytest
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from wastewatch.crowdsource.photo_analyzer import PhotoAnalyzer
from wastewatch.crowdsource.report_handler import ReportHandler
from wastewatch.crowdsource.rewards import RewardLedger
from wastewatch.database.document_store import InMemoryDocumentStore
from wastewatch.ingestion.gemini_client import GeminiClient
from wastewatch.ingestion.storage_client import StorageClient


@pytest.fixture
def store():
    """Empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def handler(store):
    """Report repository over the in-memory store."""
    return ReportHandler(store, "reports")


@pytest.fixture
def ledger(store, handler):
    """Reward ledger over the in-memory store."""
    return RewardLedger(store, handler, "users")


@pytest.fixture
def storage():
    """Storage client that returns a tiny JPEG for every reference."""
    client = MagicMock(spec=StorageClient)
    client.resolve.return_value = (b"\xff\xd8\xff\xe0fake-jpeg", "image/jpeg")
    return client


@pytest.fixture
def oracle():
    """Oracle client; tests set judge.return_value / side_effect."""
    return MagicMock(spec=GeminiClient)


@pytest.fixture
def analyzer(storage, oracle):
    return PhotoAnalyzer(storage=storage, oracle=oracle)


@pytest.fixture
def submitted_at():
    return datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def intake_answer():
    """Oracle intake answer that should be accepted."""
    return {
        "imageValid": True,
        "isRealPhoto": True,
        "wasteDetected": "yes",
        "wasteType": "plastic",
        "wasteAmount": "moderate",
        "classification": "dry",
        "severity": "red",
        "isFake": False,
        "confidence": 0.92,
        "description": "Pile of plastic bottles and bags on the pavement",
    }


@pytest.fixture
def comparison_answer():
    """Oracle comparison answer that should verify the cleanup."""
    return {
        "sameLocation": True,
        "cleaned": True,
        "cleanlinessLevel": "very clean",
        "remainingWaste": False,
        "cleaningQuality": "excellent",
        "afterIsCleaner": True,
        "suspicious": False,
        "suspiciousReason": "",
        "confidence": 0.88,
        "description": "Same corner, pile removed",
    }


@pytest.fixture
def as_json():
    """Serialize an oracle answer the way the model returns it."""
    return lambda answer: json.dumps(answer)
