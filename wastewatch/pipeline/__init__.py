"""
WasteWatch AI - Pipeline Module
Storage-triggered intake and cleanup verification.
"""

from wastewatch.pipeline.events import (
    FinalizeEvent,
    UploadKind,
)
from wastewatch.pipeline.correlation import (
    ReportCorrelator,
    Correlation,
)
from wastewatch.pipeline.orchestrator import (
    PipelineOrchestrator,
    PipelineResult,
    Outcome,
)
from wastewatch.pipeline.triggers import on_object_finalized

__all__ = [
    "FinalizeEvent",
    "UploadKind",
    "ReportCorrelator",
    "Correlation",
    "PipelineOrchestrator",
    "PipelineResult",
    "Outcome",
    "on_object_finalized",
]
