"""
Storage trigger entry point
Adapts raw object-finalize notifications to the pipeline
"""

import logging
import threading
from typing import Any, Dict, Optional

from pydantic import ValidationError

from wastewatch.core.config import get_settings
from wastewatch.core.logging import setup_logging
from wastewatch.pipeline.events import FinalizeEvent
from wastewatch.pipeline.orchestrator import Outcome, PipelineOrchestrator, PipelineResult

logger = logging.getLogger(__name__)

_orchestrator: Optional[PipelineOrchestrator] = None
_lock = threading.Lock()


def get_orchestrator() -> PipelineOrchestrator:
    """Build the default orchestrator from settings on first use."""
    global _orchestrator
    with _lock:
        if _orchestrator is None:
            settings = get_settings()
            setup_logging(settings.log_level)
            _orchestrator = PipelineOrchestrator.from_settings(settings)
            logger.info(f"Pipeline orchestrator initialized ({settings.app_env})")
        return _orchestrator


def set_orchestrator(orchestrator: Optional[PipelineOrchestrator]) -> None:
    """Replace (or clear) the default orchestrator."""
    global _orchestrator
    with _lock:
        _orchestrator = orchestrator


def on_object_finalized(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle one storage finalize notification.

    Args:
        payload: Object resource (``bucket``, ``name``, ``contentType``,
            ``size``, ``generation``, ``metadata``, ``mediaLink``) or a
            CloudEvent envelope carrying it under ``data``

    Returns:
        Pipeline result as a dictionary
    """
    try:
        event = FinalizeEvent.from_payload(payload)
    except ValidationError as e:
        logger.warning(f"Malformed finalize notification: {e.errors()}")
        return PipelineResult(Outcome.FAILED, message="malformed finalize notification").to_dict()

    if not event.bucket or not event.path:
        logger.warning(f"Ignoring finalize notification without bucket/name: {payload}")
        return {"outcome": "ignored", "message": "missing bucket or object name"}

    result = get_orchestrator().handle_finalize(event)
    logger.info(f"{event.path}: {result.outcome.value} {result.message}")
    return result.to_dict()
