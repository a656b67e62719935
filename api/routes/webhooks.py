"""
Webhook Routes for the Lead Lifecycle Engine.

Receives call-ended events from the voice-AI workflow and turns each one
into a scored, assigned lead with a scheduled follow-up.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from lifecycle.call_ended import CallEndedProcessor
from utils.exceptions import LeadEngineError, ValidationError
from ..middleware.auth import require_webhook_secret
from ..middleware.metrics import record_call_ended, record_lead_score
from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/webhooks/call-ended", dependencies=[Depends(require_webhook_secret)])
async def call_ended_webhook(request: Request, services: Services = Depends(get_services)):
    """
    Receive a call-ended event.

    The body is a call-ended object, optionally wrapped once in a ``body``
    envelope.
    """
    try:
        raw = await request.json()
    except ValueError:
        record_call_ended("rejected")
        raise ValidationError("Request body must be valid JSON")

    processor: CallEndedProcessor = services.call_ended_processor()
    try:
        result = await processor.process(raw)
    except ValidationError:
        record_call_ended("rejected")
        raise
    except LeadEngineError:
        record_call_ended("failed")
        raise

    record_call_ended("created" if result.created else "updated")
    record_lead_score(result.score)

    return JSONResponse(
        status_code=201,
        content={"ok": True, "message": "Lead lifecycle processed", "data": result.to_dict()},
    )
