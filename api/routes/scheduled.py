"""
Scheduled job routes for the Lead Lifecycle Engine.

An external scheduler calls the dispatch trigger every few minutes; each
call seeds follow-ups for never-called leads and places a small batch of
due outbound calls.
"""

import logging

from fastapi import APIRouter, Depends

from utils.exceptions import LeadEngineError
from ..middleware.auth import require_dispatch_secret
from ..middleware.metrics import record_dispatch_failure, record_dispatch_summary
from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


async def run_dispatch(services: Services) -> dict:
    """Run one dispatch batch and return its summary payload."""
    processor = services.dispatch_processor()
    try:
        summary = await processor.run()
    except LeadEngineError:
        record_dispatch_failure()
        raise
    record_dispatch_summary(summary)
    return summary.to_dict()


# ── Endpoints ─────────────────────────────────────────────────────

@router.api_route(
    "/jobs/call-dispatch",
    methods=["GET", "POST"],
    dependencies=[Depends(require_dispatch_secret)],
)
async def trigger_call_dispatch(services: Services = Depends(get_services)):
    """
    Trigger one call-dispatch run.

    GET is accepted so plain cron pingers can call it.
    """
    return {"ok": True, "data": await run_dispatch(services)}
