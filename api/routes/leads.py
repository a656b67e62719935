"""
Lead Management API Routes for the Lead Lifecycle Engine.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from lifecycle.manual import ManualLeadInput
from lifecycle.site_visits import SiteVisitInput
from utils.exceptions import LeadEngineError, NotFoundError
from ..middleware.auth import require_operator_key
from ..services import Services, get_services
from .scheduled import run_dispatch

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_operator_key)])


@router.post("/leads/manual")
async def create_manual_lead(payload: ManualLeadInput, services: Services = Depends(get_services)):
    """
    Create a lead from the dashboard form, or update the lead the phone
    already has. With ``dispatch_now`` a dispatch run follows immediately.
    """
    result = await services.manual_leads().create(payload)
    body: Dict[str, Any] = {
        "ok": True,
        "message": "Lead created" if result.created else "Existing lead updated",
        "data": result.to_dict(),
    }

    if payload.dispatch_now:
        try:
            body["dispatch"] = {"ok": True, "data": await run_dispatch(services)}
        except LeadEngineError as e:
            # The lead is saved; report the dispatch failure alongside it.
            logger.warning(f"Dispatch after manual lead failed: {e.message}", extra={"lead_id": result.lead.id})
            body["dispatch"] = {"ok": False, "error": e.message, "reason": e.reason}

    return JSONResponse(status_code=201 if result.created else 200, content=body)


@router.delete("/leads/{lead_id}")
async def delete_lead(lead_id: str, services: Services = Depends(get_services)):
    """Delete a lead with its follow-ups and site visits."""
    if not await services.store.leads.delete(lead_id):
        raise NotFoundError("Lead not found")
    logger.info("Lead deleted", extra={"lead_id": lead_id})
    return {"ok": True, "message": "Lead deleted", "data": {"id": lead_id}}


@router.post("/leads/{lead_id}/site-visits")
async def record_site_visit(lead_id: str, payload: SiteVisitInput, services: Services = Depends(get_services)):
    """Record a scheduled, completed, or cancelled site visit for a lead."""
    result = await services.site_visits().record(lead_id, payload)
    return JSONResponse(
        status_code=201,
        content={"ok": True, "message": "Site visit recorded", "data": result.to_dict()},
    )
