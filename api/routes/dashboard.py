"""
Dashboard metrics for the Lead Lifecycle Engine.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict

from fastapi import APIRouter, Depends

from database.models import InterestLabel, LeadStage, SiteVisitStatus
from utils.clock import utcnow
from utils.exceptions import StorePermissionError
from ..middleware.auth import require_operator_key
from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_operator_key)])


def empty_metrics() -> Dict[str, Any]:
    return {
        "total_leads": 0,
        "closed_leads": 0,
        "conversion_rate": 0.0,
        "average_score": 0.0,
        "scheduled_visits": 0,
        "completed_visits": 0,
        "follow_ups_due_today": 0,
        "stage_breakdown": {stage.value: 0 for stage in LeadStage},
        "interest_breakdown": {label.value: 0 for label in InterestLabel},
    }


async def collect_metrics(services: Services, now: datetime) -> Dict[str, Any]:
    store = services.store
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    total = await store.leads.count()
    closed = await store.leads.count(stage=LeadStage.CLOSED.value)
    return {
        "total_leads": total,
        "closed_leads": closed,
        "conversion_rate": round(closed / total * 100, 2) if total else 0.0,
        "average_score": await store.leads.average_score(),
        "scheduled_visits": await store.site_visits.count(status=SiteVisitStatus.SCHEDULED.value),
        "completed_visits": await store.site_visits.count(status=SiteVisitStatus.COMPLETED.value),
        "follow_ups_due_today": await store.follow_ups.count_pending_due_between(
            day_start, day_start + timedelta(days=1)
        ),
        "stage_breakdown": {stage.value: await store.leads.count(stage=stage.value) for stage in LeadStage},
        "interest_breakdown": {
            label.value: await store.leads.count(interest_label=label.value) for label in InterestLabel
        },
    }


@router.get("/dashboard/metrics")
async def dashboard_metrics(services: Services = Depends(get_services)):
    """
    Founder dashboard counters.

    When the store denies access the endpoint answers with zeroed counters
    and ``degraded: true`` instead of failing the dashboard.
    """
    try:
        metrics = await collect_metrics(services, utcnow())
    except StorePermissionError as e:
        logger.warning(f"Dashboard metrics degraded: {e.message}")
        return {"ok": True, "degraded": True, "data": empty_metrics()}
    return {"ok": True, "degraded": False, "data": metrics}
