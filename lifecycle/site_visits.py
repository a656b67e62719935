"""
Site-visit recording and the stage changes it implies.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from database.models import FollowUpChannel, FollowUpStatus, SiteVisitStatus
from utils.clock import to_naive_utc, utcnow
from utils.exceptions import NotFoundError, StoreError
from .policy import POST_VISIT_DELAY, build_post_visit_message, resolve_stage, stage_for_site_visit

logger = logging.getLogger(__name__)


class SiteVisitInput(BaseModel):
    status: SiteVisitStatus
    scheduled_for: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    rep_id: Optional[str] = None

    @field_validator("scheduled_for", "completed_at")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value) if value is not None else None


@dataclass
class SiteVisitResult:
    site_visit_id: str
    lead_id: str
    stage: str
    follow_up_id: Optional[str] = None
    closed_follow_ups: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "site_visit_id": self.site_visit_id,
            "lead_id": self.lead_id,
            "stage": self.stage,
            "follow_up_id": self.follow_up_id,
            "closed_follow_ups": self.closed_follow_ups,
        }


class SiteVisitService:
    def __init__(self, store):
        self.store = store

    async def record(self, lead_id: str, data: SiteVisitInput) -> SiteVisitResult:
        lead = await self.store.leads.get(lead_id)
        if lead is None:
            raise NotFoundError("Lead not found")

        now = utcnow()
        rep_id = data.rep_id or lead.assigned_to
        visit = await self.store.site_visits.insert(
            lead_id=lead.id,
            rep_id=rep_id,
            status=data.status.value,
            scheduled_for=data.scheduled_for,
            completed_at=data.completed_at,
            notes=(data.notes or "").strip() or None,
        )

        stage = resolve_stage(lead.stage, stage_for_site_visit(data.status))
        if stage != lead.stage:
            if await self.store.leads.update(lead.id, stage=stage) is None:
                raise StoreError("Unable to update lead stage")

        result = SiteVisitResult(site_visit_id=visit.id, lead_id=lead.id, stage=stage)
        if data.status == SiteVisitStatus.COMPLETED:
            result.closed_follow_ups = await self.store.follow_ups.close_pending_for_lead(
                lead.id, status=FollowUpStatus.CANCELLED.value, completed_at=now
            )
            follow_up = await self.store.follow_ups.insert(
                lead_id=lead.id,
                rep_id=rep_id,
                due_at=now + POST_VISIT_DELAY,
                channel=FollowUpChannel.CALL.value,
                message=build_post_visit_message(lead.customer_name),
            )
            result.follow_up_id = follow_up.id

        logger.info(
            f"Recorded {data.status.value} site visit",
            extra={"lead_id": lead.id, "stage": stage, "closed_follow_ups": result.closed_follow_ups},
        )
        return result
