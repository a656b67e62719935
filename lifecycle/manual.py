"""
Manual (operator-entered) leads.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from database.models import InterestLabel, Lead, LeadStage
from lead_scoring.assignment import RepAssignor
from normalization.phone import deterministic_lead_id_from_phone, normalize_phone_for_storage, phone_suffix
from utils.clock import isoformat_utc, utcnow
from utils.exceptions import ConflictError, StoreError, ValidationError
from .dedup import consolidate_duplicate_leads_by_phone
from .policy import carry_dispatch_metadata

logger = logging.getLogger(__name__)

_PHONE_SEPARATORS = re.compile(r"[\s().-]")
_PHONE_SHAPE = re.compile(r"^\+?[0-9]{7,15}$")


class ManualLeadInput(BaseModel):
    """Lead entered from the dashboard form."""

    model_config = ConfigDict(str_strip_whitespace=True)

    customer_name: str = Field(..., min_length=1, max_length=120)
    phone: str
    source: str = Field(default="manual", min_length=2, max_length=80)
    goal: Optional[str] = Field(default=None, max_length=250)
    preference: Optional[str] = Field(default=None, max_length=250)
    interest_label: Optional[InterestLabel] = None
    dispatch_now: bool = False

    @field_validator("phone")
    @classmethod
    def _phone_shape(cls, value: str) -> str:
        compact = _PHONE_SEPARATORS.sub("", value)
        if not _PHONE_SHAPE.match(compact):
            raise ValueError("Phone must contain 7-15 digits and may start with +")
        return compact

    @field_validator("goal", "preference")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


@dataclass
class ManualLeadResult:
    lead: Lead
    created: bool

    def to_dict(self) -> Dict[str, Any]:
        lead = self.lead
        return {
            "id": lead.id,
            "created_at": isoformat_utc(lead.created_at),
            "customer_name": lead.customer_name,
            "phone": lead.phone,
            "source": lead.source,
            "stage": lead.stage,
            "interest_label": lead.interest_label,
            "goal": lead.goal,
            "preference": lead.preference,
            "assigned_to": lead.assigned_to,
        }


class ManualLeadService:
    """Creates a lead for a phone, or updates the canonical lead it already has."""

    def __init__(self, store, assignor: RepAssignor):
        self.store = store
        self.assignor = assignor

    async def create(self, data: ManualLeadInput) -> ManualLeadResult:
        phone = normalize_phone_for_storage(data.phone)
        if not phone:
            raise ValidationError("Invalid phone number", details={"fieldErrors": {"phone": ["Invalid phone number"]}})

        now = utcnow()
        mutation: Dict[str, Any] = {
            "updated_at": now,
            "customer_name": data.customer_name,
            "source": data.source,
            "goal": data.goal,
            "preference": data.preference,
            "raw_payload": {
                "created_via": "manual_dashboard_form",
                "submitted_at": isoformat_utc(now),
            },
        }
        if data.interest_label is not None:
            mutation["interest_label"] = data.interest_label.value

        existing_id = await consolidate_duplicate_leads_by_phone(self.store, phone, "manual-lead")
        if existing_id:
            return ManualLeadResult(lead=await self._update(existing_id, mutation), created=False)

        assignment = await self.assignor.assign()
        try:
            lead = await self.store.leads.insert(
                id=deterministic_lead_id_from_phone(phone),
                created_at=now,
                phone=phone,
                stage=LeadStage.NEW.value,
                assigned_to=assignment.rep_id,
                **mutation,
            )
        except ConflictError:
            recovered_id = await consolidate_duplicate_leads_by_phone(self.store, phone, "manual-lead-recover")
            if not recovered_id:
                raise
            return ManualLeadResult(lead=await self._update(recovered_id, mutation), created=False)

        logger.info("Manual lead created", extra={"lead_id": lead.id, "phone_suffix": phone_suffix(phone)})
        return ManualLeadResult(lead=lead, created=True)

    async def _update(self, lead_id: str, mutation: Dict[str, Any]) -> Lead:
        existing = await self.store.leads.get(lead_id)
        values = dict(mutation)
        values["raw_payload"] = carry_dispatch_metadata(
            existing.raw_payload if existing is not None else None, mutation["raw_payload"]
        )
        lead = await self.store.leads.update(lead_id, **values)
        if lead is None:
            raise StoreError("Unable to update existing manual lead")
        logger.info("Manual lead updated", extra={"lead_id": lead.id})
        return lead
