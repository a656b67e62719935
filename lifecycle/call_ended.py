"""
Call-ended ingestion.

Normalizes the event, scores it, infers the stage, consolidates duplicate
leads for the phone, then creates or updates the lead and schedules its
follow-up.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from database.models import FollowUpChannel, Lead, LeadStage
from lead_scoring.assignment import AssignmentResult, AssignmentStrategy, RepAssignor
from lead_scoring.scoring_model import IntentScorer, ScoreResult
from normalization.payload import CallEndedEvent, parse_call_ended_payload
from normalization.phone import deterministic_lead_id_from_phone, normalize_phone_for_storage, phone_suffix
from normalization.text import EnglishTextNormalizer, clean_text
from normalization.visit_schedule import VisitSchedule, normalize_visit_schedule
from utils.clock import isoformat_utc, utcnow
from utils.exceptions import ConflictError, StoreError, StorePermissionError
from .dedup import consolidate_duplicate_leads_by_phone
from .policy import (
    build_follow_up_message,
    carry_dispatch_metadata,
    follow_up_due_at,
    initial_stage,
    resolve_stage,
)

logger = logging.getLogger(__name__)

CALL_ENDED_SOURCE = "voice_ai"


@dataclass
class ProcessedCallEnded:
    lead_id: str
    created: bool
    score: int
    interest_label: str
    confidence: float
    stage: str
    assigned_to: Optional[str]
    assignment_strategy: str
    follow_up_id: str
    follow_up_due_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "created": self.created,
            "score": self.score,
            "interest_label": self.interest_label,
            "confidence": self.confidence,
            "stage": self.stage,
            "assigned_to": self.assigned_to,
            "assignment_strategy": self.assignment_strategy,
            "follow_up_id": self.follow_up_id,
            "follow_up_due_at": isoformat_utc(self.follow_up_due_at),
        }


@dataclass
class NormalizedCall:
    """English-only lead attributes derived from one event."""
    phone: Optional[str]
    customer_name: Optional[str]
    goal: Optional[str]
    preference: Optional[str]
    visit: VisitSchedule


class CallEndedProcessor:
    """Turns call-ended events into lead and follow-up writes."""

    def __init__(
        self,
        store,
        scorer: IntentScorer,
        assignor: RepAssignor,
        text_normalizer: Optional[EnglishTextNormalizer] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.scorer = scorer
        self.assignor = assignor
        self.text = text_normalizer or EnglishTextNormalizer()
        self.clock = clock

    async def process(self, raw: Any) -> ProcessedCallEnded:
        """
        Process a raw webhook body.

        Raises:
            ValidationError: on a malformed payload
            StoreError / StorePermissionError: when the store rejects a write
        """
        event = parse_call_ended_payload(raw)
        return await self.process_event(event)

    async def normalize(self, event: CallEndedEvent, now: datetime) -> NormalizedCall:
        visit_english = await self.text.to_english_source(
            event.extracted_visit_time_raw, event.extracted_visit_time_english
        )
        return NormalizedCall(
            phone=normalize_phone_for_storage(event.to_number),
            customer_name=await self.text.name(event.extracted_customer_name, event.extracted_customer_name_english),
            goal=await self.text.goal(event.extracted_goal, event.extracted_goal_english),
            preference=await self.text.goal(event.extracted_layout_preference),
            visit=normalize_visit_schedule(
                event.extracted_visit_time_raw,
                visit_english,
                visit_date=event.extracted_visit_date,
                visit_datetime=event.extracted_visit_datetime,
                now=now,
            ),
        )

    def score(self, event: CallEndedEvent, normalized: NormalizedCall) -> ScoreResult:
        return self.scorer.score(
            transcript=event.transcript,
            summary=event.summary,
            goal=normalized.goal or clean_text(event.extracted_goal),
            visit_time=normalized.visit.raw_text or normalized.visit.english_text,
            duration_seconds=event.call_duration_seconds,
        )

    async def process_event(self, event: CallEndedEvent, now: Optional[datetime] = None) -> ProcessedCallEnded:
        now = now or self.clock()
        normalized = await self.normalize(event, now)
        score = self.score(event, normalized)
        proposed_stage = initial_stage(
            normalized.visit.captured,
            outcome_hints=event.outcome_hints,
            transcript=event.transcript,
            summary=event.summary,
            duration_seconds=event.call_duration_seconds,
        )

        attributes = self._lead_attributes(event, normalized, score, now)
        lead, created, assignment = await self._upsert_lead(normalized.phone, attributes, proposed_stage, now)

        due_at = follow_up_due_at(score.interest_label.value, lead.stage, now)
        try:
            follow_up_id = await self._schedule_follow_up(lead, due_at)
        except (StoreError, StorePermissionError, ConflictError):
            if created:
                logger.warning("Follow-up insert failed; removing freshly created lead", extra={"lead_id": lead.id})
                await self.store.leads.delete(lead.id)
            raise

        logger.info(
            f"Processed call-ended event: {score.interest_label.value} lead, stage {lead.stage}",
            extra={
                "lead_id": lead.id,
                "phone_suffix": phone_suffix(normalized.phone),
                "lead_created": created,
                "score": score.score,
            },
        )
        return ProcessedCallEnded(
            lead_id=lead.id,
            created=created,
            score=score.score,
            interest_label=score.interest_label.value,
            confidence=score.confidence,
            stage=lead.stage,
            assigned_to=lead.assigned_to,
            assignment_strategy=assignment.strategy.value,
            follow_up_id=follow_up_id,
            follow_up_due_at=due_at,
        )

    def _lead_attributes(
        self, event: CallEndedEvent, normalized: NormalizedCall, score: ScoreResult, now: datetime
    ) -> Dict[str, Any]:
        return {
            "call_date": event.call_date or now,
            "customer_name": normalized.customer_name,
            "phone": normalized.phone,
            "goal": normalized.goal,
            "preference": normalized.preference,
            "visit_time_raw": normalized.visit.raw_text,
            "visit_time_text": normalized.visit.english_text,
            "visit_date": normalized.visit.visit_date,
            "visit_datetime": normalized.visit.visit_datetime,
            "summary": clean_text(event.summary),
            "recording_url": clean_text(event.recording_url),
            "duration": event.call_duration_seconds,
            "score": score.score,
            "interest_label": score.interest_label.value,
            "confidence": score.confidence,
            "ai_reason": score.reason,
            "source": CALL_ENDED_SOURCE,
            "raw_payload": event.raw_payload,
        }

    async def _upsert_lead(
        self, phone: Optional[str], attributes: Dict[str, Any], proposed_stage: LeadStage, now: datetime
    ):
        if phone:
            canonical_id = await consolidate_duplicate_leads_by_phone(self.store, phone, "call-ended")
            if canonical_id:
                existing = await self.store.leads.get(canonical_id)
                if existing is not None:
                    return await self._update_existing(existing, attributes, proposed_stage)

        assignment = await self.assignor.assign()
        lead_id = deterministic_lead_id_from_phone(phone) if phone else str(uuid.uuid4())
        try:
            lead = await self.store.leads.insert(
                id=lead_id,
                created_at=now,
                updated_at=now,
                stage=proposed_stage.value,
                assigned_to=assignment.rep_id,
                **attributes,
            )
        except ConflictError:
            if not phone:
                raise
            # Another delivery for this phone inserted the same id first.
            logger.info("Lead insert lost a race; updating the existing lead", extra={"lead_id": lead_id})
            canonical_id = await consolidate_duplicate_leads_by_phone(self.store, phone, "call-ended-recover")
            existing = await self.store.leads.get(canonical_id) if canonical_id else None
            if existing is None:
                raise
            return await self._update_existing(existing, attributes, proposed_stage)
        return lead, True, assignment

    async def _update_existing(self, existing: Lead, attributes: Dict[str, Any], proposed_stage: LeadStage):
        values = {key: value for key, value in attributes.items() if value is not None}
        values["raw_payload"] = carry_dispatch_metadata(existing.raw_payload, attributes["raw_payload"])
        values["stage"] = resolve_stage(existing.stage, proposed_stage)

        if existing.assigned_to:
            assignment = AssignmentResult(rep_id=existing.assigned_to, strategy=AssignmentStrategy.RETAINED)
        else:
            assignment = await self.assignor.assign()
            values["assigned_to"] = assignment.rep_id

        lead = await self.store.leads.update(existing.id, **values)
        if lead is None:
            raise StoreError("Unable to update lead: lead disappeared during update")
        return lead, False, assignment

    async def _schedule_follow_up(self, lead: Lead, due_at: datetime) -> str:
        """Reschedule the lead's pending follow-up, or create one."""
        message = build_follow_up_message(lead.customer_name)
        channel = FollowUpChannel.WHATSAPP.value

        pending = await self.store.follow_ups.find_pending_for_lead(lead.id, channel=channel)
        if pending is not None:
            rescheduled = await self.store.follow_ups.update_pending(
                pending.id, due_at=due_at, rep_id=lead.assigned_to, message=message
            )
            if rescheduled:
                return pending.id

        follow_up = await self.store.follow_ups.insert(
            lead_id=lead.id,
            rep_id=lead.assigned_to,
            due_at=due_at,
            channel=channel,
            message=message,
        )
        return follow_up.id
