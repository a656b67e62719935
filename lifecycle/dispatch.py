"""
Dispatch Batch Processor.

Each run seeds voice-call follow-ups for leads that were never called, then
drains a small batch of due voice-call follow-ups through the outbound-call
provider. Per-item failures are counted, never raised; the next scheduled
run retries whatever is still pending.

Dispatch is at-least-once at the provider boundary: if the provider accepts
a call and the follow-up update then fails, the next run calls again.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from channels.base import CallDispatchRequest, OutboundCallProvider
from database.models import OPEN_STAGES, FollowUp, FollowUpChannel, FollowUpStatus, Lead
from utils.clock import isoformat_utc, utcnow
from utils.exceptions import ConfigurationError, LeadEngineError, StoreError, StorePermissionError
from .policy import build_dispatched_message, build_seed_message, is_dispatchable

logger = logging.getLogger(__name__)

DISPATCH_STRATEGY = "due_follow_up_dispatch"
SEEDABLE_STATUSES = (FollowUpStatus.PENDING.value, FollowUpStatus.COMPLETED.value)


@dataclass
class DispatchSummary:
    seeded_follow_ups: int = 0
    processed: int = 0
    dispatched: int = 0
    skipped: int = 0
    failed: int = 0
    remaining_due: Optional[int] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["message"] is None:
            data.pop("message")
        return data


class DispatchBatchProcessor:
    """Seeds and drains due voice-call follow-ups."""

    def __init__(
        self,
        store,
        call_provider: OutboundCallProvider,
        batch_size: int = 1,
        seed_batch_size: int = 1,
        seed_scan_limit: int = 400,
        due_count_page_size: int = 1000,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.call_provider = call_provider
        self.batch_size = batch_size
        self.seed_batch_size = seed_batch_size
        self.seed_scan_limit = seed_scan_limit
        self.due_count_page_size = due_count_page_size
        self.clock = clock
        self._access_verified = False

    @classmethod
    def from_settings(cls, store, call_provider: OutboundCallProvider, settings) -> "DispatchBatchProcessor":
        return cls(
            store,
            call_provider,
            batch_size=settings.dispatch_batch_size,
            seed_batch_size=settings.follow_up_seed_batch_size,
            seed_scan_limit=settings.seed_candidate_scan_limit,
            due_count_page_size=settings.due_count_page_size,
        )

    async def verify_access(self) -> None:
        """Probe read access to leads and follow-ups once per processor."""
        if self._access_verified:
            return
        try:
            await self.store.leads.probe()
            await self.store.follow_ups.probe()
        except (StoreError, StorePermissionError) as e:
            logger.error(f"Dispatch store access check failed: {e.message}")
            raise StorePermissionError(
                "Dispatch store access check failed", reason="dispatch_store_access_denied"
            ) from e
        self._access_verified = True

    async def seed(self, now: datetime) -> int:
        """Create voice-call follow-ups for the oldest never-called leads."""
        if self.seed_batch_size <= 0:
            return 0

        candidates = await self.store.leads.list_uncalled(OPEN_STAGES, self.seed_scan_limit)
        if not candidates:
            return 0

        has_follow_up = await self.store.follow_ups.lead_ids_with_status(
            [lead.id for lead in candidates], SEEDABLE_STATUSES
        )
        to_seed = [lead for lead in candidates if lead.id not in has_follow_up][: self.seed_batch_size]
        if not to_seed:
            return 0

        await self.store.follow_ups.insert_many([
            {
                "lead_id": lead.id,
                "rep_id": lead.assigned_to,
                "due_at": now,
                "channel": FollowUpChannel.VOICE_CALL.value,
                "message": build_seed_message(lead.customer_name),
            }
            for lead in to_seed
        ])
        logger.info(f"Seeded {len(to_seed)} voice-call follow-up(s) for uncalled leads")
        return len(to_seed)

    async def run(self, now: Optional[datetime] = None) -> DispatchSummary:
        """
        One dispatch invocation.

        Raises:
            ConfigurationError: when the outbound-call provider is not configured
            StorePermissionError: when the store access check fails
            StoreError: when the due follow-ups cannot be loaded
        """
        if not self.call_provider.is_configured:
            raise ConfigurationError("Outbound call provider is not configured", reason="outbound_call_not_configured")
        await self.verify_access()

        now = now or self.clock()
        summary = DispatchSummary()

        try:
            summary.seeded_follow_ups = await self.seed(now)
        except LeadEngineError as e:
            logger.error(f"Unable to seed follow-ups; continuing with existing pending items: {e.message}")

        due = await self.store.follow_ups.list_due(now, FollowUpChannel.VOICE_CALL.value, self.batch_size)
        for follow_up, lead in due:
            summary.processed += 1
            await self._process_one(follow_up, lead, now, summary)

        summary.remaining_due = await self.count_remaining_due(now)
        if summary.processed == 0:
            summary.message = "No due follow-ups"

        logger.info(
            "Dispatch run finished",
            extra={
                "seeded": summary.seeded_follow_ups,
                "processed": summary.processed,
                "dispatched": summary.dispatched,
                "skipped": summary.skipped,
                "failed": summary.failed,
            },
        )
        return summary

    async def _process_one(
        self, follow_up: FollowUp, lead: Optional[Lead], now: datetime, summary: DispatchSummary
    ) -> None:
        if lead is None or not is_dispatchable(lead.phone, lead.stage):
            try:
                claimed = await self.store.follow_ups.update_pending(
                    follow_up.id, status=FollowUpStatus.SKIPPED.value, completed_at=now
                )
            except LeadEngineError as e:
                summary.failed += 1
                logger.error(f"Unable to mark follow-up as skipped: {e.message}", extra={"follow_up_id": follow_up.id})
                return
            if claimed:
                summary.skipped += 1
            else:
                summary.failed += 1
                logger.warning("Follow-up claimed by another worker", extra={"follow_up_id": follow_up.id})
            return

        try:
            dispatch_at = self.clock()
            result = await self.call_provider.dispatch_call(
                CallDispatchRequest(
                    to_number=lead.phone,
                    lead_id=lead.id,
                    follow_up_id=follow_up.id,
                    customer_name=lead.customer_name,
                )
            )

            claimed = await self.store.follow_ups.update_pending(
                follow_up.id,
                status=FollowUpStatus.COMPLETED.value,
                completed_at=dispatch_at,
                channel=FollowUpChannel.VOICE_CALL.value,
                message=build_dispatched_message(isoformat_utc(dispatch_at)),
            )
            if not claimed:
                summary.failed += 1
                logger.warning(
                    "Call dispatched but follow-up was no longer pending",
                    extra={"follow_up_id": follow_up.id, "lead_id": lead.id},
                )
                return

            dispatched_iso = isoformat_utc(dispatch_at)
            raw_payload = dict(lead.raw_payload) if isinstance(lead.raw_payload, dict) else {}
            raw_payload["dispatch"] = {
                "last_attempt_at": dispatched_iso,
                "last_success_at": dispatched_iso,
                "last_request_id": result.request_id,
                "strategy": DISPATCH_STRATEGY,
            }
            await self.store.leads.update(lead.id, raw_payload=raw_payload)
            summary.dispatched += 1
        except LeadEngineError as e:
            summary.failed += 1
            logger.error(
                f"Dispatch failed for follow-up: {e.message}",
                extra={"follow_up_id": follow_up.id, "lead_id": lead.id, "reason": e.reason},
            )

    async def count_remaining_due(self, now: datetime) -> Optional[int]:
        """Due voice-call follow-ups left after this run; paginated scan when the count query fails."""
        channel = FollowUpChannel.VOICE_CALL.value
        try:
            return await self.store.follow_ups.count_due(now, channel)
        except (StoreError, StorePermissionError) as e:
            logger.warning(f"Due count query failed, falling back to scan: {e.message}")

        total = 0
        offset = 0
        try:
            while True:
                page = await self.store.follow_ups.list_due_ids(now, channel, offset, self.due_count_page_size)
                total += len(page)
                if len(page) < self.due_count_page_size:
                    return total
                offset += self.due_count_page_size
        except (StoreError, StorePermissionError) as e:
            logger.error(f"Unable to count remaining due follow-ups: {e.message}")
            return None
