"""Tests for the lead lifecycle: stage policy, call-ended ingestion, dedup, manual leads, site visits."""

import asyncio
import uuid
from datetime import timedelta

import pytest

from database.models import FollowUpChannel, FollowUpStatus, InterestLabel, LeadStage, SiteVisitStatus
from lead_scoring.assignment import AssignmentStrategy, RepAssignor
from lead_scoring.scoring_model import KeywordIntentScorer
from lifecycle.call_ended import CallEndedProcessor
from lifecycle.dedup import consolidate_duplicate_leads_by_phone
from lifecycle.manual import ManualLeadInput, ManualLeadService
from lifecycle.policy import (
    carry_dispatch_metadata,
    follow_up_due_at,
    has_connected_signal,
    initial_stage,
    is_dispatchable,
    resolve_stage,
)
from lifecycle.site_visits import SiteVisitInput, SiteVisitService
from normalization.phone import deterministic_lead_id_from_phone
from utils.exceptions import NotFoundError, StoreError
from tests.conftest import FIXED_NOW


async def seed_reps(store, count=2):
    reps = []
    for index in range(count):
        rep, _ = await store.sales_reps.upsert_by_email(
            f"rep{index}@example.com", name=f"Rep {index}", is_active=True, max_open_leads=80
        )
        reps.append(rep)
    return reps


def make_processor(store):
    return CallEndedProcessor(store, KeywordIntentScorer(), RepAssignor(store), clock=lambda: FIXED_NOW)


def hide_first_phone_lookup(store, monkeypatch):
    """Make the next ``list_by_phone`` miss, as if another writer inserted just after the read."""
    real_list_by_phone = store.leads.list_by_phone
    calls = []

    async def list_by_phone(phone):
        calls.append(phone)
        if len(calls) == 1:
            return []
        return await real_list_by_phone(phone)

    monkeypatch.setattr(store.leads, "list_by_phone", list_by_phone)


# ── Policy ────────────────────────────────────────────

class TestStagePolicy:
    def test_visit_wins(self):
        assert initial_stage(True, outcome_hints={"status": "no-answer"}) == LeadStage.VISIT_SCHEDULED

    def test_connected_signals(self):
        assert initial_stage(False, duration_seconds=12) == LeadStage.CONTACTED
        assert initial_stage(False, transcript="hello") == LeadStage.CONTACTED
        assert initial_stage(False, outcome_hints={"call_status": "completed"}) == LeadStage.CONTACTED
        assert initial_stage(False, outcome_hints={"answered": "yes"}) == LeadStage.CONTACTED

    def test_no_signal_closes(self):
        assert initial_stage(False) == LeadStage.CLOSED
        assert initial_stage(False, transcript="   ", duration_seconds=0) == LeadStage.CLOSED

    @pytest.mark.parametrize("hint", ["no-answer", "unanswered", "busy", "voicemail", "Not_Connected"])
    def test_negative_hints_checked_first(self, hint):
        assert not has_connected_signal({"status": hint})

    def test_answered_flag_false(self):
        assert not has_connected_signal({"answered": False})

    @pytest.mark.parametrize("existing", ["visit_done", "closed", "lost"])
    def test_protected_stages_never_regress(self, existing):
        assert resolve_stage(existing, LeadStage.CONTACTED) == existing

    def test_open_stages_follow_proposal(self):
        assert resolve_stage("visit_scheduled", LeadStage.CONTACTED) == "contacted"
        assert resolve_stage(None, LeadStage.NEW) == "new"

    @pytest.mark.parametrize("label,stage,hours", [
        ("hot", "contacted", 2),
        ("warm", "contacted", 24),
        ("cold", "closed", 72),
        ("cold", "visit_scheduled", 6),
        ("hot", "visit_scheduled", 6),
    ])
    def test_follow_up_timing(self, label, stage, hours):
        assert follow_up_due_at(label, stage, FIXED_NOW) == FIXED_NOW + timedelta(hours=hours)

    def test_dispatchable(self):
        assert is_dispatchable("+15550000001", "contacted")
        assert not is_dispatchable(None, "contacted")
        assert not is_dispatchable("+15550000001", "lost")

    def test_dispatch_metadata_survives_replacement(self):
        merged = carry_dispatch_metadata({"dispatch": {"last_request_id": "r1"}, "old": 1}, {"new": 2})
        assert merged == {"new": 2, "dispatch": {"last_request_id": "r1"}}


# ── Call-ended ────────────────────────────────────────

class TestCallEnded:
    def test_hot_lead_with_visit(self, store_at, payload_factory):
        async def scenario():
            async with store_at() as store:
                reps = await seed_reps(store)
                result = await make_processor(store).process(payload_factory())
                lead = await store.leads.get(result.lead_id)
                follow_ups = await store.follow_ups.list_for_lead(result.lead_id)
                return reps, result, lead, follow_ups

        reps, result, lead, follow_ups = asyncio.run(scenario())

        assert result.created
        assert result.lead_id == deterministic_lead_id_from_phone("+971501234567")
        assert result.stage == LeadStage.VISIT_SCHEDULED.value
        assert result.interest_label == InterestLabel.HOT.value
        assert result.score == 88
        assert result.follow_up_due_at == FIXED_NOW + timedelta(hours=6)
        assert result.assigned_to in {rep.id for rep in reps}
        assert result.assignment_strategy == AssignmentStrategy.LEAST_LOADED.value

        assert lead.phone == "+971501234567"
        assert lead.customer_name == "Omar Haddad"
        assert lead.goal == "buy apartment"
        assert lead.visit_time_raw == "tomorrow at 5 pm"
        assert lead.visit_datetime == FIXED_NOW.replace(hour=17, minute=0) + timedelta(days=1)
        assert lead.duration == 310

        assert len(follow_ups) == 1
        assert follow_ups[0].channel == FollowUpChannel.WHATSAPP.value
        assert follow_ups[0].status == FollowUpStatus.PENDING.value
        assert follow_ups[0].message.startswith("Hi Omar Haddad")

    def test_unanswered_call_is_closed_cold(self, store_at, payload_factory):
        payload = payload_factory(phone="+15550000042", duration=0, transcript=None, visit_time=None)

        async def scenario():
            async with store_at() as store:
                await seed_reps(store)
                return await make_processor(store).process(payload)

        result = asyncio.run(scenario())
        assert result.stage == LeadStage.CLOSED.value
        assert result.interest_label == InterestLabel.COLD.value
        assert result.follow_up_due_at == FIXED_NOW + timedelta(hours=72)

    def test_replay_is_idempotent(self, store_at, payload_factory):
        async def scenario():
            async with store_at() as store:
                await seed_reps(store)
                processor = make_processor(store)
                first = await processor.process(payload_factory())
                second = await processor.process({"body": payload_factory(phone="00971501234567")})
                leads = await store.leads.list_by_phone("+971501234567")
                follow_ups = await store.follow_ups.list_for_lead(first.lead_id)
                return first, second, leads, follow_ups

        first, second, leads, follow_ups = asyncio.run(scenario())
        assert not second.created
        assert second.lead_id == first.lead_id
        assert second.assigned_to == first.assigned_to
        assert second.assignment_strategy == AssignmentStrategy.RETAINED.value
        assert second.follow_up_id == first.follow_up_id
        assert len(leads) == 1
        assert [f.status for f in follow_ups] == [FollowUpStatus.PENDING.value]

    def test_insert_race_updates_winning_lead(self, store_at, payload_factory, monkeypatch):
        async def scenario():
            async with store_at() as store:
                await seed_reps(store)
                processor = make_processor(store)
                first = await processor.process(payload_factory())
                hide_first_phone_lookup(store, monkeypatch)
                second = await processor.process(payload_factory(phone="00971501234567"))
                leads = await store.leads.list_by_phone("+971501234567")
                return first, second, leads

        first, second, leads = asyncio.run(scenario())
        assert first.created
        assert not second.created
        assert second.lead_id == first.lead_id
        assert len(leads) == 1

    def test_later_event_does_not_regress_stage(self, store_at, payload_factory):
        async def scenario():
            async with store_at() as store:
                await seed_reps(store)
                processor = make_processor(store)
                first = await processor.process(payload_factory())
                await store.leads.update(first.lead_id, stage=LeadStage.VISIT_DONE.value)
                return await processor.process(payload_factory(duration=0, transcript=None, visit_time=None))

        assert asyncio.run(scenario()).stage == LeadStage.VISIT_DONE.value

    def test_no_active_rep_leaves_lead_unassigned(self, store_at, payload_factory):
        async def scenario():
            async with store_at() as store:
                return await make_processor(store).process(payload_factory())

        result = asyncio.run(scenario())
        assert result.assigned_to is None
        assert result.assignment_strategy == AssignmentStrategy.NO_ACTIVE_REP.value

    def test_missing_phone_creates_random_lead(self, store_at, payload_factory):
        async def scenario():
            async with store_at() as store:
                processor = make_processor(store)
                first = await processor.process(payload_factory(phone=None))
                second = await processor.process(payload_factory(phone=None))
                return first, second

        first, second = asyncio.run(scenario())
        assert first.created and second.created
        assert first.lead_id != second.lead_id

    def test_follow_up_failure_removes_new_lead(self, store_at, payload_factory, monkeypatch):
        async def failing_insert(**values):
            raise StoreError("Unable to create follow-up: store operation failed")

        async def scenario():
            async with store_at() as store:
                monkeypatch.setattr(store.follow_ups, "insert", failing_insert)
                with pytest.raises(StoreError):
                    await make_processor(store).process(payload_factory())
                return await store.leads.list_by_phone("+971501234567")

        assert asyncio.run(scenario()) == []

    def test_dispatch_metadata_preserved_on_update(self, store_at, payload_factory):
        async def scenario():
            async with store_at() as store:
                processor = make_processor(store)
                first = await processor.process(payload_factory())
                lead = await store.leads.get(first.lead_id)
                await store.leads.update(
                    lead.id, raw_payload={**lead.raw_payload, "dispatch": {"last_request_id": "req-9"}}
                )
                await processor.process(payload_factory())
                return await store.leads.get(first.lead_id)

        lead = asyncio.run(scenario())
        assert lead.raw_payload["dispatch"] == {"last_request_id": "req-9"}
        assert lead.raw_payload["to_number"] == "+971 50 123 4567"


# ── Dedup ─────────────────────────────────────────────

class TestDedup:
    def test_merges_into_oldest(self, store_at):
        phone = "+15550001111"

        async def scenario():
            async with store_at() as store:
                ids = []
                for age in (3, 1, 2):
                    lead = await store.leads.insert(
                        id=str(uuid.uuid4()),
                        phone=phone,
                        created_at=FIXED_NOW - timedelta(days=age),
                        stage=LeadStage.NEW.value,
                    )
                    ids.append(lead.id)
                    for _ in range(2):
                        await store.follow_ups.insert(lead_id=lead.id, due_at=FIXED_NOW)
                    await store.site_visits.insert(lead_id=lead.id, status=SiteVisitStatus.SCHEDULED.value)

                canonical = await consolidate_duplicate_leads_by_phone(store, phone, "test")
                remaining = await store.leads.list_by_phone(phone)
                follow_ups = await store.follow_ups.list_for_lead(canonical)
                visits = await store.site_visits.list_for_lead(canonical)
                return ids, canonical, remaining, follow_ups, visits

        ids, canonical, remaining, follow_ups, visits = asyncio.run(scenario())
        assert canonical == ids[0]
        assert [lead.id for lead in remaining] == [canonical]
        assert len(follow_ups) == 6
        assert len(visits) == 3

    def test_unknown_phone(self, store_at):
        async def scenario():
            async with store_at() as store:
                return await consolidate_duplicate_leads_by_phone(store, "+15550009999", "test")

        assert asyncio.run(scenario()) is None


# ── Manual leads ──────────────────────────────────────

class TestManualLeads:
    def test_input_validation(self):
        with pytest.raises(ValueError):
            ManualLeadInput(customer_name="A", phone="12")
        with pytest.raises(ValueError):
            ManualLeadInput(customer_name="", phone="+15550000001")
        data = ManualLeadInput(customer_name=" Ann ", phone="+1 (555) 000-0001", goal="  ")
        assert data.customer_name == "Ann"
        assert data.phone == "+15550000001"
        assert data.goal is None

    def test_create_then_update_same_phone(self, store_at):
        async def scenario():
            async with store_at() as store:
                await seed_reps(store)
                service = ManualLeadService(store, RepAssignor(store))
                first = await service.create(
                    ManualLeadInput(customer_name="Ann Lee", phone="+1 555 000 0001", interest_label="warm")
                )
                second = await service.create(ManualLeadInput(customer_name="Ann B. Lee", phone="0015550000001"))
                leads = await store.leads.list_by_phone("+15550000001")
                return first, second, leads

        first, second, leads = asyncio.run(scenario())
        assert first.created and not second.created
        assert first.lead.id == second.lead.id == deterministic_lead_id_from_phone("+15550000001")
        assert first.lead.stage == LeadStage.NEW.value
        assert first.lead.assigned_to is not None
        assert len(leads) == 1
        assert leads[0].customer_name == "Ann B. Lee"
        assert leads[0].interest_label == "warm"
        assert leads[0].raw_payload["created_via"] == "manual_dashboard_form"
        assert second.to_dict()["id"] == first.lead.id

    def test_insert_race_updates_winning_lead(self, store_at, monkeypatch):
        async def scenario():
            async with store_at() as store:
                await seed_reps(store)
                service = ManualLeadService(store, RepAssignor(store))
                first = await service.create(ManualLeadInput(customer_name="Ann Lee", phone="+15550000001"))
                hide_first_phone_lookup(store, monkeypatch)
                second = await service.create(ManualLeadInput(customer_name="Ann B. Lee", phone="+1 555 000 0001"))
                leads = await store.leads.list_by_phone("+15550000001")
                return first, second, leads

        first, second, leads = asyncio.run(scenario())
        assert first.created
        assert not second.created
        assert second.lead.id == first.lead.id
        assert len(leads) == 1
        assert leads[0].customer_name == "Ann B. Lee"


# ── Site visits ───────────────────────────────────────

class TestSiteVisits:
    def test_completed_visit(self, store_at, payload_factory):
        async def scenario():
            async with store_at() as store:
                await seed_reps(store)
                processed = await make_processor(store).process(payload_factory())
                result = await SiteVisitService(store).record(
                    processed.lead_id, SiteVisitInput(status="completed", notes="Liked the view")
                )
                lead = await store.leads.get(processed.lead_id)
                follow_ups = await store.follow_ups.list_for_lead(processed.lead_id)
                return processed, result, lead, follow_ups

        processed, result, lead, follow_ups = asyncio.run(scenario())
        assert lead.stage == LeadStage.VISIT_DONE.value
        assert result.closed_follow_ups == 1
        by_id = {f.id: f for f in follow_ups}
        assert by_id[processed.follow_up_id].status == FollowUpStatus.CANCELLED.value
        post_visit = by_id[result.follow_up_id]
        assert post_visit.status == FollowUpStatus.PENDING.value
        assert post_visit.channel == FollowUpChannel.CALL.value
        assert post_visit.message == "Post-visit follow-up for Omar Haddad"

    def test_scheduled_visit_does_not_regress_closed(self, store_at):
        async def scenario():
            async with store_at() as store:
                lead = await store.leads.insert(
                    id=str(uuid.uuid4()), phone="+15550002222", stage=LeadStage.CLOSED.value
                )
                result = await SiteVisitService(store).record(lead.id, SiteVisitInput(status="scheduled"))
                return result

        result = asyncio.run(scenario())
        assert result.stage == LeadStage.CLOSED.value
        assert result.follow_up_id is None

    def test_unknown_lead(self, store_at):
        async def scenario():
            async with store_at() as store:
                await SiteVisitService(store).record("missing", SiteVisitInput(status="scheduled"))

        with pytest.raises(NotFoundError):
            asyncio.run(scenario())
