"""
Repository classes for the Lead Lifecycle Engine data access layer.

Each repository method runs in its own short transaction, so callers see
per-operation store semantics: a write either commits or raises. Conditional
updates report how many rows they affected, which is how concurrent writers
learn that somebody else won.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select, func, delete, update
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from utils.clock import utcnow
from utils.exceptions import ConflictError, StoreError, StorePermissionError
from .models import (
    Lead, SalesRep, FollowUp, SiteVisit, FollowUpStatus, OPEN_STAGES,
)
from .session import Database

logger = logging.getLogger(__name__)

_PERMISSION_MARKERS = ("permission denied", "insufficient_privilege", "insufficient privilege")


def _is_permission_error(error: DBAPIError) -> bool:
    sqlstate = getattr(error.orig, "sqlstate", None) or getattr(error.orig, "pgcode", None)
    if sqlstate == "42501":
        return True
    text = str(error).lower()
    return any(marker in text for marker in _PERMISSION_MARKERS)


class _Repository:
    def __init__(self, db: Database):
        self.db = db

    @asynccontextmanager
    async def _session(self, context: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.db.transaction() as session:
                yield session
        except IntegrityError as e:
            raise ConflictError(f"{context}: uniqueness violation") from e
        except DBAPIError as e:
            if _is_permission_error(e):
                raise StorePermissionError(f"{context}: permission denied") from e
            raise StoreError(f"{context}: store operation failed") from e
        except SQLAlchemyError as e:
            raise StoreError(f"{context}: store operation failed") from e


class LeadRepository(_Repository):
    """Data access for leads."""

    async def get(self, lead_id: str) -> Optional[Lead]:
        async with self._session("Unable to load lead") as session:
            result = await session.execute(select(Lead).where(Lead.id == lead_id))
            return result.scalar_one_or_none()

    async def list_by_phone(self, phone: str) -> List[Lead]:
        """All leads for a phone, oldest first, ties broken by id."""
        async with self._session("Unable to load leads by phone") as session:
            result = await session.execute(
                select(Lead)
                .where(Lead.phone == phone)
                .order_by(Lead.created_at.asc(), Lead.id.asc())
            )
            return list(result.scalars().all())

    async def insert(self, **values: Any) -> Lead:
        """Insert a lead. Raises ConflictError when the id already exists."""
        now = utcnow()
        values.setdefault("created_at", now)
        values.setdefault("updated_at", now)
        async with self._session("Unable to create lead") as session:
            lead = Lead(**values)
            session.add(lead)
            await session.flush()
            return lead

    async def update(self, lead_id: str, **values: Any) -> Optional[Lead]:
        values.setdefault("updated_at", utcnow())
        async with self._session("Unable to update lead") as session:
            result = await session.execute(
                update(Lead)
                .where(Lead.id == lead_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            refreshed = await session.execute(select(Lead).where(Lead.id == lead_id))
            return refreshed.scalar_one_or_none()

    async def delete(self, lead_id: str) -> bool:
        async with self._session("Unable to delete lead") as session:
            await session.execute(delete(FollowUp).where(FollowUp.lead_id == lead_id))
            await session.execute(delete(SiteVisit).where(SiteVisit.lead_id == lead_id))
            result = await session.execute(delete(Lead).where(Lead.id == lead_id))
            return result.rowcount > 0

    async def merge_into(self, canonical_id: str, duplicate_ids: Sequence[str]) -> Tuple[int, int, int]:
        """
        Re-point dependents of duplicate leads to the canonical lead, then delete the duplicates.

        Returns:
            Tuple of (follow_ups_moved, site_visits_moved, leads_deleted)
        """
        if not duplicate_ids:
            return 0, 0, 0
        ids = list(duplicate_ids)
        now = utcnow()
        async with self._session("Unable to merge duplicate leads") as session:
            moved_follow_ups = await session.execute(
                update(FollowUp)
                .where(FollowUp.lead_id.in_(ids))
                .values(lead_id=canonical_id, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            moved_visits = await session.execute(
                update(SiteVisit)
                .where(SiteVisit.lead_id.in_(ids))
                .values(lead_id=canonical_id, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            deleted = await session.execute(delete(Lead).where(Lead.id.in_(ids)))
            return moved_follow_ups.rowcount, moved_visits.rowcount, deleted.rowcount

    async def open_lead_counts(self, rep_ids: Sequence[str]) -> Dict[str, int]:
        """Number of leads in an open stage assigned to each rep."""
        if not rep_ids:
            return {}
        async with self._session("Unable to load open lead assignments") as session:
            result = await session.execute(
                select(Lead.assigned_to, func.count(Lead.id))
                .where(Lead.assigned_to.in_(list(rep_ids)), Lead.stage.in_(OPEN_STAGES))
                .group_by(Lead.assigned_to)
            )
            return {rep_id: count for rep_id, count in result.all() if rep_id}

    async def list_uncalled(self, stages: Sequence[str], limit: int) -> List[Lead]:
        """Leads never called, in the given stages, with a phone, oldest first."""
        async with self._session("Unable to load uncalled leads") as session:
            result = await session.execute(
                select(Lead)
                .where(
                    Lead.call_date.is_(None),
                    Lead.stage.in_(list(stages)),
                    Lead.phone.is_not(None),
                )
                .order_by(Lead.created_at.asc(), Lead.id.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def count(self, stage: Optional[str] = None, interest_label: Optional[str] = None) -> int:
        q = select(func.count(Lead.id))
        if stage:
            q = q.where(Lead.stage == stage)
        if interest_label:
            q = q.where(Lead.interest_label == interest_label)
        async with self._session("Unable to count leads") as session:
            result = await session.execute(q)
            return result.scalar() or 0

    async def average_score(self) -> float:
        async with self._session("Unable to load scores") as session:
            result = await session.execute(select(func.avg(Lead.score)).where(Lead.score.is_not(None)))
            value = result.scalar()
            return round(float(value), 2) if value is not None else 0.0

    async def probe(self) -> None:
        """Cheap read used to verify access before a batch run."""
        async with self._session("Unable to read leads") as session:
            await session.execute(select(Lead.id).limit(1))


class SalesRepRepository(_Repository):
    """Data access for sales reps."""

    async def list_active(self) -> List[SalesRep]:
        async with self._session("Unable to load active sales reps") as session:
            result = await session.execute(
                select(SalesRep)
                .where(SalesRep.is_active.is_(True))
                .order_by(SalesRep.created_at.asc(), SalesRep.id.asc())
            )
            return list(result.scalars().all())

    async def upsert_by_email(self, email: str, **values: Any) -> Tuple[SalesRep, bool]:
        """Create or update a rep keyed by email. Returns (rep, created)."""
        async with self._session("Unable to upsert sales rep") as session:
            result = await session.execute(select(SalesRep).where(SalesRep.email == email))
            rep = result.scalar_one_or_none()
            if rep:
                for key, value in values.items():
                    setattr(rep, key, value)
                rep.updated_at = utcnow()
                await session.flush()
                return rep, False
            rep = SalesRep(email=email, **values)
            session.add(rep)
            await session.flush()
            return rep, True


class FollowUpRepository(_Repository):
    """Data access for follow-ups."""

    async def get(self, follow_up_id: str) -> Optional[FollowUp]:
        async with self._session("Unable to load follow-up") as session:
            result = await session.execute(select(FollowUp).where(FollowUp.id == follow_up_id))
            return result.scalar_one_or_none()

    async def insert(self, **values: Any) -> FollowUp:
        now = utcnow()
        values.setdefault("created_at", now)
        values.setdefault("updated_at", now)
        values.setdefault("status", FollowUpStatus.PENDING.value)
        async with self._session("Unable to create follow-up") as session:
            follow_up = FollowUp(**values)
            session.add(follow_up)
            await session.flush()
            return follow_up

    async def insert_many(self, rows: Sequence[Dict[str, Any]]) -> List[FollowUp]:
        now = utcnow()
        async with self._session("Unable to seed follow-ups") as session:
            follow_ups = []
            for row in rows:
                values = {"created_at": now, "updated_at": now, "status": FollowUpStatus.PENDING.value, **row}
                follow_up = FollowUp(**values)
                session.add(follow_up)
                follow_ups.append(follow_up)
            await session.flush()
            return follow_ups

    async def list_for_lead(self, lead_id: str) -> List[FollowUp]:
        async with self._session("Unable to load follow-ups for lead") as session:
            result = await session.execute(
                select(FollowUp)
                .where(FollowUp.lead_id == lead_id)
                .order_by(FollowUp.created_at.asc(), FollowUp.id.asc())
            )
            return list(result.scalars().all())

    async def find_pending_for_lead(self, lead_id: str, channel: Optional[str] = None) -> Optional[FollowUp]:
        q = select(FollowUp).where(
            FollowUp.lead_id == lead_id,
            FollowUp.status == FollowUpStatus.PENDING.value,
        )
        if channel:
            q = q.where(FollowUp.channel == channel)
        q = q.order_by(FollowUp.due_at.asc(), FollowUp.id.asc()).limit(1)
        async with self._session("Unable to load pending follow-up") as session:
            result = await session.execute(q)
            return result.scalar_one_or_none()

    async def lead_ids_with_status(self, lead_ids: Sequence[str], statuses: Sequence[str]) -> Set[str]:
        if not lead_ids:
            return set()
        async with self._session("Unable to load existing follow-ups") as session:
            result = await session.execute(
                select(FollowUp.lead_id)
                .where(FollowUp.lead_id.in_(list(lead_ids)), FollowUp.status.in_(list(statuses)))
                .distinct()
            )
            return set(result.scalars().all())

    async def update_pending(self, follow_up_id: str, **values: Any) -> bool:
        """
        Update a follow-up only while it is still pending.

        The status guard and the write happen in one statement, so exactly one
        of several concurrent callers observes a row affected.
        """
        values.setdefault("updated_at", utcnow())
        async with self._session("Unable to update follow-up") as session:
            result = await session.execute(
                update(FollowUp)
                .where(FollowUp.id == follow_up_id, FollowUp.status == FollowUpStatus.PENDING.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def close_pending_for_lead(self, lead_id: str, status: str, completed_at: datetime) -> int:
        async with self._session("Unable to close pending follow-ups") as session:
            result = await session.execute(
                update(FollowUp)
                .where(FollowUp.lead_id == lead_id, FollowUp.status == FollowUpStatus.PENDING.value)
                .values(status=status, completed_at=completed_at, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    def _due_filter(self, now: datetime, channel: str):
        return (
            FollowUp.status == FollowUpStatus.PENDING.value,
            FollowUp.channel == channel,
            FollowUp.due_at <= now,
        )

    async def list_due(self, now: datetime, channel: str, limit: int) -> List[Tuple[FollowUp, Optional[Lead]]]:
        """
        Due pending follow-ups with their leads.

        Ordered oldest lead first, then by due time, then by id. Follow-ups whose
        lead is gone sort last.
        """
        async with self._session("Unable to load due follow-ups") as session:
            result = await session.execute(
                select(FollowUp, Lead)
                .outerjoin(Lead, Lead.id == FollowUp.lead_id)
                .where(*self._due_filter(now, channel))
                .order_by(
                    Lead.created_at.is_(None),
                    Lead.created_at.asc(),
                    FollowUp.due_at.asc(),
                    FollowUp.id.asc(),
                )
                .limit(limit)
            )
            return [(row[0], row[1]) for row in result.all()]

    async def count_due(self, now: datetime, channel: str) -> int:
        async with self._session("Unable to count due follow-ups") as session:
            result = await session.execute(
                select(func.count(FollowUp.id)).where(*self._due_filter(now, channel))
            )
            return result.scalar() or 0

    async def list_due_ids(self, now: datetime, channel: str, offset: int, limit: int) -> List[str]:
        async with self._session("Unable to page due follow-ups") as session:
            result = await session.execute(
                select(FollowUp.id)
                .where(*self._due_filter(now, channel))
                .order_by(FollowUp.due_at.asc(), FollowUp.id.asc())
                .offset(offset)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def count_pending_due_between(self, start: datetime, end: datetime) -> int:
        async with self._session("Unable to count follow-ups due") as session:
            result = await session.execute(
                select(func.count(FollowUp.id)).where(
                    FollowUp.status == FollowUpStatus.PENDING.value,
                    FollowUp.due_at >= start,
                    FollowUp.due_at < end,
                )
            )
            return result.scalar() or 0

    async def probe(self) -> None:
        async with self._session("Unable to read follow-ups") as session:
            await session.execute(select(FollowUp.id).limit(1))


class SiteVisitRepository(_Repository):
    """Data access for site visits."""

    async def insert(self, **values: Any) -> SiteVisit:
        now = utcnow()
        values.setdefault("created_at", now)
        values.setdefault("updated_at", now)
        async with self._session("Unable to create site visit") as session:
            visit = SiteVisit(**values)
            session.add(visit)
            await session.flush()
            return visit

    async def list_for_lead(self, lead_id: str) -> List[SiteVisit]:
        async with self._session("Unable to load site visits") as session:
            result = await session.execute(
                select(SiteVisit).where(SiteVisit.lead_id == lead_id).order_by(SiteVisit.created_at.asc())
            )
            return list(result.scalars().all())

    async def count(self, status: Optional[str] = None) -> int:
        q = select(func.count(SiteVisit.id))
        if status:
            q = q.where(SiteVisit.status == status)
        async with self._session("Unable to count site visits") as session:
            result = await session.execute(q)
            return result.scalar() or 0


class Store:
    """The four logical collections behind one handle."""

    def __init__(self, db: Database):
        self.db = db
        self.leads = LeadRepository(db)
        self.sales_reps = SalesRepRepository(db)
        self.follow_ups = FollowUpRepository(db)
        self.site_visits = SiteVisitRepository(db)
