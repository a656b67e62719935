"""
SQLAlchemy ORM models for the Lead Lifecycle Engine.

Persistent entities: leads, sales reps, follow-ups and site visits.
All timestamps are naive UTC.
"""

import uuid
from enum import Enum

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, Date, DateTime, Text, ForeignKey,
    JSON, Index,
)
from sqlalchemy.orm import DeclarativeBase, relationship

from utils.clock import utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class LeadStage(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    VISIT_SCHEDULED = "visit_scheduled"
    VISIT_DONE = "visit_done"
    CLOSED = "closed"
    LOST = "lost"


class InterestLabel(str, Enum):
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class FollowUpStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class FollowUpChannel(str, Enum):
    WHATSAPP = "whatsapp"
    CALL = "call"
    VOICE_CALL = "voice_call"


class SiteVisitStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


OPEN_STAGES = (LeadStage.NEW.value, LeadStage.CONTACTED.value, LeadStage.VISIT_SCHEDULED.value)


class Base(DeclarativeBase):
    pass


class SalesRep(Base):
    __tablename__ = "sales_reps"

    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    max_open_leads = Column(Integer, default=80, nullable=False)

    leads = relationship("Lead", back_populates="sales_rep")


class Lead(Base):
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    call_date = Column(DateTime, nullable=True)
    customer_name = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    goal = Column(Text, nullable=True)
    preference = Column(Text, nullable=True)
    visit_time_raw = Column(Text, nullable=True)
    visit_time_text = Column(Text, nullable=True)
    visit_date = Column(Date, nullable=True)
    visit_datetime = Column(DateTime, nullable=True)
    summary = Column(Text, nullable=True)
    recording_url = Column(Text, nullable=True)
    duration = Column(Integer, nullable=True)
    score = Column(Integer, nullable=True)
    interest_label = Column(String(10), nullable=True)
    confidence = Column(Float, nullable=True)
    ai_reason = Column(Text, nullable=True)
    stage = Column(String(20), default=LeadStage.NEW.value, nullable=False)
    assigned_to = Column(String(36), ForeignKey("sales_reps.id", ondelete="SET NULL"), nullable=True, index=True)
    source = Column(String(80), default="voice_ai", nullable=False)
    raw_payload = Column(JSON, nullable=True)

    sales_rep = relationship("SalesRep", back_populates="leads")
    follow_ups = relationship("FollowUp", back_populates="lead", cascade="all, delete-orphan", passive_deletes=True)
    site_visits = relationship("SiteVisit", back_populates="lead", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index("ix_lead_phone_created", "phone", "created_at"),
        Index("ix_lead_stage", "stage"),
        Index("ix_lead_call_date_stage", "call_date", "stage"),
    )


class FollowUp(Base):
    __tablename__ = "follow_ups"

    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    rep_id = Column(String(36), ForeignKey("sales_reps.id", ondelete="SET NULL"), nullable=True)
    due_at = Column(DateTime, nullable=False)
    channel = Column(String(20), default=FollowUpChannel.WHATSAPP.value, nullable=False)
    message = Column(Text, nullable=True)
    status = Column(String(15), default=FollowUpStatus.PENDING.value, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    lead = relationship("Lead", back_populates="follow_ups")

    __table_args__ = (
        Index("ix_followup_status_channel_due", "status", "channel", "due_at"),
    )


class SiteVisit(Base):
    __tablename__ = "site_visits"

    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    rep_id = Column(String(36), ForeignKey("sales_reps.id", ondelete="SET NULL"), nullable=True)
    scheduled_for = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    status = Column(String(15), default=SiteVisitStatus.SCHEDULED.value, nullable=False)
    notes = Column(Text, nullable=True)

    lead = relationship("Lead", back_populates="site_visits")
