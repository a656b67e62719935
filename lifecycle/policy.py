"""
Lifecycle policy: pipeline stage inference, stage non-regression and
follow-up timing.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from database.models import InterestLabel, LeadStage, SiteVisitStatus

# Stages a later event may never move a lead out of.
PROTECTED_STAGES = frozenset({LeadStage.VISIT_DONE.value, LeadStage.CLOSED.value, LeadStage.LOST.value})
TERMINAL_STAGES = frozenset({LeadStage.CLOSED.value, LeadStage.LOST.value})

FOLLOW_UP_DELAYS = {
    LeadStage.VISIT_SCHEDULED.value: timedelta(hours=6),
    InterestLabel.HOT.value: timedelta(hours=2),
    InterestLabel.WARM.value: timedelta(hours=24),
    InterestLabel.COLD.value: timedelta(hours=72),
}
POST_VISIT_DELAY = timedelta(hours=24)

# Checked before the connected keywords so "unanswered" never reads as "answered".
NOT_CONNECTED_KEYWORDS = (
    "no answer",
    "not answered",
    "unanswered",
    "not connected",
    "busy",
    "failed",
    "voicemail",
    "declined",
    "rejected",
    "canceled",
    "cancelled",
    "missed",
    "unreachable",
)
CONNECTED_KEYWORDS = (
    "answered",
    "connected",
    "completed",
    "success",
    "picked up",
    "spoke",
    "talked",
    "human",
)
TRUTHY_FLAGS = ("true", "yes", "1", "y")
ANSWERED_FLAGS = ("answered", "is_answered", "call_answered", "connected", "is_connected")


def _normalize_hint(value: Any) -> str:
    return str(value).lower().replace("_", " ").replace("-", " ").strip()


def hint_is_connected(value: Any) -> bool:
    text = _normalize_hint(value)
    if not text:
        return False
    if any(keyword in text for keyword in NOT_CONNECTED_KEYWORDS):
        return False
    return any(keyword in text for keyword in CONNECTED_KEYWORDS)


def flag_is_true(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    return _normalize_hint(value) in TRUTHY_FLAGS


def has_connected_signal(
    outcome_hints: Optional[Dict[str, Any]] = None,
    transcript: Optional[str] = None,
    summary: Optional[str] = None,
    duration_seconds: Optional[int] = None,
) -> bool:
    hints = outcome_hints or {}
    for key, value in hints.items():
        if key in ANSWERED_FLAGS:
            if flag_is_true(value):
                return True
        elif hint_is_connected(value):
            return True
    if transcript and transcript.strip():
        return True
    if summary and summary.strip():
        return True
    return bool(duration_seconds and duration_seconds > 0)


def initial_stage(
    visit_captured: bool,
    outcome_hints: Optional[Dict[str, Any]] = None,
    transcript: Optional[str] = None,
    summary: Optional[str] = None,
    duration_seconds: Optional[int] = None,
) -> LeadStage:
    """Stage implied by a finished call: a captured visit wins, then any sign the call connected."""
    if visit_captured:
        return LeadStage.VISIT_SCHEDULED
    if has_connected_signal(outcome_hints, transcript, summary, duration_seconds):
        return LeadStage.CONTACTED
    return LeadStage.CLOSED


def resolve_stage(existing: Optional[str], proposed: LeadStage) -> str:
    """Apply a proposed stage unless the lead already sits in a protected stage."""
    if existing in PROTECTED_STAGES:
        return existing
    return proposed.value


def stage_for_site_visit(status: SiteVisitStatus) -> LeadStage:
    if status == SiteVisitStatus.SCHEDULED:
        return LeadStage.VISIT_SCHEDULED
    if status == SiteVisitStatus.COMPLETED:
        return LeadStage.VISIT_DONE
    return LeadStage.CONTACTED


def follow_up_due_at(interest_label: str, stage: str, now: datetime) -> datetime:
    if stage == LeadStage.VISIT_SCHEDULED.value:
        return now + FOLLOW_UP_DELAYS[LeadStage.VISIT_SCHEDULED.value]
    return now + FOLLOW_UP_DELAYS.get(interest_label, FOLLOW_UP_DELAYS[InterestLabel.COLD.value])


def build_follow_up_message(customer_name: Optional[str]) -> str:
    name = (customer_name or "").strip() or "there"
    return f"Hi {name}, thank you for your time today. Our team will follow up with the next steps shortly."


def build_seed_message(customer_name: Optional[str]) -> str:
    return f"Initial outbound call for {(customer_name or '').strip() or 'lead'}"


def build_post_visit_message(customer_name: Optional[str]) -> str:
    return f"Post-visit follow-up for {(customer_name or '').strip() or 'lead'}"


def build_dispatched_message(dispatched_at: str) -> str:
    return f"Call dispatched at {dispatched_at}"


def is_dispatchable(phone: Optional[str], stage: Optional[str]) -> bool:
    return bool(phone) and stage not in TERMINAL_STAGES


def carry_dispatch_metadata(existing: Any, replacement: Dict[str, Any]) -> Dict[str, Any]:
    """New audit payload that keeps any dispatch metadata already on the lead."""
    merged = dict(replacement)
    if isinstance(existing, dict) and "dispatch" in existing and "dispatch" not in merged:
        merged["dispatch"] = existing["dispatch"]
    return merged
