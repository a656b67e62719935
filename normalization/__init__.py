"""
Inbound call data normalization: payload schema, phone numbers,
English-only text and visit schedules.
"""

from .payload import CallEndedEvent, parse_call_ended_payload, unwrap_payload
from .phone import normalize_phone_for_storage, deterministic_lead_id_from_phone, phone_suffix
from .text import EnglishTextNormalizer, clean_text, contains_arabic, contains_devanagari, is_script_clean
from .visit_schedule import VisitSchedule, normalize_visit_schedule

__all__ = [
    "CallEndedEvent",
    "parse_call_ended_payload",
    "unwrap_payload",
    "normalize_phone_for_storage",
    "deterministic_lead_id_from_phone",
    "phone_suffix",
    "EnglishTextNormalizer",
    "clean_text",
    "contains_arabic",
    "contains_devanagari",
    "is_script_clean",
    "VisitSchedule",
    "normalize_visit_schedule",
]
