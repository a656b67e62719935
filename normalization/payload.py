"""
Call-ended payload schema.

The voice agent posts loosely-typed JSON, sometimes wrapped in a ``body``
envelope by the automation layer in front of us. ``parse_call_ended_payload``
unwraps one envelope, validates the shape, and flattens it into a
``CallEndedEvent``.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from utils.clock import to_naive_utc
from utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

# Fields that may carry the call outcome, at the top level or inside the report.
OUTCOME_HINT_FIELDS = (
    "status",
    "call_status",
    "result",
    "call_result",
    "outcome",
    "call_outcome",
    "disposition",
    "hangup_reason",
    "end_reason",
    "ended_reason",
)
ANSWERED_FLAG_FIELDS = ("answered", "is_answered", "call_answered", "connected", "is_connected")


def _optional_text(value: Any) -> Any:
    """Accept strings and plain numbers; reject structured values."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        raise ValueError("expected a string")
    if isinstance(value, (int, float)):
        return str(value)
    raise ValueError("expected a string")


class ExtractedVariables(BaseModel):
    """Variables the voice agent extracted during the call."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    customer_name: Optional[str] = None
    customer_name_en: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("customer_name_en", "customer_name_english")
    )
    property_use: Optional[str] = Field(default=None, validation_alias=AliasChoices("property_use", "goal"))
    property_use_en: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("property_use_en", "property_use_english", "goal_en")
    )
    layout_preference: Optional[str] = None
    visit_time: Optional[str] = None
    visit_time_en: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("visit_time_en", "visit_time_english")
    )
    visit_date: Optional[str] = None
    visit_datetime: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("visit_datetime", "visit_date_time")
    )

    @field_validator(
        "customer_name", "customer_name_en", "property_use", "property_use_en", "layout_preference",
        "visit_time", "visit_time_en", "visit_date", "visit_datetime",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _optional_text(value)


class CallReport(BaseModel):
    model_config = ConfigDict(extra="allow")

    transcript: Optional[str] = None
    summary: Optional[str] = None
    recording_url: Optional[str] = None
    extracted_variables: Optional[ExtractedVariables] = None

    @field_validator("transcript", "summary", "recording_url", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _optional_text(value)


class CallEndedPayload(BaseModel):
    """Validated call-ended webhook body. Unknown keys are kept for audit."""

    model_config = ConfigDict(extra="allow")

    call_date: Optional[Union[datetime, str]] = None
    to_number: Optional[str] = None
    call_duration: Optional[int] = Field(default=None, ge=0)
    call_report: Optional[CallReport] = None

    @field_validator("to_number", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _optional_text(value)

    def outcome_hints(self) -> Dict[str, Any]:
        """Outcome hint values from the top level and from the report, top level first."""
        hints: Dict[str, Any] = {}
        sources: List[Dict[str, Any]] = [self.model_extra or {}]
        if self.call_report is not None:
            sources.append(self.call_report.model_extra or {})
        for source in sources:
            for key in OUTCOME_HINT_FIELDS + ANSWERED_FLAG_FIELDS:
                if key in source and source[key] is not None and key not in hints:
                    hints[key] = source[key]
        return hints


@dataclass
class CallEndedEvent:
    """Canonical view of one completed call."""

    call_date: Optional[datetime] = None
    to_number: Optional[str] = None
    call_duration_seconds: Optional[int] = None
    transcript: Optional[str] = None
    summary: Optional[str] = None
    recording_url: Optional[str] = None
    extracted_customer_name: Optional[str] = None
    extracted_customer_name_english: Optional[str] = None
    extracted_goal: Optional[str] = None
    extracted_goal_english: Optional[str] = None
    extracted_layout_preference: Optional[str] = None
    extracted_visit_time_raw: Optional[str] = None
    extracted_visit_time_english: Optional[str] = None
    extracted_visit_date: Optional[str] = None
    extracted_visit_datetime: Optional[str] = None
    outcome_hints: Dict[str, Any] = field(default_factory=dict)
    raw_payload: Dict[str, Any] = field(default_factory=dict)


def _parse_call_date(value: Optional[Union[datetime, str]]) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
        except ValueError:
            logger.debug("Ignoring unparseable call_date", extra={"call_date": value})
            return None
    return to_naive_utc(parsed)


def _error_details(error: PydanticValidationError) -> Dict[str, Any]:
    field_errors: Dict[str, List[str]] = {}
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "_root"
        field_errors.setdefault(location, []).append(item.get("msg", "invalid value"))
    return {"fieldErrors": field_errors}


def unwrap_payload(raw: Any) -> Any:
    """Strip one ``{"body": ...}`` envelope if present."""
    if isinstance(raw, dict) and isinstance(raw.get("body"), dict) and raw["body"]:
        return raw["body"]
    return raw


def parse_call_ended_payload(raw: Any) -> CallEndedEvent:
    """
    Validate a raw webhook body into a ``CallEndedEvent``.

    Raises:
        ValidationError: when the body is not an object or a field has the wrong type
    """
    candidate = unwrap_payload(raw)
    if not isinstance(candidate, dict):
        raise ValidationError(
            "Invalid call-ended payload",
            details={"fieldErrors": {"_root": ["expected a JSON object"]}},
        )

    try:
        payload = CallEndedPayload.model_validate(candidate)
    except PydanticValidationError as e:
        raise ValidationError("Invalid call-ended payload", details=_error_details(e)) from e

    report = payload.call_report or CallReport()
    extracted = report.extracted_variables or ExtractedVariables()

    return CallEndedEvent(
        call_date=_parse_call_date(payload.call_date),
        to_number=payload.to_number,
        call_duration_seconds=payload.call_duration,
        transcript=report.transcript,
        summary=report.summary,
        recording_url=report.recording_url,
        extracted_customer_name=extracted.customer_name,
        extracted_customer_name_english=extracted.customer_name_en,
        extracted_goal=extracted.property_use,
        extracted_goal_english=extracted.property_use_en,
        extracted_layout_preference=extracted.layout_preference,
        extracted_visit_time_raw=extracted.visit_time,
        extracted_visit_time_english=extracted.visit_time_en,
        extracted_visit_date=extracted.visit_date,
        extracted_visit_datetime=extracted.visit_datetime,
        outcome_hints=payload.outcome_hints(),
        raw_payload=payload.model_dump(mode="json", by_alias=False),
    )
