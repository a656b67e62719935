"""Clock helpers. All persisted instants are naive UTC."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_utc(value: datetime) -> str:
    """Render a naive UTC datetime as an ISO-8601 string with a Z suffix."""
    return to_naive_utc(value).isoformat(timespec="milliseconds") + "Z"
