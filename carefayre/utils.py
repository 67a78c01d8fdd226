"""Shared helpers for timestamps, decimals and display formatting."""

import uuid
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or pass through a datetime).

    Naive values are treated as UTC. A trailing "Z" is accepted.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a number or string to Decimal without float artifacts."""
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def iso(value: Optional[datetime | date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def decimal_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def format_money(amount: Decimal, symbol: str = "£") -> str:
    """Round to pence for display only; stored amounts keep full precision."""
    rounded = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{symbol}{rounded}"


def format_date(value: Optional[date]) -> str:
    """Format a date the way notifications and agreements show it (e.g. 01/02/2024)."""
    if value is None:
        return "To be confirmed"
    return value.strftime("%d/%m/%Y")


def enum_value(value: Any, enum_cls) -> str:
    """Normalize an enum member or raw string, rejecting unknown values."""
    if isinstance(value, enum_cls):
        return value.value
    valid = {member.value for member in enum_cls}
    if value not in valid:
        raise ValueError(f"Invalid status: {value}. Must be one of {sorted(valid)}")
    return value
