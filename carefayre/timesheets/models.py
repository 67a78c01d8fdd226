"""
Timesheet and payment data models.

Timesheet flow:

    submitted -> approved
    submitted -> queried -> resubmitted -> approved
                              resubmitted -> queried (again) | escalated

``escalated`` and ``approved`` are terminal.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from carefayre.utils import decimal_str, enum_value, iso, parse_date, parse_datetime, to_decimal


class TimesheetStatus(str, Enum):
    """Timesheet settlement status."""

    SUBMITTED = "submitted"
    QUERIED = "queried"
    RESUBMITTED = "resubmitted"
    APPROVED = "approved"
    ESCALATED = "escalated"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class ResponseMode(str, Enum):
    """How an agency answers a query."""

    ADJUST = "adjust"  # Accept a change and set adjusted_hours
    RESPOND = "respond"  # Stand by the original hours with an explanation


APPROVABLE_STATUSES = frozenset(
    {TimesheetStatus.SUBMITTED, TimesheetStatus.QUERIED, TimesheetStatus.RESUBMITTED}
)

QUERYABLE_STATUSES = frozenset({TimesheetStatus.SUBMITTED, TimesheetStatus.RESUBMITTED})

# Statuses with a running response deadline
AWAITING_RESPONSE_STATUSES = frozenset({TimesheetStatus.QUERIED, TimesheetStatus.RESUBMITTED})


@dataclass
class Timesheet:
    """An agency's claim of hours worked in a given week."""

    id: str
    job_id: str
    submitted_by: str
    week_starting: date
    hours_worked: Decimal
    notes: Optional[str] = None
    status: str = TimesheetStatus.SUBMITTED.value
    adjusted_hours: Optional[Decimal] = None
    suggested_hours: Optional[Decimal] = None
    query_note: Optional[str] = None
    query_response: Optional[str] = None
    queried_at: Optional[datetime] = None
    response_deadline: Optional[datetime] = None
    query_count: int = 0
    escalation_note: Optional[str] = None
    escalated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = enum_value(self.status, TimesheetStatus)
        self.hours_worked = to_decimal(self.hours_worked)
        self.adjusted_hours = to_decimal(self.adjusted_hours)
        self.suggested_hours = to_decimal(self.suggested_hours)
        if self.hours_worked is None or self.hours_worked < 0:
            raise ValueError("Hours worked cannot be negative")
        for name in ("adjusted_hours", "suggested_hours"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.query_count < 0:
            raise ValueError("query_count cannot be negative")

    @property
    def effective_hours(self) -> Decimal:
        """The hours actually billed."""
        return self.adjusted_hours if self.adjusted_hours is not None else self.hours_worked

    @property
    def is_terminal(self) -> bool:
        return self.status in (TimesheetStatus.APPROVED.value, TimesheetStatus.ESCALATED.value)

    @property
    def is_live(self) -> bool:
        """Escalated timesheets no longer block a fresh submission for the week."""
        return self.status != TimesheetStatus.ESCALATED.value

    def is_overdue(self, now: datetime) -> bool:
        return (
            TimesheetStatus(self.status) in AWAITING_RESPONSE_STATUSES
            and self.response_deadline is not None
            and now >= self.response_deadline
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "submitted_by": self.submitted_by,
            "week_starting": iso(self.week_starting),
            "hours_worked": decimal_str(self.hours_worked),
            "notes": self.notes,
            "status": self.status,
            "adjusted_hours": decimal_str(self.adjusted_hours),
            "suggested_hours": decimal_str(self.suggested_hours),
            "effective_hours": decimal_str(self.effective_hours),
            "query_note": self.query_note,
            "query_response": self.query_response,
            "queried_at": iso(self.queried_at),
            "response_deadline": iso(self.response_deadline),
            "query_count": self.query_count,
            "escalation_note": self.escalation_note,
            "escalated_at": iso(self.escalated_at),
            "approved_at": iso(self.approved_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Timesheet":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            submitted_by=data["submitted_by"],
            week_starting=parse_date(data["week_starting"]),
            hours_worked=data["hours_worked"],
            notes=data.get("notes"),
            status=data.get("status", TimesheetStatus.SUBMITTED.value),
            adjusted_hours=data.get("adjusted_hours"),
            suggested_hours=data.get("suggested_hours"),
            query_note=data.get("query_note"),
            query_response=data.get("query_response"),
            queried_at=parse_datetime(data.get("queried_at")),
            response_deadline=parse_datetime(data.get("response_deadline")),
            query_count=data.get("query_count", 0),
            escalation_note=data.get("escalation_note"),
            escalated_at=parse_datetime(data.get("escalated_at")),
            approved_at=parse_datetime(data.get("approved_at")),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


@dataclass
class Payment:
    """A payment record; real money movement happens elsewhere.

    Append-only: only ``status`` and ``paid_at`` change after creation.
    """

    id: str
    job_id: str
    amount: Decimal
    timesheet_id: Optional[str] = None
    status: str = PaymentStatus.PENDING.value
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = enum_value(self.status, PaymentStatus)
        self.amount = to_decimal(self.amount)
        if self.amount is None or self.amount < 0:
            raise ValueError("Payment amount cannot be negative")

    @property
    def counts_towards_total(self) -> bool:
        return self.status != PaymentStatus.FAILED.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "timesheet_id": self.timesheet_id,
            "amount": decimal_str(self.amount),
            "status": self.status,
            "paid_at": iso(self.paid_at),
            "created_at": iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Payment":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            amount=data["amount"],
            timesheet_id=data.get("timesheet_id"),
            status=data.get("status", PaymentStatus.PENDING.value),
            paid_at=parse_datetime(data.get("paid_at")),
            created_at=parse_datetime(data.get("created_at")),
        )
