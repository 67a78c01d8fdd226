"""
Job data models.

A job is created when a customer accepts a bid and moves through:

    pending -> assessment_pending -> assessment_complete -> active -> completed

with ``cancelled_pre_care`` reachable before care starts, ``paused`` as a
side-state of ``active`` and ``disputed`` for jobs handed to support.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from carefayre.utils import decimal_str, enum_value, iso, parse_date, parse_datetime, to_decimal


class JobStatus(str, Enum):
    """Job lifecycle status."""

    PENDING = "pending"  # Rate agreement awaiting both signatures
    ASSESSMENT_PENDING = "assessment_pending"  # Agency arranging the care assessment
    ASSESSMENT_COMPLETE = "assessment_complete"  # Customer must confirm or decline
    ACTIVE = "active"  # Care underway, timesheets allowed
    PAUSED = "paused"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    CANCELLED_PRE_CARE = "cancelled_pre_care"


VALID_JOB_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.ASSESSMENT_PENDING},
    JobStatus.ASSESSMENT_PENDING: {
        JobStatus.ASSESSMENT_COMPLETE,
        JobStatus.CANCELLED_PRE_CARE,
    },
    JobStatus.ASSESSMENT_COMPLETE: {
        JobStatus.ACTIVE,
        JobStatus.CANCELLED_PRE_CARE,
    },
    JobStatus.ACTIVE: {
        JobStatus.PAUSED,
        JobStatus.COMPLETED,
        JobStatus.DISPUTED,
    },
    JobStatus.PAUSED: {JobStatus.ACTIVE},
}

TERMINAL_JOB_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.DISPUTED, JobStatus.CANCELLED_PRE_CARE}
)

PRE_CARE_STATUSES = frozenset({JobStatus.ASSESSMENT_PENDING, JobStatus.ASSESSMENT_COMPLETE})


@dataclass
class Job:
    """The contractual relationship created once a bid is accepted.

    ``locked_hourly_rate`` is frozen from the winning bid; reassigning it
    after construction raises AttributeError.
    """

    id: str
    care_request_id: str
    winning_bid_id: str
    customer_id: str
    agency_id: str
    agency_profile_id: str
    locked_hourly_rate: Decimal
    agreed_hours_per_week: Decimal
    start_date: Optional[date] = None
    status: str = JobStatus.PENDING.value
    total_paid_to_date: Decimal = Decimal("0")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __setattr__(self, name, value):
        if name == "locked_hourly_rate" and "locked_hourly_rate" in self.__dict__:
            raise AttributeError("locked_hourly_rate cannot be changed after job creation")
        super().__setattr__(name, value)

    def __post_init__(self):
        self.status = enum_value(self.status, JobStatus)
        rate = to_decimal(self.locked_hourly_rate)
        if rate is None or rate <= 0:
            raise ValueError("Locked hourly rate must be positive")
        # Normalize the type once, bypassing the freeze
        self.__dict__["locked_hourly_rate"] = rate
        self.agreed_hours_per_week = to_decimal(self.agreed_hours_per_week)
        self.total_paid_to_date = to_decimal(self.total_paid_to_date) or Decimal("0")
        if self.total_paid_to_date < 0:
            raise ValueError("total_paid_to_date cannot be negative")

    def can_transition_to(self, new_status: JobStatus) -> bool:
        current = JobStatus(self.status)
        return JobStatus(new_status) in VALID_JOB_TRANSITIONS.get(current, set())

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.customer_id, self.agency_id)

    def other_party(self, user_id: str) -> str:
        return self.agency_id if user_id == self.customer_id else self.customer_id

    @property
    def is_active(self) -> bool:
        """Timesheet and payment operations are only valid on active jobs."""
        return self.status == JobStatus.ACTIVE.value

    @property
    def is_terminal(self) -> bool:
        return JobStatus(self.status) in TERMINAL_JOB_STATUSES

    @property
    def start_date_confirmed(self) -> bool:
        return self.start_date is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "care_request_id": self.care_request_id,
            "winning_bid_id": self.winning_bid_id,
            "customer_id": self.customer_id,
            "agency_id": self.agency_id,
            "agency_profile_id": self.agency_profile_id,
            "locked_hourly_rate": decimal_str(self.locked_hourly_rate),
            "agreed_hours_per_week": decimal_str(self.agreed_hours_per_week),
            "start_date": iso(self.start_date),
            "status": self.status,
            "total_paid_to_date": decimal_str(self.total_paid_to_date),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        return cls(
            id=data["id"],
            care_request_id=data["care_request_id"],
            winning_bid_id=data["winning_bid_id"],
            customer_id=data["customer_id"],
            agency_id=data["agency_id"],
            agency_profile_id=data["agency_profile_id"],
            locked_hourly_rate=data["locked_hourly_rate"],
            agreed_hours_per_week=data["agreed_hours_per_week"],
            start_date=parse_date(data.get("start_date")),
            status=data.get("status", JobStatus.PENDING.value),
            total_paid_to_date=data.get("total_paid_to_date") or "0",
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


@dataclass
class JobStateTransition:
    """Audit log entry for a job status change."""

    id: str
    job_id: str
    from_status: Optional[str]
    to_status: str
    actor_id: str
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "reason": self.reason,
            "created_at": iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "JobStateTransition":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            from_status=data.get("from_status"),
            to_status=data["to_status"],
            actor_id=data["actor_id"],
            reason=data.get("reason"),
            created_at=parse_datetime(data.get("created_at")),
        )
