"""Pydantic models for API responses.

Each response is built from the domain object's ``to_dict()``; keys the
model does not declare are ignored.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel

RequestStatus = Literal["open", "accepting_bids", "accepted", "closed", "cancelled"]
BidStatus = Literal["active", "accepted", "rejected", "withdrawn"]
JobStatus = Literal[
    "pending",
    "assessment_pending",
    "assessment_complete",
    "active",
    "paused",
    "completed",
    "disputed",
    "cancelled_pre_care",
]
SignatureState = Literal["unsigned", "customer_signed", "agency_signed", "fully_signed"]
TimesheetStatus = Literal["submitted", "queried", "resubmitted", "approved", "escalated"]
PaymentStatus = Literal["pending", "paid", "failed"]


# =============================================================================
# Requests and bids
# =============================================================================


class CareRequestResponse(BaseModel):
    """Care request details."""

    id: str
    creator_id: str
    postcode: str
    care_types: list[str]
    hours_per_week: Decimal
    frequency: str
    description: str | None = None
    start_date: date | None = None
    nights_per_week: int | None = None
    night_type: str | None = None
    bid_deadline: datetime | None = None
    status: RequestStatus
    bids_count: int
    lowest_bid_rate: Decimal | None = None
    winning_bid_id: str | None = None
    created_at: datetime


class BidResponse(BaseModel):
    """Bid details."""

    id: str
    care_request_id: str
    bidder_id: str
    agency_profile_id: str
    hourly_rate: Decimal
    overnight_rate: Decimal | None = None
    notes: str | None = None
    distance_miles: float | None = None
    status: BidStatus
    created_at: datetime


class BidListResponse(BaseModel):
    bids: list[BidResponse]
    total: int


class LowestRateResponse(BaseModel):
    """Stored lowest-rate ratchet next to the live minimum of active bids."""

    request_id: str
    stored: Decimal | None = None
    live: Decimal | None = None


# =============================================================================
# Jobs and contracts
# =============================================================================


class JobResponse(BaseModel):
    """Job details."""

    id: str
    care_request_id: str
    winning_bid_id: str
    customer_id: str
    agency_id: str
    agency_profile_id: str
    locked_hourly_rate: Decimal
    agreed_hours_per_week: Decimal
    start_date: date | None = None
    status: JobStatus
    total_paid_to_date: Decimal
    created_at: datetime
    updated_at: datetime | None = None


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int


class JobTransitionResponse(BaseModel):
    """One audit row."""

    from_status: str | None = None
    to_status: str
    actor_id: str
    reason: str | None = None
    created_at: datetime


class ContractResponse(BaseModel):
    """Rate agreement details."""

    id: str
    job_id: str
    customer_id: str
    agency_id: str
    agreement_text: str
    customer_agreed_at: datetime | None = None
    agency_agreed_at: datetime | None = None
    signature_state: SignatureState
    created_at: datetime


# =============================================================================
# Timesheets and payments
# =============================================================================


class TimesheetResponse(BaseModel):
    """Timesheet details."""

    id: str
    job_id: str
    submitted_by: str
    week_starting: date
    hours_worked: Decimal
    effective_hours: Decimal
    notes: str | None = None
    status: TimesheetStatus
    adjusted_hours: Decimal | None = None
    suggested_hours: Decimal | None = None
    query_note: str | None = None
    query_response: str | None = None
    queried_at: datetime | None = None
    response_deadline: datetime | None = None
    query_count: int
    escalated_at: datetime | None = None
    approved_at: datetime | None = None
    created_at: datetime


class TimesheetListResponse(BaseModel):
    timesheets: list[TimesheetResponse]
    total: int


class PaymentResponse(BaseModel):
    """Payment ledger entry."""

    id: str
    job_id: str
    timesheet_id: str | None = None
    amount: Decimal
    status: PaymentStatus
    paid_at: datetime | None = None
    created_at: datetime


class PaymentListResponse(BaseModel):
    payments: list[PaymentResponse]
    total: int


# =============================================================================
# Notifications, profiles, settings
# =============================================================================


class NotificationResponse(BaseModel):
    id: str
    type: str
    message: str
    related_job_id: str | None = None
    related_request_id: str | None = None
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread: int


class AgencyProfileResponse(BaseModel):
    """Public agency profile."""

    id: str
    user_id: str
    agency_name: str
    cqc_provider_id: str | None = None
    cqc_location_id: str | None = None
    cqc_verified: bool
    cqc_rating: str | None = None
    cqc_last_checked: datetime | None = None
    cqc_explanation: str | None = None
    service_radius_miles: int
    care_types_offered: list[str]
    phone: str | None = None
    website: str | None = None
    bio: str | None = None


class CustomerProfileResponse(BaseModel):
    user_id: str
    full_name: str
    address: str
    postcode: str | None = None
    phone: str | None = None


class CQCRatingResponse(BaseModel):
    overall_rating: str | None = None
    display_rating: str
    report_date: str | None = None
    report_uri: str | None = None
    available: bool
    needs_explanation: bool


class SettingsResponse(BaseModel):
    bid_window_hours: int
    min_bid_decrement: Decimal
    platform_fee_pct: Decimal
    max_radius_miles: int
    notification_email: str | None = None
    updated_at: datetime | None = None
