"""
Care request and bid data models.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from carefayre.utils import decimal_str, enum_value, iso, parse_date, parse_datetime, to_decimal

OVERNIGHT_CARE = "Overnight Care"

CARE_TYPES = (
    "Personal Care",
    "Dementia Care",
    "Companionship",
    "Medication Support",
    "Mobility Assistance",
    OVERNIGHT_CARE,
    "Live-in Care",
)

FREQUENCIES = ("Daily", "Weekdays Only", "Weekends Only", "3x Per Week", "Custom")


class RequestStatus(str, Enum):
    """Care request lifecycle status."""

    OPEN = "open"
    ACCEPTING_BIDS = "accepting_bids"
    ACCEPTED = "accepted"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class BidStatus(str, Enum):
    """Bid lifecycle status."""

    ACTIVE = "active"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class NightType(str, Enum):
    SLEEPING = "sleeping"
    WAKING = "waking"


@dataclass
class CareRequest:
    """A posted need for care services, open to agency bidding."""

    id: str
    creator_id: str
    postcode: str
    care_types: List[str]
    hours_per_week: Decimal
    frequency: str
    recipient_name: str = ""
    recipient_address: str = ""
    relationship_to_holder: str = ""
    recipient_dob: Optional[date] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    nights_per_week: Optional[int] = None
    night_type: Optional[str] = None
    bid_deadline: Optional[datetime] = None
    status: str = RequestStatus.OPEN.value
    bids_count: int = 0
    lowest_bid_rate: Optional[Decimal] = None
    winning_bid_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = enum_value(self.status, RequestStatus)
        self.hours_per_week = to_decimal(self.hours_per_week)
        self.lowest_bid_rate = to_decimal(self.lowest_bid_rate)
        if not self.postcode or not self.postcode.strip():
            raise ValueError("Postcode is required")
        if not self.care_types:
            raise ValueError("At least one care type is required")
        if self.hours_per_week is None or self.hours_per_week <= 0:
            raise ValueError("Hours per week must be positive")
        if self.night_type is not None:
            self.night_type = enum_value(self.night_type, NightType)
        if self.nights_per_week is not None and not 0 <= self.nights_per_week <= 7:
            raise ValueError("Nights per week must be between 0 and 7")
        if (self.winning_bid_id is not None) != (self.status == RequestStatus.ACCEPTED.value):
            raise ValueError("winning_bid_id must be set exactly when the request is accepted")

    @property
    def is_open(self) -> bool:
        return self.status == RequestStatus.OPEN.value

    @property
    def requires_overnight_rate(self) -> bool:
        """Overnight care with at least one night a week needs an overnight rate."""
        return OVERNIGHT_CARE in self.care_types and (self.nights_per_week or 0) > 0

    def bidding_closed(self, now: datetime) -> bool:
        if not self.is_open:
            return True
        return self.bid_deadline is not None and now >= self.bid_deadline

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "creator_id": self.creator_id,
            "postcode": self.postcode,
            "care_types": list(self.care_types),
            "hours_per_week": decimal_str(self.hours_per_week),
            "frequency": self.frequency,
            "recipient_name": self.recipient_name,
            "recipient_address": self.recipient_address,
            "relationship_to_holder": self.relationship_to_holder,
            "recipient_dob": iso(self.recipient_dob),
            "description": self.description,
            "start_date": iso(self.start_date),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "nights_per_week": self.nights_per_week,
            "night_type": self.night_type,
            "bid_deadline": iso(self.bid_deadline),
            "status": self.status,
            "bids_count": self.bids_count,
            "lowest_bid_rate": decimal_str(self.lowest_bid_rate),
            "winning_bid_id": self.winning_bid_id,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CareRequest":
        return cls(
            id=data["id"],
            creator_id=data["creator_id"],
            postcode=data["postcode"],
            care_types=list(data.get("care_types") or []),
            hours_per_week=data["hours_per_week"],
            frequency=data.get("frequency", ""),
            recipient_name=data.get("recipient_name", ""),
            recipient_address=data.get("recipient_address", ""),
            relationship_to_holder=data.get("relationship_to_holder", ""),
            recipient_dob=parse_date(data.get("recipient_dob")),
            description=data.get("description"),
            start_date=parse_date(data.get("start_date")),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            nights_per_week=data.get("nights_per_week"),
            night_type=data.get("night_type"),
            bid_deadline=parse_datetime(data.get("bid_deadline")),
            status=data.get("status", RequestStatus.OPEN.value),
            bids_count=data.get("bids_count", 0),
            lowest_bid_rate=data.get("lowest_bid_rate"),
            winning_bid_id=data.get("winning_bid_id"),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


@dataclass
class Bid:
    """An agency's proposed hourly (and optional overnight) rate for a request."""

    id: str
    care_request_id: str
    bidder_id: str
    agency_profile_id: str
    hourly_rate: Decimal
    overnight_rate: Optional[Decimal] = None
    notes: Optional[str] = None
    distance_miles: Optional[float] = None
    status: str = BidStatus.ACTIVE.value
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = enum_value(self.status, BidStatus)
        self.hourly_rate = to_decimal(self.hourly_rate)
        self.overnight_rate = to_decimal(self.overnight_rate)
        if self.hourly_rate is None or self.hourly_rate <= 0:
            raise ValueError("Hourly rate must be positive")

    @property
    def is_active(self) -> bool:
        return self.status == BidStatus.ACTIVE.value

    @property
    def is_final(self) -> bool:
        """Accepted and rejected bids never change again."""
        return self.status in (BidStatus.ACCEPTED.value, BidStatus.REJECTED.value)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "care_request_id": self.care_request_id,
            "bidder_id": self.bidder_id,
            "agency_profile_id": self.agency_profile_id,
            "hourly_rate": decimal_str(self.hourly_rate),
            "overnight_rate": decimal_str(self.overnight_rate),
            "notes": self.notes,
            "distance_miles": self.distance_miles,
            "status": self.status,
            "created_at": iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bid":
        return cls(
            id=data["id"],
            care_request_id=data["care_request_id"],
            bidder_id=data["bidder_id"],
            agency_profile_id=data["agency_profile_id"],
            hourly_rate=data["hourly_rate"],
            overnight_rate=data.get("overnight_rate"),
            notes=data.get("notes"),
            distance_miles=data.get("distance_miles"),
            status=data.get("status", BidStatus.ACTIVE.value),
            created_at=parse_datetime(data.get("created_at")),
        )
