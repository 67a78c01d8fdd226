"""Care request and bid routes.

Customers post requests and accept bids; agencies bid.
"""

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, Field, field_validator

from carefayre.bids.models import CARE_TYPES, FREQUENCIES

from ..auth import CurrentUser
from ..database import Market
from ..logging_config import get_logger
from ..models import (
    BidListResponse,
    BidResponse,
    CareRequestResponse,
    JobResponse,
    LowestRateResponse,
)
from ..rate_limit import limiter

logger = get_logger("carefayre.requests")
router = APIRouter(prefix="/requests", tags=["requests"])


# =============================================================================
# Request Models
# =============================================================================


class CareRequestCreate(BaseModel):
    """Request to post a care request."""

    postcode: str = Field(..., min_length=2, max_length=10)
    care_types: list[str] = Field(..., min_length=1)
    hours_per_week: Decimal = Field(..., gt=0, le=168)
    frequency: str
    recipient_name: str = ""
    recipient_address: str = ""
    relationship_to_holder: str = ""
    recipient_dob: date | None = None
    description: str | None = Field(None, max_length=2000)
    start_date: date | None = None
    latitude: float | None = None
    longitude: float | None = None
    nights_per_week: int | None = Field(None, ge=0, le=7)
    night_type: str | None = None

    @field_validator("care_types")
    @classmethod
    def validate_care_types(cls, v: list[str]) -> list[str]:
        unknown = [ct for ct in v if ct not in CARE_TYPES]
        if unknown:
            raise ValueError(f"Unknown care types: {', '.join(unknown)}")
        return v

    @field_validator("frequency")
    @classmethod
    def validate_frequency(cls, v: str) -> str:
        if v not in FREQUENCIES:
            raise ValueError(f"Frequency must be one of: {', '.join(FREQUENCIES)}")
        return v


class BidCreate(BaseModel):
    """Request to bid on a care request."""

    agency_profile_id: str
    hourly_rate: Decimal = Field(..., gt=0)
    overnight_rate: Decimal | None = Field(None, gt=0)
    notes: str | None = Field(None, max_length=2000)
    distance_miles: float | None = Field(None, ge=0)


class AcceptBidRequest(BaseModel):
    """Request to accept a bid."""

    bid_id: str


# =============================================================================
# Requests
# =============================================================================


@router.post("", response_model=CareRequestResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_request(request: Request, body: CareRequestCreate, auth: CurrentUser, market: Market):
    """Post a care request. Bidding closes after the configured bid window."""
    logger.info(f"POST /requests | user={auth.user_id} | postcode={body.postcode}")
    care_request = market.bids.create_request(auth.user_id, **body.model_dump())
    return CareRequestResponse(**care_request.to_dict())


@router.get("", response_model=list[CareRequestResponse])
@limiter.limit("60/minute")
async def list_open_requests(request: Request, auth: CurrentUser, market: Market):
    """Requests still accepting bids, newest first."""
    return [CareRequestResponse(**r.to_dict()) for r in market.bids.list_open_requests()]


@router.get("/mine", response_model=list[CareRequestResponse])
@limiter.limit("60/minute")
async def list_my_requests(request: Request, auth: CurrentUser, market: Market):
    return [CareRequestResponse(**r.to_dict()) for r in market.bids.list_requests_for(auth.user_id)]


@router.get("/{request_id}", response_model=CareRequestResponse)
@limiter.limit("60/minute")
async def get_request(request: Request, request_id: str, auth: CurrentUser, market: Market):
    return CareRequestResponse(**market.bids.get_request(request_id).to_dict())


@router.post("/{request_id}/cancel", response_model=CareRequestResponse)
@limiter.limit("10/minute")
async def cancel_request(request: Request, request_id: str, auth: CurrentUser, market: Market):
    """Withdraw a request. Active bids are rejected."""
    logger.info(f"POST /requests/{request_id}/cancel | user={auth.user_id}")
    care_request = market.bids.cancel_request(request_id, auth.user_id)
    return CareRequestResponse(**care_request.to_dict())


@router.get("/{request_id}/lowest-rate", response_model=LowestRateResponse)
@limiter.limit("30/minute")
async def lowest_rate(request: Request, request_id: str, auth: CurrentUser, market: Market):
    """Stored lowest-rate value next to the live minimum of active bids."""
    care_request = market.bids.get_request(request_id)
    return LowestRateResponse(
        request_id=request_id,
        stored=care_request.lowest_bid_rate,
        live=market.bids.live_lowest_bid_rate(request_id),
    )


# =============================================================================
# Bids
# =============================================================================


@router.get("/{request_id}/bids", response_model=BidListResponse)
@limiter.limit("60/minute")
async def list_bids(
    request: Request,
    request_id: str,
    auth: CurrentUser,
    market: Market,
    active_only: bool = Query(False),
):
    bids = market.bids.list_bids(request_id, active_only=active_only)
    return BidListResponse(bids=[BidResponse(**b.to_dict()) for b in bids], total=len(bids))


@router.post("/{request_id}/bids", response_model=BidResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def place_bid(request: Request, request_id: str, body: BidCreate, auth: CurrentUser, market: Market):
    """Place a bid. Overnight care requests need an overnight rate."""
    logger.info(f"POST /requests/{request_id}/bids | user={auth.user_id} | rate={body.hourly_rate}")
    bid = market.bids.place_bid(request_id, auth.user_id, **body.model_dump())
    return BidResponse(**bid.to_dict())


@router.post("/{request_id}/accept", response_model=JobResponse)
@limiter.limit("10/minute")
async def accept_bid(
    request: Request,
    request_id: str,
    body: AcceptBidRequest,
    auth: CurrentUser,
    market: Market,
):
    """
    Accept a bid.

    Creates the job and its rate agreement and rejects every other active
    bid, all in one transaction. A second acceptance on the same request
    fails with 409.
    """
    logger.info(f"POST /requests/{request_id}/accept | user={auth.user_id} | bid={body.bid_id}")
    job = market.bids.accept_bid(request_id, body.bid_id, auth.user_id)
    logger.info(f"Bid accepted | request={request_id} | job={job.id}")
    return JobResponse(**job.to_dict())
