"""Agency and customer profile routes."""

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import Market
from ..logging_config import get_logger
from ..models import AgencyProfileResponse, CQCRatingResponse, CustomerProfileResponse
from ..rate_limit import limiter

logger = get_logger("carefayre.profiles")
router = APIRouter(prefix="/profiles", tags=["profiles"])


# =============================================================================
# Request Models
# =============================================================================


class AgencyProfileCreate(BaseModel):
    agency_name: str = Field(..., min_length=1, max_length=200)
    service_radius_miles: int | None = Field(None, gt=0)
    cqc_provider_id: str | None = None
    cqc_location_id: str | None = None
    care_types_offered: list[str] = Field(default_factory=list)
    phone: str | None = None


class AgencyProfileUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    agency_name: str | None = Field(None, min_length=1, max_length=200)
    service_radius_miles: int | None = Field(None, gt=0)
    cqc_provider_id: str | None = None
    cqc_location_id: str | None = None
    cqc_explanation: str | None = Field(None, max_length=2000)
    care_types_offered: list[str] | None = None
    phone: str | None = None
    website: str | None = None
    bio: str | None = Field(None, max_length=2000)


class CustomerProfileUpdate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    address: str = ""
    postcode: str | None = None
    phone: str | None = None


# =============================================================================
# Agency profiles
# =============================================================================


@router.post("/agency", response_model=AgencyProfileResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def create_agency_profile(
    request: Request, body: AgencyProfileCreate, auth: CurrentUser, market: Market
):
    logger.info(f"POST /profiles/agency | user={auth.user_id}")
    profile = market.profiles.create_agency_profile(auth.user_id, **body.model_dump())
    return AgencyProfileResponse(**profile.to_dict())


@router.get("/agency/{profile_id}", response_model=AgencyProfileResponse)
@limiter.limit("60/minute")
async def get_agency_profile(request: Request, profile_id: str, auth: CurrentUser, market: Market):
    return AgencyProfileResponse(**market.profiles.get_agency_profile(profile_id).to_dict())


@router.patch("/agency/{profile_id}", response_model=AgencyProfileResponse)
@limiter.limit("10/minute")
async def update_agency_profile(
    request: Request,
    profile_id: str,
    body: AgencyProfileUpdate,
    auth: CurrentUser,
    market: Market,
):
    """Edit a profile. The service radius is capped at the admin maximum."""
    logger.info(f"PATCH /profiles/agency/{profile_id} | user={auth.user_id}")
    changes = body.model_dump(exclude_unset=True)
    profile = market.profiles.update_agency_profile(profile_id, auth.user_id, **changes)
    return AgencyProfileResponse(**profile.to_dict())


@router.post("/agency/{profile_id}/refresh-rating", response_model=CQCRatingResponse)
@limiter.limit("5/minute")
async def refresh_cqc_rating(request: Request, profile_id: str, auth: CurrentUser, market: Market):
    """Look up the current CQC rating. An unavailable registry is not an error."""
    rating = market.profiles.refresh_cqc_rating(profile_id)
    return CQCRatingResponse(**rating.to_dict())


# =============================================================================
# Customer profile
# =============================================================================


@router.put("/customer", response_model=CustomerProfileResponse)
@limiter.limit("10/minute")
async def save_customer_profile(
    request: Request, body: CustomerProfileUpdate, auth: CurrentUser, market: Market
):
    profile = market.profiles.save_customer_profile(auth.user_id, **body.model_dump())
    return CustomerProfileResponse(**profile.to_dict())


@router.get("/customer/me", response_model=CustomerProfileResponse)
@limiter.limit("60/minute")
async def get_my_customer_profile(request: Request, auth: CurrentUser, market: Market):
    profile = market.profiles.get_customer_profile(auth.user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return CustomerProfileResponse(**profile.to_dict())
