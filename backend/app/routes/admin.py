"""Admin routes for marketplace management.

All routes require a caller whose role in the identity directory is admin.
"""

from decimal import Decimal

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from ..auth import AdminUser
from ..database import Market
from ..logging_config import get_logger
from ..models import AgencyProfileResponse, PaymentResponse, SettingsResponse, TimesheetResponse
from ..rate_limit import limiter

logger = get_logger("carefayre.admin")

router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Models
# =============================================================================


class SettingsUpdate(BaseModel):
    """Partial settings update."""

    bid_window_hours: int | None = Field(None, gt=0)
    min_bid_decrement: Decimal | None = Field(None, ge=0)
    platform_fee_pct: Decimal | None = Field(None, ge=0, le=100)
    max_radius_miles: int | None = Field(None, gt=0)
    notification_email: str | None = None


class ExpiryReportResponse(BaseModel):
    overdue: list[str]
    actions: dict[str, str]
    skipped: dict[str, str]
    changed: list[str]


class ReconcileResponse(BaseModel):
    job_id: str
    total_paid_to_date: Decimal


# =============================================================================
# Settings
# =============================================================================


@router.get("/settings", response_model=SettingsResponse)
async def get_settings(auth: AdminUser, market: Market):
    return SettingsResponse(**market.settings.get().to_dict())


@router.patch("/settings", response_model=SettingsResponse)
@limiter.limit("10/minute")
async def update_settings(request: Request, body: SettingsUpdate, auth: AdminUser, market: Market):
    changes = body.model_dump(exclude_unset=True)
    logger.info(f"PATCH /admin/settings | admin={auth.user_id} | fields={sorted(changes)}")
    return SettingsResponse(**market.settings.update(auth.user_id, **changes).to_dict())


# =============================================================================
# Agencies
# =============================================================================


@router.get("/agencies/unverified", response_model=list[AgencyProfileResponse])
async def list_unverified_agencies(auth: AdminUser, market: Market):
    profiles = market.profiles.list_unverified_agencies(auth.user_id)
    return [AgencyProfileResponse(**p.to_dict()) for p in profiles]


@router.post("/agencies/{profile_id}/verify", response_model=AgencyProfileResponse)
async def verify_agency(profile_id: str, auth: AdminUser, market: Market):
    logger.info(f"POST /admin/agencies/{profile_id}/verify | admin={auth.user_id}")
    return AgencyProfileResponse(**market.profiles.verify_agency(profile_id, auth.user_id).to_dict())


# =============================================================================
# Payments and timesheets
# =============================================================================


@router.post("/payments/{payment_id}/paid", response_model=PaymentResponse)
async def mark_payment_paid(payment_id: str, auth: AdminUser, market: Market):
    logger.info(f"POST /admin/payments/{payment_id}/paid | admin={auth.user_id}")
    return PaymentResponse(**market.timesheets.mark_payment_paid(payment_id, auth.user_id).to_dict())


@router.post("/payments/{payment_id}/failed", response_model=PaymentResponse)
async def mark_payment_failed(payment_id: str, auth: AdminUser, market: Market):
    logger.info(f"POST /admin/payments/{payment_id}/failed | admin={auth.user_id}")
    return PaymentResponse(**market.timesheets.mark_payment_failed(payment_id, auth.user_id).to_dict())


@router.post("/jobs/{job_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_job(job_id: str, auth: AdminUser, market: Market):
    """Recompute total_paid_to_date from the payment ledger."""
    total = market.timesheets.reconcile_total_paid(job_id, actor_id=auth.user_id)
    return ReconcileResponse(job_id=job_id, total_paid_to_date=total)


@router.get("/timesheets/overdue", response_model=list[TimesheetResponse])
async def list_overdue_timesheets(auth: AdminUser, market: Market):
    """Queried or resubmitted timesheets past their response deadline."""
    return [TimesheetResponse(**t.to_dict()) for t in market.timesheets.find_overdue()]


@router.post("/timesheets/expire", response_model=ExpiryReportResponse)
@limiter.limit("5/minute")
async def expire_overdue_queries(request: Request, auth: AdminUser, market: Market):
    """Run the deadline sweep now with the configured expiry policy."""
    logger.info(f"POST /admin/timesheets/expire | admin={auth.user_id}")
    report = market.timesheets.expire_overdue_queries()
    return ExpiryReportResponse(**report.to_dict())
