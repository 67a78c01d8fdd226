"""Job lifecycle and rate agreement routes."""

from datetime import date

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import Market
from ..logging_config import get_logger
from ..models import (
    ContractResponse,
    JobListResponse,
    JobResponse,
    JobStatus,
    JobTransitionResponse,
    PaymentListResponse,
    PaymentResponse,
)
from ..rate_limit import limiter

logger = get_logger("carefayre.jobs")
router = APIRouter(prefix="/jobs", tags=["jobs"])


# =============================================================================
# Request Models
# =============================================================================


class StartDateRequest(BaseModel):
    """Start date after the assessment. Omit for "to be confirmed"."""

    start_date: date | None = None


class ReasonRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


# =============================================================================
# Queries
# =============================================================================


@router.get("", response_model=JobListResponse)
@limiter.limit("60/minute")
async def list_my_jobs(
    request: Request,
    auth: CurrentUser,
    market: Market,
    status_filter: JobStatus | None = Query(None, alias="status"),
):
    """Jobs where the caller is the customer or the agency (all jobs for admins)."""
    jobs = market.jobs.list_jobs_for(auth.user_id, status=status_filter)
    return JobListResponse(jobs=[JobResponse(**j.to_dict()) for j in jobs], total=len(jobs))


@router.get("/{job_id}", response_model=JobResponse)
@limiter.limit("60/minute")
async def get_job(request: Request, job_id: str, auth: CurrentUser, market: Market):
    return JobResponse(**market.jobs.get_job(job_id, actor_id=auth.user_id).to_dict())


@router.get("/{job_id}/transitions", response_model=list[JobTransitionResponse])
@limiter.limit("30/minute")
async def get_transitions(request: Request, job_id: str, auth: CurrentUser, market: Market):
    """Audit trail, oldest first."""
    market.jobs.get_job(job_id, actor_id=auth.user_id)
    return [JobTransitionResponse(**t.to_dict()) for t in market.jobs.get_transitions(job_id)]


@router.get("/{job_id}/payments", response_model=PaymentListResponse)
@limiter.limit("30/minute")
async def list_payments(request: Request, job_id: str, auth: CurrentUser, market: Market):
    payments = market.timesheets.list_payments(job_id, actor_id=auth.user_id)
    return PaymentListResponse(
        payments=[PaymentResponse(**p.to_dict()) for p in payments], total=len(payments)
    )


# =============================================================================
# Rate agreement
# =============================================================================


@router.get("/{job_id}/contract", response_model=ContractResponse)
@limiter.limit("30/minute")
async def get_contract(request: Request, job_id: str, auth: CurrentUser, market: Market):
    contract = market.contracts.get_contract_for_job(job_id, actor_id=auth.user_id)
    return ContractResponse(**contract.to_dict())


@router.post("/{job_id}/contract/sign", response_model=ContractResponse)
@limiter.limit("10/minute")
async def sign_contract(request: Request, job_id: str, auth: CurrentUser, market: Market):
    """
    Sign the rate agreement.

    The second signature moves the job to assessment_pending. Signing
    twice returns 409.
    """
    logger.info(f"POST /jobs/{job_id}/contract/sign | user={auth.user_id}")
    contract = market.contracts.sign_for_job(job_id, auth.user_id)
    return ContractResponse(**contract.to_dict())


# =============================================================================
# Transitions
# =============================================================================


@router.post("/{job_id}/assessment-complete", response_model=JobResponse)
@limiter.limit("10/minute")
async def mark_assessment_complete(
    request: Request, job_id: str, body: StartDateRequest, auth: CurrentUser, market: Market
):
    logger.info(f"POST /jobs/{job_id}/assessment-complete | user={auth.user_id} | start={body.start_date}")
    job = market.jobs.mark_assessment_complete(job_id, auth.user_id, start_date=body.start_date)
    return JobResponse(**job.to_dict())


@router.post("/{job_id}/start-date", response_model=JobResponse)
@limiter.limit("10/minute")
async def set_start_date(
    request: Request, job_id: str, body: StartDateRequest, auth: CurrentUser, market: Market
):
    logger.info(f"POST /jobs/{job_id}/start-date | user={auth.user_id} | start={body.start_date}")
    job = market.jobs.set_start_date(job_id, auth.user_id, start_date=body.start_date)
    return JobResponse(**job.to_dict())


@router.post("/{job_id}/confirm", response_model=JobResponse)
@limiter.limit("10/minute")
async def confirm_care(request: Request, job_id: str, auth: CurrentUser, market: Market):
    logger.info(f"POST /jobs/{job_id}/confirm | user={auth.user_id}")
    return JobResponse(**market.jobs.confirm_care(job_id, auth.user_id).to_dict())


@router.post("/{job_id}/decline", response_model=JobResponse)
@limiter.limit("10/minute")
async def decline_care(request: Request, job_id: str, auth: CurrentUser, market: Market):
    logger.info(f"POST /jobs/{job_id}/decline | user={auth.user_id}")
    return JobResponse(**market.jobs.decline_care(job_id, auth.user_id).to_dict())


@router.post("/{job_id}/cancel", response_model=JobResponse)
@limiter.limit("10/minute")
async def cancel_pre_care(request: Request, job_id: str, auth: CurrentUser, market: Market):
    """Either party cancels before care starts. No charges apply."""
    logger.info(f"POST /jobs/{job_id}/cancel | user={auth.user_id}")
    return JobResponse(**market.jobs.cancel_pre_care(job_id, auth.user_id).to_dict())


@router.post("/{job_id}/pause", response_model=JobResponse)
@limiter.limit("10/minute")
async def pause_job(request: Request, job_id: str, body: ReasonRequest, auth: CurrentUser, market: Market):
    logger.info(f"POST /jobs/{job_id}/pause | user={auth.user_id}")
    return JobResponse(**market.jobs.pause(job_id, auth.user_id, reason=body.reason).to_dict())


@router.post("/{job_id}/resume", response_model=JobResponse)
@limiter.limit("10/minute")
async def resume_job(request: Request, job_id: str, auth: CurrentUser, market: Market):
    logger.info(f"POST /jobs/{job_id}/resume | user={auth.user_id}")
    return JobResponse(**market.jobs.resume(job_id, auth.user_id).to_dict())


@router.post("/{job_id}/complete", response_model=JobResponse)
@limiter.limit("10/minute")
async def complete_job(request: Request, job_id: str, auth: CurrentUser, market: Market):
    logger.info(f"POST /jobs/{job_id}/complete | user={auth.user_id}")
    return JobResponse(**market.jobs.complete(job_id, auth.user_id).to_dict())


@router.post("/{job_id}/dispute", response_model=JobResponse)
@limiter.limit("5/minute")
async def dispute_job(request: Request, job_id: str, body: ReasonRequest, auth: CurrentUser, market: Market):
    """Admin hands an active job to support."""
    logger.info(f"POST /jobs/{job_id}/dispute | user={auth.user_id}")
    return JobResponse(**market.jobs.mark_disputed(job_id, auth.user_id, reason=body.reason).to_dict())
