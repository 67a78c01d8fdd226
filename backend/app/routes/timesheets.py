"""Timesheet settlement routes."""

from datetime import date
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, Field, model_validator

from ..auth import CurrentUser
from ..database import Market
from ..logging_config import get_logger
from ..models import PaymentResponse, TimesheetListResponse, TimesheetResponse, TimesheetStatus
from ..rate_limit import limiter

logger = get_logger("carefayre.timesheets")
router = APIRouter(prefix="/timesheets", tags=["timesheets"])


# =============================================================================
# Request Models
# =============================================================================


class TimesheetCreate(BaseModel):
    """Agency submits hours for one week."""

    job_id: str
    week_starting: date
    hours_worked: Decimal = Field(..., gt=0, le=168)
    notes: str | None = Field(None, max_length=2000)


class TimesheetQuery(BaseModel):
    """Customer queries the hours."""

    note: str = Field(..., min_length=1, max_length=2000)
    suggested_hours: Decimal | None = Field(None, ge=0, le=168)


class TimesheetRespond(BaseModel):
    """Agency answers a query."""

    response_note: str = Field(..., min_length=1, max_length=2000)
    mode: Literal["adjust", "respond"]
    adjusted_hours: Decimal | None = Field(None, ge=0, le=168)

    @model_validator(mode="after")
    def adjust_needs_hours(self):
        if self.mode == "adjust" and self.adjusted_hours is None:
            raise ValueError("adjusted_hours is required when mode is 'adjust'")
        return self


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", response_model=TimesheetResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def submit_timesheet(request: Request, body: TimesheetCreate, auth: CurrentUser, market: Market):
    logger.info(
        f"POST /timesheets | user={auth.user_id} | job={body.job_id} | week={body.week_starting}"
    )
    timesheet = market.timesheets.submit(
        body.job_id, auth.user_id, body.week_starting, body.hours_worked, notes=body.notes
    )
    return TimesheetResponse(**timesheet.to_dict())


@router.get("", response_model=TimesheetListResponse)
@limiter.limit("60/minute")
async def list_timesheets(
    request: Request,
    auth: CurrentUser,
    market: Market,
    job_id: str = Query(...),
    status_filter: list[TimesheetStatus] | None = Query(None, alias="status"),
):
    """Timesheets for a job, most recent week first."""
    timesheets = market.timesheets.list_timesheets(job_id, actor_id=auth.user_id, statuses=status_filter)
    return TimesheetListResponse(
        timesheets=[TimesheetResponse(**t.to_dict()) for t in timesheets],
        total=len(timesheets),
    )


@router.get("/{timesheet_id}", response_model=TimesheetResponse)
@limiter.limit("60/minute")
async def get_timesheet(request: Request, timesheet_id: str, auth: CurrentUser, market: Market):
    return TimesheetResponse(**market.timesheets.get_timesheet(timesheet_id, actor_id=auth.user_id).to_dict())


@router.post("/{timesheet_id}/approve", response_model=PaymentResponse)
@limiter.limit("10/minute")
async def approve_timesheet(request: Request, timesheet_id: str, auth: CurrentUser, market: Market):
    """Approve a timesheet. Returns the payment it created."""
    logger.info(f"POST /timesheets/{timesheet_id}/approve | user={auth.user_id}")
    payment = market.timesheets.approve(timesheet_id, auth.user_id)
    logger.info(f"Timesheet approved | id={timesheet_id} | amount={payment.amount}")
    return PaymentResponse(**payment.to_dict())


@router.post("/{timesheet_id}/query", response_model=TimesheetResponse)
@limiter.limit("10/minute")
async def query_timesheet(
    request: Request, timesheet_id: str, body: TimesheetQuery, auth: CurrentUser, market: Market
):
    """
    Query a timesheet.

    The agency gets a response window. Once the query limit is reached the
    timesheet is escalated to support instead.
    """
    logger.info(f"POST /timesheets/{timesheet_id}/query | user={auth.user_id}")
    timesheet = market.timesheets.query(
        timesheet_id, auth.user_id, body.note, suggested_hours=body.suggested_hours
    )
    return TimesheetResponse(**timesheet.to_dict())


@router.post("/{timesheet_id}/respond", response_model=TimesheetResponse)
@limiter.limit("10/minute")
async def respond_to_query(
    request: Request, timesheet_id: str, body: TimesheetRespond, auth: CurrentUser, market: Market
):
    logger.info(f"POST /timesheets/{timesheet_id}/respond | user={auth.user_id} | mode={body.mode}")
    timesheet = market.timesheets.respond(
        timesheet_id,
        auth.user_id,
        body.response_note,
        body.mode,
        adjusted_hours=body.adjusted_hours,
    )
    return TimesheetResponse(**timesheet.to_dict())
