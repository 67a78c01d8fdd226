"""
Timesheet settlement service.

Agencies submit one timesheet per job per week. The customer either
approves it, which writes exactly one payment record, or queries it. A
query gives the agency a response window; the agency adjusts the hours or
stands by them, and the customer decides again. The query that would take
a timesheet past the query limit escalates it to support instead.

``total_paid_to_date`` on the job is a cache. It is recomputed from the
payment ledger whenever a payment is written or changes status.
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, List, Optional

from carefayre.config import MarketplaceConfig
from carefayre.errors import (
    DuplicateTimesheetError,
    InvalidHoursError,
    InvalidInputError,
    MarketplaceError,
    NotAuthorizedError,
    NotFoundError,
    WrongStatusError,
)
from carefayre.identity import Role, is_admin, require_party, require_role
from carefayre.jobs.models import Job, JobStatus
from carefayre.jobs.service import JobService
from carefayre.notifications import Dispatcher, NotificationType, Outbox
from carefayre.timesheets.expiry import (
    AdvisoryExpiryPolicy,
    ExpiryAction,
    ExpiryReport,
    QueryExpiryPolicy,
)
from carefayre.timesheets.models import (
    APPROVABLE_STATUSES,
    AWAITING_RESPONSE_STATUSES,
    QUERYABLE_STATUSES,
    Payment,
    PaymentStatus,
    ResponseMode,
    Timesheet,
    TimesheetStatus,
)
from carefayre.utils import format_date, format_money, new_id, parse_date, to_decimal, utc_now

logger = logging.getLogger(__name__)

# Recorded as the actor when the expiry sweep changes a timesheet
SYSTEM_ACTOR = "system"


def _parse_hours(value, label: str, allow_zero: bool = False) -> Optional[Decimal]:
    try:
        hours = to_decimal(value)
    except (InvalidOperation, ValueError) as e:
        raise InvalidHoursError(f"{label} must be a number") from e
    if hours is None:
        return None
    if hours < 0 or (hours == 0 and not allow_zero):
        raise InvalidHoursError(f"{label} must be greater than zero")
    if hours > 168:
        raise InvalidHoursError(f"{label} cannot exceed 168 in a week")
    return hours


class TimesheetService:
    """Service for timesheets and the payment ledger."""

    def __init__(
        self,
        storage,
        identity,
        jobs: JobService,
        dispatcher: Dispatcher,
        config: Optional[MarketplaceConfig] = None,
        clock: Optional[Callable] = None,
        expiry_policy: Optional[QueryExpiryPolicy] = None,
    ):
        self.storage = storage
        self.identity = identity
        self.jobs = jobs
        self.dispatcher = dispatcher
        self.config = config or MarketplaceConfig()
        self._now = clock or utc_now
        self.expiry_policy = expiry_policy or AdvisoryExpiryPolicy()

    @property
    def _response_window(self) -> timedelta:
        return timedelta(hours=self.config.query_response_hours)

    def _money(self, amount: Decimal) -> str:
        return format_money(amount, self.config.currency_symbol)

    # =========================================================================
    # Queries
    # =========================================================================

    def _get_timesheet(self, timesheet_id: str) -> Timesheet:
        timesheet = self.storage.get_timesheet(timesheet_id)
        if timesheet is None:
            raise NotFoundError(f"Timesheet {timesheet_id} not found")
        return timesheet

    def get_timesheet(self, timesheet_id: str, actor_id: Optional[str] = None) -> Timesheet:
        timesheet = self._get_timesheet(timesheet_id)
        if actor_id is not None:
            self.jobs.get_job(timesheet.job_id, actor_id=actor_id)
        return timesheet

    def list_timesheets(
        self,
        job_id: str,
        actor_id: Optional[str] = None,
        statuses: Optional[Iterable[TimesheetStatus]] = None,
    ) -> List[Timesheet]:
        """Timesheets for a job, most recent week first."""
        self.jobs.get_job(job_id, actor_id=actor_id)
        return self.storage.list_timesheets(job_id=job_id, statuses=statuses)

    # =========================================================================
    # Submission and approval
    # =========================================================================

    def submit(
        self,
        job_id: str,
        acting_agency_id: str,
        week_starting,
        hours_worked,
        notes: Optional[str] = None,
    ) -> Timesheet:
        """Submit hours for one week of an active job.

        Raises:
            InvalidHoursError: If hours_worked is missing or not positive
            DuplicateTimesheetError: If the week already has a live timesheet
            WrongStatusError: If the job is not active
        """
        hours = _parse_hours(hours_worked, "Hours worked")
        if hours is None:
            raise InvalidHoursError("Hours worked is required")
        week = week_starting if isinstance(week_starting, date) else parse_date(week_starting)
        if week is None:
            raise InvalidInputError("Week starting date is required")

        outbox = Outbox()
        with self.storage.transaction():
            job = self.jobs.get_job(job_id)
            require_party(
                acting_agency_id, [job.agency_id], message="Only the agency on this job can submit timesheets"
            )
            if job.status != JobStatus.ACTIVE.value:
                raise WrongStatusError(f"Cannot submit a timesheet for a job that is {job.status}")
            for existing in self.storage.list_timesheets(job_id=job.id):
                if existing.week_starting == week and existing.is_live:
                    raise DuplicateTimesheetError(
                        f"A timesheet for week starting {format_date(week)} already exists"
                    )

            now = self._now()
            timesheet = Timesheet(
                id=new_id(),
                job_id=job.id,
                submitted_by=acting_agency_id,
                week_starting=week,
                hours_worked=hours,
                notes=notes,
                status=TimesheetStatus.SUBMITTED,
                created_at=now,
                updated_at=now,
            )
            self.storage.save_timesheet(timesheet)

            outbox.notify(
                job.customer_id,
                NotificationType.TIMESHEET_SUBMITTED,
                f"{self.jobs.agency_name(job)} has submitted a timesheet for week starting "
                f"{format_date(week)} ({hours} hours). Please approve or query it.",
                related_job_id=job.id,
            )

        logger.info(f"Timesheet {timesheet.id} submitted for job {job_id} week {week.isoformat()}")
        self.dispatcher.dispatch(outbox, caller_id=acting_agency_id)
        return timesheet

    def _settle(self, timesheet: Timesheet, job: Job, now: datetime) -> Payment:
        """Approve a timesheet and write its payment. Call inside a transaction."""
        timesheet.status = TimesheetStatus.APPROVED.value
        timesheet.approved_at = now
        timesheet.updated_at = now
        self.storage.save_timesheet(timesheet)

        payment = Payment(
            id=new_id(),
            job_id=job.id,
            timesheet_id=timesheet.id,
            amount=timesheet.effective_hours * job.locked_hourly_rate,
            status=PaymentStatus.PENDING,
            created_at=now,
        )
        self.storage.save_payment(payment)
        self._recompute_total(job)
        return payment

    def _recompute_total(self, job: Job) -> Decimal:
        total = sum(
            (p.amount for p in self.storage.list_payments(job_id=job.id) if p.counts_towards_total),
            Decimal("0"),
        )
        job.total_paid_to_date = total
        job.updated_at = self._now()
        self.storage.save_job(job)
        return total

    def approve(self, timesheet_id: str, acting_customer_id: str) -> Payment:
        """Approve a timesheet, creating its payment. Returns the payment."""
        outbox = Outbox()
        with self.storage.transaction():
            timesheet = self._get_timesheet(timesheet_id)
            job = self.jobs.get_job(timesheet.job_id)
            require_party(
                acting_customer_id,
                [job.customer_id],
                message="Only the customer on this job can approve timesheets",
            )
            if TimesheetStatus(timesheet.status) not in APPROVABLE_STATUSES:
                raise WrongStatusError(f"Cannot approve a timesheet that is {timesheet.status}")
            if job.status != JobStatus.ACTIVE.value:
                raise WrongStatusError(f"Cannot approve a timesheet on a job that is {job.status}")

            payment = self._settle(timesheet, job, self._now())
            outbox.notify(
                job.agency_id,
                NotificationType.TIMESHEET_APPROVED,
                f"{self.jobs.customer_name(job)} has approved your timesheet for week starting "
                f"{format_date(timesheet.week_starting)}. {self._money(payment.amount)} is now due.",
                related_job_id=job.id,
            )

        logger.info(
            f"Timesheet {timesheet_id} approved: {timesheet.effective_hours}h x "
            f"{job.locked_hourly_rate} = {payment.amount}"
        )
        self.dispatcher.dispatch(outbox, caller_id=acting_customer_id)
        return payment

    # =========================================================================
    # Query protocol
    # =========================================================================

    def query(
        self,
        timesheet_id: str,
        acting_customer_id: str,
        note: str,
        suggested_hours=None,
    ) -> Timesheet:
        """Query a timesheet, or escalate it once the query limit is reached."""
        if not note or not note.strip():
            raise InvalidInputError("Please explain what is wrong with this timesheet")
        suggested = _parse_hours(suggested_hours, "Suggested hours", allow_zero=True)

        outbox = Outbox()
        with self.storage.transaction():
            timesheet = self._get_timesheet(timesheet_id)
            job = self.jobs.get_job(timesheet.job_id)
            require_party(
                acting_customer_id,
                [job.customer_id],
                message="Only the customer on this job can query timesheets",
            )
            if job.status != JobStatus.ACTIVE.value:
                raise WrongStatusError(f"Cannot query a timesheet on a job that is {job.status}")
            if TimesheetStatus(timesheet.status) not in QUERYABLE_STATUSES:
                raise WrongStatusError(f"Cannot query a timesheet that is {timesheet.status}")

            now = self._now()
            week = format_date(timesheet.week_starting)
            timesheet.query_count += 1
            timesheet.updated_at = now

            if timesheet.query_count > self.config.max_queries_before_escalation:
                timesheet.status = TimesheetStatus.ESCALATED.value
                timesheet.escalation_note = note.strip()
                timesheet.escalated_at = now
                self.storage.save_timesheet(timesheet)
                if self.config.support_user_id:
                    outbox.notify(
                        self.config.support_user_id,
                        NotificationType.TIMESHEET_ESCALATED,
                        f"The timesheet for week starting {week} on job {job.id} was queried "
                        f"{timesheet.query_count} times and needs support review.",
                        related_job_id=job.id,
                    )
                logger.warning(
                    f"Timesheet {timesheet_id} escalated after {timesheet.query_count} queries"
                )
            else:
                timesheet.status = TimesheetStatus.QUERIED.value
                timesheet.query_note = note.strip()
                timesheet.suggested_hours = suggested
                timesheet.queried_at = now
                timesheet.response_deadline = now + self._response_window
                self.storage.save_timesheet(timesheet)

                message = (
                    f"A customer has queried the timesheet for week starting {week}. "
                    f"Please respond within {self.config.query_response_hours} hours."
                )
                outbox.notify(
                    job.agency_id, NotificationType.TIMESHEET_QUERIED, message, related_job_id=job.id
                )
                outbox.email(
                    job.agency_id,
                    "Timesheet Query from Customer",
                    message,
                    cta_url=self.config.job_url(job.id),
                    cta_text="View Query",
                )
                logger.info(f"Timesheet {timesheet_id} queried ({timesheet.query_count})")

        self.dispatcher.dispatch(outbox, caller_id=acting_customer_id)
        return timesheet

    def respond(
        self,
        timesheet_id: str,
        acting_agency_id: str,
        response_note: str,
        mode,
        adjusted_hours=None,
    ) -> Timesheet:
        """Agency answers a query by adjusting the hours or standing by them."""
        try:
            mode = ResponseMode(mode)
        except ValueError as e:
            raise InvalidInputError(f"Invalid response mode: {mode}") from e
        if not response_note or not response_note.strip():
            raise InvalidInputError("A response note is required")
        adjusted = None
        if mode == ResponseMode.ADJUST:
            adjusted = _parse_hours(adjusted_hours, "Adjusted hours", allow_zero=True)
            if adjusted is None:
                raise InvalidHoursError("Adjusted hours are required when adjusting a timesheet")

        outbox = Outbox()
        with self.storage.transaction():
            timesheet = self._get_timesheet(timesheet_id)
            job = self.jobs.get_job(timesheet.job_id)
            require_party(
                acting_agency_id,
                [job.agency_id],
                message="Only the agency on this job can respond to queries",
            )
            if job.status != JobStatus.ACTIVE.value:
                raise WrongStatusError(f"Cannot respond to a timesheet on a job that is {job.status}")
            if timesheet.status != TimesheetStatus.QUERIED.value:
                raise WrongStatusError(f"Cannot respond to a timesheet that is {timesheet.status}")

            now = self._now()
            timesheet.status = TimesheetStatus.RESUBMITTED.value
            timesheet.query_response = response_note.strip()
            if adjusted is not None:
                timesheet.adjusted_hours = adjusted
            timesheet.response_deadline = now + self._response_window
            timesheet.updated_at = now
            self.storage.save_timesheet(timesheet)

            agency_name = self.jobs.agency_name(job)
            week = format_date(timesheet.week_starting)
            if mode == ResponseMode.ADJUST:
                message = (
                    f"{agency_name} has adjusted the timesheet for week starting {week} to "
                    f"{adjusted} hours. Please review and approve."
                )
            else:
                message = (
                    f"{agency_name} has responded to your query on the timesheet for week "
                    f"starting {week}. Please review their response."
                )
            outbox.notify(
                job.customer_id, NotificationType.TIMESHEET_RESPONDED, message, related_job_id=job.id
            )
            outbox.email(
                job.customer_id,
                "Timesheet Query Response",
                message,
                cta_url=self.config.job_url(job.id),
                cta_text="View Timesheet",
            )

        logger.info(f"Timesheet {timesheet_id} resubmitted by {acting_agency_id} (mode={mode.value})")
        self.dispatcher.dispatch(outbox, caller_id=acting_agency_id)
        return timesheet

    # =========================================================================
    # Deadline sweep
    # =========================================================================

    def find_overdue(self, now: Optional[datetime] = None) -> List[Timesheet]:
        now = now or self._now()
        waiting = self.storage.list_timesheets(statuses=AWAITING_RESPONSE_STATUSES)
        return [t for t in waiting if t.is_overdue(now)]

    def _apply_expiry(self, timesheet_id: str, now: datetime, outbox: Outbox) -> ExpiryAction:
        with self.storage.transaction():
            timesheet = self._get_timesheet(timesheet_id)
            if not timesheet.is_overdue(now):
                return ExpiryAction.NONE
            action = ExpiryAction(self.expiry_policy.decide(timesheet))
            if action == ExpiryAction.NONE:
                return action

            job = self.jobs.get_job(timesheet.job_id)
            week = format_date(timesheet.week_starting)
            if action == ExpiryAction.ADOPT_SUGGESTED:
                timesheet.status = TimesheetStatus.RESUBMITTED.value
                timesheet.adjusted_hours = timesheet.suggested_hours
                timesheet.query_response = "No response before the deadline; suggested hours adopted."
                timesheet.response_deadline = now + self._response_window
                timesheet.updated_at = now
                self.storage.save_timesheet(timesheet)
                outbox.notify(
                    job.customer_id,
                    NotificationType.TIMESHEET_RESPONDED,
                    f"The agency did not respond in time, so your suggested hours have been "
                    f"applied to the timesheet for week starting {week}.",
                    related_job_id=job.id,
                )
            elif action == ExpiryAction.APPROVE:
                if job.status != JobStatus.ACTIVE.value:
                    raise WrongStatusError(f"Job {job.id} is {job.status}")
                payment = self._settle(timesheet, job, now)
                outbox.notify(
                    job.agency_id,
                    NotificationType.TIMESHEET_APPROVED,
                    f"The timesheet for week starting {week} was approved automatically after "
                    f"the response deadline. {self._money(payment.amount)} is now due.",
                    related_job_id=job.id,
                )
            logger.info(f"Expired timesheet {timesheet_id}: {action.value}")
            return action

    def expire_overdue_queries(self, now: Optional[datetime] = None) -> ExpiryReport:
        """Hand each overdue queried/resubmitted timesheet to the expiry policy.

        Each timesheet is settled in its own transaction, so one failure does
        not hold back the rest of the sweep.
        """
        now = now or self._now()
        report = ExpiryReport()
        outbox = Outbox()
        try:
            for timesheet in self.find_overdue(now):
                report.overdue.append(timesheet.id)
                # Messages from a rolled-back item are dropped with it
                pending = Outbox()
                try:
                    action = self._apply_expiry(timesheet.id, now, pending)
                except (MarketplaceError, ValueError) as e:
                    logger.warning(f"Skipping overdue timesheet {timesheet.id}: {e}")
                    report.skipped[timesheet.id] = str(e)
                    continue
                outbox.extend(pending)
                report.actions[timesheet.id] = action.value
        finally:
            self.dispatcher.dispatch(outbox, caller_id=None)

        if report.overdue:
            logger.info(
                f"Expiry sweep: {len(report.overdue)} overdue, {len(report.changed)} changed, "
                f"{len(report.skipped)} skipped"
            )
        return report

    # =========================================================================
    # Payments
    # =========================================================================

    def list_payments(self, job_id: str, actor_id: Optional[str] = None) -> List[Payment]:
        self.jobs.get_job(job_id, actor_id=actor_id)
        return self.storage.list_payments(job_id=job_id)

    def _set_payment_status(self, payment_id: str, actor_id: str, status: PaymentStatus) -> Payment:
        require_role(self.identity, actor_id, Role.ADMIN)
        outbox = Outbox()
        with self.storage.transaction():
            payment = self.storage.get_payment(payment_id)
            if payment is None:
                raise NotFoundError(f"Payment {payment_id} not found")
            if payment.status == PaymentStatus.FAILED.value:
                raise WrongStatusError("A failed payment cannot change status")
            if payment.status == status.value:
                raise WrongStatusError(f"Payment is already {status.value}")

            payment.status = status.value
            if status == PaymentStatus.PAID:
                payment.paid_at = self._now()
            self.storage.save_payment(payment)

            job = self.jobs.get_job(payment.job_id)
            self._recompute_total(job)
            outbox.notify(
                job.agency_id,
                NotificationType.PAYMENT_UPDATED,
                f"Payment of {self._money(payment.amount)} has been marked as {status.value}.",
                related_job_id=job.id,
            )

        logger.info(f"Payment {payment_id} marked {status.value} by {actor_id}")
        self.dispatcher.dispatch(outbox, caller_id=actor_id)
        return payment

    def mark_payment_paid(self, payment_id: str, actor_id: str) -> Payment:
        return self._set_payment_status(payment_id, actor_id, PaymentStatus.PAID)

    def mark_payment_failed(self, payment_id: str, actor_id: str) -> Payment:
        """Admin records a failed payment; it drops out of total_paid_to_date."""
        return self._set_payment_status(payment_id, actor_id, PaymentStatus.FAILED)

    def reconcile_total_paid(self, job_id: str, actor_id: Optional[str] = None) -> Decimal:
        """Recompute the job's total_paid_to_date from its payments."""
        if actor_id is not None and not is_admin(self.identity, actor_id):
            raise NotAuthorizedError("Only an admin can reconcile payments")
        with self.storage.transaction():
            job = self.jobs.get_job(job_id)
            cached = job.total_paid_to_date
            total = self._recompute_total(job)
        if cached != total:
            logger.warning(f"Job {job_id} total_paid_to_date drifted: {cached} -> {total}")
        return total
