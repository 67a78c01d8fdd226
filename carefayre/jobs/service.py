"""
Job lifecycle service.

Every transition follows the same shape: inside one storage transaction,
load the job, check the caller and the source status, write the new status
together with a JobStateTransition audit row, and queue notifications on an
outbox. The outbox is dispatched only after the transaction commits.
"""

import logging
from datetime import date
from typing import Callable, Iterable, List, Optional

from carefayre.config import MarketplaceConfig
from carefayre.errors import NotAuthorizedError, NotFoundError, WrongStatusError
from carefayre.identity import Role, is_admin, require_party
from carefayre.jobs.models import Job, JobStateTransition, JobStatus
from carefayre.notifications import Dispatcher, NotificationType, Outbox
from carefayre.utils import format_date, new_id, utc_now

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_NAME = "The customer"
DEFAULT_AGENCY_NAME = "The agency"


class JobService:
    """Service for job lifecycle operations."""

    def __init__(
        self,
        storage,
        identity,
        dispatcher: Dispatcher,
        config: Optional[MarketplaceConfig] = None,
        clock: Optional[Callable] = None,
    ):
        self.storage = storage
        self.identity = identity
        self.dispatcher = dispatcher
        self.config = config or MarketplaceConfig()
        self._now = clock or utc_now

    # =========================================================================
    # Queries
    # =========================================================================

    def _get_job(self, job_id: str) -> Job:
        job = self.storage.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def get_job(self, job_id: str, actor_id: Optional[str] = None) -> Job:
        """Get a job. When ``actor_id`` is given it must be a party or an admin."""
        job = self._get_job(job_id)
        if actor_id is not None and not job.is_party(actor_id):
            if not is_admin(self.identity, actor_id):
                raise NotAuthorizedError("You are not a party to this job")
        return job

    def list_jobs_for(self, user_id: str, status: Optional[JobStatus] = None) -> List[Job]:
        status_val = status.value if isinstance(status, JobStatus) else status
        role = self.identity.get_role(user_id)
        if role == Role.AGENCY:
            return self.storage.list_jobs(agency_id=user_id, status=status_val)
        if role == Role.ADMIN:
            return self.storage.list_jobs(status=status_val)
        return self.storage.list_jobs(customer_id=user_id, status=status_val)

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        """Audit trail for a job, oldest first."""
        self._get_job(job_id)
        return self.storage.get_transitions(job_id)

    def agency_name(self, job: Job) -> str:
        profile = self.storage.get_agency_profile(job.agency_profile_id)
        return profile.agency_name if profile else DEFAULT_AGENCY_NAME

    def customer_name(self, job: Job) -> str:
        profile = self.storage.get_customer_profile(job.customer_id)
        return profile.full_name if profile and profile.full_name else DEFAULT_CUSTOMER_NAME

    # =========================================================================
    # Transition primitives (call inside a storage transaction)
    # =========================================================================

    def record_creation(self, job: Job, actor_id: str) -> None:
        """Persist a new job and its first audit row."""
        self.storage.save_job(job)
        self.storage.save_transition(
            JobStateTransition(
                id=new_id(),
                job_id=job.id,
                from_status=None,
                to_status=job.status,
                actor_id=actor_id,
                reason="bid accepted",
                created_at=job.created_at or self._now(),
            )
        )

    def transition(
        self, job: Job, new_status: JobStatus, actor_id: str, reason: Optional[str] = None
    ) -> Job:
        """Move a job to ``new_status`` and write the audit row.

        Raises:
            WrongStatusError: If the transition is not allowed from the current status
        """
        if not job.can_transition_to(new_status):
            raise WrongStatusError(
                f"Cannot move job from {job.status} to {JobStatus(new_status).value}"
            )
        now = self._now()
        old_status = job.status
        job.status = JobStatus(new_status).value
        job.updated_at = now
        self.storage.save_job(job)
        self.storage.save_transition(
            JobStateTransition(
                id=new_id(),
                job_id=job.id,
                from_status=old_status,
                to_status=job.status,
                actor_id=actor_id,
                reason=reason,
                created_at=now,
            )
        )
        logger.info(f"Job {job.id}: {old_status} -> {job.status} (actor={actor_id})")
        return job

    @staticmethod
    def _require_status(job: Job, allowed: Iterable[JobStatus], action: str) -> None:
        allowed_values = {JobStatus(s).value for s in allowed}
        if job.status not in allowed_values:
            raise WrongStatusError(f"Cannot {action} a job that is {job.status}")

    @staticmethod
    def _require_agency(job: Job, actor_id: str) -> None:
        require_party(actor_id, [job.agency_id], message="Only the agency on this job can do this")

    @staticmethod
    def _require_customer(job: Job, actor_id: str) -> None:
        require_party(
            actor_id, [job.customer_id], message="Only the customer on this job can do this"
        )

    def _start_date_message(self, job: Job, agency_name: str) -> str:
        if job.start_date is not None:
            return f"Your care start date has been confirmed as {format_date(job.start_date)}."
        return (
            f"Your care start date is to be confirmed. {agency_name} will let you know "
            "as soon as it is set."
        )

    # =========================================================================
    # Assessment stage
    # =========================================================================

    def mark_assessment_complete(
        self, job_id: str, acting_agency_id: str, start_date: Optional[date] = None
    ) -> Job:
        """Agency records the care assessment. ``start_date=None`` means to be confirmed."""
        outbox = Outbox()
        with self.storage.transaction():
            job = self._get_job(job_id)
            self._require_agency(job, acting_agency_id)
            self._require_status(job, [JobStatus.ASSESSMENT_PENDING], "complete the assessment for")

            job.start_date = start_date
            self.transition(job, JobStatus.ASSESSMENT_COMPLETE, acting_agency_id, "assessment complete")

            agency_name = self.agency_name(job)
            outbox.notify(
                job.customer_id,
                NotificationType.ASSESSMENT_COMPLETE,
                f"{agency_name} has completed your care assessment. Please confirm whether "
                "you would like care to go ahead.",
                related_job_id=job.id,
            )
            outbox.notify(
                job.customer_id,
                NotificationType.START_DATE,
                self._start_date_message(job, agency_name),
                related_job_id=job.id,
            )

        self.dispatcher.dispatch(outbox, caller_id=acting_agency_id)
        return job

    def set_start_date(
        self, job_id: str, acting_agency_id: str, start_date: Optional[date] = None
    ) -> Job:
        """Agency sets or clears the start date after the assessment."""
        outbox = Outbox()
        with self.storage.transaction():
            job = self._get_job(job_id)
            self._require_agency(job, acting_agency_id)
            self._require_status(
                job, [JobStatus.ASSESSMENT_COMPLETE, JobStatus.ACTIVE], "change the start date of"
            )
            job.start_date = start_date
            job.updated_at = self._now()
            self.storage.save_job(job)

            outbox.notify(
                job.customer_id,
                NotificationType.START_DATE,
                self._start_date_message(job, self.agency_name(job)),
                related_job_id=job.id,
            )

        self.dispatcher.dispatch(outbox, caller_id=acting_agency_id)
        return job

    def confirm_care(self, job_id: str, acting_customer_id: str) -> Job:
        """Customer confirms care should go ahead. Billing starts here."""
        outbox = Outbox()
        with self.storage.transaction():
            job = self._get_job(job_id)
            self._require_customer(job, acting_customer_id)
            self._require_status(job, [JobStatus.ASSESSMENT_COMPLETE], "confirm care on")
            self.transition(job, JobStatus.ACTIVE, acting_customer_id, "care confirmed")

            outbox.notify(
                job.agency_id,
                NotificationType.CARE_CONFIRMED,
                f"{self.customer_name(job)} has confirmed they would like care to go ahead. "
                "You can now submit weekly timesheets.",
                related_job_id=job.id,
            )

        self.dispatcher.dispatch(outbox, caller_id=acting_customer_id)
        return job

    def decline_care(self, job_id: str, acting_customer_id: str) -> Job:
        """Customer declines after the assessment. No charges apply."""
        outbox = Outbox()
        with self.storage.transaction():
            job = self._get_job(job_id)
            self._require_customer(job, acting_customer_id)
            self._require_status(job, [JobStatus.ASSESSMENT_COMPLETE], "decline care on")
            self.transition(job, JobStatus.CANCELLED_PRE_CARE, acting_customer_id, "care declined")

            outbox.notify(
                job.agency_id,
                NotificationType.CARE_DECLINED,
                f"{self.customer_name(job)} has decided not to go ahead after the assessment. "
                "The job has been cancelled and no charges apply.",
                related_job_id=job.id,
            )

        self.dispatcher.dispatch(outbox, caller_id=acting_customer_id)
        return job

    def cancel_pre_care(self, job_id: str, acting_user_id: str) -> Job:
        """Either party cancels before care starts.

        Both parties get an in-app notification worded for their side; only
        the other party is emailed.
        """
        outbox = Outbox()
        with self.storage.transaction():
            job = self._get_job(job_id)
            require_party(acting_user_id, [job.customer_id, job.agency_id])
            self._require_status(
                job,
                [JobStatus.ASSESSMENT_PENDING, JobStatus.ASSESSMENT_COMPLETE],
                "cancel before care",
            )
            self.transition(job, JobStatus.CANCELLED_PRE_CARE, acting_user_id, "cancelled before care")

            agency_name = self.agency_name(job)
            customer_name = self.customer_name(job)
            if acting_user_id == job.customer_id:
                actor_message = (
                    f"You cancelled your care arrangement with {agency_name} before care "
                    "started. No charges apply."
                )
                other_message = (
                    f"{customer_name} has cancelled the care arrangement before care started. "
                    "No charges apply."
                )
            else:
                actor_message = (
                    f"You cancelled the care arrangement with {customer_name} before care "
                    "started. No charges apply."
                )
                other_message = (
                    f"{agency_name} has cancelled your care arrangement before care started. "
                    "No charges apply."
                )
            other_party = job.other_party(acting_user_id)
            outbox.notify(acting_user_id, NotificationType.JOB_CANCELLED, actor_message, related_job_id=job.id)
            outbox.notify(other_party, NotificationType.JOB_CANCELLED, other_message, related_job_id=job.id)
            outbox.email(
                other_party,
                "Care Arrangement Cancelled",
                other_message,
                cta_url=self.config.job_url(job.id),
                cta_text="View Job",
            )

        self.dispatcher.dispatch(outbox, caller_id=acting_user_id)
        return job

    # =========================================================================
    # Active stage
    # =========================================================================

    def _require_agency_or_admin(self, job: Job, actor_id: str) -> None:
        if actor_id != job.agency_id and not is_admin(self.identity, actor_id):
            raise NotAuthorizedError("Only the agency on this job or an admin can do this")

    def pause(self, job_id: str, actor_id: str, reason: Optional[str] = None) -> Job:
        outbox = Outbox()
        with self.storage.transaction():
            job = self._get_job(job_id)
            self._require_agency_or_admin(job, actor_id)
            self._require_status(job, [JobStatus.ACTIVE], "pause")
            self.transition(job, JobStatus.PAUSED, actor_id, reason or "paused")
            outbox.notify(
                job.customer_id,
                NotificationType.JOB_PAUSED,
                f"Care with {self.agency_name(job)} has been paused.",
                related_job_id=job.id,
            )
        self.dispatcher.dispatch(outbox, caller_id=actor_id)
        return job

    def resume(self, job_id: str, actor_id: str) -> Job:
        outbox = Outbox()
        with self.storage.transaction():
            job = self._get_job(job_id)
            self._require_agency_or_admin(job, actor_id)
            self._require_status(job, [JobStatus.PAUSED], "resume")
            self.transition(job, JobStatus.ACTIVE, actor_id, "resumed")
            outbox.notify(
                job.customer_id,
                NotificationType.JOB_RESUMED,
                f"Care with {self.agency_name(job)} has resumed.",
                related_job_id=job.id,
            )
        self.dispatcher.dispatch(outbox, caller_id=actor_id)
        return job

    def complete(self, job_id: str, actor_id: str) -> Job:
        """Either party (or an admin) ends an active care arrangement."""
        outbox = Outbox()
        with self.storage.transaction():
            job = self._get_job(job_id)
            if not job.is_party(actor_id) and not is_admin(self.identity, actor_id):
                raise NotAuthorizedError("You are not a party to this job")
            self._require_status(job, [JobStatus.ACTIVE], "complete")
            self.transition(job, JobStatus.COMPLETED, actor_id, "completed")
            for recipient in (job.customer_id, job.agency_id):
                if recipient != actor_id:
                    outbox.notify(
                        recipient,
                        NotificationType.JOB_COMPLETED,
                        "This care arrangement has been marked as completed.",
                        related_job_id=job.id,
                    )
        self.dispatcher.dispatch(outbox, caller_id=actor_id)
        return job

    def mark_disputed(self, job_id: str, actor_id: str, reason: Optional[str] = None) -> Job:
        """Admin hands an active job to support."""
        outbox = Outbox()
        with self.storage.transaction():
            job = self._get_job(job_id)
            if not is_admin(self.identity, actor_id):
                raise NotAuthorizedError("Only an admin can mark a job as disputed")
            self._require_status(job, [JobStatus.ACTIVE], "dispute")
            self.transition(job, JobStatus.DISPUTED, actor_id, reason or "disputed")
            for recipient in (job.customer_id, job.agency_id):
                outbox.notify(
                    recipient,
                    NotificationType.JOB_DISPUTED,
                    "This care arrangement has been passed to our support team, "
                    "who will be in touch.",
                    related_job_id=job.id,
                )
        self.dispatcher.dispatch(outbox, caller_id=actor_id)
        return job
