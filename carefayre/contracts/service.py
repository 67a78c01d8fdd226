"""
Rate agreement negotiator.

A contract moves from unsigned to fully signed as each party signs once.
The second signature moves the job from ``pending`` to
``assessment_pending`` in the same transaction. There is no un-signing.
"""

import logging
from typing import Callable, Optional

from carefayre.contracts.agreement import AgreementDetails, render_agreement
from carefayre.contracts.models import Contract
from carefayre.errors import AlreadySignedError, NotAPartyError, NotAuthorizedError, NotFoundError
from carefayre.identity import is_admin
from carefayre.jobs.models import JobStatus
from carefayre.jobs.service import JobService
from carefayre.notifications import Dispatcher, NotificationType, Outbox
from carefayre.utils import utc_now

logger = logging.getLogger(__name__)


class ContractService:
    """Service for rate agreement signing."""

    def __init__(
        self,
        storage,
        jobs: JobService,
        dispatcher: Dispatcher,
        clock: Optional[Callable] = None,
    ):
        self.storage = storage
        self.jobs = jobs
        self.dispatcher = dispatcher
        self._now = clock or utc_now

    def render_agreement(self, details: AgreementDetails) -> str:
        return render_agreement(details)

    def _check_can_view(self, contract: Contract, actor_id: Optional[str]) -> None:
        if actor_id is None or contract.is_party(actor_id):
            return
        if not is_admin(self.jobs.identity, actor_id):
            raise NotAuthorizedError("You are not a party to this agreement")

    def get_contract(self, contract_id: str, actor_id: Optional[str] = None) -> Contract:
        contract = self.storage.get_contract(contract_id)
        if contract is None:
            raise NotFoundError(f"Contract {contract_id} not found")
        self._check_can_view(contract, actor_id)
        return contract

    def get_contract_for_job(self, job_id: str, actor_id: Optional[str] = None) -> Contract:
        contract = self.storage.get_contract_for_job(job_id)
        if contract is None:
            raise NotFoundError(f"No rate agreement for job {job_id}")
        self._check_can_view(contract, actor_id)
        return contract

    def sign(self, contract_id: str, acting_user_id: str) -> Contract:
        """Record the caller's signature.

        Raises:
            NotFoundError: If the contract does not exist
            NotAPartyError: If the caller is neither the customer nor the agency
            AlreadySignedError: If the caller has already signed
        """
        outbox = Outbox()
        with self.storage.transaction():
            contract = self.storage.get_contract(contract_id)
            if contract is None:
                raise NotFoundError(f"Contract {contract_id} not found")
            if not acting_user_id or not contract.is_party(acting_user_id):
                raise NotAPartyError("Only the customer or the agency can sign this agreement")
            if contract.has_signed(acting_user_id):
                raise AlreadySignedError("You have already signed this agreement")

            now = self._now()
            if acting_user_id == contract.customer_id:
                contract.customer_agreed_at = now
            else:
                contract.agency_agreed_at = now
            self.storage.save_contract(contract)

            job = self.jobs.get_job(contract.job_id)
            agency_name = self.jobs.agency_name(job)
            customer_name = self.jobs.customer_name(job)

            if contract.is_fully_signed:
                self.jobs.transition(
                    job, JobStatus.ASSESSMENT_PENDING, acting_user_id, "rate agreement signed"
                )
                outbox.notify(
                    contract.customer_id,
                    NotificationType.ASSESSMENT_PENDING,
                    f"Your Rate Agreement with {agency_name} has been signed. They will be in "
                    "touch shortly to arrange a care assessment.",
                    related_job_id=job.id,
                )
                outbox.notify(
                    contract.agency_id,
                    NotificationType.ASSESSMENT_PENDING,
                    f"Your Rate Agreement with {customer_name} is signed. Please contact them "
                    "as soon as possible to arrange a care assessment.",
                    related_job_id=job.id,
                )
            else:
                other_name = agency_name if acting_user_id == contract.customer_id else customer_name
                outbox.notify(
                    acting_user_id,
                    NotificationType.AGREEMENT_SIGNED,
                    f"You have signed the Rate Agreement. Waiting for {other_name} to sign "
                    "before the assessment stage begins.",
                    related_job_id=job.id,
                )

        logger.info(
            f"Contract {contract.id} signed by {acting_user_id} "
            f"(state={contract.signature_state.value})"
        )
        self.dispatcher.dispatch(outbox, caller_id=acting_user_id)
        return contract

    def sign_for_job(self, job_id: str, acting_user_id: str) -> Contract:
        """Sign the rate agreement belonging to a job."""
        contract = self.storage.get_contract_for_job(job_id)
        if contract is None:
            raise NotFoundError(f"No rate agreement for job {job_id}")
        return self.sign(contract.id, acting_user_id)
