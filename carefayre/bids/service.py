"""
Bid ledger service.

Care requests collect bids until the customer accepts one. Acceptance is a
single transaction: the request, every bid on it, the new job, its audit
row and the rate agreement are written together or not at all.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional

from carefayre.bids.models import CARE_TYPES, Bid, BidStatus, CareRequest, NightType, RequestStatus
from carefayre.config import MarketplaceConfig
from carefayre.contracts.agreement import AgreementDetails, render_agreement
from carefayre.contracts.models import Contract
from carefayre.errors import (
    InvalidHoursError,
    InvalidInputError,
    InvalidRateError,
    NotAuthorizedError,
    NotFoundError,
    NotRequestOwnerError,
    RequestClosedError,
    RequestNotOpenError,
    WrongStatusError,
)
from carefayre.identity import Role, require_role
from carefayre.jobs.models import Job, JobStatus
from carefayre.jobs.service import JobService
from carefayre.notifications import Dispatcher, NotificationType, Outbox
from carefayre.settings import SettingsService
from carefayre.utils import format_money, new_id, to_decimal, utc_now

logger = logging.getLogger(__name__)

CANCELLABLE_REQUEST_STATUSES = (RequestStatus.OPEN.value, RequestStatus.ACCEPTING_BIDS.value)


def _parse_rate(value, label: str) -> Optional[Decimal]:
    try:
        return to_decimal(value)
    except (InvalidOperation, ValueError) as e:
        raise InvalidRateError(f"{label} must be a number") from e


class BidService:
    """Service for care requests and bids."""

    def __init__(
        self,
        storage,
        identity,
        settings: SettingsService,
        jobs: JobService,
        dispatcher: Dispatcher,
        config: Optional[MarketplaceConfig] = None,
        clock: Optional[Callable] = None,
    ):
        self.storage = storage
        self.identity = identity
        self.settings = settings
        self.jobs = jobs
        self.dispatcher = dispatcher
        self.config = config or MarketplaceConfig()
        self._now = clock or utc_now

    # =========================================================================
    # Care requests
    # =========================================================================

    def create_request(
        self,
        creator_id: str,
        postcode: str,
        care_types: List[str],
        hours_per_week,
        frequency: str,
        recipient_name: str = "",
        recipient_address: str = "",
        relationship_to_holder: str = "",
        recipient_dob: Optional[date] = None,
        description: Optional[str] = None,
        start_date: Optional[date] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        nights_per_week: Optional[int] = None,
        night_type: Optional[str] = None,
    ) -> CareRequest:
        """Post a care request. Bidding stays open for the configured bid window."""
        require_role(self.identity, creator_id, Role.CUSTOMER)

        try:
            hours = to_decimal(hours_per_week)
        except (InvalidOperation, ValueError) as e:
            raise InvalidHoursError("Hours per week must be a number") from e
        if hours is None or hours <= 0:
            raise InvalidHoursError("Hours per week must be greater than zero")
        if hours > 168:
            raise InvalidHoursError("Hours per week cannot exceed 168")

        care_types = [ct for ct in (care_types or []) if ct]
        if not care_types:
            raise InvalidInputError("Select at least one care type")
        unknown = [ct for ct in care_types if ct not in CARE_TYPES]
        if unknown:
            raise InvalidInputError(f"Unknown care types: {', '.join(unknown)}")
        if night_type is not None and night_type not in {n.value for n in NightType}:
            raise InvalidInputError(f"Invalid night type: {night_type}")

        now = self._now()
        window = self.settings.get().bid_window_hours
        try:
            request = CareRequest(
                id=new_id(),
                creator_id=creator_id,
                postcode=(postcode or "").strip().upper(),
                care_types=care_types,
                hours_per_week=hours,
                frequency=frequency,
                recipient_name=recipient_name,
                recipient_address=recipient_address,
                relationship_to_holder=relationship_to_holder,
                recipient_dob=recipient_dob,
                description=description,
                start_date=start_date,
                latitude=latitude,
                longitude=longitude,
                nights_per_week=nights_per_week,
                night_type=night_type,
                bid_deadline=now + timedelta(hours=window),
                status=RequestStatus.OPEN,
                created_at=now,
                updated_at=now,
            )
        except ValueError as e:
            raise InvalidInputError(str(e)) from e

        self.storage.save_request(request)
        logger.info(f"Care request {request.id} created by {creator_id} ({window}h bid window)")
        return request

    def _get_request(self, request_id: str) -> CareRequest:
        request = self.storage.get_request(request_id)
        if request is None:
            raise NotFoundError(f"Care request {request_id} not found")
        return request

    def get_request(self, request_id: str) -> CareRequest:
        return self._get_request(request_id)

    def list_open_requests(self) -> List[CareRequest]:
        """Requests still accepting bids, newest first."""
        now = self._now()
        return [
            r for r in self.storage.list_requests(status=RequestStatus.OPEN.value)
            if not r.bidding_closed(now)
        ]

    def list_requests_for(self, creator_id: str) -> List[CareRequest]:
        return self.storage.list_requests(creator_id=creator_id)

    def cancel_request(self, request_id: str, acting_customer_id: str) -> CareRequest:
        """Creator withdraws a request; any active bids are rejected."""
        outbox = Outbox()
        with self.storage.transaction():
            request = self._get_request(request_id)
            if request.creator_id != acting_customer_id:
                raise NotRequestOwnerError("Only the customer who posted this request can cancel it")
            if request.status not in CANCELLABLE_REQUEST_STATUSES:
                raise WrongStatusError(f"Cannot cancel a request that is {request.status}")

            request.status = RequestStatus.CANCELLED.value
            request.updated_at = self._now()
            self.storage.save_request(request)

            for bid in self.storage.list_bids(care_request_id=request.id, status=BidStatus.ACTIVE.value):
                bid.status = BidStatus.REJECTED.value
                self.storage.save_bid(bid)
                outbox.notify(
                    bid.bidder_id,
                    NotificationType.REQUEST_CANCELLED,
                    f"The care request in {request.postcode} you bid on has been cancelled.",
                    related_request_id=request.id,
                )

        logger.info(f"Care request {request_id} cancelled by {acting_customer_id}")
        self.dispatcher.dispatch(outbox, caller_id=acting_customer_id)
        return request

    # =========================================================================
    # Bids
    # =========================================================================

    def list_bids(self, request_id: str, active_only: bool = False) -> List[Bid]:
        self._get_request(request_id)
        status = BidStatus.ACTIVE.value if active_only else None
        return self.storage.list_bids(care_request_id=request_id, status=status)

    def place_bid(
        self,
        request_id: str,
        bidder_id: str,
        agency_profile_id: str,
        hourly_rate,
        overnight_rate=None,
        notes: Optional[str] = None,
        distance_miles: Optional[float] = None,
    ) -> Bid:
        """Place a bid on an open request.

        Raises:
            InvalidRateError: If the hourly rate is not positive, or the request
                needs an overnight rate and none was given
            RequestClosedError: If the request is not open or its deadline passed
            NotAuthorizedError: If the caller is not an agency or does not own the profile
        """
        require_role(self.identity, bidder_id, Role.AGENCY)
        hourly = _parse_rate(hourly_rate, "Hourly rate")
        overnight = _parse_rate(overnight_rate, "Overnight rate")
        if hourly is None or hourly <= 0:
            raise InvalidRateError("Hourly rate must be greater than zero")

        profile = self.storage.get_agency_profile(agency_profile_id)
        if profile is None:
            raise NotFoundError(f"Agency profile {agency_profile_id} not found")
        if profile.user_id != bidder_id:
            raise NotAuthorizedError("You can only bid as your own agency")

        outbox = Outbox()
        with self.storage.transaction():
            request = self._get_request(request_id)
            now = self._now()
            if request.bidding_closed(now):
                raise RequestClosedError("This request is no longer accepting bids")
            if request.requires_overnight_rate and (overnight is None or overnight <= 0):
                raise InvalidRateError("This request needs an overnight rate greater than zero")

            bid = Bid(
                id=new_id(),
                care_request_id=request.id,
                bidder_id=bidder_id,
                agency_profile_id=agency_profile_id,
                hourly_rate=hourly,
                overnight_rate=overnight,
                notes=notes,
                distance_miles=distance_miles,
                status=BidStatus.ACTIVE,
                created_at=now,
            )
            self.storage.save_bid(bid)

            request.bids_count += 1
            # Ratchet: only ever lowered here, never recomputed from live bids
            if request.lowest_bid_rate is None or hourly < request.lowest_bid_rate:
                request.lowest_bid_rate = hourly
            request.updated_at = now
            self.storage.save_request(request)

            outbox.notify(
                request.creator_id,
                NotificationType.BID_RECEIVED,
                f"{profile.agency_name} has bid {format_money(hourly, self.config.currency_symbol)}/hr "
                "on your care request.",
                related_request_id=request.id,
            )

        logger.info(f"Bid {bid.id} placed on {request_id} by {bidder_id} at {hourly}/hr")
        self.dispatcher.dispatch(outbox, caller_id=bidder_id)
        return bid

    def withdraw_bid(self, bid_id: str, acting_agency_id: str) -> Bid:
        """Bidder withdraws an active bid. The lowest-rate ratchet is left as is."""
        with self.storage.transaction():
            bid = self.storage.get_bid(bid_id)
            if bid is None:
                raise NotFoundError(f"Bid {bid_id} not found")
            if bid.bidder_id != acting_agency_id:
                raise NotAuthorizedError("You can only withdraw your own bids")
            if not bid.is_active:
                raise WrongStatusError(f"Cannot withdraw a bid that is {bid.status}")
            request = self._get_request(bid.care_request_id)
            if not request.is_open:
                raise WrongStatusError(f"Cannot withdraw from a request that is {request.status}")

            bid.status = BidStatus.WITHDRAWN.value
            self.storage.save_bid(bid)

        logger.info(f"Bid {bid_id} withdrawn by {acting_agency_id}")
        return bid

    def live_lowest_bid_rate(self, request_id: str) -> Optional[Decimal]:
        """Lowest rate among currently active bids, or None if there are none.

        Read-only reconciliation for the stored lowest_bid_rate ratchet.
        """
        bids = self.list_bids(request_id, active_only=True)
        return min((b.hourly_rate for b in bids), default=None)

    # =========================================================================
    # Acceptance
    # =========================================================================

    def _agreement_text(self, request: CareRequest, bid: Bid, job: Job) -> str:
        holder = self.storage.get_customer_profile(request.creator_id)
        agency = self.storage.get_agency_profile(bid.agency_profile_id)
        details = AgreementDetails(
            holder_name=holder.full_name if holder else "",
            holder_address=holder.address if holder else "",
            recipient_name=request.recipient_name,
            recipient_address=request.recipient_address,
            relationship_to_holder=request.relationship_to_holder,
            recipient_dob=request.recipient_dob,
            agency_name=agency.agency_name if agency else "",
            agency_cqc_id=agency.cqc_id if agency else "",
            hourly_rate=job.locked_hourly_rate,
            hours_per_week=job.agreed_hours_per_week,
            frequency=request.frequency,
            care_types=list(request.care_types),
            start_date=job.start_date,
            overnight_rate=bid.overnight_rate if request.requires_overnight_rate else None,
            nights_per_week=request.nights_per_week,
            night_type=request.night_type,
            platform_name=self.config.platform_name,
            currency_symbol=self.config.currency_symbol,
        )
        return render_agreement(details)

    def accept_bid(self, request_id: str, bid_id: str, acting_customer_id: str) -> Job:
        """Accept a bid, creating the job and its rate agreement.

        Raises:
            NotRequestOwnerError: If the caller did not post the request
            RequestNotOpenError: If the request is no longer open, including
                when a concurrent acceptance got there first
        """
        outbox = Outbox()
        with self.storage.transaction():
            request = self._get_request(request_id)
            if request.creator_id != acting_customer_id:
                raise NotRequestOwnerError("Only the customer who posted this request can accept bids")
            if not request.is_open:
                if request.status == RequestStatus.ACCEPTED.value:
                    logger.warning(
                        f"Acceptance race on request {request_id}: already accepted "
                        f"bid {request.winning_bid_id}"
                    )
                raise RequestNotOpenError(f"This request is {request.status} and cannot accept bids")

            bid = self.storage.get_bid(bid_id)
            if bid is None or bid.care_request_id != request.id:
                raise NotFoundError(f"Bid {bid_id} not found on this request")
            if not bid.is_active:
                raise WrongStatusError(f"Cannot accept a bid that is {bid.status}")

            now = self._now()
            request.status = RequestStatus.ACCEPTED.value
            request.winning_bid_id = bid.id
            request.updated_at = now
            self.storage.save_request(request)

            bid.status = BidStatus.ACCEPTED.value
            self.storage.save_bid(bid)

            rejected = []
            for sibling in self.storage.list_bids(care_request_id=request.id, status=BidStatus.ACTIVE.value):
                sibling.status = BidStatus.REJECTED.value
                self.storage.save_bid(sibling)
                rejected.append(sibling)

            job = Job(
                id=new_id(),
                care_request_id=request.id,
                winning_bid_id=bid.id,
                customer_id=request.creator_id,
                agency_id=bid.bidder_id,
                agency_profile_id=bid.agency_profile_id,
                locked_hourly_rate=bid.hourly_rate,
                agreed_hours_per_week=request.hours_per_week,
                start_date=request.start_date,
                status=JobStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            self.jobs.record_creation(job, acting_customer_id)

            contract = Contract(
                id=new_id(),
                job_id=job.id,
                customer_id=job.customer_id,
                agency_id=job.agency_id,
                agreement_text=self._agreement_text(request, bid, job),
                created_at=now,
            )
            self.storage.save_contract(contract)

            rate = format_money(bid.hourly_rate, self.config.currency_symbol)
            message = (
                f"Your bid of {rate}/hr has been accepted. Please review and sign the "
                "Rate Agreement."
            )
            outbox.notify(bid.bidder_id, NotificationType.BID_ACCEPTED, message, related_job_id=job.id)
            outbox.email(
                bid.bidder_id,
                "Your Bid Was Accepted",
                message,
                cta_url=self.config.agreement_url(job.id),
                cta_text="Review Agreement",
            )
            for sibling in rejected:
                outbox.notify(
                    sibling.bidder_id,
                    NotificationType.BID_REJECTED,
                    f"Your bid on the care request in {request.postcode} was not selected.",
                    related_request_id=request.id,
                )

        logger.info(
            f"Bid {bid_id} accepted on {request_id} by {acting_customer_id}: job {job.id}, "
            f"{len(rejected)} sibling bids rejected"
        )
        self.dispatcher.dispatch(outbox, caller_id=acting_customer_id)
        return job
