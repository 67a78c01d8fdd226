"""
Storage protocol for the marketplace.

Backends implement three primitives (``_put``, ``_fetch``, ``_query``) plus
``transaction()``; ``RecordStorage`` builds the typed entity methods on top
of them so every backend behaves the same way.
"""

import logging
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Type, TypeVar

from carefayre.bids.models import Bid, CareRequest
from carefayre.contracts.models import Contract
from carefayre.jobs.models import Job, JobStateTransition
from carefayre.notifications import Notification
from carefayre.profiles import AgencyProfile, CustomerProfile
from carefayre.settings import AppSettings
from carefayre.storage.schema import TABLE_COLUMNS, UNIQUE_COLUMNS
from carefayre.timesheets.models import Payment, Timesheet

logger = logging.getLogger(__name__)

T = TypeVar("T")

SETTINGS_ROW_ID = "default"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class DuplicateRecordError(ValueError):
    """Raised when a write would violate a unique column."""

    pass


def index_value(value: Any) -> Optional[str]:
    """Normalize a payload value to the text stored in an indexed column."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    if hasattr(value, "value"):
        value = value.value
    return str(value)


class MarketplaceStorage(Protocol):
    """Protocol for marketplace persistence backends."""

    def transaction(self) -> AbstractContextManager:
        """Commit on success, roll back everything on any exception. Re-entrant."""
        ...

    # Care requests
    def save_request(self, request: CareRequest) -> str: ...
    def get_request(self, request_id: str) -> Optional[CareRequest]: ...
    def list_requests(
        self, status: Optional[str] = None, creator_id: Optional[str] = None
    ) -> List[CareRequest]: ...

    # Bids
    def save_bid(self, bid: Bid) -> str: ...
    def get_bid(self, bid_id: str) -> Optional[Bid]: ...
    def list_bids(
        self,
        care_request_id: Optional[str] = None,
        bidder_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Bid]: ...

    # Jobs
    def save_job(self, job: Job) -> str: ...
    def get_job(self, job_id: str) -> Optional[Job]: ...
    def list_jobs(
        self,
        customer_id: Optional[str] = None,
        agency_id: Optional[str] = None,
        status: Optional[str] = None,
        care_request_id: Optional[str] = None,
    ) -> List[Job]: ...
    def save_transition(self, transition: JobStateTransition) -> str: ...
    def get_transitions(self, job_id: str) -> List[JobStateTransition]: ...

    # Contracts
    def save_contract(self, contract: Contract) -> str: ...
    def get_contract(self, contract_id: str) -> Optional[Contract]: ...
    def get_contract_for_job(self, job_id: str) -> Optional[Contract]: ...

    # Timesheets and payments
    def save_timesheet(self, timesheet: Timesheet) -> str: ...
    def get_timesheet(self, timesheet_id: str) -> Optional[Timesheet]: ...
    def list_timesheets(
        self, job_id: Optional[str] = None, statuses: Optional[Iterable[str]] = None
    ) -> List[Timesheet]: ...
    def save_payment(self, payment: Payment) -> str: ...
    def get_payment(self, payment_id: str) -> Optional[Payment]: ...
    def get_payment_for_timesheet(self, timesheet_id: str) -> Optional[Payment]: ...
    def list_payments(self, job_id: Optional[str] = None) -> List[Payment]: ...

    # Notifications
    def save_notification(self, notification: Notification) -> str: ...
    def get_notification(self, notification_id: str) -> Optional[Notification]: ...
    def list_notifications(
        self, recipient_id: str, unread_only: bool = False
    ) -> List[Notification]: ...

    # Profiles
    def save_agency_profile(self, profile: AgencyProfile) -> str: ...
    def get_agency_profile(self, profile_id: str) -> Optional[AgencyProfile]: ...
    def get_agency_profile_for_user(self, user_id: str) -> Optional[AgencyProfile]: ...
    def list_agency_profiles(self, verified: Optional[bool] = None) -> List[AgencyProfile]: ...
    def save_customer_profile(self, profile: CustomerProfile) -> str: ...
    def get_customer_profile(self, user_id: str) -> Optional[CustomerProfile]: ...

    # App settings
    def get_settings(self) -> Optional[AppSettings]: ...
    def save_settings(self, settings: AppSettings) -> None: ...


def _by_created(items: List[T]) -> List[T]:
    """Oldest first; records without a timestamp sort last."""
    return sorted(items, key=lambda item: (item.created_at is None, item.created_at or _EPOCH))


class RecordStorage:
    """Typed entity methods shared by the storage backends.

    Subclasses provide:
        _put(table, record_id, data): upsert one JSON-able payload
        _fetch(table, record_id): payload or None
        _query(table, filters): payloads matching indexed-column equality filters,
            in insertion order
    """

    def _put(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    def _fetch(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def _query(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def transaction(self) -> AbstractContextManager:
        raise NotImplementedError

    # === Helpers ===

    def _save(self, table: str, record_id: str, record: Any) -> str:
        self._put(table, record_id, record.to_dict())
        return record_id

    def _get(self, table: str, record_id: str, model: Type[T]) -> Optional[T]:
        data = self._fetch(table, record_id)
        return model.from_dict(data) if data is not None else None

    def _list(self, table: str, model: Callable[[dict], T], **filters) -> List[T]:
        active = {k: v for k, v in filters.items() if v is not None}
        return [model(row) for row in self._query(table, active)]

    @staticmethod
    def _index_columns(table: str, data: Dict[str, Any]) -> Dict[str, Optional[str]]:
        return {column: index_value(data.get(column)) for column in TABLE_COLUMNS[table]}

    @staticmethod
    def _unique_columns(table: str):
        return UNIQUE_COLUMNS.get(table, ())

    # === Care requests ===

    def save_request(self, request: CareRequest) -> str:
        return self._save("care_requests", request.id, request)

    def get_request(self, request_id: str) -> Optional[CareRequest]:
        return self._get("care_requests", request_id, CareRequest)

    def list_requests(
        self, status: Optional[str] = None, creator_id: Optional[str] = None
    ) -> List[CareRequest]:
        requests = self._list(
            "care_requests", CareRequest.from_dict, status=status, creator_id=creator_id
        )
        return list(reversed(_by_created(requests)))

    # === Bids ===

    def save_bid(self, bid: Bid) -> str:
        return self._save("bids", bid.id, bid)

    def get_bid(self, bid_id: str) -> Optional[Bid]:
        return self._get("bids", bid_id, Bid)

    def list_bids(
        self,
        care_request_id: Optional[str] = None,
        bidder_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Bid]:
        return self._list(
            "bids",
            Bid.from_dict,
            care_request_id=care_request_id,
            bidder_id=bidder_id,
            status=status,
        )

    # === Jobs ===

    def save_job(self, job: Job) -> str:
        return self._save("jobs", job.id, job)

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._get("jobs", job_id, Job)

    def list_jobs(
        self,
        customer_id: Optional[str] = None,
        agency_id: Optional[str] = None,
        status: Optional[str] = None,
        care_request_id: Optional[str] = None,
    ) -> List[Job]:
        jobs = self._list(
            "jobs",
            Job.from_dict,
            customer_id=customer_id,
            agency_id=agency_id,
            status=status,
            care_request_id=care_request_id,
        )
        return list(reversed(_by_created(jobs)))

    def save_transition(self, transition: JobStateTransition) -> str:
        return self._save("job_state_transitions", transition.id, transition)

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        """Get all state transitions for a job, oldest first."""
        return self._list("job_state_transitions", JobStateTransition.from_dict, job_id=job_id)

    # === Contracts ===

    def save_contract(self, contract: Contract) -> str:
        return self._save("contracts", contract.id, contract)

    def get_contract(self, contract_id: str) -> Optional[Contract]:
        return self._get("contracts", contract_id, Contract)

    def get_contract_for_job(self, job_id: str) -> Optional[Contract]:
        rows = self._list("contracts", Contract.from_dict, job_id=job_id)
        return rows[0] if rows else None

    # === Timesheets ===

    def save_timesheet(self, timesheet: Timesheet) -> str:
        return self._save("timesheets", timesheet.id, timesheet)

    def get_timesheet(self, timesheet_id: str) -> Optional[Timesheet]:
        return self._get("timesheets", timesheet_id, Timesheet)

    def list_timesheets(
        self, job_id: Optional[str] = None, statuses: Optional[Iterable[str]] = None
    ) -> List[Timesheet]:
        timesheets = self._list("timesheets", Timesheet.from_dict, job_id=job_id)
        if statuses is not None:
            wanted = {index_value(s) for s in statuses}
            timesheets = [t for t in timesheets if t.status in wanted]
        return sorted(timesheets, key=lambda t: t.week_starting, reverse=True)

    # === Payments ===

    def save_payment(self, payment: Payment) -> str:
        return self._save("payments", payment.id, payment)

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        return self._get("payments", payment_id, Payment)

    def get_payment_for_timesheet(self, timesheet_id: str) -> Optional[Payment]:
        rows = self._list("payments", Payment.from_dict, timesheet_id=timesheet_id)
        return rows[0] if rows else None

    def list_payments(self, job_id: Optional[str] = None) -> List[Payment]:
        return self._list("payments", Payment.from_dict, job_id=job_id)

    # === Notifications ===

    def save_notification(self, notification: Notification) -> str:
        return self._save("notifications", notification.id, notification)

    def get_notification(self, notification_id: str) -> Optional[Notification]:
        return self._get("notifications", notification_id, Notification)

    def list_notifications(self, recipient_id: str, unread_only: bool = False) -> List[Notification]:
        notifications = self._list(
            "notifications",
            Notification.from_dict,
            recipient_id=recipient_id,
            is_read=False if unread_only else None,
        )
        return list(reversed(_by_created(notifications)))

    # === Profiles ===

    def save_agency_profile(self, profile: AgencyProfile) -> str:
        return self._save("agency_profiles", profile.id, profile)

    def get_agency_profile(self, profile_id: str) -> Optional[AgencyProfile]:
        return self._get("agency_profiles", profile_id, AgencyProfile)

    def get_agency_profile_for_user(self, user_id: str) -> Optional[AgencyProfile]:
        rows = self._list("agency_profiles", AgencyProfile.from_dict, user_id=user_id)
        return rows[0] if rows else None

    def list_agency_profiles(self, verified: Optional[bool] = None) -> List[AgencyProfile]:
        profiles = self._list("agency_profiles", AgencyProfile.from_dict)
        if verified is not None:
            profiles = [p for p in profiles if p.cqc_verified == verified]
        return profiles

    def save_customer_profile(self, profile: CustomerProfile) -> str:
        return self._save("customer_profiles", profile.user_id, profile)

    def get_customer_profile(self, user_id: str) -> Optional[CustomerProfile]:
        return self._get("customer_profiles", user_id, CustomerProfile)

    # === App settings ===

    def get_settings(self) -> Optional[AppSettings]:
        return self._get("app_settings", SETTINGS_ROW_ID, AppSettings)

    def save_settings(self, settings: AppSettings) -> None:
        self._put("app_settings", SETTINGS_ROW_ID, settings.to_dict())
