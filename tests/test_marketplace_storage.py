"""Tests for the storage backends (in-memory and SQLite)."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from carefayre.bids.models import Bid, CareRequest
from carefayre.contracts.models import Contract
from carefayre.jobs.models import Job
from carefayre.notifications import Notification
from carefayre.settings import AppSettings
from carefayre.storage.base import DuplicateRecordError
from carefayre.storage.schema import validate_table_name
from carefayre.timesheets.models import Payment, Timesheet

NOW = datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc)


def _request(request_id="req-1", creator_id="customer-1", status="open"):
    return CareRequest(
        id=request_id,
        creator_id=creator_id,
        postcode="LS1 4AB",
        care_types=["Personal Care"],
        hours_per_week=10,
        frequency="Daily",
        status=status,
        created_at=NOW,
    )


def _job(job_id="job-1"):
    return Job(
        id=job_id,
        care_request_id="req-1",
        winning_bid_id="bid-1",
        customer_id="customer-1",
        agency_id="agency-1",
        agency_profile_id="profile-1",
        locked_hourly_rate="21.75",
        agreed_hours_per_week=10,
        created_at=NOW,
    )


class TestRecords:
    """Saving and loading typed records."""

    def test_request_round_trip(self, storage):
        storage.save_request(_request())

        loaded = storage.get_request("req-1")

        assert loaded.postcode == "LS1 4AB"
        assert loaded.hours_per_week == Decimal("10")
        assert storage.get_request("missing") is None

    def test_list_requests_filters(self, storage):
        storage.save_request(_request("req-1"))
        storage.save_request(_request("req-2", creator_id="customer-2"))
        storage.save_request(_request("req-3", status="cancelled"))

        assert {r.id for r in storage.list_requests(status="open")} == {"req-1", "req-2"}
        assert [r.id for r in storage.list_requests(creator_id="customer-2")] == ["req-2"]

    def test_list_bids_by_status(self, storage):
        for bid_id, status in (("b1", "active"), ("b2", "withdrawn"), ("b3", "active")):
            storage.save_bid(
                Bid(
                    id=bid_id,
                    care_request_id="req-1",
                    bidder_id="agency-1",
                    agency_profile_id="p-1",
                    hourly_rate=20,
                    status=status,
                    created_at=NOW,
                )
            )

        active = storage.list_bids(care_request_id="req-1", status="active")

        assert sorted(b.id for b in active) == ["b1", "b3"]

    def test_job_decimals_survive(self, storage):
        storage.save_job(_job())

        loaded = storage.get_job("job-1")

        assert loaded.locked_hourly_rate == Decimal("21.75")
        assert loaded.total_paid_to_date == Decimal("0")

    def test_contract_lookup_by_job(self, storage):
        storage.save_contract(
            Contract(id="c-1", job_id="job-1", customer_id="customer-1", agency_id="agency-1", agreement_text="RATE")
        )

        assert storage.get_contract_for_job("job-1").id == "c-1"
        assert storage.get_contract_for_job("job-2") is None

    def test_unread_notifications(self, storage):
        storage.save_notification(
            Notification(id="n-1", recipient_id="u-1", type="bid_received", message="one", created_at=NOW)
        )
        storage.save_notification(
            Notification(
                id="n-2", recipient_id="u-1", type="bid_received", message="two", is_read=True, created_at=NOW
            )
        )

        assert [n.id for n in storage.list_notifications("u-1", unread_only=True)] == ["n-1"]
        assert len(storage.list_notifications("u-1")) == 2

    def test_settings_row(self, storage):
        assert storage.get_settings() is None

        storage.save_settings(AppSettings(bid_window_hours=48))

        assert storage.get_settings().bid_window_hours == 48


class TestUniqueness:
    """Unique columns are enforced by every backend."""

    def test_one_contract_per_job(self, storage):
        storage.save_contract(
            Contract(id="c-1", job_id="job-1", customer_id="customer-1", agency_id="agency-1", agreement_text="A")
        )

        with pytest.raises(DuplicateRecordError):
            storage.save_contract(
                Contract(
                    id="c-2", job_id="job-1", customer_id="customer-1", agency_id="agency-1", agreement_text="B"
                )
            )

    def test_one_payment_per_timesheet(self, storage):
        storage.save_payment(Payment(id="p-1", job_id="job-1", timesheet_id="ts-1", amount=100))

        with pytest.raises(DuplicateRecordError):
            storage.save_payment(Payment(id="p-2", job_id="job-1", timesheet_id="ts-1", amount=100))

    def test_resaving_same_record_is_fine(self, storage):
        payment = Payment(id="p-1", job_id="job-1", timesheet_id="ts-1", amount=100)
        storage.save_payment(payment)
        payment.status = "paid"

        storage.save_payment(payment)

        assert storage.get_payment_for_timesheet("ts-1").status == "paid"


class TestTransactions:
    """Transactions commit together or not at all."""

    def test_rollback_on_error(self, storage):
        storage.save_job(_job())

        with pytest.raises(RuntimeError):
            with storage.transaction():
                job = storage.get_job("job-1")
                job.status = "assessment_pending"
                storage.save_job(job)
                storage.save_request(_request())
                raise RuntimeError("boom")

        assert storage.get_job("job-1").status == "pending"
        assert storage.get_request("req-1") is None

    def test_nested_transaction_rolls_back_with_outer(self, storage):
        with pytest.raises(ValueError):
            with storage.transaction():
                with storage.transaction():
                    storage.save_request(_request())
                raise ValueError("outer failed")

        assert storage.get_request("req-1") is None

    def test_commit(self, storage):
        with storage.transaction():
            storage.save_job(_job())
            storage.save_timesheet(
                Timesheet(
                    id="ts-1",
                    job_id="job-1",
                    submitted_by="agency-1",
                    week_starting=date(2024, 1, 1),
                    hours_worked=20,
                    created_at=NOW,
                )
            )

        assert storage.get_timesheet("ts-1").week_starting == date(2024, 1, 1)
        assert [t.id for t in storage.list_timesheets(job_id="job-1")] == ["ts-1"]


def test_unknown_table_rejected():
    with pytest.raises(ValueError):
        validate_table_name("users; DROP TABLE jobs")
