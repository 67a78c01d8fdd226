"""Tests for the operator CLI and the SQLite-backed marketplace."""

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from carefayre.cli import build_parser, main
from carefayre.identity import InMemoryIdentityDirectory, Role
from carefayre.marketplace import Marketplace

CUSTOMER = "customer-1"
AGENCY = "agency-1"


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "carefayre.db"


@pytest.fixture
def seeded(db_path):
    """A SQLite marketplace with one active job and a queried timesheet.

    The query was raised two days ago, so its deadline has passed.
    """
    identity = InMemoryIdentityDirectory()
    identity.add_user(CUSTOMER, Role.CUSTOMER)
    identity.add_user(AGENCY, Role.AGENCY)
    past = datetime.now(timezone.utc) - timedelta(days=2)
    market = Marketplace.sqlite(db_path, identity=identity, clock=lambda: past)

    market.profiles.save_customer_profile(CUSTOMER, "Jane Holder")
    profile = market.profiles.create_agency_profile(AGENCY, "Sunrise Home Care")
    request = market.bids.create_request(
        CUSTOMER, postcode="LS1", care_types=["Personal Care"], hours_per_week=10, frequency="Daily"
    )
    bid = market.bids.place_bid(request.id, AGENCY, profile.id, 20)
    job = market.bids.accept_bid(request.id, bid.id, CUSTOMER)
    market.contracts.sign_for_job(job.id, CUSTOMER)
    market.contracts.sign_for_job(job.id, AGENCY)
    market.jobs.mark_assessment_complete(job.id, AGENCY)
    market.jobs.confirm_care(job.id, CUSTOMER)
    timesheet = market.timesheets.submit(job.id, AGENCY, "2024-01-01", 20)
    market.timesheets.query(timesheet.id, CUSTOMER, "Too many", suggested_hours=18)
    market.storage.close()
    return {"request": request, "bid": bid, "job": job, "timesheet": timesheet}


class TestSQLiteMarketplace:
    """The full flow persists across connections."""

    def test_state_survives_reopen(self, db_path, seeded):
        market = Marketplace.sqlite(db_path)

        job = market.jobs.get_job(seeded["job"].id)
        timesheet = market.timesheets.get_timesheet(seeded["timesheet"].id)

        assert job.status == "active"
        assert job.locked_hourly_rate == Decimal("20")
        assert timesheet.status == "queried"
        assert timesheet.suggested_hours == Decimal("18")
        assert [t.to_status for t in market.jobs.get_transitions(job.id)][-1] == "active"


class TestParser:
    def test_commands(self):
        parser = build_parser()

        args = parser.parse_args(["expire-queries", "--auto-settle", "--json"])
        assert args.command == "expire-queries"
        assert args.auto_settle and args.json

        args = parser.parse_args(["lowest-rate", "req-1"])
        assert args.request_id == "req-1"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    """Tests for the CLI commands against a SQLite database."""

    def test_expire_queries_is_advisory_by_default(self, db_path, seeded, capsys):
        main(["--db", str(db_path), "expire-queries", "--json"])

        report = json.loads(capsys.readouterr().out)
        assert report["overdue"] == [seeded["timesheet"].id]
        assert report["changed"] == []

    def test_expire_queries_auto_settle(self, db_path, seeded, capsys):
        main(["--db", str(db_path), "expire-queries", "--auto-settle"])

        out = capsys.readouterr().out
        assert "Overdue: 1" in out
        assert "adopt_suggested" in out
        timesheet = Marketplace.sqlite(db_path).timesheets.get_timesheet(seeded["timesheet"].id)
        assert timesheet.status == "resubmitted"
        assert timesheet.effective_hours == Decimal("18")

    def test_expire_queries_nothing_to_do(self, db_path, capsys):
        main(["--db", str(db_path), "expire-queries"])

        assert "No overdue timesheet queries." in capsys.readouterr().out

    def test_reconcile_payments(self, db_path, seeded, capsys):
        market = Marketplace.sqlite(db_path)
        job = market.storage.get_job(seeded["job"].id)
        job.total_paid_to_date = Decimal("50")
        market.storage.save_job(job)

        main(["--db", str(db_path), "reconcile-payments", "--json"])

        totals = json.loads(capsys.readouterr().out)
        assert totals[seeded["job"].id] == {"before": "50", "after": "0"}

    def test_lowest_rate(self, db_path, seeded, capsys):
        main(["--db", str(db_path), "lowest-rate", seeded["request"].id, "--json"])

        result = json.loads(capsys.readouterr().out)
        assert result["stored"] == "20"
        assert result["live"] is None

    def test_unknown_request_exits(self, db_path, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--db", str(db_path), "lowest-rate", "missing"])

        assert exc.value.code == 1
