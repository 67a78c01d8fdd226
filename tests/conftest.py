"""
Pytest fixtures and test configuration for Care Fayre tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from carefayre.config import MarketplaceConfig
from carefayre.email import RecordingEmailGateway
from carefayre.identity import InMemoryIdentityDirectory, Role
from carefayre.marketplace import Marketplace
from carefayre.storage.memory import InMemoryMarketplaceStorage
from carefayre.storage.sqlite import SQLiteMarketplaceStorage

CUSTOMER = "customer-1"
AGENCY = "agency-1"
OTHER_AGENCY = "agency-2"
ADMIN = "admin-1"
SUPPORT = "support-1"
STRANGER = "stranger-1"


class FixedClock:
    """Controllable clock; call it to get the current time."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def identity():
    directory = InMemoryIdentityDirectory()
    directory.add_user(CUSTOMER, Role.CUSTOMER, email="customer@example.com")
    directory.add_user(AGENCY, Role.AGENCY, email="agency@example.com")
    directory.add_user(OTHER_AGENCY, Role.AGENCY, email="other@example.com")
    directory.add_user(ADMIN, Role.ADMIN, email="admin@example.com")
    directory.add_user(SUPPORT, Role.ADMIN, email="support@example.com")
    directory.add_user(STRANGER, Role.CUSTOMER)
    return directory


@pytest.fixture
def email(identity):
    return RecordingEmailGateway(identity)


@pytest.fixture
def config():
    return MarketplaceConfig(support_user_id=SUPPORT, app_base_url="https://app.example.com/")


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Each storage backend in turn."""
    if request.param == "memory":
        yield InMemoryMarketplaceStorage()
    else:
        backend = SQLiteMarketplaceStorage(tmp_path / "carefayre.db")
        yield backend
        backend.close()


@pytest.fixture
def market(identity, email, config, clock):
    """In-memory marketplace with a fixed clock."""
    return Marketplace.in_memory(identity, config=config, email=email, clock=clock)


@pytest.fixture
def agency_profile(market):
    return market.profiles.create_agency_profile(AGENCY, "Sunrise Home Care", cqc_location_id="1-123")


@pytest.fixture
def other_agency_profile(market):
    return market.profiles.create_agency_profile(OTHER_AGENCY, "Harbour Care")


@pytest.fixture
def open_request(market):
    market.profiles.save_customer_profile(CUSTOMER, "Jane Holder", address="1 High Street, Leeds")
    return market.bids.create_request(
        CUSTOMER,
        postcode="ls1 4ab",
        care_types=["Personal Care"],
        hours_per_week=10,
        frequency="Daily",
        recipient_name="Alice Recipient",
    )


@pytest.fixture
def pending_job(market, open_request, agency_profile):
    bid = market.bids.place_bid(open_request.id, AGENCY, agency_profile.id, 20)
    return market.bids.accept_bid(open_request.id, bid.id, CUSTOMER)


@pytest.fixture
def active_job(market, pending_job):
    market.contracts.sign_for_job(pending_job.id, CUSTOMER)
    market.contracts.sign_for_job(pending_job.id, AGENCY)
    market.jobs.mark_assessment_complete(pending_job.id, AGENCY)
    return market.jobs.confirm_care(pending_job.id, CUSTOMER)
