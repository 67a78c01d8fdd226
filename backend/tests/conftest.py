"""Pytest configuration and fixtures."""

import os
import secrets
import sys

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

# For unit tests, set mock values ONLY if not running integration tests
if not os.environ.get("RUN_INTEGRATION"):
    os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
    os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
    os.environ.pop("SUPABASE_URL", None)
    os.environ.pop("RESEND_API_KEY", None)
else:
    # For integration tests, load from .env
    from pathlib import Path

    from dotenv import load_dotenv

    env_path = Path(__file__).parent.parent / ".env"

    # Safety check: require explicit confirmation for integration tests
    if not os.environ.get("CONFIRM_INTEGRATION_CREDENTIALS"):
        print(
            "\nIntegration tests use REAL credentials from .env (Supabase, Resend).\n"
            "Set CONFIRM_INTEGRATION_CREDENTIALS=yes to proceed.\n",
            file=sys.stderr,
        )
        pytest.exit(
            "Integration tests require CONFIRM_INTEGRATION_CREDENTIALS=yes",
            returncode=1,
        )
    load_dotenv(env_path, override=True)

from app.auth import create_access_token  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.database import get_marketplace  # noqa: E402
from app.main import app  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from carefayre.email import RecordingEmailGateway  # noqa: E402
from carefayre.identity import InMemoryIdentityDirectory, Role  # noqa: E402
from carefayre.marketplace import Marketplace  # noqa: E402

# Use clearly invalid test IDs that cannot collide with production IDs
CUSTOMER_ID = "usr_TEST_CUSTOMER_0001"
AGENCY_ID = "usr_TEST_AGENCY_0001"
OTHER_AGENCY_ID = "usr_TEST_AGENCY_0002"
ADMIN_ID = "usr_TEST_ADMIN_0001"


@pytest.fixture
def identity():
    directory = InMemoryIdentityDirectory()
    directory.add_user(CUSTOMER_ID, Role.CUSTOMER, email="customer@example.com")
    directory.add_user(AGENCY_ID, Role.AGENCY, email="agency@example.com")
    directory.add_user(OTHER_AGENCY_ID, Role.AGENCY, email="other@example.com")
    directory.add_user(ADMIN_ID, Role.ADMIN, email="admin@example.com")
    return directory


@pytest.fixture
def market(identity):
    """In-memory marketplace shared by every request in a test."""
    return Marketplace.in_memory(identity, email=RecordingEmailGateway(identity))


@pytest.fixture
def client(market):
    """Create a test client backed by the in-memory marketplace."""
    app.dependency_overrides[get_marketplace] = lambda: market
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_marketplace, None)


def _headers(user_id: str) -> dict:
    token = create_access_token(user_id, get_settings())
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_headers():
    return _headers(CUSTOMER_ID)


@pytest.fixture
def agency_headers():
    return _headers(AGENCY_ID)


@pytest.fixture
def other_agency_headers():
    return _headers(OTHER_AGENCY_ID)


@pytest.fixture
def admin_headers():
    return _headers(ADMIN_ID)


@pytest.fixture
def agency_profile(market):
    return market.profiles.create_agency_profile(AGENCY_ID, "Sunrise Home Care", cqc_location_id="1-123")


@pytest.fixture
def other_agency_profile(market):
    return market.profiles.create_agency_profile(OTHER_AGENCY_ID, "Harbour Care")


@pytest.fixture
def open_request(market):
    market.profiles.save_customer_profile(CUSTOMER_ID, "Jane Holder", address="1 High Street, Leeds")
    return market.bids.create_request(
        CUSTOMER_ID,
        postcode="LS1 4AB",
        care_types=["Personal Care"],
        hours_per_week=10,
        frequency="Daily",
        recipient_name="Alice Recipient",
    )
