"""Tests for the email gateway, CQC registry and identity directory."""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest

from carefayre.email import RecordingEmailGateway, ResendEmailGateway, build_email_html
from carefayre.errors import DependencyUnavailableError, NotAuthorizedError
from carefayre.identity import (
    InMemoryIdentityDirectory,
    Role,
    SupabaseIdentityDirectory,
    is_admin,
    require_party,
    require_role,
)
from carefayre.registry import CQCRegistry, NullRegistry


@pytest.fixture
def directory():
    d = InMemoryIdentityDirectory()
    d.add_user("agency-1", Role.AGENCY, email="agency@example.com")
    d.add_user("customer-1", Role.CUSTOMER)
    d.add_user("admin-1", Role.ADMIN)
    return d


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestEmailHtml:
    def test_escapes_body_and_adds_button(self):
        html = build_email_html("Hello", "Line <one>\nLine two", "https://x.test/job/1", "View Job")

        assert "Line &lt;one&gt;<br>Line two" in html
        assert 'href="https://x.test/job/1"' in html
        assert "View Job</a>" in html

    def test_no_button_without_cta(self):
        assert "<a " not in build_email_html("Hello", "Body")


class TestResendEmailGateway:
    """Tests for the Resend-backed gateway."""

    def test_send_posts_to_resend(self, directory):
        captured = {}

        def handler(request):
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "msg_123"})

        gateway = ResendEmailGateway("re_test", directory, client=_client(handler))

        message_id = gateway.send_email(
            "agency-1", "Your Bid Was Accepted", "Well done", caller_id="customer-1"
        )

        assert message_id == "msg_123"
        assert captured["auth"] == "Bearer re_test"
        assert captured["body"]["to"] == ["agency@example.com"]
        assert captured["body"]["subject"] == "Your Bid Was Accepted"

    def test_requires_caller(self, directory):
        gateway = ResendEmailGateway("re_test", directory, client=_client(lambda r: httpx.Response(200)))

        with pytest.raises(NotAuthorizedError):
            gateway.send_email("agency-1", "Subject", "Body", caller_id=None)

    def test_missing_fields(self, directory):
        gateway = ResendEmailGateway("re_test", directory, client=_client(lambda r: httpx.Response(200)))

        with pytest.raises(ValueError, match="Missing required fields"):
            gateway.send_email("agency-1", "", "Body", caller_id="customer-1")

    def test_unknown_recipient(self, directory):
        gateway = ResendEmailGateway("re_test", directory, client=_client(lambda r: httpx.Response(200)))

        with pytest.raises(DependencyUnavailableError, match="Recipient"):
            gateway.send_email("customer-1", "Subject", "Body", caller_id="agency-1")

    def test_provider_error(self, directory):
        gateway = ResendEmailGateway(
            "re_test", directory, client=_client(lambda r: httpx.Response(500, json={"error": "down"}))
        )

        with pytest.raises(DependencyUnavailableError, match="provider"):
            gateway.send_email("agency-1", "Subject", "Body", caller_id="customer-1")

    def test_api_key_required(self, directory):
        with pytest.raises(ValueError):
            ResendEmailGateway("", directory)


class TestRecordingEmailGateway:
    def test_records_messages(self, directory):
        gateway = RecordingEmailGateway(directory)

        gateway.send_email("agency-1", "Subject", "Body", "https://x.test", "Open", caller_id="customer-1")

        assert gateway.sent[0]["cta_text"] == "Open"
        assert gateway.sent[0]["caller_id"] == "customer-1"


class TestCQCRegistry:
    """Tests for the CQC rating lookup."""

    def test_location_lookup(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(
                200,
                json={
                    "currentRatings": {"overall": {"rating": "Requires improvement"}},
                    "reports": [{"reportDate": "2023-11-02", "reportUri": "/reports/abc"}],
                },
            )

        registry = CQCRegistry(base_url="https://cqc.test/v1", client=_client(handler))

        rating = registry.lookup_rating(location_id="1-123")

        assert seen["url"].startswith("https://cqc.test/v1/locations/1-123")
        assert "partnerCode=CAREMATCH" in seen["url"]
        assert rating.overall_rating == "Requires improvement"
        assert rating.report_date == "2023-11-02"
        assert rating.report_uri == "https://cqc.test/v1/reports/abc"
        assert rating.needs_explanation

    def test_provider_fallback(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            return httpx.Response(200, json={"currentRatings": {"overall": {"rating": "Good"}}})

        rating = CQCRegistry(base_url="https://cqc.test/v1", client=_client(handler)).lookup_rating(
            provider_id="1-999"
        )

        assert seen["path"] == "/v1/providers/1-999"
        assert rating.display_rating == "Good"
        assert not rating.needs_explanation

    def test_no_ids(self):
        rating = CQCRegistry().lookup_rating()

        assert not rating.available
        assert rating.display_rating == "unavailable"

    def test_http_error_degrades(self):
        registry = CQCRegistry(client=_client(lambda r: httpx.Response(404)))

        rating = registry.lookup_rating(location_id="1-123")

        assert not rating.available
        assert "Network error" in rating.error

    def test_invalid_json_degrades(self):
        registry = CQCRegistry(client=_client(lambda r: httpx.Response(200, content=b"<html>")))

        assert registry.lookup_rating(location_id="1-123").error == "Invalid response"

    def test_null_registry(self):
        assert not NullRegistry().lookup_rating(location_id="1-123").available


class TestIdentity:
    """Tests for role lookups and authorization helpers."""

    def test_require_role(self, directory):
        assert require_role(directory, "agency-1", Role.AGENCY) == Role.AGENCY

        with pytest.raises(NotAuthorizedError, match="Only a customer"):
            require_role(directory, "agency-1", Role.CUSTOMER)
        with pytest.raises(NotAuthorizedError, match="Authentication required"):
            require_role(directory, None, Role.CUSTOMER)
        with pytest.raises(NotAuthorizedError):
            require_role(directory, "nobody", Role.CUSTOMER)

    def test_require_party(self):
        require_party("a", ["a", "b"])

        with pytest.raises(NotAuthorizedError, match="not a party"):
            require_party("c", ["a", "b"])

    def test_is_admin(self, directory):
        assert is_admin(directory, "admin-1")
        assert not is_admin(directory, "agency-1")
        assert not is_admin(directory, None)

    def test_supabase_role_lookup(self):
        client = MagicMock()
        query = client.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.return_value = SimpleNamespace(data=[{"role": "agency"}])

        directory = SupabaseIdentityDirectory(client)

        assert directory.get_role("u-1") == Role.AGENCY
        client.table.assert_called_with("user_roles")

    def test_supabase_unknown_role(self):
        client = MagicMock()
        query = client.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.return_value = SimpleNamespace(data=[{"role": "superuser"}])

        assert SupabaseIdentityDirectory(client).get_role("u-1") is None

    def test_supabase_outage_raises(self):
        client = MagicMock()
        client.table.side_effect = RuntimeError("connection refused")

        with pytest.raises(DependencyUnavailableError):
            SupabaseIdentityDirectory(client).get_role("u-1")

    def test_supabase_email(self):
        client = MagicMock()
        client.auth.admin.get_user_by_id.return_value = SimpleNamespace(
            user=SimpleNamespace(email="someone@example.com")
        )

        assert SupabaseIdentityDirectory(client).get_email("u-1") == "someone@example.com"

    def test_supabase_email_failure_is_none(self):
        client = MagicMock()
        client.auth.admin.get_user_by_id.side_effect = RuntimeError("boom")

        assert SupabaseIdentityDirectory(client).get_email("u-1") is None
