"""Tests for notifications, the outbox dispatcher, profiles and settings."""

from decimal import Decimal

import pytest

from carefayre.errors import DependencyUnavailableError, InvalidInputError, NotAuthorizedError, NotFoundError
from carefayre.notifications import Dispatcher, NotificationType, Outbox
from carefayre.registry import CQCRating

CUSTOMER = "customer-1"
AGENCY = "agency-1"
OTHER_AGENCY = "agency-2"
ADMIN = "admin-1"


class FailingEmailGateway:
    def send_email(self, user_id, subject, body_text, cta_url=None, cta_text=None, *, caller_id):
        raise DependencyUnavailableError("Email provider unavailable")


class StubRegistry:
    def __init__(self, rating):
        self.rating = rating
        self.calls = []

    def lookup_rating(self, location_id=None, provider_id=None):
        self.calls.append((location_id, provider_id))
        return self.rating


class TestNotificationService:
    """Tests for in-app notifications."""

    def test_newest_first_and_read_marking(self, market, clock):
        first = market.notifications.notify(CUSTOMER, NotificationType.BID_RECEIVED, "first")
        clock.advance(minutes=5)
        second = market.notifications.notify(CUSTOMER, NotificationType.BID_RECEIVED, "second")

        assert [n.id for n in market.notifications.list_for(CUSTOMER)] == [second.id, first.id]

        market.notifications.mark_read(first.id, CUSTOMER)

        assert [n.id for n in market.notifications.list_for(CUSTOMER, unread_only=True)] == [second.id]

    def test_cannot_mark_someone_elses(self, market):
        note = market.notifications.notify(CUSTOMER, NotificationType.BID_RECEIVED, "hello")

        with pytest.raises(NotAuthorizedError):
            market.notifications.mark_read(note.id, AGENCY)
        with pytest.raises(NotFoundError):
            market.notifications.mark_read("missing", CUSTOMER)

    def test_mark_all_read(self, market):
        for text in ("a", "b", "c"):
            market.notifications.notify(AGENCY, NotificationType.JOB_PAUSED, text)

        assert market.notifications.mark_all_read(AGENCY) == 3
        assert market.notifications.list_for(AGENCY, unread_only=True) == []
        assert market.notifications.mark_all_read(AGENCY) == 0

    def test_relates_to_job_or_request_not_both(self, market):
        with pytest.raises(ValueError):
            market.notifications.notify(
                CUSTOMER, NotificationType.BID_RECEIVED, "x", related_job_id="j", related_request_id="r"
            )


class TestDispatcher:
    """Tests for post-commit delivery."""

    def test_delivers_notifications_and_email(self, market, email):
        outbox = Outbox()
        outbox.notify(AGENCY, NotificationType.CARE_CONFIRMED, "Go ahead", related_job_id="job-1")
        outbox.email(AGENCY, "Subject", "Body")

        delivered = market.dispatcher.dispatch(outbox, caller_id=CUSTOMER)

        assert delivered == 2
        assert len(outbox) == 2
        assert market.notifications.list_for(AGENCY)[0].related_job_id == "job-1"
        assert email.sent[0]["subject"] == "Subject"

    def test_email_failure_is_swallowed(self, market):
        dispatcher = Dispatcher(market.notifications, email=FailingEmailGateway())
        outbox = Outbox()
        outbox.notify(AGENCY, NotificationType.JOB_PAUSED, "Paused")
        outbox.email(AGENCY, "Subject", "Body")

        assert dispatcher.dispatch(outbox, caller_id=CUSTOMER) == 1

    def test_without_gateway_emails_are_dropped(self, market):
        dispatcher = Dispatcher(market.notifications)
        outbox = Outbox()
        outbox.email(AGENCY, "Subject", "Body")

        assert dispatcher.dispatch(outbox, caller_id=CUSTOMER) == 0

    def test_email_failure_does_not_undo_transition(self, market, pending_job):
        """Test a broken email gateway never rolls back the acceptance that queued it."""
        market.dispatcher.email = FailingEmailGateway()

        market.contracts.sign_for_job(pending_job.id, CUSTOMER)
        market.contracts.sign_for_job(pending_job.id, AGENCY)
        job = market.jobs.cancel_pre_care(pending_job.id, CUSTOMER)

        assert job.status == "cancelled_pre_care"
        assert market.jobs.get_job(pending_job.id).status == "cancelled_pre_care"


class TestProfiles:
    """Tests for agency and customer profiles."""

    def test_radius_clamped_to_settings(self, market):
        market.settings.update(ADMIN, max_radius_miles=15)

        profile = market.profiles.create_agency_profile(AGENCY, "Sunrise", service_radius_miles=40)

        assert profile.service_radius_miles == 15

        updated = market.profiles.update_agency_profile(profile.id, AGENCY, service_radius_miles=50)
        assert updated.service_radius_miles == 15

    def test_one_profile_per_agency(self, market, agency_profile):
        with pytest.raises(InvalidInputError, match="already"):
            market.profiles.create_agency_profile(AGENCY, "Second")

    def test_cannot_edit_other_agency(self, market, agency_profile):
        with pytest.raises(NotAuthorizedError):
            market.profiles.update_agency_profile(agency_profile.id, OTHER_AGENCY, bio="mine now")

    def test_uneditable_field(self, market, agency_profile):
        with pytest.raises(InvalidInputError):
            market.profiles.update_agency_profile(agency_profile.id, AGENCY, cqc_verified=True)

    def test_admin_verifies(self, market, agency_profile):
        assert [p.id for p in market.profiles.list_unverified_agencies(ADMIN)] == [agency_profile.id]

        verified = market.profiles.verify_agency(agency_profile.id, ADMIN)

        assert verified.cqc_verified
        assert market.profiles.list_unverified_agencies(ADMIN) == []
        with pytest.raises(NotAuthorizedError):
            market.profiles.verify_agency(agency_profile.id, AGENCY)

    def test_refresh_rating_caches_result(self, market, agency_profile, clock):
        registry = StubRegistry(CQCRating(overall_rating="Good", report_date="2023-01-01"))
        market.profiles.registry = registry

        rating = market.profiles.refresh_cqc_rating(agency_profile.id)

        assert rating.display_rating == "Good"
        assert registry.calls == [("1-123", None)]
        stored = market.profiles.get_agency_profile(agency_profile.id)
        assert stored.cqc_rating == "Good"
        assert stored.cqc_last_checked == clock()

    def test_unavailable_rating_keeps_cache(self, market, agency_profile):
        market.profiles.registry = StubRegistry(CQCRating(overall_rating="Good"))
        market.profiles.refresh_cqc_rating(agency_profile.id)
        market.profiles.registry = StubRegistry(CQCRating.unavailable("down"))

        rating = market.profiles.refresh_cqc_rating(agency_profile.id)

        assert not rating.available
        assert market.profiles.get_agency_profile(agency_profile.id).cqc_rating == "Good"

    def test_customer_profile(self, market):
        market.profiles.save_customer_profile(CUSTOMER, "Jane Holder", postcode="LS1 4AB")

        assert market.profiles.get_customer_profile(CUSTOMER).full_name == "Jane Holder"
        with pytest.raises(InvalidInputError):
            market.profiles.save_customer_profile(CUSTOMER, "  ")
        with pytest.raises(NotAuthorizedError):
            market.profiles.save_customer_profile(AGENCY, "Not a customer")


class TestSettings:
    """Tests for admin settings."""

    def test_defaults(self, market):
        settings = market.settings.get()

        assert settings.bid_window_hours == 72
        assert settings.platform_fee_pct == Decimal("10")
        assert settings.min_bid_decrement == Decimal("0.50")

    def test_update_persists(self, market, clock):
        updated = market.settings.update(ADMIN, platform_fee_pct="12.5", notification_email="ops@example.com")

        assert updated.platform_fee_pct == Decimal("12.5")
        assert updated.updated_at == clock()
        assert market.settings.get().notification_email == "ops@example.com"

    def test_non_admin_rejected(self, market):
        with pytest.raises(NotAuthorizedError):
            market.settings.update(CUSTOMER, bid_window_hours=1)

    @pytest.mark.parametrize(
        "changes",
        [{"bid_window_hours": 0}, {"platform_fee_pct": 150}, {"min_bid_decrement": -1}, {"colour": "red"}],
    )
    def test_invalid_values(self, market, changes):
        with pytest.raises(InvalidInputError):
            market.settings.update(ADMIN, **changes)

    def test_platform_fee_not_deducted(self, market, active_job):
        """Test payments carry the full amount whatever the platform fee."""
        market.settings.update(ADMIN, platform_fee_pct=20)
        timesheet = market.timesheets.submit(active_job.id, AGENCY, "2024-01-01", 10)

        payment = market.timesheets.approve(timesheet.id, CUSTOMER)

        assert payment.amount == Decimal("200")
