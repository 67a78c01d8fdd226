"""Tests for job, rate agreement, timesheet and admin routes."""

from decimal import Decimal

import pytest

CUSTOMER_ID = "usr_TEST_CUSTOMER_0001"
AGENCY_ID = "usr_TEST_AGENCY_0001"
ADMIN_ID = "usr_TEST_ADMIN_0001"


@pytest.fixture
def pending_job(market, open_request, agency_profile):
    bid = market.bids.place_bid(open_request.id, AGENCY_ID, agency_profile.id, 20)
    return market.bids.accept_bid(open_request.id, bid.id, CUSTOMER_ID)


@pytest.fixture
def active_job(market, pending_job):
    market.contracts.sign_for_job(pending_job.id, CUSTOMER_ID)
    market.contracts.sign_for_job(pending_job.id, AGENCY_ID)
    market.jobs.mark_assessment_complete(pending_job.id, AGENCY_ID)
    return market.jobs.confirm_care(pending_job.id, CUSTOMER_ID)


class TestContractRoutes:
    """Signing the rate agreement over HTTP."""

    def test_both_signatures_start_assessment(self, client, customer_headers, agency_headers, pending_job):
        first = client.post(f"/api/v1/jobs/{pending_job.id}/contract/sign", headers=customer_headers)
        assert first.status_code == 200
        assert first.json()["signature_state"] == "customer_signed"
        job = client.get(f"/api/v1/jobs/{pending_job.id}", headers=customer_headers).json()
        assert job["status"] == "pending"

        second = client.post(f"/api/v1/jobs/{pending_job.id}/contract/sign", headers=agency_headers)
        assert second.json()["signature_state"] == "fully_signed"
        job = client.get(f"/api/v1/jobs/{pending_job.id}", headers=customer_headers).json()
        assert job["status"] == "assessment_pending"

    def test_signing_twice_is_409(self, client, customer_headers, pending_job):
        client.post(f"/api/v1/jobs/{pending_job.id}/contract/sign", headers=customer_headers)
        response = client.post(f"/api/v1/jobs/{pending_job.id}/contract/sign", headers=customer_headers)
        assert response.status_code == 409

    def test_non_party_cannot_sign(self, client, other_agency_headers, pending_job):
        response = client.post(f"/api/v1/jobs/{pending_job.id}/contract/sign", headers=other_agency_headers)
        assert response.status_code == 403


class TestJobRoutes:
    """Assessment and confirmation over HTTP."""

    def test_assessment_tbc_then_confirm(self, client, market, customer_headers, agency_headers, pending_job):
        market.contracts.sign_for_job(pending_job.id, CUSTOMER_ID)
        market.contracts.sign_for_job(pending_job.id, AGENCY_ID)

        response = client.post(
            f"/api/v1/jobs/{pending_job.id}/assessment-complete", json={}, headers=agency_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "assessment_complete"
        assert response.json()["start_date"] is None

        notes = client.get("/api/v1/notifications", headers=customer_headers).json()
        assert any("to be confirmed" in n["message"] for n in notes["notifications"])

        confirmed = client.post(f"/api/v1/jobs/{pending_job.id}/confirm", headers=customer_headers)
        assert confirmed.json()["status"] == "active"

        transitions = client.get(f"/api/v1/jobs/{pending_job.id}/transitions", headers=agency_headers).json()
        assert [t["to_status"] for t in transitions] == [
            "pending",
            "assessment_pending",
            "assessment_complete",
            "active",
        ]

    def test_confirm_from_pending_is_409(self, client, customer_headers, pending_job):
        response = client.post(f"/api/v1/jobs/{pending_job.id}/confirm", headers=customer_headers)
        assert response.status_code == 409

    def test_outsider_cannot_view_job(self, client, other_agency_headers, pending_job):
        response = client.get(f"/api/v1/jobs/{pending_job.id}", headers=other_agency_headers)
        assert response.status_code == 403

    def test_list_my_jobs(self, client, agency_headers, pending_job):
        data = client.get("/api/v1/jobs", headers=agency_headers).json()
        assert data["total"] == 1
        assert data["jobs"][0]["id"] == pending_job.id


class TestTimesheetRoutes:
    """Submission, query, response and approval over HTTP."""

    def _submit(self, client, headers, job_id, hours=20):
        return client.post(
            "/api/v1/timesheets",
            json={"job_id": job_id, "week_starting": "2024-01-01", "hours_worked": hours},
            headers=headers,
        )

    def test_query_respond_approve(self, client, customer_headers, agency_headers, active_job):
        timesheet = self._submit(client, agency_headers, active_job.id).json()
        assert timesheet["status"] == "submitted"

        queried = client.post(
            f"/api/v1/timesheets/{timesheet['id']}/query",
            json={"note": "Carer left early on Tuesday", "suggested_hours": 18},
            headers=customer_headers,
        ).json()
        assert queried["status"] == "queried"
        assert queried["query_count"] == 1
        assert queried["response_deadline"] is not None

        responded = client.post(
            f"/api/v1/timesheets/{timesheet['id']}/respond",
            json={"response_note": "Agreed", "mode": "adjust", "adjusted_hours": 18},
            headers=agency_headers,
        ).json()
        assert responded["status"] == "resubmitted"
        assert Decimal(responded["effective_hours"]) == Decimal("18")

        payment = client.post(
            f"/api/v1/timesheets/{timesheet['id']}/approve", headers=customer_headers
        ).json()
        assert Decimal(payment["amount"]) == Decimal("360")
        assert payment["status"] == "pending"

        job = client.get(f"/api/v1/jobs/{active_job.id}", headers=agency_headers).json()
        assert Decimal(job["total_paid_to_date"]) == Decimal("360")

    def test_duplicate_week_is_409(self, client, agency_headers, active_job):
        assert self._submit(client, agency_headers, active_job.id).status_code == 201
        assert self._submit(client, agency_headers, active_job.id).status_code == 409

    def test_adjust_without_hours_is_422(self, client, customer_headers, agency_headers, active_job):
        timesheet = self._submit(client, agency_headers, active_job.id).json()
        client.post(
            f"/api/v1/timesheets/{timesheet['id']}/query", json={"note": "Too many"}, headers=customer_headers
        )
        response = client.post(
            f"/api/v1/timesheets/{timesheet['id']}/respond",
            json={"response_note": "Fixed", "mode": "adjust"},
            headers=agency_headers,
        )
        assert response.status_code == 422

    def test_customer_cannot_submit(self, client, customer_headers, active_job):
        assert self._submit(client, customer_headers, active_job.id).status_code == 403


class TestAdminRoutes:
    """Admin-only endpoints."""

    def test_non_admin_is_403(self, client, customer_headers):
        assert client.get("/api/v1/admin/settings", headers=customer_headers).status_code == 403

    def test_update_settings(self, client, admin_headers):
        response = client.patch(
            "/api/v1/admin/settings", json={"bid_window_hours": 48}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["bid_window_hours"] == 48
        assert client.get("/api/v1/admin/settings", headers=admin_headers).json()["bid_window_hours"] == 48

    def test_mark_payment_failed_reconciles_total(
        self, client, market, admin_headers, agency_headers, active_job
    ):
        timesheet = market.timesheets.submit(active_job.id, AGENCY_ID, "2024-01-01", 10)
        payment = market.timesheets.approve(timesheet.id, CUSTOMER_ID)

        response = client.post(f"/api/v1/admin/payments/{payment.id}/failed", headers=admin_headers)
        assert response.json()["status"] == "failed"

        job = client.get(f"/api/v1/jobs/{active_job.id}", headers=agency_headers).json()
        assert Decimal(job["total_paid_to_date"]) == Decimal("0")

    def test_expire_sweep_is_advisory_by_default(self, client, admin_headers):
        response = client.post("/api/v1/admin/timesheets/expire", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["changed"] == []
