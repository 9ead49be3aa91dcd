"""Tests for the cron endpoints."""

from datetime import timedelta

import pytest

from reviewflow.config import settings
from reviewflow.models import ReviewRequest
from reviewflow.services.automation.enrollment_manager import EnrollmentManager
from reviewflow.services.automation.tenancy import TenantContext
from reviewflow.utils.time import utcnow

CRON_SECRET = "cron-secret-for-tests-0123456789"


@pytest.fixture
def cron_secret(monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", CRON_SECRET)
    return CRON_SECRET


class TestCronAuth:
    @pytest.mark.asyncio
    async def test_missing_secret(self, client, cron_secret):
        response = await client.post("/_cron/automation-executor")
        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_001"

    @pytest.mark.asyncio
    async def test_wrong_secret(self, client, cron_secret):
        response = await client.post(
            "/_cron/automation-executor", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unset_secret_fails_closed_in_production(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", None)
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")

        response = await client.post("/_cron/automation-executor")
        assert response.status_code == 401


class TestAutomationExecutorEndpoint:
    @pytest.mark.asyncio
    async def test_nothing_due(self, client, cron_secret):
        response = await client.post(
            "/_cron/automation-executor", headers={"Authorization": f"Bearer {cron_secret}"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["processed"] == 0

    @pytest.mark.asyncio
    async def test_runs_due_enrollment(self, client, test_db, business, customer, two_step_sequence, gateway, cron_secret):
        business.quiet_hours_enabled = False
        await EnrollmentManager(test_db, TenantContext(business.id)).enroll(
            two_step_sequence.id, customer.id, "webhook", now=utcnow() - timedelta(minutes=1)
        )
        await test_db.commit()

        response = await client.post(
            "/_cron/automation-executor", headers={"Authorization": f"Bearer {cron_secret}"}
        )

        assert response.status_code == 200
        assert response.json()["sent"] == 1
        assert gateway.sent[0]["channel"] == "email"


class TestMissedReviewRecoveryEndpoint:
    @pytest.mark.asyncio
    async def test_queues_reminder(self, client, test_db, business, customer, cron_secret):
        test_db.add(
            ReviewRequest(
                business_id=business.id,
                customer_id=customer.id,
                channel="email",
                status="sent",
                review_link="https://reviewflow.app/feedback-form/1",
                clicked_at=utcnow() - timedelta(hours=30),
            )
        )
        await test_db.commit()

        response = await client.post(
            "/_cron/missed-review-recovery", headers={"Authorization": f"Bearer {cron_secret}"}
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "reminders_queued": 1}
