"""Tests for review request scheduling and the missed-review sweep."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from reviewflow.models import AutomationTemplate, Customer, ReviewRequest, ScheduledJob
from reviewflow.services.automation.errors import (
    CustomerNotFoundError,
    MissingContactInfoError,
    TemplateNotFoundError,
)
from reviewflow.services.automation.job_executor import AutomationExecutor
from reviewflow.services.automation.review_requests import (
    enqueue_missed_review_reminders,
    schedule_review_request,
)
from reviewflow.services.automation.tenancy import TenantContext
from tests.factories import AutomationTemplateFactory, CustomerFactory


class TestScheduleReviewRequest:
    @pytest.mark.asyncio
    async def test_explicit_message(self, test_db, business, customer, now):
        scheduled = await schedule_review_request(
            test_db,
            TenantContext(business.id),
            customer.id,
            "sms",
            message="Thanks {{customer.first_name}}! {{review_link}}",
            delay_hours=2,
            now=now,
        )
        await test_db.commit()

        review_request = scheduled.review_request
        assert review_request.status == "scheduled"
        assert review_request.send_at == now + timedelta(hours=2)
        assert review_request.review_link.endswith(f"&request={review_request.id}")
        assert review_request.message.startswith(f"Thanks {customer.first_name}! ")
        assert review_request.message.endswith("Reply STOP to opt out.")

        job = scheduled.job
        assert job.job_type == "send_review_request"
        assert job.status == "queued"
        assert job.run_at == review_request.send_at
        assert job.payload == {"review_request_id": review_request.id}

    @pytest.mark.asyncio
    async def test_template_delay_applies(self, test_db, business, customer, now):
        config = AutomationTemplateFactory()["config_json"]
        template = AutomationTemplate(
            business_id=business.id,
            **AutomationTemplateFactory(config_json={**config, "delay_hours": 24}),
        )
        test_db.add(template)
        await test_db.commit()

        scheduled = await schedule_review_request(
            test_db, TenantContext(business.id), customer.id, "email", now=now
        )

        assert scheduled.review_request.template_id == template.id
        assert scheduled.job.run_at == now + timedelta(hours=24)
        assert scheduled.review_request.subject == f"How was your visit, {customer.first_name}?"
        assert template.last_used_at == now

    @pytest.mark.asyncio
    async def test_no_template(self, test_db, business, customer):
        with pytest.raises(TemplateNotFoundError):
            await schedule_review_request(test_db, TenantContext(business.id), customer.id, "email")

    @pytest.mark.asyncio
    async def test_missing_contact(self, test_db, business):
        customer = Customer(business_id=business.id, **CustomerFactory(email=None))
        test_db.add(customer)
        await test_db.commit()

        with pytest.raises(MissingContactInfoError):
            await schedule_review_request(
                test_db, TenantContext(business.id), customer.id, "email", message="hi"
            )

    @pytest.mark.asyncio
    async def test_unknown_customer(self, test_db, business):
        with pytest.raises(CustomerNotFoundError):
            await schedule_review_request(test_db, TenantContext(business.id), 9999, "email", message="hi")


class TestMissedReviewReminders:
    async def _request(self, db, business, customer, now, **fields):
        review_request = ReviewRequest(
            business_id=business.id,
            customer_id=customer.id,
            channel="email",
            status="sent",
            review_link="https://reviewflow.app/feedback-form/1",
            sent_at=now - timedelta(days=2),
            **fields,
        )
        db.add(review_request)
        await db.commit()
        return review_request

    @pytest.mark.asyncio
    async def test_queues_once(self, test_db, business, customer, now):
        review_request = await self._request(
            test_db, business, customer, now, clicked_at=now - timedelta(hours=30)
        )

        assert await enqueue_missed_review_reminders(test_db, now=now) == 1
        await test_db.commit()
        assert await enqueue_missed_review_reminders(test_db, now=now) == 0

        jobs = (await test_db.execute(select(ScheduledJob))).scalars().all()
        assert len(jobs) == 1
        assert jobs[0].job_type == "review_reminder"
        assert jobs[0].payload == {"review_request_id": review_request.id}

    @pytest.mark.asyncio
    async def test_window_and_state_filters(self, test_db, business, customer, now):
        await self._request(test_db, business, customer, now, clicked_at=now - timedelta(hours=12))
        await self._request(test_db, business, customer, now, clicked_at=now - timedelta(hours=48))
        await self._request(
            test_db, business, customer, now,
            clicked_at=now - timedelta(hours=30), completed_at=now - timedelta(hours=29),
        )
        await self._request(
            test_db, business, customer, now,
            clicked_at=now - timedelta(hours=30), reminder_sent_at=now - timedelta(hours=1),
        )
        await self._request(test_db, business, customer, now)

        assert await enqueue_missed_review_reminders(test_db, now=now) == 0

    @pytest.mark.asyncio
    async def test_failed_reminder_is_not_requeued(self, test_db, business, customer, gateway, now):
        review_request = await self._request(
            test_db, business, customer, now, clicked_at=now - timedelta(hours=25)
        )
        customer.unsubscribed = True
        await test_db.commit()
        executor = AutomationExecutor(test_db, gateway=gateway)

        for hour in range(5):
            tick = now + timedelta(hours=hour)
            await enqueue_missed_review_reminders(test_db, now=tick)
            await test_db.commit()
            await executor.run_once(now=tick)

        jobs = (await test_db.execute(select(ScheduledJob))).scalars().all()
        assert len(jobs) == 1
        assert jobs[0].status == "failed"
        assert jobs[0].error_message == "unsubscribed"
        assert gateway.sent == []
        refreshed = await test_db.get(ReviewRequest, review_request.id, populate_existing=True)
        assert refreshed.reminder_sent_at is None
