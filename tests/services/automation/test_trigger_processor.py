"""Tests for trigger event processing."""

from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from reviewflow.models import Customer, SequenceEnrollment
from reviewflow.services.automation import step_scheduler
from reviewflow.services.automation.tenancy import TenantContext
from reviewflow.services.automation.trigger_processor import process_trigger_event, resolve_customer


class TestProcessTriggerEvent:
    @pytest.mark.asyncio
    async def test_only_active_sequences_enroll(self, test_db, business, customer, make_sequence):
        active = await make_sequence([("send_email", 0)], trigger_event_type="invoice_paid")
        await make_sequence([("send_email", 0)], trigger_event_type="invoice_paid", status="paused")
        await make_sequence([("send_email", 0)], trigger_event_type="job_completed")

        result = await process_trigger_event(
            test_db, TenantContext(business.id), "invoice.paid", {"id": customer.id}
        )
        await test_db.commit()

        assert result.event_type == "invoice_paid"
        assert result.customer_id == customer.id
        assert result.enrolled == 1
        assert result.enrollments[0]["sequence_id"] == active.id

        enrollments = (await test_db.execute(select(SequenceEnrollment))).scalars().all()
        assert len(enrollments) == 1

    @pytest.mark.asyncio
    async def test_repeat_event_is_skipped(self, test_db, business, customer, make_sequence):
        await make_sequence([("send_email", 0)])
        tenant = TenantContext(business.id)

        await process_trigger_event(test_db, tenant, "invoice_paid", {"id": customer.id})
        result = await process_trigger_event(test_db, tenant, "INVOICE_PAID", {"id": customer.id})

        assert result.enrolled == 0
        assert result.skipped[0]["reason"] == "already_enrolled"

    @pytest.mark.asyncio
    async def test_no_matching_sequence(self, test_db, business, customer):
        result = await process_trigger_event(
            test_db, TenantContext(business.id), "estimate.sent", {"id": customer.id}
        )

        assert result.enrolled == 0
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_one_bad_sequence_does_not_block_others(self, test_db, business, customer, make_sequence):
        empty = await make_sequence([])
        good = await make_sequence([("send_sms", 0)])

        result = await process_trigger_event(
            test_db, TenantContext(business.id), "invoice_paid", {"id": customer.id}
        )

        assert [e["sequence_id"] for e in result.enrollments] == [good.id]
        assert result.errors[0]["sequence_id"] == empty.id

    @pytest.mark.asyncio
    async def test_database_error_rolls_back_only_that_sequence(
        self, test_db, business, customer, make_sequence
    ):
        broken_id = (await make_sequence([("send_email", 0)])).id
        good_id = (await make_sequence([("send_sms", 0)])).id
        business_id = business.id
        original_first_step = step_scheduler.first_step

        async def first_step(db, sequence_id):
            if sequence_id == broken_id:
                db.add(Customer(business_id=business_id, full_name="Half Written"))
                await db.flush()
                raise OperationalError("SELECT", {}, Exception("server closed the connection"))
            return await original_first_step(db, sequence_id)

        with patch.object(step_scheduler, "first_step", side_effect=first_step):
            result = await process_trigger_event(
                test_db, TenantContext(business_id), "invoice_paid", {"id": customer.id}
            )
        await test_db.commit()

        assert [e["sequence_id"] for e in result.enrollments] == [good_id]
        assert result.errors[0]["sequence_id"] == broken_id
        enrollments = (await test_db.execute(select(SequenceEnrollment))).scalars().all()
        assert [e.sequence_id for e in enrollments] == [good_id]
        leftovers = await test_db.execute(select(Customer).where(Customer.full_name == "Half Written"))
        assert leftovers.scalars().all() == []

    @pytest.mark.asyncio
    async def test_unidentifiable_customer(self, test_db, business, make_sequence):
        await make_sequence([("send_email", 0)])

        result = await process_trigger_event(
            test_db, TenantContext(business.id), "invoice_paid", {"full_name": "No Contact"}
        )

        assert result.customer_id is None
        assert result.skipped == [{"reason": "customer_not_identified"}]

    @pytest.mark.asyncio
    async def test_to_dict_shape(self, test_db, business, customer, make_sequence):
        await make_sequence([("send_email", 0)])

        data = (
            await process_trigger_event(test_db, TenantContext(business.id), "invoice_paid", {"id": customer.id})
        ).to_dict()

        assert data["success"] is True
        assert data["enrolled"] == 1
        assert set(data) == {"success", "event_type", "customer_id", "enrolled", "enrollments", "skipped", "errors"}


class TestResolveCustomer:
    @pytest.mark.asyncio
    async def test_by_external_id(self, test_db, business, customer):
        found, created = await resolve_customer(
            test_db,
            TenantContext(business.id),
            {"external_id": customer.external_id, "source": "manual"},
        )
        assert found.id == customer.id
        assert created is False

    @pytest.mark.asyncio
    async def test_by_email_ignores_case(self, test_db, business, customer):
        found, created = await resolve_customer(
            test_db, TenantContext(business.id), {"email": customer.email.upper()}
        )
        assert found.id == customer.id
        assert created is False

    @pytest.mark.asyncio
    async def test_creates_new_customer(self, test_db, business):
        found, created = await resolve_customer(
            test_db,
            TenantContext(business.id),
            {"first_name": "Dana", "last_name": "Lee", "phone": "+15551230000", "external_id": "qb-7"},
            default_source="quickbooks",
        )

        assert created is True
        assert found.full_name == "Dana Lee"
        assert found.source == "quickbooks"
        assert found.business_id == business.id

    @pytest.mark.asyncio
    async def test_other_tenant_id_not_matched(self, test_db, business, customer):
        found, created = await resolve_customer(
            test_db, TenantContext(business.id + 100), {"id": customer.id}
        )
        assert found is None
        assert created is False

    @pytest.mark.asyncio
    async def test_fills_missing_phone(self, test_db, business):
        existing = Customer(business_id=business.id, full_name="Sam Roe", email="sam@example.com")
        test_db.add(existing)
        await test_db.commit()

        found, _ = await resolve_customer(
            test_db, TenantContext(business.id), {"email": "sam@example.com", "phone": "+15550001111"}
        )
        assert found.id == existing.id
        assert found.phone == "+15550001111"
