"""Tests for the delivery gateway."""

import asyncio

import pytest

from reviewflow.services.automation.delivery import (
    DeliveryGateway,
    DeliveryResult,
    DeliveryStatus,
    MockDeliveryGateway,
    classify_provider_response,
)
from reviewflow.services.email_service import MockEmailService
from reviewflow.services.twilio_service import MockTwilioService


class SlowEmailService(MockEmailService):
    async def send_email(self, to, subject, body, from_name=None, reply_to=None):
        await asyncio.sleep(1)
        return await super().send_email(to, subject, body, from_name, reply_to)


class TestClassifyProviderResponse:
    @pytest.mark.parametrize(
        "response,status",
        [
            ({"success": True, "message_id": "m1"}, DeliveryStatus.SENT),
            ({"success": False, "status_code": None}, DeliveryStatus.TRANSIENT_FAILURE),
            ({"success": False, "status_code": 429}, DeliveryStatus.TRANSIENT_FAILURE),
            ({"success": False, "status_code": 503}, DeliveryStatus.TRANSIENT_FAILURE),
            ({"success": False, "status_code": 400}, DeliveryStatus.PERMANENT_FAILURE),
            ({"success": False, "status_code": None, "configured": False}, DeliveryStatus.PERMANENT_FAILURE),
            ({"success": False, "status_code": 400, "permanent": True}, DeliveryStatus.PERMANENT_FAILURE),
        ],
    )
    def test_classification(self, response, status):
        assert classify_provider_response(response).status == status

    def test_message_id_kept(self):
        assert classify_provider_response({"success": True, "message_id": "m1"}).provider_message_id == "m1"


class TestDeliveryGateway:
    @pytest.mark.asyncio
    async def test_routes_by_channel(self):
        email, sms = MockEmailService(), MockTwilioService()
        gateway = DeliveryGateway(email_service=email, sms_service=sms)

        assert (await gateway.send("email", "a@example.com", "Hi", "Body", "Acme")).ok
        assert (await gateway.send("sms", "+15550001111", "", "Body")).ok

        assert email._sent_emails[0]["from_name"] == "Acme"
        assert sms._sent_messages[0]["to"] == "+15550001111"

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        gateway = DeliveryGateway(email_service=SlowEmailService(), sms_service=MockTwilioService(), timeout=0.01)

        result = await gateway.send("email", "a@example.com", "Hi", "Body")

        assert result.is_transient
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_bad_channel_and_recipient_are_permanent(self):
        gateway = DeliveryGateway(email_service=MockEmailService(), sms_service=MockTwilioService())

        assert (await gateway.send("fax", "x", "", "")).status == DeliveryStatus.PERMANENT_FAILURE
        assert (await gateway.send("email", "", "", "")).status == DeliveryStatus.PERMANENT_FAILURE


class TestMockDeliveryGateway:
    @pytest.mark.asyncio
    async def test_script_then_success(self):
        gateway = MockDeliveryGateway(DeliveryResult.transient("503"))

        first = await gateway.send("email", "a@example.com", "s", "b")
        second = await gateway.send("email", "a@example.com", "s", "b")

        assert first.is_transient
        assert second.ok
        assert len(gateway.attempts) == 2
        assert len(gateway.sent) == 1
