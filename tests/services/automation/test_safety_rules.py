"""Tests for SafetyRulesEngine."""

from datetime import datetime, timedelta

import pytest

from reviewflow.models import Customer, MessageSend
from reviewflow.services.automation.safety_rules import (
    SafetyDecision,
    SafetyRulesEngine,
    in_quiet_window,
)
from tests.factories import CustomerFactory

# 23:00 in New York the evening before (EDT)
LATE_EVENING = datetime(2026, 3, 10, 3, 0)


def _customer(business, **overrides):
    return Customer(id=1, business_id=business.id, **CustomerFactory(**overrides))


async def _add_sends(db, business, *created_at, status="sent"):
    for ts in created_at:
        db.add(MessageSend(business_id=business.id, channel="email", status=status, created_at=ts))
    await db.commit()


async def _add_review_request(db, business, customer, created_at, enrollment_id=None):
    db.add(
        MessageSend(
            business_id=business.id,
            customer_id=customer.id,
            channel="email",
            status="sent",
            is_review_request=True,
            enrollment_id=enrollment_id,
            created_at=created_at,
        )
    )
    await db.commit()


class TestContactAndConsent:
    @pytest.mark.asyncio
    async def test_missing_address_checked_first(self, test_db, business, now):
        customer = _customer(business, email=None, unsubscribed=True, dnc=True)

        decision = await SafetyRulesEngine(test_db).can_send(business, customer, "email", now)

        assert decision.allowed is False
        assert decision.reason == "no_contact_info"
        assert decision.is_deferrable is False

    @pytest.mark.asyncio
    async def test_blank_phone_is_missing(self, test_db, business, now):
        decision = await SafetyRulesEngine(test_db).can_send(business, _customer(business, phone="  "), "sms", now)
        assert decision.reason == "no_contact_info"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "channel,flags,reason",
        [
            ("email", {"unsubscribed": True, "dnc": True}, "unsubscribed"),
            ("sms", {"sms_opted_out": True, "dnc": True}, "sms_opted_out"),
            ("sms", {"dnc": True}, "dnc"),
            ("email", {"dnc": True, "hard_bounced": True}, "dnc"),
            ("email", {"hard_bounced": True}, "hard_bounced"),
        ],
    )
    async def test_consent_order(self, test_db, business, now, channel, flags, reason):
        decision = await SafetyRulesEngine(test_db).can_send(business, _customer(business, **flags), channel, now)
        assert decision.reason == reason
        assert decision.retry_at is None

    @pytest.mark.asyncio
    async def test_flags_are_channel_specific(self, test_db, business, now):
        engine = SafetyRulesEngine(test_db)

        assert (await engine.can_send(business, _customer(business, unsubscribed=True), "sms", now)).allowed
        assert (await engine.can_send(business, _customer(business, sms_opted_out=True), "email", now)).allowed
        assert (await engine.can_send(business, _customer(business, hard_bounced=True), "sms", now)).allowed

    @pytest.mark.asyncio
    async def test_consent_beats_quiet_hours(self, test_db, business):
        decision = await SafetyRulesEngine(test_db).can_send(
            business, _customer(business, unsubscribed=True), "email", LATE_EVENING
        )
        assert decision.reason == "unsubscribed"


class TestQuietHours:
    def test_window_wraps_midnight(self):
        assert in_quiet_window(21, 21, 8)
        assert in_quiet_window(23, 21, 8)
        assert in_quiet_window(0, 21, 8)
        assert in_quiet_window(7, 21, 8)
        assert not in_quiet_window(8, 21, 8)
        assert not in_quiet_window(20, 21, 8)

    def test_same_day_window(self):
        assert in_quiet_window(12, 9, 17)
        assert not in_quiet_window(17, 9, 17)
        assert not in_quiet_window(5, 5, 5)

    @pytest.mark.asyncio
    async def test_retry_at_is_local_window_end(self, test_db, business):
        decision = await SafetyRulesEngine(test_db).can_send(business, _customer(business), "email", LATE_EVENING)

        assert decision.reason == "quiet_hours"
        assert decision.is_deferrable is True
        # 08:00 EDT
        assert decision.retry_at == datetime(2026, 3, 10, 12, 0)

    @pytest.mark.asyncio
    async def test_early_morning_retries_same_day(self, test_db, business):
        # 06:30 EDT
        decision = await SafetyRulesEngine(test_db).can_send(
            business, _customer(business), "sms", datetime(2026, 3, 10, 10, 30)
        )
        assert decision.retry_at == datetime(2026, 3, 10, 12, 0)

    @pytest.mark.asyncio
    async def test_uses_business_timezone(self, test_db, business):
        business.timezone = "America/Los_Angeles"
        # 20:00 PDT
        decision = await SafetyRulesEngine(test_db).can_send(business, _customer(business), "email", LATE_EVENING)
        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_disabled(self, test_db, business):
        business.quiet_hours_enabled = False
        decision = await SafetyRulesEngine(test_db).can_send(business, _customer(business), "email", LATE_EVENING)
        assert decision.allowed is True


class TestRateLimits:
    @pytest.mark.asyncio
    async def test_hourly_limit(self, test_db, business, now):
        business.hourly_send_limit = 2
        await _add_sends(test_db, business, now - timedelta(minutes=30), now - timedelta(minutes=10))

        decision = await SafetyRulesEngine(test_db).can_send(business, _customer(business), "email", now)

        assert decision.reason == "hourly_rate_limit"
        assert decision.is_deferrable is True
        assert decision.retry_at == now + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_failed_sends_do_not_count(self, test_db, business, now):
        business.hourly_send_limit = 1
        await _add_sends(test_db, business, now - timedelta(minutes=5), status="failed")

        decision = await SafetyRulesEngine(test_db).can_send(business, _customer(business), "email", now)
        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_daily_limit(self, test_db, business, now):
        business.hourly_send_limit = 0
        business.daily_send_limit = 1
        await _add_sends(test_db, business, now - timedelta(hours=5))

        decision = await SafetyRulesEngine(test_db).can_send(business, _customer(business), "email", now)

        assert decision.reason == "daily_rate_limit"
        assert decision.retry_at == now + timedelta(hours=19)

    @pytest.mark.asyncio
    async def test_old_sends_outside_window(self, test_db, business, now):
        business.hourly_send_limit = 1
        await _add_sends(test_db, business, now - timedelta(hours=2))

        decision = await SafetyRulesEngine(test_db).can_send(business, _customer(business), "email", now)
        assert decision.allowed is True


class TestCooldown:
    @pytest.mark.asyncio
    async def test_recent_request_blocks(self, test_db, business, now):
        last = now - timedelta(days=2)
        customer = _customer(business)
        customer.last_review_request_at = last

        decision = await SafetyRulesEngine(test_db).can_send(business, customer, "email", now)

        assert decision.reason == "cooldown"
        assert decision.retry_at == last + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_same_enrollment_is_exempt(self, test_db, business, now):
        last = now - timedelta(days=1)
        customer = _customer(business)
        customer.last_review_request_at = last
        await _add_review_request(test_db, business, customer, last, enrollment_id=5)

        decision = await SafetyRulesEngine(test_db).can_send(
            business, customer, "sms", now, cooldown_exempt_enrollment_id=5
        )
        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_request_from_elsewhere_blocks_enrollment(self, test_db, business, now):
        customer = _customer(business)
        await _add_review_request(test_db, business, customer, now - timedelta(days=3), enrollment_id=5)
        # One-shot request sent later, outside the enrollment
        last = now - timedelta(hours=23)
        await _add_review_request(test_db, business, customer, last, enrollment_id=None)
        customer.last_review_request_at = last

        decision = await SafetyRulesEngine(test_db).can_send(
            business, customer, "email", now, cooldown_exempt_enrollment_id=5
        )

        assert decision.reason == "cooldown"
        assert decision.retry_at == last + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_other_enrollment_request_blocks(self, test_db, business, now):
        last = now - timedelta(days=1)
        customer = _customer(business)
        customer.last_review_request_at = last
        await _add_review_request(test_db, business, customer, last, enrollment_id=6)

        decision = await SafetyRulesEngine(test_db).can_send(
            business, customer, "email", now, cooldown_exempt_enrollment_id=5
        )
        assert decision.reason == "cooldown"

    @pytest.mark.asyncio
    async def test_non_review_messages_skip_cooldown(self, test_db, business, now):
        customer = _customer(business)
        customer.last_review_request_at = now - timedelta(hours=1)

        decision = await SafetyRulesEngine(test_db).can_send(business, customer, "email", now, review_request=False)
        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_expired_cooldown(self, test_db, business, now):
        customer = _customer(business)
        customer.last_review_request_at = now - timedelta(days=8)

        assert (await SafetyRulesEngine(test_db).can_send(business, customer, "email", now)).allowed


class TestSafetyDecision:
    def test_allow(self):
        decision = SafetyDecision.allow()
        assert decision.allowed is True
        assert decision.is_deferrable is False
