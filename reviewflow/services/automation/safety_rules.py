"""
Safety rules evaluated before every send.

Checks run in a fixed order and stop at the first failure:

1. no_contact_info - the channel has no address for the customer
2. unsubscribed / sms_opted_out / dnc / hard_bounced - consent
3. quiet_hours - local time of the business inside its quiet window
4. hourly_rate_limit / daily_rate_limit - sends by the business in the
   trailing hour / day
5. cooldown - last review request to this customer too recent

Consent and contact failures are final. Time-based failures carry a
retry_at and the caller reschedules instead of failing.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import pytz
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.config import settings
from reviewflow.models.business import Business
from reviewflow.models.customer import Customer
from reviewflow.models.message_send import MessageSend

logger = logging.getLogger(__name__)

NO_CONTACT_INFO = "no_contact_info"
UNSUBSCRIBED = "unsubscribed"
SMS_OPTED_OUT = "sms_opted_out"
DNC = "dnc"
HARD_BOUNCED = "hard_bounced"
QUIET_HOURS = "quiet_hours"
HOURLY_RATE_LIMIT = "hourly_rate_limit"
DAILY_RATE_LIMIT = "daily_rate_limit"
COOLDOWN = "cooldown"

DEFERRABLE_REASONS = {QUIET_HOURS, HOURLY_RATE_LIMIT, DAILY_RATE_LIMIT, COOLDOWN}


@dataclass(frozen=True)
class SafetyDecision:
    allowed: bool
    reason: Optional[str] = None
    retry_at: Optional[datetime] = None

    @property
    def is_deferrable(self) -> bool:
        return not self.allowed and self.reason in DEFERRABLE_REASONS

    @classmethod
    def allow(cls) -> "SafetyDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str, retry_at: Optional[datetime] = None) -> "SafetyDecision":
        return cls(allowed=False, reason=reason, retry_at=retry_at)


def _business_tz(business: Business):
    name = business.timezone or settings.DEFAULT_TIMEZONE
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone {name!r} for business {business.id}, using default")
        return pytz.timezone(settings.DEFAULT_TIMEZONE)


def _value_or_default(value: Optional[int], default: int) -> int:
    return default if value is None else value


def in_quiet_window(hour: int, start: int, end: int) -> bool:
    """Whether ``hour`` falls in [start, end), wrapping past midnight."""
    if start == end:
        return False
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


def quiet_hours_end_utc(now: datetime, tz, end_hour: int) -> datetime:
    """Next occurrence of ``end_hour`` local time after ``now``, as naive UTC."""
    local_now = pytz.utc.localize(now).astimezone(tz)
    candidate = local_now.replace(tzinfo=None, hour=end_hour, minute=0, second=0, microsecond=0)
    if candidate <= local_now.replace(tzinfo=None):
        candidate += timedelta(days=1)
    localized = tz.localize(candidate)
    return localized.astimezone(pytz.utc).replace(tzinfo=None)


class SafetyRulesEngine:
    """Decides whether a message may go out right now."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def can_send(
        self,
        business: Business,
        customer: Customer,
        channel: str,
        now: datetime,
        review_request: bool = True,
        cooldown_exempt_enrollment_id: Optional[int] = None,
    ) -> SafetyDecision:
        decision = self._check_contact(customer, channel)
        if decision is None:
            decision = self._check_quiet_hours(business, now)
        if decision is None:
            decision = await self._check_rate_limits(business, now)
        if decision is None and review_request:
            decision = await self._check_cooldown(business, customer, now, cooldown_exempt_enrollment_id)

        if decision is None:
            return SafetyDecision.allow()

        logger.info(
            f"Send blocked for customer {customer.id}: {decision.reason}",
            extra={
                "business_id": business.id,
                "customer_id": customer.id,
                "channel": channel,
                "reason": decision.reason,
            },
        )
        return decision

    def _check_contact(self, customer: Customer, channel: str) -> Optional[SafetyDecision]:
        address = customer.email if channel == "email" else customer.phone
        if not address or not address.strip():
            return SafetyDecision.deny(NO_CONTACT_INFO)

        if channel == "email" and customer.unsubscribed:
            return SafetyDecision.deny(UNSUBSCRIBED)
        if channel == "sms" and customer.sms_opted_out:
            return SafetyDecision.deny(SMS_OPTED_OUT)
        if customer.dnc:
            return SafetyDecision.deny(DNC)
        if channel == "email" and customer.hard_bounced:
            return SafetyDecision.deny(HARD_BOUNCED)
        return None

    def _check_quiet_hours(self, business: Business, now: datetime) -> Optional[SafetyDecision]:
        if business.quiet_hours_enabled is False:
            return None

        start = _value_or_default(business.quiet_hours_start, settings.DEFAULT_QUIET_HOURS_START)
        end = _value_or_default(business.quiet_hours_end, settings.DEFAULT_QUIET_HOURS_END)
        tz = _business_tz(business)
        local_hour = pytz.utc.localize(now).astimezone(tz).hour

        if not in_quiet_window(local_hour, start, end):
            return None
        return SafetyDecision.deny(QUIET_HOURS, retry_at=quiet_hours_end_utc(now, tz, end))

    async def _sends_since(self, business_id: int, since: datetime) -> tuple[int, Optional[datetime]]:
        result = await self.db.execute(
            select(func.count(MessageSend.id), func.min(MessageSend.created_at))
            .where(MessageSend.business_id == business_id)
            .where(MessageSend.status == "sent")
            .where(MessageSend.created_at > since)
        )
        count, oldest = result.one()
        return count or 0, oldest

    async def _check_rate_limits(self, business: Business, now: datetime) -> Optional[SafetyDecision]:
        windows = (
            (HOURLY_RATE_LIMIT, timedelta(hours=1),
             _value_or_default(business.hourly_send_limit, settings.DEFAULT_HOURLY_SEND_LIMIT)),
            (DAILY_RATE_LIMIT, timedelta(days=1),
             _value_or_default(business.daily_send_limit, settings.DEFAULT_DAILY_SEND_LIMIT)),
        )
        for reason, window, limit in windows:
            if limit <= 0:
                continue
            count, oldest = await self._sends_since(business.id, now - window)
            if count >= limit:
                retry = (oldest + window) if oldest else (now + window)
                return SafetyDecision.deny(reason, retry_at=max(retry, now + timedelta(seconds=1)))
        return None

    async def _last_request_from(self, customer: Customer, enrollment_id: int, last: datetime) -> bool:
        """Whether the newest review request to the customer was sent by ``enrollment_id``."""
        result = await self.db.execute(
            select(MessageSend.enrollment_id, MessageSend.created_at)
            .where(MessageSend.customer_id == customer.id)
            .where(MessageSend.is_review_request.is_(True))
            .where(MessageSend.status == "sent")
            .order_by(MessageSend.created_at.desc(), MessageSend.id.desc())
            .limit(1)
        )
        newest = result.first()
        if newest is None:
            return False
        return newest.enrollment_id == enrollment_id and newest.created_at >= last

    async def _check_cooldown(
        self,
        business: Business,
        customer: Customer,
        now: datetime,
        exempt_enrollment_id: Optional[int],
    ) -> Optional[SafetyDecision]:
        days = _value_or_default(business.cooldown_days, settings.DEFAULT_COOLDOWN_DAYS)
        last = customer.last_review_request_at
        if days <= 0 or last is None:
            return None
        # Earlier steps of the same enrollment do not count
        if exempt_enrollment_id is not None:
            if await self._last_request_from(customer, exempt_enrollment_id, last):
                return None

        until = last + timedelta(days=days)
        if now < until:
            return SafetyDecision.deny(COOLDOWN, retry_at=until)
        return None
