"""
Delivery gateway.

Wraps the email (Brevo) and SMS (Twilio) services behind one call that
returns a tagged result, so the executor can tell a retryable failure
(timeout, 429, 5xx) from one that will never succeed (bad address,
missing provider configuration).
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from reviewflow.config import settings
from reviewflow.services.email_service import EmailService
from reviewflow.services.twilio_service import TwilioService

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    SENT = "sent"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"


@dataclass(frozen=True)
class DeliveryResult:
    status: DeliveryStatus
    provider_message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SENT

    @property
    def is_transient(self) -> bool:
        return self.status == DeliveryStatus.TRANSIENT_FAILURE

    @classmethod
    def sent(cls, provider_message_id: Optional[str] = None) -> "DeliveryResult":
        return cls(DeliveryStatus.SENT, provider_message_id=provider_message_id)

    @classmethod
    def transient(cls, error: str) -> "DeliveryResult":
        return cls(DeliveryStatus.TRANSIENT_FAILURE, error=error)

    @classmethod
    def permanent(cls, error: str) -> "DeliveryResult":
        return cls(DeliveryStatus.PERMANENT_FAILURE, error=error)


def classify_provider_response(response: dict) -> DeliveryResult:
    """Map an EmailService / TwilioService response dict to a DeliveryResult."""
    if response.get("success"):
        return DeliveryResult.sent(response.get("message_id"))

    error = response.get("error") or "delivery failed"
    if response.get("configured") is False or response.get("permanent"):
        return DeliveryResult.permanent(error)

    status_code = response.get("status_code")
    if status_code is None or status_code == 429 or status_code >= 500:
        return DeliveryResult.transient(error)
    return DeliveryResult.permanent(error)


class DeliveryGateway:
    """Sends one message on one channel with a bounded timeout."""

    def __init__(
        self,
        email_service: Optional[EmailService] = None,
        sms_service: Optional[TwilioService] = None,
        timeout: Optional[float] = None,
    ):
        self.email_service = email_service or EmailService()
        self.sms_service = sms_service or TwilioService()
        self.timeout = timeout or settings.SEND_TIMEOUT_SECONDS

    async def send(
        self,
        channel: str,
        to: str,
        subject: str,
        body: str,
        business_name: Optional[str] = None,
    ) -> DeliveryResult:
        if channel not in ("email", "sms"):
            return DeliveryResult.permanent(f"unsupported channel {channel!r}")
        if not to:
            return DeliveryResult.permanent("missing recipient")

        try:
            response = await asyncio.wait_for(
                self._dispatch(channel, to, subject, body, business_name),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"{channel} send timed out after {self.timeout}s")
            return DeliveryResult.transient(f"send timed out after {self.timeout}s")

        result = classify_provider_response(response)
        if not result.ok:
            logger.warning(f"{channel} send failed ({result.status.value}): {result.error}")
        return result

    async def _dispatch(self, channel, to, subject, body, business_name) -> dict:
        if channel == "email":
            return await self.email_service.send_email(
                to=to, subject=subject, body=body, from_name=business_name
            )
        return await self.sms_service.send_sms(to=to, body=body)


class MockDeliveryGateway(DeliveryGateway):
    """
    In-memory gateway for tests.

    Every send is recorded in ``sent``. Queue results with ``script`` to
    make the next sends fail; once the script is exhausted sends succeed.
    """

    def __init__(self, *results: DeliveryResult):
        self.timeout = 1.0
        self.sent = []
        self.attempts = []
        self._script = list(results)

    def script(self, *results: DeliveryResult) -> None:
        self._script.extend(results)

    async def send(self, channel, to, subject, body, business_name=None) -> DeliveryResult:
        message = {
            "channel": channel,
            "to": to,
            "subject": subject,
            "body": body,
            "business_name": business_name,
        }
        self.attempts.append(message)

        result = self._script.pop(0) if self._script else DeliveryResult.sent(f"mock-{len(self.attempts)}")
        if result.ok:
            self.sent.append(message)
        return result
