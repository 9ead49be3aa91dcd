import asyncio
import logging

from twilio.rest import Client
from twilio.base.exceptions import TwilioRestException

from reviewflow.config import settings

logger = logging.getLogger(__name__)

# Twilio error codes that will never succeed on retry
PERMANENT_ERROR_CODES = {
    21211,  # invalid 'To' number
    21408,  # region not enabled
    21610,  # recipient replied STOP
    21612,  # unreachable carrier route
    21614,  # not a mobile number
}


class TwilioService:
    """Service for sending SMS through Twilio."""

    def __init__(self):
        self.account_sid = settings.TWILIO_ACCOUNT_SID
        self.auth_token = settings.TWILIO_AUTH_TOKEN
        self.phone_number = settings.TWILIO_PHONE_NUMBER

        if self.account_sid and self.auth_token and self.phone_number:
            self.client = Client(self.account_sid, self.auth_token)
        else:
            self.client = None
            logger.warning("Twilio credentials not configured")

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def send_sms(self, to: str, body: str) -> dict:
        """
        Send an SMS message.

        The twilio client is synchronous, so the request runs in a worker
        thread. Returns a dict shaped like EmailService.send_email's.
        """
        if not self.client:
            return {
                "success": False,
                "configured": False,
                "error": "Twilio client not configured",
                "status_code": None,
                "message_id": None,
            }

        try:
            message = await asyncio.to_thread(
                self.client.messages.create,
                to=to,
                from_=self.phone_number,
                body=body,
            )
        except TwilioRestException as e:
            logger.error(f"Twilio error {e.code}: {e.msg}")
            return {
                "success": False,
                "error": f"Twilio error: {e.msg}",
                "status_code": e.status,
                "error_code": e.code,
                "permanent": e.code in PERMANENT_ERROR_CODES,
                "message_id": None,
            }

        logger.info(f"SMS sent: {message.sid}")
        return {
            "success": True,
            "status_code": 201,
            "message_id": message.sid,
        }


class MockTwilioService(TwilioService):
    """Mock Twilio service for testing."""

    def __init__(self):
        self.phone_number = "+15555555555"
        self.client = None
        self._sent_messages = []

    @property
    def is_configured(self) -> bool:
        return True

    async def send_sms(self, to: str, body: str) -> dict:
        sid = f"SM{len(self._sent_messages):032d}"
        self._sent_messages.append({"to": to, "body": body, "sid": sid})
        logger.info(f"Mock SMS sent ({sid})")
        return {"success": True, "status_code": 201, "message_id": sid}
