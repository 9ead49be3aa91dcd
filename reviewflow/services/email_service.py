"""Email Service - Brevo (formerly Sendinblue) transactional email.

Review request emails are plain text with a minimal HTML wrapper. No SDK;
the Brevo REST API is called with httpx.
"""

from reviewflow.config import settings
import html
import logging
from typing import Optional, Dict, Any
import httpx

logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"


class EmailService:
    """Service for sending emails via Brevo API."""

    def __init__(self):
        self.api_key = settings.BREVO_API_KEY
        self.from_address = settings.EMAIL_FROM_ADDRESS
        self.from_name = settings.EMAIL_FROM_NAME

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and bool(self.from_address)

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        from_name: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send an email via Brevo API.

        Returns a dict with success, status_code, message_id and error.
        status_code is None when the request never got a response
        (timeout, connection error) or the service is not configured.
        """
        if not self.is_configured:
            logger.error("Brevo API key not configured")
            return {
                "success": False,
                "configured": False,
                "error": "Brevo API key not configured",
                "status_code": None,
                "message_id": None,
            }

        escaped = html.escape(body).replace("\n", "<br>")
        payload = {
            "sender": {
                "name": from_name or self.from_name,
                "email": self.from_address,
            },
            "to": [{"email": to}],
            "subject": subject,
            "textContent": body,
            "htmlContent": f"<html><body><p>{escaped}</p></body></html>",
        }
        if reply_to:
            payload["replyTo"] = {"email": reply_to}

        headers = {
            "accept": "application/json",
            "api-key": self.api_key,
            "content-type": "application/json",
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    BREVO_API_URL,
                    json=payload,
                    headers=headers,
                    timeout=settings.SEND_TIMEOUT_SECONDS,
                )
        except httpx.TimeoutException:
            logger.error("Brevo API request timed out")
            return {
                "success": False,
                "error": "Brevo API request timed out",
                "status_code": None,
                "message_id": None,
            }
        except httpx.HTTPError as e:
            logger.error("Failed to reach Brevo", extra={"error": str(e)})
            return {
                "success": False,
                "error": f"Brevo request failed: {e}",
                "status_code": None,
                "message_id": None,
            }

        if response.status_code in (200, 201, 202):
            message_id = response.json().get("messageId")
            logger.info(
                "Email sent via Brevo",
                extra={"status_code": response.status_code, "message_id": message_id},
            )
            return {
                "success": True,
                "status_code": response.status_code,
                "message_id": message_id,
            }

        logger.error(
            "Brevo API error",
            extra={"status_code": response.status_code, "error": response.text[:500]},
        )
        return {
            "success": False,
            "error": f"Brevo API error: {response.text[:500]}",
            "status_code": response.status_code,
            "message_id": None,
        }


class MockEmailService(EmailService):
    """Records emails instead of sending them."""

    def __init__(self):
        self.api_key = "test-key"
        self.from_address = "test@example.com"
        self.from_name = "Test"
        self._sent_emails = []

    async def send_email(self, to, subject, body, from_name=None, reply_to=None):
        self._sent_emails.append({"to": to, "subject": subject, "body": body, "from_name": from_name})
        return {
            "success": True,
            "status_code": 201,
            "message_id": f"<mock-{len(self._sent_emails)}@brevo>",
        }
