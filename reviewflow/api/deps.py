"""
FastAPI Dependencies

Database sessions, shared-secret checks and the mapping from automation
engine errors to problem responses.

SECURITY NOTES:
- Secrets are compared in constant time and never logged
- Cron and webhook endpoints fail closed in production
"""

import hmac
import logging
from typing import Annotated, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.config import settings
from reviewflow.database import get_db
from reviewflow.exceptions import (
    BusinessRuleError,
    ErrorCode,
    NotFoundError,
    ReviewFlowException,
    UnauthorizedError,
)
from reviewflow.services.automation import errors
from reviewflow.services.automation.delivery import DeliveryGateway
from reviewflow.services.automation.tenancy import TenantContext

logger = logging.getLogger(__name__)


def secrets_match(provided: Optional[str], expected: Optional[str]) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def verify_cron_secret(
    authorization: Annotated[Optional[str], Header()] = None,
) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>`` when a secret is configured."""
    if not settings.CRON_SECRET:
        if settings.is_production:
            raise UnauthorizedError("Cron secret not configured")
        return

    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    if not secrets_match(token, settings.CRON_SECRET):
        logger.warning("Rejected cron call with missing or invalid secret")
        raise UnauthorizedError("Invalid cron secret")


async def verify_webhook_secret(
    x_webhook_secret: Annotated[Optional[str], Header()] = None,
) -> None:
    """Require the ``X-Webhook-Secret`` header to match WEBHOOK_SHARED_SECRET."""
    if not settings.WEBHOOK_SHARED_SECRET:
        raise UnauthorizedError("Webhook secret not configured")
    if not secrets_match(x_webhook_secret, settings.WEBHOOK_SHARED_SECRET):
        logger.warning("Rejected webhook with missing or invalid secret")
        raise UnauthorizedError("Invalid webhook secret")


async def verify_internal_api_key(
    x_api_key: Annotated[Optional[str], Header()] = None,
) -> None:
    """Optional ``X-API-Key`` check for the trigger and enrollment endpoints."""
    if not settings.INTERNAL_API_KEY:
        return
    if not secrets_match(x_api_key, settings.INTERNAL_API_KEY):
        raise UnauthorizedError("Invalid API key")


async def get_tenant(db: AsyncSession, business_id: int) -> TenantContext:
    try:
        return await TenantContext.resolve(db, business_id)
    except errors.BusinessNotFoundError:
        raise NotFoundError("Business", business_id)


def automation_http_error(exc: errors.AutomationError) -> ReviewFlowException:
    """Translate an engine error into the matching problem response."""
    context = {k: v for k, v in exc.context.items() if v is not None} or None

    if isinstance(exc, errors.DuplicateEnrollmentError):
        return BusinessRuleError(exc.message, code=ErrorCode.ALREADY_ENROLLED, context=context)
    if isinstance(exc, errors.NoStepsConfiguredError):
        return ReviewFlowException(
            status_code=404, code=ErrorCode.NO_STEPS_CONFIGURED, detail=exc.message, context=context
        )
    if isinstance(
        exc,
        (
            errors.BusinessNotFoundError,
            errors.SequenceNotFoundError,
            errors.CustomerNotFoundError,
            errors.EnrollmentNotFoundError,
            errors.TemplateNotFoundError,
        ),
    ):
        return ReviewFlowException(status_code=404, code=ErrorCode.NOT_FOUND, detail=exc.message, context=context)
    if isinstance(exc, errors.MissingContactInfoError):
        return BusinessRuleError(exc.message, code=ErrorCode.MISSING_FIELD, context=context)
    return BusinessRuleError(exc.message, context=context)


DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_delivery_gateway() -> DeliveryGateway:
    """Delivery gateway used by the cron executor; overridden in tests."""
    return DeliveryGateway()


Gateway = Annotated[DeliveryGateway, Depends(get_delivery_gateway)]
