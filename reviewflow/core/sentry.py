"""
Sentry error tracking.

Initialised from the FastAPI lifespan when SENTRY_DSN is configured. The
executor reports per-row failures through capture_exception so a bad
enrollment shows up in Sentry without stopping the batch.
"""

import logging
from typing import Optional, Dict, Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

_sentry_initialized = False

SENSITIVE_HEADERS = ("authorization", "cookie", "x-webhook-secret", "x-api-key", "x-zapier-token")
SENSITIVE_FIELDS = ("password", "token", "secret", "api_key", "email", "phone")


def init_sentry() -> None:
    """Initialize the Sentry SDK. No-op without a DSN."""
    global _sentry_initialized

    from reviewflow.config import settings

    if not settings.SENTRY_DSN:
        logger.info("Sentry DSN not configured, error tracking disabled")
        return

    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            release=settings.VERSION,
            traces_sample_rate=0.1 if settings.is_production else 1.0,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(level=logging.WARNING, event_level=logging.ERROR),
            ],
            before_send=filter_sensitive_data,
            send_default_pii=False,
            attach_stacktrace=True,
            max_breadcrumbs=50,
        )
        _sentry_initialized = True
        logger.info(f"Sentry initialized for {settings.ENVIRONMENT} environment")
    except Exception as e:
        logger.warning(f"Failed to initialize Sentry: {e}")


def filter_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Scrub shared secrets and customer contact details before sending."""
    request = event.get("request") or {}

    headers = request.get("headers")
    if isinstance(headers, dict):
        for key in list(headers):
            if key.lower() in SENSITIVE_HEADERS:
                headers[key] = "[Filtered]"

    data = request.get("data")
    if isinstance(data, dict):
        _scrub(data)

    return event


def _scrub(data: Dict[str, Any]) -> None:
    for key, value in data.items():
        if isinstance(value, dict):
            _scrub(value)
        elif any(field in key.lower() for field in SENSITIVE_FIELDS):
            data[key] = "[Filtered]"


def capture_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Capture an exception with extra context.

    Returns the Sentry event id, or None when Sentry is disabled.
    """
    if not _sentry_initialized:
        return None

    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in (context or {}).items():
                scope.set_extra(key, value)
            return sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.warning(f"Failed to capture exception to Sentry: {e}")
        return None


def add_breadcrumb(
    message: str,
    category: str,
    level: str = "info",
    data: Optional[Dict[str, Any]] = None,
) -> None:
    if not _sentry_initialized:
        return
    sentry_sdk.add_breadcrumb(message=message, category=category, level=level, data=data)
