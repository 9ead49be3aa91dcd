"""
Message composition.

Bodies and subjects use ``{{ placeholder }}`` variables, optionally dotted
(``{{customer.first_name}}``). Unknown placeholders render empty.
"""

import logging
import re
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.config import settings
from reviewflow.models.automation_template import AutomationTemplate
from reviewflow.models.business import Business
from reviewflow.models.customer import Customer
from reviewflow.models.review_request import ReviewRequest
from reviewflow.services.automation.errors import TemplateNotFoundError
from reviewflow.services.automation.tenancy import TenantContext

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")

DEFAULT_SUBJECT = "How did we do, {{customer.first_name}}?"


def _lookup(variables: Dict[str, Any], path: str) -> Any:
    value: Any = variables
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        if part in value:
            value = value[part]
        elif part.lower() in value:
            value = value[part.lower()]
        else:
            return None
    return value


def resolve_variables(template: Optional[str], variables: Dict[str, Any]) -> str:
    """Substitute ``{{ key }}`` / ``{{ key.nested }}`` placeholders."""
    if not template:
        return ""

    def replace(match: re.Match) -> str:
        value = _lookup(variables, match.group(1))
        if value is None or isinstance(value, dict):
            return ""
        return str(value)

    return PLACEHOLDER_RE.sub(replace, template)


def review_link_for(
    business: Business,
    customer: Customer,
    review_request: Optional[ReviewRequest] = None,
) -> str:
    """Tracked feedback link for a customer of a business."""
    link = f"{settings.APP_BASE_URL.rstrip('/')}/feedback-form/{business.id}?customer={customer.id}"
    if review_request is not None and review_request.id is not None:
        link += f"&request={review_request.id}"
    return link


def build_variables(
    business: Business,
    customer: Customer,
    review_link: str,
    message_config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    message_config = message_config or {}
    booking_link = business.google_review_url or review_link
    name = customer.full_name or "Customer"

    return {
        "customer": {
            "name": name,
            "first_name": customer.first_name or name,
            "email": customer.email or "",
            "phone": customer.phone or "",
        },
        "business": {
            "name": business.name or "",
            "phone": business.phone or "",
        },
        "review_link": review_link,
        "booking_link": booking_link,
        "offer_link": message_config.get("offer_link") or booking_link,
        # Flat aliases used by older templates
        "customer_name": name,
        "business_name": business.name or "",
    }


def render_message(
    channel: str,
    message_config: Optional[Dict[str, Any]],
    variables: Dict[str, Any],
) -> tuple[str, str]:
    """Return (subject, body). SMS bodies get the opt-out footer."""
    message_config = message_config or {}
    subject = resolve_variables(message_config.get("subject") or DEFAULT_SUBJECT, variables)
    body = resolve_variables(message_config.get("body") or message_config.get("message"), variables)

    if not body:
        body = variables.get("review_link") or ""

    if channel == "sms":
        footer = settings.SMS_OPT_OUT_FOOTER
        if footer and footer not in body:
            body = f"{body}\n\n{footer}" if body else footer
    return subject, body


def _rank(template: AutomationTemplate, service_type: Optional[str]) -> tuple:
    types = [t.lower() for t in (template.service_types or [])]
    exact = service_type is not None and service_type.lower() in types
    return (not exact, -(template.priority or 0), len(types), template.id)


async def select_template(
    db: AsyncSession,
    tenant: TenantContext,
    channel: str,
    service_type: Optional[str] = None,
    key: Optional[str] = None,
) -> AutomationTemplate:
    """
    Pick the template for a send.

    1. Active template with the exact ``key``.
    2. Active templates supporting ``channel`` whose service types are empty
       or include ``service_type``, best first by: service type match,
       priority (high first), fewer service types, oldest.
    3. The business's active default template.
    """
    result = await db.execute(
        tenant.select(AutomationTemplate).where(AutomationTemplate.status == "active")
    )
    templates = list(result.scalars().all())

    if key:
        for template in templates:
            if template.key == key:
                return template
        logger.info(f"Template key {key!r} not found, falling back to ranking")

    wanted = service_type.lower() if service_type else None
    candidates = [
        t for t in templates
        if t.supports(channel)
        and (not t.service_types or wanted is None or wanted in [s.lower() for s in t.service_types])
    ]
    if candidates:
        return sorted(candidates, key=lambda t: _rank(t, service_type))[0]

    for template in sorted(templates, key=lambda t: t.id):
        if template.is_default:
            return template

    raise TemplateNotFoundError(channel, key)
