"""
Event name normalization.

Integrations deliver the same business fact under different names
("invoice.paid" from an accounting webhook, "INVOICE_PAID" from a
field-service CRM, "invoice_paid" from a generic webhook). Sequences are
keyed on the canonical underscore form.
"""

from enum import Enum
from typing import Optional


class CanonicalEventType(str, Enum):
    INVOICE_PAID = "invoice_paid"
    INVOICE_CREATED = "invoice_created"
    INVOICE_SENT = "invoice_sent"
    INVOICE_OVERDUE = "invoice_overdue"
    PAYMENT_RECEIVED = "payment_received"
    CUSTOMER_CREATED = "customer_created"
    CUSTOMER_UPDATED = "customer_updated"
    JOB_CREATED = "job_created"
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    JOB_CANCELLED = "job_cancelled"
    ESTIMATE_CREATED = "estimate_created"
    ESTIMATE_SENT = "estimate_sent"
    ESTIMATE_ACCEPTED = "estimate_accepted"
    ESTIMATE_DECLINED = "estimate_declined"
    APPOINTMENT_SCHEDULED = "appointment_scheduled"
    SERVICE_COMPLETED = "service_completed"


E = CanonicalEventType

EVENT_MAPPING = {
    # Accounting / CRM dotted names
    "invoice.paid": E.INVOICE_PAID,
    "invoice.created": E.INVOICE_CREATED,
    "invoice.sent": E.INVOICE_SENT,
    "invoice.overdue": E.INVOICE_OVERDUE,
    "payment.received": E.PAYMENT_RECEIVED,
    "customer.created": E.CUSTOMER_CREATED,
    "customer.updated": E.CUSTOMER_UPDATED,
    "job.created": E.JOB_CREATED,
    "job.started": E.JOB_STARTED,
    "job.completed": E.JOB_COMPLETED,
    "job.cancelled": E.JOB_CANCELLED,
    "estimate.created": E.ESTIMATE_CREATED,
    "estimate.sent": E.ESTIMATE_SENT,
    "estimate.accepted": E.ESTIMATE_ACCEPTED,
    "estimate.declined": E.ESTIMATE_DECLINED,
    # Generic names
    "invoice_paid": E.INVOICE_PAID,
    "job_completed": E.JOB_COMPLETED,
    "appointment_scheduled": E.APPOINTMENT_SCHEDULED,
    "service_completed": E.SERVICE_COMPLETED,
    "customer_created": E.CUSTOMER_CREATED,
    # Field-service CRM webhook topics (matched lowercased)
    "job_complete": E.JOB_COMPLETED,
    "visit_complete": E.SERVICE_COMPLETED,
    "client_create": E.CUSTOMER_CREATED,
}

# (entity, operation) pairs from accounting entity-change webhooks
ACCOUNTING_ENTITY_MAPPING = {
    ("payment", "create"): E.PAYMENT_RECEIVED,
    ("invoice", "create"): E.INVOICE_CREATED,
    ("invoice", "update"): E.INVOICE_SENT,
    ("customer", "create"): E.CUSTOMER_CREATED,
    ("customer", "update"): E.CUSTOMER_UPDATED,
    ("estimate", "create"): E.ESTIMATE_CREATED,
    ("estimate", "update"): E.ESTIMATE_SENT,
}


def normalize(raw_event_name: Optional[str]) -> str:
    """
    Map an integration-specific event name to its canonical form.

    Matching ignores case and surrounding whitespace. Unknown names are
    returned unchanged, so they can still match a sequence configured with
    that exact name.
    """
    if not raw_event_name:
        return ""
    canonical = EVENT_MAPPING.get(raw_event_name.strip().lower())
    return canonical.value if canonical else raw_event_name


def normalize_accounting_entity(entity: Optional[str], operation: Optional[str]) -> Optional[str]:
    """Canonical event for an accounting entity change, or None if not tracked."""
    if not entity or not operation:
        return None
    canonical = ACCOUNTING_ENTITY_MAPPING.get((entity.strip().lower(), operation.strip().lower()))
    return canonical.value if canonical else None
