"""
Trigger processing.

Turns an inbound business event (invoice paid, job completed, ...) into
enrollments: resolve the customer, normalize the event name, find the
active sequences listening for it and enroll the customer in each one.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.models.customer import Customer
from reviewflow.services.automation import event_normalizer
from reviewflow.services.automation.enrollment_manager import EnrollmentManager
from reviewflow.services.automation.errors import AutomationError
from reviewflow.services.automation.sequence_matcher import find_matching_sequences
from reviewflow.services.automation.tenancy import TenantContext
from reviewflow.utils.time import utcnow, isoformat

logger = logging.getLogger(__name__)


@dataclass
class TriggerResult:
    event_type: str
    raw_event_type: Optional[str] = None
    customer_id: Optional[int] = None
    customer_created: bool = False
    enrollments: List[Dict[str, Any]] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def enrolled(self) -> int:
        return len(self.enrollments)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "event_type": self.event_type,
            "customer_id": self.customer_id,
            "enrolled": self.enrolled,
            "enrollments": self.enrollments,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def _full_name(data: Dict[str, Any]) -> Optional[str]:
    name = data.get("full_name") or data.get("name")
    if name:
        return str(name).strip()
    parts = [data.get("first_name"), data.get("last_name")]
    joined = " ".join(str(p).strip() for p in parts if p)
    return joined or None


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


async def resolve_customer(
    db: AsyncSession,
    tenant: TenantContext,
    customer_data: Dict[str, Any],
    default_source: str = "webhook",
) -> tuple[Optional[Customer], bool]:
    """
    Find or create the customer an event refers to.

    Lookup order: id, (source, external_id), email. When nothing matches
    and the payload carries an email or phone, a customer is created.
    Returns (customer, created); (None, False) when the payload cannot
    identify anyone.
    """
    customer_data = customer_data or {}
    email = _clean(customer_data.get("email"))
    phone = _clean(customer_data.get("phone"))
    external_id = _clean(customer_data.get("external_id"))
    source = _clean(customer_data.get("source")) or default_source

    customer = None
    customer_id = customer_data.get("id") or customer_data.get("customer_id")
    if customer_id is not None:
        try:
            customer = await tenant.get(db, Customer, int(customer_id))
        except (TypeError, ValueError):
            customer = None

    if customer is None and external_id:
        result = await db.execute(
            tenant.select(Customer)
            .where(Customer.source == source)
            .where(Customer.external_id == external_id)
        )
        customer = result.scalars().first()

    if customer is None and email:
        result = await db.execute(
            tenant.select(Customer)
            .where(func.lower(Customer.email) == email.lower())
            .order_by(Customer.id)
        )
        customer = result.scalars().first()

    now = utcnow()
    if customer is not None:
        # Fill in contact details the record is missing
        if email and not customer.email:
            customer.email = email
        if phone and not customer.phone:
            customer.phone = phone
        customer.last_synced_at = now
        return customer, False

    if not email and not phone:
        return None, False

    customer = Customer(
        business_id=tenant.business_id,
        full_name=_full_name(customer_data),
        email=email,
        phone=phone,
        external_id=external_id,
        source=source,
        status="active",
        last_synced_at=now,
        created_at=now,
    )
    db.add(customer)
    await db.flush()
    logger.info(
        f"Created customer {customer.id} from {source} event",
        extra={"business_id": tenant.business_id, "customer_id": customer.id},
    )
    return customer, True


async def process_trigger_event(
    db: AsyncSession,
    tenant: TenantContext,
    event_type: str,
    customer_data: Dict[str, Any],
    trigger_source: str = "webhook",
) -> TriggerResult:
    """
    Enroll the event's customer in every matching active sequence.

    Each sequence is handled independently: a failure enrolling into one
    is recorded in ``errors`` and the rest still run. The caller commits.
    """
    canonical = event_normalizer.normalize(event_type)
    result = TriggerResult(event_type=canonical, raw_event_type=event_type)

    customer, created = await resolve_customer(db, tenant, customer_data, default_source=trigger_source)
    if customer is None:
        logger.warning(
            f"Event {canonical} has no identifiable customer",
            extra={"business_id": tenant.business_id, "event_type": canonical},
        )
        result.skipped.append({"reason": "customer_not_identified"})
        return result
    result.customer_id = customer.id
    result.customer_created = created

    sequences = await find_matching_sequences(db, tenant, canonical)
    manager = EnrollmentManager(db, tenant)
    customer_id = customer.id

    for sequence in sequences:
        sequence_id, sequence_name = sequence.id, sequence.name
        try:
            # A failed enrollment rolls back only its own savepoint
            async with db.begin_nested():
                outcome = await manager.enroll(
                    sequence_id,
                    customer_id,
                    trigger_source,
                    trigger_event=canonical,
                )
        except AutomationError as e:
            logger.warning(
                f"Enrollment failed for sequence {sequence_id}: {e.message}",
                extra={"sequence_id": sequence_id, "customer_id": customer_id},
            )
            result.errors.append({"sequence_id": sequence_id, "error": e.message})
            continue
        except Exception as e:
            logger.exception(
                f"Unexpected error enrolling customer {customer_id} in sequence {sequence_id}"
            )
            result.errors.append({"sequence_id": sequence_id, "error": str(e)})
            continue

        if outcome.created:
            result.enrollments.append(
                {
                    "enrollment_id": outcome.enrollment.id,
                    "sequence_id": sequence_id,
                    "sequence_name": sequence_name,
                    "next_run_at": isoformat(outcome.enrollment.next_run_at),
                }
            )
        else:
            result.skipped.append(
                {
                    "sequence_id": sequence_id,
                    "reason": "already_enrolled",
                    "enrollment_id": outcome.enrollment.id,
                }
            )

    logger.info(
        f"Processed {canonical}: {result.enrolled} enrolled, "
        f"{len(result.skipped)} skipped, {len(result.errors)} errors",
        extra={"business_id": tenant.business_id, "customer_id": customer_id},
    )
    return result
