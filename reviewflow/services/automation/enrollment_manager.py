"""
Sequence enrollment.

At most one active enrollment exists per (sequence, customer). A repeat
trigger for a customer who is already progressing through a sequence is a
no-op that returns the existing enrollment.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.models.customer import Customer
from reviewflow.models.sequence import Sequence, SequenceEnrollment
from reviewflow.services import telemetry
from reviewflow.services.automation import step_scheduler
from reviewflow.services.automation.errors import (
    CustomerNotFoundError,
    DuplicateEnrollmentError,
    EnrollmentNotFoundError,
    NoStepsConfiguredError,
    SequenceInactiveError,
    SequenceNotFoundError,
)
from reviewflow.services.automation.tenancy import TenantContext
from reviewflow.utils.time import utcnow, isoformat

logger = logging.getLogger(__name__)


@dataclass
class EnrollmentResult:
    enrollment: SequenceEnrollment
    created: bool


class EnrollmentManager:
    """Creates and cancels enrollments for one tenant."""

    def __init__(self, db: AsyncSession, tenant: TenantContext):
        self.db = db
        self.tenant = tenant

    async def get_active(self, sequence_id: int, customer_id: int) -> Optional[SequenceEnrollment]:
        stmt = (
            self.tenant.select(SequenceEnrollment)
            .where(SequenceEnrollment.sequence_id == sequence_id)
            .where(SequenceEnrollment.customer_id == customer_id)
            .where(SequenceEnrollment.status == "active")
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def enroll(
        self,
        sequence_id: int,
        customer_id: int,
        trigger_source: str,
        trigger_event: Optional[str] = None,
        extra_meta: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> EnrollmentResult:
        """
        Enroll a customer in a sequence.

        Returns the existing active enrollment (created=False) if there is
        one. Raises SequenceNotFoundError, CustomerNotFoundError or
        NoStepsConfiguredError without writing anything.
        """
        now = now or utcnow()

        existing = await self.get_active(sequence_id, customer_id)
        if existing:
            logger.info(
                f"Customer {customer_id} already enrolled in sequence {sequence_id}",
                extra={"enrollment_id": existing.id, "sequence_id": sequence_id, "customer_id": customer_id},
            )
            return EnrollmentResult(enrollment=existing, created=False)

        sequence = await self.tenant.get(self.db, Sequence, sequence_id)
        if sequence is None:
            raise SequenceNotFoundError(sequence_id)
        customer = await self.tenant.get(self.db, Customer, customer_id)
        if customer is None:
            raise CustomerNotFoundError(customer_id)

        step = await step_scheduler.first_step(self.db, sequence_id)
        if step is None:
            raise NoStepsConfiguredError(sequence_id)

        meta = {"trigger_source": trigger_source, "enrolled_at": isoformat(now)}
        if trigger_event:
            meta["trigger_event"] = trigger_event
        if extra_meta:
            meta.update(extra_meta)

        enrollment = SequenceEnrollment(
            business_id=self.tenant.business_id,
            sequence_id=sequence_id,
            customer_id=customer_id,
            status="active",
            current_step_index=step.step_index,
            next_run_at=step_scheduler.compute_next_run_at(step, now),
            last_event_at=now,
            attempts=0,
            meta=meta,
            created_at=now,
        )

        try:
            async with self.db.begin_nested():
                self.db.add(enrollment)
        except IntegrityError:
            # Lost a race with a concurrent enroll for the same pair
            winner = await self.get_active(sequence_id, customer_id)
            if winner is None:
                raise
            logger.info(
                f"Concurrent enrollment for customer {customer_id} in sequence {sequence_id}",
                extra={"enrollment_id": winner.id},
            )
            return EnrollmentResult(enrollment=winner, created=False)

        logger.info(
            f"Enrolled customer {customer_id} in sequence {sequence_id}",
            extra={
                "enrollment_id": enrollment.id,
                "sequence_id": sequence_id,
                "customer_id": customer_id,
                "trigger_source": trigger_source,
            },
        )

        await telemetry.log_event(
            self.db,
            self.tenant.business_id,
            "sequence_enrollment_created",
            {
                "enrollment_id": enrollment.id,
                "sequence_id": sequence_id,
                "customer_id": customer_id,
                "trigger_source": trigger_source,
            },
        )
        return EnrollmentResult(enrollment=enrollment, created=True)

    async def enroll_manual(
        self,
        sequence_id: int,
        customer_id: int,
        trigger_source: str = "manual",
        now: Optional[datetime] = None,
    ) -> SequenceEnrollment:
        """
        Enrollment from the manual API.

        Draft sequences are allowed (test runs); paused sequences and
        sequences with manual enrollment disabled are not. A duplicate is
        an error here rather than a no-op.
        """
        sequence = await self.tenant.get(self.db, Sequence, sequence_id)
        if sequence is None:
            raise SequenceNotFoundError(sequence_id)
        if sequence.status == "paused":
            raise SequenceInactiveError(sequence_id, "sequence is paused")
        if not sequence.allow_manual_enroll:
            raise SequenceInactiveError(sequence_id, "manual enrollment is disabled")

        result = await self.enroll(sequence_id, customer_id, trigger_source, now=now)
        if not result.created:
            raise DuplicateEnrollmentError(sequence_id, customer_id, result.enrollment.id)
        return result.enrollment

    async def cancel(self, enrollment_id: int, reason: Optional[str] = None) -> SequenceEnrollment:
        enrollment = await self.tenant.get(self.db, SequenceEnrollment, enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError(enrollment_id)
        if enrollment.status != "active":
            return enrollment

        now = utcnow()
        enrollment.status = "cancelled"
        enrollment.next_run_at = None
        enrollment.claimed_at = None
        enrollment.completed_at = now
        enrollment.meta = {**(enrollment.meta or {}), "cancel_reason": reason or "cancelled"}

        logger.info(
            f"Enrollment {enrollment_id} cancelled",
            extra={"enrollment_id": enrollment_id, "reason": reason},
        )
        return enrollment
