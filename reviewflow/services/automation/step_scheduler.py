"""
Step scheduling.

Moves an enrollment's cursor to the following step, or completes it when
the steps are exhausted. A wait_ms of 0 makes the step due on the next
executor pass; nothing here dispatches synchronously.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.config import settings
from reviewflow.models.sequence import SequenceEnrollment, SequenceStep
from reviewflow.utils.time import utcnow, ms_to_timedelta

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 6 * 3600


async def first_step(db: AsyncSession, sequence_id: int) -> Optional[SequenceStep]:
    result = await db.execute(
        select(SequenceStep)
        .where(SequenceStep.sequence_id == sequence_id)
        .order_by(SequenceStep.step_index)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_step(db: AsyncSession, sequence_id: int, step_index: int) -> Optional[SequenceStep]:
    result = await db.execute(
        select(SequenceStep)
        .where(SequenceStep.sequence_id == sequence_id)
        .where(SequenceStep.step_index == step_index)
    )
    return result.scalar_one_or_none()


async def next_step(db: AsyncSession, sequence_id: int, after_index: int) -> Optional[SequenceStep]:
    result = await db.execute(
        select(SequenceStep)
        .where(SequenceStep.sequence_id == sequence_id)
        .where(SequenceStep.step_index > after_index)
        .order_by(SequenceStep.step_index)
        .limit(1)
    )
    return result.scalar_one_or_none()


def compute_next_run_at(step: SequenceStep, now: datetime) -> datetime:
    return now + ms_to_timedelta(step.wait_ms)


async def schedule_next(
    db: AsyncSession,
    enrollment: SequenceEnrollment,
    completed_step_index: int,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Advance ``enrollment`` past ``completed_step_index``.

    Returns the new next_run_at, or None when the enrollment completed.
    Releases the executor lease and resets the attempt counter either way.
    """
    now = now or utcnow()
    step = await next_step(db, enrollment.sequence_id, completed_step_index)

    enrollment.claimed_at = None
    enrollment.attempts = 0
    enrollment.last_event_at = now

    if step is None:
        enrollment.status = "completed"
        enrollment.next_run_at = None
        enrollment.completed_at = now
        logger.info(
            f"Enrollment {enrollment.id} completed",
            extra={"enrollment_id": enrollment.id, "sequence_id": enrollment.sequence_id},
        )
        return None

    enrollment.current_step_index = step.step_index
    enrollment.next_run_at = compute_next_run_at(step, now)
    logger.info(
        f"Enrollment {enrollment.id} advanced to step {step.step_index}",
        extra={
            "enrollment_id": enrollment.id,
            "sequence_id": enrollment.sequence_id,
            "next_run_at": enrollment.next_run_at.isoformat(),
        },
    )
    return enrollment.next_run_at


def defer(enrollment: SequenceEnrollment, until: datetime) -> None:
    """Push the current step to ``until`` without advancing the cursor."""
    enrollment.next_run_at = until
    enrollment.claimed_at = None


def retry_at(attempts: int, now: datetime) -> datetime:
    """Exponential backoff: base, 2x base, 4x base ... capped at six hours."""
    exponent = max(attempts - 1, 0)
    delay = min(settings.RETRY_BACKOFF_BASE_SECONDS * (2 ** exponent), MAX_BACKOFF_SECONDS)
    return now + timedelta(seconds=delay)
