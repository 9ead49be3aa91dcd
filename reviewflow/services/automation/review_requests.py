"""
One-shot review requests.

A review request is composed up front (message, tracked link) and sent
later by a ``send_review_request`` scheduled job. Customers who clicked
the link but never finished the review get a single reminder.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.models.customer import Customer
from reviewflow.models.review_request import ReviewRequest
from reviewflow.models.scheduled_job import ScheduledJob
from reviewflow.services import telemetry
from reviewflow.services.automation import templates
from reviewflow.services.automation.errors import CustomerNotFoundError, MissingContactInfoError
from reviewflow.services.automation.tenancy import TenantContext
from reviewflow.utils.time import utcnow, isoformat

logger = logging.getLogger(__name__)

REMINDER_WINDOW_START = timedelta(hours=36)
REMINDER_WINDOW_END = timedelta(hours=24)
REMINDER_BATCH_LIMIT = 100


@dataclass
class ScheduledReviewRequest:
    review_request: ReviewRequest
    job: ScheduledJob


async def schedule_review_request(
    db: AsyncSession,
    tenant: TenantContext,
    customer_id: int,
    channel: str,
    message: Optional[str] = None,
    subject: Optional[str] = None,
    template_key: Optional[str] = None,
    service_type: Optional[str] = None,
    delay_hours: Optional[float] = None,
    now: Optional[datetime] = None,
) -> ScheduledReviewRequest:
    """
    Compose a review request and queue its send.

    Without an explicit message a template is selected for the channel
    (and service type); its delay_hours applies unless ``delay_hours`` is
    given. The caller commits.
    """
    now = now or utcnow()
    business = await tenant.business(db)
    customer = await tenant.get(db, Customer, customer_id)
    if customer is None:
        raise CustomerNotFoundError(customer_id)

    address = customer.email if channel == "email" else customer.phone
    if not address:
        raise MissingContactInfoError(customer_id, channel)

    template = None
    config = {}
    if message is None:
        template = await templates.select_template(db, tenant, channel, service_type=service_type, key=template_key)
        config = dict(template.config_json or {})
        template.last_used_at = now
    else:
        config = {"body": message}
    if subject:
        config["subject"] = subject

    if delay_hours is None:
        delay_hours = float(config.get("delay_hours") or 0)
    send_at = now + timedelta(hours=max(delay_hours, 0))

    review_request = ReviewRequest(
        business_id=tenant.business_id,
        customer_id=customer.id,
        template_id=template.id if template else None,
        channel=channel,
        status="scheduled",
        send_at=send_at,
        created_at=now,
    )
    db.add(review_request)
    await db.flush()

    # The link carries the request id, so compose after the insert
    review_request.review_link = templates.review_link_for(business, customer, review_request)
    variables = templates.build_variables(business, customer, review_request.review_link, config)
    review_request.subject, review_request.message = templates.render_message(channel, config, variables)

    job = ScheduledJob(
        business_id=tenant.business_id,
        job_type="send_review_request",
        payload={"review_request_id": review_request.id},
        run_at=send_at,
        status="queued",
        created_at=now,
    )
    db.add(job)
    await db.flush()

    logger.info(
        f"Review request {review_request.id} scheduled for {isoformat(send_at)}",
        extra={"business_id": tenant.business_id, "customer_id": customer.id, "job_id": job.id},
    )
    await telemetry.log_event(
        db,
        tenant.business_id,
        "review_request_scheduled",
        {"review_request_id": review_request.id, "channel": channel, "send_at": isoformat(send_at)},
    )
    return ScheduledReviewRequest(review_request=review_request, job=job)


async def enqueue_missed_review_reminders(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Queue a reminder for requests clicked 24-36 hours ago but not completed.

    Requests already reminded, or that ever had a reminder job (pending,
    sent or failed), are skipped. Returns the number of jobs queued. The
    caller commits.
    """
    now = now or utcnow()
    result = await db.execute(
        select(ReviewRequest)
        .where(ReviewRequest.completed_at.is_(None))
        .where(ReviewRequest.reminder_sent_at.is_(None))
        .where(ReviewRequest.clicked_at.is_not(None))
        .where(ReviewRequest.clicked_at >= now - REMINDER_WINDOW_START)
        .where(ReviewRequest.clicked_at <= now - REMINDER_WINDOW_END)
        .order_by(ReviewRequest.clicked_at)
        .limit(REMINDER_BATCH_LIMIT)
    )
    candidates = list(result.scalars().all())
    if not candidates:
        return 0

    # Reminder jobs are created after the click, so older jobs cannot match
    existing = await db.execute(
        select(ScheduledJob.payload)
        .where(ScheduledJob.job_type == "review_reminder")
        .where(ScheduledJob.created_at >= candidates[0].clicked_at)
    )
    already_queued = {(payload or {}).get("review_request_id") for payload in existing.scalars().all()}

    queued = 0
    for review_request in candidates:
        if review_request.id in already_queued:
            continue
        db.add(
            ScheduledJob(
                business_id=review_request.business_id,
                job_type="review_reminder",
                payload={"review_request_id": review_request.id},
                run_at=now,
                status="queued",
                created_at=now,
            )
        )
        queued += 1

    if queued:
        await db.flush()
    logger.info(f"Queued {queued} missed review reminders")
    return queued
