"""
Automation Executor

Polls for due work and runs it. Called on a fixed cadence by the cron
endpoint (and optionally the in-process scheduler); a pass that finds
nothing due is a no-op.

Two kinds of work are processed per pass, each bounded by
EXECUTOR_BATCH_SIZE and oldest-due first:

- sequence enrollments whose next_run_at has passed: fire the current
  step, then advance or complete the enrollment
- scheduled jobs (review request sends, reminders) whose run_at has passed

Every row is claimed with a conditional UPDATE before any external I/O.
A claim that updates zero rows means another executor got there first.
Claims expire after PROCESSING_VISIBILITY_TIMEOUT_MINUTES so a crashed
executor's work is picked up again.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.config import settings
from reviewflow.core.sentry import add_breadcrumb, capture_exception
from reviewflow.models.business import Business
from reviewflow.models.customer import Customer
from reviewflow.models.message_send import MessageSend
from reviewflow.models.review_request import ReviewRequest
from reviewflow.models.scheduled_job import ScheduledJob
from reviewflow.models.sequence import Sequence, SequenceEnrollment, SequenceStepExecution
from reviewflow.services import telemetry
from reviewflow.services.automation import step_scheduler, templates
from reviewflow.services.automation.delivery import DeliveryGateway, DeliveryResult
from reviewflow.services.automation.errors import TemplateNotFoundError
from reviewflow.services.automation.safety_rules import SafetyRulesEngine
from reviewflow.services.automation.tenancy import TenantContext
from reviewflow.utils.time import utcnow, isoformat

logger = logging.getLogger(__name__)

# Outcomes of a single unit of work
SENT = "sent"
FAILED = "failed"
RESCHEDULED = "rescheduled"
ADVANCED = "advanced"
COMPLETED = "completed"

SEND_REVIEW_REQUEST = "send_review_request"
AUTOMATION_EMAIL = "automation_email"
REVIEW_REMINDER = "review_reminder"


@dataclass
class ExecutorSummary:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    rescheduled: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def record(self, outcome: str) -> None:
        self.processed += 1
        if outcome == SENT:
            self.sent += 1
        elif outcome == FAILED:
            self.failed += 1
        elif outcome == RESCHEDULED:
            self.rescheduled += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
            "rescheduled": self.rescheduled,
            "skipped": self.skipped,
            "errors": self.errors,
        }


class AutomationExecutor:
    """Runs due enrollment steps and scheduled jobs."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: Optional[DeliveryGateway] = None,
        safety: Optional[SafetyRulesEngine] = None,
        batch_size: Optional[int] = None,
    ):
        self.db = db
        self.gateway = gateway or DeliveryGateway()
        self.safety = safety or SafetyRulesEngine(db)
        self.batch_size = batch_size or settings.EXECUTOR_BATCH_SIZE
        self.visibility_timeout = timedelta(minutes=settings.PROCESSING_VISIBILITY_TIMEOUT_MINUTES)
        self.job_handlers = {
            SEND_REVIEW_REQUEST: self._handle_send_review_request,
            AUTOMATION_EMAIL: self._handle_send_review_request,
            REVIEW_REMINDER: self._handle_review_reminder,
        }

    async def run_once(self, now: Optional[datetime] = None) -> ExecutorSummary:
        """Process one batch of due enrollments and one batch of due jobs."""
        now = now or utcnow()
        summary = ExecutorSummary()

        await self._process_due_enrollments(now, summary)
        await self._process_due_jobs(now, summary)

        logger.info(
            f"Executor pass: {summary.processed} processed, {summary.sent} sent, "
            f"{summary.failed} failed, {summary.rescheduled} rescheduled, {summary.skipped} skipped"
        )
        add_breadcrumb("Executor pass", category="automation", data=summary.to_dict())
        return summary

    # Enrollments

    async def _process_due_enrollments(self, now: datetime, summary: ExecutorSummary) -> None:
        cutoff = now - self.visibility_timeout
        result = await self.db.execute(
            select(SequenceEnrollment.id, SequenceEnrollment.next_run_at)
            .where(SequenceEnrollment.status == "active")
            .where(SequenceEnrollment.next_run_at <= now)
            .where(or_(SequenceEnrollment.claimed_at.is_(None), SequenceEnrollment.claimed_at < cutoff))
            .order_by(SequenceEnrollment.next_run_at, SequenceEnrollment.id)
            .limit(self.batch_size)
        )
        due = result.all()
        # Release the read transaction before claiming
        await self.db.commit()

        for enrollment_id, observed_next_run_at in due:
            if not await self._claim_enrollment(enrollment_id, observed_next_run_at, now):
                logger.info(f"Enrollment {enrollment_id} claimed by another executor, skipping")
                summary.skipped += 1
                continue

            try:
                outcome = await self._run_enrollment(enrollment_id, now)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                logger.exception(f"Error processing enrollment {enrollment_id}")
                capture_exception(e, context={"enrollment_id": enrollment_id})
                summary.errors.append({"enrollment_id": enrollment_id, "error": str(e)})
                await self._fail_enrollment_after_error(enrollment_id, e, now)
                outcome = FAILED

            summary.record(outcome)

    async def _claim_enrollment(self, enrollment_id: int, observed_next_run_at: datetime, now: datetime) -> bool:
        cutoff = now - self.visibility_timeout
        result = await self.db.execute(
            update(SequenceEnrollment)
            .where(SequenceEnrollment.id == enrollment_id)
            .where(SequenceEnrollment.status == "active")
            .where(SequenceEnrollment.next_run_at == observed_next_run_at)
            .where(or_(SequenceEnrollment.claimed_at.is_(None), SequenceEnrollment.claimed_at < cutoff))
            .values(claimed_at=now, next_run_at=now + self.visibility_timeout)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def _run_enrollment(self, enrollment_id: int, now: datetime) -> str:
        enrollment = await self.db.get(SequenceEnrollment, enrollment_id, populate_existing=True)
        tenant = TenantContext(enrollment.business_id)

        execution = SequenceStepExecution(
            business_id=enrollment.business_id,
            enrollment_id=enrollment.id,
            step_index=enrollment.current_step_index,
            status="processing",
            started_at=now,
        )
        self.db.add(execution)
        await self.db.flush()

        sequence = await tenant.get(self.db, Sequence, enrollment.sequence_id)
        if sequence is None:
            return self._fail_enrollment(enrollment, execution, "sequence_not_found", now)

        if sequence.status == "paused":
            step_scheduler.defer(enrollment, now + timedelta(minutes=settings.EXECUTOR_INTERVAL_MINUTES))
            return self._finish_execution(execution, "rescheduled", "sequence_paused", now, RESCHEDULED)

        step = await step_scheduler.get_step(self.db, sequence.id, enrollment.current_step_index)
        if step is None:
            enrollment.status = "completed"
            enrollment.next_run_at = None
            enrollment.claimed_at = None
            enrollment.completed_at = now
            logger.warning(
                f"Enrollment {enrollment.id} points at missing step {enrollment.current_step_index}, completing",
                extra={"enrollment_id": enrollment.id, "sequence_id": sequence.id},
            )
            return self._finish_execution(execution, "completed", "step_missing", now, COMPLETED)

        execution.kind = step.kind

        if not step.is_send:
            await step_scheduler.schedule_next(self.db, enrollment, step.step_index, now)
            return self._finish_execution(execution, "completed", step.kind, now, ADVANCED)

        customer = await tenant.get(self.db, Customer, enrollment.customer_id)
        if customer is None:
            return self._fail_enrollment(enrollment, execution, "customer_not_found", now)
        business = await self.db.get(Business, enrollment.business_id)
        if business is None:
            return self._fail_enrollment(enrollment, execution, "business_not_found", now)

        channel = step.channel
        message_config = dict(step.message_config or {})
        template_key = message_config.get("template_key")
        if template_key and not message_config.get("body"):
            try:
                template = await templates.select_template(self.db, tenant, channel, key=template_key)
            except TemplateNotFoundError as e:
                return self._fail_enrollment(enrollment, execution, "template_not_found", now, error=e.message)
            message_config = {**(template.config_json or {}), **message_config}
            template.last_used_at = now

        review_link = templates.review_link_for(business, customer)
        variables = templates.build_variables(business, customer, review_link, message_config)
        subject, body = templates.render_message(channel, message_config, variables)

        is_review_request = message_config.get("review_request", True)
        decision = await self.safety.can_send(
            business,
            customer,
            channel,
            now,
            review_request=is_review_request,
            cooldown_exempt_enrollment_id=enrollment.id,
        )
        if not decision.allowed:
            if decision.is_deferrable:
                step_scheduler.defer(enrollment, decision.retry_at)
                logger.info(
                    f"Enrollment {enrollment.id} deferred until {isoformat(decision.retry_at)} ({decision.reason})",
                    extra={"enrollment_id": enrollment.id, "reason": decision.reason},
                )
                return self._finish_execution(execution, "rescheduled", decision.reason, now, RESCHEDULED)
            return self._fail_enrollment(enrollment, execution, decision.reason, now)

        to = customer.email if channel == "email" else customer.phone
        result = await self.gateway.send(channel, to, subject, body, business.name)
        await self._record_send(
            business.id, customer.id, channel, result, is_review_request, now, enrollment_id=enrollment.id
        )

        if result.ok:
            if is_review_request:
                customer.last_review_request_at = now
            await step_scheduler.schedule_next(self.db, enrollment, step.step_index, now)
            return self._finish_execution(execution, "completed", "sent", now, SENT)

        attempts = (enrollment.attempts or 0) + 1
        if result.is_transient and attempts < settings.MAX_SEND_ATTEMPTS:
            enrollment.attempts = attempts
            step_scheduler.defer(enrollment, step_scheduler.retry_at(attempts, now))
            logger.warning(
                f"Enrollment {enrollment.id} send failed (attempt {attempts}), retrying at "
                f"{isoformat(enrollment.next_run_at)}: {result.error}",
                extra={"enrollment_id": enrollment.id},
            )
            execution.error_message = result.error
            return self._finish_execution(execution, "rescheduled", "transient_failure", now, RESCHEDULED)

        enrollment.attempts = attempts
        return self._fail_enrollment(enrollment, execution, result.status.value, now, error=result.error)

    def _finish_execution(
        self, execution: SequenceStepExecution, status: str, outcome: str, now: datetime, result: str
    ) -> str:
        execution.status = status
        execution.outcome = outcome
        execution.completed_at = now
        return result

    def _fail_enrollment(
        self,
        enrollment: SequenceEnrollment,
        execution: SequenceStepExecution,
        reason: str,
        now: datetime,
        error: Optional[str] = None,
    ) -> str:
        enrollment.status = "failed"
        enrollment.next_run_at = None
        enrollment.claimed_at = None
        enrollment.completed_at = now
        enrollment.meta = {
            **(enrollment.meta or {}),
            "last_error": reason,
            "failed_at": isoformat(now),
            "failed_step_index": enrollment.current_step_index,
        }
        execution.error_message = error or reason
        logger.warning(
            f"Enrollment {enrollment.id} failed: {reason}",
            extra={
                "enrollment_id": enrollment.id,
                "sequence_id": enrollment.sequence_id,
                "customer_id": enrollment.customer_id,
                "reason": reason,
            },
        )
        return self._finish_execution(execution, "failed", reason, now, FAILED)

    async def _fail_enrollment_after_error(self, enrollment_id: int, error: Exception, now: datetime) -> None:
        try:
            enrollment = await self.db.get(SequenceEnrollment, enrollment_id, populate_existing=True)
            if enrollment is None or enrollment.status != "active":
                return
            execution = SequenceStepExecution(
                business_id=enrollment.business_id,
                enrollment_id=enrollment.id,
                step_index=enrollment.current_step_index,
                status="processing",
                started_at=now,
            )
            self.db.add(execution)
            self._fail_enrollment(enrollment, execution, "error", now, error=str(error)[:1000])
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(f"Could not mark enrollment {enrollment_id} failed")

    # Scheduled jobs

    def _job_due_clause(self, now: datetime):
        cutoff = now - self.visibility_timeout
        return or_(
            and_(ScheduledJob.status == "queued", ScheduledJob.run_at <= now),
            and_(ScheduledJob.status == "processing", ScheduledJob.claimed_at < cutoff),
        )

    async def _process_due_jobs(self, now: datetime, summary: ExecutorSummary) -> None:
        result = await self.db.execute(
            select(ScheduledJob.id)
            .where(self._job_due_clause(now))
            .order_by(ScheduledJob.run_at, ScheduledJob.id)
            .limit(self.batch_size)
        )
        job_ids = list(result.scalars().all())
        await self.db.commit()

        for job_id in job_ids:
            if not await self._claim_job(job_id, now):
                logger.info(f"Job {job_id} claimed by another executor, skipping")
                summary.skipped += 1
                continue

            try:
                outcome = await self._run_job(job_id, now)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                logger.exception(f"Error processing job {job_id}")
                capture_exception(e, context={"job_id": job_id})
                summary.errors.append({"job_id": job_id, "error": str(e)})
                await self._fail_job_after_error(job_id, e, now)
                outcome = FAILED

            summary.record(outcome)

    async def _claim_job(self, job_id: int, now: datetime) -> bool:
        result = await self.db.execute(
            update(ScheduledJob)
            .where(ScheduledJob.id == job_id)
            .where(self._job_due_clause(now))
            .values(status="processing", claimed_at=now, attempts=ScheduledJob.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def _run_job(self, job_id: int, now: datetime) -> str:
        job = await self.db.get(ScheduledJob, job_id, populate_existing=True)

        # A job reclaimed this many times keeps crashing its executor
        if job.attempts > settings.MAX_SEND_ATTEMPTS:
            return self._fail_job(job, "max attempts exceeded", now)

        handler = self.job_handlers.get(job.job_type)
        if handler is None:
            return self._fail_job(job, f"unknown job type {job.job_type!r}", now)

        logger.info(f"Running job {job.id} ({job.job_type})", extra={"job_id": job.id})
        return await handler(job, now)

    def _complete_job(self, job: ScheduledJob, now: datetime, **result) -> None:
        job.status = "completed"
        job.processed_at = now
        job.result = result
        logger.info(f"Job {job.id} completed: {result.get('outcome')}", extra={"job_id": job.id})

    def _fail_job(self, job: ScheduledJob, error: str, now: datetime) -> str:
        job.status = "failed"
        job.processed_at = now
        job.error_message = error
        job.result = {"outcome": "failed", "error": error}
        logger.warning(f"Job {job.id} failed: {error}", extra={"job_id": job.id, "job_type": job.job_type})
        return FAILED

    async def _reschedule_job(
        self,
        job: ScheduledJob,
        run_at: datetime,
        reason: str,
        now: datetime,
        retry: bool = False,
    ) -> ScheduledJob:
        """
        Enqueue a successor row and close ``job``.

        The current row ends ``completed`` for a deferral or ``failed`` for
        a transient send failure; it never goes back to ``queued``.
        """
        payload = dict(job.payload or {})
        payload["previous_job_id"] = job.id
        if retry:
            payload["retry_count"] = payload.get("retry_count", 0) + 1

        successor = ScheduledJob(
            business_id=job.business_id,
            job_type=job.job_type,
            payload=payload,
            run_at=run_at,
            status="queued",
            created_at=now,
        )
        self.db.add(successor)
        await self.db.flush()

        job.status = "failed" if retry else "completed"
        job.processed_at = now
        job.result = {"outcome": "rescheduled", "reason": reason, "next_job_id": successor.id}
        if retry:
            job.error_message = reason
        logger.info(
            f"Job {job.id} rescheduled as job {successor.id} at {isoformat(run_at)} ({reason})",
            extra={"job_id": job.id, "next_job_id": successor.id},
        )
        return successor

    async def _load_request_context(self, job: ScheduledJob):
        tenant = TenantContext(job.business_id)
        review_request = await tenant.get(self.db, ReviewRequest, (job.payload or {}).get("review_request_id"))
        if review_request is None:
            return None, None, None, "review_request_not_found"
        customer = await tenant.get(self.db, Customer, review_request.customer_id)
        if customer is None:
            return review_request, None, None, "customer_not_found"
        business = await self.db.get(Business, job.business_id)
        if business is None:
            return review_request, customer, None, "business_not_found"
        return review_request, customer, business, None

    async def _deliver_job_message(
        self,
        job: ScheduledJob,
        business: Business,
        customer: Customer,
        channel: str,
        subject: str,
        body: str,
        review_request: bool,
        now: datetime,
    ) -> tuple[str, Optional[DeliveryResult], Optional[ScheduledJob]]:
        """Safety check plus send. Returns (outcome, delivery result, successor job)."""
        decision = await self.safety.can_send(business, customer, channel, now, review_request=review_request)
        if not decision.allowed:
            if decision.is_deferrable:
                successor = await self._reschedule_job(job, decision.retry_at, decision.reason, now)
                return RESCHEDULED, None, successor
            self._fail_job(job, decision.reason, now)
            return FAILED, None, None

        to = customer.email if channel == "email" else customer.phone
        result = await self.gateway.send(channel, to, subject, body, business.name)
        await self._record_send(business.id, customer.id, channel, result, review_request, now, job_id=job.id)

        if result.ok:
            return SENT, result, None

        retries = (job.payload or {}).get("retry_count", 0) + 1
        if result.is_transient and retries < settings.MAX_SEND_ATTEMPTS:
            successor = await self._reschedule_job(
                job, step_scheduler.retry_at(retries, now), result.error or "transient_failure", now, retry=True
            )
            return RESCHEDULED, result, successor

        self._fail_job(job, result.error or result.status.value, now)
        return FAILED, result, None

    async def _handle_send_review_request(self, job: ScheduledJob, now: datetime) -> str:
        review_request, customer, business, missing = await self._load_request_context(job)
        if missing:
            if review_request is not None:
                review_request.status = "failed"
                review_request.error_message = missing
            return self._fail_job(job, missing, now)

        if review_request.status == "sent":
            self._complete_job(job, now, outcome="already_sent", review_request_id=review_request.id)
            return COMPLETED

        outcome, result, successor = await self._deliver_job_message(
            job,
            business,
            customer,
            review_request.channel,
            review_request.subject or f"How did we do? - {business.name}",
            review_request.message or review_request.review_link or "",
            review_request=True,
            now=now,
        )

        if outcome == SENT:
            review_request.status = "sent"
            review_request.sent_at = now
            customer.last_review_request_at = now
            self._complete_job(
                job,
                now,
                outcome="sent",
                review_request_id=review_request.id,
                provider_message_id=result.provider_message_id,
            )
        elif outcome == RESCHEDULED:
            review_request.send_at = successor.run_at
        elif outcome == FAILED:
            review_request.status = "failed"
            review_request.error_message = job.error_message
        return outcome

    async def _handle_review_reminder(self, job: ScheduledJob, now: datetime) -> str:
        review_request, customer, business, missing = await self._load_request_context(job)
        if missing:
            return self._fail_job(job, missing, now)

        if review_request.completed_at is not None or review_request.reminder_sent_at is not None:
            self._complete_job(job, now, outcome="not_needed", review_request_id=review_request.id)
            return COMPLETED

        name = customer.full_name or "there"
        if review_request.channel == "sms":
            body = f"Quick reminder to review {business.name}: {review_request.review_link}"
            footer = settings.SMS_OPT_OUT_FOOTER
            if footer:
                body = f"{body}\n\n{footer}"
        else:
            body = (
                f"Hi {name},\n\nJust a quick reminder to complete your review for {business.name}.\n\n"
                f"{review_request.review_link}\n\nThanks so much!"
            )

        outcome, result, _ = await self._deliver_job_message(
            job,
            business,
            customer,
            review_request.channel,
            f"Quick reminder from {business.name}",
            body,
            review_request=False,
            now=now,
        )
        if outcome == SENT:
            review_request.reminder_sent_at = now
            self._complete_job(
                job,
                now,
                outcome="sent",
                review_request_id=review_request.id,
                provider_message_id=result.provider_message_id,
            )
        return outcome

    async def _fail_job_after_error(self, job_id: int, error: Exception, now: datetime) -> None:
        try:
            job = await self.db.get(ScheduledJob, job_id, populate_existing=True)
            if job is None or job.status != "processing":
                return
            self._fail_job(job, str(error)[:1000], now)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(f"Could not mark job {job_id} failed")

    async def _record_send(
        self,
        business_id: int,
        customer_id: int,
        channel: str,
        result: DeliveryResult,
        is_review_request: bool,
        now: datetime,
        enrollment_id: Optional[int] = None,
        job_id: Optional[int] = None,
    ) -> None:
        self.db.add(
            MessageSend(
                business_id=business_id,
                customer_id=customer_id,
                channel=channel,
                status="sent" if result.ok else "failed",
                is_review_request=is_review_request,
                enrollment_id=enrollment_id,
                job_id=job_id,
                provider_message_id=result.provider_message_id,
                error_message=result.error,
                created_at=now,
            )
        )
        if result.ok:
            await telemetry.log_event(
                self.db,
                business_id,
                "automation_message_sent",
                {
                    "channel": channel,
                    "customer_id": customer_id,
                    "enrollment_id": enrollment_id,
                    "job_id": job_id,
                },
            )
