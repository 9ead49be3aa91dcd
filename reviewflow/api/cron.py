"""
Cron endpoints.

Called by an external scheduler on a fixed interval with
``Authorization: Bearer <CRON_SECRET>``. Both are safe to call
repeatedly; a call that finds nothing due does nothing.
"""

import logging

from fastapi import APIRouter, Depends

from reviewflow.api.deps import DbSession, Gateway, verify_cron_secret
from reviewflow.schemas.errors import get_error_responses
from reviewflow.schemas.executor import ExecutorSummaryResponse, MissedReviewRecoveryResponse
from reviewflow.services.automation.job_executor import AutomationExecutor
from reviewflow.services.automation.review_requests import enqueue_missed_review_reminders

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


@router.post("/automation-executor", response_model=ExecutorSummaryResponse, responses=get_error_responses(401))
async def automation_executor(db: DbSession, gateway: Gateway):
    summary = await AutomationExecutor(db, gateway=gateway).run_once()
    return ExecutorSummaryResponse(**summary.to_dict())


@router.post(
    "/missed-review-recovery",
    response_model=MissedReviewRecoveryResponse,
    responses=get_error_responses(401),
)
async def missed_review_recovery(db: DbSession):
    queued = await enqueue_missed_review_reminders(db)
    await db.commit()
    return MissedReviewRecoveryResponse(reminders_queued=queued)
