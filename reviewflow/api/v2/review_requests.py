import logging

from fastapi import APIRouter, Depends, status

from reviewflow.api.deps import DbSession, automation_http_error, get_tenant, verify_internal_api_key
from reviewflow.schemas.errors import get_error_responses
from reviewflow.schemas.review_request import ReviewRequestCreate, ReviewRequestScheduledResponse
from reviewflow.services.automation.errors import AutomationError
from reviewflow.services.automation.review_requests import schedule_review_request

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])


@router.post(
    "",
    response_model=ReviewRequestScheduledResponse,
    status_code=status.HTTP_201_CREATED,
    responses=get_error_responses(400, 404, 422),
)
async def create_review_request(data: ReviewRequestCreate, db: DbSession):
    """Compose a review request and queue it for the executor."""
    tenant = await get_tenant(db, data.business_id)
    try:
        scheduled = await schedule_review_request(
            db,
            tenant,
            customer_id=data.customer_id,
            channel=data.channel,
            message=data.message,
            subject=data.subject,
            template_key=data.template_key,
            service_type=data.service_type,
            delay_hours=data.delay_hours,
        )
    except AutomationError as e:
        await db.rollback()
        raise automation_http_error(e)

    await db.commit()
    return ReviewRequestScheduledResponse(
        review_request_id=scheduled.review_request.id,
        job_id=scheduled.job.id,
        scheduled_for=scheduled.job.run_at,
        review_link=scheduled.review_request.review_link,
    )
