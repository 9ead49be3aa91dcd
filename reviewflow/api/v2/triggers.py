"""
Trigger ingestion endpoint.

Accepts a business event and enrolls the customer in every active
sequence listening for it. Returns 200 once the event is accepted, even
if some enrollments failed; per-sequence failures are listed in
``errors``.
"""

import logging

from fastapi import APIRouter, Depends

from reviewflow.api.deps import DbSession, get_tenant, verify_internal_api_key
from reviewflow.schemas.errors import get_error_responses
from reviewflow.schemas.trigger import ProcessEventRequest, ProcessEventResponse
from reviewflow.services.automation.trigger_processor import process_trigger_event

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])


@router.post(
    "/process-event",
    response_model=ProcessEventResponse,
    responses=get_error_responses(401, 404, 422),
)
async def process_event(data: ProcessEventRequest, db: DbSession):
    tenant = await get_tenant(db, data.business_id)

    result = await process_trigger_event(
        db,
        tenant,
        data.event_type,
        data.customer_data,
        trigger_source=data.trigger_source,
    )
    await db.commit()

    return ProcessEventResponse(**result.to_dict())
