"""
Sequence enrollment endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select

from reviewflow.api.deps import DbSession, automation_http_error, get_tenant, verify_internal_api_key
from reviewflow.exceptions import NotFoundError
from reviewflow.models.sequence import Sequence, SequenceEnrollment
from reviewflow.schemas.errors import get_error_responses
from reviewflow.schemas.sequence import (
    CancelEnrollmentRequest,
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollmentStatus,
    EnrollRequest,
    EnrollResponse,
)
from reviewflow.services.automation.enrollment_manager import EnrollmentManager
from reviewflow.services.automation.errors import AutomationError

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])


@router.post("/enroll", response_model=EnrollResponse, responses=get_error_responses(400, 401, 404, 422))
async def enroll_customer(data: EnrollRequest, db: DbSession):
    """Manually enroll a customer. Rejects a duplicate active enrollment with 400."""
    tenant = await get_tenant(db, data.business_id)
    manager = EnrollmentManager(db, tenant)

    try:
        enrollment = await manager.enroll_manual(
            data.sequence_id, data.customer_id, trigger_source=data.trigger_source
        )
    except AutomationError as e:
        await db.rollback()
        raise automation_http_error(e)

    await db.commit()
    return EnrollResponse(
        enrollment=EnrollmentResponse.model_validate(enrollment),
        next_run_at=enrollment.next_run_at,
    )


@router.post(
    "/enrollments/{enrollment_id}/cancel",
    response_model=EnrollmentResponse,
    responses=get_error_responses(404),
)
async def cancel_enrollment(
    enrollment_id: int,
    db: DbSession,
    business_id: int = Query(...),
    data: Optional[CancelEnrollmentRequest] = None,
):
    tenant = await get_tenant(db, business_id)
    try:
        enrollment = await EnrollmentManager(db, tenant).cancel(
            enrollment_id, reason=data.reason if data else None
        )
    except AutomationError as e:
        raise automation_http_error(e)

    await db.commit()
    return EnrollmentResponse.model_validate(enrollment)


@router.get(
    "/{sequence_id}/enrollments",
    response_model=EnrollmentListResponse,
    responses=get_error_responses(404),
)
async def list_enrollments(
    sequence_id: int,
    db: DbSession,
    business_id: int = Query(...),
    status: Optional[EnrollmentStatus] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """List a sequence's enrollments, newest first."""
    tenant = await get_tenant(db, business_id)
    if await tenant.get(db, Sequence, sequence_id) is None:
        raise NotFoundError("Sequence", sequence_id)

    query = tenant.select(SequenceEnrollment).where(SequenceEnrollment.sequence_id == sequence_id)
    if status:
        query = query.where(SequenceEnrollment.status == status.value)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(SequenceEnrollment.created_at.desc(), SequenceEnrollment.id.desc())
        .limit(limit)
        .offset(offset)
    )
    items = [EnrollmentResponse.model_validate(e) for e in result.scalars().all()]
    return EnrollmentListResponse(items=items, total=total or 0)
