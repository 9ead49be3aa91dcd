"""Sequence enrollment schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class EnrollRequest(BaseModel):
    sequence_id: int
    customer_id: int
    business_id: int
    trigger_source: str = Field("manual", max_length=50)


class EnrollmentResponse(BaseModel):
    id: int
    business_id: int
    sequence_id: int
    customer_id: int
    status: EnrollmentStatus
    current_step_index: int
    next_run_at: Optional[datetime] = None
    last_event_at: Optional[datetime] = None
    attempts: int = 0
    completed_at: Optional[datetime] = None
    meta: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EnrollResponse(BaseModel):
    success: bool = True
    enrollment: EnrollmentResponse
    next_run_at: Optional[datetime] = None


class CancelEnrollmentRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class EnrollmentListResponse(BaseModel):
    items: List[EnrollmentResponse]
    total: int
