from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ReviewRequestCreate(BaseModel):
    business_id: int
    customer_id: int
    channel: Literal["email", "sms"]
    message: Optional[str] = Field(None, max_length=2000)
    subject: Optional[str] = Field(None, max_length=255)
    template_key: Optional[str] = None
    service_type: Optional[str] = None
    delay_hours: Optional[float] = Field(None, ge=0, le=24 * 30)


class ReviewRequestScheduledResponse(BaseModel):
    success: bool = True
    review_request_id: int
    job_id: int
    scheduled_for: datetime
    review_link: Optional[str] = None
