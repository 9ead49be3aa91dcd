from typing import Any, Dict, List

from pydantic import BaseModel, Field


class ExecutorSummaryResponse(BaseModel):
    success: bool = True
    processed: int = 0
    sent: int = 0
    failed: int = 0
    rescheduled: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)


class MissedReviewRecoveryResponse(BaseModel):
    success: bool = True
    reminders_queued: int = 0
