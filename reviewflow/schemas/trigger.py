from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ProcessEventRequest(BaseModel):
    business_id: int
    event_type: str = Field(..., min_length=1, max_length=100)
    customer_data: Dict[str, Any] = Field(default_factory=dict)
    trigger_source: str = Field("api", max_length=50)


class ProcessEventResponse(BaseModel):
    success: bool = True
    event_type: str
    customer_id: Optional[int] = None
    enrolled: int = 0
    enrollments: List[Dict[str, Any]] = Field(default_factory=list)
    skipped: List[Dict[str, Any]] = Field(default_factory=list)
    errors: List[Dict[str, Any]] = Field(default_factory=list)
