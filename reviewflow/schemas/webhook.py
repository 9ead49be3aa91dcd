from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from reviewflow.schemas.trigger import ProcessEventResponse


class WebhookCustomer(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    external_id: Optional[str] = None
    source: Optional[str] = None
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


class WebhookEvent(BaseModel):
    """Generic inbound event (Zapier, custom integrations)."""

    business_id: int
    event_type: str = Field(..., min_length=1, max_length=100)
    customer: WebhookCustomer = Field(default_factory=WebhookCustomer)
    source: str = Field("webhook", max_length=50)


class AccountingEntityChange(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    id: Optional[str] = None
    operation: str = Field(..., min_length=1, max_length=20)


class AccountingWebhookEvent(BaseModel):
    """Entity-change notification relayed from an accounting system."""

    business_id: int
    entities: List[AccountingEntityChange] = Field(default_factory=list, max_length=50)
    customer: WebhookCustomer = Field(default_factory=WebhookCustomer)
    source: str = Field("accounting", max_length=50)


class AccountingWebhookResponse(BaseModel):
    success: bool = True
    events_processed: int = 0
    results: List[ProcessEventResponse] = Field(default_factory=list)
    ignored: List[Dict[str, Any]] = Field(default_factory=list)
