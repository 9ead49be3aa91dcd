"""Reusable message templates for review request automations."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint

from reviewflow.database import Base
from reviewflow.utils.time import utcnow


class AutomationTemplate(Base):
    __tablename__ = "automation_templates"
    __table_args__ = (
        UniqueConstraint("business_id", "key", name="uq_automation_templates_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    status = Column(String(20), default="active", nullable=False)

    channels = Column(JSON, default=list)  # ["email", "sms"]
    config_json = Column(JSON, default=dict)  # subject, body, delay_hours
    service_types = Column(JSON, default=list)  # empty = any service

    is_default = Column(Boolean, default=False, nullable=False)
    priority = Column(Integer, default=0, nullable=False)
    last_used_at = Column(DateTime)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    def supports(self, channel: str) -> bool:
        return channel in (self.channels or [])

    def __repr__(self):
        return f"<AutomationTemplate {self.key}>"
