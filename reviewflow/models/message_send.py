"""Delivery log; rate limits are counted from it."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Index

from reviewflow.database import Base
from reviewflow.utils.time import utcnow


class MessageSend(Base):
    __tablename__ = "message_sends"
    __table_args__ = (
        Index("ix_message_sends_business_created", "business_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), index=True)
    channel = Column(String(10), nullable=False)
    status = Column(String(20), nullable=False)  # sent, failed
    is_review_request = Column(Boolean, default=True, nullable=False)

    enrollment_id = Column(Integer, ForeignKey("sequence_enrollments.id", ondelete="SET NULL"))
    job_id = Column(Integer, ForeignKey("scheduled_jobs.id", ondelete="SET NULL"))
    provider_message_id = Column(String(255))
    error_message = Column(Text)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<MessageSend {self.id} {self.channel} {self.status}>"
