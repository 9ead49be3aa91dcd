"""Review request model."""

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum as SQLEnum

from reviewflow.database import Base
from reviewflow.utils.time import utcnow


class ReviewRequest(Base):
    """A single composed ask for a review, sent by a scheduled job."""
    __tablename__ = "review_requests"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("automation_templates.id", ondelete="SET NULL"))

    channel = Column(String(10), nullable=False)
    subject = Column(String(255))
    message = Column(Text)
    review_link = Column(String(500))

    status = Column(
        SQLEnum("pending", "scheduled", "sent", "failed", name="review_request_status_enum"),
        default="pending",
        nullable=False,
    )
    send_at = Column(DateTime)
    sent_at = Column(DateTime)
    clicked_at = Column(DateTime)
    completed_at = Column(DateTime)
    reminder_sent_at = Column(DateTime)
    error_message = Column(Text)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<ReviewRequest {self.id} {self.channel} {self.status}>"
