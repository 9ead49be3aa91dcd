"""Business (tenant) model."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime

from reviewflow.database import Base
from reviewflow.utils.time import utcnow


class Business(Base):
    """
    A tenant. Every other table hangs off a business.

    Safety columns left null fall back to the DEFAULT_* settings.
    """
    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255))
    phone = Column(String(50))
    google_review_url = Column(String(500))

    # Safety rules
    timezone = Column(String(64))
    quiet_hours_enabled = Column(Boolean, default=True, nullable=False)
    quiet_hours_start = Column(Integer)  # local hour, 0-23
    quiet_hours_end = Column(Integer)
    hourly_send_limit = Column(Integer)
    daily_send_limit = Column(Integer)
    cooldown_days = Column(Integer)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Business {self.id} {self.name}>"
