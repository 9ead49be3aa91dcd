"""Scheduled job queue."""

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum as SQLEnum, JSON, Index

from reviewflow.database import Base
from reviewflow.utils.time import utcnow


class ScheduledJob(Base):
    """
    A queued unit of delayed work (review request sends, reminders).

    Status only moves forward: queued -> processing -> completed | failed.
    A job that has to run again later is replaced by a new row.
    """
    __tablename__ = "scheduled_jobs"
    __table_args__ = (
        Index("ix_scheduled_jobs_due", "status", "run_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    job_type = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    run_at = Column(DateTime, nullable=False)

    status = Column(
        SQLEnum("queued", "processing", "completed", "failed", name="scheduled_job_status_enum"),
        default="queued",
        nullable=False,
    )
    attempts = Column(Integer, default=0, nullable=False)
    claimed_at = Column(DateTime)
    processed_at = Column(DateTime)
    error_message = Column(Text)
    result = Column(JSON)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<ScheduledJob {self.id} {self.job_type} {self.status}>"
