"""
Sequence models.

A sequence is an ordered list of steps (send email, send SMS, wait) that a
customer walks through once enrolled. Enrollments carry the cursor
(current_step_index, next_run_at) the executor advances.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, BigInteger,
    ForeignKey, Enum as SQLEnum, JSON, Index, UniqueConstraint, text,
)

from reviewflow.database import Base
from reviewflow.utils.time import utcnow


class Sequence(Base):
    __tablename__ = "sequences"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)

    status = Column(
        SQLEnum("draft", "active", "paused", name="sequence_status_enum"),
        default="draft",
        nullable=False,
    )

    # Canonical event type (see event_normalizer); null = manual only
    trigger_event_type = Column(String(100), index=True)
    allow_manual_enroll = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Sequence {self.id} {self.name} ({self.status})>"


class SequenceStep(Base):
    __tablename__ = "sequence_steps"
    __table_args__ = (
        UniqueConstraint("sequence_id", "step_index", name="uq_sequence_steps_index"),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence_id = Column(Integer, ForeignKey("sequences.id", ondelete="CASCADE"), nullable=False, index=True)
    step_index = Column(Integer, nullable=False)

    kind = Column(
        SQLEnum("send_email", "send_sms", "wait", "branch", name="sequence_step_kind_enum"),
        nullable=False,
    )
    # Delay before this step fires, relative to the previous step
    wait_ms = Column(BigInteger, default=0, nullable=False)

    # {"subject": ..., "body": ..., "template_key": ..., "offer_link": ...}
    message_config = Column(JSON)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def is_send(self) -> bool:
        return self.kind in ("send_email", "send_sms")

    @property
    def channel(self) -> str | None:
        return {"send_email": "email", "send_sms": "sms"}.get(self.kind)

    def __repr__(self):
        return f"<SequenceStep {self.sequence_id}#{self.step_index} {self.kind}>"


class SequenceEnrollment(Base):
    """
    One customer's progress through one sequence.

    At most one active enrollment per (sequence, customer), enforced by a
    partial unique index.
    """
    __tablename__ = "sequence_enrollments"
    __table_args__ = (
        Index(
            "uq_sequence_enrollments_active",
            "sequence_id",
            "customer_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_sequence_enrollments_due", "status", "next_run_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence_id = Column(Integer, ForeignKey("sequences.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(
        SQLEnum("active", "completed", "cancelled", "failed", name="sequence_enrollment_status_enum"),
        default="active",
        nullable=False,
    )
    current_step_index = Column(Integer, nullable=False, default=0)
    next_run_at = Column(DateTime)
    last_event_at = Column(DateTime)

    # Executor lease
    claimed_at = Column(DateTime)
    attempts = Column(Integer, default=0, nullable=False)

    completed_at = Column(DateTime)
    meta = Column(JSON)  # trigger_source, trigger_event, enrolled_at, last_error

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return (
            f"<SequenceEnrollment {self.id} seq={self.sequence_id} "
            f"customer={self.customer_id} {self.status} step={self.current_step_index}>"
        )


class SequenceStepExecution(Base):
    """Audit record of one step firing for one enrollment."""
    __tablename__ = "sequence_step_executions"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    enrollment_id = Column(
        Integer, ForeignKey("sequence_enrollments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_index = Column(Integer, nullable=False)
    kind = Column(String(20))

    status = Column(
        SQLEnum("processing", "completed", "failed", "rescheduled", name="sequence_step_execution_status_enum"),
        default="processing",
        nullable=False,
    )
    outcome = Column(String(50))  # sent, waited, safety reason, ...
    error_message = Column(Text)

    started_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime)

    def __repr__(self):
        return f"<SequenceStepExecution {self.id} enrollment={self.enrollment_id} {self.status}>"
