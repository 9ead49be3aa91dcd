"""Customer model with per-channel consent flags."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint

from reviewflow.database import Base
from reviewflow.utils.time import utcnow


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("business_id", "source", "external_id", name="uq_customers_source_external"),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)

    full_name = Column(String(255))
    email = Column(String(255), index=True)
    phone = Column(String(50))

    # Where the record came from (webhook, quickbooks, jobber, manual, ...)
    external_id = Column(String(255))
    source = Column(String(50), default="manual")
    status = Column(String(30), default="active")

    # Consent
    unsubscribed = Column(Boolean, default=False, nullable=False)  # email
    sms_opted_out = Column(Boolean, default=False, nullable=False)
    dnc = Column(Boolean, default=False, nullable=False)
    hard_bounced = Column(Boolean, default=False, nullable=False)

    last_review_request_at = Column(DateTime)
    last_synced_at = Column(DateTime)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def first_name(self) -> str:
        return (self.full_name or "").split(" ")[0] if self.full_name else ""

    def __repr__(self):
        return f"<Customer {self.id} business={self.business_id}>"
