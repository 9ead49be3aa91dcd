from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON

from reviewflow.database import Base
from reviewflow.utils.time import utcnow


class TelemetryEvent(Base):
    __tablename__ = "telemetry_events"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    event_type = Column(String(100), nullable=False, index=True)
    event_data = Column(JSON)
    created_at = Column(DateTime, default=utcnow, nullable=False)
