"""
Telemetry events.

Telemetry is best effort: the write happens inside a SAVEPOINT so a
failure never rolls back or aborts the caller's transaction.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.models.telemetry_event import TelemetryEvent
from reviewflow.utils.time import utcnow

logger = logging.getLogger(__name__)


async def log_event(
    db: AsyncSession,
    business_id: Optional[int],
    event_type: str,
    data: Optional[Dict[str, Any]] = None,
) -> bool:
    """Record a telemetry event. Returns False (and logs) on failure."""
    try:
        async with db.begin_nested():
            db.add(
                TelemetryEvent(
                    business_id=business_id,
                    event_type=event_type,
                    event_data=data or {},
                    created_at=utcnow(),
                )
            )
        return True
    except SQLAlchemyError as e:
        logger.warning(f"Telemetry event {event_type} not recorded: {e}")
        return False
