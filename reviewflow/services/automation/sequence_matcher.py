import logging

from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.models.sequence import Sequence
from reviewflow.services.automation.tenancy import TenantContext

logger = logging.getLogger(__name__)


async def find_matching_sequences(
    db: AsyncSession, tenant: TenantContext, canonical_event_type: str
) -> list[Sequence]:
    """Active sequences of the tenant triggered by ``canonical_event_type``.

    No match is a normal outcome and returns an empty list.
    """
    if not canonical_event_type:
        return []

    stmt = (
        tenant.select(Sequence)
        .where(Sequence.trigger_event_type == canonical_event_type)
        .where(Sequence.status == "active")
        .order_by(Sequence.id)
    )
    result = await db.execute(stmt)
    sequences = list(result.scalars().all())

    if not sequences:
        logger.info(
            f"No active sequences for event {canonical_event_type}",
            extra={"business_id": tenant.business_id, "event_type": canonical_event_type},
        )
    return sequences
