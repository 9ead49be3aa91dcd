"""Tenant scoping.

Every query against tenant data goes through a TenantContext so a request
for business A can never read or mutate business B's rows.
"""

from dataclasses import dataclass

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.models.business import Business
from reviewflow.services.automation.errors import BusinessNotFoundError


@dataclass(frozen=True)
class TenantContext:
    business_id: int

    def scoped(self, stmt: Select, model) -> Select:
        """Add the business filter for ``model`` to ``stmt``."""
        return stmt.where(model.business_id == self.business_id)

    def select(self, model) -> Select:
        return self.scoped(select(model), model)

    def owns(self, row) -> bool:
        return row is not None and getattr(row, "business_id", None) == self.business_id

    async def get(self, db: AsyncSession, model, row_id):
        """Load a row by id, or None when it belongs to another tenant."""
        if row_id is None:
            return None
        row = await db.get(model, row_id)
        return row if self.owns(row) else None

    async def business(self, db: AsyncSession) -> Business:
        business = await db.get(Business, self.business_id)
        if business is None:
            raise BusinessNotFoundError(self.business_id)
        return business

    @classmethod
    async def resolve(cls, db: AsyncSession, business_id: int) -> "TenantContext":
        """Build a context for an existing business."""
        if business_id is None or await db.get(Business, business_id) is None:
            raise BusinessNotFoundError(business_id)
        return cls(business_id=business_id)
