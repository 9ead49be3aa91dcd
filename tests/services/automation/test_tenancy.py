"""Tests for tenant scoping."""

import pytest

from reviewflow.models import Business, Customer
from reviewflow.services.automation.errors import BusinessNotFoundError
from reviewflow.services.automation.tenancy import TenantContext
from tests.factories import BusinessFactory, CustomerFactory


class TestTenantContext:
    @pytest.mark.asyncio
    async def test_get_hides_other_tenants_rows(self, test_db, business, customer):
        other = Business(**BusinessFactory())
        test_db.add(other)
        await test_db.commit()

        assert await TenantContext(business.id).get(test_db, Customer, customer.id) is customer
        assert await TenantContext(other.id).get(test_db, Customer, customer.id) is None

    @pytest.mark.asyncio
    async def test_select_is_scoped(self, test_db, business, customer):
        other = Business(**BusinessFactory())
        test_db.add(other)
        await test_db.flush()
        test_db.add(Customer(business_id=other.id, **CustomerFactory()))
        await test_db.commit()

        result = await test_db.execute(TenantContext(business.id).select(Customer))
        rows = result.scalars().all()
        assert [c.id for c in rows] == [customer.id]

    @pytest.mark.asyncio
    async def test_get_with_none_id(self, test_db, business):
        assert await TenantContext(business.id).get(test_db, Customer, None) is None

    @pytest.mark.asyncio
    async def test_resolve_unknown_business(self, test_db):
        with pytest.raises(BusinessNotFoundError):
            await TenantContext.resolve(test_db, 9999)

    @pytest.mark.asyncio
    async def test_resolve_and_business(self, test_db, business):
        tenant = await TenantContext.resolve(test_db, business.id)
        assert tenant.business_id == business.id
        assert (await tenant.business(test_db)).id == business.id
