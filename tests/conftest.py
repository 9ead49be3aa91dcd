from datetime import datetime

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from reviewflow.main import app
from reviewflow.database import Base, get_db
from reviewflow.api.deps import get_delivery_gateway
from reviewflow.models import Business, Customer, Sequence, SequenceStep
from reviewflow.services.automation.delivery import MockDeliveryGateway
from tests.factories import BusinessFactory, CustomerFactory, SequenceFactory

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

# Tuesday noon in New York (EDT)
NOW = datetime(2026, 3, 10, 16, 0)

DAY_MS = 24 * 60 * 60 * 1000


@pytest_asyncio.fixture
async def test_db():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def gateway():
    return MockDeliveryGateway()


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, gateway: MockDeliveryGateway):
    """Create test client with overridden database and delivery gateway."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_delivery_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def business(test_db: AsyncSession):
    business = Business(**BusinessFactory())
    test_db.add(business)
    await test_db.commit()
    await test_db.refresh(business)
    return business


@pytest_asyncio.fixture
async def customer(test_db: AsyncSession, business: Business):
    customer = Customer(business_id=business.id, **CustomerFactory())
    test_db.add(customer)
    await test_db.commit()
    await test_db.refresh(customer)
    return customer


@pytest_asyncio.fixture
async def make_sequence(test_db: AsyncSession, business: Business):
    """
    Build a sequence with steps.

    Usage:
        sequence = await make_sequence([("send_email", 0), ("send_sms", DAY_MS)])
    """

    async def _make(steps, business_id=None, **overrides):
        business_id = business_id or business.id
        sequence = Sequence(business_id=business_id, **SequenceFactory(**overrides))
        test_db.add(sequence)
        await test_db.flush()

        for index, step in enumerate(steps):
            kind, wait_ms = step[0], step[1]
            config = step[2] if len(step) > 2 else None
            if config is None and kind in ("send_email", "send_sms"):
                config = {
                    "subject": "Thanks from {{business.name}}",
                    "body": "Hi {{customer.first_name}}, review us: {{review_link}}",
                }
            test_db.add(
                SequenceStep(
                    business_id=business_id,
                    sequence_id=sequence.id,
                    step_index=index,
                    kind=kind,
                    wait_ms=wait_ms,
                    message_config=config,
                )
            )
        await test_db.commit()
        await test_db.refresh(sequence)
        return sequence

    return _make


@pytest_asyncio.fixture
async def two_step_sequence(make_sequence):
    """Email immediately, SMS one day later."""
    return await make_sequence([("send_email", 0), ("send_sms", DAY_MS)])
