"""Pytest configuration and fixtures for async testing."""
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from billable.config import settings
from billable.database import Base, build_engine, build_sessionmaker
from billable.gateways.registry import register_gateway, reset_gateways
from tests.utils.factories import SubscriberFactory, SubscriptionInfoFactory
from tests.utils.fakes import FakeGateway
from tests.utils.models import User

# In-memory database shared through a single connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a test engine with all tables.

    Yields:
        AsyncEngine: Engine bound to an in-memory SQLite database
    """
    test_engine = build_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return build_sessionmaker(engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
def gateway() -> Generator[FakeGateway, None, None]:
    """
    In-memory gateway registered as the default billing driver.

    Yields:
        FakeGateway: Gateway double recording every call
    """
    fake_gateway = FakeGateway()
    register_gateway(settings.billing_gateway, lambda options: fake_gateway)

    yield fake_gateway

    reset_gateways()


@pytest_asyncio.fixture(scope="function")
async def user(db_session: AsyncSession) -> User:
    """
    Create a persisted user that never subscribed.

    Returns:
        User: Subscriber without billing history
    """
    subscriber = User(**SubscriberFactory.create())
    db_session.add(subscriber)
    await db_session.flush()
    return subscriber


@pytest_asyncio.fixture(scope="function")
async def active_user(db_session: AsyncSession, gateway: FakeGateway) -> User:
    """
    Create a persisted user with an active "pro" subscription of 3 seats.

    Returns:
        User: Subscriber mirroring the seeded gateway subscription
    """
    info = SubscriptionInfoFactory.create({"plan": "pro", "amount": 2900, "quantity": 3})
    gateway.seed(info)

    subscriber = User(**SubscriberFactory.from_info(info))
    db_session.add(subscriber)
    await db_session.flush()
    return subscriber
