import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.database import Base, get_db, get_session_factory
from app.models import Merchant, Segment, SegmentCondition, Subscriber, Campaign, CampaignSegment
from app.schemas.segment import SegmentConditionSchema
from app.services.audience import SubscriberStore, assemble_conditions
from tests.factories import NOW, MerchantFactory, SubscriberFactory, auth_headers


@pytest_asyncio.fixture
async def engine(tmp_path):
    """SQLite database file per test, so concurrent sessions see the same data."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def merchant(test_db: AsyncSession) -> Merchant:
    merchant = Merchant(**MerchantFactory(name="Maple Outfitters", auth_user_id="user_maple"))
    test_db.add(merchant)
    await test_db.commit()
    await test_db.refresh(merchant)
    return merchant


@pytest_asyncio.fixture
async def other_merchant(test_db: AsyncSession) -> Merchant:
    merchant = Merchant(**MerchantFactory(name="Harbor Goods", auth_user_id="user_harbor"))
    test_db.add(merchant)
    await test_db.commit()
    await test_db.refresh(merchant)
    return merchant


@pytest.fixture
def add_subscribers(test_db: AsyncSession):
    """
    Insert subscribers built from factory data.

    Usage:
        subscribers = await add_subscribers(merchant, 3, country="Canada")
    """

    async def _add(merchant: Merchant, count: int = 1, factory=SubscriberFactory, **overrides):
        rows = [Subscriber(**factory(merchant_id=merchant.id, **overrides)) for _ in range(count)]
        test_db.add_all(rows)
        await test_db.commit()
        return rows

    return _add


@pytest.fixture
def add_segment(test_db: AsyncSession):
    """
    Insert a segment with conditions given as dashboard payloads.

    Usage:
        segment = await add_segment(merchant, [LocationConditionFactory()])
    """

    async def _add(merchant: Merchant, conditions=(), name="Test Segment", is_active=True, **fields):
        segment = Segment(merchant_id=merchant.id, name=name, is_active=is_active, **fields)
        for index, payload in enumerate(conditions):
            condition = SegmentConditionSchema.model_validate(payload)
            segment.conditions.append(
                SegmentCondition(
                    order_index=index,
                    **condition.model_dump(exclude={"logical_operator", "type"}),
                    type=condition.type.value,
                    logical_operator=condition.logical_operator.value if condition.logical_operator else None,
                )
            )
        test_db.add(segment)
        await test_db.commit()
        return segment

    return _add


@pytest.fixture
def add_campaign(test_db: AsyncSession):
    async def _add(merchant: Merchant, segments=(), title="Summer Sale"):
        campaign = Campaign(merchant_id=merchant.id, title=title)
        for position, segment in enumerate(segments):
            campaign.segments.append(CampaignSegment(segment_id=segment.id, position=position))
        test_db.add(campaign)
        await test_db.commit()
        return campaign

    return _add


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, session_factory):
    """Create test client with overridden database."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def authenticated_client(client: AsyncClient, merchant: Merchant):
    """Create client authenticated as `merchant`."""
    client.headers.update(auth_headers(merchant.auth_user_id))
    return client


@pytest.fixture
def count_matching(test_db: AsyncSession):
    """
    Count subscribers matching condition payloads for a merchant.

    Usage:
        assert await count_matching(merchant, [LocationConditionFactory()]) == 3
    """

    async def _count(merchant: Merchant, conditions, now=NOW):
        schemas = [SegmentConditionSchema.model_validate(c) for c in conditions]
        predicate = assemble_conditions(schemas, merchant.id, now=now)
        return await SubscriberStore(test_db).count(predicate)

    return _count
