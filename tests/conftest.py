import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from audience_segments.main import app
from audience_segments.database import Base, get_db
from audience_segments.api.deps import create_access_token
from audience_segments.models import AudienceMember

from factories import AudienceMemberFactory

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

SELLER_ID = 1
OTHER_SELLER_ID = 2


@pytest_asyncio.fixture
async def test_db():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

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


@pytest_asyncio.fixture
async def add_members(test_db: AsyncSession):
    """Insert audience members built from AudienceMemberFactory kwargs."""

    async def _add(*overrides: dict) -> list[AudienceMember]:
        members = [AudienceMember(**AudienceMemberFactory(**o)) for o in overrides]
        test_db.add_all(members)
        await test_db.commit()
        return members

    return _add


@pytest_asyncio.fixture
async def client(test_db: AsyncSession):
    """Create test client with overridden database."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def seller_token() -> str:
    return create_access_token({"sub": str(SELLER_ID)})


@pytest_asyncio.fixture
async def authenticated_client(client: AsyncClient, seller_token: str):
    """Create authenticated test client."""
    client.headers["Authorization"] = f"Bearer {seller_token}"
    return client
