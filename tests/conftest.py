"""
Test infrastructure for the newsroom API.

Strategy
--------
- SQLite in-memory via aiosqlite, so no Postgres is needed in CI.
- StaticPool makes every async task share the one in-memory connection;
  a second connection would see an empty database.
- The app's get_db dependency is overridden to use the test session
  factory.
- Foreign keys are enforced, as they are on PostgreSQL.
- Tables are created before and dropped after every test.
- Redis is disabled (cache._redis = None); the CacheManager treats that
  as a permanent miss, so all reads exercise the real database path.
- Asset cleanup is captured by RecordingCleanup instead of calling the
  asset store.
"""
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from newsroom.cache import cache
from newsroom.config import settings
from newsroom.database import Base, enable_sqlite_foreign_keys, get_db, session_scope
from newsroom.identity import Principal
from newsroom.main import app
from newsroom.middleware import install_query_counter
from newsroom.models import Category, Role, User
from newsroom.services.article_service import ArticleLifecycle

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

enable_sqlite_foreign_keys(engine_test)
install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with session_scope(async_session_test) as session:
        yield session


app.dependency_overrides[get_db] = override_get_db

IMAGE_HOST = "https://res.cloudinary.com/demo/image/upload"


class RecordingCleanup:
    """Stands in for the background asset cleanup; remembers every batch."""

    def __init__(self) -> None:
        self.batches: list[list[str]] = []

    def schedule(self, urls) -> None:
        self.batches.append(list(urls))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def cleanup() -> RecordingCleanup:
    return RecordingCleanup()


@pytest.fixture
def lifecycle(cleanup) -> ArticleLifecycle:
    return ArticleLifecycle.from_settings(settings, cleanup)


@pytest.fixture
def make_user(db_session):
    """Factory: insert a user with *role* and return its Principal."""
    counter = {"n": 0}

    async def _make(role: Role = Role.JOURNALIST, name: str | None = None) -> Principal:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=name or f"{role.value.title()} {n}",
            email=f"{role.value.lower()}{n}@news.example",
            role=role,
            created_at=datetime.now(timezone.utc),
        )
        db_session.add(user)
        await db_session.commit()
        return Principal(id=user.id, role=role)

    return _make


@pytest.fixture
def make_category(db_session):
    async def _make(name: str = "Technology") -> Category:
        category = Category(name=name, slug=name.lower(), created_at=datetime.now(timezone.utc))
        db_session.add(category)
        await db_session.commit()
        return category

    return _make
