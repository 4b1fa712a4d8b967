"""Shared test fixtures - async SQLite and an in-process fake Redis for isolated testing."""

from datetime import datetime, timedelta

import fakeredis
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from friendrec.core.exceptions import StoreUnavailable
from friendrec.db.database import Base, get_db
from friendrec.db.redis import get_redis
from friendrec.services.dead_letter import FriendEventDlqRepository
from friendrec.stores.friendship import FriendshipGraphStore
from friendrec.stores.interaction import InteractionScoreStore

# In-memory SQLite for tests (no Docker needed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///file::memory:?cache=shared&uri=true"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


async def _override_get_db():
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    # Import all models so Base.metadata knows about them
    import friendrec.models  # noqa: F401

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db():
    """Direct async DB session for service-level tests."""
    async with test_session_factory() as session:
        yield session
        await session.commit()


@pytest.fixture
async def redis():
    """Fresh fake Redis server per test (Lua scripting needs the lupa extra)."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def friendships(redis):
    return FriendshipGraphStore(redis, chunk_size=2)


@pytest.fixture
def interactions(redis):
    return InteractionScoreStore(
        redis,
        increment=1.0,
        score_limit=9.5,
        dedup_ttl=3600,
        decay_rate=0.95,
        decay_threshold=0.1,
        chunk_size=2,
    )


@pytest.fixture
async def client(redis):
    """Async HTTP test client with test DB and fake Redis overrides."""
    from friendrec.main import app

    async def _override_get_redis():
        return redis

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_redis] = _override_get_redis
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def joined_at():
    """Stable join timestamps: ``joined_at(n)`` is n minutes after a fixed origin."""
    origin = datetime(2024, 1, 1, 12, 0, 0)
    return lambda minutes: origin + timedelta(minutes=minutes)


class FakeBlacklistGate:
    """In-memory BlacklistGate; ``fail=True`` simulates an unreachable database."""

    def __init__(self, blocked: dict[int, set[int]] | None = None, fail: bool = False):
        self.blocked = blocked or {}
        self.fail = fail
        self.calls: list[tuple[int, set[int]]] = []

    async def blocked_ids(self, requester_id, candidate_ids):
        self.calls.append((requester_id, set(candidate_ids)))
        if self.fail:
            raise ConnectionError("blacklist database unreachable")
        return self.blocked.get(requester_id, set()) & set(candidate_ids)


class FakeRecentMemberSource:
    """In-memory RecentMemberSource; ``members`` is ordered newest first."""

    def __init__(self, members: list[int]):
        self.members = members

    async def exists(self, member_id):
        return member_id in self.members

    async def fetch_recent(self, exclude_ids, count):
        return [m for m in self.members if m not in exclude_ids][:count]


@pytest.fixture
def blacklist_gate():
    return FakeBlacklistGate()


@pytest.fixture
def recent_members():
    # Members 1..7 form the graph; 100+ are newcomers, newest first
    return FakeRecentMemberSource([105, 104, 103, 102, 101, 7, 6, 5, 4, 3, 2, 1])


class FakeFriendSource:
    """In-memory FriendSource built from an edge list; ``fail=True`` simulates a dead database."""

    def __init__(self, edges=(), fail: bool = False):
        self.friends: dict[int, set[int]] = {}
        for a, b in edges:
            self.friends.setdefault(a, set()).add(b)
            self.friends.setdefault(b, set()).add(a)
        self.fail = fail
        self.calls: list[list[int]] = []

    async def friend_ids(self, member_id, limit=None):
        return (await self.friend_ids_batch([member_id], limit))[0]

    async def friend_ids_batch(self, member_ids, limit=None):
        self.calls.append(list(member_ids))
        if self.fail:
            raise StoreUnavailable("friendship-db", "friend_ids")
        return [set(sorted(self.friends.get(m, set()))[:limit]) for m in member_ids]


@pytest.fixture
def dead_letters():
    return FriendEventDlqRepository(test_session_factory)
