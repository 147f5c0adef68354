import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from taskmind.database import get_db
from taskmind.dependencies import get_current_user, get_llm_provider
from taskmind.main import app
from taskmind.models import Base
from taskmind.models.user import User
from taskmind.services.auth_service import hash_password
from taskmind.services.llm_provider import LLMProvider, LLMProviderError

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeRedis:
    """In-memory Redis mock for testing."""

    def __init__(self):
        self._store: dict[str, str] = {}
        self._zsets: dict[str, dict[str, float]] = {}
        self._ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self._store[key] = str(value)
        if ex:
            self._ttls[key] = ex

    async def setex(self, key: str, seconds: int, value: str) -> None:
        await self.set(key, value, ex=seconds)

    async def incr(self, key: str) -> int:
        val = int(self._store.get(key, "0")) + 1
        self._store[key] = str(val)
        return val

    async def expire(self, key: str, seconds: int) -> None:
        self._ttls[key] = seconds

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass

    def pipeline(self) -> "FakePipeline":
        return FakePipeline(self)


class FakePipeline:
    """Queues sorted-set commands and runs them on execute()."""

    def __init__(self, redis: FakeRedis):
        self._redis = redis
        self._commands: list = []

    def zremrangebyscore(self, key: str, low: float, high: float) -> None:
        def run():
            zset = self._redis._zsets.setdefault(key, {})
            stale = [m for m, score in zset.items() if low <= score <= high]
            for member in stale:
                del zset[member]
            return len(stale)

        self._commands.append(run)

    def zadd(self, key: str, mapping: dict[str, float]) -> None:
        def run():
            self._redis._zsets.setdefault(key, {}).update(mapping)
            return len(mapping)

        self._commands.append(run)

    def zcard(self, key: str) -> None:
        self._commands.append(lambda: len(self._redis._zsets.get(key, {})))

    def expire(self, key: str, seconds: int) -> None:
        def run():
            self._redis._ttls[key] = seconds
            return True

        self._commands.append(run)

    async def execute(self) -> list:
        results = [command() for command in self._commands]
        self._commands = []
        return results


class MockLLMProvider(LLMProvider):
    """Mock provider that returns a preset response."""

    def __init__(self, response: str = ""):
        self.response = response
        self.calls: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.calls.append(prompt)
        return self.response


class FailingProvider(LLMProvider):
    """Provider that always raises the given provider error."""

    def __init__(self, error: LLMProviderError | None = None):
        self.error = error or LLMProviderError("Connection to AI failed")

    async def generate(self, prompt: str) -> str:
        raise self.error


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    user = User(
        id=uuid.uuid4(),
        name="Test User",
        email="test@example.com",
        password_hash=hash_password("TestPass123!"),
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def second_user(db_session: AsyncSession) -> User:
    user = User(
        id=uuid.uuid4(),
        name="Other User",
        email="other@example.com",
        password_hash=hash_password("OtherPass123!"),
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def llm_provider() -> MockLLMProvider:
    return MockLLMProvider()


def _override_db(db_engine):
    session_factory = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False
    )

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return override_get_db


@pytest.fixture
async def anon_client(db_engine, llm_provider) -> AsyncGenerator[AsyncClient, None]:
    """Client with a real database but no authentication override."""
    app.dependency_overrides[get_db] = _override_db(db_engine)
    app.dependency_overrides[get_llm_provider] = lambda: llm_provider
    app.state.redis = FakeRedis()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def client(anon_client, test_user: User) -> AsyncGenerator[AsyncClient, None]:
    """Client authenticated as ``test_user``."""

    async def override_get_current_user():
        return test_user

    app.dependency_overrides[get_current_user] = override_get_current_user
    yield anon_client
