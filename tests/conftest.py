import os
import sys
from typing import AsyncGenerator, Generator
from unittest.mock import Mock

import bcrypt
import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Keep the module-level engine away from the working directory
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

from main import app
from api.dependencies import get_identity_service
from core.auth import JWTManager
from core.database import create_db_and_tables, get_session
from core.models import Subscription, User, Video, WatchHistory
from providers.storage_provider import StorageProvider
from services.identity_service import IdentityService

TEST_PASSWORD = "correct-horse-battery"


class FakeStorageProvider(StorageProvider):
    """Records uploads and hands back predictable URLs"""

    def __init__(self):
        self.uploads = []
        self.deleted = []

    @property
    def source_name(self) -> str:
        return "fake"

    async def upload(self, local_path: str):
        self.uploads.append(local_path)
        name = os.path.basename(local_path)
        return {"url": f"https://media.test/{name}", "public_id": name}

    async def delete(self, upload):
        self.deleted.append(upload["public_id"])


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("ACCESS_TOKEN_SECRET", "test-access-secret-0123456789abcdef")
    monkeypatch.setenv("REFRESH_TOKEN_SECRET", "test-refresh-secret-0123456789abcdef")


@pytest.fixture
async def db_engine():
    """Fresh in-memory database per test; StaticPool keeps one shared connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_storage() -> FakeStorageProvider:
    return FakeStorageProvider()


@pytest.fixture
def jwt_manager() -> JWTManager:
    return JWTManager(
        access_secret="test-access-secret-0123456789abcdef",
        refresh_secret="test-refresh-secret-0123456789abcdef",
    )


@pytest.fixture
def identity(jwt_manager, fake_storage) -> IdentityService:
    return IdentityService(jwt_manager=jwt_manager, storage=fake_storage)


@pytest.fixture
def create_user(session):
    """Factory inserting a user with a known password (cheap bcrypt rounds)"""

    async def _create_user(username="alice", email=None, password=TEST_PASSWORD, full_name=None):
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            full_name=full_name or username.title(),
            avatar=f"https://media.test/{username}.png",
            password=bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode(
                "utf-8"
            ),
        )
        session.add(user)
        await session.commit()
        return user

    return _create_user


@pytest.fixture
def create_video(session):
    async def _create_video(title="Video", owner=None):
        video = Video(
            title=title,
            video_file=f"https://media.test/{title}.mp4",
            thumbnail=f"https://media.test/{title}.jpg",
            description=f"About {title}",
            duration=42.0,
            owner_id=owner.id if owner else None,
        )
        session.add(video)
        await session.commit()
        return video

    return _create_video


@pytest.fixture
def subscribe(session):
    async def _subscribe(subscriber, channel):
        session.add(Subscription(subscriber_id=subscriber.id, channel_id=channel.id))
        await session.commit()

    return _subscribe


@pytest.fixture
def watch(session):
    async def _watch(user, video_id, position):
        session.add(WatchHistory(user_id=user.id, video_id=video_id, position=position))
        await session.commit()

    return _watch


@pytest.fixture
async def async_client(session_factory, identity) -> AsyncGenerator[AsyncClient, None]:
    """Async client for the app, bound to the per-test database.

    The base URL is plain http, so the client never sends back the `secure`
    session cookies; tests pass credentials explicitly.
    """

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_identity_service] = lambda: identity
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def test_client() -> Generator[TestClient, None, None]:
    """Synchronous client without lifespan, for endpoints that need no database."""
    yield TestClient(app)


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    logger = Mock()
    logger.info = Mock()
    logger.error = Mock()
    logger.warning = Mock()
    logger.debug = Mock()
    logger.log = Mock()
    return logger
