"""
Shared test fixtures for the render orchestrator.

Provides:
- Test database (SQLite in-memory via aiosqlite)
- Configured Settings instance
- Mocked render farm and Cloudflare Stream clients
- Async HTTP client against the FastAPI app with dependency overrides
- Timeline factories
"""

import os
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEV_MODE"] = "false"
os.environ["API_SECRET_KEY"] = "test-shared-secret"

from render_orchestrator.api.deps import get_render_farm_client, get_stream_client
from render_orchestrator.config import Settings, get_settings
from render_orchestrator.main import app
from render_orchestrator.models import Base, ProxyRecord, TimelineRecord
from render_orchestrator.models.database import get_db
from render_orchestrator.services.render_farm_client import RenderFarmClient
from render_orchestrator.services.stream_client import StreamClient

API_KEY = "test-shared-secret"


# =============================================================================
# Test Database Configuration
# =============================================================================

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)

TestAsyncSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest_asyncio.fixture(scope="function")
async def test_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide an async database session for testing.

    Creates all tables before the test and drops them after.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestAsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
    """Override database dependency for testing."""
    async with TestAsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# =============================================================================
# Settings / External Client Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with both external services configured."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        dev_mode=False,
        api_secret_key=API_KEY,
        render_farm_api_url="https://farm.test",
        render_farm_api_token="farm-token",
        render_function_name="render-fn",
        render_serve_url="https://serve.test/site",
        render_account_concurrency=10,
        render_farm_hard_cap=200,
        cloudflare_account_id="acct-123",
        cloudflare_stream_token="stream-token",
    )


@pytest.fixture
def mock_farm() -> AsyncMock:
    """Render farm client with every call mocked."""
    return AsyncMock(spec=RenderFarmClient)


@pytest.fixture
def mock_stream() -> AsyncMock:
    """Cloudflare Stream client with every call mocked."""
    return AsyncMock(spec=StreamClient)


# =============================================================================
# Test Client Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def async_client(
    test_db: AsyncSession,
    settings: Settings,
    mock_farm: AsyncMock,
    mock_stream: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Provide an async HTTP client for the FastAPI application.

    Database, settings and both external clients are overridden.
    """
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_render_farm_client] = lambda: mock_farm
    app.dependency_overrides[get_stream_client] = lambda: mock_stream

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"X-Api-Key": API_KEY}


# =============================================================================
# Timeline Fixtures
# =============================================================================


def make_timeline_data(
    duration_in_frames: int = 900,
    video_urls: list[str] | None = None,
    image_urls: list[str] | None = None,
    audio_urls: list[str] | None = None,
    with_template: bool = True,
) -> dict[str, Any]:
    """Build timeline JSON the way the editor stores it (camelCase)."""
    video_urls = video_urls if video_urls is not None else ["https://cdn.example.com/a.mp4"]
    clips: list[dict[str, Any]] = [
        {"id": f"v{i}", "type": "video", "src": url, "startFrame": i * 30, "durationInFrames": 30}
        for i, url in enumerate(video_urls)
    ]
    clips += [{"id": f"i{i}", "type": "image", "src": url} for i, url in enumerate(image_urls or [])]
    tracks = [{"id": "main", "clips": clips}]
    if audio_urls:
        tracks.append(
            {"id": "music", "clips": [{"type": "audio", "src": url, "volume": 0.8} for url in audio_urls]}
        )
    if with_template:
        tracks.append({"id": "overlay", "clips": [{"type": "template", "templateId": "lower-third"}]})
    return {
        "width": 1080,
        "height": 1920,
        "fps": 30,
        "durationInFrames": duration_in_frames,
        "tracks": tracks,
    }


@pytest_asyncio.fixture
async def timeline_record(test_db: AsyncSession) -> TimelineRecord:
    """A committed timeline with one video, one image, one audio and one template clip."""
    record = TimelineRecord(
        name="Test timeline",
        timeline_data=make_timeline_data(
            video_urls=["https://cdn.example.com/a.mp4"],
            image_urls=["https://images.example.com/logo.png"],
            audio_urls=["https://audio.example.com/track.mp3"],
        ),
    )
    test_db.add(record)
    await test_db.commit()
    return record


async def add_proxy(db: AsyncSession, url: str, status: str, **fields: Any) -> ProxyRecord:
    record = ProxyRecord(original_url=url, status=status, **fields)
    db.add(record)
    await db.commit()
    return record
