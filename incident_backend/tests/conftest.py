"""
Centralized Test Configuration.

Backends run against in-process doubles: a dict-backed Redis, an in-memory
SQLite database and an httpx.MockTransport that plays both the image bucket
and the chat webhook.
"""

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from incident_backend.app.core.permissions import CallerSession
from incident_backend.app.db.session import Base
from incident_backend.app.models.enums import UserRole
from incident_backend.app.schemas.admin import AppSettings
from incident_backend.app.services.images import ImagePipeline
from incident_backend.app.services.notification_service import NotificationService
from incident_backend.app.services.records import RecordService
from incident_backend.app.storage.blobs import HttpBlobStore
from incident_backend.app.storage.local import LocalBackend
from incident_backend.app.storage.remote import RemoteBackend
from incident_backend.tests.support import (
    BUCKET,
    BUCKET_BASE_URL,
    WEBHOOK_URL,
    FakeRemoteServices,
    MockRedis,
    image_data_url,
    make_session,
)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Images

@pytest.fixture(scope="session")
def oversized_image() -> str:
    """A 2400x1600 uncompressed bitmap, far over the default byte budget."""
    return image_data_url(2400, 1600, image_format="BMP")


@pytest.fixture(scope="session")
def small_image() -> str:
    return image_data_url(64, 48)


# Sessions

@pytest.fixture
def admin_session() -> CallerSession:
    return make_session(UserRole.ADMIN, "admin_user")


@pytest.fixture
def owner_session() -> CallerSession:
    return make_session(UserRole.ADMIN, "owner", is_owner=True)


@pytest.fixture
def officer_session() -> CallerSession:
    return make_session(UserRole.OFFICER, "officer_user")


@pytest.fixture
def org_owner_session() -> CallerSession:
    return make_session(UserRole.ORG_OWNER, "org_user")


@pytest.fixture
def pending_session() -> CallerSession:
    return make_session(UserRole.PENDING, "pending_user")


# Backends and services

@pytest.fixture
def mock_redis() -> MockRedis:
    return MockRedis()


@pytest.fixture
def local_backend(mock_redis) -> LocalBackend:
    return LocalBackend(mock_redis, key_prefix="test:", quota_bytes=10 * 1024 * 1024, audit_max_entries=500)


@pytest.fixture
def remote_services() -> FakeRemoteServices:
    return FakeRemoteServices()


@pytest.fixture
async def http_client(remote_services):
    async with httpx.AsyncClient(transport=httpx.MockTransport(remote_services)) as client:
        yield client


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def blob_store(http_client) -> HttpBlobStore:
    return HttpBlobStore(http_client, BUCKET_BASE_URL, BUCKET, api_key="service-key")


@pytest.fixture
def remote_backend(session_factory, blob_store) -> RemoteBackend:
    return RemoteBackend(session_factory, blob_store, quota_bytes=1000 * 1024 * 1024)


@pytest.fixture
def pipeline() -> ImagePipeline:
    return ImagePipeline()


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(webhook_url=WEBHOOK_URL)


@pytest.fixture
def record_service(local_backend, pipeline, http_client) -> RecordService:
    return RecordService(local_backend, pipeline, NotificationService(http_client))


@pytest.fixture
def remote_record_service(remote_backend, pipeline, http_client) -> RecordService:
    return RecordService(remote_backend, pipeline, NotificationService(http_client))
