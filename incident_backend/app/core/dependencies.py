"""
FastAPI dependencies: backend selection, service factories and authentication.

The storage backend and the shared httpx client are created in the
application lifespan and kept on `app.state`; tests replace them through
`app.dependency_overrides`.
"""

import logging

import httpx
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from incident_backend.app.core.config import Settings, settings
from incident_backend.app.core.jwt import decode_access_token
from incident_backend.app.core.permissions import CallerSession, is_active_role
from incident_backend.app.services.images import ImagePipeline
from incident_backend.app.services.notification_service import NotificationService
from incident_backend.app.services.records import RecordService
from incident_backend.app.services.users import UserService, session_for
from incident_backend.app.storage.base import StorageBackend
from incident_backend.app.storage.blobs import HttpBlobStore
from incident_backend.app.storage.local import LocalBackend
from incident_backend.app.storage.remote import RemoteBackend

logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


def build_backend(config: Settings, http_client: httpx.AsyncClient) -> StorageBackend:
    """Instantiate the backend named by `config.storage_backend`."""
    if config.storage_backend == "remote":
        from incident_backend.app.db.session import AsyncSessionLocal

        blobs = HttpBlobStore(http_client, config.blob_base_url, config.blob_bucket, config.blob_api_key)
        return RemoteBackend(AsyncSessionLocal, blobs, config.remote_quota_bytes)

    from incident_backend.app.core.redis_client import redis_client

    return LocalBackend(
        redis_client,
        key_prefix=config.local_key_prefix,
        quota_bytes=config.local_quota_bytes,
        audit_max_entries=config.audit_log_max_entries,
    )


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_backend(request: Request) -> StorageBackend:
    return request.app.state.backend


def get_image_pipeline() -> ImagePipeline:
    return ImagePipeline.from_settings(settings)


def get_user_service(backend: StorageBackend = Depends(get_backend)) -> UserService:
    return UserService(backend, online_window_minutes=settings.online_window_minutes)


def get_record_service(
    backend: StorageBackend = Depends(get_backend),
    http_client: httpx.AsyncClient = Depends(get_http_client),
    pipeline: ImagePipeline = Depends(get_image_pipeline),
) -> RecordService:
    return RecordService(
        backend,
        pipeline,
        NotificationService(http_client),
        quota_warning_ratio=settings.quota_warning_ratio,
    )


async def get_current_session(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    users: UserService = Depends(get_user_service),
) -> CallerSession:
    """
    Resolve the bearer token into a CallerSession.

    The account is re-read on every request:
    1. Token signature and expiry are validated
    2. The account must still exist (401 otherwise)
    3. Pending accounts are refused (403)
    4. Last activity is stamped for the online-users view
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None or not payload.get("user_id"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    account = await users.backend.get_user(payload["user_id"])
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not is_active_role(account.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is awaiting administrator approval",
        )

    await users.touch_activity(account.id)
    return session_for(account)
