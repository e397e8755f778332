"""
Runtime settings: webhook, message template and branding.

Stored in the active backend; defaults apply until an administrator saves.
"""

import logging

from incident_backend.app.core.permissions import CallerSession, Capability, require_capability
from incident_backend.app.schemas.admin import AppSettings, AppSettingsUpdate
from incident_backend.app.storage.base import StorageBackend

logger = logging.getLogger(__name__)


async def get_app_settings(backend: StorageBackend) -> AppSettings:
    return await backend.load_settings() or AppSettings()


async def update_app_settings(
    backend: StorageBackend,
    session: CallerSession,
    changes: AppSettingsUpdate,
) -> AppSettings:
    require_capability(session, Capability.MANAGE_USERS)
    current = await get_app_settings(backend)
    merged = current.model_copy(update=changes.model_dump(exclude_unset=True, exclude_none=True))
    saved = await backend.save_settings(merged)
    logger.info("Runtime settings updated by %s", session.username)
    return saved
