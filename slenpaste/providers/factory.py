from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from slenpaste.admission.limiter import AdmissionController
from slenpaste.core.errors import ValidationError
from slenpaste.core.settings import RateLimitSettings, Settings, StorageSettings
from slenpaste.pastes.policy import parse_selector
from slenpaste.pastes.store import PasteStore
from slenpaste.providers.storage import StorageProvider

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Providers:
    """
    Central container for runtime collaborators.

    Built once at startup and attached to app.state; request handlers reach
    it through slenpaste.core.deps.
    """
    settings: Settings
    storage: StorageProvider
    store: PasteStore
    limiter: Optional[AdmissionController]


def build_storage(settings: StorageSettings) -> StorageProvider:
    if settings.provider == "s3":
        from slenpaste.providers.impl.storage_s3 import S3StorageProvider

        return S3StorageProvider.from_settings(settings)
    if settings.provider == "minio":
        from slenpaste.providers.impl.storage_minio import MinioStorageProvider

        return MinioStorageProvider.from_settings(settings)

    from slenpaste.providers.impl.storage_local_files import LocalFilesStorageProvider

    return LocalFilesStorageProvider(settings.local_dir)


def build_limiter(settings: RateLimitSettings) -> Optional[AdmissionController]:
    if not settings.enabled:
        log.warning("Rate limiting disabled (RATE_LIMIT_ENABLED=0)")
        return None
    return AdmissionController(
        capacity=settings.capacity,
        refill_seconds=settings.refill_seconds,
        max_clients=settings.max_clients,
        idle_ttl_seconds=settings.idle_ttl_seconds,
    )


def build_providers(settings: Settings, storage: Optional[StorageProvider] = None) -> Providers:
    # Fail at startup, not on the first upload, if DEFAULT_EXPIRY is bad.
    try:
        parse_selector(settings.pastes.default_expiry, now=datetime.now(timezone.utc))
    except ValidationError as exc:
        raise RuntimeError(f"Invalid DEFAULT_EXPIRY {settings.pastes.default_expiry!r}: {exc}") from exc

    storage = storage or build_storage(settings.storage)
    store = PasteStore(
        storage,
        id_length=settings.pastes.id_length,
        id_attempts=settings.pastes.id_attempts,
        chunk_size=settings.pastes.chunk_size,
        max_upload_bytes=settings.pastes.max_upload_bytes,
    )
    log.info("Storage provider: %s", storage.name)

    return Providers(
        settings=settings,
        storage=storage,
        store=store,
        limiter=build_limiter(settings.rate_limit),
    )
