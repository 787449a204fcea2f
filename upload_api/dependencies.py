from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from redis_service.redis import RedisService
from storage_service.object_storage import ObjectStorageService
from upload_service.chunk_store import FsspecChunkStore
from upload_service.session_manager import UploadSessionManager
from upload_service.session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionStore,
)
from upload_service.storage_handoff import StorageHandoff

from .config import Settings, get_settings

SettingsDep = Annotated[Settings, Depends(get_settings)]


def build_session_store(settings: Settings) -> SessionStore:
    if settings.SESSION_STORE_BACKEND == "redis":
        return RedisSessionStore(
            RedisService(settings.redis_config()), key_prefix=settings.REDIS_KEY_PREFIX
        )
    return InMemorySessionStore()


def build_upload_manager(settings: Settings) -> UploadSessionManager:
    object_store = ObjectStorageService(settings.object_storage_config())
    if settings.OBJECT_STORE_PROTOCOL == "s3":
        object_store.has_bucket(throw=True)
    return UploadSessionManager(
        config=settings.upload_service_config(),
        session_store=build_session_store(settings),
        chunk_store=FsspecChunkStore(
            root=settings.CHUNK_STORE_ROOT, protocol=settings.CHUNK_STORE_PROTOCOL
        ),
        storage_handoff=StorageHandoff(object_store),
        gc_config=settings.gc_config(),
    )


@lru_cache()
def get_upload_manager() -> UploadSessionManager:
    return build_upload_manager(get_settings())


UploadManagerDep = Annotated[UploadSessionManager, Depends(get_upload_manager)]
