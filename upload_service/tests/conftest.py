from pathlib import Path

import pytest
from faker import Faker
from storage_service.object_storage import ObjectStorageService, ObjectStorageServiceConfig
from upload_service.chunk_store import FsspecChunkStore
from upload_service.schemas import GarbageCollectorConfig, UploadServiceConfig
from upload_service.session_manager import UploadSessionManager
from upload_service.session_store import InMemorySessionStore
from upload_service.storage_handoff import StorageHandoff

fake = Faker()

PUBLIC_BASE_URL = "https://cdn.example.com"
MAX_CHUNK_BYTES = 1024


@pytest.fixture(name="scratch_dir")
def fixture_scratch_dir(tmp_path: Path) -> Path:
    return tmp_path / "scratch"


@pytest.fixture(name="upload_config")
def fixture_upload_config(scratch_dir: Path) -> UploadServiceConfig:
    return UploadServiceConfig(
        scratch_dir=str(scratch_dir),
        max_chunk_bytes=MAX_CHUNK_BYTES,
        max_upload_bytes=100 * 1024 * 1024,
        max_total_chunks=100,
        copy_buffer_bytes=7,
    )


@pytest.fixture(name="gc_config")
def fixture_gc_config() -> GarbageCollectorConfig:
    return GarbageCollectorConfig(
        terminal_retention_seconds=60,
        abandoned_ttl_seconds=3600,
        sweep_interval_seconds=1,
    )


@pytest.fixture(name="chunk_store")
def fixture_chunk_store() -> FsspecChunkStore:
    return FsspecChunkStore(root=f"/chunks-{fake.uuid4()}", protocol="memory")


@pytest.fixture(name="session_store")
def fixture_session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture(name="object_store")
def fixture_object_store() -> ObjectStorageService:
    return ObjectStorageService(
        ObjectStorageServiceConfig(
            bucket=f"/artifacts-{fake.uuid4()}",
            protocol="memory",
            public_base_url=PUBLIC_BASE_URL,
        )
    )


@pytest.fixture(name="manager")
def fixture_manager(  # pylint: disable=too-many-arguments, too-many-positional-arguments
    upload_config: UploadServiceConfig,
    gc_config: GarbageCollectorConfig,
    session_store: InMemorySessionStore,
    chunk_store: FsspecChunkStore,
    object_store: ObjectStorageService,
) -> UploadSessionManager:
    return UploadSessionManager(
        config=upload_config,
        session_store=session_store,
        chunk_store=chunk_store,
        storage_handoff=StorageHandoff(object_store),
        gc_config=gc_config,
    )
