from pathlib import Path
from typing import Iterator

import pytest
from faker import Faker
from fastapi.testclient import TestClient
from storage_service.object_storage import ObjectStorageService, ObjectStorageServiceConfig
from upload_api.main import create_app
from upload_service.chunk_store import FsspecChunkStore
from upload_service.schemas import UploadServiceConfig
from upload_service.session_manager import UploadSessionManager
from upload_service.session_store import InMemorySessionStore
from upload_service.storage_handoff import StorageHandoff

fake = Faker()


@pytest.fixture(name="manager")
def fixture_manager(tmp_path: Path) -> UploadSessionManager:
    object_store = ObjectStorageService(
        ObjectStorageServiceConfig(
            bucket=f"/artifacts-{fake.uuid4()}",
            protocol="memory",
            public_base_url="https://cdn.example.com",
        )
    )
    object_store.client.makedirs(object_store.config.bucket, exist_ok=True)
    return UploadSessionManager(
        config=UploadServiceConfig(
            scratch_dir=str(tmp_path / "scratch"),
            recommended_chunk_size=4,
            max_chunk_bytes=16,
            max_total_chunks=50,
        ),
        session_store=InMemorySessionStore(),
        chunk_store=FsspecChunkStore(root=f"/chunks-{fake.uuid4()}", protocol="memory"),
        storage_handoff=StorageHandoff(object_store),
    )


@pytest.fixture(name="client")
def fixture_client(manager: UploadSessionManager) -> Iterator[TestClient]:
    with TestClient(create_app(manager=manager, run_gc=False)) as client:
        yield client
