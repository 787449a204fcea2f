import re
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from faker import Faker
from storage_service.object_storage import ObjectStorageService
from upload_service.exceptions import StorageUploadFailedError
from upload_service.models.upload_dto import AssembledArtifact
from upload_service.storage_handoff import StorageHandoff, build_storage_key

fake = Faker()

STORAGE_KEY_PATTERN = re.compile(r"^uploads/\d{13}_[0-9a-f]{16}(\.[a-z0-9]+)?$")


@pytest.fixture(name="artifact")
def fixture_artifact(tmp_path: Path) -> AssembledArtifact:
    path = tmp_path / "session_merged"
    payload = fake.binary(length=128)
    path.write_bytes(payload)
    return AssembledArtifact(path=str(path), size=len(payload))


@pytest.mark.parametrize(
    "filename, extension",
    [("photo.PNG", ".png"), ("archive.tar.gz", ".gz"), ("README", ""), ("dir\\clip.mp4", ".mp4")],
)
def test_build_storage_key(filename: str, extension: str) -> None:
    key = build_storage_key(filename)

    assert STORAGE_KEY_PATTERN.match(key)
    assert key.endswith(extension)


def test_build_storage_key_is_unique() -> None:
    keys = {build_storage_key("a.png") for _ in range(100)}

    assert len(keys) == 100


def test_upload_streams_artifact_and_removes_scratch_file(
    object_store: ObjectStorageService, artifact: AssembledArtifact
) -> None:
    payload = Path(artifact.path).read_bytes()
    handoff = StorageHandoff(object_store)

    result = handoff.upload(artifact, "movie.mp4", "video/mp4")

    assert object_store.read_file(result.storage_path) == payload
    assert result.size == artifact.size
    assert result.storage_path.endswith(".mp4")
    assert result.artifact_url == object_store.public_url(result.storage_path)
    assert not Path(artifact.path).exists()


def test_upload_failure_is_wrapped(artifact: AssembledArtifact) -> None:
    object_store = MagicMock()
    object_store.put.side_effect = ConnectionError("endpoint unreachable")
    handoff = StorageHandoff(object_store)

    with pytest.raises(StorageUploadFailedError, match="endpoint unreachable") as exc_info:
        handoff.upload(artifact, "a.png", "image/png")

    assert isinstance(exc_info.value.__cause__, ConnectionError)
    key = object_store.put.call_args.args[0]
    assert object_store.put.call_args.args[2] == "image/png"
    object_store.delete.assert_called_once_with(key)
    assert not Path(artifact.path).exists()


def test_upload_failure_survives_cleanup_error(artifact: AssembledArtifact) -> None:
    object_store = MagicMock()
    object_store.put.side_effect = OSError("write failed")
    object_store.delete.side_effect = OSError("delete failed")
    handoff = StorageHandoff(object_store)

    with pytest.raises(StorageUploadFailedError, match="write failed"):
        handoff.upload(artifact, "a.png", "image/png")
