# mypy: disable-error-code=method-assign
# pylint: disable=import-error
import io
from unittest.mock import MagicMock, patch

import pytest
from faker import Faker
from storage_service.exceptions import RequiredBucketNotFoundException  # type: ignore[import-not-found]
from storage_service.object_storage import ObjectStorageService, ObjectStorageServiceConfig  # type: ignore[import-not-found]

fake = Faker()


@patch("fsspec.filesystem")
def test_init(
    fsspec_client: MagicMock, object_storage_config: ObjectStorageServiceConfig
) -> None:
    ObjectStorageService(object_storage_config)

    fsspec_client.assert_called_once_with(
        "s3",
        key=object_storage_config.s3_access_key,
        secret=object_storage_config.s3_secret_key,
        client_kwargs={"endpoint_url": object_storage_config.s3_endpoint_url},
    )


@patch("fsspec.filesystem")
def test_init_other_protocol(fsspec_client: MagicMock) -> None:
    ObjectStorageService(ObjectStorageServiceConfig(bucket="/artifacts", protocol="file"))

    fsspec_client.assert_called_once_with("file")


@pytest.fixture(name="object_storage_service")
@patch("fsspec.filesystem")
def fixture_object_storage_service(
    fsspec_client: MagicMock, object_storage_config: ObjectStorageServiceConfig
) -> ObjectStorageService:
    fsspec_client.return_value = MagicMock()
    return ObjectStorageService(object_storage_config)


def test_has_bucket_exists(object_storage_service: ObjectStorageService) -> None:
    assert object_storage_service.has_bucket() is True
    object_storage_service.client.ls.assert_called_once_with(
        path=object_storage_service.config.bucket
    )


def test_has_bucket_no_throw_not_exists(
    object_storage_service: ObjectStorageService,
) -> None:
    object_storage_service.client.ls.side_effect = Exception()

    assert object_storage_service.has_bucket(throw=False) is False
    assert object_storage_service.is_alive() is False


def test_has_bucket_throw_not_exists(
    object_storage_service: ObjectStorageService,
) -> None:
    object_storage_service.client.ls.side_effect = Exception()

    with pytest.raises(RequiredBucketNotFoundException):
        object_storage_service.has_bucket(throw=True)


def test_put_bytes_sets_content_type(
    object_storage_service: ObjectStorageService,
) -> None:
    target = io.BytesIO()
    object_storage_service.client.open.return_value.__enter__.return_value = target
    payload = fake.binary(length=64)
    bucket = object_storage_service.config.bucket

    object_storage_service.put("uploads/a.png", payload, "image/png")

    object_storage_service.client.open.assert_called_once_with(
        f"{bucket}/uploads/a.png", mode="wb", ContentType="image/png"
    )
    object_storage_service.client.makedirs.assert_not_called()
    assert target.getvalue() == payload


def test_put_exception(object_storage_service: ObjectStorageService) -> None:
    object_storage_service.client.open.side_effect = RuntimeError("write failed")

    with pytest.raises(RuntimeError):
        object_storage_service.put(fake.file_name(), io.BytesIO(b"data"))


def test_delete(object_storage_service: ObjectStorageService) -> None:
    bucket = object_storage_service.config.bucket
    object_storage_service.client.exists.return_value = True

    object_storage_service.delete("uploads/a.png")

    object_storage_service.client.rm.assert_called_once_with(f"{bucket}/uploads/a.png")


def test_delete_missing_object(object_storage_service: ObjectStorageService) -> None:
    object_storage_service.client.exists.return_value = False

    object_storage_service.delete("uploads/a.png")

    object_storage_service.client.rm.assert_not_called()


def test_read_file_retries(object_storage_service: ObjectStorageService) -> None:
    reader = MagicMock()
    reader.__enter__.return_value.read.return_value = b"content"
    object_storage_service.client.open.side_effect = [OSError("flaky"), reader]

    assert object_storage_service.read_file("key") == b"content"
    assert object_storage_service.client.open.call_count == 2


def test_read_file_gives_up(object_storage_service: ObjectStorageService) -> None:
    object_storage_service.client.open.side_effect = OSError("down")

    with pytest.raises(OSError):
        object_storage_service.read_file("key", max_tries=2)
    assert object_storage_service.client.open.call_count == 2


def test_read_file_missing_is_not_retried(
    object_storage_service: ObjectStorageService,
) -> None:
    object_storage_service.client.open.side_effect = FileNotFoundError("key")

    with pytest.raises(FileNotFoundError):
        object_storage_service.read_file("key")
    object_storage_service.client.open.assert_called_once()


def test_public_url(object_storage_config: ObjectStorageServiceConfig) -> None:
    object_storage_config.public_base_url = "https://cdn.example.com/"
    with patch("fsspec.filesystem"):
        service = ObjectStorageService(object_storage_config)

    assert service.public_url("uploads/a.png") == "https://cdn.example.com/uploads/a.png"

    service.config.public_base_url = None
    assert (
        service.public_url("uploads/a.png")
        == f"s3://{object_storage_config.bucket}/uploads/a.png"
    )


def test_memory_filesystem_roundtrip() -> None:
    service = ObjectStorageService(
        ObjectStorageServiceConfig(bucket=f"/bucket-{fake.uuid4()}", protocol="memory")
    )
    payload = fake.binary(length=300)

    url = service.put("uploads/nested/file.bin", io.BytesIO(payload))

    assert service.has_bucket() is True
    assert service.read_file("uploads/nested/file.bin") == payload
    assert url == f"memory://{service.config.bucket.lstrip('/')}/uploads/nested/file.bin"

    service.delete("uploads/nested/file.bin")
    with pytest.raises(FileNotFoundError):
        service.read_file("uploads/nested/file.bin")
