import io
import logging
import shutil
import socket
from dataclasses import dataclass
from typing import Any, BinaryIO
import fsspec


from .exceptions import RequiredBucketNotFoundException

logger = logging.getLogger("object_storage_service")

COPY_BUFFER_BYTES = 1024 * 1024


@dataclass
# pylint: disable=too-many-instance-attributes
class ObjectStorageServiceConfig:
    bucket: str
    protocol: str = "s3"
    s3_endpoint_url: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    public_base_url: str | None = None


class ObjectStorageService:
    """
    Durable object store on top of an fsspec filesystem. `s3` talks to any
    S3-compatible endpoint; `file` and `memory` serve local setups and tests.
    """

    client: Any = None

    def __init__(self, config: ObjectStorageServiceConfig) -> None:
        self.config = config
        if config.protocol == "s3":
            self.client = fsspec.filesystem(
                "s3",
                key=config.s3_access_key,
                secret=config.s3_secret_key,
                client_kwargs={"endpoint_url": config.s3_endpoint_url},
            )
        else:
            self.client = fsspec.filesystem(config.protocol)
        logger.info(
            "Initiated filesystem",
            extra={
                "protocol": config.protocol,
                "bucket": config.bucket,
                "endpoint_url": config.s3_endpoint_url,
            },
        )

    def is_alive(self) -> bool:
        try:
            self.client.ls(path=self.config.bucket)
            return True
        except Exception:  # pylint: disable=broad-exception-caught
            return False

    def has_bucket(self, throw: bool = False) -> bool:
        bucket = self.config.bucket
        try:
            self.client.ls(path=bucket)
            return True
        except Exception as exception:  # pylint: disable=broad-exception-caught
            if throw:
                logger.exception("Bucket not found", extra={"bucket": bucket})
                raise RequiredBucketNotFoundException from exception
            return False

    def put(
        self, key: str, data: bytes | BinaryIO, content_type: str | None = None
    ) -> str:
        """
        Store `data` under `key` and return its public URL. `data` may be raw
        bytes or a binary file object, which is streamed in bounded buffers.
        """
        path = self._object_path(key)
        source = io.BytesIO(data) if isinstance(data, (bytes, bytearray)) else data
        try:
            logger.debug(
                "Uploading object",
                extra={"key": key, "content_type": content_type},
            )
            if self.config.protocol != "s3":
                self.client.makedirs(path.rsplit("/", maxsplit=1)[0], exist_ok=True)
            with self.client.open(
                path, mode="wb", **self._write_options(content_type)
            ) as fobj:
                shutil.copyfileobj(source, fobj, COPY_BUFFER_BYTES)
            logger.debug("Uploaded object", extra={"key": key})
        except Exception as exception:
            logger.exception("Failed to upload object", extra={"key": key})
            raise exception
        return self.public_url(key)

    def delete(self, key: str) -> None:
        path = self._object_path(key)
        try:
            if self.client.exists(path):
                self.client.rm(path)
                logger.debug("Deleted object", extra={"key": key})
        except Exception as exception:
            logger.exception("Failed to delete object", extra={"key": key})
            raise exception

    def read_file(self, key: str, max_tries: int = 3) -> bytes:
        path = self._object_path(key)
        for attempt in range(max_tries):
            try:
                logger.debug("Reading object", extra={"key": key})
                with self.client.open(path, mode="rb") as fobj:
                    content: bytes = fobj.read()
                logger.debug("Object read", extra={"key": key})
                return content
            except FileNotFoundError:
                raise
            except (OSError, socket.error) as exception:
                if attempt == max_tries - 1:
                    logger.exception(
                        "Failed to read object after %d retries",
                        max_tries,
                        extra={"key": key},
                    )
                    raise exception
                logger.warning("Failed to read object, retrying...", extra={"key": key})
        raise NotImplementedError("This should never be reached")

    def public_url(self, key: str) -> str:
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/{key}"
        return f"{self.config.protocol}://{self._object_path(key).lstrip('/')}"

    def _object_path(self, key: str) -> str:
        return f"{self.config.bucket.rstrip('/')}/{key.lstrip('/')}"

    def _write_options(self, content_type: str | None) -> dict[str, Any]:
        if self.config.protocol == "s3" and content_type:
            return {"ContentType": content_type}
        return {}
