import os
import secrets
import time
from pathlib import PurePosixPath

from storage_service.object_storage import ObjectStorageService

from .exceptions import StorageUploadFailedError
from .logger import logger
from .models.upload_dto import AssembledArtifact
from .models.upload_session import UploadResult

KEY_PREFIX = "uploads"


def build_storage_key(filename: str) -> str:
    """
    Key of the form `uploads/<epoch ms>_<16 hex><ext>`. It carries nothing
    from the session id, so public paths do not leak it.
    """
    extension = PurePosixPath(filename.replace("\\", "/")).suffix.lower()
    return f"{KEY_PREFIX}/{int(time.time() * 1000)}_{secrets.token_hex(8)}{extension}"


class StorageHandoff:
    def __init__(self, object_store: ObjectStorageService) -> None:
        self.object_store = object_store

    def upload(
        self, artifact: AssembledArtifact, filename: str, mime_type: str
    ) -> UploadResult:
        """
        Stream the assembled artifact to the object store. The local scratch
        file is removed whatever the outcome.
        """
        storage_path = build_storage_key(filename)
        try:
            with open(artifact.path, "rb") as source:
                artifact_url = self.object_store.put(storage_path, source, mime_type)
        except Exception as exception:
            logger.exception(
                "Storage upload failed", extra={"storage_path": storage_path}
            )
            self._remove_partial_object(storage_path)
            raise StorageUploadFailedError(
                f"Storage upload failed: {exception}"
            ) from exception
        finally:
            if os.path.exists(artifact.path):
                os.remove(artifact.path)

        logger.info(
            "Artifact handed off",
            extra={"storage_path": storage_path, "size": artifact.size},
        )
        return UploadResult(
            artifact_url=artifact_url, storage_path=storage_path, size=artifact.size
        )

    def _remove_partial_object(self, storage_path: str) -> None:
        try:
            self.object_store.delete(storage_path)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.warning(
                "Could not remove partial object", extra={"storage_path": storage_path}
            )
