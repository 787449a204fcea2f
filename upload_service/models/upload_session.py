from datetime import datetime, timezone

from pydantic import BaseModel, Field

from .upload_status import UploadStatus, TERMINAL_STATUSES  # pylint: disable=relative-beyond-top-level


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UploadResult(BaseModel):
    artifact_url: str = Field(description="Public URL of the stored artifact.")
    storage_path: str = Field(description="Object store key of the artifact.")
    size: int = Field(description="Number of bytes assembled and stored.")


class UploadSession(BaseModel):
    """
    Server-side record of one logical file upload.
    """

    id: str = Field(description="Opaque session id, used as the upload capability.")
    filename: str = Field(description="Client-declared original file name.")
    mime_type: str = Field(description="Client-declared content type.")
    declared_size: int = Field(description="Client-declared size in bytes. Advisory.")
    total_chunks: int = Field(description="Number of chunks fixed at init time.")
    chunk_size: int = Field(description="Recommended chunk size sent to the client.")
    received_chunks: set[int] = Field(default_factory=set)
    status: UploadStatus = UploadStatus.UPLOADING
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    result: UploadResult | None = None
    error: str | None = None

    @property
    def received_count(self) -> int:
        return len(self.received_chunks)

    @property
    def progress(self) -> int:
        # half up, never half to even
        return (200 * self.received_count + self.total_chunks) // (2 * self.total_chunks)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def missing_chunks(self) -> list[int]:
        return sorted(set(range(self.total_chunks)) - self.received_chunks)

    def touch(self) -> None:
        self.updated_at = utc_now()
