from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field

from upload_service.models.upload_session import UploadSession


class InitUploadRequest(BaseModel):
    filename: str = Field(description="Original file name. Its extension is kept.")
    size: int = Field(
        validation_alias=AliasChoices("size", "filesize"),
        description="Declared file size in bytes.",
    )
    mime_type: str | None = Field(
        default=None,
        validation_alias=AliasChoices("mime_type", "mimeType", "mimetype"),
        description="Content type stored with the artifact.",
    )
    total_chunks: int = Field(
        validation_alias=AliasChoices("total_chunks", "totalChunks"),
        description="Number of chunks the client will send.",
    )


class InitUploadResponse(BaseModel):
    session_id: str = Field(description="Upload id used by every later call.")
    chunk_size: int = Field(description="Recommended chunk size in bytes.")


class ChunkProgressResponse(BaseModel):
    index: int
    received_count: int
    total_chunks: int
    progress: int = Field(description="Received chunks, in whole percent.")


class CompleteUploadResponse(BaseModel):
    url: str = Field(description="Public URL of the stored file.")
    path: str = Field(description="Object store key of the stored file.")
    size: int = Field(description="Size of the stored file in bytes.")


class UploadStatusResponse(BaseModel):
    # pylint: disable=too-many-instance-attributes
    session_id: str
    filename: str
    mime_type: str
    declared_size: int
    total_chunks: int
    chunk_size: int
    status: str
    received_chunks: list[int]
    received_count: int
    progress: int
    created_at: datetime
    updated_at: datetime
    result: CompleteUploadResponse | None = None
    error: str | None = None

    @classmethod
    def from_session(cls, session: UploadSession) -> "UploadStatusResponse":
        result = None
        if session.result is not None:
            result = CompleteUploadResponse(
                url=session.result.artifact_url,
                path=session.result.storage_path,
                size=session.result.size,
            )
        return cls(
            session_id=session.id,
            filename=session.filename,
            mime_type=session.mime_type,
            declared_size=session.declared_size,
            total_chunks=session.total_chunks,
            chunk_size=session.chunk_size,
            status=session.status.value,
            received_chunks=sorted(session.received_chunks),
            received_count=session.received_count,
            progress=session.progress,
            created_at=session.created_at,
            updated_at=session.updated_at,
            result=result,
            error=session.error,
        )


class CancelUploadResponse(BaseModel):
    success: bool = True
