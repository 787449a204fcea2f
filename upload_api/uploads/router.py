from typing import Annotated

from fastapi import APIRouter, File, Form, UploadFile, status

from upload_service.exceptions import (
    InvalidStateError,
    MissingChunksError,
    SessionNotFoundError,
)

from ..dependencies import UploadManagerDep
from ..monitoring import (
    CHUNK_BYTES_RECEIVED,
    CHUNKS_RECEIVED,
    UPLOADS_FINISHED,
    UPLOADS_STARTED,
)
from .schemas import (
    CancelUploadResponse,
    ChunkProgressResponse,
    CompleteUploadResponse,
    InitUploadRequest,
    InitUploadResponse,
    UploadStatusResponse,
)

router = APIRouter(
    prefix="/uploads",
    tags=["uploads"],
)

# Handlers are plain functions so FastAPI runs them in its threadpool: they
# block on disk and object store I/O and on per-session locks.


@router.post("", status_code=status.HTTP_201_CREATED, response_model=InitUploadResponse)
def init_upload(request: InitUploadRequest, manager: UploadManagerDep) -> InitUploadResponse:
    created = manager.init_upload(
        filename=request.filename,
        mime_type=request.mime_type,
        declared_size=request.size,
        total_chunks=request.total_chunks,
    )
    UPLOADS_STARTED.inc()
    return InitUploadResponse(session_id=created.session_id, chunk_size=created.chunk_size)


@router.post(
    "/{session_id}/chunks",
    status_code=status.HTTP_200_OK,
    response_model=ChunkProgressResponse,
)
def put_chunk(
    session_id: str,
    index: Annotated[int, Form()],
    chunk: Annotated[UploadFile, File()],
    manager: UploadManagerDep,
) -> ChunkProgressResponse:
    # one byte past the limit is enough to reject an oversized chunk
    data = chunk.file.read(manager.config.max_chunk_bytes + 1)
    progress = manager.put_chunk(session_id, index, data)
    CHUNKS_RECEIVED.inc()
    CHUNK_BYTES_RECEIVED.inc(len(data))
    return ChunkProgressResponse(
        index=index,
        received_count=progress.received_count,
        total_chunks=progress.total_chunks,
        progress=progress.progress,
    )


@router.post(
    "/{session_id}/complete",
    status_code=status.HTTP_200_OK,
    response_model=CompleteUploadResponse,
)
def complete_upload(session_id: str, manager: UploadManagerDep) -> CompleteUploadResponse:
    try:
        result = manager.complete_upload(session_id)
    except (MissingChunksError, InvalidStateError, SessionNotFoundError):
        raise
    except Exception:
        UPLOADS_FINISHED.labels(outcome="failed").inc()
        raise
    UPLOADS_FINISHED.labels(outcome="completed").inc()
    return CompleteUploadResponse(
        url=result.artifact_url, path=result.storage_path, size=result.size
    )


@router.get("/{session_id}", status_code=status.HTTP_200_OK, response_model=UploadStatusResponse)
def get_upload_status(session_id: str, manager: UploadManagerDep) -> UploadStatusResponse:
    return UploadStatusResponse.from_session(manager.get_status(session_id))


@router.delete("/{session_id}", status_code=status.HTTP_200_OK, response_model=CancelUploadResponse)
def cancel_upload(session_id: str, manager: UploadManagerDep) -> CancelUploadResponse:
    manager.cancel_upload(session_id)
    UPLOADS_FINISHED.labels(outcome="cancelled").inc()
    return CancelUploadResponse()
