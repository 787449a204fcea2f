from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from upload_service.exceptions import (
    ChunkTooLargeError,
    InvalidIndexError,
    InvalidRequestError,
    InvalidStateError,
    MissingChunksError,
    SessionNotFoundError,
    StorageUploadFailedError,
    UploadServiceError,
)

from .logger import logger

STATUS_BY_ERROR: dict[type[UploadServiceError], int] = {
    InvalidRequestError: status.HTTP_400_BAD_REQUEST,
    InvalidIndexError: status.HTTP_400_BAD_REQUEST,
    ChunkTooLargeError: status.HTTP_400_BAD_REQUEST,
    MissingChunksError: status.HTTP_400_BAD_REQUEST,
    SessionNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_409_CONFLICT,
    StorageUploadFailedError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_response(status_code: int, detail: str, **extra: object) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, **extra})


async def upload_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    status_code = STATUS_BY_ERROR.get(
        type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    if isinstance(exc, MissingChunksError):
        return error_response(
            status_code,
            "Missing chunks",
            missing=exc.missing,
            received_count=exc.received_count,
            total_chunks=exc.total_chunks,
        )
    if status_code >= 500:
        logger.error("Upload request failed", extra={"error": str(exc)})
    return error_response(status_code, str(exc))


async def validation_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        "Invalid request",
        errors=[
            {"loc": list(error.get("loc", [])), "msg": error.get("msg", "")}
            for error in errors
        ],
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(UploadServiceError, upload_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
