class UploadServiceError(Exception):
    """Base class for errors returned by the upload service."""


class InvalidRequestError(UploadServiceError):
    """Malformed init parameters."""


class SessionNotFoundError(UploadServiceError):
    """No upload session exists for the given id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Upload session not found: {session_id}")
        self.session_id = session_id


class InvalidStateError(UploadServiceError):
    """Operation is not valid for the current session status."""


class InvalidIndexError(UploadServiceError):
    """Chunk index is outside [0, total_chunks)."""


class ChunkTooLargeError(UploadServiceError):
    """Chunk exceeds the hard per-chunk byte limit."""


class MissingChunksError(UploadServiceError):
    """
    Not every chunk has been received.
    `missing` holds the absent indices in ascending order, so the client
    can resend exactly those.
    """

    def __init__(self, missing: list[int], received_count: int, total_chunks: int):
        super().__init__(f"Missing {len(missing)} of {total_chunks} chunks")
        self.missing = missing
        self.received_count = received_count
        self.total_chunks = total_chunks


class StorageUploadFailedError(UploadServiceError):
    """The object store rejected the assembled artifact."""
