from uuid import uuid4

from .assembler import Assembler
from .chunk_store import ChunkStore
from .exceptions import (
    ChunkTooLargeError,
    InvalidIndexError,
    InvalidRequestError,
    InvalidStateError,
    MissingChunksError,
    SessionNotFoundError,
)
from .garbage_collector import GarbageCollector
from .locks import SessionLocks
from .logger import logger
from .models.upload_dto import ChunkProgressDto, InitUploadDto
from .models.upload_session import UploadResult, UploadSession
from .models.upload_status import UploadStatus
from .schemas import GarbageCollectorConfig, UploadServiceConfig
from .session_store import SessionStore
from .storage_handoff import StorageHandoff


class UploadSessionManager:
    """
    Owns the upload session state machine:

        uploading -> completing -> completed
                          |
                          +-> failed -> completing (retry)
                          +-> uploading (chunk bytes lost, resend)
        uploading | failed -> cancelled

    Every metadata mutation of a session happens under that session's lock.
    Assembly and handoff run outside the lock once the session is marked
    `completing`, which keeps concurrent completes and cancels out.
    """

    def __init__(  # pylint: disable=too-many-arguments, too-many-positional-arguments
        self,
        config: UploadServiceConfig,
        session_store: SessionStore,
        chunk_store: ChunkStore,
        storage_handoff: StorageHandoff,
        gc_config: GarbageCollectorConfig | None = None,
    ) -> None:
        self.config = config
        self.session_store = session_store
        self.chunk_store = chunk_store
        self.storage_handoff = storage_handoff
        self.locks = SessionLocks(shared_lock=session_store.lock)
        self.assembler = Assembler(
            chunk_store, config.scratch_dir, config.copy_buffer_bytes
        )
        self.garbage_collector = GarbageCollector(
            session_store=session_store,
            chunk_store=chunk_store,
            locks=self.locks,
            config=gc_config or GarbageCollectorConfig(),
            scratch_dir=config.scratch_dir,
        )

    def init_upload(
        self,
        filename: str,
        mime_type: str | None,
        declared_size: int,
        total_chunks: int,
    ) -> InitUploadDto:
        if not filename:
            raise InvalidRequestError("filename is required")
        if declared_size <= 0:
            raise InvalidRequestError("size must be greater than 0")
        if total_chunks <= 0:
            raise InvalidRequestError("total_chunks must be greater than 0")
        if declared_size > self.config.max_upload_bytes:
            raise InvalidRequestError(
                f"size exceeds the limit of {self.config.max_upload_bytes} bytes"
            )
        if total_chunks > self.config.max_total_chunks:
            raise InvalidRequestError(
                f"total_chunks exceeds the limit of {self.config.max_total_chunks}"
            )

        session = UploadSession(
            id=uuid4().hex,
            filename=filename,
            mime_type=mime_type or self.config.default_mime_type,
            declared_size=declared_size,
            total_chunks=total_chunks,
            chunk_size=self.config.recommended_chunk_size,
        )
        self.session_store.create(session)
        logger.info(
            "Upload session created",
            extra={
                "session_id": session.id,
                "file_name": filename,
                "declared_size": declared_size,
                "total_chunks": total_chunks,
            },
        )
        return InitUploadDto(session_id=session.id, chunk_size=session.chunk_size)

    def put_chunk(self, session_id: str, index: int, data: bytes) -> ChunkProgressDto:
        with self.locks.hold(session_id):
            session = self._load(session_id)
            if session.status != UploadStatus.UPLOADING:
                raise InvalidStateError(
                    f"Upload session is {session.status.value}, chunks are not accepted"
                )
            if not 0 <= index < session.total_chunks:
                raise InvalidIndexError(
                    f"Invalid chunk index {index}. "
                    f"Must be between 0 and {session.total_chunks - 1}"
                )
            if len(data) > self.config.max_chunk_bytes:
                raise ChunkTooLargeError(
                    f"Chunk of {len(data)} bytes exceeds the limit of "
                    f"{self.config.max_chunk_bytes} bytes"
                )

            # bytes first: a crash before the save leaves an unrecorded chunk,
            # never a recorded index without bytes
            self.chunk_store.put(session_id, index, data)
            self.session_store.add_chunk(session_id, index)
            session.received_chunks.add(index)
            session.touch()
            self.session_store.save(session)

        logger.debug(
            "Chunk received",
            extra={
                "session_id": session_id,
                "index": index,
                "received_count": session.received_count,
                "total_chunks": session.total_chunks,
            },
        )
        return ChunkProgressDto(
            received_count=session.received_count,
            total_chunks=session.total_chunks,
            progress=session.progress,
        )

    def complete_upload(self, session_id: str) -> UploadResult:
        with self.locks.hold(session_id):
            session = self._load(session_id)
            if session.status == UploadStatus.COMPLETED and session.result:
                logger.debug(
                    "Upload already completed", extra={"session_id": session_id}
                )
                return session.result
            if session.status not in (UploadStatus.UPLOADING, UploadStatus.FAILED):
                raise InvalidStateError(
                    f"Upload session is {session.status.value}, cannot complete"
                )
            missing = session.missing_chunks()
            if missing:
                raise MissingChunksError(
                    missing, session.received_count, session.total_chunks
                )
            session.status = UploadStatus.COMPLETING
            session.error = None
            session.touch()
            self.session_store.save(session)

        logger.info("Completing upload", extra={"session_id": session_id})
        try:
            artifact = self.assembler.assemble(session)
            result = self.storage_handoff.upload(
                artifact, session.filename, session.mime_type
            )
        except MissingChunksError as exception:
            self._reopen(session_id, exception.missing)
            raise
        except Exception as exception:
            self._mark_failed(session_id, exception)
            raise

        with self.locks.hold(session_id):
            session = self._load(session_id)
            session.status = UploadStatus.COMPLETED
            session.result = result
            session.touch()
            self.session_store.save(session)
            self.garbage_collector.release_chunks(session_id)

        logger.info(
            "Upload completed",
            extra={
                "session_id": session_id,
                "storage_path": result.storage_path,
                "size": result.size,
            },
        )
        return result

    def cancel_upload(self, session_id: str) -> None:
        with self.locks.hold(session_id):
            session = self.session_store.get(session_id)
            if session is None or session.status == UploadStatus.CANCELLED:
                logger.debug(
                    "Nothing to cancel", extra={"session_id": session_id}
                )
                return
            if session.status in (UploadStatus.COMPLETED, UploadStatus.COMPLETING):
                raise InvalidStateError(
                    f"Upload session is {session.status.value}, cannot cancel"
                )
            # a tombstone stays until the garbage collector expires it, so late
            # chunk writes are rejected instead of recreating the session
            session.status = UploadStatus.CANCELLED
            self.session_store.remove_chunks(session_id, session.received_chunks)
            session.received_chunks.clear()
            session.touch()
            self.session_store.save(session)
            self.garbage_collector.release_chunks(session_id)
        logger.info("Upload cancelled", extra={"session_id": session_id})

    def get_status(self, session_id: str) -> UploadSession:
        return self._load(session_id)

    def recover(self) -> list[str]:
        """
        Repair sessions after a restart. Sessions interrupted while
        `completing` become `failed` and must be completed again. Recorded
        indices whose chunk bytes are gone are dropped and the session goes
        back to `uploading` so the client can resend them. Returns the ids
        of the sessions that were changed.
        """
        recovered = []
        for session_id in self.session_store.list_session_ids():
            with self.locks.hold(session_id):
                session = self.session_store.get(session_id)
                if session is None:
                    continue
                changed = False
                if session.status == UploadStatus.COMPLETING:
                    session.status = UploadStatus.FAILED
                    session.error = "Interrupted during assembly"
                    changed = True
                if session.status in (UploadStatus.UPLOADING, UploadStatus.FAILED):
                    stored = set(self.chunk_store.list_indices(session_id))
                    lost = session.received_chunks - stored
                    if lost:
                        self.session_store.remove_chunks(session_id, lost)
                        session.received_chunks -= lost
                        session.status = UploadStatus.UPLOADING
                        session.error = None
                        changed = True
                        logger.warning(
                            "Dropped chunk records without bytes",
                            extra={"session_id": session_id, "indices": sorted(lost)},
                        )
                if changed:
                    session.touch()
                    self.session_store.save(session)
                    recovered.append(session_id)
        logger.info("Session recovery finished", extra={"recovered": len(recovered)})
        return recovered

    def _reopen(self, session_id: str, missing: list[int]) -> None:
        """Forget chunks whose bytes are gone and accept them again."""
        with self.locks.hold(session_id):
            session = self.session_store.get(session_id)
            if session is None:
                return
            self.session_store.remove_chunks(session_id, missing)
            session.received_chunks.difference_update(missing)
            session.status = UploadStatus.UPLOADING
            session.error = None
            session.touch()
            self.session_store.save(session)
        logger.warning(
            "Chunk bytes missing at assembly, upload reopened",
            extra={"session_id": session_id, "missing": missing},
        )

    def _mark_failed(self, session_id: str, exception: Exception) -> None:
        with self.locks.hold(session_id):
            session = self.session_store.get(session_id)
            if session is None:
                return
            session.status = UploadStatus.FAILED
            session.error = str(exception)
            session.touch()
            self.session_store.save(session)
        logger.error(
            "Upload failed", extra={"session_id": session_id, "error": str(exception)}
        )

    def _load(self, session_id: str) -> UploadSession:
        session = self.session_store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session
