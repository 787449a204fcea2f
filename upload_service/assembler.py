import os
import shutil
import tempfile
from pathlib import Path

from .chunk_store import ChunkStore
from .exceptions import MissingChunksError
from .logger import logger
from .models.upload_dto import AssembledArtifact
from .models.upload_session import UploadSession


class Assembler:
    """
    Concatenates a session's chunks, in ascending index order, into a scratch
    file. Chunks are copied in bounded buffers so memory use does not depend
    on the artifact size. Chunk bytes are left in place; they are purged only
    after the artifact has been handed off, so a failed attempt can be
    retried from the same chunks.
    """

    def __init__(
        self, chunk_store: ChunkStore, scratch_dir: str, copy_buffer_bytes: int
    ) -> None:
        self.chunk_store = chunk_store
        self.scratch_dir = Path(scratch_dir)
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        self.copy_buffer_bytes = copy_buffer_bytes

    def assemble(self, session: UploadSession) -> AssembledArtifact:
        missing = session.missing_chunks()
        if missing:
            raise MissingChunksError(
                missing, session.received_count, session.total_chunks
            )

        fd, path = tempfile.mkstemp(
            dir=self.scratch_dir, prefix=f"{session.id}_", suffix=".merged"
        )
        logger.debug(
            "Assembling chunks",
            extra={"session_id": session.id, "total_chunks": session.total_chunks},
        )
        try:
            with os.fdopen(fd, "wb") as artifact:
                for index in range(session.total_chunks):
                    try:
                        chunk = self.chunk_store.open(session.id, index)
                    except FileNotFoundError as exception:
                        lost = self._missing_bytes(session) or [index]
                        raise MissingChunksError(
                            lost, session.total_chunks - len(lost), session.total_chunks
                        ) from exception
                    with chunk:
                        shutil.copyfileobj(chunk, artifact, self.copy_buffer_bytes)
                size = artifact.tell()
        except Exception:
            logger.exception("Failed to assemble chunks", extra={"session_id": session.id})
            self.discard(path)
            raise

        logger.info(
            "Assembled artifact",
            extra={"session_id": session.id, "path": path, "size": size},
        )
        return AssembledArtifact(path=path, size=size)

    def discard(self, path: str) -> None:
        Path(path).unlink(missing_ok=True)

    def _missing_bytes(self, session: UploadSession) -> list[int]:
        return [
            index
            for index in range(session.total_chunks)
            if not self.chunk_store.exists(session.id, index)
        ]
