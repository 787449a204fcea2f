from abc import ABC, abstractmethod
from typing import Any, BinaryIO

import fsspec

from .logger import logger

CHUNK_PREFIX = "chunk_"
PARTIAL_SUFFIX = ".part"


class ChunkStore(ABC):
    """
    Temporary storage for raw chunk bytes, keyed by (session_id, index).
    """

    @abstractmethod
    def put(self, session_id: str, index: int, data: bytes) -> None: ...

    @abstractmethod
    def open(self, session_id: str, index: int) -> BinaryIO: ...

    @abstractmethod
    def exists(self, session_id: str, index: int) -> bool: ...

    @abstractmethod
    def delete(self, session_id: str, index: int) -> None: ...

    @abstractmethod
    def delete_all(self, session_id: str) -> None: ...

    @abstractmethod
    def list_indices(self, session_id: str) -> list[int]: ...

    @abstractmethod
    def list_sessions(self) -> list[str]: ...

    def get(self, session_id: str, index: int) -> bytes:
        with self.open(session_id, index) as fobj:
            content: bytes = fobj.read()
        return content


class FsspecChunkStore(ChunkStore):
    """
    Chunk store on any fsspec filesystem: local disk ("file"), "memory" for
    tests, or a remote protocol. Chunks live under `<root>/<session_id>/`.
    """

    client: Any = None

    def __init__(self, root: str, protocol: str = "file", **storage_options: Any):
        self.client = fsspec.filesystem(protocol, **storage_options)
        self.root = root.rstrip("/")
        self.client.makedirs(self.root, exist_ok=True)
        logger.info(
            "Initiated chunk store", extra={"protocol": protocol, "root": self.root}
        )

    def put(self, session_id: str, index: int, data: bytes) -> None:
        session_dir = self._session_dir(session_id)
        path = self._chunk_path(session_id, index)
        partial_path = path + PARTIAL_SUFFIX
        try:
            self.client.makedirs(session_dir, exist_ok=True)
            with self.client.open(partial_path, mode="wb") as fobj:
                fobj.write(data)
            # the final name only ever points to a fully written chunk
            self.client.mv(partial_path, path)
            logger.debug(
                "Stored chunk",
                extra={"session_id": session_id, "index": index, "size": len(data)},
            )
        except Exception as exception:
            logger.exception(
                "Failed to store chunk",
                extra={"session_id": session_id, "index": index},
            )
            if self.client.exists(partial_path):
                self.client.rm(partial_path)
            raise exception

    def open(self, session_id: str, index: int) -> BinaryIO:
        path = self._chunk_path(session_id, index)
        if not self.client.exists(path):
            raise FileNotFoundError(path)
        fobj: BinaryIO = self.client.open(path, mode="rb")
        return fobj

    def exists(self, session_id: str, index: int) -> bool:
        return bool(self.client.exists(self._chunk_path(session_id, index)))

    def delete(self, session_id: str, index: int) -> None:
        path = self._chunk_path(session_id, index)
        if self.client.exists(path):
            self.client.rm(path)

    def delete_all(self, session_id: str) -> None:
        session_dir = self._session_dir(session_id)
        if self.client.exists(session_dir):
            self.client.rm(session_dir, recursive=True)
            logger.debug("Deleted session chunks", extra={"session_id": session_id})

    def list_indices(self, session_id: str) -> list[int]:
        session_dir = self._session_dir(session_id)
        if not self.client.exists(session_dir):
            return []
        indices = []
        for path in self.client.ls(session_dir, detail=False):
            name = path.rstrip("/").rsplit("/", maxsplit=1)[-1]
            if not name.startswith(CHUNK_PREFIX) or name.endswith(PARTIAL_SUFFIX):
                continue
            try:
                indices.append(int(name[len(CHUNK_PREFIX) :]))
            except ValueError:
                continue
        return sorted(indices)

    def list_sessions(self) -> list[str]:
        if not self.client.exists(self.root):
            return []
        return sorted(
            path.rstrip("/").rsplit("/", maxsplit=1)[-1]
            for path in self.client.ls(self.root, detail=False)
            if self.client.isdir(path)
        )

    def _session_dir(self, session_id: str) -> str:
        return f"{self.root}/{session_id}"

    def _chunk_path(self, session_id: str, index: int) -> str:
        return f"{self.root}/{session_id}/{CHUNK_PREFIX}{index}"
