from abc import ABC, abstractmethod
from contextlib import AbstractContextManager, nullcontext
from threading import Lock
from typing import Iterable

from redis_service.redis import RedisService

from .logger import logger
from .models.upload_session import UploadSession


class SessionStore(ABC):
    """
    Durable home of `UploadSession` records. `save` writes every field except
    `received_chunks`; indices only change through `add_chunk` and
    `remove_chunks`, so writers of different chunks never overwrite each
    other's records.
    """

    @abstractmethod
    def create(self, session: UploadSession) -> None: ...

    @abstractmethod
    def get(self, session_id: str) -> UploadSession | None: ...

    @abstractmethod
    def save(self, session: UploadSession) -> None: ...

    @abstractmethod
    def add_chunk(self, session_id: str, index: int) -> None: ...

    @abstractmethod
    def remove_chunks(self, session_id: str, indices: Iterable[int]) -> None: ...

    @abstractmethod
    def delete(self, session_id: str) -> None: ...

    @abstractmethod
    def list_session_ids(self) -> list[str]: ...

    def lock(self, session_id: str) -> AbstractContextManager[None]:
        """Cross-process lock for one session. Process-local stores need none."""
        return nullcontext()

    def is_alive(self) -> bool:
        return True


class InMemorySessionStore(SessionStore):
    """Process-local store. Records are copied in and out."""

    def __init__(self) -> None:
        self._sessions: dict[str, UploadSession] = {}
        self._lock = Lock()

    def create(self, session: UploadSession) -> None:
        with self._lock:
            if session.id in self._sessions:
                raise KeyError(session.id)
            self._sessions[session.id] = session.model_copy(deep=True)

    def get(self, session_id: str) -> UploadSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def save(self, session: UploadSession) -> None:
        with self._lock:
            stored = self._sessions.get(session.id)
            received = stored.received_chunks if stored else session.received_chunks
            self._sessions[session.id] = session.model_copy(
                update={"received_chunks": set(received)}, deep=True
            )

    def add_chunk(self, session_id: str, index: int) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.received_chunks.add(index)

    def remove_chunks(self, session_id: str, indices: Iterable[int]) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.received_chunks.difference_update(indices)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def list_session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)


class RedisSessionStore(SessionStore):
    """
    Session metadata as a JSON document under `<prefix>:<id>`, received chunk
    indices as a Redis set under `<prefix>:<id>:chunks`. Indices are added
    with a single SADD, and `lock` takes a Redis lock under `<prefix>:<id>:lock`
    so that workers sharing the server serialize status transitions.
    """

    def __init__(
        self,
        redis_service: RedisService,
        key_prefix: str = "upload_session",
        lock_timeout_seconds: float = 120,
        lock_wait_seconds: float | None = 60,
    ):
        self.redis = redis_service
        self.key_prefix = key_prefix
        self.lock_timeout_seconds = lock_timeout_seconds
        self.lock_wait_seconds = lock_wait_seconds

    def create(self, session: UploadSession) -> None:
        self.redis.set_with_members(
            key=self._meta_key(session.id),
            value=self._metadata(session),
            members_key=self._chunks_key(session.id),
            members=[str(index) for index in session.received_chunks],
        )
        logger.debug("Session persisted in Redis", extra={"session_id": session.id})

    def get(self, session_id: str) -> UploadSession | None:
        session = self.redis.get(self._meta_key(session_id), UploadSession)
        if session is None:
            return None
        session.received_chunks = {
            int(index) for index in self.redis.smembers(self._chunks_key(session_id))
        }
        return session

    def save(self, session: UploadSession) -> None:
        self.redis.set(self._meta_key(session.id), self._metadata(session))

    def add_chunk(self, session_id: str, index: int) -> None:
        self.redis.sadd(self._chunks_key(session_id), str(index))

    def remove_chunks(self, session_id: str, indices: Iterable[int]) -> None:
        self.redis.srem(self._chunks_key(session_id), *(str(index) for index in indices))

    def delete(self, session_id: str) -> None:
        self.redis.delete(self._meta_key(session_id), self._chunks_key(session_id))

    def list_session_ids(self) -> list[str]:
        prefix = f"{self.key_prefix}:"
        session_ids = []
        for key in self.redis.list_keys(f"{prefix}*"):
            session_id = key[len(prefix) :]
            # skips the `:chunks` and `:lock` companions
            if ":" not in session_id:
                session_ids.append(session_id)
        return session_ids

    def lock(self, session_id: str) -> AbstractContextManager[None]:
        return self.redis.lock(
            f"{self.key_prefix}:{session_id}:lock",
            timeout=self.lock_timeout_seconds,
            blocking_timeout=self.lock_wait_seconds,
        )

    def is_alive(self) -> bool:
        return self.redis.is_alive()

    def _metadata(self, session: UploadSession) -> UploadSession:
        return session.model_copy(update={"received_chunks": set()})

    def _meta_key(self, session_id: str) -> str:
        return f"{self.key_prefix}:{session_id}"

    def _chunks_key(self, session_id: str) -> str:
        return f"{self.key_prefix}:{session_id}:chunks"
