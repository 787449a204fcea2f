from contextlib import AbstractContextManager, contextmanager
from threading import Lock, RLock
from typing import Callable, Iterator

SharedLockFactory = Callable[[str], AbstractContextManager[None]]


class SessionLocks:
    """
    One re-entrant lock per session id. Sessions never contend with each
    other; `_registry_lock` only guards the dictionaries. An entry lives only
    while some thread holds or waits for it, so unknown ids leave nothing
    behind.

    `shared_lock`, when given, is taken on the outermost `hold` of a session
    and serializes that session across processes as well.
    """

    def __init__(self, shared_lock: SharedLockFactory | None = None) -> None:
        self._locks: dict[str, RLock] = {}
        self._users: dict[str, int] = {}
        self._depth: dict[str, int] = {}
        self._registry_lock = Lock()
        self.shared_lock = shared_lock

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        lock = self._acquire_entry(session_id)
        try:
            with lock:
                # only the thread owning `lock` touches `_depth[session_id]`
                depth = self._depth.get(session_id, 0)
                self._depth[session_id] = depth + 1
                try:
                    if depth == 0 and self.shared_lock is not None:
                        with self.shared_lock(session_id):
                            yield
                    else:
                        yield
                finally:
                    if depth == 0:
                        del self._depth[session_id]
                    else:
                        self._depth[session_id] = depth
        finally:
            self._release_entry(session_id)

    def _acquire_entry(self, session_id: str) -> RLock:
        with self._registry_lock:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = RLock()
                self._locks[session_id] = lock
            self._users[session_id] = self._users.get(session_id, 0) + 1
            return lock

    def _release_entry(self, session_id: str) -> None:
        with self._registry_lock:
            users = self._users[session_id] - 1
            if users:
                self._users[session_id] = users
            else:
                del self._users[session_id]
                del self._locks[session_id]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)
