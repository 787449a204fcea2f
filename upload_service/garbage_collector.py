import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .chunk_store import ChunkStore
from .locks import SessionLocks
from .logger import logger
from .models.upload_status import UploadStatus
from .schemas import GarbageCollectorConfig
from .session_store import SessionStore


@dataclass
class SweepReport:
    purged_sessions: list[str] = field(default_factory=list)
    orphaned_chunk_sessions: list[str] = field(default_factory=list)
    removed_scratch_files: list[str] = field(default_factory=list)


class GarbageCollector:
    """
    Reclaims chunk bytes and session metadata. Called synchronously by the
    session manager after complete/cancel, and periodically from a background
    thread to expire terminal and abandoned sessions.
    """

    def __init__(  # pylint: disable=too-many-arguments, too-many-positional-arguments
        self,
        session_store: SessionStore,
        chunk_store: ChunkStore,
        locks: SessionLocks,
        config: GarbageCollectorConfig,
        scratch_dir: str | None = None,
    ) -> None:
        self.session_store = session_store
        self.chunk_store = chunk_store
        self.locks = locks
        self.config = config
        self.scratch_dir = Path(scratch_dir) if scratch_dir else None
        self.sweep_thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    def release_chunks(self, session_id: str) -> None:
        self.chunk_store.delete_all(session_id)
        logger.debug("Released session chunks", extra={"session_id": session_id})

    def purge(self, session_id: str) -> None:
        with self.locks.hold(session_id):
            self.chunk_store.delete_all(session_id)
            self.session_store.delete(session_id)
        logger.info("Purged upload session", extra={"session_id": session_id})

    def sweep(self, now: datetime | None = None) -> SweepReport:
        now = now or datetime.now(timezone.utc)
        report = SweepReport()

        for session_id in self.session_store.list_session_ids():
            with self.locks.hold(session_id):
                if not self._is_expired(session_id, now):
                    continue
                self.purge(session_id)
            report.purged_sessions.append(session_id)

        for session_id in self.chunk_store.list_sessions():
            with self.locks.hold(session_id):
                if self.session_store.get(session_id) is not None:
                    continue
                self.chunk_store.delete_all(session_id)
            report.orphaned_chunk_sessions.append(session_id)
            logger.info("Removed orphaned chunks", extra={"session_id": session_id})

        report.removed_scratch_files = self._sweep_scratch_files(now)

        logger.info(
            "Garbage collection sweep finished",
            extra={
                "purged_sessions": len(report.purged_sessions),
                "orphaned_chunk_sessions": len(report.orphaned_chunk_sessions),
                "removed_scratch_files": len(report.removed_scratch_files),
            },
        )
        return report

    def _is_expired(self, session_id: str, now: datetime) -> bool:
        session = self.session_store.get(session_id)
        if session is None:
            return False
        idle_seconds = (now - session.updated_at).total_seconds()
        if session.is_terminal:
            return idle_seconds > self.config.terminal_retention_seconds
        if session.status in (UploadStatus.UPLOADING, UploadStatus.FAILED):
            ttl = self.config.abandoned_ttl_seconds
            return ttl is not None and idle_seconds > ttl
        return False

    def _sweep_scratch_files(self, now: datetime) -> list[str]:
        ttl = self.config.abandoned_ttl_seconds
        if self.scratch_dir is None or ttl is None or not self.scratch_dir.exists():
            return []
        removed = []
        cutoff = now.timestamp() - ttl
        for path in self.scratch_dir.glob("*.merged"):
            if path.stat().st_mtime < cutoff:
                path.unlink(missing_ok=True)
                removed.append(str(path))
        return removed

    def start(self) -> None:
        if self.sweep_thread is None:
            self._stop_event.clear()
            self.sweep_thread = threading.Thread(
                target=self._run_periodic_sweep, name="upload-gc", daemon=True
            )
            self.sweep_thread.start()
            logger.info(
                "Started garbage collector thread.",
                extra={"interval": self.config.sweep_interval_seconds},
            )

    def _run_periodic_sweep(self) -> None:
        while not self._stop_event.wait(self.config.sweep_interval_seconds):
            started = time.monotonic()
            try:
                self.sweep()
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Garbage collection sweep failed.")
            logger.debug(
                "Sweep duration", extra={"seconds": time.monotonic() - started}
            )

    def shutdown(self) -> None:
        logger.info("Stopping garbage collector...")
        self._stop_event.set()
        if self.sweep_thread is not None:
            self.sweep_thread.join()
            self.sweep_thread = None
            logger.info("Stopped garbage collector thread.")
