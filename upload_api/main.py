import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

import uvicorn
from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool

from upload_service.session_manager import UploadSessionManager

from .config import get_settings
from .dependencies import get_upload_manager
from .exceptions import register_exception_handlers
from .logger import logger
from .monitoring import add_monitoring_routes
from .uploads.router import router as uploads_router


def create_app(
    manager: UploadSessionManager | None = None, run_gc: bool | None = None
) -> FastAPI:
    settings = get_settings()
    get_manager: Callable[[], UploadSessionManager] = (
        (lambda: manager) if manager is not None else get_upload_manager
    )
    gc_enabled = settings.GC_ENABLED if run_gc is None else run_gc

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        upload_manager = get_manager()
        await run_in_threadpool(upload_manager.recover)
        if gc_enabled:
            upload_manager.garbage_collector.start()
        logger.info("Upload API started.")
        yield
        if gc_enabled:
            upload_manager.garbage_collector.shutdown()
        logger.info("Upload API stopped.")

    app = FastAPI(title="Chunked Upload API", lifespan=lifespan)
    if manager is not None:
        app.dependency_overrides[get_upload_manager] = get_manager

    register_exception_handlers(app)
    app.include_router(uploads_router)

    def readiness_checks() -> dict[str, Callable[[], bool]]:
        upload_manager = get_manager()
        return {
            "session_store": upload_manager.session_store.is_alive,
            "object_store": upload_manager.storage_handoff.object_store.is_alive,
        }

    add_monitoring_routes(app, readiness_checks)
    return app


def run(host: str = "0.0.0.0", port: int = 8000) -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    run()
