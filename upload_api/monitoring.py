import json
import logging
from typing import Callable, List

import prometheus_client
from fastapi import FastAPI, Response

CHUNKS_RECEIVED = prometheus_client.Counter(
    "upload_chunks_received_total", "Chunks accepted by the upload service."
)
CHUNK_BYTES_RECEIVED = prometheus_client.Counter(
    "upload_chunk_bytes_received_total", "Chunk bytes accepted by the upload service."
)
UPLOADS_STARTED = prometheus_client.Counter(
    "uploads_started_total", "Upload sessions created."
)
UPLOADS_FINISHED = prometheus_client.Counter(
    "uploads_finished_total", "Upload sessions that reached an outcome.", ["outcome"]
)

HEALTH_PATHS = ["/healthz/readiness", "/healthz/liveness"]


class EndpointFilter(logging.Filter):
    def __init__(self, paths_excluded_for_logging: List[str]):
        super().__init__()
        self.paths_excluded_for_logging = paths_excluded_for_logging

    def filter(self, record: logging.LogRecord) -> bool:
        return not any(
            path in record.getMessage() for path in self.paths_excluded_for_logging
        )


def get_healthz_response(checks: dict[str, Callable[[], bool]] | None) -> Response:
    try:
        results = (
            {check_name: check_fn() for check_name, check_fn in checks.items()}
            if checks
            else {}
        )

        status = "error"
        status_code = 503
        if all(results.values()):
            status = "ok"
            status_code = 200

        data = {"status": status, "checks": results}
        return Response(
            content=json.dumps(data),
            status_code=status_code,
            media_type="application/json",
        )

    except Exception as e:  # pylint: disable=broad-exception-caught
        data = {"status": "error", "message": str(e)}
        return Response(
            content=json.dumps(data), status_code=503, media_type="application/json"
        )


def add_monitoring_routes(
    app: FastAPI, readiness_checks: Callable[[], dict[str, Callable[[], bool]]]
) -> None:
    logging.getLogger("uvicorn.access").addFilter(EndpointFilter(HEALTH_PATHS))

    @app.get("/metrics")
    def get_metrics() -> Response:
        return Response(
            content=prometheus_client.generate_latest(),
            media_type=prometheus_client.CONTENT_TYPE_LATEST,
        )

    @app.get("/healthz/liveness")
    def get_healthz_liveness() -> Response:
        return get_healthz_response({"default": lambda: True})

    @app.get("/healthz/readiness")
    def get_healthz_readiness() -> Response:
        return get_healthz_response(readiness_checks())
