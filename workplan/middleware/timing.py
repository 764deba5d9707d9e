"""
Request timing and access logging.

Each request gets an id (client-supplied ``X-Request-ID`` or a fresh one),
which the logging filter stamps on every record written while serving it.
Mutating requests are logged at INFO with the acting user; reads at DEBUG.
Slow requests and server errors are always surfaced.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 1000
_MUTATING = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def init_request_timing(app: Flask):
    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        if request.path.startswith("/api/v1/health"):
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": round(duration_ms, 1),
        }
        summary = "%s %s -> %d (%.0fms)"
        args = (request.method, request.path, response.status_code, duration_ms)
        if response.status_code >= 500:
            logger.error("Server error: " + summary, *args, extra=extra)
        elif duration_ms > SLOW_THRESHOLD_MS:
            logger.warning("Slow request: " + summary, *args, extra=extra)
        elif request.method in _MUTATING:
            logger.info(summary, *args, extra=extra)
        else:
            logger.debug(summary, *args, extra=extra)
        return response
