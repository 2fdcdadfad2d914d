"""
API Server - Access Logging Middleware
========================================

What:  One line per request, tagged with the area that served it:
       `root` for the server's own routes, `api/v1` for the mounted
       sub-router. Sub-router traffic can be filtered on `extra["area"]`.
How:   Pure ASGI. The status is taken from `http.response.start`; if the
       app raises before responding, the line is still written with 500.

Severity:
    5xx → ERROR, 4xx → WARNING, everything else → INFO.
    Paths in QUIET_PATHS (the `GET /` liveness probe) are not logged.
"""

import logging
import time

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from apiserver.middleware.request_id import request_id_var
from apiserver.routes import API_V1_PREFIX

logger = logging.getLogger("apiserver.access")

QUIET_PATHS = frozenset({"/"})


def route_area(path: str) -> str:
    if path == API_V1_PREFIX or path.startswith(API_V1_PREFIX + "/"):
        return API_V1_PREFIX.strip("/")
    return "root"


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware:
    def __init__(self, app: ASGIApp, quiet_paths: frozenset = QUIET_PATHS) -> None:
        self.app = app
        self.quiet_paths = quiet_paths

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] in self.quiet_paths:
            await self.app(scope, receive, send)
            return

        status = 500
        start_time = time.perf_counter()

        async def send_capturing_status(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_capturing_status)
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            path = scope["path"]
            area = route_area(path)
            rid = request_id_var.get("")
            logger.log(
                level_for_status(status),
                "[%s] %s %s -> %d in %.1fms (%s)",
                rid,
                scope["method"],
                path,
                status,
                duration_ms,
                area,
                extra={
                    "request_id": rid,
                    "area": area,
                    "status": status,
                    "duration_ms": round(duration_ms, 2),
                },
            )
