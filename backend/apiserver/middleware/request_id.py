"""
API Server - Request ID Middleware
====================================

What:  Tags each request with a correlation ID and echoes it in X-Request-ID.
How:   Pure ASGI. A client-sent ID is reused only if it is a short token of
       letters, digits, `.`, `_` or `-`; anything else (control characters,
       oversized values) is replaced with a fresh 8-char hex ID so it cannot
       forge lines in the access log. The ID lands in a ContextVar for
       loggers and error bodies, and in `request.state.request_id`.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

REQUEST_ID_HEADER = "X-Request-ID"

_CLIENT_ID_RE = re.compile(r"[A-Za-z0-9._-]{1,64}")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def resolve_request_id(client_value: str) -> str:
    """Keep a well-formed client ID, otherwise mint a new one."""
    if client_value and _CLIENT_ID_RE.fullmatch(client_value):
        return client_value
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        client_value = ""
        for key, value in scope.get("headers", []):
            if key == b"x-request-id":
                client_value = value.decode("latin-1")
                break

        rid = resolve_request_id(client_value)
        request_id_var.set(rid)
        scope.setdefault("state", {})["request_id"] = rid

        async def send_with_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = rid
            await send(message)

        await self.app(scope, receive, send_with_id)
