"""
API Server - JSON Body Parsing Middleware
===========================================

What:  Parses JSON request bodies once, before routing, into `request.state.json`.
Why:   Sub-routers get a ready-made body without each handler re-validating
       size and syntax, and malformed input is rejected uniformly.
How:   Pure ASGI middleware. For `application/json` (or `*/*+json`) requests
       it buffers the body up to `limit` bytes, parses it, stores the result
       in the scope state, then replays the buffered body downstream so
       handlers can still call `await request.json()`.

Rules:
    Content-Length or streamed size > limit    → 413 payload_too_large
    Malformed JSON / bad UTF-8 / NaN, Infinity → 400 validation_error
    Top-level value not an object or array     → 400 validation_error
    Empty body                                 → {}
    Non-JSON content type                      → passed through, json = {}
"""

import json
import logging
from typing import Any

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from apiserver.exceptions import ApiServerError, PayloadTooLargeError, ValidationError
from apiserver.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 102_400


def is_json_content_type(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _reject_constant(name: str) -> Any:
    # NaN, Infinity and -Infinity are not JSON
    raise ValueError(f"Unexpected token {name}")


def parse_json_body(body: bytes) -> Any:
    """Strict JSON parse: only objects and arrays are accepted at top level."""
    if not body.strip():
        return {}
    try:
        value = json.loads(body, parse_constant=_reject_constant)
    except (UnicodeDecodeError, ValueError) as e:
        raise ValidationError("Malformed JSON in request body", context={"detail": str(e)}) from e
    if not isinstance(value, (dict, list)):
        raise ValidationError("JSON body must be an object or an array")
    return value


class JSONBodyMiddleware:
    def __init__(self, app: ASGIApp, limit: int = DEFAULT_LIMIT) -> None:
        self.app = app
        self.limit = limit

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        headers = {k.decode("latin-1").lower(): v.decode("latin-1") for k, v in scope.get("headers", [])}

        if not is_json_content_type(headers.get("content-type", "")):
            state["json"] = {}
            await self.app(scope, receive, send)
            return

        try:
            body = await self._read_body(headers, receive)
            state["json"] = parse_json_body(body)
        except ApiServerError as exc:
            await self._reject(exc, scope, receive, send)
            return

        replayed = False

        async def replay_receive() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay_receive, send)

    async def _read_body(self, headers: dict, receive: Receive) -> bytes:
        content_length = headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.limit:
            raise PayloadTooLargeError(self.limit, context={"content_length": int(content_length)})

        chunks = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] != "http.request":
                break
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > self.limit:
                raise PayloadTooLargeError(self.limit, context={"received_bytes": received})
            chunks.append(chunk)
            more_body = message.get("more_body", False)
        return b"".join(chunks)

    async def _reject(self, exc: ApiServerError, scope: Scope, receive: Receive, send: Send) -> None:
        rid = request_id_var.get("")
        logger.warning("[%s] Rejected JSON body: %s", rid, exc.message)
        response = JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "request_id": rid,
            },
        )
        await response(scope, receive, send)
