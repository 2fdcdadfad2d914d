"""
API Server - Cookie Parsing Middleware
========================================

What:  Parses the Cookie header once per request into `request.state.cookies`.
How:   Starlette's cookie parser splits the header and strips quotes; values
       are then percent-decoded (Express URL-encodes every cookie it sets)
       before two value conventions are applied:

    j:<json>              decoded as JSON when valid, otherwise left as-is
    s:<value>.<sig>       signed cookie; verified with COOKIE_SECRET and
                          moved to `request.state.signed_cookies`
                          (bad signature → False)

Signature format: base64(HMAC-SHA256(secret, value)) with `=` padding
stripped, so cookies signed by Node's cookie-signature interoperate.
Without a secret, `s:` values are left untouched in `cookies`.
"""

import base64
import hashlib
import hmac
import json
from typing import Any, Dict, Optional, Union
from urllib.parse import unquote

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request, cookie_parser
from starlette.responses import Response
from starlette.types import ASGIApp

SIGNED_PREFIX = "s:"
JSON_PREFIX = "j:"


def sign_cookie(value: str, secret: str) -> str:
    """Return `s:<value>.<signature>` for use in a Set-Cookie header."""
    mac = hmac.new(secret.encode(), value.encode(), hashlib.sha256).digest()
    signature = base64.b64encode(mac).decode().rstrip("=")
    return f"{SIGNED_PREFIX}{value}.{signature}"


def unsign_cookie(raw: str, secret: str) -> Union[str, bool]:
    """Verify a signed cookie value; returns the payload, or False on mismatch."""
    if not raw.startswith(SIGNED_PREFIX):
        return False
    body = raw[len(SIGNED_PREFIX):]
    value, sep, _ = body.rpartition(".")
    if not sep:
        return False
    expected = sign_cookie(value, secret)
    if hmac.compare_digest(expected.encode(), raw.encode()):
        return value
    return False


def decode_json_cookie(value: Any) -> Any:
    if not isinstance(value, str) or not value.startswith(JSON_PREFIX):
        return value
    try:
        return json.loads(value[len(JSON_PREFIX):])
    except ValueError:
        return value


def parse_cookies(header: str, secret: Optional[str] = None) -> tuple:
    """Split a Cookie header into (cookies, signed_cookies)."""
    cookies: Dict[str, Any] = {}
    if header:
        cookies = {name: unquote(value) for name, value in cookie_parser(header).items()}
    signed: Dict[str, Any] = {}

    if secret:
        for name in [n for n, v in cookies.items() if v.startswith(SIGNED_PREFIX)]:
            signed[name] = unsign_cookie(cookies.pop(name), secret)

    cookies = {name: decode_json_cookie(v) for name, v in cookies.items()}
    signed = {name: decode_json_cookie(v) for name, v in signed.items()}
    return cookies, signed


class CookieParserMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, secret: Optional[str] = None) -> None:
        super().__init__(app)
        self.secret = secret

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        cookies, signed = parse_cookies(request.headers.get("cookie", ""), self.secret)
        request.state.cookies = cookies
        request.state.signed_cookies = signed
        return await call_next(request)
