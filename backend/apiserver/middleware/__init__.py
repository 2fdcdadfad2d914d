"""
API Server - Middleware Package
=================================

Request flow (outermost first):

    Request → [Request ID] → [Access Log] → [CORS] → [Cookies] → [JSON Body] → Router

The inner three form `MIDDLEWARE_CHAIN`, whose order is fixed: CORS answers
preflights before anything else runs, and cookies are parsed before the
body. Starlette executes the last-added middleware first, so
`install_middleware()` registers the chain in reverse.
"""

from typing import Callable, Dict, Tuple

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apiserver.config import Settings
from apiserver.middleware.cookies import CookieParserMiddleware
from apiserver.middleware.json_body import JSONBodyMiddleware
from apiserver.middleware.logging import RequestLoggingMiddleware
from apiserver.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware

MIDDLEWARE_CHAIN: Tuple[str, ...] = ("cors", "cookies", "json_body")


def _install_cors(app: FastAPI, settings: Settings) -> None:
    origins = settings.cors_origins_list
    permissive = origins == ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers refuse credentials with a wildcard origin
        allow_credentials=not permissive,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )


def _install_cookies(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(CookieParserMiddleware, secret=settings.cookie_secret)


def _install_json_body(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(JSONBodyMiddleware, limit=settings.json_body_limit)


_INSTALLERS: Dict[str, Callable[[FastAPI, Settings], None]] = {
    "cors": _install_cors,
    "cookies": _install_cookies,
    "json_body": _install_json_body,
}


def install_middleware(app: FastAPI, settings: Settings) -> None:
    """Register the request-parsing chain, then the ambient outer layers."""
    for name in reversed(MIDDLEWARE_CHAIN):
        _INSTALLERS[name](app, settings)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
