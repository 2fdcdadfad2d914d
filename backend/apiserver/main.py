"""
API Server - FastAPI Application Factory
==========================================

What:  Builds the FastAPI app around an initialized `AppContext` and serves it.
How:   `create_app(context)` installs middleware, exception handlers and the
       routing tree in a fixed order; `serve(context)` hands the app to a
       uvicorn server running on the current event loop, so the motor client
       opened during startup stays bound to the loop that serves requests.
Who:   Called by `bootstrap.run()` once the database reports CONNECTED.

Assembly order:
    1. Middleware: cors → cookies → json-body (plus request ID / access log)
    2. Exception handlers
    3. Routing tree: /api/v1 → versioned sub-router
    4. GET / → "Working"
    5. Listen on settings.port

Lifecycle:
    Shutdown closes the database client. There is no request draining beyond
    what uvicorn does on SIGINT/SIGTERM.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from apiserver import __version__
from apiserver.context import AppContext
from apiserver.exceptions import ApiServerError
from apiserver.middleware import install_middleware
from apiserver.middleware.request_id import request_id_var
from apiserver.routes import build_router, health

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure root logging once for the whole process.

    Called before configuration is loaded so that configuration errors are
    logged too; `bootstrap.initialize()` re-applies the configured level.
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-request access lines come from RequestLoggingMiddleware instead
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    context: AppContext = app.state.context
    logger.info("Server running on port %d", context.settings.port)

    yield

    logger.info("Shutting down...")
    context.connector.close()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map application errors to JSON responses.

        ApiServerError (and subclasses) → exc.status_code, exc.error_code
        Exception (fallback)            → 500, generic message

    Handlers for the mounted sub-router's own errors belong with that router.
    Context dicts are logged, never returned.
    """

    @app.exception_handler(ApiServerError)
    async def handle_app_error(request: Request, exc: ApiServerError):
        rid = request_id_var.get("")
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "request_id": rid,
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(context: AppContext, v1_router: Optional[APIRouter] = None) -> FastAPI:
    """
    Assemble the FastAPI application for an initialized context.

    Args:
        context:    Startup result; its connector must already be CONNECTED.
        v1_router:  Sub-router to mount at /api/v1 (defaults to routes.v1).

    Raises:
        RuntimeError: the database is not connected.
    """
    if not context.connector.is_connected:
        raise RuntimeError(
            "Cannot build the HTTP app before the database is connected "
            f"(state: {context.connector.state.value})"
        )

    app = FastAPI(
        title="API Server",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.context = context

    install_middleware(app, context.settings)
    register_exception_handlers(app)

    app.include_router(build_router(v1_router))
    app.include_router(health.router)

    return app


async def serve(context: AppContext, v1_router: Optional[APIRouter] = None) -> None:
    """Build the app and listen on the configured host/port until terminated."""
    app = create_app(context, v1_router)
    config = uvicorn.Config(
        app,
        host=context.settings.host,
        port=context.settings.port,
        log_config=None,  # keep the handlers from setup_logging()
        access_log=False,
    )
    server = uvicorn.Server(config)
    await server.serve()
