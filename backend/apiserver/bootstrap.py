"""
API Server - Process Bootstrap
================================

What:  The startup gate: load configuration, connect the database, then serve.
Why:   Keeping the gate in `initialize()` (which raises) and the process exit
       in `main()` (which converts errors to exit status 1) lets tests drive
       every failure path without terminating the test runner.

Lifecycle:

    Start → LoadConfig ──ConfigurationError──────────▶ exit 1
              │
              ▼
            Connect ───DatabaseConnectionError──────▶ exit 1
              │
              ▼
            InstallMiddleware → MountRoutes → Listen → Running

Each step is awaited before the next begins. The connection is attempted
exactly once; nothing is retried.
"""

import asyncio
import logging
import sys
from typing import Callable, Optional

from apiserver.config import Settings, load_settings
from apiserver.context import AppContext
from apiserver.database import DatabaseConnector
from apiserver.exceptions import ConfigurationError, DatabaseConnectionError
from apiserver.main import serve, setup_logging

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1


async def initialize(
    loader: Callable[[], Settings] = load_settings,
    connector: Optional[DatabaseConnector] = None,
) -> AppContext:
    """
    Run the startup gate up to (not including) the HTTP server.

    Raises:
        ConfigurationError:       required configuration missing; no connection attempted.
        DatabaseConnectionError:  the single connection attempt failed.
    """
    settings = loader()
    logging.getLogger().setLevel(settings.log_level)

    connector = connector if connector is not None else DatabaseConnector()
    await connector.connect(settings.mongo_uri)

    return AppContext(settings=settings, connector=connector)


async def run(
    loader: Callable[[], Settings] = load_settings,
    connector: Optional[DatabaseConnector] = None,
) -> None:
    context = await initialize(loader, connector)
    await serve(context)


def main() -> None:
    """Console entry point: start the server or exit with status 1."""
    setup_logging()
    try:
        asyncio.run(run())
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e.message)
        sys.exit(EXIT_FAILURE)
    except DatabaseConnectionError as e:
        logger.error("%s: %s", e.message, e.context.get("cause", "unknown cause"))
        sys.exit(EXIT_FAILURE)
