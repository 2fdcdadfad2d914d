"""
API Server - Database Connection Management
=============================================

What:  Owns the single long-lived MongoDB client and its connection state.
Why:   Startup must be gated on a verified connection; a lazily-connecting
       driver would otherwise let the server listen against a dead database.
How:   `DatabaseConnector.connect()` creates a motor client and issues one
       `ping`. Success moves the state to CONNECTED; any driver error moves it
       to FAILED and raises `DatabaseConnectionError`.
Who:   Created by `bootstrap.initialize()`, held in the application context,
       read by route handlers through `get_database()`.

Connection State:

    DISCONNECTED ──connect()──▶ CONNECTING ──ping ok──▶ CONNECTED
                                     │
                                     └──driver error──▶ FAILED (terminal)

    There is exactly one connection attempt per connector. No retry, no
    backoff, no timeout beyond the driver's own server selection default.
"""

import enum
import logging
import re
from typing import Optional

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from apiserver.exceptions import ConfigurationError, DatabaseConnectionError

logger = logging.getLogger(__name__)

# Database used when the URI does not name one (driver convention)
DEFAULT_DATABASE_NAME = "test"

_CREDENTIALS_RE = re.compile(r"(?<=://)[^@/]+@")


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


def redact_uri(uri: str) -> str:
    """Replace the `user:password@` part of a connection string with `***@`."""
    return _CREDENTIALS_RE.sub("***@", uri)


class DatabaseConnector:
    """
    Establishes and holds the process-wide MongoDB connection.

    The connector is the only writer of its `state`. Everything else reads it
    through the property.
    """

    def __init__(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._client: Optional[AsyncIOMotorClient] = None
        self._attempted = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def client(self) -> AsyncIOMotorClient:
        if not self.is_connected or self._client is None:
            raise DatabaseConnectionError("Database is not connected")
        return self._client

    @property
    def database(self) -> AsyncIOMotorDatabase:
        """The URI's default database, or `test` when the URI names none."""
        return self.client.get_default_database(default=DEFAULT_DATABASE_NAME)

    async def connect(self, uri: str) -> None:
        """
        Open the client and verify it with a single ping.

        Raises:
            ConfigurationError:       `uri` is empty (nothing is attempted).
            DatabaseConnectionError:  the driver rejected the URI or the ping failed.
            RuntimeError:             connect() was already called on this connector.
        """
        if not uri:
            raise ConfigurationError(
                "A non-empty database connection URI is required",
                variable="MONGO_URI",
            )
        if self._attempted:
            raise RuntimeError(
                f"connect() may only be called once (state: {self._state.value})"
            )

        self._attempted = True
        self._state = ConnectionState.CONNECTING
        target = redact_uri(uri)
        logger.info("Connecting to database at %s", target)

        # The URI parser raises plain ValueError/TypeError for bad ports or
        # unescaped credentials; those are connection failures too.
        try:
            self._client = AsyncIOMotorClient(uri)
            await self._client.admin.command("ping")
        except (PyMongoError, ValueError, TypeError) as e:
            self._state = ConnectionState.FAILED
            if self._client is not None:
                self._client.close()
                self._client = None
            raise DatabaseConnectionError(
                "Database connection failed",
                cause=e,
                context={"target": target},
            ) from e

        self._state = ConnectionState.CONNECTED
        logger.info("Database connected successfully")

    async def ping(self) -> bool:
        """Liveness check for health endpoints. Never raises."""
        if not self.is_connected or self._client is None:
            return False
        try:
            await self._client.admin.command("ping")
        except PyMongoError as e:
            logger.warning("Database ping failed: %s", str(e))
            return False
        return True

    def close(self) -> None:
        """Close the client. Safe to call more than once."""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("Database connection closed")
        if self._state is ConnectionState.CONNECTED:
            self._state = ConnectionState.DISCONNECTED


# ── Request Dependency ────────────────────────────────────────────────────
def get_database(request: Request) -> AsyncIOMotorDatabase:
    """
    FastAPI dependency returning the connected default database.

    Example usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncIOMotorDatabase = Depends(get_database)):
            return await db.items.find().to_list(100)
    """
    return request.app.state.context.database
