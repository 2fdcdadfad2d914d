"""Application context shared by the server bootstrap and route handlers."""

from dataclasses import dataclass

from motor.motor_asyncio import AsyncIOMotorDatabase

from apiserver.config import Settings
from apiserver.database import DatabaseConnector


@dataclass(frozen=True)
class AppContext:
    """
    Everything the HTTP layer needs from startup, built once by
    `bootstrap.initialize()` and attached to `app.state.context`.
    """

    settings: Settings
    connector: DatabaseConnector

    @property
    def database(self) -> AsyncIOMotorDatabase:
        return self.connector.database
