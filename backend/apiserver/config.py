"""
API Server - Application Configuration
========================================

What:  Environment-driven settings using Pydantic Settings.
Why:   Type-safe loading of the database URI and listener options, with a
       clear error when the one required variable is missing.
How:   `load_settings()` builds a `Settings` from the process environment
       (and an optional `.env` file) and converts any validation failure into
       a `ConfigurationError`.
Who:   Called once by `bootstrap.initialize()`; the result travels inside the
       application context rather than as a module-level singleton.

Environment variables:
    MONGO_URI        required  MongoDB connection string
    PORT             5000      HTTP listen port
    HOST             0.0.0.0   HTTP listen interface
    LOG_LEVEL        INFO
    CORS_ORIGINS     *         comma-separated origins, "*" reflects any origin
    COOKIE_SECRET    unset     enables signed-cookie verification
    JSON_BODY_LIMIT  102400    max JSON request body in bytes
"""

from typing import Any, List, Optional

from pydantic import Field, ValidationError as PydanticValidationError, field_validator
from pydantic_settings import BaseSettings

from apiserver.exceptions import ConfigurationError

DEFAULT_PORT = 5000


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Only `mongo_uri` lacks a usable default. It is typed Optional so that a
    missing value reaches `load_settings()` and is reported as a
    `ConfigurationError` instead of a raw pydantic error.
    """

    # ── Database ──────────────────────────────────────────────────────────
    # Format: mongodb://[user:pass@]host[:port][/dbname][?options]
    #         or mongodb+srv://...
    mongo_uri: Optional[str] = Field(
        default=None,
        description="MongoDB connection string",
    )

    # ── Server ────────────────────────────────────────────────────────────
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="*")

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: str) -> str:
        """Rejects values like " , " that would silently disable CORS."""
        if not any(origin.strip() for origin in v.split(",")):
            raise ValueError("CORS_ORIGINS must name at least one origin, or '*'")
        return v

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list, dropping blanks."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Request Parsing ───────────────────────────────────────────────────
    cookie_secret: Optional[str] = Field(default=None)

    # 100kb, the conventional JSON body ceiling for Node-style servers
    json_body_limit: int = Field(default=102_400, ge=1)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,  # MONGO_URI and mongo_uri both work
        "env_ignore_empty": True,  # PORT= falls back to 5000, MONGO_URI= counts as missing
        "extra": "ignore",
    }

    def validate_required(self) -> None:
        """Raises ConfigurationError when a required setting is missing."""
        if not self.mongo_uri:
            raise ConfigurationError(
                "MONGO_URI is not defined in the environment or .env",
                variable="MONGO_URI",
            )


def load_settings(**overrides: Any) -> Settings:
    """
    Build and validate settings from the environment.

    Keyword overrides take precedence over the environment; tests use
    `_env_file=None` to keep a developer's `.env` out of the picture.

    Raises:
        ConfigurationError: MONGO_URI missing/empty, or a value failed validation.
    """
    try:
        settings = Settings(**overrides)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e.error_count()} error(s)",
            context={"errors": [err["msg"] for err in e.errors()]},
        ) from e

    settings.validate_required()
    return settings
