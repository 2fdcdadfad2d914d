"""
API Server - Custom Exception Hierarchy
=========================================

What:  Application-specific exceptions for startup and request parsing failures.
How:   Each exception carries a message and an optional context dict.
       Startup errors are turned into a process exit by `bootstrap.main()`;
       request errors are turned into JSON responses by handlers in `main.py`
       or directly by the JSON body middleware.

Exception Hierarchy:
    ApiServerError (base)
    ├── ConfigurationError        → exit 1 (required variable missing/invalid)
    ├── DatabaseConnectionError   → exit 1 (database unreachable, auth, bad URI)
    ├── ValidationError           → 400 Bad Request (malformed JSON body)
    └── PayloadTooLargeError      → 413 Payload Too Large
"""

from typing import Any, Dict, Optional


class ApiServerError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  Human-readable description (safe to return in API responses)
        context:  Additional debug info (logged, not returned to clients)
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(ApiServerError):
    """
    Raised when required configuration is missing or invalid.

    When:    MONGO_URI unset or empty, PORT not an integer, unknown LOG_LEVEL.
    Effect:  Startup aborts before any database connection is attempted.
    """

    error_code = "configuration_error"

    def __init__(
        self,
        message: str = "Configuration is invalid",
        variable: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if variable:
            ctx["variable"] = variable
        super().__init__(message=message, context=ctx)
        self.variable = variable


class DatabaseConnectionError(ApiServerError):
    """
    Raised when the database connection cannot be established.

    When:    Server selection timed out, authentication failed, URI malformed.
    Effect:  Startup aborts; the HTTP listener is never started.

    The underlying driver exception is chained (`__cause__`) and its text is
    kept in `context["cause"]` for the startup diagnostic.
    """

    error_code = "database_unavailable"
    status_code = 503

    def __init__(
        self,
        message: str = "Database connection failed",
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if cause is not None:
            ctx["cause"] = str(cause)
        super().__init__(message=message, context=ctx)
        self.cause = cause


class ValidationError(ApiServerError):
    """
    Raised when a request body cannot be parsed.

    When:    Malformed JSON, or a top-level JSON value that is not an object/array.
    HTTP:    400 Bad Request
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PayloadTooLargeError(ApiServerError):
    """Raised when a JSON body exceeds the configured limit. HTTP 413."""

    status_code = 413
    error_code = "payload_too_large"

    def __init__(
        self,
        limit: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["limit"] = limit
        super().__init__(
            message=f"Request body exceeds the {limit} byte limit",
            context=ctx,
        )
        self.limit = limit
