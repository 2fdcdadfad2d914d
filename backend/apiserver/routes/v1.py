"""
API Server - Versioned API (v1)
=================================

Default sub-router mounted at /api/v1. Resource routers for the business
domain attach here; out of the box it only reports service status.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from apiserver import __version__

logger = logging.getLogger(__name__)

router = APIRouter(tags=["v1"])


class StatusResponse(BaseModel):
    status: str = Field(description="ok when the database answers a ping, else unavailable")
    database: str = Field(description="Connection state of the database connector")
    version: str = Field(description="Application version")


@router.get(
    "/health",
    response_model=StatusResponse,
    summary="Service and database status",
    responses={503: {"model": StatusResponse}},
)
async def status(request: Request):
    """
    Ping the database and report the connector state.

    Returns 200 when the ping succeeds, 503 otherwise, so a readiness probe
    can route traffic away from an instance that lost its database.
    """
    connector = request.app.state.context.connector
    reachable = await connector.ping()
    body = StatusResponse(
        status="ok" if reachable else "unavailable",
        database=connector.state.value,
        version=__version__,
    )
    if not reachable:
        logger.warning("Status check: database unreachable (state: %s)", connector.state.value)
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
