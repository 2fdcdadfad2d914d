"""
API Server - Liveness Route
=============================

What:  `GET /` answers "Working" with status 200.
Why:   Load balancers and container probes only need to know the process is
       serving. The route deliberately does not touch the database; a
       dependency-aware check lives at `/api/v1/health`.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

LIVENESS_BODY = "Working"

router = APIRouter(tags=["Health"])


@router.get("/", response_class=PlainTextResponse, summary="Liveness probe")
async def liveness() -> str:
    return LIVENESS_BODY
