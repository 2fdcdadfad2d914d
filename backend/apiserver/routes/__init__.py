"""
API Server - Routing Tree
===========================

Route Inventory:
    - health.py:  GET  /                (liveness probe, plain "Working")
    - v1.py:      *    /api/v1/*        (versioned sub-router)

The root router has exactly one mount, `/api/v1`. The liveness route is
registered on the app separately, after the tree, by `main.create_app()`.
Any `APIRouter` may stand in for the default versioned sub-router.
"""

from typing import Optional

from fastapi import APIRouter

from apiserver.routes import v1

API_V1_PREFIX = "/api/v1"


def build_router(v1_router: Optional[APIRouter] = None) -> APIRouter:
    """Compose the root router with the versioned sub-router mounted at /api/v1."""
    router = APIRouter()
    router.include_router(v1_router if v1_router is not None else v1.router, prefix=API_V1_PREFIX)
    return router
