"""
API Server - Application Package
==================================

What: Bootstrap for a document-database backed web API.
Why:  Keeps startup sequencing (config -> database -> HTTP) in one importable package.
Who:  Used by the `apiserver` console script, `python -m apiserver`, and pytest.

Layout:

    ┌─────────────────────────────────────┐
    │     bootstrap (initialize / main)   │  ← process lifecycle, exit codes
    ├─────────────────────────────────────┤
    │     main (create_app / serve)       │  ← FastAPI app, middleware, listener
    ├─────────────────────────────────────┤
    │     routes (root + /api/v1)         │  ← HTTP surface
    ├─────────────────────────────────────┤
    │     database (DatabaseConnector)    │  ← MongoDB client, connection state
    ├─────────────────────────────────────┤
    │     config (Settings)               │  ← environment / .env
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
