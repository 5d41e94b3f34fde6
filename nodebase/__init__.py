"""
NodeBase Backend: Application Package Initializer
==================================================

What:  Marks the `nodebase` directory as a Python package.
Who:   Used by uvicorn (`uvicorn nodebase.main:app`), Alembic and pytest.

Architecture Note:
    The backend is layered, with the data-fetching pipeline cutting across:

    ┌─────────────────────────────────────┐
    │   Routes (pages, /api/trpc, auth)   │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   RPC (procedures, context, caller) │  ← Typed procedure surface
    ├─────────────────────────────────────┤
    │   Query cache (fetch, hydrate)      │  ← Shared server/client cache
    ├─────────────────────────────────────┤
    │   Services (users)                  │  ← Store access, retries
    ├─────────────────────────────────────┤
    │   Models & Schemas                  │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Database                          │  ← Async engine per process
    └─────────────────────────────────────┘

    The client runtime (`nodebase.frontend`) sits outside the server: it
    consumes rendered HTML and talks back through `/api/trpc`.
"""

__version__ = "0.1.0"
