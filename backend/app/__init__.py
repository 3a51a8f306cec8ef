"""
Snapcheck Backend — Application Package Initializer
====================================================

What: Marks the `app` directory as a Python package.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend follows a layered architecture:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │    Services & Jobs (Business Logic) │  ← Permissions, quotas, billing, queue
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    - Routes handle HTTP details (status codes, headers) and delegate to services
    - Services contain the account/plan rules and can be tested without HTTP
    - Jobs run outside the request cycle (build queue worker, enqueue script)
"""

__version__ = "1.0.0"
