"""
TenantNotes Backend — Application Package
==========================================

Layered architecture:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services + Access Guard (Policy)  │  ← every tenant-owned read/write
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

Routes never query tenant-owned tables; they pass the authenticated
Principal to a service, and the service routes the query through
services.access_guard.
"""

__version__ = "1.0.0"
