"""
ShutterBox Backend — Application Package Initializer
====================================================

What: Photo-sharing backend (accounts, uploads, follows, favorites).
Who:  Imported by uvicorn (`shutterbox.main:app`), Alembic and pytest.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │    Services (Stores, Auth, Vision)  │  ← Transactions, lookups
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async sessions, atomic()
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
