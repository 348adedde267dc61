"""
Database package initialization.

The package follows a modular structure:
- base: Declarative base, mixins and the ``utc_now`` clock
- connection: Async engine, session factory and the ``get_db`` dependency
- models: SQLAlchemy ORM models for products, carts, orders and payments

Submodules are imported explicitly where needed.
"""

__all__ = []
