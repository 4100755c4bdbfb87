"""Database introspection capability and its SQLAlchemy implementation."""

from __future__ import annotations

from .base import (
    DatabaseIntrospection,
    SchemaSearchHit,
    TableRef,
    ensure_select_only,
    strip_trailing_semicolon,
)
from .sqlalchemy_introspector import SqlAlchemyIntrospector, default_excluded_schemas

__all__ = [
    "DatabaseIntrospection",
    "SchemaSearchHit",
    "SqlAlchemyIntrospector",
    "TableRef",
    "default_excluded_schemas",
    "ensure_select_only",
    "strip_trailing_semicolon",
]
