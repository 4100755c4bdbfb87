"""Sqlglot-backed dialect helpers.

Thin wrappers used by the introspector to run T-SQL
shaped plan templates on whatever database is connected.
"""

from __future__ import annotations

from .models import Dialect, SqlTranspileResult, SqlValidationResult
from .service import SqlglotService, map_sqlalchemy_to_sqlglot

__all__ = [
    "Dialect",
    "SqlTranspileResult",
    "SqlValidationResult",
    "SqlglotService",
    "map_sqlalchemy_to_sqlglot",
]
