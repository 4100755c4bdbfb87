"""Typed models for the sqlglot dialect helpers."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

# Dialects the introspector knows how to talk to.
Dialect = Literal[
    "sql",
    "postgres",
    "mysql",
    "sqlite",
    "tsql",
    "oracle",
    "snowflake",
    "bigquery",
]


class SqlTranspileResult(BaseModel):
    """SQL rewritten for a target dialect, or the input when rewriting failed."""

    sql: str = Field(description="SQL to execute")
    source_dialect: Dialect
    target_dialect: Dialect
    changed: bool = Field(default=False, description="True when the text was rewritten")
    warnings: list[str] = Field(default_factory=list, description="Non-fatal issues")


class SqlValidationResult(BaseModel):
    """Parse outcome for one statement."""

    is_valid: bool
    dialect: Dialect
    statement_kind: str | None = Field(
        default=None, description="Root expression kind, e.g. 'select' or 'insert'"
    )
    error_message: str | None = None
