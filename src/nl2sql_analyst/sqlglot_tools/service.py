"""Sqlglot helpers for running T-SQL shaped templates on any dialect.

The plan compiler writes its templates in T-SQL (``SELECT TOP (n) ...``);
`SqlglotService.transpile` rewrites them for the connected database and
`validate` reports what kind of statement a string parses to.
"""

from __future__ import annotations

from functools import lru_cache

from fastmcp.utilities.logging import get_logger
import sqlglot
from sqlglot import expressions as sgl_exp
from sqlglot.errors import SqlglotError

from .models import Dialect, SqlTranspileResult, SqlValidationResult

_logger = get_logger(__name__)

SQLALCHEMY_TO_SQLGLOT: dict[str, Dialect] = {
    "postgresql": "postgres",
    "postgres": "postgres",
    "mysql": "mysql",
    "mariadb": "mysql",
    "sqlite": "sqlite",
    "mssql": "tsql",
    "sqlserver": "tsql",
    "oracle": "oracle",
    "snowflake": "snowflake",
    "bigquery": "bigquery",
}


def map_sqlalchemy_to_sqlglot(sa_dialect_name: str) -> Dialect:
    """Map a SQLAlchemy dialect name to a sqlglot dialect; unknown names map to "sql"."""
    return SQLALCHEMY_TO_SQLGLOT.get(sa_dialect_name.lower(), "sql")


@lru_cache(maxsize=256)
def _cached_parse(sql: str, dialect: Dialect) -> sqlglot.Expression | None:
    return sqlglot.parse_one(sql, dialect=dialect)


class SqlglotService:
    """Stateless wrapper around sqlglot parse and transpile."""

    def transpile(self, sql: str, *, source: Dialect, target: Dialect) -> SqlTranspileResult:
        """Rewrite ``sql`` from ``source`` to ``target``.

        Returns the original text with a warning when sqlglot cannot handle it,
        so the database gets a chance to report the real error.
        """
        if source == target:
            return SqlTranspileResult(sql=sql, source_dialect=source, target_dialect=target)
        try:
            out = sqlglot.transpile(sql, read=source, write=target)
        except SqlglotError as exc:
            _logger.warning("Transpile %s -> %s failed: %s", source, target, exc)
            return SqlTranspileResult(
                sql=sql,
                source_dialect=source,
                target_dialect=target,
                warnings=[f"Transpile failed: {exc}"],
            )
        if not out:
            return SqlTranspileResult(
                sql=sql,
                source_dialect=source,
                target_dialect=target,
                warnings=["Transpilation returned empty result"],
            )
        return SqlTranspileResult(
            sql=out[0],
            source_dialect=source,
            target_dialect=target,
            changed=out[0] != sql,
        )

    def validate(self, sql: str, dialect: Dialect) -> SqlValidationResult:
        """Parse ``sql`` and report its root statement kind."""
        try:
            parsed = _cached_parse(sql, dialect)
        except SqlglotError as exc:
            return SqlValidationResult(
                is_valid=False, dialect=dialect, error_message=f"SQL parsing error: {exc}"
            )
        if parsed is None:
            return SqlValidationResult(
                is_valid=False, dialect=dialect, error_message="Failed to parse SQL query"
            )
        kind = "select" if isinstance(parsed, sgl_exp.Query) else parsed.key
        return SqlValidationResult(is_valid=True, dialect=dialect, statement_kind=kind)
