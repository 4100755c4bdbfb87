"""Database introspection capability used by discovery and execution.

`DatabaseIntrospection` is the only way the analysis pipeline touches a
database. Any implementation must route caller SQL through
`ensure_select_only` before it reaches a connection.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from nl2sql_analyst.analysis.exceptions import SecurityViolation
from nl2sql_analyst.analysis.models import ColumnFact, ForeignKeyFact, TableStats
from nl2sql_analyst.models import Record


@dataclass(frozen=True, slots=True)
class TableRef:
    """A table found during reconnaissance."""

    schema: str
    table: str

    @property
    def full_name(self) -> str:
        return f"{self.schema}.{self.table}"


@dataclass(frozen=True, slots=True)
class SchemaSearchHit:
    """One (schema, table, column) row matched by a schema search.

    A table whose name matches yields one hit per column, ahead of
    hits where only the column name matched.
    """

    schema: str
    table: str
    column: str | None = None
    data_type: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.schema}.{self.table}"


def ensure_select_only(sql: str) -> str:
    """Return the trimmed statement or raise `SecurityViolation`.

    The statement must lexically start with SELECT (case-insensitive, after
    trimming whitespace).
    """
    trimmed = sql.strip()
    if trimmed[:6].upper() != "SELECT":
        msg = "Only SELECT statements are allowed for security reasons"
        raise SecurityViolation(msg)
    return trimmed


def strip_trailing_semicolon(sql: str) -> str:
    return sql.strip().removesuffix(";").rstrip()


@runtime_checkable
class DatabaseIntrospection(Protocol):
    """Read-only database metadata and query operations.

    Table arguments use ``schema.table`` addressing; bare names resolve
    against `default_schema`. Failures raise `IntrospectionError`, except
    `execute_select` which raises `SecurityViolation` for non-SELECT input.
    """

    @property
    def default_schema(self) -> str: ...

    def list_schemas(self) -> list[str]: ...

    def list_tables(self) -> list[TableRef]: ...

    def search_schema(self, term: str) -> list[SchemaSearchHit]: ...

    def describe_table(self, table: str) -> list[ColumnFact]: ...

    def get_foreign_keys(self, table: str) -> list[ForeignKeyFact]: ...

    def get_table_stats(self, table: str) -> TableStats: ...

    def sample_rows(self, table: str, n: int) -> list[Record]: ...

    def execute_select(self, sql: str) -> list[Record]: ...
