"""SQLAlchemy implementation of the database introspection capability.

Metadata comes from SQLAlchemy's `Inspector`, sampling from SQLAlchemy
Core, and plan SQL (written in T-SQL) is transpiled to the connected
dialect with sqlglot before it runs. Each call opens its own connection,
applies the per-statement timeout and releases the connection on return.

Classes:
- SqlAlchemyIntrospector: `DatabaseIntrospection` over a SQLAlchemy engine
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from decimal import Decimal
import time
from typing import Any

from fastmcp.utilities.logging import get_logger
import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from nl2sql_analyst.analysis.constants import Constants
from nl2sql_analyst.analysis.exceptions import IntrospectionError
from nl2sql_analyst.analysis.heuristics import split_table_name
from nl2sql_analyst.analysis.models import ColumnFact, ForeignKeyFact, TableStats
from nl2sql_analyst.models import Record
from nl2sql_analyst.sqlglot_tools import Dialect, SqlglotService, map_sqlalchemy_to_sqlglot

from .base import SchemaSearchHit, TableRef, ensure_select_only, strip_trailing_semicolon

_logger = get_logger(__name__)

_MSSQL_TABLE_STATS = """
SELECT
    (SELECT SUM(p2.rows) FROM sys.partitions p2
      WHERE p2.object_id = t.object_id AND p2.index_id IN (0, 1)) AS row_count,
    SUM(a.total_pages) * 8 AS total_kb,
    SUM(a.used_pages) * 8 AS used_kb
FROM sys.tables t
INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
INNER JOIN sys.indexes i ON t.object_id = i.object_id
INNER JOIN sys.partitions p ON i.object_id = p.object_id AND i.index_id = p.index_id
INNER JOIN sys.allocation_units a ON p.partition_id = a.container_id
WHERE s.name = :schema AND t.name = :table
GROUP BY t.object_id
"""


def default_excluded_schemas(dialect_name: str) -> list[str]:
    """System schemas never offered to discovery for a SQLAlchemy dialect."""
    name = dialect_name.lower()
    if "postgres" in name:
        return ["information_schema", "pg_catalog", "pg_toast"]
    if "mssql" in name:
        return ["information_schema", "sys", "guest"]
    if "mysql" in name or "mariadb" in name:
        return ["information_schema", "mysql", "performance_schema", "sys"]
    if "oracle" in name:
        return ["sys", "system", "xdb", "mdsys", "ctxsys"]
    return ["information_schema", "pg_catalog", "sys"]


def _json_safe(val: object, max_chars: int) -> str | int | float | bool | None:
    """Reduce a cell value to a JSON-safe scalar, truncating long text."""
    if val is None:
        return None
    if isinstance(val, int | float | bool):
        return val
    if isinstance(val, Decimal):
        return float(val)
    s = str(val)
    if len(s) > max_chars:
        return s[: max_chars - 1] + "…"
    return s


def _unique_columns(columns: Iterable[str]) -> list[str]:
    """Suffix repeated result column names (``Id``, ``Id_2``) so none is dropped."""
    seen: dict[str, int] = {}
    unique: list[str] = []
    for col in columns:
        name = col
        while name in seen:
            seen[col] += 1
            name = f"{col}_{seen[col]}"
        seen.setdefault(name, 1)
        unique.append(name)
    return unique


def _to_records(rows: Iterable[sa.Row], columns: list[str], max_chars: int) -> list[Record]:
    names = _unique_columns(columns)
    return [
        {name: _json_safe(val, max_chars) for name, val in zip(names, row, strict=True)}
        for row in rows
    ]


def _type_name(col_type: Any) -> str:
    try:
        return str(col_type)
    except Exception:  # noqa: BLE001 - some dialect types cannot compile without a dialect
        return type(col_type).__name__


class SqlAlchemyIntrospector:
    """Read-only introspection over a SQLAlchemy engine.

    Attributes:
        engine: SQLAlchemy engine for database connections
        row_limit: Maximum rows returned by `execute_select`
        max_cell_chars: Maximum characters kept per text cell
        timeout_sec: Per-statement timeout applied on supported dialects
        template_dialect: Dialect that plan SQL is written in
    """

    def __init__(
        self,
        engine: Engine,
        *,
        default_schema: str | None = None,
        row_limit: int = 200,
        max_cell_chars: int = 200,
        timeout_sec: int | None = None,
        exclude_schemas: list[str] | None = None,
        template_dialect: Dialect = "tsql",
        glot: SqlglotService | None = None,
    ) -> None:
        self.engine = engine
        self.row_limit = row_limit
        self.max_cell_chars = max_cell_chars
        self.timeout_sec = timeout_sec
        self.exclude_schemas = exclude_schemas
        self.template_dialect: Dialect = template_dialect
        self.dialect: Dialect = map_sqlalchemy_to_sqlglot(engine.dialect.name)
        self._glot = glot or SqlglotService()
        self._default_schema = default_schema

    @property
    def default_schema(self) -> str:
        """Configured default schema, else the engine's, else ``dbo``."""
        if self._default_schema is None:
            try:
                with self._connection() as conn:
                    reported = sa.inspect(conn).default_schema_name
            except SQLAlchemyError as exc:
                _logger.debug("Could not read default schema name: %s", exc)
                reported = None
            self._default_schema = reported or Constants.DEFAULT_SCHEMA
        return self._default_schema

    # ---- catalog -----------------------------------------------------------
    def list_schemas(self) -> list[str]:
        try:
            with self._connection() as conn:
                names = sa.inspect(conn).get_schema_names()
        except SQLAlchemyError as exc:
            msg = f"Failed to list database schemas: {exc}"
            raise IntrospectionError(msg) from exc

        excluded = {
            s.lower()
            for s in (self.exclude_schemas or default_excluded_schemas(self.engine.dialect.name))
        }
        return [s for s in names if s.lower() not in excluded and not s.lower().startswith("db_")]

    def list_tables(self) -> list[TableRef]:
        schemas = self.list_schemas()
        refs: list[TableRef] = []
        try:
            with self._connection() as conn:
                insp = sa.inspect(conn)
                for schema in schemas:
                    try:
                        names = insp.get_table_names(schema=schema)
                    except SQLAlchemyError as exc:
                        _logger.warning("Cannot list tables for schema %s: %s", schema, exc)
                        continue
                    refs.extend(TableRef(schema=schema, table=name) for name in sorted(names))
        except SQLAlchemyError as exc:
            msg = f"Failed to list tables: {exc}"
            raise IntrospectionError(msg) from exc
        _logger.debug("Listed %d tables across %d schemas", len(refs), len(schemas))
        return refs

    def search_schema(self, term: str) -> list[SchemaSearchHit]:
        """Case-insensitive substring search over table and column names.

        A matching table contributes every one of its columns; those hits
        come first, followed by column-only matches.
        """
        needle = term.strip().lower()
        if not needle:
            return []
        table_hits: list[SchemaSearchHit] = []
        column_hits: list[SchemaSearchHit] = []
        try:
            with self._connection() as conn:
                insp = sa.inspect(conn)
                for schema in self.list_schemas():
                    multi = insp.get_multi_columns(schema=schema)
                    for key in sorted(multi, key=lambda k: k[1]):
                        table = key[1]
                        table_matches = needle in table.lower()
                        for col in sorted(multi[key], key=lambda c: c["name"]):
                            hit = SchemaSearchHit(
                                schema=schema,
                                table=table,
                                column=col["name"],
                                data_type=_type_name(col["type"]),
                            )
                            if table_matches:
                                table_hits.append(hit)
                            elif needle in col["name"].lower():
                                column_hits.append(hit)
        except SQLAlchemyError as exc:
            msg = f"Schema search failed for '{term}': {exc}"
            raise IntrospectionError(msg) from exc
        return table_hits + column_hits

    def describe_table(self, table: str) -> list[ColumnFact]:
        schema, name = split_table_name(table, self.default_schema)
        try:
            with self._connection() as conn:
                columns = sa.inspect(conn).get_columns(name, schema=schema)
        except SQLAlchemyError as exc:
            msg = f"Failed to describe {schema}.{name}: {exc}"
            raise IntrospectionError(msg) from exc
        return [
            ColumnFact.from_name(
                col["name"],
                _type_name(col["type"]),
                nullable=bool(col.get("nullable", True)),
                max_length=getattr(col["type"], "length", None),
            )
            for col in columns
        ]

    def get_foreign_keys(self, table: str) -> list[ForeignKeyFact]:
        schema, name = split_table_name(table, self.default_schema)
        try:
            with self._connection() as conn:
                fks = sa.inspect(conn).get_foreign_keys(name, schema=schema)
        except SQLAlchemyError as exc:
            msg = f"Failed to read foreign keys for {schema}.{name}: {exc}"
            raise IntrospectionError(msg) from exc

        facts: list[ForeignKeyFact] = []
        for fk in fks:
            referred_schema = fk.get("referred_schema") or schema
            for column, referred in zip(
                fk.get("constrained_columns", []), fk.get("referred_columns", []), strict=False
            ):
                facts.append(
                    ForeignKeyFact(
                        column=column,
                        referenced_schema=referred_schema,
                        referenced_table=fk["referred_table"],
                        referenced_column=referred,
                    )
                )
        return facts

    def get_table_stats(self, table: str) -> TableStats:
        schema, name = split_table_name(table, self.default_schema)
        try:
            with self._connection() as conn:
                if self.engine.dialect.name == "mssql":
                    row = (
                        conn.execute(sa.text(_MSSQL_TABLE_STATS), {"schema": schema, "table": name})
                        .mappings()
                        .first()
                    )
                    if row is None:
                        return TableStats()
                    return TableStats(
                        row_count=int(row["row_count"] or 0),
                        total_kb=float(row["total_kb"] or 0),
                        used_kb=float(row["used_kb"] or 0),
                    )
                count_sql = sa.select(sa.func.count()).select_from(sa.table(name, schema=schema))
                count = conn.execute(count_sql).scalar_one()
        except SQLAlchemyError as exc:
            msg = f"Failed to read statistics for {schema}.{name}: {exc}"
            raise IntrospectionError(msg) from exc
        return TableStats(row_count=int(count or 0))

    # ---- data ----------------------------------------------------------------
    def sample_rows(self, table: str, n: int) -> list[Record]:
        schema, name = split_table_name(table, self.default_schema)
        query = (
            sa.select(sa.literal_column("*"))
            .select_from(sa.table(name, schema=schema))
            .limit(max(1, n))
        )
        _logger.debug("Sampling %s.%s with query: %s", schema, name, query)
        try:
            with self._connection() as conn:
                result = conn.execute(query)
                columns = list(result.keys())
                rows = result.fetchall()
        except SQLAlchemyError as exc:
            msg = f"Sampling failed for {schema}.{name}: {exc}"
            raise IntrospectionError(msg) from exc
        return _to_records(rows, columns, self.max_cell_chars)

    def normalize_sql(self, sql: str, *, source: Dialect | None = None) -> str:
        """Check, trim and transpile ``sql`` to the connected dialect.

        ``source`` defaults to the template dialect plan SQL is written in.

        Raises:
            SecurityViolation: The statement does not start with SELECT
        """
        base_sql = strip_trailing_semicolon(ensure_select_only(sql))
        trans = self._glot.transpile(
            base_sql, source=source or self.template_dialect, target=self.dialect
        )
        for warning in trans.warnings:
            _logger.warning("Transpile: %s", warning)
        validation = self._glot.validate(trans.sql, self.dialect)
        if not validation.is_valid:
            _logger.warning("SQL validation reported: %s", validation.error_message)
        return trans.sql

    def execute_select(self, sql: str, *, source: Dialect | None = None) -> list[Record]:
        """Run a read-only statement, by default written in the template dialect.

        Raises:
            SecurityViolation: The statement does not start with SELECT
            IntrospectionError: The database rejected the statement
        """
        sql_to_run = self.normalize_sql(sql, source=source)
        _logger.info("SQL to execute (%s): %s", self.dialect, sql_to_run)
        start = time.perf_counter()
        try:
            with self._connection() as conn:
                result = conn.execute(sa.text(sql_to_run))
                columns = list(result.keys())
                rows = result.fetchmany(self.row_limit)
        except SQLAlchemyError as exc:
            _logger.warning("Execution error: %s", exc)
            msg = f"Query failed: {exc}"
            raise IntrospectionError(msg) from exc
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        _logger.info("Execution finished (elapsed_ms=%.1f, rows=%d)", elapsed_ms, len(rows))
        return _to_records(rows, columns, self.max_cell_chars)

    # ---- internals -------------------------------------------------------------
    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        with self.engine.connect() as conn:
            self._apply_statement_timeout(conn)
            yield conn

    def _apply_statement_timeout(self, conn: Connection) -> None:
        """Apply the per-statement timeout for dialects that support one."""
        if not self.timeout_sec:
            return
        ms = max(1, int(self.timeout_sec * 1000))
        try:
            dialect = self.engine.dialect.name
            if dialect == "postgresql":
                conn.execute(sa.text(f"SET statement_timeout = {ms}"))
            elif dialect in ("mysql", "mariadb"):
                conn.execute(sa.text(f"SET SESSION MAX_EXECUTION_TIME = {ms}"))
            elif dialect == "mssql":
                conn.execute(sa.text(f"SET LOCK_TIMEOUT {ms}"))
        except Exception as e:  # noqa: BLE001 - best-effort guard
            _logger.debug("Could not apply statement timeout: %s", e)
