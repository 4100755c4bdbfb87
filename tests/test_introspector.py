from __future__ import annotations

import pytest
import sqlalchemy as sa

from nl2sql_analyst.analysis.exceptions import IntrospectionError, SecurityViolation
from nl2sql_analyst.introspection import (
    DatabaseIntrospection,
    SqlAlchemyIntrospector,
    TableRef,
    default_excluded_schemas,
    ensure_select_only,
    strip_trailing_semicolon,
)


@pytest.fixture
def introspector(sqlite_engine: sa.Engine) -> SqlAlchemyIntrospector:
    return SqlAlchemyIntrospector(sqlite_engine, default_schema="main", max_cell_chars=10)


def test_select_guard() -> None:
    assert ensure_select_only("  select 1 ") == "select 1"
    for sql in ("DELETE FROM Users", "WITH x AS (SELECT 1) SELECT * FROM x", ""):
        with pytest.raises(SecurityViolation, match="Only SELECT statements are allowed"):
            ensure_select_only(sql)
    assert strip_trailing_semicolon("SELECT 1; ") == "SELECT 1"


def test_excluded_schemas_per_dialect() -> None:
    assert "pg_catalog" in default_excluded_schemas("postgresql")
    assert "sys" in default_excluded_schemas("mssql")
    assert "performance_schema" in default_excluded_schemas("mariadb")


def test_catalog(introspector: SqlAlchemyIntrospector) -> None:
    assert isinstance(introspector, DatabaseIntrospection)
    assert introspector.dialect == "sqlite"
    assert introspector.list_schemas() == ["main"]
    assert introspector.list_tables() == [TableRef("main", "AppUsage"), TableRef("main", "Users")]


def test_search_puts_table_hits_first(introspector: SqlAlchemyIntrospector) -> None:
    hits = [(h.table, h.column) for h in introspector.search_schema("user")]
    assert hits == [
        ("Users", "Department"),
        ("Users", "Id"),
        ("Users", "UserName"),
        ("AppUsage", "UserId"),
    ]
    assert introspector.search_schema("  ") == []


def test_describe_foreign_keys_and_stats(introspector: SqlAlchemyIntrospector) -> None:
    columns = introspector.describe_table("AppUsage")
    assert [c.name for c in columns] == ["Id", "UserId", "UsageCount"]
    assert columns[0].is_primary_key_candidate
    assert columns[1].is_foreign_key_candidate
    assert columns[2].data_type == "INTEGER"

    (fk,) = introspector.get_foreign_keys("main.AppUsage")
    assert (fk.column, fk.referenced_full_name, fk.referenced_column) == (
        "UserId",
        "main.Users",
        "Id",
    )
    assert introspector.get_table_stats("[main].[Users]").row_count == 3


def test_describe_missing_table_raises(introspector: SqlAlchemyIntrospector) -> None:
    with pytest.raises(IntrospectionError):
        introspector.get_table_stats("main.Missing")


def test_sample_rows_truncates_long_cells(introspector: SqlAlchemyIntrospector) -> None:
    rows = introspector.sample_rows("Users", 5)
    assert len(rows) == 3
    assert rows[0] == {"Id": 1, "UserName": "alice", "Department": "Ops"}
    assert rows[2]["UserName"] == "carolcaro…"


def test_execute_select_transpiles_tsql(introspector: SqlAlchemyIntrospector) -> None:
    rows = introspector.execute_select("SELECT TOP (2) [Id] FROM [main].[Users] ORDER BY [Id];")
    assert rows == [{"Id": 1}, {"Id": 2}]


def test_execute_select_in_native_dialect(sqlite_engine: sa.Engine) -> None:
    introspector = SqlAlchemyIntrospector(sqlite_engine, default_schema="main", row_limit=1)
    sql = introspector.normalize_sql("SELECT UserName FROM Users ORDER BY Id", source="sqlite")
    assert sql == "SELECT UserName FROM Users ORDER BY Id"
    assert introspector.execute_select(sql, source="sqlite") == [{"UserName": "alice"}]


def test_execute_select_rejects_and_wraps_errors(introspector: SqlAlchemyIntrospector) -> None:
    with pytest.raises(SecurityViolation):
        introspector.execute_select("DROP TABLE Users")
    with pytest.raises(IntrospectionError, match="Query failed"):
        introspector.execute_select("SELECT * FROM NoSuchTable")


def test_execute_select_keeps_duplicate_column_names(introspector: SqlAlchemyIntrospector) -> None:
    sql = (
        "SELECT u.Id, a.Id, a.UsageCount FROM Users u "
        "JOIN AppUsage a ON u.Id = a.UserId ORDER BY u.Id"
    )
    rows = introspector.execute_select(sql, source="sqlite")
    assert rows == [
        {"Id": 1, "Id_2": 1, "UsageCount": 5},
        {"Id": 2, "Id_2": 2, "UsageCount": 7},
    ]
