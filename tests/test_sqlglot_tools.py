from __future__ import annotations

from nl2sql_analyst.sqlglot_tools import SqlglotService, map_sqlalchemy_to_sqlglot


def test_map_sqlalchemy_to_sqlglot_known() -> None:
    assert map_sqlalchemy_to_sqlglot("postgresql") == "postgres"
    assert map_sqlalchemy_to_sqlglot("mssql") == "tsql"
    assert map_sqlalchemy_to_sqlglot("SQLite") == "sqlite"
    assert map_sqlalchemy_to_sqlglot("duckdb") == "sql"


def test_transpile_top_to_limit_postgres() -> None:
    t = SqlglotService().transpile(
        "SELECT TOP (5) * FROM [dbo].[Users]", source="tsql", target="postgres"
    )
    assert t.changed is True
    assert t.warnings == []
    assert "limit 5" in t.sql.lower()
    assert "[" not in t.sql


def test_transpile_same_dialect_is_untouched() -> None:
    sql = "SELECT TOP (5) * FROM [dbo].[Users]"
    t = SqlglotService().transpile(sql, source="tsql", target="tsql")
    assert t.sql == sql
    assert t.changed is False


def test_transpile_failure_keeps_input() -> None:
    sql = "SELECT * FROM t WHERE (a = 1"
    t = SqlglotService().transpile(sql, source="tsql", target="postgres")
    assert t.sql == sql
    assert t.warnings


def test_validate_reports_statement_kind() -> None:
    svc = SqlglotService()
    ok = svc.validate("SELECT 1", "postgres")
    assert ok.is_valid is True
    assert ok.statement_kind == "select"

    insert = svc.validate("INSERT INTO t VALUES (1)", "postgres")
    assert insert.is_valid is True
    assert insert.statement_kind == "insert"

    bad = svc.validate("SELECT * FROM t WHERE (a = 1", "postgres")
    assert bad.is_valid is False
    assert bad.error_message
