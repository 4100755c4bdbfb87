from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest
import sqlalchemy as sa
from sqlalchemy.pool import StaticPool

from nl2sql_analyst.analysis.exceptions import IntrospectionError
from nl2sql_analyst.analysis.models import (
    ColumnFact,
    ForeignKeyFact,
    SchemaContext,
    TableStats,
)
from nl2sql_analyst.introspection.base import SchemaSearchHit, TableRef, ensure_select_only
from nl2sql_analyst.models import (
    AbstractPlanStep,
    AnalysisReport,
    Insights,
    Intent,
    NarrativeInsights,
    Record,
)


@dataclass
class FakeTable:
    columns: list[tuple[str, str]]
    rows: list[Record] = field(default_factory=list)
    foreign_keys: list[ForeignKeyFact] = field(default_factory=list)


class FakeIntrospection:
    """In-memory `DatabaseIntrospection` keyed by ``schema.table``."""

    def __init__(
        self,
        tables: Mapping[str, FakeTable],
        *,
        select_handler: Callable[[str], list[Record]] | None = None,
    ) -> None:
        self.tables = dict(tables)
        self.select_handler = select_handler
        self.executed: list[str] = []
        self.fail_listing = False
        self.fail_describe: set[str] = set()
        self.fail_search: set[str] = set()

    @property
    def default_schema(self) -> str:
        return "dbo"

    def _get(self, table: str) -> FakeTable:
        name = table if "." in table else f"dbo.{table}"
        for key, value in self.tables.items():
            if key.lower() == name.lower():
                return value
        msg = f"No such table: {table}"
        raise IntrospectionError(msg)

    def list_schemas(self) -> list[str]:
        if self.fail_listing:
            msg = "connection refused"
            raise IntrospectionError(msg)
        return sorted({name.split(".", 1)[0] for name in self.tables})

    def list_tables(self) -> list[TableRef]:
        if self.fail_listing:
            msg = "connection refused"
            raise IntrospectionError(msg)
        refs = [TableRef(*name.split(".", 1)) for name in self.tables]
        return sorted(refs, key=lambda r: (r.schema, r.table))

    def search_schema(self, term: str) -> list[SchemaSearchHit]:
        if term in self.fail_search:
            msg = f"search failed for {term}"
            raise IntrospectionError(msg)
        needle = term.lower()
        table_hits: list[SchemaSearchHit] = []
        column_hits: list[SchemaSearchHit] = []
        for name, table in self.tables.items():
            schema, bare = name.split(".", 1)
            for column, data_type in table.columns:
                hit = SchemaSearchHit(schema=schema, table=bare, column=column, data_type=data_type)
                if needle in bare.lower():
                    table_hits.append(hit)
                elif needle in column.lower():
                    column_hits.append(hit)
        return table_hits + column_hits

    def describe_table(self, table: str) -> list[ColumnFact]:
        if table in self.fail_describe:
            msg = f"permission denied for {table}"
            raise IntrospectionError(msg)
        return [ColumnFact.from_name(name, dtype) for name, dtype in self._get(table).columns]

    def get_foreign_keys(self, table: str) -> list[ForeignKeyFact]:
        return list(self._get(table).foreign_keys)

    def get_table_stats(self, table: str) -> TableStats:
        if table in self.fail_describe:
            msg = f"permission denied for {table}"
            raise IntrospectionError(msg)
        return TableStats(row_count=len(self._get(table).rows), total_kb=8.0, used_kb=8.0)

    def sample_rows(self, table: str, n: int) -> list[Record]:
        return [dict(r) for r in self._get(table).rows[:n]]

    def execute_select(self, sql: str) -> list[Record]:
        checked = ensure_select_only(sql)
        self.executed.append(checked)
        if self.select_handler is None:
            return []
        return self.select_handler(checked)


class FakeText:
    """Scripted `TextUnderstanding`; any attribute set to an exception is raised."""

    def __init__(
        self,
        *,
        intent: Intent | Exception,
        steps: list[AbstractPlanStep] | Exception | None = None,
        narrative: NarrativeInsights | Exception | None = None,
        answer: str | Exception = "Answer from model",
        justification: str | Exception = "Because it helps.",
    ) -> None:
        self.intent = intent
        self.steps = steps if steps is not None else []
        self.narrative = narrative or NarrativeInsights(
            summary="Model summary", patterns=["Model pattern"], recommendations=["Do this"]
        )
        self.answer = answer
        self.justification = justification
        self.calls: list[str] = []

    @staticmethod
    def _result(value: Any) -> Any:
        if isinstance(value, Exception):
            raise value
        return value

    def analyze_intent(self, query: str) -> Intent:
        self.calls.append("analyze_intent")
        return self._result(self.intent)

    def plan_steps(self, intent: Intent, schema_context: SchemaContext) -> list[AbstractPlanStep]:
        self.calls.append("plan_steps")
        return self._result(self.steps)

    def justify(self, step_description: str, context: Mapping[str, Any]) -> str:
        self.calls.append("justify")
        return self._result(self.justification)

    def narrate_insights(
        self, query: str, insights: Insights, sample: list[Record]
    ) -> NarrativeInsights:
        self.calls.append("narrate_insights")
        return self._result(self.narrative)

    def summarize(self, query: str, report: AnalysisReport) -> str:
        self.calls.append("summarize")
        return self._result(self.answer)


def user_usage_tables() -> dict[str, FakeTable]:
    users = FakeTable(
        columns=[
            ("Id", "INTEGER"),
            ("UserName", "NVARCHAR(100)"),
            ("Email", "NVARCHAR(200)"),
            ("Department", "NVARCHAR(50)"),
        ],
        rows=[
            {"Id": i, "UserName": f"user{i}", "Email": f"u{i}@x.test", "Department": "Ops"}
            for i in range(1, 13)
        ],
    )
    usage = FakeTable(
        columns=[
            ("Id", "INTEGER"),
            ("UserId", "INTEGER"),
            ("UsageCount", "INTEGER"),
            ("LastUsed", "DATETIME"),
        ],
        rows=[
            {"Id": i, "UserId": i % 12 + 1, "UsageCount": i * 2, "LastUsed": "2024-01-01"}
            for i in range(1, 31)
        ],
        foreign_keys=[ForeignKeyFact("UserId", "dbo", "Users", "Id")],
    )
    lookup = FakeTable(
        columns=[("Id", "INTEGER"), ("Code", "NVARCHAR(10)")],
        rows=[{"Id": 1, "Code": "A"}],
    )
    return {"dbo.Users": users, "dbo.AppUsage": usage, "dbo.Codes": lookup}


@pytest.fixture
def fake_db() -> FakeIntrospection:
    return FakeIntrospection(user_usage_tables())


@pytest.fixture
def usage_intent() -> Intent:
    return Intent(
        intent="Find the most active users",
        entities=["users", "usage"],
        query_type="TopN",
        parameters={"limit": 10},
        confidence=0.9,
        search_terms=["user", "usage"],
    )


@pytest.fixture
def sqlite_engine() -> Iterator[sa.Engine]:
    """Single-connection in-memory database with a Users/AppUsage pair."""
    engine = sa.create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    metadata = sa.MetaData()
    users = sa.Table(
        "Users",
        metadata,
        sa.Column("Id", sa.Integer, primary_key=True),
        sa.Column("UserName", sa.String(50)),
        sa.Column("Department", sa.String(50)),
    )
    usage = sa.Table(
        "AppUsage",
        metadata,
        sa.Column("Id", sa.Integer, primary_key=True),
        sa.Column("UserId", sa.Integer, sa.ForeignKey("Users.Id")),
        sa.Column("UsageCount", sa.Integer),
    )
    metadata.create_all(engine)
    with engine.begin() as conn:
        conn.execute(
            users.insert(),
            [
                {"Id": 1, "UserName": "alice", "Department": "Ops"},
                {"Id": 2, "UserName": "bob", "Department": "Eng"},
                {"Id": 3, "UserName": "carol" * 10, "Department": "Eng"},
            ],
        )
        conn.execute(
            usage.insert(),
            [
                {"Id": 1, "UserId": 1, "UsageCount": 5},
                {"Id": 2, "UserId": 2, "UsageCount": 7},
            ],
        )
    yield engine
    engine.dispose()
