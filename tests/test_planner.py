from __future__ import annotations

from conftest import FakeIntrospection, FakeTable
import pytest

from nl2sql_analyst.analysis.constants import Constants
from nl2sql_analyst.analysis.discovery import SchemaDiscoveryEngine
from nl2sql_analyst.analysis.models import SchemaContext
from nl2sql_analyst.analysis.planner import FALLBACK_STRATEGY, PlanCompiler, quote_table
from nl2sql_analyst.models import AbstractPlanStep, Intent, StepType


@pytest.fixture
def context(fake_db: FakeIntrospection, usage_intent: Intent) -> SchemaContext:
    return SchemaDiscoveryEngine(fake_db).discover(usage_intent)


def _step(order: int, action: str, **parameters: object) -> AbstractPlanStep:
    return AbstractPlanStep(order=order, action=action, parameters=dict(parameters))


def test_quote_table() -> None:
    assert quote_table("sales.Orders") == "[sales].[Orders]"
    assert quote_table("Orders", "main") == "[main].[Orders]"


def test_empty_plan_compiles_to_fallback(context: SchemaContext, usage_intent: Intent) -> None:
    plan = PlanCompiler().compile(usage_intent, [], context)

    assert [s.order for s in plan.steps] == [1, 2]
    assert [s.step_type for s in plan.steps] == [StepType.DATA_EXPLORATION, StepType.FINAL_QUERY]
    assert plan.strategy == FALLBACK_STRATEGY
    assert plan.confidence == 0.5
    assert plan.steps[0].sql_template == "SELECT TOP (5) * FROM [dbo].[AppUsage]"


def test_final_query_joins_user_and_usage_tables(
    context: SchemaContext, usage_intent: Intent
) -> None:
    plan = PlanCompiler().compile(usage_intent, [], context)
    sql = plan.steps[-1].sql_template
    assert sql is not None
    assert sql.startswith("SELECT TOP (10)")
    assert "FROM [dbo].[Users] u" in sql
    assert "INNER JOIN [dbo].[AppUsage] uru ON u.[Id] = uru.[UserId]" in sql
    assert "SUM(uru.[UsageCount]) AS TotalUsageCount" in sql
    assert "MAX(uru.[LastUsed]) AS LatestLastUsed" in sql
    assert "GROUP BY u.[Id], u.[UserName], u.[Email], u.[Department]" in sql
    assert sql.endswith("ORDER BY TotalUsageCount DESC")


def test_final_query_falls_back_to_best_table() -> None:
    db = FakeIntrospection(
        {"dbo.Orders": FakeTable(columns=[("OrderId", "INTEGER"), ("Total", "MONEY")])}
    )
    intent = Intent(intent="orders", search_terms=["orders"])
    context = SchemaDiscoveryEngine(db).discover(intent)
    plan = PlanCompiler().compile(intent, [_step(1, "final_execution")], context)
    assert plan.steps[-1].sql_template == (
        "SELECT TOP (20) * FROM [dbo].[Orders] ORDER BY [OrderId]"
    )


def test_unknown_actions_are_dropped_and_plan_completed(
    context: SchemaContext, usage_intent: Intent
) -> None:
    abstract = [
        _step(2, "analysis", tables=["Users"], operation="aggregate"),
        _step(1, "bogus"),
    ]
    plan = PlanCompiler().compile(usage_intent, abstract, context)

    assert [s.order for s in plan.steps] == [1, 2, 3]
    assert [s.step_type for s in plan.steps] == [
        StepType.DATA_EXPLORATION,
        StepType.DATA_ANALYSIS,
        StepType.FINAL_QUERY,
    ]
    assert plan.steps[1].sql_template == "SELECT\n    COUNT(*) AS TotalRecords\nFROM [dbo].[Users]"
    assert plan.steps[1].parameters["tables"] == ["dbo.Users"]


def test_aggregate_counts_distinct_users_when_known(
    context: SchemaContext, usage_intent: Intent
) -> None:
    plan = PlanCompiler().compile(
        usage_intent, [_step(1, "analysis", table="AppUsage", operation="aggregate")], context
    )
    analysis = next(s for s in plan.steps if s.step_type is StepType.DATA_ANALYSIS)
    assert analysis.sql_template is not None
    assert "COUNT(DISTINCT [UserId]) AS UniqueUsers" in analysis.sql_template


def test_join_probe_and_describe(context: SchemaContext, usage_intent: Intent) -> None:
    abstract = [
        _step(1, "exploration", tables=["dbo.Users"], operation="describe"),
        _step(2, "analysis", tables=["dbo.Users", "dbo.AppUsage"], operation="join"),
        _step(3, "exploration", tables=["dbo.Users", "dbo.AppUsage"], operation="sample"),
    ]
    plan = PlanCompiler().compile(usage_intent, abstract, context)

    describe, join, sample = plan.steps[0], plan.steps[1], plan.steps[2]
    assert describe.step_type is StepType.SCHEMA_ANALYSIS
    assert describe.sql_template == Constants.INTROSPECTION_ONLY_SQL
    assert describe.is_introspection_only
    assert join.sql_template is not None
    assert join.sql_template.startswith("SELECT TOP 5")
    assert "INNER JOIN [dbo].[AppUsage] t2 ON t1.[Id] = t2.[Id]" in join.sql_template
    assert sample.step_type is StepType.DATA_EXPLORATION
    assert sample.sql_template is None


def test_query_building_uses_user_id_range(context: SchemaContext, usage_intent: Intent) -> None:
    plan = PlanCompiler().compile(
        usage_intent, [_step(1, "query_building", tables="dbo.AppUsage")], context
    )
    building = next(s for s in plan.steps if s.step_type is StepType.QUERY_CONSTRUCTION)
    assert building.sql_template == (
        "SELECT\n    COUNT(*) AS RecordCount,\n    MIN([UserId]) AS MinUserId,\n"
        "    MAX([UserId]) AS MaxUserId\nFROM [dbo].[AppUsage]"
    )


def test_compilation_is_deterministic(context: SchemaContext, usage_intent: Intent) -> None:
    abstract = [
        _step(3, "final_execution", limit=5),
        _step(1, "exploration", tables=["Users"]),
        _step(2, "analysis", tables=["Users", "AppUsage"], operation="join"),
    ]
    compiler = PlanCompiler()
    first = compiler.compile(usage_intent, abstract, context)
    second = compiler.compile(usage_intent, list(abstract), context)
    assert first == second
    assert [s.order for s in first.steps] == [1, 2, 3]
    assert first.steps[-1].sql_template is not None
    assert first.steps[-1].sql_template.startswith("SELECT TOP (5)")


def test_empty_schema_context_still_yields_two_steps() -> None:
    intent = Intent(intent="anything")
    plan = PlanCompiler().compile(intent, [], SchemaContext())
    assert len(plan.steps) == 2
    assert plan.steps[0].sql_template is None
    assert plan.steps[1].sql_template is None
