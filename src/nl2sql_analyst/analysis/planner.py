"""Plan compilation: abstract language-model steps to typed plan steps.

The language model proposes loose steps (``action`` plus free-form
parameters). `PlanCompiler.compile` sorts them, drops unknown actions,
turns each into a `PlanStep` with a T-SQL template resolved against the
discovered schema, guarantees an exploration step and a final query, and
renumbers the result 1..N. Compilation is deterministic.

SQL templates are written in T-SQL; the introspection layer transpiles them
for the connected database.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from fastmcp.utilities.logging import get_logger

from nl2sql_analyst.models import AbstractPlanStep, Intent, StepType

from . import heuristics
from .constants import Constants
from .models import PlanStep, QueryPlan, SchemaContext, TableCandidate
from .params import as_int, as_string, as_table_list

_logger = get_logger(__name__)

FALLBACK_STRATEGY = "Fallback progressive analysis plan"
FALLBACK_CONFIDENCE = 0.5
DEFAULT_STRATEGY = "Progressive multi-step analysis"

_SUM_COLUMNS = 3
_GROUP_COLUMNS = 3


def quote_identifier(name: str) -> str:
    return "[" + name.replace("]", "]]") + "]"


def quote_table(full_name: str, default_schema: str = Constants.DEFAULT_SCHEMA) -> str:
    schema, table = heuristics.split_table_name(full_name, default_schema)
    return f"{quote_identifier(schema)}.{quote_identifier(table)}"


class PlanCompiler:
    """Compiles abstract plan steps into an executable `QueryPlan`."""

    def __init__(self, *, default_schema: str = Constants.DEFAULT_SCHEMA) -> None:
        self.default_schema = default_schema
        self._translators: dict[
            str, Callable[[AbstractPlanStep, Intent, SchemaContext], PlanStep]
        ] = {
            "exploration": self._exploration,
            "analysis": self._analysis,
            "query_building": self._query_building,
            "final_execution": self._final_execution,
        }

    # ---- public API ----------------------------------------------------------
    def compile(
        self,
        intent: Intent,
        abstract_steps: Sequence[AbstractPlanStep],
        schema_context: SchemaContext,
    ) -> QueryPlan:
        """Translate, complete and renumber ``abstract_steps``.

        Falls back to a fixed two-step plan when nothing translates.
        """
        steps = self._translate_all(intent, abstract_steps, schema_context)
        if not steps:
            _logger.warning("No translatable plan steps; using fallback plan")
            return self.fallback_plan(intent, schema_context)

        if not any(s.step_type is StepType.DATA_EXPLORATION for s in steps):
            steps.insert(0, self._synthesized_exploration(schema_context))
        if not any(s.step_type is StepType.FINAL_QUERY for s in steps):
            steps.append(self._synthesized_final(intent, schema_context))

        return QueryPlan(
            intent=intent.intent,
            steps=_renumber(steps),
            strategy=DEFAULT_STRATEGY,
            confidence=schema_context.confidence_score,
        )

    def fallback_plan(self, intent: Intent, schema_context: SchemaContext) -> QueryPlan:
        """Sample the top table, then run the final query."""
        top = schema_context.top_table
        abstract = [
            AbstractPlanStep(
                order=1,
                action="exploration",
                description="Sample primary table data",
                parameters={
                    "tables": [top.full_name] if top is not None else [],
                    "operation": "sample",
                    "limit": Constants.DEFAULT_EXPLORATION_LIMIT,
                },
            ),
            AbstractPlanStep(
                order=2,
                action="final_execution",
                description="Execute final query",
                parameters={"limit": _intent_limit(intent)},
            ),
        ]
        steps = self._translate_all(intent, abstract, schema_context)
        return QueryPlan(
            intent=intent.intent,
            steps=_renumber(steps),
            strategy=FALLBACK_STRATEGY,
            confidence=FALLBACK_CONFIDENCE,
        )

    # ---- translation -----------------------------------------------------------
    def _translate_all(
        self,
        intent: Intent,
        abstract_steps: Sequence[AbstractPlanStep],
        schema_context: SchemaContext,
    ) -> list[PlanStep]:
        steps: list[PlanStep] = []
        for abstract in sorted(abstract_steps, key=lambda s: s.order):
            translate = self._translators.get(abstract.action.strip().lower())
            if translate is None:
                _logger.warning("Unknown action type: %s", abstract.action)
                continue
            steps.append(translate(abstract, intent, schema_context))
        return steps

    def _exploration(
        self, abstract: AbstractPlanStep, intent: Intent, ctx: SchemaContext
    ) -> PlanStep:
        params = abstract.parameters
        tables = self._resolve_tables(params, ctx)
        if not tables and ctx.top_table is not None:
            tables = [ctx.top_table.full_name]
        operation = as_string(params, "operation", "sample").lower()
        limit = as_int(params, "limit", Constants.DEFAULT_EXPLORATION_LIMIT)
        resolved = {**params, "tables": tables, "operation": operation, "limit": limit}

        if operation == "describe" and tables:
            return self._step(
                abstract,
                StepType.SCHEMA_ANALYSIS,
                Constants.INTROSPECTION_ONLY_SQL,
                resolved,
                default_description=f"Analyze structure of {tables[0]}",
            )

        sql: str | None = None
        if operation == "sample" and len(tables) == 1:
            sql = f"SELECT TOP ({limit}) * FROM {self._table(tables[0])}"
        return self._step(
            abstract,
            StepType.DATA_EXPLORATION,
            sql,
            resolved,
            default_description="Explore table data",
        )

    def _analysis(
        self, abstract: AbstractPlanStep, intent: Intent, ctx: SchemaContext
    ) -> PlanStep:
        params = abstract.parameters
        tables = self._resolve_tables(params, ctx)
        operation = as_string(params, "operation", "aggregate").lower()
        resolved = {**params, "tables": tables, "operation": operation}

        sql: str | None = None
        if operation == "join" and len(tables) >= 2:
            sql = self._join_probe(tables[0], tables[1], ctx)
        elif operation == "aggregate":
            table = tables[0] if tables else (ctx.top_table.full_name if ctx.top_table else None)
            if table is not None:
                sql = self._aggregate(table, ctx)
        return self._step(
            abstract,
            StepType.DATA_ANALYSIS,
            sql,
            resolved,
            default_description="Analyze related data",
        )

    def _query_building(
        self, abstract: AbstractPlanStep, intent: Intent, ctx: SchemaContext
    ) -> PlanStep:
        params = abstract.parameters
        tables = self._resolve_tables(params, ctx)
        resolved = {**params, "tables": tables}
        sql = self._intermediate(tables[0], ctx) if tables else None
        return self._step(
            abstract,
            StepType.QUERY_CONSTRUCTION,
            sql,
            resolved,
            default_description="Build intermediate aggregate",
        )

    def _final_execution(
        self, abstract: AbstractPlanStep, intent: Intent, ctx: SchemaContext
    ) -> PlanStep:
        params = abstract.parameters
        limit = as_int(params, "limit", _intent_limit(intent))
        resolved = {**params, "limit": limit}
        return self._step(
            abstract,
            StepType.FINAL_QUERY,
            self._final_query(ctx, limit),
            resolved,
            default_description="Execute final query",
        )

    # ---- synthesized steps -----------------------------------------------------
    def _synthesized_exploration(self, ctx: SchemaContext) -> PlanStep:
        top = ctx.top_table
        limit = Constants.DEFAULT_EXPLORATION_LIMIT
        return PlanStep(
            order=0,
            step_type=StepType.DATA_EXPLORATION,
            description="Explore primary tables to understand data structure",
            sql_template=(
                f"SELECT TOP ({limit}) * FROM {self._table(top.full_name)}" if top else None
            ),
            parameters={"tables": [top.full_name] if top else [], "limit": limit},
            purpose="Understand the structure and content of key tables",
            reasoning="Essential first step to understand available data",
        )

    def _synthesized_final(self, intent: Intent, ctx: SchemaContext) -> PlanStep:
        limit = _intent_limit(intent)
        return PlanStep(
            order=0,
            step_type=StepType.FINAL_QUERY,
            description="Execute final query answering the question",
            sql_template=self._final_query(ctx, limit),
            parameters={"limit": limit},
            purpose="Produce the answer to the original question",
            reasoning="Every plan ends with a query that answers the question",
        )

    # ---- SQL builders ------------------------------------------------------------
    def _join_probe(self, left: str, right: str, ctx: SchemaContext) -> str:
        left_cols = _columns_of(ctx.find_table(left))
        right_cols = _columns_of(ctx.find_table(right))
        column = quote_identifier(heuristics.find_join_column(left_cols, right_cols))
        return (
            f"SELECT TOP {Constants.JOIN_TEST_ROWS}\n"
            "    t1.*,\n"
            "    t2.*\n"
            f"FROM {self._table(left)} t1\n"
            f"INNER JOIN {self._table(right)} t2 ON t1.{column} = t2.{column}"
        )

    def _aggregate(self, table: str, ctx: SchemaContext) -> str:
        select = ["COUNT(*) AS TotalRecords"]
        user_id = heuristics.first_matching(
            _columns_of(ctx.find_table(table)), heuristics.is_user_id_column
        )
        if user_id is not None:
            select.append(f"COUNT(DISTINCT {quote_identifier(user_id)}) AS UniqueUsers")
        return "SELECT\n    " + ",\n    ".join(select) + f"\nFROM {self._table(table)}"

    def _intermediate(self, table: str, ctx: SchemaContext) -> str:
        candidate = ctx.find_table(table)
        columns = _columns_of(candidate)
        key = heuristics.first_matching(columns, heuristics.is_user_id_column)
        if key is None and candidate is not None:
            key = candidate.primary_key()
        select = ["COUNT(*) AS RecordCount"]
        if key is not None:
            quoted = quote_identifier(key)
            select.append(f"MIN({quoted}) AS Min{_alias(key)}")
            select.append(f"MAX({quoted}) AS Max{_alias(key)}")
        return "SELECT\n    " + ",\n    ".join(select) + f"\nFROM {self._table(table)}"

    def _final_query(self, ctx: SchemaContext, limit: int) -> str | None:
        user_table = next(
            (c for c in ctx.relevant_tables if heuristics.is_user_table(c.table)), None
        )
        usage_table = next(
            (
                c
                for c in ctx.relevant_tables
                if heuristics.is_usage_table(c.table) and c is not user_table
            ),
            None,
        )
        if user_table is not None and usage_table is not None:
            return self._user_usage_query(user_table, usage_table, limit)

        best = ctx.top_table
        if best is None:
            return None
        sql = f"SELECT TOP ({limit}) * FROM {self._table(best.full_name)}"
        pk = best.primary_key()
        if pk is not None:
            sql += f" ORDER BY {quote_identifier(pk)}"
        return sql

    def _user_usage_query(self, users: TableCandidate, usage: TableCandidate, limit: int) -> str:
        """Join user-like and usage-like tables, aggregate usage per user."""
        left_key, right_key = heuristics.resolve_join_pair(
            users.column_names, usage.column_names, users.primary_key()
        )
        group = [f"u.{quote_identifier(left_key)}"]
        descriptive = [
            c.name for c in users.columns if heuristics.is_descriptive_column(c.name)
        ][:_GROUP_COLUMNS]
        group.extend(f"u.{quote_identifier(name)}" for name in descriptive)

        select = list(group)
        metrics: list[str] = []
        for column in usage.columns:
            if len(metrics) >= _SUM_COLUMNS:
                break
            if heuristics.is_numeric_type(column.data_type) and not column.is_primary_key_candidate:
                alias = f"Total{_alias(column.name)}"
                select.append(f"SUM(uru.{quote_identifier(column.name)}) AS {alias}")
                metrics.append(alias)
        select.append("COUNT(*) AS ActivityCount")
        date_column = next(
            (c.name for c in usage.columns if heuristics.is_date_type(c.data_type)), None
        )
        if date_column is not None:
            latest = f"Latest{_alias(date_column)}"
            select.append(f"MAX(uru.{quote_identifier(date_column)}) AS {latest}")

        order = [f"{m} DESC" for m in metrics] or ["ActivityCount DESC"]
        return (
            f"SELECT TOP ({limit})\n    "
            + ",\n    ".join(select)
            + f"\nFROM {self._table(users.full_name)} u\n"
            + f"INNER JOIN {self._table(usage.full_name)} uru"
            + f" ON u.{quote_identifier(left_key)} = uru.{quote_identifier(right_key)}\n"
            + "GROUP BY "
            + ", ".join(group)
            + "\nORDER BY "
            + ", ".join(order)
        )

    # ---- helpers ------------------------------------------------------------------
    def _step(
        self,
        abstract: AbstractPlanStep,
        step_type: StepType,
        sql: str | None,
        parameters: dict[str, Any],
        *,
        default_description: str,
    ) -> PlanStep:
        return PlanStep(
            order=abstract.order,
            step_type=step_type,
            description=abstract.description or default_description,
            sql_template=sql,
            parameters=parameters,
            purpose=abstract.expected_outcome,
            reasoning=abstract.reasoning,
        )

    def _resolve_tables(self, params: dict[str, Any], ctx: SchemaContext) -> list[str]:
        """Map named tables to discovered candidates, else qualify with the default schema."""
        resolved: list[str] = []
        for name in as_table_list(params):
            candidate = ctx.find_table(name)
            if candidate is not None:
                resolved.append(candidate.full_name)
            else:
                schema, table = heuristics.split_table_name(name, self.default_schema)
                resolved.append(f"{schema}.{table}")
        return resolved

    def _table(self, full_name: str) -> str:
        return quote_table(full_name, self.default_schema)


def _renumber(steps: list[PlanStep]) -> tuple[PlanStep, ...]:
    return tuple(step.renumbered(i) for i, step in enumerate(steps, start=1))


def _intent_limit(intent: Intent) -> int:
    return as_int(intent.parameters, "limit", Constants.DEFAULT_FINAL_LIMIT)


def _columns_of(candidate: TableCandidate | None) -> list[str]:
    return candidate.column_names if candidate is not None else []


def _alias(name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in name.replace(" ", "_").split("_"))
