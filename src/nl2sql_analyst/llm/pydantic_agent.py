"""PydanticAI-backed implementation of `TextUnderstanding`.

Each capability is a small agent with its own system prompt and structured
``output_type``. Agents are built once per instance and run synchronously;
the orchestrator already runs on a worker thread.

Failures are normalized: intent and plan generation raise
`LanguageModelError`, prose helpers raise `NarrativeError`. Callers
substitute the deterministic fallbacks from `nl2sql_analyst.llm.fallbacks`.
"""

from __future__ import annotations

from collections.abc import Mapping
import json
from typing import TYPE_CHECKING, Any

from fastmcp.utilities.logging import get_logger
from pydantic_ai import Agent

from nl2sql_analyst.analysis.exceptions import LanguageModelError, NarrativeError
from nl2sql_analyst.analysis.models import SchemaContext
from nl2sql_analyst.models import (
    AbstractPlan,
    AbstractPlanStep,
    AnalysisReport,
    Insights,
    Intent,
    NarrativeInsights,
    Record,
)

if TYPE_CHECKING:
    from nl2sql_analyst.services.config_service import LLMConfig

_logger = get_logger(__name__)

_PLAN_TABLES = 10
_PLAN_COLUMNS = 5
_SAMPLE_RECORDS = 5
_ANSWER_RECORDS = 10

INTENT_PROMPT = (
    "You are an expert database analyst who helps understand natural language "
    "queries about databases.\n"
    "Extract the user's intent, the business entities mentioned, the query type "
    "(TopN, Count, Sum, Average, List, Comparison or Analysis), parameters such as "
    "a requested limit, ordering, grouping or time range, and the search terms "
    "that should be matched against table and column names.\n"
    "Prefer short, lowercase, singular search terms (user, order, product).\n"
    "Report a confidence between 0 and 1."
)

PLAN_PROMPT = (
    "You are an expert database analyst. Given a question and the relevant "
    "tables, create a logical, progressive plan: start with exploration, build "
    "understanding, then construct the final query.\n"
    "Each step has an order, an action (exploration, analysis, query_building or "
    "final_execution), a description, parameters, reasoning and an expected "
    "outcome.\n"
    "Useful parameters: tables (list of schema.table names), operation (sample, "
    "describe, join, aggregate), limit.\n"
    "Only reference tables from the provided list."
)

STEP_PROMPT = (
    "You explain why a step of a database analysis is being executed. "
    "Keep it to 1-2 sentences and focus on the business value of the step."
)

INSIGHT_PROMPT = (
    "You are a business analyst. Given a question, computed metrics, detected "
    "patterns and a sample of the result data, write a short executive summary, "
    "list any further patterns you notice and give practical recommendations.\n"
    "Do not invent numbers that are not in the provided metrics or data."
)

ANSWER_PROMPT = (
    "You are an expert data analyst. Based on the analysis results, answer the "
    "user's question directly in clear prose. Mention the most relevant figures, "
    "name the records that matter and keep it concise."
)


def model_id(llm: LLMConfig) -> str:
    """PydanticAI ``provider:model`` identifier for ``llm``."""
    return f"{llm.provider}:{llm.model}" if ":" not in llm.model else llm.model


def describe_tables(schema_context: SchemaContext) -> str:
    """Compact table listing used in planning prompts."""
    lines: list[str] = []
    for table in schema_context.relevant_tables[:_PLAN_TABLES]:
        cols = ", ".join(table.column_names[:_PLAN_COLUMNS])
        lines.append(f"- {table.full_name} ({table.row_count} rows): {cols}")
    return "\n".join(lines) if lines else "(no relevant tables found)"


class PydanticAgentTextUnderstanding:
    """`TextUnderstanding` on top of PydanticAI agents."""

    def __init__(self, llm: LLMConfig) -> None:
        model = model_id(llm)
        self._intent_agent: Agent[None, Intent] = Agent(
            model=model, system_prompt=INTENT_PROMPT, output_type=Intent
        )
        self._plan_agent: Agent[None, AbstractPlan] = Agent(
            model=model, system_prompt=PLAN_PROMPT, output_type=AbstractPlan
        )
        self._step_agent: Agent[None, str] = Agent(
            model=model, system_prompt=STEP_PROMPT, output_type=str
        )
        self._insight_agent: Agent[None, NarrativeInsights] = Agent(
            model=model, system_prompt=INSIGHT_PROMPT, output_type=NarrativeInsights
        )
        self._answer_agent: Agent[None, str] = Agent(
            model=model, system_prompt=ANSWER_PROMPT, output_type=str
        )
        _logger.debug("Language model agents built for %s", model)

    def analyze_intent(self, query: str) -> Intent:
        try:
            return self._intent_agent.run_sync(f"Query: {query}").output
        except Exception as exc:  # noqa: BLE001 - provider errors are not a closed set
            msg = f"Intent analysis failed: {exc}"
            raise LanguageModelError(msg) from exc

    def plan_steps(self, intent: Intent, schema_context: SchemaContext) -> list[AbstractPlanStep]:
        prompt = (
            f"Question intent: {intent.intent}\n"
            f"Query type: {intent.query_type.value}\n"
            f"Entities: {', '.join(intent.entities)}\n"
            f"Parameters: {json.dumps(intent.parameters, default=str)}\n\n"
            f"Relevant tables:\n{describe_tables(schema_context)}\n"
        )
        try:
            plan = self._plan_agent.run_sync(prompt).output
        except Exception as exc:  # noqa: BLE001 - provider errors are not a closed set
            msg = f"Plan generation failed: {exc}"
            raise LanguageModelError(msg) from exc
        return plan.steps

    def justify(self, step_description: str, context: Mapping[str, Any]) -> str:
        prompt = (
            f"Step: {step_description}\n"
            f"Context: {json.dumps(dict(context), default=str)[:2000]}"
        )
        try:
            return self._step_agent.run_sync(prompt).output
        except Exception as exc:  # noqa: BLE001 - provider errors are not a closed set
            msg = f"Step reasoning failed: {exc}"
            raise NarrativeError(msg) from exc

    def narrate_insights(
        self, query: str, insights: Insights, sample: list[Record]
    ) -> NarrativeInsights:
        metrics = "\n".join(
            f"- {m.name}: {m.value} ({m.description})" for m in insights.key_metrics
        )
        patterns = "\n".join(f"- {p}" for p in insights.patterns)
        prompt = (
            f"Question: {query}\n\n"
            f"Metrics:\n{metrics or '(none)'}\n\n"
            f"Patterns:\n{patterns or '(none)'}\n\n"
            f"Sample data:\n{json.dumps(sample[:_SAMPLE_RECORDS], default=str)}"
        )
        try:
            return self._insight_agent.run_sync(prompt).output
        except Exception as exc:  # noqa: BLE001 - provider errors are not a closed set
            msg = f"Insight narrative failed: {exc}"
            raise NarrativeError(msg) from exc

    def summarize(self, query: str, report: AnalysisReport) -> str:
        steps = "\n".join(
            f"{s.step_number}. {s.description}: {len(s.results)} records"
            for s in report.steps
        )
        prompt = (
            f"Question: {query}\n\n"
            f"Steps:\n{steps}\n\n"
            f"Summary: {report.insights.summary}\n"
            f"Final data ({len(report.final_data)} records, first {_ANSWER_RECORDS}):\n"
            f"{json.dumps(report.final_data[:_ANSWER_RECORDS], default=str)}"
        )
        try:
            answer = self._answer_agent.run_sync(prompt).output
        except Exception as exc:  # noqa: BLE001 - provider errors are not a closed set
            msg = f"Final answer generation failed: {exc}"
            raise NarrativeError(msg) from exc
        if not answer.strip():
            msg = "Final answer generation returned no text"
            raise NarrativeError(msg)
        return answer.strip()
