"""Pydantic models for analysis I/O.

These models cross a boundary: either they come back from the language
model as structured output (intent, abstract plan steps, narrative), or
they go out through the MCP tools as the run report. Internal pipeline
state lives in `nl2sql_analyst.analysis.models` as plain dataclasses.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Record = dict[str, Any]


class QueryType(str, Enum):
    """Shape of answer the question asks for."""

    TOP_N = "TopN"
    COUNT = "Count"
    SUM = "Sum"
    AVERAGE = "Average"
    LIST = "List"
    COMPARISON = "Comparison"
    ANALYSIS = "Analysis"


class StepType(str, Enum):
    """Concrete kinds of compiled plan steps."""

    DATA_EXPLORATION = "DataExploration"
    SCHEMA_ANALYSIS = "SchemaAnalysis"
    DATA_ANALYSIS = "DataAnalysis"
    QUERY_CONSTRUCTION = "QueryConstruction"
    FINAL_QUERY = "FinalQuery"


# -----------------------
# Language model outputs
# -----------------------


class Intent(BaseModel):
    """Structured interpretation of a free-text question."""

    model_config = ConfigDict(frozen=True)

    intent: str = Field(description="One-line description of what the user wants")
    entities: list[str] = Field(
        default_factory=list, description="Business entities mentioned (users, orders, ...)"
    )
    query_type: QueryType = Field(default=QueryType.ANALYSIS, description="Answer shape")
    parameters: dict[str, Any] = Field(
        default_factory=dict,
        description="Requested limit, ordering, grouping or time range, e.g. {limit: 10}",
    )
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Interpretation confidence")
    search_terms: list[str] = Field(
        default_factory=list, description="Terms to search table and column names for"
    )
    reasoning: str = Field(default="", description="Short explanation of the interpretation")


class AbstractPlanStep(BaseModel):
    """Loose planning step proposed by the language model before compilation."""

    order: int = Field(description="Suggested position of the step, 1-based")
    action: str = Field(
        description="One of: exploration, analysis, query_building, final_execution"
    )
    description: str = Field(default="", description="What the step does")
    parameters: dict[str, Any] = Field(
        default_factory=dict,
        description=(
            "Loose parameters such as {tables: ['dbo.Users'], operation: 'sample', limit: 5}"
        ),
    )
    reasoning: str = Field(default="", description="Why the step is needed")
    expected_outcome: str = Field(default="", description="What the step should reveal")


class AbstractPlan(BaseModel):
    """Wrapper used as the structured output type for plan generation."""

    steps: list[AbstractPlanStep] = Field(default_factory=list)


class NarrativeInsights(BaseModel):
    """Prose produced from the computed metrics and patterns."""

    summary: str = Field(description="Two or three sentence executive summary")
    patterns: list[str] = Field(default_factory=list, description="Additional observed patterns")
    recommendations: list[str] = Field(
        default_factory=list, description="Actionable follow-ups for the reader"
    )


# -----------------------
# Report models
# -----------------------


class KeyMetric(BaseModel):
    """One computed metric over the final result set."""

    name: str
    value: str | int | float
    description: str = ""
    category: str = ""


class Insights(BaseModel):
    """Metrics, patterns and narrative derived from a finished run."""

    summary: str = ""
    key_metrics: list[KeyMetric] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    observations: list[str] = Field(default_factory=list)


class ExecutionStep(BaseModel):
    """Outcome of executing one compiled plan step."""

    step_number: int
    step_type: StepType
    description: str = ""
    sql_query: str | None = None
    results: list[Record] = Field(default_factory=list)
    reasoning: str = ""
    purpose: str = ""
    executed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    duration_ms: float = 0.0
    error: str | None = Field(default=None, description="Failure reason when the step failed")


class ReportMetadata(BaseModel):
    """Run-level bookkeeping attached to a report."""

    tables_analyzed: list[str] = Field(default_factory=list)
    schemas_explored: list[str] = Field(default_factory=list)
    total_steps: int = 0
    total_duration_ms: float = 0.0
    confidence_score: float = 0.0
    started_at: datetime | None = None
    finished_at: datetime | None = None


class AnalysisReport(BaseModel):
    """The single externally consumed artifact of an analysis run."""

    original_query: str
    intent: Intent | None = None
    steps: list[ExecutionStep] = Field(default_factory=list)
    final_data: list[Record] = Field(default_factory=list)
    insights: Insights = Field(default_factory=Insights)
    metadata: ReportMetadata = Field(default_factory=ReportMetadata)
    success: bool = True
    error_message: str | None = None
    final_answer: str = ""


# -----------------------
# MCP tool payloads
# -----------------------


class TableSummary(BaseModel):
    """Ranked candidate table as returned by the discover_schema tool."""

    name: str = Field(description="Fully qualified table name 'schema.table'")
    relevance_score: float
    row_count: int | None = None
    columns: list[str] = Field(default_factory=list)
    foreign_keys: list[str] = Field(
        default_factory=list, description="'column -> schema.table.column' entries"
    )


class SchemaDiscoveryResult(BaseModel):
    """Result of schema discovery without plan execution."""

    question: str
    intent: Intent
    tables: list[TableSummary] = Field(default_factory=list)
    schemas_explored: list[str] = Field(default_factory=list)
    confidence_score: float = 0.0


class ExecuteQueryResult(BaseModel):
    """Structured response from the execute_query tool."""

    sql: str = Field(description="Executed SQL after dialect normalization")
    execution: dict[str, int | float | str | bool] = Field(
        default_factory=dict,
        description="Execution metadata: dialect, elapsed_ms, row_limit, rows_returned",
    )
    results: list[Record] = Field(default_factory=list)
    status: Literal["ok", "error"] = Field(default="ok")
    execution_error: str | None = Field(default=None)
    timestamp: str = Field(
        default_factory=lambda: datetime.now(UTC).isoformat(),
        description="UTC ISO8601 timestamp of completion",
    )
