"""Metrics, patterns and observations over a finished run.

Everything except the narrative is pure computation over the final data,
the executed steps and the schema context. Numeric columns are detected
from the first record: ints, floats and decimals count, bools do not, and
strings count when they parse as a number.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
import math
from typing import TYPE_CHECKING

from fastmcp.utilities.logging import get_logger
import numpy as np

from nl2sql_analyst.llm.fallbacks import fallback_narrative
from nl2sql_analyst.models import ExecutionStep, Insights, KeyMetric, Record, StepType

from . import heuristics
from .constants import Constants
from .models import ExecutionResult, SchemaContext

if TYPE_CHECKING:
    from nl2sql_analyst.llm.base import TextUnderstanding

_logger = get_logger(__name__)

_NARRATIVE_SAMPLE_ROWS = 5


def to_number(value: object) -> float | None:
    """Numeric view of a cell, or None when the cell is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float | Decimal):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def numeric_columns(record: Record) -> list[str]:
    return [key for key, value in record.items() if to_number(value) is not None]


def column_values(rows: Sequence[Record], column: str) -> list[float]:
    values: list[float] = []
    for row in rows:
        number = to_number(row.get(column))
        if number is not None:
            values.append(number)
    return values


def _display(number: float) -> int | float:
    """Render integral floats as ints so ``104.0`` reads as ``104``."""
    return int(number) if float(number).is_integer() else round(float(number), 2)


def compute_metrics(final_data: Sequence[Record]) -> list[KeyMetric]:
    """Key metrics over ``final_data``, capped at `Constants.MAX_METRICS`."""
    metrics = [
        KeyMetric(
            name="Total Records",
            value=len(final_data),
            description="Total number of records returned by the analysis",
            category="Volume",
        )
    ]
    if not final_data:
        return metrics

    first = final_data[0]
    for column in numeric_columns(first):
        values = column_values(final_data, column)
        if not values:
            continue
        arr = np.asarray(values, dtype=float)
        metrics.extend(
            [
                KeyMetric(
                    name=f"{column} - Total",
                    value=_display(float(arr.sum())),
                    description=f"Sum of all {column} values",
                    category="Aggregate",
                ),
                KeyMetric(
                    name=f"{column} - Average",
                    value=round(float(np.mean(arr)), 2),
                    description=f"Average {column} value",
                    category="Statistical",
                ),
                KeyMetric(
                    name=f"{column} - Median",
                    value=round(float(np.median(arr)), 2),
                    description=f"Median {column} value",
                    category="Statistical",
                ),
                KeyMetric(
                    name=f"{column} - Range",
                    value=f"{_display(float(arr.min()))} - {_display(float(arr.max()))}",
                    description=f"Range of {column} values",
                    category="Distribution",
                ),
            ]
        )

    user_id = heuristics.first_matching(first.keys(), heuristics.is_user_id_column)
    if user_id is not None:
        unique = {str(row.get(user_id)) for row in final_data if row.get(user_id) is not None}
        metrics.append(
            KeyMetric(
                name="Unique Users",
                value=len(unique),
                description="Number of unique users in the result set",
                category="Business",
            )
        )

    department = heuristics.first_matching(first.keys(), heuristics.is_department_column)
    if department is not None:
        departments = {str(row[department]) for row in final_data if row.get(department)}
        metrics.append(
            KeyMetric(
                name="Departments Represented",
                value=len(departments),
                description="Number of different departments in the results",
                category="Business",
            )
        )

    return metrics[: Constants.MAX_METRICS]


def concentration_pattern(column: str, values: Sequence[float]) -> str | None:
    """Flag columns where the top 20% of values hold more than 80% of the total."""
    if len(values) < 2:
        return None
    ordered = sorted(values, reverse=True)
    total = sum(ordered)
    if total <= 0:
        return None
    head = max(1, len(ordered) // Constants.CONCENTRATION_DIVISOR)
    share = sum(ordered[:head]) / total * 100.0
    if share <= Constants.CONCENTRATION_THRESHOLD:
        return None
    return f"High concentration: Top 20% of {column} values account for {share:.1f}% of total"


def sparsity_pattern(column: str, values: Sequence[float]) -> str | None:
    """Flag columns where more than half the values are exactly zero."""
    if not values:
        return None
    zeros = sum(1 for v in values if v == 0)
    pct = zeros * 100.0 / len(values)
    if pct <= Constants.SPARSITY_THRESHOLD:
        return None
    return (
        f"Data sparsity: {zeros}/{len(values)} records have zero {column} values ({pct:.1f}%)"
    )


def detect_patterns(final_data: Sequence[Record], steps: Sequence[ExecutionStep]) -> list[str]:
    """Distribution patterns over the final data plus structural run patterns."""
    if not final_data:
        return ["No data patterns identified - empty result set"]

    patterns: list[str] = []
    columns = numeric_columns(final_data[0])[: Constants.PATTERN_NUMERIC_COLUMNS]
    for column in columns:
        values = column_values(final_data, column)
        for found in (concentration_pattern(column, values), sparsity_pattern(column, values)):
            if found is not None:
                patterns.append(found)

    explorations = sum(1 for s in steps if s.step_type is StepType.DATA_EXPLORATION)
    if explorations > Constants.STRUCTURAL_EXPLORATION_STEPS:
        patterns.append(
            f"Comprehensive analysis: {explorations} exploration steps performed "
            "for thorough data understanding"
        )
    joins = sum(1 for s in steps if s.sql_query and "join" in s.sql_query.lower())
    if joins:
        patterns.append(
            f"Complex data relationships: {joins} table joins performed to correlate information"
        )
    return patterns


def observe(steps: Sequence[ExecutionStep], schema_context: SchemaContext) -> list[str]:
    """Observations about the run itself rather than the data."""
    total_ms = sum(s.duration_ms for s in steps)
    observations = [f"Query execution completed in {total_ms:.0f}ms across {len(steps)} steps"]

    counts = [len(s.results) for s in steps if s.results]
    if counts:
        observations.append(
            f"Data retrieval varied from {min(counts)} to {max(counts)} records per step"
        )

    tables = schema_context.relevant_tables
    if tables:
        with_data = sum(1 for t in tables if t.row_count > 0)
        total_rows = sum(t.row_count for t in tables)
        observations.append(f"Analyzed {len(tables)} tables with {total_rows:,} total records")
        if with_data < len(tables):
            observations.append(
                f"Data availability: {with_data}/{len(tables)} analyzed tables contain data"
            )

    observations.append(f"Schema discovery confidence: {schema_context.confidence_score:.1%}")
    return observations


class InsightSynthesizer:
    """Builds `Insights` from an execution result and its schema context."""

    def __init__(self, text: TextUnderstanding | None = None) -> None:
        self.text = text

    def synthesize(
        self, query: str, execution: ExecutionResult, schema_context: SchemaContext
    ) -> Insights:
        metrics = compute_metrics(execution.final_data)
        patterns = detect_patterns(execution.final_data, execution.steps)
        observations = observe(execution.steps, schema_context)

        insights = Insights(key_metrics=metrics, patterns=patterns, observations=observations)
        narrative = fallback_narrative(query)
        if self.text is not None:
            try:
                narrative = self.text.narrate_insights(
                    query, insights, execution.final_data[:_NARRATIVE_SAMPLE_ROWS]
                )
            except Exception as exc:  # noqa: BLE001 - narrative failures never fail the run
                _logger.warning("Insight narrative unavailable, using fallback: %s", exc)

        insights.summary = narrative.summary
        insights.patterns = [*patterns, *narrative.patterns]
        insights.recommendations = list(narrative.recommendations)
        _logger.info(
            "Generated %d metrics, %d patterns, %d recommendations",
            len(insights.key_metrics),
            len(insights.patterns),
            len(insights.recommendations),
        )
        return insights
