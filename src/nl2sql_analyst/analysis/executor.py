"""Progressive, strictly ordered execution of a compiled plan.

Each step is justified, dispatched to a handler for its type, timed and
folded into the run's `ExecutionContext` before the next step starts. A
failing step is recorded and skipped over; only an exception escaping the
loop marks the run as failed. The final data is the result set of the last
step that returned any rows.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime
import time
from typing import TYPE_CHECKING

from fastmcp.utilities.logging import get_logger

from nl2sql_analyst.llm.fallbacks import fallback_justification
from nl2sql_analyst.models import ExecutionStep, Record, StepType

from .constants import Constants
from .control import RunControl
from .exceptions import RunCancelled
from .models import ExecutionContext, ExecutionResult, PlanStep, QueryPlan
from .params import as_int, as_table_list

if TYPE_CHECKING:
    from nl2sql_analyst.introspection.base import DatabaseIntrospection
    from nl2sql_analyst.llm.base import TextUnderstanding

_logger = get_logger(__name__)

MAX_SQL_LOG_CHARS = 100


def select_final_data(steps: Sequence[ExecutionStep]) -> list[Record]:
    """Results of the last step (in execution order) that returned rows."""
    for step in reversed(steps):
        if step.results:
            return step.results
    return []


class ProgressiveExecutor:
    """Runs plan steps one at a time against the introspection capability."""

    def __init__(
        self,
        introspection: DatabaseIntrospection,
        text: TextUnderstanding | None = None,
    ) -> None:
        self.introspection = introspection
        self.text = text
        self._handlers: dict[StepType, Callable[[PlanStep], list[Record]]] = {
            StepType.DATA_EXPLORATION: self._data_exploration,
            StepType.SCHEMA_ANALYSIS: self._schema_analysis,
            StepType.DATA_ANALYSIS: self._run_sql,
            StepType.QUERY_CONSTRUCTION: self._run_sql,
            StepType.FINAL_QUERY: self._final_query,
        }

    def execute(self, plan: QueryPlan, control: RunControl | None = None) -> ExecutionResult:
        """Execute ``plan`` in order, containing failures per step."""
        control = control or RunControl()
        result = ExecutionResult()
        _logger.info("Starting progressive execution with %d steps", len(plan.steps))
        start = time.perf_counter()

        try:
            for step in sorted(plan.steps, key=lambda s: s.order):
                control.checkpoint(f"step {step.order}")
                _logger.info("Step %d: %s", step.order, step.description)
                executed = self._execute_step(step, result.context)
                result.steps.append(executed)
                result.context.record_step(
                    executed.step_number, executed.step_type, executed.results
                )
                _logger.info(
                    "Step %d completed in %.0fms. Found %d records",
                    step.order,
                    executed.duration_ms,
                    len(executed.results),
                )
        except Exception as exc:  # noqa: BLE001 - run-level containment, partial steps are kept
            _logger.exception("Query execution failed")
            result.success = False
            result.error_message = str(exc)

        result.final_data = select_final_data(result.steps)
        _logger.info(
            "Execution finished in %.0fms. Final result: %d records",
            (time.perf_counter() - start) * 1000.0,
            len(result.final_data),
        )
        return result

    # ---- per step --------------------------------------------------------------
    def _execute_step(self, step: PlanStep, context: ExecutionContext) -> ExecutionStep:
        executed_at = datetime.now(UTC)
        start = time.perf_counter()
        reasoning = self._justify(step, context)
        results: list[Record] = []
        error: str | None = None

        try:
            results = self._handlers[step.step_type](step)
        except RunCancelled:
            raise
        except Exception as exc:  # noqa: BLE001 - a failing step never aborts the run
            _logger.warning("Error executing step %d (%s): %s", step.order, step.description, exc)
            error = str(exc)
            reasoning = f"Error executing step: {exc}"
            results = []

        return ExecutionStep(
            step_number=step.order,
            step_type=step.step_type,
            description=step.description,
            sql_query=step.sql_template,
            results=results,
            reasoning=reasoning,
            purpose=step.purpose,
            executed_at=executed_at,
            duration_ms=(time.perf_counter() - start) * 1000.0,
            error=error,
        )

    def _justify(self, step: PlanStep, context: ExecutionContext) -> str:
        fallback = fallback_justification(step.description)
        if self.text is None:
            return fallback
        try:
            text = self.text.justify(
                step.description, {"purpose": step.purpose, "context": context.snapshot()}
            )
        except Exception as exc:  # noqa: BLE001 - any model failure degrades to the fallback
            _logger.debug("Justification unavailable for step %d: %s", step.order, exc)
            return fallback
        return text.strip() or fallback

    # ---- handlers -----------------------------------------------------------------
    def _data_exploration(self, step: PlanStep) -> list[Record]:
        if step.sql_template and not step.is_introspection_only:
            return self._run_sql(step)
        tables = as_table_list(step.parameters)
        if not tables:
            return []
        limit = as_int(step.parameters, "limit", Constants.DEFAULT_EXPLORATION_LIMIT)
        return self.introspection.sample_rows(tables[0], limit)

    def _schema_analysis(self, step: PlanStep) -> list[Record]:
        tables = as_table_list(step.parameters)
        if not tables:
            return []
        table = tables[0]
        columns = self.introspection.describe_table(table)
        stats = self.introspection.get_table_stats(table)
        foreign_keys = self.introspection.get_foreign_keys(table)
        preview = columns[: Constants.SUMMARY_COLUMN_PREVIEW]
        return [
            {
                "table_name": table,
                "column_count": len(columns),
                "row_count": stats.row_count,
                "size_kb": stats.total_kb,
                "foreign_key_count": len(foreign_keys),
                "columns": ", ".join(f"{c.name} ({c.data_type})" for c in preview),
                "top_columns": [c.name for c in preview],
            }
        ]

    def _final_query(self, step: PlanStep) -> list[Record]:
        results = self._run_sql(step)
        _logger.info("Final query completed. Retrieved %d records as the answer", len(results))
        return results

    def _run_sql(self, step: PlanStep) -> list[Record]:
        sql = (step.sql_template or "").strip()
        if not sql or sql.startswith(Constants.COMMENT_MARKER):
            return []
        _logger.debug("Executing SQL: %s", sql[:MAX_SQL_LOG_CHARS])
        return self.introspection.execute_select(sql)
