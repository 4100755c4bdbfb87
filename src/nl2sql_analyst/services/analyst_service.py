"""Analyst service for nl2sql-analyst.

Wires an engine, the SQLAlchemy introspector and a language-understanding
capability into an `AnalysisOrchestrator`, and shapes its output into the
payloads returned by the MCP tools. All methods are synchronous; tool
handlers dispatch them to worker threads.
"""

from __future__ import annotations

import threading
import time

from fastmcp.utilities.logging import get_logger
import sqlalchemy as sa

from nl2sql_analyst.analysis.discovery import SchemaDiscoveryEngine
from nl2sql_analyst.analysis.exceptions import AnalystError
from nl2sql_analyst.analysis.models import SchemaContext
from nl2sql_analyst.analysis.orchestrator import AnalysisOrchestrator
from nl2sql_analyst.introspection import SqlAlchemyIntrospector
from nl2sql_analyst.llm.base import TextUnderstanding
from nl2sql_analyst.models import (
    AnalysisReport,
    ExecuteQueryResult,
    SchemaDiscoveryResult,
    TableSummary,
)
from nl2sql_analyst.services.config_service import AnalysisSettings

_logger = get_logger(__name__)


def summarize_tables(schema_context: SchemaContext) -> list[TableSummary]:
    """Ranked candidates as tool payload summaries."""
    return [
        TableSummary(
            name=t.full_name,
            relevance_score=round(t.relevance_score, 2),
            row_count=t.stats.row_count if t.stats is not None else None,
            columns=t.column_names,
            foreign_keys=[
                f"{fk.column} -> {fk.referenced_full_name}.{fk.referenced_column}"
                for fk in t.foreign_keys
            ],
        )
        for t in schema_context.relevant_tables
    ]


class AnalystService:
    """Runs analyses, schema discovery and ad-hoc SELECTs for one database."""

    def __init__(
        self,
        engine: sa.Engine,
        settings: AnalysisSettings,
        text: TextUnderstanding | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            engine: SQLAlchemy database engine
            settings: Analysis tunables
            text: Language understanding capability; None runs on fallbacks only
        """
        self.engine = engine
        self.settings = settings
        self.introspector = SqlAlchemyIntrospector(
            engine,
            default_schema=settings.default_schema,
            row_limit=settings.row_limit,
            max_cell_chars=settings.max_cell_chars,
            timeout_sec=settings.query_timeout_sec or None,
        )
        discovery = SchemaDiscoveryEngine(self.introspector, max_tables=settings.max_tables)
        self.orchestrator = AnalysisOrchestrator(self.introspector, text, discovery=discovery)

    def analyze(
        self,
        question: str,
        *,
        deadline_sec: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> AnalysisReport:
        timeout = deadline_sec if deadline_sec is not None else self.settings.run_timeout_sec
        return self.orchestrator.analyze(
            question, timeout_sec=timeout or None, cancel_event=cancel_event
        )

    def discover(self, question: str) -> SchemaDiscoveryResult:
        intent, context = self.orchestrator.explore(
            question, timeout_sec=self.settings.run_timeout_sec or None
        )
        return SchemaDiscoveryResult(
            question=question,
            intent=intent,
            tables=summarize_tables(context),
            schemas_explored=context.schemas_explored,
            confidence_score=context.confidence_score,
        )

    def execute_query(self, sql: str) -> ExecuteQueryResult:
        """Run a SELECT written in the connected database's own dialect.

        Rejected and failing statements come back with ``status="error"``.
        """
        dialect = self.introspector.dialect
        execution: dict[str, int | float | str | bool] = {
            "dialect": dialect,
            "row_limit": self.settings.row_limit,
        }
        start = time.perf_counter()
        try:
            sql_to_run = self.introspector.normalize_sql(sql, source=dialect)
            rows = self.introspector.execute_select(sql_to_run, source=dialect)
        except AnalystError as exc:
            _logger.warning("execute_query rejected or failed: %s", exc)
            execution["elapsed_ms"] = (time.perf_counter() - start) * 1000.0
            return ExecuteQueryResult(
                sql=sql, execution=execution, status="error", execution_error=str(exc)
            )
        execution["elapsed_ms"] = (time.perf_counter() - start) * 1000.0
        execution["rows_returned"] = len(rows)
        execution["truncated"] = len(rows) >= self.settings.row_limit
        return ExecuteQueryResult(sql=sql_to_run, execution=execution, results=rows)
