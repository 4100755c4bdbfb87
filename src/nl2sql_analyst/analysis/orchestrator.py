"""Composition root for a single analysis run.

Sequences intent analysis, schema discovery, planning, compilation,
progressive execution, insight synthesis and the final answer, merging
everything into one `AnalysisReport`.

Language-model stages degrade to deterministic fallbacks. Only an exception
escaping a stage (fatal discovery, cancellation, deadline) or a failed
execution loop marks the report unsuccessful; whatever was produced before
that point is still returned.
"""

from __future__ import annotations

from datetime import UTC, datetime
import threading
import time
from typing import TYPE_CHECKING

from fastmcp.utilities.logging import get_logger

from nl2sql_analyst.llm.fallbacks import fallback_answer, fallback_intent
from nl2sql_analyst.models import AbstractPlanStep, AnalysisReport, Intent, ReportMetadata

from .control import RunControl
from .discovery import SchemaDiscoveryEngine
from .executor import ProgressiveExecutor
from .insights import InsightSynthesizer
from .models import SchemaContext
from .planner import PlanCompiler

if TYPE_CHECKING:
    from nl2sql_analyst.introspection.base import DatabaseIntrospection
    from nl2sql_analyst.llm.base import TextUnderstanding

_logger = get_logger(__name__)


class AnalysisOrchestrator:
    """Runs the progressive analysis pipeline.

    Components hold no per-run state, so one orchestrator may serve
    concurrent runs from different threads.

    Attributes:
        introspection: Database introspection capability
        text: Language understanding capability, or None for fallbacks only
        discovery: Schema discovery engine
        compiler: Plan compiler
        executor: Progressive executor
        synthesizer: Insight synthesizer
    """

    def __init__(
        self,
        introspection: DatabaseIntrospection,
        text: TextUnderstanding | None = None,
        *,
        discovery: SchemaDiscoveryEngine | None = None,
        compiler: PlanCompiler | None = None,
    ) -> None:
        self.introspection = introspection
        self.text = text
        self.discovery = discovery or SchemaDiscoveryEngine(introspection)
        self.compiler = compiler or PlanCompiler(default_schema=introspection.default_schema)
        self.executor = ProgressiveExecutor(introspection, text)
        self.synthesizer = InsightSynthesizer(text)

    def analyze(
        self,
        query: str,
        *,
        timeout_sec: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> AnalysisReport:
        """Run the whole pipeline for ``query``.

        Args:
            query: Free-text question
            timeout_sec: Overall run deadline in seconds (None for no deadline)
            cancel_event: Set from another thread to stop at the next boundary

        Returns:
            The report; ``success`` is False when a stage aborted the run
        """
        control = RunControl.create(timeout_sec=timeout_sec, cancel_event=cancel_event)
        started_at = datetime.now(UTC)
        start = time.perf_counter()
        report = AnalysisReport(original_query=query)
        schema_context = SchemaContext()
        _logger.info("Starting analysis for query: %s", query)

        try:
            intent = self.analyze_intent(query)
            report.intent = intent

            schema_context = self.discovery.discover(intent, control)

            control.checkpoint("planning")
            abstract = self._plan_steps(intent, schema_context)
            plan = self.compiler.compile(intent, abstract, schema_context)
            _logger.info("Compiled plan with %d steps (%s)", len(plan.steps), plan.strategy)

            execution = self.executor.execute(plan, control)
            report.steps = execution.steps
            report.final_data = execution.final_data
            if not execution.success:
                report.success = False
                report.error_message = execution.error_message

            report.insights = self.synthesizer.synthesize(query, execution, schema_context)
            report.metadata = self._metadata(report, schema_context, started_at, start)
            report.final_answer = self._final_answer(query, report)
        except Exception as exc:  # noqa: BLE001 - run-level containment, partial report is kept
            _logger.exception("Analysis run failed")
            report.success = False
            report.error_message = str(exc)

        report.metadata = self._metadata(report, schema_context, started_at, start)
        _logger.info(
            "Analysis finished in %.0fms (success=%s, %d steps, %d records)",
            report.metadata.total_duration_ms,
            report.success,
            len(report.steps),
            len(report.final_data),
        )
        return report

    def explore(
        self, query: str, *, timeout_sec: float | None = None
    ) -> tuple[Intent, SchemaContext]:
        """Intent analysis and schema discovery only, without execution."""
        control = RunControl.create(timeout_sec=timeout_sec)
        intent = self.analyze_intent(query)
        return intent, self.discovery.discover(intent, control)

    def analyze_intent(self, query: str) -> Intent:
        """Language-model intent, or the dictionary fallback on any failure."""
        if self.text is None:
            return fallback_intent(query)
        try:
            intent = self.text.analyze_intent(query)
        except Exception as exc:  # noqa: BLE001 - any model failure degrades to the fallback
            _logger.warning("Intent analysis failed, using fallback: %s", exc)
            return fallback_intent(query)
        _logger.info(
            "Intent: %s (type=%s, confidence=%.2f)",
            intent.intent,
            intent.query_type.value,
            intent.confidence,
        )
        return intent

    # ---- stages ----------------------------------------------------------------
    def _plan_steps(self, intent: Intent, schema_context: SchemaContext) -> list[AbstractPlanStep]:
        if self.text is None:
            return []
        try:
            return self.text.plan_steps(intent, schema_context)
        except Exception as exc:  # noqa: BLE001 - the compiler falls back on an empty plan
            _logger.warning("Plan generation failed, compiling fallback plan: %s", exc)
            return []

    def _final_answer(self, query: str, report: AnalysisReport) -> str:
        tables = report.metadata.tables_analyzed
        if self.text is None:
            return fallback_answer(query, report.final_data, tables)
        try:
            answer = self.text.summarize(query, report)
        except Exception as exc:  # noqa: BLE001 - any model failure degrades to the fallback
            _logger.warning("Final answer generation failed, using fallback: %s", exc)
            return fallback_answer(query, report.final_data, tables)
        return answer

    @staticmethod
    def _metadata(
        report: AnalysisReport,
        schema_context: SchemaContext,
        started_at: datetime,
        start: float,
    ) -> ReportMetadata:
        return ReportMetadata(
            tables_analyzed=[t.full_name for t in schema_context.relevant_tables],
            schemas_explored=list(schema_context.schemas_explored),
            total_steps=len(report.steps),
            total_duration_ms=(time.perf_counter() - start) * 1000.0,
            confidence_score=schema_context.confidence_score,
            started_at=started_at,
            finished_at=datetime.now(UTC),
        )
