"""Language-understanding capability used by the orchestrator.

Intent and plan generation raise `LanguageModelError` on failure so the
caller can substitute fallbacks. Prose helpers raise `NarrativeError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from nl2sql_analyst.analysis.models import SchemaContext
from nl2sql_analyst.models import (
    AbstractPlanStep,
    AnalysisReport,
    Insights,
    Intent,
    NarrativeInsights,
    Record,
)


@runtime_checkable
class TextUnderstanding(Protocol):
    """Turns text into structure and results into prose."""

    def analyze_intent(self, query: str) -> Intent: ...

    def plan_steps(
        self, intent: Intent, schema_context: SchemaContext
    ) -> list[AbstractPlanStep]: ...

    def justify(self, step_description: str, context: Mapping[str, Any]) -> str: ...

    def narrate_insights(
        self, query: str, insights: Insights, sample: list[Record]
    ) -> NarrativeInsights: ...

    def summarize(self, query: str, report: AnalysisReport) -> str: ...
