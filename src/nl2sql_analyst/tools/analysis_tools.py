"""MCP tools for progressive analysis and schema discovery.

- analyze_question(question, deadline_sec?): full run, returns an AnalysisReport
- discover_schema(question): ranked relevant tables without executing a plan
"""

from __future__ import annotations

import asyncio
import threading
from typing import Annotated

from fastmcp import Context, FastMCP
from fastmcp.utilities.logging import get_logger
from pydantic import Field

from nl2sql_analyst.models import AnalysisReport, SchemaDiscoveryResult
from nl2sql_analyst.services.service_manager import AnalystServiceManager

_logger = get_logger(__name__)

MAX_QUESTION_DISPLAY = 100


def preview(text: str) -> str:
    return text[:MAX_QUESTION_DISPLAY] + ("..." if len(text) > MAX_QUESTION_DISPLAY else "")


def register_analysis_tools(mcp: FastMCP) -> None:
    """Register analyze_question and discover_schema on ``mcp``."""

    mgr = AnalystServiceManager.get_instance()

    @mcp.tool
    async def analyze_question(
        ctx: Context,
        question: Annotated[
            str, Field(description="Free-text question about the connected database")
        ],
        deadline_sec: Annotated[
            float | None,
            Field(
                default=None,
                gt=0,
                description="Overall run deadline in seconds; defaults to the server setting",
            ),
        ] = None,
    ) -> AnalysisReport:  # pyright: ignore[reportUnusedFunction]
        """Answer a question by discovering relevant tables, planning and executing SQL steps.

        Returns every executed step with its SQL, results and reasoning, the final data,
        computed metrics and patterns, and a natural-language answer. Check `success` and
        `error_message`: partial results are returned when a run stops early.
        """
        _logger.info("analyze_question: %s", preview(question))
        try:
            service = await mgr.get_analyst_service()
        except RuntimeError as exc:
            await ctx.error(f"Analyst service not ready: {exc}")
            raise

        cancel_event = threading.Event()
        try:
            report = await asyncio.to_thread(
                service.analyze, question, deadline_sec=deadline_sec, cancel_event=cancel_event
            )
        except asyncio.CancelledError:
            cancel_event.set()
            raise
        if not report.success:
            await ctx.warning(f"Analysis incomplete: {report.error_message}")
        return report

    @mcp.tool
    async def discover_schema(
        ctx: Context,
        question: Annotated[
            str, Field(description="Free-text question used to rank tables by relevance")
        ],
    ) -> SchemaDiscoveryResult:  # pyright: ignore[reportUnusedFunction]
        """Rank the tables relevant to a question without executing any plan.

        Use before execute_query to learn table names, columns and foreign keys.
        """
        _logger.info("discover_schema: %s", preview(question))
        try:
            service = await mgr.get_analyst_service()
        except RuntimeError as exc:
            await ctx.error(f"Analyst service not ready: {exc}")
            raise
        return await asyncio.to_thread(service.discover, question)

    _ = (analyze_question, discover_schema)
