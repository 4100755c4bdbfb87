"""MCP tool registration for direct SQL execution (execute_query).

SELECT-only statements in the connected database's dialect, run with the
configured row limit and cell truncation.
"""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastmcp import Context, FastMCP
from fastmcp.utilities.logging import get_logger
from pydantic import Field

from nl2sql_analyst.models import ExecuteQueryResult
from nl2sql_analyst.services.service_manager import AnalystServiceManager
from nl2sql_analyst.tools.analysis_tools import preview

_logger = get_logger(__name__)


def register_execute_query_tool(mcp: FastMCP) -> None:
    """Register a safe SQL execution tool."""

    mgr = AnalystServiceManager.get_instance()

    @mcp.tool
    async def execute_query(
        ctx: Context,
        sql: Annotated[
            str,
            Field(
                description=(
                    "SELECT-only SQL to execute in the database's own dialect. "
                    "Results are limited in rows and cell length."
                )
            ),
        ],
    ) -> ExecuteQueryResult:  # pyright: ignore[reportUnusedFunction]
        """Validate and execute SELECT-only SQL with row/cell truncation.

        On error, `status` is "error" and `execution_error` explains why. If
        `execution.truncated` is true, filter or aggregate to see everything.
        """
        _logger.info("execute_query: %s", preview(sql))
        try:
            service = await mgr.get_analyst_service()
        except RuntimeError as exc:
            await ctx.error(f"Analyst service not ready: {exc}")
            raise
        return await asyncio.to_thread(service.execute_query, sql)

    _ = execute_query
