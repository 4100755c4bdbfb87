"""FastMCP server implementation for nl2sql-analyst."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import dotenv
from fastmcp import FastMCP
from fastmcp.utilities.logging import get_logger
from starlette.requests import Request
from starlette.responses import JSONResponse

from nl2sql_analyst.services.service_manager import AnalystServiceManager
from nl2sql_analyst.tools import register_analysis_tools, register_execute_query_tool

# Load environment variables
dotenv.load_dotenv()

_logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_mcp_instance: FastMCP) -> AsyncGenerator[None]:
    """Warm the analyst service on startup and dispose the engine on shutdown."""
    manager = AnalystServiceManager.get_instance()
    try:
        await manager.get_analyst_service()
    except RuntimeError:
        # Tools retry on first use and report the error to the client.
        _logger.warning("AnalystService not ready at startup; will retry on first tool call")
    try:
        yield
    finally:
        _logger.info("Shutting down AnalystService during lifespan shutdown")
        await manager.shutdown()


mcp = FastMCP(
    instructions=(
        "Answers natural-language questions about a relational database by "
        "discovering relevant tables, planning and executing progressive SQL "
        "steps, and summarizing the results. Use discover_schema to inspect "
        "the schema, analyze_question for full analyses and execute_query for "
        "ad-hoc SELECT statements."
    ),
    lifespan=lifespan,
)

register_analysis_tools(mcp)
register_execute_query_tool(mcp)


@mcp.custom_route("/health", methods=["GET"])
async def health_check(_request: Request) -> JSONResponse:
    status = AnalystServiceManager.get_instance().status()
    return JSONResponse({"status": "healthy", "service": "nl2sql-analyst", "analyst": status})
