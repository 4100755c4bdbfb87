"""MCP tool registration for nl2sql-analyst."""

from __future__ import annotations

from .analysis_tools import register_analysis_tools
from .execute_tools import register_execute_query_tool

__all__ = [
    "register_analysis_tools",
    "register_execute_query_tool",
]
