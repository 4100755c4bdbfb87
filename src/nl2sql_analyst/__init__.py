"""nl2sql-analyst: progressive natural-language analysis over relational databases.

Provides a Model Context Protocol (FastMCP) server that turns a question into
ranked schema discovery, a compiled multi-step SQL plan, progressive
execution and summarized insights.
"""

from nl2sql_analyst.models import (
    AnalysisReport,
    ExecuteQueryResult,
    ExecutionStep,
    Insights,
    Intent,
    SchemaDiscoveryResult,
)

__all__ = [
    "AnalysisReport",
    "ExecuteQueryResult",
    "ExecutionStep",
    "Insights",
    "Intent",
    "SchemaDiscoveryResult",
]
