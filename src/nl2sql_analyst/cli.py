"""Command-line entrypoint for the nl2sql-analyst FastMCP server.

The transport comes from ``NL2SQL_ANALYST_TRANSPORT``: ``stdio`` (default)
for desktop MCP clients, or ``http`` to serve the streamable HTTP transport
together with the ``/health`` route on the configured host and port.
"""

from __future__ import annotations

import traceback

from fastmcp.utilities.logging import get_logger

from nl2sql_analyst.server import mcp
from nl2sql_analyst.services.config_service import ConfigService

_logger = get_logger(__name__)


def main() -> None:
    """Start the nl2sql-analyst FastMCP server."""
    transport = ConfigService.transport()
    try:
        if transport == "http":
            host, port = ConfigService.http_bind()
            _logger.info("Serving HTTP transport on %s:%d", host, port)
            mcp.run(transport="http", host=host, port=port)
        else:
            mcp.run()
    except KeyboardInterrupt:
        _logger.info("Interrupted by user. Exiting cleanly.")
    except Exception:  # noqa: BLE001 - last-resort report before the process exits
        traceback.print_exc(limit=1)


if __name__ == "__main__":
    main()
