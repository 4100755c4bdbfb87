"""Configuration service for nl2sql-analyst.

Centralizes environment variable handling and database engine creation.
Every accessor has a validated default; only the database URL is required.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Literal

import sqlalchemy as sa

from nl2sql_analyst.analysis.constants import Constants

DEFAULT_LLM_PROVIDER = "openai"
DEFAULT_LLM_MODEL = "gpt-4o-mini"


@dataclass(frozen=True)
class LLMConfig:
    """Language model selection, resolved to a PydanticAI ``provider:model`` id."""

    provider: str
    model: str


@dataclass(frozen=True)
class AnalysisSettings:
    """Tunables for discovery, execution and run control."""

    default_schema: str | None
    row_limit: int
    max_cell_chars: int
    query_timeout_sec: int
    max_tables: int
    run_timeout_sec: int


def _int_env(name: str, default: int) -> int:
    val = os.getenv(name, str(default))
    try:
        return int(val)
    except ValueError:
        return default


class ConfigService:
    """Service for managing configuration and database connections."""

    @staticmethod
    def get_database_url() -> str:
        """Get database URL from environment variable.

        Raises:
            ValueError: If NL2SQL_ANALYST_DATABASE_URL is not set
        """
        database_url = os.getenv("NL2SQL_ANALYST_DATABASE_URL")
        if not database_url:
            error_msg = "NL2SQL_ANALYST_DATABASE_URL environment variable not set"
            raise ValueError(error_msg)
        return database_url

    @staticmethod
    def create_database_engine(url: str) -> sa.Engine:
        """Create the SQLAlchemy engine.

        ``pool_pre_ping`` keeps long-lived servers from handing out dead
        connections after the database restarts.
        """
        return sa.create_engine(url, pool_pre_ping=True)

    # ---- Transport -------------------------------------------------------
    @staticmethod
    def transport() -> Literal["stdio", "http"]:
        """``http`` when NL2SQL_ANALYST_TRANSPORT asks for it, else ``stdio``."""
        value = os.getenv("NL2SQL_ANALYST_TRANSPORT", "").strip().lower()
        return "http" if value in ("http", "streamable-http") else "stdio"

    @staticmethod
    def http_bind() -> tuple[str, int]:
        host = os.getenv("NL2SQL_ANALYST_HOST", "").strip() or "127.0.0.1"
        port = _int_env("NL2SQL_ANALYST_PORT", 8000)
        return host, port if 0 < port < 65536 else 8000

    # ---- LLM configuration -----------------------------------------------
    @staticmethod
    def get_llm_config() -> LLMConfig:
        provider = os.getenv("NL2SQL_ANALYST_LLM_PROVIDER", "").strip() or DEFAULT_LLM_PROVIDER
        model = os.getenv("NL2SQL_ANALYST_LLM_MODEL", "").strip() or DEFAULT_LLM_MODEL
        return LLMConfig(provider=provider, model=model)

    @staticmethod
    def llm_enabled() -> bool:
        """False when NL2SQL_ANALYST_LLM_PROVIDER is ``none``; runs then use fallbacks only."""
        return os.getenv("NL2SQL_ANALYST_LLM_PROVIDER", "").strip().lower() != "none"

    # ---- Analysis tunables -----------------------------------------------
    @staticmethod
    def default_schema() -> str | None:
        """Schema applied to bare table names; None defers to the engine."""
        return os.getenv("NL2SQL_ANALYST_DEFAULT_SCHEMA", "").strip() or None

    @staticmethod
    def result_row_limit() -> int:
        """Maximum number of rows returned per statement."""
        return max(1, _int_env("NL2SQL_ANALYST_ROW_LIMIT", 200))

    @staticmethod
    def result_max_cell_chars() -> int:
        """Maximum characters per cell value in results."""
        return max(10, _int_env("NL2SQL_ANALYST_MAX_CELL_CHARS", 200))

    @staticmethod
    def query_timeout_sec() -> int:
        """Per-statement timeout; 0 disables it."""
        return max(0, _int_env("NL2SQL_ANALYST_QUERY_TIMEOUT", 30))

    @staticmethod
    def max_relevant_tables() -> int:
        return min(50, max(1, _int_env("NL2SQL_ANALYST_MAX_TABLES", Constants.MAX_RELEVANT_TABLES)))

    @staticmethod
    def run_timeout_sec() -> int:
        """Overall deadline for one analysis run; 0 disables it."""
        return max(0, _int_env("NL2SQL_ANALYST_RUN_TIMEOUT", 300))

    @staticmethod
    def get_analysis_settings() -> AnalysisSettings:
        return AnalysisSettings(
            default_schema=ConfigService.default_schema(),
            row_limit=ConfigService.result_row_limit(),
            max_cell_chars=ConfigService.result_max_cell_chars(),
            query_timeout_sec=ConfigService.query_timeout_sec(),
            max_tables=ConfigService.max_relevant_tables(),
            run_timeout_sec=ConfigService.run_timeout_sec(),
        )
