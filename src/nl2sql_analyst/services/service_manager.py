"""Analyst service manager for nl2sql-analyst.

Provides a per-process singleton `AnalystService`, created lazily on first
use (or eagerly from the FastMCP lifespan) and torn down on shutdown.
"""

from __future__ import annotations

import asyncio
import hashlib
import threading
from typing import ClassVar

from fastmcp.utilities.logging import get_logger
import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from nl2sql_analyst.llm.base import TextUnderstanding
from nl2sql_analyst.llm.pydantic_agent import PydanticAgentTextUnderstanding
from nl2sql_analyst.services.analyst_service import AnalystService
from nl2sql_analyst.services.config_service import ConfigService


class AnalystServiceManager:
    """Singleton manager for the AnalystService instance.

    Creation happens at most once under an asyncio lock; the blocking part
    (engine creation and a connectivity probe) runs on a worker thread.
    """

    _instance: ClassVar[AnalystServiceManager | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self) -> None:
        self._service: AnalystService | None = None
        self._initialization_lock = asyncio.Lock()
        self._logger = get_logger(__name__)
        self._error_message: str | None = None

    @classmethod
    def get_instance(cls) -> AnalystServiceManager:
        """Get the singleton instance of AnalystServiceManager."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (primarily for testing)."""
        with cls._lock:
            cls._instance = None

    async def get_analyst_service(self) -> AnalystService:
        """Return the service, creating it on first call.

        Raises:
            RuntimeError: Configuration is missing or the database is unreachable
        """
        if self._service is not None:
            return self._service
        async with self._initialization_lock:
            if self._service is None:
                try:
                    self._service = await asyncio.to_thread(self._initialize_sync)
                except (ValueError, OSError, SQLAlchemyError) as exc:
                    self._error_message = str(exc)
                    self._logger.exception("AnalystService initialization failed")
                    msg = f"AnalystService is not available: {exc}"
                    raise RuntimeError(msg) from exc
                self._error_message = None
        return self._service

    async def shutdown(self) -> None:
        """Dispose the database engine and drop the service."""
        async with self._initialization_lock:
            if self._service is None:
                return
            try:
                self._logger.info("Shutting down AnalystService…")
                self._service.engine.dispose()
                self._logger.debug("Database engine disposed")
            except (OSError, SQLAlchemyError) as exc:
                self._logger.warning("Error during AnalystService shutdown: %s", exc)
            finally:
                self._service = None

    @property
    def is_initialized(self) -> bool:
        return self._service is not None

    def status(self) -> dict[str, object | None]:
        """Initialization snapshot for the health route."""
        return {
            "initialized": self.is_initialized,
            "dialect": self._service.engine.dialect.name if self._service is not None else None,
            "error": self._error_message,
        }

    # ---- internal ------------------------------------------------------------

    def _initialize_sync(self) -> AnalystService:
        self._logger.info("Starting AnalystService initialization…")
        database_url = ConfigService.get_database_url()
        fp = hashlib.sha256(database_url.encode("utf-8")).hexdigest()[:10]
        self._logger.debug("Using database fingerprint: %s", fp)

        engine = ConfigService.create_database_engine(database_url)
        self._logger.debug("Testing database connectivity…")
        with engine.connect() as conn:
            conn.execute(sa.text("SELECT 1"))

        text: TextUnderstanding | None = None
        if ConfigService.llm_enabled():
            llm = ConfigService.get_llm_config()
            try:
                text = PydanticAgentTextUnderstanding(llm)
            except Exception as exc:  # noqa: BLE001 - missing provider credentials degrade
                self._logger.warning("Language model unavailable, using fallbacks: %s", exc)
            else:
                self._logger.info("Language model: %s:%s", llm.provider, llm.model)
        else:
            self._logger.info("Language model disabled; analyses use deterministic fallbacks")

        service = AnalystService(engine, ConfigService.get_analysis_settings(), text)
        self._logger.info("AnalystService instance created (dialect=%s)", engine.dialect.name)
        return service
