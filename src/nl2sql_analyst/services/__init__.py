"""Services package for nl2sql-analyst.

Main Components:
- ConfigService: Configuration and database connection management
- AnalystService: Runs analyses, discovery and ad-hoc queries for one database
- AnalystServiceManager: Per-process singleton owning the AnalystService
"""

from .analyst_service import AnalystService
from .config_service import AnalysisSettings, ConfigService, LLMConfig
from .service_manager import AnalystServiceManager

__all__ = [
    "AnalysisSettings",
    "AnalystService",
    "AnalystServiceManager",
    "ConfigService",
    "LLMConfig",
]
