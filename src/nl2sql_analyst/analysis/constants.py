"""Constants and term dictionaries for the analysis pipeline.

Scores, caps and the closed vocabularies used by the name heuristics all
live here so they can be tuned in one place.
"""

from __future__ import annotations

from typing import Final


class Constants:
    """Configuration constants for discovery, planning and insight synthesis."""

    # Discovery caps
    MAX_RELEVANT_TABLES: Final[int] = 10
    SAMPLE_TABLES: Final[int] = 5
    SAMPLE_ROWS: Final[int] = 5

    # Relevance scores
    TABLE_EXACT_SCORE: Final[float] = 10.0
    TABLE_SUBSTRING_SCORE: Final[float] = 7.0
    COLUMN_EXACT_SCORE: Final[float] = 5.0
    COLUMN_SUBSTRING_SCORE: Final[float] = 3.0
    HIGH_VALUE_TERM_BONUS: Final[float] = 2.0
    TOPN_USAGE_BONUS: Final[float] = 3.0
    ENTITY_FALLBACK_SCORE: Final[float] = 3.0

    # Post-discovery bonus pass
    HAS_ROWS_BONUS: Final[float] = 2.0
    USAGE_COLUMN_BONUS: Final[float] = 3.0
    USER_COLUMN_BONUS: Final[float] = 2.0
    RELATIONSHIP_BONUS: Final[float] = 2.0
    LOOKUP_TABLE_PENALTY: Final[float] = 1.0
    EMPTY_SAMPLE_PENALTY: Final[float] = 1.0
    LOOKUP_TABLE_MAX_ROWS: Final[int] = 10
    CONFIDENCE_DIVISOR: Final[float] = 10.0

    # Planning
    DEFAULT_FINAL_LIMIT: Final[int] = 20
    DEFAULT_EXPLORATION_LIMIT: Final[int] = 5
    JOIN_TEST_ROWS: Final[int] = 5
    DEFAULT_SCHEMA: Final[str] = "dbo"
    DEFAULT_JOIN_COLUMN: Final[str] = "Id"
    PREFERRED_JOIN_COLUMN: Final[str] = "UserId"
    COMMENT_MARKER: Final[str] = "--"
    INTROSPECTION_ONLY_SQL: Final[str] = "-- Table structure analysis via introspection"

    # Execution context
    CONTEXT_SAMPLE_ROWS: Final[int] = 3
    SUMMARY_COLUMN_PREVIEW: Final[int] = 5

    # Insights
    MAX_METRICS: Final[int] = 10
    CONCENTRATION_DIVISOR: Final[int] = 5  # top 20%
    CONCENTRATION_THRESHOLD: Final[float] = 80.0
    SPARSITY_THRESHOLD: Final[float] = 50.0
    PATTERN_NUMERIC_COLUMNS: Final[int] = 3
    STRUCTURAL_EXPLORATION_STEPS: Final[int] = 2

    # Fallback intent
    FALLBACK_CONFIDENCE: Final[float] = 0.3
    FALLBACK_INTENT: Final[str] = "General data analysis and retrieval"

    # Term dictionaries
    HIGH_VALUE_TERMS: Final[frozenset[str]] = frozenset(
        {
            "user",
            "usage",
            "activity",
            "transaction",
            "customer",
            "employee",
            "role",
            "permission",
        }
    )
    USAGE_LIKE_TERMS: Final[frozenset[str]] = frozenset({"usage", "activity"})
    USAGE_COLUMN_TERMS: Final[tuple[str, ...]] = (
        "usage",
        "used",
        "activity",
        "action",
        "transaction",
        "login",
        "session",
        "lastuse",
        "count",
    )
    USER_COLUMN_TERMS: Final[tuple[str, ...]] = (
        "user",
        "employee",
        "person",
        "customer",
        "account",
        "name",
    )
    DESCRIPTIVE_COLUMN_TERMS: Final[tuple[str, ...]] = (
        "name",
        "email",
        "department",
        "title",
    )
    BUSINESS_TERMS: Final[tuple[str, ...]] = (
        "user",
        "users",
        "customer",
        "customers",
        "employee",
        "employees",
        "usage",
        "activity",
        "transaction",
        "transactions",
        "login",
        "logins",
        "role",
        "roles",
        "permission",
        "permissions",
        "access",
        "session",
        "department",
        "company",
        "system",
        "application",
        "top",
        "count",
        "sum",
        "total",
        "average",
        "by",
    )
    # Business terms that describe an operation rather than an entity
    OPERATION_TERMS: Final[frozenset[str]] = frozenset(
        {"top", "count", "sum", "total", "average", "by"}
    )

    # Type hints used for numeric/date column detection
    NUMERIC_TYPE_HINTS: Final[frozenset[str]] = frozenset(
        {"int", "dec", "num", "float", "double", "real", "money"}
    )
    DATE_TYPE_HINTS: Final[frozenset[str]] = frozenset({"date", "time"})

    # Fallback narrative
    FALLBACK_RECOMMENDATIONS: Final[tuple[str, ...]] = (
        "Review the detailed metrics for actionable insights",
        "Consider deeper analysis of high-value data segments",
        "Monitor key performance indicators regularly",
    )
