"""Relevance scoring for candidate tables.

`RelevanceScorer` rates one schema-search hit against one search term and
never returns a negative number. Penalties live in the post-discovery bonus
pass (`final_adjustment`), which discovery applies once per candidate.
"""

from __future__ import annotations

from collections.abc import Sequence

from nl2sql_analyst.models import Intent, QueryType

from . import heuristics
from .constants import Constants
from .models import TableCandidate


class RelevanceScorer:
    """Scores (table, column) matches against a search term and the intent."""

    def score(
        self,
        term: str,
        *,
        table_name: str,
        column_name: str | None,
        intent: Intent,
    ) -> float:
        """Additive score for a single search hit.

        Table and column matches each contribute (exact beats substring),
        plus bonuses for high-value business terms and usage terms in TopN
        questions.
        """
        needle = term.strip().lower()
        if not needle:
            return 0.0
        score = 0.0

        table = heuristics.bare_table_name(table_name).lower()
        if table == needle:
            score += Constants.TABLE_EXACT_SCORE
        elif needle in table:
            score += Constants.TABLE_SUBSTRING_SCORE

        if column_name:
            column = column_name.lower()
            if column == needle:
                score += Constants.COLUMN_EXACT_SCORE
            elif needle in column:
                score += Constants.COLUMN_SUBSTRING_SCORE

        if heuristics.is_high_value_business_term(needle):
            score += Constants.HIGH_VALUE_TERM_BONUS

        if intent.query_type is QueryType.TOP_N and heuristics.is_usage_like_term(needle):
            score += Constants.TOPN_USAGE_BONUS

        return score


def final_adjustment(candidate: TableCandidate) -> float:
    """Bonus/penalty applied once after structural analysis and sampling.

    +2 when the table has rows, +3 for a usage-like column, +2 for a
    user-like column, -1 for probable lookup tables (fewer than 10 rows).
    """
    delta = 0.0
    rows = candidate.row_count
    if rows > 0:
        delta += Constants.HAS_ROWS_BONUS
    names = candidate.column_names
    if any(heuristics.is_usage_related_column(n) for n in names):
        delta += Constants.USAGE_COLUMN_BONUS
    if any(heuristics.is_user_related_column(n) for n in names):
        delta += Constants.USER_COLUMN_BONUS
    if 0 < rows < Constants.LOOKUP_TABLE_MAX_ROWS:
        delta -= Constants.LOOKUP_TABLE_PENALTY
    return delta


def relationship_bonus(candidate: TableCandidate, relevant_names: set[str]) -> float:
    """+2 for every foreign key that points at another relevant table."""
    own = candidate.full_name.lower()
    linked = [
        fk
        for fk in candidate.foreign_keys
        if fk.referenced_full_name.lower() in relevant_names
        and fk.referenced_full_name.lower() != own
    ]
    return Constants.RELATIONSHIP_BONUS * len(linked)


def rank(candidates: Sequence[TableCandidate], cap: int) -> list[TableCandidate]:
    """Sort by score (descending, stable) and keep the first ``cap``."""
    return sorted(candidates, key=lambda c: c.relevance_score, reverse=True)[:cap]


def confidence_from(candidates: Sequence[TableCandidate]) -> float:
    """``min(max_score / 10, 1)``, floored at 0; 0 without candidates."""
    if not candidates:
        return 0.0
    best = max(c.relevance_score for c in candidates)
    confidence = min(best / Constants.CONFIDENCE_DIVISOR, 1.0)
    return max(confidence, 0.0)
