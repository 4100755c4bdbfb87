"""Deterministic stand-ins for language-model output.

Used whenever the language-understanding capability fails or is not
configured. Nothing here calls out to a model.
"""

from __future__ import annotations

from collections.abc import Sequence
import re

from nl2sql_analyst.analysis.constants import Constants
from nl2sql_analyst.models import Intent, NarrativeInsights, QueryType, Record

_WORD = re.compile(r"[A-Za-z0-9_]+")


def fallback_intent(query: str) -> Intent:
    """Low-confidence intent from a closed business-term dictionary.

    Every business term in the question becomes both an entity and a search
    term; ``top N`` switches the query type to TopN with ``limit = N``.
    """
    words = [w.lower() for w in _WORD.findall(query)]
    terms = [w for w in words if w in Constants.BUSINESS_TERMS]

    query_type = QueryType.ANALYSIS
    parameters: dict[str, int] = {}
    for current, following in zip(words, words[1:], strict=False):
        if current == "top" and following.isdigit():
            query_type = QueryType.TOP_N
            parameters["limit"] = int(following)
            break

    return Intent(
        intent=Constants.FALLBACK_INTENT,
        entities=terms,
        query_type=query_type,
        parameters=parameters,
        confidence=Constants.FALLBACK_CONFIDENCE,
        search_terms=terms,
        reasoning="Fallback analysis due to language model processing error",
    )


def fallback_justification(step_description: str) -> str:
    return f"Executing {step_description} to gather necessary data for analysis."


def fallback_narrative(query: str) -> NarrativeInsights:
    return NarrativeInsights(
        summary=(
            f"Analysis completed for query: {query}. "
            "Review the detailed metrics and patterns for specific insights."
        ),
        patterns=[],
        recommendations=list(Constants.FALLBACK_RECOMMENDATIONS),
    )


def fallback_answer(query: str, final_data: Sequence[Record], tables: Sequence[str]) -> str:
    """Plain paragraph listing the record count, key fields and tables used."""
    answer = f"Based on your query '{query}', I found {len(final_data)} records."
    if final_data:
        answer += "\n\nKey fields in the results include: " + ", ".join(final_data[0].keys())
        answer += (
            f"\n\nThe analysis involved exploring {len(tables)} tables: " + ", ".join(tables) + "."
        )
    return answer
