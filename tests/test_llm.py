from __future__ import annotations

from nl2sql_analyst.analysis.constants import Constants
from nl2sql_analyst.analysis.models import (
    ColumnFact,
    SchemaContext,
    TableCandidate,
    TableStats,
)
from nl2sql_analyst.llm.fallbacks import (
    fallback_answer,
    fallback_intent,
    fallback_justification,
    fallback_narrative,
)
from nl2sql_analyst.llm.pydantic_agent import describe_tables, model_id
from nl2sql_analyst.models import QueryType
from nl2sql_analyst.services.config_service import LLMConfig


def test_fallback_intent_collects_business_terms() -> None:
    intent = fallback_intent("Show the Top 5 customers by total Transactions!")

    assert intent.query_type is QueryType.TOP_N
    assert intent.parameters == {"limit": 5}
    assert intent.search_terms == ["top", "customers", "by", "total", "transactions"]
    assert intent.entities == intent.search_terms
    assert intent.confidence == Constants.FALLBACK_CONFIDENCE
    assert intent.intent == Constants.FALLBACK_INTENT


def test_fallback_intent_without_top_n() -> None:
    intent = fallback_intent("how many logins per department")
    assert intent.query_type is QueryType.ANALYSIS
    assert intent.parameters == {}
    assert intent.search_terms == ["logins", "department"]

    assert fallback_intent("top users").parameters == {}


def test_fallback_texts() -> None:
    assert fallback_justification("step 2") == (
        "Executing step 2 to gather necessary data for analysis."
    )
    narrative = fallback_narrative("q")
    assert narrative.summary.startswith("Analysis completed for query: q.")
    assert narrative.patterns == []
    assert len(narrative.recommendations) == 3


def test_fallback_answer_lists_fields_and_tables() -> None:
    answer = fallback_answer("q", [{"Id": 1, "Name": "a"}], ["dbo.Users", "dbo.Orders"])
    assert answer == (
        "Based on your query 'q', I found 1 records.\n\n"
        "Key fields in the results include: Id, Name\n\n"
        "The analysis involved exploring 2 tables: dbo.Users, dbo.Orders."
    )
    assert fallback_answer("q", [], ["dbo.Users"]) == "Based on your query 'q', I found 0 records."


def test_model_id() -> None:
    assert model_id(LLMConfig(provider="openai", model="gpt-4o-mini")) == "openai:gpt-4o-mini"
    assert model_id(LLMConfig(provider="openai", model="anthropic:claude")) == "anthropic:claude"


def test_describe_tables() -> None:
    users = TableCandidate(
        "dbo",
        "Users",
        columns=[ColumnFact.from_name("Id", "INTEGER"), ColumnFact.from_name("Name", "TEXT")],
        stats=TableStats(row_count=12),
    )
    context = SchemaContext(relevant_tables=[users])
    assert describe_tables(context) == "- dbo.Users (12 rows): Id, Name"
    assert describe_tables(SchemaContext()) == "(no relevant tables found)"
