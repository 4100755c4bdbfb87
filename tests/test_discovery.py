from __future__ import annotations

import threading

from conftest import FakeIntrospection, FakeTable
import pytest

from nl2sql_analyst.analysis.control import RunControl
from nl2sql_analyst.analysis.discovery import SchemaDiscoveryEngine
from nl2sql_analyst.analysis.exceptions import FatalDiscoveryError, RunCancelled
from nl2sql_analyst.analysis.models import ForeignKeyFact, TableCandidate, TableStats
from nl2sql_analyst.analysis.scoring import (
    RelevanceScorer,
    confidence_from,
    final_adjustment,
    rank,
    relationship_bonus,
)
from nl2sql_analyst.models import Intent, QueryType


def _intent(terms: list[str], entities: list[str] | None = None) -> Intent:
    return Intent(intent="test", search_terms=terms, entities=entities or [])


def test_scorer_exact_and_substring_matches() -> None:
    scorer = RelevanceScorer()
    plain = _intent([])
    assert scorer.score("orders", table_name="dbo.Orders", column_name=None, intent=plain) == 10
    assert scorer.score("order", table_name="dbo.Orders", column_name="OrderId", intent=plain) == 10
    # high-value term plus TopN usage bonus on a column-only match
    topn = Intent(intent="t", query_type=QueryType.TOP_N)
    assert scorer.score("usage", table_name="dbo.Log", column_name="Usage", intent=topn) == 10


def test_scorer_never_negative() -> None:
    scorer = RelevanceScorer()
    for term in ["", "   ", "x", "user", "usage"]:
        for table, column in [("dbo.A", None), ("dbo.Users", "Id"), ("B", "UsageCount")]:
            assert scorer.score(term, table_name=table, column_name=column, intent=_intent([])) >= 0


def test_final_adjustment_penalizes_lookup_tables() -> None:
    candidate = TableCandidate(schema="dbo", table="Codes", stats=TableStats(row_count=5))
    assert final_adjustment(candidate) == 1.0
    empty = TableCandidate(schema="dbo", table="Empty", stats=TableStats(row_count=0))
    assert final_adjustment(empty) == 0.0


def test_relationship_bonus_ignores_self_references() -> None:
    candidate = TableCandidate(
        schema="dbo",
        table="Employees",
        foreign_keys=[
            ForeignKeyFact("ManagerId", "dbo", "Employees", "Id"),
            ForeignKeyFact("DepartmentId", "dbo", "Departments", "Id"),
            ForeignKeyFact("SiteId", "dbo", "Sites", "Id"),
        ],
    )
    relevant = {"dbo.employees", "dbo.departments"}
    assert relationship_bonus(candidate, relevant) == 2.0


def test_rank_is_stable_and_capped() -> None:
    candidates = [
        TableCandidate(schema="dbo", table=name, relevance_score=score)
        for name, score in [("A", 1.0), ("B", 5.0), ("C", 5.0), ("D", 0.0)]
    ]
    assert [c.table for c in rank(candidates, 3)] == ["B", "C", "A"]
    assert confidence_from([]) == 0.0
    assert confidence_from(candidates) == 0.5


def test_discovery_ranks_usage_and_user_tables(
    fake_db: FakeIntrospection, usage_intent: Intent
) -> None:
    context = SchemaDiscoveryEngine(fake_db).discover(usage_intent)

    names = [t.full_name for t in context.relevant_tables]
    assert names == ["dbo.AppUsage", "dbo.Users"]
    scores = [t.relevance_score for t in context.relevant_tables]
    assert scores == sorted(scores, reverse=True)
    assert context.confidence_score == 1.0
    assert context.schemas_explored == ["dbo"]
    assert context.tables_discovered == 3

    usage = context.relevant_tables[0]
    assert usage.row_count == 30
    assert usage.foreign_keys[0].referenced_full_name == "dbo.Users"
    assert usage.relationship_bonus_applied
    assert len(usage.sample_rows) == 5


def test_discovery_caps_relevant_tables() -> None:
    tables = {
        f"dbo.Item{i:02d}": FakeTable(columns=[("Id", "INTEGER"), ("ItemName", "NVARCHAR")])
        for i in range(15)
    }
    context = SchemaDiscoveryEngine(FakeIntrospection(tables)).discover(_intent(["item"]))
    assert len(context.relevant_tables) == 10


def test_reconnaissance_failure_is_fatal_by_default(fake_db: FakeIntrospection) -> None:
    fake_db.fail_listing = True
    with pytest.raises(FatalDiscoveryError, match="Reconnaissance failed"):
        SchemaDiscoveryEngine(fake_db).discover(_intent(["user"]))


def test_reconnaissance_failure_can_continue(fake_db: FakeIntrospection) -> None:
    fake_db.fail_listing = True
    engine = SchemaDiscoveryEngine(fake_db, fatal_reconnaissance=False)
    context = engine.discover(_intent(["usage"]))
    assert context.schemas_explored == []
    assert context.relevant_tables[0].full_name == "dbo.AppUsage"


def test_entity_fallback_when_search_finds_nothing(fake_db: FakeIntrospection) -> None:
    context = SchemaDiscoveryEngine(fake_db).discover(_intent(["zzz"], ["codes"]))
    assert [t.table for t in context.relevant_tables] == ["Codes"]


def test_catalog_seeding_when_nothing_matches(fake_db: FakeIntrospection) -> None:
    context = SchemaDiscoveryEngine(fake_db).discover(_intent(["zzz"], ["nothing"]))
    assert {t.table for t in context.relevant_tables} == {"AppUsage", "Codes", "Users"}


def test_failed_term_search_is_skipped(fake_db: FakeIntrospection, usage_intent: Intent) -> None:
    fake_db.fail_search.add("user")
    context = SchemaDiscoveryEngine(fake_db).discover(usage_intent)
    assert [t.full_name for t in context.relevant_tables] == ["dbo.AppUsage"]


def test_structural_failure_keeps_candidate(
    fake_db: FakeIntrospection, usage_intent: Intent
) -> None:
    fake_db.fail_describe.add("dbo.Users")
    context = SchemaDiscoveryEngine(fake_db).discover(usage_intent)
    users = context.find_table("Users")
    assert users is not None
    assert users.columns == []
    assert users.stats is None


def test_cancelled_run_stops_discovery(fake_db: FakeIntrospection, usage_intent: Intent) -> None:
    event = threading.Event()
    event.set()
    with pytest.raises(RunCancelled, match="cancelled before reconnaissance"):
        SchemaDiscoveryEngine(fake_db).discover(usage_intent, RunControl(cancel_event=event))
