"""Multi-phase schema discovery.

`SchemaDiscoveryEngine.discover` walks five phases in a fixed order and
returns a `SchemaContext` with the ranked candidate tables:

1. Reconnaissance: list schemas and tables (fatal on failure by default)
2. Table discovery: score search hits per term, entity fallback, top-N cut
3. Structural analysis: columns and statistics per candidate
4. Relationship discovery: foreign keys and the relationship bonus
5. Sampling: a few rows from the best candidates

A final bonus pass re-scores, re-sorts and caps the candidates. All state
is local to one `discover` call, so one engine can serve concurrent runs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastmcp.utilities.logging import get_logger

from nl2sql_analyst.models import Intent

from .constants import Constants
from .control import RunControl
from .exceptions import FatalDiscoveryError, IntrospectionError, PerTableError
from .models import SchemaContext, TableCandidate
from .scoring import RelevanceScorer, confidence_from, final_adjustment, rank, relationship_bonus

if TYPE_CHECKING:
    from nl2sql_analyst.introspection.base import DatabaseIntrospection, TableRef

_logger = get_logger(__name__)


class SchemaDiscoveryEngine:
    """Finds and ranks the tables relevant to an intent.

    Attributes:
        introspection: Database introspection capability
        scorer: Relevance scorer for search hits
        max_tables: Cap on relevant tables, applied after phases 2 and 5
        sample_tables: Number of top candidates sampled in phase 5
        sample_rows: Rows sampled per table
        fatal_reconnaissance: Raise instead of continuing with an empty catalog
    """

    def __init__(
        self,
        introspection: DatabaseIntrospection,
        scorer: RelevanceScorer | None = None,
        *,
        max_tables: int = Constants.MAX_RELEVANT_TABLES,
        sample_tables: int = Constants.SAMPLE_TABLES,
        sample_rows: int = Constants.SAMPLE_ROWS,
        fatal_reconnaissance: bool = True,
    ) -> None:
        self.introspection = introspection
        self.scorer = scorer or RelevanceScorer()
        self.max_tables = max(1, max_tables)
        self.sample_tables = max(0, sample_tables)
        self.sample_rows = max(1, sample_rows)
        self.fatal_reconnaissance = fatal_reconnaissance

    def discover(self, intent: Intent, control: RunControl | None = None) -> SchemaContext:
        """Run all discovery phases for ``intent``.

        Raises:
            FatalDiscoveryError: Reconnaissance failed and is configured as fatal
            RunCancelled: The run was cancelled or hit its deadline
        """
        control = control or RunControl()
        context = SchemaContext(search_terms=list(intent.search_terms), intent=intent.intent)

        control.checkpoint("reconnaissance")
        catalog = self._reconnaissance(context)

        control.checkpoint("table discovery")
        context.relevant_tables = self._discover_tables(intent, catalog, control)

        control.checkpoint("structural analysis")
        self._analyze_structures(context, control)

        control.checkpoint("relationship discovery")
        self._discover_relationships(context, control)

        control.checkpoint("sampling")
        self._sample(context, control)

        self._finalize(context)
        _logger.info(
            "Discovery finished: %d relevant tables, confidence %.2f",
            len(context.relevant_tables),
            context.confidence_score,
        )
        return context

    # ---- phase 1 -----------------------------------------------------------
    def _reconnaissance(self, context: SchemaContext) -> list[TableRef]:
        _logger.info("Phase 1: reconnaissance")
        try:
            schemas = self.introspection.list_schemas()
            catalog = self.introspection.list_tables()
        except IntrospectionError as exc:
            if self.fatal_reconnaissance:
                msg = f"Reconnaissance failed: {exc}"
                raise FatalDiscoveryError(msg) from exc
            _logger.warning("Reconnaissance failed, continuing with an empty catalog: %s", exc)
            return []

        context.schemas_explored = list(schemas)
        context.tables_discovered = len(catalog)
        _logger.info("Found %d tables in %d schemas", len(catalog), len(schemas))
        return catalog

    # ---- phase 2 -----------------------------------------------------------
    def _discover_tables(
        self, intent: Intent, catalog: list[TableRef], control: RunControl
    ) -> list[TableCandidate]:
        _logger.info("Phase 2: table discovery for %d search terms", len(intent.search_terms))
        scored: dict[str, TableCandidate] = {}

        for term in _clean_terms(intent.search_terms):
            control.checkpoint(f"search for '{term}'")
            try:
                hits = self.introspection.search_schema(term)
            except IntrospectionError as exc:
                _logger.warning("Schema search for '%s' failed: %s", term, exc)
                continue
            _logger.debug("Found %d matches for '%s'", len(hits), term)
            for hit in hits:
                key = hit.full_name.lower()
                candidate = scored.get(key)
                if candidate is None:
                    candidate = TableCandidate(schema=hit.schema, table=hit.table)
                    scored[key] = candidate
                candidate.adjust_score(
                    self.scorer.score(
                        term, table_name=hit.table, column_name=hit.column, intent=intent
                    )
                )

        if not scored:
            _logger.warning("No schema search results found, falling back to entity matching")
            self._entity_fallback(intent, catalog, scored)

        candidates = rank(list(scored.values()), self.max_tables)
        _logger.info("Selected %d candidate tables for detailed analysis", len(candidates))
        return candidates

    def _entity_fallback(
        self, intent: Intent, catalog: list[TableRef], scored: dict[str, TableCandidate]
    ) -> None:
        entities = [e.strip().lower() for e in intent.entities if e.strip()]
        for ref in catalog:
            table = ref.table.lower()
            key = ref.full_name.lower()
            if key not in scored and any(entity in table for entity in entities):
                scored[key] = TableCandidate(
                    schema=ref.schema,
                    table=ref.table,
                    relevance_score=Constants.ENTITY_FALLBACK_SCORE,
                )
        if scored or not catalog:
            return
        # Nothing matched at all: take catalog order so later phases have a table to work on.
        _logger.warning("No entity matched a table name; seeding from catalog order")
        for ref in catalog[: self.max_tables]:
            scored[ref.full_name.lower()] = TableCandidate(schema=ref.schema, table=ref.table)

    # ---- phase 3 -----------------------------------------------------------
    def _analyze_structures(self, context: SchemaContext, control: RunControl) -> None:
        _logger.info("Phase 3: analyzing %d table structures", len(context.relevant_tables))
        for candidate in context.relevant_tables:
            control.checkpoint(f"structural analysis of {candidate.full_name}")
            try:
                self._analyze_table(candidate)
            except PerTableError as exc:
                _logger.warning("Skipping table: %s", exc)

    def _analyze_table(self, candidate: TableCandidate) -> None:
        try:
            candidate.columns = self.introspection.describe_table(candidate.full_name)
            candidate.stats = self.introspection.get_table_stats(candidate.full_name)
        except IntrospectionError as exc:
            raise PerTableError(candidate.full_name, "structural analysis", str(exc)) from exc
        _logger.debug(
            "%s: %d rows, %d columns, %.0f KB",
            candidate.full_name,
            candidate.row_count,
            len(candidate.columns),
            candidate.stats.total_kb,
        )

    # ---- phase 4 -----------------------------------------------------------
    def _discover_relationships(self, context: SchemaContext, control: RunControl) -> None:
        _logger.info("Phase 4: discovering relationships")
        relevant_names = {c.full_name.lower() for c in context.relevant_tables}
        for candidate in context.relevant_tables:
            control.checkpoint(f"relationship discovery for {candidate.full_name}")
            try:
                candidate.foreign_keys = self.introspection.get_foreign_keys(candidate.full_name)
            except IntrospectionError as exc:
                _logger.warning(
                    "Skipping table: %s",
                    PerTableError(candidate.full_name, "relationship discovery", str(exc)),
                )
                continue
            if not candidate.relationship_bonus_applied:
                candidate.adjust_score(relationship_bonus(candidate, relevant_names))
                candidate.relationship_bonus_applied = True

    # ---- phase 5 -----------------------------------------------------------
    def _sample(self, context: SchemaContext, control: RunControl) -> None:
        targets = rank(context.relevant_tables, self.sample_tables)
        _logger.info("Phase 5: sampling %d tables", len(targets))
        for candidate in targets:
            control.checkpoint(f"sampling {candidate.full_name}")
            try:
                rows = self.introspection.sample_rows(candidate.full_name, self.sample_rows)
            except IntrospectionError as exc:
                _logger.warning(
                    "Skipping table: %s", PerTableError(candidate.full_name, "sampling", str(exc))
                )
                continue
            candidate.sample_rows = rows
            if not rows:
                candidate.adjust_score(-Constants.EMPTY_SAMPLE_PENALTY)

    # ---- final pass ----------------------------------------------------------
    def _finalize(self, context: SchemaContext) -> None:
        for candidate in context.relevant_tables:
            candidate.adjust_score(final_adjustment(candidate))
        context.relevant_tables = rank(context.relevant_tables, self.max_tables)
        context.confidence_score = confidence_from(context.relevant_tables)


def _clean_terms(terms: list[str]) -> list[str]:
    return [t.strip() for t in terms if t.strip()]
