"""Data models for the analysis pipeline.

Plain dataclasses for state that never leaves a run: discovered table
facts, the schema context, compiled plans and the execution context.

Classes:
- ColumnFact, ForeignKeyFact, TableStats: introspected facts for one table
- TableCandidate: a table under consideration with its accumulating score
- SchemaContext: discovery output, read-only once built
- PlanStep, QueryPlan: compiled, immutable plan
- ExecutionContext: run-scoped accumulator threaded through the step loop
- ExecutionResult: executor output
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from nl2sql_analyst.models import ExecutionStep, Record, StepType

from . import heuristics
from .constants import Constants


@dataclass(slots=True)
class ColumnFact:
    """Column description with key flags derived from the naming convention."""

    name: str
    data_type: str
    nullable: bool = True
    max_length: int | None = None
    is_primary_key_candidate: bool = False
    is_foreign_key_candidate: bool = False

    @classmethod
    def from_name(
        cls,
        name: str,
        data_type: str,
        *,
        nullable: bool = True,
        max_length: int | None = None,
    ) -> ColumnFact:
        return cls(
            name=name,
            data_type=data_type,
            nullable=nullable,
            max_length=max_length,
            is_primary_key_candidate=heuristics.is_primary_key_candidate(name),
            is_foreign_key_candidate=heuristics.is_foreign_key_candidate(name),
        )


@dataclass(frozen=True, slots=True)
class ForeignKeyFact:
    """One foreign key column and the table/column it references."""

    column: str
    referenced_schema: str
    referenced_table: str
    referenced_column: str

    @property
    def referenced_full_name(self) -> str:
        return f"{self.referenced_schema}.{self.referenced_table}"


@dataclass(slots=True)
class TableStats:
    """Row count and storage size of a table."""

    row_count: int = 0
    total_kb: float = 0.0
    used_kb: float = 0.0


@dataclass(slots=True)
class TableCandidate:
    """A (schema, table) pair considered relevant, with an additive score.

    Discovery only ever adds to a candidate: facts are filled in by later
    phases and the score moves through `adjust_score` alone.
    """

    schema: str
    table: str
    columns: list[ColumnFact] = field(default_factory=list)
    foreign_keys: list[ForeignKeyFact] = field(default_factory=list)
    stats: TableStats | None = None
    relevance_score: float = 0.0
    sample_rows: list[Record] = field(default_factory=list)
    relationship_bonus_applied: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.schema}.{self.table}"

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def row_count(self) -> int:
        return self.stats.row_count if self.stats is not None else 0

    def adjust_score(self, delta: float) -> None:
        self.relevance_score += delta

    def primary_key(self) -> str | None:
        """Best guess at the primary key: ``Id`` first, then ``<Table>Id``."""
        names = self.column_names
        for name in names:
            if name.lower() == "id":
                return name
        singular = self.table.lower().removesuffix("s")
        for name in names:
            lowered = name.lower()
            if lowered in (f"{singular}id", f"{singular}_id", f"{self.table.lower()}id"):
                return name
        return heuristics.first_matching(names, heuristics.is_primary_key_candidate)


@dataclass(slots=True)
class SchemaContext:
    """Discovery output: ranked candidates and where they came from."""

    relevant_tables: list[TableCandidate] = field(default_factory=list)
    schemas_explored: list[str] = field(default_factory=list)
    search_terms: list[str] = field(default_factory=list)
    confidence_score: float = 0.0
    intent: str = ""
    tables_discovered: int = 0

    @property
    def top_table(self) -> TableCandidate | None:
        return self.relevant_tables[0] if self.relevant_tables else None

    def find_table(self, name: str) -> TableCandidate | None:
        """Look up a candidate by full name, then by bare table name."""
        lowered = name.strip().lower().replace("[", "").replace("]", "")
        for candidate in self.relevant_tables:
            if candidate.full_name.lower() == lowered:
                return candidate
        bare = heuristics.bare_table_name(lowered)
        for candidate in self.relevant_tables:
            if candidate.table.lower() == bare:
                return candidate
        return None


@dataclass(frozen=True, slots=True)
class PlanStep:
    """One concrete, typed unit of work in a compiled plan."""

    order: int
    step_type: StepType
    description: str
    sql_template: str | None = None
    parameters: Mapping[str, Any] = field(default_factory=dict)
    purpose: str = ""
    reasoning: str = ""
    optional: bool = False

    @property
    def is_introspection_only(self) -> bool:
        return self.sql_template is not None and self.sql_template.lstrip().startswith(
            Constants.COMMENT_MARKER
        )

    def renumbered(self, order: int) -> PlanStep:
        return replace(self, order=order)


@dataclass(frozen=True, slots=True)
class QueryPlan:
    """Compiled plan: ordered steps with contiguous 1-based numbering."""

    intent: str
    steps: tuple[PlanStep, ...]
    strategy: str
    confidence: float


class ExecutionContext:
    """Append-only accumulator scoped to a single run.

    Step-indexed keys (``step{n}_record_count``, ``step{n}_type``,
    ``step{n}_columns``, ``step{n}_sample_data``) may be written once.
    Run-level keys are ``total_records_explored`` (additive over exploration
    steps), ``final_answer_ready`` and ``final_record_count`` (set by final
    query steps).
    """

    __slots__ = ("_values",)

    def __init__(self) -> None:
        self._values: dict[str, Any] = {"total_records_explored": 0, "final_answer_ready": False}

    def set_once(self, key: str, value: Any) -> None:
        if key in self._values:
            msg = f"Execution context key already written: {key}"
            raise KeyError(msg)
        self._values[key] = value

    def accumulate(self, key: str, delta: int) -> None:
        self._values[key] = int(self._values.get(key, 0)) + delta

    def mark_final_answer(self, record_count: int) -> None:
        self._values["final_answer_ready"] = True
        self._values["final_record_count"] = record_count

    def record_step(self, step_number: int, step_type: StepType, results: list[Record]) -> None:
        """Store per-step count, type, column names and a capped sample."""
        prefix = f"step{step_number}"
        self.set_once(f"{prefix}_record_count", len(results))
        self.set_once(f"{prefix}_type", step_type.value)
        if results:
            self.set_once(f"{prefix}_columns", list(results[0].keys()))
            self.set_once(
                f"{prefix}_sample_data",
                [dict(row) for row in results[: Constants.CONTEXT_SAMPLE_ROWS]],
            )
        if step_type is StepType.DATA_EXPLORATION:
            self.accumulate("total_records_explored", len(results))
        if step_type is StepType.FINAL_QUERY:
            self.mark_final_answer(len(results))

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def snapshot(self) -> dict[str, Any]:
        return dict(self._values)


@dataclass(slots=True)
class ExecutionResult:
    """Executed steps, the chosen final data and the run's context."""

    steps: list[ExecutionStep] = field(default_factory=list)
    final_data: list[Record] = field(default_factory=list)
    context: ExecutionContext = field(default_factory=ExecutionContext)
    success: bool = True
    error_message: str | None = None
