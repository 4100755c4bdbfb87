"""Name-based heuristics over table and column identifiers.

Every function here is a pure predicate (or a small pure selector) over
identifier strings, so discovery, planning and insight synthesis share one
definition of "looks like a key", "looks like a user table" and so on.

Functions:
- is_primary_key_candidate(), is_foreign_key_candidate(): `Id` naming convention
- is_usage_related_column(), is_user_related_column(): bonus-pass dictionaries
- is_high_value_business_term(), is_usage_like_term(): scorer term checks
- is_user_table(), is_usage_table(): final-query table pairing
- find_join_column(), resolve_join_pair(): join column inference
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

from .constants import Constants


def split_table_name(
    full_name: str, default_schema: str = Constants.DEFAULT_SCHEMA
) -> tuple[str, str]:
    """Split a ``schema.table`` name, applying the default schema to bare names.

    Example:
        >>> split_table_name("sales.Orders")
        ('sales', 'Orders')
        >>> split_table_name("Orders")
        ('dbo', 'Orders')
    """
    cleaned = full_name.strip().replace("[", "").replace("]", "")
    if "." in cleaned:
        schema, _, table = cleaned.partition(".")
        return schema.strip() or default_schema, table.strip()
    return default_schema, cleaned


def bare_table_name(full_name: str) -> str:
    """Return the table part of a possibly schema-qualified name."""
    return full_name.rsplit(".", 1)[-1]


def is_primary_key_candidate(column: str) -> bool:
    """True for ``Id`` itself or any ``...Id`` / ``..._id`` column."""
    lowered = column.lower()
    return lowered == "id" or column.endswith("Id") or lowered.endswith("_id")


def is_foreign_key_candidate(column: str) -> bool:
    """True for ``...Id`` columns other than the bare ``Id`` column."""
    return column.lower() != "id" and is_primary_key_candidate(column)


def is_usage_related_column(column: str) -> bool:
    lowered = column.lower()
    return any(term in lowered for term in Constants.USAGE_COLUMN_TERMS)


def is_user_related_column(column: str) -> bool:
    lowered = column.lower()
    return any(term in lowered for term in Constants.USER_COLUMN_TERMS)


def is_descriptive_column(column: str) -> bool:
    """Columns worth grouping by in a summary query (names, emails, departments)."""
    lowered = column.lower()
    if is_primary_key_candidate(column):
        return False
    return any(term in lowered for term in Constants.DESCRIPTIVE_COLUMN_TERMS)


def is_user_id_column(column: str) -> bool:
    """Matches the ``*user*id*`` pattern used for distinct-user metrics."""
    lowered = column.lower()
    user_at = lowered.find("user")
    return user_at >= 0 and "id" in lowered[user_at + len("user") :]


def is_department_column(column: str) -> bool:
    return "department" in column.lower()


def is_high_value_business_term(term: str) -> bool:
    return term.strip().lower() in Constants.HIGH_VALUE_TERMS


def is_usage_like_term(term: str) -> bool:
    lowered = term.lower()
    return any(word in lowered for word in Constants.USAGE_LIKE_TERMS)


def is_user_table(table: str) -> bool:
    lowered = bare_table_name(table).lower()
    return "user" in lowered and "role" not in lowered


def is_usage_table(table: str) -> bool:
    lowered = bare_table_name(table).lower()
    return "usage" in lowered or "role" in lowered


def is_numeric_type(data_type: str) -> bool:
    lowered = data_type.lower()
    return any(hint in lowered for hint in Constants.NUMERIC_TYPE_HINTS)


def is_date_type(data_type: str) -> bool:
    lowered = data_type.lower()
    return any(hint in lowered for hint in Constants.DATE_TYPE_HINTS)


def shared_join_column(left: Sequence[str], right: Iterable[str]) -> str | None:
    """Column present in both tables that looks like a join key.

    A ``UserId`` column wins, then the first shared ``...Id`` column. Matching
    is case-insensitive; the left table's spelling is returned.
    """
    right_names = {name.lower() for name in right}
    shared = [name for name in left if name.lower() in right_names]

    preferred = Constants.PREFERRED_JOIN_COLUMN.lower()
    for name in shared:
        if name.lower() in (preferred, "user_id"):
            return name
    for name in shared:
        if is_foreign_key_candidate(name):
            return name
    return None


def find_join_column(left: Sequence[str], right: Iterable[str]) -> str:
    """`shared_join_column`, defaulting to ``Id`` when nothing is shared."""
    return shared_join_column(left, right) or Constants.DEFAULT_JOIN_COLUMN


def resolve_join_pair(
    left: Sequence[str], right: Sequence[str], left_key: str | None
) -> tuple[str, str]:
    """Columns joining a user-like table (left) to a usage-like table (right).

    Uses a shared key column when there is one; otherwise the left table's
    key against the right table's ``*user*id*`` column; otherwise
    ``UserId`` on both sides.
    """
    shared = shared_join_column(left, right)
    if shared is not None:
        right_spelling = next(n for n in right if n.lower() == shared.lower())
        return shared, right_spelling
    right_user_id = first_matching(right, is_user_id_column)
    if left_key is not None and right_user_id is not None:
        return left_key, right_user_id
    return Constants.PREFERRED_JOIN_COLUMN, Constants.PREFERRED_JOIN_COLUMN


def first_matching(columns: Iterable[str], predicate: Callable[[str], bool]) -> str | None:
    """Return the first column satisfying ``predicate`` or None."""
    for name in columns:
        if predicate(name):
            return name
    return None
