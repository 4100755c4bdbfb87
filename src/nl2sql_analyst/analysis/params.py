"""Total conversion helpers for semi-structured step parameters.

Abstract plan steps arrive from a language model as loose JSON-like
mappings. These helpers read them with an explicit default and never raise,
whatever shape the value has.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

_TABLE_KEYS: tuple[str, ...] = ("tables", "table", "table_name", "tableName")


def as_string(params: Mapping[str, Any], key: str, default: str = "") -> str:
    """Read ``key`` as a stripped string; lists yield their first string item."""
    value = params.get(key)
    if isinstance(value, str):
        return value.strip() or default
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, list | tuple) and value and isinstance(value[0], str):
        return value[0].strip() or default
    return default


def as_int(params: Mapping[str, Any], key: str, default: int) -> int:
    """Read ``key`` as a positive integer, accepting numeric strings."""
    value = params.get(key)
    result: int | None = None
    if isinstance(value, bool):
        result = None
    elif isinstance(value, int):
        result = value
    elif isinstance(value, float) and value.is_integer():
        result = int(value)
    elif isinstance(value, str):
        try:
            result = int(value.strip())
        except ValueError:
            result = None
    if result is None or result <= 0:
        return default
    return result


def as_string_list(value: Any) -> list[str]:
    """Coerce a string, comma-separated string or list into a list of strings."""
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, list | tuple):
        out: list[str] = []
        for item in value:
            if isinstance(item, str) and item.strip():
                out.append(item.strip())
            elif isinstance(item, Mapping):
                name = item.get("name") or item.get("table")
                if isinstance(name, str) and name.strip():
                    out.append(name.strip())
        return out
    return []


def as_table_list(params: Mapping[str, Any]) -> list[str]:
    """Collect table names from the usual parameter keys, de-duplicated in order."""
    seen: set[str] = set()
    tables: list[str] = []
    for key in _TABLE_KEYS:
        for name in as_string_list(params.get(key)):
            lowered = name.lower()
            if lowered not in seen:
                seen.add(lowered)
                tables.append(name)
    return tables
