"""
Helpers for tabular input given as a list of uniform records (dicts).

Every chart consumes its data as ``[{column: value, ...}, ...]``. These helpers
answer the questions the charts keep asking of that shape: which columns exist,
which of them are numeric, and what is the first record seen for each entity.
"""

import math
from numbers import Real
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple


def numeric_value(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or None if it is missing/non-numeric.

    Booleans are not numbers here: a column of flags is categorical.
    """
    if value is None or isinstance(value, bool) or not isinstance(value, Real):
        return None
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, float) and math.isnan(value)


def column_names(records: Sequence[Dict[str, Any]]) -> List[str]:
    """Columns in first-appearance order across all records."""
    names: List[str] = []
    seen = set()
    for row in records:
        for key in row:
            if key not in seen:
                seen.add(key)
                names.append(key)
    return names


def is_numeric_column(records: Sequence[Dict[str, Any]], column: str) -> bool:
    """True when every non-missing value of ``column`` is a number (and one exists)."""
    present = [row.get(column) for row in records if not is_missing(row.get(column))]
    if not present:
        return False
    return all(isinstance(v, Real) and not isinstance(v, bool) for v in present)


def numeric_columns(records: Sequence[Dict[str, Any]],
                    exclude: Iterable[Optional[str]] = ()) -> List[str]:
    excluded = {c for c in exclude if c is not None}
    return [c for c in column_names(records)
            if c not in excluded and is_numeric_column(records, c)]


def unique_in_order(values: Iterable[Any]) -> List[Any]:
    out = []
    seen = set()
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out


def index_records(records: Sequence[Dict[str, Any]],
                  entity_col: str) -> Tuple[List[Any], Dict[Any, Dict[str, Any]]]:
    """Return (entities, first record per entity), entities in first-appearance order."""
    entities: List[Any] = []
    table: Dict[Any, Dict[str, Any]] = {}
    for row in records:
        entity = row.get(entity_col)
        if entity not in table:
            table[entity] = row
            entities.append(entity)
    return entities, table
