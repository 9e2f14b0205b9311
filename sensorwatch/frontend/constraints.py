"""
Query constraint builders.

Constraints are immutable values. Each one serializes to a stable JSON
string, which is what the query cache and the document service consume.
"""

import json
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Sequence, Union

OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in", "not-in", "array-contains")
DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True)
class Where:
    field: str
    op: str
    value: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "where", "field": self.field, "op": self.op, "value": self.value}


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: str = "asc"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "orderBy", "field": self.field, "direction": self.direction}


@dataclass(frozen=True)
class Limit:
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "limit", "count": self.count}


Constraint = Union[Where, OrderBy, Limit]


def where(field: str, op: str, value: Any) -> Where:
    """Filter on a field (``op`` is one of ``OPERATORS``)."""
    if op not in OPERATORS:
        raise ValueError(f"Unsupported operator: {op!r}")
    if op in ("in", "not-in"):
        if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
            raise ValueError(f"{op!r} needs a list of values, got {value!r}")
        # Lists are unhashable; tuples keep the constraint frozen and comparable
        value = tuple(value)
    return Where(field, op, value)


def order_by(field: str, direction: str = "asc") -> OrderBy:
    if direction not in DIRECTIONS:
        raise ValueError(f"Unsupported direction: {direction!r}")
    return OrderBy(field, direction)


def limit(count: int) -> Limit:
    if not isinstance(count, int) or isinstance(count, bool) or count <= 0:
        raise ValueError(f"Limit must be a positive integer, got {count!r}")
    return Limit(count)


def _encode(value: Any) -> Any:
    # Dates travel as ISO-8601, which the document service compares as timestamps
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def serialize(constraint: Constraint) -> str:
    return json.dumps(constraint.to_dict(), sort_keys=True, default=_encode)


def serialize_all(constraints: Sequence[Constraint]) -> str:
    """Order-sensitive serialization of a constraint list."""
    return "|".join(serialize(c) for c in constraints)


def to_payload(constraints: Sequence[Constraint]) -> List[Dict[str, Any]]:
    """JSON-ready constraint list, encoded exactly like the cache key."""
    return [json.loads(serialize(constraint)) for constraint in constraints]
