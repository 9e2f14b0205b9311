"""
Constraint evaluation over the documents of one collection.

Filters run first, then ordering, then the limit, whatever order the
constraints were sent in. A document without the filtered or ordered field
is left out of the result.
"""

import operator
from datetime import datetime

MISSING = object()

COMPARISONS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class QueryError(ValueError):
    """The constraints cannot be evaluated."""


def get_field(record, path):
    """Value at a dotted path (``avg.accel.x``), or MISSING."""
    value = record
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return MISSING
        value = value[part]
    return value


def comparable(value):
    """
    Sort/compare key. Timestamps in any stored shape compare as epoch
    seconds; numbers and strings sort within their own type.
    """
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, (int, float)):
            nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
            return (1, seconds + nanos / 1e9)
        return (4, str(sorted(value.items())))
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        try:
            return (1, datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())
        except ValueError:
            return (2, value)
    if value is None:
        return (-1, 0)
    return (3, str(value))


def _matches(record, constraint):
    value = get_field(record, constraint["field"])
    if value is MISSING:
        return False
    op, target = constraint["op"], constraint.get("value")

    if op == "in":
        return value in (target or [])
    if op == "not-in":
        return value not in (target or [])
    if op == "array-contains":
        return isinstance(value, list) and target in value
    if op not in COMPARISONS:
        raise QueryError(f"Unsupported operator: {op}")

    left, right = comparable(value), comparable(target)
    if op in ("==", "!="):
        return COMPARISONS[op](left, right)
    if left[0] != right[0]:
        return False
    return COMPARISONS[op](left[1], right[1])


def apply_constraints(records, constraints):
    filters = [c for c in constraints if c["type"] == "where"]
    orderings = [c for c in constraints if c["type"] == "orderBy"]
    limits = [c for c in constraints if c["type"] == "limit"]

    for constraint in filters:
        if not constraint.get("field"):
            raise QueryError("where constraint without field")
        records = [r for r in records if _matches(r, constraint)]

    for constraint in orderings:
        if not constraint.get("field"):
            raise QueryError("orderBy constraint without field")
        records = [r for r in records if get_field(r, constraint["field"]) is not MISSING]

    # Stable sorts applied from the last ordering to the first
    for constraint in reversed(orderings):
        records = sorted(
            records,
            key=lambda r: comparable(get_field(r, constraint["field"])),
            reverse=constraint.get("direction", "asc") == "desc",
        )

    for constraint in limits:
        count = constraint.get("count")
        if not isinstance(count, int) or count <= 0:
            raise QueryError(f"Invalid limit: {count}")
        records = records[:count]

    return records
