"""Chainable collection queries and the translation of ``FetchOptions`` into them.

MongoDB takes a single filter document plus sort and limit modifiers, and has
no cursor positioning. ``Query`` collects the builder calls instead and
resolves them when executed: filters become an ``$and`` of predicates, and
cursors become range predicates over the order fields.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING

from .models import FetchOptions

_COMPARISON_OPERATORS = {
    "<": "$lt",
    "<=": "$lte",
    "==": "$eq",
    ">": "$gt",
    ">=": "$gte",
}
_DIRECTIONS = {"asc": ASCENDING, "desc": DESCENDING}


def _predicate(operator: str, value: Any) -> Dict[str, Any]:
    if operator in _COMPARISON_OPERATORS:
        return {_COMPARISON_OPERATORS[operator]: value}
    if operator == "!=":
        # documents without the field never match an inequality
        return {"$ne": value, "$exists": True}
    if operator == "array-contains":
        return {"$elemMatch": {"$eq": value}}
    if operator == "array-contains-any":
        return {"$elemMatch": {"$in": list(value)}}
    if operator == "in":
        return {"$in": list(value)}
    if operator == "not-in":
        return {"$nin": list(value), "$exists": True}
    raise ValueError(f"Unsupported filter operator '{operator}'")


class _Cursor:
    __slots__ = ("values", "inclusive")

    def __init__(self, values: Tuple[Any, ...], inclusive: bool):
        self.values = values
        self.inclusive = inclusive


def _cursor_values(value: Any) -> Tuple[Any, ...]:
    if isinstance(value, tuple):
        return value
    return (value,)


class Query:
    """
    Immutable query over one collection.

    Every builder method returns a new ``Query``; the collection reference
    itself is ``Query(collection)`` with nothing applied.
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        *,
        predicates: Sequence[Dict[str, Any]] = (),
        orders: Sequence[Tuple[str, int]] = (),
        start: Optional[_Cursor] = None,
        end: Optional[_Cursor] = None,
        limit: Optional[int] = None,
    ):
        self.collection = collection
        self._predicates = tuple(predicates)
        self._orders = tuple(orders)
        self._start = start
        self._end = end
        self._limit = limit

    def _copy(self, **changes: Any) -> "Query":
        state = {
            "predicates": self._predicates,
            "orders": self._orders,
            "start": self._start,
            "end": self._end,
            "limit": self._limit,
        }
        state.update(changes)
        return Query(self.collection, **state)

    # ---------------------------------------------------------
    # Builder
    # ---------------------------------------------------------
    def where(self, field_name: str, operator: str, value: Any) -> "Query":
        predicate = {field_name: _predicate(operator, value)}
        return self._copy(predicates=self._predicates + (predicate,))

    def order_by(self, field_name: str, direction: str = "asc") -> "Query":
        if direction not in _DIRECTIONS:
            raise ValueError(f"Unsupported sort direction '{direction}'")
        return self._copy(orders=self._orders + ((field_name, _DIRECTIONS[direction]),))

    def start_at(self, *values: Any) -> "Query":
        return self._copy(start=_Cursor(values, inclusive=True))

    def start_after(self, *values: Any) -> "Query":
        return self._copy(start=_Cursor(values, inclusive=False))

    def end_at(self, *values: Any) -> "Query":
        return self._copy(end=_Cursor(values, inclusive=True))

    def end_before(self, *values: Any) -> "Query":
        return self._copy(end=_Cursor(values, inclusive=False))

    def limit(self, count: int) -> "Query":
        return self._copy(limit=count)

    # ---------------------------------------------------------
    # Resolution
    # ---------------------------------------------------------
    @property
    def orders(self) -> List[Tuple[str, int]]:
        return list(self._orders)

    @property
    def max_results(self) -> Optional[int]:
        return self._limit

    def sort_keys(self) -> List[Tuple[str, int]]:
        """Order clauses plus a trailing ``_id`` key so equal values come back in a stable order."""
        keys = list(self._orders)
        if not keys or any(field_name == "_id" for field_name, _ in keys):
            return keys
        keys.append(("_id", keys[-1][1]))
        return keys

    def _cursor_clause(self, cursor: _Cursor, lower: bool) -> Dict[str, Any]:
        if len(cursor.values) > len(self._orders):
            raise ValueError(
                f"Too many cursor values: {len(cursor.values)} given for "
                f"{len(self._orders)} order clause(s)"
            )
        if not cursor.values:
            raise ValueError("A cursor needs at least one value")

        # Lexicographic position over the leading order fields: equal on every
        # earlier field and strictly past the current one, in its direction.
        branches: List[Dict[str, Any]] = []
        for index, value in enumerate(cursor.values):
            field_name, direction = self._orders[index]
            strict = "$gt" if (direction == ASCENDING) == lower else "$lt"
            branch = {
                prior_field: {"$eq": prior_value}
                for (prior_field, _), prior_value in zip(self._orders[:index], cursor.values)
            }
            if cursor.inclusive and index == len(cursor.values) - 1:
                branch[field_name] = {strict + "e": value}
            else:
                branch[field_name] = {strict: value}
            branches.append(branch)

        if len(branches) == 1:
            return branches[0]
        return {"$or": branches}

    def to_filter(self) -> Dict[str, Any]:
        """Resolve predicates, ordered fields and cursors into one MongoDB filter document."""
        clauses = list(self._predicates)
        # documents without an ordered field are left out of ordered results
        clauses.extend({field_name: {"$exists": True}} for field_name, _ in self._orders if field_name != "_id")
        if self._start is not None:
            clauses.append(self._cursor_clause(self._start, lower=True))
        if self._end is not None:
            clauses.append(self._cursor_clause(self._end, lower=False))

        if not clauses:
            return {}
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    async def get(self) -> List[Dict[str, Any]]:
        """Execute once and return the raw matching documents."""
        cursor = self.collection.find(self.to_filter())
        if self._orders:
            cursor = cursor.sort(self.sort_keys())
        if self._limit:
            cursor = cursor.limit(self._limit)
        return await cursor.to_list(length=None)


def _apply_filters(options: FetchOptions, query: Optional[Query], ref: Query) -> Optional[Query]:
    for spec in options.filters:
        query = (query or ref).where(spec.field_name, spec.operator, spec.value)
    return query


def _apply_sorts(options: FetchOptions, query: Optional[Query], ref: Query) -> Optional[Query]:
    if not options.sorts:
        return query

    for spec in options.sorts:
        query = (query or ref).order_by(spec.field_name, spec.direction)
    if options.has_cursor("start_at"):
        query = query.start_at(*_cursor_values(options.start_at))
    if options.has_cursor("start_after"):
        query = query.start_after(*_cursor_values(options.start_after))
    if options.has_cursor("end_at"):
        query = query.end_at(*_cursor_values(options.end_at))
    if options.has_cursor("end_before"):
        query = query.end_before(*_cursor_values(options.end_before))
    return query


def _apply_limit(options: FetchOptions, query: Optional[Query], ref: Query) -> Optional[Query]:
    if options.limit and options.limit > 0:
        query = (query or ref).limit(options.limit)
    return query


def apply_options(options: FetchOptions, ref: Query) -> Optional[Query]:
    """
    Translate fetch options into a query built on ``ref``.

    Order is fixed: filters, then sorts with their cursors, then the limit.
    Cursors are only attached when at least one sort was applied. Returns
    ``None`` when nothing was applied, in which case ``ref`` is used as is.
    """

    query: Optional[Query] = None
    query = _apply_filters(options, query, ref)
    query = _apply_sorts(options, query, ref)
    query = _apply_limit(options, query, ref)
    return query
