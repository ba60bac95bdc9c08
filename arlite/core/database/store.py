"""
Record store contract and the in-memory implementation.

The record layer never talks to a database directly; it hands already
store-converted attribute maps to a RecordStore. Conditions are Mongo-style
filter documents so the same query works against MongoRecordStore.
"""
import abc
import copy
import operator
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger
from pymongo.errors import DuplicateKeyError

from .schema import TableRef

Condition = Union[Dict[str, Any], Callable[[Dict[str, Any]], bool], None]


class RecordStore(abc.ABC):
    @abc.abstractmethod
    def find(self, table: TableRef, identity: Any) -> Optional[Dict[str, Any]]:
        """Row for `identity` (primary key included) or None."""

    @abc.abstractmethod
    def find_all(self, table: TableRef, condition: Condition = None,
                 order: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        ...

    @abc.abstractmethod
    def insert(self, table: TableRef, attributes: Dict[str, Any]) -> Any:
        """Insert a row and return its identity."""

    @abc.abstractmethod
    def update(self, table: TableRef, identity: Any, attributes: Dict[str, Any]) -> int:
        ...

    @abc.abstractmethod
    def delete(self, table: TableRef, target: Any) -> int:
        """`target` is an identity, a list of identities, or a condition dict."""

    @abc.abstractmethod
    def update_all(self, table: TableRef, updates: Dict[str, Any], condition: Condition = None) -> int:
        ...

    @abc.abstractmethod
    def increment_all(self, table: TableRef, counters: Dict[str, int], condition: Condition = None) -> int:
        """Add to numeric columns; a null counter counts as zero."""

    @abc.abstractmethod
    def count(self, table: TableRef, condition: Condition = None) -> int:
        ...

    @abc.abstractmethod
    def count_by_query(self, table: TableRef, query: Any) -> int:
        """Escape hatch for aggregate counts; `query` is store specific."""


# --- Condition matching ---

def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(actual, expected):
        if actual is None or expected is None:
            return False
        try:
            return op(actual, expected)
        except TypeError:
            return False
    return check


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "$eq": lambda actual, expected: actual == expected,
    "$ne": lambda actual, expected: actual != expected,
    "$in": lambda actual, expected: actual in expected,
    "$nin": lambda actual, expected: actual not in expected,
    "$gt": _compare(operator.gt),
    "$gte": _compare(operator.ge),
    "$lt": _compare(operator.lt),
    "$lte": _compare(operator.le),
}


def matches(row: Dict[str, Any], condition: Condition) -> bool:
    if not condition:
        return True
    if callable(condition):
        return bool(condition(row))
    for key, expected in condition.items():
        if key == "$and":
            if not all(matches(row, sub) for sub in expected):
                return False
            continue
        if key == "$or":
            if not any(matches(row, sub) for sub in expected):
                return False
            continue
        actual = row.get(key)
        if isinstance(expected, dict) and expected and all(k.startswith("$") for k in expected):
            for op, operand in expected.items():
                if op == "$exists":
                    if (key in row) != bool(operand):
                        return False
                elif op not in OPERATORS:
                    raise ValueError(f"Unsupported operator {op}")
                elif not OPERATORS[op](actual, operand):
                    return False
        elif actual != expected:
            return False
    return True


class MemoryRecordStore(RecordStore):
    """Dict-backed store with auto-increment integer identities."""

    def __init__(self):
        self._tables: Dict[str, Dict[Any, Dict[str, Any]]] = {}
        self._sequences: Dict[str, int] = {}

    def _table(self, table: TableRef) -> Dict[Any, Dict[str, Any]]:
        return self._tables.setdefault(table.name, {})

    def _rows(self, table: TableRef, condition: Condition) -> List[Dict[str, Any]]:
        return [row for row in self._table(table).values() if matches(row, condition)]

    def _next_id(self, table: TableRef) -> int:
        rows = self._table(table)
        current = max([self._sequences.get(table.name, 0)] + [k for k in rows if isinstance(k, int)])
        self._sequences[table.name] = current + 1
        return current + 1

    def find(self, table: TableRef, identity: Any) -> Optional[Dict[str, Any]]:
        row = self._table(table).get(identity)
        return copy.deepcopy(row) if row is not None else None

    def find_all(self, table: TableRef, condition: Condition = None,
                 order: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        rows = self._rows(table, condition)
        if order:
            for part in reversed([p.strip() for p in order.split(",") if p.strip()]):
                descending = part.startswith("-")
                name = part.lstrip("-")
                # nulls sort first
                rows.sort(key=lambda r: (r.get(name) is not None, r.get(name) if r.get(name) is not None else 0),
                          reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    def insert(self, table: TableRef, attributes: Dict[str, Any]) -> Any:
        row = copy.deepcopy(attributes)
        identity = row.get(table.primary_key)
        if identity is None:
            identity = self._next_id(table)
        elif identity in self._table(table):
            raise DuplicateKeyError(f"duplicate key: {table.name}#{identity}", code=11000)
        row[table.primary_key] = identity
        self._table(table)[identity] = row
        logger.debug(f"Memory store: inserted {table.name}#{identity}")
        return identity

    def update(self, table: TableRef, identity: Any, attributes: Dict[str, Any]) -> int:
        row = self._table(table).get(identity)
        if row is None:
            return 0
        row.update(copy.deepcopy(attributes))
        return 1

    def delete(self, table: TableRef, target: Any) -> int:
        rows = self._table(table)
        if isinstance(target, dict) or callable(target):
            doomed = [row[table.primary_key] for row in self._rows(table, target)]
        elif isinstance(target, (list, tuple, set)):
            doomed = [identity for identity in target if identity in rows]
        else:
            doomed = [target] if target in rows else []
        for identity in doomed:
            del rows[identity]
        return len(doomed)

    def update_all(self, table: TableRef, updates: Dict[str, Any], condition: Condition = None) -> int:
        rows = self._rows(table, condition)
        for row in rows:
            row.update(copy.deepcopy(updates))
        return len(rows)

    def increment_all(self, table: TableRef, counters: Dict[str, int], condition: Condition = None) -> int:
        rows = self._rows(table, condition)
        for row in rows:
            for name, by in counters.items():
                row[name] = (row.get(name) or 0) + by
        return len(rows)

    def count(self, table: TableRef, condition: Condition = None) -> int:
        return len(self._rows(table, condition))

    def count_by_query(self, table: TableRef, query: Any) -> int:
        """Supports pipelines of `$match` stages, optionally ending in `$count`."""
        rows = list(self._table(table).values())
        for stage in query:
            (name, argument), = stage.items()
            if name == "$match":
                rows = [row for row in rows if matches(row, argument)]
            elif name == "$count":
                break
            else:
                raise ValueError(f"Unsupported pipeline stage {name}")
        return len(rows)

    def clear(self):
        self._tables.clear()
        self._sequences.clear()
