"""
Predicate tree used to describe document-store filters.

Leaves are `FieldPredicate` values (field + operator + values). Inner nodes are
`AllOf` (AND) and `AnyOf` (OR). `MatchAll` is the empty predicate.

Every node can:
- render itself to a MongoDB filter document (`to_mongo`)
- evaluate itself against an in-memory document (`matches`)
- report which field paths it constrains (`referenced_fields`)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Tuple, Union

from .errors import CallerContractError


class Operator(str, Enum):
    IN = "in"
    NOT_IN = "nin"
    EQUALS = "eq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    RANGE = "range"


# Scalar comparison operators and their MongoDB spelling
_COMPARISONS = {
    Operator.GT: "$gt",
    Operator.GTE: "$gte",
    Operator.LT: "$lt",
    Operator.LTE: "$lte",
}


# -----------------------
# Value helpers
# -----------------------

def _resolve_path(document: Any, path: str) -> List[Any]:
    """Collect every value reachable at a dotted path.

    Arrays are traversed element-wise the way MongoDB does, so
    `historyDetails.status` yields the status of every history entry.
    """
    current: List[Any] = [document]
    for part in path.split("."):
        nxt: List[Any] = []
        for value in current:
            if isinstance(value, list):
                for item in value:
                    if isinstance(item, dict) and part in item:
                        nxt.append(item[part])
            elif isinstance(value, dict) and part in value:
                nxt.append(value[part])
        current = nxt
    flattened: List[Any] = []
    for value in current:
        if isinstance(value, list):
            flattened.extend(value)
        else:
            flattened.append(value)
    return flattened


def _value_equals(candidate: Any, expected: Any) -> bool:
    if isinstance(expected, re.Pattern):
        return isinstance(candidate, str) and expected.search(candidate) is not None
    return candidate == expected


def _compare(candidate: Any, bound: Any, op: Operator) -> bool:
    try:
        if op is Operator.GT:
            return candidate > bound
        if op is Operator.GTE:
            return candidate >= bound
        if op is Operator.LT:
            return candidate < bound
        return candidate <= bound
    except TypeError:
        # Mixed types never satisfy a range constraint in the store either
        return False


# -----------------------
# Nodes
# -----------------------

@dataclass(frozen=True)
class FieldPredicate:
    """A single constraint on one field."""
    field: str
    op: Operator
    values: Tuple[Any, ...] = ()

    def __post_init__(self):
        if not self.field:
            raise CallerContractError("FieldPredicate requires a field name")
        if not isinstance(self.values, tuple):
            object.__setattr__(self, "values", tuple(self.values))
        if self.op in (Operator.IN, Operator.NOT_IN) and not self.values:
            raise CallerContractError(f"{self.op.name} on '{self.field}' requires at least one value")
        if self.op is Operator.RANGE and len(self.values) != 2:
            raise CallerContractError(f"RANGE on '{self.field}' requires exactly two bounds, got {len(self.values)}")
        if self.op in _COMPARISONS or self.op is Operator.EQUALS:
            if len(self.values) != 1:
                raise CallerContractError(f"{self.op.name} on '{self.field}' takes exactly one value")

    # Convenience constructors read better at call sites than the raw dataclass
    @classmethod
    def is_in(cls, field: str, values: Iterable[Any]) -> "FieldPredicate":
        return cls(field, Operator.IN, tuple(values))

    @classmethod
    def not_in(cls, field: str, values: Iterable[Any]) -> "FieldPredicate":
        return cls(field, Operator.NOT_IN, tuple(values))

    @classmethod
    def equals(cls, field: str, value: Any) -> "FieldPredicate":
        return cls(field, Operator.EQUALS, (value,))

    @classmethod
    def gt(cls, field: str, value: Any) -> "FieldPredicate":
        return cls(field, Operator.GT, (value,))

    @classmethod
    def gte(cls, field: str, value: Any) -> "FieldPredicate":
        return cls(field, Operator.GTE, (value,))

    @classmethod
    def lt(cls, field: str, value: Any) -> "FieldPredicate":
        return cls(field, Operator.LT, (value,))

    @classmethod
    def lte(cls, field: str, value: Any) -> "FieldPredicate":
        return cls(field, Operator.LTE, (value,))

    @classmethod
    def between(cls, field: str, lower: Any, upper: Any) -> "FieldPredicate":
        return cls(field, Operator.RANGE, (lower, upper))

    def to_mongo(self) -> Dict[str, Any]:
        if self.op is Operator.IN:
            return {self.field: {"$in": list(self.values)}}
        if self.op is Operator.NOT_IN:
            return {self.field: {"$nin": list(self.values)}}
        if self.op is Operator.EQUALS:
            return {self.field: self.values[0]}
        if self.op is Operator.RANGE:
            return {self.field: {"$gte": self.values[0], "$lte": self.values[1]}}
        return {self.field: {_COMPARISONS[self.op]: self.values[0]}}

    def matches(self, document: Dict[str, Any]) -> bool:
        candidates = _resolve_path(document, self.field)
        if self.op is Operator.NOT_IN:
            return not any(_value_equals(c, v) for c in candidates for v in self.values)
        if self.op in (Operator.IN, Operator.EQUALS):
            return any(_value_equals(c, v) for c in candidates for v in self.values)
        if self.op is Operator.RANGE:
            lower, upper = self.values
            return any(
                _compare(c, lower, Operator.GTE) and _compare(c, upper, Operator.LTE)
                for c in candidates
            )
        return any(_compare(c, self.values[0], self.op) for c in candidates)

    def referenced_fields(self) -> FrozenSet[str]:
        return frozenset({self.field})


@dataclass(frozen=True)
class MatchAll:
    """The empty predicate; selects every document."""

    def to_mongo(self) -> Dict[str, Any]:
        return {}

    def matches(self, document: Dict[str, Any]) -> bool:
        return True

    def referenced_fields(self) -> FrozenSet[str]:
        return frozenset()


@dataclass(frozen=True)
class AllOf:
    """AND over child predicates."""
    children: Tuple["Predicate", ...] = ()

    def __post_init__(self):
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))

    def to_mongo(self) -> Dict[str, Any]:
        rendered = [c.to_mongo() for c in self.children if not isinstance(c, MatchAll)]
        rendered = [doc for doc in rendered if doc]
        if not rendered:
            return {}
        if len(rendered) == 1:
            return rendered[0]
        merged: Dict[str, Any] = {}
        for doc in rendered:
            if any(key in merged for key in doc):
                # Same field (or two $or groups) constrained twice: keep them apart
                return {"$and": rendered}
            merged.update(doc)
        return merged

    def matches(self, document: Dict[str, Any]) -> bool:
        return all(c.matches(document) for c in self.children)

    def referenced_fields(self) -> FrozenSet[str]:
        fields: FrozenSet[str] = frozenset()
        for c in self.children:
            fields |= c.referenced_fields()
        return fields


@dataclass(frozen=True)
class AnyOf:
    """OR over child predicates. An empty AnyOf matches nothing."""
    children: Tuple["Predicate", ...] = ()

    def __post_init__(self):
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))

    def to_mongo(self) -> Dict[str, Any]:
        if not self.children:
            # $or rejects an empty array; no stored document lacks _id
            return {"_id": {"$exists": False}}
        if len(self.children) == 1:
            return self.children[0].to_mongo()
        return {"$or": [c.to_mongo() for c in self.children]}

    def matches(self, document: Dict[str, Any]) -> bool:
        return any(c.matches(document) for c in self.children)

    def referenced_fields(self) -> FrozenSet[str]:
        fields: FrozenSet[str] = frozenset()
        for c in self.children:
            fields |= c.referenced_fields()
        return fields


Predicate = Union[FieldPredicate, AllOf, AnyOf, MatchAll]


def all_of(*predicates: Predicate) -> Predicate:
    """AND the given predicates, dropping MatchAll and collapsing trivial groups."""
    kept = tuple(p for p in predicates if not isinstance(p, MatchAll))
    if not kept:
        return MatchAll()
    if len(kept) == 1:
        return kept[0]
    return AllOf(kept)


def any_of(*predicates: Predicate) -> Predicate:
    if len(predicates) == 1:
        return predicates[0]
    return AnyOf(tuple(predicates))
