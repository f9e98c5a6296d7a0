"""
Per-field membership resolution for tenant filters.

Decides whether a tenant filter value list is an inclusion (`$in`) or an
exclusion (`$nin`). The decision is a pure function of the field name, a small
override table and the caller's criteria mode.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Mapping, Optional

from .predicates import Operator


class CriteriaMode(str, Enum):
    IN = "in"
    NIN = "nin"

    @classmethod
    def parse(cls, value: "Optional[str | CriteriaMode]") -> "CriteriaMode":
        """Anything other than 'nin' (any casing) means inclusive membership."""
        if isinstance(value, CriteriaMode):
            return value
        if isinstance(value, str) and value.strip().lower() == cls.NIN.value:
            return cls.NIN
        return cls.IN


# Fields that always exclude, whatever mode the caller asked for
DEFAULT_OPERATOR_TABLE: Mapping[str, Operator] = {
    "rejectionLabel": Operator.NOT_IN,
}


class TenantFilterResolver:
    """Chooses IN or NOT_IN for a tenant filter field.

    Args:
        operator_table: field name -> default operator. Lookup ignores case.
        mode_fields: fields that the "nin" criteria mode inverts. When omitted,
            "nin" inverts every field.
    """

    def __init__(
        self,
        operator_table: Optional[Mapping[str, Operator]] = None,
        mode_fields: Optional[Iterable[str]] = None,
    ):
        table = DEFAULT_OPERATOR_TABLE if operator_table is None else operator_table
        self._table = {name.lower(): op for name, op in table.items()}
        self._mode_fields = None if mode_fields is None else frozenset(f.lower() for f in mode_fields)

    def with_overrides(self, overrides: Mapping[str, Operator]) -> "TenantFilterResolver":
        """Return a resolver whose table is this one plus `overrides`."""
        table = dict(self._table)
        table.update({name.lower(): op for name, op in overrides.items()})
        return TenantFilterResolver(table, self._mode_fields)

    def resolve_operator(self, field: str, criteria_mode: "Optional[str | CriteriaMode]" = CriteriaMode.IN) -> Operator:
        key = field.lower()
        if CriteriaMode.parse(criteria_mode) is CriteriaMode.NIN:
            if self._mode_fields is None or key in self._mode_fields:
                return Operator.NOT_IN
        return self._table.get(key, Operator.IN)


default_resolver = TenantFilterResolver()
