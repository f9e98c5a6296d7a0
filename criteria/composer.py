#!/usr/bin/env python3
"""
Tenant filter composition - merge shared filters with per-project filters

Builds `common AND (project1 OR project2 OR ...)` where each project branch is
`basicProjectConfigId == project AND <that project's own field filters>`.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import CallerContractError
from .predicates import AllOf, AnyOf, FieldPredicate, Operator, Predicate
from .resolver import CriteriaMode, TenantFilterResolver, default_resolver

logger = logging.getLogger(__name__)

TENANT_FIELD = "basicProjectConfigId"

CommonFilterMap = Mapping[str, Optional[Sequence[Any]]]
TenantFilterMap = Mapping[str, Mapping[str, Sequence[Any]]]


class ComposeMode(str, Enum):
    INCLUDE_ALL_TENANTS = "include_all_tenants"


def as_value_list(field: str, raw: Any) -> Optional[Tuple[Any, ...]]:
    """Validate a raw filter value and return it as a tuple.

    Returns None for a missing value. Raises CallerContractError for anything
    that is not a list-like collection (a bare string is not a list here).
    """
    if raw is None:
        return None
    if isinstance(raw, (list, tuple, set, frozenset)):
        return tuple(raw)
    raise CallerContractError(
        f"Filter '{field}' expects a list of values, got {type(raw).__name__}"
    )


class PredicateComposer:
    """Compose shared and per-tenant filter maps into one predicate tree.

    Args:
        resolver: decides IN vs NOT_IN for tenant fields
        tenant_field: document field holding the tenant (project) id
        tenant_key: converts a tenant-id map key to its stored representation
        excluded_fields: common-map keys that are consumed after the query
            and must never become predicates
    """

    def __init__(
        self,
        resolver: TenantFilterResolver = default_resolver,
        tenant_field: str = TENANT_FIELD,
        tenant_key: Callable[[str], Any] = lambda tenant: tenant,
        excluded_fields: Iterable[str] = (),
    ):
        self.resolver = resolver
        self.tenant_field = tenant_field
        self.tenant_key = tenant_key
        self._excluded = frozenset(f.lower() for f in excluded_fields)

    # -----------------------
    # Leaves
    # -----------------------

    def common_leaves(self, common: Optional[CommonFilterMap]) -> List[Predicate]:
        leaves: List[Predicate] = []
        for field, raw in (common or {}).items():
            if field.lower() in self._excluded:
                continue
            values = as_value_list(field, raw)
            if values:
                leaves.append(FieldPredicate(field, Operator.IN, values))
        return leaves

    def tenant_group(
        self,
        tenant: str,
        filters: Optional[Mapping[str, Any]],
        criteria_mode: "str | CriteriaMode | None" = CriteriaMode.IN,
        tenant_constraints: Sequence[Predicate] = (),
    ) -> AllOf:
        if filters is not None and not isinstance(filters, Mapping):
            raise CallerContractError(
                f"Filters for project '{tenant}' must be a mapping, got {type(filters).__name__}"
            )
        leaves: List[Predicate] = [FieldPredicate.equals(self.tenant_field, self.tenant_key(tenant))]
        for field, raw in (filters or {}).items():
            values = as_value_list(field, raw)
            if not values:
                continue
            leaves.append(FieldPredicate(field, self.resolver.resolve_operator(field, criteria_mode), values))
        leaves.extend(tenant_constraints)
        return AllOf(tuple(leaves))

    # -----------------------
    # Composition
    # -----------------------

    def compose_common(self, common: Optional[CommonFilterMap]) -> AllOf:
        """The predicate for shared filters alone (no tenant OR group)."""
        return AllOf(tuple(self.common_leaves(common)))

    def compose(
        self,
        common: Optional[CommonFilterMap],
        per_tenant: Optional[TenantFilterMap],
        mode: ComposeMode = ComposeMode.INCLUDE_ALL_TENANTS,
        criteria_mode: "str | CriteriaMode | None" = CriteriaMode.IN,
        tenant_constraints: Sequence[Predicate] = (),
    ) -> AllOf:
        """Compose `common AND (tenant1 OR tenant2 OR ...)`.

        A tenant with no fields still contributes its id-equality branch. With
        no tenants the result is exactly `compose_common(common)`.
        """
        if mode is not ComposeMode.INCLUDE_ALL_TENANTS:
            raise CallerContractError(f"Unsupported compose mode: {mode}")

        leaves = self.common_leaves(common)
        groups = [
            self.tenant_group(tenant, filters, criteria_mode, tenant_constraints)
            for tenant, filters in (per_tenant or {}).items()
        ]
        if groups:
            leaves.append(AnyOf(tuple(groups)))
        logger.debug(f"Composed predicate: {len(leaves)} top-level leaves, {len(groups)} project branches")
        return AllOf(tuple(leaves))

    def to_mongo(self, *args, **kwargs) -> Dict[str, Any]:
        """Shortcut for `compose(...).to_mongo()`."""
        return self.compose(*args, **kwargs).to_mongo()


default_composer = PredicateComposer()
