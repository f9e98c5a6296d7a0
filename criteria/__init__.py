"""
Criteria - predicate composition for multi-project document queries

Provides the predicate tree, per-field membership resolution, the tenant
filter composer and the post-query capacity fold.
"""

from criteria.errors import CallerContractError
from criteria.predicates import (
    AllOf,
    AnyOf,
    FieldPredicate,
    MatchAll,
    Operator,
    Predicate,
    all_of,
    any_of,
)
from criteria.resolver import CriteriaMode, TenantFilterResolver, default_resolver
from criteria.composer import ComposeMode, PredicateComposer, default_composer, TENANT_FIELD
from criteria.capacity import CapacityFoldEngine, capacity_fold_engine

__all__ = [
    # Errors
    "CallerContractError",
    # Predicate tree
    "AllOf",
    "AnyOf",
    "FieldPredicate",
    "MatchAll",
    "Operator",
    "Predicate",
    "all_of",
    "any_of",
    # Resolution / composition
    "CriteriaMode",
    "TenantFilterResolver",
    "default_resolver",
    "ComposeMode",
    "PredicateComposer",
    "default_composer",
    "TENANT_FIELD",
    # Post-query
    "CapacityFoldEngine",
    "capacity_fold_engine",
]
