#!/usr/bin/env python3
"""
Tenant filter composition tests

Covers operator resolution and the `common AND (tenant1 OR tenant2 ...)` shape.
"""

import sys
import os

import pytest
from bson import ObjectId

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from criteria import (
    AllOf,
    AnyOf,
    CallerContractError,
    CriteriaMode,
    FieldPredicate,
    Operator,
    PredicateComposer,
    TenantFilterResolver,
    default_composer,
    default_resolver,
)
from criteria.capacity import FOLD_FILTER_KEYS
from mongo.constants import to_object_id


class TestTenantFilterResolver:
    """IN vs NOT_IN choice"""

    @pytest.mark.parametrize("field", ["status", "rejectionLabel", "labels", "sprintID"])
    def test_nin_mode_always_excludes(self, field):
        assert default_resolver.resolve_operator(field, "nin") is Operator.NOT_IN

    def test_rejection_label_excluded_in_in_mode(self):
        assert default_resolver.resolve_operator("rejectionLabel", "in") is Operator.NOT_IN

    def test_other_fields_default_to_in(self):
        assert default_resolver.resolve_operator("status", "in") is Operator.IN

    def test_mode_and_field_lookup_ignore_case(self):
        assert default_resolver.resolve_operator("status", "NIN") is Operator.NOT_IN
        assert default_resolver.resolve_operator("REJECTIONLABEL", "in") is Operator.NOT_IN

    def test_unknown_mode_means_in(self):
        assert CriteriaMode.parse(None) is CriteriaMode.IN
        assert CriteriaMode.parse("whatever") is CriteriaMode.IN

    def test_mode_fields_limit_inversion(self):
        resolver = TenantFilterResolver(mode_fields=["jiraStatus"])
        assert resolver.resolve_operator("jiraStatus", "nin") is Operator.NOT_IN
        assert resolver.resolve_operator("storyType", "nin") is Operator.IN

    def test_overrides_extend_table(self):
        resolver = default_resolver.with_overrides({"labels": Operator.NOT_IN})
        assert resolver.resolve_operator("labels", "in") is Operator.NOT_IN
        assert resolver.resolve_operator("rejectionLabel", "in") is Operator.NOT_IN
        # Original resolver untouched
        assert default_resolver.resolve_operator("labels", "in") is Operator.IN


class TestPredicateComposer:
    """Composition shape and edge cases"""

    def test_no_tenants_equals_common_only(self):
        common = {"sprintID": ["s1"], "basicProjectConfigId": ["p1", "p2"]}
        assert default_composer.compose(common, {}) == default_composer.compose_common(common)
        assert default_composer.compose(common, None) == default_composer.compose_common(common)

    def test_empty_common_values_emit_nothing(self):
        composed = default_composer.compose({"sprintID": [], "other": None}, {})
        assert composed == AllOf(())
        assert composed.to_mongo() == {}

    def test_or_group_has_one_branch_per_tenant(self):
        per_tenant = {
            "p1": {"storyType": ["Story", "Bug"], "rejectionLabel": ["dup"]},
            "p2": {"storyType": ["Defect"]},
            "p3": {},
        }
        composed = default_composer.compose({"sprintID": ["s1"]}, per_tenant)

        assert composed.children[0] == FieldPredicate.is_in("sprintID", ["s1"])
        or_group = composed.children[-1]
        assert isinstance(or_group, AnyOf)
        assert len(or_group.children) == 3

        p1, p2, p3 = or_group.children
        assert p1.children == (
            FieldPredicate.equals("basicProjectConfigId", "p1"),
            FieldPredicate.is_in("storyType", ["Story", "Bug"]),
            FieldPredicate.not_in("rejectionLabel", ["dup"]),
        )
        assert len(p2.children) == 2
        # Tenant with no fields keeps its id-equality branch
        assert p3.children == (FieldPredicate.equals("basicProjectConfigId", "p3"),)

    def test_empty_tenant_field_values_are_skipped(self):
        composed = default_composer.compose({}, {"p1": {"storyType": [], "status": None}})
        assert composed.children[-1].children[0].children == (FieldPredicate.equals("basicProjectConfigId", "p1"),)

    def test_nin_mode_inverts_tenant_fields(self):
        composed = default_composer.compose({}, {"p1": {"status": ["Done"]}}, criteria_mode="nin")
        assert composed.to_mongo() == {"basicProjectConfigId": "p1", "status": {"$nin": ["Done"]}}

    def test_rendered_document(self):
        per_tenant = {"p1": {"storyType": ["Story"]}, "p2": {"storyType": ["Bug"]}}
        rendered = default_composer.to_mongo({"sprintID": ["s1"]}, per_tenant)
        assert rendered == {
            "sprintID": {"$in": ["s1"]},
            "$or": [
                {"basicProjectConfigId": "p1", "storyType": {"$in": ["Story"]}},
                {"basicProjectConfigId": "p2", "storyType": {"$in": ["Bug"]}},
            ],
        }

    def test_bare_scalar_value_is_a_caller_error(self):
        with pytest.raises(CallerContractError):
            default_composer.compose({}, {"p1": {"storyType": "Story"}})
        with pytest.raises(CallerContractError):
            default_composer.compose({"sprintID": "s1"}, {})

    def test_non_mapping_tenant_filters_is_a_caller_error(self):
        with pytest.raises(CallerContractError):
            default_composer.compose({}, {"p1": ["Story"]})

    def test_excluded_fields_never_become_predicates(self):
        composer = PredicateComposer(excluded_fields=FOLD_FILTER_KEYS)
        common = {
            "sprintID": ["s1"],
            "additionalFilterCapacityList.nodeCapacityList.additionalFilterId": ["node1"],
            "additionalFilterCapacityList.filterId": ["filter1"],
        }
        assert composer.compose(common, {}).to_mongo() == {"sprintID": {"$in": ["s1"]}}

    def test_tenant_key_converts_ids(self):
        composer = PredicateComposer(tenant_key=str.upper)
        composed = composer.compose({}, {"p1": {}})
        assert composed.to_mongo() == {"basicProjectConfigId": "P1"}

    def test_object_id_tenant_key(self):
        project = ObjectId()
        composer = PredicateComposer(tenant_key=to_object_id)
        assert composer.compose({}, {str(project): {}}).to_mongo() == {"basicProjectConfigId": project}
        assert default_composer.compose({}, {str(project): {}}).to_mongo() == {"basicProjectConfigId": str(project)}

    def test_tenant_constraints_join_every_group(self):
        window = FieldPredicate.between("activityDate", "a", "b")
        composed = default_composer.compose({}, {"p1": {}, "p2": {}}, tenant_constraints=(window,))
        for group in composed.children[-1].children:
            assert group.children[-1] == window

    def test_composed_predicate_selects_tenant_documents(self):
        per_tenant = {"p1": {"storyType": ["Story"]}, "p2": {"storyType": ["Bug"]}}
        composed = default_composer.compose({"sprintID": ["s1"]}, per_tenant)
        assert composed.matches({"sprintID": "s1", "basicProjectConfigId": "p1", "storyType": "Story"})
        assert not composed.matches({"sprintID": "s1", "basicProjectConfigId": "p1", "storyType": "Bug"})
        assert not composed.matches({"sprintID": "s2", "basicProjectConfigId": "p2", "storyType": "Bug"})
