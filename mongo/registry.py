#!/usr/bin/env python3
"""
KPI Registry - Central definitions for cross-collection relationships
"""

from typing import Dict, Any, List

from mongo.constants import (
    CONNECTIONS_COLLECTION,
    PROCESSOR_ITEMS_COLLECTION,
    PROJECT_TOOL_CONFIGS_COLLECTION,
    SCM_COMMITS_COLLECTION,
    SCM_MERGE_REQUESTS_COLLECTION,
    SCM_USERS_COLLECTION,
)
from mongo.pipeline import Join

# ---- Relation Registry (single source of truth for hops)
REL: Dict[str, Dict[str, dict]] = {
    SCM_COMMITS_COLLECTION: {
        # commitAuthorId references the scm_users document id
        "author": {
            "target": SCM_USERS_COLLECTION,
            "localField": "commitAuthorId",
            "foreignField": "_id",
            "as": "authorDetails",
            "many": False,
        },
    },
    SCM_MERGE_REQUESTS_COLLECTION: {
        "author": {
            "target": SCM_USERS_COLLECTION,
            "localField": "authorId",
            "foreignField": "_id",
            "as": "authorDetails",
            "many": False,
        },
    },
    PROJECT_TOOL_CONFIGS_COLLECTION: {
        # One tool config → one connection
        "connection": {
            "target": CONNECTIONS_COLLECTION,
            "localField": "connectionId",
            "foreignField": "_id",
            "as": "connection",
            "many": False,
        },
        # One tool config → many processor items
        "processorItems": {
            "target": PROCESSOR_ITEMS_COLLECTION,
            "localField": "_id",
            "foreignField": "toolConfigId",
            "as": "processorItemList",
            "many": True,
        },
    },
}


def relation(collection: str, name: str) -> Dict[str, Any]:
    """Look up a relationship definition, raising KeyError with context."""
    try:
        return REL[collection][name]
    except KeyError:
        raise KeyError(f"No relationship '{name}' registered for collection '{collection}'") from None


def build_join(collection: str, name: str) -> Join:
    """Build the Join stage for a registered relationship."""
    rel = relation(collection, name)
    return Join(rel["target"], rel["localField"], rel["foreignField"], rel["as"])


def build_lookup_stage(collection: str, name: str) -> Dict[str, Any]:
    """Raw `$lookup` document for a registered relationship."""
    return build_join(collection, name).to_mongo()


def joins_for(collection: str) -> List[Join]:
    """Every registered join for a collection, in registration order."""
    return [build_join(collection, name) for name in REL.get(collection, {})]
