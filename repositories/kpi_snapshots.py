"""Calculated KPI snapshot collections: KPI maturity and productivity."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from models.recommendation import TemporalAggregationUnit
from mongo.constants import KPI_MATURITY_COLLECTION, PRODUCTIVITY_COLLECTION
from mongo.pipeline import StagedAggregationBuilder
from repositories.base import BaseRepository

logger = logging.getLogger(__name__)

HIERARCHY_ENTITY_NODE_ID = "hierarchyEntityNodeId"
CALCULATION_DATE = "calculationDate"
ENTRIES = "entries"
PRODUCTIVITY_ENTRY_FIELDS = (CALCULATION_DATE, "_id", HIERARCHY_ENTITY_NODE_ID, "categoryScores")


class _LatestSnapshotRepository(BaseRepository):

    def __init__(self, executor: Any = None, builder: Optional[StagedAggregationBuilder] = None):
        super().__init__(executor)
        self.builder = builder or StagedAggregationBuilder(self.composer)

    async def find_latest_by_hierarchy_nodes(self, hierarchy_node_ids: Iterable[str]) -> List[Dict[str, Any]]:
        """Most recent calculation for every hierarchy node."""
        node_ids = list(hierarchy_node_ids or ())
        if not node_ids:
            return []
        pipeline = self.builder.build_latest_per_key(HIERARCHY_ENTITY_NODE_ID, node_ids, date_field=CALCULATION_DATE)
        return await self.executor.aggregate(self.collection, pipeline)


class KpiMaturityRepository(_LatestSnapshotRepository):
    collection = KPI_MATURITY_COLLECTION


class ProductivityRepository(_LatestSnapshotRepository):
    collection = PRODUCTIVITY_COLLECTION

    async def find_grouped_by_temporal_unit(
        self,
        hierarchy_node_ids: Iterable[str],
        unit: TemporalAggregationUnit,
        limit: int,
    ) -> List[Dict[str, Any]]:
        """The latest `limit` weeks/months of productivity, oldest period first.

        Each item: {temporalAggregationUnit, periodStart, productivities}.
        """
        node_ids = list(hierarchy_node_ids or ())
        if not node_ids:
            return []
        pipeline = self.builder.build_temporal_grouping(
            HIERARCHY_ENTITY_NODE_ID, node_ids, unit, limit, PRODUCTIVITY_ENTRY_FIELDS,
            date_field=CALCULATION_DATE, entries_field=ENTRIES,
        )
        response = await self.executor.aggregate(self.collection, pipeline)

        groupings = [
            {
                "temporalAggregationUnit": unit,
                "periodStart": doc["_id"][unit.unit],
                "productivities": doc[ENTRIES],
            }
            for doc in response
            if "_id" in doc and ENTRIES in doc
        ]
        # Store returns newest first
        groupings.reverse()
        return groupings
