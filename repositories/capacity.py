"""Sprint and kanban capacity repositories.

Both apply the capacity fold after the query when the caller passes the
additional-filter keys.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from criteria.capacity import CapacityFoldEngine, FOLD_FILTER_KEYS, capacity_fold_engine
from criteria.composer import PredicateComposer, TenantFilterMap
from criteria.predicates import FieldPredicate, all_of
from models.capacity import CapacityKpiData, KanbanCapacity
from mongo.constants import CAPACITY_KPI_DATA_COLLECTION, KANBAN_CAPACITY_COLLECTION
from repositories.base import BaseRepository, parse_day

logger = logging.getLogger(__name__)

START_DATE = "startDate"
END_DATE = "endDate"


class CapacityKpiDataRepository(BaseRepository):
    collection = CAPACITY_KPI_DATA_COLLECTION

    def __init__(self, executor: Any = None, fold_engine: CapacityFoldEngine = capacity_fold_engine):
        super().__init__(executor, PredicateComposer(excluded_fields=FOLD_FILTER_KEYS))
        self.fold_engine = fold_engine

    async def find_by_filters(
        self,
        filters: Mapping[str, Any],
        unique_project_map: Optional[TenantFilterMap],
    ) -> List[CapacityKpiData]:
        predicate = self.composer.compose(filters, unique_project_map)
        documents = await self.executor.find(self.collection, predicate)
        data = [CapacityKpiData.model_validate(doc) for doc in documents]
        self.fold_engine.fold_all(data, filters)
        if not data:
            logger.info("No Data found for filters")
        return data


class KanbanCapacityRepository(BaseRepository):
    collection = KANBAN_CAPACITY_COLLECTION

    def __init__(self, executor: Any = None, fold_engine: CapacityFoldEngine = capacity_fold_engine):
        super().__init__(executor, PredicateComposer(excluded_fields=FOLD_FILTER_KEYS))
        self.fold_engine = fold_engine

    async def find_issues_by_type(
        self,
        filters: Mapping[str, Any],
        date_from: str,
        date_to: str,
    ) -> List[KanbanCapacity]:
        """Capacity records whose [startDate, endDate] overlaps [date_from, date_to]."""
        predicate = all_of(
            self.composer.compose_common(filters),
            FieldPredicate.lte(START_DATE, parse_day(date_to)),
            FieldPredicate.gte(END_DATE, parse_day(date_from)),
        )
        documents = await self.executor.find(self.collection, predicate)
        data = [KanbanCapacity.model_validate(doc) for doc in documents]
        return self.fold_engine.fold_all(data, filters)

    async def find_by_filter_map_and_date(self, filters: Mapping[str, Optional[str]], date: str) -> List[KanbanCapacity]:
        """Capacity records covering `date`, single-valued filters matched exactly."""
        day = parse_day(date)
        leaves = [FieldPredicate.equals(key, value) for key, value in filters.items() if value]
        predicate = all_of(*leaves, FieldPredicate.lte(START_DATE, day), FieldPredicate.gte(END_DATE, day))
        documents: List[Dict[str, Any]] = await self.executor.find(self.collection, predicate)
        return [KanbanCapacity.model_validate(doc) for doc in documents]
