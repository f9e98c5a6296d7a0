"""AI recommendation action plans (collection `recommendations_action_plan`)."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from pymongo import DESCENDING

from criteria.errors import CallerContractError
from criteria.predicates import AllOf, FieldPredicate
from models.recommendation import RecommendationLevel
from mongo.constants import RECOMMENDATIONS_COLLECTION
from mongo.pipeline import StagedAggregationBuilder
from repositories.base import BaseRepository

logger = logging.getLogger(__name__)

CREATED_AT = "createdAt"
KPI_ID = "kpiId"
LEVEL = "level"


class RecommendationRepository(BaseRepository):
    collection = RECOMMENDATIONS_COLLECTION

    def __init__(self, executor: Any = None, builder: Optional[StagedAggregationBuilder] = None):
        super().__init__(executor)
        self.builder = builder or StagedAggregationBuilder(self.composer)

    async def find_latest_recommendations_by_project_ids(
        self,
        project_ids: Optional[Sequence[str]],
        limit: int,
        level: Optional[RecommendationLevel] = None,
    ) -> List[Dict[str, Any]]:
        """Up to `limit` recommendations per project, most severe first.

        Results across projects are ordered by severity priority, then newest.

        Raises:
            CallerContractError: project_ids is None/empty or limit <= 0
        """
        if not project_ids:
            logger.error("Aggregation called with empty or null projectIds list")
            raise CallerContractError("Project IDs list must not be null or empty")
        if limit <= 0:
            logger.error(f"Aggregation called with invalid limit: {limit}")
            raise CallerContractError(f"Limit must be greater than 0, got: {limit}")

        logger.debug(
            f"Fetching {limit} latest recommendation(s) for {len(project_ids)} projects with level filter: {level}"
        )
        pipeline = self.builder.build_latest_recommendations(
            project_ids, limit, level, tenant_field=self.composer.tenant_field, created_field=CREATED_AT,
        )
        recommendations = await self.executor.aggregate(self.collection, pipeline)
        logger.debug(f"Retrieved {len(recommendations)} recommendation(s)")
        return recommendations

    async def find_latest_recommendation_by_project_and_kpi(
        self,
        basic_project_config_id: Optional[str],
        kpi_id: Optional[str],
        level: Optional[RecommendationLevel],
    ) -> Optional[Dict[str, Any]]:
        """Newest recommendation for one project/KPI/level, or None."""
        if basic_project_config_id is None or kpi_id is None or level is None:
            logger.warning(
                f"Invalid parameters: basicProjectConfigId={basic_project_config_id}, kpiId={kpi_id}, level={level}"
            )
            return None

        predicate = AllOf((
            FieldPredicate.equals(self.composer.tenant_field, basic_project_config_id),
            FieldPredicate.equals(KPI_ID, kpi_id),
            FieldPredicate.equals(LEVEL, level.value),
        ))
        recommendation = await self.executor.find_one(self.collection, predicate, sort=[(CREATED_AT, DESCENDING)])
        if recommendation is None:
            logger.debug(f"No {level.value} recommendation found for project {basic_project_config_id} and KPI {kpi_id}")
        return recommendation
