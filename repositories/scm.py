"""SCM repositories: commits, merge requests and SCM users."""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from criteria.predicates import FieldPredicate, Predicate, all_of
from mongo.constants import SCM_COMMITS_COLLECTION, SCM_MERGE_REQUESTS_COLLECTION, SCM_USERS_COLLECTION
from mongo.pipeline import Match, StagedAggregationBuilder
from mongo.registry import build_join
from repositories.base import BaseRepository, any_filter_document

logger = logging.getLogger(__name__)

COMMIT_TIMESTAMP = "commitTimestamp"
PROCESSOR_ITEM_ID = "processorItemId"
UPDATED_DATE = "updatedDate"


class ScmCommitRepository(BaseRepository):
    collection = SCM_COMMITS_COLLECTION

    def __init__(self, executor: Any = None, builder: Optional[StagedAggregationBuilder] = None):
        super().__init__(executor)
        self.builder = builder or StagedAggregationBuilder(self.composer)

    async def find_commit_list(
        self,
        start_ms: int,
        end_ms: int,
        tenant_filters: Sequence[Mapping[str, Any]],
    ) -> List[Dict[str, Any]]:
        """Daily commit counts per repository between two epoch-ms bounds.

        `tenant_filters` is a list of filter documents (typically
        `{"processorItemId": ObjectId(...)}`) any of which selects a commit.
        """
        if not tenant_filters:
            return []
        pipeline = self.builder.build_daily_commit_stats(
            any_filter_document(tenant_filters),
            (start_ms, end_ms),
            timestamp_field=COMMIT_TIMESTAMP,
            tenant_field=PROCESSOR_ITEM_ID,
        )
        results = await self.executor.aggregate(self.collection, pipeline)
        logger.debug(f"Commit stats: {len(results)} day/repository buckets")
        return results

    async def find_commits_with_authors(self, tenant_predicate: Predicate) -> List[Dict[str, Any]]:
        """Commits matching `tenant_predicate`, each with its `authorDetails` joined in."""
        join = build_join(self.collection, "author")
        pipeline = self.builder.build_author_join_pipeline(
            tenant_predicate,
            users_collection=join.from_collection,
            local_key=join.local_key,
            foreign_key=join.foreign_key,
            as_alias=join.as_alias,
        )
        return await self.executor.aggregate(self.collection, pipeline)


class ScmMergeRequestRepository(BaseRepository):
    collection = SCM_MERGE_REQUESTS_COLLECTION

    def __init__(self, executor: Any = None, builder: Optional[StagedAggregationBuilder] = None):
        super().__init__(executor)
        self.builder = builder or StagedAggregationBuilder(self.composer)

    async def find_merge_list(
        self,
        start_ms: int,
        end_ms: int,
        tenant_filters: Optional[Sequence[Mapping[str, Any]]],
    ) -> List[Dict[str, Any]]:
        """Merge requests updated inside the window for any of the filter documents."""
        if not tenant_filters:
            return []
        predicate = all_of(
            any_filter_document(tenant_filters),
            FieldPredicate.between(UPDATED_DATE, start_ms, end_ms),
        )
        return await self.executor.aggregate(self.collection, self.builder.build([Match(predicate)]))


class ScmUserRepository(BaseRepository):
    collection = SCM_USERS_COLLECTION

    async def find_scm_user_list(self, tenant_filters: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        if not tenant_filters:
            return []
        return await self.executor.find(self.collection, any_filter_document(tenant_filters))
