"""Project tool configurations joined with their connection and processor items."""

import logging
from typing import Any, Dict, List

from mongo.constants import PROJECT_TOOL_CONFIGS_COLLECTION
from mongo.pipeline import StagedAggregationBuilder
from mongo.registry import joins_for
from repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ProjectToolConfigRepository(BaseRepository):
    collection = PROJECT_TOOL_CONFIGS_COLLECTION

    def __init__(self, executor: Any = None):
        super().__init__(executor)
        self.builder = StagedAggregationBuilder(self.composer)

    async def get_tool_list(self) -> List[Dict[str, Any]]:
        """One entry per configured tool with its project, repository and processor items."""
        pipeline = self.builder.build(joins_for(self.collection))
        items = await self.executor.aggregate(self.collection, pipeline)
        return [
            {
                "projectIds": item.get("basicProjectConfigId"),
                "tool": item.get("toolName"),
                "branch": item.get("branch"),
                "repoSlug": item.get("repoSlug"),
                "repositoryName": item.get("repositoryName"),
                "connection": item.get("connection") or [],
                "processorItemList": item.get("processorItemList") or [],
            }
            for item in items
        ]
