"""Deployment records (collection `deployments`)."""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from criteria.predicates import FieldPredicate, all_of
from mongo.constants import DEPLOYMENT_COLLECTION, to_object_id
from repositories.base import BaseRepository

logger = logging.getLogger(__name__)

START_TIME = "startTime"
END_TIME = "endTime"


class DeploymentRepository(BaseRepository):
    collection = DEPLOYMENT_COLLECTION

    async def find_deployment_list(
        self,
        filters: Optional[Mapping[str, Any]],
        project_ids: Iterable[Any],
        start_date: Optional[str],
        end_date: Optional[str],
    ) -> List[Dict[str, Any]]:
        """Deployments of the given projects, inside the window when both bounds are set."""
        ids = [to_object_id(pid) for pid in project_ids or ()]
        if not ids:
            return []
        leaves = [self.composer.compose_common(filters)]
        if start_date and end_date:
            leaves += [FieldPredicate.gte(START_TIME, start_date), FieldPredicate.lte(END_TIME, end_date)]
        leaves.append(FieldPredicate.is_in(self.composer.tenant_field, ids))
        return await self.executor.find(self.collection, all_of(*leaves))
