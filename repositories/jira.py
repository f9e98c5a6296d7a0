"""Jira issue and issue-history repositories (scrum and kanban)."""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pymongo import ASCENDING

from criteria.composer import PredicateComposer, TenantFilterMap
from criteria.errors import CallerContractError
from criteria.predicates import AllOf, AnyOf, FieldPredicate, Predicate, all_of
from criteria.resolver import CriteriaMode, TenantFilterResolver
from mongo.constants import (
    JIRA_ISSUE_CUSTOM_HISTORY_COLLECTION,
    KANBAN_JIRA_ISSUE_COLLECTION,
    KANBAN_JIRA_ISSUE_HISTORY_COLLECTION,
)
from mongo.pipeline import StagedAggregationBuilder
from repositories.base import END_OF_DAY_ISO, START_OF_DAY_ISO, BaseRepository, day_bounds

logger = logging.getLogger(__name__)

STORY_ID = "storyID"
STORY_TYPE = "storyType"
CREATED_DATE = "createdDate"
URL = "url"
DESCRIPTION = "description"
ESTIMATE = "estimate"

# Scrum history
STATUS_CHANGE_LOG = "statusUpdationLog"
VERSION_CHANGE_LOG = "fixVersionUpdationLog"
STATUS_CHANGED_TO = "statusUpdationLog.changedTo"
STATUS_UPDATED_ON = "statusUpdationLog.updatedOn"
STORY_STATUS_CHANGED_TO = "statusUpdationLog.story.changedTo"
FIX_VERSION_CHANGED_TO = "fixVersionUpdationLog.changedTo"
FIX_VERSION_CHANGED_FROM = "fixVersionUpdationLog.changedFrom"

# Kanban issue
JIRA_STATUS = "jiraStatus"
KANBAN_START_OF_DAY = "T00:00:00.0000000"
KANBAN_END_OF_DAY = "T23:59:59.0000000"

# Kanban history
HISTORY_DETAILS = "historyDetails"
HISTORY_STATUS = "historyDetails.status"
HISTORY_ACTIVITY_DATE = "historyDetails.activityDate"
HISTORY_GROUP_FIELDS = (STORY_ID, STORY_TYPE, "basicProjectConfigId", CREATED_DATE, "priority", ESTIMATE, URL)


def flatten_group(doc: Mapping[str, Any], pushed_field: str) -> Dict[str, Any]:
    """Lift the group key fields out of `_id` next to the pushed list."""
    flat = dict(doc.get("_id") or {})
    flat[pushed_field] = doc.get(pushed_field, [])
    return flat


class JiraIssueCustomHistoryRepository(BaseRepository):
    collection = JIRA_ISSUE_CUSTOM_HISTORY_COLLECTION

    def __init__(self, executor: Any = None, builder: Optional[StagedAggregationBuilder] = None):
        super().__init__(executor)
        self.builder = builder or StagedAggregationBuilder(self.composer)

    async def find_issues_by_created_date_and_type(
        self,
        filters: Mapping[str, Any],
        unique_project_map: Optional[TenantFilterMap],
        date_from: str,
        date_to: str,
    ) -> List[Dict[str, Any]]:
        start, end = day_bounds(date_from, date_to)
        predicate = all_of(
            self.composer.compose(filters, unique_project_map),
            FieldPredicate.between(CREATED_DATE, start, end),
        )
        projection = [STORY_ID, STORY_TYPE, self.composer.tenant_field, STATUS_CHANGE_LOG, CREATED_DATE, URL, DESCRIPTION]
        return await self.executor.find(self.collection, predicate, projection=projection)

    async def find_by_filter_and_from_status_map(
        self,
        filters: Mapping[str, Any],
        unique_project_map: Optional[TenantFilterMap],
    ) -> List[Dict[str, Any]]:
        """Issues whose status log reaches every project's target statuses.

        Unlike the other lookups the per-project groups are ANDed: each group
        constrains the status log, not the project id.
        """
        groups: List[Predicate] = []
        for project, filter_map in (unique_project_map or {}).items():
            leaves: List[Predicate] = []
            statuses = filter_map.get(STORY_STATUS_CHANGED_TO)
            if statuses:
                leaves.append(FieldPredicate.is_in(STATUS_CHANGED_TO, statuses))
            story_types = filter_map.get(STORY_TYPE)
            if story_types:
                leaves.append(FieldPredicate.is_in(STORY_TYPE, story_types))
            groups.append(AllOf(tuple(leaves)))
        predicate = all_of(self.composer.compose_common(filters), *groups)
        projection = [STORY_ID, self.composer.tenant_field, STATUS_CHANGE_LOG]
        return await self.executor.find(self.collection, predicate, projection=projection)

    async def find_by_filter_and_from_status_map_with_date_filter(
        self,
        filters: Mapping[str, Any],
        unique_project_map: Optional[TenantFilterMap],
        date_from: str,
        date_to: str,
    ) -> List[Dict[str, Any]]:
        """As `find_by_filter_and_from_status_map`, with each project's status
        transitions also required to fall inside the window."""
        start, end = day_bounds(date_from, date_to)
        project_map = unique_project_map or {}
        groups: List[Predicate] = []
        for filter_map in project_map.values():
            statuses = filter_map.get(STORY_STATUS_CHANGED_TO)
            if statuses is None:
                continue
            groups.append(AllOf((
                FieldPredicate.is_in(STATUS_CHANGED_TO, statuses),
                FieldPredicate.between(STATUS_UPDATED_ON, start, end),
            )))
        for filter_map in project_map.values():
            story_types = filter_map.get(STORY_TYPE)
            if story_types is not None:
                groups.append(FieldPredicate.is_in(STORY_TYPE, story_types))
        predicate = all_of(self.composer.compose_common(filters), *groups)
        projection = [
            STORY_ID, STORY_TYPE, self.composer.tenant_field, STATUS_CHANGE_LOG, CREATED_DATE, URL, DESCRIPTION, ESTIMATE,
        ]
        return await self.executor.find(self.collection, predicate, projection=projection)

    async def find_feature_custom_history_story_project_wise(
        self,
        filters: Mapping[str, Any],
        unique_project_map: Optional[TenantFilterMap],
        sort_direction: int = ASCENDING,
    ) -> List[Dict[str, Any]]:
        """One document per story: its project, url and the status log entries
        that moved into that project's target statuses, ordered by update time."""
        if not unique_project_map:
            logger.info("No projects requested for story history")
            return []
        pipeline = self.builder.build_story_history_aggregation(
            self.composer.compose_common(filters),
            unique_project_map,
            sort_direction,
            status_map_key=STORY_STATUS_CHANGED_TO,
            type_field=STORY_TYPE,
            log_field=STATUS_CHANGE_LOG,
            group_fields=(STORY_ID, self.composer.tenant_field, URL),
        )
        results = await self.executor.aggregate(self.collection, pipeline)
        return [flatten_group(doc, STATUS_CHANGE_LOG) for doc in results]

    async def find_by_filter_and_from_release_map(
        self,
        project_ids: Sequence[Any],
        releases: Sequence[Any],
    ) -> List[Dict[str, Any]]:
        """Issues of the given projects whose fix version moved to or from a release."""
        if not project_ids or not releases:
            raise CallerContractError("Release lookup requires project ids and releases")
        predicate = AllOf((
            FieldPredicate.is_in(self.composer.tenant_field, project_ids),
            AnyOf((
                FieldPredicate.is_in(FIX_VERSION_CHANGED_TO, releases),
                FieldPredicate.is_in(FIX_VERSION_CHANGED_FROM, releases),
            )),
        ))
        projection = [STORY_ID, self.composer.tenant_field, STATUS_CHANGE_LOG, VERSION_CHANGE_LOG]
        return await self.executor.find(self.collection, predicate, projection=projection)


class KanbanJiraIssueRepository(BaseRepository):
    collection = KANBAN_JIRA_ISSUE_COLLECTION

    def __init__(self, executor: Any = None):
        super().__init__(executor)
        self.status_composer = PredicateComposer(TenantFilterResolver(mode_fields=[JIRA_STATUS]))

    @staticmethod
    def date_criteria(date_from: str, date_to: str, date_criteria: Optional[str]) -> Optional[Predicate]:
        """`range`: created inside the window; `less`: before it starts;
        `past`: before it ends. Anything else adds no date constraint."""
        start = f"{date_from}{KANBAN_START_OF_DAY}"
        end = f"{date_to}{KANBAN_END_OF_DAY}"
        if date_criteria == "range":
            return FieldPredicate.between(CREATED_DATE, start, end)
        if date_criteria == "less":
            return FieldPredicate.lt(CREATED_DATE, start)
        if date_criteria == "past":
            return FieldPredicate.lt(CREATED_DATE, end)
        return None

    def _with_date(self, predicate: Predicate, date_from: str, date_to: str, date_criteria: Optional[str]) -> Predicate:
        date_leaf = self.date_criteria(date_from, date_to, date_criteria)
        return predicate if date_leaf is None else all_of(predicate, date_leaf)

    async def find_issues_by_type(self, filters: Mapping[str, Any], date_from: str, date_to: str) -> List[Dict[str, Any]]:
        predicate = self._with_date(self.composer.compose_common(filters), date_from, date_to, "range")
        return await self.executor.find(self.collection, predicate)

    async def find_cost_of_delay_by_type(self, filters: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return await self.executor.find(self.collection, self.composer.compose_common(filters))

    async def find_issues_by_date_and_type(
        self,
        filters: Mapping[str, Any],
        unique_project_map: Optional[TenantFilterMap],
        date_from: str,
        date_to: str,
        date_criteria: Optional[str],
    ) -> List[Dict[str, Any]]:
        predicate = self._with_date(self.composer.compose(filters, unique_project_map), date_from, date_to, date_criteria)
        return await self.executor.find(self.collection, predicate)

    async def find_issues_by_date_and_type_and_status(
        self,
        filters: Mapping[str, Any],
        unique_project_map: Optional[TenantFilterMap],
        date_from: str,
        date_to: str,
        date_criteria: Optional[str],
        status_criteria: "str | CriteriaMode | None",
    ) -> List[Dict[str, Any]]:
        """As `find_issues_by_date_and_type`; `jiraStatus` is excluded in "nin" mode."""
        composed = self.status_composer.compose(filters, unique_project_map, criteria_mode=status_criteria)
        predicate = self._with_date(composed, date_from, date_to, date_criteria)
        return await self.executor.find(self.collection, predicate)


class KanbanJiraIssueHistoryRepository(BaseRepository):
    collection = KANBAN_JIRA_ISSUE_HISTORY_COLLECTION

    def __init__(self, executor: Any = None):
        super().__init__(executor, PredicateComposer(TenantFilterResolver(mode_fields=[HISTORY_STATUS])))
        self.builder = StagedAggregationBuilder(self.composer)

    async def find_issues_by_status_and_date(
        self,
        filters: Mapping[str, Any],
        unique_project_map: Optional[TenantFilterMap],
        date_from: str,
        date_to: str,
        status_criteria: "str | CriteriaMode | None",
    ) -> List[Dict[str, Any]]:
        """Issues with their history entries inside the window, one document per issue."""
        pipeline = self.builder.build_status_and_date_aggregation(
            self.composer.compose_common(filters),
            unique_project_map,
            f"{date_from}{START_OF_DAY_ISO}",
            f"{date_to}{END_OF_DAY_ISO}",
            status_criteria,
            HISTORY_GROUP_FIELDS,
            history_field=HISTORY_DETAILS,
            activity_field=HISTORY_ACTIVITY_DATE,
        )
        results = await self.executor.aggregate(self.collection, pipeline)
        return [flatten_group(doc, HISTORY_DETAILS) for doc in results]

    async def find_issues_by_created_date_and_type(
        self,
        filters: Mapping[str, Any],
        unique_project_map: Optional[TenantFilterMap],
        date_from: str,
        date_to: str,
    ) -> List[Dict[str, Any]]:
        predicate = all_of(
            self.composer.compose(filters, unique_project_map),
            FieldPredicate.between(CREATED_DATE, f"{date_from}{START_OF_DAY_ISO}", f"{date_to}{END_OF_DAY_ISO}"),
        )
        return await self.executor.find(self.collection, predicate)

    async def find_issues_in_wip_by_date(
        self,
        filters: Mapping[str, Any],
        unique_project_map: Optional[TenantFilterMap],
        unique_wip_project_map: Optional[TenantFilterMap],
        date_from: str,
        date_to: str,
    ) -> List[Dict[str, Any]]:
        """Issues in progress at some point of the window or closed inside it."""
        if not unique_wip_project_map:
            logger.info("No WIP status configuration for the requested projects")
            return []
        pipeline = self.builder.build_wip_aggregation(
            self.composer.compose_common(filters),
            unique_project_map or {},
            unique_wip_project_map,
            f"{date_from}{START_OF_DAY_ISO}",
            f"{date_to}{END_OF_DAY_ISO}",
            status_field=HISTORY_STATUS,
            activity_field=HISTORY_ACTIVITY_DATE,
        )
        return await self.executor.aggregate(self.collection, pipeline)
