"""
Staged aggregation builder for time-bucketed statistics and snapshot roll-ups.

A Pipeline is an ordered tuple of typed stages that renders to a MongoDB
aggregation pipeline. Stage order is significant: each stage consumes the
previous stage's output shape. The builder only ever moves `Match` stages
towards the front, and only past stages that cannot affect what the match
sees (index filtering before expensive joins).

Stages:
- Match(predicate), Join(from, localKey, foreignKey, as), DateBucket(field, format)
- Group(by, accumulators), Project(fields), Sort(keys)
- Unwind(path), AddFields(fields), ReplaceRoot(field), Limit(n)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from pymongo import ASCENDING, DESCENDING

from criteria.composer import PredicateComposer, TENANT_FIELD, as_value_list, default_composer
from criteria.errors import CallerContractError
from criteria.predicates import AllOf, AnyOf, FieldPredicate, MatchAll, Predicate, all_of
from criteria.resolver import CriteriaMode
from models.recommendation import RecommendationLevel, Severity, TemporalAggregationUnit, UNKNOWN_SEVERITY_PRIORITY
from mongo.constants import SCM_USERS_COLLECTION

logger = logging.getLogger(__name__)

DAY_FORMAT = "%Y-%m-%d"


# -----------------------
# Stage definitions
# -----------------------

def _field_ref(name: str) -> str:
    return name if name.startswith("$") else f"${name}"


def _touches(fields: FrozenSet[str], name: str) -> bool:
    """True if any field path equals `name`, lives underneath it, or contains it."""
    prefix = f"{name}."
    return any(f == name or f.startswith(prefix) or name.startswith(f"{f}.") for f in fields)


@dataclass(frozen=True)
class Match:
    predicate: Predicate = field(default_factory=MatchAll)

    def to_mongo(self) -> Dict[str, Any]:
        return {"$match": self.predicate.to_mongo()}


@dataclass(frozen=True)
class Join:
    from_collection: str
    local_key: str
    foreign_key: str
    as_alias: str

    def to_mongo(self) -> Dict[str, Any]:
        return {"$lookup": {
            "from": self.from_collection,
            "localField": self.local_key,
            "foreignField": self.foreign_key,
            "as": self.as_alias,
        }}


@dataclass(frozen=True)
class DateBucket:
    """Adds `as_field` holding `source_field` formatted as a date string.

    `$toDate` accepts stored dates, epoch-millisecond longs and ISO strings, so
    the bucket works whatever representation the collection uses.
    """
    source_field: str
    format: str = DAY_FORMAT
    as_field: str = "date"

    def to_mongo(self) -> Dict[str, Any]:
        return {"$addFields": {self.as_field: {"$dateToString": {
            "format": self.format,
            "date": {"$toDate": _field_ref(self.source_field)},
        }}}}

    def computed_fields(self) -> Tuple[str, ...]:
        return (self.as_field,)


@dataclass(frozen=True)
class Accumulator:
    op: str
    expression: Any

    @classmethod
    def sum(cls, expression: Any = 1) -> "Accumulator":
        return cls("sum", expression)

    @classmethod
    def first(cls, expression: Any = "$$ROOT") -> "Accumulator":
        return cls("first", expression)

    @classmethod
    def push(cls, expression: Any = "$$ROOT") -> "Accumulator":
        return cls("push", expression)

    def to_mongo(self) -> Dict[str, Any]:
        return {f"${self.op}": self.expression}


@dataclass(frozen=True)
class Group:
    """Group by one field, several fields, or an explicit `_id` expression map.

    A group without accumulators is a caller error.
    """
    by: Union[str, Sequence[str], Mapping[str, Any]]
    accumulators: Mapping[str, Accumulator]

    def __post_init__(self):
        if not self.accumulators:
            raise CallerContractError("Group stage requires at least one accumulator")

    def _id(self) -> Any:
        if isinstance(self.by, str):
            return _field_ref(self.by)
        if isinstance(self.by, Mapping):
            return dict(self.by)
        return {name: _field_ref(name) for name in self.by}

    def to_mongo(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"_id": self._id()}
        for name, acc in self.accumulators.items():
            body[name] = acc.to_mongo()
        return {"$group": body}


@dataclass(frozen=True)
class Project:
    fields: Mapping[str, Any]

    def to_mongo(self) -> Dict[str, Any]:
        return {"$project": dict(self.fields)}


@dataclass(frozen=True)
class Sort:
    keys: Tuple[Tuple[str, int], ...]

    @classmethod
    def by(cls, field_name: str, direction: int = ASCENDING) -> "Sort":
        return cls(((field_name, direction),))

    def to_mongo(self) -> Dict[str, Any]:
        return {"$sort": {name: direction for name, direction in self.keys}}


@dataclass(frozen=True)
class Unwind:
    path: str
    preserve_null_and_empty: bool = False

    def to_mongo(self) -> Dict[str, Any]:
        if self.preserve_null_and_empty:
            return {"$unwind": {"path": _field_ref(self.path), "preserveNullAndEmptyArrays": True}}
        return {"$unwind": _field_ref(self.path)}


@dataclass(frozen=True)
class AddFields:
    fields: Mapping[str, Any]

    def to_mongo(self) -> Dict[str, Any]:
        return {"$addFields": dict(self.fields)}

    def computed_fields(self) -> Tuple[str, ...]:
        return tuple(self.fields)


@dataclass(frozen=True)
class ReplaceRoot:
    new_root: str

    def to_mongo(self) -> Dict[str, Any]:
        return {"$replaceRoot": {"newRoot": _field_ref(self.new_root)}}


@dataclass(frozen=True)
class Limit:
    count: int

    def __post_init__(self):
        if self.count <= 0:
            raise CallerContractError(f"Limit must be greater than 0, got: {self.count}")

    def to_mongo(self) -> Dict[str, Any]:
        return {"$limit": self.count}


Stage = Union[Match, Join, DateBucket, Group, Project, Sort, Unwind, AddFields, ReplaceRoot, Limit]
_STAGE_TYPES = (Match, Join, DateBucket, Group, Project, Sort, Unwind, AddFields, ReplaceRoot, Limit)


@dataclass(frozen=True)
class Pipeline:
    stages: Tuple[Stage, ...] = ()

    def __iter__(self) -> Iterator[Stage]:
        return iter(self.stages)

    def __len__(self) -> int:
        return len(self.stages)

    def __getitem__(self, index: int) -> Stage:
        return self.stages[index]

    def to_mongo(self) -> List[Dict[str, Any]]:
        return [stage.to_mongo() for stage in self.stages]


# -----------------------
# Match placement
# -----------------------

def _match_can_precede(match: Match, stage: Stage) -> bool:
    """Whether `match` gives the same result if evaluated before `stage`."""
    referenced = match.predicate.referenced_fields()
    if isinstance(stage, Join):
        return not _touches(referenced, stage.as_alias)
    if isinstance(stage, Sort):
        return True
    if isinstance(stage, (DateBucket, AddFields)):
        return not any(_touches(referenced, name) for name in stage.computed_fields())
    # Match keeps relative order; Group/Project/Unwind/ReplaceRoot/Limit reshape or cut the stream
    return False


# -----------------------
# Builder
# -----------------------

class StagedAggregationBuilder:
    """Assembles ordered pipelines and the canned KPI pipelines."""

    def __init__(self, composer: PredicateComposer = default_composer):
        self.composer = composer

    def build(self, stages: Iterable[Stage]) -> Pipeline:
        """Validate stages and hoist independent matches ahead of joins/sorts."""
        placed: List[Stage] = []
        for stage in stages:
            if not isinstance(stage, _STAGE_TYPES):
                raise CallerContractError(f"Unsupported pipeline stage: {type(stage).__name__}")
            if isinstance(stage, Match):
                index = len(placed)
                while index > 0 and _match_can_precede(stage, placed[index - 1]):
                    index -= 1
                placed.insert(index, stage)
            else:
                placed.append(stage)
        logger.debug(f"Built pipeline: {[type(s).__name__ for s in placed]}")
        return Pipeline(tuple(placed))

    # -----------------------
    # SCM statistics
    # -----------------------

    def build_daily_commit_stats(
        self,
        tenant_predicate: Predicate,
        date_range: Tuple[Any, Any],
        timestamp_field: str = "commitTimestamp",
        tenant_field: str = "processorItemId",
    ) -> Pipeline:
        """Commits per day per repository, ascending by day.

        Output documents: {date: "YYYY-MM-DD", <tenant_field>: id, count: n}.
        """
        start, end = date_range
        return self.build([
            Match(all_of(tenant_predicate, FieldPredicate.between(timestamp_field, start, end))),
            DateBucket(timestamp_field, DAY_FORMAT, as_field="date"),
            Group(
                by={"date": "$date", tenant_field: _field_ref(tenant_field)},
                accumulators={"count": Accumulator.sum(1)},
            ),
            Project({"_id": 0, "date": "$_id.date", tenant_field: f"$_id.{tenant_field}", "count": 1}),
            Sort.by("date", ASCENDING),
        ])

    def build_author_join_pipeline(
        self,
        tenant_predicate: Predicate,
        users_collection: str = SCM_USERS_COLLECTION,
        local_key: str = "commitAuthorId",
        foreign_key: str = "_id",
        as_alias: str = "authorDetails",
    ) -> Pipeline:
        return self.build([
            Join(users_collection, local_key, foreign_key, as_alias),
            Match(tenant_predicate),
        ])

    # -----------------------
    # Jira history
    # -----------------------

    def wip_tenant_predicate(
        self,
        closed_status_map: Mapping[str, Mapping[str, Any]],
        wip_status_map: Mapping[str, Mapping[str, Any]],
        window_start: Any,
        window_end: Any,
        status_field: str = "historyDetails.status",
        activity_field: str = "historyDetails.activityDate",
    ) -> Predicate:
        """Per project: (in a WIP status, not closed, active by window end)
        OR (moved to a closed status after window start).

        Both branches are ORed, not XORed: an issue satisfying both is still
        touched within the window.
        """
        if not wip_status_map:
            raise CallerContractError("WIP aggregation requires at least one project status map")
        branches: List[Predicate] = []
        for tenant, wip_filters in wip_status_map.items():
            closed_filters = closed_status_map.get(tenant) or {}
            wip_statuses = as_value_list(status_field, (wip_filters or {}).get(status_field)) or ()
            closed_statuses = as_value_list(status_field, closed_filters.get(status_field)) or ()

            tenant_leaves: List[Predicate] = [
                FieldPredicate.equals(self.composer.tenant_field, self.composer.tenant_key(tenant))
            ]
            for key, raw in closed_filters.items():
                values = as_value_list(key, raw)
                if key != status_field and values:
                    tenant_leaves.append(FieldPredicate.is_in(key, values))

            in_progress: List[Predicate] = []
            if wip_statuses:
                in_progress.append(FieldPredicate.is_in(status_field, wip_statuses))
            if closed_statuses:
                in_progress.append(FieldPredicate.not_in(status_field, closed_statuses))
            in_progress.append(FieldPredicate.lte(activity_field, window_end))

            activity_branches: List[Predicate] = [AllOf(tuple(in_progress))]
            if closed_statuses:
                activity_branches.append(AllOf((
                    FieldPredicate.is_in(status_field, closed_statuses),
                    FieldPredicate.gt(activity_field, window_start),
                )))

            tenant_leaves.append(AnyOf(tuple(activity_branches)))
            branches.append(AllOf(tuple(tenant_leaves)))
        return AnyOf(tuple(branches))

    def build_wip_aggregation(
        self,
        common_predicate: Predicate,
        closed_status_map: Mapping[str, Mapping[str, Any]],
        wip_status_map: Mapping[str, Mapping[str, Any]],
        window_start: Any,
        window_end: Any,
        status_field: str = "historyDetails.status",
        activity_field: str = "historyDetails.activityDate",
    ) -> Pipeline:
        return self.build([
            Match(common_predicate),
            Match(self.wip_tenant_predicate(
                closed_status_map, wip_status_map, window_start, window_end, status_field, activity_field,
            )),
        ])

    def build_status_and_date_aggregation(
        self,
        common_predicate: Predicate,
        unique_project_map: Optional[Mapping[str, Mapping[str, Any]]],
        window_start: Any,
        window_end: Any,
        criteria_mode: "str | CriteriaMode | None",
        group_fields: Sequence[str],
        history_field: str = "historyDetails",
        activity_field: str = "historyDetails.activityDate",
    ) -> Pipeline:
        """Unwind issue history, keep entries matching each project's status
        filter inside the window, then regroup history per issue."""
        stages: List[Stage] = [Match(common_predicate), Unwind(history_field)]
        if unique_project_map:
            window = FieldPredicate.between(activity_field, window_start, window_end)
            groups = [
                self.composer.tenant_group(tenant, filters, criteria_mode, (window,))
                for tenant, filters in unique_project_map.items()
            ]
            stages.append(Match(AnyOf(tuple(groups))))
        stages.append(Group(by=tuple(group_fields), accumulators={history_field: Accumulator.push(_field_ref(history_field))}))
        stages.append(Project({history_field: 1}))
        return self.build(stages)

    def build_story_history_aggregation(
        self,
        common_predicate: Predicate,
        unique_project_map: Mapping[str, Mapping[str, Any]],
        sort_direction: int = ASCENDING,
        status_map_key: str = "statusUpdationLog.story.changedTo",
        type_field: str = "storyType",
        log_field: str = "statusUpdationLog",
        group_fields: Sequence[str] = ("storyID", TENANT_FIELD, "url"),
    ) -> Pipeline:
        """Per-project story history restricted to each project's target statuses.

        Issues are first narrowed to each project's story types, the status log
        is unwound and only entries moving into that project's statuses are
        kept, ordered by `updatedOn`, then regrouped per issue.
        """
        if not unique_project_map:
            raise CallerContractError("Story history aggregation requires at least one project")
        changed_to = f"{log_field}.changedTo"
        type_groups = [
            self.composer.tenant_group(tenant, {type_field: filters.get(type_field)})
            for tenant, filters in unique_project_map.items()
        ]
        status_groups = [
            self.composer.tenant_group(tenant, {changed_to: filters.get(status_map_key)})
            for tenant, filters in unique_project_map.items()
        ]
        return self.build([
            Match(all_of(common_predicate, AnyOf(tuple(type_groups)))),
            Unwind(log_field),
            Match(AnyOf(tuple(status_groups))),
            Sort.by(f"{log_field}.updatedOn", sort_direction),
            Group(by=tuple(group_fields), accumulators={log_field: Accumulator.push(_field_ref(log_field))}),
            Project({log_field: 1}),
        ])

    # -----------------------
    # Snapshot collections
    # -----------------------

    def build_latest_per_key(
        self,
        key_field: str,
        keys: Iterable[Any],
        date_field: str = "calculationDate",
        as_field: str = "latestCalculation",
    ) -> Pipeline:
        """Most recent document per key value."""
        return self.build([
            Match(FieldPredicate.is_in(key_field, keys)),
            Sort.by(date_field, DESCENDING),
            Group(by=key_field, accumulators={as_field: Accumulator.first("$$ROOT")}),
            ReplaceRoot(as_field),
        ])

    def build_temporal_grouping(
        self,
        key_field: str,
        keys: Iterable[Any],
        unit: TemporalAggregationUnit,
        limit: int,
        entry_fields: Sequence[str],
        date_field: str = "calculationDate",
        entries_field: str = "entries",
    ) -> Pipeline:
        """Documents grouped per truncated period, newest `limit` periods first."""
        if limit <= 0:
            raise CallerContractError(f"Limit must be greater than 0, got: {limit}")
        trunc = {"$dateTrunc": {"date": _field_ref(date_field), "unit": unit.unit, "timezone": "UTC"}}
        entry = {name: _field_ref(name) for name in entry_fields}
        return self.build([
            Match(FieldPredicate.is_in(key_field, keys)),
            Group(by={unit.unit: trunc}, accumulators={entries_field: Accumulator.push(entry)}),
            Sort.by(f"_id.{unit.unit}", DESCENDING),
            Limit(limit),
        ])

    def build_latest_recommendations(
        self,
        project_ids: Sequence[Any],
        limit: int,
        level: Optional[RecommendationLevel] = None,
        tenant_field: str = TENANT_FIELD,
        severity_field: str = "recommendations.severity",
        created_field: str = "createdAt",
    ) -> Pipeline:
        """Top `limit` recommendations per project, most severe then newest first."""
        priority_sort = Sort((("severityPriority", ASCENDING), (created_field, DESCENDING)))
        stages: List[Stage] = [Match(FieldPredicate.is_in(tenant_field, project_ids))]
        if level is not None:
            stages.append(Match(FieldPredicate.equals("level", level.value)))
        stages += [
            AddFields({"severityPriority": severity_priority_switch(severity_field)}),
            priority_sort,
            Group(by=tenant_field, accumulators={"recommendations": Accumulator.push("$$ROOT")}),
            Project({"recommendations": {"$slice": ["$recommendations", limit]}}),
            Unwind("recommendations"),
            ReplaceRoot("recommendations"),
            priority_sort,
        ]
        return self.build(stages)


def severity_priority_switch(severity_field: str) -> Dict[str, Any]:
    """`$switch` mapping severity names to sort priority (unknown sorts last)."""
    return {"$switch": {
        "branches": [
            {"case": {"$eq": [_field_ref(severity_field), severity.value]}, "then": severity.priority}
            for severity in Severity
        ],
        "default": UNKNOWN_SEVERITY_PRIORITY,
    }}


aggregation_builder = StagedAggregationBuilder()
