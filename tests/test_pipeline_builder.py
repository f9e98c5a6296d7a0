#!/usr/bin/env python3
"""
Staged aggregation builder tests

Stage rendering, match placement and the canned KPI pipelines.
"""

import sys
import os
from collections import OrderedDict
from datetime import datetime, timezone

import pytest
from pymongo import ASCENDING, DESCENDING

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from criteria import AllOf, CallerContractError, FieldPredicate, MatchAll
from models import RecommendationLevel, TemporalAggregationUnit
from mongo.pipeline import (
    Accumulator,
    AddFields,
    DateBucket,
    Group,
    Join,
    Limit,
    Match,
    Pipeline,
    Project,
    Sort,
    Unwind,
    aggregation_builder,
    severity_priority_switch,
)


def epoch_ms(*args):
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


def run_daily_stats(pipeline, documents):
    """Evaluate the daily-stats stage kinds in memory."""
    docs = [dict(d) for d in documents]
    for stage in pipeline:
        if isinstance(stage, Match):
            docs = [d for d in docs if stage.predicate.matches(d)]
        elif isinstance(stage, DateBucket):
            for d in docs:
                ts = datetime.fromtimestamp(d[stage.source_field] / 1000, tz=timezone.utc)
                d[stage.as_field] = ts.strftime(stage.format)
        elif isinstance(stage, Group):
            groups = OrderedDict()
            for d in docs:
                key = tuple((name, d[expr.lstrip("$")]) for name, expr in stage.by.items())
                groups[key] = groups.get(key, 0) + 1
            docs = [{"_id": dict(key), "count": count} for key, count in groups.items()]
        elif isinstance(stage, Project):
            docs = [
                {name: d["_id"][source.split(".", 1)[1]] if isinstance(source, str) else d[name]
                 for name, source in stage.fields.items() if source != 0}
                for d in docs
            ]
        elif isinstance(stage, Sort):
            for name, direction in reversed(stage.keys):
                docs.sort(key=lambda d: d[name], reverse=direction < 0)
    return docs


class TestStages:
    """Individual stage rendering"""

    def test_join_renders_lookup(self):
        stage = Join("scm_users", "commitAuthorId", "_id", "authorDetails")
        assert stage.to_mongo() == {"$lookup": {
            "from": "scm_users", "localField": "commitAuthorId", "foreignField": "_id", "as": "authorDetails",
        }}

    def test_date_bucket_renders_date_to_string(self):
        assert DateBucket("commitTimestamp").to_mongo() == {"$addFields": {"date": {"$dateToString": {
            "format": "%Y-%m-%d", "date": {"$toDate": "$commitTimestamp"},
        }}}}

    def test_group_without_accumulators_is_a_caller_error(self):
        with pytest.raises(CallerContractError):
            Group(by="storyID", accumulators={})

    def test_group_by_field_list(self):
        stage = Group(by=("storyID", "url"), accumulators={"h": Accumulator.push("$h")})
        assert stage.to_mongo() == {"$group": {"_id": {"storyID": "$storyID", "url": "$url"}, "h": {"$push": "$h"}}}

    def test_unwind_and_limit(self):
        assert Unwind("historyDetails").to_mongo() == {"$unwind": "$historyDetails"}
        assert Limit(3).to_mongo() == {"$limit": 3}
        with pytest.raises(CallerContractError):
            Limit(0)

    def test_empty_match_is_legal(self):
        assert aggregation_builder.build([Match(MatchAll())]).to_mongo() == [{"$match": {}}]

    def test_unknown_stage_rejected(self):
        with pytest.raises(CallerContractError):
            aggregation_builder.build([{"$match": {}}])


class TestMatchPlacement:
    """Matches move ahead of joins/sorts/computed fields they do not depend on"""

    def test_match_moves_before_join(self):
        join = Join("scm_users", "commitAuthorId", "_id", "authorDetails")
        match = Match(FieldPredicate.equals("processorItemId", "r1"))
        pipeline = aggregation_builder.build([join, match])
        assert list(pipeline) == [match, join]

    def test_match_on_join_alias_stays_after_join(self):
        join = Join("scm_users", "commitAuthorId", "_id", "authorDetails")
        match = Match(FieldPredicate.equals("authorDetails.email", "a@b.c"))
        assert list(aggregation_builder.build([join, match])) == [join, match]

    def test_match_never_crosses_group(self):
        group = Group(by="storyID", accumulators={"n": Accumulator.sum()})
        match = Match(FieldPredicate.equals("storyID", "S1"))
        assert list(aggregation_builder.build([group, match])) == [group, match]

    def test_match_on_computed_field_stays_after_it(self):
        add = AddFields({"severityPriority": 1})
        match = Match(FieldPredicate.lte("severityPriority", 2))
        assert list(aggregation_builder.build([add, match])) == [add, match]

    def test_match_on_parent_of_computed_field_stays_after_it(self):
        add = AddFields({"meta.flag": True})
        match = Match(FieldPredicate.equals("meta", {"flag": True}))
        assert list(aggregation_builder.build([add, match])) == [add, match]

    def test_match_on_parent_of_join_alias_stays_after_join(self):
        join = Join("scm_users", "commitAuthorId", "_id", "details.author")
        match = Match(FieldPredicate.equals("details", {"author": []}))
        assert list(aggregation_builder.build([join, match])) == [join, match]

    def test_match_crosses_sort_and_unrelated_add_fields(self):
        sort = Sort.by("createdAt", -1)
        add = AddFields({"x": 1})
        match = Match(FieldPredicate.equals("level", "KPI_LEVEL"))
        assert list(aggregation_builder.build([sort, add, match])) == [match, sort, add]

    def test_matches_keep_relative_order(self):
        first = Match(FieldPredicate.equals("a", 1))
        second = Match(FieldPredicate.equals("b", 2))
        assert list(aggregation_builder.build([first, second])) == [first, second]


class TestDailyCommitStats:
    """Commits per day per repository"""

    def test_stage_sequence(self):
        pipeline = aggregation_builder.build_daily_commit_stats(
            FieldPredicate.equals("processorItemId", "p1"), (0, 10)
        )
        assert [type(s) for s in pipeline] == [Match, DateBucket, Group, Project, Sort]
        rendered = pipeline.to_mongo()
        assert rendered[0] == {"$match": {"processorItemId": "p1", "commitTimestamp": {"$gte": 0, "$lte": 10}}}
        assert rendered[2]["$group"]["count"] == {"$sum": 1}
        assert rendered[3] == {"$project": {
            "_id": 0, "date": "$_id.date", "processorItemId": "$_id.processorItemId", "count": 1,
        }}
        assert rendered[4] == {"$sort": {"date": 1}}

    def test_counts_per_day_ascending(self):
        commits = [
            {"processorItemId": "p1", "commitTimestamp": epoch_ms(2024, 1, 2, 9)},
            {"processorItemId": "p1", "commitTimestamp": epoch_ms(2024, 1, 1, 10)},
            {"processorItemId": "p1", "commitTimestamp": epoch_ms(2024, 1, 1, 18)},
            {"processorItemId": "p2", "commitTimestamp": epoch_ms(2024, 1, 1, 11)},
            {"processorItemId": "p1", "commitTimestamp": epoch_ms(2023, 12, 1)},
        ]
        pipeline = aggregation_builder.build_daily_commit_stats(
            FieldPredicate.equals("processorItemId", "p1"),
            (epoch_ms(2024, 1, 1), epoch_ms(2024, 1, 31)),
        )
        assert run_daily_stats(pipeline, commits) == [
            {"date": "2024-01-01", "processorItemId": "p1", "count": 2},
            {"date": "2024-01-02", "processorItemId": "p1", "count": 1},
        ]


class TestAuthorJoin:

    def test_match_runs_before_join(self):
        pipeline = aggregation_builder.build_author_join_pipeline(FieldPredicate.equals("processorItemId", "r1"))
        assert pipeline.to_mongo() == [
            {"$match": {"processorItemId": "r1"}},
            {"$lookup": {
                "from": "scm_users", "localField": "commitAuthorId", "foreignField": "_id", "as": "authorDetails",
            }},
        ]


class TestWipAggregation:
    """In-progress OR closed-inside-window, per project"""

    START = "2024-01-01T00:00:00.000Z"
    END = "2024-01-31T23:59:59.000Z"
    CLOSED = {"p1": {"historyDetails.status": ["Done"], "storyType": ["Story"]}}
    WIP = {"p1": {"historyDetails.status": ["In Progress"]}}

    def predicate(self, closed=None):
        return aggregation_builder.wip_tenant_predicate(
            self.CLOSED if closed is None else closed, self.WIP, self.START, self.END
        )

    def issue(self, status, activity, project="p1", story_type="Story"):
        return {
            "basicProjectConfigId": project,
            "storyType": story_type,
            "historyDetails": [{"status": status, "activityDate": activity}],
        }

    def test_in_progress_before_window_end_included(self):
        assert self.predicate().matches(self.issue("In Progress", "2023-12-15T10:00:00.000Z"))

    def test_closed_inside_window_included(self):
        assert self.predicate().matches(self.issue("Done", "2024-01-10T10:00:00.000Z"))

    def test_closed_before_window_start_excluded(self):
        assert not self.predicate().matches(self.issue("Done", "2023-12-20T10:00:00.000Z"))

    def test_other_project_or_type_excluded(self):
        assert not self.predicate().matches(self.issue("In Progress", "2024-01-05T00:00:00.000Z", project="p2"))
        assert not self.predicate().matches(self.issue("In Progress", "2024-01-05T00:00:00.000Z", story_type="Bug"))

    def test_in_progress_after_window_end_excluded(self):
        assert not self.predicate().matches(self.issue("In Progress", "2024-02-02T00:00:00.000Z"))

    def test_rendered_branches(self):
        rendered = self.predicate().to_mongo()
        assert rendered["basicProjectConfigId"] == "p1"
        assert rendered["storyType"] == {"$in": ["Story"]}
        in_progress, closed = rendered["$or"]
        assert in_progress == {"$and": [
            {"historyDetails.status": {"$in": ["In Progress"]}},
            {"historyDetails.status": {"$nin": ["Done"]}},
            {"historyDetails.activityDate": {"$lte": self.END}},
        ]}
        assert closed == {"historyDetails.status": {"$in": ["Done"]}, "historyDetails.activityDate": {"$gt": self.START}}

    def test_project_without_closed_statuses_keeps_in_progress_branch(self):
        predicate = self.predicate(closed={})
        assert predicate.matches(self.issue("In Progress", "2024-01-05T00:00:00.000Z"))
        assert not predicate.matches(self.issue("Done", "2024-01-10T10:00:00.000Z"))

    def test_pipeline_is_common_then_projects(self):
        pipeline = aggregation_builder.build_wip_aggregation(
            FieldPredicate.is_in("basicProjectConfigId", ["p1"]), self.CLOSED, self.WIP, self.START, self.END
        )
        assert [type(s) for s in pipeline] == [Match, Match]

    def test_empty_wip_map_is_a_caller_error(self):
        with pytest.raises(CallerContractError):
            aggregation_builder.wip_tenant_predicate(self.CLOSED, {}, self.START, self.END)


class TestStatusAndDateAggregation:

    def test_stage_sequence(self):
        pipeline = aggregation_builder.build_status_and_date_aggregation(
            FieldPredicate.is_in("sprintID", ["s1"]),
            {"p1": {"historyDetails.status": ["Done"]}},
            "2024-01-01T00:00:00.000Z",
            "2024-01-31T23:59:59.000Z",
            "in",
            ("storyID", "basicProjectConfigId"),
        )
        rendered = pipeline.to_mongo()
        assert [next(iter(stage)) for stage in rendered] == ["$match", "$unwind", "$match", "$group", "$project"]
        assert rendered[2]["$match"] == {
            "basicProjectConfigId": "p1",
            "historyDetails.status": {"$in": ["Done"]},
            "historyDetails.activityDate": {"$gte": "2024-01-01T00:00:00.000Z", "$lte": "2024-01-31T23:59:59.000Z"},
        }
        assert rendered[3]["$group"]["historyDetails"] == {"$push": "$historyDetails"}

    def test_without_projects_no_second_match(self):
        pipeline = aggregation_builder.build_status_and_date_aggregation(
            MatchAll(), {}, "a", "b", "in", ("storyID",)
        )
        assert [type(s) for s in pipeline] == [Match, Unwind, Group, Project]


class TestStoryHistoryAggregation:

    PROJECTS = {
        "p1": {"storyType": ["Story"], "statusUpdationLog.story.changedTo": ["Done"]},
        "p2": {"storyType": ["Defect"], "statusUpdationLog.story.changedTo": ["Closed"]},
    }

    def build(self, direction=ASCENDING):
        common = AllOf((FieldPredicate.is_in("sprintID", ["s1"]),))
        return aggregation_builder.build_story_history_aggregation(common, self.PROJECTS, direction)

    def test_stage_sequence(self):
        stages = self.build().to_mongo()
        assert [list(s)[0] for s in stages] == ["$match", "$unwind", "$match", "$sort", "$group", "$project"]
        assert stages[1] == {"$unwind": "$statusUpdationLog"}
        assert stages[4]["$group"]["_id"] == {
            "storyID": "$storyID", "basicProjectConfigId": "$basicProjectConfigId", "url": "$url",
        }
        assert stages[4]["$group"]["statusUpdationLog"] == {"$push": "$statusUpdationLog"}
        assert stages[5] == {"$project": {"statusUpdationLog": 1}}

    def test_first_match_is_common_and_project_story_types(self):
        first = self.build()[0].predicate
        assert first.matches({"sprintID": "s1", "basicProjectConfigId": "p1", "storyType": "Story"})
        assert not first.matches({"sprintID": "s1", "basicProjectConfigId": "p1", "storyType": "Defect"})
        assert not first.matches({"sprintID": "s2", "basicProjectConfigId": "p2", "storyType": "Defect"})

    def test_status_match_is_per_project(self):
        status = self.build()[2].predicate
        assert status.matches({"basicProjectConfigId": "p2", "statusUpdationLog": {"changedTo": "Closed"}})
        assert not status.matches({"basicProjectConfigId": "p1", "statusUpdationLog": {"changedTo": "Closed"}})

    def test_sort_follows_requested_direction(self):
        assert self.build(DESCENDING).to_mongo()[3] == {"$sort": {"statusUpdationLog.updatedOn": -1}}
        assert self.build().to_mongo()[3] == {"$sort": {"statusUpdationLog.updatedOn": 1}}

    def test_requires_projects(self):
        with pytest.raises(CallerContractError):
            aggregation_builder.build_story_history_aggregation(MatchAll(), {})


class TestSnapshotPipelines:

    def test_latest_per_key(self):
        pipeline = aggregation_builder.build_latest_per_key("hierarchyEntityNodeId", ["n1"])
        assert pipeline.to_mongo() == [
            {"$match": {"hierarchyEntityNodeId": {"$in": ["n1"]}}},
            {"$sort": {"calculationDate": -1}},
            {"$group": {"_id": "$hierarchyEntityNodeId", "latestCalculation": {"$first": "$$ROOT"}}},
            {"$replaceRoot": {"newRoot": "$latestCalculation"}},
        ]

    def test_temporal_grouping(self):
        pipeline = aggregation_builder.build_temporal_grouping(
            "hierarchyEntityNodeId", ["n1"], TemporalAggregationUnit.WEEK, 5, ("calculationDate", "_id"),
        )
        rendered = pipeline.to_mongo()
        assert rendered[1]["$group"]["_id"] == {
            "week": {"$dateTrunc": {"date": "$calculationDate", "unit": "week", "timezone": "UTC"}}
        }
        assert rendered[1]["$group"]["entries"] == {"$push": {"calculationDate": "$calculationDate", "_id": "$_id"}}
        assert rendered[2:] == [{"$sort": {"_id.week": -1}}, {"$limit": 5}]

    def test_temporal_grouping_rejects_non_positive_limit(self):
        with pytest.raises(CallerContractError):
            aggregation_builder.build_temporal_grouping("k", ["n1"], TemporalAggregationUnit.MONTH, 0, ())


class TestLatestRecommendations:

    def test_stage_sequence_with_level(self):
        pipeline = aggregation_builder.build_latest_recommendations(["p1", "p2"], 2, RecommendationLevel.KPI_LEVEL)
        rendered = pipeline.to_mongo()
        assert rendered[0] == {"$match": {"basicProjectConfigId": {"$in": ["p1", "p2"]}}}
        assert rendered[1] == {"$match": {"level": "KPI_LEVEL"}}
        assert rendered[2] == {"$addFields": {"severityPriority": severity_priority_switch("recommendations.severity")}}
        assert rendered[3] == {"$sort": {"severityPriority": 1, "createdAt": -1}}
        assert rendered[5] == {"$project": {"recommendations": {"$slice": ["$recommendations", 2]}}}
        assert rendered[-1] == rendered[3]
        assert len(rendered) == 9

    def test_without_level_skips_level_match(self):
        pipeline = aggregation_builder.build_latest_recommendations(["p1"], 1)
        assert len(pipeline) == 8

    def test_severity_switch_order(self):
        switch = severity_priority_switch("recommendations.severity")["$switch"]
        assert [b["then"] for b in switch["branches"]] == [1, 2, 3, 4]
        assert switch["branches"][0]["case"] == {"$eq": ["$recommendations.severity", "CRITICAL"]}
        assert switch["default"] == 999


class TestPipeline:

    def test_pipeline_is_sequence_like(self):
        pipeline = Pipeline((Match(), Limit(1)))
        assert len(pipeline) == 2
        assert isinstance(pipeline[1], Limit)
