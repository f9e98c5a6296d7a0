"""
Repositories - one module per collection family

Each repository composes predicates or pipelines and hands them to an async
query executor (DirectMongoClient by default).
"""

from repositories.capacity import CapacityKpiDataRepository, KanbanCapacityRepository
from repositories.deployment import DeploymentRepository
from repositories.jira import (
    JiraIssueCustomHistoryRepository,
    KanbanJiraIssueHistoryRepository,
    KanbanJiraIssueRepository,
)
from repositories.kpi_snapshots import KpiMaturityRepository, ProductivityRepository
from repositories.recommendation import RecommendationRepository
from repositories.scm import ScmCommitRepository, ScmMergeRequestRepository, ScmUserRepository
from repositories.test_execution import (
    KanbanTestExecutionRepository,
    TestCaseDetailsRepository,
    TestExecutionRepository,
)
from repositories.tool_config import ProjectToolConfigRepository

__all__ = [
    "CapacityKpiDataRepository",
    "KanbanCapacityRepository",
    "DeploymentRepository",
    "JiraIssueCustomHistoryRepository",
    "KanbanJiraIssueHistoryRepository",
    "KanbanJiraIssueRepository",
    "KpiMaturityRepository",
    "ProductivityRepository",
    "RecommendationRepository",
    "ScmCommitRepository",
    "ScmMergeRequestRepository",
    "ScmUserRepository",
    "KanbanTestExecutionRepository",
    "TestCaseDetailsRepository",
    "TestExecutionRepository",
    "ProjectToolConfigRepository",
]
