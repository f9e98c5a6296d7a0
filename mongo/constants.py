import os
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
import logging

# Load environment variables from .env file
load_dotenv()

# Configure logging
logger = logging.getLogger(__name__)

# Database configuration
DATABASE_NAME = os.getenv("MONGODB_DATABASE", "kpidashboard")
_DEFAULT_MONGODB_URI = "mongodb://localhost:27017/kpidashboard"

def _resolve_mongo_uri() -> str:
    """Resolve the MongoDB connection string with sane fallbacks."""
    candidates = [
        os.getenv("MONGODB_URI"),
        os.getenv("MONGODB_CONNECTION_STRING"),
    ]

    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()

    if any(candidate == "" for candidate in candidates):
        logger.warning("MONGODB connection string env var was empty; falling back to default URI.")

    return _DEFAULT_MONGODB_URI

MONGODB_CONNECTION_STRING = _resolve_mongo_uri()

# Connection pool sizing (Motor keeps the pool alive between queries)
MONGODB_MAX_POOL_SIZE: int = int(os.getenv("MONGODB_MAX_POOL_SIZE", "50"))
MONGODB_MIN_POOL_SIZE: int = int(os.getenv("MONGODB_MIN_POOL_SIZE", "10"))
MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = int(os.getenv("MONGODB_SERVER_SELECTION_TIMEOUT_MS", "5000"))
MONGODB_SOCKET_TIMEOUT_MS: int = int(os.getenv("MONGODB_SOCKET_TIMEOUT_MS", "20000"))

# --- Collections ---
SCM_COMMITS_COLLECTION = "scm_commit_details"
SCM_MERGE_REQUESTS_COLLECTION = "scm_merge_requests"
SCM_USERS_COLLECTION = "scm_users"
CAPACITY_KPI_DATA_COLLECTION = "capacity_kpi_data"
KANBAN_CAPACITY_COLLECTION = "kanban_capacity"
JIRA_ISSUE_CUSTOM_HISTORY_COLLECTION = "jira_issue_custom_history"
KANBAN_JIRA_ISSUE_COLLECTION = "kanban_jira_issue"
KANBAN_JIRA_ISSUE_HISTORY_COLLECTION = "kanban_issue_custom_history"
TEST_EXECUTION_COLLECTION = "test_execution"
KANBAN_TEST_EXECUTION_COLLECTION = "kanban_test_execution"
TEST_CASE_DETAILS_COLLECTION = "test_case_details"
KPI_MATURITY_COLLECTION = "kpi_maturity"
PRODUCTIVITY_COLLECTION = "productivity"
RECOMMENDATIONS_COLLECTION = "recommendations_action_plan"
DEPLOYMENT_COLLECTION = "deployments"
PROJECT_TOOL_CONFIGS_COLLECTION = "project_tool_configs"
CONNECTIONS_COLLECTION = "connections"
PROCESSOR_ITEMS_COLLECTION = "processor_items"
JOB_EXECUTION_TRACE_LOG_COLLECTION = "job_execution_trace_log"
PROMPT_DETAILS_COLLECTION = "prompt_details"


class _LazyMongoDBTools:
    """Lazy wrapper to avoid circular imports"""
    def __init__(self):
        self._client = None

    def __getattr__(self, name):
        if self._client is None:
            from mongo.client import direct_mongo_client
            self._client = direct_mongo_client
        return getattr(self._client, name)

# Default executor handed to repositories
mongodb_tools = _LazyMongoDBTools()


def to_object_id(value: Any) -> Any:
    """Convert a 24-hex-char id string to ObjectId; leave anything else untouched.

    Deployment project ids and trace log ids arrive as strings but are stored
    as ObjectId. Tenant filter maps keep their keys as given; pass this as a
    composer `tenant_key` for a collection that stores ObjectId project ids.
    """
    if isinstance(value, ObjectId) or not isinstance(value, str):
        return value
    try:
        return ObjectId(value.strip('"\''))
    except (InvalidId, TypeError):
        return value
