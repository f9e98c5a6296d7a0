"""Job execution trace log service - records processor job runs"""

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from pymongo import DESCENDING

from criteria.errors import CallerContractError
from criteria.predicates import AllOf, FieldPredicate
from models.tracelog import JobExecutionTraceLog
from mongo.constants import JOB_EXECUTION_TRACE_LOG_COLLECTION, mongodb_tools, to_object_id

logger = logging.getLogger(__name__)

PROCESSOR_NAME = "processorName"
JOB_NAME = "jobName"
EXECUTION_STARTED_AT = "executionStartedAt"


class JobExecutionTraceLogService:
    """Create, update and query job execution trace logs."""

    collection = JOB_EXECUTION_TRACE_LOG_COLLECTION

    def __init__(self, executor: Any = None):
        self.executor = executor if executor is not None else mongodb_tools

    @staticmethod
    def _job_predicate(processor_name: str, job_name: str) -> AllOf:
        return AllOf((
            FieldPredicate.equals(PROCESSOR_NAME, processor_name),
            FieldPredicate.equals(JOB_NAME, job_name),
        ))

    async def create_job_execution(self, processor_name: str, job_name: str) -> JobExecutionTraceLog:
        """Persist a new ongoing execution started now."""
        trace_log = JobExecutionTraceLog(
            processor_name=processor_name,
            job_name=job_name,
            execution_started_at=datetime.now(timezone.utc),
            execution_ongoing=True,
            execution_success=True,
        )
        trace_log.id = await self.executor.insert_one(self.collection, trace_log.to_document())
        logger.info(f"Created new job execution trace log for job '{job_name}' with id '{trace_log.id}'")
        return trace_log

    async def update_job_execution(self, trace_log: JobExecutionTraceLog) -> JobExecutionTraceLog:
        """Save the log, inserting it when it has never been stored."""
        if trace_log.id is None:
            trace_log.id = await self.executor.insert_one(self.collection, trace_log.to_document())
        else:
            await self.executor.replace_one(
                self.collection,
                FieldPredicate.equals("_id", trace_log.id),
                trace_log.to_document(),
                upsert=True,
            )
        logger.info(
            f"Updated job execution trace log for job '{trace_log.job_name}' with id '{trace_log.id}', "
            f"status: {trace_log.execution_success}"
        )
        return trace_log

    async def find_by_id(self, log_id: Any) -> Optional[JobExecutionTraceLog]:
        doc = await self.executor.find_one(self.collection, FieldPredicate.equals("_id", to_object_id(log_id)))
        return JobExecutionTraceLog.model_validate(doc) if doc else None

    async def find_last_executions(
        self, processor_name: str, job_name: str, number_of_executions: int
    ) -> List[JobExecutionTraceLog]:
        """Most recent executions first."""
        if number_of_executions <= 0:
            raise CallerContractError(f"Number of executions must be greater than 0, got: {number_of_executions}")
        docs = await self.executor.find(
            self.collection,
            self._job_predicate(processor_name, job_name),
            sort=[(EXECUTION_STARTED_AT, DESCENDING)],
            limit=number_of_executions,
        )
        return [JobExecutionTraceLog.model_validate(doc) for doc in docs]

    async def find_by_job(self, processor_name: str, job_name: str) -> List[JobExecutionTraceLog]:
        docs = await self.executor.find(self.collection, self._job_predicate(processor_name, job_name))
        return [JobExecutionTraceLog.model_validate(doc) for doc in docs]

    async def is_job_currently_running(self, processor_name: str, job_name: str) -> bool:
        latest = await self.find_last_executions(processor_name, job_name, 1)
        return bool(latest) and latest[0].execution_ongoing
