from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    occurred_at: Optional[datetime] = Field(default=None, alias="occurredAt")


class JobExecutionTraceLog(BaseModel):
    """One run of a processor job (collection `job_execution_trace_log`).

    A processor (e.g. "ai-data-processor") owns several jobs
    (e.g. "calculate-kpi-maturity").
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow", arbitrary_types_allowed=True)

    id: Optional[Any] = Field(default=None, alias="_id")
    processor_name: Optional[str] = Field(default=None, alias="processorName")
    job_name: Optional[str] = Field(default=None, alias="jobName")
    execution_started_at: Optional[datetime] = Field(default=None, alias="executionStartedAt")
    execution_ended_at: Optional[datetime] = Field(default=None, alias="executionEndedAt")
    execution_ongoing: bool = Field(default=False, alias="executionOngoing")
    execution_success: bool = Field(default=False, alias="executionSuccess")
    error_detail_list: List[ErrorDetail] = Field(default_factory=list, alias="errorDetailList")

    def to_document(self) -> Dict[str, Any]:
        """Serialize with stored (camelCase) field names, omitting an unset id."""
        doc = self.model_dump(by_alias=True, exclude_none=True)
        if self.id is None:
            doc.pop("_id", None)
        return doc
