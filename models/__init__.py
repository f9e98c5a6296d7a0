from models.capacity import AdditionalFilterCapacity, CapacityKpiData, KanbanCapacity, LeafNodeCapacity
from models.prompt import PromptDetails
from models.recommendation import Persona, RecommendationLevel, Severity, TemporalAggregationUnit
from models.tracelog import ErrorDetail, JobExecutionTraceLog

__all__ = [
    "AdditionalFilterCapacity",
    "CapacityKpiData",
    "KanbanCapacity",
    "LeafNodeCapacity",
    "PromptDetails",
    "Persona",
    "RecommendationLevel",
    "Severity",
    "TemporalAggregationUnit",
    "ErrorDetail",
    "JobExecutionTraceLog",
]
