from services.prompts import PromptService
from services.tracelog import JobExecutionTraceLogService

__all__ = ["PromptService", "JobExecutionTraceLogService"]
