"""Prompt templates for KPI recommendation generation."""

import logging
from typing import Any, Mapping

from criteria.errors import CallerContractError
from criteria.predicates import FieldPredicate
from models.prompt import PromptDetails
from models.recommendation import Persona
from mongo.constants import PROMPT_DETAILS_COLLECTION, mongodb_tools

logger = logging.getLogger(__name__)

KPI_CORRELATION_REPORT_PLACEHOLDER = "KPI_CORRELATION_REPORT_PLACEHOLDER"
KPI_DATA_BY_PROJECT_PLACEHOLDER = "KPI_DATA_BY_PROJECT_PLACEHOLDER"
PERSONA_PLACEHOLDER = "Persona_PLACEHOLDER"

# Prompt keys
SPRINT_GOALS_SUMMARY = "sprint-goals-summary"
KPI_CORRELATION_ANALYSIS_REPORT = "kpi-correlation-analysis-report"
KPI_RECOMMENDATION_PROMPT = "kpi-recommendation"
KPI_SEARCH = "kpi-search"
KPI_DATA = "kpi-data"


class PromptService:

    collection = PROMPT_DETAILS_COLLECTION

    def __init__(self, executor: Any = None):
        self.executor = executor if executor is not None else mongodb_tools

    async def get_prompt_details(self, key: str) -> PromptDetails:
        doc = await self.executor.find_one(self.collection, FieldPredicate.equals("key", key))
        if doc is None:
            raise CallerContractError(f"Prompt not found for key: {key}")
        return PromptDetails.model_validate(doc)

    async def get_kpi_recommendation_prompt(self, kpi_data_by_project: Mapping[str, Any], persona: Persona) -> str:
        """Recommendation prompt with the correlation report, KPI data and persona filled in."""
        try:
            correlation_report = await self.get_prompt_details(KPI_CORRELATION_ANALYSIS_REPORT)
            recommendation_prompt = await self.get_prompt_details(KPI_RECOMMENDATION_PROMPT)
        except CallerContractError as e:
            logger.error(f"Error building KPI recommendation prompt: {e}")
            raise
        return (
            recommendation_prompt.render()
            .replace(KPI_CORRELATION_REPORT_PLACEHOLDER, correlation_report.render())
            .replace(KPI_DATA_BY_PROJECT_PLACEHOLDER, str(dict(kpi_data_by_project)))
            .replace(PERSONA_PLACEHOLDER, persona.display_name)
        )
