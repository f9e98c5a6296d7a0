from enum import Enum


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def priority(self) -> int:
        return _SEVERITY_PRIORITY[self]

    @property
    def display_name(self) -> str:
        return self.value.lower()


_SEVERITY_PRIORITY = {
    Severity.CRITICAL: 1,
    Severity.HIGH: 2,
    Severity.MEDIUM: 3,
    Severity.LOW: 4,
}

# Sort key for missing or unrecognised severities
UNKNOWN_SEVERITY_PRIORITY = 999


class RecommendationLevel(str, Enum):
    PROJECT_LEVEL = "PROJECT_LEVEL"
    KPI_LEVEL = "KPI_LEVEL"


class Persona(str, Enum):
    """Audience a recommendation prompt is written for."""
    EXECUTIVE_SPONSOR = "EXECUTIVE_SPONSOR"
    ENGINEERING_LEAD = "ENGINEERING_LEAD"
    PROJECT_ADMIN = "PROJECT_ADMIN"
    AGILE_COACH = "AGILE_COACH"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class TemporalAggregationUnit(str, Enum):
    WEEK = "week"
    MONTH = "month"

    @property
    def unit(self) -> str:
        return self.value
