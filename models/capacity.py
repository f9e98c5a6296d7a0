"""Capacity documents (sprint and kanban) with nested per-filter capacity lists."""

from typing import Any, ClassVar, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LeafNodeCapacity(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    additional_filter_id: Optional[str] = Field(default=None, alias="additionalFilterId")
    additional_filter_capacity: Optional[float] = Field(default=None, alias="additionalFilterCapacity")


class AdditionalFilterCapacity(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    filter_id: Optional[str] = Field(default=None, alias="filterId")
    node_capacity_list: List[LeafNodeCapacity] = Field(default_factory=list, alias="nodeCapacityList")


class CapacityKpiData(BaseModel):
    """Sprint capacity for one project/sprint (collection `capacity_kpi_data`)."""
    model_config = ConfigDict(populate_by_name=True, extra="allow", arbitrary_types_allowed=True)

    capacity_field: ClassVar[str] = "capacity_per_sprint"

    id: Optional[Any] = Field(default=None, alias="_id")
    basic_project_config_id: Optional[Any] = Field(default=None, alias="basicProjectConfigId")
    sprint_id: Optional[str] = Field(default=None, alias="sprintID")
    sprint_name: Optional[str] = Field(default=None, alias="sprintName")
    capacity_per_sprint: Optional[float] = Field(default=None, alias="capacityPerSprint")
    additional_filter_capacity_list: Optional[List[AdditionalFilterCapacity]] = Field(
        default=None, alias="additionalFilterCapacityList"
    )


class KanbanCapacity(BaseModel):
    """Kanban team capacity for a date window (collection `kanban_capacity`)."""
    model_config = ConfigDict(populate_by_name=True, extra="allow", arbitrary_types_allowed=True)

    capacity_field: ClassVar[str] = "capacity"

    id: Optional[Any] = Field(default=None, alias="_id")
    basic_project_config_id: Optional[Any] = Field(default=None, alias="basicProjectConfigId")
    project_name: Optional[str] = Field(default=None, alias="projectName")
    start_date: Optional[Any] = Field(default=None, alias="startDate")
    end_date: Optional[Any] = Field(default=None, alias="endDate")
    capacity: Optional[float] = None
    additional_filter_capacity_list: Optional[List[AdditionalFilterCapacity]] = Field(
        default=None, alias="additionalFilterCapacityList"
    )
