from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PromptDetails(BaseModel):
    """Prompt template stored in `prompt_details`, looked up by key."""
    model_config = ConfigDict(populate_by_name=True, extra="allow", arbitrary_types_allowed=True)

    id: Optional[Any] = Field(default=None, alias="_id")
    key: str
    context: Optional[str] = None
    task: Optional[str] = None
    instructions: List[str] = Field(default_factory=list)
    input: Optional[str] = None
    output_format: Optional[str] = Field(default=None, alias="outputFormat")
    place_holders: List[str] = Field(default_factory=list, alias="placeHolders")

    def render(self) -> str:
        return (
            f"{{context='{self.context}', task='{self.task}', instructions={self.instructions}, "
            f"input='{self.input}', outputFormat='{self.output_format}'}}"
        )
