"""Prompt model handed from the prompt builder to the LLM client."""

from pydantic import BaseModel, ConfigDict, Field


class Prompt(BaseModel):
    """A size-bounded prompt.

    Attributes:
        system_instructions: Rendered system instruction text.
        user_content: Issue content with fixed scaffolding.
        length: Number of budgeted words in user_content.
        truncated: Whether any issue content was cut to fit the budget.
    """

    model_config = ConfigDict(frozen=True)

    system_instructions: str
    user_content: str
    length: int = Field(..., ge=0)
    truncated: bool = False
