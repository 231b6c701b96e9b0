"""Completion models returned by the LLM client."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class FinishReason(str, Enum):
    """Why the model stopped generating.

    Attributes:
        COMPLETE: The model finished its answer.
        TRUNCATED: Generation stopped at the token limit.
        ERROR: The provider withheld or aborted the answer.
    """

    COMPLETE = "complete"
    TRUNCATED = "truncated"
    ERROR = "error"


class Completion(BaseModel):
    """Text generated by the model for one prompt.

    Attributes:
        text: Generated text, never empty.
        finish_reason: Why generation stopped.
        model: Model name reported by the provider.
        attempts: Number of attempts the client needed.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1)
    finish_reason: FinishReason = FinishReason.COMPLETE
    model: str = ""
    attempts: int = Field(default=1, ge=1)
