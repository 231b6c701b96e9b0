"""Language-model client for the issue responder.

Sends prompts to an OpenAI-compatible chat endpoint with bounded retries
and per-attempt timeouts.
"""

from issue_responder.llm.client import LLMClient, map_provider_error
from issue_responder.llm.models import Completion, FinishReason

__all__ = [
    "Completion",
    "FinishReason",
    "LLMClient",
    "map_provider_error",
]
