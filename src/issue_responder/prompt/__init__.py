"""Prompt construction for the issue responder."""

from issue_responder.prompt.builder import PromptBuilder, count_words, take_words
from issue_responder.prompt.models import Prompt

__all__ = [
    "Prompt",
    "PromptBuilder",
    "count_words",
    "take_words",
]
