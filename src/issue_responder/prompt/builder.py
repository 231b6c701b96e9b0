"""Prompt construction with a word budget.

The builder counts whitespace-separated words of the issue title, body,
triggering request and comment history against ``max_prompt_length``.
Labels and the fixed scaffolding around the content are not counted.

Content is kept in a fixed order: title, body, request, then history
entries oldest first. Once the budget is spent everything after it is
cut, so truncation always happens at the tail. Kept text keeps its
original whitespace up to the last kept word.
"""

import logging
import re
import string
from typing import List, Sequence, Tuple

from issue_responder.extractor.models import CanonicalContent
from issue_responder.prompt.models import Prompt


logger = logging.getLogger(__name__)


TEMPLATE_FIELDS = frozenset({"author", "title", "repository", "issue_number", "kind"})

WORD_PATTERN = re.compile(r"\S+")

INSTRUCTION_TEXT = (
    "Analyze the GitHub issue content below. Provide a concise analysis "
    "touching upon the central problem discussed in the issue and the main "
    "solutions proposed or agreed upon. Aim for a succinct, analytical summary."
)

LABEL_INSTRUCTION_TEXT = (
    "If the issue only needs a label instead of a reply, answer with a single "
    "line of the form 'LABEL: <name>' using one of: {labels}."
)

TRUNCATION_NOTE = "Note: the issue content was truncated to fit the prompt budget."


def count_words(text: str) -> int:
    """Count whitespace-separated words."""
    return len(WORD_PATTERN.findall(text))


def take_words(text: str, limit: int) -> Tuple[str, int, bool]:
    """Keep at most ``limit`` words of text.

    Returns:
        Tuple of (kept text, kept word count, whether anything was cut).
    """
    matches = list(WORD_PATTERN.finditer(text))
    if len(matches) <= limit:
        return text, len(matches), False
    if limit <= 0:
        return "", 0, True
    return text[: matches[limit - 1].end()], limit, True


def validate_template(template: str) -> None:
    """Check that a system instruction template only uses known fields.

    Raises:
        ValueError: On unknown or positional fields, or malformed braces.
    """
    try:
        parsed = list(string.Formatter().parse(template))
    except ValueError as e:
        raise ValueError(f"Malformed system instruction template: {e}") from e

    for _, field_name, _, _ in parsed:
        if field_name is None:
            continue
        base = re.split(r"[.\[]", field_name, maxsplit=1)[0]
        if base not in TEMPLATE_FIELDS:
            raise ValueError(
                f"Unknown template field {field_name!r}; "
                f"allowed fields: {', '.join(sorted(TEMPLATE_FIELDS))}"
            )


class PromptBuilder:
    """Builds size-bounded prompts from canonical content.

    Attributes:
        max_prompt_length: Word budget for issue content.
        system_instruction_template: ``str.format`` template for the
            system instructions.
        allowed_labels: Labels a classification answer may use. When
            empty, no classification instructions are added.
    """

    def __init__(
        self,
        max_prompt_length: int,
        system_instruction_template: str,
        allowed_labels: Sequence[str] = (),
    ):
        if max_prompt_length < 1:
            raise ValueError("max_prompt_length must be at least 1")
        validate_template(system_instruction_template)

        self.max_prompt_length = max_prompt_length
        self.system_instruction_template = system_instruction_template
        self.allowed_labels = tuple(allowed_labels)

    def build(self, content: CanonicalContent) -> Prompt:
        """Build a prompt whose budgeted length never exceeds the budget.

        Args:
            content: Canonical content of the issue event.

        Returns:
            The prompt. Identical input always yields an identical prompt.
        """
        remaining = self.max_prompt_length
        truncated = False

        title, used, cut = take_words(content.title, remaining)
        remaining -= used
        truncated |= cut

        body, used, cut = take_words(content.body, remaining)
        remaining -= used
        truncated |= cut

        request, used, cut = take_words(content.request, remaining)
        remaining -= used
        truncated |= cut

        history: List[Tuple[str, str]] = []
        for entry in content.history:
            text, used, cut = take_words(entry.text, remaining)
            remaining -= used
            truncated |= cut
            if used:
                history.append((entry.author, text))

        length = self.max_prompt_length - remaining
        user_content = self._render_user_content(
            content, title, body, request, history, truncated
        )

        prompt = Prompt(
            system_instructions=self.system_instruction_template.format(
                author=content.author,
                title=title,
                repository=content.repository,
                issue_number=content.issue_number,
                kind=content.kind.value,
            ),
            user_content=user_content,
            length=length,
            truncated=truncated,
        )

        if truncated:
            logger.info(
                "Prompt truncated to word budget",
                extra={
                    "issue_number": content.issue_number,
                    "repository": content.repository,
                    "max_prompt_length": self.max_prompt_length,
                },
            )
        return prompt

    def _render_user_content(
        self,
        content: CanonicalContent,
        title: str,
        body: str,
        request: str,
        history: List[Tuple[str, str]],
        truncated: bool,
    ) -> str:
        labels = ", ".join(content.labels) if content.labels else "none"
        sections = [
            INSTRUCTION_TEXT,
            f"Title: {title}\nLabels: {labels}",
            f"Issue body:\n{body if body else '(no description provided)'}",
        ]

        if request:
            sections.append(f"Request from @{content.requested_by}:\n{request}")

        if history:
            lines = [f"@{author}: {text}" for author, text in history]
            sections.append("Discussion:\n" + "\n".join(lines))

        if self.allowed_labels:
            sections.append(
                LABEL_INSTRUCTION_TEXT.format(labels=", ".join(self.allowed_labels))
            )

        if truncated:
            sections.append(TRUNCATION_NOTE)

        return "\n\n".join(sections)
