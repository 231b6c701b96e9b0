"""LLM client for generating issue responses.

This module sends prompts to an OpenAI-compatible chat completion endpoint
through LangChain's ChatOpenAI and returns a Completion or a typed failure.

The provider library's own retries are disabled; every attempt is bounded
by ``request_timeout`` and the shared RetryPolicy decides whether another
attempt is made.

Failure mapping:
- HTTP 429 → RateLimitedError (Retry-After honored)
- request timeout → RequestTimeoutError
- other HTTP errors → ServiceError (5xx retryable, 4xx not)
- connection failures → ServiceError without status (retryable)
- empty or non-text output → InvalidResponseError
"""

import asyncio
import logging
from typing import Any, Optional

import openai
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from issue_responder.errors import (
    InvalidResponseError,
    RateLimitedError,
    RequestTimeoutError,
    ResponderError,
    ServiceError,
)
from issue_responder.llm.models import Completion, FinishReason
from issue_responder.prompt.models import Prompt
from issue_responder.retry import RetryPolicy


logger = logging.getLogger(__name__)


FINISH_REASONS = {
    "stop": FinishReason.COMPLETE,
    "length": FinishReason.TRUNCATED,
    "content_filter": FinishReason.ERROR,
}


def _retry_after(error: openai.APIStatusError) -> Optional[float]:
    response = getattr(error, "response", None)
    if response is None:
        return None
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def map_provider_error(error: Exception) -> ResponderError:
    """Translate an openai library exception into a typed failure."""
    if isinstance(error, openai.RateLimitError):
        return RateLimitedError(
            f"LLM rate limit exceeded: {error}", retry_after=_retry_after(error)
        )
    if isinstance(error, openai.APITimeoutError):
        return RequestTimeoutError(f"LLM request timed out: {error}")
    if isinstance(error, openai.APIStatusError):
        return ServiceError(
            f"LLM service error: {error.status_code}",
            status_code=error.status_code,
            response_body=str(error.body)[:500] if error.body is not None else None,
        )
    if isinstance(error, openai.APIConnectionError):
        return ServiceError(f"LLM service unreachable: {error}")
    return ServiceError(f"LLM invocation failed: {error}")


class LLMClient:
    """Client for an OpenAI-compatible chat completion service.

    Attributes:
        llm_url: Base URL of the OpenAI-compatible endpoint.
        model_name: Name of the model to use for inference.
        request_timeout: Per-attempt timeout in seconds.
        retry_policy: Policy applied to transient failures.

    Example:
        >>> client = LLMClient(
        ...     llm_url="https://api.openai.com/v1",
        ...     api_key="sk-...",
        ...     model_name="gpt-4",
        ...     retry_policy=RetryPolicy(max_attempts=3),
        ... )
        >>> completion = await client.complete(prompt)
    """

    def __init__(
        self,
        llm_url: str,
        api_key: str,
        model_name: str,
        retry_policy: RetryPolicy,
        request_timeout: float = 30.0,
        max_tokens: int = 192,
        temperature: float = 0.7,
        chat_model: Optional[BaseChatModel] = None,
    ):
        """Initialize the LLM client.

        Args:
            llm_url: Base URL of the endpoint (e.g., https://api.openai.com/v1).
            api_key: Credential for the service.
            model_name: Name of the model to use.
            retry_policy: Policy applied to transient failures.
            request_timeout: Per-attempt timeout in seconds.
            max_tokens: Upper bound on completion length.
            temperature: Sampling temperature.
            chat_model: Pre-built chat model, used instead of ChatOpenAI.
        """
        self.llm_url = llm_url
        self.api_key = api_key
        self.model_name = model_name
        self.retry_policy = retry_policy
        self.request_timeout = request_timeout
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._llm = chat_model

    @property
    def llm(self) -> BaseChatModel:
        """Get the chat model, creating it if necessary."""
        if self._llm is None:
            self._llm = ChatOpenAI(
                base_url=self.llm_url,
                api_key=self.api_key,
                model=self.model_name,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.request_timeout,
                max_retries=0,
            )
        return self._llm

    async def complete(self, prompt: Prompt) -> Completion:
        """Generate a completion for a prompt.

        Args:
            prompt: The size-bounded prompt.

        Returns:
            The completion, with the number of attempts it took.

        Raises:
            RateLimitedError: Rate limited on every attempt.
            RequestTimeoutError: Timed out on every attempt.
            ServiceError: The service rejected the request.
            InvalidResponseError: The service returned unusable output.
        """
        messages = [
            SystemMessage(content=prompt.system_instructions),
            HumanMessage(content=prompt.user_content),
        ]
        attempts = 0

        async def attempt() -> Completion:
            nonlocal attempts
            attempts += 1
            return await self._invoke(messages, attempts)

        logger.info(
            "Requesting completion",
            extra={
                "model": self.model_name,
                "prompt_length": prompt.length,
                "truncated": prompt.truncated,
            },
        )

        completion = await self.retry_policy.run(attempt, description="llm_completion")

        logger.info(
            "Completion received",
            extra={
                "model": completion.model,
                "finish_reason": completion.finish_reason.value,
                "attempts": completion.attempts,
                "text_length": len(completion.text),
            },
        )
        return completion

    async def _invoke(self, messages: list, attempt: int) -> Completion:
        try:
            response = await asyncio.wait_for(
                self.llm.ainvoke(messages), timeout=self.request_timeout
            )
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(
                f"LLM request exceeded {self.request_timeout}s"
            ) from e
        except openai.OpenAIError as e:
            raise map_provider_error(e) from e

        return self._parse_response(response, attempt)

    def _parse_response(self, response: Any, attempt: int) -> Completion:
        text = getattr(response, "content", None)
        if not isinstance(text, str):
            raise InvalidResponseError(f"Unexpected response type: {type(text)}")

        text = text.strip()
        if not text:
            raise InvalidResponseError("LLM returned empty text")

        metadata = getattr(response, "response_metadata", None) or {}
        raw_reason = metadata.get("finish_reason")
        finish_reason = FINISH_REASONS.get(raw_reason, FinishReason.COMPLETE)
        if finish_reason != FinishReason.COMPLETE:
            logger.warning(
                "Completion did not finish normally",
                extra={"finish_reason": raw_reason, "attempt": attempt},
            )

        return Completion(
            text=text,
            finish_reason=finish_reason,
            model=metadata.get("model_name") or self.model_name,
            attempts=attempt,
        )
