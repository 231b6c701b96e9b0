"""Typed failures raised by the issue responder pipeline.

Every component raises a subclass of ResponderError instead of letting
library exceptions escape. Each error carries a FailureKind and a
retryable flag; the shared RetryPolicy reads the flag to decide whether
another attempt is allowed, and the PipelineOrchestrator reads the kind
to report the terminal outcome.

Failure taxonomy:
- malformed_input: permanent, the event is dropped
- rate_limited, timeout, network_error: transient, retried with backoff
- service_error, auth_failure, not_found: permanent, surfaced immediately
- invalid_response: permanent, the model output is never posted
- internal_error: unexpected exception inside the pipeline
"""

from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    """Category of a pipeline failure."""

    MALFORMED_INPUT = "malformed_input"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    SERVICE_ERROR = "service_error"
    AUTH_FAILURE = "auth_failure"
    NOT_FOUND = "not_found"
    INVALID_RESPONSE = "invalid_response"
    INTERNAL_ERROR = "internal_error"


class ResponderError(Exception):
    """Base class for all typed pipeline failures.

    Attributes:
        message: Human-readable error description.
        kind: The failure category.
        retryable: Whether another attempt may succeed.
    """

    kind: FailureKind = FailureKind.INTERNAL_ERROR
    retryable: bool = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class MalformedInputError(ResponderError):
    """Raised when an event cannot be turned into canonical content."""

    kind = FailureKind.MALFORMED_INPUT


class RateLimitedError(ResponderError):
    """Raised when a remote service rejects a request due to rate limits.

    Attributes:
        retry_after: Seconds the service asked us to wait, if provided.
    """

    kind = FailureKind.RATE_LIMITED
    retryable = True

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class RequestTimeoutError(ResponderError):
    """Raised when a single remote call exceeds its time bound."""

    kind = FailureKind.TIMEOUT
    retryable = True


class NetworkError(ResponderError):
    """Raised for connection failures and 5xx responses from GitHub.

    Attributes:
        status_code: HTTP status code, or None for connection failures.
    """

    kind = FailureKind.NETWORK_ERROR
    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ServiceError(ResponderError):
    """Raised when a remote service returns an error status.

    4xx statuses mean the request itself is wrong and are never retried.
    5xx statuses (and status-less provider errors) are retryable.

    Attributes:
        status_code: HTTP status code, if known.
        response_body: Truncated response body, if available.
    """

    kind = FailureKind.SERVICE_ERROR

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.retryable = status_code is None or status_code >= 500


class AuthFailureError(ResponderError):
    """Raised when credentials are rejected. Never retried."""

    kind = FailureKind.AUTH_FAILURE


class NotFoundError(ResponderError):
    """Raised when the target issue no longer exists. Never retried."""

    kind = FailureKind.NOT_FOUND


class InvalidResponseError(ResponderError):
    """Raised when the model output cannot be posted."""

    kind = FailureKind.INVALID_RESPONSE


class DeadlineExceededError(RequestTimeoutError):
    """Raised when an event's total processing deadline expires."""

    retryable = False
