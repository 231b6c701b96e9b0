"""GitHub API client for issue interactions.

This module provides an async wrapper around the GitHub REST API for:
- Creating comments on issues
- Adding labels to issues
- Listing issue comments

Each method performs a single HTTP attempt and maps failures onto the
responder's typed errors; callers apply the shared RetryPolicy.

Status mapping:
- 401, 403 (without rate limit exhaustion) → AuthFailureError
- 403 with X-RateLimit-Remaining: 0, 429 → RateLimitedError
- 404, 410 → NotFoundError
- 5xx, connection failures → NetworkError
- request timeouts → RequestTimeoutError
- other 4xx → ServiceError
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from issue_responder.errors import (
    AuthFailureError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    RequestTimeoutError,
    ServiceError,
)
from issue_responder.github.models import IssueComment


logger = logging.getLogger(__name__)


class GitHubClient:
    """Async GitHub API client.

    Supports both github.com and GitHub Enterprise Server through
    ``base_url``.

    Attributes:
        token: GitHub API token (PAT or GitHub App token).
        base_url: Base URL for GitHub API (default: https://api.github.com).
        timeout: Per-request timeout in seconds.

    Example:
        >>> async with GitHubClient(token="ghp_xxx") as client:
        ...     await client.create_comment("owner", "repo", 123, "Hello!")
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used to stub the API.
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "IssueResponder/1.0",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _parse_int_header(self, headers: httpx.Headers, name: str) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _rate_limit_error(self, response: httpx.Response) -> RateLimitedError:
        """Build a RateLimitedError carrying the server's retry hint."""
        retry_after: Optional[float] = None
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")
        if reset_at is not None:
            retry_after = float(max(0, reset_at - int(time.time())))

        retry_after_header = self._parse_int_header(response.headers, "retry-after")
        if retry_after_header is not None:
            retry_after = float(retry_after_header)

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={"retry_after": retry_after, "reset_at": reset_at},
        )
        return RateLimitedError("GitHub API rate limit exceeded", retry_after=retry_after)

    def _raise_for_status(self, response: httpx.Response, method: str, path: str) -> None:
        status = response.status_code
        if status < 400:
            return

        if status == 429 or (
            status == 403
            and self._parse_int_header(response.headers, "x-ratelimit-remaining") == 0
        ):
            raise self._rate_limit_error(response)

        error_body = response.text[:500]
        logger.error(
            "GitHub API error",
            extra={
                "status_code": status,
                "path": path,
                "method": method,
                "response_body": error_body,
            },
        )

        if status in (401, 403):
            raise AuthFailureError(f"GitHub rejected credentials: {status}")
        if status in (404, 410):
            raise NotFoundError(f"GitHub resource not found: {path}")
        if status >= 500:
            raise NetworkError(f"GitHub API error: {status}", status_code=status)
        raise ServiceError(
            f"GitHub API error: {status}",
            status_code=status,
            response_body=error_body,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make a single HTTP request and map failures to typed errors.

        Raises:
            ResponderError: A typed error describing the failure.
        """
        try:
            response = await self.client.request(
                method=method,
                url=path,
                json=json_data,
                params=params,
            )
        except httpx.TimeoutException as e:
            logger.warning("GitHub request timed out", extra={"path": path})
            raise RequestTimeoutError(f"GitHub request timed out: {path}") from e
        except httpx.RequestError as e:
            logger.warning(
                "GitHub request failed",
                extra={"path": path, "error": str(e)},
            )
            raise NetworkError(f"GitHub request failed: {e}") from e

        self._raise_for_status(response, method, path)
        return response

    async def create_comment(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        body: str,
    ) -> IssueComment:
        """Create a comment on an issue.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            issue_number: Issue number to comment on.
            body: Comment body in markdown format.

        Returns:
            The created comment.
        """
        path = f"/repos/{owner}/{repo}/issues/{issue_number}/comments"

        logger.info(
            "Creating comment on issue",
            extra={
                "owner": owner,
                "repo": repo,
                "issue_number": issue_number,
                "body_length": len(body),
            },
        )

        response = await self._request(
            method="POST",
            path=path,
            json_data={"body": body},
        )

        comment = IssueComment.from_github_response(response.json())
        logger.info(
            "Comment created successfully",
            extra={
                "owner": owner,
                "repo": repo,
                "issue_number": issue_number,
                "comment_id": comment.id,
            },
        )
        return comment

    async def add_labels(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        labels: List[str],
    ) -> List[str]:
        """Add labels to an issue.

        Adding a label that is already present is a no-op on GitHub's
        side, so repeating this call is harmless.

        Returns:
            Names of all labels on the issue after adding.
        """
        path = f"/repos/{owner}/{repo}/issues/{issue_number}/labels"

        logger.info(
            "Adding labels to issue",
            extra={
                "owner": owner,
                "repo": repo,
                "issue_number": issue_number,
                "labels": labels,
            },
        )

        response = await self._request(
            method="POST",
            path=path,
            json_data={"labels": labels},
        )
        return [item.get("name", "") for item in response.json()]

    async def list_comments(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        per_page: int = 100,
    ) -> List[IssueComment]:
        """List the first page of comments on an issue, oldest first."""
        path = f"/repos/{owner}/{repo}/issues/{issue_number}/comments"

        logger.debug(
            "Fetching comments for issue",
            extra={"owner": owner, "repo": repo, "issue_number": issue_number},
        )

        response = await self._request(
            method="GET",
            path=path,
            params={"per_page": per_page},
        )
        return [IssueComment.from_github_response(item) for item in response.json()]

    async def health_check(self) -> bool:
        """Check that the API is reachable and the token is accepted."""
        try:
            response = await self.client.get("/rate_limit")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(
                "GitHub API health check failed",
                extra={"error": str(e)},
            )
            return False
