"""Delivery record models.

A DeliveryRecord tracks the posting of a response for one event id. It is
created when the response poster claims the event and updated once the
post succeeds or fails. Skips are never stored.

Every claim gets a fresh token. Completing a delivery requires the token
of the current claim, so a worker whose claim was taken over cannot
overwrite the record of the worker that took it.

Record lifecycle:
    (absent) → pending → posted
                       → failed (retryable) → pending → ...
                       → failed (non-retryable)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DeliveryOutcome(str, Enum):
    """Stored outcome of a delivery.

    Attributes:
        PENDING: Claimed; a post is in flight.
        POSTED: The response was posted.
        FAILED: Posting failed; see ``retryable``.
    """

    PENDING = "pending"
    POSTED = "posted"
    FAILED = "failed"


class DeliveryRecord(BaseModel):
    """Persisted marker preventing duplicate posting.

    Attributes:
        event_id: The event the record belongs to.
        outcome: Current outcome of the delivery.
        timestamp: When the record was last written (UTC).
        retryable: Whether a failed delivery may be claimed again.
        comment_url: URL of the posted comment, if any.
        label: Label applied, for classification deliveries.
        error: Failure description for failed deliveries.
        claim_token: Token of the claim that wrote the record. Only the
            holder of the current token may complete a pending record.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(..., min_length=1)
    outcome: DeliveryOutcome
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    retryable: bool = False
    comment_url: Optional[str] = None
    label: Optional[str] = None
    error: Optional[str] = None
    claim_token: Optional[str] = None

    def is_claimable(self, now: datetime, claim_ttl: float) -> bool:
        """Whether a new claim may take over this record."""
        if self.outcome == DeliveryOutcome.FAILED:
            return self.retryable
        if self.outcome == DeliveryOutcome.PENDING:
            return (now - self.timestamp).total_seconds() >= claim_ttl
        return False


class ClaimResult(BaseModel):
    """Result of an atomic claim attempt.

    Attributes:
        claimed: True if the caller now owns the delivery.
        reclaimed: True if the claim took over an earlier failed or
            abandoned attempt, which may already have reached GitHub.
        existing: The record that blocked the claim, if any.
        token: Claim token to pass when completing the delivery.
    """

    model_config = ConfigDict(frozen=True)

    claimed: bool
    reclaimed: bool = False
    existing: Optional[DeliveryRecord] = None
    token: Optional[str] = None
