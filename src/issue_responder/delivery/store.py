"""Delivery store protocol and in-memory implementation.

The store is the only state shared between concurrently handled events.
``claim`` is atomic: of any number of concurrent claims for the same event
id, at most one succeeds.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol

from issue_responder.delivery.models import (
    ClaimResult,
    DeliveryOutcome,
    DeliveryRecord,
)


logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_claim_token() -> str:
    return uuid.uuid4().hex


class DeliveryNotClaimedError(Exception):
    """Raised when completing a delivery the caller no longer holds.

    Either the record is not pending, or its claim was taken over by
    another worker.

    Attributes:
        event_id: The event whose delivery was completed.
    """

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Delivery for event {event_id} is not claimed")


class DeliveryStore(Protocol):
    """Protocol for delivery record storage."""

    async def get(self, event_id: str) -> Optional[DeliveryRecord]:
        """Get the record for an event, if any."""
        ...

    async def claim(self, event_id: str) -> ClaimResult:
        """Atomically create (or take over) a pending record."""
        ...

    async def mark_posted(
        self,
        event_id: str,
        token: str,
        comment_url: Optional[str] = None,
        label: Optional[str] = None,
    ) -> DeliveryRecord:
        """Record a successful post for the claim holding token."""
        ...

    async def mark_failed(
        self, event_id: str, token: str, error: str, retryable: bool
    ) -> DeliveryRecord:
        """Record a failed post for the claim holding token."""
        ...

    async def health_check(self) -> bool:
        """Check that the store is reachable."""
        ...


class InMemoryDeliveryStore:
    """Process-local DeliveryStore guarded by an asyncio lock.

    Attributes:
        claim_ttl: Seconds after which a pending claim may be taken over.
    """

    def __init__(
        self,
        claim_ttl: float = 600.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.claim_ttl = claim_ttl
        self._clock = clock
        self._records: Dict[str, DeliveryRecord] = {}
        self._lock = asyncio.Lock()

    async def health_check(self) -> bool:
        return True

    async def get(self, event_id: str) -> Optional[DeliveryRecord]:
        return self._records.get(event_id)

    async def claim(self, event_id: str) -> ClaimResult:
        async with self._lock:
            now = self._clock()
            existing = self._records.get(event_id)
            if existing is not None and not existing.is_claimable(now, self.claim_ttl):
                logger.info(
                    "Delivery already claimed",
                    extra={"event_id": event_id, "outcome": existing.outcome.value},
                )
                return ClaimResult(claimed=False, existing=existing)

            token = new_claim_token()
            self._records[event_id] = DeliveryRecord(
                event_id=event_id,
                outcome=DeliveryOutcome.PENDING,
                timestamp=now,
                claim_token=token,
            )
            return ClaimResult(
                claimed=True, reclaimed=existing is not None, token=token
            )

    async def mark_posted(
        self,
        event_id: str,
        token: str,
        comment_url: Optional[str] = None,
        label: Optional[str] = None,
    ) -> DeliveryRecord:
        return await self._complete(
            DeliveryRecord(
                event_id=event_id,
                outcome=DeliveryOutcome.POSTED,
                timestamp=self._clock(),
                comment_url=comment_url,
                label=label,
                claim_token=token,
            )
        )

    async def mark_failed(
        self, event_id: str, token: str, error: str, retryable: bool
    ) -> DeliveryRecord:
        return await self._complete(
            DeliveryRecord(
                event_id=event_id,
                outcome=DeliveryOutcome.FAILED,
                timestamp=self._clock(),
                retryable=retryable,
                error=error,
                claim_token=token,
            )
        )

    async def _complete(self, record: DeliveryRecord) -> DeliveryRecord:
        async with self._lock:
            existing = self._records.get(record.event_id)
            if (
                existing is None
                or existing.outcome != DeliveryOutcome.PENDING
                or existing.claim_token != record.claim_token
            ):
                raise DeliveryNotClaimedError(record.event_id)
            self._records[record.event_id] = record
            return record
