"""Delivery records for idempotent posting.

Each event id gets at most one successful post. The response poster claims
the event id before posting and records the outcome afterwards.
"""

from issue_responder.delivery.models import (
    ClaimResult,
    DeliveryOutcome,
    DeliveryRecord,
)
from issue_responder.delivery.repository import DatabaseError, PostgresDeliveryStore
from issue_responder.delivery.store import (
    DeliveryNotClaimedError,
    DeliveryStore,
    InMemoryDeliveryStore,
)

__all__ = [
    "ClaimResult",
    "DatabaseError",
    "DeliveryNotClaimedError",
    "DeliveryOutcome",
    "DeliveryRecord",
    "DeliveryStore",
    "InMemoryDeliveryStore",
    "PostgresDeliveryStore",
]
