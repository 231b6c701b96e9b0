"""PostgreSQL delivery store.

This module implements the DeliveryStore protocol using asyncpg. Claims
are single ``INSERT ... ON CONFLICT DO UPDATE ... WHERE`` statements, so
concurrent workers racing for the same event id are serialized by the
primary key and at most one of them gets a row back. Completions are
conditional on the claim token, so only the current claim holder can
finish a delivery.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

import asyncpg

from issue_responder.delivery.models import (
    ClaimResult,
    DeliveryOutcome,
    DeliveryRecord,
)
from issue_responder.delivery.store import DeliveryNotClaimedError, new_claim_token


logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS delivery_records (
    event_id TEXT PRIMARY KEY,
    outcome TEXT NOT NULL CHECK (outcome IN ('pending', 'posted', 'failed')),
    retryable BOOLEAN NOT NULL DEFAULT FALSE,
    comment_url TEXT,
    label TEXT,
    error TEXT,
    claim_token TEXT,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
ALTER TABLE delivery_records ADD COLUMN IF NOT EXISTS claim_token TEXT;
"""

CLAIM_SQL = """
INSERT INTO delivery_records (event_id, outcome, retryable, claim_token, updated_at)
VALUES ($1, 'pending', FALSE, $4, $2)
ON CONFLICT (event_id) DO UPDATE SET
    outcome = 'pending',
    retryable = FALSE,
    comment_url = NULL,
    label = NULL,
    error = NULL,
    claim_token = EXCLUDED.claim_token,
    updated_at = EXCLUDED.updated_at
WHERE (delivery_records.outcome = 'failed' AND delivery_records.retryable)
   OR (delivery_records.outcome = 'pending'
       AND delivery_records.updated_at <= $2 - make_interval(secs => $3))
RETURNING (xmax = 0) AS inserted
"""

COMPLETE_SQL = """
UPDATE delivery_records
SET outcome = $2, retryable = $3, comment_url = $4, label = $5, error = $6,
    updated_at = $7
WHERE event_id = $1 AND outcome = 'pending' AND claim_token = $8
RETURNING event_id, outcome, retryable, comment_url, label, error, claim_token,
    updated_at
"""

SELECT_SQL = """
SELECT event_id, outcome, retryable, comment_url, label, error, claim_token,
    updated_at
FROM delivery_records
WHERE event_id = $1
"""


class DatabaseError(Exception):
    """Raised when a database operation fails.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


def _row_to_record(row: Any) -> DeliveryRecord:
    return DeliveryRecord(
        event_id=row["event_id"],
        outcome=DeliveryOutcome(row["outcome"]),
        timestamp=row["updated_at"],
        retryable=row["retryable"],
        comment_url=row["comment_url"],
        label=row["label"],
        error=row["error"],
        claim_token=row["claim_token"],
    )


class PostgresDeliveryStore:
    """PostgreSQL implementation of the DeliveryStore protocol.

    Attributes:
        connection_string: PostgreSQL connection URL.
        claim_ttl: Seconds after which a pending claim may be taken over.
        min_pool_size: Minimum connections in pool.
        max_pool_size: Maximum connections in pool.

    Example:
        >>> async with PostgresDeliveryStore("postgresql://...") as store:
        ...     result = await store.claim("delivery-id")
    """

    def __init__(
        self,
        connection_string: str,
        claim_ttl: float = 600.0,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
    ):
        self.connection_string = connection_string
        self.claim_ttl = claim_ttl
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool, raising if not connected.

        Raises:
            DatabaseError: If the pool is not initialized.
        """
        if self._pool is None:
            raise DatabaseError(
                "Database pool not initialized. Call connect() first."
            )
        return self._pool

    async def connect(self) -> None:
        """Initialize the connection pool and create the table if missing.

        Raises:
            DatabaseError: If connection fails.
        """
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            logger.info(
                "Connecting to PostgreSQL",
                extra={
                    "min_pool_size": self.min_pool_size,
                    "max_pool_size": self.max_pool_size,
                },
            )
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            await self.ensure_schema()
            logger.info("PostgreSQL connection pool established")
        except (OSError, asyncpg.PostgresError) as e:
            logger.error(
                "Failed to connect to PostgreSQL",
                extra={"error": str(e)},
            )
            raise DatabaseError(
                f"Failed to connect to PostgreSQL: {e}",
                original_error=e,
            ) from e

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            logger.info("Closing PostgreSQL connection pool")
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "PostgresDeliveryStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except asyncpg.PostgresError as e:
            logger.error("Delivery store query failed", extra={"error": str(e)})
            raise DatabaseError(f"Delivery store query failed: {e}", original_error=e) from e

    async def health_check(self) -> bool:
        """Check that the database answers a trivial query."""
        try:
            async with self._connection() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except (DatabaseError, OSError) as e:
            logger.warning("Database health check failed", extra={"error": str(e)})
            return False

    async def ensure_schema(self) -> None:
        """Create the delivery_records table if it does not exist."""
        async with self._connection() as conn:
            await conn.execute(SCHEMA_SQL)

    async def get(self, event_id: str) -> Optional[DeliveryRecord]:
        async with self._connection() as conn:
            row = await conn.fetchrow(SELECT_SQL, event_id)
        return _row_to_record(row) if row is not None else None

    async def claim(self, event_id: str) -> ClaimResult:
        now = datetime.now(timezone.utc)
        token = new_claim_token()
        async with self._connection() as conn:
            claimed = await conn.fetchrow(
                CLAIM_SQL, event_id, now, float(self.claim_ttl), token
            )
            if claimed is not None:
                return ClaimResult(
                    claimed=True, reclaimed=not claimed["inserted"], token=token
                )
            row = await conn.fetchrow(SELECT_SQL, event_id)

        existing = _row_to_record(row) if row is not None else None
        logger.info(
            "Delivery already claimed",
            extra={
                "event_id": event_id,
                "outcome": existing.outcome.value if existing else None,
            },
        )
        return ClaimResult(claimed=False, existing=existing)

    async def mark_posted(
        self,
        event_id: str,
        token: str,
        comment_url: Optional[str] = None,
        label: Optional[str] = None,
    ) -> DeliveryRecord:
        return await self._complete(
            event_id, token, DeliveryOutcome.POSTED, False, comment_url, label, None
        )

    async def mark_failed(
        self, event_id: str, token: str, error: str, retryable: bool
    ) -> DeliveryRecord:
        return await self._complete(
            event_id, token, DeliveryOutcome.FAILED, retryable, None, None, error
        )

    async def _complete(
        self,
        event_id: str,
        token: str,
        outcome: DeliveryOutcome,
        retryable: bool,
        comment_url: Optional[str],
        label: Optional[str],
        error: Optional[str],
    ) -> DeliveryRecord:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                COMPLETE_SQL,
                event_id,
                outcome.value,
                retryable,
                comment_url,
                label,
                error,
                datetime.now(timezone.utc),
                token,
            )
        if row is None:
            raise DeliveryNotClaimedError(event_id)
        return _row_to_record(row)
