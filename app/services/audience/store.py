"""
Subscriber store query executor.

Runs composite predicates against the subscriber table in either count or
fetch mode. Every call is bounded by `STORE_TIMEOUT_SECONDS`; driver errors
surface as `StoreError` and timeouts as `StoreTimeout`.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.subscriber import Subscriber
from app.services.audience.assembler import AssembledPredicate
from app.services.audience.errors import StoreError, StoreTimeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubscriberRow:
    id: str
    token: Optional[str]


async def execute_with_timeout(
    db: AsyncSession,
    statement: Any,
    operation: str,
    timeout_seconds: Optional[float] = None,
):
    """Execute a statement, translating timeouts and driver errors into store errors."""
    timeout = timeout_seconds or settings.STORE_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(db.execute(statement), timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error("Subscriber store %s timed out after %.1fs", operation, timeout)
        raise StoreTimeout(timeout, operation) from e
    except SQLAlchemyError as e:
        # Driver messages can include bound parameters; log the type only
        logger.error("Subscriber store %s failed: %s", operation, type(e).__name__)
        raise StoreError(f"Subscriber store {operation} failed: {type(e).__name__}", original=e) from e


class SubscriberStore:
    """Read-only access to subscribers matching a composite predicate."""

    def __init__(self, db: AsyncSession, timeout_seconds: Optional[float] = None):
        self.db = db
        self.timeout_seconds = timeout_seconds

    async def count(self, predicate: AssembledPredicate) -> int:
        query = select(func.count()).select_from(Subscriber).where(predicate.clause)
        result = await execute_with_timeout(self.db, query, "count", self.timeout_seconds)
        return result.scalar() or 0

    async def fetch(self, predicate: AssembledPredicate) -> List[SubscriberRow]:
        """Matching subscriber ids and delivery tokens, ordered by id."""
        query = (
            select(Subscriber.id, Subscriber.fcm_token)
            .where(predicate.clause)
            .order_by(Subscriber.id)
        )
        result = await execute_with_timeout(self.db, query, "fetch", self.timeout_seconds)
        return [SubscriberRow(id=row.id, token=row.fcm_token) for row in result.all()]
