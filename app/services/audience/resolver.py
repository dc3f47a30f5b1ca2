"""
Segment Resolver

Resolves one stored segment to its current members. Segments are evaluated
live on every call; nothing about membership is cached.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.segment import Segment, SegmentCondition
from app.schemas.segment import SegmentConditionSchema
from app.services.audience.assembler import SkippedCondition, assemble_conditions
from app.services.audience.errors import SegmentNotFound
from app.services.audience.store import SubscriberStore, execute_with_timeout

logger = logging.getLogger(__name__)


@dataclass
class SegmentAudience:
    segment_id: str
    segment_name: str
    is_active: bool
    subscriber_ids: List[str] = field(default_factory=list)
    tokens: List[str] = field(default_factory=list)
    skipped: List[SkippedCondition] = field(default_factory=list)

    @property
    def subscriber_count(self) -> int:
        return len(self.subscriber_ids)


def conditions_from_rows(
    rows: Sequence[SegmentCondition],
) -> Tuple[List[SegmentConditionSchema], List[SkippedCondition]]:
    """Convert stored condition rows, setting aside rows that do not validate."""
    conditions: List[SegmentConditionSchema] = []
    rejected: List[SkippedCondition] = []

    for row in rows:
        try:
            conditions.append(SegmentConditionSchema.model_validate(row))
        except ValidationError as e:
            logger.warning(
                "Skipping malformed condition %s of segment %s",
                row.id,
                row.segment_id,
                extra={"segment_id": row.segment_id, "condition_id": row.id, "category": row.category},
            )
            rejected.append(
                SkippedCondition(
                    condition_id=row.id,
                    category=row.category or "",
                    error_type="IncompleteCondition",
                    reason=f"stored condition is malformed ({e.error_count()} errors)",
                )
            )

    return conditions, rejected


class SegmentResolver:
    def __init__(
        self,
        db: AsyncSession,
        merchant_id: str,
        store: Optional[SubscriberStore] = None,
    ):
        self.db = db
        self.merchant_id = merchant_id
        self.store = store or SubscriberStore(db)

    async def load_segment(self, segment_id: str) -> Segment:
        """Load a live segment of this tenant with its ordered conditions."""
        query = (
            select(Segment)
            .options(selectinload(Segment.conditions))
            .where(
                Segment.id == segment_id,
                Segment.merchant_id == self.merchant_id,
                Segment.deleted_at.is_(None),
            )
        )
        result = await execute_with_timeout(
            self.db, query, "segment lookup", self.store.timeout_seconds
        )
        segment = result.scalar_one_or_none()
        if segment is None:
            raise SegmentNotFound(segment_id)
        return segment

    async def resolve(self, segment_id: str, now: Optional[datetime] = None) -> SegmentAudience:
        """
        Resolve a segment to subscriber ids and delivery tokens.

        Raises:
            SegmentNotFound: unknown, deleted, or another tenant's segment
            StoreError: the subscriber query failed (StoreTimeout on timeout)
        """
        segment = await self.load_segment(segment_id)

        if not segment.is_active:
            logger.warning(
                "Segment %s is inactive, resolving to an empty audience",
                segment.id,
                extra={"segment_id": segment.id},
            )
            return SegmentAudience(segment_id=segment.id, segment_name=segment.name, is_active=False)

        conditions, rejected = conditions_from_rows(segment.conditions)
        predicate = assemble_conditions(conditions, self.merchant_id, segment_id=segment.id, now=now)
        rows = await self.store.fetch(predicate)

        audience = SegmentAudience(
            segment_id=segment.id,
            segment_name=segment.name,
            is_active=True,
            subscriber_ids=[row.id for row in rows],
            tokens=[row.token for row in rows if row.token],
            skipped=rejected + predicate.skipped,
        )

        logger.info(
            "Resolved segment %s: %d subscribers, %d tokens",
            segment.id,
            audience.subscriber_count,
            len(audience.tokens),
            extra={"segment_id": segment.id},
        )
        return audience
