"""
Audience Service

Entry point used by the API layer and the campaign send pipeline. Wires the
compiler, assembler, store, resolver and aggregator together for one tenant.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.models.campaign import Campaign, CampaignSegment
from app.models.segment import Segment
from app.models.subscriber import Subscriber
from app.schemas.segment import SegmentConditionSchema
from app.services.audience.aggregator import AudienceAggregator, CampaignAudience
from app.services.audience.assembler import assemble_conditions
from app.services.audience.criteria import describe_conditions, is_blank_condition
from app.services.audience.errors import CampaignNotFound, StoreError
from app.services.audience.estimator import AudienceEstimate, AudienceEstimator
from app.services.audience.resolver import SegmentAudience, SegmentResolver, conditions_from_rows
from app.services.audience.store import SubscriberStore, execute_with_timeout

logger = logging.getLogger(__name__)


@dataclass
class AudienceStatistics:
    total_segments: int
    active_segments: int
    total_subscribers: int
    average_subscribers_per_segment: int


@dataclass
class SegmentCountUpdate:
    segment_id: str
    segment_name: str
    subscriber_count: int
    criteria_display: str
    error: Optional[str] = None


class AudienceService:
    def __init__(
        self,
        db: AsyncSession,
        merchant_id: str,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.db = db
        self.merchant_id = merchant_id
        self.session_factory = session_factory
        self.store = SubscriberStore(db)

    # ========================================================================
    # Estimation
    # ========================================================================

    async def estimate(
        self,
        conditions: Sequence[SegmentConditionSchema],
        now: Optional[datetime] = None,
    ) -> AudienceEstimate:
        """Live count for conditions being authored. Never raises store errors."""
        filled = [c for c in conditions if not is_blank_condition(c)]
        if len(filled) < len(conditions):
            logger.debug("Ignoring %d blank conditions", len(conditions) - len(filled))

        predicate = assemble_conditions(filled, self.merchant_id, now=now)
        return await AudienceEstimator(self.store).estimate(predicate)

    async def statistics(self) -> AudienceStatistics:
        segments = select(func.count()).select_from(Segment).where(
            Segment.merchant_id == self.merchant_id,
            Segment.deleted_at.is_(None),
        )
        total_segments = (await execute_with_timeout(self.db, segments, "segment count")).scalar() or 0
        active_segments = (
            await execute_with_timeout(
                self.db, segments.where(Segment.is_active.is_(True)), "segment count"
            )
        ).scalar() or 0

        subscribers = select(func.count()).select_from(Subscriber).where(
            Subscriber.merchant_id == self.merchant_id,
            Subscriber.is_active.is_(True),
        )
        total_subscribers = (
            await execute_with_timeout(self.db, subscribers, "subscriber count")
        ).scalar() or 0

        return AudienceStatistics(
            total_segments=total_segments,
            active_segments=active_segments,
            total_subscribers=total_subscribers,
            average_subscribers_per_segment=(
                round(total_subscribers / total_segments) if total_segments else 0
            ),
        )

    # ========================================================================
    # Resolution
    # ========================================================================

    async def resolve_segment(self, segment_id: str, now: Optional[datetime] = None) -> SegmentAudience:
        return await SegmentResolver(self.db, self.merchant_id, store=self.store).resolve(segment_id, now=now)

    async def resolve_audience(
        self,
        segment_ids: List[str],
        now: Optional[datetime] = None,
    ) -> CampaignAudience:
        if self.session_factory is None:
            raise RuntimeError("resolve_audience requires a session factory")
        aggregator = AudienceAggregator(self.session_factory, self.merchant_id)
        return await aggregator.aggregate_for_campaign(segment_ids, now=now)

    async def campaign_segment_ids(self, campaign_id: str) -> List[str]:
        """Target segment ids of a campaign, in targeting order."""
        query = select(Campaign.id).where(
            Campaign.id == campaign_id,
            Campaign.merchant_id == self.merchant_id,
            Campaign.deleted_at.is_(None),
        )
        result = await execute_with_timeout(self.db, query, "campaign lookup")
        if result.scalar_one_or_none() is None:
            raise CampaignNotFound(campaign_id)

        links = (
            select(CampaignSegment.segment_id)
            .where(CampaignSegment.campaign_id == campaign_id)
            .order_by(CampaignSegment.position, CampaignSegment.created_at)
        )
        result = await execute_with_timeout(self.db, links, "campaign segments")
        return list(result.scalars().all())

    async def resolve_campaign(self, campaign_id: str, now: Optional[datetime] = None) -> CampaignAudience:
        segment_ids = await self.campaign_segment_ids(campaign_id)
        return await self.resolve_audience(segment_ids, now=now)

    # ========================================================================
    # Display cache
    # ========================================================================

    async def recalculate_segment_counts(self, now: Optional[datetime] = None) -> List[SegmentCountUpdate]:
        """
        Recompute `subscriber_count` and `criteria_display` for every live
        segment of the tenant. A segment whose count fails keeps its previous
        count and reports the error.
        """
        query = (
            select(Segment)
            .options(selectinload(Segment.conditions))
            .where(
                Segment.merchant_id == self.merchant_id,
                Segment.is_active.is_(True),
                Segment.deleted_at.is_(None),
            )
            .order_by(Segment.created_at, Segment.id)
        )
        result = await execute_with_timeout(self.db, query, "segment lookup")
        segments = result.scalars().all()

        now = now or datetime.now(timezone.utc)
        updates: List[SegmentCountUpdate] = []

        for segment in segments:
            conditions, _ = conditions_from_rows(segment.conditions)
            display = describe_conditions(conditions)
            predicate = assemble_conditions(conditions, self.merchant_id, segment_id=segment.id, now=now)

            segment_id, segment_name = segment.id, segment.name
            previous_count = segment.subscriber_count or 0

            # One savepoint per segment so a failed count leaves the transaction usable
            try:
                async with self.db.begin_nested():
                    count = await self.store.count(predicate)
                    segment.subscriber_count = count
                    segment.criteria_display = display
                    segment.last_calculated_at = now
            except StoreError as e:
                logger.error("Recalculating segment %s failed: %s", segment_id, e.detail)
                updates.append(SegmentCountUpdate(segment_id, segment_name, previous_count, display, e.detail))
                continue

            updates.append(SegmentCountUpdate(segment_id, segment_name, count, display))

        await self.db.commit()
        logger.info("Recalculated %d segments for merchant %s", len(updates), self.merchant_id)
        return updates
