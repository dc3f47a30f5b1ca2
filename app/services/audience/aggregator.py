"""
Audience Aggregator

Unions the audiences of several segments (a campaign's targets) into one
deduplicated recipient list.

- Segments are resolved concurrently, at most `max_concurrency` at a time,
  each with its own database session.
- Results are merged in the requested segment order, so the first-seen order
  of ids and tokens does not depend on which resolution finished first.
- A missing or failing segment is skipped and reported in the breakdown.
  Only when every requested segment failed to resolve is the whole
  aggregation treated as failed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.services.audience.errors import AudienceResolutionError, SegmentNotFound, StoreError
from app.services.audience.resolver import SegmentAudience, SegmentResolver
from app.services.audience.store import SubscriberStore

logger = logging.getLogger(__name__)

STATUS_RESOLVED = "resolved"
STATUS_INACTIVE = "inactive"
STATUS_NOT_FOUND = "not_found"
STATUS_FAILED = "failed"


@dataclass
class SegmentBreakdown:
    segment_id: str
    status: str
    segment_name: Optional[str] = None
    subscriber_count: int = 0
    error: Optional[str] = None


@dataclass
class CampaignAudience:
    unique_ids: List[str] = field(default_factory=list)
    tokens: List[str] = field(default_factory=list)
    total_raw_count: int = 0
    per_segment_breakdown: List[SegmentBreakdown] = field(default_factory=list)

    @property
    def unique_count(self) -> int:
        return len(self.unique_ids)

    @property
    def segment_count(self) -> int:
        return len(self.per_segment_breakdown)


def dedupe(values: Iterable[str]) -> List[str]:
    """Order-preserving de-duplication."""
    return list(dict.fromkeys(values))


class AudienceAggregator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        merchant_id: str,
        max_concurrency: Optional[int] = None,
        store_timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.merchant_id = merchant_id
        self.max_concurrency = max_concurrency or settings.AUDIENCE_MAX_CONCURRENCY
        self.store_timeout = store_timeout

    async def _resolve_one(
        self,
        segment_id: str,
        semaphore: asyncio.Semaphore,
        now: Optional[datetime],
    ) -> Union[SegmentAudience, SegmentNotFound, StoreError]:
        async with semaphore:
            async with self.session_factory() as session:
                resolver = SegmentResolver(
                    session, self.merchant_id, store=SubscriberStore(session, self.store_timeout)
                )
                try:
                    return await resolver.resolve(segment_id, now=now)
                except (SegmentNotFound, StoreError) as e:
                    return e

    async def aggregate_for_campaign(
        self,
        segment_ids: List[str],
        now: Optional[datetime] = None,
    ) -> CampaignAudience:
        """
        Resolve and merge the audiences of `segment_ids`.

        Raises:
            AudienceResolutionError: every requested segment failed to resolve
        """
        if not segment_ids:
            logger.info("No segments requested, audience is empty")
            return CampaignAudience()

        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(
            *(self._resolve_one(segment_id, semaphore, now) for segment_id in segment_ids),
            return_exceptions=True,
        )

        breakdown: List[SegmentBreakdown] = []
        failures: Dict[str, str] = {}
        failed_count = 0
        ids: List[str] = []
        tokens: List[str] = []

        for segment_id, outcome in zip(segment_ids, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

            if isinstance(outcome, SegmentNotFound):
                logger.warning("Segment %s not found, skipping", segment_id, extra={"segment_id": segment_id})
                breakdown.append(SegmentBreakdown(segment_id, STATUS_NOT_FOUND, error=str(outcome)))
                continue

            if isinstance(outcome, StoreError):
                logger.error(
                    "Resolving segment %s failed: %s",
                    segment_id,
                    outcome.detail,
                    extra={"segment_id": segment_id, "error_type": type(outcome).__name__},
                )
                failures[segment_id] = outcome.detail
                failed_count += 1
                breakdown.append(SegmentBreakdown(segment_id, STATUS_FAILED, error=outcome.detail))
                continue

            if isinstance(outcome, Exception):
                logger.error(
                    "Unexpected error resolving segment %s",
                    segment_id,
                    exc_info=outcome,
                    extra={"segment_id": segment_id, "error_type": type(outcome).__name__},
                )
                detail = f"Unexpected {type(outcome).__name__} while resolving segment"
                failures[segment_id] = detail
                failed_count += 1
                breakdown.append(SegmentBreakdown(segment_id, STATUS_FAILED, error=detail))
                continue

            if not outcome.is_active:
                breakdown.append(
                    SegmentBreakdown(segment_id, STATUS_INACTIVE, segment_name=outcome.segment_name)
                )
                continue

            ids.extend(outcome.subscriber_ids)
            tokens.extend(outcome.tokens)
            breakdown.append(
                SegmentBreakdown(
                    segment_id,
                    STATUS_RESOLVED,
                    segment_name=outcome.segment_name,
                    subscriber_count=outcome.subscriber_count,
                )
            )

        # Counted per requested entry; a repeated id appears once in `failures`
        if failed_count == len(segment_ids):
            raise AudienceResolutionError(
                f"All {len(segment_ids)} segments failed to resolve", failures=failures
            )

        audience = CampaignAudience(
            unique_ids=dedupe(ids),
            tokens=dedupe(tokens),
            total_raw_count=len(ids),
            per_segment_breakdown=breakdown,
        )

        logger.info(
            "%d contributions across %d segments, %d unique",
            audience.total_raw_count,
            len(segment_ids),
            audience.unique_count,
        )
        return audience
