"""
Segment audience endpoints.

- Live audience estimation while conditions are being authored
- Tenant segment statistics
- Category/operator catalogue for the authoring UI
- Display count recalculation
- Resolution of a single segment to subscribers and delivery tokens
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from app.api.deps import CurrentMerchant, DbSession
from app.schemas.audience import (
    AudienceStatisticsResponse,
    SegmentAudienceResponse,
    SegmentCountUpdateResponse,
    SegmentEstimateRequest,
    SegmentEstimateResponse,
    SegmentRecalculateResponse,
    SkippedConditionResponse,
)
from app.services.audience import (
    AudienceService,
    get_available_categories,
    is_blank_condition,
    validate_conditions,
)

router = APIRouter()


@router.post("/estimate", response_model=SegmentEstimateResponse)
async def estimate_segment(
    request: SegmentEstimateRequest,
    db: DbSession,
    merchant: CurrentMerchant,
):
    """
    Estimate how many active subscribers match the given conditions.

    Always answers 200: if the subscriber store cannot be queried the count
    is 0 and `error` says why.
    """
    service = AudienceService(db, merchant.id)

    filled = [c for c in request.conditions if not is_blank_condition(c)]
    validation = validate_conditions(filled)
    estimate = await service.estimate(request.conditions)

    return SegmentEstimateResponse(
        estimated_count=estimate.count,
        conditions=len(request.conditions),
        skipped=[SkippedConditionResponse(**vars(s)) for s in estimate.skipped],
        unsupported_categories=validation.unsupported_categories,
        error=estimate.error,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/estimate", response_model=AudienceStatisticsResponse)
async def get_estimation_statistics(
    db: DbSession,
    merchant: CurrentMerchant,
):
    """Segment and subscriber totals for the tenant."""
    stats = await AudienceService(db, merchant.id).statistics()
    return AudienceStatisticsResponse(**vars(stats), timestamp=datetime.now(timezone.utc))


@router.get("/categories")
async def list_condition_categories(merchant: CurrentMerchant):
    """Condition categories and the operators each one accepts."""
    return {"categories": get_available_categories()}


@router.post("/recalculate", response_model=SegmentRecalculateResponse)
async def recalculate_segments(
    db: DbSession,
    merchant: CurrentMerchant,
):
    """Recompute the cached subscriber count and criteria text of every active segment."""
    updates = await AudienceService(db, merchant.id).recalculate_segment_counts()
    return SegmentRecalculateResponse(
        updated=sum(1 for u in updates if u.error is None),
        segments=[SegmentCountUpdateResponse(**vars(u)) for u in updates],
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/{segment_id}/audience", response_model=SegmentAudienceResponse)
async def get_segment_audience(
    segment_id: str,
    db: DbSession,
    merchant: CurrentMerchant,
):
    """Current members of one segment. Inactive segments resolve to nobody."""
    service = AudienceService(db, merchant.id)
    audience = await service.resolve_segment(segment_id)

    return SegmentAudienceResponse(
        segment_id=audience.segment_id,
        segment_name=audience.segment_name,
        is_active=audience.is_active,
        subscriber_count=audience.subscriber_count,
        subscriber_ids=audience.subscriber_ids,
        tokens=audience.tokens,
        skipped=[SkippedConditionResponse(**vars(s)) for s in audience.skipped],
    )
