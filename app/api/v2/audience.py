"""
Audience resolution endpoints.

Resolves a list of segments, or the target segments of a campaign, into one
deduplicated recipient list for the send pipeline.
"""

from fastapi import APIRouter

from app.api.deps import CurrentMerchant, DbSession, SessionFactory
from app.schemas.audience import (
    AudienceResolveRequest,
    CampaignAudienceResponse,
    CampaignReachResponse,
    SegmentBreakdownResponse,
)
from app.services.audience import AudienceService, CampaignAudience

router = APIRouter()
campaigns_router = APIRouter()


def _breakdown(audience: CampaignAudience) -> list[SegmentBreakdownResponse]:
    return [SegmentBreakdownResponse(**vars(b)) for b in audience.per_segment_breakdown]


def _audience_response(audience: CampaignAudience) -> CampaignAudienceResponse:
    return CampaignAudienceResponse(
        unique_ids=audience.unique_ids,
        tokens=audience.tokens,
        total_raw_count=audience.total_raw_count,
        unique_count=audience.unique_count,
        segment_count=audience.segment_count,
        per_segment_breakdown=_breakdown(audience),
    )


@router.post("/resolve", response_model=CampaignAudienceResponse)
async def resolve_audience(
    request: AudienceResolveRequest,
    db: DbSession,
    merchant: CurrentMerchant,
    session_factory: SessionFactory,
):
    """
    Union of the given segments' audiences.

    An empty segment list resolves to nobody. Fails with 503 only when every
    segment failed at the subscriber store.
    """
    service = AudienceService(db, merchant.id, session_factory)
    audience = await service.resolve_audience(request.segment_ids)
    return _audience_response(audience)


@campaigns_router.get("/{campaign_id}/audience", response_model=CampaignAudienceResponse)
async def get_campaign_audience(
    campaign_id: str,
    db: DbSession,
    merchant: CurrentMerchant,
    session_factory: SessionFactory,
):
    """Recipients of a campaign: ids and delivery tokens across its target segments."""
    service = AudienceService(db, merchant.id, session_factory)
    audience = await service.resolve_campaign(campaign_id)
    return _audience_response(audience)


@campaigns_router.get("/{campaign_id}/reach", response_model=CampaignReachResponse)
async def get_campaign_reach(
    campaign_id: str,
    db: DbSession,
    merchant: CurrentMerchant,
    session_factory: SessionFactory,
):
    """Reach analytics: contributions per segment and the deduplicated total."""
    service = AudienceService(db, merchant.id, session_factory)
    audience = await service.resolve_campaign(campaign_id)
    return CampaignReachResponse(
        campaign_id=campaign_id,
        total_reach=audience.total_raw_count,
        unique_subscribers=audience.unique_count,
        segment_breakdown=_breakdown(audience),
    )
