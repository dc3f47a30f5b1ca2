from app.models.merchant import Merchant
from app.models.subscriber import Subscriber
from app.models.segment import Segment, SegmentCondition
from app.models.campaign import Campaign, CampaignSegment

__all__ = [
    "Merchant",
    "Subscriber",
    "Segment",
    "SegmentCondition",
    "Campaign",
    "CampaignSegment",
]
