"""
Audience estimation and resolution schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.segment import SegmentConditionSchema


class SegmentEstimateRequest(BaseModel):
    """Conditions currently being authored."""
    conditions: list[SegmentConditionSchema]


class SkippedConditionResponse(BaseModel):
    condition_id: str
    category: str
    error_type: str
    reason: str


class SegmentEstimateResponse(BaseModel):
    estimated_count: int
    conditions: int = Field(..., description="Number of conditions received")
    skipped: list[SkippedConditionResponse] = Field(default_factory=list)
    unsupported_categories: list[str] = Field(default_factory=list)
    error: Optional[str] = Field(None, description="Set when the store could not be queried; count is 0")
    timestamp: datetime


class AudienceStatisticsResponse(BaseModel):
    total_segments: int
    active_segments: int
    total_subscribers: int
    average_subscribers_per_segment: int
    timestamp: datetime


class SegmentAudienceResponse(BaseModel):
    segment_id: str
    segment_name: str
    is_active: bool
    subscriber_count: int
    subscriber_ids: list[str]
    tokens: list[str]
    skipped: list[SkippedConditionResponse] = Field(default_factory=list)


class AudienceResolveRequest(BaseModel):
    segment_ids: list[str] = Field(default_factory=list)


class SegmentBreakdownResponse(BaseModel):
    segment_id: str
    segment_name: Optional[str] = None
    status: str
    subscriber_count: int = 0
    error: Optional[str] = None


class CampaignAudienceResponse(BaseModel):
    unique_ids: list[str]
    tokens: list[str]
    total_raw_count: int
    unique_count: int
    segment_count: int
    per_segment_breakdown: list[SegmentBreakdownResponse]


class CampaignReachResponse(BaseModel):
    campaign_id: str
    total_reach: int = Field(..., description="Contributions across segments before deduplication")
    unique_subscribers: int
    segment_breakdown: list[SegmentBreakdownResponse]


class SegmentCountUpdateResponse(BaseModel):
    segment_id: str
    segment_name: str
    subscriber_count: int
    criteria_display: str
    error: Optional[str] = None


class SegmentRecalculateResponse(BaseModel):
    updated: int
    segments: list[SegmentCountUpdateResponse]
    timestamp: datetime
