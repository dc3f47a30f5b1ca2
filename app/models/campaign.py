import uuid

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class Campaign(Base):
    """Push campaign. Only the targeting side is modelled here."""

    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    merchant_id = Column(String(36), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    status = Column(String(20), default="draft")

    deleted_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    segments = relationship(
        "CampaignSegment",
        back_populates="campaign",
        cascade="all, delete-orphan",
        order_by="CampaignSegment.position",
    )

    def __repr__(self):
        return f"<Campaign id={self.id} title='{self.title}'>"


class CampaignSegment(Base):
    """Target segment of a campaign."""

    __tablename__ = "campaign_segments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    segment_id = Column(String(36), ForeignKey("segments.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    campaign = relationship("Campaign", back_populates="segments")
    segment = relationship("Segment", back_populates="campaign_links")

    __table_args__ = (
        UniqueConstraint("campaign_id", "segment_id", name="uq_campaign_segment"),
    )
