"""
Segment models.

A segment is a named, ordered list of conditions evaluated live against the
subscriber table. Membership is never materialised; only the derived
subscriber count is cached for display.
"""

import uuid

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Date, Text,
    ForeignKey, Enum as SQLEnum, Index,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class Segment(Base):
    """Audience segment definition."""

    __tablename__ = "segments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    merchant_id = Column(String(36), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)

    # Informational only: every type is re-evaluated at resolution time
    type = Column(
        SQLEnum('dynamic', 'static', 'behavior', name='segment_type_enum'),
        default='dynamic',
        nullable=False,
    )
    is_active = Column(Boolean, default=True, nullable=False)

    # Display cache, recomputed by the audience service (never authoritative)
    subscriber_count = Column(Integer, default=0)
    criteria_display = Column(Text)
    last_calculated_at = Column(DateTime(timezone=True))

    deleted_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    conditions = relationship(
        "SegmentCondition",
        back_populates="segment",
        cascade="all, delete-orphan",
        order_by="SegmentCondition.order_index",
    )
    campaign_links = relationship("CampaignSegment", back_populates="segment", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Segment id={self.id} name='{self.name}' type={self.type} active={self.is_active}>"


class SegmentCondition(Base):
    """One filter rule of a segment, stored in authoring order."""

    __tablename__ = "segment_conditions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    segment_id = Column(String(36), ForeignKey("segments.id", ondelete="CASCADE"), nullable=False)
    order_index = Column(Integer, nullable=False, default=0)

    type = Column(String(20), nullable=False, default="property")  # action | property
    category = Column(String(50), nullable=False)
    operator = Column(String(50), nullable=False)

    # Typed value slots; only the ones relevant to the operator are populated
    value = Column(String(500))
    number_value = Column(Float)
    date_value = Column(Date)
    date_unit = Column(String(10))
    location_country = Column(String(100))
    location_region = Column(String(100))
    location_city = Column(String(100))

    logical_operator = Column(String(3))  # AND | OR, ignored on the first condition

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    segment = relationship("Segment", back_populates="conditions")

    __table_args__ = (
        Index("ix_segment_conditions_segment_order", "segment_id", "order_index"),
    )

    def __repr__(self):
        return f"<SegmentCondition id={self.id} {self.category} {self.operator}>"
